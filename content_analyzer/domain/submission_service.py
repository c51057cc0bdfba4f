"""
Orchestrateur des soumissions: point d'entrée du pipeline d'analyse.

`submit` valide le texte, sert directement depuis le cache quand c'est possible, sinon persiste
une soumission `pending` et la met en file une fois la transaction commitée. Les lectures sont
filtrées par propriétaire: un id d'un autre utilisateur est indiscernable d'un id inconnu.
"""

from __future__ import annotations

from datetime import timedelta

import structlog

from content_analyzer.app.metrics import SUBMISSIONS_TOTAL
from content_analyzer.domain.entities import (
    AnalysisResult,
    Submission,
    SubmissionStatus,
    new_id,
    utcnow,
)
from content_analyzer.domain.errors import (
    AnalysisFailed,
    InvalidSubmission,
    QueueFull,
    ResultNotReady,
    SubmissionNotFound,
)
from content_analyzer.domain.fingerprint import fingerprint
from content_analyzer.infra.ops.post_commit import register_action_after_commit
from content_analyzer.infra.repo.db import session_scope
from content_analyzer.infra.repo.submission_repo import SubmissionRepo

log = structlog.get_logger(__name__)


class SubmissionOrchestrator:
    """Service applicatif des soumissions."""

    def __init__(
        self,
        session_factory,
        cache,
        dispatcher,
        max_content_chars: int = 10000,
        on_enqueued=None,
    ) -> None:
        """
        Args:
            session_factory: factory de sessions SQLAlchemy.
            cache: ResultCache.
            dispatcher: RateLimitedDispatcher.
            max_content_chars: longueur maximale du texte soumis.
            on_enqueued: callable optionnel appelé après une mise en file réussie
                (ex: déclenchement d'une tâche Celery).
        """
        self.session_factory = session_factory
        self.cache = cache
        self.dispatcher = dispatcher
        self.max_content_chars = max_content_chars
        self.on_enqueued = on_enqueued

    def _validate(self, content: str) -> None:
        if content is None or not content.strip():
            raise InvalidSubmission("content must not be empty")
        if len(content) > self.max_content_chars:
            raise InvalidSubmission(f"content exceeds {self.max_content_chars} characters")
        try:
            content.encode("utf-8")
        except UnicodeEncodeError as exc:
            # surrogate isolé (\ud800 échappé en JSON): non représentable en UTF-8
            raise InvalidSubmission("content must be valid UTF-8 text") from exc

    def submit(self, content: str, owner_id: str) -> Submission:
        """Crée une soumission.

        Returns:
            La soumission, `completed` (cache hit) ou `pending`.

        Raises:
            InvalidSubmission: texte vide ou trop long.
            QueueFull: file de dispatch pleine (rien n'est persisté).
        """
        self._validate(content)
        fp = fingerprint(content)
        submission = Submission(id=new_id(), owner_id=owner_id, content=content, fingerprint=fp)

        cached = self.cache.get(fp)
        if cached is not None:
            result = AnalysisResult.from_cached(submission.id, cached)
            with session_scope(self.session_factory) as session:
                SubmissionRepo(session).add_completed(submission, result)
            SUBMISSIONS_TOTAL.labels(outcome="cache_hit").inc()
            log.info("submission_completed_from_cache", submission_id=submission.id, fingerprint=fp)
            return submission

        try:
            self.dispatcher.ensure_capacity()
        except QueueFull:
            SUBMISSIONS_TOTAL.labels(outcome="rejected").inc()
            log.warning("submission_rejected_queue_full", owner_id=owner_id)
            raise

        with session_scope(self.session_factory) as session:
            SubmissionRepo(session).add(submission)
            register_action_after_commit(session, self._enqueue, submission.id)
        SUBMISSIONS_TOTAL.labels(outcome="queued").inc()
        log.info("submission_queued", submission_id=submission.id, fingerprint=fp)
        return submission

    def _enqueue(self, submission_id: str) -> bool:
        """Met en file après commit; un échec est rattrapé par `recover_pending`."""
        try:
            pushed = self.dispatcher.enqueue(submission_id)
        except QueueFull as exc:
            log.warning(
                "submission_enqueue_deferred",
                submission_id=submission_id,
                depth=exc.depth,
                limit=exc.limit,
            )
            return False
        if pushed and self.on_enqueued is not None:
            self.on_enqueued(submission_id)
        return pushed

    # -------------------- lectures --------------------

    def get_submission(self, submission_id: str, owner_id: str) -> Submission:
        with session_scope(self.session_factory) as session:
            submission = SubmissionRepo(session).get(submission_id)
        if submission is None or submission.owner_id != owner_id:
            raise SubmissionNotFound(submission_id)
        return submission

    def get_status(self, submission_id: str, owner_id: str) -> SubmissionStatus:
        return self.get_submission(submission_id, owner_id).status

    def get_result(self, submission_id: str, owner_id: str) -> AnalysisResult:
        """Retourne le résultat d'une soumission terminée avec succès.

        Raises:
            SubmissionNotFound: id inconnu ou appartenant à un autre utilisateur.
            ResultNotReady: soumission `pending` ou `processing`.
            AnalysisFailed: soumission `failed` (porte la raison).
        """
        with session_scope(self.session_factory) as session:
            repo = SubmissionRepo(session)
            submission = repo.get(submission_id)
            if submission is None or submission.owner_id != owner_id:
                raise SubmissionNotFound(submission_id)
            if submission.status is SubmissionStatus.FAILED:
                raise AnalysisFailed(submission_id, submission.error)
            if submission.status is not SubmissionStatus.COMPLETED:
                raise ResultNotReady(submission_id, submission.status.value)
            result = repo.get_result(submission_id)
        if result is None:
            # completed sans résultat ne peut pas arriver (même transaction)
            raise ResultNotReady(submission_id, submission.status.value)
        return result

    def list_submissions(self, owner_id: str, limit: int = 50, offset: int = 0) -> list[Submission]:
        with session_scope(self.session_factory) as session:
            return SubmissionRepo(session).list_for_owner(owner_id, limit=limit, offset=offset)

    # -------------------- maintenance --------------------

    def recover_pending(self, grace_seconds: float = 60.0, limit: int = 100) -> int:
        """Remet en file les soumissions `pending` plus anciennes que `grace_seconds` et absentes
        de la file (crash entre commit et mise en file, ou file pleine au moment du commit)."""
        older_than = utcnow() - timedelta(seconds=grace_seconds)
        with session_scope(self.session_factory) as session:
            stale = SubmissionRepo(session).list_stale_pending(older_than, limit=limit)
        recovered = 0
        for sid in stale:
            if self.dispatcher.contains(sid):
                continue
            try:
                if self._enqueue_or_raise(sid):
                    recovered += 1
            except QueueFull:
                break
        if recovered:
            log.info("pending_submissions_recovered", count=recovered)
        return recovered

    def _enqueue_or_raise(self, submission_id: str) -> bool:
        pushed = self.dispatcher.enqueue(submission_id)
        if pushed and self.on_enqueued is not None:
            self.on_enqueued(submission_id)
        return pushed
