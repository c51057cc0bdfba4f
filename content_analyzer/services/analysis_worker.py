"""Worker d'analyse: traite un élément de la file de dispatch de bout en bout.

Protocole par élément:
1. charge la soumission; absente ou terminale -> ack et abandon;
2. relit le cache (un autre worker vient peut-être d'analyser le même texte);
3. vérifie le bail puis attend l'admission par tranches d'un demi-bail, en prolongeant le
   bail à chaque tranche (bail perdu -> abandon, attente trop longue -> remise en file);
4. CAS `pending|processing -> processing` avec le nouveau nombre d'essais;
5. appel externe;
6. succès -> `completed` + résultat (même transaction), écriture cache, ack;
   transitoire -> backoff exponentiel ou `failed` au-delà du budget d'essais;
   rate limited -> backoff sans consommer d'essai (budget séparé);
   permanent -> `failed` immédiatement.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field, replace

import structlog
from opentelemetry import trace

from content_analyzer.app.metrics import SUBMISSIONS_TERMINAL, WORKER_RETRIES
from content_analyzer.domain.entities import AnalysisResult, DispatchItem, Submission
from content_analyzer.infra.llm.base import AnalysisClient, AnalysisSuccess, FailureKind
from content_analyzer.infra.repo.db import session_scope
from content_analyzer.infra.repo.submission_repo import SubmissionRepo
from content_analyzer.infra.result_cache import ResultCache
from content_analyzer.services.dispatcher import RateLimitedDispatcher

log = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class RetryPolicy:
    """Budgets de retry et backoff exponentiel avec jitter."""

    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 60.0
    max_throttle_retries: int = 10
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def backoff(self, n: int) -> float:
        """Délai avant le n-ième nouvel essai: base * 2**(n-1), jitter x[0.5, 1.5], plafonné."""
        raw = self.base_delay * (2 ** max(0, n - 1))
        return min(self.max_delay, raw * self.rng.uniform(0.5, 1.5))

    @classmethod
    def from_settings(cls, settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.ANALYSIS_MAX_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY_S,
            max_delay=settings.RETRY_MAX_DELAY_S,
            max_throttle_retries=settings.MAX_THROTTLE_RETRIES,
        )


class AnalysisWorker:
    """Un worker (un thread ou une tâche Celery) du pool d'analyse."""

    def __init__(
        self,
        session_factory,
        cache: ResultCache,
        dispatcher: RateLimitedDispatcher,
        client: AnalysisClient,
        policy: RetryPolicy,
        call_timeout: float,
        worker_id: str = "worker-0",
        admit_timeout: float | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.cache = cache
        self.dispatcher = dispatcher
        self.client = client
        self.policy = policy
        self.call_timeout = call_timeout
        self.worker_id = worker_id
        # Attente maximale du quota par élément (None = illimitée)
        self.admit_timeout = admit_timeout

    def run_once(self, claim_timeout: float | None = None) -> str | None:
        """Réclame et traite un élément; None si rien n'était disponible."""
        item = self.dispatcher.claim(self.worker_id, claim_timeout)
        if item is None:
            return None
        return self.process(item)

    def process(self, item: DispatchItem) -> str:
        """Traite un élément réclamé et retourne l'issue (pour logs/tests)."""
        try:
            return self._process(item)
        except Exception as exc:
            # Erreur inattendue du worker: traitée comme un échec transitoire.
            log.exception(
                "analysis_worker_unexpected_error",
                submission_id=item.submission_id,
                attempts=item.attempts,
                throttled=item.throttled,
                worker_id=self.worker_id,
            )
            return self._on_transient(item, f"worker error: {type(exc).__name__}: {exc}")

    # -------------------- protocole --------------------

    def _process(self, item: DispatchItem) -> str:
        sid = item.submission_id
        with session_scope(self.session_factory) as session:
            submission = SubmissionRepo(session).get(sid)
        if submission is None or submission.status.is_terminal:
            self.dispatcher.ack(item)
            log.info("analysis_item_dropped", submission_id=sid, reason="missing_or_terminal")
            return "dropped"

        cached = self.cache.get(submission.fingerprint)
        if cached is not None:
            return self._complete_from_cache(item, submission, cached)

        admission = self._await_admission(item)
        if admission == "stopped":
            # Arrêt en cours: l'élément retourne en file pour un autre worker.
            self.dispatcher.requeue(item, 0.0)
            return "stopped"
        if admission == "deferred":
            self.dispatcher.requeue(item, 0.0)
            log.info("analysis_admission_deferred", submission_id=sid, worker_id=self.worker_id)
            return "deferred"
        if admission == "lease_lost" or not self.dispatcher.extend_lease(item):
            log.warning(
                "analysis_lease_lost",
                submission_id=sid,
                attempts=item.attempts,
                throttled=item.throttled,
                worker_id=self.worker_id,
            )
            return "lease_lost"

        attempt = item.attempts + 1
        with session_scope(self.session_factory) as session:
            marked = SubmissionRepo(session).mark_processing(sid, attempt)
        if not marked:
            self.dispatcher.ack(item)
            return "dropped"

        with tracer.start_as_current_span("analysis.external_call") as span:
            span.set_attribute("submission.id", sid)
            span.set_attribute("analysis.attempt", attempt)
            span.set_attribute("analysis.provider", self.client.provider)
            outcome = self.client.analyze(submission.content, timeout=self.call_timeout)

        if isinstance(outcome, AnalysisSuccess):
            result = AnalysisResult.from_cached(sid, outcome.analysis)
            return self._complete(item, submission, result, write_cache=True)
        if outcome.kind is FailureKind.PERMANENT:
            return self._fail(item, outcome.message, attempt, reason="permanent")
        if outcome.kind is FailureKind.RATE_LIMITED:
            return self._on_throttled(item, outcome.message, outcome.retry_after)
        return self._on_transient(item, outcome.message)

    def _await_admission(self, item: DispatchItem) -> str:
        """Attend un jeton d'appel sans laisser expirer le bail.

        Le bail est vérifié avant toute consommation de jeton, puis prolongé après chaque
        tranche d'attente (un demi-bail).

        Returns:
            "admitted", "stopped", "lease_lost" ou "deferred" (`admit_timeout` écoulé).
        """
        if not self.dispatcher.extend_lease(item):
            return "lease_lost"
        step = max(self.dispatcher.lease_seconds / 2, 0.01)
        deadline = None if self.admit_timeout is None else time.monotonic() + self.admit_timeout
        while True:
            wait = step if deadline is None else min(step, max(0.0, deadline - time.monotonic()))
            if self.dispatcher.admit(timeout=wait):
                return "admitted"
            if self.dispatcher.stopped:
                return "stopped"
            if not self.dispatcher.extend_lease(item):
                return "lease_lost"
            if deadline is not None and time.monotonic() >= deadline:
                return "deferred"

    def _complete_from_cache(self, item: DispatchItem, submission: Submission, cached) -> str:
        result = AnalysisResult.from_cached(submission.id, cached)
        with session_scope(self.session_factory) as session:
            repo = SubmissionRepo(session)
            done = repo.mark_processing(submission.id, submission.attempts) and repo.complete(
                submission.id, result
            )
        self.dispatcher.ack(item)
        if done:
            SUBMISSIONS_TERMINAL.labels(status="completed", reason="cache").inc()
            log.info("analysis_completed", submission_id=submission.id, source="cache")
            return "cached"
        return "dropped"

    def _complete(
        self, item: DispatchItem, submission: Submission, result: AnalysisResult, write_cache: bool
    ) -> str:
        with session_scope(self.session_factory) as session:
            done = SubmissionRepo(session).complete(submission.id, result)
        if done and write_cache:
            self.cache.put(submission.fingerprint, result.to_cached())
        self.dispatcher.ack(item)
        if not done:
            return "dropped"
        SUBMISSIONS_TERMINAL.labels(status="completed", reason="ok").inc()
        log.info(
            "analysis_completed",
            submission_id=submission.id,
            attempts=item.attempts + 1,
            throttled=item.throttled,
            processing_time_ms=result.processing_time_ms,
        )
        return "completed"

    def _fail(self, item: DispatchItem, message: str, attempts: int, reason: str) -> str:
        with session_scope(self.session_factory) as session:
            SubmissionRepo(session).fail(item.submission_id, message, attempts)
        self.dispatcher.ack(item)
        SUBMISSIONS_TERMINAL.labels(status="failed", reason=reason).inc()
        log.warning(
            "analysis_failed",
            submission_id=item.submission_id,
            attempts=attempts,
            throttled=item.throttled,
            reason=reason,
            error=message,
        )
        return "failed"

    def _on_transient(self, item: DispatchItem, message: str) -> str:
        attempts = item.attempts + 1
        if attempts >= self.policy.max_attempts:
            return self._fail(item, message, attempts, reason="retries_exhausted")
        delay = self.policy.backoff(attempts)
        WORKER_RETRIES.labels(reason="transient").inc()
        log.info(
            "analysis_retry_scheduled",
            submission_id=item.submission_id,
            attempts=attempts,
            throttled=item.throttled,
            delay=round(delay, 3),
            error=message,
        )
        self.dispatcher.requeue(replace(item, attempts=attempts), delay)
        return "retry"

    def _on_throttled(self, item: DispatchItem, message: str, retry_after: float | None) -> str:
        throttled = item.throttled + 1
        if throttled > self.policy.max_throttle_retries:
            return self._fail(
                replace(item, throttled=throttled),
                f"rate limited by analysis provider: {message}",
                item.attempts + 1,
                reason="throttled",
            )
        delay = max(retry_after or 0.0, self.policy.backoff(throttled))
        WORKER_RETRIES.labels(reason="rate_limited").inc()
        log.info(
            "analysis_throttled",
            submission_id=item.submission_id,
            attempts=item.attempts,
            throttled=throttled,
            delay=round(delay, 3),
        )
        self.dispatcher.requeue(replace(item, throttled=throttled), delay)
        return "throttled"
