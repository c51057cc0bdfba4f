# ============================================================
# Module : content_analyzer/infra/repo/submission_repo.py
# Objet  : Accès SQL pour Submission / AnalysisResult.
# Notes  : toutes les transitions d'état sont des compare-and-swap sur `status`.
# ============================================================

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ...domain.entities import (
    AnalysisResult,
    Submission,
    SubmissionStatus,
    new_id,
    sources_for,
    utcnow,
)
from .models import AnalysisORM, SubmissionORM


def _to_submission(row: SubmissionORM) -> Submission:
    return Submission(
        id=row.id,
        owner_id=row.user_id,
        content=row.content,
        fingerprint=row.fingerprint,
        status=SubmissionStatus(row.status),
        attempts=row.attempts or 0,
        error=row.error,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_result(row: AnalysisORM) -> AnalysisResult:
    return AnalysisResult(
        submission_id=row.submission_id,
        sentiment_label=row.sentiment,
        sentiment_score=float(row.sentiment_score),
        topics=tuple(row.topics or ()),
        summary=row.summary or "",
        raw_response=dict(row.raw_response or {}),
        processing_time_ms=int(row.processing_time_ms or 0),
        created_at=row.created_at,
    )


class SubmissionRepo:
    """CRUD + transitions atomiques pour les soumissions."""

    def __init__(self, session: Session) -> None:
        """Construit le repo avec une session (SQLAlchemy)."""
        self._session = session

    def add(self, submission: Submission) -> None:
        """Insère une soumission (état initial `pending` ou `completed` sur cache hit)."""
        self._session.add(
            SubmissionORM(
                id=submission.id,
                user_id=submission.owner_id,
                content=submission.content,
                fingerprint=submission.fingerprint,
                status=submission.status.value,
                attempts=submission.attempts,
                error=submission.error,
                created_at=submission.created_at,
                updated_at=submission.updated_at,
            )
        )
        self._session.flush()

    def add_completed(self, submission: Submission, result: AnalysisResult) -> None:
        """Insère une soumission déjà terminée et son résultat dans la même transaction."""
        submission.status = SubmissionStatus.COMPLETED
        self.add(submission)
        self._add_result(result)

    def get(self, submission_id: str) -> Submission | None:
        row = self._session.get(SubmissionORM, submission_id)
        return _to_submission(row) if row else None

    def get_result(self, submission_id: str) -> AnalysisResult | None:
        stmt = select(AnalysisORM).where(AnalysisORM.submission_id == submission_id)
        row = self._session.execute(stmt).scalars().first()
        return _to_result(row) if row else None

    def list_for_owner(self, owner_id: str, limit: int = 50, offset: int = 0) -> list[Submission]:
        """Retourne les soumissions d'un utilisateur, les plus récentes d'abord."""
        stmt = (
            select(SubmissionORM)
            .where(SubmissionORM.user_id == owner_id)
            .order_by(SubmissionORM.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return [_to_submission(r) for r in self._session.execute(stmt).scalars().all()]

    def list_stale_pending(self, older_than: datetime, limit: int = 100) -> list[str]:
        """Ids des soumissions `pending` créées avant `older_than` (les plus anciennes d'abord)."""
        stmt = (
            select(SubmissionORM.id)
            .where(
                SubmissionORM.status == SubmissionStatus.PENDING.value,
                SubmissionORM.created_at < older_than,
            )
            .order_by(SubmissionORM.created_at.asc())
            .limit(limit)
        )
        return list(self._session.execute(stmt).scalars().all())

    def transition(
        self,
        submission_id: str,
        target: SubmissionStatus,
        *,
        attempts: int | None = None,
        error: str | None = None,
    ) -> bool:
        """Compare-and-swap du statut vers `target` depuis un état source autorisé.

        Returns:
            True si la ligne a été mise à jour, False si la soumission est absente ou dans un
            état d'où `target` n'est pas atteignable.
        """
        allowed = [s.value for s in sources_for(target)]
        values: dict = {"status": target.value, "updated_at": utcnow()}
        if attempts is not None:
            values["attempts"] = attempts
        if error is not None:
            values["error"] = error
        stmt = (
            update(SubmissionORM)
            .where(SubmissionORM.id == submission_id, SubmissionORM.status.in_(allowed))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    def mark_processing(self, submission_id: str, attempts: int) -> bool:
        """pending|processing -> processing (réentrant pour les reprises de bail)."""
        return self.transition(submission_id, SubmissionStatus.PROCESSING, attempts=attempts)

    def complete(self, submission_id: str, result: AnalysisResult) -> bool:
        """processing -> completed + insertion du résultat (à committer ensemble)."""
        if not self.transition(submission_id, SubmissionStatus.COMPLETED):
            return False
        self._add_result(result)
        return True

    def fail(self, submission_id: str, reason: str, attempts: int | None = None) -> bool:
        """processing -> failed avec la raison enregistrée."""
        return self.transition(
            submission_id, SubmissionStatus.FAILED, attempts=attempts, error=reason
        )

    def _add_result(self, result: AnalysisResult) -> None:
        self._session.add(
            AnalysisORM(
                id=new_id(),
                submission_id=result.submission_id,
                sentiment=result.sentiment_label,
                sentiment_score=result.sentiment_score,
                topics=list(result.topics),
                summary=result.summary,
                raw_response=result.raw_response,
                processing_time_ms=result.processing_time_ms,
                created_at=result.created_at,
            )
        )
        self._session.flush()
