# Schémas Pydantic exposés par l'API (requêtes et réponses).

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from content_analyzer.domain.entities import AnalysisResult, Submission


class RegisterRequest(BaseModel):
    """Payload d'inscription (email + mot de passe, validés par le domaine auth)."""

    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    id: str
    email: str
    created_at: datetime | None = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


class AuthResponse(BaseModel):
    """Réponse d'inscription/connexion: utilisateur + jeton d'accès."""

    user: UserResponse
    token: TokenResponse


class SubmissionRequest(BaseModel):
    """Texte à analyser. La longueur maximale est vérifiée par l'orchestrateur."""

    content: str = Field(..., description="Texte brut à analyser")


class AnalysisResponse(BaseModel):
    """Résultat d'analyse.

    Champs:
    - sentiment: positive | neutral | negative
    - sentiment_score: float dans [-1, 1]
    - topics: au plus 5 thèmes
    - summary: résumé court
    - processing_time_ms: latence de l'appel externe d'origine
    """

    submission_id: str
    sentiment: str
    sentiment_score: float
    topics: list[str]
    summary: str
    processing_time_ms: int
    created_at: datetime

    @classmethod
    def from_result(cls, result: AnalysisResult) -> AnalysisResponse:
        return cls(
            submission_id=result.submission_id,
            sentiment=result.sentiment_label,
            sentiment_score=result.sentiment_score,
            topics=list(result.topics),
            summary=result.summary,
            processing_time_ms=result.processing_time_ms,
            created_at=result.created_at,
        )


class SubmissionResponse(BaseModel):
    id: str
    status: str
    fingerprint: str
    attempts: int
    error: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_submission(cls, sub: Submission) -> SubmissionResponse:
        return cls(
            id=sub.id,
            status=sub.status.value,
            fingerprint=sub.fingerprint,
            attempts=sub.attempts,
            error=sub.error,
            created_at=sub.created_at,
            updated_at=sub.updated_at,
        )


class SubmissionDetailResponse(SubmissionResponse):
    content: str

    @classmethod
    def from_submission(cls, sub: Submission) -> SubmissionDetailResponse:
        base = SubmissionResponse.from_submission(sub).model_dump()
        return cls(**base, content=sub.content)


class SubmissionStatusResponse(BaseModel):
    id: str
    status: str


class SubmissionListResponse(BaseModel):
    items: list[SubmissionResponse]
    limit: int
    offset: int
