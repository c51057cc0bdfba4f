"""
Objets domaine du pipeline d'analyse (POPO).

Ce module définit la soumission et sa machine à états, le résultat d'analyse, la charge utile
mise en cache et l'élément de file de dispatch.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from content_analyzer.domain.errors import InvalidTransition

SENTIMENT_LABELS = ("positive", "neutral", "negative")
MAX_TOPICS = 5


class SubmissionStatus(str, Enum):
    """États d'une soumission."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SubmissionStatus.COMPLETED, SubmissionStatus.FAILED)


# processing -> processing: reprise d'un élément dont le bail a expiré, ou retry.
ALLOWED_TRANSITIONS: dict[SubmissionStatus, frozenset[SubmissionStatus]] = {
    SubmissionStatus.PENDING: frozenset({SubmissionStatus.PROCESSING}),
    SubmissionStatus.PROCESSING: frozenset(
        {SubmissionStatus.PROCESSING, SubmissionStatus.COMPLETED, SubmissionStatus.FAILED}
    ),
    SubmissionStatus.COMPLETED: frozenset(),
    SubmissionStatus.FAILED: frozenset(),
}


def sources_for(target: SubmissionStatus) -> frozenset[SubmissionStatus]:
    """Return the statuses from which `target` may be reached."""
    return frozenset(src for src, dests in ALLOWED_TRANSITIONS.items() if target in dests)


def check_transition(current: SubmissionStatus, target: SubmissionStatus) -> None:
    """Lève InvalidTransition si `current -> target` est interdit."""
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(f"{current.value} -> {target.value}")


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Submission:
    """
    Soumission de texte à analyser (objet domaine).

    Attributs
    - id: identifiant unique généré à la création.
    - owner_id: principal authentifié (opaque pour le pipeline).
    - content: texte immuable.
    - fingerprint: empreinte du contenu.
    - status: état courant.
    - attempts: nombre d'appels externes démarrés.
    - error: raison d'échec (état `failed` uniquement).
    """

    id: str
    owner_id: str
    content: str
    fingerprint: str
    status: SubmissionStatus = SubmissionStatus.PENDING
    attempts: int = 0
    error: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class CachedAnalysis:
    """Charge utile adressée par contenu: tout le résultat sauf ce qui est propre à la soumission."""

    sentiment_label: str
    sentiment_score: float
    topics: tuple[str, ...]
    summary: str
    raw_response: dict[str, Any]
    processing_time_ms: int

    def to_json(self) -> str:
        data = asdict(self)
        data["topics"] = list(self.topics)
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str | bytes) -> CachedAnalysis:
        data = json.loads(raw)
        return cls(
            sentiment_label=str(data["sentiment_label"]),
            sentiment_score=float(data["sentiment_score"]),
            topics=tuple(str(t) for t in data.get("topics") or ())[:MAX_TOPICS],
            summary=str(data.get("summary") or ""),
            raw_response=dict(data.get("raw_response") or {}),
            processing_time_ms=int(data.get("processing_time_ms") or 0),
        )


@dataclass(frozen=True)
class AnalysisResult:
    """Résultat d'analyse d'une soumission, immuable une fois créé."""

    submission_id: str
    sentiment_label: str
    sentiment_score: float
    topics: tuple[str, ...]
    summary: str
    raw_response: dict[str, Any]
    processing_time_ms: int
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_cached(cls, submission_id: str, cached: CachedAnalysis) -> AnalysisResult:
        return cls(
            submission_id=submission_id,
            sentiment_label=cached.sentiment_label,
            sentiment_score=cached.sentiment_score,
            topics=cached.topics,
            summary=cached.summary,
            raw_response=cached.raw_response,
            processing_time_ms=cached.processing_time_ms,
        )

    def to_cached(self) -> CachedAnalysis:
        return CachedAnalysis(
            sentiment_label=self.sentiment_label,
            sentiment_score=self.sentiment_score,
            topics=self.topics,
            summary=self.summary,
            raw_response=self.raw_response,
            processing_time_ms=self.processing_time_ms,
        )


@dataclass
class DispatchItem:
    """
    Élément de la file de dispatch.

    `attempts` compte les échecs transitoires, `throttled` les réponses « rate limited » de l'API
    externe (budget séparé). Les champs de bail ne sont renseignés que pendant un claim.
    """

    submission_id: str
    attempts: int = 0
    throttled: int = 0
    not_before: float = 0.0
    enqueued_at: float = field(default_factory=time.time)
    worker_id: str | None = None
    lease_token: str | None = None
    lease_until: float | None = None

    def to_json(self) -> str:
        """Serialize the durable part of the item (lease data excluded)."""
        return json.dumps(
            {
                "submission_id": self.submission_id,
                "attempts": self.attempts,
                "throttled": self.throttled,
                "not_before": self.not_before,
                "enqueued_at": self.enqueued_at,
            },
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> DispatchItem:
        data = json.loads(raw)
        return cls(
            submission_id=str(data["submission_id"]),
            attempts=int(data.get("attempts", 0)),
            throttled=int(data.get("throttled", 0)),
            not_before=float(data.get("not_before", 0.0)),
            enqueued_at=float(data.get("enqueued_at", 0.0)),
        )

    def leased(self, worker_id: str, token: str, until: float) -> DispatchItem:
        return replace(self, worker_id=worker_id, lease_token=token, lease_until=until)
