"""Interface de base pour les clients d'analyse externe.

Les clients lèvent en interne la taxonomie `External*` de `domain.errors`; `analyze()` la
convertit en résultat étiqueté (`AnalysisSuccess` | `AnalysisFailure`) pour que le worker
n'ait jamais à inspecter d'exception propre à un fournisseur.
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from content_analyzer.app.metrics import EXTERNAL_CALLS, EXTERNAL_LATENCY
from content_analyzer.domain.entities import MAX_TOPICS, SENTIMENT_LABELS, CachedAnalysis
from content_analyzer.domain.errors import (
    ExternalPermanent,
    ExternalRateLimited,
    ExternalTransient,
)

ANALYSIS_PROMPT = """Analyze the following text and respond with a JSON object containing:
- "sentiment": one of "positive", "neutral", "negative"
- "sentiment_score": a number between -1.0 (very negative) and 1.0 (very positive)
- "topics": a list of at most 5 short topic keywords
- "summary": one or two sentences summarizing the text

Respond with JSON only.

Text:
{content}
"""


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    PERMANENT = "permanent"


@dataclass(frozen=True)
class AnalysisSuccess:
    analysis: CachedAnalysis
    latency_ms: int = 0


@dataclass(frozen=True)
class AnalysisFailure:
    kind: FailureKind
    message: str
    retry_after: float | None = None
    status_code: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)


AnalysisOutcome = AnalysisSuccess | AnalysisFailure


def build_prompt(content: str) -> str:
    return ANALYSIS_PROMPT.format(content=content)


def _strip_fences(text: str) -> str:
    """Retire un éventuel bloc ```json ... ``` autour de la réponse du modèle."""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


def parse_analysis(text: str, raw_response: dict[str, Any], latency_ms: int) -> CachedAnalysis:
    """Parse la sortie JSON du modèle en analyse normalisée.

    Raises:
        ExternalTransient: sortie non JSON ou champs requis absents (un nouvel essai peut
            produire une réponse exploitable).
    """
    try:
        data = json.loads(_strip_fences(text))
    except (TypeError, ValueError) as exc:
        raise ExternalTransient(f"malformed model output: {exc}") from exc
    if not isinstance(data, dict):
        raise ExternalTransient("malformed model output: expected a JSON object")

    label = str(data.get("sentiment") or data.get("sentiment_label") or "").lower().strip()
    if label not in SENTIMENT_LABELS:
        raise ExternalTransient(f"malformed model output: unknown sentiment {label!r}")
    try:
        score = float(data.get("sentiment_score", 0.0))
    except (TypeError, ValueError) as exc:
        raise ExternalTransient("malformed model output: sentiment_score is not a number") from exc
    score = max(-1.0, min(1.0, score))

    topics = data.get("topics") or []
    if not isinstance(topics, list):
        topics = [topics]
    return CachedAnalysis(
        sentiment_label=label,
        sentiment_score=score,
        topics=tuple(str(t).strip() for t in topics if str(t).strip())[:MAX_TOPICS],
        summary=str(data.get("summary") or "").strip(),
        raw_response=raw_response,
        processing_time_ms=int(latency_ms),
    )


class AnalysisClient(ABC):
    """Interface abstraite d'un fournisseur d'analyse de texte."""

    provider: str = "unknown"

    @abstractmethod
    def _complete(self, prompt: str, timeout: float) -> tuple[str, dict[str, Any]]:
        """Appelle le fournisseur et retourne (texte du modèle, réponse brute).

        Lève ExternalRateLimited / ExternalTransient / ExternalPermanent.
        """
        ...

    def analyze(self, content: str, *, timeout: float) -> AnalysisOutcome:
        """Analyse `content`; ne lève jamais d'erreur externe."""
        start = time.perf_counter()
        try:
            text, raw = self._complete(build_prompt(content), timeout)
            latency_ms = int((time.perf_counter() - start) * 1000)
            analysis = parse_analysis(text, raw, latency_ms)
        except ExternalRateLimited as exc:
            outcome: AnalysisOutcome = AnalysisFailure(
                FailureKind.RATE_LIMITED, exc.message, exc.retry_after, exc.status_code
            )
        except ExternalTransient as exc:
            outcome = AnalysisFailure(FailureKind.TRANSIENT, exc.message, None, exc.status_code)
        except ExternalPermanent as exc:
            outcome = AnalysisFailure(FailureKind.PERMANENT, exc.message, None, exc.status_code)
        else:
            outcome = AnalysisSuccess(analysis=analysis, latency_ms=latency_ms)
        EXTERNAL_LATENCY.labels(self.provider).observe(time.perf_counter() - start)
        label = "success" if isinstance(outcome, AnalysisSuccess) else outcome.kind.value
        EXTERNAL_CALLS.labels(self.provider, label).inc()
        return outcome

    def close(self) -> None:
        """Libère les ressources réseau éventuelles."""
        return None
