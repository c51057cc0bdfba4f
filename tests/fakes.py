"""
Fakes et mocks pour les tests unitaires.

Ce module fournit un client d'analyse scripté (réponses et erreurs programmables, appels
comptés), un backend de cache toujours indisponible et une horloge manuelle.
"""

from __future__ import annotations

import json
import threading
import time
from typing import Any

from content_analyzer.domain.errors import CacheUnavailable
from content_analyzer.infra.llm.base import AnalysisClient

DEFAULT_ANALYSIS = {
    "sentiment": "positive",
    "sentiment_score": 0.9,
    "topics": ["product", "quality"],
    "summary": "The author loves the product.",
}


class ScriptedAnalysisClient(AnalysisClient):
    """
    Client d'analyse factice pour les tests.

    Chaque appel consomme l'entrée suivante du script: une exception `External*` est levée, un
    dict est renvoyé comme sortie JSON du modèle, une chaîne est renvoyée telle quelle. Script
    épuisé -> `default` (réponse positive) si `repeat_last` est faux, sinon la dernière entrée.
    """

    provider = "scripted"

    def __init__(self, script: list[Any] | None = None, repeat_last: bool = False, delay: float = 0.0):
        self.script = list(script or [])
        self.repeat_last = repeat_last
        self.delay = delay
        self.calls: list[str] = []
        self.call_times: list[float] = []
        self._lock = threading.Lock()
        self._last: Any = DEFAULT_ANALYSIS

    def _next(self) -> Any:
        with self._lock:
            if self.script:
                self._last = self.script.pop(0)
                return self._last
            return self._last if self.repeat_last else DEFAULT_ANALYSIS

    def _complete(self, prompt: str, timeout: float) -> tuple[str, dict[str, Any]]:
        with self._lock:
            self.calls.append(prompt)
            self.call_times.append(time.monotonic())
        if self.delay:
            time.sleep(self.delay)
        entry = self._next()
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, str):
            return entry, {"text": entry}
        return json.dumps(entry), {"output": entry}

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)


class RaisingCacheBackend:
    """Backend de cache toujours injoignable."""

    def __init__(self) -> None:
        self.get_calls = 0
        self.set_calls = 0

    def get(self, key: str) -> str | None:
        self.get_calls += 1
        raise CacheUnavailable("connection refused")

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.set_calls += 1
        raise CacheUnavailable("connection refused")

    def ping(self) -> bool:
        return False


class FakeClock:
    """Horloge manuelle (secondes)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
