"""Cache de résultats d'analyse adressé par contenu.

Le cache est une optimisation, jamais une source de vérité: toute indisponibilité du backend
dégrade en « miss » (lecture) ou en no-op (écriture), est journalisée et comptée, mais n'est
jamais remontée à l'appelant.
"""

from __future__ import annotations

import threading
import time

import redis
import structlog
from redis.exceptions import RedisError

from content_analyzer.app.metrics import CACHE_OPS
from content_analyzer.domain.entities import CachedAnalysis
from content_analyzer.domain.errors import CacheUnavailable
from content_analyzer.domain.fingerprint import cache_key

log = structlog.get_logger(__name__)


class InMemoryCacheBackend:
    """Backend clé/valeur en mémoire avec expiration (dev/tests)."""

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._vals: dict[str, tuple[str, float]] = {}

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._vals.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                self._vals.pop(key, None)
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._vals[key] = (value, self._clock() + ttl_seconds)

    def ping(self) -> bool:
        return True


class RedisCacheBackend:
    """Backend Redis (`SET key value EX ttl`), timeouts courts pour ne jamais bloquer."""

    def __init__(self, url: str, socket_timeout_ms: int = 200) -> None:
        self.client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=socket_timeout_ms / 1000,
            socket_timeout=socket_timeout_ms / 1000,
        )

    def get(self, key: str) -> str | None:
        try:
            return self.client.get(key)
        except RedisError as exc:
            raise CacheUnavailable(str(exc)) from exc

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self.client.set(key, value, ex=ttl_seconds)
        except RedisError as exc:
            raise CacheUnavailable(str(exc)) from exc

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError:
            return False


class ResultCache:
    """Cache `fingerprint -> CachedAnalysis` avec TTL fixe."""

    def __init__(self, backend, ttl_seconds: int) -> None:
        self.backend = backend
        self.ttl_seconds = int(ttl_seconds)

    def get(self, fp: str) -> CachedAnalysis | None:
        """Retourne l'analyse en cache, ou None (miss ou cache indisponible)."""
        try:
            raw = self.backend.get(cache_key(fp))
        except CacheUnavailable as exc:
            CACHE_OPS.labels(op="get", result="error").inc()
            log.warning("result_cache_unavailable", op="get", fingerprint=fp, error=str(exc))
            return None
        if raw is None:
            CACHE_OPS.labels(op="get", result="miss").inc()
            return None
        try:
            cached = CachedAnalysis.from_json(raw)
        except (ValueError, KeyError, TypeError) as exc:
            CACHE_OPS.labels(op="get", result="error").inc()
            log.warning("result_cache_corrupt_entry", fingerprint=fp, error=str(exc))
            return None
        CACHE_OPS.labels(op="get", result="hit").inc()
        return cached

    def put(self, fp: str, analysis: CachedAnalysis, ttl_seconds: int | None = None) -> bool:
        """Écrit (last-write-wins). Retourne False si le cache est indisponible."""
        try:
            self.backend.set(cache_key(fp), analysis.to_json(), int(ttl_seconds or self.ttl_seconds))
        except CacheUnavailable as exc:
            CACHE_OPS.labels(op="put", result="error").inc()
            log.warning("result_cache_unavailable", op="put", fingerprint=fp, error=str(exc))
            return False
        CACHE_OPS.labels(op="put", result="ok").inc()
        return True

    def ping(self) -> bool:
        return bool(self.backend.ping())
