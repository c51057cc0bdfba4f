"""Stores de rate limiting pour le quota global de l'API d'analyse externe.

Deux implémentations d'un même contrat `try_acquire() -> Admission`:

- `SlidingWindowLimiter`: en mémoire, un verrou unique sérialise toutes les décisions du
  processus.
- `RedisSlidingWindowLimiter`: script Lua atomique (un sorted set par fenêtre) pour partager le
  quota entre plusieurs processus/pods. Si Redis est indisponible on retombe sur un limiteur
  local: le quota externe n'est jamais dépassé par un fail-open.
"""

from __future__ import annotations

import bisect
import threading
import time
import uuid
from dataclasses import dataclass

import redis
import structlog
from redis.exceptions import NoScriptError, RedisError

from content_analyzer.app.metrics import RATE_LIMIT_STORE_ERRORS

log = structlog.get_logger(__name__)

# Script Lua: fenêtres glissantes multiples, décision atomique.
# KEYS = une clé par fenêtre; ARGV = now, member, puis (window_s, limit) par fenêtre.
MULTI_WINDOW_SCRIPT = """
local now = tonumber(ARGV[1])
local member = ARGV[2]
local retry_after = 0

for i, key in ipairs(KEYS) do
    local window = tonumber(ARGV[1 + i * 2])
    local limit = tonumber(ARGV[2 + i * 2])
    redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
    local current = redis.call('ZCARD', key)
    if current >= limit then
        local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
        local wait = window
        if #oldest > 0 then
            wait = window - (now - tonumber(oldest[2]))
        end
        if wait > retry_after then
            retry_after = wait
        end
    end
end

if retry_after > 0 then
    return {0, tostring(retry_after)}
end

for i, key in ipairs(KEYS) do
    local window = tonumber(ARGV[1 + i * 2])
    redis.call('ZADD', key, now, member)
    redis.call('PEXPIRE', key, math.ceil(window * 1000))
end
return {1, '0'}
"""


@dataclass(frozen=True)
class RateWindow:
    """Une fenêtre de quota: au plus `limit` appels par `seconds` secondes."""

    limit: int
    seconds: float


@dataclass
class Admission:
    """Résultat d'une demande d'admission."""

    allowed: bool
    retry_after: float = 0.0


def windows_from_settings(per_minute: int, per_day: int) -> list[RateWindow]:
    """Construit les fenêtres actives (une limite <= 0 désactive la fenêtre)."""
    windows = []
    if per_minute > 0:
        windows.append(RateWindow(limit=per_minute, seconds=60.0))
    if per_day > 0:
        windows.append(RateWindow(limit=per_day, seconds=86400.0))
    return windows


class SlidingWindowLimiter:
    """Rate limiter en mémoire basé sur un journal d'horodatages (fenêtre glissante)."""

    def __init__(self, windows: list[RateWindow], clock=time.monotonic) -> None:
        self.windows = list(windows)
        self._clock = clock
        self._lock = threading.Lock()
        self._calls: list[float] = []
        self._horizon = max((w.seconds for w in self.windows), default=0.0)

    def try_acquire(self) -> Admission:
        """Consomme un jeton si toutes les fenêtres le permettent."""
        with self._lock:
            now = self._clock()
            # Purge au-delà de la plus grande fenêtre
            cut = bisect.bisect_right(self._calls, now - self._horizon)
            if cut:
                del self._calls[:cut]

            retry_after = 0.0
            for window in self.windows:
                start = bisect.bisect_right(self._calls, now - window.seconds)
                in_window = len(self._calls) - start
                if in_window >= window.limit:
                    oldest = self._calls[start]
                    retry_after = max(retry_after, oldest + window.seconds - now)
            if retry_after > 0:
                return Admission(allowed=False, retry_after=retry_after)
            self._calls.append(now)
            return Admission(allowed=True)

    def calls_in_window(self, seconds: float) -> int:
        """Nombre d'admissions accordées pendant les `seconds` dernières secondes."""
        with self._lock:
            now = self._clock()
            return len(self._calls) - bisect.bisect_right(self._calls, now - seconds)


class RedisSlidingWindowLimiter:
    """Rate limiter distribué (Redis + Lua) avec repli local."""

    def __init__(
        self,
        url: str | None,
        windows: list[RateWindow],
        key_prefix: str = "rl:analysis",
        client: redis.Redis | None = None,
    ) -> None:
        self.windows = list(windows)
        self.key_prefix = key_prefix
        self._url = url
        self._redis = client
        self._script_hash: str | None = None
        self._fallback = SlidingWindowLimiter(self.windows)

    def _get_redis(self) -> redis.Redis:
        """Get Redis connection with lazy initialization."""
        if self._redis is None:
            self._redis = redis.Redis.from_url(
                self._url,
                socket_connect_timeout=0.5,
                socket_timeout=0.5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        return self._redis

    def _get_script_hash(self) -> str:
        if self._script_hash is None:
            self._script_hash = self._get_redis().script_load(MULTI_WINDOW_SCRIPT)
        return self._script_hash

    def _keys(self) -> list[str]:
        return [f"{self.key_prefix}:{int(w.seconds)}" for w in self.windows]

    def _eval(self, args: list) -> list:
        client = self._get_redis()
        keys = self._keys()
        try:
            return client.evalsha(self._get_script_hash(), len(keys), *keys, *args)
        except NoScriptError:
            # Cache de scripts vidé (redémarrage, SCRIPT FLUSH): rechargement et nouvel essai
            log.info("rate_limit_script_reloaded")
            self._script_hash = None
            return client.evalsha(self._get_script_hash(), len(keys), *keys, *args)

    def try_acquire(self) -> Admission:
        """Consomme un jeton atomiquement dans toutes les fenêtres Redis."""
        if not self.windows:
            return Admission(allowed=True)
        args: list = [time.time(), uuid.uuid4().hex]
        for window in self.windows:
            args.extend([window.seconds, window.limit])
        try:
            result = self._eval(args)
        except RedisError as exc:
            RATE_LIMIT_STORE_ERRORS.labels(error_type=type(exc).__name__).inc()
            log.warning("rate_limit_store_unavailable", error=str(exc), fallback="local")
            return self._fallback.try_acquire()
        allowed = bool(int(result[0]))
        retry_after = float(result[1]) if not allowed else 0.0
        return Admission(allowed=allowed, retry_after=retry_after)

    def close(self) -> None:
        """Close Redis connection."""
        if self._redis is not None:
            self._redis.close()
            self._redis = None
