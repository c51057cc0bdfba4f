"""
Conteneur d'injection de dépendances et configuration application.

Instancie les composants centraux (settings, base de données, cache, dispatcher, client
d'analyse, orchestrateur, pool de workers) et expose un singleton `container` utilisé par les
tâches Celery et par l'application quand aucun conteneur n'est injecté.
"""

from __future__ import annotations

import structlog
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from content_analyzer.core.settings import Settings, get_settings
from content_analyzer.domain.auth import configure_password_hashing
from content_analyzer.domain.submission_service import SubmissionOrchestrator
from content_analyzer.infra.llm.base import AnalysisClient
from content_analyzer.infra.llm.fake_deterministic import DeterministicAnalysisClient
from content_analyzer.infra.llm.gemini_client import GeminiAnalysisClient
from content_analyzer.infra.llm.openai_client import OpenAIAnalysisClient
from content_analyzer.infra.queue.dispatch_queue import InMemoryDispatchQueue
from content_analyzer.infra.queue.redis_queue import RedisDispatchQueue
from content_analyzer.infra.rate_limit_store import (
    RedisSlidingWindowLimiter,
    SlidingWindowLimiter,
    windows_from_settings,
)
from content_analyzer.infra.repo.db import get_engine, get_session_factory, init_db
from content_analyzer.infra.result_cache import (
    InMemoryCacheBackend,
    RedisCacheBackend,
    ResultCache,
)
from content_analyzer.services.analysis_worker import AnalysisWorker, RetryPolicy
from content_analyzer.services.dispatcher import RateLimitedDispatcher
from content_analyzer.services.worker_pool import AnalysisWorkerPool

log = structlog.get_logger(__name__)


def build_analysis_client(settings: Settings) -> AnalysisClient:
    """Sélectionne le fournisseur d'analyse selon `ANALYSIS_PROVIDER`."""
    provider = settings.ANALYSIS_PROVIDER.lower()
    if provider == "gemini":
        return GeminiAnalysisClient(
            api_key=settings.GEMINI_API_KEY,
            model=settings.ANALYSIS_MODEL,
            base_url=settings.GEMINI_BASE_URL,
        )
    if provider == "openai":
        return OpenAIAnalysisClient(api_key=settings.OPENAI_API_KEY, model=settings.ANALYSIS_MODEL)
    if provider == "fake":
        return DeterministicAnalysisClient()
    raise ValueError(f"unknown ANALYSIS_PROVIDER: {settings.ANALYSIS_PROVIDER}")


def _kick_celery_worker(submission_id: str) -> None:
    # Import local pour éviter les cycles (les tâches importent le conteneur)
    from content_analyzer.tasks.analysis_tasks import process_next

    process_next.delay()


class Container:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: AnalysisClient | None = None,
        engine=None,
        cache_backend=None,
        queue=None,
        limiter=None,
    ):
        self.settings = settings or get_settings()
        s = self.settings
        configure_password_hashing(s.PASSWORD_HASH_ROUNDS)

        self.engine = engine or get_engine(s.DATABASE_URL)
        if s.AUTO_CREATE_TABLES:
            init_db(self.engine)
        self.session_factory = get_session_factory(self.engine)

        self.storage_backend = "memory"
        redis_ok = self._redis_available()
        self.cache = ResultCache(cache_backend or self._build_cache_backend(redis_ok), s.CACHE_TTL_SECONDS)

        windows = windows_from_settings(s.RATE_LIMIT_PER_MINUTE, s.RATE_LIMIT_PER_DAY)
        if limiter is None:
            limiter = RedisSlidingWindowLimiter(s.REDIS_URL, windows) if redis_ok else SlidingWindowLimiter(windows)
        if queue is None:
            queue = self._build_queue(redis_ok)
        self.dispatcher = RateLimitedDispatcher(
            queue, limiter, max_depth=s.DISPATCH_QUEUE_MAX, lease_seconds=s.LEASE_SECONDS
        )

        self.client = client or build_analysis_client(s)
        self.retry_policy = RetryPolicy.from_settings(s)
        self.orchestrator = SubmissionOrchestrator(
            self.session_factory,
            self.cache,
            self.dispatcher,
            max_content_chars=s.MAX_CONTENT_CHARS,
            on_enqueued=_kick_celery_worker if s.WORKER_MODE == "celery" else None,
        )
        self.worker_pool = AnalysisWorkerPool(
            self.make_worker,
            self.dispatcher,
            self.orchestrator,
            concurrency=s.WORKER_CONCURRENCY,
            poll_interval=s.WORKER_POLL_INTERVAL_S,
            maintenance_interval=s.MAINTENANCE_INTERVAL_S,
            recovery_grace=s.PENDING_RECOVERY_GRACE_S,
        )

    def _redis_available(self) -> bool:
        if not self.settings.REDIS_URL:
            if self.settings.REQUIRE_REDIS:
                raise RuntimeError("Redis required but REDIS_URL not set")
            return False
        try:
            backend = RedisCacheBackend(self.settings.REDIS_URL, self.settings.CACHE_SOCKET_TIMEOUT_MS)
            backend.client.ping()
        except RedisError as err:
            if self.settings.REQUIRE_REDIS:
                raise RuntimeError("Redis required but unavailable") from err
            log.warning("redis_unavailable_memory_fallback", error=str(err))
            self.storage_backend = "memory-fallback"
            return False
        self.storage_backend = "redis"
        return True

    def _build_cache_backend(self, redis_ok: bool):
        if redis_ok:
            return RedisCacheBackend(self.settings.REDIS_URL, self.settings.CACHE_SOCKET_TIMEOUT_MS)
        return InMemoryCacheBackend()

    def _build_queue(self, redis_ok: bool):
        wants_redis = self.settings.QUEUE_BACKEND == "redis" or self.settings.WORKER_MODE == "celery"
        if wants_redis:
            if not redis_ok:
                raise RuntimeError("Redis dispatch queue requested but Redis is unavailable")
            return RedisDispatchQueue(self.settings.REDIS_URL)
        return InMemoryDispatchQueue()

    def make_worker(self, worker_id: str = "worker-0", admit_timeout: float | None = None) -> AnalysisWorker:
        return AnalysisWorker(
            self.session_factory,
            self.cache,
            self.dispatcher,
            self.client,
            self.retry_policy,
            call_timeout=self.settings.ANALYSIS_TIMEOUT_S,
            worker_id=worker_id,
            admit_timeout=admit_timeout,
        )

    def db_ok(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            log.warning("database_unreachable", error=str(exc))
            return False
        return True

    def close(self) -> None:
        self.worker_pool.stop()
        self.client.close()
        self.engine.dispose()


container = Container()
