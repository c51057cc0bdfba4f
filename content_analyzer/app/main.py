"""
Application principale FastAPI.

Ce module assemble tous les composants de l'application : middlewares, routes, gestion
d'erreurs, métriques et cycle de vie du pool de workers d'analyse.

Responsabilités du module:
- Initialiser le logging structuré et le tracing
- Valider la configuration (règles de production)
- Construire l'application FastAPI et y attacher le conteneur
- Démarrer/arrêter les workers en mode `threads`
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware

from content_analyzer.api.errors import register_error_handlers
from content_analyzer.api.routes_auth import router as auth_router
from content_analyzer.api.routes_health import router as health_router
from content_analyzer.api.routes_submissions import router as submissions_router
from content_analyzer.app.metrics import PrometheusMiddleware, metrics_router
from content_analyzer.app.tracing import setup_tracing
from content_analyzer.core.container import Container
from content_analyzer.core.logging import setup_logging
from content_analyzer.core.settings import validate_settings
from content_analyzer.middlewares.request_id import RequestIDMiddleware
from content_analyzer.middlewares.security_headers import SecurityHeadersMiddleware
from content_analyzer.middlewares.timing import TimingMiddleware


def create_app(container: Container | None = None) -> FastAPI:
    """
    Construit et retourne l'application FastAPI prête à l'usage.

    Args:
        container: conteneur à utiliser; par défaut le singleton global.
    """
    if container is None:
        from content_analyzer.core.container import container as default_container

        container = default_container
    settings = container.settings
    validate_settings(settings)
    setup_logging(
        json_logs=settings.APP_ENV != "dev",
        level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
    )
    setup_tracing(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pool = container.worker_pool
        start_pool = settings.WORKER_MODE == "threads" and settings.START_WORKERS
        if start_pool:
            pool.start()
        try:
            yield
        finally:
            if start_pool:
                pool.stop()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.APP_DEBUG,
        lifespan=lifespan,
    )
    app.state.container = container
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(o).rstrip("/") for o in settings.CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.is_production)
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(TimingMiddleware, quiet_paths=("/ping",))
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(submissions_router)
    app.include_router(metrics_router)
    return app


app = create_app()
