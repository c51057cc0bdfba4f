"""
Endpoints de santé et index de l'API.

- `/health`: état général (base, cache, profondeur de file)
- `/ready`: prêt à servir (base joignable), 503 sinon
- `/live`: le processus répond
- `/ping`: heartbeat texte pour les load balancers (non journalisé)
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, PlainTextResponse

from content_analyzer.api.deps import get_container
from content_analyzer.core.container import Container
from content_analyzer.core.http_constants import HTTP_OK, HTTP_SERVICE_UNAVAILABLE

router = APIRouter(tags=["health"])


@router.get("/")
def index(container: Container = Depends(get_container)):
    """Index de l'API: nom, version et routes principales."""
    return {
        "name": container.settings.APP_NAME,
        "version": container.settings.APP_VERSION,
        "endpoints": {
            "health": "/health",
            "ready": "/ready",
            "live": "/live",
            "ping": "/ping",
            "metrics": "/metrics",
            "auth": "/v1/auth",
            "submissions": "/v1/submissions",
        },
    }


@router.get("/health")
def health(container: Container = Depends(get_container)):
    """Vérifie la disponibilité de l'API, de la base et du cache."""
    db_ok = container.db_ok()
    cache_ok = container.cache.ping()
    status = "ok" if db_ok and cache_ok else "degraded" if db_ok else "unhealthy"
    return JSONResponse(
        status_code=HTTP_OK if db_ok else HTTP_SERVICE_UNAVAILABLE,
        content={
            "status": status,
            "timestamp": datetime.now(UTC).isoformat(),
            "version": container.settings.APP_VERSION,
            "checks": {
                "database": "ok" if db_ok else "unreachable",
                "cache": "ok" if cache_ok else "unreachable",
                "storage": container.storage_backend,
            },
            "queue_depth": container.dispatcher.depth(),
        },
    )


@router.get("/ready")
def ready(container: Container = Depends(get_container)):
    if not container.db_ok():
        return JSONResponse(status_code=HTTP_SERVICE_UNAVAILABLE, content={"status": "not_ready"})
    return {"status": "ready"}


@router.get("/live")
def live():
    return {"status": "alive"}


@router.get("/ping", response_class=PlainTextResponse, include_in_schema=False)
def ping() -> str:
    return "."
