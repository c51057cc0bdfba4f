"""Tests pour les endpoints de santé, l'index et /metrics."""

from unittest.mock import Mock

from fastapi.testclient import TestClient

from content_analyzer.app.main import create_app
from content_analyzer.core.http_constants import HTTP_OK, HTTP_SERVICE_UNAVAILABLE
from content_analyzer.infra.result_cache import ResultCache
from content_analyzer.middlewares import timing
from fakes import RaisingCacheBackend


def test_health(container):
    """Teste que l'endpoint de santé retourne un statut OK."""
    client = TestClient(create_app(container))
    r = client.get("/health")
    assert r.status_code == HTTP_OK
    body = r.json()
    assert body["status"] == "ok"
    assert body["checks"] == {"database": "ok", "cache": "ok", "storage": "memory"}
    assert body["queue_depth"] == 0


def test_health_degraded_when_cache_down(container):
    container.cache = ResultCache(RaisingCacheBackend(), ttl_seconds=60)
    r = TestClient(create_app(container)).get("/health")
    assert r.status_code == HTTP_OK
    assert r.json()["status"] == "degraded"
    assert r.json()["checks"]["cache"] == "unreachable"


def test_health_and_ready_when_db_down(container, monkeypatch):
    monkeypatch.setattr(container, "db_ok", lambda: False)
    client = TestClient(create_app(container))
    r = client.get("/health")
    assert r.status_code == HTTP_SERVICE_UNAVAILABLE
    assert r.json()["status"] == "unhealthy"
    assert client.get("/ready").json() == {"status": "not_ready"}
    assert client.get("/live").json() == {"status": "alive"}


def test_ready_and_index(container):
    client = TestClient(create_app(container))
    assert client.get("/ready").json() == {"status": "ready"}
    index = client.get("/").json()
    assert index["name"] == "content-analyzer"
    assert index["endpoints"]["submissions"] == "/v1/submissions"


def test_request_id_and_timing_headers(container):
    client = TestClient(create_app(container))
    r = client.get("/live", headers={"X-Request-ID": "req-42"})
    assert r.headers["X-Request-ID"] == "req-42"
    assert float(r.headers["X-Process-Time-ms"]) >= 0
    generated = client.get("/live").headers["X-Request-ID"]
    assert len(generated) == 36


def test_metrics_endpoint_exposes_pipeline_metrics(container):
    client = TestClient(create_app(container))
    client.get("/live")
    r = client.get("/metrics")
    assert r.status_code == HTTP_OK
    text = r.text
    assert "http_requests_total" in text
    assert 'route="/live"' in text
    assert "analysis_dispatch_queue_depth" in text


def test_ping_heartbeat_is_not_logged(container, monkeypatch):
    log = Mock()
    monkeypatch.setattr(timing, "log", log)
    client = TestClient(create_app(container))
    r = client.get("/ping")
    client.get("/live")
    assert r.status_code == HTTP_OK
    assert r.text == "."
    assert r.headers["content-type"].startswith("text/plain")
    paths = [c.kwargs["path"] for c in log.info.call_args_list]
    assert paths == ["/live"]


def test_security_headers_on_every_response(container):
    client = TestClient(create_app(container))
    for path in ("/live", "/v1/submissions"):
        r = client.get(path)
        assert r.headers["X-Content-Type-Options"] == "nosniff"
        assert r.headers["X-Frame-Options"] == "DENY"
        assert r.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    # HSTS réservé à la production
    assert "Strict-Transport-Security" not in r.headers


def test_large_responses_are_gzipped(container):
    client = TestClient(create_app(container))
    client.get("/live")
    r = client.get("/metrics", headers={"Accept-Encoding": "gzip"})
    assert r.status_code == HTTP_OK
    assert r.headers["content-encoding"] == "gzip"
    assert "analysis_" in r.text
    small = client.get("/live", headers={"Accept-Encoding": "gzip"})
    assert "content-encoding" not in small.headers
