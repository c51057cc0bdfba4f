"""Configuration du tracing OpenTelemetry pour l'observabilité.

Configure le tracing distribué avec un exporteur OTLP lorsque `OTLP_ENDPOINT` est défini; sinon
le tracer global reste le no-op par défaut (les spans du worker ne coûtent alors rien).
"""

from __future__ import annotations

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

_configured = False


def setup_tracing(settings) -> bool:
    """Initialise le provider de tracing; retourne True si un exporteur a été branché."""
    global _configured
    endpoint = getattr(settings, "OTLP_ENDPOINT", None)
    if not endpoint or _configured:
        return False

    provider = TracerProvider(
        resource=Resource.create(
            {"service.name": settings.APP_NAME, "service.version": settings.APP_VERSION}
        )
    )
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
    trace.set_tracer_provider(provider)
    _configured = True
    return True
