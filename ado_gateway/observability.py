from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI
from prometheus_client import Counter
from pythonjsonlogger.json import JsonFormatter

from .config import settings

_UNMETERED_HANDLERS = ["/health", "/ready", "/metrics"]

UPSTREAM_REQUESTS = Counter(
    "ado_gateway_upstream_requests_total",
    "Azure DevOps REST calls made by the gateway.",
    ["method", "outcome"],
)


def record_upstream_call(method: str, status_code: int | None) -> None:
    """Count one upstream call; ``None`` means the request never got a response."""
    outcome = "unreachable" if status_code is None else f"{status_code // 100}xx"
    UPSTREAM_REQUESTS.labels(method=method, outcome=outcome).inc()


def _route_exists(app: FastAPI, path: str) -> bool:
    return any(getattr(route, "path", None) == path for route in app.routes)


def configure_structured_logging() -> bool:
    root = logging.getLogger()
    if getattr(root, "_json_logging_configured", False):
        return False

    handler = logging.StreamHandler()
    handler.setFormatter(
        JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            static_fields={"service": settings.service_name},
        )
    )

    root.handlers = [handler]
    root.setLevel(settings.log_level)
    setattr(root, "_json_logging_configured", True)
    return True


def configure_metrics(app: FastAPI) -> bool:
    if not (settings.enable_optional_observability and settings.metrics_enabled):
        return False
    if _route_exists(app, "/metrics"):
        return False

    try:
        from prometheus_fastapi_instrumentator import Instrumentator
    except ImportError:
        return False

    Instrumentator(excluded_handlers=_UNMETERED_HANDLERS).instrument(app).expose(
        app, endpoint="/metrics", include_in_schema=False
    )
    return True


def configure_tracing(app: FastAPI) -> bool:
    endpoint = settings.otel_exporter_otlp_endpoint
    if not (settings.enable_optional_observability and endpoint):
        return False
    if getattr(app.state, "otel_configured", False):
        return False

    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError:
        return False

    resource = Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.version": settings.service_version,
            "deployment.environment": settings.environment,
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)
    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)
    app.state.otel_configured = True
    return True


def configure_sentry() -> bool:
    if not (settings.enable_optional_observability and settings.sentry_dsn):
        return False

    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.httpx import HttpxIntegration
    except ImportError:
        return False

    if sentry_sdk.get_client().is_active():
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_environment,
        release=f"ado-gateway@{settings.service_version}",
        traces_sample_rate=settings.sentry_traces_sample_rate,
        integrations=[FastApiIntegration(), HttpxIntegration()],
        send_default_pii=False,
    )
    return True


def configure_observability(app: FastAPI) -> dict[str, Any]:
    return {
        "logging": configure_structured_logging(),
        "metrics": configure_metrics(app),
        "tracing": configure_tracing(app),
        "sentry": configure_sentry(),
    }
