"""OpenTelemetry configuration and span helpers for network derivations."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.propagate import inject, set_global_textmap
from opentelemetry.propagators.b3 import B3MultiFormat
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)

_TRACER_NAME = "rideflow.network"


def configure_opentelemetry(
    service_name: str,
    service_version: str,
    otlp_endpoint: str,
    otlp_headers: str | None = None,
    enabled: bool = False,
) -> bool:
    """Configure OpenTelemetry tracing for the application.

    Args:
        service_name: Name of the service
        service_version: Version of the service
        otlp_endpoint: OTLP collector endpoint
        otlp_headers: Optional OTLP headers
        enabled: Whether tracing is enabled

    Returns:
        True when a tracer provider was installed.
    """
    if not enabled:
        logger.info("OpenTelemetry tracing is disabled")
        return False

    try:
        set_global_textmap(B3MultiFormat())

        resource = Resource.create(
            {
                "service.name": service_name,
                "service.version": service_version,
                "service.namespace": "rideflow",
            }
        )
        tracer_provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(tracer_provider)

        exporter = OTLPSpanExporter(endpoint=otlp_endpoint, headers=otlp_headers)
        tracer_provider.add_span_processor(BatchSpanProcessor(exporter))
    except Exception as exc:
        logger.warning("Failed to configure OpenTelemetry: %s", exc)
        logger.info("Application will continue without tracing")
        return False

    logger.info(
        "OpenTelemetry configured for service '%s' (OTLP endpoint %s)",
        service_name,
        otlp_endpoint,
    )
    return True


def instrument_fastapi(app: Any, enabled: bool = False) -> None:
    """Instrument the FastAPI application when tracing is enabled."""
    if not enabled:
        return

    try:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI instrumentation enabled")
    except Exception as exc:
        logger.warning("Failed to instrument FastAPI: %s", exc)


def instrument_httpx(enabled: bool = False) -> None:
    """Instrument outbound httpx feed requests when tracing is enabled."""
    if not enabled:
        return

    try:
        HTTPXClientInstrumentor().instrument()
        logger.info("HTTPX client instrumentation enabled")
    except Exception as exc:
        logger.warning("Failed to instrument HTTPX: %s", exc)


def get_tracer() -> trace.Tracer:
    """Get the tracer used for derivation spans."""
    return trace.get_tracer(_TRACER_NAME)


@contextmanager
def derivation_span(kind: str, **attributes: Any) -> Iterator[trace.Span]:
    """Run a derivation step inside a span named after its kind.

    Attribute values that are None are skipped since OpenTelemetry rejects them.
    """
    with get_tracer().start_as_current_span(f"network.{kind}") as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(f"rideflow.{key}", value)
        yield span


def add_traceparent_header(headers: dict[str, str]) -> dict[str, str]:
    """Return a copy of ``headers`` with the current trace context injected.

    Used for GBFS and boundary feed requests.
    """
    headers_copy = headers.copy()
    inject(headers_copy)
    return headers_copy
