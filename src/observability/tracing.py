import contextlib
import logging
import os
from typing import Iterator, Optional

from flask import Flask

try:
    from opentelemetry import trace
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.instrumentation.flask import FlaskInstrumentor
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
except Exception:  # pragma: no cover - optional dependency
    trace = None  # type: ignore
    FlaskInstrumentor = None  # type: ignore

logger = logging.getLogger(__name__)

_TRACER_NAME = "tunesync"


def init_tracing(app: Flask) -> bool:
    """Instrument ``app`` when an OTLP endpoint is configured.

    Returns True when tracing was enabled.
    """
    if FlaskInstrumentor is None:  # pragma: no cover - optional dependency
        return False

    endpoint = app.config.get("OTEL_EXPORTER_OTLP_ENDPOINT") or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint:
        return False

    headers = app.config.get("OTEL_EXPORTER_OTLP_HEADERS") or os.getenv("OTEL_EXPORTER_OTLP_HEADERS")
    resource = Resource.create({"service.name": app.config.get("OTEL_SERVICE_NAME", "tunesync")})

    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(
        endpoint=endpoint,
        headers=headers,
        insecure=app.config.get("OTEL_EXPORTER_OTLP_INSECURE", True),
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    FlaskInstrumentor().instrument_app(app)
    logger.info("OpenTelemetry tracing enabled (endpoint=%s)", endpoint)
    return True


@contextlib.contextmanager
def span(name: str, **attributes) -> Iterator[Optional[object]]:
    """Child span around a domain operation; no-op without OpenTelemetry."""
    if trace is None:
        yield None
        return
    tracer = trace.get_tracer(_TRACER_NAME)
    with tracer.start_as_current_span(name) as current:
        for key, value in attributes.items():
            if value is not None:
                current.set_attribute(key, value)
        yield current
