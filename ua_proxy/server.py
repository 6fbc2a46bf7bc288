from ua_proxy.vars import (
    LOG_LEVEL,
    METRICS_PATH,
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    PORT,
    PROXY_HOST,
    SERVICE_NAME,
)
from fastapi import FastAPI
from .routes import router
from .tunnel import TunnelProtocol
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider, ReadableSpan
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from typing import Sequence

from prometheus_fastapi_instrumentator import Instrumentator
from prometheus_client import Info
import uvicorn

app = FastAPI(title="UA Proxy")
instrumentator = Instrumentator()

instrumentator.instrument(app).expose(app, endpoint=METRICS_PATH)


# ASGI events the instrumentation records once per chunk; a streamed relay or
# upload yields one span per chunk.
CHUNK_EVENT_TYPES = frozenset({"http.response.body", "http.request"})


def is_chunk_span(span: ReadableSpan) -> bool:
    attributes = span.attributes or {}
    return attributes.get("asgi.event.type") in CHUNK_EVENT_TYPES


class RelaySpanExporter(SpanExporter):
    """
    Exporter wrapper that keeps the request-level spans (``proxy_request``,
    ``websocket_tunnel`` and the FastAPI server spans) and drops the
    per-chunk ASGI send/receive spans of relayed bodies.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = [span for span in spans if not is_chunk_span(span)]
        if not kept:
            return SpanExportResult.SUCCESS
        return self.exporter.export(kept)

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


trace.set_tracer_provider(
    TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
)
tracer_provider = trace.get_tracer_provider()
if OTLP_ENDPOINT:
    otlp_exporter = OTLPSpanExporter(
        endpoint=OTLP_ENDPOINT,
        headers=((OTLP_HEADERS).split(",") if OTLP_HEADERS else None),
    )
    tracer_provider.add_span_processor(
        BatchSpanProcessor(RelaySpanExporter(otlp_exporter))
    )

FastAPIInstrumentor.instrument_app(app, excluded_urls=METRICS_PATH)

app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})

app.include_router(router)


def main():
    """Run the proxy; WebSocket upgrades go to the raw tunnel instead of the app."""
    uvicorn.run(
        "ua_proxy.server:app",
        host=PROXY_HOST,
        port=PORT,
        ws=TunnelProtocol,
        log_level=LOG_LEVEL,
    )
