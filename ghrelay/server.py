import logging
from typing import Optional, Sequence

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from ghrelay.assets.route import router as assets_router
from ghrelay.policy.cors import install_cors_middleware
from ghrelay.relay.route import router as relay_router
from ghrelay.vars import (
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    SERVICE_NAME,
    ProxyConfig,
    load_config,
)

logger = logging.getLogger("uvicorn.error")


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that filters out noisy ASGI body spans from streaming responses.
    Relayed archives are streamed in many chunks, each producing its own span.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type") == "http.response.body"
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def configure_tracing(app: FastAPI) -> None:
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
            BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
        )
    FastAPIInstrumentor.instrument_app(app, excluded_urls="metrics")


def create_app(
    config: Optional[ProxyConfig] = None, instrument: bool = False
) -> FastAPI:
    """
    Build the relay application around an immutable configuration.

    ``instrument`` adds the Prometheus ``/metrics`` endpoint and tracing; it
    registers process-wide collectors, so only the served app enables it.
    """
    config = config or load_config()
    app = FastAPI(title=SERVICE_NAME, openapi_url=None, docs_url=None, redoc_url=None)
    app.state.config = config
    logger.info(
        f"Relay prefix {config.prefix}, whitelist {list(config.white_list) or 'disabled'}, "
        f"jsDelivr {'on' if config.use_jsdelivr else 'off'}"
    )

    if instrument:
        Instrumentator().instrument(app).expose(app)
        configure_tracing(app)

    install_cors_middleware(app, config)

    # The relay router is a catch-all and must come last
    app.include_router(assets_router)
    app.include_router(relay_router)
    return app


app = create_app(instrument=True)

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})
