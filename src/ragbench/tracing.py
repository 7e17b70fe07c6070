"""OpenTelemetry tracing helpers for ingestion and evaluation runs.

The core chunker and scorer never trace or log; instead the capabilities the
pipeline injects into them (embedding and search) are wrapped so every
backend call becomes one span.

Usage with an OTLP backend (e.g. Arize Phoenix):

    from ragbench.tracing import configure_tracing, get_tracer, traced_embedding

    configure_tracing(endpoint="http://localhost:6006/v1/traces")
    tracer = get_tracer("ragbench.ingest")
    embed = traced_embedding(embedder, tracer, model_name=embedder.model)

Usage without a backend (development / testing):

    configure_tracing()   # ConsoleSpanExporter
"""
from __future__ import annotations

from typing import Callable

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)

from .embeddings import EmbedFn
from .schema import RetrievedItem

# OpenInference semantic-convention attribute names (subset)
ATTR_RETRIEVAL_DOCUMENTS = "retrieval.documents"
ATTR_EMBEDDING_MODEL_NAME = "embedding.model_name"
ATTR_EMBEDDING_DIMENSIONS = "embedding.dimensions"
ATTR_INPUT_LENGTH = "input.length"
ATTR_TOP_K = "retrieval.top_k"

SearchFn = Callable[[list[float], int], list[RetrievedItem]]

_provider: TracerProvider | None = None


def configure_tracing(
    endpoint: str | None = None,
    service_name: str = "ragbench",
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """Create and register a global TracerProvider.

    Args:
        endpoint: OTLP HTTP endpoint URL. When *None* and no *exporter* is
            given, spans are printed to stdout.
        service_name: Service label shown by the observability backend.
        exporter: Pre-built exporter (e.g. ``InMemorySpanExporter`` in tests);
            takes precedence over *endpoint*.

    Returns:
        The configured provider, also installed as the global OTel provider.
    """
    global _provider

    resource = Resource(attributes={SERVICE_NAME: service_name})
    provider = TracerProvider(resource=resource)

    if exporter is not None:
        chosen_exporter: SpanExporter = exporter
    elif endpoint is not None:
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

        chosen_exporter = OTLPSpanExporter(endpoint=endpoint)
    else:
        chosen_exporter = ConsoleSpanExporter()

    provider.add_span_processor(SimpleSpanProcessor(chosen_exporter))
    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def get_tracer(name: str) -> trace.Tracer:
    """Return a tracer from the configured provider, or the no-op global one."""
    if _provider is not None:
        return _provider.get_tracer(name)
    return trace.get_tracer(name)


def traced_embedding(embed_fn: EmbedFn, tracer: trace.Tracer, model_name: str = "") -> EmbedFn:
    """Wrap an async embedding capability so each call is recorded as a span.

    The span ``"embedding"`` records the input length, the model name (when
    given) and the returned vector dimension. Errors mark the span ERROR and
    are re-raised unchanged.
    """

    async def _wrapped(text: str) -> list[float]:
        with tracer.start_as_current_span("embedding") as span:
            span.set_attribute(ATTR_INPUT_LENGTH, len(text))
            if model_name:
                span.set_attribute(ATTR_EMBEDDING_MODEL_NAME, model_name)
            try:
                vector = await embed_fn(text)
                span.set_attribute(ATTR_EMBEDDING_DIMENSIONS, len(vector))
                span.set_status(trace.StatusCode.OK)
                return vector
            except Exception as exc:
                span.set_status(trace.StatusCode.ERROR, str(exc))
                span.record_exception(exc)
                raise

    return _wrapped


def traced_search(search_fn: SearchFn, tracer: trace.Tracer) -> SearchFn:
    """Wrap a search capability so each call is recorded as a ``"retrieval"`` span."""

    def _wrapped(query_vector: list[float], limit: int) -> list[RetrievedItem]:
        with tracer.start_as_current_span("retrieval") as span:
            span.set_attribute(ATTR_TOP_K, limit)
            try:
                results = search_fn(query_vector, limit)
                span.set_attribute(ATTR_RETRIEVAL_DOCUMENTS, len(results))
                span.set_status(trace.StatusCode.OK)
                return results
            except Exception as exc:
                span.set_status(trace.StatusCode.ERROR, str(exc))
                span.record_exception(exc)
                raise

    return _wrapped
