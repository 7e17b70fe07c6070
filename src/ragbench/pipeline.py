"""Ingestion and evaluation orchestration around the chunker and scorer.

This is the calling layer: it owns logging, bounded concurrency, fallbacks
and skip decisions, while `chunking` and `evaluation` stay pure.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Callable

from opentelemetry import trace

from .batching import ItemFailure, bounded, run_bounded
from .chunking import ChunkingOptions, extract_sections, semantic_chunk
from .embeddings import EmbedFn, embed_all
from .errors import ConfigurationError, RagBenchError
from .evaluation import (
    PRECISION_KS,
    RECALL_KS,
    aggregate,
    by_query_source,
    by_query_type,
    group_by,
    score_query,
)
from .io_utils import EvaluationData
from .schema import AggregateMetrics, ChunkPoint, QueryEvaluation, QueryRecord, RelevanceJudgment
from .tracing import SearchFn, traced_embedding, traced_search
from .vector_store import upsert_points

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestionConfig:
    """Chunking, batching and concurrency parameters for corpus ingestion.

    `concurrency` caps documents in flight; `embed_concurrency` caps embedding
    requests in flight across all of them.
    """

    chunking: ChunkingOptions = field(
        default_factory=lambda: ChunkingOptions(similarity_threshold=0.6, max_tokens=400, min_tokens=100)
    )
    min_chunk_chars: int = 1000
    batch_size: int = 50
    concurrency: int = 4
    embed_concurrency: int = 8

    def __post_init__(self) -> None:
        if self.batch_size <= 0 or self.concurrency <= 0 or self.embed_concurrency <= 0:
            raise ConfigurationError("batch_size, concurrency and embed_concurrency must be positive")


@dataclass(slots=True)
class EvaluationConfig:
    """Retrieval depth, metric cutoffs and report preview size."""

    top_k: int = 10
    recall_ks: tuple[int, ...] = RECALL_KS
    precision_ks: tuple[int, ...] = PRECISION_KS
    ndcg_k: int | None = None
    preview_count: int = 5
    preview_chars: int = 200
    concurrency: int = 4


@dataclass(slots=True)
class IngestionSummary:
    documents_processed: int
    documents_failed: int
    total_chunks: int
    failures: list[ItemFailure] = field(default_factory=list)

    def to_metadata(self, mode: str, collection_name: str, vector_dimensions: int) -> dict:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "mode": mode,
            "documents_processed": self.documents_processed,
            "documents_failed": self.documents_failed,
            "total_chunks": self.total_chunks,
            "collection_name": collection_name,
            "vector_dimensions": vector_dimensions,
            "failures": [{"doc_id": failure.item, "error": failure.error} for failure in self.failures],
        }


@dataclass(slots=True)
class RunReport:
    """Everything a persisted evaluation run contains."""

    run_name: str
    timestamp: str
    mode: str
    aggregate: AggregateMetrics
    by_type: dict[str, AggregateMetrics]
    by_source: dict[str, AggregateMetrics]
    evaluations: list[QueryEvaluation]
    failures: list[ItemFailure] = field(default_factory=list)

    def to_dict(self, preview_chars: int = 200) -> dict:
        return {
            "run_name": self.run_name,
            "timestamp": self.timestamp,
            "mode": self.mode,
            "total_queries": self.aggregate.count,
            "aggregate_metrics": self.aggregate.to_dict(),
            "metrics_by_type": {key: value.to_dict() for key, value in self.by_type.items()},
            "metrics_by_source": {key: value.to_dict() for key, value in self.by_source.items()},
            "failed_queries": [
                {"query_id": failure.item[0].query_id, "error": failure.error} for failure in self.failures
            ],
            "detailed_results": [evaluation.to_dict(preview_chars) for evaluation in self.evaluations],
        }


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


async def chunk_section(text: str, embed_fn: EmbedFn, config: IngestionConfig) -> list[str]:
    """Chunk one section, keeping short sections whole.

    A chunking failure falls back to the whole section as a single chunk.
    """
    if len(text) < config.min_chunk_chars:
        return [text]
    try:
        return await semantic_chunk(text, embed_fn, config.chunking)
    except RagBenchError as exc:
        logger.warning("Chunking failed (%s), using whole section", exc)
        return [text]


async def process_document(
    doc_id: str,
    document: dict,
    embed_fn: EmbedFn,
    config: IngestionConfig,
) -> list[ChunkPoint]:
    """Chunk and embed every section of one document."""
    points: list[ChunkPoint] = []
    for section in extract_sections(document):
        chunks = await chunk_section(section.text, embed_fn, config)
        vectors = await embed_all(chunks, embed_fn)
        for chunk_idx, (chunk_text, vector) in enumerate(zip(chunks, vectors, strict=True)):
            points.append(
                ChunkPoint(
                    doc_id=doc_id,
                    section_id=section.section_id,
                    chunk_id=chunk_idx,
                    text=chunk_text,
                    title=section.title,
                    section_type=section.section_type,
                    embedding=list(vector),
                )
            )
    return points


async def ingest_corpus(
    doc_ids: list[str],
    load_document: Callable[[str], dict | None],
    embed_fn: EmbedFn,
    collection,
    config: IngestionConfig | None = None,
    tracer: trace.Tracer | None = None,
) -> IngestionSummary:
    """Chunk, embed and index every document, tracking per-document failures.

    Points are upserted as soon as `batch_size` of them are pending, with a
    final flush for the remainder.

    Args:
        doc_ids: Corpus document ids to ingest.
        load_document: Returns the parsed document or `None` when missing.
        embed_fn: Async embedding capability.
        collection: Target Chroma collection.
        config: Ingestion parameters.
        tracer: Optional tracer; embedding calls become spans when given.

    Returns:
        Processed/failed document counts and the number of indexed chunks.
    """
    config = config or IngestionConfig()
    model_name = getattr(embed_fn, "model", "")
    if tracer is not None:
        embed_fn = traced_embedding(embed_fn, tracer, model_name=model_name)
    embed_fn = bounded(embed_fn, config.embed_concurrency)

    pending: list[ChunkPoint] = []
    total_chunks = 0

    def _flush(final: bool = False) -> None:
        nonlocal total_chunks
        while len(pending) >= config.batch_size or (final and pending):
            batch = pending[: config.batch_size]
            total_chunks += upsert_points(collection, batch)
            del pending[: len(batch)]

    async def _worker(doc_id: str) -> int:
        document = load_document(doc_id)
        if document is None:
            raise FileNotFoundError(f"corpus document {doc_id} not found")
        points = await process_document(doc_id, document, embed_fn, config)
        pending.extend(points)
        _flush()
        return len(points)

    def _progress(finished: int, total: int) -> None:
        if finished % 10 == 0 or finished == total:
            logger.info("Processed %d/%d documents", finished, total)

    outcome = await run_bounded(doc_ids, _worker, concurrency=config.concurrency, on_done=_progress)
    for failure in outcome.failures:
        logger.warning("Failed to ingest %s: %s", failure.item, failure.error)
    _flush(final=True)

    return IngestionSummary(
        documents_processed=outcome.success_count,
        documents_failed=outcome.failure_count,
        total_chunks=total_chunks,
        failures=outcome.failures,
    )


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


async def evaluate_query(
    query: QueryRecord,
    truth: RelevanceJudgment,
    embed_fn: EmbedFn,
    search_fn: SearchFn,
    config: EvaluationConfig,
    answer: str | None = None,
) -> QueryEvaluation:
    """Retrieve results for one query and score them against its qrel."""
    query_vector = await embed_fn(query.query)
    results = await asyncio.to_thread(search_fn, query_vector, config.top_k)
    metrics = score_query(
        results,
        truth,
        recall_ks=config.recall_ks,
        precision_ks=config.precision_ks,
        ndcg_k=config.ndcg_k,
    )
    return QueryEvaluation(
        query=query,
        truth=truth,
        metrics=metrics,
        answer=answer,
        retrieved=list(results[: config.preview_count]),
    )


def build_run_report(
    run_name: str,
    mode: str,
    evaluations: list[QueryEvaluation],
    failures: list[ItemFailure] | None = None,
) -> RunReport:
    """Aggregate evaluations overall, by query type and by query source.

    Raises:
        EmptyInput: If no query was evaluated.
    """
    return RunReport(
        run_name=run_name,
        timestamp=datetime.now(timezone.utc).isoformat(),
        mode=mode,
        aggregate=aggregate([evaluation.metrics for evaluation in evaluations]),
        by_type=group_by(evaluations, by_query_type),
        by_source=group_by(evaluations, by_query_source),
        evaluations=evaluations,
        failures=failures or [],
    )


async def evaluate_queries(
    data: EvaluationData,
    embed_fn: EmbedFn,
    search_fn: SearchFn,
    config: EvaluationConfig | None = None,
    tracer: trace.Tracer | None = None,
) -> tuple[list[QueryEvaluation], list[ItemFailure]]:
    """Evaluate every query that has a relevance judgment.

    Queries without a qrel are skipped with a warning; retrieval failures are
    collected per query instead of aborting the run.

    Returns:
        Evaluations in query order and the failed `(query, truth)` items.
    """
    config = config or EvaluationConfig()
    if tracer is not None:
        embed_fn = traced_embedding(embed_fn, tracer, model_name=getattr(embed_fn, "model", ""))
        search_fn = traced_search(search_fn, tracer)

    work: list[tuple[QueryRecord, RelevanceJudgment]] = []
    for query_id, query in data.queries.items():
        truth = data.qrels.get(query_id)
        if truth is None:
            logger.warning("No qrel for query %s, skipping", query_id)
            continue
        work.append((query, truth))

    async def _worker(item: tuple[QueryRecord, RelevanceJudgment]) -> QueryEvaluation:
        query, truth = item
        return await evaluate_query(
            query, truth, embed_fn, search_fn, config, answer=data.answers.get(query.query_id)
        )

    def _progress(finished: int, total: int) -> None:
        if finished % 20 == 0 or finished == total:
            logger.info("Evaluated %d/%d queries", finished, total)

    outcome = await run_bounded(work, _worker, concurrency=config.concurrency, on_done=_progress)
    for failure in outcome.failures:
        logger.error("Error evaluating %s: %s", failure.item[0].query_id, failure.error)
    return outcome.results, outcome.failures
