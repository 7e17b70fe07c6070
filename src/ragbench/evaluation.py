from __future__ import annotations

import math
from typing import Callable, Iterable, Sequence

from .errors import ConfigurationError, EmptyInput
from .schema import (
    AggregateMetrics,
    QueryEvaluation,
    QueryMetrics,
    RelevanceJudgment,
    RetrievedItem,
)

RECALL_KS: tuple[int, ...] = (1, 3, 5, 10)
PRECISION_KS: tuple[int, ...] = (1, 3, 5)
UNKNOWN_GROUP = "unknown"


def is_exact_match(item: RetrievedItem, truth: RelevanceJudgment) -> bool:
    """Hit on both document and section."""
    return item.doc_id == truth.doc_id and item.section_id == truth.section_id


def is_document_match(item: RetrievedItem, truth: RelevanceJudgment) -> bool:
    """Lenient hit that ignores the section."""
    return item.doc_id == truth.doc_id


def _first_rank(
    results: Sequence[RetrievedItem],
    truth: RelevanceJudgment,
    predicate: Callable[[RetrievedItem, RelevanceJudgment], bool],
) -> int | None:
    for rank, item in enumerate(results):
        if predicate(item, truth):
            return rank
    return None


def reciprocal_rank(results: Sequence[RetrievedItem], truth: RelevanceJudgment) -> float:
    """Compute reciprocal rank of the first exact match, 0.0 when absent."""
    rank = _first_rank(results, truth, is_exact_match)
    return 0.0 if rank is None else 1.0 / (rank + 1)


def document_reciprocal_rank(results: Sequence[RetrievedItem], truth: RelevanceJudgment) -> float:
    """Compute reciprocal rank of the first document-level match, 0.0 when absent."""
    rank = _first_rank(results, truth, is_document_match)
    return 0.0 if rank is None else 1.0 / (rank + 1)


def ndcg(results: Sequence[RetrievedItem], truth: RelevanceJudgment, k: int | None = None) -> float:
    """Binary-relevance nDCG with a single relevant item.

    IDCG is fixed at `1 / log2(2) = 1`, the DCG of the relevant item placed
    at rank 0. `k=None` evaluates the whole results list.
    """
    window = results if k is None else results[:k]
    dcg = sum(
        1.0 / math.log2(rank + 2)
        for rank, item in enumerate(window)
        if is_exact_match(item, truth)
    )
    idcg = 1.0 / math.log2(2)
    return dcg / idcg


def recall_at_k(results: Sequence[RetrievedItem], truth: RelevanceJudgment, k: int) -> float:
    """1.0 if an exact match appears in the top k, else 0.0."""
    return 1.0 if any(is_exact_match(item, truth) for item in results[:k]) else 0.0


def precision_at_k(results: Sequence[RetrievedItem], truth: RelevanceJudgment, k: int) -> float:
    """Exact matches in the top k divided by the nominal k.

    A results list shorter than k is still divided by k.
    """
    hits = sum(1 for item in results[:k] if is_exact_match(item, truth))
    return hits / k


def _validate_cutoffs(name: str, ks: Iterable[int]) -> tuple[int, ...]:
    cutoffs = tuple(sorted(set(ks)))
    if any(k <= 0 for k in cutoffs):
        raise ConfigurationError(f"{name} cutoffs must be positive integers, got {cutoffs}")
    return cutoffs


def score_query(
    results: Sequence[RetrievedItem],
    truth: RelevanceJudgment | None,
    recall_ks: Iterable[int] = RECALL_KS,
    precision_ks: Iterable[int] = PRECISION_KS,
    ndcg_k: int | None = None,
) -> QueryMetrics | None:
    """Score one ranked result list against its relevance judgment.

    Args:
        results: Retrieved items ordered by descending score.
        truth: Ground-truth judgment, or `None` when the query has none.
        recall_ks: Cutoffs for Recall@k.
        precision_ks: Cutoffs for Precision@k.
        ndcg_k: Optional nDCG cutoff; `None` uses the full list.

    Returns:
        `QueryMetrics`, or `None` when `truth` is missing so the caller can
        exclude the query from the evaluated population.
    """
    if truth is None:
        return None

    return QueryMetrics(
        mrr=reciprocal_rank(results, truth),
        doc_mrr=document_reciprocal_rank(results, truth),
        ndcg=ndcg(results, truth, k=ndcg_k),
        recall_at={k: recall_at_k(results, truth, k) for k in _validate_cutoffs("recall", recall_ks)},
        precision_at={
            k: precision_at_k(results, truth, k) for k in _validate_cutoffs("precision", precision_ks)
        },
    )


def aggregate(metrics: Sequence[QueryMetrics]) -> AggregateMetrics:
    """Average every metric field across queries.

    Raises:
        EmptyInput: If `metrics` is empty.
        ConfigurationError: If queries were scored with different cutoffs.
    """
    if not metrics:
        raise EmptyInput("cannot aggregate metrics over zero queries")

    recall_keys = set(metrics[0].recall_at)
    precision_keys = set(metrics[0].precision_at)
    for row in metrics[1:]:
        if set(row.recall_at) != recall_keys or set(row.precision_at) != precision_keys:
            raise ConfigurationError("all queries must be scored with the same k cutoffs")

    count = len(metrics)
    return AggregateMetrics(
        count=count,
        mrr=sum(row.mrr for row in metrics) / count,
        doc_mrr=sum(row.doc_mrr for row in metrics) / count,
        ndcg=sum(row.ndcg for row in metrics) / count,
        recall_at={k: sum(row.recall_at[k] for row in metrics) / count for k in sorted(recall_keys)},
        precision_at={
            k: sum(row.precision_at[k] for row in metrics) / count for k in sorted(precision_keys)
        },
    )


def group_by(
    evaluations: Iterable[QueryEvaluation],
    key_fn: Callable[[QueryEvaluation], str | None],
) -> dict[str, AggregateMetrics]:
    """Aggregate evaluations per extracted key.

    Missing or empty keys fall into the `"unknown"` bucket. Groups appear in
    order of first occurrence.
    """
    buckets: dict[str, list[QueryMetrics]] = {}
    for evaluation in evaluations:
        key = key_fn(evaluation) or UNKNOWN_GROUP
        buckets.setdefault(key, []).append(evaluation.metrics)
    return {key: aggregate(rows) for key, rows in buckets.items()}


def by_query_type(evaluation: QueryEvaluation) -> str | None:
    return evaluation.query.query_type


def by_query_source(evaluation: QueryEvaluation) -> str | None:
    return evaluation.query.query_source
