"""Retrieval benchmarking: semantic chunking and rank-metric evaluation."""

from .chunking import ChunkingOptions, semantic_chunk
from .evaluation import aggregate, group_by, score_query
from .schema import AggregateMetrics, QueryMetrics, RelevanceJudgment, RetrievedItem

__all__ = [
    "ChunkingOptions",
    "semantic_chunk",
    "score_query",
    "aggregate",
    "group_by",
    "RelevanceJudgment",
    "RetrievedItem",
    "QueryMetrics",
    "AggregateMetrics",
]
