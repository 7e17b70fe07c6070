from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

SectionId = int | str


@dataclass(slots=True)
class Sentence:
    """Sentence-level unit produced and consumed within one chunking call."""

    text: str
    token_count: int
    embedding: np.ndarray


@dataclass(slots=True)
class Section:
    """Indexable section extracted from a corpus document."""

    section_id: SectionId
    text: str
    title: str
    section_type: str


@dataclass(slots=True)
class ChunkPoint:
    """Embedded chunk ready to be written to the vector store."""

    doc_id: str
    section_id: SectionId
    chunk_id: int
    text: str
    title: str
    section_type: str
    embedding: list[float]

    @property
    def point_id(self) -> str:
        return f"{self.doc_id}:{self.section_id}:{self.chunk_id}"

    def payload(self) -> dict:
        return {
            "doc_id": self.doc_id,
            "section_id": self.section_id,
            "chunk_id": self.chunk_id,
            "text": self.text,
            "title": self.title,
            "type": self.section_type,
        }


@dataclass(slots=True)
class RelevanceJudgment:
    """Ground-truth (document, section) pair for one query (a qrel)."""

    doc_id: str
    section_id: SectionId


@dataclass(slots=True)
class QueryRecord:
    """Evaluation query with the metadata used for grouping."""

    query_id: str
    query: str
    query_type: str | None = None
    query_source: str | None = None


@dataclass(slots=True)
class RetrievedItem:
    """One ranked search hit; rank is 0-based by decreasing score."""

    rank: int
    score: float
    doc_id: str
    section_id: SectionId
    text: str = ""
    chunk_id: int | None = None


@dataclass(slots=True, frozen=True)
class QueryMetrics:
    """Rank metrics for a single query, keyed cutoffs for recall and precision."""

    mrr: float
    doc_mrr: float
    ndcg: float
    recall_at: dict[int, float] = field(default_factory=dict)
    precision_at: dict[int, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, float]:
        flat = {"mrr": self.mrr, "doc_mrr": self.doc_mrr, "ndcg": self.ndcg}
        for k, value in sorted(self.recall_at.items()):
            flat[f"recall_at_{k}"] = value
        for k, value in sorted(self.precision_at.items()):
            flat[f"precision_at_{k}"] = value
        return flat


@dataclass(slots=True, frozen=True)
class AggregateMetrics:
    """Mean of every `QueryMetrics` field plus the number of contributing queries."""

    count: int
    mrr: float
    doc_mrr: float
    ndcg: float
    recall_at: dict[int, float] = field(default_factory=dict)
    precision_at: dict[int, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, float | int]:
        flat: dict[str, float | int] = {"count": self.count}
        flat.update(
            QueryMetrics(
                mrr=self.mrr,
                doc_mrr=self.doc_mrr,
                ndcg=self.ndcg,
                recall_at=self.recall_at,
                precision_at=self.precision_at,
            ).to_dict()
        )
        return flat


@dataclass(slots=True)
class QueryEvaluation:
    """Scored query plus the context needed for a persisted run report."""

    query: QueryRecord
    truth: RelevanceJudgment
    metrics: QueryMetrics
    answer: str | None = None
    retrieved: list[RetrievedItem] = field(default_factory=list)

    def to_dict(self, preview_chars: int = 200) -> dict:
        return {
            "query_id": self.query.query_id,
            "query": self.query.query,
            "query_type": self.query.query_type,
            "query_source": self.query.query_source,
            "ground_truth": {
                "doc_id": self.truth.doc_id,
                "section_id": self.truth.section_id,
                "answer": self.answer,
            },
            "metrics": self.metrics.to_dict(),
            "retrieved_chunks": [
                {
                    "score": item.score,
                    "doc_id": item.doc_id,
                    "section_id": item.section_id,
                    "text": item.text[:preview_chars] + "...",
                }
                for item in self.retrieved
            ],
        }
