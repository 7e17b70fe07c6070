"""Typed failure conditions raised by the chunker, scorer and their collaborators."""
from __future__ import annotations


class RagBenchError(Exception):
    """Base class for all ragbench failures."""


class ConfigurationError(RagBenchError):
    """Invalid option combination or unknown provider name."""


class DimensionMismatch(RagBenchError):
    """Embedding vectors of inconsistent length within one chunking call."""

    def __init__(self, expected: int, actual: int, index: int):
        super().__init__(
            f"embedding for sentence {index} has dimension {actual}, expected {expected}"
        )
        self.expected = expected
        self.actual = actual
        self.index = index


class EmbeddingUnavailable(RagBenchError):
    """The embedding capability failed."""


class SearchUnavailable(RagBenchError):
    """The search capability failed."""


class EmptyInput(RagBenchError):
    """Aggregation was requested over zero queries."""
