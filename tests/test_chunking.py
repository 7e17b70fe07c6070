"""Tests for chunking.py — options validation, semantic chunking, section extraction."""
from __future__ import annotations

import asyncio

import pytest

from ragbench.chunking import ChunkingOptions, embed_sentences, extract_sections, semantic_chunk
from ragbench.errors import ConfigurationError, DimensionMismatch, EmbeddingUnavailable


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

TOPICS = {
    "a": [1.0, 0.0, 0.0],
    "b": [0.0, 1.0, 0.0],
    "c": [0.0, 0.0, 1.0],
    "z": [0.0, 0.0, 0.0],
}


async def _topic_embed(text: str) -> list[float]:
    """The first character of a sentence selects its topic vector."""
    return list(TOPICS[text[0]])


def _bar_split(text: str) -> list[str]:
    return [part.strip() for part in text.split("|") if part.strip()]


def _words(text: str) -> int:
    return len(text.split())


def _chunk(sentences: list[str], embed=_topic_embed, **options) -> list[str]:
    return asyncio.run(
        semantic_chunk(
            " | ".join(sentences),
            embed,
            ChunkingOptions(**options),
            split_fn=_bar_split,
            count_tokens_fn=_words,
        )
    )


# ---------------------------------------------------------------------------
# ChunkingOptions
# ---------------------------------------------------------------------------

class TestChunkingOptions:
    def test_defaults(self):
        options = ChunkingOptions()
        assert options.similarity_threshold == 0.65
        assert options.max_tokens == 500
        assert options.min_tokens == 100

    def test_min_above_max_is_rejected(self):
        with pytest.raises(ConfigurationError):
            ChunkingOptions(max_tokens=100, min_tokens=200)

    def test_min_equal_max_is_allowed(self):
        assert ChunkingOptions(max_tokens=50, min_tokens=50).min_tokens == 50

    @pytest.mark.parametrize("threshold", [-0.1, 1.5])
    def test_threshold_outside_unit_interval_is_rejected(self, threshold):
        with pytest.raises(ConfigurationError):
            ChunkingOptions(similarity_threshold=threshold)

    @pytest.mark.parametrize("max_tokens, min_tokens", [(0, 0), (10, 0), (-5, 1)])
    def test_non_positive_limits_are_rejected(self, max_tokens, min_tokens):
        with pytest.raises(ConfigurationError):
            ChunkingOptions(max_tokens=max_tokens, min_tokens=min_tokens)


# ---------------------------------------------------------------------------
# semantic_chunk
# ---------------------------------------------------------------------------

class TestSemanticChunk:
    def test_splits_on_topic_shift(self):
        chunks = _chunk(
            ["a x x", "a y y", "b z z", "b w w"],
            similarity_threshold=0.5,
            max_tokens=100,
            min_tokens=3,
        )
        assert chunks == ["a x x a y y", "b z z b w w"]

    def test_min_tokens_blocks_similarity_split(self):
        chunks = _chunk(
            ["a x x", "b y y", "a z z", "b w w"],
            similarity_threshold=0.5,
            max_tokens=100,
            min_tokens=10,
        )
        assert chunks == ["a x x b y y a z z b w w"]

    def test_max_tokens_splits_even_when_similar(self):
        chunks = _chunk(
            ["a one two", "a three four", "a five six", "a seven eight"],
            similarity_threshold=0.5,
            max_tokens=6,
            min_tokens=1,
        )
        assert chunks == ["a one two a three four", "a five six a seven eight"]

    def test_oversized_sentence_is_never_split(self):
        big = "a " + " ".join(["w"] * 10)
        chunks = _chunk([big, "a x"], similarity_threshold=0.5, max_tokens=4, min_tokens=1)
        assert chunks == [big, "a x"]

    def test_zero_norm_vector_counts_as_dissimilar(self):
        chunks = _chunk(["a x x", "z y y"], similarity_threshold=0.1, max_tokens=100, min_tokens=1)
        assert chunks == ["a x x", "z y y"]

    def test_threshold_zero_only_splits_on_token_budget(self):
        chunks = _chunk(["a x", "b y", "c z"], similarity_threshold=0.0, max_tokens=100, min_tokens=1)
        assert chunks == ["a x b y c z"]

    def test_empty_text_yields_no_chunks(self):
        assert asyncio.run(semantic_chunk("", _topic_embed)) == []

    def test_whitespace_text_yields_no_chunks(self):
        assert asyncio.run(semantic_chunk("   \n\t", _topic_embed)) == []

    def test_unsegmentable_text_returned_whole(self):
        chunks = asyncio.run(
            semantic_chunk("a lonely fragment", _topic_embed, split_fn=lambda text: [], count_tokens_fn=_words)
        )
        assert chunks == ["a lonely fragment"]

    def test_single_sentence(self):
        assert _chunk(["a only"], max_tokens=10, min_tokens=1) == ["a only"]

    def test_default_options_used_when_omitted(self):
        chunks = asyncio.run(
            semantic_chunk("a x | b y", _topic_embed, split_fn=_bar_split, count_tokens_fn=_words)
        )
        # two short sentences stay together under the default 100-token minimum
        assert chunks == ["a x b y"]

    def test_dimension_mismatch_aborts(self):
        async def ragged(text: str) -> list[float]:
            return [1.0, 0.0] if text.startswith("a") else [1.0, 0.0, 0.0]

        with pytest.raises(DimensionMismatch) as excinfo:
            _chunk(["a x", "b y"], embed=ragged, max_tokens=10, min_tokens=1)
        assert excinfo.value.expected == 2
        assert excinfo.value.actual == 3
        assert excinfo.value.index == 1

    def test_embedding_failure_propagates_unchanged(self):
        async def broken(text: str) -> list[float]:
            raise EmbeddingUnavailable("backend down")

        with pytest.raises(EmbeddingUnavailable, match="backend down"):
            _chunk(["a x", "b y"], embed=broken, max_tokens=10, min_tokens=1)

    def test_invalid_options_fail_before_embedding(self):
        calls: list[str] = []

        async def recording(text: str) -> list[float]:
            calls.append(text)
            return [1.0]

        with pytest.raises(ConfigurationError):
            asyncio.run(semantic_chunk("a x | b y", recording, ChunkingOptions(max_tokens=1, min_tokens=5)))
        assert calls == []


class TestChunkingProperties:
    SENTENCES = [
        "a alpha beta gamma",
        "a delta epsilon",
        "b zeta eta theta iota kappa",
        "b lambda",
        "c mu nu xi omicron pi rho sigma tau",
        "a upsilon phi",
        "a chi psi omega",
        "c one",
        "b two three four five",
    ]

    @pytest.mark.parametrize(
        "threshold, max_tokens, min_tokens",
        [(0.5, 8, 3), (0.9, 5, 1), (0.1, 20, 10), (1.0, 6, 6), (0.65, 500, 100)],
    )
    def test_chunks_partition_sentences_in_order(self, threshold, max_tokens, min_tokens):
        chunks = _chunk(self.SENTENCES, similarity_threshold=threshold, max_tokens=max_tokens, min_tokens=min_tokens)
        assert " ".join(chunks).split() == " ".join(self.SENTENCES).split()

    @pytest.mark.parametrize("threshold, max_tokens, min_tokens", [(0.5, 8, 3), (0.9, 5, 1), (1.0, 6, 6)])
    def test_no_boundary_below_min_tokens(self, threshold, max_tokens, min_tokens):
        chunks = _chunk(self.SENTENCES, similarity_threshold=threshold, max_tokens=max_tokens, min_tokens=min_tokens)
        for chunk in chunks[:-1]:
            assert _words(chunk) >= min_tokens

    @pytest.mark.parametrize("threshold, max_tokens, min_tokens", [(0.5, 8, 3), (0.9, 5, 1), (0.0, 9, 1)])
    def test_hard_cap_only_exceeded_by_single_sentence(self, threshold, max_tokens, min_tokens):
        chunks = _chunk(self.SENTENCES, similarity_threshold=threshold, max_tokens=max_tokens, min_tokens=min_tokens)
        for chunk in chunks:
            if _words(chunk) > max_tokens:
                assert chunk in self.SENTENCES


class TestEmbedSentences:
    def test_preserves_order_regardless_of_completion(self):
        delays = {"a": 0.03, "b": 0.0, "c": 0.01}

        async def slow(text: str) -> list[float]:
            await asyncio.sleep(delays[text[0]])
            return list(TOPICS[text[0]])

        sentences = asyncio.run(embed_sentences(["a x", "b y y", "c z"], slow, _words))
        assert [s.text for s in sentences] == ["a x", "b y y", "c z"]
        assert [s.token_count for s in sentences] == [2, 3, 2]
        assert sentences[1].embedding.tolist() == TOPICS["b"]

    def test_failure_cancels_requests_still_in_flight(self):
        cancelled: list[str] = []

        async def flaky(text: str) -> list[float]:
            if text.startswith("bad"):
                raise EmbeddingUnavailable("ollama down")
            try:
                await asyncio.sleep(1)
            except asyncio.CancelledError:
                cancelled.append(text)
                raise
            return list(TOPICS["a"])

        async def run() -> list[str]:
            with pytest.raises(EmbeddingUnavailable, match="ollama down"):
                await embed_sentences(["a x", "bad y", "c z"], flaky, _words)
            return list(cancelled)

        assert sorted(asyncio.run(run())) == ["a x", "c z"]


# ---------------------------------------------------------------------------
# extract_sections
# ---------------------------------------------------------------------------

class TestExtractSections:
    def test_abstract_is_section_minus_one(self, sample_document):
        sections = extract_sections(sample_document)
        assert sections[0].section_id == -1
        assert sections[0].section_type == "abstract"
        assert sections[0].text == "We study sparse attention."

    def test_blank_sections_skipped_but_indices_kept(self, sample_document):
        ids = [section.section_id for section in extract_sections(sample_document)]
        assert ids == [-1, 0, 2]

    def test_tables_appended(self, sample_document):
        results = extract_sections(sample_document)[-1]
        assert results.text == "Results are strong.\n\nTable 1:\n| a | b |"

    def test_title_propagates(self, sample_document):
        assert {s.title for s in extract_sections(sample_document)} == {"Sparse Attention"}

    def test_missing_fields(self):
        assert extract_sections({}) == []

    def test_non_list_sections_ignored(self):
        sections = extract_sections({"abstract": "Only abstract.", "sections": None})
        assert [s.section_id for s in sections] == [-1]
        assert sections[0].title == ""
