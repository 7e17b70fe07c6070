from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np

from .embeddings import EmbedFn, cosine_similarity, embed_all
from .errors import ConfigurationError, DimensionMismatch
from .schema import Section, Sentence
from .text import count_tokens, split_into_sentences


@dataclass(slots=True, frozen=True)
class ChunkingOptions:
    """Similarity threshold and token budget for semantic chunking.

    Validated on construction so a bad combination fails before any
    embedding call is issued.
    """

    similarity_threshold: float = 0.65
    max_tokens: int = 500
    min_tokens: int = 100

    def __post_init__(self) -> None:
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ConfigurationError(
                f"similarity_threshold must be within [0, 1], got {self.similarity_threshold}"
            )
        if self.max_tokens <= 0 or self.min_tokens <= 0:
            raise ConfigurationError("max_tokens and min_tokens must be positive integers")
        if self.min_tokens > self.max_tokens:
            raise ConfigurationError(
                f"min_tokens ({self.min_tokens}) must not exceed max_tokens ({self.max_tokens})"
            )


async def embed_sentences(
    sentences: list[str],
    embed_fn: EmbedFn,
    count_tokens_fn: Callable[[str], int] = count_tokens,
) -> list[Sentence]:
    """Embed every sentence concurrently, preserving input order.

    Raises:
        DimensionMismatch: If any vector differs in length from the first one.
    """
    vectors = await embed_all(sentences, embed_fn)

    embedded: list[Sentence] = []
    expected: int | None = None
    for index, (text, vector) in enumerate(zip(sentences, vectors, strict=True)):
        array = np.asarray(vector, dtype=np.float64)
        if expected is None:
            expected = array.shape[0]
        elif array.shape[0] != expected:
            raise DimensionMismatch(expected=expected, actual=array.shape[0], index=index)
        embedded.append(Sentence(text=text, token_count=count_tokens_fn(text), embedding=array))
    return embedded


async def semantic_chunk(
    text: str,
    embed_fn: EmbedFn,
    options: ChunkingOptions | None = None,
    split_fn: Callable[[str], list[str]] = split_into_sentences,
    count_tokens_fn: Callable[[str], int] = count_tokens,
) -> list[str]:
    """Group adjacent, semantically similar sentences into token-bounded chunks.

    A boundary is considered when the similarity between consecutive
    sentences drops below the threshold or when adding the next sentence
    would exceed `max_tokens`. A boundary is only taken once the chunk in
    progress holds at least `min_tokens`. Sentences are never split, so a
    single oversized sentence may exceed `max_tokens` on its own.

    Args:
        text: Section text to chunk.
        embed_fn: Async callable mapping one text to its embedding vector.
        options: Threshold and token limits; defaults to `ChunkingOptions()`.
        split_fn: Sentence segmenter.
        count_tokens_fn: Token counter applied per sentence.

    Returns:
        Chunk strings, each the space-joined sentences of one group.

    Raises:
        DimensionMismatch: If sentence embeddings differ in dimensionality.
        EmbeddingUnavailable: Propagated unchanged from `embed_fn`.
    """
    options = options or ChunkingOptions()
    if not text or not text.strip():
        return []

    sentence_texts = split_fn(text)
    if not sentence_texts:
        return [text]

    sentences = await embed_sentences(sentence_texts, embed_fn, count_tokens_fn)

    chunks: list[str] = []
    current: list[Sentence] = []
    current_tokens = 0

    for index, sentence in enumerate(sentences):
        if not current:
            current.append(sentence)
            current_tokens = sentence.token_count
            continue

        similarity = cosine_similarity(sentences[index - 1].embedding, sentence.embedding)
        should_split = (
            similarity < options.similarity_threshold
            or current_tokens + sentence.token_count > options.max_tokens
        )

        if should_split and current_tokens >= options.min_tokens:
            chunks.append(" ".join(s.text for s in current))
            current = [sentence]
            current_tokens = sentence.token_count
        else:
            current.append(sentence)
            current_tokens += sentence.token_count

    if current:
        chunks.append(" ".join(s.text for s in current))
    return chunks


def extract_sections(document: dict) -> list[Section]:
    """Turn a corpus document into indexable sections.

    The abstract becomes section `-1`. Every non-blank entry of `sections`
    keeps its list index as the section id, with any tables appended.
    """
    title = document.get("title") or ""
    sections: list[Section] = []

    if document.get("abstract"):
        sections.append(
            Section(section_id=-1, text=document["abstract"], title=title, section_type="abstract")
        )

    raw_sections = document.get("sections")
    if not isinstance(raw_sections, list):
        return sections

    for idx, raw in enumerate(raw_sections):
        body = raw.get("text") or ""
        if not body.strip():
            continue
        for table_id, table_content in (raw.get("tables") or {}).items():
            body += f"\n\nTable {table_id}:\n{table_content}"
        sections.append(Section(section_id=idx, text=body.strip(), title=title, section_type="section"))

    return sections
