"""Sentence segmentation and token counting used by the semantic chunker."""
from __future__ import annotations

import warnings
from functools import lru_cache

import tiktoken
from pysbd import Segmenter

# pysbd emits SyntaxWarnings on Python 3.12+ from its regex literals.
with warnings.catch_warnings():
    warnings.filterwarnings("ignore", category=SyntaxWarning)
    _SEGMENTER = Segmenter(language="en", clean=False)

ENCODING_NAME = "cl100k_base"


@lru_cache(maxsize=1)
def _encoding() -> tiktoken.Encoding:
    return tiktoken.get_encoding(ENCODING_NAME)


def split_into_sentences(text: str) -> list[str]:
    """Split text into ordered, stripped, non-empty sentences."""
    if not text.strip():
        return []
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=SyntaxWarning)
        segments = _SEGMENTER.segment(text)
    return [segment.strip() for segment in segments if segment.strip()]


def count_tokens(text: str) -> int:
    return len(_encoding().encode(text))
