from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence

import numpy as np
from openai import AsyncOpenAI, OpenAIError

from .errors import ConfigurationError, EmbeddingUnavailable
from .settings import EmbeddingSettings

Vector = Sequence[float] | np.ndarray
EmbedFn = Callable[[str], Awaitable[list[float]]]


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine similarity of two equal-length vectors.

    A zero-norm vector on either side yields 0.0 instead of dividing by zero.
    """
    left = np.asarray(a, dtype=np.float64)
    right = np.asarray(b, dtype=np.float64)
    denominator = np.linalg.norm(left) * np.linalg.norm(right)
    if denominator == 0.0:
        return 0.0
    return float(np.dot(left, right) / denominator)


async def embed_all(texts: Sequence[str], embed_fn: EmbedFn) -> list[list[float]]:
    """Embed every text concurrently, returning vectors in input order.

    The first failure cancels the requests still in flight and is re-raised
    as-is.
    """
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(embed_fn(text)) for text in texts]
    except ExceptionGroup as failures:
        raise failures.exceptions[0]
    return [task.result() for task in tasks]


class OpenAIEmbedder:
    """Async embedding capability backed by any OpenAI-compatible endpoint.

    Works for the hosted OpenAI API and for Ollama's `/v1` compatibility
    layer; the settings object decides which.
    """

    def __init__(self, settings: EmbeddingSettings, client: AsyncOpenAI | None = None):
        self.settings = settings
        if client is None:
            try:
                client = AsyncOpenAI(base_url=settings.endpoint, api_key=settings.api_key)
            except OpenAIError as exc:
                raise ConfigurationError(
                    f"cannot create {settings.provider.value} embedding client: {exc}"
                ) from exc
        self.client = client

    @property
    def model(self) -> str:
        return self.settings.model

    async def __call__(self, text: str) -> list[float]:
        """Embed one text.

        Raises:
            EmbeddingUnavailable: If the backend call fails or returns no vector.
        """
        try:
            response = await self.client.embeddings.create(model=self.settings.model, input=text)
        except OpenAIError as exc:
            raise EmbeddingUnavailable(f"{self.settings.provider.value} embedding failed: {exc}") from exc
        if not response.data:
            raise EmbeddingUnavailable(f"{self.settings.provider.value} returned no embedding")
        return list(response.data[0].embedding)


def build_embedder(settings: EmbeddingSettings) -> OpenAIEmbedder:
    return OpenAIEmbedder(settings)
