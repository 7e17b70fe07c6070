from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum

from dotenv import load_dotenv

from .errors import ConfigurationError

DEFAULT_OLLAMA_URL = "http://localhost:11434/v1"


@dataclass(slots=True, frozen=True)
class ProviderConfig:
    """Embedding backend description: model name, vector size, and endpoint."""

    model: str
    dimensions: int
    endpoint: str | None = None


class EmbeddingProvider(str, Enum):
    """Closed set of supported embedding backends."""

    OPENAI = "openai"
    OLLAMA = "ollama"
    EMBEDDINGGEMMA = "embeddinggemma"
    QWEN3 = "qwen3"

    def config(self, ollama_url: str = DEFAULT_OLLAMA_URL) -> ProviderConfig:
        if self is EmbeddingProvider.OPENAI:
            return ProviderConfig(model="text-embedding-3-large", dimensions=3072)
        if self is EmbeddingProvider.OLLAMA:
            return ProviderConfig(model="nomic-embed-text", dimensions=768, endpoint=ollama_url)
        if self is EmbeddingProvider.EMBEDDINGGEMMA:
            return ProviderConfig(model="embeddinggemma:latest", dimensions=768, endpoint=ollama_url)
        return ProviderConfig(model="qwen3-embedding:latest", dimensions=4096, endpoint=ollama_url)


def resolve_provider(name: str) -> EmbeddingProvider:
    """Map a provider name onto the closed provider set.

    Raises:
        ConfigurationError: If the name is not a known provider.
    """
    try:
        return EmbeddingProvider(name.strip().lower())
    except ValueError as exc:
        available = ", ".join(member.value for member in EmbeddingProvider)
        raise ConfigurationError(
            f"Unknown EMBEDDING_PROVIDER: {name}. Available: {available}"
        ) from exc


@dataclass(slots=True)
class EmbeddingSettings:
    """Selected embedding provider and the credentials needed to reach it."""

    provider: EmbeddingProvider = EmbeddingProvider.OLLAMA
    model: str = "nomic-embed-text"
    dimensions: int = 768
    endpoint: str | None = DEFAULT_OLLAMA_URL
    api_key: str | None = "ollama"


@dataclass(slots=True)
class VectorStoreSettings:
    """Chroma persistence location and collection name."""

    persist_dir: str = "artifacts/chroma"
    collection_name: str = "ragbench"


@dataclass(slots=True)
class Paths:
    """Dataset and run-report locations."""

    data_dir: str = "data"
    runs_dir: str = "runs"

    @property
    def corpus_dir(self) -> str:
        return os.path.join(self.data_dir, "corpus")

    @property
    def sample_dir(self) -> str:
        return os.path.join(self.data_dir, "sample")


def embedding_settings_for(provider: EmbeddingProvider, ollama_url: str, openai_api_key: str | None) -> EmbeddingSettings:
    config = provider.config(ollama_url=ollama_url)
    api_key = openai_api_key if provider is EmbeddingProvider.OPENAI else "ollama"
    return EmbeddingSettings(
        provider=provider,
        model=config.model,
        dimensions=config.dimensions,
        endpoint=config.endpoint,
        api_key=api_key,
    )


def load_settings() -> tuple[EmbeddingSettings, VectorStoreSettings, Paths]:
    """Load environment-backed settings and return typed config objects.

    Returns:
        Tuple of embedding settings, vector store settings, and common paths.

    Raises:
        ConfigurationError: If `EMBEDDING_PROVIDER` names an unknown provider.
    """
    load_dotenv()
    provider = resolve_provider(os.getenv("EMBEDDING_PROVIDER", EmbeddingProvider.OLLAMA.value))
    return (
        embedding_settings_for(
            provider,
            ollama_url=os.getenv("OLLAMA_URL", DEFAULT_OLLAMA_URL),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
        ),
        VectorStoreSettings(
            persist_dir=os.getenv("CHROMA_PERSIST_DIR", "artifacts/chroma"),
            collection_name=os.getenv("RAGBENCH_COLLECTION", "ragbench"),
        ),
        Paths(),
    )
