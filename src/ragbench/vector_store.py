from __future__ import annotations

from pathlib import Path
from typing import Sequence

import chromadb
from chromadb.errors import ChromaError

from .errors import SearchUnavailable
from .schema import ChunkPoint, RetrievedItem


def build_chroma_collection(
    collection_name: str,
    persist_dir: str = "artifacts/chroma",
    recreate: bool = True,
):
    """Open a persistent Chroma collection in cosine space.

    Args:
        collection_name: Chroma collection name.
        persist_dir: Local path for Chroma persistence.
        recreate: Drop an existing collection of the same name first.

    Returns:
        The Chroma collection instance.
    """
    Path(persist_dir).mkdir(parents=True, exist_ok=True)
    client = chromadb.PersistentClient(path=persist_dir)
    existing = {collection.name for collection in client.list_collections()}
    if recreate and collection_name in existing:
        client.delete_collection(collection_name)

    return client.get_or_create_collection(
        name=collection_name,
        metadata={"hnsw:space": "cosine"},
    )


def upsert_points(collection, points: Sequence[ChunkPoint]) -> int:
    """Write embedded chunks to the collection; returns the number written."""
    if not points:
        return 0
    collection.upsert(
        ids=[point.point_id for point in points],
        embeddings=[point.embedding for point in points],
        documents=[point.text for point in points],
        metadatas=[point.payload() for point in points],
    )
    return len(points)


def dense_search(
    collection,
    query_embedding: list[float],
    top_k: int = 10,
) -> list[RetrievedItem]:
    """Query a Chroma collection and map hits to ranked `RetrievedItem`s.

    Args:
        collection: Chroma collection to query.
        query_embedding: Embedded query vector.
        top_k: Number of nearest chunks to return.

    Returns:
        Items ordered by descending cosine similarity, ranks starting at 0.

    Raises:
        SearchUnavailable: If the Chroma query fails.
    """
    try:
        response = collection.query(
            query_embeddings=[query_embedding],
            n_results=top_k,
            include=["documents", "metadatas", "distances"],
        )
    except (ChromaError, ValueError) as exc:
        raise SearchUnavailable(f"chroma query failed: {exc}") from exc

    docs = response["documents"][0]
    metadatas = response["metadatas"][0]
    distances = response["distances"][0]

    return [
        RetrievedItem(
            rank=rank,
            score=float(1.0 - distance),
            doc_id=metadata["doc_id"],
            section_id=metadata["section_id"],
            text=text or "",
            chunk_id=metadata.get("chunk_id"),
        )
        for rank, (text, metadata, distance) in enumerate(zip(docs, metadatas, distances, strict=True))
    ]


def collection_searcher(collection):
    """Bind a collection into a `(query_vector, limit) -> list[RetrievedItem]` capability."""

    def search(query_vector: list[float], limit: int) -> list[RetrievedItem]:
        return dense_search(collection, query_vector, top_k=limit)

    return search
