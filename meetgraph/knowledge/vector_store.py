"""
Vector Store - ChromaDB Integration.

Holds the embedding records behind semantic contact search: one record per
profile plus one per meeting note and participant. This is the "retrieval"
part of RAG.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import chromadb
from chromadb.config import Settings as ChromaSettings

from meetgraph.knowledge.schemas import EmbeddingRecord, OwnerType
from meetgraph.utils.logger import get_logger

logger = get_logger(__name__)


class VectorStoreError(Exception):
    """Raised when vector store operations fail."""
    pass


class DimensionMismatchError(VectorStoreError):
    """Raised when a vector's length differs from the index dimension."""
    pass


@dataclass
class VectorStoreConfig:
    """Configuration for the vector store."""

    persist_directory: Path = Path("./data/chroma")
    collection_name: str = "embedding_records"
    distance_metric: str = "cosine"  # cosine, l2, ip


@dataclass
class VectorHit:
    """A single nearest-neighbour match."""

    record_id: str
    owner_type: OwnerType
    owner_id: str
    text: str
    distance: float

    @property
    def similarity(self) -> float:
        """Convert cosine distance to a 0-1 similarity."""
        return max(0.0, 1.0 - self.distance)


class VectorStore:
    """
    ChromaDB-based index of embedding records.

    Records are never updated in place. Editing a profile replaces every
    record of that owner. All records share one dimension, fixed by the first
    record written.

    Usage:
        store = VectorStore(config)
        store.replace_owner_records(OwnerType.PERSON, person.id, [record])
        hits = await store.asearch(query_vector, threshold=0.7, limit=20)
    """

    def __init__(self, config: VectorStoreConfig | None = None) -> None:
        self.config = config or VectorStoreConfig()
        self._client: chromadb.ClientAPI | None = None
        self._collection: chromadb.Collection | None = None
        self._dimension: int | None = None

    def _ensure_initialized(self) -> None:
        """Lazy initialization of ChromaDB client and collection."""
        if self._client is None:
            logger.info(f"Initializing ChromaDB at {self.config.persist_directory}")

            self.config.persist_directory.mkdir(parents=True, exist_ok=True)

            self._client = chromadb.PersistentClient(
                path=str(self.config.persist_directory),
                settings=ChromaSettings(
                    anonymized_telemetry=False,
                    allow_reset=True,
                ),
            )

            # Embeddings always come from our provider, never from Chroma
            self._collection = self._client.get_or_create_collection(
                name=self.config.collection_name,
                metadata={"hnsw:space": self.config.distance_metric},
                embedding_function=None,
            )

            logger.info(
                f"ChromaDB initialized. Collection '{self.config.collection_name}' "
                f"has {self._collection.count()} records"
            )

    @property
    def collection(self) -> chromadb.Collection:
        """Get the ChromaDB collection."""
        self._ensure_initialized()
        assert self._collection is not None
        return self._collection

    @property
    def dimension(self) -> int | None:
        """Dimension of stored vectors, or None while the index is empty."""
        if self._dimension is None:
            existing = self.collection.get(limit=1, include=["embeddings"])
            embeddings = existing.get("embeddings")
            if embeddings is not None and len(embeddings) > 0:
                self._dimension = len(embeddings[0])
        return self._dimension

    def _check_dimension(self, vector_length: int) -> None:
        expected = self.dimension
        if expected is not None and vector_length != expected:
            raise DimensionMismatchError(
                f"Vector has {vector_length} dimensions, index expects {expected}"
            )

    def add_records(self, records: list[EmbeddingRecord]) -> int:
        """
        Add embedding records to the index.

        Args:
            records: Records to add

        Returns:
            Number of records added

        Raises:
            DimensionMismatchError: If any record disagrees with the index dimension
        """
        if not records:
            return 0

        first_dim = records[0].dimension
        for record in records:
            if record.dimension != first_dim:
                raise DimensionMismatchError(
                    f"Mixed dimensions in batch: {record.dimension} vs {first_dim}"
                )
        self._check_dimension(first_dim)

        try:
            self.collection.add(
                ids=[r.id for r in records],
                documents=[r.text for r in records],
                embeddings=[r.embedding for r in records],
                metadatas=[
                    {
                        "owner_type": r.owner_type.value,
                        "owner_id": r.owner_id,
                        "created_at": r.created_at.isoformat(),
                    }
                    for r in records
                ],
            )
        except Exception as e:
            logger.error(f"Failed to add records: {e}")
            raise VectorStoreError(f"Failed to add records: {e}") from e

        self._dimension = first_dim
        logger.debug(f"Added {len(records)} embedding records")
        return len(records)

    def delete_owner(self, owner_type: OwnerType, owner_id: str) -> int:
        """
        Delete every record of one owner.

        Returns:
            Number of records deleted
        """
        try:
            existing = self.collection.get(
                where={
                    "$and": [
                        {"owner_type": {"$eq": owner_type.value}},
                        {"owner_id": {"$eq": owner_id}},
                    ]
                },
                include=[],
            )
            if existing["ids"]:
                self.collection.delete(ids=existing["ids"])
                logger.debug(
                    f"Deleted {len(existing['ids'])} {owner_type.value} records for {owner_id}"
                )
            return len(existing["ids"])

        except Exception as e:
            logger.error(f"Failed to delete records for {owner_id}: {e}")
            raise VectorStoreError(f"Delete failed: {e}") from e

    def replace_owner_records(
        self,
        owner_type: OwnerType,
        owner_id: str,
        records: list[EmbeddingRecord],
    ) -> int:
        """Drop the owner's stale records and write the new ones."""
        for record in records:
            if record.owner_type != owner_type or record.owner_id != owner_id:
                raise VectorStoreError("Replacement records must belong to the replaced owner")

        self.delete_owner(owner_type, owner_id)
        return self.add_records(records)

    def owner_ids(self, owner_type: OwnerType) -> set[str]:
        """IDs of all owners of the given type that have at least one record."""
        existing = self.collection.get(
            where={"owner_type": {"$eq": owner_type.value}},
            include=["metadatas"],
        )
        return {m["owner_id"] for m in existing["metadatas"] or []}

    def search_by_embedding(
        self,
        embedding: list[float],
        top_k: int = 20,
        threshold: float | None = None,
    ) -> list[VectorHit]:
        """
        Nearest-neighbour search with a precomputed query vector.

        Args:
            embedding: Query vector
            top_k: Maximum hits
            threshold: Minimum similarity; None keeps every hit

        Returns:
            Hits ordered by ascending distance
        """
        if not embedding:
            raise VectorStoreError("Query embedding is empty")

        total = self.count()
        if total == 0:
            return []
        self._check_dimension(len(embedding))

        try:
            results = self.collection.query(
                query_embeddings=[embedding],
                n_results=min(top_k, total),
                include=["documents", "metadatas", "distances"],
            )
        except Exception as e:
            raise VectorStoreError(f"Embedding search failed: {e}") from e

        hits: list[VectorHit] = []
        if results["ids"] and results["ids"][0]:
            for i, record_id in enumerate(results["ids"][0]):
                metadata: dict[str, Any] = results["metadatas"][0][i] if results["metadatas"] else {}
                hits.append(VectorHit(
                    record_id=record_id,
                    owner_type=OwnerType(metadata.get("owner_type", OwnerType.PERSON.value)),
                    owner_id=metadata.get("owner_id", ""),
                    text=results["documents"][0][i] if results["documents"] else "",
                    distance=float(results["distances"][0][i]) if results["distances"] else 0.0,
                ))

        if threshold is not None:
            hits = [h for h in hits if h.similarity >= threshold]

        logger.debug(f"Vector search returned {len(hits)} hits (top_k={top_k}, threshold={threshold})")
        return hits

    async def asearch(
        self,
        embedding: list[float],
        threshold: float | None,
        limit: int,
    ) -> list[VectorHit]:
        """Run :meth:`search_by_embedding` off the event loop."""
        return await asyncio.to_thread(self.search_by_embedding, embedding, limit, threshold)

    def count(self) -> int:
        """Get total number of records in the index."""
        return self.collection.count()

    def reset(self) -> None:
        """Delete all data in the collection. Use with caution!"""
        logger.warning("Resetting vector store - all data will be deleted")
        self._ensure_initialized()
        assert self._client is not None
        self._client.delete_collection(self.config.collection_name)
        self._collection = None
        self._client = None
        self._dimension = None
        self._ensure_initialized()
