"""
Knowledge Layer - Networking Graph and Embeddings.

Vector store for semantic search + graph stores for people, events and meetings.
"""

from meetgraph.knowledge.directory import (
    DirectoryError,
    JoinResult,
    NetworkDirectory,
    NotFoundError,
)
from meetgraph.knowledge.embeddings import (
    EmbeddingError,
    EmbeddingProvider,
    LlamaIndexEmbedder,
    meeting_embedding_text,
    profile_embedding_text,
)
from meetgraph.knowledge.graph_store import GraphNotFoundError, GraphStore, GraphStoreError
from meetgraph.knowledge.neo4j_store import Neo4jGraphStore
from meetgraph.knowledge.schemas import (
    Attendance,
    AttendedEvent,
    EmbeddingRecord,
    Event,
    Meeting,
    MetContact,
    OwnerType,
    Person,
    PersonStatus,
    RelationshipType,
)
from meetgraph.knowledge.vector_store import (
    DimensionMismatchError,
    VectorHit,
    VectorStore,
    VectorStoreConfig,
    VectorStoreError,
)

__all__ = [
    # Stores
    "VectorStore",
    "VectorStoreConfig",
    "VectorHit",
    "GraphStore",
    "Neo4jGraphStore",
    # Directory
    "NetworkDirectory",
    "JoinResult",
    # Embeddings
    "EmbeddingProvider",
    "LlamaIndexEmbedder",
    "profile_embedding_text",
    "meeting_embedding_text",
    # Schemas
    "Person",
    "PersonStatus",
    "Event",
    "AttendedEvent",
    "Attendance",
    "Meeting",
    "MetContact",
    "EmbeddingRecord",
    "OwnerType",
    "RelationshipType",
    # Errors
    "VectorStoreError",
    "DimensionMismatchError",
    "GraphStoreError",
    "GraphNotFoundError",
    "EmbeddingError",
    "DirectoryError",
    "NotFoundError",
]
