"""
Application Configuration.

Pydantic settings for type-safe environment configuration.
Covers the generation/embedding backends, the vector index, the graph store
and the query engine knobs (top-K, thresholds, timeouts).
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMBackend(str, Enum):
    """Supported generation-model backends."""

    OPENAI = "openai"
    OLLAMA = "ollama"


class EmbeddingBackend(str, Enum):
    """Supported embedding backends."""

    HUGGINGFACE = "huggingface"
    OPENAI = "openai"


class GraphBackend(str, Enum):
    """Supported graph stores."""

    NEO4J = "neo4j"
    NETWORKX = "networkx"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === LLM Backend Selection ===
    llm_backend: LLMBackend = Field(
        default=LLMBackend.OPENAI,
        description="Generation backend to use: 'openai' or 'ollama'",
    )

    # === OpenAI Configuration ===
    openai_api_key: str = Field(
        default="",
        description="OpenAI API key (required if an OpenAI backend is selected)",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI chat model used by both retrieval pipelines",
    )

    # === Ollama Configuration ===
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama API base URL",
    )
    ollama_model: str = Field(
        default="llama3",
        description="Ollama model to use",
    )
    ollama_request_timeout: float = Field(
        default=120.0,
        description="Request timeout for Ollama in seconds",
    )

    # === Embedding Configuration ===
    embedding_backend: EmbeddingBackend = Field(
        default=EmbeddingBackend.OPENAI,
        description="Embedding backend: 'huggingface' or 'openai'",
    )
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model to use",
    )

    # === ChromaDB Configuration ===
    chroma_persist_dir: Path = Field(
        default=Path("./data/chroma"),
        description="Directory for ChromaDB persistence",
    )
    chroma_collection: str = Field(
        default="embedding_records",
        description="Collection holding profile and meeting-note embeddings",
    )

    # === Graph Store Configuration ===
    graph_backend: GraphBackend = Field(
        default=GraphBackend.NEO4J,
        description="Graph store: 'neo4j' (traversal queries) or 'networkx' (local)",
    )
    neo4j_uri: str = Field(default="bolt://localhost:7687")
    neo4j_user: str = Field(default="neo4j")
    neo4j_password: str = Field(default="test")
    neo4j_database: str | None = Field(
        default=None,
        description="Neo4j database name (server default if unset)",
    )
    graph_persist_path: Path = Field(
        default=Path("./data/graphs/network.json"),
        description="Node-link JSON file for the networkx graph store",
    )

    # === Query Engine ===
    rag_top_k: int = Field(default=20, ge=1, description="Records retrieved per RAG query")
    rag_similarity_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum similarity for a retrieved record",
    )
    rag_fallback_count: int = Field(
        default=5,
        ge=1,
        description="Records used when the summarizer output cannot be parsed",
    )
    rag_context_max_chars: int = Field(
        default=6000,
        ge=200,
        description="Upper bound on the context block sent to the summarizer",
    )
    cypher_result_limit: int = Field(default=20, ge=1, le=20)
    llm_timeout_seconds: float = Field(default=30.0, gt=0)
    graph_timeout_seconds: float = Field(default=10.0, gt=0)

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # === API Configuration ===
    api_host: str = Field(
        default="0.0.0.0",
        description="API host to bind to",
    )
    api_port: int = Field(
        default=8000,
        description="API port to bind to",
    )

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        for dir_path in [
            self.chroma_persist_dir,
            self.graph_persist_path.parent,
        ]:
            dir_path.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    settings.ensure_directories()
    return settings
