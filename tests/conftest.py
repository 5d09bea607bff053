"""
Pytest Configuration and Fixtures.

Stores are REAL: ChromaDB in a temp directory and the NetworkX graph store.
The embedding model and the chat model are deterministic in-process
llama_index models, so no network or API key is needed.
Neo4j tests run only when NEO4J_URI is set.
"""

import os
import re
from pathlib import Path
from typing import Any

import pytest
from llama_index.core.base.llms.types import (
    CompletionResponse,
    CompletionResponseGen,
    LLMMetadata,
)
from llama_index.core.embeddings import BaseEmbedding
from llama_index.core.llms import CustomLLM
from llama_index.core.llms.callbacks import llm_completion_callback
from pydantic import Field

from app.config import GraphBackend, Settings
from app.services import Services
from meetgraph.knowledge.directory import NetworkDirectory
from meetgraph.knowledge.embeddings import LlamaIndexEmbedder
from meetgraph.knowledge.graph_store import GraphStore
from meetgraph.knowledge.schemas import Event
from meetgraph.knowledge.vector_store import VectorStore, VectorStoreConfig
from meetgraph.query.cypher import CypherPipeline
from meetgraph.query.generation import LlamaIndexGenerator
from meetgraph.query.planner import QueryEngine
from meetgraph.query.rag import RagPipeline


# ============================================================================
# Deterministic Models
# ============================================================================

VOCABULARY = (
    "ai", "ml", "machine", "learning", "engineer", "rust", "python",
    "design", "marketing", "startup", "investor", "founder", "chess",
)


def keyword_vector(text: str) -> list[float]:
    """Bag-of-words over VOCABULARY plus a constant component (never all zeros)."""
    words = re.findall(r"[a-z]+", text.lower())
    vector = [float(words.count(term)) for term in VOCABULARY]
    vector.append(0.1)
    return vector


class KeywordEmbedding(BaseEmbedding):
    """Embedding model whose similarity is keyword overlap."""

    model_name: str = "keyword-test"

    def _get_query_embedding(self, query: str) -> list[float]:
        return keyword_vector(query)

    async def _aget_query_embedding(self, query: str) -> list[float]:
        return keyword_vector(query)

    def _get_text_embedding(self, text: str) -> list[float]:
        return keyword_vector(text)

    async def _aget_text_embedding(self, text: str) -> list[float]:
        return keyword_vector(text)


class ScriptedLLM(CustomLLM):
    """
    Chat model that replays queued responses in order.

    A queued exception is raised instead of answered. Every prompt is kept
    in ``prompts`` so tests can see which pipeline asked first.
    """

    responses: list[Any] = Field(default_factory=list)
    prompts: list[str] = Field(default_factory=list)

    @property
    def metadata(self) -> LLMMetadata:
        return LLMMetadata(model_name="scripted", is_chat_model=False)

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def _next(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise RuntimeError("ScriptedLLM has no response queued")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @llm_completion_callback()
    def complete(self, prompt: str, formatted: bool = False, **kwargs: Any) -> CompletionResponse:
        return CompletionResponse(text=self._next(prompt))

    @llm_completion_callback()
    def stream_complete(
        self, prompt: str, formatted: bool = False, **kwargs: Any
    ) -> CompletionResponseGen:
        text = self._next(prompt)
        yield CompletionResponse(text=text, delta=text)


class StaticTraversalExecutor:
    """Traversal executor returning canned records, or raising a canned error."""

    def __init__(self, records: list[dict[str, Any]] | None = None, error: Exception | None = None) -> None:
        self.records = records or []
        self.error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def run_traversal(
        self, statement: str, params: dict[str, Any] | None = None, limit: int = 20
    ) -> list[dict[str, Any]]:
        self.calls.append((statement, params or {}))
        if self.error is not None:
            raise self.error
        return self.records[:limit]


# ============================================================================
# Skip Markers
# ============================================================================

def requires_neo4j():
    """Skip test unless a Neo4j server is configured via NEO4J_URI."""
    return pytest.mark.skipif(
        not os.getenv("NEO4J_URI"),
        reason="Requires Neo4j (set NEO4J_URI, NEO4J_USER, NEO4J_PASSWORD)",
    )


# ============================================================================
# Path Fixtures
# ============================================================================

@pytest.fixture
def temp_chroma_dir(tmp_path: Path) -> Path:
    """Temporary directory for ChromaDB."""
    chroma_dir = tmp_path / "chroma"
    chroma_dir.mkdir()
    return chroma_dir


@pytest.fixture
def temp_graph_path(tmp_path: Path) -> Path:
    """Temporary path for graph storage."""
    return tmp_path / "graph.json"


# ============================================================================
# Store Fixtures (Real, not mocked)
# ============================================================================

@pytest.fixture
def vector_store(temp_chroma_dir: Path) -> VectorStore:
    """Create a real VectorStore for testing."""
    config = VectorStoreConfig(
        persist_directory=temp_chroma_dir,
        collection_name="test_collection",
    )
    return VectorStore(config)


@pytest.fixture
def graph_store(temp_graph_path: Path) -> GraphStore:
    """Create a real GraphStore for testing."""
    return GraphStore(persist_path=temp_graph_path)


@pytest.fixture
def embedder() -> LlamaIndexEmbedder:
    return LlamaIndexEmbedder(KeywordEmbedding())


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def generator(llm: ScriptedLLM) -> LlamaIndexGenerator:
    return LlamaIndexGenerator(llm, timeout_seconds=5)


@pytest.fixture
def directory(graph_store, vector_store, embedder) -> NetworkDirectory:
    return NetworkDirectory(graph_store, vector_store, embedder)


# ============================================================================
# Networking Graph Fixtures
# ============================================================================

@pytest.fixture
async def event(directory: NetworkDirectory) -> Event:
    return await directory.create_event(Event(name="PyCon Meetup", location="Berlin"))


@pytest.fixture
async def network(directory: NetworkDirectory, event: Event) -> dict[str, Any]:
    """
    Alice met Bob (AI Engineer) and Carol (designer) at one event.

    Alice <-> Bob note: "talked about ML"
    Alice <-> Carol note: "design systems"
    """
    alice = (await directory.join_event(
        event.id, name="Alice", email="alice@example.com",
        company="Acme", job_title="Founder", interests="startup",
    )).person
    bob = (await directory.join_event(
        event.id, name="Bob", email="bob@example.com",
        company="DeepCo", job_title="AI Engineer", bio="Builds machine learning systems",
    )).person
    carol = (await directory.join_event(
        event.id, name="Carol", email="carol@example.com",
        company="Studio", job_title="Product Designer", interests="design",
    )).person

    await directory.record_meeting(alice.id, bob.id, note="talked about ML", event_id=event.id)
    await directory.record_meeting(alice.id, carol.id, note="design systems", event_id=event.id)
    return {"event": event, "alice": alice, "bob": bob, "carol": carol}


# ============================================================================
# Engine Fixtures
# ============================================================================

@pytest.fixture
def traversal() -> StaticTraversalExecutor:
    return StaticTraversalExecutor()


@pytest.fixture
def rag(embedder, vector_store, graph_store, generator) -> RagPipeline:
    # Keyword vectors are coarse; a lower threshold keeps partial matches
    return RagPipeline(
        embedder=embedder,
        index=vector_store,
        resolver=graph_store,
        generator=generator,
        top_k=20,
        threshold=0.3,
        fallback_count=5,
    )


@pytest.fixture
def cypher(generator, traversal) -> CypherPipeline:
    return CypherPipeline(generator=generator, executor=traversal, result_limit=20)


@pytest.fixture
def engine(rag: RagPipeline, cypher: CypherPipeline) -> QueryEngine:
    return QueryEngine(rag=rag, cypher=cypher)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        graph_backend=GraphBackend.NETWORKX,
        chroma_persist_dir=tmp_path / "chroma",
        graph_persist_path=tmp_path / "graph.json",
        rag_similarity_threshold=0.3,
    )


@pytest.fixture
def services(test_settings, vector_store, graph_store, embedder, generator) -> Services:
    return Services.assemble(test_settings, vector_store, graph_store, embedder, generator)
