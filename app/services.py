"""
Service Container.

Builds every client the API needs from settings, once, at startup, and
releases them at shutdown. Routes receive them through FastAPI dependencies;
nothing is held in module-level globals.
"""

from dataclasses import dataclass
from typing import Any

from app.config import GraphBackend, LLMBackend, Settings
from meetgraph.knowledge.directory import GraphBackend as GraphStoreBackend
from meetgraph.knowledge.directory import NetworkDirectory
from meetgraph.knowledge.embeddings import LlamaIndexEmbedder
from meetgraph.knowledge.graph_store import GraphStore
from meetgraph.knowledge.neo4j_store import Neo4jGraphStore
from meetgraph.knowledge.vector_store import VectorStore, VectorStoreConfig
from meetgraph.query.cypher import CypherPipeline
from meetgraph.query.generation import LlamaIndexGenerator, TextGenerator
from meetgraph.query.planner import QueryEngine
from meetgraph.query.rag import RagPipeline
from meetgraph.utils.llm_factory import create_embedding_model, create_llm
from meetgraph.utils.logger import get_logger

logger = get_logger(__name__)


def _json_kwargs(backend: LLMBackend) -> dict[str, Any]:
    """Backend options that ask the chat model for a JSON object."""
    match backend:
        case LLMBackend.OPENAI:
            return {"response_format": {"type": "json_object"}}
        case LLMBackend.OLLAMA:
            return {"format": "json"}
        case _:
            return {}


def create_vector_store(settings: Settings) -> VectorStore:
    return VectorStore(VectorStoreConfig(
        persist_directory=settings.chroma_persist_dir,
        collection_name=settings.chroma_collection,
    ))


async def open_graph(settings: Settings) -> GraphStoreBackend:
    """
    Open the configured graph store.

    Raises:
        GraphStoreError: If Neo4j cannot be reached
    """
    match settings.graph_backend:
        case GraphBackend.NEO4J:
            store = Neo4jGraphStore(
                uri=settings.neo4j_uri,
                user=settings.neo4j_user,
                password=settings.neo4j_password,
                database=settings.neo4j_database,
                timeout_seconds=settings.graph_timeout_seconds,
            )
            await store.connect()
            return store
        case GraphBackend.NETWORKX:
            logger.warning("Using the networkx graph store: graph traversal queries are unavailable")
            return GraphStore(persist_path=settings.graph_persist_path)
        case _:
            raise ValueError(f"Unsupported graph backend: {settings.graph_backend}")


def create_embedder(settings: Settings) -> LlamaIndexEmbedder:
    return LlamaIndexEmbedder(
        create_embedding_model(settings),
        timeout_seconds=settings.llm_timeout_seconds,
    )


@dataclass
class Services:
    """Everything a request handler may depend on."""

    settings: Settings
    vector_store: VectorStore
    graph: GraphStoreBackend
    embedder: LlamaIndexEmbedder
    generator: TextGenerator
    directory: NetworkDirectory
    engine: QueryEngine

    @classmethod
    def assemble(
        cls,
        settings: Settings,
        vector_store: VectorStore,
        graph: GraphStoreBackend,
        embedder: LlamaIndexEmbedder,
        generator: TextGenerator,
    ) -> "Services":
        """Wire the directory and query engine around already-open clients."""
        rag = RagPipeline(
            embedder=embedder,
            index=vector_store,
            resolver=graph,
            generator=generator,
            top_k=settings.rag_top_k,
            threshold=settings.rag_similarity_threshold,
            fallback_count=settings.rag_fallback_count,
            context_max_chars=settings.rag_context_max_chars,
        )
        cypher = CypherPipeline(
            generator=generator,
            executor=graph,
            result_limit=settings.cypher_result_limit,
        )
        return cls(
            settings=settings,
            vector_store=vector_store,
            graph=graph,
            embedder=embedder,
            generator=generator,
            directory=NetworkDirectory(graph, vector_store, embedder),
            engine=QueryEngine(rag=rag, cypher=cypher),
        )

    @classmethod
    async def open(cls, settings: Settings) -> "Services":
        """
        Construct and connect all clients.

        Raises:
            LLMFactoryError: If a model backend is misconfigured
            GraphStoreError: If the graph store cannot be reached
        """
        settings.ensure_directories()

        vector_store = create_vector_store(settings)
        graph = await open_graph(settings)
        try:
            embedder = create_embedder(settings)
            generator = LlamaIndexGenerator(
                create_llm(settings),
                timeout_seconds=settings.llm_timeout_seconds,
                json_kwargs=_json_kwargs(settings.llm_backend),
            )
        except Exception:
            await graph.close()
            raise
        return cls.assemble(settings, vector_store, graph, embedder, generator)

    async def close(self) -> None:
        await self.graph.close()
