"""Query Engine: planner, retrieval pipelines and safety validation."""

from meetgraph.query.cypher import CypherPipeline, GraphRow
from meetgraph.query.errors import (
    InvalidQueryError,
    PipelineError,
    QueryEngineError,
    QueryFailedError,
)
from meetgraph.query.generation import GenerationError, LlamaIndexGenerator, TextGenerator
from meetgraph.query.planner import QueryEngine, has_relationship_intent
from meetgraph.query.rag import RagCandidate, RagPipeline
from meetgraph.query.safety import find_forbidden_keywords, is_safe_query
from meetgraph.query.schemas import (
    MODE_RAG_FALLBACK,
    AIQueryRequest,
    AIQueryResponse,
    AIQueryResult,
    EventRef,
    OutcomeStatus,
    PipelineOutcome,
    QueryMode,
)

__all__ = [
    # Planner
    "QueryEngine",
    "has_relationship_intent",
    # Pipelines
    "RagPipeline",
    "RagCandidate",
    "CypherPipeline",
    "GraphRow",
    "LlamaIndexGenerator",
    "TextGenerator",
    "GenerationError",
    # Safety
    "is_safe_query",
    "find_forbidden_keywords",
    # Schemas
    "AIQueryRequest",
    "AIQueryResponse",
    "AIQueryResult",
    "EventRef",
    "QueryMode",
    "MODE_RAG_FALLBACK",
    "OutcomeStatus",
    "PipelineOutcome",
    # Errors
    "QueryEngineError",
    "InvalidQueryError",
    "PipelineError",
    "QueryFailedError",
]
