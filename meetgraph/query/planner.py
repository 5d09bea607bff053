"""
Query Planner.

Picks the retrieval path for a question and implements the fallback chain:

- ``rag``: semantic search only
- ``cypher``: graph traversal only
- ``auto``: graph traversal first when the question is about relationships,
  falling back to semantic search when it finds nothing or fails;
  semantic search otherwise
"""

import re

from meetgraph.query.cypher import CypherPipeline
from meetgraph.query.errors import InvalidQueryError, QueryFailedError
from meetgraph.query.rag import RagPipeline
from meetgraph.query.schemas import (
    MODE_RAG_FALLBACK,
    AIQueryRequest,
    AIQueryResponse,
    OutcomeStatus,
    PipelineOutcome,
    QueryMode,
)
from meetgraph.utils.logger import get_logger

logger = get_logger(__name__)

RELATIONSHIP_INTENT = re.compile(
    r"\b(met|meet|know|connected|relationship|mutual|both attended)\b",
    re.IGNORECASE,
)


def has_relationship_intent(query: str) -> bool:
    """True if the question asks about who knows or met whom."""
    return RELATIONSHIP_INTENT.search(query) is not None


def _parse_mode(mode: QueryMode | str | None) -> QueryMode:
    if mode is None:
        return QueryMode.AUTO
    try:
        return QueryMode(mode)
    except ValueError as e:
        raise InvalidQueryError(f"Unknown mode: {mode}") from e


class QueryEngine:
    """
    Hybrid query engine over the semantic and graph pipelines.

    Stateless between calls; both pipelines are injected.

    Usage:
        engine = QueryEngine(rag=rag_pipeline, cypher=cypher_pipeline)
        response = await engine.query("Who did I meet who works in AI?", user_id="u-1")
    """

    def __init__(self, rag: RagPipeline, cypher: CypherPipeline) -> None:
        self.rag = rag
        self.cypher = cypher

    async def handle(self, request: AIQueryRequest) -> AIQueryResponse:
        return await self.query(request.query, mode=request.mode, user_id=request.user_id)

    async def query(
        self,
        query: str | None,
        mode: QueryMode | str | None = QueryMode.AUTO,
        user_id: str | None = None,
    ) -> AIQueryResponse:
        """
        Answer a natural-language question.

        Raises:
            InvalidQueryError: Missing or empty query, or unknown mode
            QueryFailedError: No pipeline could produce an answer
        """
        if query is None or not query.strip():
            raise InvalidQueryError("Query is required")
        selected = _parse_mode(mode)

        match selected:
            case QueryMode.RAG:
                outcome = await self.rag.run(query, user_id)
                return self._finish(outcome)
            case QueryMode.CYPHER:
                outcome = await self.cypher.run(query, user_id)
                return self._finish(outcome)
            case QueryMode.AUTO:
                return await self._auto(query, user_id)

    async def _auto(self, query: str, user_id: str | None) -> AIQueryResponse:
        if not has_relationship_intent(query):
            logger.info("Auto mode: no relationship intent, using RAG")
            return self._finish(await self.rag.run(query, user_id))

        logger.info("Auto mode: relationship intent, trying graph traversal first")
        graph_outcome = await self.cypher.run(query, user_id)

        match graph_outcome.status:
            case OutcomeStatus.SUCCESS:
                return graph_outcome.to_response()
            case OutcomeStatus.EMPTY:
                logger.info("Graph traversal found nothing, falling back to RAG")
            case OutcomeStatus.ERROR:
                logger.warning(f"Graph traversal failed, falling back to RAG: {graph_outcome.error}")

        return self._finish(await self.rag.run(query, user_id), mode_used=MODE_RAG_FALLBACK)

    @staticmethod
    def _finish(outcome: PipelineOutcome, mode_used: str | None = None) -> AIQueryResponse:
        if outcome.status is OutcomeStatus.ERROR:
            raise QueryFailedError() from outcome.error
        return outcome.to_response(mode_used)
