"""
Pydantic Schemas for the Query Engine.

The request/response shapes of a natural-language query, and the tagged
outcome each retrieval pipeline hands back to the planner.
"""

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class QueryMode(str, Enum):
    """Which retrieval path to use."""

    AUTO = "auto"
    RAG = "rag"
    CYPHER = "cypher"


# mode_used when auto mode tried the graph first and ended up on RAG
MODE_RAG_FALLBACK = "auto (rag fallback)"


class EventRef(BaseModel):
    """The event a result is associated with."""

    name: str
    date: str | None = None


class AIQueryResult(BaseModel):
    """
    One contact in a query answer.

    Both pipelines normalize into this shape: RAG candidates from the
    summarizer output (or the fallback), graph rows from traversal records.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    company: str = ""
    job_title: str = Field(default="", alias="jobTitle")
    why: str = ""
    event: EventRef | None = None
    met_at: str | None = None
    score: float | None = None


class AIQueryRequest(BaseModel):
    """A natural-language query. ``query`` is validated by the engine, not here."""

    model_config = ConfigDict(populate_by_name=True)

    query: str | None = None
    mode: str | None = QueryMode.AUTO.value
    user_id: str | None = Field(default=None, alias="userId")


class AIQueryResponse(BaseModel):
    """Ranked results, a one-line summary, and the mode that produced them."""

    results: list[AIQueryResult] = Field(default_factory=list)
    summary: str
    mode_used: str


# ============================================================================
# Pipeline Outcomes
# ============================================================================

class OutcomeStatus(str, Enum):
    """Tag on a pipeline outcome; the planner matches on it."""

    SUCCESS = "success"
    EMPTY = "empty"
    ERROR = "error"


@dataclass
class PipelineOutcome:
    """
    What a retrieval pipeline produced.

    Pipelines never raise for provider or store failures: they return an
    ``ERROR`` outcome carrying the cause. Zero results, an unsupported
    request and a rejected statement are all ``EMPTY``.
    """

    status: OutcomeStatus
    mode: str
    summary: str = ""
    results: list[AIQueryResult] = field(default_factory=list)
    error: Exception | None = None

    @classmethod
    def success(cls, mode: str, results: list[AIQueryResult], summary: str) -> "PipelineOutcome":
        if not results:
            return cls.empty(mode, summary)
        return cls(OutcomeStatus.SUCCESS, mode, summary, list(results))

    @classmethod
    def empty(cls, mode: str, summary: str) -> "PipelineOutcome":
        return cls(OutcomeStatus.EMPTY, mode, summary)

    @classmethod
    def failed(cls, mode: str, error: Exception) -> "PipelineOutcome":
        return cls(OutcomeStatus.ERROR, mode, error=error)

    def to_response(self, mode_used: str | None = None) -> AIQueryResponse:
        if self.status is OutcomeStatus.ERROR:
            raise ValueError("An error outcome has no response")
        return AIQueryResponse(
            results=self.results,
            summary=self.summary,
            mode_used=mode_used or self.mode,
        )
