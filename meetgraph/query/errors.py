"""
Query Engine Errors.

Only :class:`InvalidQueryError` and :class:`QueryFailedError` ever reach a
caller. Provider and store failures are wrapped in :class:`PipelineError`
inside a pipeline, then either handled by the planner's fallback or replaced
by the generic failure.
"""


class QueryEngineError(Exception):
    """Base class for query engine errors."""
    pass


class InvalidQueryError(QueryEngineError):
    """Raised for a missing or empty query, or an unknown mode, before any external call."""
    pass


class PipelineError(QueryEngineError):
    """Raised when a retrieval pipeline cannot complete."""

    def __init__(self, pipeline: str, message: str) -> None:
        super().__init__(f"{pipeline} pipeline failed: {message}")
        self.pipeline = pipeline


class QueryFailedError(QueryEngineError):
    """
    The one failure a caller sees when no pipeline could answer.

    The message is fixed; the underlying cause is chained as ``__cause__``
    and never shown to the caller.
    """

    MESSAGE = "Failed to process query"

    def __init__(self) -> None:
        super().__init__(self.MESSAGE)
