"""
Utility modules for MeetGraph.

Provides LLM/embedding factory and logging utilities.
"""

from meetgraph.utils.llm_factory import (
    LLMFactoryError,
    create_embedding_model,
    create_llm,
)
from meetgraph.utils.logger import (
    LogContext,
    get_logger,
    setup_logging,
)

__all__ = [
    # LLM Factory
    "create_llm",
    "create_embedding_model",
    "LLMFactoryError",
    # Logging
    "get_logger",
    "setup_logging",
    "LogContext",
]
