"""
Structured Logging with Rich.

One handler for the API, the query engine and the CLI scripts.
"""

import logging
from functools import lru_cache

from rich.console import Console
from rich.logging import RichHandler

# Chatty client libraries that would otherwise drown out query traces
_NOISY_LOGGERS = ("httpx", "httpcore", "chromadb", "neo4j", "openai", "urllib3")


def setup_logging(level: str = "INFO") -> None:
    """
    Configure root logger with Rich handler.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    console = Console(stderr=True)

    logging.basicConfig(
        level=level,
        format="%(name)s | %(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console,
                rich_tracebacks=True,
                tracebacks_show_locals=False,
                show_time=True,
                show_path=False,
            )
        ],
        force=True,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@lru_cache(maxsize=128)
def get_logger(name: str) -> logging.Logger:
    """Get a (cached) logger for a module name, typically ``__name__``."""
    return logging.getLogger(name)


class LogContext:
    """
    Context manager that stamps extra fields on every log record.

    Usage:
        with LogContext(logger, mode="auto", user_id="u-123"):
            logger.info("Planning query")
    """

    def __init__(self, logger: logging.Logger, **context: str | int | float | None) -> None:
        self.logger = logger
        self.context = context
        self._old_factory: logging.LogRecordFactory | None = None

    def __enter__(self) -> "LogContext":
        self._old_factory = logging.getLogRecordFactory()
        old_factory = self._old_factory
        context = self.context

        def factory(*args, **kwargs) -> logging.LogRecord:  # type: ignore[no-untyped-def]
            record = old_factory(*args, **kwargs)
            for key, value in context.items():
                setattr(record, key, value)
            return record

        logging.setLogRecordFactory(factory)
        return self

    def __exit__(self, *args: object) -> None:
        if self._old_factory:
            logging.setLogRecordFactory(self._old_factory)
