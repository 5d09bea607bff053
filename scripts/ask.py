#!/usr/bin/env python3
"""
CLI Script for Natural-Language Contact Queries.

Usage:
    python scripts/ask.py "Who did I meet who works in AI?" --user u-123
    python scripts/ask.py "Who knows about Rust?" --mode rag
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.table import Table

from app.config import get_settings
from app.services import Services
from meetgraph.knowledge.graph_store import GraphStoreError
from meetgraph.query.errors import InvalidQueryError, QueryFailedError
from meetgraph.query.schemas import AIQueryResponse, QueryMode
from meetgraph.utils.llm_factory import LLMFactoryError
from meetgraph.utils.logger import LogContext, get_logger, setup_logging

console = Console()
logger = get_logger(__name__)


def _display_response(response: AIQueryResponse) -> None:
    """Display the ranked results in a table."""
    table = Table(title=f"Results ({response.mode_used})")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Role", style="green")
    table.add_column("Event", style="yellow")
    table.add_column("Why")
    table.add_column("Score", justify="right")

    for i, result in enumerate(response.results, 1):
        role = " at ".join(part for part in (result.job_title, result.company) if part)
        table.add_row(
            str(i),
            result.name,
            role,
            result.event.name if result.event else "",
            result.why,
            f"{result.score:.2f}" if result.score is not None else "",
        )

    if response.results:
        console.print(table)
    console.print(f"\n[bold]{response.summary}[/]")


async def ask(query: str, mode: str, user_id: str | None) -> AIQueryResponse:
    services = await Services.open(get_settings())
    try:
        with LogContext(logger, mode=mode, user_id=user_id):
            return await services.engine.query(query, mode=mode, user_id=user_id)
    finally:
        await services.close()


async def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Ask who you met, or who you should know"
    )
    parser.add_argument("query", help="Natural-language question")
    parser.add_argument(
        "--mode", "-m",
        default=QueryMode.AUTO.value,
        choices=[m.value for m in QueryMode],
        help="Retrieval path",
    )
    parser.add_argument(
        "--user", "-u",
        default=None,
        help="ID of the person asking",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    args = parser.parse_args()
    setup_logging(args.log_level)

    try:
        response = await ask(args.query, args.mode, args.user)
    except InvalidQueryError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    except (QueryFailedError, GraphStoreError, LLMFactoryError) as e:
        console.print(f"[bold red]✗[/] {e}")
        logger.debug(f"Cause: {e.__cause__}")
        sys.exit(1)

    _display_response(response)


if __name__ == "__main__":
    asyncio.run(main())
