#!/usr/bin/env python3
"""
CLI Script for Profile Embedding Backfill.

Embeds every profile that has no person embedding yet (e.g. people created
before the embedding backend was configured, or whose embedding failed).

Usage:
    python scripts/backfill_vectors.py
    python scripts/backfill_vectors.py --dry-run
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.table import Table
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config import get_settings
from app.services import create_embedder, create_vector_store, open_graph
from meetgraph.knowledge.embeddings import EmbeddingError, LlamaIndexEmbedder, profile_embedding_text
from meetgraph.knowledge.graph_store import GraphStoreError
from meetgraph.knowledge.schemas import EmbeddingRecord, OwnerType
from meetgraph.knowledge.vector_store import VectorStoreError
from meetgraph.utils.logger import get_logger, setup_logging

console = Console()
logger = get_logger(__name__)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(EmbeddingError),
    reraise=True,
)
async def embed_with_retry(embedder: LlamaIndexEmbedder, text: str) -> list[float]:
    return await embedder.embed_document(text)


async def backfill(dry_run: bool = False) -> dict[str, int]:
    """
    Embed profiles missing a person embedding.

    Returns:
        Counts of embedded, skipped and failed profiles
    """
    settings = get_settings()
    vector_store = create_vector_store(settings)
    graph = await open_graph(settings)
    counts = {"embedded": 0, "skipped": 0, "failed": 0}

    try:
        embedder = create_embedder(settings)
        persons = await graph.list_persons()
        already = await asyncio.to_thread(vector_store.owner_ids, OwnerType.PERSON)
        console.print(f"Found {len(persons)} profiles, {len(already)} already embedded")

        for person in persons:
            text = profile_embedding_text(person)
            if person.id in already or text is None:
                counts["skipped"] += 1
                continue
            if dry_run:
                console.print(f"[dim]Would embed {person.name} ({person.id})[/dim]")
                counts["embedded"] += 1
                continue

            try:
                vector = await embed_with_retry(embedder, text)
                record = EmbeddingRecord(
                    owner_type=OwnerType.PERSON,
                    owner_id=person.id,
                    embedding=vector,
                    text=text,
                )
                await asyncio.to_thread(
                    vector_store.replace_owner_records, OwnerType.PERSON, person.id, [record]
                )
                counts["embedded"] += 1
            except (EmbeddingError, VectorStoreError) as e:
                console.print(f"[red]✗[/red] {person.name} ({person.id}): {e}")
                logger.error(f"Backfill failed for {person.id}: {e}")
                counts["failed"] += 1
    finally:
        await graph.close()

    return counts


def _display_counts(counts: dict[str, int], dry_run: bool) -> None:
    table = Table(title="Backfill (dry run)" if dry_run else "Backfill")
    table.add_column("Result", style="cyan")
    table.add_column("Profiles", style="green", justify="right")
    table.add_row("Embedded", str(counts["embedded"]))
    table.add_row("Skipped", str(counts["skipped"]))
    table.add_row("Failed", str(counts["failed"]))
    console.print(table)


async def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Embed profiles that have no person embedding"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the profiles that would be embedded without writing",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    args = parser.parse_args()
    setup_logging(args.log_level)

    console.print("[bold]MeetGraph - Embedding Backfill[/]")
    console.print("=" * 50)

    try:
        counts = await backfill(dry_run=args.dry_run)
    except GraphStoreError as e:
        console.print(f"[red]Graph store unavailable: {e}[/red]")
        sys.exit(1)

    _display_counts(counts, args.dry_run)
    if counts["failed"]:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
