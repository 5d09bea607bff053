"""
Embedding Provider.

Thin async wrapper over a llama_index embedding model, plus the builders for
the text we embed for profiles and meeting notes.
"""

import asyncio
import math
from typing import Protocol

from llama_index.core.embeddings import BaseEmbedding

from meetgraph.knowledge.schemas import Person
from meetgraph.utils.logger import get_logger

logger = get_logger(__name__)


class EmbeddingError(Exception):
    """Raised when the provider fails or returns an unusable vector."""
    pass


class EmbeddingProvider(Protocol):
    """Maps text to a fixed-length vector."""

    async def embed(self, text: str) -> list[float]: ...


def validate_vector(vector: object) -> list[float]:
    """Coerce a provider response to ``list[float]`` or raise EmbeddingError."""
    if vector is None:
        raise EmbeddingError("Embedding provider returned nothing")
    try:
        values = [float(v) for v in vector]  # type: ignore[union-attr]
    except (TypeError, ValueError) as e:
        raise EmbeddingError(f"Malformed embedding response: {e}") from e
    if not values:
        raise EmbeddingError("Embedding provider returned an empty vector")
    if not all(math.isfinite(v) for v in values):
        raise EmbeddingError("Embedding contains non-finite values")
    return values


class LlamaIndexEmbedder:
    """
    Embedding provider backed by a llama_index ``BaseEmbedding``.

    ``embed`` is used for queries, ``embed_document`` for stored text; most
    models treat them the same, instruction-tuned ones (e.g. BGE) do not.
    """

    def __init__(self, model: BaseEmbedding, timeout_seconds: float | None = None) -> None:
        self.model = model
        self.timeout_seconds = timeout_seconds

    async def _call(self, coro) -> list[float]:  # type: ignore[no-untyped-def]
        try:
            vector = await asyncio.wait_for(coro, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise EmbeddingError(f"Embedding timed out after {self.timeout_seconds}s") from e
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding provider failed: {e}") from e
        return validate_vector(vector)

    async def embed(self, text: str) -> list[float]:
        return await self._call(self.model.aget_query_embedding(text))

    async def embed_document(self, text: str) -> list[float]:
        return await self._call(self.model.aget_text_embedding(text))


def profile_embedding_text(person: Person) -> str | None:
    """
    Text embedded for a profile, or None when the profile has nothing but a name.

    e.g. "Ada Lovelace. CTO at Acme. Builds compilers. Interests: chess"
    """
    parts = [
        person.name,
        person.headline,
        person.bio,
        f"Interests: {person.interests}" if person.interests else "",
    ]
    text = ". ".join(p.strip() for p in parts if p and p.strip())
    if not text.strip() or text == person.name:
        return None
    return text


def _describe(person: Person) -> str:
    return f"{person.name} ({person.headline})" if person.headline else person.name


def meeting_embedding_text(person_a: Person, person_b: Person, note: str) -> str | None:
    """Text embedded for a meeting note, or None for an empty note."""
    if not note or not note.strip():
        return None
    return f"Meeting between {_describe(person_a)} and {_describe(person_b)}: {note.strip()}"
