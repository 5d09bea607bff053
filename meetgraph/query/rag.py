"""
Semantic Retrieval Pipeline (RAG).

1. Embed the query
2. Retrieve the nearest embedding records above the similarity threshold
3. Resolve record owners to people, with their attendance history
4. Ask the generation model for a ranked, explained JSON answer
5. If that answer cannot be parsed or keeps nobody, fall back to the
   closest records
"""

import json
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError

from meetgraph.knowledge.embeddings import EmbeddingProvider
from meetgraph.knowledge.schemas import Person
from meetgraph.knowledge.vector_store import VectorHit
from meetgraph.query.errors import PipelineError
from meetgraph.query.generation import TextGenerator, strip_code_fences
from meetgraph.query.schemas import AIQueryResult, PipelineOutcome, QueryMode
from meetgraph.utils.logger import get_logger

logger = get_logger(__name__)

NO_RESULTS_SUMMARY = "No relevant contacts found."
FALLBACK_SUMMARY = "Found relevant contacts based on your query."
DEFAULT_SUMMARY = "Found relevant contacts."

WHY_MAX_CHARS = 100


# ============================================================================
# Prompts
# ============================================================================

RAG_SYSTEM_PROMPT = """You are an assistant that helps users recall who they met at networking events.
Given the context of people and meeting notes, answer the user's query concisely.

Output ONLY a valid JSON object in exactly this format (no markdown, no code blocks, no other text):
{
  "results": [
    {
      "id": "person id from the candidates list",
      "name": "Full Name",
      "company": "Company Name",
      "jobTitle": "Job Title",
      "why": "Brief explanation of why this person matches",
      "event": {"name": "Event Name"},
      "score": 0.95
    }
  ],
  "summary": "A brief summary of the findings"
}

Only include people from the candidates list. Order results from best to worst match.
"""

RAG_USER_PROMPT = """## Context:
{context}

## Candidates:
{candidates}

## User query:
{query}
"""


# ============================================================================
# Collaborators
# ============================================================================

class VectorIndex(Protocol):
    """Nearest-neighbour search over embedding records."""

    async def asearch(
        self, embedding: list[float], threshold: float | None, limit: int
    ) -> list[VectorHit]: ...


class PersonResolver(Protocol):
    """Resolves owner IDs to people, deduplicated in first-seen order."""

    async def resolve_persons(self, ids: list[str]) -> list[Person]: ...


@dataclass
class RagCandidate:
    """A retrieved record joined to the person who owns it."""

    hit: VectorHit
    person: Person

    def to_result(self) -> AIQueryResult:
        return AIQueryResult(
            id=self.person.id,
            name=self.person.name,
            company=self.person.company,
            job_title=self.person.job_title,
            why=self.hit.text[:WHY_MAX_CHARS],
            score=1.0 - self.hit.distance,
        )


def build_context(hits: list[VectorHit], max_chars: int) -> str:
    """One line per record, stopping before the block would exceed ``max_chars``."""
    lines: list[str] = []
    used = 0
    for hit in hits:
        line = f"- {hit.text} (relevance: {hit.similarity:.2f})"
        if lines and used + len(line) + 1 > max_chars:
            break
        lines.append(line[:max_chars])
        used += len(line) + 1
    return "\n".join(lines)


def _describe_candidate(person: Person) -> str:
    parts = [f"id: {person.id}", person.name]
    if person.headline:
        parts.append(person.headline)
    if person.events:
        parts.append("attended: " + ", ".join(e.name for e in person.events))
    return "- " + " | ".join(parts)


def parse_summary(raw: str) -> dict[str, Any] | None:
    """The model's JSON object, or None if it is not one."""
    try:
        parsed = json.loads(strip_code_fences(raw))
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


# ============================================================================
# Pipeline
# ============================================================================

class RagPipeline:
    """
    Semantic contact search.

    Usage:
        rag = RagPipeline(embedder, vector_store, graph, generator)
        outcome = await rag.run("Who works in AI?")
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        index: VectorIndex,
        resolver: PersonResolver,
        generator: TextGenerator,
        top_k: int = 20,
        threshold: float | None = 0.7,
        fallback_count: int = 5,
        context_max_chars: int = 6000,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.resolver = resolver
        self.generator = generator
        self.top_k = top_k
        self.threshold = threshold
        self.fallback_count = fallback_count
        self.context_max_chars = context_max_chars

    async def run(self, query: str, user_id: str | None = None) -> PipelineOutcome:
        """
        Answer a query from the embedding index.

        Provider and store failures come back as an ERROR outcome.
        """
        mode = QueryMode.RAG.value
        try:
            return await self._run(query)
        except Exception as e:
            logger.error(f"RAG pipeline failed: {e}")
            return PipelineOutcome.failed(mode, PipelineError(mode, str(e)))

    async def _run(self, query: str) -> PipelineOutcome:
        mode = QueryMode.RAG.value

        vector = await self.embedder.embed(query)
        hits = await self.index.asearch(vector, self.threshold, self.top_k)
        logger.info(f"RAG retrieved {len(hits)} records")
        if not hits:
            return PipelineOutcome.empty(mode, NO_RESULTS_SUMMARY)

        persons = await self.resolver.resolve_persons([hit.owner_id for hit in hits])
        if not persons:
            logger.warning("No retrieved record resolved to a person")
            return PipelineOutcome.empty(mode, NO_RESULTS_SUMMARY)
        by_id = {person.id: person for person in persons}

        user_prompt = RAG_USER_PROMPT.format(
            context=build_context(hits, self.context_max_chars),
            candidates="\n".join(_describe_candidate(p) for p in persons),
            query=query,
        )
        raw = await self.generator.generate_json(RAG_SYSTEM_PROMPT, user_prompt)

        parsed = parse_summary(raw)
        if parsed is None:
            logger.warning("Summarizer output was not valid JSON, using closest records")
            results = self._fallback_results(hits, by_id)
            return PipelineOutcome.success(mode, results, FALLBACK_SUMMARY)

        results = self._model_results(parsed.get("results"), by_id)
        if not results:
            logger.warning("Summarizer kept no retrieved contact, using closest records")
            return PipelineOutcome.success(mode, self._fallback_results(hits, by_id), FALLBACK_SUMMARY)

        summary = parsed.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            summary = DEFAULT_SUMMARY
        return PipelineOutcome.success(mode, results, summary)

    def _fallback_results(
        self,
        hits: list[VectorHit],
        by_id: dict[str, Person],
    ) -> list[AIQueryResult]:
        """The closest records' owners, one result per person."""
        results: list[AIQueryResult] = []
        seen: set[str] = set()
        for hit in hits:
            person = by_id.get(hit.owner_id)
            if person is None or person.id in seen:
                continue
            seen.add(person.id)
            results.append(RagCandidate(hit=hit, person=person).to_result())
            if len(results) >= self.fallback_count:
                break
        return results

    def _model_results(
        self,
        items: Any,
        by_id: dict[str, Person],
    ) -> list[AIQueryResult]:
        """
        The model's result items for retrieved people.

        Items without a retrieved ``id`` are dropped. Malformed optional
        fields are dropped from an item, blank ones are filled from the
        stored profile.
        """
        if not isinstance(items, list):
            return []

        results: list[AIQueryResult] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            person = by_id.get(item.get("id")) if isinstance(item.get("id"), str) else None
            if person is None:
                logger.debug(f"Dropping result for unretrieved person {item.get('id')!r}")
                continue

            fields = _clean_item(item, person)
            try:
                result = AIQueryResult.model_validate(fields)
            except ValidationError as e:
                bad = {err["loc"][0] for err in e.errors() if err["loc"]} - {"id"}
                logger.debug(f"Dropping malformed fields {sorted(map(str, bad))} for {person.id}")
                for key in bad:
                    fields.pop(key, None)
                fields = _clean_item(fields, person)
                try:
                    result = AIQueryResult.model_validate(fields)
                except ValidationError as retry_error:
                    logger.debug(f"Dropping malformed result item: {retry_error.error_count()} errors")
                    continue
            results.append(result)
        return results


def _clean_item(item: dict[str, Any], person: Person) -> dict[str, Any]:
    """Coerce a bare event name and fill blank profile fields from the person."""
    fields = dict(item)
    job_title = fields.pop("job_title", None)
    fields["jobTitle"] = fields.get("jobTitle") or job_title
    event = fields.get("event")
    if isinstance(event, str):
        fields["event"] = {"name": event} if event.strip() else None
    for key, value in (("name", person.name), ("company", person.company), ("jobTitle", person.job_title)):
        if not fields.get(key):
            fields[key] = value
    return fields
