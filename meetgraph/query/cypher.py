"""
Graph Retrieval Pipeline.

Translates a natural-language question into a read-only traversal statement,
validates it, runs it against the graph store and normalizes the returned
records into query results.
"""

from dataclasses import dataclass
from typing import Any, Protocol

from meetgraph.query.errors import PipelineError
from meetgraph.query.generation import TextGenerator, strip_code_fences
from meetgraph.query.safety import find_forbidden_keywords
from meetgraph.query.schemas import AIQueryResult, EventRef, PipelineOutcome, QueryMode
from meetgraph.utils.logger import get_logger

logger = get_logger(__name__)

UNSUPPORTED = "UNSUPPORTED"
UNSUPPORTED_SUMMARY = "Could not generate a valid query for this request."
FORBIDDEN_SUMMARY = "Query contains forbidden operations."
GRAPH_WHY = "Found via graph query"

_PERSON_FIELDS = ("id", "name", "company", "jobTitle")
_MET_AT_KEYS = ("met_at", "metAt", "r.note", "note")


def found_summary(count: int) -> str:
    return f"Found {count} matching contact(s) using graph relationships."


# ============================================================================
# Prompts
# ============================================================================

CYPHER_SYSTEM_PROMPT = """You convert natural-language questions into Cypher queries for Neo4j.

## Schema:
- Nodes: Person {{id, name, email, company, jobTitle, bio}}, Event {{id, name, date, location}}
- Relationships: (Person)-[:ATTENDED]->(Event), (Person)-[:MET_AT {{note, at, eventId}}]->(Person)
- MET_AT is stored in both directions, so either direction finds a meeting
- The parameter $userId is the id of the person asking ("I", "me")

## Rules:
- Use ONLY MATCH, WHERE, RETURN, WITH, ORDER BY, DISTINCT and LIMIT
- NEVER use CREATE, DELETE, SET, REMOVE, MERGE, CALL or any other write or procedure
- Bind matched people as p and, when relevant, their event as e
- Return p (and e, and the meeting note as met_at when relevant)
- LIMIT results to {limit}
- If the question cannot be answered from this schema, reply with exactly UNSUPPORTED

Return ONLY the Cypher query. No explanation, no markdown.
"""


# ============================================================================
# Collaborators
# ============================================================================

class TraversalExecutor(Protocol):
    """
    Runs one read-only statement and returns at most ``limit`` records.

    The session is acquired and released inside the call.
    """

    async def run_traversal(
        self, statement: str, params: dict[str, Any] | None = None, limit: int = 20
    ) -> list[dict[str, Any]]: ...


def _stringify(value: Any) -> str | None:
    if value is None:
        return None
    if hasattr(value, "to_native"):
        value = value.to_native()
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _prefixed(record: dict[str, Any], prefix: str) -> dict[str, Any]:
    """``{"p.name": ...}`` style keys, with the prefix dropped."""
    marker = f"{prefix}."
    return {k[len(marker):]: v for k, v in record.items() if k.startswith(marker)}


def _person_projection(record: dict[str, Any]) -> dict[str, Any]:
    node = record.get("p")
    if isinstance(node, dict):
        return node

    projected = _prefixed(record, "p")
    if projected:
        return projected

    flat = {k: record[k] for k in _PERSON_FIELDS if k in record}
    if flat:
        return flat

    for value in record.values():
        if isinstance(value, dict) and ("id" in value or "name" in value):
            return value
    return {}


def _event_projection(record: dict[str, Any]) -> EventRef | None:
    node = record.get("e")
    props = node if isinstance(node, dict) else _prefixed(record, "e")
    name = props.get("name")
    if not name:
        return None
    return EventRef(name=str(name), date=_stringify(props.get("date")))


@dataclass
class GraphRow:
    """A traversal record normalized to a person, an optional event and an optional note."""

    id: str
    name: str
    company: str = ""
    job_title: str = ""
    event: EventRef | None = None
    met_at: str | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "GraphRow | None":
        """None when the record carries neither a person id nor a name."""
        person = _person_projection(record)
        person_id = _stringify(person.get("id")) or ""
        name = _stringify(person.get("name")) or ""
        if not person_id and not name:
            return None

        met_at = next((record[k] for k in _MET_AT_KEYS if record.get(k)), None)
        return cls(
            id=person_id,
            name=name,
            company=_stringify(person.get("company")) or "",
            job_title=_stringify(person.get("jobTitle")) or "",
            event=_event_projection(record),
            met_at=_stringify(met_at),
        )

    def to_result(self) -> AIQueryResult:
        return AIQueryResult(
            id=self.id,
            name=self.name,
            company=self.company,
            job_title=self.job_title,
            why=GRAPH_WHY,
            event=self.event,
            met_at=self.met_at,
        )


# ============================================================================
# Pipeline
# ============================================================================

class CypherPipeline:
    """
    Natural language to graph traversal.

    A generated statement that fails the safety check is logged and never
    executed.

    Usage:
        cypher = CypherPipeline(generator, neo4j_store)
        outcome = await cypher.run("Who did I meet at PyCon?", user_id="u-1")
    """

    def __init__(
        self,
        generator: TextGenerator,
        executor: TraversalExecutor,
        result_limit: int = 20,
    ) -> None:
        self.generator = generator
        self.executor = executor
        self.result_limit = result_limit

    async def generate_statement(self, query: str) -> str:
        """The model's statement with code fences removed (may be empty)."""
        raw = await self.generator.generate_text(
            CYPHER_SYSTEM_PROMPT.format(limit=self.result_limit),
            f"User query: {query}",
        )
        return strip_code_fences(raw)

    async def run(self, query: str, user_id: str | None = None) -> PipelineOutcome:
        mode = QueryMode.CYPHER.value
        try:
            statement = await self.generate_statement(query)
            if not statement or statement == UNSUPPORTED:
                logger.info("No traversal statement for this query")
                return PipelineOutcome.empty(mode, UNSUPPORTED_SUMMARY)

            forbidden = find_forbidden_keywords(statement)
            if forbidden:
                logger.warning(
                    f"Blocked unsafe traversal statement ({', '.join(forbidden)}): {statement}"
                )
                return PipelineOutcome.empty(mode, FORBIDDEN_SUMMARY)

            records = await self.executor.run_traversal(
                statement, {"userId": user_id}, limit=self.result_limit
            )
        except Exception as e:
            logger.error(f"Graph pipeline failed: {e}")
            return PipelineOutcome.failed(mode, PipelineError(mode, str(e)))

        rows = [row for row in (GraphRow.from_record(r) for r in records) if row is not None]
        results = [row.to_result() for row in rows[: self.result_limit]]
        logger.info(f"Traversal returned {len(records)} records, {len(results)} contacts")
        return PipelineOutcome.success(mode, results, found_summary(len(results)))
