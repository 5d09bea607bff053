"""
Tests for Neo4j session handling.

No server needed: the driver is replaced by an in-memory stand-in that
records how its sessions were opened and whether they were closed.
"""

import asyncio
from typing import Any

import neo4j
import pytest
from neo4j.exceptions import Neo4jError

from meetgraph.knowledge.graph_store import GraphStoreError
from meetgraph.knowledge.neo4j_store import Neo4jGraphStore
from meetgraph.query.cypher import CypherPipeline
from meetgraph.query.schemas import OutcomeStatus

STATEMENT = "MATCH (me:Person {id: $userId})-[r:MET_AT]->(p:Person) RETURN p LIMIT 20"


class FakeRecord:
    def __init__(self, values: dict[str, Any]) -> None:
        self.values = values

    def data(self) -> dict[str, Any]:
        return dict(self.values)


class FakeResult:
    def __init__(self, records: list[FakeRecord]) -> None:
        self.records = records

    async def fetch(self, n: int) -> list[FakeRecord]:
        return self.records[:n]


class FakeSession:
    """Session whose ``run`` answers, raises or hangs."""

    def __init__(self, records: list[dict[str, Any]], error: Exception | None, delay: float) -> None:
        self.records = records
        self.error = error
        self.delay = delay
        self.closed = False
        self.runs: list[tuple[str, dict[str, Any]]] = []

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        self.closed = True

    async def run(self, statement: str, params: dict[str, Any]) -> FakeResult:
        self.runs.append((statement, params))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return FakeResult([FakeRecord(r) for r in self.records])


class FakeDriver:
    def __init__(
        self,
        records: list[dict[str, Any]] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.records = records or []
        self.error = error
        self.delay = delay
        self.sessions: list[FakeSession] = []
        self.access_modes: list[str] = []

    def session(self, database: str | None = None, default_access_mode: str = neo4j.WRITE_ACCESS) -> FakeSession:
        session = FakeSession(self.records, self.error, self.delay)
        self.sessions.append(session)
        self.access_modes.append(default_access_mode)
        return session

    async def close(self) -> None:
        pass


def _store(driver: FakeDriver, timeout_seconds: float = 5.0) -> Neo4jGraphStore:
    store = Neo4jGraphStore("bolt://localhost:7687", "neo4j", "test", timeout_seconds=timeout_seconds)
    store._driver = driver
    return store


class TestTraversalSessions:
    """A traversal session is read-only and closed on every exit path."""

    @pytest.mark.asyncio
    async def test_closed_after_success(self) -> None:
        driver = FakeDriver(records=[{"p": {"id": f"p-{i}", "name": f"P{i}"}} for i in range(5)])
        store = _store(driver)

        rows = await store.run_traversal(STATEMENT, {"userId": "u-1"}, limit=3)

        assert [row["p"]["id"] for row in rows] == ["p-0", "p-1", "p-2"]
        assert driver.access_modes == [neo4j.READ_ACCESS]
        assert driver.sessions[0].runs == [(STATEMENT, {"userId": "u-1"})]
        assert driver.sessions[0].closed

    @pytest.mark.asyncio
    async def test_closed_after_driver_error(self) -> None:
        driver = FakeDriver(error=Neo4jError("Invalid input"))
        store = _store(driver)

        with pytest.raises(GraphStoreError):
            await store.run_traversal(STATEMENT, {"userId": "u-1"})

        assert driver.sessions[0].closed

    @pytest.mark.asyncio
    async def test_closed_after_timeout(self) -> None:
        driver = FakeDriver(delay=1.0)
        store = _store(driver, timeout_seconds=0.05)

        with pytest.raises(GraphStoreError, match="timed out"):
            await store.run_traversal(STATEMENT, {"userId": "u-1"})

        assert driver.sessions[0].closed

    @pytest.mark.asyncio
    async def test_unconnected_store_is_a_graph_error(self) -> None:
        store = Neo4jGraphStore("bolt://localhost:7687", "neo4j", "test")

        with pytest.raises(GraphStoreError, match="not connected"):
            await store.run_traversal(STATEMENT)


class TestTraversalFailuresInPipeline:
    """Store failures surface as ERROR outcomes of the graph pipeline."""

    @pytest.mark.asyncio
    async def test_timeout_is_an_error_outcome(self, generator, llm) -> None:
        driver = FakeDriver(delay=1.0)
        pipeline = CypherPipeline(generator, _store(driver, timeout_seconds=0.05))
        llm.queue(STATEMENT)

        outcome = await pipeline.run("Who have I met?", user_id="u-1")

        assert outcome.status is OutcomeStatus.ERROR
        assert "timed out" in str(outcome.error)
        assert driver.sessions[0].closed

    @pytest.mark.asyncio
    async def test_driver_error_is_an_error_outcome(self, generator, llm) -> None:
        driver = FakeDriver(error=Neo4jError("Invalid input"))
        pipeline = CypherPipeline(generator, _store(driver))
        llm.queue(STATEMENT)

        outcome = await pipeline.run("Who have I met?", user_id="u-1")

        assert outcome.status is OutcomeStatus.ERROR
        assert driver.sessions[0].closed
