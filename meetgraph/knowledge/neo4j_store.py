"""
Graph Store - Neo4j Integration.

Production backend for the networking graph. Besides the directory writes it
executes the read-only traversal statements produced by the graph retrieval
pipeline. Every statement runs in its own session, opened and closed inside
the call.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import neo4j
from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncSession
from neo4j.exceptions import Neo4jError, DriverError

from meetgraph.knowledge.graph_store import GraphNotFoundError, GraphStoreError
from meetgraph.knowledge.schemas import (
    Attendance,
    AttendedEvent,
    Event,
    Meeting,
    MetContact,
    Person,
)
from meetgraph.utils.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Statements
# ============================================================================

UPSERT_PERSON = """
MERGE (p:Person {id: $id})
SET p.name = $name,
    p.email = $email,
    p.company = $company,
    p.jobTitle = $jobTitle,
    p.bio = $bio,
    p.interests = $interests,
    p.status = $status
RETURN p
"""

GET_PERSON = "MATCH (p:Person {id: $id}) RETURN p"

LIST_PERSONS = "MATCH (p:Person) RETURN p ORDER BY p.name"

FIND_PERSON_BY_EMAIL = """
MATCH (p:Person)
WHERE toLower(p.email) = toLower($email)
RETURN p
LIMIT 1
"""

CREATE_EVENT = """
MERGE (e:Event {id: $id})
ON CREATE SET e.name = $name,
              e.date = $date,
              e.location = $location,
              e.capacity = $capacity
RETURN e
"""

GET_EVENT = "MATCH (e:Event {id: $id}) RETURN e"

JOIN_EVENT = """
MATCH (p:Person {id: $personId}), (e:Event {id: $eventId})
MERGE (p)-[r:ATTENDED]->(e)
ON CREATE SET r.joinedAt = $joinedAt
RETURN r.joinedAt AS joinedAt
"""

ATTENDANCE_COUNT = """
MATCH (:Person {id: $personId})-[r:ATTENDED]->(:Event {id: $eventId})
RETURN count(r) AS n
"""

GET_ATTENDEES = """
MATCH (p:Person)-[:ATTENDED]->(:Event {id: $eventId})
RETURN p
"""

RECORD_MEETING = """
MATCH (a:Person {id: $personAId}), (b:Person {id: $personBId})
MERGE (a)-[r1:MET_AT]->(b)
MERGE (b)-[r2:MET_AT]->(a)
SET r1.note = $note, r1.at = $at, r1.eventId = $eventId,
    r2.note = $note, r2.at = $at, r2.eventId = $eventId
RETURN a.name AS nameA, b.name AS nameB
"""

GET_MEETINGS = """
MATCH (me:Person {id: $personId})-[r:MET_AT]->(other:Person)
RETURN other AS p, r.note AS note, r.at AS at, r.eventId AS eventId
ORDER BY r.at DESC
"""

RESOLVE_PERSONS = """
MATCH (p:Person)
WHERE p.id IN $ids
OPTIONAL MATCH (p)-[:ATTENDED]->(e:Event)
RETURN p, collect(e {.id, .name, .date}) AS events
"""


def _native(value: Any) -> Any:
    """Convert neo4j temporal values to Python ones."""
    if hasattr(value, "to_native"):
        return value.to_native()
    return value


def _person_from_props(props: dict[str, Any]) -> Person:
    return Person(
        id=props["id"],
        name=props.get("name") or "",
        email=props.get("email") or "",
        company=props.get("company") or "",
        job_title=props.get("jobTitle") or "",
        bio=props.get("bio") or "",
        interests=props.get("interests") or "",
        status=props.get("status") or "active",
    )


def _event_from_props(props: dict[str, Any]) -> Event:
    return Event(
        id=props["id"],
        name=props.get("name") or "",
        date=_native(props.get("date")),
        location=props.get("location") or "",
        capacity=props.get("capacity"),
    )


class Neo4jGraphStore:
    """
    Neo4j-backed graph store.

    The driver is created by :meth:`connect` and released by :meth:`close`;
    the API does both in its lifespan. Sessions are per call.

    Usage:
        store = Neo4jGraphStore(uri, user, password)
        await store.connect()
        rows = await store.run_traversal("MATCH (p:Person) RETURN p LIMIT 5")
        await store.close()
    """

    def __init__(
        self,
        uri: str,
        user: str,
        password: str,
        database: str | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.uri = uri
        self.database = database
        self.timeout_seconds = timeout_seconds
        self._auth = (user, password)
        self._driver: AsyncDriver | None = None

    async def connect(self) -> None:
        """Create the driver and check the server is reachable."""
        if self._driver is not None:
            return
        logger.info(f"Connecting to Neo4j at {self.uri}")
        self._driver = AsyncGraphDatabase.driver(self.uri, auth=self._auth)
        try:
            await self._driver.verify_connectivity()
        except (Neo4jError, DriverError, OSError) as e:
            await self._driver.close()
            self._driver = None
            raise GraphStoreError(f"Neo4j connection failed: {e}") from e
        logger.info("Neo4j connected")

    @property
    def driver(self) -> AsyncDriver:
        if self._driver is None:
            raise GraphStoreError("Neo4j driver is not connected; call connect() first")
        return self._driver

    @asynccontextmanager
    async def session(self, read_only: bool = False) -> AsyncIterator[AsyncSession]:
        """A session scoped to one unit of work; closed on every exit path."""
        access_mode = neo4j.READ_ACCESS if read_only else neo4j.WRITE_ACCESS
        async with self.driver.session(
            database=self.database,
            default_access_mode=access_mode,
        ) as session:
            yield session

    async def _execute(
        self,
        statement: str,
        params: dict[str, Any],
        read_only: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        # Auto-commit: the driver never retries these
        async def work(session: AsyncSession) -> list[dict[str, Any]]:
            result = await session.run(statement, params)
            if limit is None:
                records = [record async for record in result]
            else:
                records = await result.fetch(limit)
            return [record.data() for record in records]

        try:
            async with self.session(read_only=read_only) as session:
                return await asyncio.wait_for(work(session), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise GraphStoreError(
                f"Graph statement timed out after {self.timeout_seconds}s"
            ) from e
        except (Neo4jError, DriverError) as e:
            raise GraphStoreError(f"Graph statement failed: {e}") from e

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def add_person(self, person: Person) -> Person:
        await self._execute(UPSERT_PERSON, {
            "id": person.id,
            "name": person.name,
            "email": person.email,
            "company": person.company,
            "jobTitle": person.job_title,
            "bio": person.bio,
            "interests": person.interests,
            "status": person.status.value,
        })
        return person.model_copy(update={"events": []})

    async def get_person(self, person_id: str) -> Person | None:
        rows = await self._execute(GET_PERSON, {"id": person_id}, read_only=True)
        return _person_from_props(rows[0]["p"]) if rows else None

    async def list_persons(self) -> list[Person]:
        rows = await self._execute(LIST_PERSONS, {}, read_only=True)
        return [_person_from_props(row["p"]) for row in rows]

    async def find_person_by_email(self, email: str) -> Person | None:
        if not email:
            return None
        rows = await self._execute(FIND_PERSON_BY_EMAIL, {"email": email}, read_only=True)
        return _person_from_props(rows[0]["p"]) if rows else None

    async def add_event(self, event: Event) -> Event:
        rows = await self._execute(CREATE_EVENT, {
            "id": event.id,
            "name": event.name,
            "date": event.date,
            "location": event.location,
            "capacity": event.capacity,
        })
        return _event_from_props(rows[0]["e"]) if rows else event

    async def get_event(self, event_id: str) -> Event | None:
        rows = await self._execute(GET_EVENT, {"id": event_id}, read_only=True)
        return _event_from_props(rows[0]["e"]) if rows else None

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    async def join_event(
        self,
        person_id: str,
        event_id: str,
        joined_at: datetime | None = None,
    ) -> Attendance:
        rows = await self._execute(JOIN_EVENT, {
            "personId": person_id,
            "eventId": event_id,
            "joinedAt": joined_at or datetime.now(timezone.utc),
        })
        if not rows:
            raise GraphNotFoundError(f"Person {person_id} or event {event_id} not found")
        return Attendance(
            person_id=person_id,
            event_id=event_id,
            joined_at=_native(rows[0]["joinedAt"]),
        )

    async def attendance_count(self, person_id: str, event_id: str) -> int:
        rows = await self._execute(
            ATTENDANCE_COUNT,
            {"personId": person_id, "eventId": event_id},
            read_only=True,
        )
        return int(rows[0]["n"]) if rows else 0

    async def get_attendees(self, event_id: str) -> list[Person]:
        rows = await self._execute(GET_ATTENDEES, {"eventId": event_id}, read_only=True)
        return [_person_from_props(row["p"]) for row in rows]

    async def record_meeting(
        self,
        person_a_id: str,
        person_b_id: str,
        note: str = "",
        event_id: str | None = None,
        at: datetime | None = None,
    ) -> tuple[Meeting, Meeting]:
        if person_a_id == person_b_id:
            raise GraphStoreError("Cannot record a meeting with yourself")

        forward = Meeting(person_id=person_a_id, other_id=person_b_id, note=note, event_id=event_id)
        if at is not None:
            forward.at = at

        rows = await self._execute(RECORD_MEETING, {
            "personAId": person_a_id,
            "personBId": person_b_id,
            "note": note,
            "at": forward.at,
            "eventId": event_id,
        })
        if not rows:
            raise GraphNotFoundError("One or both people not found")
        return forward, forward.reversed()

    async def get_meetings(self, person_id: str) -> list[MetContact]:
        rows = await self._execute(GET_MEETINGS, {"personId": person_id}, read_only=True)
        return [
            MetContact(
                person=_person_from_props(row["p"]),
                note=row.get("note") or "",
                at=_native(row["at"]),
                event_id=row.get("eventId"),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Query engine collaborators
    # ------------------------------------------------------------------

    async def resolve_persons(self, ids: list[str]) -> list[Person]:
        """Resolve IDs to people with attendance history, in first-seen order."""
        unique = list(dict.fromkeys(ids))
        if not unique:
            return []
        rows = await self._execute(RESOLVE_PERSONS, {"ids": unique}, read_only=True)

        by_id: dict[str, Person] = {}
        for row in rows:
            person = _person_from_props(row["p"])
            person.events = [
                AttendedEvent(id=e["id"], name=e.get("name") or "", date=_native(e.get("date")))
                for e in row.get("events") or []
                if e and e.get("id")
            ]
            by_id[person.id] = person
        return [by_id[i] for i in unique if i in by_id]

    async def run_traversal(
        self,
        statement: str,
        params: dict[str, Any] | None = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """
        Execute a read-only traversal statement and return at most ``limit`` rows.

        Nodes come back as property dicts (``Record.data()``).
        """
        logger.debug(f"Running traversal: {statement}")
        return await self._execute(statement, params or {}, read_only=True, limit=limit)

    async def close(self) -> None:
        if self._driver is not None:
            await self._driver.close()
            self._driver = None
            logger.info("Neo4j driver closed")
