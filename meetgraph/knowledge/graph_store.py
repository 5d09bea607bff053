"""
Graph Store - NetworkX Integration.

Keeps the networking graph in process: Person and Event nodes, ATTENDED edges
(Person -> Event) and MET_AT edges (Person <-> Person, stored as a pair).
Used for local runs and tests; it answers the directory operations but cannot
execute traversal statements, which need :class:`Neo4jGraphStore`.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import networkx as nx

from meetgraph.knowledge.schemas import (
    Attendance,
    AttendedEvent,
    Event,
    Meeting,
    MetContact,
    Person,
    RelationshipType,
)
from meetgraph.utils.logger import get_logger

logger = get_logger(__name__)

PERSON = "Person"
EVENT = "Event"


class GraphStoreError(Exception):
    """Raised when graph store operations fail."""
    pass


class GraphNotFoundError(GraphStoreError):
    """Raised when a referenced person or event does not exist."""
    pass


class GraphStore:
    """
    NetworkX-based graph store for the networking graph.

    Node keys are ``"Person:<id>"`` / ``"Event:<id>"`` so person and event IDs
    never collide. Methods that mirror the Neo4j store are coroutines so the
    two are interchangeable behind the directory.

    Usage:
        store = GraphStore(persist_path=Path("data/graphs/network.json"))
        await store.add_person(alice)
        await store.join_event(alice.id, event.id)
        await store.record_meeting(alice.id, bob.id, note="talked about ML")
    """

    def __init__(self, persist_path: Path | None = None) -> None:
        """
        Initialize the graph store.

        Args:
            persist_path: Optional node-link JSON file to load from and save to
        """
        self.persist_path = persist_path
        self._graph: nx.DiGraph = nx.DiGraph()

        if persist_path and persist_path.exists():
            self._load()

    @property
    def graph(self) -> nx.DiGraph:
        """Get the underlying NetworkX graph."""
        return self._graph

    @staticmethod
    def _key(kind: str, node_id: str) -> str:
        return f"{kind}:{node_id}"

    def _node_data(self, kind: str, node_id: str) -> dict[str, Any] | None:
        key = self._key(kind, node_id)
        if not self._graph.has_node(key):
            return None
        return self._graph.nodes[key]

    def _require(self, kind: str, node_id: str) -> str:
        key = self._key(kind, node_id)
        if not self._graph.has_node(key):
            raise GraphNotFoundError(f"{kind} {node_id} not found")
        return key

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def add_person(self, person: Person) -> Person:
        """Create or update a Person node. Attendance history is not stored on the node."""
        stored = person.model_copy(update={"events": []})
        self._graph.add_node(
            self._key(PERSON, person.id),
            kind=PERSON,
            email=person.email.lower(),
            data=stored.model_dump(mode="json"),
        )
        logger.debug(f"Upserted person node: {person.name} ({person.id})")
        return stored

    async def get_person(self, person_id: str) -> Person | None:
        data = self._node_data(PERSON, person_id)
        if data is None:
            return None
        return Person.model_validate(data["data"])

    async def list_persons(self) -> list[Person]:
        return [
            Person.model_validate(data["data"])
            for _, data in self._graph.nodes(data=True)
            if data.get("kind") == PERSON
        ]

    async def find_person_by_email(self, email: str) -> Person | None:
        """Case-insensitive email lookup."""
        if not email:
            return None
        wanted = email.lower()
        for _, data in self._graph.nodes(data=True):
            if data.get("kind") == PERSON and data.get("email") == wanted:
                return Person.model_validate(data["data"])
        return None

    async def add_event(self, event: Event) -> Event:
        """Create an Event node. An existing ID is left untouched."""
        existing = self._node_data(EVENT, event.id)
        if existing is not None:
            logger.debug(f"Event {event.id} already exists, keeping original")
            return Event.model_validate(existing["data"])

        self._graph.add_node(
            self._key(EVENT, event.id),
            kind=EVENT,
            data=event.model_dump(mode="json"),
        )
        logger.debug(f"Added event node: {event.name} ({event.id})")
        return event

    async def get_event(self, event_id: str) -> Event | None:
        data = self._node_data(EVENT, event_id)
        if data is None:
            return None
        return Event.model_validate(data["data"])

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    async def join_event(
        self,
        person_id: str,
        event_id: str,
        joined_at: datetime | None = None,
    ) -> Attendance:
        """
        Record attendance. Joining the same event again returns the original
        attendance instead of adding a second edge.
        """
        source = self._require(PERSON, person_id)
        target = self._require(EVENT, event_id)

        if self._graph.has_edge(source, target):
            edge = self._graph.edges[source, target]
            return Attendance(person_id=person_id, event_id=event_id, joined_at=edge["joined_at"])

        attendance = Attendance(person_id=person_id, event_id=event_id)
        if joined_at is not None:
            attendance.joined_at = joined_at

        self._graph.add_edge(
            source,
            target,
            relationship_type=RelationshipType.ATTENDED.value,
            joined_at=attendance.joined_at.isoformat(),
        )
        logger.debug(f"{person_id} --[ATTENDED]--> {event_id}")
        return attendance

    async def attendance_count(self, person_id: str, event_id: str) -> int:
        source = self._key(PERSON, person_id)
        target = self._key(EVENT, event_id)
        return 1 if self._graph.has_edge(source, target) else 0

    async def get_attendees(self, event_id: str) -> list[Person]:
        target = self._require(EVENT, event_id)
        return [
            Person.model_validate(self._graph.nodes[source]["data"])
            for source, _, data in self._graph.in_edges(target, data=True)
            if data.get("relationship_type") == RelationshipType.ATTENDED.value
        ]

    def _attended_events(self, person_key: str) -> list[AttendedEvent]:
        events: list[AttendedEvent] = []
        for _, target, data in self._graph.out_edges(person_key, data=True):
            if data.get("relationship_type") != RelationshipType.ATTENDED.value:
                continue
            event = Event.model_validate(self._graph.nodes[target]["data"])
            events.append(AttendedEvent(id=event.id, name=event.name, date=event.date))
        return events

    async def record_meeting(
        self,
        person_a_id: str,
        person_b_id: str,
        note: str = "",
        event_id: str | None = None,
        at: datetime | None = None,
    ) -> tuple[Meeting, Meeting]:
        """
        Record that two people met.

        Writes MET_AT in both directions with the same note, timestamp and
        event. Recording the same pair again overwrites both directions.
        """
        if person_a_id == person_b_id:
            raise GraphStoreError("Cannot record a meeting with yourself")

        key_a = self._require(PERSON, person_a_id)
        key_b = self._require(PERSON, person_b_id)

        forward = Meeting(person_id=person_a_id, other_id=person_b_id, note=note, event_id=event_id)
        if at is not None:
            forward.at = at
        backward = forward.reversed()

        for (source, target) in ((key_a, key_b), (key_b, key_a)):
            self._graph.add_edge(
                source,
                target,
                relationship_type=RelationshipType.MET_AT.value,
                note=note,
                at=forward.at.isoformat(),
                event_id=event_id,
            )

        logger.debug(f"{person_a_id} <--[MET_AT]--> {person_b_id}")
        return forward, backward

    async def get_meetings(self, person_id: str) -> list[MetContact]:
        """Everyone this person has met, newest first."""
        data = self._node_data(PERSON, person_id)
        if data is None:
            return []

        contacts: list[MetContact] = []
        for _, target, edge in self._graph.out_edges(self._key(PERSON, person_id), data=True):
            if edge.get("relationship_type") != RelationshipType.MET_AT.value:
                continue
            contacts.append(MetContact(
                person=Person.model_validate(self._graph.nodes[target]["data"]),
                note=edge.get("note") or "",
                at=edge["at"],
                event_id=edge.get("event_id"),
            ))

        contacts.sort(key=lambda c: c.at, reverse=True)
        return contacts

    # ------------------------------------------------------------------
    # Query engine collaborators
    # ------------------------------------------------------------------

    async def resolve_persons(self, ids: list[str]) -> list[Person]:
        """
        Resolve person IDs, deduplicated in first-seen order, each with its
        attendance history. Unknown IDs are skipped.
        """
        persons: list[Person] = []
        seen: set[str] = set()
        for person_id in ids:
            if person_id in seen:
                continue
            seen.add(person_id)
            data = self._node_data(PERSON, person_id)
            if data is None:
                continue
            person = Person.model_validate(data["data"])
            person.events = self._attended_events(self._key(PERSON, person_id))
            persons.append(person)
        return persons

    async def run_traversal(
        self,
        statement: str,
        params: dict[str, Any] | None = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """NetworkX has no statement language; traversals need the Neo4j backend."""
        raise GraphStoreError("Traversal statements require the neo4j graph backend")

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def node_count(self) -> int:
        """Get total number of nodes."""
        return self._graph.number_of_nodes()

    def edge_count(self) -> int:
        """Get total number of edges."""
        return self._graph.number_of_edges()

    def save(self, path: Path | None = None) -> None:
        """
        Save the graph to disk.

        Args:
            path: Path to save to (uses persist_path if not specified)
        """
        save_path = path or self.persist_path
        if not save_path:
            raise GraphStoreError("No save path specified")

        save_path.parent.mkdir(parents=True, exist_ok=True)

        data = nx.node_link_data(self._graph, edges="links")

        with open(save_path, "w") as f:
            json.dump(data, f, indent=2, default=str)

        logger.info(f"Saved graph to {save_path} ({self.node_count()} nodes, {self.edge_count()} edges)")

    def _load(self) -> None:
        """Load the graph from disk."""
        if not self.persist_path or not self.persist_path.exists():
            return

        try:
            with open(self.persist_path) as f:
                data = json.load(f)

            self._graph = nx.node_link_graph(data, directed=True, multigraph=False, edges="links")
            logger.info(
                f"Loaded graph from {self.persist_path} "
                f"({self.node_count()} nodes, {self.edge_count()} edges)"
            )
        except (OSError, ValueError, KeyError, nx.NetworkXError) as e:
            raise GraphStoreError(f"Failed to load graph from {self.persist_path}: {e}") from e

    async def close(self) -> None:
        """Persist on shutdown when a path is configured."""
        if self.persist_path:
            self.save()

    def clear(self) -> None:
        """Clear all nodes and edges."""
        self._graph.clear()
        logger.info("Cleared graph store")
