"""
Network Directory.

The write side of the networking graph: creating events, joining them,
editing profiles and recording meetings, with the embedding records kept in
step. The query engine only ever reads what this produces.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from meetgraph.knowledge.embeddings import (
    EmbeddingError,
    LlamaIndexEmbedder,
    meeting_embedding_text,
    profile_embedding_text,
)
from meetgraph.knowledge.graph_store import GraphNotFoundError, GraphStoreError
from meetgraph.knowledge.schemas import (
    Attendance,
    EmbeddingRecord,
    Event,
    Meeting,
    MetContact,
    OwnerType,
    Person,
    PersonStatus,
)
from meetgraph.knowledge.vector_store import VectorStore, VectorStoreError
from meetgraph.utils.logger import get_logger

logger = get_logger(__name__)


class DirectoryError(Exception):
    """Raised when a directory operation is rejected."""
    pass


class NotFoundError(DirectoryError):
    """Raised when a person or event does not exist."""
    pass


class GraphBackend(Protocol):
    """What both graph stores (NetworkX, Neo4j) provide."""

    async def add_person(self, person: Person) -> Person: ...
    async def get_person(self, person_id: str) -> Person | None: ...
    async def list_persons(self) -> list[Person]: ...
    async def find_person_by_email(self, email: str) -> Person | None: ...
    async def add_event(self, event: Event) -> Event: ...
    async def get_event(self, event_id: str) -> Event | None: ...
    async def join_event(
        self, person_id: str, event_id: str, joined_at: datetime | None = None
    ) -> Attendance: ...
    async def attendance_count(self, person_id: str, event_id: str) -> int: ...
    async def get_attendees(self, event_id: str) -> list[Person]: ...
    async def record_meeting(
        self,
        person_a_id: str,
        person_b_id: str,
        note: str = "",
        event_id: str | None = None,
        at: datetime | None = None,
    ) -> tuple[Meeting, Meeting]: ...
    async def get_meetings(self, person_id: str) -> list[MetContact]: ...
    async def resolve_persons(self, ids: list[str]) -> list[Person]: ...
    async def run_traversal(
        self, statement: str, params: dict[str, Any] | None = None, limit: int = 20
    ) -> list[dict[str, Any]]: ...
    async def close(self) -> None: ...


@dataclass
class JoinResult:
    """Outcome of joining an event."""

    person: Person
    event: Event
    attendance: Attendance
    created: bool


_EDITABLE_FIELDS = ("name", "email", "company", "job_title", "bio", "interests")


class NetworkDirectory:
    """
    Coordinates graph writes with embedding upkeep.

    Embedding failures never undo a graph write: they are logged and the
    record can be regenerated later by the backfill script.

    Usage:
        directory = NetworkDirectory(graph, vector_store, embedder)
        result = await directory.join_event(event.id, name="Ada", email="ada@x.io")
        await directory.record_meeting(result.person.id, other_id, note="ML chat")
    """

    def __init__(
        self,
        graph: GraphBackend,
        vector_store: VectorStore,
        embedder: LlamaIndexEmbedder,
    ) -> None:
        self.graph = graph
        self.vector_store = vector_store
        self.embedder = embedder

    async def _require_person(self, person_id: str) -> Person:
        person = await self.graph.get_person(person_id)
        if person is None:
            raise NotFoundError(f"Person {person_id} not found")
        return person

    async def create_event(self, event: Event) -> Event:
        stored = await self.graph.add_event(event)
        logger.info(f"Event ready: {stored.name} ({stored.id})")
        return stored

    async def get_event(self, event_id: str) -> Event:
        event = await self.graph.get_event(event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")
        return event

    async def get_attendees(self, event_id: str) -> list[Person]:
        await self.get_event(event_id)
        return await self.graph.get_attendees(event_id)

    async def get_profile(self, person_id: str) -> Person:
        """A profile with its attendance history."""
        resolved = await self.graph.resolve_persons([person_id])
        if not resolved:
            raise NotFoundError(f"Person {person_id} not found")
        return resolved[0]

    async def join_event(
        self,
        event_id: str,
        name: str,
        email: str = "",
        company: str = "",
        job_title: str = "",
        bio: str = "",
        interests: str = "",
    ) -> JoinResult:
        """
        Join an event, creating the profile or updating the one with this email.

        Joining twice leaves a single attendance edge.
        """
        if not name or not name.strip():
            raise DirectoryError("Name is required")

        event = await self.graph.get_event(event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")

        existing = await self.graph.find_person_by_email(email) if email else None
        fields = {
            "name": name.strip(),
            "email": email,
            "company": company,
            "job_title": job_title,
            "bio": bio,
        }
        if existing is not None:
            if interests:
                fields["interests"] = interests
            person = existing.model_copy(update=fields)
        else:
            person = Person(interests=interests, **fields)

        person = await self.graph.add_person(person)
        try:
            attendance = await self.graph.join_event(person.id, event.id)
        except GraphNotFoundError as e:
            raise NotFoundError(str(e)) from e

        logger.info(
            f"{person.name} joined {event.name} "
            f"({'new profile' if existing is None else 'existing profile'})"
        )
        await self.refresh_profile_embedding(person)
        return JoinResult(person=person, event=event, attendance=attendance, created=existing is None)

    async def update_profile(self, person_id: str, **changes: str) -> Person:
        """Edit profile fields; the stale profile embedding is replaced."""
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise DirectoryError(f"Unknown profile fields: {', '.join(sorted(unknown))}")

        person = await self._require_person(person_id)
        updates = {k: v for k, v in changes.items() if v is not None}
        if "name" in updates and not updates["name"].strip():
            raise DirectoryError("Name cannot be empty")

        person = await self.graph.add_person(person.model_copy(update=updates))
        await self.refresh_profile_embedding(person)
        return person

    async def deactivate(self, person_id: str) -> Person:
        """Soft-delete: the profile stays, marked inactive."""
        person = await self._require_person(person_id)
        return await self.graph.add_person(
            person.model_copy(update={"status": PersonStatus.INACTIVE})
        )

    async def record_meeting(
        self,
        person_a_id: str,
        person_b_id: str,
        note: str = "",
        event_id: str | None = None,
    ) -> tuple[Meeting, Meeting]:
        """Record a symmetric meeting and embed its note for both people."""
        if person_a_id == person_b_id:
            raise DirectoryError("Cannot record a meeting with yourself")

        person_a = await self._require_person(person_a_id)
        person_b = await self._require_person(person_b_id)

        try:
            meetings = await self.graph.record_meeting(
                person_a.id, person_b.id, note=note or "", event_id=event_id
            )
        except GraphNotFoundError as e:
            raise NotFoundError(str(e)) from e
        except GraphStoreError as e:
            raise DirectoryError(str(e)) from e

        logger.info(f"Recorded meeting: {person_a.name} <-> {person_b.name}")

        text = meeting_embedding_text(person_a, person_b, note)
        if text:
            try:
                vector = await self.embedder.embed_document(text)
                records = [
                    EmbeddingRecord(owner_type=OwnerType.NOTE, owner_id=owner, embedding=vector, text=text)
                    for owner in (person_a.id, person_b.id)
                ]
                await asyncio.to_thread(self.vector_store.add_records, records)
            except (EmbeddingError, VectorStoreError) as e:
                logger.error(f"Meeting note embedding failed, meeting kept: {e}")

        return meetings

    async def get_meetings(self, person_id: str) -> list[MetContact]:
        await self._require_person(person_id)
        return await self.graph.get_meetings(person_id)

    async def refresh_profile_embedding(self, person: Person) -> bool:
        """
        Replace the person's profile embedding.

        Returns:
            True if a record was written, False if skipped or failed
        """
        text = profile_embedding_text(person)
        if text is None:
            await asyncio.to_thread(self.vector_store.delete_owner, OwnerType.PERSON, person.id)
            logger.debug(f"No profile text for {person.id}, embedding skipped")
            return False

        try:
            vector = await self.embedder.embed_document(text)
            record = EmbeddingRecord(
                owner_type=OwnerType.PERSON,
                owner_id=person.id,
                embedding=vector,
                text=text,
            )
            await asyncio.to_thread(
                self.vector_store.replace_owner_records, OwnerType.PERSON, person.id, [record]
            )
        except (EmbeddingError, VectorStoreError) as e:
            logger.error(f"Profile embedding failed for {person.id}: {e}")
            return False
        return True
