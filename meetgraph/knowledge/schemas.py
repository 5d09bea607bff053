"""
Pydantic Schemas for the Knowledge Layer.

People, events and the two relationship kinds the networking graph records
(attendance and meetings), plus the embedding records behind semantic search.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class PersonStatus(str, Enum):
    """Profiles are never hard-deleted, only deactivated."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class OwnerType(str, Enum):
    """What an embedding record was generated from."""

    PERSON = "person"
    NOTE = "note"


class RelationshipType(str, Enum):
    """Edge kinds in the networking graph."""

    ATTENDED = "ATTENDED"  # Person -> Event
    MET_AT = "MET_AT"  # Person -> Person, always stored as a pair


class Event(BaseModel):
    """An event or session that people attend."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id, description="Immutable event ID")
    name: str = Field(..., min_length=1)
    date: datetime | None = Field(default=None)
    location: str = Field(default="")
    capacity: int | None = Field(default=None, ge=0)


class Person(BaseModel):
    """A networking profile."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_id)
    name: str = Field(..., min_length=1)
    email: str = Field(default="")
    company: str = Field(default="")
    job_title: str = Field(default="", alias="jobTitle")
    bio: str = Field(default="")
    interests: str = Field(default="")
    status: PersonStatus = Field(default=PersonStatus.ACTIVE)

    # Filled in by resolvers that join attendance history
    events: list["AttendedEvent"] = Field(default_factory=list)

    @property
    def headline(self) -> str:
        """'Job at Company', or whichever half is known."""
        if self.job_title and self.company:
            return f"{self.job_title} at {self.company}"
        return self.job_title or self.company


class AttendedEvent(BaseModel):
    """Slim event projection attached to a person's attendance history."""

    id: str
    name: str
    date: datetime | None = None


class Attendance(BaseModel):
    """A (person, event) attendance edge. Unique per pair."""

    person_id: str
    event_id: str
    joined_at: datetime = Field(default_factory=_utcnow)


class Meeting(BaseModel):
    """
    One direction of a MET_AT edge.

    Recording a meeting always produces two of these (A->B and B->A) sharing
    note, timestamp and event ID.
    """

    person_id: str
    other_id: str
    note: str = Field(default="")
    at: datetime = Field(default_factory=_utcnow)
    event_id: str | None = Field(default=None)

    def reversed(self) -> "Meeting":
        return self.model_copy(update={"person_id": self.other_id, "other_id": self.person_id})


class MetContact(BaseModel):
    """A person someone has met, as returned by 'who have I met'."""

    person: Person
    note: str = ""
    at: datetime
    event_id: str | None = None


class EmbeddingRecord(BaseModel):
    """An embedded piece of text owned by a person or a meeting note."""

    id: str = Field(default_factory=_new_id)
    owner_type: OwnerType
    owner_id: str
    embedding: list[float] = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def dimension(self) -> int:
        return len(self.embedding)


Person.model_rebuild()
