"""Normalized records produced for one registration – the persistence contract."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ParticipantRole = Literal["subject", "mother", "father", "informant"]


class PersonRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    given_name: str
    family_name: str
    gender: str
    dob: str | None = None
    place_of_birth: str = "Unknown"
    place_of_birth_uuid: str | None = None
    identifiers: str  # JSON-encoded list of {type, value[, event]}
    status: Literal["active", "review"]
    created_at: str
    updated_at: str


class EventRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    event_type: str
    event_date: str | None = None
    location: str = "Unknown"
    source: str
    metadata: str  # JSON-encoded
    crvs_event_uuid: str
    duplicates: list[str] | None = None
    status: str | None = None
    last_update_at: str | None = None
    remarks: str | None = None
    created_at: str


class ParticipantRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    person_id: str
    event_id: str
    role: ParticipantRole
    relationship_details: str  # JSON-encoded
    crvs_person_id: str | None = None
    status: str = "active"
    remarks: str | None = None
    created_at: str


class WriteSet(BaseModel):
    """
    Everything one registration writes.

    The ``new_*`` collections must be inserted before the primary records:
    primary participants reference person ids that only exist once the
    auxiliary persons land.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    person: PersonRecord = Field(alias="personPayload")
    event: EventRecord = Field(alias="eventPayload")
    participants: list[ParticipantRecord] = Field(alias="participantPayloads")
    new_persons: list[PersonRecord] = Field(default=[], alias="newPersons")
    new_events: list[EventRecord] = Field(default=[], alias="newEvents")
    new_participants: list[ParticipantRecord] = Field(
        default=[], alias="newParticipants"
    )

    def to_payload(self) -> dict[str, Any]:
        """Serialize with the camelCase top-level keys consumers expect."""
        return self.model_dump(by_alias=True)
