"""
Identity store – maps upstream (CRVS) ids onto registry-local ids.

Lookups are read-only and idempotent. A store that cannot answer raises
IdentityLookupFailure; callers must never substitute a guessed id.
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from crvs_bridge.errors import IdentityLookupFailure
from crvs_bridge.models.registry import Event, EventParticipant, Person

logger = logging.getLogger(__name__)


class IdentityStore(Protocol):
    def lookup_local_id(self, external_id: str) -> str | None: ...

    def lookup_event_id(self, crvs_event_uuid: str) -> str | None: ...


class InMemoryIdentityStore:
    """Dict-backed store for tests and offline dry runs."""

    def __init__(
        self,
        persons: dict[str, str] | None = None,
        events: dict[str, str] | None = None,
    ):
        self.persons = dict(persons or {})
        self.events = dict(events or {})

    def lookup_local_id(self, external_id: str) -> str | None:
        return self.persons.get(external_id)

    def lookup_event_id(self, crvs_event_uuid: str) -> str | None:
        return self.events.get(crvs_event_uuid)


class SqlIdentityStore:
    """
    Resolves identities against the registry tables.

    A person matches when the external id already is a registry person id
    (OpenCRVS echoes our id back as EXTERNAL_PERSON_ID) or when a participant
    row recorded it as ``crvs_person_id``.
    """

    def __init__(self, db: Session):
        self.db = db

    def lookup_local_id(self, external_id: str) -> str | None:
        try:
            person_id = self.db.scalar(select(Person.id).where(Person.id == external_id))
            if person_id is None:
                person_id = self.db.scalar(
                    select(EventParticipant.person_id)
                    .where(EventParticipant.crvs_person_id == external_id)
                    .order_by(EventParticipant.created_at, EventParticipant.id)
                    .limit(1)
                )
        except SQLAlchemyError as exc:
            logger.error("Person lookup failed for %s: %s", external_id, exc)
            raise IdentityLookupFailure(f"person lookup failed for {external_id}") from exc
        return person_id

    def lookup_event_id(self, crvs_event_uuid: str) -> str | None:
        try:
            return self.db.scalar(
                select(Event.id).where(Event.crvs_event_uuid == crvs_event_uuid).limit(1)
            )
        except SQLAlchemyError as exc:
            logger.error("Event lookup failed for %s: %s", crvs_event_uuid, exc)
            raise IdentityLookupFailure(f"event lookup failed for {crvs_event_uuid}") from exc
