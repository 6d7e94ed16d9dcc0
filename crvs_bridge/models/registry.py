"""
Person registry tables.

Ids are strings: registry ids are UUIDs, but a caller may attach an existing
registry id of its own. ``identifiers``, ``relationship_details`` and
``metadata`` hold JSON-encoded text exactly as produced by the assembler.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from crvs_bridge.models.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Person – one registry identity
# ---------------------------------------------------------------------------
class Person(Base):
    __tablename__ = "person"

    id = Column(String(64), primary_key=True, default=_uuid)
    given_name = Column(Text, nullable=False, default="")
    family_name = Column(Text, nullable=False, default="")
    gender = Column(String(16))
    dob = Column(Date)
    place_of_birth = Column(Text)
    place_of_birth_uuid = Column(String(64))
    identifiers = Column(Text, comment="JSON list of {type, value[, event]}")
    status = Column(String(16), nullable=False, default="review", comment="active | review")
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    participations = relationship("EventParticipant", back_populates="person", lazy="selectin")


# ---------------------------------------------------------------------------
# Event – a civil-registration event (or a seeded placeholder birth)
# ---------------------------------------------------------------------------
class Event(Base):
    __tablename__ = "event"

    id = Column(String(64), primary_key=True, default=_uuid)
    event_type = Column(String(32), nullable=False)
    event_date = Column(DateTime(timezone=True))
    location = Column(Text)
    source = Column(String(32), comment="OpenCRVS | seed")
    metadata_ = Column("metadata", Text, comment="JSON-encoded")
    crvs_event_uuid = Column(String(64), comment="Placeholder when source=seed")
    duplicates = Column(JSON)
    status = Column(String(64))
    last_update_at = Column(DateTime(timezone=True))
    remarks = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    participants = relationship("EventParticipant", back_populates="event", lazy="selectin")

    __table_args__ = (Index("ix_event_crvs_event_uuid", "crvs_event_uuid"),)


# ---------------------------------------------------------------------------
# Event participant – person <-> event link with a role
# ---------------------------------------------------------------------------
class EventParticipant(Base):
    __tablename__ = "event_participant"

    id = Column(String(64), primary_key=True, default=_uuid)
    person_id = Column(String(64), ForeignKey("person.id"), nullable=False)
    event_id = Column(String(64), ForeignKey("event.id"), nullable=False)
    role = Column(String(16), nullable=False, comment="subject | mother | father | informant")
    relationship_details = Column(Text, comment="JSON-encoded")
    crvs_person_id = Column(String(64))
    status = Column(String(16), default="active")
    remarks = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    person = relationship("Person", back_populates="participations")
    event = relationship("Event", back_populates="participants")

    __table_args__ = (
        Index("ix_participant_crvs_person_id", "crvs_person_id"),
        Index("ix_participant_event", "event_id"),
    )


# ---------------------------------------------------------------------------
# Webhook delivery – every inbound notification, kept for replay
# ---------------------------------------------------------------------------
class WebhookDelivery(Base):
    __tablename__ = "webhook_delivery"

    id = Column(String(64), primary_key=True, default=_uuid)
    bundle_id = Column(String(128))
    topic = Column(String(64))
    status = Column(
        String(16), nullable=False, default="received",
        comment="received | processed | ignored | failed",
    )
    error = Column(Text)
    raw_body = Column(Text, nullable=False, comment="Decoded JSON body as received")
    summary = Column(JSON, comment="Pipeline task summary and insert counts")
    received_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    processed_at = Column(DateTime(timezone=True))

    __table_args__ = (Index("ix_delivery_bundle", "bundle_id"),)
