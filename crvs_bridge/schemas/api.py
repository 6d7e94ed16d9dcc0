"""Pydantic models for API responses."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel


class DeliveryResponse(BaseModel):
    id: str
    bundle_id: str | None = None
    topic: str | None = None
    status: str
    error: str | None = None
    summary: dict[str, Any] | None = None
    received_at: datetime
    processed_at: datetime | None = None


class IdentifierOut(BaseModel):
    type: str | None = None
    value: str | None = None
    event: str | None = None


class ParticipationOut(BaseModel):
    event_id: str
    role: str
    crvs_person_id: str | None = None
    status: str | None = None


class PersonResponse(BaseModel):
    id: str
    given_name: str
    family_name: str
    gender: str | None = None
    dob: date | None = None
    place_of_birth: str | None = None
    identifiers: list[IdentifierOut] = []
    status: str
    participations: list[ParticipationOut] = []


class HealthResponse(BaseModel):
    status: str = "healthy"
    environment: str
    database: str = "connected"
