"""
FHIR-shaped contracts for the OpenCRVS birth-registration webhook.

Two layers:
- WEBHOOK_ENVELOPE_SCHEMA – a JSON schema used for presence checks on the
  envelope only (ids, event context, entry list). Resource bodies are not
  schema-validated.
- Pydantic models for the four resource kinds the pipeline reads (Task,
  Composition, Patient, RelatedPerson). Everything else in the bundle is
  ignored.
"""

from __future__ import annotations

from typing import Any, get_origin

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

BIRTH_REGISTRATION_NUMBER = "BIRTH_REGISTRATION_NUMBER"
EXTERNAL_PERSON_ID = "EXTERNAL_PERSON_ID"

REGISTRATION_NUMBER_SYSTEM = "http://opencrvs.org/specs/id/birth-registration-number"
TRACKING_ID_SYSTEM = "http://opencrvs.org/specs/id/birth-tracking-id"
PLACE_OF_BIRTH_EXTENSION = "http://opencrvs.org/specs/extension/placeOfBirth"


WEBHOOK_ENVELOPE_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "OpenCRVS webhook envelope",
    "type": "object",
    "required": ["id", "event"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "timestamp": {"type": ["string", "null"]},
        "event": {
            "type": "object",
            "required": ["context"],
            "properties": {
                "hub": {
                    "type": "object",
                    "properties": {
                        "topic": {"type": "string"},
                        "eventLocation": {"type": ["object", "null"]},
                    },
                },
                "context": {
                    "type": "array",
                    "minItems": 1,
                    "items": {
                        "type": "object",
                        "required": ["entry"],
                        "properties": {"entry": {"type": "array"}},
                    },
                },
            },
        },
    },
}


# ---------------------------------------------------------------------------
# Shared datatypes
# ---------------------------------------------------------------------------

class FHIRModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _null_lists_to_empty(cls, data: Any) -> Any:
        # Senders write null for empty repeating elements (name, identifier, coding, ...)
        if not isinstance(data, dict):
            return data
        nulled = [
            name
            for name, info in cls.model_fields.items()
            if name in data and data[name] is None and get_origin(info.annotation) is list
        ]
        if not nulled:
            return data
        return {**data, **{name: [] for name in nulled}}


class Coding(FHIRModel):
    system: str | None = None
    code: str | None = None
    display: str | None = None


class CodeableConcept(FHIRModel):
    coding: list[Coding] = []
    text: str | None = None

    def has_code(self, code: str) -> bool:
        return any(c.code == code for c in self.coding)

    @property
    def first_code(self) -> str | None:
        return self.coding[0].code if self.coding else None


class Identifier(FHIRModel):
    system: str | None = None
    value: str | None = None
    type: CodeableConcept | None = None

    @property
    def type_code(self) -> str | None:
        return self.type.first_code if self.type else None

    def has_type(self, code: str) -> bool:
        return bool(self.type and self.type.has_code(code))


class HumanName(FHIRModel):
    use: str | None = None
    given: list[str | None] = []
    family: str | None = None

    @field_validator("given", mode="before")
    @classmethod
    def _wrap_given(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value or []

    @field_validator("family", mode="before")
    @classmethod
    def _join_family(cls, value: Any) -> Any:
        # Older OpenCRVS payloads send family as a list of parts
        if isinstance(value, list):
            return " ".join(part for part in value if part) or None
        return value


class Reference(FHIRModel):
    reference: str | None = None

    @property
    def target_id(self) -> str | None:
        """
        Resource id behind 'Patient/<id>', 'Patient/<id>/_history/<v>' or
        'urn:uuid:<id>' style references.
        """
        if not self.reference:
            return None
        if self.reference.startswith("urn:uuid:"):
            return self.reference[len("urn:uuid:"):] or None
        parts = self.reference.split("/")
        # The id is the segment after the resource type, even when versioned
        return (parts[1] if len(parts) > 1 else parts[0]) or None


class Extension(FHIRModel):
    url: str | None = None
    valueReference: Reference | None = None
    valueString: str | None = None


class LocationAddress(FHIRModel):
    city: str | None = None
    country: str | None = None


class EventLocation(FHIRModel):
    """Flattened location block carried in ``event.hub.eventLocation``."""

    type: str | None = None
    name: str | None = None
    address: LocationAddress | None = None


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------

class Resource(FHIRModel):
    resourceType: str
    id: str | None = None


class Patient(Resource):
    active: bool | None = None
    gender: str | None = None
    birthDate: str | None = None
    name: list[HumanName] = []
    identifier: list[Identifier] = []
    extension: list[Extension] = []
    # Registry-local id attached by the caller when the person is already known
    localId: str | None = None

    @property
    def primary_name(self) -> HumanName | None:
        return self.name[0] if self.name else None

    def has_identifier_type(self, code: str) -> bool:
        return any(i.has_type(code) for i in self.identifier)

    def identifier_value(self, code: str) -> str | None:
        for identifier in self.identifier:
            if identifier.has_type(code) and identifier.value:
                return identifier.value
        return None

    def extension_reference(self, url: str) -> str | None:
        for ext in self.extension:
            if ext.url == url and ext.valueReference:
                return ext.valueReference.target_id
        return None


class RelatedPerson(Resource):
    relationship: CodeableConcept | None = None
    patient: Reference | None = None

    def has_relationship(self, code: str) -> bool:
        return bool(self.relationship and self.relationship.has_code(code))

    @property
    def patient_id(self) -> str | None:
        return self.patient.target_id if self.patient else None


class Task(Resource):
    identifier: list[Identifier] = []
    focus: Reference | None = None
    lastModified: str | None = None
    businessStatus: CodeableConcept | None = None
    # Duplicate registrations computed upstream, passed through as-is
    duplicates: list[Any] = []

    def identifier_by_system(self, system: str) -> str | None:
        for identifier in self.identifier:
            if identifier.system == system and identifier.value:
                return identifier.value
        return None

    @property
    def duplicate_composition_ids(self) -> list[str]:
        ids = []
        for dup in self.duplicates:
            if isinstance(dup, dict):
                dup = dup.get("compositionId")
            if isinstance(dup, str) and dup:
                ids.append(dup)
        return ids


class Composition(Resource):
    pass


RESOURCE_MODELS: dict[str, type[Resource]] = {
    "Task": Task,
    "Composition": Composition,
    "Patient": Patient,
    "RelatedPerson": RelatedPerson,
}
