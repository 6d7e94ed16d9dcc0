"""
Builds the normalized write-set from extracted resources and resolved ids.

Field mapping follows the registry's import contract:
- names      given parts joined with a space; an unnamed father becomes
             "Unknown Father"
- identifiers NATIONAL_ID (registration number or UNKNOWN) first, then the
             crvs birth identifier, then every non-blank upstream identifier
- place of birth from the hub event location
- auxiliary (new) parties get a review-status person, a seeded birth event
  whose crvs_event_uuid is a placeholder, and a subject participant
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any

from crvs_bridge.etl.extractor import ExtractedResources
from crvs_bridge.etl.resolver import Resolution, ResolvedIdentities, stable_id
from crvs_bridge.schemas.fhir import (
    PLACE_OF_BIRTH_EXTENSION,
    REGISTRATION_NUMBER_SYSTEM,
    TRACKING_ID_SYSTEM,
    EventLocation,
    Patient,
)
from crvs_bridge.schemas.writeset import (
    EventRecord,
    ParticipantRecord,
    PersonRecord,
    WriteSet,
)

UNKNOWN = "UNKNOWN"
UNKNOWN_FATHER_CRVS_ID = "unknown-father-crvs-id"
NEW_PERSON_REMARK = "New person created from CRVS webhook"
PLACEHOLDER_EVENT_REMARK = "invalid crvs_event_uuid"


def to_json(value: Any) -> str:
    # Compact separators and raw UTF-8 match the text the JS importer wrote
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Field mapping helpers
# ---------------------------------------------------------------------------

def given_name(patient: Patient) -> str:
    name = patient.primary_name
    return " ".join(part for part in name.given if part) if name else ""


def family_name(patient: Patient) -> str:
    name = patient.primary_name
    return (name.family or "") if name else ""


def crvs_identifier(crvs_id: str, event_type: str = "birth") -> dict[str, str]:
    return {"type": "crvs", "value": crvs_id, "event": event_type}


def upstream_identifiers(patient: Patient) -> list[dict[str, str]]:
    return [
        {"type": identifier.type_code or UNKNOWN, "value": identifier.value}
        for identifier in patient.identifier
        if identifier.value and identifier.value.strip()
    ]


def place_of_birth(location: EventLocation | None) -> str:
    if location is None:
        return "Unknown"
    if location.type == "HEALTH_FACILITY":
        return f"Health Institution, {location.name or 'Unknown'}"
    if location.type == "PRIVATE_HOME":
        address = location.address
        city = (address.city if address else None) or "Town"
        country = (address.country if address else None) or "Unknown"
        return f"{city}, {country}"
    return "Unknown"


def _participant(
    *,
    person_id: str,
    event_id: str,
    role: str,
    details: dict[str, Any],
    crvs_person_id: str | None,
    now: str,
    status: str = "active",
    remarks: str | None = None,
) -> ParticipantRecord:
    return ParticipantRecord(
        id=stable_id("participant", event_id, role, person_id),
        person_id=person_id,
        event_id=event_id,
        role=role,
        relationship_details=to_json(details),
        crvs_person_id=crvs_person_id,
        status=status,
        remarks=remarks,
        created_at=now,
    )


# ---------------------------------------------------------------------------
# Auxiliary persons
# ---------------------------------------------------------------------------

def auxiliary_records(
    patient: Patient,
    resolution: Resolution,
    now: str,
    *,
    default_gender: str = "",
    placeholder_name: tuple[str, str] = ("", ""),
    crvs_person_id: str | None = None,
) -> tuple[PersonRecord, EventRecord, ParticipantRecord]:
    """Person + seeded birth event + subject link for a newly minted party."""
    crvs_person_id = crvs_person_id or patient.id
    person = PersonRecord(
        id=resolution.local_id,
        given_name=given_name(patient) or placeholder_name[0],
        family_name=family_name(patient) or placeholder_name[1],
        gender=patient.gender or default_gender,
        dob=patient.birthDate,
        place_of_birth="Unknown",
        identifiers=to_json(
            [crvs_identifier(crvs_person_id, "birth"), *upstream_identifiers(patient)]
        ),
        status="review",
        created_at=now,
        updated_at=now,
    )
    birth_event = EventRecord(
        id=stable_id("birth-event", resolution.local_id),
        event_type="birth",
        event_date=patient.birthDate,
        location="Unknown",
        source="seed",
        metadata=to_json({"note": "generated birth by crvs"}),
        # The real birth registration of this party is unknown here
        crvs_event_uuid=str(uuid.uuid4()),
        duplicates=None,
        status=None,
        last_update_at=None,
        remarks=PLACEHOLDER_EVENT_REMARK,
        created_at=now,
    )
    subject = _participant(
        person_id=person.id,
        event_id=birth_event.id,
        role="subject",
        details={"import": "crvs"},
        crvs_person_id=crvs_person_id,
        now=now,
    )
    return person, birth_event, subject


# ---------------------------------------------------------------------------
# Write-set assembly
# ---------------------------------------------------------------------------

def informant_relationship(extracted: ExtractedResources) -> str:
    relation = extracted.informant_relation
    if relation is None or relation.relationship is None:
        return "OTHER"
    return next(
        (c.code for c in relation.relationship.coding if c.code and c.code != "INFORMANT"),
        "OTHER",
    )


def assemble_write_set(
    extracted: ExtractedResources,
    identities: ResolvedIdentities,
    now: str | None = None,
) -> WriteSet:
    """Deterministically build the full write-set; nothing partial is returned."""
    now = now or utc_now()
    task, child, mother, father = (
        extracted.task, extracted.child, extracted.mother, extracted.father,
    )

    registration_number = task.identifier_by_system(REGISTRATION_NUMBER_SYSTEM) or UNKNOWN
    tracking_id = task.identifier_by_system(TRACKING_ID_SYSTEM)
    birth_place = place_of_birth(extracted.event_location)

    child_identifiers = [{"type": "NATIONAL_ID", "value": registration_number}]
    if child.id:
        child_identifiers.append(crvs_identifier(child.id, "birth"))
    child_identifiers.extend(upstream_identifiers(child))

    child_id = stable_id("person", child.id) if child.id else str(uuid.uuid4())
    person = PersonRecord(
        id=child_id,
        given_name=given_name(child),
        family_name=family_name(child),
        gender=child.gender or "",
        dob=child.birthDate,
        place_of_birth=birth_place,
        place_of_birth_uuid=child.extension_reference(PLACE_OF_BIRTH_EXTENSION),
        identifiers=to_json(child_identifiers),
        status="active",
        created_at=now,
        updated_at=now,
    )

    metadata = {"trackingId": tracking_id, "registrationNumber": registration_number}
    event = EventRecord(
        id=stable_id("event", extracted.composition_id),
        event_type="birth",
        event_date=task.lastModified or extracted.timestamp or now,
        location=birth_place,
        source="OpenCRVS",
        metadata=to_json({k: v for k, v in metadata.items() if v is not None}),
        crvs_event_uuid=extracted.composition_id,
        duplicates=identities.duplicates,
        status=task.businessStatus.first_code if task.businessStatus else None,
        last_update_at=task.lastModified,
        remarks=None,
        created_at=now,
    )

    mother_details: dict[str, Any] = {"type": "mother", "relationship": "MOTHER"}
    if extracted.mother_is_informant:
        mother_details["informantType"] = "MOTHER"
    participants = [
        _participant(
            person_id=person.id,
            event_id=event.id,
            role="subject",
            details={"type": "child"},
            crvs_person_id=child.id,
            now=now,
        ),
        _participant(
            person_id=identities.mother.local_id,
            event_id=event.id,
            role="mother",
            details=mother_details,
            crvs_person_id=mother.id,
            now=now,
            remarks=NEW_PERSON_REMARK if identities.mother.is_new else None,
        ),
    ]

    new_persons: list[PersonRecord] = []
    new_events: list[EventRecord] = []
    new_participants: list[ParticipantRecord] = []

    def add_auxiliary(records: tuple[PersonRecord, EventRecord, ParticipantRecord]) -> None:
        aux_person, aux_event, aux_subject = records
        new_persons.append(aux_person)
        new_events.append(aux_event)
        new_participants.append(aux_subject)

    if identities.mother.is_new:
        add_auxiliary(auxiliary_records(mother, identities.mother, now, default_gender="female"))

    if father is not None and identities.father is not None:
        father_crvs_id = father.id or UNKNOWN_FATHER_CRVS_ID
        father_details: dict[str, Any] = {"type": "father", "relationship": "FATHER"}
        if extracted.father_is_informant:
            father_details["informantType"] = "FATHER"
        participants.append(
            _participant(
                person_id=identities.father.local_id,
                event_id=event.id,
                role="father",
                details=father_details,
                crvs_person_id=father_crvs_id,
                now=now,
                status="review" if identities.father.is_new else "active",
                remarks=NEW_PERSON_REMARK if identities.father.is_new else None,
            )
        )
        if identities.father.is_new:
            add_auxiliary(
                auxiliary_records(
                    father,
                    identities.father,
                    now,
                    default_gender="male",
                    placeholder_name=("Unknown", "Father"),
                    crvs_person_id=father_crvs_id,
                )
            )

    informant = extracted.informant
    if informant is not None and identities.informant is not None:
        relationship = informant_relationship(extracted)
        participants.append(
            _participant(
                person_id=identities.informant.local_id,
                event_id=event.id,
                role="informant",
                details={
                    "type": "informant",
                    "relationship": relationship,
                    "informantType": relationship,
                },
                crvs_person_id=informant.id,
                now=now,
                remarks=NEW_PERSON_REMARK if identities.informant.is_new else None,
            )
        )
        if identities.informant.is_new:
            add_auxiliary(auxiliary_records(informant, identities.informant, now))

    return WriteSet(
        person=person,
        event=event,
        participants=participants,
        new_persons=new_persons,
        new_events=new_events,
        new_participants=new_participants,
    )
