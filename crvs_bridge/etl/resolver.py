"""
Identity resolution for the parties named in a registration.

Each party resolves to ``Resolution(local_id, is_new)`` by the first rule
that matches:
    1. a ``localId`` attached to the resource by the caller
    2. the EXTERNAL_PERSON_ID identifier, looked up in the identity store
    3. the upstream resource id, looked up in the identity store
    4. a freshly minted id (is_new=True)

Lookups run one at a time: mother, father, informant, then duplicates.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from crvs_bridge.etl.extractor import ExtractedResources
from crvs_bridge.schemas.fhir import EXTERNAL_PERSON_ID, Patient
from crvs_bridge.services.identity import IdentityStore

logger = logging.getLogger(__name__)

# Namespace for registry ids derived from upstream ids
REGISTRY_NAMESPACE = uuid.UUID("5d0f4b6e-3c1a-5e8f-9b7d-2a6c8e0f1b3d")


def stable_id(*parts: str) -> str:
    """Same upstream parts, same registry id – keeps redelivery idempotent."""
    return str(uuid.uuid5(REGISTRY_NAMESPACE, ":".join(parts)))


@dataclass(frozen=True)
class Resolution:
    local_id: str
    is_new: bool
    matched_by: str


@dataclass(frozen=True)
class ResolvedIdentities:
    mother: Resolution
    father: Resolution | None = None
    informant: Resolution | None = None
    duplicates: list[str] | None = None


def resolve_party(patient: Patient, store: IdentityStore) -> Resolution:
    if patient.localId:
        return Resolution(patient.localId, False, "local_id")

    external_id = patient.identifier_value(EXTERNAL_PERSON_ID)
    if external_id:
        match = store.lookup_local_id(external_id)
        if match:
            return Resolution(match, False, "external_person_id")

    if patient.id:
        match = store.lookup_local_id(patient.id)
        if match:
            return Resolution(match, False, "crvs_person_id")
        return Resolution(stable_id("person", patient.id), True, "minted")

    return Resolution(str(uuid.uuid4()), True, "minted")


def resolve_duplicates(extracted: ExtractedResources, store: IdentityStore) -> list[str] | None:
    """Map caller-computed duplicate composition ids onto local event ids."""
    composition_ids = extracted.task.duplicate_composition_ids
    if not extracted.task.duplicates:
        return None
    resolved = []
    for composition_id in composition_ids:
        event_id = store.lookup_event_id(composition_id)
        if event_id:
            resolved.append(event_id)
        else:
            logger.info("Duplicate composition %s unknown locally, dropped", composition_id)
    return resolved


def resolve_identities(extracted: ExtractedResources, store: IdentityStore) -> ResolvedIdentities:
    mother = resolve_party(extracted.mother, store)
    father = resolve_party(extracted.father, store) if extracted.father else None
    informant = resolve_party(extracted.informant, store) if extracted.informant else None
    duplicates = resolve_duplicates(extracted, store)

    logger.info(
        "Resolved bundle %s: mother=%s father=%s informant=%s",
        extracted.bundle_id,
        "new" if mother.is_new else mother.matched_by,
        "-" if father is None else ("new" if father.is_new else father.matched_by),
        "-" if informant is None else ("new" if informant.is_new else informant.matched_by),
    )
    return ResolvedIdentities(mother, father, informant, duplicates)
