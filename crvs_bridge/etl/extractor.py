"""
Resource extraction for birth-registration bundles.

The bundle is a flat, unordered list of heterogeneous entries. Lookups are
"kind + predicate" over the typed entries; when several entries satisfy a
predicate the first one in bundle order wins (or, with ``strict=True``,
AmbiguousResourceMatch is raised).

Parents are located by PARENT_STRATEGIES, tried in order:
    1. caller hints      – resource ids supplied for this request only
    2. relationships     – RelatedPerson coded MOTHER / FATHER
    3. external-id split – only when no parent relationship exists at all;
                           the parent-shaped patient with an
                           EXTERNAL_PERSON_ID identifier is taken as mother
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from pydantic import ValidationError

from crvs_bridge.errors import AmbiguousResourceMatch, InvalidBundle, MissingRequiredResource
from crvs_bridge.schemas.fhir import (
    BIRTH_REGISTRATION_NUMBER,
    EXTERNAL_PERSON_ID,
    RESOURCE_MODELS,
    Composition,
    EventLocation,
    Patient,
    RelatedPerson,
    Resource,
    Task,
)
from crvs_bridge.services.validation import check_envelope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParentHints:
    """Parent resource ids known to the caller for this one request."""

    mother_id: str | None = None
    father_id: str | None = None


@dataclass(frozen=True)
class ParentMatch:
    mother: Patient | None
    father: Patient | None
    strategy: str


@dataclass(frozen=True)
class ExtractedResources:
    bundle_id: str | None
    timestamp: str | None
    task: Task
    composition_id: str
    child: Patient
    mother: Patient
    father: Patient | None = None
    parent_patients: tuple[Patient, ...] = ()
    informant_relation: RelatedPerson | None = None
    informant: Patient | None = None
    event_location: EventLocation | None = None
    parent_strategy: str = ""

    @property
    def mother_is_informant(self) -> bool:
        return self._informant_target() == self.mother.id

    @property
    def father_is_informant(self) -> bool:
        return self.father is not None and self._informant_target() == self.father.id

    def _informant_target(self) -> str | None:
        if self.informant_relation is None:
            return None
        return self.informant_relation.patient_id


def parse_entries(entries: Iterable[Any]) -> list[Resource]:
    """Type the entries the pipeline understands; other kinds are dropped."""
    resources: list[Resource] = []
    for position, entry in enumerate(entries):
        raw = entry.get("resource") if isinstance(entry, dict) else None
        if not isinstance(raw, dict):
            continue
        model = RESOURCE_MODELS.get(raw.get("resourceType"))
        if model is None:
            continue
        try:
            resources.append(model.model_validate(raw))
        except ValidationError as exc:
            raise InvalidBundle(
                [f"entry/{position}/resource: {err['msg']}" for err in exc.errors()]
            ) from exc
    return resources


class ResourceIndex:
    """Typed lookups over the bundle entries, preserving bundle order."""

    def __init__(self, resources: list[Resource], strict: bool = False):
        self.resources = resources
        self.strict = strict

    def find_all(
        self, kind: type[Resource], predicate: Callable[[Any], bool] = lambda r: True
    ) -> list[Any]:
        return [r for r in self.resources if isinstance(r, kind) and predicate(r)]

    def find(
        self,
        kind: type[Resource],
        predicate: Callable[[Any], bool] = lambda r: True,
        label: str | None = None,
    ) -> Any:
        """First match in bundle order; more than one match is ambiguous."""
        matches = self.find_all(kind, predicate)
        if len(matches) > 1:
            label = label or kind.__name__
            if self.strict:
                raise AmbiguousResourceMatch(label, len(matches))
            logger.warning(
                "%d entries match %s, using the first one (id=%s)",
                len(matches), label, matches[0].id,
            )
        return matches[0] if matches else None

    def patient_by_id(self, patient_id: str | None) -> Patient | None:
        if not patient_id:
            return None
        return self.find(Patient, lambda p: p.id == patient_id, label=f"Patient/{patient_id}")


# ---------------------------------------------------------------------------
# Parent strategies
# ---------------------------------------------------------------------------

ParentStrategy = Callable[[ResourceIndex, list[Patient], ParentHints | None], ParentMatch | None]


def parents_from_hints(
    index: ResourceIndex, candidates: list[Patient], hints: ParentHints | None
) -> ParentMatch | None:
    if hints is None:
        return None
    mother = index.patient_by_id(hints.mother_id)
    if mother is None:
        return None
    return ParentMatch(mother, index.patient_by_id(hints.father_id), "hints")


def parents_from_relationships(
    index: ResourceIndex, candidates: list[Patient], hints: ParentHints | None
) -> ParentMatch | None:
    mother_rel = index.find(
        RelatedPerson, lambda r: r.has_relationship("MOTHER"), label="mother relationship"
    )
    father_rel = index.find(
        RelatedPerson, lambda r: r.has_relationship("FATHER"), label="father relationship"
    )
    if mother_rel is None and father_rel is None:
        return None
    mother = index.patient_by_id(mother_rel.patient_id) if mother_rel else None
    father = index.patient_by_id(father_rel.patient_id) if father_rel else None
    return ParentMatch(mother, father, "relationships")


def parents_from_external_ids(
    index: ResourceIndex, candidates: list[Patient], hints: ParentHints | None
) -> ParentMatch | None:
    # TODO: confirm with the OpenCRVS data contract; nothing in the payload
    # says the EXTERNAL_PERSON_ID holder is the mother.
    if not candidates:
        return None
    mother = next(
        (p for p in candidates if p.has_identifier_type(EXTERNAL_PERSON_ID)),
        candidates[0],
    )
    others = [p for p in candidates if p is not mother]
    father = next(
        (p for p in others if not p.has_identifier_type(EXTERNAL_PERSON_ID)),
        others[0] if others else None,
    )
    logger.warning(
        "No MOTHER/FATHER relationships in bundle; assuming %s is the mother", mother.id
    )
    return ParentMatch(mother, father, "external_id_split")


PARENT_STRATEGIES: tuple[ParentStrategy, ...] = (
    parents_from_hints,
    parents_from_relationships,
    parents_from_external_ids,
)


def locate_parents(
    index: ResourceIndex,
    candidates: list[Patient],
    hints: ParentHints | None = None,
    strategies: Iterable[ParentStrategy] = PARENT_STRATEGIES,
) -> ParentMatch:
    for strategy in strategies:
        match = strategy(index, candidates, hints)
        if match is not None:
            logger.debug("Parents located via %s", match.strategy)
            return match
    return ParentMatch(None, None, "none")


# ---------------------------------------------------------------------------
# Extraction entrypoint
# ---------------------------------------------------------------------------

def find_child(index: ResourceIndex) -> Patient | None:
    child = index.find(
        Patient,
        lambda p: p.has_identifier_type(BIRTH_REGISTRATION_NUMBER),
        label="child (registration number)",
    )
    if child is None:
        # Parent-shaped patients are normally recorded without gender
        child = index.find(Patient, lambda p: bool(p.gender), label="child (gender)")
    return child


def extract_resources(
    body: dict[str, Any],
    hints: ParentHints | None = None,
    strict: bool = False,
) -> ExtractedResources:
    """
    Pick the typed resources a registration needs out of a webhook body.
    Raises MissingRequiredResource when child, task, mother or the
    composition id cannot be found.
    """
    check_envelope(body)
    event = body["event"]
    index = ResourceIndex(parse_entries(event["context"][0]["entry"]), strict=strict)

    task = index.find(Task, label="task")
    composition = index.find(Composition, label="composition")
    composition_id = (composition.id if composition else None) or (
        task.focus.target_id if task and task.focus else None
    )

    child = find_child(index)
    candidates = [
        p for p in index.find_all(Patient) if p is not child and not p.gender
    ]
    parents = locate_parents(index, candidates, hints)

    missing = [
        name
        for name, value in (
            ("child", child),
            ("task", task),
            ("mother", parents.mother),
            ("composition id", composition_id),
        )
        if not value
    ]
    if missing:
        raise MissingRequiredResource(missing, bundle_id=body.get("id"))

    mother, father = parents.mother, parents.father
    informant_relation = index.find(
        RelatedPerson, lambda r: r.has_relationship("INFORMANT"), label="informant"
    )
    informant = None
    informant_id = informant_relation.patient_id if informant_relation else None
    if informant_id and informant_id not in {mother.id, father.id if father else None}:
        informant = index.patient_by_id(informant_id)
        if informant is None:
            logger.info("Informant Patient/%s not in bundle, skipping", informant_id)

    raw_location = (event.get("hub") or {}).get("eventLocation")
    event_location = EventLocation.model_validate(raw_location) if raw_location else None

    logger.info(
        "Extracted bundle %s: composition=%s father=%s informant=%s",
        body.get("id"), composition_id, bool(father), bool(informant),
    )
    return ExtractedResources(
        bundle_id=body.get("id"),
        timestamp=body.get("timestamp"),
        task=task,
        composition_id=composition_id,
        child=child,
        mother=mother,
        father=father,
        parent_patients=tuple(candidates),
        informant_relation=informant_relation,
        informant=informant,
        event_location=event_location,
        parent_strategy=parents.strategy,
    )
