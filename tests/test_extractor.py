"""Tests for resource extraction – pure functions over the webhook body."""

import pytest

from crvs_bridge.errors import AmbiguousResourceMatch, InvalidBundle, MissingRequiredResource
from crvs_bridge.etl.extractor import ParentHints, extract_resources

from factories import (
    child,
    composition,
    father,
    make_bundle,
    mother,
    patient,
    related,
    registration,
    task,
)


def test_extracts_all_handles_from_complete_registration():
    """A complete bundle yields child, parents, task and composition id."""
    extracted = extract_resources(registration())

    assert extracted.task.id == "task-1"
    assert extracted.composition_id == "comp-1"
    assert extracted.child.id == "child-1"
    assert extracted.mother.id == "mother-1"
    assert extracted.father.id == "father-1"
    assert extracted.parent_strategy == "relationships"
    assert extracted.bundle_id == "bundle-1"


def test_entry_order_does_not_matter():
    """Reversed entries extract to the same resources."""
    body = registration()
    entries = body["event"]["context"][0]["entry"]
    entries.reverse()

    extracted = extract_resources(body)
    assert extracted.child.id == "child-1"
    assert extracted.mother.id == "mother-1"
    assert extracted.father.id == "father-1"


def test_composition_id_falls_back_to_task_focus():
    """Without a Composition entry the Task focus supplies the id."""
    body = make_bundle(
        [
            task(composition_ref="Composition/comp-from-focus"),
            child(),
            mother(),
            related("rel-mother", "MOTHER", "mother-1"),
        ]
    )
    assert extract_resources(body).composition_id == "comp-from-focus"


def test_urn_uuid_references_resolve():
    """urn:uuid references resolve like Patient/<id> ones."""
    body = make_bundle(
        [
            task(composition_ref="urn:uuid:comp-urn"),
            child(),
            mother(),
            {
                "resourceType": "RelatedPerson",
                "relationship": {"coding": [{"code": "MOTHER"}]},
                "patient": {"reference": "urn:uuid:mother-1"},
            },
        ]
    )
    extracted = extract_resources(body)
    assert extracted.composition_id == "comp-urn"
    assert extracted.mother.id == "mother-1"


def test_child_found_by_gender_without_registration_number():
    """With no registration number the child is picked by gender."""
    body = make_bundle(
        [task(), composition(), mother(), child(brn=False), related("r", "MOTHER", "mother-1")]
    )
    assert extract_resources(body).child.id == "child-1"


def test_registration_number_beats_gender():
    """The registration-number holder is the child even if others have a gender."""
    body = make_bundle(
        [
            task(),
            composition(),
            patient("sibling", gender="female"),
            child(),
            mother(),
            related("r", "MOTHER", "mother-1"),
        ]
    )
    assert extract_resources(body).child.id == "child-1"


def test_parents_fall_back_to_external_id_split_without_relationships():
    """Without MOTHER/FATHER relationships the external-id holder is the mother."""
    body = make_bundle(
        [task(), composition(), child(), father(), mother(external_id="ext-m-1")]
    )
    extracted = extract_resources(body)

    assert extracted.parent_strategy == "external_id_split"
    assert extracted.mother.id == "mother-1"
    assert extracted.father.id == "father-1"


def test_external_id_split_never_picks_the_same_patient_twice():
    """Mother and father are always different patients."""
    body = make_bundle([task(), composition(), child(), mother(), father()])
    extracted = extract_resources(body)

    assert extracted.mother.id == "mother-1"
    assert extracted.father.id == "father-1"


def test_single_parent_shaped_patient_means_no_father():
    body = make_bundle([task(), composition(), child(), mother()])
    extracted = extract_resources(body)
    assert extracted.mother.id == "mother-1"
    assert extracted.father is None


def test_caller_hints_take_precedence():
    """Hints override relationship data."""
    # Relationships say mother-1, but the caller knows better for this request
    body = registration()
    extracted = extract_resources(body, hints=ParentHints(mother_id="father-1"))
    assert extracted.parent_strategy == "hints"
    assert extracted.mother.id == "father-1"
    assert extracted.father is None


def test_hints_for_absent_patients_are_ignored():
    """Hints naming patients outside the bundle fall through to the next strategy."""
    extracted = extract_resources(registration(), hints=ParentHints(mother_id="nope"))
    assert extracted.parent_strategy == "relationships"
    assert extracted.mother.id == "mother-1"


def test_informant_distinct_from_parents_is_extracted():
    """An informant who is not a parent is extracted as its own party."""
    body = registration()
    entries = body["event"]["context"][0]["entry"]
    entries.append({"resource": patient("aunt-1", given=["Ruth"], family="Kato")})
    entries.append({"resource": related("rel-inf", "INFORMANT", "aunt-1", "GRANDMOTHER")})

    extracted = extract_resources(body)
    assert extracted.informant.id == "aunt-1"
    assert not extracted.mother_is_informant


def test_mother_as_informant_is_not_a_separate_party():
    """A mother informant is flagged on the extraction, not added as a party."""
    body = registration(informant=related("rel-inf", "INFORMANT", "mother-1"))
    extracted = extract_resources(body)
    assert extracted.informant is None
    assert extracted.mother_is_informant
    assert not extracted.father_is_informant


def test_informant_missing_from_bundle_is_skipped():
    """An informant pointing at a missing Patient is dropped with a warning."""
    body = registration(informant=related("rel-inf", "INFORMANT", "ghost-1"))
    extracted = extract_resources(body)
    assert extracted.informant is None
    assert extracted.informant_relation is not None


def test_event_location_is_read_from_hub():
    """event.hub.eventLocation is parsed into the extraction."""
    body = registration(event_location={"type": "HEALTH_FACILITY", "name": "Mulago"})
    assert extract_resources(body).event_location.name == "Mulago"


def test_missing_child_and_relationships_is_fatal():
    """No child and no relationships raises MissingRequiredResource."""
    body = make_bundle([task(), composition(), patient("someone")])
    with pytest.raises(MissingRequiredResource) as exc_info:
        extract_resources(body)
    assert "child" in exc_info.value.missing


def test_mother_relationship_to_unknown_patient_is_fatal():
    """A MOTHER relationship to an absent Patient is fatal."""
    body = make_bundle([task(), composition(), child(), related("r", "MOTHER", "ghost")])
    with pytest.raises(MissingRequiredResource) as exc_info:
        extract_resources(body)
    assert exc_info.value.missing == ["mother"]


def test_missing_task_and_composition_id_are_reported_together():
    """Every missing resource is named in one error."""
    body = make_bundle([child(), mother(), related("r", "MOTHER", "mother-1")])
    with pytest.raises(MissingRequiredResource) as exc_info:
        extract_resources(body)
    assert exc_info.value.missing == ["task", "composition id"]


def test_first_match_wins_unless_strict():
    """Ambiguous matches take the first entry, or raise in strict mode."""
    body = make_bundle(
        [task(), composition(), child(), child("child-2"), mother(), related("r", "MOTHER", "mother-1")]
    )
    assert extract_resources(body).child.id == "child-1"

    with pytest.raises(AmbiguousResourceMatch):
        extract_resources(body, strict=True)


def test_envelope_without_entries_is_invalid():
    """An envelope with no entry list is rejected."""
    with pytest.raises(InvalidBundle):
        extract_resources({"id": "b-1", "event": {"context": []}})


def test_unknown_resource_kinds_are_ignored():
    body = registration()
    body["event"]["context"][0]["entry"].append(
        {"resource": {"resourceType": "Encounter", "id": "enc-1"}}
    )
    assert extract_resources(body).child.id == "child-1"
