"""Tests for identity resolution against an in-memory identity store."""

import pytest

from crvs_bridge.errors import IdentityLookupFailure
from crvs_bridge.etl.extractor import extract_resources
from crvs_bridge.etl.resolver import resolve_identities, resolve_party, stable_id
from crvs_bridge.schemas.fhir import Patient
from crvs_bridge.services.identity import InMemoryIdentityStore

from factories import mother, patient, registration, related, task


class RecordingStore(InMemoryIdentityStore):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = []

    def lookup_local_id(self, external_id):
        self.calls.append(("person", external_id))
        return super().lookup_local_id(external_id)

    def lookup_event_id(self, crvs_event_uuid):
        self.calls.append(("event", crvs_event_uuid))
        return super().lookup_event_id(crvs_event_uuid)


class UnreachableStore:
    def lookup_local_id(self, external_id):
        raise IdentityLookupFailure("connection refused")

    def lookup_event_id(self, crvs_event_uuid):
        raise IdentityLookupFailure("connection refused")


def test_unknown_party_is_minted_as_new():
    """A party the store does not know is minted as new."""
    resolution = resolve_party(Patient.model_validate(mother()), InMemoryIdentityStore())
    assert resolution.is_new
    assert resolution.matched_by == "minted"
    assert resolution.local_id == stable_id("person", "mother-1")


def test_resolution_is_idempotent():
    """Resolving the same party twice gives the same local id."""
    store = InMemoryIdentityStore(persons={"ext-1": "local-1"})
    known = Patient.model_validate(mother(external_id="ext-1"))
    unknown = Patient.model_validate(mother("mother-2"))

    assert resolve_party(known, store) == resolve_party(known, store)
    assert resolve_party(unknown, store) == resolve_party(unknown, store)


def test_external_person_id_match_is_existing():
    """A known EXTERNAL_PERSON_ID resolves to the stored local id."""
    store = InMemoryIdentityStore(persons={"ext-1": "local-1"})
    resolution = resolve_party(Patient.model_validate(mother(external_id="ext-1")), store)
    assert resolution.local_id == "local-1"
    assert not resolution.is_new
    assert resolution.matched_by == "external_person_id"


def test_crvs_resource_id_match_is_existing():
    """A known upstream resource id resolves to the stored local id."""
    store = InMemoryIdentityStore(persons={"mother-1": "local-9"})
    resolution = resolve_party(Patient.model_validate(mother()), store)
    assert resolution.local_id == "local-9"
    assert resolution.matched_by == "crvs_person_id"


def test_local_id_hint_skips_the_store():
    """A caller-attached localId wins without any lookup."""
    store = RecordingStore()
    resolution = resolve_party(Patient.model_validate(patient("p", localId="reg-42")), store)
    assert resolution.local_id == "reg-42"
    assert not resolution.is_new
    assert store.calls == []


def test_party_without_any_id_gets_a_random_id():
    a = resolve_party(Patient.model_validate({"resourceType": "Patient"}), InMemoryIdentityStore())
    b = resolve_party(Patient.model_validate({"resourceType": "Patient"}), InMemoryIdentityStore())
    assert a.is_new and b.is_new
    assert a.local_id != b.local_id


def test_lookup_order_is_mother_father_informant_then_duplicates():
    """Lookups run in a fixed order."""
    body = registration()
    entries = body["event"]["context"][0]["entry"]
    entries[0]["resource"] = task(duplicates=[{"compositionId": "dup-comp"}])
    entries.append({"resource": patient("aunt-1")})
    entries.append({"resource": related("rel-inf", "INFORMANT", "aunt-1", "AUNT")})
    store = RecordingStore()

    resolve_identities(extract_resources(body), store)

    assert store.calls == [
        ("person", "mother-1"),
        ("person", "father-1"),
        ("person", "aunt-1"),
        ("event", "dup-comp"),
    ]


def test_father_not_resolved_without_paternity_data():
    """No father resource, no father lookup."""
    store = RecordingStore()
    identities = resolve_identities(extract_resources(registration(with_father=False)), store)
    assert identities.father is None
    assert store.calls == [("person", "mother-1")]


def test_duplicates_resolve_to_local_event_ids():
    """Duplicate composition ids map to known local events; unknown ones are dropped."""
    body = registration()
    body["event"]["context"][0]["entry"][0]["resource"] = task(
        duplicates=[{"compositionId": "known"}, {"compositionId": "unknown"}, "known-2"]
    )
    store = InMemoryIdentityStore(events={"known": "evt-1", "known-2": "evt-2"})

    identities = resolve_identities(extract_resources(body), store)
    assert identities.duplicates == ["evt-1", "evt-2"]


def test_no_duplicate_list_means_none():
    """A Task without duplicates resolves duplicates to None."""
    identities = resolve_identities(extract_resources(registration()), InMemoryIdentityStore())
    assert identities.duplicates is None


def test_store_failure_propagates():
    """IdentityLookupFailure is not caught by the resolver."""
    with pytest.raises(IdentityLookupFailure):
        resolve_identities(extract_resources(registration()), UnreachableStore())
