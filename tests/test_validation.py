"""Tests for envelope presence checks."""

import pytest

from crvs_bridge.errors import InvalidBundle
from crvs_bridge.schemas.fhir import WEBHOOK_ENVELOPE_SCHEMA
from crvs_bridge.services.validation import check_envelope, validate_against_schema

from factories import registration


def test_valid_envelope():
    assert validate_against_schema(registration(), WEBHOOK_ENVELOPE_SCHEMA) == []


def test_missing_id_and_event_reported_together():
    """All envelope violations are reported, not just the first."""
    errors = validate_against_schema({"timestamp": "now"}, WEBHOOK_ENVELOPE_SCHEMA)
    assert any("'id'" in e for e in errors)
    assert any("'event'" in e for e in errors)


def test_entry_must_be_a_list():
    """The entry field must be a list."""
    body = {"id": "b-1", "event": {"context": [{"entry": "nope"}]}}
    errors = validate_against_schema(body, WEBHOOK_ENVELOPE_SCHEMA)
    assert errors and errors[0].startswith("event/context/0/entry")


def test_resource_bodies_are_not_schema_checked():
    """Resource contents are left to the extractor."""
    body = {"id": "b-1", "event": {"context": [{"entry": [{"resource": {"weird": True}}]}]}}
    check_envelope(body)


def test_check_envelope_raises_with_all_errors():
    with pytest.raises(InvalidBundle) as exc_info:
        check_envelope([])
    assert exc_info.value.errors
