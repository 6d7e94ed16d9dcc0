"""
Presence checks for the webhook envelope.

Only the envelope is schema-checked (id, event context, entry list);
resource bodies are read leniently by the extractor.
"""

from typing import Any

import jsonschema

from crvs_bridge.errors import InvalidBundle
from crvs_bridge.schemas.fhir import WEBHOOK_ENVELOPE_SCHEMA


def validate_against_schema(data: Any, schema: dict[str, Any]) -> list[str]:
    """Return every violation as '<path>: <message>' (empty list = valid)."""
    validator = jsonschema.Draft7Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    return [
        f"{'/'.join(str(p) for p in error.absolute_path) or '<root>'}: {error.message}"
        for error in errors
    ]


def check_envelope(body: Any) -> None:
    """Raise InvalidBundle if the webhook body lacks its structural fields."""
    errors = validate_against_schema(body, WEBHOOK_ENVELOPE_SCHEMA)
    if errors:
        raise InvalidBundle(errors)
