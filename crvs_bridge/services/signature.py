"""
Webhook signature verification.

OpenCRVS signs the URL-encoded body prefixed with ``sha256:`` and sends
``sha256=<hex hmac>`` in one of several header names.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Mapping
from urllib.parse import quote

SIGNATURE_HEADERS = ("x-hub-signature-256", "x-hub-signature", "x-signature", "signature")

# Characters encodeURIComponent leaves as-is
_URI_COMPONENT_SAFE = "-_.!~*'()"


def find_signature(headers: Mapping[str, str]) -> str | None:
    for name in SIGNATURE_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return None


def expected_signature(raw_body: str, secret: str) -> str:
    signed = "sha256:" + quote(raw_body, safe=_URI_COMPONENT_SAFE)
    digest = hmac.new(secret.encode(), signed.encode(), hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(raw_body: str, signature: str, secret: str) -> bool:
    return hmac.compare_digest(signature, expected_signature(raw_body, secret))
