"""
Webhook delivery handling.

Every delivery is stored before processing so a failed one can be replayed.
Processing failures are logged with the bundle and delivery ids and recorded
on the delivery row; they are never raised to the HTTP layer, because the
upstream hub does not redeliver selectively and must always get its 200.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import unquote

from sqlalchemy.orm import Session

from crvs_bridge.config import settings
from crvs_bridge.errors import RegistrationError
from crvs_bridge.etl.pipeline import process_registration
from crvs_bridge.models.registry import WebhookDelivery
from crvs_bridge.services.identity import SqlIdentityStore
from crvs_bridge.services.reindex import trigger_reindex

logger = logging.getLogger(__name__)

BIRTH_REGISTERED = "BIRTH_REGISTERED"


def decode_body(raw: str) -> Any:
    """Bodies arrive as JSON or as URL-encoded JSON."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return json.loads(unquote(raw))


def _topic(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    event = body.get("event")
    hub = event.get("hub") if isinstance(event, dict) else None
    return hub.get("topic") if isinstance(hub, dict) else None


def record_delivery(db: Session, raw: str) -> WebhookDelivery:
    delivery = WebhookDelivery(raw_body=raw, status="received")
    db.add(delivery)
    db.commit()
    return delivery


def _finish(db: Session, delivery: WebhookDelivery, status: str, **fields: Any) -> WebhookDelivery:
    delivery.status = status
    delivery.processed_at = datetime.now(timezone.utc)
    for key, value in fields.items():
        setattr(delivery, key, value)
    db.commit()
    return delivery


def process_delivery(db: Session, delivery: WebhookDelivery) -> WebhookDelivery:
    try:
        body = decode_body(delivery.raw_body)
    except ValueError as exc:
        logger.error("Delivery %s: body is not JSON: %s", delivery.id, exc)
        return _finish(db, delivery, "failed", error=f"undecodable body: {exc}")

    delivery.bundle_id = body.get("id") if isinstance(body, dict) else None
    delivery.topic = _topic(body)
    db.commit()
    logger.info(
        "Webhook received: topic=%s bundle=%s delivery=%s",
        delivery.topic, delivery.bundle_id, delivery.id,
    )
    if delivery.topic != BIRTH_REGISTERED:
        return _finish(db, delivery, "ignored", error=None)

    bundle_id, delivery_id = delivery.bundle_id, delivery.id
    try:
        write_set, pipeline = process_registration(
            body,
            SqlIdentityStore(db),
            strict=settings.STRICT_MATCHING,
            db=db,
        )
    except RegistrationError as exc:
        db.rollback()
        logger.error(
            "Registration failed for bundle %s (delivery %s, replayable): %s",
            bundle_id, delivery_id, exc,
        )
        return _finish(db, delivery, "failed", error=f"{type(exc).__name__}: {exc}")
    except Exception as exc:
        db.rollback()
        logger.exception(
            "Unexpected error for bundle %s (delivery %s, replayable)", bundle_id, delivery_id
        )
        return _finish(db, delivery, "failed", error=f"{type(exc).__name__}: {exc}")

    summary = pipeline.to_dict()
    summary["inserted"] = pipeline.tasks["load"].result["inserted"]
    summary["event_id"] = write_set.event.id
    summary["person_id"] = write_set.person.id
    delivery = _finish(db, delivery, "processed", error=None, summary=summary)

    trigger_reindex()
    return delivery


def handle_webhook(db: Session, raw: str) -> WebhookDelivery:
    return process_delivery(db, record_delivery(db, raw))


def replay_delivery(db: Session, delivery_id: str) -> WebhookDelivery | None:
    delivery = db.get(WebhookDelivery, delivery_id)
    if delivery is None:
        return None
    logger.info("Replaying delivery %s (previous status %s)", delivery_id, delivery.status)
    return process_delivery(db, delivery)
