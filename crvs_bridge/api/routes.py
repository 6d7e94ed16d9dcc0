"""
FastAPI routes – webhook receiver plus read-back endpoints.

The webhook endpoint always acknowledges with 200 once the signature is
accepted; processing outcomes live on the stored delivery instead.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from crvs_bridge.config import settings
from crvs_bridge.models.database import get_db
from crvs_bridge.models.registry import Person, WebhookDelivery
from crvs_bridge.schemas.api import (
    DeliveryResponse,
    HealthResponse,
    IdentifierOut,
    ParticipationOut,
    PersonResponse,
)
from crvs_bridge.services.deliveries import handle_webhook, replay_delivery
from crvs_bridge.services.signature import find_signature, verify_signature

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse)
def health_check(db: Session = Depends(get_db)):
    """Basic health endpoint – verifies DB connectivity."""
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError:
        db_status = "disconnected"
    return HealthResponse(
        status="healthy",
        environment=settings.ENVIRONMENT,
        database=db_status,
    )


# ---------------------------------------------------------------------------
# Webhook receiver
# ---------------------------------------------------------------------------

@router.post("/webhooks", response_class=PlainTextResponse)
async def receive_webhook(request: Request, db: Session = Depends(get_db)):
    raw = (await request.body()).decode("utf-8")

    if settings.WEBHOOK_SECRET:
        signature = find_signature(request.headers)
        if not signature:
            logger.warning("Webhook rejected: missing signature header")
            raise HTTPException(status_code=400, detail="Missing signature")
        if not verify_signature(raw, signature, settings.WEBHOOK_SECRET):
            logger.warning("Webhook rejected: signature mismatch")
            raise HTTPException(status_code=401, detail="Invalid signature")

    delivery = await run_in_threadpool(handle_webhook, db, raw)
    logger.info("Delivery %s acknowledged (%s)", delivery.id, delivery.status)
    return PlainTextResponse("OK")


# ---------------------------------------------------------------------------
# Deliveries
# ---------------------------------------------------------------------------

def _delivery_response(delivery: WebhookDelivery) -> DeliveryResponse:
    return DeliveryResponse(
        id=delivery.id,
        bundle_id=delivery.bundle_id,
        topic=delivery.topic,
        status=delivery.status,
        error=delivery.error,
        summary=delivery.summary,
        received_at=delivery.received_at,
        processed_at=delivery.processed_at,
    )


@router.get("/deliveries/{delivery_id}", response_model=DeliveryResponse)
def get_delivery(delivery_id: str, db: Session = Depends(get_db)):
    delivery = db.get(WebhookDelivery, delivery_id)
    if delivery is None:
        raise HTTPException(status_code=404, detail="Delivery not found")
    return _delivery_response(delivery)


@router.post("/deliveries/{delivery_id}/replay", response_model=DeliveryResponse)
def replay(delivery_id: str, db: Session = Depends(get_db)):
    """Reprocess a stored delivery; safe to repeat."""
    delivery = replay_delivery(db, delivery_id)
    if delivery is None:
        raise HTTPException(status_code=404, detail="Delivery not found")
    return _delivery_response(delivery)


# ---------------------------------------------------------------------------
# Persons
# ---------------------------------------------------------------------------

@router.get("/persons/{person_id}", response_model=PersonResponse)
def get_person(person_id: str, db: Session = Depends(get_db)):
    person = db.get(Person, person_id)
    if person is None:
        raise HTTPException(status_code=404, detail="Person not found")
    return PersonResponse(
        id=person.id,
        given_name=person.given_name,
        family_name=person.family_name,
        gender=person.gender,
        dob=person.dob,
        place_of_birth=person.place_of_birth,
        identifiers=[IdentifierOut(**i) for i in json.loads(person.identifiers or "[]")],
        status=person.status,
        participations=[
            ParticipationOut(
                event_id=p.event_id,
                role=p.role,
                crvs_person_id=p.crvs_person_id,
                status=p.status,
            )
            for p in person.participations
        ],
    )
