"""
FastAPI application entrypoint.

Run locally:  uvicorn crvs_bridge.main:app --reload --port 9999
"""

import logging

from fastapi import FastAPI

from crvs_bridge.api.routes import router
from crvs_bridge.config import settings
from crvs_bridge.models import registry  # noqa: F401  (registers tables on Base)
from crvs_bridge.models.database import Base, engine

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(levelname)s | %(name)s | %(message)s",
)

app = FastAPI(
    title="CRVS Person Registry Bridge",
    description=(
        "Receives OpenCRVS birth-registration webhooks and writes the child, "
        "parents, informant and registration event into the person registry."
    ),
    version="1.0.0",
)

app.include_router(router, prefix="/api/v1")


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
