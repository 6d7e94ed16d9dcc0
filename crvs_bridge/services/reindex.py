"""Search reindex trigger, fired after a registration commits."""

from __future__ import annotations

import logging

import httpx

from crvs_bridge.config import settings

logger = logging.getLogger(__name__)


def trigger_reindex(url: str | None = None, timeout: float | None = None) -> bool:
    """
    POST to the search indexer. Failures are logged and reported as False –
    a stale index must never fail the registration that triggered it.
    """
    url = url if url is not None else settings.REINDEX_URL
    if not url:
        logger.debug("No REINDEX_URL configured, skipping reindex")
        return False
    try:
        response = httpx.post(
            url,
            headers={"Content-Type": "application/json"},
            timeout=timeout if timeout is not None else settings.REINDEX_TIMEOUT,
        )
    except httpx.HTTPError as exc:
        logger.warning("Search reindex request failed: %s", exc)
        return False
    if response.is_success:
        logger.info("Search index refresh requested")
        return True
    logger.warning("Search reindex returned HTTP %s", response.status_code)
    return False
