"""
HTTP client singleton with connection pooling.

Centralizes outbound HTTP for:
- Connection reuse across chunks of one run
- Bounded timeouts (a stalled provider must not hang the runner)
- Graceful close at the end of the run
"""

import logging
from typing import Optional

import httpx

from segment_blast.core.config import settings

logger = logging.getLogger(__name__)

_client: Optional[httpx.AsyncClient] = None


async def get_http_client() -> httpx.AsyncClient:
    """
    Returns the HTTP client singleton.

    Created on first call.

    Returns:
        httpx.AsyncClient with pooling and timeouts configured
    """
    global _client
    if _client is None:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=10.0,
                read=settings.LINE_TIMEOUT_SECONDS,
                write=settings.LINE_TIMEOUT_SECONDS,
                pool=5.0,
            ),
            limits=httpx.Limits(
                max_connections=10,
                max_keepalive_connections=5,
                keepalive_expiry=30.0,
            ),
            headers={
                "User-Agent": f"{settings.APP_NAME}/1.0",
            },
        )
        logger.debug("HTTP client singleton created")

    return _client


async def close_http_client() -> None:
    """
    Closes the HTTP client.

    Must be called when a run finishes to release connections.
    """
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
        logger.debug("HTTP client singleton closed")
