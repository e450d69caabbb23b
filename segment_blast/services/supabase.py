"""
Supabase client for ledger and record-store access.
"""
import logging
from functools import lru_cache
from typing import Any, Callable, Optional

from supabase import Client, ClientOptions, create_client

from segment_blast.core.config import settings
from segment_blast.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase_client() -> Client:
    """
    Returns the cached Supabase client.

    Uses the service key for full table access. Created lazily so that
    importing repositories never requires credentials (tests inject fakes).

    Raises:
        ConfigurationError: If SUPABASE_URL or SUPABASE_SERVICE_KEY is missing
    """
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_KEY:
        raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required")

    client = create_client(
        settings.SUPABASE_URL,
        settings.SUPABASE_SERVICE_KEY,
        options=ClientOptions(postgrest_client_timeout=settings.DB_TIMEOUT_SECONDS),
    )
    logger.debug("Supabase client created")
    return client


def fetch_all(
    build_query: Callable[[], Any],
    page_size: Optional[int] = None,
    limit: Optional[int] = None,
) -> list[dict]:
    """
    Pages through a PostgREST select with .range().

    PostgREST caps every response (1000 rows by default on Supabase), so
    any read that may return more rows goes through here. Builders are
    mutable, so a fresh one is built per page; it must carry a
    deterministic .order().

    Args:
        build_query: Zero-arg callable returning a select builder
        page_size: Rows per request (default: settings.DB_PAGE_SIZE)
        limit: Hard cap on total rows (None = everything)

    Returns:
        List of rows
    """
    page_size = page_size or settings.DB_PAGE_SIZE
    rows: list[dict] = []
    offset = 0

    while True:
        size = page_size
        if limit is not None:
            size = min(size, limit - len(rows))
            if size <= 0:
                break

        response = build_query().range(offset, offset + size - 1).execute()
        page = response.data or []
        rows.extend(page)

        if len(page) < size:
            break
        offset += size

    return rows
