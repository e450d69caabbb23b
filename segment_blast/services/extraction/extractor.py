"""
Candidate extraction over transactional records.

Read-only. Every query here is a named, independently testable function;
nothing builds SQL strings.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Optional, Sequence, Set

from segment_blast.core.config import LedgerConfig
from segment_blast.core.decorators import handle_errors
from segment_blast.core.exceptions import ExtractionError
from segment_blast.core.utils import chunked, dedupe, safe_first_field
from segment_blast.services.extraction.types import (
    DEFAULT_PURCHASE_STATUSES,
    SOURCE_TABLES,
    CandidateSource,
    DayWindow,
)
from segment_blast.services.messages import DEFAULT_NAME
from segment_blast.services.supabase import fetch_all, get_supabase_client

logger = logging.getLogger(__name__)


class CandidateExtractor:
    """Windowed recipient queries over orders / follows / mini-app visits."""

    def __init__(self, db_client: Any = None):
        self._db = db_client

    @property
    def db(self) -> Any:
        if self._db is None:
            self._db = get_supabase_client()
        return self._db

    def _event_query(
        self,
        source: CandidateSource,
        start: Optional[datetime],
        end: Optional[datetime],
        statuses: Sequence[str],
    ):
        source_table = SOURCE_TABLES[source]
        query = (
            self.db.table(source_table.table)
            .select(f"user_id,{source_table.timestamp_column}")
            .not_.is_("user_id", "null")
            .neq("user_id", "")
        )
        if source == CandidateSource.PURCHASE:
            query = query.in_("status", list(statuses))
        if start is not None:
            query = query.gte(source_table.timestamp_column, start.isoformat())
        if end is not None:
            query = query.lt(source_table.timestamp_column, end.isoformat())
        return query

    @handle_errors(reraise_as=ExtractionError)
    async def extract(
        self,
        source: CandidateSource,
        window: DayWindow,
        limit: Optional[int] = None,
        statuses: Sequence[str] = DEFAULT_PURCHASE_STATUSES,
        latest_event_only: bool = False,
        require_visit_within_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """
        Returns distinct user ids with a qualifying event inside the window.

        Args:
            source: Record set to query
            window: Day window (half-open)
            limit: Hard cap on result size (None = no cap)
            statuses: Order statuses that count (PURCHASE only)
            latest_event_only: Drop users whose latest event is after the window
            require_visit_within_days: Keep only users who opened the mini-app
                within the last N days
            now: Override for the current time (tests)

        Returns:
            De-duplicated ids ordered by user_id

        Raises:
            ExtractionError: On any record-store failure
        """
        start, end = window.bounds(now)
        source_table = SOURCE_TABLES[source]

        rows = fetch_all(
            lambda: self._event_query(source, start, end, statuses).order("user_id")
        )
        user_ids = sorted(dedupe(str(row.get("user_id") or "").strip() for row in rows))
        found = len(user_ids)

        if latest_event_only and user_ids:
            newer = self._ids_with_events_since(source, user_ids, end, statuses)
            user_ids = [uid for uid in user_ids if uid not in newer]

        if require_visit_within_days is not None and user_ids:
            since = window.anchor(now) - timedelta(days=require_visit_within_days)
            visitors = self._ids_with_events_since(CandidateSource.VISIT, user_ids, since, statuses)
            user_ids = [uid for uid in user_ids if uid in visitors]

        if limit is not None:
            user_ids = user_ids[:limit]

        logger.info(
            f"Extracted {len(user_ids)} candidates from {source_table.table} "
            f"window={window.describe()} (matched={found})"
        )
        return user_ids

    def _ids_with_events_since(
        self,
        source: CandidateSource,
        user_ids: List[str],
        since: datetime,
        statuses: Sequence[str],
    ) -> Set[str]:
        """Ids among `user_ids` with a qualifying event at or after `since`."""
        found: Set[str] = set()
        for part in chunked(user_ids, LedgerConfig.ID_FILTER_CHUNK):
            rows = fetch_all(
                lambda part=part: (
                    self._event_query(source, since, None, statuses)
                    .in_("user_id", part)
                    .order("user_id")
                )
            )
            found.update(row["user_id"] for row in rows)
        return found

    @handle_errors(reraise_as=ExtractionError)
    async def purchased_user_ids(
        self,
        user_ids: Iterable[str],
        since: datetime,
        statuses: Sequence[str] = DEFAULT_PURCHASE_STATUSES,
    ) -> Set[str]:
        """
        Ids among `user_ids` with a qualifying order at or after `since`.

        Backs the `purchased_any` domain exclusion.
        """
        ids = dedupe(user_ids)
        if not ids:
            return set()
        return self._ids_with_events_since(CandidateSource.PURCHASE, ids, since, statuses)

    @handle_errors(reraise_as=ExtractionError)
    async def purchased_product_user_ids(
        self,
        user_ids: Iterable[str],
        product_id: str,
        since: Optional[datetime] = None,
        statuses: Sequence[str] = DEFAULT_PURCHASE_STATUSES,
    ) -> Set[str]:
        """
        Ids among `user_ids` with an order whose items include `product_id`.

        Backs the `purchased_product` domain exclusion. `orders.items` is a
        jsonb array of objects carrying an `id` field.
        """
        ids = dedupe(user_ids)
        if not ids:
            return set()

        needle = json.dumps([{"id": product_id}])
        found: Set[str] = set()
        for part in chunked(ids, LedgerConfig.ID_FILTER_CHUNK):
            def _query(part=part):
                query = (
                    self.db.table("orders")
                    .select("user_id")
                    .in_("user_id", part)
                    .in_("status", list(statuses))
                    .contains("items", needle)
                )
                if since is not None:
                    query = query.gte("created_at", since.isoformat())
                return query.order("user_id")

            found.update(row["user_id"] for row in fetch_all(_query))
        return found

    # ------------------------------------------------------------------
    # Display name resolution
    # ------------------------------------------------------------------

    async def resolve_display_name(
        self,
        user_id: str,
        statuses: Sequence[str] = DEFAULT_PURCHASE_STATUSES,
    ) -> str:
        """
        Resolves the name used for `{{NAME}}` personalization.

        Priority: latest qualifying order name, latest saved address name,
        profile display name, then DEFAULT_NAME. A failing lookup is logged
        and skipped.

        Returns:
            Non-empty name
        """
        for lookup in (self._latest_order_name, self._latest_address_name, self._profile_name):
            name = await lookup(user_id, statuses)
            if isinstance(name, str) and name.strip():
                return name.strip()
        return DEFAULT_NAME

    @handle_errors(default_return=None, log_level="warning")
    async def _latest_order_name(self, user_id: str, statuses: Sequence[str]) -> Optional[str]:
        result = (
            self.db.table("orders")
            .select("name")
            .eq("user_id", user_id)
            .in_("status", list(statuses))
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return safe_first_field(result, "name")

    @handle_errors(default_return=None, log_level="warning")
    async def _latest_address_name(self, user_id: str, statuses: Sequence[str]) -> Optional[str]:
        result = (
            self.db.table("addresses")
            .select("name")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return safe_first_field(result, "name")

    @handle_errors(default_return=None, log_level="warning")
    async def _profile_name(self, user_id: str, statuses: Sequence[str]) -> Optional[str]:
        result = (
            self.db.table("users")
            .select("display_name")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return safe_first_field(result, "display_name")
