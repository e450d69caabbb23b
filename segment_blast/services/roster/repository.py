"""
Repository for the roster ledger (segment_blast).

Single source of truth for "has this recipient already been processed
for this segment key". Every statement is idempotent on its own:
- rows are inserted if absent and never deleted
- sent_at is only written where it is still null
- last_error is only written while sent_at is null

so no multi-statement transaction is needed; a crash between steps
leaves a state that the next run picks up safely.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, List, Optional, Set

from segment_blast.core.config import LedgerConfig
from segment_blast.core.decorators import handle_errors
from segment_blast.core.exceptions import DatabaseError
from segment_blast.core.timezone import now_utc
from segment_blast.core.utils import chunked, dedupe
from segment_blast.services.roster.types import LedgerCounts, RosterEntry
from segment_blast.services.supabase import fetch_all, get_supabase_client

logger = logging.getLogger(__name__)

_COLUMNS = "segment_key,user_id,created_at,sent_at,last_error"


def truncate_error(error_text: Any) -> str:
    """Normalizes error text for last_error (bounded length, never empty)."""
    text = str(error_text or "").strip() or LedgerConfig.DEFAULT_ERROR
    return text[:LedgerConfig.MAX_ERROR_CHARS]


class RosterRepository:
    """Ledger operations over the segment_blast table."""

    TABLE = LedgerConfig.TABLE

    def __init__(self, db_client: Any = None):
        """
        Args:
            db_client: Supabase client (default: lazily created shared client)
        """
        self._db = db_client

    @property
    def db(self) -> Any:
        if self._db is None:
            self._db = get_supabase_client()
        return self._db

    @handle_errors(reraise_as=DatabaseError)
    async def reconcile(self, segment_key: str, user_ids: Iterable[str]) -> int:
        """
        Inserts a row for every id not yet present under the key.

        Pre-existing rows are left untouched, so calling this every run
        with overlapping candidate sets is safe.

        Args:
            segment_key: Campaign key
            user_ids: Candidate recipient ids

        Returns:
            Number of rows newly created
        """
        ids = dedupe(user_ids)
        if not ids:
            return 0

        created_at = now_utc().isoformat()
        created = 0

        for part in chunked(ids, LedgerConfig.INSERT_CHUNK):
            rows = [
                {"segment_key": segment_key, "user_id": user_id, "created_at": created_at}
                for user_id in part
            ]
            response = (
                self.db.table(self.TABLE)
                .upsert(rows, on_conflict=LedgerConfig.ON_CONFLICT, ignore_duplicates=True)
                .execute()
            )
            created += len(response.data or [])

        logger.info(f"[{segment_key}] ledger reconcile: {created} new of {len(ids)} candidates")
        return created

    @handle_errors(reraise_as=DatabaseError)
    async def ensure_single(self, segment_key: str, user_id: str) -> bool:
        """
        Inserts one row if absent (forced test recipient).

        Returns:
            True if the row was created now
        """
        response = (
            self.db.table(self.TABLE)
            .upsert(
                {"segment_key": segment_key, "user_id": user_id, "created_at": now_utc().isoformat()},
                on_conflict=LedgerConfig.ON_CONFLICT,
                ignore_duplicates=True,
            )
            .execute()
        )
        return bool(response.data)

    @handle_errors(reraise_as=DatabaseError)
    async def load_unsent(self, segment_key: str, limit: Optional[int] = None) -> List[RosterEntry]:
        """
        Loads rows with sent_at IS NULL, ordered by user_id.

        Args:
            segment_key: Campaign key
            limit: Max rows (None = all)

        Returns:
            List of RosterEntry in deterministic order
        """
        rows = fetch_all(
            lambda: (
                self.db.table(self.TABLE)
                .select(_COLUMNS)
                .eq("segment_key", segment_key)
                .is_("sent_at", "null")
                .order("user_id")
            ),
            limit=limit,
        )
        return [RosterEntry.from_db_row(row) for row in rows]

    @handle_errors(reraise_as=DatabaseError)
    async def mark_sent(self, segment_key: str, user_ids: Iterable[str]) -> int:
        """
        Sets sent_at = now() and clears last_error.

        Only rows still unsent are touched; calling it again is a no-op.

        Returns:
            Number of rows that transitioned to sent
        """
        ids = dedupe(user_ids)
        if not ids:
            return 0

        sent_at = now_utc().isoformat()
        updated = 0

        for part in chunked(ids, LedgerConfig.ID_FILTER_CHUNK):
            response = (
                self.db.table(self.TABLE)
                .update({"sent_at": sent_at, "last_error": None})
                .eq("segment_key", segment_key)
                .in_("user_id", part)
                .is_("sent_at", "null")
                .execute()
            )
            updated += len(response.data or [])

        return updated

    @handle_errors(reraise_as=DatabaseError)
    async def mark_failed(
        self,
        segment_key: str,
        user_ids: Iterable[str],
        error_text: Any = None,
    ) -> int:
        """
        Records last_error for unsent rows without touching sent_at.

        Args:
            segment_key: Campaign key
            user_ids: Recipients of the failed call (or rejected by a filter)
            error_text: Reason, truncated to LedgerConfig.MAX_ERROR_CHARS

        Returns:
            Number of rows updated
        """
        ids = dedupe(user_ids)
        if not ids:
            return 0

        message = truncate_error(error_text)
        updated = 0

        for part in chunked(ids, LedgerConfig.ID_FILTER_CHUNK):
            response = (
                self.db.table(self.TABLE)
                .update({"last_error": message})
                .eq("segment_key", segment_key)
                .in_("user_id", part)
                .is_("sent_at", "null")
                .execute()
            )
            updated += len(response.data or [])

        return updated

    @handle_errors(reraise_as=DatabaseError)
    async def sent_user_ids(
        self,
        user_ids: Iterable[str],
        segment_keys: Optional[Iterable[str]] = None,
        key_pattern: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> Set[str]:
        """
        Returns the ids among `user_ids` with a non-null sent_at.

        Without key restrictions any segment key counts (once-ever rule).

        Args:
            user_ids: Ids to check
            segment_keys: Only count sends under these keys
            key_pattern: Only count sends under keys matching this regex
            since: Only count sends at or after this instant

        Returns:
            Set of ids already sent to
        """
        ids = dedupe(user_ids)
        keys = dedupe(segment_keys or [])
        if not ids or (segment_keys is not None and not keys):
            return set()

        def build(part: List[str]):
            def _query():
                query = (
                    self.db.table(self.TABLE)
                    .select("user_id")
                    .in_("user_id", part)
                    .not_.is_("sent_at", "null")
                )
                if keys:
                    query = query.in_("segment_key", keys)
                if key_pattern:
                    query = query.filter("segment_key", "match", key_pattern)
                if since is not None:
                    query = query.gte("sent_at", since.isoformat())
                return query.order("user_id")
            return _query

        found: Set[str] = set()
        for part in chunked(ids, LedgerConfig.ID_FILTER_CHUNK):
            found.update(row["user_id"] for row in fetch_all(build(part)))
        return found

    @handle_errors(reraise_as=DatabaseError)
    async def count_summary(self, segment_key: str) -> LedgerCounts:
        """
        Counts total / sent / unsent / errored rows for a key.

        Returns:
            LedgerCounts
        """
        def _count(query) -> int:
            return query.limit(1).execute().count or 0

        total = _count(
            self.db.table(self.TABLE)
            .select("user_id", count="exact")
            .eq("segment_key", segment_key)
        )
        sent = _count(
            self.db.table(self.TABLE)
            .select("user_id", count="exact")
            .eq("segment_key", segment_key)
            .not_.is_("sent_at", "null")
        )
        errored = _count(
            self.db.table(self.TABLE)
            .select("user_id", count="exact")
            .eq("segment_key", segment_key)
            .is_("sent_at", "null")
            .not_.is_("last_error", "null")
        )

        return LedgerCounts(
            segment_key=segment_key,
            total=total,
            sent=sent,
            unsent=total - sent,
            errored=errored,
        )
