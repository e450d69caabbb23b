"""
Types for the roster ledger (segment_blast table).
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from segment_blast.core.timezone import parse_iso


@dataclass(frozen=True)
class RosterEntry:
    """
    One ledger row: delivery state of a recipient under a segment key.

    `sent_at` is null until a successful dispatch and never reverts.
    `last_error` is only meaningful while `sent_at` is null.
    """

    segment_key: str
    user_id: str
    created_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    last_error: Optional[str] = None

    @property
    def is_sent(self) -> bool:
        return self.sent_at is not None

    @classmethod
    def from_db_row(cls, row: dict) -> "RosterEntry":
        """Creates an entry from a database row."""
        return cls(
            segment_key=row["segment_key"],
            user_id=row["user_id"],
            created_at=parse_iso(row.get("created_at")),
            sent_at=parse_iso(row.get("sent_at")),
            last_error=row.get("last_error"),
        )


@dataclass
class LedgerCounts:
    """Row counts of one segment key."""

    segment_key: str
    total: int = 0
    sent: int = 0
    unsent: int = 0
    errored: int = 0
