"""
Types for candidate extraction.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from numbers import Real
from typing import Optional, Tuple

from segment_blast.core.exceptions import ConfigurationError
from segment_blast.core.timezone import days_before, now_utc, to_utc


class CandidateSource(str, Enum):
    """Transactional record sets a campaign can draw from."""

    PURCHASE = "purchase"
    FOLLOW = "follow"
    VISIT = "visit"


@dataclass(frozen=True)
class SourceTable:
    """Table and timestamp column backing a source."""

    table: str
    timestamp_column: str


SOURCE_TABLES = {
    CandidateSource.PURCHASE: SourceTable("orders", "created_at"),
    CandidateSource.FOLLOW: SourceTable("follow_events", "followed_at"),
    CandidateSource.VISIT: SourceTable("liff_open_logs", "opened_at"),
}

# Orders that count as a completed purchase
DEFAULT_PURCHASE_STATUSES = ("paid", "confirmed", "pickup")


def _is_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


@dataclass(frozen=True)
class DayWindow:
    """
    Half-open eligibility window [anchor - start_days, anchor - end_days).

    The anchor is now() unless `as_of` is set. `start_days=None` means no
    lower bound ("at least end_days ago").

    Raises:
        ConfigurationError: If start_days <= end_days or end_days < 0
    """

    start_days: Optional[float]
    end_days: float = 0
    as_of: Optional[datetime] = None

    def __post_init__(self):
        if not _is_number(self.end_days) or self.end_days < 0:
            raise ConfigurationError(
                f"end_days invalid: {self.end_days!r}",
                details={"start_days": self.start_days, "end_days": self.end_days},
            )
        if self.start_days is None:
            return
        if not _is_number(self.start_days) or self.start_days <= 0:
            raise ConfigurationError(f"start_days invalid: {self.start_days!r}")
        if self.start_days <= self.end_days:
            raise ConfigurationError(
                f"start_days must be > end_days (start={self.start_days}, end={self.end_days})",
                details={"start_days": self.start_days, "end_days": self.end_days},
            )

    def anchor(self, now: Optional[datetime] = None) -> datetime:
        """Instant the window is measured from (UTC)."""
        if self.as_of is not None:
            return to_utc(self.as_of)
        return to_utc(now) if now is not None else now_utc()

    def bounds(self, now: Optional[datetime] = None) -> Tuple[Optional[datetime], datetime]:
        """
        Returns the window instants.

        Args:
            now: Override for the current time (tests)

        Returns:
            (start, end) in UTC; start is None when unbounded
        """
        anchor = self.anchor(now)
        end = days_before(anchor, self.end_days)
        if self.start_days is None:
            return None, end
        return days_before(anchor, self.start_days), end

    def describe(self) -> str:
        start = "-inf" if self.start_days is None else f"{self.start_days}d"
        suffix = f" as_of={self.as_of.isoformat()}" if self.as_of else ""
        return f"[{start}, {self.end_days}d){suffix}"
