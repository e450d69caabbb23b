"""
Roster ledger.

Structure:
- repository: segment_blast table access
- types: RosterEntry, LedgerCounts
"""
from segment_blast.services.roster.repository import RosterRepository, truncate_error
from segment_blast.services.roster.types import LedgerCounts, RosterEntry

__all__ = [
    "RosterRepository",
    "RosterEntry",
    "LedgerCounts",
    "truncate_error",
]
