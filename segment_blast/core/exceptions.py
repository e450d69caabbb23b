"""
Custom exceptions for segment-blast.

Taxonomy:
- ConfigurationError: fatal, raised before any ledger mutation
- ExtractionError: record-store query failed, run aborted before reconciliation
- DatabaseError: ledger statement failed
"""
from typing import Optional


class SegmentBlastException(Exception):
    """Base exception for every error raised by the engine."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ):
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ConfigurationError(SegmentBlastException):
    """Invalid campaign or process configuration."""
    pass


class TemplateError(ConfigurationError):
    """Message file missing or malformed."""
    pass


class DatabaseError(SegmentBlastException):
    """Ledger (Supabase) error."""
    pass


class ExtractionError(SegmentBlastException):
    """Transactional record query failed."""
    pass

