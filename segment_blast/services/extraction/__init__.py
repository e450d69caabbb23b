"""
Candidate extraction.

Structure:
- types: CandidateSource, DayWindow, source tables
- extractor: windowed queries, domain-exclusion queries, name resolution
"""
from segment_blast.services.extraction.extractor import CandidateExtractor
from segment_blast.services.extraction.types import (
    DEFAULT_PURCHASE_STATUSES,
    SOURCE_TABLES,
    CandidateSource,
    DayWindow,
)

__all__ = [
    "CandidateExtractor",
    "CandidateSource",
    "DayWindow",
    "DEFAULT_PURCHASE_STATUSES",
    "SOURCE_TABLES",
]
