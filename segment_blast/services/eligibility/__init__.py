"""
Eligibility filtering of unsent ledger rows.

Structure:
- filters: id validation, stage names, rejection reasons
- pipeline: EligibilityPipeline, RunExclusions, EligibilityResult
"""
from segment_blast.services.eligibility.filters import (
    CROSS_KEY_REASON,
    EVER_SENT_REASON,
    INVALID_ID_REASON,
    FilterName,
    domain_reason,
    is_valid_user_id,
)
from segment_blast.services.eligibility.pipeline import (
    EligibilityPipeline,
    EligibilityResult,
    RunExclusions,
)

__all__ = [
    "EligibilityPipeline",
    "EligibilityResult",
    "RunExclusions",
    "FilterName",
    "is_valid_user_id",
    "domain_reason",
    "INVALID_ID_REASON",
    "CROSS_KEY_REASON",
    "EVER_SENT_REASON",
]
