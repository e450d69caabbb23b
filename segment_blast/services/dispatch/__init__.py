"""
Batch dispatch of eligible recipients.
"""
from segment_blast.services.dispatch.dispatcher import (
    BatchDispatcher,
    DispatchPlan,
    DispatchResult,
)

__all__ = [
    "BatchDispatcher",
    "DispatchPlan",
    "DispatchResult",
]
