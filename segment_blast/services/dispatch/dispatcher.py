"""
Batch dispatcher.

Splits the eligible set into chunks of at most B recipients, calls the
provider once per chunk in order, and records each chunk's outcome in
the ledger before moving on. A failed chunk never stops the run.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence

from segment_blast.core.config import settings
from segment_blast.core.utils import chunked, dedupe
from segment_blast.services.line_providers import LineProvider, SendResult
from segment_blast.services.roster import RosterRepository

logger = logging.getLogger(__name__)

Personalizer = Callable[[str], Awaitable[List[dict]]]


@dataclass
class DispatchPlan:
    """Chunks a dispatch would send, in order."""

    batch_size: int
    chunks: List[List[str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(len(chunk) for chunk in self.chunks)

    @property
    def batches(self) -> int:
        return len(self.chunks)


@dataclass
class DispatchResult:
    """Counts of one dispatch (projected when dry_run)."""

    planned_batches: int = 0
    attempted_batches: int = 0
    recipients: int = 0
    sent: int = 0
    failed: int = 0
    dry_run: bool = False
    errors: List[str] = field(default_factory=list)


class BatchDispatcher:
    """
    Sends eligible recipients in bounded chunks.

    Args:
        roster: Ledger repository
        provider: Delivery provider
        batch_size: Requested chunk size (clamped to provider.max_recipients)
        sleep_ms: Delay between chunks
    """

    def __init__(
        self,
        roster: RosterRepository,
        provider: LineProvider,
        batch_size: Optional[int] = None,
        sleep_ms: Optional[int] = None,
    ):
        self.roster = roster
        self.provider = provider
        requested = batch_size or settings.DEFAULT_BATCH_SIZE
        self.batch_size = max(1, min(requested, provider.max_recipients))
        self.sleep_ms = settings.DEFAULT_SLEEP_MS if sleep_ms is None else max(0, sleep_ms)

    def plan(self, user_ids: Sequence[str], batch_size: Optional[int] = None) -> DispatchPlan:
        """
        Splits ids into chunks.

        Returns:
            DispatchPlan with ceil(N / B) chunks, each of at most B ids
        """
        size = min(batch_size or self.batch_size, self.batch_size)
        ids = dedupe(user_ids)
        return DispatchPlan(batch_size=size, chunks=list(chunked(ids, size)))

    async def dispatch(
        self,
        segment_key: str,
        user_ids: Sequence[str],
        messages: List[dict],
        personalize: Optional[Personalizer] = None,
        dry_run: bool = False,
    ) -> DispatchResult:
        """
        Sends every chunk sequentially and updates the ledger per chunk.

        Args:
            segment_key: Campaign key
            user_ids: Eligible ids
            messages: Message objects (shared by every chunk)
            personalize: Builds per-recipient messages; forces chunks of one
            dry_run: Plan only (no provider calls, no ledger writes)

        Returns:
            DispatchResult
        """
        plan = self.plan(user_ids, 1 if personalize else None)
        result = DispatchResult(
            planned_batches=plan.batches,
            recipients=plan.total,
            dry_run=dry_run,
        )

        if dry_run:
            logger.info(
                f"[{segment_key}] DRY_RUN: would send {plan.total} recipients "
                f"in {plan.batches} batches of <= {plan.batch_size}"
            )
            return result

        for index, chunk in enumerate(plan.chunks):
            if index > 0 and self.sleep_ms:
                await asyncio.sleep(self.sleep_ms / 1000)

            payload = await personalize(chunk[0]) if personalize else messages
            outcome = await self._send_chunk(chunk, payload)
            result.attempted_batches += 1

            if outcome.success:
                result.sent += await self.roster.mark_sent(segment_key, chunk)
                logger.info(
                    f"[{segment_key}] batch {index + 1}/{plan.batches}: sent {len(chunk)}"
                )
            else:
                result.failed += await self.roster.mark_failed(segment_key, chunk, outcome.error)
                result.errors.append(outcome.error or "")
                logger.error(
                    f"[{segment_key}] batch {index + 1}/{plan.batches}: failed "
                    f"({len(chunk)} recipients): {outcome.error}"
                )

        return result

    async def _send_chunk(self, chunk: List[str], messages: List[dict]) -> SendResult:
        retry_key = str(uuid.uuid4())
        try:
            return await self.provider.send(chunk, messages, retry_key=retry_key)
        except Exception as e:
            logger.error(f"Provider raised for {len(chunk)} recipients: {e}", exc_info=True)
            return SendResult(success=False, error=str(e) or e.__class__.__name__)
