"""
Eligibility filter pipeline.

Reduces the unsent ledger rows of a key to the eligible set. Stages run
in a fixed order and each is toggled by the campaign configuration:

1. format validity (invalid ids get last_error, never dispatched)
2. domain exclusion (named predicate, cached per run)
3. cross-key exclusion (sent under listed keys / keys matching a pattern)
4. once-ever exclusion (sent under any key)
5. recent-contact cooldown

A forced recipient bypasses every stage.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Set

from segment_blast.core.timezone import now_utc
from segment_blast.core.utils import dedupe
from segment_blast.services.eligibility.filters import (
    CROSS_KEY_REASON,
    EVER_SENT_REASON,
    INVALID_ID_REASON,
    FilterName,
    domain_reason,
    is_valid_user_id,
)
from segment_blast.services.extraction import CandidateExtractor
from segment_blast.services.roster import RosterRepository

if TYPE_CHECKING:
    from segment_blast.services.campaigns.types import CampaignConfig

logger = logging.getLogger(__name__)


@dataclass
class RunExclusions:
    """
    Exclusion sets of one run.

    Created per run and passed to each stage explicitly. A field left as
    None has not been computed yet; the pipeline fills it on first use so
    each predicate is queried at most once per run.
    """

    domain: Optional[Set[str]] = None
    cross_key: Optional[Set[str]] = None
    ever_sent: Optional[Set[str]] = None
    cooldown: Optional[Set[str]] = None


@dataclass
class EligibilityResult:
    """Eligible ids (input order preserved) and per-stage rejection counts."""

    eligible: List[str]
    rejected: Dict[str, int] = field(
        default_factory=lambda: {name.value: 0 for name in FilterName}
    )
    forced: bool = False

    @property
    def total_rejected(self) -> int:
        return sum(self.rejected.values())


class EligibilityPipeline:
    """Applies the configured filters to the unsent rows of a key."""

    def __init__(self, roster: RosterRepository, extractor: CandidateExtractor):
        self.roster = roster
        self.extractor = extractor

    async def evaluate(
        self,
        config: "CampaignConfig",
        unsent_ids: Iterable[str],
        exclusions: Optional[RunExclusions] = None,
        now: Optional[datetime] = None,
    ) -> EligibilityResult:
        """
        Computes the eligible set.

        Args:
            config: Campaign configuration
            unsent_ids: Ids of rows with sent_at IS NULL under the key
            exclusions: Run-scoped exclusion sets (filled in place)
            now: Override for the current time (tests)

        Returns:
            EligibilityResult
        """
        key = config.segment_key

        if config.force_user_id:
            await self.roster.ensure_single(key, config.force_user_id)
            logger.warning(f"[{key}] FORCE_USER_ID set, filters bypassed: {config.force_user_id}")
            return EligibilityResult(eligible=[config.force_user_id], forced=True)

        exclusions = exclusions if exclusions is not None else RunExclusions()
        now = now or now_utc()
        result = EligibilityResult(eligible=dedupe(unsent_ids))

        if config.validate_format:
            await self._format_stage(key, result, record=not config.dry_run)

        if config.domain_exclusion is not None and result.eligible:
            if exclusions.domain is None:
                exclusions.domain = await self.domain_excluded(config, result.eligible, now)
            await self._exclude(
                config, result, exclusions.domain, FilterName.DOMAIN,
                domain_reason(config.domain_exclusion.name),
            )

        if (config.exclude_sent_keys or config.exclude_key_pattern) and result.eligible:
            if exclusions.cross_key is None:
                exclusions.cross_key = await self.cross_key_excluded(config, result.eligible)
            await self._exclude(
                config, result, exclusions.cross_key, FilterName.CROSS_KEY, CROSS_KEY_REASON,
            )

        if config.exclude_ever_sent and result.eligible:
            if exclusions.ever_sent is None:
                exclusions.ever_sent = await self.roster.sent_user_ids(result.eligible)
            await self._exclude(
                config, result, exclusions.ever_sent, FilterName.EVER_SENT, EVER_SENT_REASON,
            )

        if config.cooldown_hours and result.eligible:
            if exclusions.cooldown is None:
                since = now - timedelta(hours=config.cooldown_hours)
                exclusions.cooldown = await self.roster.sent_user_ids(result.eligible, since=since)
            # Still pending; reconsidered on the next run
            await self._exclude(config, result, exclusions.cooldown, FilterName.COOLDOWN, None)

        logger.info(
            f"[{key}] eligibility: {len(result.eligible)} eligible, "
            f"rejected={result.rejected}"
        )
        return result

    async def _format_stage(self, key: str, result: EligibilityResult, record: bool) -> None:
        valid = [uid for uid in result.eligible if is_valid_user_id(uid)]
        invalid = [uid for uid in result.eligible if not is_valid_user_id(uid)]
        if invalid:
            if record:
                await self.roster.mark_failed(key, invalid, INVALID_ID_REASON)
            logger.warning(f"[{key}] {len(invalid)} invalid user ids filtered before dispatch")
        result.eligible = valid
        result.rejected[FilterName.FORMAT.value] = len(invalid)

    async def _exclude(
        self,
        config: "CampaignConfig",
        result: EligibilityResult,
        excluded: Set[str],
        stage: FilterName,
        reason: Optional[str],
    ) -> None:
        dropped = [uid for uid in result.eligible if uid in excluded]
        if not dropped:
            return
        result.eligible = [uid for uid in result.eligible if uid not in excluded]
        result.rejected[stage.value] += len(dropped)
        if reason and config.record_exclusion_reasons and not config.dry_run:
            await self.roster.mark_failed(config.segment_key, dropped, reason)

    async def domain_excluded(
        self,
        config: "CampaignConfig",
        user_ids: List[str],
        now: datetime,
    ) -> Set[str]:
        """Evaluates the configured domain predicate over `user_ids`."""
        rule = config.domain_exclusion
        since = now - timedelta(days=rule.days) if rule.days else None

        if rule.name == "purchased_any":
            return await self.extractor.purchased_user_ids(user_ids, since, config.statuses)
        return await self.extractor.purchased_product_user_ids(
            user_ids, rule.product_id, since=since, statuses=config.statuses,
        )

    async def cross_key_excluded(self, config: "CampaignConfig", user_ids: List[str]) -> Set[str]:
        """Ids already sent under the listed keys or keys matching the pattern."""
        excluded: Set[str] = set()
        other_keys = [k for k in config.exclude_sent_keys if k != config.segment_key]
        if other_keys:
            excluded |= await self.roster.sent_user_ids(user_ids, segment_keys=other_keys)
        if config.exclude_key_pattern:
            excluded |= await self.roster.sent_user_ids(
                user_ids, key_pattern=config.exclude_key_pattern,
            )
        return excluded
