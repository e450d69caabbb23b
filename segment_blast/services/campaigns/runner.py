"""
Campaign runner.

One invocation of a campaign:

1. load messages and provider (configuration errors surface here)
2. extract candidates and reconcile them into the ledger
3. load unsent rows and apply the eligibility pipeline
4. dispatch in chunks and record outcomes
5. return the RunSummary

Safe to re-run at any time: the ledger makes every step idempotent.
"""

import logging
from datetime import datetime
from typing import Any, List, Optional

from segment_blast.services.campaigns.types import CampaignConfig, RunSummary
from segment_blast.services.dispatch import BatchDispatcher
from segment_blast.services.dispatch.dispatcher import Personalizer
from segment_blast.services.eligibility import EligibilityPipeline, RunExclusions
from segment_blast.services.extraction import CandidateExtractor
from segment_blast.services.line_providers import LineProvider, get_provider
from segment_blast.services.messages import load_messages, render_named
from segment_blast.services.roster import RosterRepository

logger = logging.getLogger(__name__)


class CampaignRunner:
    """Orchestrates extraction, ledger, eligibility and dispatch for one run."""

    def __init__(
        self,
        roster: Optional[RosterRepository] = None,
        extractor: Optional[CandidateExtractor] = None,
        provider: Optional[LineProvider] = None,
        db_client: Any = None,
    ):
        """
        Args:
            roster: Ledger repository (default: built on db_client)
            extractor: Candidate extractor (default: built on db_client)
            provider: Delivery provider (default: from the campaign config)
            db_client: Supabase client shared by the defaults
        """
        self.roster = roster or RosterRepository(db_client)
        self.extractor = extractor or CandidateExtractor(db_client)
        self.pipeline = EligibilityPipeline(self.roster, self.extractor)
        self._provider = provider

    async def run(self, config: CampaignConfig, now: Optional[datetime] = None) -> RunSummary:
        """
        Executes one campaign run.

        Args:
            config: Validated campaign configuration
            now: Override for the current time (tests)

        Returns:
            RunSummary

        Raises:
            ConfigurationError: Before any ledger write
            ExtractionError: Before reconciliation
            DatabaseError: Ledger statement failed
        """
        key = config.segment_key
        summary = RunSummary(
            segment_key=key,
            dry_run=config.dry_run,
            forced=bool(config.force_user_id),
            roster_only=config.roster_only,
        )

        messages: List[dict] = []
        provider: Optional[LineProvider] = None
        if not config.roster_only:
            messages = load_messages(config.message_file)
            provider = self._provider or get_provider(config.provider)

        logger.info(
            f"[{key}] run start: source={config.source.value if config.source else 'roster'} "
            f"window={config.window.describe()} dry_run={config.dry_run} "
            f"force={config.force_user_id or '(none)'}"
        )

        unsent_ids: List[str] = []
        if not config.force_user_id:
            if config.source is not None:
                candidates = await self.extractor.extract(
                    config.source,
                    config.window,
                    limit=config.limit,
                    statuses=config.statuses,
                    latest_event_only=config.latest_event_only,
                    require_visit_within_days=config.require_visit_within_days,
                    now=now,
                )
                summary.candidates_found = len(candidates)
                summary.rows_created = await self.roster.reconcile(key, candidates)

            if config.roster_only:
                await self._fill_ledger_counts(summary)
                self._log_summary(summary)
                return summary

            unsent = await self.roster.load_unsent(key, limit=config.limit)
            unsent_ids = [entry.user_id for entry in unsent]
            summary.unsent_total = len(unsent_ids)

        eligibility = await self.pipeline.evaluate(config, unsent_ids, RunExclusions(), now=now)
        summary.eligible_total = len(eligibility.eligible)
        summary.rejected = dict(eligibility.rejected)

        if eligibility.eligible:
            dispatcher = BatchDispatcher(
                self.roster, provider, batch_size=config.batch_size, sleep_ms=config.sleep_ms,
            )
            personalize = self._personalizer(config, messages) if config.personalize_name else None
            result = await dispatcher.dispatch(
                key,
                eligibility.eligible,
                messages,
                personalize=personalize,
                dry_run=config.dry_run,
            )
            summary.batches_planned = result.planned_batches
            summary.batches_attempted = result.attempted_batches
            summary.marked_sent = result.sent
            summary.marked_failed = result.failed
        else:
            logger.info(f"[{key}] nothing to send")

        self._log_summary(summary)
        return summary

    def _personalizer(self, config: CampaignConfig, messages: List[dict]) -> Personalizer:
        async def personalize(user_id: str) -> List[dict]:
            name = await self.extractor.resolve_display_name(user_id, config.statuses)
            return render_named(messages, name)

        return personalize

    async def _fill_ledger_counts(self, summary: RunSummary) -> None:
        counts = await self.roster.count_summary(summary.segment_key)
        summary.ledger_total = counts.total
        summary.ledger_sent = counts.sent
        summary.ledger_unsent = counts.unsent
        summary.ledger_errored = counts.errored

    def _log_summary(self, summary: RunSummary) -> None:
        for line in summary.log_lines():
            logger.info(line)
        logger.info(
            f"[{summary.segment_key}] run done",
            extra={"extra_fields": summary.to_dict()},
        )
