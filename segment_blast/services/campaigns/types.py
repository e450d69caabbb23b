"""
Campaign configuration and run summary.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from segment_blast.core.config import settings
from segment_blast.core.exceptions import ConfigurationError
from segment_blast.services.eligibility.filters import FilterName, is_valid_user_id
from segment_blast.services.extraction.types import (
    DEFAULT_PURCHASE_STATUSES,
    CandidateSource,
    DayWindow,
)
from segment_blast.services.line_providers.base import ProviderType


class DomainExclusion(BaseModel):
    """
    Named domain predicate excluding recipients for business reasons.

    - purchased_any: bought anything in the last `days` days
    - purchased_product: has an order containing `product_id`
      (optionally only within the last `days` days)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: Literal["purchased_any", "purchased_product"]
    days: Optional[int] = None
    product_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_arguments(self) -> "DomainExclusion":
        if self.days is not None and self.days <= 0:
            raise ValueError("domain_exclusion.days must be > 0")
        if self.name == "purchased_any" and self.days is None:
            raise ValueError("purchased_any requires days")
        if self.name == "purchased_product" and not (self.product_id or "").strip():
            raise ValueError("purchased_product requires product_id")
        return self


class CampaignConfig(BaseModel):
    """
    Immutable configuration for one campaign run.

    Built from a preset plus overrides (see registry.build_config). Any
    invalid value raises ConfigurationError before the ledger is touched.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    segment_key: str

    # Candidate extraction
    source: Optional[CandidateSource] = CandidateSource.PURCHASE
    start_days: Optional[float] = None
    end_days: float = 0
    as_of: Optional[datetime] = None
    statuses: Tuple[str, ...] = DEFAULT_PURCHASE_STATUSES
    latest_event_only: bool = False
    require_visit_within_days: Optional[int] = None
    limit: Optional[int] = settings.DEFAULT_LIMIT

    # Messages / delivery
    message_file: Optional[str] = None
    provider: ProviderType = ProviderType.MULTICAST
    batch_size: int = settings.DEFAULT_BATCH_SIZE
    sleep_ms: int = settings.DEFAULT_SLEEP_MS
    personalize_name: bool = False

    # Eligibility filters
    validate_format: bool = True
    domain_exclusion: Optional[DomainExclusion] = None
    exclude_sent_keys: Tuple[str, ...] = ()
    exclude_key_pattern: Optional[str] = None
    exclude_ever_sent: bool = False
    cooldown_hours: Optional[float] = None
    record_exclusion_reasons: bool = False

    # Run modes
    force_user_id: Optional[str] = None
    dry_run: bool = False
    roster_only: bool = False

    @field_validator("segment_key")
    @classmethod
    def _check_segment_key(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("segment_key must not be empty")
        return value

    @field_validator("force_user_id")
    @classmethod
    def _check_force_user_id(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        if not is_valid_user_id(value):
            raise ValueError(f"force_user_id is not a LINE user id: {value!r}")
        return value.strip()

    @field_validator("exclude_key_pattern")
    @classmethod
    def _check_key_pattern(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"exclude_key_pattern invalid: {e}")
        return value

    @field_validator("exclude_sent_keys", "statuses")
    @classmethod
    def _strip_values(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(item.strip() for item in value if item and item.strip())

    @model_validator(mode="after")
    def _check_consistency(self) -> "CampaignConfig":
        try:
            self.window
        except ConfigurationError as e:
            raise ValueError(e.message)

        if self.limit is not None and self.limit < 1:
            raise ValueError("limit must be >= 1")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.sleep_ms < 0:
            raise ValueError("sleep_ms must be >= 0")
        if self.require_visit_within_days is not None and self.require_visit_within_days <= 0:
            raise ValueError("require_visit_within_days must be > 0")
        if self.cooldown_hours is not None and self.cooldown_hours <= 0:
            raise ValueError("cooldown_hours must be > 0")
        if self.source == CandidateSource.PURCHASE and not self.statuses:
            raise ValueError("statuses must not be empty for purchase campaigns")
        if self.roster_only and self.source is None:
            raise ValueError("roster_only requires a candidate source")
        if self.roster_only and self.force_user_id:
            raise ValueError("force_user_id cannot be combined with roster_only")
        if not self.roster_only and not self.message_file:
            raise ValueError("message_file is required unless roster_only")
        return self

    @property
    def window(self) -> DayWindow:
        """Eligibility window for candidate extraction."""
        return DayWindow(self.start_days, self.end_days, self.as_of)

    @classmethod
    def build(cls, **values) -> "CampaignConfig":
        """
        Validates values into a config.

        Raises:
            ConfigurationError: With every validation problem listed
        """
        try:
            return cls(**values)
        except ValidationError as e:
            problems = [
                f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
                for err in e.errors()
            ]
            raise ConfigurationError(
                "Invalid campaign configuration",
                details={"segment_key": values.get("segment_key"), "errors": problems},
                original_error=e,
            ) from e


@dataclass
class RunSummary:
    """Outcome of one campaign run (always produced)."""

    segment_key: str
    dry_run: bool = False
    forced: bool = False
    roster_only: bool = False
    candidates_found: int = 0
    rows_created: int = 0
    unsent_total: int = 0
    eligible_total: int = 0
    rejected: Dict[str, int] = field(
        default_factory=lambda: {name.value: 0 for name in FilterName}
    )
    batches_planned: int = 0
    batches_attempted: int = 0
    marked_sent: int = 0
    marked_failed: int = 0
    ledger_total: Optional[int] = None
    ledger_sent: Optional[int] = None
    ledger_unsent: Optional[int] = None
    ledger_errored: Optional[int] = None

    def to_dict(self) -> dict:
        data = {
            "segment_key": self.segment_key,
            "dry_run": self.dry_run,
            "forced": self.forced,
            "roster_only": self.roster_only,
            "candidates_found": self.candidates_found,
            "rows_created": self.rows_created,
            "unsent_total": self.unsent_total,
            "eligible_total": self.eligible_total,
            "batches_planned": self.batches_planned,
            "batches_attempted": self.batches_attempted,
            "marked_sent": self.marked_sent,
            "marked_failed": self.marked_failed,
        }
        for name, count in self.rejected.items():
            data[f"rejected_{name}"] = count
        if self.ledger_total is not None:
            data["ledger_total"] = self.ledger_total
            data["ledger_sent"] = self.ledger_sent
            data["ledger_unsent"] = self.ledger_unsent
            data["ledger_errored"] = self.ledger_errored
        return data

    def log_lines(self) -> List[str]:
        """Line-oriented key=value status for operators."""
        return [f"{key}={value}" for key, value in self.to_dict().items()]
