"""
Named campaign presets.

A preset is the default configuration of a repeatable campaign; the CLI
layers environment/flag overrides on top and validates the result into
a CampaignConfig.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from segment_blast.core.config import settings
from segment_blast.core.exceptions import ConfigurationError
from segment_blast.core.timezone import now_tokyo, parse_iso, to_tokyo
from segment_blast.services.campaigns.types import CampaignConfig
from segment_blast.services.extraction import CandidateSource
from segment_blast.services.line_providers import ProviderType

logger = logging.getLogger(__name__)


def _message_path(filename: str) -> str:
    return str(Path(settings.MESSAGES_DIR) / filename)


def _buyers_thanks_3d(today: datetime) -> Dict[str, Any]:
    # Bought 3-4 days ago
    return {
        "segment_key": "buyers_thanks_3d",
        "source": CandidateSource.PURCHASE,
        "start_days": 4,
        "end_days": 3,
        "message_file": _message_path("buyers_thanks_3d.json"),
        "provider": ProviderType.MULTICAST,
    }


def _buyers_thanks_5d_named(today: datetime) -> Dict[str, Any]:
    # Latest purchase 5-6 days ago, personalized, skipped for anyone
    # already reached by another buyers / 2026 campaign
    return {
        "segment_key": "buyers_thanks_5d_named",
        "source": CandidateSource.PURCHASE,
        "start_days": 6,
        "end_days": 5,
        "latest_event_only": True,
        "message_file": _message_path("buyers_thanks_5d_named.json"),
        "provider": ProviderType.PUSH,
        "personalize_name": True,
        "exclude_key_pattern": "(buyers|2026)",
    }


def _monthly_1st(today: datetime) -> Dict[str, Any]:
    # Friends for 21+ days, nothing received in the last 24h
    return {
        "segment_key": f"monthly_1st_{today:%Y%m}",
        "source": CandidateSource.FOLLOW,
        "start_days": None,
        "end_days": 21,
        "latest_event_only": True,
        "cooldown_hours": 24,
        "message_file": _message_path("monthly_1st.txt"),
        "provider": ProviderType.MULTICAST,
    }


def _buyers_30d(today: datetime) -> Dict[str, Any]:
    return {
        "segment_key": f"buyers_30d_{today:%Y-%m-%d}",
        "source": CandidateSource.PURCHASE,
        "start_days": 31,
        "end_days": 30,
        "roster_only": True,
    }


def _openers_asof(today: datetime) -> Dict[str, Any]:
    # Everyone who opened the mini-app before as_of (set by the operator)
    return {
        "segment_key": f"openers_asof_{today:%Y%m%d}",
        "source": CandidateSource.VISIT,
        "start_days": None,
        "end_days": 0,
        "roster_only": True,
    }


def _blast(today: datetime) -> Dict[str, Any]:
    # Sends to a roster prepared beforehand (no extraction)
    return {
        "segment_key": "",
        "source": None,
        "message_file": _message_path("blast.json"),
        "provider": ProviderType.MULTICAST,
    }


PRESETS: Dict[str, Callable[[datetime], Dict[str, Any]]] = {
    "buyers_thanks_3d": _buyers_thanks_3d,
    "buyers_thanks_5d_named": _buyers_thanks_5d_named,
    "monthly_1st": _monthly_1st,
    "buyers_30d": _buyers_30d,
    "openers_asof": _openers_asof,
    "blast": _blast,
}


def list_presets() -> List[str]:
    return sorted(PRESETS)


def build_config(
    preset: str,
    overrides: Optional[Dict[str, Any]] = None,
    today: Optional[datetime] = None,
) -> CampaignConfig:
    """
    Builds the validated configuration of a preset.

    Args:
        preset: Preset name (see PRESETS)
        overrides: Values replacing preset defaults (None values are ignored)
        today: Business date for date-based keys (default: now in Asia/Tokyo).
            An as_of override takes precedence so snapshot keys match it.

    Returns:
        CampaignConfig

    Raises:
        ConfigurationError: Unknown preset or invalid values
    """
    factory = PRESETS.get(preset)
    if factory is None:
        raise ConfigurationError(
            f"Unknown campaign: {preset}",
            details={"available": list_presets()},
        )

    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}

    as_of = overrides.get("as_of")
    if isinstance(as_of, str):
        try:
            as_of = parse_iso(as_of)
        except ValueError as e:
            raise ConfigurationError(f"invalid as_of: {as_of}", original_error=e)
        overrides["as_of"] = as_of

    business_day = to_tokyo(as_of) if as_of else (today or now_tokyo())
    values = factory(business_day)
    values.update(overrides)

    config = CampaignConfig.build(**values)
    logger.debug(f"Campaign config built: {preset} -> {config.segment_key}")
    return config
