"""
Command line entry point.

Usage:
    python -m segment_blast buyers_thanks_3d --dry-run
    python -m segment_blast buyers_thanks_3d --force-user-id U0123...
    python -m segment_blast monthly_1st --only-openers 365
    python -m segment_blast openers_asof --segment-key ohanami_openers --as-of 2026-03-21T00:00:00+09:00
    python -m segment_blast blast --segment-key liff_200_blast --message-file ./messages/blast.json
    python -m segment_blast --list

Environment fallbacks (for cron): SEGMENT_KEY, MESSAGE_FILE, DRY_RUN=1,
FORCE_USER_ID, LIMIT.

Exit status: 0 on completion (including failed batches, which are
recorded in the ledger), 1 on record-store / ledger errors, 2 on
configuration errors.
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from segment_blast.core.exceptions import (
    ConfigurationError,
    DatabaseError,
    ExtractionError,
)
from segment_blast.core.logging import setup_logging
from segment_blast.core.timezone import parse_iso
from segment_blast.services.campaigns import (
    CampaignConfig,
    CampaignRunner,
    RunSummary,
    build_config,
    list_presets,
)
from segment_blast.services.http_client import close_http_client

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_RUNTIME_ERROR = 1
EXIT_CONFIG_ERROR = 2

# OPENED_WITHIN_DAYS default when --only-openers is given without a value
DEFAULT_OPENED_WITHIN_DAYS = 365


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name, "").strip()
    return int(value) if value.isdigit() else None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="segment_blast",
        description="Segmented LINE campaign delivery with an idempotent roster ledger",
    )
    parser.add_argument("campaign", nargs="?", help="Campaign preset name")
    parser.add_argument("--list", action="store_true", help="List campaign presets and exit")

    parser.add_argument("--segment-key", default=os.getenv("SEGMENT_KEY") or None)
    parser.add_argument("--message-file", default=os.getenv("MESSAGE_FILE") or None)
    parser.add_argument("--provider", choices=["multicast", "push"])
    parser.add_argument("--dry-run", action="store_true", default=_env_flag("DRY_RUN"),
                        help="Plan only: no provider calls, no delivery bookkeeping")
    parser.add_argument("--force-user-id", default=os.getenv("FORCE_USER_ID") or None,
                        help="Send only to this user (bypasses every filter)")

    window = parser.add_argument_group("window")
    window.add_argument("--start-days", type=float)
    window.add_argument("--end-days", type=float)
    window.add_argument("--as-of", help="ISO-8601 anchor instant instead of now")
    window.add_argument("--limit", type=int, default=_env_int("LIMIT"))
    window.add_argument("--only-openers", type=int, nargs="?", const=DEFAULT_OPENED_WITHIN_DAYS,
                        metavar="DAYS", help="Keep only users who opened the mini-app within DAYS")

    dispatch = parser.add_argument_group("dispatch")
    dispatch.add_argument("--batch-size", type=int)
    dispatch.add_argument("--sleep-ms", type=int)

    filters = parser.add_argument_group("filters")
    filters.add_argument("--exclude-ever-sent", action="store_true", default=None,
                         help="Skip anyone who ever received any campaign")
    filters.add_argument("--exclude-key", action="append", dest="exclude_sent_keys",
                         metavar="KEY", help="Skip anyone sent under KEY (repeatable)")
    filters.add_argument("--exclude-key-pattern", metavar="REGEX")
    filters.add_argument("--cooldown-hours", type=float)
    filters.add_argument("--exclude-purchased-days", type=int, metavar="DAYS",
                         help="Skip anyone who bought anything within DAYS")
    filters.add_argument("--exclude-product-id", metavar="ID",
                         help="Skip anyone who ever ordered product ID")
    filters.add_argument("--record-reasons", action="store_true", default=None,
                         help="Write exclusion reasons to last_error")

    parser.add_argument("--log-level", default=None)
    return parser


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Maps parsed arguments to CampaignConfig overrides.

    Raises:
        ConfigurationError: Invalid --as-of or conflicting domain exclusions
    """
    overrides: Dict[str, Any] = {
        "segment_key": args.segment_key,
        "message_file": args.message_file,
        "provider": args.provider,
        "force_user_id": args.force_user_id,
        "start_days": args.start_days,
        "end_days": args.end_days,
        "limit": args.limit,
        "require_visit_within_days": args.only_openers,
        "batch_size": args.batch_size,
        "sleep_ms": args.sleep_ms,
        "exclude_ever_sent": args.exclude_ever_sent,
        "exclude_key_pattern": args.exclude_key_pattern,
        "cooldown_hours": args.cooldown_hours,
        "record_exclusion_reasons": args.record_reasons,
    }
    if args.dry_run:
        overrides["dry_run"] = True
    if args.exclude_sent_keys:
        overrides["exclude_sent_keys"] = tuple(args.exclude_sent_keys)

    if args.as_of:
        try:
            overrides["as_of"] = parse_iso(args.as_of)
        except ValueError as e:
            raise ConfigurationError(f"invalid --as-of: {args.as_of}", original_error=e)

    if args.exclude_purchased_days and args.exclude_product_id:
        raise ConfigurationError("--exclude-purchased-days and --exclude-product-id are exclusive")
    if args.exclude_purchased_days:
        overrides["domain_exclusion"] = {"name": "purchased_any", "days": args.exclude_purchased_days}
    elif args.exclude_product_id:
        overrides["domain_exclusion"] = {"name": "purchased_product", "product_id": args.exclude_product_id}

    return overrides


async def run_campaign(config: CampaignConfig, runner: Optional[CampaignRunner] = None) -> RunSummary:
    """Runs one campaign and releases the shared HTTP client."""
    runner = runner or CampaignRunner()
    try:
        return await runner.run(config)
    finally:
        await close_http_client()


def main(argv: Optional[List[str]] = None) -> int:
    # Env fallbacks below read .env too
    load_dotenv()
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    if args.list or not args.campaign:
        for name in list_presets():
            print(name)
        return EXIT_OK if args.list else EXIT_CONFIG_ERROR

    try:
        config = build_config(args.campaign, overrides_from_args(args))
        asyncio.run(run_campaign(config))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR
    except (ExtractionError, DatabaseError) as e:
        logger.error(f"Run aborted: {e}")
        return EXIT_RUNTIME_ERROR

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
