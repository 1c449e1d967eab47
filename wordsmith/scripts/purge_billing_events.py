#!/usr/bin/env python3
"""
Billing maintenance script.

Purges processed-webhook rows past their retention window, and optionally
runs the quota drift check.

Usage:
    python -m wordsmith.scripts.purge_billing_events --ttl-days 30
    python -m wordsmith.scripts.purge_billing_events --drift-check --fix

Prerequisites:
    - DATABASE_URL set (or present in .env)
"""
import argparse
import json
import sys
from typing import Optional, Sequence

from dotenv import load_dotenv


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point."""
    load_dotenv()

    from wordsmith.core.config import settings
    from wordsmith.core.logging import configure_logging
    from wordsmith.features.billing.event_log import purge_expired_events
    from wordsmith.features.billing.reconcile_job import run_quota_drift_check
    from wordsmith.features.plans.catalog import build_plan_catalog

    parser = argparse.ArgumentParser(description="Purge expired billing webhook events")
    parser.add_argument(
        "--ttl-days",
        type=int,
        default=settings.BILLING_EVENT_TTL_DAYS,
        help=f"Retention in days (default: {settings.BILLING_EVENT_TTL_DAYS})",
    )
    parser.add_argument("--drift-check", action="store_true", help="Also report workspace quota drift")
    parser.add_argument("--fix", action="store_true", help="With --drift-check, correct drifted quotas")
    parser.add_argument("--limit", type=int, default=100, help="Max corrections per run (default: 100)")
    args = parser.parse_args(argv)

    if args.ttl_days <= 0:
        parser.error("--ttl-days must be positive")

    configure_logging(settings.ENV)

    summary = {"purged": purge_expired_events(args.ttl_days)}
    if args.drift_check:
        summary["drift"] = run_quota_drift_check(
            build_plan_catalog(settings),
            fix=args.fix,
            limit=args.limit,
        )

    print(json.dumps(summary, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
