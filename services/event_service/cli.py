"""Event service maintenance commands.

Usage:
    python -m services.event_service.cli cleanup-idempotency-keys [--dry-run]
    python -m services.event_service.cli idempotency-stats
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from wms_shared.config import settings
from wms_shared.schemas import IdempotencyStatistics
from services.event_service.domain.maintenance import (
    run_standalone_cleanup,
    run_standalone_statistics,
)

logger = logging.getLogger(__name__)

STAT_ROWS = (
    ("Total Keys", "total_keys"),
    ("Active Keys", "active_keys"),
    ("Expired Keys", "expired_keys"),
    ("Completed Keys", "completed_keys"),
    ("Failed Keys", "failed_keys"),
    ("Processing Keys", "processing_keys"),
)


def format_statistics(statistics: IdempotencyStatistics) -> str:
    """Render statistics as a two-column table."""
    width = max(len(label) for label, _ in STAT_ROWS)
    lines = [f"{'Metric'.ljust(width)}  Count", f"{'-' * width}  -----"]
    for label, field in STAT_ROWS:
        lines.append(f"{label.ljust(width)}  {getattr(statistics, field)}")
    return "\n".join(lines)


def cmd_cleanup(args: argparse.Namespace) -> int:
    print("Starting idempotency keys cleanup...")

    try:
        result = asyncio.run(run_standalone_cleanup(dry_run=args.dry_run))
    except Exception as e:
        print(f"Idempotency keys cleanup failed: {e}", file=sys.stderr)
        logger.error(f"Idempotency keys cleanup failed: {e}")
        return 1

    print("Statistics before cleanup:")
    print(format_statistics(result.before))

    if result.dry_run:
        print("DRY RUN MODE - No keys will be deleted")
        print(f"Would delete {result.before.expired_keys} expired keys")
        return 0

    if result.deleted_count > 0:
        print(f"Successfully deleted {result.deleted_count} expired idempotency keys")
        print("Statistics after cleanup:")
        print(format_statistics(result.after))
    else:
        print("No expired idempotency keys found to delete")

    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    try:
        statistics = asyncio.run(run_standalone_statistics())
    except Exception as e:
        print(f"Failed to retrieve idempotency statistics: {e}", file=sys.stderr)
        return 1

    print(format_statistics(statistics))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="event-service",
        description="Event service maintenance commands",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    cleanup = subparsers.add_parser(
        "cleanup-idempotency-keys",
        help="Clean up expired idempotency keys",
    )
    cleanup.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without actually deleting",
    )
    cleanup.set_defaults(func=cmd_cleanup)

    stats = subparsers.add_parser(
        "idempotency-stats",
        help="Show idempotency key statistics",
    )
    stats.set_defaults(func=cmd_stats)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
