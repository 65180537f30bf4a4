#!/usr/bin/env python3
"""
Retroactive clustering task.

Merges nearby same-category canonical issues that slipped past the
create-time duplicate check (for example when the spatial lookup was
unavailable).

This script can be run:
- Via cron: 0 3 * * * cd /path/to/backend && python -m tasks.retro_cluster
- Via the built-in scheduler (RETRO_CLUSTER_SCHEDULE_ENABLED=true)
- Manually: python -m tasks.retro_cluster --lookback-hours 48 --dry-run

Ctrl+C or SIGTERM stops the scan between pairs; merges already committed
are kept.
"""

import argparse
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

# Add backend to path for imports
backend_path = Path(__file__).parent.parent
sys.path.insert(0, str(backend_path))

from loguru import logger  # noqa: E402

from core.correlation import correlation_scope  # noqa: E402
from repositories.database import session_scope  # noqa: E402
from repositories.db_models import IssueCategory  # noqa: E402
from services.retro_cluster_service import (  # noqa: E402
    RetroClusterResult,
    RetroClusterService,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class StopFlag:
    """Set by SIGINT or SIGTERM; polled by the clusterer between pairs."""

    def __init__(self) -> None:
        self.requested = False

    def __call__(self) -> bool:
        return self.requested

    def request_stop(self, signum=None, frame=None) -> None:
        if not self.requested:
            logger.warning("Stop requested; finishing the current merge")
        self.requested = True


def _parse_category(value: str) -> IssueCategory:
    for category in IssueCategory:
        if value in (category.value, category.name):
            return category
    raise argparse.ArgumentTypeError(
        f"unknown category {value!r} "
        f"(choose from: {', '.join(c.value for c in IssueCategory)})"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Merge nearby duplicate canonical issues after the fact"
    )
    parser.add_argument(
        "--lookback-hours",
        type=float,
        default=None,
        help="Only consider issues created in the last N hours "
        "(default: RETRO_CLUSTER_LOOKBACK_HOURS)",
    )
    parser.add_argument(
        "--radius",
        type=float,
        default=None,
        help="Merge radius in meters (default: CLUSTER_RADIUS_METERS)",
    )
    parser.add_argument(
        "--category",
        type=_parse_category,
        default=None,
        help="Restrict the scan to one category",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the merges that would happen without changing anything",
    )
    return parser


def run_retro_cluster(
    db: "Session",
    lookback_hours: Optional[float] = None,
    radius_m: Optional[float] = None,
    category: Optional[IssueCategory] = None,
    dry_run: bool = False,
    should_stop: Optional[StopFlag] = None,
) -> RetroClusterResult:
    """
    Run one scan against the given session.

    A dry run reports the pairs it would merge in RetroClusterResult.pairs
    with merged_pairs left at 0.
    """
    if dry_run:
        pairs = RetroClusterService.find_unmerged_pairs(
            db, since_hours=lookback_hours, radius_m=radius_m, category=category
        )
        for pair in pairs:
            logger.info(
                f"[DRY RUN] would merge {pair.duplicate_id} into "
                f"{pair.canonical_id} ({round(pair.distance_m)}m)"
            )
        return RetroClusterResult(pairs=pairs)

    return RetroClusterService.retro_cluster(
        db,
        since_hours=lookback_hours,
        radius_m=radius_m,
        category=category,
        should_stop=should_stop,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    stop = StopFlag()
    previous_handlers = {
        signum: signal.signal(signum, stop.request_stop) for signum in STOP_SIGNALS
    }
    try:
        with correlation_scope("retro"), session_scope() as db:
            result = run_retro_cluster(
                db,
                lookback_hours=args.lookback_hours,
                radius_m=args.radius,
                category=args.category,
                dry_run=args.dry_run,
                should_stop=stop,
            )
    except Exception as e:
        logger.error(f"Retroactive clustering failed: {e}")
        return 1
    finally:
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)

    if args.dry_run:
        print(f"Would merge {len(result.pairs)} pair(s)")
        return 0

    print(
        f"Merged {result.merged_pairs} pair(s) across {result.scanned} issue(s)"
        + (" (interrupted)" if result.interrupted else "")
    )
    return 130 if result.interrupted else 0


if __name__ == "__main__":
    # Configure logging for standalone execution
    logger.remove()
    logger.add(
        sys.stderr,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
        level="INFO",
    )
    sys.exit(main())
