#!/usr/bin/env python
"""
One-off backfill: give every legacy issue a reporter entry for its creator.

Can be run via:
- Manual: python scripts/migrate_reporters.py
- Preview: python scripts/migrate_reporters.py --dry-run

Safe to re-run; issues that already list their creator are skipped.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

# Add the backend directory to the path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from loguru import logger  # noqa: E402

from core.correlation import correlation_scope  # noqa: E402
from repositories.database import session_scope  # noqa: E402
from services.reporter_migration_service import ReporterMigrationService  # noqa: E402


def main(argv: Optional[List[str]] = None) -> int:
    """Run the reporter backfill."""
    parser = argparse.ArgumentParser(
        description="Add the missing creator reporter entry to legacy issues"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Count affected issues without writing",
    )
    args = parser.parse_args(argv)

    try:
        with correlation_scope("migrate"), session_scope() as db:
            count = ReporterMigrationService.backfill_creator_reporters(
                db, dry_run=args.dry_run
            )
    except Exception as e:
        logger.error(f"Reporter backfill failed: {e}")
        return 1

    prefix = "[DRY RUN] Would update" if args.dry_run else "Updated"
    print(f"{prefix} {count} issue(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
