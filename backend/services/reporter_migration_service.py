"""
Backfill of creator reporter entries on legacy issues.

Issues created before the reporter roster existed have no entry for their
own creator. This one-off step adds it (consent given, joined at creation)
so every issue satisfies the creator-is-a-reporter rule.
"""

from loguru import logger
from sqlalchemy.orm import Session

import repositories.db_models as db_models
from repositories.issue_repository import IssueRepository


class ReporterMigrationService:
    """Service for the offline reporter backfill."""

    @staticmethod
    def backfill_creator_reporters(db: Session, dry_run: bool = False) -> int:
        """
        Add the missing creator entry to every legacy issue.

        Args:
            db: Database session
            dry_run: Count affected issues without writing

        Returns:
            Number of issues updated (or that would be updated)
        """
        issues = IssueRepository(db).get_issues_missing_creator_reporter()
        if dry_run:
            logger.info(f"[DRY RUN] {len(issues)} issue(s) missing a creator reporter")
            return len(issues)

        for issue in issues:
            issue.reporters.append(
                db_models.IssueReporter(
                    user_id=issue.reported_by_id,
                    consent=True,
                    joined_at=issue.created_at,
                )
            )
            issue.touch()

        db.commit()
        logger.info(f"Backfilled creator reporter on {len(issues)} issue(s)")
        return len(issues)
