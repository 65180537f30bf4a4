"""
Issue repository for database operations.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, joinedload, selectinload

import repositories.db_models as db_models
from helpers.geo import BoundingBox

from .base import BaseRepository


class IssueRepository(BaseRepository[db_models.Issue]):
    """Repository for Issue entity database operations."""

    def __init__(self, db: Session):
        """
        Initialize issue repository.

        Args:
            db: Database session
        """
        super().__init__(db_models.Issue, db)

    def get_canonical_in_bbox(
        self,
        category: db_models.IssueCategory,
        bbox: BoundingBox,
        limit: int,
        exclude_id: Optional[int] = None,
    ) -> List[db_models.Issue]:
        """
        Get canonical issues of a category inside a degree window.

        Oldest first, so the earliest report wins when several qualify.

        Args:
            category: Exact category to match
            bbox: Longitude/latitude window
            limit: Maximum number of candidates
            exclude_id: Optional issue ID to leave out (the issue itself)

        Returns:
            Candidate issues ordered by creation time ascending
        """
        query = self.db.query(db_models.Issue).filter(
            db_models.Issue.category == category,
            db_models.Issue.merged_into_id.is_(None),
            db_models.Issue.longitude >= bbox.min_lon,
            db_models.Issue.longitude <= bbox.max_lon,
            db_models.Issue.latitude >= bbox.min_lat,
            db_models.Issue.latitude <= bbox.max_lat,
        )
        if exclude_id is not None:
            query = query.filter(db_models.Issue.id != exclude_id)
        return (
            query.order_by(db_models.Issue.created_at.asc(), db_models.Issue.id.asc())
            .limit(limit)
            .all()
        )

    def get_canonical_created_since(
        self,
        since: datetime,
        category: Optional[db_models.IssueCategory] = None,
        limit: int = 500,
    ) -> List[db_models.Issue]:
        """
        Get canonical issues created at or after a cutoff.

        Args:
            since: Cutoff timestamp
            category: Optional category filter
            limit: Safety cap on the number of rows

        Returns:
            Issues ordered by creation time ascending
        """
        query = self.db.query(db_models.Issue).filter(
            db_models.Issue.created_at >= since,
            db_models.Issue.merged_into_id.is_(None),
        )
        if category is not None:
            query = query.filter(db_models.Issue.category == category)
        return (
            query.order_by(db_models.Issue.created_at.asc(), db_models.Issue.id.asc())
            .limit(limit)
            .all()
        )

    def get_duplicate_ids(self, canonical_id: int) -> List[int]:
        """
        Get IDs of all issues merged into a canonical issue.

        Args:
            canonical_id: Canonical issue ID

        Returns:
            Duplicate IDs in merge order
        """
        rows = self.db.execute(
            select(db_models.Issue.id)
            .where(db_models.Issue.merged_into_id == canonical_id)
            .order_by(db_models.Issue.merged_at.asc(), db_models.Issue.id.asc())
        )
        return [row[0] for row in rows]

    def get_by_reporter(
        self, user_id: int, skip: int = 0, limit: int = 10
    ) -> List[db_models.Issue]:
        """
        Get issues submitted by a user, newest first.

        Args:
            user_id: Reporter user ID
            skip: Number of records to skip
            limit: Maximum number of records to return

        Returns:
            Issues (canonical and duplicate) reported by the user
        """
        return (
            self.db.query(db_models.Issue)
            .filter(db_models.Issue.reported_by_id == user_id)
            .order_by(db_models.Issue.created_at.desc(), db_models.Issue.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_by_reporter(self, user_id: int) -> int:
        """Count issues submitted by a user."""
        return (
            self.db.query(db_models.Issue)
            .filter(db_models.Issue.reported_by_id == user_id)
            .count()
        )

    def get_canonical(self) -> List[db_models.Issue]:
        """
        Get every canonical issue, newest first.

        Reporters, duplicates and the reporting user are eager-loaded.
        """
        return (
            self.db.query(db_models.Issue)
            .filter(db_models.Issue.merged_into_id.is_(None))
            .options(
                selectinload(db_models.Issue.reporters),
                selectinload(db_models.Issue.duplicates),
                joinedload(db_models.Issue.reporter),
            )
            .order_by(db_models.Issue.created_at.desc(), db_models.Issue.id.desc())
            .all()
        )

    def sync_duplicates_status(
        self,
        canonical_id: int,
        duplicate_ids: List[int],
        status: db_models.IssueStatus,
        updated_by_id: Optional[int],
        comment: str,
    ) -> int:
        """
        Mirror a status onto duplicates in one batch, without committing.

        Issues a single UPDATE for the status (bumping version_id so concurrent
        writers holding a stale copy fail their version check) and inserts one
        history entry per duplicate.

        Args:
            canonical_id: Canonical issue the status comes from
            duplicate_ids: Issues to update
            status: New status
            updated_by_id: User performing the change
            comment: History comment for the synced entries

        Returns:
            Number of duplicates updated
        """
        if not duplicate_ids:
            return 0

        now = datetime.now(timezone.utc)
        result = self.db.execute(
            update(db_models.Issue)
            .where(db_models.Issue.id.in_(duplicate_ids))
            .values(
                status=status,
                updated_at=now,
                version_id=db_models.Issue.version_id + 1,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.add_all(
            [
                db_models.IssueStatusHistory(
                    issue_id=duplicate_id,
                    status=status,
                    updated_by_id=updated_by_id,
                    comment=comment,
                    synced_from_id=canonical_id,
                    timestamp=now,
                )
                for duplicate_id in duplicate_ids
            ]
        )
        return result.rowcount or 0

    def get_issues_missing_creator_reporter(self) -> List[db_models.Issue]:
        """
        Get issues whose original reporter has no reporter entry.

        Returns:
            Issues predating the reporter roster (legacy rows)
        """
        has_creator_entry = (
            select(db_models.IssueReporter.id)
            .where(
                db_models.IssueReporter.issue_id == db_models.Issue.id,
                db_models.IssueReporter.user_id == db_models.Issue.reported_by_id,
            )
            .exists()
        )
        return (
            self.db.query(db_models.Issue)
            .filter(~has_creator_entry)
            .order_by(db_models.Issue.id.asc())
            .all()
        )
