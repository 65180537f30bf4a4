"""
Status transitions on canonical issues and their propagation to duplicates.

Duplicates never carry a status of their own: every change lands on the
canonical issue and is mirrored onto all of its duplicates in the same
transaction.
"""

from dataclasses import dataclass
from typing import Optional

from loguru import logger
from sqlalchemy.orm import Session

import models.schemas as schemas
import repositories.db_models as db_models
from helpers.time_utils import hours_between, utc_now
from models.notification_types import IssueEventType
from repositories.issue_repository import IssueRepository

from .concurrency import commit_with_retry
from .event_service import EventService
from .issue_service import IssueService

SYNC_PREFIX = "[canonical-sync] "
RESOLVED_MESSAGE = "Your issue has been resolved! Thank you for reporting."
DEFAULT_RESOLUTION_DESCRIPTION = "Issue has been resolved"


@dataclass
class StatusChange:
    issue: db_models.Issue
    previous_status: db_models.IssueStatus
    synced_duplicates: int


class StatusService:
    """Service for issue status changes."""

    @staticmethod
    def apply_transition(
        db: Session,
        issue: db_models.Issue,
        status: db_models.IssueStatus,
        actor_id: Optional[int],
        comment: Optional[str],
        notification_message: str,
        notification_type: db_models.IssueNotificationType,
        sync_comment: Optional[str] = None,
    ) -> int:
        """
        Set a canonical issue's status and mirror it onto its duplicates.

        Does not commit. Appends the history entry and reporter notification
        on the canonical issue, then batch-updates the duplicates with one
        synced history entry each.

        Args:
            db: Database session
            issue: Canonical issue
            status: New status
            actor_id: User making the change
            comment: History comment (defaults to a from/to description)
            notification_message: Message for the original reporter
            notification_type: Notification kind
            sync_comment: Comment carried into duplicates' synced entries

        Returns:
            Number of duplicates updated
        """
        previous = issue.status
        now = utc_now()

        issue.status = status
        issue.status_history.append(
            db_models.IssueStatusHistory(
                status=status,
                updated_by_id=actor_id,
                comment=comment
                or f"Status changed from {previous.value} to {status.value}",
                timestamp=now,
            )
        )
        issue.notifications.append(
            db_models.IssueNotification(
                user_id=issue.reported_by_id,
                message=notification_message,
                type=notification_type,
                timestamp=now,
            )
        )
        issue.touch()

        repo = IssueRepository(db)
        duplicate_ids = repo.get_duplicate_ids(issue.id)
        if not duplicate_ids:
            return 0

        synced = repo.sync_duplicates_status(
            issue.id,
            duplicate_ids,
            status,
            actor_id,
            SYNC_PREFIX + (sync_comment or f"Status synced from canonical {issue.id}"),
        )
        logger.info(
            f"Propagating status {status.value} from issue {issue.id} "
            f"to {synced} duplicate(s)"
        )
        return synced

    @staticmethod
    def update_status(
        db: Session,
        issue_id: int,
        status: db_models.IssueStatus,
        actor_id: int,
        comment: Optional[str] = None,
        resolution: Optional[schemas.ResolutionDetails] = None,
    ) -> StatusChange:
        """
        Change the status of the canonical issue behind issue_id.

        Resolving also records who resolved it, when, how long it took and
        the resolution details.

        Args:
            db: Database session
            issue_id: Canonical or duplicate issue ID
            status: New status
            actor_id: Government user making the change
            comment: Optional history comment
            resolution: Optional resolution details (used when resolving)

        Returns:
            StatusChange with the updated canonical issue
        """
        requested, canonical = IssueService.resolve_canonical(db, issue_id)
        if requested.id != canonical.id:
            logger.info(
                f"Status change on duplicate {requested.id} redirected to "
                f"canonical {canonical.id}"
            )
        canonical_id = canonical.id
        repo = IssueRepository(db)

        def apply() -> StatusChange:
            issue = repo.get_by_id(canonical_id)
            previous = issue.status

            if status == db_models.IssueStatus.RESOLVED:
                now = utc_now()
                issue.resolved_by_id = actor_id
                issue.resolved_at = now
                issue.resolution_description = (
                    resolution.description if resolution and resolution.description
                    else DEFAULT_RESOLUTION_DESCRIPTION
                )
                issue.resolution_images = list(resolution.images) if resolution else []
                issue.actual_resolution_hours = hours_between(issue.created_at, now)
                message = RESOLVED_MESSAGE
                notification_type = db_models.IssueNotificationType.RESOLUTION
            else:
                message = f"Your issue status has been updated to: {status.value}"
                notification_type = db_models.IssueNotificationType.STATUS_CHANGE

            synced = StatusService.apply_transition(
                db,
                issue,
                status,
                actor_id,
                comment,
                notification_message=message,
                notification_type=notification_type,
                sync_comment=comment,
            )
            return StatusChange(
                issue=issue, previous_status=previous, synced_duplicates=synced
            )

        change = commit_with_retry(db, apply, f"status update of issue {canonical_id}")
        db.refresh(change.issue)
        logger.info(
            f"Issue {canonical_id} status {change.previous_status.value} -> "
            f"{status.value} by user {actor_id}"
        )

        EventService.emit(
            IssueEventType.STATUS_UPDATED,
            {
                "issue_id": canonical_id,
                "user_id": change.issue.reported_by_id,
                "status": status.value,
                "synced_duplicates": change.synced_duplicates,
                "message": f"Issue status updated to: {status.value}",
            },
        )
        return change
