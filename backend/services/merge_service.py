"""
Merge a duplicate report into its canonical issue.

A merge moves the duplicate's reporter onto the canonical issue (undecided
consent), counts them as a voter, links the duplicate, backfills the
thumbnail and recomputes the canonical priority, all in one commit guarded
by the canonical row's version. Events go out only after the commit.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.orm import Session

import repositories.db_models as db_models
from models.exceptions import IssueNotFoundException, InvalidMergeException
from models.notification_types import IssueEventType
from repositories.issue_repository import IssueRepository

from .concurrency import commit_with_retry
from .event_service import EventService
from .priority_service import PriorityConfig, PriorityService

CONSENT_REQUEST_MESSAGE = (
    "Do you want to join the discussion group for this existing issue?"
)


@dataclass
class MergeResult:
    canonical: db_models.Issue
    duplicate_id: int
    merged: bool
    already_merged: bool = False
    priority_changed: bool = False
    previous_priority: Optional[db_models.IssuePriority] = None


def serialize_reporters(issue: db_models.Issue) -> List[Dict[str, Any]]:
    """Reporter roster as plain dicts for event payloads."""
    return [
        {
            "user_id": entry.user_id,
            "consent": entry.consent,
            "joined_at": entry.joined_at.isoformat() if entry.joined_at else None,
        }
        for entry in issue.reporters
    ]


def thumbnail_for(issue: db_models.Issue) -> Optional[str]:
    """Thumbnail with fallback to the first image."""
    if issue.thumbnail_image:
        return issue.thumbnail_image
    return issue.images[0] if issue.images else None


class MergeService:
    """Service for merging duplicate issues into canonical ones."""

    @staticmethod
    def _add_reporter(
        canonical: db_models.Issue, user_id: int, now: datetime
    ) -> bool:
        """Add an undecided reporter entry unless the user already has one."""
        if canonical.find_reporter(user_id) is not None:
            return False
        canonical.reporters.append(
            db_models.IssueReporter(user_id=user_id, consent=None, joined_at=now)
        )
        return True

    @staticmethod
    def _rehome_duplicates(
        duplicate: db_models.Issue, canonical: db_models.Issue, now: datetime
    ) -> None:
        """
        Point the duplicate's own duplicates at the new canonical issue.

        Only happens when one canonical issue is folded into another (the
        retroactive clusterer); it keeps every duplicate one hop away.
        """
        for child in list(duplicate.duplicates):
            child.canonical = canonical
            MergeService._add_reporter(canonical, child.reported_by_id, now)
            logger.info(
                f"Re-homed duplicate {child.id} from {duplicate.id} to {canonical.id}"
            )
        for entry in duplicate.reporters:
            MergeService._add_reporter(canonical, entry.user_id, now)

    @staticmethod
    def merge(
        db: Session,
        duplicate_id: int,
        canonical_id: int,
        actor_id: Optional[int] = None,
        priority_config: Optional[PriorityConfig] = None,
    ) -> MergeResult:
        """
        Merge a duplicate issue into a canonical issue.

        Merging the same pair again is a no-op.

        Args:
            db: Database session
            duplicate_id: Issue being merged
            canonical_id: Issue that absorbs it
            actor_id: User who triggered the merge (None for automatic merges)
            priority_config: Thresholds for the priority recompute

        Returns:
            MergeResult with the updated canonical issue

        Raises:
            InvalidMergeException: Same issue, canonical is a duplicate, or the
                duplicate is already merged elsewhere
            IssueNotFoundException: Either issue doesn't exist
            ConcurrentUpdateException: Version conflicts exhausted the retries
        """
        if duplicate_id == canonical_id:
            raise InvalidMergeException(f"Cannot merge issue {duplicate_id} into itself")

        repo = IssueRepository(db)

        def apply() -> MergeResult:
            duplicate = repo.get_by_id(duplicate_id)
            if not duplicate:
                raise IssueNotFoundException(f"Issue {duplicate_id} not found")
            canonical = repo.get_by_id(canonical_id)
            if not canonical:
                raise IssueNotFoundException(f"Issue {canonical_id} not found")

            if canonical.merged_into_id is not None:
                raise InvalidMergeException(
                    f"Issue {canonical_id} is a duplicate of "
                    f"{canonical.merged_into_id}; resolve to canonical first"
                )
            if duplicate.merged_into_id == canonical_id:
                return MergeResult(
                    canonical=canonical,
                    duplicate_id=duplicate_id,
                    merged=False,
                    already_merged=True,
                )
            if duplicate.merged_into_id is not None:
                raise InvalidMergeException(
                    f"Issue {duplicate_id} is already merged into "
                    f"{duplicate.merged_into_id}"
                )

            now = datetime.now(timezone.utc)
            reporter_id = duplicate.reported_by_id

            MergeService._add_reporter(canonical, reporter_id, now)
            if not canonical.has_voter(reporter_id):
                canonical.voters.append(db_models.IssueVoter(user_id=reporter_id))
                canonical.votes = (canonical.votes or 0) + 1

            MergeService._rehome_duplicates(duplicate, canonical, now)

            duplicate.canonical = canonical
            duplicate.merged_at = now
            duplicate.notifications.append(
                db_models.IssueNotification(
                    user_id=reporter_id,
                    message=f"Your report was merged into existing issue #{canonical.id}",
                    type=db_models.IssueNotificationType.MERGE,
                )
            )

            if not canonical.thumbnail_image and duplicate.images:
                canonical.thumbnail_image = duplicate.images[0]

            canonical.notifications.append(
                db_models.IssueNotification(
                    user_id=reporter_id,
                    message=CONSENT_REQUEST_MESSAGE,
                    type=db_models.IssueNotificationType.CONSENT_REQUEST,
                )
            )
            canonical.touch()

            # Flush first so the cluster count no longer sees the duplicate
            db.flush()

            previous_priority = canonical.priority
            priority_changed = False
            try:
                priority_changed = PriorityService.recompute(
                    db, canonical, priority_config
                )
            except Exception as e:
                logger.warning(
                    f"Priority recompute failed after merging {duplicate_id} "
                    f"into {canonical_id}: {e}"
                )

            return MergeResult(
                canonical=canonical,
                duplicate_id=duplicate_id,
                merged=True,
                priority_changed=priority_changed,
                previous_priority=previous_priority,
            )

        result = commit_with_retry(
            db, apply, f"merge of issue {duplicate_id} into {canonical_id}"
        )

        if result.already_merged:
            logger.debug(f"Issue {duplicate_id} already merged into {canonical_id}")
            return result

        canonical = result.canonical
        db.refresh(canonical)
        actor = f" by user {actor_id}" if actor_id else ""
        logger.info(f"Merged issue {duplicate_id} into {canonical.id}{actor}")

        MergeService._emit_merge_events(db, result)
        return result

    @staticmethod
    def _emit_merge_events(db: Session, result: MergeResult) -> None:
        canonical = result.canonical
        duplicate = IssueRepository(db).get_by_id(result.duplicate_id)
        reporter_id = duplicate.reported_by_id if duplicate else None

        if reporter_id is not None:
            EventService.emit(
                IssueEventType.CONSENT_REQUEST,
                {
                    "issue_id": canonical.id,
                    "canonical": True,
                    "message": CONSENT_REQUEST_MESSAGE,
                    "thumbnail": thumbnail_for(canonical),
                },
                user_id=reporter_id,
            )

        EventService.emit(
            IssueEventType.ISSUE_MERGED,
            {
                "canonical_id": canonical.id,
                "duplicate_id": result.duplicate_id,
                "reporters": serialize_reporters(canonical),
            },
        )

        if result.priority_changed:
            EventService.emit(
                IssueEventType.PRIORITY_UPDATED,
                {
                    "issue_id": canonical.id,
                    "old_priority": getattr(result.previous_priority, "value", None),
                    "priority": canonical.priority.value,
                    "reasons": list(canonical.priority_reasons or []),
                },
            )
