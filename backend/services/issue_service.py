"""
Issue service - intake, canonical resolution, votes and assignment.

New reports are persisted first and only then checked for a nearby canonical
issue, so a failure anywhere in matching, merging or priority never loses the
report itself.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from loguru import logger
from sqlalchemy.orm import Session

import models.schemas as schemas
import repositories.db_models as db_models
from helpers.geo import is_valid_coordinate_pair
from helpers.time_utils import utc_now
from models.exceptions import (
    CanonicalNotFoundException,
    InvalidLocationException,
    IssueNotFoundException,
)
from models.notification_types import IssueEventType
from repositories.issue_repository import IssueRepository

from .concurrency import commit_with_retry
from .event_service import EventService
from .geo.spatial_service import SpatialService
from .merge_service import MergeService, thumbnail_for
from .priority_service import PriorityService

CATEGORY_BASE_HOURS = {
    db_models.IssueCategory.ROADS_INFRASTRUCTURE: 72,
    db_models.IssueCategory.WASTE_MANAGEMENT: 24,
    db_models.IssueCategory.ELECTRICITY: 48,
    db_models.IssueCategory.WATER_SUPPLY: 48,
    db_models.IssueCategory.SEWAGE_DRAINAGE: 48,
    db_models.IssueCategory.TRAFFIC_TRANSPORTATION: 24,
    db_models.IssueCategory.PUBLIC_SAFETY: 12,
    db_models.IssueCategory.PARKS_RECREATION: 72,
    db_models.IssueCategory.STREET_LIGHTING: 24,
    db_models.IssueCategory.NOISE_POLLUTION: 48,
    db_models.IssueCategory.OTHER: 48,
}

PRIORITY_MULTIPLIERS = {
    db_models.IssuePriority.URGENT: 0.25,
    db_models.IssuePriority.HIGH: 0.5,
    db_models.IssuePriority.MEDIUM: 1.0,
    db_models.IssuePriority.LOW: 1.5,
}

REPORTED_COMMENT = "Issue reported by citizen"
REPORTED_MESSAGE = "Your issue has been successfully reported and is under review"


def estimate_resolution_hours(
    category: db_models.IssueCategory, priority: db_models.IssuePriority
) -> int:
    """Expected hours to resolve, from category base time and priority."""
    base = CATEGORY_BASE_HOURS.get(category, 48)
    return round(base * PRIORITY_MULTIPLIERS.get(priority, 1.0))


@dataclass
class IssueCreateResult:
    issue: db_models.Issue
    canonical: db_models.Issue
    merged: bool


@dataclass
class IssueView:
    issue: db_models.Issue
    is_duplicate: bool
    original_requested_id: int
    reporters_count: int
    consenting_reporters_count: int
    duplicates_count: int
    thumbnail_image: Optional[str]


@dataclass
class UserIssueEntry:
    issue: db_models.Issue
    original_requested_id: int
    is_duplicate: bool


@dataclass
class UserIssuePage:
    items: List[UserIssueEntry]
    total: int
    skip: int
    limit: int


@dataclass
class CanonicalIssueSummary:
    issue: db_models.Issue
    reporters_count: int
    consenting_reporters_count: int
    duplicates_count: int
    thumbnail_image: Optional[str] = None


@dataclass
class VoteOutcome:
    issue_id: int
    votes: int
    has_voted: bool
    priority: db_models.IssuePriority
    priority_reasons: list
    priority_changed: bool = False
    previous_priority: Optional[db_models.IssuePriority] = None


class IssueFactory:
    """Builds new Issue entities with their creation invariants in place."""

    @staticmethod
    def new_issue(
        *,
        title: str,
        description: str,
        category: db_models.IssueCategory,
        longitude: float,
        latitude: float,
        address: str,
        reported_by_id: int,
        city: Optional[str] = None,
        state: Optional[str] = None,
        pincode: Optional[str] = None,
        images: Optional[list[str]] = None,
        priority: db_models.IssuePriority = db_models.IssuePriority.LOW,
    ) -> db_models.Issue:
        """
        Create an unsaved canonical issue.

        The creator is reporters[0] with consent already given, and the issue
        starts with one history entry and one confirmation notification.
        """
        now = utc_now()
        issue = db_models.Issue(
            title=title,
            description=description,
            category=category,
            longitude=longitude,
            latitude=latitude,
            address=address,
            city=city,
            state=state,
            pincode=pincode,
            images=list(images or []),
            reported_by_id=reported_by_id,
            status=db_models.IssueStatus.PENDING,
            votes=1,
            priority=priority,
            priority_auto=True,
            priority_reasons=[],
            estimated_resolution_hours=estimate_resolution_hours(category, priority),
            resolution_images=[],
            created_at=now,
            updated_at=now,
        )
        issue.reporters.append(
            db_models.IssueReporter(user_id=reported_by_id, consent=True, joined_at=now)
        )
        issue.status_history.append(
            db_models.IssueStatusHistory(
                status=db_models.IssueStatus.PENDING,
                updated_by_id=reported_by_id,
                comment=REPORTED_COMMENT,
                timestamp=now,
            )
        )
        issue.notifications.append(
            db_models.IssueNotification(
                user_id=reported_by_id,
                message=REPORTED_MESSAGE,
                type=db_models.IssueNotificationType.STATUS_CHANGE,
                timestamp=now,
            )
        )
        return issue


class IssueService:
    """Service for issue-related business logic."""

    @staticmethod
    def resolve_canonical(
        db: Session, issue_id: int
    ) -> Tuple[db_models.Issue, db_models.Issue]:
        """
        Load an issue and the canonical issue it stands for.

        Follows merged_into exactly one hop. A target that is itself merged
        is logged and still returned.

        Args:
            db: Database session
            issue_id: Canonical or duplicate issue ID

        Returns:
            Tuple of (requested issue, canonical issue); the same object twice
            when the requested issue is canonical

        Raises:
            IssueNotFoundException: If the issue doesn't exist
            CanonicalNotFoundException: If merged_into points at a missing issue
        """
        repo = IssueRepository(db)
        issue = repo.get_by_id(issue_id)
        if not issue:
            raise IssueNotFoundException(f"Issue {issue_id} not found")

        if issue.merged_into_id is None:
            return issue, issue

        canonical = repo.get_by_id(issue.merged_into_id)
        if canonical is None:
            logger.error(
                f"Issue {issue.id} points at missing canonical {issue.merged_into_id}"
            )
            raise CanonicalNotFoundException(issue.id, issue.merged_into_id)

        if canonical.merged_into_id is not None:
            logger.warning(
                f"Stale merge pointer: issue {issue.id} -> {canonical.id} -> "
                f"{canonical.merged_into_id}; using first hop"
            )
        return issue, canonical

    @staticmethod
    def create_issue(
        db: Session, data: schemas.IssueCreate, user_id: int
    ) -> IssueCreateResult:
        """
        Persist a new report and fold it into a nearby canonical issue if any.

        Args:
            db: Database session
            data: Issue creation data
            user_id: Reporting user ID

        Returns:
            IssueCreateResult with the new issue, its canonical and merge flag

        Raises:
            InvalidLocationException: If coordinates are not a valid pair
        """
        coordinates = data.location.coordinates
        if not is_valid_coordinate_pair(coordinates):
            raise InvalidLocationException(
                "Location coordinates required as [longitude, latitude]"
            )
        lon, lat = coordinates

        repo = IssueRepository(db)
        issue = repo.create(
            IssueFactory.new_issue(
                title=data.title,
                description=data.description,
                category=data.category,
                longitude=lon,
                latitude=lat,
                address=data.location.address,
                city=data.location.city,
                state=data.location.state,
                pincode=data.location.pincode,
                images=data.images,
                reported_by_id=user_id,
                priority=data.priority,
            )
        )
        issue_id = issue.id
        logger.info(f"Issue {issue_id} reported by user {user_id} ({data.category.value})")

        match = SpatialService.find_canonical_match(
            db, data.category, lon, lat, exclude_id=issue_id
        )
        if match is not None:
            canonical_id = match.id
            try:
                result = MergeService.merge(db, issue_id, canonical_id)
                return IssueCreateResult(
                    issue=repo.get_by_id(issue_id),
                    canonical=result.canonical,
                    merged=True,
                )
            except Exception as e:
                logger.warning(
                    f"Merge of new issue {issue_id} into {canonical_id} failed, "
                    f"keeping it canonical: {e}"
                )

        def apply() -> db_models.Issue:
            fresh = repo.get_by_id(issue_id)
            if not fresh.thumbnail_image and fresh.images:
                fresh.thumbnail_image = fresh.images[0]
            try:
                PriorityService.recompute(db, fresh)
            except Exception as e:
                logger.warning(f"Priority computation failed for issue {issue_id}: {e}")
            fresh.touch()
            return fresh

        try:
            issue = commit_with_retry(db, apply, f"intake of issue {issue_id}")
        except Exception as e:
            logger.warning(f"Post-create update of issue {issue_id} failed: {e}")
            issue = repo.get_by_id(issue_id)

        EventService.emit(
            IssueEventType.NEW_ISSUE,
            {
                "issue_id": issue.id,
                "title": issue.title,
                "category": issue.category.value,
                "address": issue.address,
                "message": f"New issue reported: {issue.title}",
            },
        )
        return IssueCreateResult(issue=issue, canonical=issue, merged=False)

    @staticmethod
    def get_issue_view(
        db: Session, issue_id: int, viewer_id: Optional[int] = None
    ) -> IssueView:
        """
        Get the canonical view of an issue, whichever ID was requested.

        When the canonical issue's original reporter views it, their
        notifications are marked read.

        Args:
            db: Database session
            issue_id: Canonical or duplicate issue ID
            viewer_id: Current user ID, if any

        Returns:
            IssueView for the canonical issue
        """
        requested, canonical = IssueService.resolve_canonical(db, issue_id)

        if viewer_id is not None and viewer_id == canonical.reported_by_id:
            unread = [
                n
                for n in canonical.notifications
                if not n.read and n.user_id in (None, viewer_id)
            ]
            for notification in unread:
                notification.read = True
            if unread:
                db.commit()
                db.refresh(canonical)

        return IssueView(
            issue=canonical,
            is_duplicate=requested.merged_into_id is not None,
            original_requested_id=requested.id,
            reporters_count=len(canonical.reporters),
            consenting_reporters_count=sum(
                1 for r in canonical.reporters if r.consent is True
            ),
            duplicates_count=len(canonical.duplicates),
            thumbnail_image=thumbnail_for(canonical),
        )

    @staticmethod
    def list_user_issues(
        db: Session,
        user_id: int,
        skip: int = 0,
        limit: int = 10,
    ) -> UserIssuePage:
        """
        Get a page of the user's own reports, each shown as its canonical issue.

        A report whose canonical issue has gone missing is listed as itself.

        Args:
            db: Database session
            user_id: Reporter user ID
            skip: Number of records to skip
            limit: Page size

        Returns:
            UserIssuePage, newest report first
        """
        repo = IssueRepository(db)
        reports = repo.get_by_reporter(user_id, skip=skip, limit=limit)

        canonical_ids = {r.merged_into_id for r in reports if r.merged_into_id}
        canonicals = {i.id: i for i in repo.get_by_ids(list(canonical_ids))}

        items = []
        for report in reports:
            canonical = canonicals.get(report.merged_into_id)
            if report.merged_into_id and canonical is None:
                logger.warning(
                    f"Report {report.id} points at missing canonical {report.merged_into_id}"
                )
            items.append(
                UserIssueEntry(
                    issue=canonical or report,
                    original_requested_id=report.id,
                    is_duplicate=canonical is not None,
                )
            )

        return UserIssuePage(
            items=items,
            total=repo.count_by_reporter(user_id),
            skip=skip,
            limit=limit,
        )

    @staticmethod
    def list_canonical_issues(db: Session) -> List[CanonicalIssueSummary]:
        """
        Get every canonical issue for staff review, newest first.

        Duplicates are left out; each one is counted on its canonical issue.
        """
        return [
            CanonicalIssueSummary(
                issue=issue,
                reporters_count=len(issue.reporters),
                consenting_reporters_count=sum(
                    1 for r in issue.reporters if r.consent is True
                ),
                duplicates_count=len(issue.duplicates),
                thumbnail_image=thumbnail_for(issue),
            )
            for issue in IssueRepository(db).get_canonical()
        ]

    @staticmethod
    def vote_on_issue(db: Session, issue_id: int, user_id: int) -> VoteOutcome:
        """
        Toggle a user's vote on the canonical issue behind issue_id.

        Args:
            db: Database session
            issue_id: Canonical or duplicate issue ID
            user_id: Voting user ID

        Returns:
            VoteOutcome with the new count and priority
        """
        _, canonical = IssueService.resolve_canonical(db, issue_id)
        canonical_id = canonical.id
        repo = IssueRepository(db)

        def apply() -> VoteOutcome:
            issue = repo.get_by_id(canonical_id)
            existing = next((v for v in issue.voters if v.user_id == user_id), None)
            if existing is not None:
                issue.voters.remove(existing)
                issue.votes = max(0, (issue.votes or 0) - 1)
                has_voted = False
            else:
                issue.voters.append(db_models.IssueVoter(user_id=user_id))
                issue.votes = (issue.votes or 0) + 1
                has_voted = True
            issue.touch()

            previous = issue.priority
            changed = False
            if issue.priority_auto:
                try:
                    changed = PriorityService.recompute(db, issue)
                except Exception as e:
                    logger.warning(f"Priority recompute failed for issue {issue.id}: {e}")

            return VoteOutcome(
                issue_id=issue.id,
                votes=issue.votes,
                has_voted=has_voted,
                priority=issue.priority,
                priority_reasons=list(issue.priority_reasons or []),
                priority_changed=changed,
                previous_priority=previous,
            )

        outcome = commit_with_retry(db, apply, f"vote on issue {canonical_id}")
        logger.info(
            f"Vote {'added' if outcome.has_voted else 'removed'} by user {user_id} "
            f"on issue {canonical_id} (votes={outcome.votes})"
        )

        if outcome.priority_changed:
            EventService.emit(
                IssueEventType.PRIORITY_UPDATED,
                {
                    "issue_id": canonical_id,
                    "old_priority": getattr(outcome.previous_priority, "value", None),
                    "priority": outcome.priority.value,
                    "reasons": outcome.priority_reasons,
                },
            )
        return outcome

    @staticmethod
    def assign_issue(
        db: Session,
        issue_id: int,
        department: str,
        actor_id: int,
        official_id: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> db_models.Issue:
        """
        Assign the canonical issue to a department and mark it assigned.

        The assigned status is mirrored onto duplicates like any other
        status change.

        Args:
            db: Database session
            issue_id: Canonical or duplicate issue ID
            department: Department name
            actor_id: Government user making the assignment
            official_id: Optional specific official
            comment: Optional history comment

        Returns:
            The updated canonical issue
        """
        from .status_service import StatusService

        _, canonical = IssueService.resolve_canonical(db, issue_id)
        canonical_id = canonical.id
        repo = IssueRepository(db)

        history_comment = comment or (
            f"Issue assigned to {department} department"
            + (" and specific official" if official_id else "")
        )

        def apply() -> db_models.Issue:
            issue = repo.get_by_id(canonical_id)
            issue.assigned_department = department
            issue.assigned_official_id = official_id
            StatusService.apply_transition(
                db,
                issue,
                db_models.IssueStatus.ASSIGNED,
                actor_id,
                history_comment,
                notification_message=(
                    f"Your issue has been assigned to the {department} department"
                ),
                notification_type=db_models.IssueNotificationType.ASSIGNMENT,
                sync_comment=comment,
            )
            return issue

        issue = commit_with_retry(db, apply, f"assignment of issue {canonical_id}")
        db.refresh(issue)
        logger.info(f"Issue {canonical_id} assigned to {department} by user {actor_id}")

        EventService.emit(
            IssueEventType.ISSUE_ASSIGNED,
            {
                "issue_id": canonical_id,
                "user_id": issue.reported_by_id,
                "department": department,
                "message": f"Issue assigned to {department} department",
            },
        )
        return issue
