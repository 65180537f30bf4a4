"""
Reporter consent for joining a canonical issue's discussion.

Reporters added by a merge start undecided. Each may accept or decline, and
may change their mind later; only an explicit acceptance opens the chat.
"""

from dataclasses import dataclass
from typing import Optional, Union

from loguru import logger
from sqlalchemy.orm import Session

import repositories.db_models as db_models
from models.exceptions import NotAReporterException
from models.notification_types import IssueEventType
from repositories.issue_repository import IssueRepository

from .concurrency import commit_with_retry
from .event_service import EventService
from .issue_service import IssueService


@dataclass
class ConsentResult:
    issue_id: int
    user_id: int
    consent: bool
    previous: Optional[bool] = None


class ConsentService:
    """Service for reporter consent and chat participation rules."""

    @staticmethod
    def record_consent(
        db: Session, issue_id: int, user_id: int, accept: bool
    ) -> ConsentResult:
        """
        Record a reporter's decision on the canonical issue behind issue_id.

        Args:
            db: Database session
            issue_id: Canonical or duplicate issue ID
            user_id: Reporter making the decision
            accept: True to join the discussion, False to decline

        Returns:
            ConsentResult for the canonical issue

        Raises:
            NotAReporterException: If the user has no reporter entry on the
                canonical issue (nothing is changed)
        """
        _, canonical = IssueService.resolve_canonical(db, issue_id)
        canonical_id = canonical.id
        repo = IssueRepository(db)

        def apply() -> ConsentResult:
            issue = repo.get_by_id(canonical_id)
            entry = issue.find_reporter(user_id)
            if entry is None:
                raise NotAReporterException(
                    f"User {user_id} is not a reporter on issue {canonical_id}"
                )
            previous = entry.consent
            entry.consent = accept
            issue.touch()
            return ConsentResult(
                issue_id=canonical_id, user_id=user_id, consent=accept, previous=previous
            )

        result = commit_with_retry(db, apply, f"consent on issue {canonical_id}")
        logger.info(
            f"User {user_id} {'accepted' if accept else 'declined'} discussion "
            f"on issue {canonical_id} (was {result.previous})"
        )

        EventService.emit(
            IssueEventType.CONSENT_UPDATED,
            {"issue_id": canonical_id, "consent": accept},
            user_id=user_id,
        )
        return result

    @staticmethod
    def can_participate_in_chat(
        issue: db_models.Issue,
        user_id: int,
        role: Union[db_models.UserRole, str],
    ) -> bool:
        """
        Check whether a user may post in an issue's discussion.

        Allowed for government staff, the original reporter, and reporters
        who explicitly accepted. Undecided or declined reporters are denied.
        """
        if role == db_models.UserRole.GOVERNMENT:
            return True
        if user_id == issue.reported_by_id:
            return True
        entry = issue.find_reporter(user_id)
        return entry is not None and entry.consent is True
