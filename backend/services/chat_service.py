"""Issue discussion messages, stored on the canonical issue."""

from dataclasses import dataclass
from typing import List

from loguru import logger
from sqlalchemy.orm import Session

import repositories.db_models as db_models
from models.exceptions import ChatPermissionDeniedException, ValidationException
from models.schemas import CHAT_MESSAGE_MAX_LENGTH
from models.notification_types import IssueEventType
from repositories.chat_repository import ChatRepository

from .consent_service import ConsentService
from .event_service import EventService
from .issue_service import IssueService

MAX_MESSAGE_LENGTH = CHAT_MESSAGE_MAX_LENGTH


@dataclass
class ChatPage:
    issue_id: int
    messages: List[db_models.IssueChatMessage]
    total: int
    skip: int
    limit: int


class ChatService:
    """Service for posting and listing issue chat messages."""

    @staticmethod
    def post_message(
        db: Session, issue_id: int, user: db_models.User, message: str
    ) -> db_models.IssueChatMessage:
        """
        Post a message to the canonical issue's discussion.

        Args:
            db: Database session
            issue_id: Canonical or duplicate issue ID
            user: Author
            message: Message text (trimmed before storing)

        Returns:
            Created message

        Raises:
            ValidationException: Empty or too long message
            ChatPermissionDeniedException: Author may not participate
        """
        text = (message or "").strip()
        if not text:
            raise ValidationException("Message required")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationException(
                f"Message must be at most {MAX_MESSAGE_LENGTH} characters"
            )

        _, canonical = IssueService.resolve_canonical(db, issue_id)
        if not ConsentService.can_participate_in_chat(canonical, user.id, user.role):
            logger.warning(
                f"Chat permission denied for user {user.id} on issue {canonical.id}"
            )
            raise ChatPermissionDeniedException(
                "Consent required to participate in chat"
            )

        chat_message = ChatRepository(db).create(
            db_models.IssueChatMessage(
                issue_id=canonical.id, author_id=user.id, message=text
            )
        )
        logger.info(f"Chat message {chat_message.id} posted on issue {canonical.id}")

        EventService.emit(
            IssueEventType.CHAT_MESSAGE,
            {
                "issue_id": canonical.id,
                "message_id": chat_message.id,
                "author_id": user.id,
                "author_name": user.name,
                "message": chat_message.message,
            },
        )
        return chat_message

    @staticmethod
    def list_messages(
        db: Session, issue_id: int, skip: int = 0, limit: int = 20
    ) -> ChatPage:
        """
        Get a page of messages, newest page first, each page oldest to newest.

        Args:
            db: Database session
            issue_id: Canonical or duplicate issue ID
            skip: Number of newer messages to skip
            limit: Page size

        Returns:
            ChatPage for the canonical issue
        """
        _, canonical = IssueService.resolve_canonical(db, issue_id)
        repo = ChatRepository(db)
        newest_first = repo.get_messages_for_issue(canonical.id, skip=skip, limit=limit)
        return ChatPage(
            issue_id=canonical.id,
            messages=list(reversed(newest_first)),
            total=repo.count_for_issue(canonical.id),
            skip=skip,
            limit=limit,
        )
