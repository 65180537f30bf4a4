"""
Issue chat message repository for database operations.
"""

from sqlalchemy.orm import Session, joinedload

import repositories.db_models as db_models

from .base import BaseRepository


class ChatRepository(BaseRepository[db_models.IssueChatMessage]):
    """Repository for IssueChatMessage entity database operations."""

    def __init__(self, db: Session):
        """
        Initialize chat repository.

        Args:
            db: Database session
        """
        super().__init__(db_models.IssueChatMessage, db)

    def get_messages_for_issue(
        self, issue_id: int, skip: int = 0, limit: int = 20
    ) -> list[db_models.IssueChatMessage]:
        """
        Get a page of messages for an issue, newest first.

        Args:
            issue_id: Canonical issue ID
            skip: Number of records to skip
            limit: Maximum number of records to return

        Returns:
            Messages with authors loaded, newest first
        """
        return (
            self.db.query(db_models.IssueChatMessage)
            .options(joinedload(db_models.IssueChatMessage.author))
            .filter(db_models.IssueChatMessage.issue_id == issue_id)
            .order_by(
                db_models.IssueChatMessage.created_at.desc(),
                db_models.IssueChatMessage.id.desc(),
            )
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_for_issue(self, issue_id: int) -> int:
        """
        Count messages on an issue.

        Args:
            issue_id: Canonical issue ID

        Returns:
            Total message count
        """
        return (
            self.db.query(db_models.IssueChatMessage)
            .filter(db_models.IssueChatMessage.issue_id == issue_id)
            .count()
        )
