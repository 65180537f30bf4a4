"""
User repository for database operations.
"""

from typing import Optional

from sqlalchemy.orm import Session

import repositories.db_models as db_models
from .base import BaseRepository


class UserRepository(BaseRepository[db_models.User]):
    """Repository for User entity database operations."""

    def __init__(self, db: Session):
        """
        Initialize user repository.

        Args:
            db: Database session
        """
        super().__init__(db_models.User, db)

    def get_active_by_id(self, user_id: int) -> Optional[db_models.User]:
        """
        Get active user by ID.

        Args:
            user_id: User ID

        Returns:
            User if found and active, None otherwise
        """
        return (
            self.db.query(db_models.User)
            .filter(
                db_models.User.id == user_id,
                db_models.User.is_active == True,  # noqa: E712
            )
            .first()
        )
