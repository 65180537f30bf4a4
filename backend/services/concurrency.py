"""
Optimistic concurrency for canonical issue updates.

Issue rows carry a version counter (SQLAlchemy version_id_col). A flush that
finds the row already bumped by another writer raises StaleDataError; the
mutation is then rolled back, re-read and re-applied.
"""

from typing import Callable, Optional, TypeVar

from loguru import logger
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from models.config import get_settings
from models.exceptions import ConcurrentUpdateException

T = TypeVar("T")


def commit_with_retry(
    db: Session,
    apply: Callable[[], T],
    description: str,
    max_attempts: Optional[int] = None,
) -> T:
    """
    Run a read-modify-write and commit it, retrying on version conflicts.

    apply() must load the rows it changes itself, so each attempt works on
    fresh state after the rollback.

    Args:
        db: Database session
        apply: Mutation to run; its return value is passed through
        description: Short label for log messages
        max_attempts: Attempts before giving up (defaults to MERGE_MAX_RETRIES)

    Returns:
        Whatever apply() returned on the successful attempt

    Raises:
        ConcurrentUpdateException: If every attempt hit a version conflict
    """
    attempts = max_attempts or get_settings().MERGE_MAX_RETRIES

    for attempt in range(1, attempts + 1):
        try:
            result = apply()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            logger.warning(
                f"Version conflict on {description} (attempt {attempt}/{attempts})"
            )
        except Exception:
            db.rollback()
            raise

    raise ConcurrentUpdateException(
        f"Could not apply {description} after {attempts} attempts"
    )
