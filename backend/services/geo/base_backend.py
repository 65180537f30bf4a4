"""Abstract base class for spatial backends."""

from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy.orm import Session

import repositories.db_models as db_models


class SpatialBackend(ABC):
    """
    Abstract interface for radius queries over canonical issues.

    Implementations raise SpatialQueryException on any storage failure so
    the service can fall back to the bounding-box scan.
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the name of this backend (e.g., 'sqlite')."""

    @abstractmethod
    def find_canonical_within_radius(
        self,
        db: Session,
        category: db_models.IssueCategory,
        lon: float,
        lat: float,
        radius_m: float,
        exclude_id: Optional[int] = None,
        limit: int = 1,
    ) -> List[db_models.Issue]:
        """
        Find canonical issues of a category within radius_m of a point.

        Args:
            db: Database session
            category: Exact category to match
            lon: Point longitude (degrees)
            lat: Point latitude (degrees)
            radius_m: Search radius in meters
            exclude_id: Issue ID to leave out (usually the issue itself)
            limit: Maximum number of issues to return

        Returns:
            Matching issues, oldest first
        """

    @abstractmethod
    def count_canonical_within_radius(
        self,
        db: Session,
        category: db_models.IssueCategory,
        lon: float,
        lat: float,
        radius_m: float,
        exclude_id: Optional[int] = None,
    ) -> int:
        """
        Count canonical issues of a category within radius_m of a point.

        Args:
            db: Database session
            category: Exact category to match
            lon: Point longitude (degrees)
            lat: Point latitude (degrees)
            radius_m: Search radius in meters
            exclude_id: Issue ID to leave out of the count

        Returns:
            Number of matching issues
        """

    @abstractmethod
    def is_available(self, db: Session) -> bool:
        """
        Check if the radius query can run against this database.

        Args:
            db: Database session

        Returns:
            True if available, False otherwise
        """
