"""Spatial service - finds nearby canonical issues with a two-tier lookup."""

from typing import List, Optional

from loguru import logger
from sqlalchemy.orm import Session

import repositories.db_models as db_models
from helpers.geo import bounding_box, haversine_distance_m
from models.config import get_settings
from models.exceptions import SpatialQueryException
from repositories.issue_repository import IssueRepository

from .base_backend import SpatialBackend


class SpatialService:
    """
    Locate canonical issues of the same category around a point.

    Every lookup runs the backend radius query first. If it returns nothing
    or fails, a bounding-box scan over a capped candidate set is checked with
    exact haversine distance. A spatial index that is missing or
    mis-provisioned makes the primary query silently return empty, so the
    fallback runs on empty results as well as on errors.
    """

    _backend_cache: Optional[SpatialBackend] = None

    @staticmethod
    def _get_backend() -> SpatialBackend:
        """Get the configured spatial backend."""
        if SpatialService._backend_cache is not None:
            return SpatialService._backend_cache

        backend_name = get_settings().get_spatial_backend()

        if backend_name == "postgis":
            from .postgis_backend import PostGISSpatialBackend

            SpatialService._backend_cache = PostGISSpatialBackend()
        else:
            from .sqlite_backend import SQLiteSpatialBackend

            SpatialService._backend_cache = SQLiteSpatialBackend()

        return SpatialService._backend_cache

    @staticmethod
    def reset_backend() -> None:
        """Drop the cached backend (settings changed, or in tests)."""
        SpatialService._backend_cache = None

    @staticmethod
    def _fallback_candidates(
        db: Session,
        category: db_models.IssueCategory,
        lon: float,
        lat: float,
        radius_m: float,
        exclude_id: Optional[int],
    ) -> List[db_models.Issue]:
        """
        Bounding-box pre-filter followed by exact distance, oldest first.

        Raises:
            SpatialQueryException: If the bounding-box query fails
        """
        bbox = bounding_box(lon, lat, radius_m)
        limit = get_settings().SPATIAL_FALLBACK_CANDIDATE_LIMIT
        try:
            candidates = IssueRepository(db).get_canonical_in_bbox(
                category, bbox, limit, exclude_id=exclude_id
            )
        except Exception as e:
            raise SpatialQueryException(f"Bounding-box query failed: {e}") from e

        return [
            candidate
            for candidate in candidates
            if haversine_distance_m(lon, lat, candidate.longitude, candidate.latitude)
            <= radius_m
        ]

    @staticmethod
    def find_canonical_match(
        db: Session,
        category: db_models.IssueCategory,
        lon: float,
        lat: float,
        radius_m: Optional[float] = None,
        exclude_id: Optional[int] = None,
    ) -> Optional[db_models.Issue]:
        """
        Find the oldest canonical issue of a category within radius of a point.

        Failures never propagate: if both tiers fail the lookup reports no
        match, and the caller keeps the new issue canonical.

        Args:
            db: Database session
            category: Exact category to match
            lon: Point longitude (degrees)
            lat: Point latitude (degrees)
            radius_m: Search radius (defaults to CLUSTER_RADIUS_METERS)
            exclude_id: Issue ID to leave out (the new issue itself)

        Returns:
            The matching canonical issue, or None
        """
        if radius_m is None:
            radius_m = get_settings().CLUSTER_RADIUS_METERS

        backend = SpatialService._get_backend()
        try:
            matches = backend.find_canonical_within_radius(
                db, category, lon, lat, radius_m, exclude_id=exclude_id, limit=1
            )
            if matches:
                return matches[0]
            logger.debug(
                f"{backend.backend_name} radius query found no match, "
                "running bounding-box fallback"
            )
        except SpatialQueryException as e:
            logger.warning(f"Primary spatial query failed, falling back: {e.message}")

        try:
            candidates = SpatialService._fallback_candidates(
                db, category, lon, lat, radius_m, exclude_id
            )
        except SpatialQueryException as e:
            logger.error(f"Spatial fallback failed, treating as no match: {e.message}")
            return None

        if candidates:
            match = candidates[0]
            distance = haversine_distance_m(lon, lat, match.longitude, match.latitude)
            logger.info(
                f"Bounding-box fallback matched issue {match.id} at {round(distance)}m"
            )
            return match
        return None

    @staticmethod
    def count_nearby_canonical(
        db: Session,
        issue: db_models.Issue,
        radius_m: Optional[float] = None,
    ) -> int:
        """
        Count other canonical issues of the same category near an issue.

        Args:
            db: Database session
            issue: Issue whose neighbourhood is counted (excluded from the count)
            radius_m: Search radius (defaults to CLUSTER_RADIUS_METERS)

        Returns:
            Number of other canonical issues within the radius

        Raises:
            SpatialQueryException: If both the primary and fallback queries fail
        """
        if radius_m is None:
            radius_m = get_settings().CLUSTER_RADIUS_METERS

        lon, lat = issue.coordinates
        backend = SpatialService._get_backend()
        try:
            count = backend.count_canonical_within_radius(
                db, issue.category, lon, lat, radius_m, exclude_id=issue.id
            )
            if count > 0:
                return count
        except SpatialQueryException as e:
            logger.warning(f"Primary cluster count failed, falling back: {e.message}")

        return len(
            SpatialService._fallback_candidates(
                db, issue.category, lon, lat, radius_m, issue.id
            )
        )

    @staticmethod
    def diagnostics(db: Session) -> dict:
        """
        Report which spatial backend is active and whether it works.

        Returns:
            Dict with backend name, availability and the fallback cap
        """
        backend = SpatialService._get_backend()
        return {
            "backend": backend.backend_name,
            "available": backend.is_available(db),
            "fallback_candidate_limit": get_settings().SPATIAL_FALLBACK_CANDIDATE_LIMIT,
        }
