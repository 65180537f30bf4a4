"""
Retroactive clustering.

Concurrent submissions can both find no match and both stay canonical. This
batch pass reconciles them: within a capped window of recent canonical
issues, every same-category pair within the radius is merged, newer into
older. Each merge commits on its own, so stopping midway keeps what was done.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterator, List, NamedTuple, Optional, Set

from loguru import logger
from sqlalchemy.orm import Session

import repositories.db_models as db_models
from helpers.geo import haversine_distance_m
from helpers.time_utils import hours_ago
from models.config import get_settings
from models.exceptions import DomainException
from repositories.issue_repository import IssueRepository

from .merge_service import MergeService


class _IssuePoint(NamedTuple):
    id: int
    category: db_models.IssueCategory
    longitude: float
    latitude: float
    created_at: datetime


class ClusterPair(NamedTuple):
    canonical_id: int
    duplicate_id: int
    distance_m: float


@dataclass
class RetroClusterResult:
    merged_pairs: int = 0
    scanned: int = 0
    interrupted: bool = False
    pairs: List[ClusterPair] = field(default_factory=list)


class RetroClusterService:
    """Service for batch reconciliation of duplicate canonical issues."""

    @staticmethod
    def _load_window(
        db: Session,
        since_hours: float,
        category: Optional[db_models.IssueCategory],
    ) -> List[_IssuePoint]:
        issues = IssueRepository(db).get_canonical_created_since(
            hours_ago(since_hours),
            category=category,
            limit=get_settings().RETRO_CLUSTER_MAX_ISSUES,
        )
        # Plain tuples survive the commits that expire ORM instances
        return [
            _IssuePoint(i.id, i.category, i.longitude, i.latitude, i.created_at)
            for i in issues
        ]

    @staticmethod
    def _candidate_pairs(
        points: List[_IssuePoint],
        radius_m: float,
        merged: Set[int],
        should_stop: Optional[Callable[[], bool]],
        result: RetroClusterResult,
    ) -> Iterator[ClusterPair]:
        """
        Yield (older, newer) pairs within the radius, oldest-first.

        Issues added to merged by the caller are skipped from then on.
        """
        for i, a in enumerate(points):
            if a.id in merged:
                continue
            for b in points[i + 1 :]:
                if should_stop is not None and should_stop():
                    result.interrupted = True
                    return
                if b.id in merged or a.category != b.category:
                    continue
                distance = haversine_distance_m(
                    a.longitude, a.latitude, b.longitude, b.latitude
                )
                if distance <= radius_m:
                    yield ClusterPair(a.id, b.id, distance)

    @staticmethod
    def retro_cluster(
        db: Session,
        since_hours: Optional[float] = None,
        radius_m: Optional[float] = None,
        category: Optional[db_models.IssueCategory] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> RetroClusterResult:
        """
        Merge nearby same-category canonical issues created in a window.

        Args:
            db: Database session
            since_hours: Lookback window (defaults to RETRO_CLUSTER_LOOKBACK_HOURS)
            radius_m: Merge radius (defaults to CLUSTER_RADIUS_METERS)
            category: Optional category filter
            should_stop: Checked between pairs; returning True ends the scan

        Returns:
            RetroClusterResult with the merged pair count
        """
        settings = get_settings()
        if since_hours is None:
            since_hours = settings.RETRO_CLUSTER_LOOKBACK_HOURS
        if radius_m is None:
            radius_m = settings.CLUSTER_RADIUS_METERS

        points = RetroClusterService._load_window(db, since_hours, category)
        result = RetroClusterResult(scanned=len(points))
        merged: Set[int] = set()

        logger.info(
            f"Retroactive clustering over {len(points)} issue(s) "
            f"(lookback={since_hours}h, radius={radius_m}m, "
            f"category={category.value if category else 'all'})"
        )

        for pair in RetroClusterService._candidate_pairs(
            points, radius_m, merged, should_stop, result
        ):
            try:
                outcome = MergeService.merge(db, pair.duplicate_id, pair.canonical_id)
            except DomainException as e:
                logger.warning(
                    f"Retroactive merge {pair.duplicate_id} -> {pair.canonical_id} "
                    f"skipped: {e.message}"
                )
                continue

            merged.add(pair.duplicate_id)
            if outcome.merged:
                result.merged_pairs += 1
                result.pairs.append(pair)
                logger.info(
                    f"Retroactively merged {pair.duplicate_id} into "
                    f"{pair.canonical_id} ({round(pair.distance_m)}m)"
                )

        if result.interrupted:
            logger.warning(
                f"Retroactive clustering interrupted after {result.merged_pairs} merge(s)"
            )
        else:
            logger.info(
                f"Retroactive clustering complete: {result.merged_pairs} merge(s)"
            )
        return result

    @staticmethod
    def find_unmerged_pairs(
        db: Session,
        since_hours: Optional[float] = None,
        radius_m: Optional[float] = None,
        category: Optional[db_models.IssueCategory] = None,
    ) -> List[ClusterPair]:
        """
        Dry run: list the merges retro_cluster would make, changing nothing.

        An empty list means every cluster in the window already has a single
        canonical issue.
        """
        settings = get_settings()
        if since_hours is None:
            since_hours = settings.RETRO_CLUSTER_LOOKBACK_HOURS
        if radius_m is None:
            radius_m = settings.CLUSTER_RADIUS_METERS

        points = RetroClusterService._load_window(db, since_hours, category)
        merged: Set[int] = set()
        pairs: List[ClusterPair] = []
        for pair in RetroClusterService._candidate_pairs(
            points, radius_m, merged, None, RetroClusterResult()
        ):
            merged.add(pair.duplicate_id)
            pairs.append(pair)
        return pairs
