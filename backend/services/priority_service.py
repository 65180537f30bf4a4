"""
Automatic issue priority.

Priority starts from a vote-count baseline and is bumped one level when the
issue sits in a cluster of same-category reports. Reasons are kept alongside
the level so staff can see why an issue was escalated.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger
from sqlalchemy.orm import Session

import repositories.db_models as db_models
from helpers.geo import is_valid_coordinate_pair
from models.config import get_settings
from models.exceptions import SpatialQueryException

from .geo.spatial_service import SpatialService

PRIORITY_ORDER = [
    db_models.IssuePriority.LOW,
    db_models.IssuePriority.MEDIUM,
    db_models.IssuePriority.HIGH,
    db_models.IssuePriority.URGENT,
]


@dataclass(frozen=True)
class PriorityConfig:
    """Thresholds for automatic priority. Defaults come from settings."""

    votes_high: int = 7
    votes_medium: int = 2
    cluster_radius_m: float = 100.0
    cluster_min_others: int = 2

    @classmethod
    def from_settings(cls) -> "PriorityConfig":
        settings = get_settings()
        return cls(
            votes_high=settings.PRIORITY_VOTES_HIGH,
            votes_medium=settings.PRIORITY_VOTES_MEDIUM,
            cluster_radius_m=settings.CLUSTER_RADIUS_METERS,
            cluster_min_others=settings.CLUSTER_MIN_OTHERS,
        )


@dataclass
class PriorityResult:
    priority: db_models.IssuePriority
    reasons: List[str] = field(default_factory=list)


def bump_priority(level: db_models.IssuePriority) -> db_models.IssuePriority:
    """Raise a level by one step, saturating at urgent."""
    index = PRIORITY_ORDER.index(level)
    return PRIORITY_ORDER[min(index + 1, len(PRIORITY_ORDER) - 1)]


def priority_rank(level: db_models.IssuePriority) -> int:
    return PRIORITY_ORDER.index(level)


class PriorityService:
    """Service for computing and applying automatic priority."""

    @staticmethod
    def vote_baseline(
        votes: int, config: PriorityConfig
    ) -> tuple[db_models.IssuePriority, List[str]]:
        """
        Derive the vote-count baseline.

        Low carries no reason tag.

        Args:
            votes: Current vote count
            config: Thresholds

        Returns:
            Tuple of (level, reasons)
        """
        if votes >= config.votes_high:
            return db_models.IssuePriority.HIGH, [f"votes>={config.votes_high}"]
        if votes >= config.votes_medium:
            return db_models.IssuePriority.MEDIUM, [f"votes>={config.votes_medium}"]
        return db_models.IssuePriority.LOW, []

    @staticmethod
    def compute_priority(
        db: Session,
        issue: db_models.Issue,
        config: Optional[PriorityConfig] = None,
    ) -> PriorityResult:
        """
        Compute the automatic priority of an issue.

        A frozen issue (priority_auto false) keeps its level with no reasons.
        Otherwise the vote baseline is bumped at most one level when at least
        cluster_min_others other canonical issues of the same category lie
        within cluster_radius_m. If the cluster lookup fails, "cluster-error"
        is recorded and the baseline stands.

        Args:
            db: Database session
            issue: Issue to evaluate
            config: Thresholds (defaults to settings)

        Returns:
            PriorityResult with level and reasons
        """
        if not issue.priority_auto:
            return PriorityResult(priority=issue.priority, reasons=[])

        config = config or PriorityConfig.from_settings()
        level, reasons = PriorityService.vote_baseline(issue.votes or 0, config)

        if not is_valid_coordinate_pair(list(issue.coordinates)):
            return PriorityResult(priority=level, reasons=reasons)

        try:
            nearby = SpatialService.count_nearby_canonical(
                db, issue, config.cluster_radius_m
            )
        except SpatialQueryException as e:
            logger.warning(f"Cluster lookup failed for issue {issue.id}: {e.message}")
            reasons.append("cluster-error")
            return PriorityResult(priority=level, reasons=reasons)

        if nearby >= config.cluster_min_others:
            bumped = bump_priority(level)
            reasons.append(
                f"cluster({nearby + 1} issues within {config.cluster_radius_m:g}m)"
            )
            if bumped != level:
                reasons.append("cluster-bump")
            level = bumped

        return PriorityResult(priority=level, reasons=reasons)

    @staticmethod
    def recompute(
        db: Session,
        issue: db_models.Issue,
        config: Optional[PriorityConfig] = None,
    ) -> bool:
        """
        Recompute and apply priority to an issue without committing.

        Args:
            db: Database session
            issue: Issue to update in place
            config: Thresholds (defaults to settings)

        Returns:
            True if the priority level changed
        """
        previous = issue.priority
        result = PriorityService.compute_priority(db, issue, config)
        issue.priority = result.priority
        if issue.priority_auto:
            issue.priority_reasons = list(result.reasons)

        changed = result.priority != previous
        if changed:
            logger.info(
                f"Issue {issue.id} priority {getattr(previous, 'value', previous)} -> "
                f"{result.priority.value} ({', '.join(result.reasons)})"
            )
        return changed
