"""
Services layer for business logic.

This package contains service modules that encapsulate business logic
separate from the API routes.
"""

from .chat_service import ChatService
from .consent_service import ConsentService
from .event_service import EventService, IssueEvent
from .geo import SpatialService
from .issue_service import IssueFactory, IssueService
from .merge_service import MergeService
from .notification_service import NotificationService
from .priority_service import PriorityConfig, PriorityService
from .reporter_migration_service import ReporterMigrationService
from .retro_cluster_service import RetroClusterService
from .status_service import StatusService

__all__ = [
    "ChatService",
    "ConsentService",
    "EventService",
    "IssueEvent",
    "IssueFactory",
    "IssueService",
    "MergeService",
    "NotificationService",
    "PriorityConfig",
    "PriorityService",
    "ReporterMigrationService",
    "RetroClusterService",
    "SpatialService",
    "StatusService",
]
