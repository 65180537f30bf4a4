"""Models package - Pydantic schemas and domain types."""

from .notification_types import IssueEventConfig, IssueEventType

__all__ = [
    "IssueEventConfig",
    "IssueEventType",
]
