"""
Repository pattern implementation for data access layer.
"""

from .base import BaseRepository
from .chat_repository import ChatRepository
from .issue_repository import IssueRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "ChatRepository",
    "IssueRepository",
    "UserRepository",
]
