"""
Database models using SQLAlchemy 2.0 style with Mapped type hints.

This module defines all database models with proper type annotations
for improved IDE support and type checking.

An Issue is canonical while merged_into_id is NULL and a duplicate once it
points at another (canonical) issue. The duplicates list is the reverse side
of that pointer, so the two can never disagree.
"""

import enum
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from repositories.database import Base


class UserRole(str, enum.Enum):
    CITIZEN = "citizen"
    GOVERNMENT = "government"


class IssueCategory(str, enum.Enum):
    ROADS_INFRASTRUCTURE = "Roads & Infrastructure"
    WASTE_MANAGEMENT = "Waste Management"
    ELECTRICITY = "Electricity"
    WATER_SUPPLY = "Water Supply"
    SEWAGE_DRAINAGE = "Sewage & Drainage"
    TRAFFIC_TRANSPORTATION = "Traffic & Transportation"
    PUBLIC_SAFETY = "Public Safety"
    PARKS_RECREATION = "Parks & Recreation"
    STREET_LIGHTING = "Street Lighting"
    NOISE_POLLUTION = "Noise Pollution"
    OTHER = "Other"


class IssueStatus(str, enum.Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    CLOSED = "closed"


class IssuePriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class IssueNotificationType(str, enum.Enum):
    """Kinds of entries in an issue's reporter-visible notification log."""

    STATUS_CHANGE = "status_change"
    ASSIGNMENT = "assignment"
    COMMENT = "comment"
    RESOLUTION = "resolution"
    CONSENT_REQUEST = "consent_request"
    MERGE = "merge"


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole), default=UserRole.CITIZEN, nullable=False
    )
    department: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    @property
    def is_government(self) -> bool:
        return self.role == UserRole.GOVERNMENT


class Issue(Base):
    __tablename__ = "issues"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[IssueCategory] = mapped_column(
        Enum(IssueCategory), nullable=False
    )

    # Location: GeoJSON order is [longitude, latitude]
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str] = mapped_column(String(300), nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    pincode: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Already-uploaded media URLs; images[0] is the thumbnail candidate
    images: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    thumbnail_image: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    reported_by_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    assigned_department: Mapped[Optional[str]] = mapped_column(
        String(120), nullable=True
    )
    assigned_official_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )

    status: Mapped[IssueStatus] = mapped_column(
        Enum(IssueStatus), default=IssueStatus.PENDING, nullable=False
    )
    votes: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    priority: Mapped[IssuePriority] = mapped_column(
        Enum(IssuePriority), default=IssuePriority.LOW, nullable=False
    )
    # False freezes priority against automatic recomputation (manual override)
    priority_auto: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    priority_reasons: Mapped[List[str]] = mapped_column(
        JSON, default=list, nullable=False
    )

    # Duplicate clustering
    merged_into_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("issues.id"), nullable=True, index=True
    )
    merged_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Resolution tracking (hours)
    estimated_resolution_hours: Mapped[int] = mapped_column(
        Integer, default=72, nullable=False
    )
    actual_resolution_hours: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True
    )
    resolved_by_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolution_description: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True
    )
    resolution_images: Mapped[List[str]] = mapped_column(
        JSON, default=list, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utc_now, onupdate=_utc_now
    )

    # Optimistic concurrency: every UPDATE checks and bumps this counter
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Relationships
    reporter: Mapped["User"] = relationship("User", foreign_keys=[reported_by_id])
    assigned_official: Mapped[Optional["User"]] = relationship(
        "User", foreign_keys=[assigned_official_id]
    )
    canonical: Mapped[Optional["Issue"]] = relationship(
        "Issue",
        remote_side=[id],
        back_populates="duplicates",
        foreign_keys=[merged_into_id],
    )
    duplicates: Mapped[List["Issue"]] = relationship(
        "Issue",
        back_populates="canonical",
        foreign_keys=[merged_into_id],
        order_by=lambda: [Issue.merged_at, Issue.id],
    )
    reporters: Mapped[List["IssueReporter"]] = relationship(
        "IssueReporter",
        back_populates="issue",
        cascade="all, delete-orphan",
        order_by=lambda: [IssueReporter.joined_at, IssueReporter.id],
    )
    voters: Mapped[List["IssueVoter"]] = relationship(
        "IssueVoter", back_populates="issue", cascade="all, delete-orphan"
    )
    status_history: Mapped[List["IssueStatusHistory"]] = relationship(
        "IssueStatusHistory",
        back_populates="issue",
        cascade="all, delete-orphan",
        foreign_keys=lambda: [IssueStatusHistory.issue_id],
        order_by=lambda: [IssueStatusHistory.timestamp, IssueStatusHistory.id],
    )
    notifications: Mapped[List["IssueNotification"]] = relationship(
        "IssueNotification",
        back_populates="issue",
        cascade="all, delete-orphan",
        order_by=lambda: [IssueNotification.timestamp, IssueNotification.id],
    )

    __table_args__ = (
        Index("ix_issues_category_merged", "category", "merged_into_id"),
        Index("ix_issues_lon_lat", "longitude", "latitude"),
        Index("ix_issues_created_at", "created_at"),
        Index("ix_issues_reported_by", "reported_by_id"),
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def coordinates(self) -> tuple[float, float]:
        """Location as a (longitude, latitude) pair."""
        return (self.longitude, self.latitude)

    def find_reporter(self, user_id: int) -> Optional["IssueReporter"]:
        for entry in self.reporters:
            if entry.user_id == user_id:
                return entry
        return None

    def has_voter(self, user_id: int) -> bool:
        return any(v.user_id == user_id for v in self.voters)

    def touch(self) -> None:
        """Mark the row dirty so the next flush runs the version check."""
        self.updated_at = _utc_now()


class IssueReporter(Base):
    """A user attached to an issue, with their chat/participation consent."""

    __tablename__ = "issue_reporters"
    __table_args__ = (
        UniqueConstraint("issue_id", "user_id", name="uq_issue_reporter_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    issue_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("issues.id"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    # None = undecided, True = accepted, False = declined
    consent: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    issue: Mapped["Issue"] = relationship("Issue", back_populates="reporters")
    user: Mapped["User"] = relationship("User")


class IssueVoter(Base):
    __tablename__ = "issue_voters"
    __table_args__ = (
        UniqueConstraint("issue_id", "user_id", name="uq_issue_voter_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    issue_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("issues.id"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    issue: Mapped["Issue"] = relationship("Issue", back_populates="voters")


class IssueStatusHistory(Base):
    """Append-only status log entry."""

    __tablename__ = "issue_status_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    issue_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("issues.id"), nullable=False, index=True
    )
    status: Mapped[IssueStatus] = mapped_column(Enum(IssueStatus), nullable=False)
    updated_by_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Set on entries mirrored from a canonical issue onto its duplicates
    synced_from_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("issues.id"), nullable=True
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    issue: Mapped["Issue"] = relationship(
        "Issue", back_populates="status_history", foreign_keys=[issue_id]
    )


class IssueNotification(Base):
    """Append-only, reporter-visible event log entry on an issue."""

    __tablename__ = "issue_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    issue_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("issues.id"), nullable=False, index=True
    )
    # Recipient; None means the issue's original reporter
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[IssueNotificationType] = mapped_column(
        Enum(IssueNotificationType), nullable=False
    )
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    issue: Mapped["Issue"] = relationship("Issue", back_populates="notifications")


class IssueChatMessage(Base):
    __tablename__ = "issue_chat_messages"
    __table_args__ = (Index("ix_issue_chat_issue_created", "issue_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    issue_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("issues.id"), nullable=False
    )
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    message: Mapped[str] = mapped_column(String(2000), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    author: Mapped["User"] = relationship("User")
