from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator

from repositories.db_models import (
    IssueCategory,
    IssueNotificationType,
    IssuePriority,
    IssueStatus,
    UserRole,
)


# User Schemas
class User(BaseModel):
    id: int
    email: str
    name: str
    role: UserRole
    department: Optional[str] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# Issue Schemas
class LocationIn(BaseModel):
    # [longitude, latitude]; range and length are checked by the service so
    # malformed pairs surface as InvalidLocationException
    coordinates: List[float]
    address: str = Field(default="Address not specified", max_length=300)
    city: Optional[str] = Field(default=None, max_length=120)
    state: Optional[str] = Field(default=None, max_length=120)
    pincode: Optional[str] = Field(default=None, max_length=20)

    @field_validator("address", mode="before")
    @classmethod
    def default_blank_address(cls, v: Optional[str]) -> str:
        if v is None or not str(v).strip():
            return "Address not specified"
        return str(v).strip()


class IssueCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: IssueCategory
    location: LocationIn
    images: List[str] = Field(default_factory=list)
    priority: IssuePriority = IssuePriority.LOW

    @field_validator("images")
    @classmethod
    def keep_http_urls(cls, v: List[str]) -> List[str]:
        """Drop anything that isn't an http(s) URL."""
        return [u for u in v if u.startswith("http://") or u.startswith("https://")]


class ReporterEntry(BaseModel):
    user_id: int
    consent: Optional[bool] = None
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StatusHistoryEntry(BaseModel):
    status: IssueStatus
    updated_by_id: Optional[int] = None
    comment: Optional[str] = None
    synced_from_id: Optional[int] = None
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationEntry(BaseModel):
    id: int
    user_id: Optional[int] = None
    message: str
    type: IssueNotificationType
    read: bool
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class DuplicateSummary(BaseModel):
    id: int
    title: str
    reported_by_id: int
    created_at: datetime
    merged_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Issue(BaseModel):
    id: int
    title: str
    description: str
    category: IssueCategory
    longitude: float
    latitude: float
    address: str
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    images: List[str] = []
    thumbnail_image: Optional[str] = None
    reported_by_id: int
    status: IssueStatus
    votes: int
    priority: IssuePriority
    priority_auto: bool
    priority_reasons: List[str] = []
    merged_into_id: Optional[int] = None
    merged_at: Optional[datetime] = None
    assigned_department: Optional[str] = None
    assigned_official_id: Optional[int] = None
    estimated_resolution_hours: int
    actual_resolution_hours: Optional[int] = None
    resolved_by_id: Optional[int] = None
    resolved_at: Optional[datetime] = None
    resolution_description: Optional[str] = None
    resolution_images: List[str] = []
    reporters: List[ReporterEntry] = []
    duplicates: List[DuplicateSummary] = []
    status_history: List[StatusHistoryEntry] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class IssueView(BaseModel):
    """Canonical issue as shown to a viewer, whichever ID they asked for."""

    issue: Issue
    is_duplicate: bool
    original_requested_id: int
    reporters_count: int
    consenting_reporters_count: int
    duplicates_count: int
    thumbnail_image: Optional[str] = None
    notifications: List[NotificationEntry] = []

    model_config = ConfigDict(from_attributes=True)


class MyIssueEntry(BaseModel):
    """One of the user's reports, shown as the canonical issue it belongs to."""

    issue_id: int
    original_requested_id: int
    is_duplicate: bool
    title: str
    status: IssueStatus
    priority: IssuePriority
    category: IssueCategory
    votes: int
    thumbnail_image: Optional[str] = None
    created_at: datetime


class MyIssuesPage(BaseModel):
    items: List[MyIssueEntry]
    total: int
    skip: int
    limit: int


class CanonicalIssueEntry(BaseModel):
    """A canonical issue in the staff listing, with its merge counts."""

    id: int
    title: str
    description: str
    category: IssueCategory
    priority: IssuePriority
    status: IssueStatus
    reported_by_id: int
    reporter_name: Optional[str] = None
    address: str
    created_at: datetime
    votes: int
    reporters_count: int
    consenting_reporters_count: int
    duplicates_count: int
    thumbnail_image: Optional[str] = None


class IssueCreateResponse(BaseModel):
    message: str
    merged: bool
    issue_id: int
    canonical_issue_id: int
    issue: Issue


class VoteResponse(BaseModel):
    issue_id: int
    votes: int
    has_voted: bool
    priority: IssuePriority
    priority_reasons: List[str] = []

    model_config = ConfigDict(from_attributes=True)


class ResolutionDetails(BaseModel):
    description: Optional[str] = Field(default=None, max_length=2000)
    images: List[str] = Field(default_factory=list)


class StatusUpdate(BaseModel):
    status: IssueStatus
    comment: Optional[str] = Field(default=None, max_length=1000)
    resolution: Optional[ResolutionDetails] = None


class AssignRequest(BaseModel):
    department: str = Field(..., min_length=1, max_length=120)
    official_id: Optional[int] = None
    comment: Optional[str] = Field(default=None, max_length=1000)


class ConsentRequest(BaseModel):
    accept: StrictBool


class ConsentResponse(BaseModel):
    issue_id: int
    consent: bool

    model_config = ConfigDict(from_attributes=True)


class RetroClusterResponse(BaseModel):
    merged_pairs: int
    scanned: int
    interrupted: bool

    model_config = ConfigDict(from_attributes=True)


# Chat Schemas
CHAT_MESSAGE_MAX_LENGTH = 2000


class ChatMessageCreate(BaseModel):
    message: str = Field(..., max_length=CHAT_MESSAGE_MAX_LENGTH)


class ChatMessage(BaseModel):
    id: int
    issue_id: int
    author_id: int
    author_name: Optional[str] = None
    message: str
    created_at: datetime


class ChatMessageList(BaseModel):
    issue_id: int
    messages: List[ChatMessage]
    total: int
    skip: int
    limit: int
