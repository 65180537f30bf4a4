from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

import authentication.auth as auth
import models.schemas as schemas
import repositories.db_models as db_models
from repositories.database import get_db
from services.chat_service import ChatService
from services.consent_service import ConsentService
from services.issue_service import IssueService
from services.merge_service import thumbnail_for
from services.retro_cluster_service import RetroClusterService
from services.status_service import StatusService

router = APIRouter(prefix="/issues", tags=["issues"])


@router.post(
    "/cluster/retroactive",
    response_model=schemas.RetroClusterResponse,
)
def retroactive_cluster(
    lookback_hours: Optional[float] = Query(default=None, gt=0),
    radius_meters: Optional[float] = Query(default=None, gt=0, le=5000),
    category: Optional[db_models.IssueCategory] = None,
    db: Session = Depends(get_db),
    current_user: db_models.User = Depends(auth.get_government_user),
):
    """Merge nearby duplicate canonical issues created in the lookback window."""
    return RetroClusterService.retro_cluster(
        db,
        since_hours=lookback_hours,
        radius_m=radius_meters,
        category=category,
    )


@router.post(
    "",
    response_model=schemas.IssueCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_issue(
    issue: schemas.IssueCreate,
    db: Session = Depends(get_db),
    current_user: db_models.User = Depends(auth.get_current_active_user),
):
    """
    Report a new issue.

    If a canonical issue of the same category already exists nearby, the
    report is merged into it and the canonical issue is returned.
    """
    result = IssueService.create_issue(db, issue, current_user.id)
    return schemas.IssueCreateResponse(
        message=(
            "Issue reported and merged with existing similar issue"
            if result.merged
            else "Issue reported successfully"
        ),
        merged=result.merged,
        issue_id=result.issue.id,
        canonical_issue_id=result.canonical.id,
        issue=schemas.Issue.model_validate(result.canonical),
    )


@router.get("", response_model=List[schemas.CanonicalIssueEntry])
def list_canonical_issues(
    db: Session = Depends(get_db),
    current_user: db_models.User = Depends(auth.get_government_user),
):
    """List canonical issues with reporter and duplicate counts, newest first."""
    return [
        schemas.CanonicalIssueEntry(
            id=summary.issue.id,
            title=summary.issue.title,
            description=summary.issue.description,
            category=summary.issue.category,
            priority=summary.issue.priority,
            status=summary.issue.status,
            reported_by_id=summary.issue.reported_by_id,
            reporter_name=summary.issue.reporter.name if summary.issue.reporter else None,
            address=summary.issue.address,
            created_at=summary.issue.created_at,
            votes=summary.issue.votes,
            reporters_count=summary.reporters_count,
            consenting_reporters_count=summary.consenting_reporters_count,
            duplicates_count=summary.duplicates_count,
            thumbnail_image=summary.thumbnail_image,
        )
        for summary in IssueService.list_canonical_issues(db)
    ]


@router.get("/user/me", response_model=schemas.MyIssuesPage)
def get_my_issues(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: db_models.User = Depends(auth.get_current_active_user),
):
    """Get the current user's reports, newest first."""
    page = IssueService.list_user_issues(db, current_user.id, skip=skip, limit=limit)
    return schemas.MyIssuesPage(
        items=[
            schemas.MyIssueEntry(
                issue_id=entry.issue.id,
                original_requested_id=entry.original_requested_id,
                is_duplicate=entry.is_duplicate,
                title=entry.issue.title,
                status=entry.issue.status,
                priority=entry.issue.priority,
                category=entry.issue.category,
                votes=entry.issue.votes,
                thumbnail_image=thumbnail_for(entry.issue),
                created_at=entry.issue.created_at,
            )
            for entry in page.items
        ],
        total=page.total,
        skip=page.skip,
        limit=page.limit,
    )


@router.get("/{issue_id}", response_model=schemas.IssueView)
def get_issue(
    issue_id: int,
    db: Session = Depends(get_db),
    current_user: Optional[db_models.User] = Depends(auth.get_current_user_optional),
):
    """Get an issue. Duplicate IDs return their canonical issue."""
    view = IssueService.get_issue_view(
        db, issue_id, viewer_id=current_user.id if current_user else None
    )
    notifications = []
    if current_user is not None and current_user.id == view.issue.reported_by_id:
        notifications = view.issue.notifications
    return schemas.IssueView(
        issue=schemas.Issue.model_validate(view.issue),
        is_duplicate=view.is_duplicate,
        original_requested_id=view.original_requested_id,
        reporters_count=view.reporters_count,
        consenting_reporters_count=view.consenting_reporters_count,
        duplicates_count=view.duplicates_count,
        thumbnail_image=view.thumbnail_image,
        notifications=[
            schemas.NotificationEntry.model_validate(n) for n in notifications
        ],
    )


@router.post("/{issue_id}/vote", response_model=schemas.VoteResponse)
def vote_on_issue(
    issue_id: int,
    db: Session = Depends(get_db),
    current_user: db_models.User = Depends(auth.get_current_active_user),
):
    """Add the current user's vote, or remove it if already cast."""
    return IssueService.vote_on_issue(db, issue_id, current_user.id)


@router.put("/{issue_id}/status", response_model=schemas.Issue)
def update_issue_status(
    issue_id: int,
    update: schemas.StatusUpdate,
    db: Session = Depends(get_db),
    current_user: db_models.User = Depends(auth.get_government_user),
):
    """Change status on the canonical issue; duplicates follow."""
    change = StatusService.update_status(
        db,
        issue_id,
        update.status,
        current_user.id,
        comment=update.comment,
        resolution=update.resolution,
    )
    return change.issue


@router.put("/{issue_id}/assign", response_model=schemas.Issue)
def assign_issue(
    issue_id: int,
    assignment: schemas.AssignRequest,
    db: Session = Depends(get_db),
    current_user: db_models.User = Depends(auth.get_government_user),
):
    """Assign the canonical issue to a department."""
    return IssueService.assign_issue(
        db,
        issue_id,
        assignment.department,
        current_user.id,
        official_id=assignment.official_id,
        comment=assignment.comment,
    )


@router.post("/{issue_id}/consent", response_model=schemas.ConsentResponse)
def record_consent(
    issue_id: int,
    consent: schemas.ConsentRequest,
    db: Session = Depends(get_db),
    current_user: db_models.User = Depends(auth.get_current_active_user),
):
    """Accept or decline joining the canonical issue's discussion."""
    return ConsentService.record_consent(
        db, issue_id, current_user.id, consent.accept
    )


@router.get("/{issue_id}/chat", response_model=schemas.ChatMessageList)
def get_chat_messages(
    issue_id: int,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: db_models.User = Depends(auth.get_current_active_user),
):
    """Get a page of discussion messages, oldest to newest."""
    page = ChatService.list_messages(db, issue_id, skip=skip, limit=limit)
    return schemas.ChatMessageList(
        issue_id=page.issue_id,
        messages=[_chat_message(m) for m in page.messages],
        total=page.total,
        skip=page.skip,
        limit=page.limit,
    )


@router.post(
    "/{issue_id}/chat",
    response_model=schemas.ChatMessage,
    status_code=status.HTTP_201_CREATED,
)
def post_chat_message(
    issue_id: int,
    payload: schemas.ChatMessageCreate,
    db: Session = Depends(get_db),
    current_user: db_models.User = Depends(auth.get_current_active_user),
):
    """Post to the discussion. Requires consent unless staff or original reporter."""
    message = ChatService.post_message(db, issue_id, current_user, payload.message)
    return _chat_message(message)


def _chat_message(message: db_models.IssueChatMessage) -> schemas.ChatMessage:
    return schemas.ChatMessage(
        id=message.id,
        issue_id=message.issue_id,
        author_id=message.author_id,
        author_name=message.author.name if message.author else None,
        message=message.message,
        created_at=message.created_at,
    )
