"""Issue API endpoints.

Two route families share one implementation:

- `/issues/organization/{org_id}/...` scopes to the organization in the path
  (caller must be a member, 403 otherwise).
- `/issues/...` scopes to the caller's active organization from the
  `X-Organization-Id` header.

An issue outside the scoped organization is reported as not found.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from math import ceil
from typing import Iterator, Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ... import crud, models, schemas
from ...config import Settings
from ...database import get_db
from ...errors import ConcurrencyConflictError, IssueNotFoundError, IssueValidationError
from ..dependencies import (
    get_app_settings,
    get_current_organization_id,
    get_current_user,
    get_path_organization_id,
)

logger = logging.getLogger("kanban-core.issues")

router = APIRouter(tags=["issues"])


@contextmanager
def _domain_errors() -> Iterator[None]:
    """Translate service errors into HTTP errors."""
    try:
        yield
    except IssueNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except IssueValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConcurrencyConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


def _user_to_summary(user: Optional[models.User]) -> Optional[schemas.UserSummary]:
    if user is None:
        return None
    return schemas.UserSummary(id=user.id, name=user.name, email=user.email, avatar=user.avatar)


def _issue_to_response(issue: models.Issue) -> schemas.IssueResponse:
    """Convert Issue model to IssueResponse schema."""
    return schemas.IssueResponse(
        id=issue.id,
        organization_id=issue.organization_id,
        title=issue.title,
        description=issue.description,
        status=issue.status,
        priority=issue.priority,
        position=issue.position,
        tags=issue.tags or [],
        due_date=issue.due_date,
        reporter_id=issue.reporter_id,
        assignee_id=issue.assignee_id,
        reporter=_user_to_summary(issue.reporter),
        assignee=_user_to_summary(issue.assignee),
        created_at=issue.created_at,
        updated_at=issue.updated_at,
    )


def _history_to_response(entry: models.IssueHistory) -> schemas.IssueHistoryResponse:
    """Convert IssueHistory model to IssueHistoryResponse schema."""
    return schemas.IssueHistoryResponse(
        id=entry.id,
        issue_id=entry.issue_id,
        actor_id=entry.actor_id,
        actor=_user_to_summary(entry.actor),
        field_changed=entry.field_changed,
        old_value=entry.old_value,
        new_value=entry.new_value,
        created_at=entry.created_at,
    )


def _parse_assignee_filter(assignee_id: Optional[str]) -> Optional[Union[UUID, str]]:
    if not assignee_id or assignee_id == crud.UNASSIGNED:
        return assignee_id
    try:
        return UUID(assignee_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="assigneeId must be a UUID or 'unassigned'")


# ============================================================================
# Shared implementations
# ============================================================================

def _list_issues(
    db: Session,
    settings: Settings,
    organization_id: UUID,
    page: int,
    page_size: Optional[int],
    status: Optional[models.IssueStatus],
    priority: Optional[models.IssuePriority],
    assignee_id: Optional[str],
    search: Optional[str],
    due_date_from: Optional[datetime],
    due_date_to: Optional[datetime],
) -> schemas.IssueListResponse:
    page_size = min(page_size or settings.default_page_size, settings.max_page_size)

    issues, total = crud.get_issues(
        db=db,
        organization_id=organization_id,
        skip=(page - 1) * page_size,
        limit=page_size,
        status=status,
        priority=priority,
        assignee_id=_parse_assignee_filter(assignee_id),
        search=search,
        due_date_from=schemas.to_naive_utc(due_date_from),
        due_date_to=schemas.to_naive_utc(due_date_to),
    )
    return schemas.IssueListResponse(
        data=[_issue_to_response(issue) for issue in issues],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


def _create_issue(
    db: Session,
    settings: Settings,
    organization_id: UUID,
    current_user: models.User,
    issue_data: schemas.IssueCreate,
) -> schemas.ApiResponse[schemas.IssueResponse]:
    with _domain_errors():
        issue = crud.create_issue(
            db, organization_id, current_user.id, issue_data,
            max_retries=settings.max_transaction_retries,
        )
    return schemas.ApiResponse[schemas.IssueResponse](data=_issue_to_response(issue))


def _get_issue(db: Session, organization_id: UUID, issue_id: UUID) -> schemas.ApiResponse[schemas.IssueResponse]:
    issue = crud.get_issue(db, issue_id, organization_id)
    if not issue:
        raise HTTPException(status_code=404, detail="Issue not found")
    return schemas.ApiResponse[schemas.IssueResponse](data=_issue_to_response(issue))


def _update_issue(
    db: Session,
    settings: Settings,
    organization_id: UUID,
    current_user: models.User,
    issue_id: UUID,
    patch: schemas.IssueUpdate,
) -> schemas.ApiResponse[schemas.IssueResponse]:
    with _domain_errors():
        issue = crud.update_issue(
            db, issue_id, organization_id, current_user.id, patch,
            max_retries=settings.max_transaction_retries,
        )
    return schemas.ApiResponse[schemas.IssueResponse](data=_issue_to_response(issue))


def _delete_issue(
    db: Session,
    settings: Settings,
    organization_id: UUID,
    issue_id: UUID,
) -> schemas.MessageResponse:
    with _domain_errors():
        crud.delete_issue(db, issue_id, organization_id, max_retries=settings.max_transaction_retries)
    return schemas.MessageResponse(message="Issue deleted successfully")


def _get_history(
    db: Session,
    settings: Settings,
    organization_id: UUID,
    issue_id: UUID,
    limit: Optional[int],
) -> schemas.ApiResponse[list[schemas.IssueHistoryResponse]]:
    limit = min(limit or settings.history_default_limit, settings.history_max_limit)
    with _domain_errors():
        entries = crud.get_issue_history(db, issue_id, organization_id, limit=limit)
    return schemas.ApiResponse[list[schemas.IssueHistoryResponse]](
        data=[_history_to_response(entry) for entry in entries]
    )


# ============================================================================
# Organization-scoped routes
# ============================================================================

@router.get("/organization/{org_id}", response_model=schemas.IssueListResponse)
def list_organization_issues(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: Optional[int] = Query(None, ge=1, alias="pageSize", description="Items per page"),
    status: Optional[models.IssueStatus] = Query(None, description="Filter by column"),
    priority: Optional[models.IssuePriority] = Query(None, description="Filter by priority"),
    assignee_id: Optional[str] = Query(None, alias="assigneeId", description="Assignee UUID or 'unassigned'"),
    search: Optional[str] = Query(None, description="Search title and description"),
    due_date_from: Optional[datetime] = Query(None, alias="dueDateFrom"),
    due_date_to: Optional[datetime] = Query(None, alias="dueDateTo"),
    organization_id: UUID = Depends(get_path_organization_id),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    """
    List an organization's issues with filtering and pagination.

    Issues are ordered by column (TODO, IN_PROGRESS, DONE), then position,
    then newest first.
    """
    return _list_issues(
        db, settings, organization_id, page, page_size, status, priority,
        assignee_id, search, due_date_from, due_date_to,
    )


@router.post("/organization/{org_id}", response_model=schemas.ApiResponse[schemas.IssueResponse], status_code=201)
def create_organization_issue(
    issue_data: schemas.IssueCreate,
    organization_id: UUID = Depends(get_path_organization_id),
    current_user: models.User = Depends(get_current_user),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    """
    Create an issue in an organization.

    - **title**: Issue title (1-200 characters)
    - **status**: Column to create it in (default TODO)
    - **position**: Index in the column (optional, appended when omitted)
    - **assigneeId**: Must be a member of the organization
    """
    return _create_issue(db, settings, organization_id, current_user, issue_data)


@router.get("/organization/{org_id}/board", response_model=schemas.ApiResponse[schemas.BoardResponse])
def get_organization_board(
    organization_id: UUID = Depends(get_path_organization_id),
    db: Session = Depends(get_db),
):
    """Get all three columns of the board with issues in position order."""
    board = crud.get_board(db, organization_id)
    columns = [
        schemas.BoardColumn(status=status, issues=[_issue_to_response(issue) for issue in issues])
        for status, issues in board.items()
    ]
    return schemas.ApiResponse[schemas.BoardResponse](
        data=schemas.BoardResponse(organization_id=organization_id, columns=columns)
    )


@router.get("/organization/{org_id}/{issue_id}", response_model=schemas.ApiResponse[schemas.IssueResponse])
def get_organization_issue(
    issue_id: UUID,
    organization_id: UUID = Depends(get_path_organization_id),
    db: Session = Depends(get_db),
):
    """Get one issue of an organization."""
    return _get_issue(db, organization_id, issue_id)


@router.put("/organization/{org_id}/{issue_id}", response_model=schemas.ApiResponse[schemas.IssueResponse])
def update_organization_issue(
    issue_id: UUID,
    patch: schemas.IssueUpdate,
    organization_id: UUID = Depends(get_path_organization_id),
    current_user: models.User = Depends(get_current_user),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    """
    Update an issue (partial).

    Omitted fields are left alone; `description`, `assigneeId` and `dueDate`
    can be cleared with null. Changing `status` or `position` reorders the
    affected columns. Every changed field is recorded in the issue history.
    """
    return _update_issue(db, settings, organization_id, current_user, issue_id, patch)


@router.delete("/organization/{org_id}/{issue_id}", response_model=schemas.MessageResponse)
def delete_organization_issue(
    issue_id: UUID,
    organization_id: UUID = Depends(get_path_organization_id),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    """Delete an issue; the rest of its column moves up to close the gap."""
    return _delete_issue(db, settings, organization_id, issue_id)


@router.get(
    "/organization/{org_id}/{issue_id}/history",
    response_model=schemas.ApiResponse[list[schemas.IssueHistoryResponse]],
)
def get_organization_issue_history(
    issue_id: UUID,
    limit: Optional[int] = Query(None, ge=1, description="Maximum number of entries"),
    organization_id: UUID = Depends(get_path_organization_id),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    """Get an issue's change history, newest first."""
    return _get_history(db, settings, organization_id, issue_id, limit)


# ============================================================================
# Active-organization routes
# ============================================================================

@router.get("", response_model=schemas.IssueListResponse)
def list_issues(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: Optional[int] = Query(None, ge=1, alias="pageSize", description="Items per page"),
    status: Optional[models.IssueStatus] = Query(None, description="Filter by column"),
    priority: Optional[models.IssuePriority] = Query(None, description="Filter by priority"),
    assignee_id: Optional[str] = Query(None, alias="assigneeId", description="Assignee UUID or 'unassigned'"),
    search: Optional[str] = Query(None, description="Search title and description"),
    due_date_from: Optional[datetime] = Query(None, alias="dueDateFrom"),
    due_date_to: Optional[datetime] = Query(None, alias="dueDateTo"),
    organization_id: UUID = Depends(get_current_organization_id),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    """List issues of the active organization."""
    return _list_issues(
        db, settings, organization_id, page, page_size, status, priority,
        assignee_id, search, due_date_from, due_date_to,
    )


@router.post("", response_model=schemas.ApiResponse[schemas.IssueResponse], status_code=201)
def create_issue(
    issue_data: schemas.IssueCreate,
    organization_id: UUID = Depends(get_current_organization_id),
    current_user: models.User = Depends(get_current_user),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    """Create an issue in the active organization."""
    return _create_issue(db, settings, organization_id, current_user, issue_data)


@router.get("/{issue_id}", response_model=schemas.ApiResponse[schemas.IssueResponse])
def get_issue(
    issue_id: UUID,
    organization_id: UUID = Depends(get_current_organization_id),
    db: Session = Depends(get_db),
):
    """Get one issue of the active organization."""
    return _get_issue(db, organization_id, issue_id)


@router.put("/{issue_id}", response_model=schemas.ApiResponse[schemas.IssueResponse])
def update_issue(
    issue_id: UUID,
    patch: schemas.IssueUpdate,
    organization_id: UUID = Depends(get_current_organization_id),
    current_user: models.User = Depends(get_current_user),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    """Update an issue of the active organization (partial)."""
    return _update_issue(db, settings, organization_id, current_user, issue_id, patch)


@router.delete("/{issue_id}", response_model=schemas.MessageResponse)
def delete_issue(
    issue_id: UUID,
    organization_id: UUID = Depends(get_current_organization_id),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    """Delete an issue of the active organization."""
    return _delete_issue(db, settings, organization_id, issue_id)


@router.get("/{issue_id}/history", response_model=schemas.ApiResponse[list[schemas.IssueHistoryResponse]])
def get_issue_history(
    issue_id: UUID,
    limit: Optional[int] = Query(None, ge=1, description="Maximum number of entries"),
    organization_id: UUID = Depends(get_current_organization_id),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    """Get the change history of an issue in the active organization."""
    return _get_history(db, settings, organization_id, issue_id, limit)
