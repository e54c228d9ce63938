"""CRUD operations for issues.

Every write runs as one transaction: board lock, reads, reorder, field
updates and history rows commit together. Transactions that fail with a
serialization failure, deadlock or lock timeout are retried up to
`settings.max_transaction_retries` times, then reported as a conflict.
"""
import logging
from datetime import datetime
from typing import Callable, Optional, TypeVar, Union
from uuid import UUID, uuid4

from sqlalchemy import case, or_
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, joinedload

from . import history, models, positions, reorder, schemas
from .config import get_settings
from .database import is_retryable_error
from .errors import ConcurrencyConflictError, IssueNotFoundError, IssueValidationError

logger = logging.getLogger("kanban-core.crud")

T = TypeVar("T")

UNASSIGNED = "unassigned"

# Patch attributes copied onto the row as-is (status/position go through reorder)
_PLAIN_FIELDS = ("title", "description", "priority", "tags", "due_date", "assignee_id")


def _status_sort_expression():
    """Build SQLAlchemy CASE expression ordering issues by board column."""
    return case(
        *[(models.Issue.status == status, order)
          for status, order in models.STATUS_SORT_ORDER.items()],
        else_=99
    )


def _run_in_transaction(
    db: Session,
    work: Callable[[], T],
    action: str,
    max_retries: Optional[int] = None,
) -> T:
    """
    Run `work` and commit, retrying transient concurrency failures.

    Any transaction already open on the session (request dependencies read
    the caller and membership first) is rolled back before each attempt, so
    the lock is taken by `work` itself. `work` must load everything it needs:
    after a rollback every object in the session is expired.

    Args:
        db: Database session
        work: Callable doing the reads and writes of one attempt
        action: Short description used in logs and the conflict message
        max_retries: Extra attempts after a concurrency failure
            (defaults to settings.max_transaction_retries)

    Raises:
        ConcurrencyConflictError: when every attempt hit a concurrency failure
    """
    if max_retries is None:
        max_retries = get_settings().max_transaction_retries
    attempts = max_retries + 1
    last_error = None
    for attempt in range(1, attempts + 1):
        db.rollback()
        try:
            result = work()
            db.commit()
            return result
        except DBAPIError as e:
            db.rollback()
            if not is_retryable_error(e):
                raise
            last_error = e
            logger.warning(f"Concurrency failure during {action} (attempt {attempt}/{attempts}): {e.orig}")
        except Exception:
            db.rollback()
            raise

    logger.error(f"Giving up on {action} after {attempts} attempt(s)")
    raise ConcurrencyConflictError(
        f"Could not {action}: the board was modified concurrently, please retry",
        attempts=attempts,
    ) from last_error


# ============================================================================
# Membership
# ============================================================================

def verify_org_membership(
    db: Session,
    user_id: UUID,
    organization_id: UUID,
) -> Optional[models.OrganizationMember]:
    """
    Get a user's membership in an organization.

    Args:
        db: Database session
        user_id: User UUID
        organization_id: Organization UUID

    Returns:
        OrganizationMember or None if the user is not a member
    """
    return (
        db.query(models.OrganizationMember)
        .filter(
            models.OrganizationMember.user_id == user_id,
            models.OrganizationMember.organization_id == organization_id,
        )
        .first()
    )


def _require_assignee_membership(db: Session, assignee_id: Optional[UUID], organization_id: UUID) -> None:
    if assignee_id is None:
        return
    if not verify_org_membership(db, assignee_id, organization_id):
        logger.warning(f"Rejected assignee {assignee_id}: not a member of organization {organization_id}")
        raise IssueValidationError("assignee not a member", field="assigneeId")


# ============================================================================
# Issue reads
# ============================================================================

def get_issue(db: Session, issue_id: UUID, organization_id: UUID) -> Optional[models.Issue]:
    """
    Get an issue scoped to an organization.

    Returns None both when the id is unknown and when it belongs to another
    organization.
    """
    return (
        db.query(models.Issue)
        .options(joinedload(models.Issue.reporter), joinedload(models.Issue.assignee))
        .filter(
            models.Issue.id == issue_id,
            models.Issue.organization_id == organization_id,
        )
        .first()
    )


def _get_issue_or_raise(db: Session, issue_id: UUID, organization_id: UUID) -> models.Issue:
    issue = get_issue(db, issue_id, organization_id)
    if not issue:
        raise IssueNotFoundError(issue_id)
    return issue


def get_issues(
    db: Session,
    organization_id: UUID,
    skip: int = 0,
    limit: int = 20,
    status: Optional[models.IssueStatus] = None,
    priority: Optional[models.IssuePriority] = None,
    assignee_id: Optional[Union[UUID, str]] = None,
    search: Optional[str] = None,
    due_date_from: Optional[datetime] = None,
    due_date_to: Optional[datetime] = None,
) -> tuple[list[models.Issue], int]:
    """
    Get issues with filtering and pagination.

    Args:
        db: Database session
        organization_id: Organization to list
        skip: Number of items to skip
        limit: Maximum number of items to return
        status: Filter by column
        priority: Filter by priority
        assignee_id: Filter by assignee; "unassigned" selects issues without one
        search: Case-insensitive match on title or description
        due_date_from: Due on or after
        due_date_to: Due on or before

    Returns:
        Tuple of (issues, total_count), ordered by column, position, newest first
    """
    query = db.query(models.Issue).filter(models.Issue.organization_id == organization_id)

    if status:
        query = query.filter(models.Issue.status == status)

    if priority:
        query = query.filter(models.Issue.priority == priority)

    if assignee_id == UNASSIGNED:
        query = query.filter(models.Issue.assignee_id.is_(None))
    elif assignee_id:
        query = query.filter(models.Issue.assignee_id == assignee_id)

    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                models.Issue.title.ilike(pattern),
                models.Issue.description.ilike(pattern),
            )
        )

    if due_date_from:
        query = query.filter(models.Issue.due_date >= due_date_from)
    if due_date_to:
        query = query.filter(models.Issue.due_date <= due_date_to)

    total = query.count()

    issues = (
        query.options(joinedload(models.Issue.reporter), joinedload(models.Issue.assignee))
        .order_by(
            _status_sort_expression(),
            models.Issue.position.asc(),
            models.Issue.created_at.desc(),
        )
        .offset(skip)
        .limit(limit)
        .all()
    )
    return issues, total


def get_board(db: Session, organization_id: UUID) -> dict[models.IssueStatus, list[models.Issue]]:
    """
    Get every column of an organization's board in position order.

    Returns:
        Mapping of status -> issues, with all three statuses present
    """
    issues = (
        db.query(models.Issue)
        .options(joinedload(models.Issue.reporter), joinedload(models.Issue.assignee))
        .filter(models.Issue.organization_id == organization_id)
        .order_by(models.Issue.position.asc(), models.Issue.created_at.asc())
        .all()
    )
    board: dict[models.IssueStatus, list[models.Issue]] = {status: [] for status in models.IssueStatus}
    for issue in issues:
        board[issue.status].append(issue)
    return board


def get_issue_history(
    db: Session,
    issue_id: UUID,
    organization_id: UUID,
    limit: int = 50,
) -> list[models.IssueHistory]:
    """
    Get history for an issue scoped to an organization, newest first.

    Raises:
        IssueNotFoundError: if the issue is not in the organization
    """
    _get_issue_or_raise(db, issue_id, organization_id)
    return history.get_issue_history(db, issue_id, limit)


# ============================================================================
# Issue writes
# ============================================================================

def create_issue(
    db: Session,
    organization_id: UUID,
    reporter_id: UUID,
    issue_data: schemas.IssueCreate,
    max_retries: Optional[int] = None,
) -> models.Issue:
    """
    Create an issue and place it in its column.

    Without a position the issue is appended; with one it is inserted at the
    clamped position and the column is renumbered.

    Args:
        db: Database session
        organization_id: Owning organization
        reporter_id: User creating the issue
        issue_data: Creation data
        max_retries: Extra attempts after a concurrency failure

    Returns:
        Created Issue with reporter/assignee loaded

    Raises:
        IssueValidationError: if the assignee is not a member of the organization
    """
    def work() -> models.Issue:
        positions.lock_board(db, organization_id)
        _require_assignee_membership(db, issue_data.assignee_id, organization_id)

        issue = models.Issue(
            id=uuid4(),
            organization_id=organization_id,
            title=issue_data.title,
            description=issue_data.description,
            status=issue_data.status,
            priority=issue_data.priority,
            tags=issue_data.tags,
            due_date=issue_data.due_date,
            reporter_id=reporter_id,
            assignee_id=issue_data.assignee_id,
        )
        reorder.insert_issue(db, issue, issue_data.position)
        history.record_creation(db, issue.id, reporter_id)
        db.flush()
        return issue

    issue = _run_in_transaction(db, work, "create issue", max_retries)
    db.refresh(issue, ["reporter", "assignee"])
    logger.info(f"Created issue {issue.id} in {issue.status.value}@{issue.position}: {issue.title}")
    return issue


def update_issue(
    db: Session,
    issue_id: UUID,
    organization_id: UUID,
    actor_id: UUID,
    patch: schemas.IssueUpdate,
    max_retries: Optional[int] = None,
) -> models.Issue:
    """
    Apply a partial update to an issue.

    Status and position changes go through the reorder engine. Every changed
    tracked field gets one history entry, diffed against the stored row
    before the move. Reorder, field updates and history commit together.

    Args:
        db: Database session
        issue_id: Issue UUID
        organization_id: Caller's organization (tenant scope)
        actor_id: User making the change
        patch: Fields to change
        max_retries: Extra attempts after a concurrency failure

    Returns:
        Updated Issue with reporter/assignee loaded

    Raises:
        IssueNotFoundError: if the issue is not in the organization
        IssueValidationError: if the new assignee is not a member
        ConcurrencyConflictError: if the board stayed contended after retries
    """
    def work() -> models.Issue:
        positions.lock_board(db, organization_id)
        issue = _get_issue_or_raise(db, issue_id, organization_id)

        if patch.is_set("assignee_id"):
            _require_assignee_membership(db, patch.assignee_id, organization_id)

        changes = history.diff_issue(issue, patch)

        status_changed = patch.status is not None and patch.status != issue.status
        position_changed = patch.is_set("position") and patch.position != issue.position
        if status_changed or position_changed:
            reorder.apply_move(
                db,
                issue,
                new_status=patch.status or issue.status,
                requested_position=patch.position if patch.is_set("position") else issue.position,
            )

        for field_name in _PLAIN_FIELDS:
            if patch.is_set(field_name):
                setattr(issue, field_name, getattr(patch, field_name))

        history.record_changes(db, issue.id, actor_id, changes)
        db.flush()
        return issue

    issue = _run_in_transaction(db, work, "update issue", max_retries)
    db.refresh(issue, ["reporter", "assignee"])
    logger.info(f"Updated issue {issue.id} ({issue.status.value}@{issue.position})")
    return issue


def move_issue(
    db: Session,
    issue_id: UUID,
    organization_id: UUID,
    actor_id: UUID,
    status: models.IssueStatus,
    position: int,
    max_retries: Optional[int] = None,
) -> models.Issue:
    """Move an issue to (status, position); shorthand for a status+position update."""
    patch = schemas.IssueUpdate(status=status, position=position)
    return update_issue(db, issue_id, organization_id, actor_id, patch, max_retries)


def delete_issue(
    db: Session,
    issue_id: UUID,
    organization_id: UUID,
    max_retries: Optional[int] = None,
) -> None:
    """
    Delete an issue and close the gap it leaves in its column.

    Raises:
        IssueNotFoundError: if the issue is not in the organization
    """
    def work() -> models.IssueStatus:
        positions.lock_board(db, organization_id)
        issue = _get_issue_or_raise(db, issue_id, organization_id)
        status = issue.status
        db.delete(issue)
        db.flush()
        positions.close_gap(db, organization_id, status)
        db.flush()
        return status

    status = _run_in_transaction(db, work, "delete issue", max_retries)
    logger.info(f"Deleted issue {issue_id} from {status.value} column of {organization_id}")
