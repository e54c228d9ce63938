"""Position store: column reads, locks and renumbering for board partitions.

A partition (column) is the set of issues sharing one (organization_id,
status) pair. Positions inside a partition are dense: 0..K-1 with no gaps or
duplicates. Every function that writes positions expects to run inside the
caller's transaction, after `lock_board()`; nothing here commits.
"""
import logging
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger("kanban-core.positions")


class DensityViolationError(Exception):
    """Raised when a column's positions are not exactly 0..K-1."""

    def __init__(self, organization_id: UUID, status: models.IssueStatus, positions: list[int]):
        super().__init__(
            f"Column {status.value} of organization {organization_id} is not dense: {positions}"
        )
        self.organization_id = organization_id
        self.status = status
        self.positions = positions


def lock_board(db: Session, organization_id: UUID) -> bool:
    """
    Serialize writers to an organization's board for the current transaction.

    Locks the organization row with SELECT ... FOR UPDATE. On SQLite the
    engine already holds the database write lock (BEGIN IMMEDIATE) and the
    FOR UPDATE clause is not rendered.

    Args:
        db: Database session
        organization_id: Organization UUID

    Returns:
        True if the organization exists, False otherwise
    """
    row = (
        db.query(models.Organization.id)
        .filter(models.Organization.id == organization_id)
        .with_for_update()
        .first()
    )
    return row is not None


def get_column(
    db: Session,
    organization_id: UUID,
    status: models.IssueStatus,
    exclude_issue_id: Optional[UUID] = None,
    lock: bool = True,
) -> list[models.Issue]:
    """
    Load a column's issues in board order.

    Args:
        db: Database session
        organization_id: Organization UUID
        status: Column to load
        exclude_issue_id: Issue to leave out (the one being moved)
        lock: Lock the rows for update (ignored by SQLite)

    Returns:
        Issues ordered by position, oldest first on ties
    """
    query = db.query(models.Issue).filter(
        models.Issue.organization_id == organization_id,
        models.Issue.status == status,
    )
    if exclude_issue_id is not None:
        query = query.filter(models.Issue.id != exclude_issue_id)

    query = query.order_by(
        models.Issue.position.asc(),
        models.Issue.created_at.asc(),
        models.Issue.id.asc(),
    )
    if lock:
        query = query.with_for_update()
    return query.all()


def renumber(issues: Iterable[models.Issue]) -> int:
    """
    Assign positions 0..K-1 to issues in the given order.

    Only rows whose position actually changes are touched, so the flush
    issues the minimum set of UPDATEs.

    Returns:
        Number of issues whose position changed
    """
    changed = 0
    for index, issue in enumerate(issues):
        if issue.position != index:
            issue.position = index
            changed += 1
    return changed


def close_gap(db: Session, organization_id: UUID, status: models.IssueStatus) -> int:
    """Renumber a column after an issue left it, keeping relative order."""
    column = get_column(db, organization_id, status)
    changed = renumber(column)
    if changed:
        logger.debug(f"Closed gap in {status.value} column of {organization_id}: {changed} issue(s) shifted")
    return changed


def column_positions(db: Session, organization_id: UUID, status: models.IssueStatus) -> list[int]:
    """Return a column's positions in ascending order (no locking)."""
    rows = (
        db.query(models.Issue.position)
        .filter(
            models.Issue.organization_id == organization_id,
            models.Issue.status == status,
        )
        .order_by(models.Issue.position.asc())
        .all()
    )
    return [position for (position,) in rows]


def is_dense(positions: Iterable[int]) -> bool:
    """True when the positions are exactly {0, ..., K-1}."""
    ordered = sorted(positions)
    return ordered == list(range(len(ordered)))


def verify_board_density(db: Session, organization_id: UUID) -> None:
    """
    Check every column of a board.

    Raises:
        DensityViolationError: for the first column that is not dense
    """
    for status in models.IssueStatus:
        positions = column_positions(db, organization_id, status)
        if not is_dense(positions):
            raise DensityViolationError(organization_id, status, positions)
