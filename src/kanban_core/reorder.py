"""Reorder engine for drag-and-drop moves between and within board columns.

A move takes an issue from (old_status, old_position) to (new_status,
requested_position). The requested position is clamped to
[0, size of destination column without the mover], so any position past the
end appends. Planning is pure (`plan_move`); `apply_move` and `insert_issue`
load the affected columns inside the caller's transaction, apply the plan to
the ORM rows and flush, so the renumbering of every affected column and the
moved row commit together or not at all.

Same column:      [A0 B1 C2], move C to 0       -> [C0 A1 B2]
Across columns:   TODO [A0 B1 C2], DONE [D0]; move B to DONE 0
                  -> TODO [A0 C1], DONE [B0 D1]
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from . import models, positions

logger = logging.getLogger("kanban-core.reorder")


@dataclass(frozen=True)
class ColumnSlot:
    """An issue's id and current position within a column snapshot."""

    issue_id: UUID
    position: int


@dataclass(frozen=True)
class MovePlan:
    """
    Result of planning a move.

    Attributes:
        issue_id: The moved issue
        from_status: Column the issue leaves (None for a new issue)
        from_position: Position it leaves (None for a new issue)
        to_status: Destination column
        to_position: Clamped destination position
        updates: New positions of the other issues whose position changes
    """

    issue_id: UUID
    from_status: Optional[models.IssueStatus]
    from_position: Optional[int]
    to_status: models.IssueStatus
    to_position: int
    updates: dict[UUID, int] = field(default_factory=dict)

    @property
    def is_noop(self) -> bool:
        return self.from_status == self.to_status and self.from_position == self.to_position

    @property
    def status_changed(self) -> bool:
        return self.from_status is not None and self.from_status != self.to_status


def clamp_position(requested: int, column_size: int) -> int:
    """Bound a requested position to [0, column_size]."""
    return max(0, min(requested, column_size))


def plan_move(
    issue_id: UUID,
    from_status: Optional[models.IssueStatus],
    from_position: Optional[int],
    to_status: models.IssueStatus,
    requested_position: int,
    destination: Sequence[ColumnSlot],
    source: Sequence[ColumnSlot] = (),
) -> MovePlan:
    """
    Compute the renumbering for a move.

    Args:
        issue_id: Issue being moved (or inserted)
        from_status: Its current column, None when the issue is new
        from_position: Its current position, None when the issue is new
        to_status: Destination column
        requested_position: Requested index in the destination column
        destination: Destination column in board order, without the mover
        source: Source column in board order, without the mover (only read
            when the status changes)

    Returns:
        MovePlan with the clamped position and every other issue's new
        position where it differs from the current one
    """
    target = clamp_position(requested_position, len(destination))
    plan_args = dict(
        issue_id=issue_id,
        from_status=from_status,
        from_position=from_position,
        to_status=to_status,
        to_position=target,
    )

    if from_status == to_status and from_position == target:
        return MovePlan(**plan_args)

    updates: dict[UUID, int] = {}

    if from_status is not None and from_status != to_status:
        # Close the gap left in the source column
        for index, slot in enumerate(source):
            if slot.position != index:
                updates[slot.issue_id] = index

    # Everything before the insertion point keeps its index, the rest shift by one
    for index, slot in enumerate(destination):
        new_position = index if index < target else index + 1
        if slot.position != new_position:
            updates[slot.issue_id] = new_position

    return MovePlan(updates=updates, **plan_args)


def _snapshot(column: Sequence[models.Issue]) -> list[ColumnSlot]:
    return [ColumnSlot(issue_id=issue.id, position=issue.position) for issue in column]


def _apply_plan(plan: MovePlan, rows: Sequence[models.Issue]) -> None:
    by_id = {row.id: row for row in rows}
    for issue_id, new_position in plan.updates.items():
        by_id[issue_id].position = new_position


def apply_move(
    db: Session,
    issue: models.Issue,
    new_status: models.IssueStatus,
    requested_position: int,
) -> MovePlan:
    """
    Move an existing issue and renumber the affected columns.

    Must run inside a transaction that already holds the board lock
    (`positions.lock_board`). Nothing is committed here.

    Args:
        db: Database session
        issue: Issue to move, loaded in this session
        new_status: Destination column
        requested_position: Requested index in the destination column

    Returns:
        The applied MovePlan (a no-op plan leaves every row untouched)
    """
    old_status = issue.status
    destination = positions.get_column(db, issue.organization_id, new_status, exclude_issue_id=issue.id)
    source: list[models.Issue] = []
    if new_status != old_status:
        source = positions.get_column(db, issue.organization_id, old_status, exclude_issue_id=issue.id)

    plan = plan_move(
        issue_id=issue.id,
        from_status=old_status,
        from_position=issue.position,
        to_status=new_status,
        requested_position=requested_position,
        destination=_snapshot(destination),
        source=_snapshot(source),
    )

    if plan.is_noop:
        logger.debug(f"No-op move for issue {issue.id}: already at {new_status.value}@{plan.to_position}")
        return plan

    _apply_plan(plan, destination + source)
    issue.status = new_status
    issue.position = plan.to_position
    db.flush()

    logger.debug(
        f"Moved issue {issue.id}: {old_status.value}@{plan.from_position} -> "
        f"{new_status.value}@{plan.to_position} ({len(plan.updates)} other issue(s) renumbered)"
    )
    return plan


def insert_issue(
    db: Session,
    issue: models.Issue,
    requested_position: Optional[int] = None,
) -> MovePlan:
    """
    Place a new (pending) issue into its status column.

    Appends when `requested_position` is None. The issue must have its id,
    organization_id and status set; it is added to the session here.

    Returns:
        The applied MovePlan
    """
    destination = positions.get_column(db, issue.organization_id, issue.status)
    if requested_position is None:
        requested_position = len(destination)

    plan = plan_move(
        issue_id=issue.id,
        from_status=None,
        from_position=None,
        to_status=issue.status,
        requested_position=requested_position,
        destination=_snapshot(destination),
    )

    _apply_plan(plan, destination)
    issue.position = plan.to_position
    db.add(issue)
    db.flush()
    return plan
