"""History recorder: per-field audit entries for issue mutations.

One entry per changed field per mutation, written in the mutation's own
transaction. Position is not audited; only status transitions are.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session, joinedload

from . import models, schemas

logger = logging.getLogger("kanban-core.history")

# Issue attribute -> field name stored in history
TRACKED_FIELDS: dict[str, str] = {
    "title": "title",
    "description": "description",
    "status": "status",
    "priority": "priority",
    "assignee_id": "assigneeId",
    "due_date": "dueDate",
}

CREATED_FIELD = "created"


@dataclass(frozen=True)
class FieldChange:
    """A single field difference, values already stringified."""

    field: str
    old_value: Optional[str]
    new_value: Optional[str]


def stringify_value(value: Any) -> Optional[str]:
    """
    Render a field value for the history table.

    None is the only "no value"; empty strings, zero and False are real
    values and keep their text form.
    """
    if value is None:
        return None
    if isinstance(value, enum.Enum):
        return str(value.value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def diff_issue(issue: models.Issue, patch: schemas.IssueUpdate) -> list[FieldChange]:
    """
    Compare a patch with the stored issue.

    Only fields present in the patch are compared. A field explicitly set to
    null counts as a change when the stored value is not null.

    Args:
        issue: Issue as stored before the mutation
        patch: Requested update

    Returns:
        Changes in TRACKED_FIELDS order
    """
    changes = []
    for attribute, field_name in TRACKED_FIELDS.items():
        if not patch.is_set(attribute):
            continue
        old = getattr(issue, attribute)
        new = getattr(patch, attribute)
        if old == new:
            continue
        changes.append(FieldChange(field_name, stringify_value(old), stringify_value(new)))
    return changes


def record_changes(
    db: Session,
    issue_id: UUID,
    actor_id: Optional[UUID],
    changes: list[FieldChange],
) -> list[models.IssueHistory]:
    """
    Add history rows for a mutation to the session.

    All rows share one timestamp. Nothing is committed here; the rows commit
    (or roll back) with the mutation.
    """
    changed_at = models.utcnow()
    entries = [
        models.IssueHistory(
            issue_id=issue_id,
            actor_id=actor_id,
            field_changed=change.field,
            old_value=change.old_value,
            new_value=change.new_value,
            created_at=changed_at,
        )
        for change in changes
    ]
    db.add_all(entries)
    if entries:
        logger.debug(f"Recorded {len(entries)} history entr{'y' if len(entries) == 1 else 'ies'} for issue {issue_id}")
    return entries


def record_creation(db: Session, issue_id: UUID, actor_id: Optional[UUID]) -> models.IssueHistory:
    """Add the history row marking an issue's creation."""
    entry = models.IssueHistory(
        issue_id=issue_id,
        actor_id=actor_id,
        field_changed=CREATED_FIELD,
        old_value=None,
        new_value="Issue created",
    )
    db.add(entry)
    return entry


def get_issue_history(
    db: Session,
    issue_id: UUID,
    limit: int = 50,
) -> list[models.IssueHistory]:
    """
    Get history for an issue, newest first.

    Entries written by the same mutation share a timestamp and come back in
    reverse insertion order.

    Args:
        db: Database session
        issue_id: Issue UUID
        limit: Maximum number of entries to return

    Returns:
        List of IssueHistory entries with their actor loaded
    """
    return (
        db.query(models.IssueHistory)
        .options(joinedload(models.IssueHistory.actor))
        .filter(models.IssueHistory.issue_id == issue_id)
        .order_by(
            models.IssueHistory.created_at.desc(),
            models.IssueHistory.id.desc(),
        )
        .limit(limit)
        .all()
    )
