"""Pydantic schemas for request/response validation.

Wire format is camelCase (`assigneeId`, `dueDate`); Python code uses the
snake_case field names. Both spellings are accepted on input.
"""
from datetime import datetime, timezone
from typing import Generic, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .models import IssuePriority, IssueStatus

T = TypeVar("T")

# Fields that may be omitted from a patch but never set to null
NON_NULLABLE_PATCH_FIELDS = ("title", "status", "priority", "tags", "position")


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _dedupe_tags(tags: Optional[list[str]]) -> Optional[list[str]]:
    if tags is None:
        return None
    return list(dict.fromkeys(tag.strip() for tag in tags if tag.strip()))


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Issue request schemas

class IssueCreate(CamelModel):
    """Schema for creating a new issue.

    When `position` is omitted the issue is appended to the end of its
    column; otherwise it is inserted at the (clamped) position.
    """

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    status: IssueStatus = IssueStatus.TODO
    priority: IssuePriority = IssuePriority.MEDIUM
    assignee_id: Optional[UUID] = None
    tags: list[str] = Field(default_factory=list)
    due_date: Optional[datetime] = None
    position: Optional[int] = None

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return _dedupe_tags(value)


class IssueUpdate(CamelModel):
    """Partial update for an issue.

    A field left out of the request is untouched. A field sent as null is
    cleared, which is only allowed for `description`, `assigneeId` and
    `dueDate`. Use `is_set()` to tell the two apart.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[IssueStatus] = None
    priority: Optional[IssuePriority] = None
    assignee_id: Optional[UUID] = None
    tags: Optional[list[str]] = None
    due_date: Optional[datetime] = None
    position: Optional[int] = None

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return _dedupe_tags(value)

    @model_validator(mode="after")
    def reject_null_for_required_fields(self):
        for name in NON_NULLABLE_PATCH_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} cannot be null")
        return self

    def is_set(self, field_name: str) -> bool:
        """True when the field was present in the request, even as null."""
        return field_name in self.model_fields_set


# Response schemas

class UserSummary(CamelModel):
    """Reporter/assignee/actor as shown next to an issue."""

    id: UUID
    name: str
    email: str
    avatar: Optional[str] = None


class IssueResponse(CamelModel):
    """Schema for full issue response."""

    id: UUID
    organization_id: UUID
    title: str
    description: Optional[str] = None
    status: IssueStatus
    priority: IssuePriority
    position: int
    tags: list[str] = Field(default_factory=list)
    due_date: Optional[datetime] = None
    reporter_id: UUID
    assignee_id: Optional[UUID] = None
    reporter: Optional[UserSummary] = None
    assignee: Optional[UserSummary] = None
    created_at: datetime
    updated_at: datetime


class IssueHistoryResponse(CamelModel):
    """Schema for issue history entries."""

    id: int
    issue_id: UUID
    actor_id: Optional[UUID] = None
    actor: Optional[UserSummary] = None
    field_changed: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    created_at: datetime


class BoardColumn(CamelModel):
    """One status column of the board, in position order."""

    status: IssueStatus
    issues: list[IssueResponse]


class BoardResponse(CamelModel):
    """All columns of an organization's board."""

    organization_id: UUID
    columns: list[BoardColumn]


# Envelopes

class ApiResponse(CamelModel, Generic[T]):
    """Success envelope: `{success: true, data: ...}`."""

    success: bool = True
    data: T


class IssueListResponse(CamelModel):
    """Paginated issue list envelope."""

    success: bool = True
    data: list[IssueResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class MessageResponse(CamelModel):
    """Envelope for operations that return no data (e.g. delete)."""

    success: bool = True
    message: str


class ErrorResponse(CamelModel):
    """Error envelope: `{success: false, error: ...}`."""

    success: bool = False
    error: str
