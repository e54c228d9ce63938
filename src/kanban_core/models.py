"""SQLAlchemy database models."""
from datetime import datetime, timezone
from uuid import uuid4
import enum

from sqlalchemy import (
    JSON,
    Column,
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    Enum,
    CheckConstraint,
    UniqueConstraint,
    Index,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class IssueStatus(str, enum.Enum):
    """Board column an issue lives in.

    Any status can move to any other; every transition goes through the
    reorder engine so both columns stay dense.
    """

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class IssuePriority(str, enum.Enum):
    """Issue priority enum."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class MemberRole(str, enum.Enum):
    """Organization member role enum."""

    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


# Board column order, used when listing issues across columns
STATUS_SORT_ORDER: dict[IssueStatus, int] = {
    IssueStatus.TODO: 0,
    IssueStatus.IN_PROGRESS: 1,
    IssueStatus.DONE: 2,
}


class Organization(Base):
    """
    Organization model for tenants.

    Each organization owns an isolated board. The row doubles as the lock
    that serializes reorders on that board (see positions.lock_board).
    """

    __tablename__ = "organizations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=False, unique=True, index=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    members = relationship("OrganizationMember", back_populates="organization", cascade="all, delete-orphan")
    issues = relationship("Issue", back_populates="organization", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Organization {self.slug}: {self.name}>"


class User(Base):
    """
    User model.

    Credentials and sessions are handled by the identity service; this table
    only holds what issue responses display.
    """

    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    avatar = Column(String(500), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    memberships = relationship("OrganizationMember", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class OrganizationMember(Base):
    """
    Junction table linking users to organizations with roles.
    """

    __tablename__ = "organization_members"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Enum(MemberRole, name="memberrole"), nullable=False, default=MemberRole.MEMBER)
    joined_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    organization = relationship("Organization", back_populates="members")
    user = relationship("User", back_populates="memberships")

    # Constraints
    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="unique_org_user"),
    )

    def __repr__(self) -> str:
        return f"<OrganizationMember {self.role.value}>"


class Issue(Base):
    """
    Issue model: one card on an organization's board.

    `position` is dense per (organization_id, status): a column holding K
    issues uses exactly the positions 0..K-1. The triple is not unique at the
    database level: a renumbering flush passes through intermediate
    duplicates before the transaction commits.
    """

    __tablename__ = "issues"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Enum(IssueStatus, name="issuestatus"), nullable=False, default=IssueStatus.TODO)
    priority = Column(Enum(IssuePriority, name="issuepriority"), nullable=False, default=IssuePriority.MEDIUM, index=True)
    position = Column(Integer, nullable=False, default=0)
    tags = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list)
    due_date = Column(DateTime, nullable=True, index=True)

    reporter_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    assignee_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    organization = relationship("Organization", back_populates="issues")
    reporter = relationship("User", foreign_keys=[reporter_id])
    assignee = relationship("User", foreign_keys=[assignee_id])
    history = relationship("IssueHistory", back_populates="issue", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("position >= 0", name="non_negative_position"),
        Index("idx_issues_board_column", "organization_id", "status", "position"),
    )

    def __repr__(self) -> str:
        return f"<Issue {self.id}: {self.status.value}@{self.position} {self.title[:30]}>"


class IssueHistory(Base):
    """
    Issue change history for audit trail.

    Append-only: one row per changed field per mutation. `old_value` and
    `new_value` are NULL when the field had (or now has) no value; an empty
    string is a value.
    """

    __tablename__ = "issue_history"

    # Integer key keeps insertion order for entries sharing a timestamp
    id = Column(Integer, primary_key=True, autoincrement=True)
    issue_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("issues.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    actor_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    field_changed = Column(String(50), nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    # Relationships
    issue = relationship("Issue", back_populates="history")
    actor = relationship("User")

    def __repr__(self) -> str:
        return f"<IssueHistory {self.issue_id}: {self.field_changed} at {self.created_at}>"
