"""Domain errors raised by the issue services.

Routers translate these into HTTP responses:
IssueNotFoundError -> 404, IssueValidationError -> 400,
ConcurrencyConflictError -> 409.
"""
from typing import Optional
from uuid import UUID


class IssueNotFoundError(Exception):
    """Raised when an issue does not exist in the caller's organization.

    The message is the same whether the id is unknown or belongs to another
    organization, so existence never leaks across tenants.
    """

    def __init__(self, issue_id: UUID):
        super().__init__("Issue not found")
        self.issue_id = issue_id


class IssueValidationError(ValueError):
    """Raised when a request breaks a business rule (e.g. assignee not a member)."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConcurrencyConflictError(Exception):
    """Raised when a board transaction keeps failing under concurrent writers."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts
