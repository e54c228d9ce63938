"""API routers for Kanban Core."""

from . import issues

__all__ = ["issues"]
