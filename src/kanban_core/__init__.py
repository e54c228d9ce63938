"""Kanban Core: multi-tenant issue board with ordered columns and change history."""

__version__ = "1.0.0"
