"""MCP tool definitions for Kanban Core."""

from mcp.types import Tool

_ORGANIZATION_ID = {
    "type": "string",
    "description": "UUID of the organization (defaults to the selected organization scope)"
}

_STATUS = {
    "type": "string",
    "enum": ["TODO", "IN_PROGRESS", "DONE"],
    "description": "Board column"
}

_PRIORITY = {
    "type": "string",
    "enum": ["LOW", "MEDIUM", "HIGH"],
    "description": "Issue priority"
}


def get_tools() -> list[Tool]:
    """Get the list of all MCP tools for the issue board."""
    return [
        # ============================================================================
        # Organization Scope Tools
        # ============================================================================
        Tool(
            name="select_organization",
            description="Select the organization whose board the other tools work on. "
                       "Issue tools use it whenever organization_id is omitted. "
                       "Errors: 403 (not a member).",
            inputSchema={
                "type": "object",
                "properties": {
                    "organization_id": {
                        "type": "string",
                        "description": "UUID of the organization to select"
                    }
                },
                "required": ["organization_id"]
            }
        ),
        Tool(
            name="get_organization_scope",
            description="Show the currently selected organization.",
            inputSchema={"type": "object", "properties": {}}
        ),
        Tool(
            name="clear_organization_scope",
            description="Clear the selected organization.",
            inputSchema={"type": "object", "properties": {}}
        ),

        # ============================================================================
        # Issue Tools
        # ============================================================================
        Tool(
            name="get_board",
            description="Show the board: the TODO, IN_PROGRESS and DONE columns with issues in position order.",
            inputSchema={
                "type": "object",
                "properties": {
                    "organization_id": _ORGANIZATION_ID
                }
            }
        ),
        Tool(
            name="list_issues",
            description="List issues with filtering and pagination, ordered by column, then position.",
            inputSchema={
                "type": "object",
                "properties": {
                    "organization_id": _ORGANIZATION_ID,
                    "status": _STATUS,
                    "priority": _PRIORITY,
                    "assignee_id": {
                        "type": "string",
                        "description": "Assignee UUID, or 'unassigned' for issues without one"
                    },
                    "search": {
                        "type": "string",
                        "description": "Case-insensitive search in title and description"
                    },
                    "page": {
                        "type": "integer",
                        "description": "Page number (default: 1)"
                    },
                    "page_size": {
                        "type": "integer",
                        "description": "Items per page (default: 20, max: 100)"
                    }
                }
            }
        ),
        Tool(
            name="get_issue",
            description="Get an issue with all its fields. Errors: 404 (not found in this organization).",
            inputSchema={
                "type": "object",
                "properties": {
                    "issue_id": {"type": "string", "description": "UUID of the issue"},
                    "organization_id": _ORGANIZATION_ID
                },
                "required": ["issue_id"]
            }
        ),
        Tool(
            name="create_issue",
            description="Create an issue. Without a position it goes to the end of its column.",
            inputSchema={
                "type": "object",
                "properties": {
                    "organization_id": _ORGANIZATION_ID,
                    "title": {"type": "string", "description": "Issue title (1-200 characters)"},
                    "description": {"type": "string", "description": "Issue description"},
                    "status": _STATUS,
                    "priority": _PRIORITY,
                    "assignee_id": {"type": "string", "description": "UUID of an organization member"},
                    "tags": {"type": "array", "items": {"type": "string"}, "description": "Tags"},
                    "due_date": {"type": "string", "description": "Due date (ISO-8601)"},
                    "position": {"type": "integer", "description": "Index in the column (0 = top)"}
                },
                "required": ["title"]
            }
        ),
        Tool(
            name="update_issue",
            description="Update issue fields. Only the fields given are changed; pass null to clear "
                       "description, assignee_id or due_date. Every change is recorded in the history.",
            inputSchema={
                "type": "object",
                "properties": {
                    "issue_id": {"type": "string", "description": "UUID of the issue"},
                    "organization_id": _ORGANIZATION_ID,
                    "title": {"type": "string"},
                    "description": {"type": ["string", "null"]},
                    "status": _STATUS,
                    "priority": _PRIORITY,
                    "assignee_id": {"type": ["string", "null"]},
                    "tags": {"type": "array", "items": {"type": "string"}},
                    "due_date": {"type": ["string", "null"]},
                    "position": {"type": "integer"}
                },
                "required": ["issue_id"]
            }
        ),
        Tool(
            name="move_issue",
            description="Move an issue to a column and position. Positions past the end of the column "
                       "append; the other issues in both columns are renumbered.",
            inputSchema={
                "type": "object",
                "properties": {
                    "issue_id": {"type": "string", "description": "UUID of the issue"},
                    "organization_id": _ORGANIZATION_ID,
                    "status": _STATUS,
                    "position": {"type": "integer", "description": "Index in the destination column"}
                },
                "required": ["issue_id", "status", "position"]
            }
        ),
        Tool(
            name="delete_issue",
            description="Delete an issue. The issues below it in its column move up.",
            inputSchema={
                "type": "object",
                "properties": {
                    "issue_id": {"type": "string", "description": "UUID of the issue"},
                    "organization_id": _ORGANIZATION_ID
                },
                "required": ["issue_id"]
            }
        ),
        Tool(
            name="get_issue_history",
            description="Get an issue's change history, newest first.",
            inputSchema={
                "type": "object",
                "properties": {
                    "issue_id": {"type": "string", "description": "UUID of the issue"},
                    "organization_id": _ORGANIZATION_ID,
                    "limit": {"type": "integer", "description": "Maximum entries (default: 50)"}
                },
                "required": ["issue_id"]
            }
        ),
    ]
