"""MCP tool handlers.

All handlers follow the same pattern:
- Accept: arguments dict, httpx.AsyncClient, and optional current_scope
- Return: tuple of (list[TextContent], Optional[dict]) where the second
  element is the organization scope after the call

The client is expected to carry the caller's `X-User-Id` header. HTTP errors
are raised with `raise_for_status()` and reported by the server.
"""
from typing import Optional
import logging

import httpx
from mcp.types import TextContent

from . import formatters

logger = logging.getLogger("kanban-mcp.handlers")

# Tool argument -> API field name
_API_FIELD_NAMES = {
    "assignee_id": "assigneeId",
    "due_date": "dueDate",
    "page_size": "pageSize",
}

# Tools that fall back to the selected organization
SCOPED_TOOLS = {
    "get_board",
    "list_issues",
    "get_issue",
    "create_issue",
    "update_issue",
    "move_issue",
    "delete_issue",
    "get_issue_history",
}


def _to_api_fields(arguments: dict) -> dict:
    return {_API_FIELD_NAMES.get(key, key): value for key, value in arguments.items()}


def _organization_path(arguments: dict) -> str:
    organization_id = arguments.pop("organization_id", None)
    if not organization_id:
        raise ValueError("organization_id is required: pass it or call select_organization first")
    return f"/issues/organization/{organization_id}"


# ============================================================================
# Organization Scope Handlers
# ============================================================================

async def handle_select_organization(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Handle select_organization tool call.

    Loads the organization's board, which also checks the caller is a member.

    Returns:
        Tuple of (response content, new organization scope)
    """
    organization_id = arguments["organization_id"]
    response = await client.get(f"/issues/organization/{organization_id}/board")
    response.raise_for_status()
    board = response.json()["data"]

    new_scope = {"organization_id": board["organizationId"]}
    counts = ", ".join(f"{column['status']}: {len(column['issues'])}" for column in board["columns"])
    logger.info(f"Set organization scope to {organization_id}")

    content = [TextContent(
        type="text",
        text=f"Organization scope set to {organization_id}\n"
             f"Issues per column: {counts}\n\n"
             f"Issue tools will use this organization unless you pass organization_id."
    )]
    return content, new_scope


async def handle_get_organization_scope(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Handle get_organization_scope tool call."""
    if current_scope is None:
        text = "No organization is selected.\n\nUse select_organization(organization_id='...') to pick one."
    else:
        text = f"Current organization: {current_scope['organization_id']}"
    return [TextContent(type="text", text=text)], current_scope


async def handle_clear_organization_scope(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Handle clear_organization_scope tool call."""
    if current_scope is None:
        logger.info("Cleared organization scope (was already unset)")
        text = "Organization scope cleared (no scope was set)."
    else:
        logger.info(f"Cleared organization scope (was: {current_scope['organization_id']})")
        text = f"Organization scope cleared.\n\nPrevious scope: {current_scope['organization_id']}"
    return [TextContent(type="text", text=text)], None


async def apply_organization_scope_defaults(
    tool_name: str,
    arguments: dict,
    current_scope: Optional[dict] = None
) -> dict:
    """Fill in organization_id from the selected scope for issue tools.

    Args:
        tool_name: Name of the tool being called
        arguments: Tool arguments (may be modified)
        current_scope: Current organization scope

    Returns:
        Arguments with organization_id defaulted if applicable
    """
    if tool_name not in SCOPED_TOOLS or current_scope is None:
        return arguments
    if not arguments.get("organization_id"):
        arguments["organization_id"] = current_scope["organization_id"]
    return arguments


# ============================================================================
# Issue Handlers
# ============================================================================

async def handle_get_board(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Show all board columns."""
    base_path = _organization_path(arguments)
    response = await client.get(f"{base_path}/board")
    response.raise_for_status()
    board = response.json()["data"]
    logger.info(f"Retrieved board for organization {board['organizationId']}")

    return [TextContent(type="text", text=formatters.format_board(board))], current_scope


async def handle_list_issues(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """List issues with filtering and pagination."""
    base_path = _organization_path(arguments)
    params = _to_api_fields({k: v for k, v in arguments.items() if v is not None})
    response = await client.get(base_path, params=params)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully listed {result['total']} issues")

    if result['total'] == 0:
        return [TextContent(type="text", text="No issues found matching criteria.")], current_scope

    items_text = "\n".join(formatters.format_issue_summary(issue) for issue in result['data'])
    summary = f"Found {result['total']} issues (page {result['page']} of {result['totalPages']})\n\n{items_text}"
    return [TextContent(type="text", text=summary)], current_scope


async def handle_get_issue(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Get an issue by UUID."""
    base_path = _organization_path(arguments)
    issue_id = arguments["issue_id"]
    response = await client.get(f"{base_path}/{issue_id}")
    response.raise_for_status()
    issue = response.json()["data"]
    logger.info(f"Successfully retrieved issue {issue_id}: {issue['title']}")

    return [TextContent(type="text", text=formatters.format_issue(issue))], current_scope


async def handle_create_issue(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Create a new issue."""
    base_path = _organization_path(arguments)
    response = await client.post(base_path, json=_to_api_fields(arguments))
    response.raise_for_status()
    issue = response.json()["data"]
    logger.info(f"Successfully created issue {issue['id']}")

    text = f"Created issue in {issue['status']} at position {issue['position']}\n\n{formatters.format_issue(issue)}"
    return [TextContent(type="text", text=text)], current_scope


async def handle_update_issue(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Update an issue; only the given fields change."""
    base_path = _organization_path(arguments)
    issue_id = arguments.pop("issue_id")
    response = await client.put(f"{base_path}/{issue_id}", json=_to_api_fields(arguments))
    response.raise_for_status()
    issue = response.json()["data"]
    logger.info(f"Successfully updated issue {issue_id}")

    return [TextContent(type="text", text=f"Updated issue\n\n{formatters.format_issue(issue)}")], current_scope


async def handle_move_issue(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Move an issue to (status, position)."""
    base_path = _organization_path(arguments)
    issue_id = arguments["issue_id"]
    body = {"status": arguments["status"], "position": arguments["position"]}
    response = await client.put(f"{base_path}/{issue_id}", json=body)
    response.raise_for_status()
    issue = response.json()["data"]
    logger.info(f"Moved issue {issue_id} to {issue['status']}@{issue['position']}")

    text = f"Moved '{issue['title']}' to {issue['status']} at position {issue['position']}"
    return [TextContent(type="text", text=text)], current_scope


async def handle_delete_issue(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Delete an issue."""
    base_path = _organization_path(arguments)
    issue_id = arguments["issue_id"]
    response = await client.delete(f"{base_path}/{issue_id}")
    response.raise_for_status()
    logger.info(f"Deleted issue {issue_id}")

    return [TextContent(type="text", text=f"Deleted issue {issue_id}")], current_scope


async def handle_get_issue_history(
    arguments: dict,
    client: httpx.AsyncClient,
    current_scope: Optional[dict] = None
) -> tuple[list[TextContent], Optional[dict]]:
    """Get change history for an issue, newest first."""
    base_path = _organization_path(arguments)
    issue_id = arguments["issue_id"]
    params = {"limit": arguments["limit"]} if arguments.get("limit") else None
    response = await client.get(f"{base_path}/{issue_id}/history", params=params)
    response.raise_for_status()
    entries = response.json()["data"]
    logger.info(f"Retrieved {len(entries)} history entries for issue {issue_id}")

    if not entries:
        return [TextContent(type="text", text="No history recorded for this issue.")], current_scope

    lines = "\n".join(formatters.format_history_entry(entry) for entry in entries)
    return [TextContent(type="text", text=f"History ({len(entries)} entries, newest first)\n\n{lines}")], current_scope


HANDLERS = {
    "select_organization": handle_select_organization,
    "get_organization_scope": handle_get_organization_scope,
    "clear_organization_scope": handle_clear_organization_scope,
    "get_board": handle_get_board,
    "list_issues": handle_list_issues,
    "get_issue": handle_get_issue,
    "create_issue": handle_create_issue,
    "update_issue": handle_update_issue,
    "move_issue": handle_move_issue,
    "delete_issue": handle_delete_issue,
    "get_issue_history": handle_get_issue_history,
}
