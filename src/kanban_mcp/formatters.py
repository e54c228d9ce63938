"""Shared formatting functions for MCP responses.

Inputs are the camelCase JSON objects returned by the Kanban Core API.
"""
from typing import Optional

STATUS_LABELS = {
    "TODO": "To Do",
    "IN_PROGRESS": "In Progress",
    "DONE": "Done",
}


def format_user_summary(user: Optional[dict]) -> str:
    """Format a reporter/assignee/actor summary."""
    if not user:
        return "unassigned"
    return f"{user['name']} <{user['email']}>"


def format_issue(issue: dict) -> str:
    """Format an issue for display with all fields."""
    desc_info = f"\nDescription: {issue['description']}" if issue.get('description') else ""
    tags_info = f"\nTags: {', '.join(issue['tags'])}" if issue.get('tags') else ""
    due_info = f"\nDue: {issue['dueDate']}" if issue.get('dueDate') else ""
    status = STATUS_LABELS.get(issue['status'], issue['status'])

    return f"""**{issue['title']}**
ID: {issue['id']}
Status: {status} (position {issue['position']})
Priority: {issue['priority']}
Reporter: {format_user_summary(issue.get('reporter'))}
Assignee: {format_user_summary(issue.get('assignee'))}{desc_info}{tags_info}{due_info}
Created: {issue['createdAt']}
Updated: {issue['updatedAt']}"""


def format_issue_summary(issue: dict) -> str:
    """Format an issue as a single line for lists."""
    assignee = issue.get('assignee')
    assignee_info = f" @{assignee['name']}" if assignee else ""
    return f"- [{issue['status']} #{issue['position']}] {issue['title']} ({issue['priority']}){assignee_info} - {issue['id']}"


def format_history_entry(entry: dict) -> str:
    """Format one history entry."""
    actor = entry.get('actor')
    actor_name = actor['name'] if actor else "unknown"
    if entry['fieldChanged'] == "created":
        return f"- {entry['createdAt']} {actor_name}: created the issue"

    old_value = entry['oldValue'] if entry.get('oldValue') is not None else "(none)"
    new_value = entry['newValue'] if entry.get('newValue') is not None else "(none)"
    return f"- {entry['createdAt']} {actor_name}: {entry['fieldChanged']} {old_value} -> {new_value}"


def format_board(board: dict) -> str:
    """Format the board as one section per column."""
    sections = []
    for column in board['columns']:
        label = STATUS_LABELS.get(column['status'], column['status'])
        issues = column['issues']
        if issues:
            lines = "\n".join(f"  {issue['position']}. {issue['title']} ({issue['priority']}) - {issue['id']}" for issue in issues)
        else:
            lines = "  (empty)"
        sections.append(f"## {label} ({len(issues)})\n{lines}")
    return "\n\n".join(sections)
