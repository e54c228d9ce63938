"""Tests for the MCP tool handlers."""
import asyncio
import json

import httpx
import pytest

from kanban_mcp import formatters, handlers, server, tools

from conftest import auth_headers, make_column

ORG_ID = "5f0c9a53-1f7e-4a59-9d53-0d1f6f1c2a10"
ISSUE_ID = "c1b8e0f4-9d2a-4c1e-8a57-2f3e4d5c6b7a"


def issue_payload(**overrides) -> dict:
    payload = {
        "id": ISSUE_ID,
        "organizationId": ORG_ID,
        "title": "Fix login",
        "description": None,
        "status": "TODO",
        "priority": "HIGH",
        "position": 0,
        "tags": ["auth"],
        "dueDate": None,
        "reporterId": "0b7e7f6a-3c1d-4e2f-9a8b-7c6d5e4f3a2b",
        "assigneeId": None,
        "reporter": {"id": "0b7e7f6a-3c1d-4e2f-9a8b-7c6d5e4f3a2b", "name": "Alice", "email": "alice@example.com", "avatar": None},
        "assignee": None,
        "createdAt": "2026-10-01T10:00:00",
        "updatedAt": "2026-10-01T10:00:00",
    }
    payload.update(overrides)
    return payload


def run_handler(handler, arguments, responder, scope=None):
    """Run a handler against a mock transport; returns (content, scope, requests)."""
    requests = []

    def transport_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return responder(request)

    async def call():
        transport = httpx.MockTransport(transport_handler)
        async with httpx.AsyncClient(transport=transport, base_url="http://kanban.test") as client:
            return await handler(arguments, client, scope)

    content, new_scope = asyncio.run(call())
    return content, new_scope, requests


class TestTools:
    """Test tool definitions."""

    def test_every_tool_has_a_handler(self):
        names = {tool.name for tool in tools.get_tools()}
        assert names == set(handlers.HANDLERS)

    def test_issue_tools_are_scoped(self):
        assert handlers.SCOPED_TOOLS <= set(handlers.HANDLERS)
        assert "select_organization" not in handlers.SCOPED_TOOLS


class TestScope:
    """Test organization scope handling."""

    def test_defaults_organization_from_scope(self):
        arguments = asyncio.run(handlers.apply_organization_scope_defaults(
            "list_issues", {"status": "TODO"}, {"organization_id": ORG_ID}
        ))
        assert arguments == {"status": "TODO", "organization_id": ORG_ID}

    def test_explicit_organization_wins(self):
        arguments = asyncio.run(handlers.apply_organization_scope_defaults(
            "get_issue", {"issue_id": ISSUE_ID, "organization_id": "other"}, {"organization_id": ORG_ID}
        ))
        assert arguments["organization_id"] == "other"

    def test_missing_organization_raises(self):
        with pytest.raises(ValueError, match="organization_id is required"):
            run_handler(handlers.handle_get_issue, {"issue_id": ISSUE_ID}, lambda request: httpx.Response(200))

    def test_select_organization(self):
        board = {"organizationId": ORG_ID, "columns": [
            {"status": "TODO", "issues": [issue_payload()]},
            {"status": "IN_PROGRESS", "issues": []},
            {"status": "DONE", "issues": []},
        ]}
        content, scope, requests = run_handler(
            handlers.handle_select_organization,
            {"organization_id": ORG_ID},
            lambda request: httpx.Response(200, json={"success": True, "data": board}),
        )

        assert scope == {"organization_id": ORG_ID}
        assert requests[0].url.path == f"/issues/organization/{ORG_ID}/board"
        assert "TODO: 1" in content[0].text

    def test_clear_scope(self):
        content, scope, requests = run_handler(
            handlers.handle_clear_organization_scope, {}, lambda request: httpx.Response(500),
            scope={"organization_id": ORG_ID},
        )
        assert scope is None
        assert requests == []
        assert ORG_ID in content[0].text


class TestIssueHandlers:
    """Test issue handlers against a mocked API."""

    def test_list_issues_maps_query_params(self):
        body = {"success": True, "data": [issue_payload()], "total": 1, "page": 1, "pageSize": 20, "totalPages": 1}
        content, _, requests = run_handler(
            handlers.handle_list_issues,
            {"organization_id": ORG_ID, "assignee_id": "unassigned", "page_size": 20, "search": None},
            lambda request: httpx.Response(200, json=body),
        )

        request = requests[0]
        assert request.url.path == f"/issues/organization/{ORG_ID}"
        assert request.url.params["assigneeId"] == "unassigned"
        assert request.url.params["pageSize"] == "20"
        assert "search" not in request.url.params
        assert "Found 1 issues" in content[0].text
        assert "Fix login" in content[0].text

    def test_update_issue_sends_camel_case_body(self):
        content, _, requests = run_handler(
            handlers.handle_update_issue,
            {"organization_id": ORG_ID, "issue_id": ISSUE_ID, "assignee_id": None, "due_date": "2026-11-01"},
            lambda request: httpx.Response(200, json={"success": True, "data": issue_payload()}),
        )

        request = requests[0]
        assert request.method == "PUT"
        assert request.url.path == f"/issues/organization/{ORG_ID}/{ISSUE_ID}"
        assert json.loads(request.content) == {"assigneeId": None, "dueDate": "2026-11-01"}
        assert "Updated issue" in content[0].text

    def test_move_issue(self):
        content, _, requests = run_handler(
            handlers.handle_move_issue,
            {"organization_id": ORG_ID, "issue_id": ISSUE_ID, "status": "DONE", "position": 2},
            lambda request: httpx.Response(200, json={"success": True, "data": issue_payload(status="DONE", position=1)}),
        )

        assert json.loads(requests[0].content) == {"status": "DONE", "position": 2}
        assert content[0].text == "Moved 'Fix login' to DONE at position 1"

    def test_history_formatting(self):
        entries = [
            {"id": 2, "issueId": ISSUE_ID, "actorId": None, "actor": {"id": "x", "name": "Bob", "email": "b@x", "avatar": None},
             "fieldChanged": "description", "oldValue": "old", "newValue": None, "createdAt": "2026-10-02T10:00:00"},
            {"id": 1, "issueId": ISSUE_ID, "actorId": None, "actor": None,
             "fieldChanged": "created", "oldValue": None, "newValue": "Issue created", "createdAt": "2026-10-01T10:00:00"},
        ]
        content, _, requests = run_handler(
            handlers.handle_get_issue_history,
            {"organization_id": ORG_ID, "issue_id": ISSUE_ID, "limit": 10},
            lambda request: httpx.Response(200, json={"success": True, "data": entries}),
        )

        assert requests[0].url.params["limit"] == "10"
        text = content[0].text
        assert "Bob: description old -> (none)" in text
        assert "unknown: created the issue" in text

    def test_http_errors_propagate(self):
        with pytest.raises(httpx.HTTPStatusError):
            run_handler(
                handlers.handle_get_issue,
                {"organization_id": ORG_ID, "issue_id": ISSUE_ID},
                lambda request: httpx.Response(404, json={"success": False, "error": "Issue not found"}),
            )

    def test_error_detail_reads_envelope(self):
        response = httpx.Response(409, json={"success": False, "error": "board busy"})
        assert server.error_detail(response) == "board busy"
        assert server.error_detail(httpx.Response(502, text="Bad Gateway")) == "Bad Gateway"


class TestFormatters:
    """Test text formatting."""

    def test_format_board(self):
        board = {"organizationId": ORG_ID, "columns": [
            {"status": "TODO", "issues": [issue_payload(), issue_payload(title="Second", position=1)]},
            {"status": "IN_PROGRESS", "issues": []},
        ]}
        text = formatters.format_board(board)

        assert "## To Do (2)" in text
        assert "  1. Second (HIGH)" in text
        assert "## In Progress (0)\n  (empty)" in text

    def test_format_issue_unassigned(self):
        text = formatters.format_issue(issue_payload())
        assert "Assignee: unassigned" in text
        assert "Tags: auth" in text


class TestAgainstApi:
    """Drive the real API through the handlers."""

    def test_board_and_move(self, client, session_factory, seed):
        ids = make_column(session_factory, seed.org_a, seed.alice, "TODO", "A", "B")
        app = client.app

        async def call():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(
                transport=transport, base_url="http://kanban.test", headers=auth_headers(seed.alice)
            ) as api:
                scope = {"organization_id": str(seed.org_a)}
                arguments = await handlers.apply_organization_scope_defaults(
                    "move_issue", {"issue_id": str(ids["B"]), "status": "DONE", "position": 0}, scope
                )
                moved, _ = await handlers.handle_move_issue(arguments, api, scope)
                board, _ = await handlers.handle_get_board({"organization_id": str(seed.org_a)}, api, scope)
                return moved, board

        moved, board = asyncio.run(call())

        assert moved[0].text == "Moved 'B' to DONE at position 0"
        assert "## Done (1)\n  0. B (MEDIUM)" in board[0].text
        assert "## To Do (1)\n  0. A (MEDIUM)" in board[0].text
