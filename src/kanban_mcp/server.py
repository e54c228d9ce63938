"""Kanban MCP Server - expose the issue board to AI assistants."""
import os
import sys
import asyncio
import logging
import traceback
from typing import Any, Optional

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    Tool,
    TextContent,
    ImageContent,
    EmbeddedResource,
)

from . import tools
from . import handlers

logger = logging.getLogger("kanban-mcp")

# API Configuration
API_BASE_URL = os.getenv("KANBAN_API_BASE_URL", "http://localhost:8000")
KANBAN_USER_ID = os.getenv("KANBAN_USER_ID")

# MCP Server instance
app = Server("kanban-mcp")

# Per-connection organization scope ({organization_id}); stdio runs one connection per process
_session_org_scope: Optional[dict] = (
    {"organization_id": os.environ["KANBAN_ORGANIZATION_ID"]}
    if os.getenv("KANBAN_ORGANIZATION_ID") else None
)


def build_headers() -> dict:
    """Headers identifying the calling user to the API."""
    headers = {}
    if KANBAN_USER_ID:
        headers["X-User-Id"] = KANBAN_USER_ID
    return headers


def error_detail(response: httpx.Response) -> str:
    """Extract the error message from an API error envelope."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available MCP tools for the issue board."""
    return tools.get_tools()


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent | ImageContent | EmbeddedResource]:
    """Handle MCP tool calls by delegating to the handlers."""
    global _session_org_scope

    logger.info(f"Tool call: {name} with arguments: {arguments}")

    handler = handlers.HANDLERS.get(name)
    if not handler:
        logger.warning(f"Unknown tool requested: {name}")
        return [TextContent(type="text", text=f"Unknown tool: {name}")]

    arguments = await handlers.apply_organization_scope_defaults(name, dict(arguments or {}), _session_org_scope)

    async with httpx.AsyncClient(base_url=API_BASE_URL, timeout=30.0, headers=build_headers()) as client:
        try:
            content, scope_update = await handler(arguments, client, _session_org_scope)
            if scope_update is not _session_org_scope:
                _session_org_scope = scope_update
                logger.info(f"Updated organization scope to: {scope_update}")
            return content

        except httpx.HTTPStatusError as e:
            detail = error_detail(e.response)
            logger.error(f"HTTP error during {name} call: {e.response.status_code} {e.request.url}: {detail}")
            return [TextContent(type="text", text=f"Error ({e.response.status_code}): {detail}")]

        except httpx.RequestError as e:
            logger.error(f"Request error during {name} call: {type(e).__name__}: {e}")
            return [TextContent(type="text", text=f"Error: Connection failed - {str(e)}")]

        except Exception as e:
            logger.error(f"Unexpected error during {name} call with {arguments}:\n{traceback.format_exc()}")
            return [TextContent(type="text", text=f"Error: {type(e).__name__}: {str(e)}")]


async def main():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


def run():
    """Console-script entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
        force=True
    )
    logger.info(f"MCP Server starting with KANBAN_API_BASE_URL: {API_BASE_URL}")
    if not KANBAN_USER_ID:
        logger.warning("KANBAN_USER_ID is not set; the API will reject every request with 401")
    asyncio.run(main())


if __name__ == "__main__":
    run()
