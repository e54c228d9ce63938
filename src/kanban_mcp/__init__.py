"""Kanban MCP Server - Model Context Protocol integration.

Lets AI assistants read and rearrange an organization's issue board through
the Kanban Core HTTP API.

Modules:
- server: stdio MCP server implementation
- formatters: Response formatting utilities
- tools: MCP tool definitions
- handlers: Tool implementation handlers
"""

__version__ = "1.0.0"

from . import formatters
from . import tools
from . import handlers

__all__ = ["formatters", "tools", "handlers", "__version__"]
