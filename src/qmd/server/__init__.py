"""MCP server for qmd."""

from qmd.server.mcp_server import create_mcp_server

__all__ = ["create_mcp_server"]
