"""Lazy, self-healing stdio proxy for the remote VIS42 MCP server."""

__version__ = "1.0.0"
