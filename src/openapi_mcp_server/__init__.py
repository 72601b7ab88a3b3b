"""Serve the operations of an OpenAPI 3 document as MCP tools."""

__version__ = "0.1.0"
