"""Exception types raised at startup and during tool dispatch."""

from __future__ import annotations

from mcp import types


class OpenAPIMCPError(Exception):
    """Base exception for the OpenAPI MCP server."""


class DocumentError(OpenAPIMCPError):
    """The API document could not be loaded or is not a supported OpenAPI 3 document."""


class ConfigurationError(OpenAPIMCPError):
    """The server configuration is incomplete or invalid (e.g. no base URL)."""


class DispatchError(OpenAPIMCPError):
    """A single tool invocation failed before a usable HTTP response was obtained."""

    code: int = types.INTERNAL_ERROR

    def __init__(self, message: str, tool_name: str | None = None):
        super().__init__(message)
        self.tool_name = tool_name


class ToolNotFound(DispatchError):
    code = types.METHOD_NOT_FOUND


class InvalidArguments(DispatchError):
    code = types.INVALID_PARAMS

    def __init__(
        self,
        message: str,
        tool_name: str | None = None,
        argument: str | None = None,
    ):
        super().__init__(message, tool_name)
        self.argument = argument


class UnsupportedContentType(DispatchError):
    code = types.INVALID_PARAMS


class UpstreamRequestFailed(DispatchError):
    """Network-level failure: connection refused, DNS failure, timeout."""

    code = types.INTERNAL_ERROR
