"""OpenAPI MCP Server: every operation in an OpenAPI document becomes a tool."""

import asyncio
import logging
import sys
from pathlib import PurePosixPath
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import click
import structlog
from mcp import types
from mcp.server import Server
from mcp.server.models import InitializationOptions
from mcp.server.stdio import stdio_server
from mcp.shared.exceptions import McpError
from mcp.types import Tool
from pydantic import ValidationError

from . import __version__
from .client import ApiClient, ServerConfig, validate_base_url
from .discovery.dispatcher import Dispatcher
from .discovery.openapi_parser import ApiDocument, OpenAPIParser
from .discovery.tool_catalog import ToolCatalog
from .errors import ConfigurationError, DispatchError, OpenAPIMCPError

logger = structlog.get_logger(__name__)

DEFAULT_SERVER_NAME = "openapi-mcp-server"


def resolve_base_url(config: ServerConfig, document: ApiDocument) -> str:
    """Pick the upstream base URL: explicit setting first, then ``servers[0]``."""
    if config.base_url is not None:
        candidate = str(config.base_url)
        logger.info("Using configured base URL", base_url=candidate)
    elif document.servers:
        candidate = document.servers[0]
        logger.info("Using base URL from OpenAPI spec", base_url=candidate)
    else:
        raise ConfigurationError(
            "No base URL provided via configuration or found in the OpenAPI spec servers list."
        )
    return validate_base_url(candidate)


def server_name_for(spec_source: str) -> str:
    path = urlparse(spec_source).path if "://" in spec_source else spec_source
    stem = PurePosixPath(path.replace("\\", "/")).stem
    return f"{DEFAULT_SERVER_NAME}-{stem}" if stem else DEFAULT_SERVER_NAME


class OpenAPIMCPServer:
    """MCP server exposing an OpenAPI document's operations as tools."""

    def __init__(
        self,
        document: ApiDocument,
        base_url: str,
        config: Optional[ServerConfig] = None,
        name: str = DEFAULT_SERVER_NAME,
    ):
        self.config = config or ServerConfig()
        self.document = document
        self.name = name
        self.server = Server(name)

        self.catalog = ToolCatalog.from_document(document)
        self.client = ApiClient(timeout=self.config.timeout)
        self.dispatcher = Dispatcher(
            document, self.catalog.get_mcp_tools(), base_url, self.client
        )

        self._register_handlers()

    @classmethod
    async def from_config(cls, config: ServerConfig) -> "OpenAPIMCPServer":
        """Load the document named by *config* and build a ready server.

        Raises DocumentError or ConfigurationError; both are fatal at startup.
        """
        if not config.spec_source:
            raise ConfigurationError("No OpenAPI document given")
        parser = OpenAPIParser(config.spec_source, timeout=config.timeout)
        document = await parser.fetch_and_parse()
        logger.info("Loaded OpenAPI spec", title=document.title, version=document.version)
        base_url = resolve_base_url(config, document)
        return cls(document, base_url, config, name=server_name_for(config.spec_source))

    # ------------------------------------------------------------------
    # MCP handlers
    # ------------------------------------------------------------------

    async def list_tools(self) -> list[Tool]:
        tools = self.catalog.get_mcp_tools()
        logger.info("list_tools", count=len(tools))
        return tools

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> types.CallToolResult:
        """Run one tool call; dispatch failures become JSON-RPC errors."""
        logger.info("call_tool", tool=name)
        try:
            result = await self.dispatcher.invoke(name, arguments)
        except DispatchError as e:
            logger.warning(
                "Tool call failed",
                tool=name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise McpError(types.ErrorData(code=e.code, message=str(e)))

        return types.CallToolResult(
            content=[types.TextContent(type="text", text=result.text)],
            isError=result.is_error,
        )

    async def _handle_call_tool(self, req: types.CallToolRequest) -> types.ServerResult:
        result = await self.call_tool(req.params.name, req.params.arguments or {})
        return types.ServerResult(result)

    def _register_handlers(self) -> None:
        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            return await self.list_tools()

        # Registered directly so McpError reaches the client as a JSON-RPC error
        # instead of an isError tool result.
        self.server.request_handlers[types.CallToolRequest] = self._handle_call_tool

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self) -> None:
        logger.info("Starting OpenAPI MCP server", name=self.name, tool_count=self.catalog.tool_count)
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    InitializationOptions(
                        server_name=self.name,
                        server_version=__version__,
                        capabilities=types.ServerCapabilities(
                            tools=types.ToolsCapability(listChanged=False),
                        ),
                    ),
                )
        finally:
            await self.client.close()


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------


def configure_logging(level: str = "INFO") -> None:
    """Route structlog through stdlib logging to stderr (stdout carries MCP)."""
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


async def async_main(config: ServerConfig) -> int:
    """Build and run the server. Returns the process exit status."""
    try:
        server = await OpenAPIMCPServer.from_config(config)
    except OpenAPIMCPError as e:
        logger.error("Failed to initialize server", error=str(e))
        return 1

    try:
        await server.run()
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    except Exception as e:
        logger.error("Server error", error=str(e), exc_info=True)
        return 1
    return 0


@click.command()
@click.argument("spec_source", required=False)
@click.option("--base-url", default=None, help="Base URL of the upstream API (defaults to the document's first server).")
@click.option("--timeout", type=int, default=None, help="Upstream request timeout in seconds.")
@click.option("--log-level", default=None, help="Logging level (DEBUG, INFO, WARNING, ...).")
def main(
    spec_source: Optional[str],
    base_url: Optional[str],
    timeout: Optional[int],
    log_level: Optional[str],
) -> None:
    """Serve the operations of an OpenAPI document (file or URL) as MCP tools over stdio."""
    overrides = {
        "spec_source": spec_source,
        "base_url": base_url,
        "timeout": timeout,
        "log_level": log_level,
    }
    try:
        config = ServerConfig(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        raise click.UsageError(f"Invalid configuration: {e}")

    configure_logging(config.log_level)
    exit_code = asyncio.run(async_main(config))
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
