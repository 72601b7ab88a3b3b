"""Tool catalog: converts every document operation into an MCP Tool."""

from __future__ import annotations

import re
from typing import Any

import structlog
from mcp.types import Tool

from .openapi_parser import ApiDocument, Operation, Parameter
from .schema_translator import translate_schema

logger = structlog.get_logger(__name__)

REQUEST_BODY_PROPERTY = "requestBody"
DEFAULT_BODY_DESCRIPTION = "The request body (JSON)"

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_]")


def build_tool_name(method: str, path: str, operation_id: str | None = None) -> str:
    """Derive the tool name for an operation.

    ``operationId`` wins when present, with every character outside
    ``[A-Za-z0-9_]`` replaced by ``_``. Otherwise the name is
    ``{method}_{path segments}``, e.g. ``post /users/{id}`` -> ``post_users_id``.
    """
    if operation_id:
        return _UNSAFE_NAME_CHARS.sub("_", operation_id)
    parts = [p for p in _UNSAFE_NAME_CHARS.sub("_", path).split("_") if p]
    return f"{method.lower()}_{'_'.join(parts)}"


def build_tool_catalog(document: ApiDocument) -> list[Tool]:
    """Convert all operations in *document* to MCP Tool objects.

    When two operations map to the same name the later one replaces the
    earlier, keeping the earlier one's position in the list.
    """
    if not document.paths:
        logger.warning("OpenAPI spec has no paths defined")
        return []

    tools: dict[str, Tool] = {}
    sources: dict[str, str] = {}
    for path, method, op in document.iter_operations():
        tool = _to_mcp_tool(op)
        source = f"{method.upper()} {path}"
        if tool.name in tools:
            logger.warning(
                "Tool name collision, later operation wins",
                tool=tool.name,
                replaced=sources[tool.name],
                operation=source,
            )
        tools[tool.name] = tool
        sources[tool.name] = source

    logger.info("Tool catalog built", tool_count=len(tools))
    return list(tools.values())


class ToolCatalog:
    """Read-only view over the published tools, keyed by name."""

    def __init__(self, tools: list[Tool]):
        self._tools: dict[str, Tool] = {t.name: t for t in tools}

    @classmethod
    def from_document(cls, document: ApiDocument) -> "ToolCatalog":
        return cls(build_tool_catalog(document))

    def get(self, tool_name: str) -> Tool | None:
        return self._tools.get(tool_name)

    def get_mcp_tools(self) -> list[Tool]:
        return list(self._tools.values())

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    @property
    def tool_count(self) -> int:
        return len(self._tools)


# ------------------------------------------------------------------
# Conversion
# ------------------------------------------------------------------


def _to_mcp_tool(op: Operation) -> Tool:
    name = build_tool_name(op.method, op.path, op.operation_id)
    description = op.summary or op.description or f"Perform {op.method.upper()} on {op.path}"
    return Tool(
        name=name,
        description=description,
        inputSchema=build_input_schema(op, name),
    )


def effective_parameters(op: Operation) -> list[Parameter]:
    """Parameters keyed by argument name.

    A name used in two locations (``id`` in path and in query) is one argument.
    The later declaration wins and keeps the earlier one's position, except
    that a path parameter is never displaced by another location.
    """
    by_name: dict[str, Parameter] = {}
    for param in op.parameters:
        current = by_name.get(param.name)
        if current is not None and current.location == "path" and param.location != "path":
            continue
        by_name[param.name] = param
    return list(by_name.values())


def build_input_schema(op: Operation, tool_name: str | None = None) -> dict[str, Any]:
    """Build a JSON Schema ``inputSchema`` from the parameters and JSON body."""
    properties: dict[str, Any] = {}
    required: list[str] = []

    seen: dict[str, str] = {}
    for param in op.parameters:
        if param.name in seen:
            logger.warning(
                "Parameter name used in more than one location, only one is published",
                tool=tool_name,
                parameter=param.name,
                locations=[seen[param.name], param.location],
            )
        seen[param.name] = param.location

    for param in effective_parameters(op):
        prop = translate_schema(param.schema)
        if prop is None:
            prop = {}
        if not prop.get("description") and param.description:
            prop["description"] = param.description
        # Dispatch places each argument by this location.
        prop["description"] = f"{prop.get('description') or ''} (in: {param.location})".strip()
        properties[param.name] = prop
        if param.required:
            required.append(param.name)

    body = op.request_body
    if body is not None:
        if body.accepts_json:
            body_schema = translate_schema(body.json_schema)
            if body_schema is None:
                body_schema = {}
            if not body_schema.get("description"):
                body_schema["description"] = body.description or DEFAULT_BODY_DESCRIPTION
            properties[REQUEST_BODY_PROPERTY] = body_schema
            if body.required:
                required.append(REQUEST_BODY_PROPERTY)
        else:
            logger.warning(
                "Unsupported requestBody content type, only application/json is handled",
                tool=tool_name,
                content_types=sorted(body.content),
            )

    result: dict[str, Any] = {
        "type": "object",
        "properties": properties,
    }
    if required:
        result["required"] = required
    return result
