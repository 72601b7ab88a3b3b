"""Translate OpenAPI schema objects into JSON Schema for MCP tool inputs.

Translation never raises. A node that cannot be translated degrades to an
unconstrained schema (``{}``) and a warning is logged, so one bad field never
costs the whole tool.
"""

from __future__ import annotations

import copy
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

BINARY_NOTE = "(Note: Binary content expected as base64 string)"

_PRIMITIVE_TYPES = {"integer", "number", "string", "boolean"}
_BINARY_FORMATS = {"byte", "binary"}


def translate_schema(node: dict[str, Any] | None) -> dict[str, Any] | None:
    """Translate one OpenAPI schema node.

    Returns ``None`` when there is no schema at all; callers decide whether
    that means "accept anything" or "omit the property".
    """
    if node is None:
        return None

    if not isinstance(node, dict):
        logger.warning("Schema node is not a mapping", node_type=type(node).__name__)
        return {}

    if "$ref" in node:
        logger.warning(
            "Encountered a $ref in schema conversion, assuming pre-dereferenced",
            ref=node["$ref"],
        )
        return {}

    result: dict[str, Any] = {}
    schema_type = node.get("type")

    if schema_type is None:
        pass
    elif not isinstance(schema_type, str):
        logger.warning("Unsupported OpenAPI schema type", schema_type=schema_type)
    elif schema_type in _PRIMITIVE_TYPES:
        result["type"] = schema_type
        if schema_type == "string" and node.get("format") in _BINARY_FORMATS:
            if node["format"] == "byte":
                result["contentEncoding"] = "base64"
            result["description"] = f"{node.get('description') or ''} {BINARY_NOTE}".strip()
        if schema_type != "boolean" and "enum" in node:
            result["enum"] = copy.deepcopy(node["enum"])
    elif schema_type == "array":
        result["type"] = "array"
        if "items" in node:
            items = translate_schema(node["items"])
            if items is not None:
                result["items"] = items
            else:
                logger.warning("Failed to convert items schema for array type")
    elif schema_type == "object":
        result["type"] = "object"
        properties = node.get("properties")
        if isinstance(properties, dict):
            result["properties"] = _translate_properties(properties)
        if "required" in node:
            required = node["required"]
            if isinstance(required, list) and all(isinstance(r, str) for r in required):
                result["required"] = list(required)
            else:
                logger.warning("Ignoring malformed 'required' on object schema", required=required)
    else:
        logger.warning("Unsupported OpenAPI schema type", schema_type=schema_type)

    if node.get("description"):
        result.setdefault("description", node["description"])
    if "default" in node:
        result["default"] = copy.deepcopy(node["default"])

    return result


def _translate_properties(properties: dict[str, Any]) -> dict[str, Any]:
    translated: dict[str, Any] = {}
    for name, prop in properties.items():
        prop_schema = translate_schema(prop)
        if prop_schema is None:
            logger.warning("Failed to convert property schema", property=name)
            continue
        translated[name] = prop_schema
    return translated
