"""Discovery module: OpenAPI operations to MCP tools and back to HTTP requests."""

from .dispatcher import DispatchResult, Dispatcher
from .openapi_parser import ApiDocument, OpenAPIParser, Operation, Parameter, RequestBody
from .operation_index import OperationIndex, OperationIndexEntry
from .schema_translator import translate_schema
from .tool_catalog import ToolCatalog, build_tool_catalog, build_tool_name, effective_parameters

__all__ = [
    "ApiDocument",
    "Operation",
    "Parameter",
    "RequestBody",
    "OpenAPIParser",
    "translate_schema",
    "build_tool_name",
    "build_tool_catalog",
    "effective_parameters",
    "ToolCatalog",
    "OperationIndex",
    "OperationIndexEntry",
    "Dispatcher",
    "DispatchResult",
]
