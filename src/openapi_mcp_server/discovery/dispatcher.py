"""Generic HTTP dispatcher: tool call in, HTTP request out, text result back."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Union
from urllib.parse import quote

import httpx
import structlog
from mcp.types import Tool

from ..client import ApiClient
from ..errors import InvalidArguments, ToolNotFound, UnsupportedContentType
from .openapi_parser import ApiDocument
from .operation_index import OperationIndex, OperationIndexEntry
from .tool_catalog import REQUEST_BODY_PROPERTY, effective_parameters

logger = structlog.get_logger(__name__)

_HEADER_UNSAFE = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")
# Floats at or beyond 2**53 are not rendered as integers.
_EXACT_FLOAT_LIMIT = 2**53

ArgumentValue = Union[
    None, bool, int, float, str, List["ArgumentValue"], Dict[str, "ArgumentValue"]
]
Arguments = Mapping[str, ArgumentValue]


@dataclass(frozen=True)
class DispatchResult:
    text: str
    is_error: bool


@dataclass
class PreparedRequest:
    method: str
    path: str
    params: list[tuple[str, str]] = field(default_factory=list)
    headers: httpx.Headers = field(
        default_factory=lambda: httpx.Headers({"Accept": "application/json"})
    )
    content: str | None = None


class Dispatcher:
    """Execute tool calls against the upstream API.

    Owns the OperationIndex, built once here from the same document and tool
    list the catalog published.
    """

    def __init__(
        self,
        document: ApiDocument,
        tools: list[Tool],
        base_url: str,
        client: ApiClient,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = client
        self.index = OperationIndex.build(document, tools)

    async def invoke(self, name: str, arguments: Arguments | None = None) -> DispatchResult:
        """Dispatch tool *name* with *arguments*.

        Raises ToolNotFound, InvalidArguments, UnsupportedContentType or
        UpstreamRequestFailed. An HTTP error status is not raised: it comes
        back as a DispatchResult with ``is_error`` set.
        """
        entry = self.index.get(name)
        if entry is None:
            raise ToolNotFound(f"Tool '{name}' not found.", tool_name=name)

        request = self.prepare(entry, arguments or {})
        url = f"{self.base_url}{request.path}"
        logger.info("Dispatching", tool=name, method=request.method, url=url)

        response = await self.client.send(
            method=request.method,
            url=url,
            params=request.params,
            headers=request.headers,
            content=request.content,
        )
        try:
            return await self._normalize_response(name, response)
        finally:
            await response.aclose()

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def prepare(self, entry: OperationIndexEntry, arguments: Arguments) -> PreparedRequest:
        """Place *arguments* into path, query, headers and body for *entry*."""
        op = entry.operation
        request = PreparedRequest(method=entry.method.upper(), path=entry.path)
        parameters = effective_parameters(op)

        for param in parameters:
            if param.required and arguments.get(param.name) is None:
                raise InvalidArguments(
                    f"Missing required parameter '{param.name}' for tool '{entry.tool_name}'.",
                    tool_name=entry.tool_name,
                    argument=param.name,
                )

        for param in parameters:
            value = arguments.get(param.name)
            if value is None:
                continue
            try:
                if param.location == "path":
                    request.path = request.path.replace(
                        f"{{{param.name}}}", quote(_stringify(value), safe="")
                    )
                elif param.location == "query":
                    if isinstance(value, list):
                        request.params.extend((param.name, _stringify(v)) for v in value)
                    else:
                        request.params = [(k, v) for k, v in request.params if k != param.name]
                        request.params.append((param.name, _stringify(value)))
                elif param.location == "header":
                    header_value = _stringify(value)
                    if _HEADER_UNSAFE.search(header_value):
                        raise InvalidArguments(
                            f"Header parameter '{param.name}' of tool '{entry.tool_name}' "
                            "contains control characters.",
                            tool_name=entry.tool_name,
                            argument=param.name,
                        )
                    request.headers[param.name] = header_value
                else:
                    logger.warning(
                        "Cookie parameter not supported, argument dropped",
                        tool=entry.tool_name,
                        parameter=param.name,
                    )
            except TypeError as e:
                raise InvalidArguments(
                    f"Invalid value for parameter '{param.name}' of tool '{entry.tool_name}': {e}",
                    tool_name=entry.tool_name,
                    argument=param.name,
                ) from e

        self._apply_body(entry, arguments, request)
        return request

    @staticmethod
    def _apply_body(
        entry: OperationIndexEntry,
        arguments: Arguments,
        request: PreparedRequest,
    ) -> None:
        body = entry.operation.request_body
        value = arguments.get(REQUEST_BODY_PROPERTY)

        if body is None:
            if value is not None:
                logger.debug("Operation has no request body, ignoring requestBody", tool=entry.tool_name)
            return

        if value is None:
            if body.required:
                raise InvalidArguments(
                    f"Missing required requestBody for tool '{entry.tool_name}'.",
                    tool_name=entry.tool_name,
                    argument=REQUEST_BODY_PROPERTY,
                )
            return

        if not body.accepts_json:
            raise UnsupportedContentType(
                f"Unsupported request body content type for tool '{entry.tool_name}'. "
                "Only application/json is supported.",
                tool_name=entry.tool_name,
            )

        try:
            request.content = json.dumps(
                value, separators=(",", ":"), ensure_ascii=False, allow_nan=False
            )
        except (TypeError, ValueError) as e:
            raise InvalidArguments(
                f"Failed to serialize requestBody for tool '{entry.tool_name}': {e}",
                tool_name=entry.tool_name,
                argument=REQUEST_BODY_PROPERTY,
            ) from e
        request.headers["Content-Type"] = "application/json"

    # ------------------------------------------------------------------
    # Response handling
    # ------------------------------------------------------------------

    @classmethod
    async def _normalize_response(cls, tool_name: str, response: httpx.Response) -> DispatchResult:
        status = f"{response.status_code} {response.reason_phrase}"
        is_error = not response.is_success
        logger.info("API response", tool=tool_name, status_code=response.status_code)

        try:
            await response.aread()
            body_text = response.text
        except httpx.HTTPError as e:
            logger.error("Failed to read API response body", tool=tool_name, error=str(e))
            return DispatchResult(
                text=f"API call returned {status} but failed to read response body: {e}",
                is_error=is_error,
            )

        body = cls._format_body(tool_name, body_text, response.headers.get("content-type"))
        headers = json.dumps(dict(response.headers), indent=2)
        return DispatchResult(
            text=f"Status: {status}\nHeaders:\n{headers}\n\nBody:\n{body}",
            is_error=is_error,
        )

    @staticmethod
    def _format_body(tool_name: str, text: str, content_type: str | None) -> str:
        """Pretty-print JSON bodies; anything else is returned unchanged."""
        if not text or not _is_json_content_type(content_type):
            return text
        try:
            return json.dumps(json.loads(text), indent=2, ensure_ascii=False)
        except json.JSONDecodeError:
            logger.warning("Failed to parse JSON response body, returning raw text", tool=tool_name)
            return text


def _is_json_content_type(content_type: str | None) -> bool:
    if not content_type:
        return False
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime == "application/json" or mime.endswith("+json")


def _stringify(value: Any) -> str:
    """String form of one argument value for a path, query or header slot."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() and abs(value) < _EXACT_FLOAT_LIMIT else repr(value)
    if isinstance(value, str):
        return value
    if isinstance(value, (list, dict)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    raise TypeError(f"unsupported argument type {type(value).__name__}")
