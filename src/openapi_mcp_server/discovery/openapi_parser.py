"""Load an OpenAPI 3 document and turn it into an ApiDocument."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
import structlog
import yaml

from ..errors import DocumentError

logger = structlog.get_logger(__name__)

# Methods a path item may define, in the order they are walked.
HTTP_METHODS: tuple[str, ...] = (
    "get",
    "put",
    "post",
    "delete",
    "options",
    "head",
    "patch",
    "trace",
)

PARAMETER_LOCATIONS: frozenset[str] = frozenset({"path", "query", "header", "cookie"})

JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class Parameter:
    name: str
    location: str  # path, query, header, cookie
    required: bool = False
    schema: dict[str, Any] | None = None
    description: str | None = None


@dataclass(frozen=True)
class RequestBody:
    required: bool = False
    description: str | None = None
    content: dict[str, Any] = field(default_factory=dict)

    @property
    def json_schema(self) -> dict[str, Any] | None:
        media = self.content.get(JSON_CONTENT_TYPE)
        if not isinstance(media, dict):
            return None
        return media.get("schema")

    @property
    def accepts_json(self) -> bool:
        return JSON_CONTENT_TYPE in self.content


@dataclass(frozen=True)
class Operation:
    """One HTTP method on one path."""

    method: str  # lower-case, as keyed in the document
    path: str  # /pets/{id}
    operation_id: str | None = None
    summary: str | None = None
    description: str | None = None
    parameters: tuple[Parameter, ...] = ()
    request_body: RequestBody | None = None
    responses: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ApiDocument:
    title: str
    version: str
    openapi_version: str
    paths: dict[str, dict[str, Operation]]
    servers: tuple[str, ...] = ()

    def iter_operations(self):
        """Yield ``(path, method, operation)`` in document order."""
        for path, operations in self.paths.items():
            for method, op in operations.items():
                yield path, method, op


class OpenAPIParser:
    """Reads an OpenAPI document from a file or URL and converts it to an ApiDocument."""

    def __init__(self, source: str, timeout: int = 15):
        self.source = source
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_and_parse(self) -> ApiDocument:
        """Load the document from ``self.source`` and parse it."""
        if self.source.startswith(("http://", "https://")):
            spec = await self._fetch_spec()
        else:
            spec = self._read_spec(Path(self.source))
        return self.parse_spec_dict(spec)

    def parse_spec_dict(self, spec: Any) -> ApiDocument:
        """Parse an already-loaded spec dict (useful for testing)."""
        self._check_version(spec)
        return self._parse_spec(self._dereference(spec))

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    async def _fetch_spec(self) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(self.source)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise DocumentError(f"Failed to fetch OpenAPI document from {self.source}: {e}")
        content_type = resp.headers.get("content-type", "")
        return self._decode(resp.text, as_json="json" in content_type)

    def _read_spec(self, path: Path) -> Any:
        suffix = path.suffix.lower()
        if suffix not in (".json", ".yaml", ".yml"):
            raise DocumentError(
                f"Unsupported file extension: {suffix or '(none)'}. "
                "Please use .json, .yaml, or .yml."
            )
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise DocumentError(f"Cannot read OpenAPI document {path}: {e}")
        return self._decode(text, as_json=suffix == ".json")

    @staticmethod
    def _decode(text: str, as_json: bool) -> Any:
        try:
            if as_json:
                return json.loads(text)
            return yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise DocumentError(f"Failed to parse OpenAPI document: {e}")

    @staticmethod
    def _check_version(spec: Any) -> None:
        if not isinstance(spec, dict):
            raise DocumentError("OpenAPI document must be a mapping")
        version = spec.get("openapi")
        if not (isinstance(version, str) and version.startswith("3.")):
            raise DocumentError(
                "Parsed specification is not an OpenAPI 3 document. "
                f"Version found: {version if version is not None else 'N/A'}"
            )
        paths = spec.get("paths")
        if paths is not None and not isinstance(paths, dict):
            raise DocumentError("'paths' must be a mapping")

    # ------------------------------------------------------------------
    # $ref resolution
    # ------------------------------------------------------------------

    def _dereference(self, spec: dict[str, Any]) -> dict[str, Any]:
        """Return a copy of *spec* with local ``#/...`` references inlined.

        A reference that points back into one of its own ancestors is left
        as a ``$ref`` node; so are external and unresolvable references.
        """
        return self._resolve(spec, spec, ())

    def _resolve(self, node: Any, root: dict[str, Any], stack: tuple[str, ...]) -> Any:
        if isinstance(node, list):
            return [self._resolve(v, root, stack) for v in node]
        if not isinstance(node, dict):
            return node

        ref = node.get("$ref")
        if isinstance(ref, str):
            if ref in stack:
                logger.debug("Circular $ref left unresolved", ref=ref)
                return dict(node)
            target = self._lookup_pointer(root, ref)
            if target is None:
                logger.warning("Unresolvable $ref left in place", ref=ref)
                return dict(node)
            resolved = self._resolve(target, root, stack + (ref,))
            siblings = {k: v for k, v in node.items() if k != "$ref"}
            if siblings and isinstance(resolved, dict):
                resolved = {**resolved, **self._resolve(siblings, root, stack)}
            return resolved

        return {k: self._resolve(v, root, stack) for k, v in node.items()}

    @staticmethod
    def _lookup_pointer(root: dict[str, Any], ref: str) -> Any:
        if not ref.startswith("#/"):
            return None
        current: Any = root
        for token in ref[2:].split("/"):
            token = token.replace("~1", "/").replace("~0", "~")
            if isinstance(current, dict) and token in current:
                current = current[token]
            elif isinstance(current, list) and token.isdigit() and int(token) < len(current):
                current = current[int(token)]
            else:
                return None
        return current

    # ------------------------------------------------------------------
    # Parse
    # ------------------------------------------------------------------

    def _parse_spec(self, spec: dict[str, Any]) -> ApiDocument:
        info = spec.get("info") or {}
        servers = tuple(
            s["url"]
            for s in spec.get("servers") or []
            if isinstance(s, dict) and isinstance(s.get("url"), str)
        )

        paths: dict[str, dict[str, Operation]] = {}
        for path, path_item in (spec.get("paths") or {}).items():
            if not isinstance(path_item, dict):
                continue
            shared_params = path_item.get("parameters") or []
            operations: dict[str, Operation] = {}
            for method, op in path_item.items():
                if method not in HTTP_METHODS or not isinstance(op, dict):
                    continue
                operations[method] = Operation(
                    method=method,
                    path=path,
                    operation_id=op.get("operationId"),
                    summary=op.get("summary"),
                    description=op.get("description"),
                    parameters=self._parse_parameters(
                        shared_params, op.get("parameters") or [], method, path
                    ),
                    request_body=self._parse_request_body(
                        op.get("requestBody"), method, path
                    ),
                    responses=op.get("responses") or {},
                )
            if operations:
                paths[path] = operations

        document = ApiDocument(
            title=str(info.get("title", "")),
            version=str(info.get("version", "")),
            openapi_version=spec["openapi"],
            paths=paths,
            servers=servers,
        )
        logger.info(
            "Parsed OpenAPI spec",
            title=document.title,
            version=document.version,
            operation_count=sum(len(ops) for ops in paths.values()),
        )
        return document

    def _parse_parameters(
        self,
        shared: list[Any],
        own: list[Any],
        method: str,
        path: str,
    ) -> tuple[Parameter, ...]:
        # Operation-level parameters override path-level ones with the same (name, in).
        merged: dict[tuple[str, str], Parameter] = {}
        for raw in list(shared) + list(own):
            param = self._parse_parameter(raw, method, path)
            if param is not None:
                merged[(param.name, param.location)] = param
        return tuple(merged.values())

    @staticmethod
    def _parse_parameter(raw: Any, method: str, path: str) -> Parameter | None:
        if not isinstance(raw, dict) or "$ref" in raw:
            logger.warning(
                "Skipping unresolved parameter",
                method=method,
                path=path,
                ref=raw.get("$ref") if isinstance(raw, dict) else None,
            )
            return None
        name = raw.get("name")
        location = raw.get("in")
        if not isinstance(name, str) or location not in PARAMETER_LOCATIONS:
            logger.warning(
                "Skipping malformed parameter",
                method=method,
                path=path,
                name=name,
                location=location,
            )
            return None
        return Parameter(
            name=name,
            location=location,
            # Path parameters are always required.
            required=bool(raw.get("required", False)) or location == "path",
            schema=raw.get("schema"),
            description=raw.get("description"),
        )

    @staticmethod
    def _parse_request_body(raw: Any, method: str, path: str) -> RequestBody | None:
        if raw is None:
            return None
        if not isinstance(raw, dict) or "$ref" in raw:
            logger.warning("Skipping unresolved requestBody", method=method, path=path)
            return None
        return RequestBody(
            required=bool(raw.get("required", False)),
            description=raw.get("description"),
            content=raw.get("content") or {},
        )
