"""Lookup from a published tool name back to the operation it came from."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, Mapping

import structlog
from mcp.types import Tool

from .openapi_parser import ApiDocument, Operation
from .tool_catalog import build_tool_name

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OperationIndexEntry:
    tool_name: str
    path: str
    method: str
    operation: Operation
    tool: Tool


class OperationIndex:
    """Immutable name -> OperationIndexEntry mapping.

    Names are recomputed with ``build_tool_name`` so they always agree with
    the catalog. Safe to read from concurrent dispatches.
    """

    def __init__(self, entries: Mapping[str, OperationIndexEntry]):
        self._entries = MappingProxyType(dict(entries))

    @classmethod
    def build(cls, document: ApiDocument, tools: list[Tool]) -> "OperationIndex":
        tools_by_name = {t.name: t for t in tools}
        entries: dict[str, OperationIndexEntry] = {}

        for path, method, op in document.iter_operations():
            tool_name = build_tool_name(method, path, op.operation_id)
            tool = tools_by_name.get(tool_name)
            if tool is None:
                logger.warning(
                    "No published tool for operation",
                    method=method.upper(),
                    path=path,
                    tool=tool_name,
                )
                continue
            entries[tool_name] = OperationIndexEntry(
                tool_name=tool_name,
                path=path,
                method=method,
                operation=op,
                tool=tool,
            )

        logger.info("Built operation index", entry_count=len(entries))
        return cls(entries)

    def get(self, tool_name: str) -> OperationIndexEntry | None:
        return self._entries.get(tool_name)

    @property
    def names(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, tool_name: object) -> bool:
        return tool_name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)
