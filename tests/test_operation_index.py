"""Tests for discovery.operation_index."""

import pytest
from mcp.types import Tool

from openapi_mcp_server.discovery.openapi_parser import OpenAPIParser
from openapi_mcp_server.discovery.operation_index import OperationIndex
from openapi_mcp_server.discovery.tool_catalog import build_tool_catalog


@pytest.fixture
def tools(document):
    return build_tool_catalog(document)


class TestOperationIndex:
    def test_agrees_with_catalog(self, document, tools):
        index = OperationIndex.build(document, tools)
        assert sorted(index.names) == sorted(t.name for t in tools)
        assert len(index) == len(tools)

    def test_entry_points_back_to_operation(self, document, tools):
        index = OperationIndex.build(document, tools)
        entry = index.get("showPetById")
        assert entry.path == "/pets/{id}"
        assert entry.method == "get"
        assert entry.operation is document.paths["/pets/{id}"]["get"]
        assert entry.tool.name == "showPetById"

    def test_unknown_name(self, document, tools):
        index = OperationIndex.build(document, tools)
        assert index.get("nope") is None
        assert "nope" not in index
        assert "createPet" in index

    def test_unpublished_operations_dropped(self, document, tools):
        published = [t for t in tools if t.name != "createPet"]
        index = OperationIndex.build(document, published)
        assert "createPet" not in index
        assert len(index) == len(tools) - 1

    def test_collision_matches_catalog(self):
        doc = OpenAPIParser("unused.json").parse_spec_dict(
            {
                "openapi": "3.0.0",
                "info": {"title": "t", "version": "1"},
                "paths": {
                    "/a": {"get": {"operationId": "dup"}},
                    "/b": {"post": {"operationId": "dup"}},
                },
            }
        )
        index = OperationIndex.build(doc, build_tool_catalog(doc))
        entry = index.get("dup")
        assert (entry.method, entry.path) == ("post", "/b")

    def test_read_only(self, document, tools):
        index = OperationIndex.build(document, tools)
        with pytest.raises(TypeError):
            index._entries["x"] = None

    def test_empty(self, document):
        assert len(OperationIndex.build(document, [])) == 0

    def test_iteration(self, document, tools):
        index = OperationIndex.build(document, tools)
        assert list(index) == index.names
        assert isinstance(index.get("listPets").tool, Tool)
