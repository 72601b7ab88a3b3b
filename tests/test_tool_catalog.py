"""Tests for discovery.tool_catalog."""

import pytest
from mcp.types import Tool

from openapi_mcp_server.discovery.openapi_parser import (
    ApiDocument,
    OpenAPIParser,
    Operation,
    Parameter,
    RequestBody,
)
from openapi_mcp_server.discovery.tool_catalog import (
    ToolCatalog,
    build_input_schema,
    build_tool_catalog,
    build_tool_name,
)


def _doc(paths: dict) -> ApiDocument:
    return OpenAPIParser("unused.json").parse_spec_dict(
        {"openapi": "3.0.0", "info": {"title": "t", "version": "1"}, "paths": paths}
    )


@pytest.fixture
def tools(document):
    return {t.name: t for t in build_tool_catalog(document)}


class TestBuildToolName:
    def test_operation_id_used(self):
        assert build_tool_name("get", "/pets/{id}", "showPetById") == "showPetById"

    def test_operation_id_sanitized(self):
        assert build_tool_name("get", "/x", "files.download-v2") == "files_download_v2"

    def test_sanitizing_is_idempotent(self):
        once = build_tool_name("get", "/x", "a.b c/d")
        assert build_tool_name("get", "/x", once) == once

    def test_fallback_from_method_and_path(self):
        assert build_tool_name("POST", "/users") == "post_users"
        assert build_tool_name("get", "/pets/{id}/photos") == "get_pets_id_photos"

    def test_fallback_collapses_runs(self):
        assert build_tool_name("delete", "/a//b-{c}.json") == "delete_a_b_c_json"

    def test_fallback_deterministic(self):
        assert build_tool_name("get", "/a/{b}") == build_tool_name("get", "/a/{b}")
        assert build_tool_name("get", "/a/{b}") != build_tool_name("put", "/a/{b}")
        assert build_tool_name("get", "/a/{b}") != build_tool_name("get", "/a/{c}")

    def test_empty_operation_id_falls_back(self):
        assert build_tool_name("get", "/a", "") == "get_a"


class TestCatalog:
    def test_all_operations_published(self, tools):
        assert set(tools) == {
            "listPets",
            "createPet",
            "showPetById",
            "delete_pets_id",
            "update_pet",
            "post_users",
            "files_download",
            "post_tree",
        }
        assert all(isinstance(t, Tool) for t in tools.values())

    def test_show_pet_by_id_schema(self, tools):
        tool = tools["showPetById"]
        assert tool.description == "Info for a specific pet"
        assert tool.inputSchema == {
            "type": "object",
            "properties": {"id": {"type": "integer", "description": "(in: path)"}},
            "required": ["id"],
        }

    def test_description_fallbacks(self, tools):
        assert tools["delete_pets_id"].description == "Delete a pet"
        assert tools["post_users"].description == "Perform POST on /users"

    def test_parameter_description_and_location(self, tools):
        props = tools["listPets"].inputSchema["properties"]
        assert props["limit"] == {
            "type": "integer",
            "default": 20,
            "description": "How many items to return (in: query)",
        }
        assert props["tags"]["items"] == {"type": "string"}
        assert props["tags"]["description"] == "Tags to filter by (in: query)"

    def test_optional_only_has_no_required(self, tools):
        assert "required" not in tools["listPets"].inputSchema
        assert "required" not in tools["post_users"].inputSchema

    def test_required_request_body(self, tools):
        schema = tools["createPet"].inputSchema
        assert schema["required"] == ["requestBody"]
        body = schema["properties"]["requestBody"]
        assert body["type"] == "object"
        assert body["required"] == ["name"]
        assert body["description"] == "Pet to add"

    def test_optional_request_body_default_description(self, tools):
        body = tools["post_users"].inputSchema["properties"]["requestBody"]
        assert body == {
            "type": "object",
            "properties": {"name": {"type": "string"}},
            "description": "The request body (JSON)",
        }

    def test_non_json_body_omitted(self, tools):
        schema = tools["update_pet"].inputSchema
        assert "requestBody" not in schema["properties"]
        assert set(schema["properties"]) == {"id", "X-Request-Id"}
        assert schema["properties"]["X-Request-Id"]["description"] == "(in: header)"

    def test_cookie_parameter_advertised(self, tools):
        props = tools["files_download"].inputSchema["properties"]
        assert props["session"]["description"] == "(in: cookie)"

    def test_circular_body_degrades_one_field(self, tools):
        body = tools["post_tree"].inputSchema["properties"]["requestBody"]
        assert body["properties"]["label"] == {"type": "string"}
        assert body["properties"]["children"] == {"type": "array", "items": {}}

    def test_empty_paths(self):
        assert build_tool_catalog(_doc({})) == []

    def test_malformed_required_does_not_drop_other_tools(self):
        doc = _doc(
            {
                "/a": {"get": {"operationId": "a"}},
                "/b": {
                    "post": {
                        "operationId": "b",
                        "requestBody": {
                            "content": {
                                "application/json": {
                                    "schema": {
                                        "type": "object",
                                        "properties": {
                                            "owner": {"type": "object", "required": True}
                                        },
                                    }
                                }
                            }
                        },
                    }
                },
            }
        )
        tools = {t.name: t for t in build_tool_catalog(doc)}
        assert set(tools) == {"a", "b"}
        owner = tools["b"].inputSchema["properties"]["requestBody"]["properties"]["owner"]
        assert owner == {"type": "object"}

    def test_collision_last_wins(self):
        doc = _doc(
            {
                "/a": {"get": {"operationId": "dup", "summary": "first"}},
                "/b": {"get": {"operationId": "dup", "summary": "second"}},
                "/c": {"get": {"summary": "third"}},
            }
        )
        tools = build_tool_catalog(doc)
        assert [t.name for t in tools] == ["dup", "get_c"]
        assert tools[0].description == "second"


class TestInputSchema:
    def test_parameter_without_schema_accepts_anything(self):
        op = Operation(
            method="get",
            path="/a",
            parameters=(Parameter(name="q", location="query", required=True),),
        )
        assert build_input_schema(op) == {
            "type": "object",
            "properties": {"q": {"description": "(in: query)"}},
            "required": ["q"],
        }

    def test_schema_description_preferred_over_parameter(self):
        op = Operation(
            method="get",
            path="/a",
            parameters=(
                Parameter(
                    name="q",
                    location="query",
                    schema={"type": "string", "description": "from schema"},
                    description="from parameter",
                ),
            ),
        )
        prop = build_input_schema(op)["properties"]["q"]
        assert prop["description"] == "from schema (in: query)"

    def test_same_name_in_two_locations_published_once(self):
        op = Operation(
            method="get",
            path="/items/{id}",
            parameters=(
                Parameter(name="id", location="path", required=True, schema={"type": "integer"}),
                Parameter(name="id", location="query", required=True, schema={"type": "string"}),
                Parameter(name="q", location="query", required=True),
            ),
        )
        schema = build_input_schema(op)
        assert schema["required"] == ["id", "q"]
        assert schema["properties"]["id"] == {"type": "integer", "description": "(in: path)"}

    def test_later_location_wins_outside_path(self):
        op = Operation(
            method="get",
            path="/items",
            parameters=(
                Parameter(name="v", location="header", required=False),
                Parameter(name="v", location="query", required=True),
            ),
        )
        schema = build_input_schema(op)
        assert schema["required"] == ["v"]
        assert schema["properties"]["v"]["description"] == "(in: query)"

    def test_json_body_without_schema(self):
        op = Operation(
            method="post",
            path="/a",
            request_body=RequestBody(content={"application/json": {}}),
        )
        schema = build_input_schema(op)
        assert schema["properties"]["requestBody"] == {"description": "The request body (JSON)"}

    def test_does_not_mutate_document(self, document):
        op = document.paths["/pets"]["get"]
        build_input_schema(op)
        assert op.parameters[0].schema == {"type": "integer", "default": 20}


class TestToolCatalog:
    def test_lookup(self, document):
        catalog = ToolCatalog.from_document(document)
        assert catalog.tool_count == 8
        assert catalog.get("createPet").name == "createPet"
        assert catalog.get("nope") is None
        assert catalog.tool_names == [t.name for t in catalog.get_mcp_tools()]
