"""Shared fixtures for tests."""

import json
from pathlib import Path

import pytest

from openapi_mcp_server.discovery.openapi_parser import ApiDocument, OpenAPIParser

FIXTURES_DIR = Path(__file__).parent / "fixtures"

BASE_URL = "https://petstore.example.com/v1"


@pytest.fixture
def openapi_spec() -> dict:
    """Load the offline OpenAPI spec fixture."""
    with open(FIXTURES_DIR / "petstore.json") as f:
        return json.load(f)


@pytest.fixture
def document(openapi_spec) -> ApiDocument:
    """The petstore fixture, parsed and dereferenced."""
    return OpenAPIParser(str(FIXTURES_DIR / "petstore.json")).parse_spec_dict(openapi_spec)
