"""Shared fixtures for callgen tests.

The petstore document exercises every generator path the tests care about:
tags, inherited and overridden security, a cyclic schema, enums, nullable
fields, a synthesized operation id and non-JSON responses.
"""

from __future__ import annotations

import copy
from typing import Any

import httpx
import pytest

from callgen import runtime
from callgen.loader import build_document
from callgen.resolver import RefResolver

PETSTORE_URL = "https://petstore.example.com/v2"


def _ref(name: str) -> dict[str, str]:
    return {"$ref": f"#/components/schemas/{name}"}


def _json(schema: dict[str, Any]) -> dict[str, Any]:
    return {"application/json": {"schema": schema}}


PETSTORE: dict[str, Any] = {
    "openapi": "3.0.3",
    "info": {"title": "Swagger Petstore", "version": "1.0.0"},
    "servers": [{"url": PETSTORE_URL}],
    "security": [{"api_key": []}],
    "paths": {
        "/pet": {
            "post": {
                "tags": ["pet"],
                "operationId": "addPet",
                "summary": "Add a new pet to the store",
                "security": [{"petstore_auth": ["write:pets", "read:pets"]}],
                "requestBody": {"required": True, "content": _json(_ref("Pet"))},
                "responses": {
                    "200": {"description": "Created", "content": _json(_ref("Pet"))},
                    "405": {"description": "Invalid input"},
                },
            },
        },
        "/pet/findByStatus": {
            "get": {
                "tags": ["pet"],
                "operationId": "findPetsByStatus",
                "parameters": [
                    {
                        "name": "status",
                        "in": "query",
                        "schema": {"type": "array", "items": _ref("PetStatus")},
                    },
                ],
                "responses": {
                    "200": {
                        "description": "OK",
                        "content": _json({"type": "array", "items": _ref("Pet")}),
                    },
                },
            },
        },
        "/pet/{petId}": {
            "parameters": [
                {
                    "name": "petId",
                    "in": "path",
                    "required": True,
                    "schema": {"type": "integer", "format": "int64"},
                },
            ],
            "get": {
                "tags": ["pet"],
                "operationId": "getPetById",
                "summary": "Find pet by ID",
                "responses": {
                    "200": {"description": "OK", "content": _json(_ref("Pet"))},
                    "404": {"description": "Pet not found"},
                },
            },
            "delete": {
                "tags": ["pet"],
                "operationId": "deletePet",
                "parameters": [
                    {"name": "X-Trace-Id", "in": "header", "schema": {"type": "string"}},
                ],
                "responses": {"204": {"description": "Deleted"}},
            },
        },
        "/store/inventory": {
            "get": {
                "tags": ["store"],
                "operationId": "getInventory",
                "responses": {
                    "200": {
                        "description": "OK",
                        "content": _json({
                            "type": "object",
                            "additionalProperties": {"type": "integer", "format": "int32"},
                        }),
                    },
                },
            },
        },
        "/store/order/{orderId}": {
            "get": {
                "tags": ["store"],
                "security": [],
                "parameters": [
                    {"name": "orderId", "in": "path", "required": True, "schema": {"type": "string"}},
                ],
                "responses": {"200": {"description": "OK", "content": _json(_ref("Order"))}},
            },
        },
        "/user/login": {
            "get": {
                "tags": ["user"],
                "operationId": "loginUser",
                "security": [{"basic_auth": []}],
                "responses": {
                    "200": {
                        "description": "OK",
                        "content": {"text/plain": {"schema": {"type": "string"}}},
                    },
                },
            },
        },
    },
    "components": {
        "schemas": {
            "Category": {
                "type": "object",
                "properties": {
                    "id": {"type": "integer", "format": "int64"},
                    "name": {"type": "string"},
                },
            },
            "Pet": {
                "type": "object",
                "description": "A pet for sale.",
                "required": ["name", "photoUrls"],
                "properties": {
                    "id": {"type": "integer", "format": "int64"},
                    "name": {"type": "string"},
                    "category": _ref("Category"),
                    "photoUrls": {"type": "array", "items": {"type": "string"}},
                    "status": _ref("PetStatus"),
                    "tags": {"type": "array", "items": _ref("Tag")},
                },
            },
            "PetStatus": {"type": "string", "enum": ["available", "pending", "sold"]},
            "Tag": {
                "type": "object",
                "properties": {"id": {"type": "integer"}, "name": {"type": "string"}},
            },
            "Node": {
                "type": "object",
                "properties": {
                    "value": {"type": "string"},
                    "next": _ref("Node"),
                    "children": {"type": "array", "items": _ref("Node")},
                },
            },
            "Order": {
                "type": "object",
                "properties": {
                    "id": {"type": "integer", "format": "int64"},
                    "shipDate": {"type": "string", "format": "date-time"},
                    "complete": {"type": "boolean"},
                    "note": {"type": "string", "nullable": True},
                },
            },
        },
        "securitySchemes": {
            "api_key": {"type": "apiKey", "name": "api_key", "in": "header"},
            "petstore_auth": {
                "type": "oauth2",
                "flows": {
                    "implicit": {
                        "authorizationUrl": "https://petstore.example.com/oauth/authorize",
                        "scopes": {"write:pets": "modify pets", "read:pets": "read pets"},
                    },
                },
            },
            "basic_auth": {"type": "http", "scheme": "basic"},
        },
    },
}


def make_document(raw: dict[str, Any]):
    return build_document(copy.deepcopy(raw))


def openapi(paths: dict[str, Any] | None = None, schemas: dict[str, Any] | None = None, **extra: Any):
    """Build a minimal OpenAPI 3 document around the given paths and schemas."""
    raw = {
        "openapi": "3.0.0",
        "info": {"title": "Test", "version": "1"},
        "paths": paths or {},
        "components": {"schemas": schemas or {}},
    }
    raw.update(extra)
    return build_document(raw)


@pytest.fixture
def petstore_raw() -> dict[str, Any]:
    return copy.deepcopy(PETSTORE)


@pytest.fixture
def petstore(petstore_raw):
    return build_document(petstore_raw)


@pytest.fixture
def petstore_resolver(petstore) -> RefResolver:
    return RefResolver(petstore)


# ---------------------------------------------------------------------------
# HTTP mocking
# ---------------------------------------------------------------------------


class Recorder:
    """Collects every request a MockTransport sees and answers with a canned response."""

    def __init__(self, response: httpx.Response | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.response = response or httpx.Response(200, json={"ok": True})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
async def mock_client(recorder):
    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
        yield client


@pytest.fixture(autouse=True)
def reset_gateway():
    """Every test starts from an unconfigured process-wide gateway."""
    runtime.init(runtime.GatewayConfig())
    yield
    runtime.init(runtime.GatewayConfig())
