"""Tests for the operations module."""

import pytest

from callgen.errors import DuplicateOperationIdError, SpecParseError, UndeclaredSecuritySchemeError
from callgen.loader import build_document
from callgen.models import PathSegment
from callgen.operations import build_operations, parse_path_template, preferred_content_type
from callgen.resolver import RefResolver
from callgen.runtime.types import ApiKeyScheme, BasicScheme, BearerScheme, SecurityRequirement

from conftest import openapi


def _build(document):
    return build_operations(document, RefResolver(document))


def _by_id(document):
    return {op.id: op for op in _build(document)}


def _response(description="OK"):
    return {"200": {"description": description}}


class TestPathTemplate:
    def test_segments(self):
        assert parse_path_template("/pet/{petId}/photos") == (
            PathSegment("/pet/"),
            PathSegment("petId", True),
            PathSegment("/photos"),
        )

    def test_repeated_placeholder(self):
        with pytest.raises(SpecParseError, match="repeats"):
            parse_path_template("/a/{id}/b/{id}")


class TestContentType:
    def test_prefers_json(self):
        assert preferred_content_type(["text/plain", "application/json"]) == "application/json"

    def test_vendor_json(self):
        assert preferred_content_type(["text/xml", "application/vnd.api+json"]) == "application/vnd.api+json"

    def test_first_otherwise(self):
        assert preferred_content_type(["text/plain", "text/csv"]) == "text/plain"
        assert preferred_content_type([]) is None


class TestPetstoreOperations:
    """Test the operation models built from the petstore document."""

    @pytest.fixture
    def ops(self, petstore):
        return _by_id(petstore)

    def test_document_order(self, petstore):
        ids = [op.id for op in _build(petstore)]
        assert ids == [
            "addPet",
            "findPetsByStatus",
            "getPetById",
            "deletePet",
            "getInventory",
            "getStoreOrderByOrderId",
            "loginUser",
        ]

    def test_path_level_parameters_merged(self, ops):
        names = [(p.name, p.location, p.required) for p in ops["deletePet"].parameters]
        assert names == [("petId", "path", True), ("X-Trace-Id", "header", False)]

    def test_segments_and_method(self, ops):
        op = ops["getPetById"]
        assert op.method == "GET"
        assert op.placeholders == ["petId"]
        assert op.tag == "pet"

    def test_request_body(self, ops, petstore_resolver):
        body = ops["addPet"].body
        assert body.content_type == "application/json"
        assert body.required
        assert body.schema == "#/paths/~1pet/post/requestBody/content/application~1json/schema"
        assert petstore_resolver.resolve(body.schema).pointer == "#/components/schemas/Pet"

    def test_success_response(self, ops, petstore_resolver):
        op = ops["getPetById"]
        assert [r.status for r in op.responses] == ["200", "404"]
        assert petstore_resolver.resolve(op.success_response.schema).name == "Pet"
        assert ops["deletePet"].success_response.schema is None

    def test_text_response(self, ops):
        assert ops["loginUser"].success_response.content_type == "text/plain"

    def test_security_inherited(self, ops):
        scheme = ApiKeyScheme("api_key", "header", "api_key")
        assert ops["getPetById"].security == (SecurityRequirement(scheme),)

    def test_security_override(self, ops):
        assert ops["addPet"].security == (
            SecurityRequirement(BearerScheme("petstore_auth"), ("write:pets", "read:pets")),
        )
        assert ops["loginUser"].security == (SecurityRequirement(BasicScheme("basic_auth")),)

    def test_explicit_empty_security(self, ops):
        """An operation-level empty list means no authorization."""
        assert ops["getStoreOrderByOrderId"].security == ()


class TestParameters:
    def test_operation_overrides_path_item(self):
        document = openapi({
            "/items": {
                "parameters": [{"name": "limit", "in": "query", "schema": {"type": "integer"}}],
                "get": {
                    "operationId": "listItems",
                    "parameters": [
                        {"name": "limit", "in": "query", "required": True, "schema": {"type": "string"}},
                    ],
                    "responses": _response(),
                },
            },
        })
        (param,) = _by_id(document)["listItems"].parameters
        assert param.required
        assert param.schema.endswith("/get/parameters/0/schema")

    def test_parameter_ref(self):
        document = openapi(
            {
                "/items": {
                    "get": {
                        "operationId": "listItems",
                        "parameters": [{"$ref": "#/components/parameters/Limit"}],
                        "responses": _response(),
                    },
                },
            },
            components={
                "schemas": {},
                "parameters": {"Limit": {"name": "limit", "in": "query", "schema": {"type": "integer"}}},
            },
        )
        (param,) = _by_id(document)["listItems"].parameters
        assert param.name == "limit"
        assert param.schema == "#/components/parameters/Limit/schema"

    def test_duplicate_in_one_list(self):
        document = openapi({
            "/items": {
                "get": {
                    "parameters": [
                        {"name": "q", "in": "query", "schema": {"type": "string"}},
                        {"name": "q", "in": "query", "schema": {"type": "string"}},
                    ],
                    "responses": _response(),
                },
            },
        })
        with pytest.raises(SpecParseError, match="declared twice"):
            _build(document)

    def test_missing_path_parameter(self):
        document = openapi({"/items/{id}": {"get": {"operationId": "getItem", "responses": _response()}}})
        with pytest.raises(SpecParseError, match="no path parameter"):
            _build(document)

    def test_extra_path_parameter(self):
        document = openapi({
            "/items": {
                "get": {
                    "parameters": [{"name": "id", "in": "path", "required": True, "schema": {"type": "string"}}],
                    "responses": _response(),
                },
            },
        })
        with pytest.raises(SpecParseError, match="not in the path template"):
            _build(document)

    def test_body_name_clash(self):
        document = openapi({
            "/items": {
                "post": {
                    "parameters": [{"name": "body", "in": "query", "schema": {"type": "string"}}],
                    "requestBody": {"content": {"application/json": {"schema": {"type": "object"}}}},
                    "responses": _response(),
                },
            },
        })
        with pytest.raises(SpecParseError, match="clashes"):
            _build(document)


class TestOperationIds:
    def test_synthesized(self):
        document = openapi({"/store/order/{orderId}": {"get": {
            "parameters": [{"name": "orderId", "in": "path", "required": True, "schema": {"type": "string"}}],
            "responses": _response(),
        }}})
        assert list(_by_id(document)) == ["getStoreOrderByOrderId"]

    def test_duplicate(self):
        document = openapi({
            "/a": {"get": {"operationId": "fetch", "responses": _response()}},
            "/b": {"get": {"operationId": "fetch", "responses": _response()}},
        })
        with pytest.raises(DuplicateOperationIdError) as exc_info:
            _build(document)
        assert exc_info.value.operation_id == "fetch"
        assert "GET /a" in str(exc_info.value)
        assert "GET /b" in str(exc_info.value)

    def test_declared_id_colliding_with_synthesized(self):
        document = openapi({
            "/a": {"get": {"responses": _response()}},
            "/b": {"get": {"operationId": "getA", "responses": _response()}},
        })
        with pytest.raises(DuplicateOperationIdError):
            _build(document)

    def test_ids_differing_only_in_case(self):
        document = openapi({
            "/a": {"get": {"operationId": "getPetById", "responses": _response()}},
            "/b": {"get": {"operationId": "getPetByID", "responses": _response()}},
        })
        with pytest.raises(DuplicateOperationIdError) as exc_info:
            _build(document)
        assert exc_info.value.operation_id == "getPetByID"
        assert "'getPetById'" in str(exc_info.value)
        assert "GET /b" in str(exc_info.value)


class TestSecurity:
    def test_undeclared_scheme(self):
        document = openapi(
            {"/a": {"get": {"operationId": "getA", "security": [{"nope": []}], "responses": _response()}}},
        )
        with pytest.raises(UndeclaredSecuritySchemeError) as exc_info:
            _build(document)
        assert exc_info.value.scheme_id == "nope"
        assert exc_info.value.operation_id == "getA"

    def test_undeclared_default_scheme(self):
        document = openapi(
            {"/a": {"get": {"operationId": "getA", "responses": _response()}}},
            security=[{"nope": []}],
        )
        with pytest.raises(UndeclaredSecuritySchemeError):
            _build(document)

    def test_alternatives_flattened(self):
        document = openapi(
            {"/a": {"get": {
                "operationId": "getA",
                "security": [{"key": []}, {"token": []}, {"key": []}],
                "responses": _response(),
            }}},
            components={
                "schemas": {},
                "securitySchemes": {
                    "key": {"type": "apiKey", "in": "query", "name": "key"},
                    "token": {"type": "http", "scheme": "bearer"},
                },
            },
        )
        security = _by_id(document)["getA"].security
        assert [req.scheme.id for req in security] == ["key", "token"]


_SWAGGER = {
    "swagger": "2.0",
    "info": {"title": "Files", "version": "1"},
    "consumes": ["application/json"],
    "definitions": {"Pet": {"type": "object", "properties": {"id": {"type": "integer"}}}},
    "paths": {
        "/pet": {
            "put": {
                "operationId": "updatePet",
                "parameters": [{"name": "pet", "in": "body", "required": True, "schema": {"$ref": "#/definitions/Pet"}}],
                "responses": {"200": {"description": "OK", "schema": {"$ref": "#/definitions/Pet"}}},
            },
        },
        "/pet/{petId}/uploadImage": {
            "post": {
                "operationId": "uploadFile",
                "consumes": ["multipart/form-data"],
                "parameters": [
                    {"name": "petId", "in": "path", "required": True, "type": "integer"},
                    {"name": "note", "in": "formData", "type": "string"},
                    {"name": "file", "in": "formData", "type": "file"},
                ],
                "responses": {"200": {"description": "OK"}},
            },
        },
        "/pet/{petId}": {
            "post": {
                "operationId": "updatePetWithForm",
                "parameters": [
                    {"name": "petId", "in": "path", "required": True, "type": "integer"},
                    {"name": "name", "in": "formData", "required": True, "type": "string"},
                ],
                "responses": {"200": {"description": "OK"}},
            },
        },
    },
}


class TestSwagger2:
    """Swagger 2 bodies, form data and inline parameter schemas."""

    @pytest.fixture
    def ops(self):
        return _by_id(build_document(dict(_SWAGGER)))

    def test_body_parameter(self, ops):
        body = ops["updatePet"].body
        assert body.content_type == "application/json"
        assert body.required
        assert body.schema == "#/paths/~1pet/put/parameters/0/schema"
        assert ops["updatePet"].parameters == ()

    def test_response_schema(self, ops):
        assert ops["updatePet"].success_response.schema == "#/paths/~1pet/put/responses/200/schema"

    def test_inline_parameter_schema(self, ops):
        (param,) = ops["uploadFile"].parameters
        assert param.schema == "#/paths/~1pet~1{petId}~1uploadImage/post/parameters/0"

    def test_multipart_form(self, ops):
        body = ops["uploadFile"].body
        assert body.content_type == "multipart/form-data"
        assert [f.name for f in body.form_fields] == ["note", "file"]
        assert not body.required

    def test_urlencoded_form(self, ops):
        body = ops["updatePetWithForm"].body
        assert body.content_type == "application/x-www-form-urlencoded"
        assert body.required
