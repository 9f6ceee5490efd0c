"""Build the per-operation model from a specification document.

One Operation per (path, HTTP method), with parameters merged from the path
item and the operation, the request body modeled separately, security
requirements resolved against the declared schemes, and responses captured
per status code.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from .errors import DuplicateOperationIdError, SpecParseError, UndeclaredSecuritySchemeError
from .loader import get_paths
from .models import (
    DEFAULT_GROUP,
    Operation,
    Parameter,
    PathSegment,
    RequestBody,
    Response,
    SpecDocument,
)
from .naming import sanitize_operation_id, synthesize_operation_id
from .resolver import RefResolver, join_pointer
from .runtime.types import SecurityRequirement, action_types

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def parse_path_template(path: str) -> tuple[PathSegment, ...]:
    """Split `/pet/{petId}` into ordered literal and placeholder segments."""
    segments = []
    seen = set()
    for piece in re.split(r"(\{[^{}]+\})", path):
        if not piece:
            continue
        if piece.startswith("{") and piece.endswith("}"):
            name = piece[1:-1]
            if name in seen:
                raise SpecParseError(f"Path {path!r} repeats placeholder {name!r}")
            seen.add(name)
            segments.append(PathSegment(name, True))
        else:
            segments.append(PathSegment(piece))
    return tuple(segments)


def preferred_content_type(content_types: list[str]) -> Optional[str]:
    """Prefer application/json, then any +json type, then the first declared."""
    if not content_types:
        return None
    for content_type in content_types:
        if content_type.split(";")[0].strip() == "application/json":
            return content_type
    for content_type in content_types:
        if content_type.split(";")[0].strip().endswith("+json"):
            return content_type
    return content_types[0]


class OperationModelBuilder:
    """Extracts normalized Operation models from a SpecDocument."""

    def __init__(self, document: SpecDocument, resolver: RefResolver) -> None:
        self.document = document
        self.resolver = resolver

    def build(self) -> list[Operation]:
        """Return every operation in document order.

        Raises:
            DuplicateOperationIdError: two operations share an id.
            SpecParseError: a path item or operation is malformed.
            UndeclaredSecuritySchemeError: a requirement names an unknown scheme.
        """
        operations: list[Operation] = []
        owners: dict[str, str] = {}
        topics: dict[str, tuple[str, str]] = {}
        for path, path_item in get_paths(self.document).items():
            item_pointer, path_item = self.resolver.follow(join_pointer("#/paths", path))
            if not isinstance(path_item, dict):
                raise SpecParseError(f"Path item {path!r} must be a mapping")
            segments = parse_path_template(path)
            shared = self._collect_parameters(path_item, item_pointer, path)

            for method in HTTP_METHODS:
                if method not in path_item:
                    continue
                operation = self._build_operation(
                    path, method, path_item[method], join_pointer(item_pointer, method), segments, shared
                )
                where = f"{method.upper()} {path}"
                if operation.id in owners:
                    raise DuplicateOperationIdError(operation.id, owners[operation.id], where)
                owners[operation.id] = where
                topic = action_types(operation.id)["start"]
                if topic in topics:
                    first_id, first_where = topics[topic]
                    raise DuplicateOperationIdError(
                        operation.id,
                        f"{first_where} ({first_id!r})",
                        where,
                        reason=f"both notify as {topic}",
                    )
                topics[topic] = (operation.id, where)
                operations.append(operation)

        logger.info("Built %d operations from %d paths", len(operations), len(get_paths(self.document)))
        return operations

    # --- parameters -------------------------------------------------------

    def _collect_parameters(
        self, holder: dict[str, Any], pointer: str, where: str
    ) -> dict[tuple[str, str], tuple[str, dict[str, Any]]]:
        """Return (name, location) -> (pointer, raw) for a parameters list."""
        raw_list = holder.get("parameters") or []
        if not isinstance(raw_list, list):
            raise SpecParseError(f"{where}: 'parameters' must be a list")
        collected: dict[tuple[str, str], tuple[str, dict[str, Any]]] = {}
        for index in range(len(raw_list)):
            param_pointer, raw = self.resolver.follow(join_pointer(pointer, "parameters", index))
            if not isinstance(raw, dict) or "name" not in raw or "in" not in raw:
                raise SpecParseError(f"{where}: parameter #{index} needs 'name' and 'in'")
            key = (str(raw["name"]), str(raw["in"]))
            if key in collected:
                raise SpecParseError(f"{where}: parameter {key[0]!r} in {key[1]} declared twice")
            collected[key] = (param_pointer, raw)
        return collected

    def _parameter(self, pointer: str, raw: dict[str, Any], location: str) -> Parameter:
        if "schema" in raw:
            schema: Optional[str] = join_pointer(pointer, "schema")
        elif "type" in raw:
            # Swagger 2 non-body parameters carry the schema keywords inline.
            schema = pointer
        else:
            schema = None
        required = True if location == "path" else bool(raw.get("required", False))
        return Parameter(str(raw["name"]), location, required, schema, str(raw.get("description", "")))

    # --- operation --------------------------------------------------------

    def _build_operation(
        self,
        path: str,
        method: str,
        raw_op: Any,
        op_pointer: str,
        segments: tuple[PathSegment, ...],
        shared: dict[tuple[str, str], tuple[str, dict[str, Any]]],
    ) -> Operation:
        where = f"{method.upper()} {path}"
        if not isinstance(raw_op, dict):
            raise SpecParseError(f"{where}: operation must be a mapping")

        declared_id = raw_op.get("operationId")
        operation_id = (
            sanitize_operation_id(str(declared_id)) if declared_id else synthesize_operation_id(method, path)
        )

        merged = dict(shared)
        merged.update(self._collect_parameters(raw_op, op_pointer, where))

        parameters: list[Parameter] = []
        form_fields: list[Parameter] = []
        body: Optional[RequestBody] = None
        for (name, location), (pointer, raw) in merged.items():
            if location in ("path", "query", "header"):
                parameters.append(self._parameter(pointer, raw, location))
            elif location == "body":
                body = RequestBody(
                    content_type=preferred_content_type(self._consumes(raw_op)) or "application/json",
                    required=bool(raw.get("required", False)),
                    schema=join_pointer(pointer, "schema") if "schema" in raw else None,
                    description=str(raw.get("description", "")),
                )
            elif location == "formData":
                form_fields.append(self._parameter(pointer, raw, "formData"))
            elif location == "cookie":
                logger.warning("%s: skipping cookie parameter %r", where, name)
            else:
                raise SpecParseError(f"{where}: parameter {name!r} has unknown location {location!r}")

        if form_fields:
            if body is not None:
                raise SpecParseError(f"{where}: both a body parameter and formData parameters")
            body = self._form_body(raw_op, form_fields)
        if "requestBody" in raw_op:
            body = self._request_body(op_pointer, where)

        if body is not None and any(p.name == "body" for p in parameters):
            raise SpecParseError(f"{where}: parameter named 'body' clashes with the request body key")

        self._check_placeholders(segments, parameters, where)

        responses = self._responses(raw_op, op_pointer, where)
        tags = raw_op.get("tags") or []
        return Operation(
            id=operation_id,
            method=method.upper(),
            path=path,
            segments=segments,
            tag=str(tags[0]) if tags else DEFAULT_GROUP,
            summary=str(raw_op.get("summary", "")),
            description=str(raw_op.get("description", "")),
            deprecated=bool(raw_op.get("deprecated", False)),
            parameters=tuple(parameters),
            body=body,
            security=self._security(raw_op, operation_id),
            responses=responses,
            default_response=next((r for r in responses if r.status == "default"), None),
            pointer=op_pointer,
        )

    def _consumes(self, raw_op: dict[str, Any]) -> list[str]:
        return list(raw_op.get("consumes") or self.document.raw.get("consumes") or [])

    def _produces(self, raw_op: dict[str, Any]) -> list[str]:
        return list(raw_op.get("produces") or self.document.raw.get("produces") or [])

    def _form_body(self, raw_op: dict[str, Any], fields: list[Parameter]) -> RequestBody:
        declared = [ct for ct in self._consumes(raw_op) if ct in _FORM_TYPES]
        has_file = any(self.resolver.lookup(f.schema).get("type") == "file" for f in fields if f.schema)
        if has_file:
            content_type = "multipart/form-data"
        else:
            content_type = declared[0] if declared else _FORM_TYPES[0]
        return RequestBody(
            content_type=content_type,
            required=any(f.required for f in fields),
            schema=None,
            form_fields=tuple(fields),
        )

    def _request_body(self, op_pointer: str, where: str) -> RequestBody:
        pointer, raw = self.resolver.follow(join_pointer(op_pointer, "requestBody"))
        if not isinstance(raw, dict):
            raise SpecParseError(f"{where}: requestBody must be a mapping")
        content = raw.get("content") or {}
        content_type = preferred_content_type(list(content))
        schema = None
        if content_type and isinstance(content[content_type], dict) and "schema" in content[content_type]:
            schema = join_pointer(pointer, "content", content_type, "schema")
        return RequestBody(
            content_type=content_type or "application/json",
            required=bool(raw.get("required", False)),
            schema=schema,
            description=str(raw.get("description", "")),
        )

    def _check_placeholders(
        self, segments: tuple[PathSegment, ...], parameters: list[Parameter], where: str
    ) -> None:
        placeholders = {s.text for s in segments if s.is_placeholder}
        path_params = {p.name for p in parameters if p.location == "path"}
        missing = sorted(placeholders - path_params)
        extra = sorted(path_params - placeholders)
        if missing:
            raise SpecParseError(f"{where}: no path parameter for placeholder(s) {', '.join(missing)}")
        if extra:
            raise SpecParseError(f"{where}: path parameter(s) {', '.join(extra)} not in the path template")

    # --- security ---------------------------------------------------------

    def _security(self, raw_op: dict[str, Any], operation_id: str) -> tuple[SecurityRequirement, ...]:
        # An explicit empty list means "no authorization", not "inherit".
        if "security" in raw_op:
            declared = raw_op["security"] or []
        else:
            declared = self.document.default_security or []
        if not isinstance(declared, list):
            raise SpecParseError(f"{operation_id}: 'security' must be a list")

        requirements: list[SecurityRequirement] = []
        for alternative in declared:
            if not isinstance(alternative, dict):
                raise SpecParseError(f"{operation_id}: security requirement must be a mapping")
            for scheme_id, scopes in alternative.items():
                scheme = self.document.security_schemes.get(scheme_id)
                if scheme is None:
                    raise UndeclaredSecuritySchemeError(scheme_id, operation_id)
                requirement = SecurityRequirement(scheme, tuple(scopes or ()))
                if requirement not in requirements:
                    requirements.append(requirement)
        return tuple(requirements)

    # --- responses --------------------------------------------------------

    def _responses(self, raw_op: dict[str, Any], op_pointer: str, where: str) -> tuple[Response, ...]:
        responses = []
        for status in raw_op.get("responses") or {}:
            pointer, raw = self.resolver.follow(join_pointer(op_pointer, "responses", status))
            if not isinstance(raw, dict):
                raise SpecParseError(f"{where}: response {status!r} must be a mapping")
            if self.document.is_swagger2:
                schema = join_pointer(pointer, "schema") if "schema" in raw else None
                content_type = preferred_content_type(self._produces(raw_op)) if schema else None
            else:
                content = raw.get("content") or {}
                content_type = preferred_content_type(list(content))
                schema = None
                if content_type and isinstance(content[content_type], dict) and "schema" in content[content_type]:
                    schema = join_pointer(pointer, "content", content_type, "schema")
            responses.append(Response(str(status), str(raw.get("description", "")), content_type, schema))
        responses.sort(key=lambda r: (r.status == "default", r.status))
        return tuple(responses)


def build_operations(document: SpecDocument, resolver: RefResolver) -> list[Operation]:
    return OperationModelBuilder(document, resolver).build()
