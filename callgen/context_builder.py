"""Build Jinja2 template context from the operation and type models.

Assigns each operation to a module by tag, maps every parameter, body and
response schema to a Python annotation, and assembles the context dicts for
`__init__.py.j2`, `models.py.j2` and `module.py.j2`. Everything is sorted so
that the same input always yields the same context.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from .errors import UnresolvedReferenceError
from .models import GeneratedModule, Operation, SpecDocument
from .naming import constant_case, function_name, module_name, pascal_case
from .resolver import join_pointer
from .runtime.types import ApiKeyScheme, BasicScheme, BearerScheme, SecurityScheme, action_types
from .schema_parser import (
    AliasDeclaration,
    Declaration,
    EnumDeclaration,
    NamedType,
    ObjectDeclaration,
    TypeMapper,
    UnionDeclaration,
)

MODELS_PREFIX = "models."

# Module stems the generated package already uses.
_RESERVED_MODULES = {"models", "__init__"}
# Names every generated group module imports.
_RESERVED_IDENTIFIERS = {"annotations", "datetime", "models", "runtime"}


def py_literal(value: Any) -> str:
    """Render a JSON-compatible value as Python source."""
    if isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, (list, tuple)):
        items = [py_literal(v) for v in value]
        if isinstance(value, tuple):
            return "(" + ", ".join(items) + ("," if len(items) == 1 else "") + ")"
        return "[" + ", ".join(items) + "]"
    if isinstance(value, dict):
        return "{" + ", ".join(f"{py_literal(k)}: {py_literal(v)}" for k, v in value.items()) + "}"
    return repr(value)


def _first_line(text: str) -> str:
    return text.strip().splitlines()[0].strip() if text and text.strip() else ""


def _function(operation_id: str) -> str:
    name = function_name(operation_id)
    return name + "_" if name in _RESERVED_IDENTIFIERS else name


def group_operations(operations: list[Operation]) -> list[GeneratedModule]:
    """Group operations by tag into modules, sorted by module then id."""
    modules: dict[str, GeneratedModule] = {}
    for operation in operations:
        name = module_name(operation.tag)
        if name in _RESERVED_MODULES:
            name += "_api"
        if name not in modules:
            modules[name] = GeneratedModule(group=operation.tag, module_name=name)
        modules[name].operations.append(operation)
    for module in modules.values():
        module.operations.sort(key=lambda op: op.id)
    return [modules[name] for name in sorted(modules)]


def _deduplicate_names(entries: list[dict[str, Any]], key: str) -> None:
    """Ensure generated identifiers are unique within a module."""
    seen: dict[str, int] = {}
    for entry in entries:
        name = entry[key]
        if name in seen:
            seen[name] += 1
            entry[key] = f"{name}_{seen[name]}"
        else:
            seen[name] = 1


def map_components(document: SpecDocument, mapper: TypeMapper) -> None:
    """Map reusable schemas first so they keep their own names."""
    try:
        container = mapper.resolver.lookup(document.schemas_pointer)
    except UnresolvedReferenceError:
        return
    for name in container or {}:
        mapper.map_pointer(join_pointer(document.schemas_pointer, name), name)


def scheme_expression(scheme: SecurityScheme) -> str:
    if isinstance(scheme, BearerScheme):
        return f"runtime.BearerScheme({py_literal(scheme.id)})"
    if isinstance(scheme, ApiKeyScheme):
        return (
            f"runtime.ApiKeyScheme({py_literal(scheme.id)}, "
            f"{py_literal(scheme.location)}, {py_literal(scheme.name)})"
        )
    if isinstance(scheme, BasicScheme):
        return f"runtime.BasicScheme({py_literal(scheme.id)})"
    raise TypeError(f"Unknown security scheme {scheme!r}")


def _annotation(mapper: TypeMapper, pointer: Optional[str], hint: str, qualifier: str) -> str:
    if pointer is None:
        return "Any"
    return mapper.map_pointer(pointer, hint, qualifier).annotation(MODELS_PREFIX)


def _return_annotation(mapper: TypeMapper, operation: Operation) -> str:
    response = operation.success_response
    if response is None:
        return "Any"
    if response.schema is None:
        return "None" if response.content_type is None else "Any"
    hint = pascal_case(operation.id) + "Response"
    return _annotation(mapper, response.schema, hint, operation.id)


def _docstring(operation: Operation) -> str:
    """Render the generated function docstring, indented for a def body."""
    lines = []
    summary = _first_line(operation.summary) or _first_line(operation.description)
    if summary:
        lines.append(summary.rstrip(".") + ".")
    lines.append(f"{operation.method} {operation.path}")
    if operation.deprecated:
        lines.append("Deprecated.")
    lines = [line.replace("\\", "\\\\").replace('"""', "'''") for line in lines]
    if len(lines) == 1:
        return f'"""{lines[0]}"""'
    rest = "".join(f"\n    {line}" for line in lines[1:])
    return f'"""{lines[0]}\n{rest}\n    """'


def build_operation_context(operation: Operation, mapper: TypeMapper) -> dict[str, Any]:
    stem = pascal_case(operation.id)
    params = []
    for param in operation.parameters:
        params.append({
            "name": param.name,
            "key": py_literal(param.name),
            "location": param.location,
            "required": param.required,
            "annotation": _annotation(mapper, param.schema, stem + pascal_case(param.name), operation.id),
        })

    body = None
    if operation.body is not None:
        if operation.body.form_fields:
            annotation = "dict[str, Any]"
        else:
            annotation = _annotation(mapper, operation.body.schema, stem + "Body", operation.id)
        body = {
            "annotation": annotation,
            "content_type": py_literal(operation.body.content_type),
            "required": operation.body.required,
        }

    types = action_types(operation.id)
    return {
        "id": operation.id,
        "id_literal": py_literal(operation.id),
        "function": _function(operation.id),
        "params_class": stem + "Params",
        "endpoint": constant_case(operation.id) + "_ENDPOINT",
        "action_types": [(types[phase], py_literal(types[phase])) for phase in ("start", "success", "error")],
        "method": py_literal(operation.method),
        "path": py_literal(operation.path),
        "docstring": _docstring(operation),
        "params": params,
        "body": body,
        "has_required_input": any(p["required"] for p in params) or bool(body and body["required"]),
        "security": [
            {"scheme": scheme_expression(req.scheme), "scopes": py_literal(tuple(req.scopes))}
            for req in operation.security
        ],
        "return_annotation": _return_annotation(mapper, operation),
    }


def _declaration_context(declaration: Declaration) -> dict[str, Any]:
    context: dict[str, Any] = {
        "kind": declaration.kind,
        "name": declaration.name,
        "name_literal": py_literal(declaration.name),
        "description": _first_line(declaration.description),
    }
    if isinstance(declaration, ObjectDeclaration):
        fields = []
        for item in declaration.fields:
            annotation = item.type.annotation(quote=True)
            fields.append({
                "key": py_literal(item.name),
                "annotation": annotation if item.required else f"NotRequired[{annotation}]",
            })
        context["fields"] = fields
    elif isinstance(declaration, EnumDeclaration):
        context["annotation"] = "Literal[" + ", ".join(py_literal(v) for v in declaration.values) + "]"
    elif isinstance(declaration, UnionDeclaration):
        branches = [b.annotation(quote=True) for b in declaration.branches]
        context["annotation"] = "Union[" + ", ".join(branches) + "]"
        context["discriminator"] = declaration.discriminator
    elif isinstance(declaration, AliasDeclaration):
        # A bare name is emitted after its target, so it needs no quotes.
        bare = isinstance(declaration.target, NamedType)
        context["annotation"] = declaration.target.annotation(quote=not bare)
    return context


def _alias_depth(declaration: Declaration, declarations: dict[str, Declaration]) -> int:
    depth = 0
    seen = set()
    while isinstance(declaration, AliasDeclaration) and isinstance(declaration.target, NamedType):
        if declaration.name in seen:
            break
        seen.add(declaration.name)
        depth += 1
        declaration = declarations.get(declaration.target.name)
    return depth


def order_declarations(mapper: TypeMapper) -> list[Declaration]:
    """Sort by name, with bare aliases after the names they point at."""
    declarations = mapper.declarations
    return sorted(
        declarations.values(),
        key=lambda d: (_alias_depth(d, declarations), d.name),
    )


def build_context(
    document: SpecDocument,
    operations: list[Operation],
    mapper: TypeMapper,
    dispatch: bool = False,
    package: str = "client",
) -> dict[str, Any]:
    """Build the full template context for one generated package."""
    map_components(document, mapper)

    modules = []
    for module in group_operations(operations):
        entries = [build_operation_context(op, mapper) for op in module.operations]
        for key in ("function", "params_class", "endpoint"):
            _deduplicate_names(entries, key)
        modules.append({
            "group": module.group,
            "group_literal": py_literal(module.group),
            "module_name": module.module_name,
            "operations": entries,
        })

    return {
        "package": package,
        "title": _first_line(document.title) or package,
        "base_url": py_literal(document.base_url),
        "env_var": constant_case(package) + "_URL",
        "dispatch": dispatch,
        "modules": modules,
        "declarations": [_declaration_context(d) for d in order_declarations(mapper)],
        "operation_count": len(operations),
    }
