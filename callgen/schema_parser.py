"""Map resolved schemas to structural type descriptors.

Handles:
- primitives by kind, with the format choosing the representation
- arrays and string-keyed maps (additionalProperties)
- objects as ordered field lists with per-field optionality
- enums as closed literal sets, values verbatim
- allOf field merging (later branches win)
- oneOf/anyOf as unions, never discriminated from payload shape
- nullable / [T, "null"] as Optional
- collision-safe naming of declarations
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .errors import UnsupportedSchemaConstructError
from .naming import pascal_case
from .resolver import RefResolver, ResolvedSchema, SchemaKind

logger = logging.getLogger(__name__)

_STRING_FORMATS: dict[str, str] = {
    "date-time": "datetime.datetime",
    "date": "datetime.date",
    "binary": "bytes",
}
_INTEGER_FORMATS = {None, "int32", "int64"}
_NUMBER_FORMATS = {None, "float", "double"}

# JSON type of enum values per declared schema type
_ENUM_VALUE_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
}

# Names the generated models module already uses.
RESERVED_NAMES = frozenset({
    "Any", "Literal", "NotRequired", "Optional", "Required", "TypedDict",
    "Union", "datetime", "None", "True", "False",
})


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PrimitiveType:
    kind: str  # string, integer, number, boolean, null, file, any
    format: Optional[str] = None
    python: str = "Any"

    def annotation(self, prefix: str = "", quote: bool = False) -> str:
        return self.python


@dataclass(frozen=True)
class ArrayType:
    item: "TypeDescriptor"

    def annotation(self, prefix: str = "", quote: bool = False) -> str:
        return f"list[{self.item.annotation(prefix, quote)}]"


@dataclass(frozen=True)
class MapType:
    value: "TypeDescriptor"

    def annotation(self, prefix: str = "", quote: bool = False) -> str:
        return f"dict[str, {self.value.annotation(prefix, quote)}]"


@dataclass(frozen=True)
class NamedType:
    """A reference to a declaration, possibly one still being built."""

    name: str

    def annotation(self, prefix: str = "", quote: bool = False) -> str:
        text = f"{prefix}{self.name}"
        return f'"{text}"' if quote else text


@dataclass(frozen=True)
class OptionalType:
    inner: "TypeDescriptor"

    def annotation(self, prefix: str = "", quote: bool = False) -> str:
        return f"Optional[{self.inner.annotation(prefix, quote)}]"


TypeDescriptor = Union[PrimitiveType, ArrayType, MapType, NamedType, OptionalType]

ANY = PrimitiveType("any", None, "Any")


@dataclass(frozen=True)
class Field:
    name: str
    type: TypeDescriptor
    required: bool
    description: str = ""


@dataclass
class ObjectDeclaration:
    name: str
    pointer: str
    fields: list[Field] = field(default_factory=list)
    description: str = ""
    kind: str = "object"


@dataclass
class EnumDeclaration:
    name: str
    pointer: str
    values: tuple[Any, ...] = ()
    description: str = ""
    kind: str = "enum"


@dataclass
class UnionDeclaration:
    name: str
    pointer: str
    branches: list[TypeDescriptor] = field(default_factory=list)
    keyword: str = "oneOf"
    discriminator: Optional[str] = None
    description: str = ""
    kind: str = "union"


@dataclass
class AliasDeclaration:
    name: str
    pointer: str
    target: TypeDescriptor = ANY
    description: str = ""
    kind: str = "alias"


Declaration = Union[ObjectDeclaration, EnumDeclaration, UnionDeclaration, AliasDeclaration]


# ---------------------------------------------------------------------------
# Mapper
# ---------------------------------------------------------------------------


class TypeMapper:
    """Maps ResolvedSchema nodes to descriptors and collects declarations.

    A node is mapped once; every later use (including a cyclic one) gets a
    NamedType pointing at the same declaration.
    """

    def __init__(self, resolver: RefResolver) -> None:
        self.resolver = resolver
        self.declarations: dict[str, Declaration] = {}
        self._names: dict[str, str] = {}  # pointer -> declared name
        self._owners: dict[str, str] = {name: "" for name in RESERVED_NAMES}
        self._building: set[str] = set()

    def map_pointer(self, pointer: str, hint: str, qualifier: Optional[str] = None) -> TypeDescriptor:
        return self.map(self.resolver.resolve(pointer), hint, qualifier)

    def map(self, node: ResolvedSchema, hint: str, qualifier: Optional[str] = None) -> TypeDescriptor:
        """Return the descriptor for ``node``.

        ``hint`` names inline declarations; ``qualifier`` (operation id or
        tag) disambiguates a name already owned by another schema.
        """
        descriptor = self._map(node, hint, qualifier)
        if node.nullable and not isinstance(descriptor, OptionalType) and descriptor.annotation() not in ("None", "Any"):
            return OptionalType(descriptor)
        return descriptor

    def sorted_declarations(self) -> list[Declaration]:
        return [self.declarations[name] for name in sorted(self.declarations)]

    def _map(self, node: ResolvedSchema, hint: str, qualifier: Optional[str]) -> TypeDescriptor:
        name = self._names.get(node.pointer)
        if name is not None:
            return NamedType(name)

        if node.kind == SchemaKind.OBJECT and self._is_plain_alias(node):
            if node.name is None:
                return self.map_pointer(node.all_of[0], hint, qualifier)
            return self._declare(node, hint, qualifier, self._build_alias_of_branch)

        if node.kind in (SchemaKind.PRIMITIVE, SchemaKind.ARRAY) or (
            node.kind == SchemaKind.OBJECT and not node.fields and not node.all_of
        ):
            if node.name is None:
                if node.pointer in self._building:
                    raise UnsupportedSchemaConstructError(node.pointer, "unnamed recursive schema")
                self._building.add(node.pointer)
                try:
                    return self._structural(node, hint, qualifier)
                finally:
                    self._building.discard(node.pointer)
            return self._declare(node, hint, qualifier, self._build_alias)

        builders = {
            SchemaKind.OBJECT: self._build_object,
            SchemaKind.ENUM: self._build_enum,
            SchemaKind.UNION: self._build_union,
        }
        return self._declare(node, hint, qualifier, builders[node.kind])

    def _is_plain_alias(self, node: ResolvedSchema) -> bool:
        return len(node.all_of) == 1 and not node.fields and node.additional is None

    def _declare(self, node, hint, qualifier, builder) -> NamedType:
        name = self._claim(node.name or hint, node.pointer, qualifier)
        self._names[node.pointer] = name
        self._building.add(node.pointer)
        try:
            declaration = builder(node, name, qualifier)
        finally:
            self._building.discard(node.pointer)
        self.declarations[name] = declaration
        logger.debug("Declared %s %s for %s", declaration.kind, name, node.pointer)
        return NamedType(name)

    def _claim(self, base: str, pointer: str, qualifier: Optional[str]) -> str:
        base = pascal_case(base) or "Model"
        candidates = [base]
        if qualifier:
            candidates.append(pascal_case(qualifier) + base)
        for candidate in candidates:
            owner = self._owners.get(candidate)
            if owner is None or owner == pointer:
                self._owners[candidate] = pointer
                return candidate
        stem = candidates[-1]
        index = 2
        while f"{stem}{index}" in self._owners:
            index += 1
        name = f"{stem}{index}"
        self._owners[name] = pointer
        return name

    # --- structural -------------------------------------------------------

    def _structural(self, node: ResolvedSchema, hint: str, qualifier: Optional[str]) -> TypeDescriptor:
        if node.kind == SchemaKind.ARRAY:
            if node.items is None:
                return ArrayType(ANY)
            return ArrayType(self.map_pointer(node.items, hint + "Item", qualifier))
        if node.kind == SchemaKind.OBJECT:
            if isinstance(node.additional, str):
                return MapType(self.map_pointer(node.additional, hint + "Value", qualifier))
            return MapType(ANY)
        return self._primitive(node)

    def _primitive(self, node: ResolvedSchema) -> PrimitiveType:
        kind, fmt = node.type, node.format
        if kind == "string":
            return PrimitiveType(kind, fmt, _STRING_FORMATS.get(fmt, "str"))
        if kind == "integer":
            if fmt not in _INTEGER_FORMATS:
                raise UnsupportedSchemaConstructError(node.pointer, f"integer format {fmt!r}")
            return PrimitiveType(kind, fmt, "int")
        if kind == "number":
            if fmt not in _NUMBER_FORMATS:
                raise UnsupportedSchemaConstructError(node.pointer, f"number format {fmt!r}")
            return PrimitiveType(kind, fmt, "float")
        if kind == "boolean":
            return PrimitiveType(kind, fmt, "bool")
        if kind == "null":
            return PrimitiveType(kind, fmt, "None")
        if kind == "file":
            return PrimitiveType(kind, fmt, "bytes")
        return ANY

    # --- declarations -----------------------------------------------------

    def _build_alias(self, node: ResolvedSchema, name: str, qualifier: Optional[str]) -> AliasDeclaration:
        return AliasDeclaration(name, node.pointer, self._structural(node, name, qualifier), node.description)

    def _build_alias_of_branch(self, node: ResolvedSchema, name: str, qualifier: Optional[str]) -> AliasDeclaration:
        target = self.map_pointer(node.all_of[0], name + "Base", qualifier)
        if isinstance(target, NamedType) and self._owners.get(target.name) in self._building:
            raise UnsupportedSchemaConstructError(node.pointer, f"circular allOf alias through {target.name}")
        return AliasDeclaration(name, node.pointer, target, node.description)

    def _build_enum(self, node: ResolvedSchema, name: str, qualifier: Optional[str]) -> EnumDeclaration:
        expected = _ENUM_VALUE_TYPES.get(node.type)
        if node.type not in _ENUM_VALUE_TYPES and node.type not in ("any", "null"):
            raise UnsupportedSchemaConstructError(node.pointer, f"enum of type {node.type!r}")
        for value in node.values:
            if value is None or expected is None:
                continue
            is_bool = isinstance(value, bool)
            if not isinstance(value, expected) or (is_bool and node.type != "boolean"):
                raise UnsupportedSchemaConstructError(
                    node.pointer, f"enum value {value!r} conflicts with type {node.type!r}"
                )
        return EnumDeclaration(name, node.pointer, node.values, node.description)

    def _build_union(self, node: ResolvedSchema, name: str, qualifier: Optional[str]) -> UnionDeclaration:
        branches: list[TypeDescriptor] = []
        for index, pointer in enumerate(node.branches, 1):
            branch = self.map_pointer(pointer, f"{name}Option{index}", qualifier)
            if branch not in branches:
                branches.append(branch)
        return UnionDeclaration(
            name, node.pointer, branches, node.union or "oneOf", node.discriminator, node.description
        )

    def _build_object(self, node: ResolvedSchema, name: str, qualifier: Optional[str]) -> ObjectDeclaration:
        merged: dict[str, Field] = {}
        for index, pointer in enumerate(node.all_of, 1):
            branch = self.resolver.resolve(pointer)
            if branch.pointer in self._building:
                raise UnsupportedSchemaConstructError(node.pointer, f"circular allOf through {branch.pointer}")
            descriptor = self.map(branch, f"{name}Part{index}", qualifier)
            for item in self._object_fields(node, descriptor):
                merged[item.name] = item

        for field_name, pointer in node.fields.items():
            child = self.resolver.resolve(pointer)
            merged[field_name] = Field(
                field_name,
                self.map(child, name + pascal_case(field_name), qualifier),
                field_name in node.required,
                child.description,
            )

        fields = [
            Field(f.name, f.type, True, f.description) if f.name in node.required and not f.required else f
            for f in merged.values()
        ]
        return ObjectDeclaration(name, node.pointer, fields, node.description)

    def _object_fields(self, node: ResolvedSchema, descriptor: TypeDescriptor) -> list[Field]:
        if isinstance(descriptor, OptionalType):
            descriptor = descriptor.inner
        if isinstance(descriptor, NamedType):
            declaration = self.declarations.get(descriptor.name)
            if isinstance(declaration, ObjectDeclaration):
                return declaration.fields
            if isinstance(declaration, AliasDeclaration):
                return self._object_fields(node, declaration.target)
        raise UnsupportedSchemaConstructError(
            node.pointer, f"allOf branch {descriptor.annotation()} is not an object"
        )
