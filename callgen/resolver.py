"""Dereference JSON pointers into a shared schema arena.

Every schema node is identified by the canonical JSON pointer of the place
where it is written in the document. Children are stored as pointers and
looked up in the arena, so a self-referential schema is a cycle of
pointers, never an infinitely nested structure.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union
from urllib.parse import unquote

from .errors import UnresolvedReferenceError, UnsupportedSchemaConstructError
from .models import SpecDocument

logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = {"string", "integer", "number", "boolean", "null", "file"}


class SchemaKind(str, enum.Enum):
    PRIMITIVE = "primitive"
    ARRAY = "array"
    OBJECT = "object"
    ENUM = "enum"
    UNION = "union"


@dataclass(eq=False)
class ResolvedSchema:
    """A dereferenced schema node. Compared by identity, never by structure."""

    pointer: str
    kind: SchemaKind = SchemaKind.PRIMITIVE
    type: str = "any"
    format: Optional[str] = None
    name: Optional[str] = None  # component name, for reusable definitions
    description: str = ""
    nullable: bool = False
    items: Optional[str] = None
    fields: dict[str, str] = field(default_factory=dict)
    required: frozenset[str] = frozenset()
    all_of: tuple[str, ...] = ()
    # pointer of the value schema, True for "any value", None when closed
    additional: Union[str, bool, None] = None
    values: tuple[Any, ...] = ()
    branches: tuple[str, ...] = ()
    union: Optional[str] = None  # "oneOf" or "anyOf"
    discriminator: Optional[str] = None
    raw: Any = field(default=None, repr=False)
    complete: bool = False


def escape_token(token: str) -> str:
    return token.replace("~", "~0").replace("/", "~1")


def join_pointer(base: str, *tokens: Union[str, int]) -> str:
    """Append escaped tokens to a JSON pointer."""
    return "/".join([base.rstrip("/"), *(escape_token(str(t)) for t in tokens)])


def split_pointer(pointer: str) -> list[str]:
    """Decode a local JSON pointer (`#/a/b~1c`) into its tokens."""
    if not pointer.startswith("#"):
        raise UnresolvedReferenceError(pointer, "only local references are supported")
    body = pointer[1:]
    if not body:
        return []
    if not body.startswith("/"):
        raise UnresolvedReferenceError(pointer, "malformed JSON pointer")
    return [t.replace("~1", "/").replace("~0", "~") for t in body[1:].split("/")]


def normalize_ref(ref: str) -> str:
    """Turn a `$ref` URI fragment into the unencoded pointer the arena is keyed by."""
    if not ref.startswith("#"):
        raise UnresolvedReferenceError(ref, "only local references are supported")
    return join_pointer("#", *split_pointer("#" + unquote(ref[1:])))


class RefResolver:
    """Resolves pointers to ResolvedSchema nodes, memoized by pointer."""

    def __init__(self, document: SpecDocument) -> None:
        self.document = document
        self.arena: dict[str, ResolvedSchema] = {}
        self._resolving: set[str] = set()

    def lookup(self, pointer: str) -> Any:
        """Return the raw document node a pointer addresses."""
        node: Any = self.document.raw
        for token in split_pointer(pointer):
            if isinstance(node, dict) and token in node:
                node = node[token]
            elif isinstance(node, dict) and token.isdigit() and int(token) in node:
                # YAML reads unquoted status codes as integers
                node = node[int(token)]
            elif isinstance(node, list) and token.isdigit() and int(token) < len(node):
                node = node[int(token)]
            else:
                raise UnresolvedReferenceError(pointer)
        return node

    def follow(self, pointer: str) -> tuple[str, Any]:
        """Follow a `$ref` chain to the canonical pointer and its raw node."""
        seen = [pointer]
        raw = self.lookup(pointer)
        while isinstance(raw, dict) and "$ref" in raw:
            target = raw["$ref"]
            if not isinstance(target, str):
                raise UnresolvedReferenceError(pointer, "$ref must be a string")
            target = normalize_ref(target)
            if target in seen:
                raise UnresolvedReferenceError(target, "circular $ref chain " + " -> ".join(seen))
            seen.append(target)
            raw = self.lookup(target)
            pointer = target
        return pointer, raw

    def resolve(self, pointer: str) -> ResolvedSchema:
        """Return the node for ``pointer``, constructing it on first visit."""
        node = self.arena.get(pointer)
        if node is not None:
            return node

        canonical, raw = self.follow(pointer)
        node = self.arena.get(canonical)
        if node is None:
            node = self._construct(canonical, raw)
        elif canonical in self._resolving:
            logger.debug("Back-reference to %s from %s", canonical, pointer)
        self.arena[pointer] = node
        return node

    def is_resolving(self, pointer: str) -> bool:
        return pointer in self._resolving

    def component_name(self, pointer: str) -> Optional[str]:
        prefix = self.document.schemas_pointer + "/"
        if pointer.startswith(prefix):
            rest = pointer[len(prefix):]
            if rest and "/" not in rest:
                return split_pointer("#/" + rest)[0]
        return None

    def _construct(self, pointer: str, raw: Any) -> ResolvedSchema:
        node = ResolvedSchema(pointer=pointer, raw=raw, name=self.component_name(pointer))
        # Registered before the children so cycles land on this same node.
        self.arena[pointer] = node
        self._resolving.add(pointer)
        try:
            if raw is True or raw == {}:
                node.type = "any"
            elif not isinstance(raw, dict):
                raise UnsupportedSchemaConstructError(pointer, f"schema must be an object, got {raw!r}")
            else:
                self._fill(node, raw)
        except Exception:
            del self.arena[pointer]
            raise
        finally:
            self._resolving.discard(pointer)
        node.complete = True
        return node

    def _child(self, pointer: str, *tokens: Union[str, int]) -> str:
        return self.resolve(join_pointer(pointer, *tokens)).pointer

    def _fill(self, node: ResolvedSchema, raw: dict[str, Any]) -> None:
        pointer = node.pointer
        node.description = str(raw.get("description") or raw.get("title") or "")
        declared = raw.get("type")
        nullable = bool(raw.get("nullable") or raw.get("x-nullable"))
        if isinstance(declared, list):
            non_null = [t for t in declared if t != "null"]
            nullable = nullable or len(non_null) < len(declared)
            if len(non_null) > 1:
                raise UnsupportedSchemaConstructError(pointer, f"conflicting types {declared}")
            declared = non_null[0] if non_null else "null"
        node.nullable = nullable

        if "enum" in raw:
            values = raw["enum"]
            if not isinstance(values, list) or not values:
                raise UnsupportedSchemaConstructError(pointer, "enum must be a non-empty list")
            node.kind = SchemaKind.ENUM
            node.type = declared or "any"
            node.values = tuple(values)
            return

        for keyword in ("oneOf", "anyOf"):
            if keyword in raw:
                branches = raw[keyword]
                if not isinstance(branches, list) or not branches:
                    raise UnsupportedSchemaConstructError(pointer, f"{keyword} must be a non-empty list")
                node.kind = SchemaKind.UNION
                node.union = keyword
                node.branches = tuple(self._child(pointer, keyword, i) for i in range(len(branches)))
                discriminator = raw.get("discriminator")
                if isinstance(discriminator, dict):
                    discriminator = discriminator.get("propertyName")
                node.discriminator = discriminator
                return

        if declared == "array" or (declared is None and "items" in raw):
            node.kind = SchemaKind.ARRAY
            node.type = "array"
            if "items" in raw:
                node.items = self._child(pointer, "items")
            return
        if "items" in raw:
            raise UnsupportedSchemaConstructError(pointer, f"'items' declared on a {declared!r} schema")

        is_object = declared == "object" or any(
            key in raw for key in ("properties", "additionalProperties", "allOf")
        )
        if is_object:
            if declared not in (None, "object"):
                raise UnsupportedSchemaConstructError(
                    pointer, f"object keywords declared on a {declared!r} schema"
                )
            node.kind = SchemaKind.OBJECT
            node.type = "object"
            if "allOf" in raw:
                branches = raw["allOf"]
                if not isinstance(branches, list) or not branches:
                    raise UnsupportedSchemaConstructError(pointer, "allOf must be a non-empty list")
                node.all_of = tuple(self._child(pointer, "allOf", i) for i in range(len(branches)))
            properties = raw.get("properties") or {}
            node.fields = {name: self._child(pointer, "properties", name) for name in properties}
            node.required = frozenset(raw.get("required") or ())
            additional = raw.get("additionalProperties")
            if isinstance(additional, dict):
                node.additional = True if not additional else self._child(pointer, "additionalProperties")
            elif additional is True:
                node.additional = True
            return

        if declared is None:
            node.type = "any"
        elif declared in PRIMITIVE_TYPES:
            node.type = declared
            node.format = raw.get("format")
        else:
            raise UnsupportedSchemaConstructError(pointer, f"unknown type {declared!r}")
