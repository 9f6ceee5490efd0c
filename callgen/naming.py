"""Identifier helpers for generated code.

Operation ids are synthesized from HTTP method + path when a document does
not declare one:

  GET    /pet                      -> getPet
  GET    /pet/{petId}              -> getPetByPetId
  POST   /pet/{petId}/uploadImage  -> postPetByPetIdUploadImage
  DELETE /store/order/{order-id}   -> deleteStoreOrderByOrderId
  GET    /                         -> getRoot

The result only depends on its inputs, so re-generation is stable.
"""

from __future__ import annotations

import keyword
import re


def camel_to_snake(name: str) -> str:
    """Convert camelCase or PascalCase to snake_case."""
    s1 = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    return re.sub(r"([a-z\d])([A-Z])", r"\1_\2", s1).lower()


def _words(text: str) -> list[str]:
    """Split text on anything that is not a letter or digit, keeping camel humps."""
    spaced = re.sub(r"([a-z\d])([A-Z])", r"\1 \2", text)
    spaced = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1 \2", spaced)
    return [w for w in re.split(r"[^A-Za-z0-9]+", spaced) if w]


def pascal_case(text: str) -> str:
    """`pet-store order` -> `PetStoreOrder`; existing humps are kept."""
    name = "".join(w[0].upper() + w[1:] for w in _words(text))
    if name and name[0].isdigit():
        name = "_" + name
    return name


def camel_case(text: str) -> str:
    name = pascal_case(text)
    return name[:1].lower() + name[1:] if name and name[0] != "_" else name


def snake_identifier(text: str) -> str:
    """Sanitize text into a valid snake_case Python identifier."""
    name = camel_to_snake("_".join(_words(text)))
    name = re.sub(r"_+", "_", name).strip("_")
    if not name:
        name = "_"
    if name[0].isdigit():
        name = "_" + name
    if keyword.iskeyword(name):
        name += "_"
    return name


def constant_case(text: str) -> str:
    return snake_identifier(text).strip("_").upper() or "_"


def _extract_path_parts(path: str) -> list[tuple[str, bool]]:
    """Split a path template into (text, is_placeholder) parts."""
    parts = []
    for segment in path.split("/"):
        if not segment:
            continue
        for piece in re.split(r"(\{[^{}]+\})", segment):
            if not piece:
                continue
            if piece.startswith("{") and piece.endswith("}"):
                parts.append((piece[1:-1], True))
            else:
                parts.append((piece, False))
    return parts


def synthesize_operation_id(method: str, path: str) -> str:
    """Build a deterministic camelCase operation id from method and path."""
    words = []
    for text, is_placeholder in _extract_path_parts(path):
        if is_placeholder:
            words.append("By" + pascal_case(text))
        else:
            words.append(pascal_case(text))
    suffix = "".join(words) or "Root"
    return method.lower() + suffix


def sanitize_operation_id(operation_id: str) -> str:
    """Make a declared operation id usable as an identifier stem."""
    if re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", operation_id):
        return operation_id
    return camel_case(operation_id) or "_"


def module_name(group: str) -> str:
    """Module file stem for a tag group."""
    return snake_identifier(group)


def function_name(operation_id: str) -> str:
    return snake_identifier(operation_id)
