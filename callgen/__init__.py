"""Generate typed async client packages from OpenAPI / Swagger documents."""

from __future__ import annotations

import logging

from .codegen import render, write_files
from .context_builder import build_context
from .errors import (
    CallgenError,
    DuplicateOperationIdError,
    GenerationError,
    SpecParseError,
    UndeclaredSecuritySchemeError,
    UnresolvedReferenceError,
    UnsupportedSchemaConstructError,
)
from .loader import build_document, load_spec, parse_spec
from .models import SpecDocument
from .operations import build_operations
from .resolver import RefResolver
from .schema_parser import TypeMapper

logger = logging.getLogger(__name__)


def generate(document: SpecDocument, dispatch: bool = False, package: str = "client") -> dict[str, str]:
    """Generate a client package for document.

    Returns file name -> source text. The output only depends on the
    arguments, so generating twice yields identical text.
    """
    resolver = RefResolver(document)
    operations = build_operations(document, resolver)
    mapper = TypeMapper(resolver)
    context = build_context(document, operations, mapper, dispatch=dispatch, package=package)
    files = render(context)
    logger.info(
        "Generated %d operations and %d declarations into %d files",
        context["operation_count"],
        len(context["declarations"]),
        len(files),
    )
    return files


__all__ = [
    "CallgenError",
    "DuplicateOperationIdError",
    "GenerationError",
    "SpecParseError",
    "UndeclaredSecuritySchemeError",
    "UnresolvedReferenceError",
    "UnsupportedSchemaConstructError",
    "build_document",
    "generate",
    "load_spec",
    "parse_spec",
    "write_files",
]
