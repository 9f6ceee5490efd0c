"""
Data structures passed between the loader, the operation model builder and
the code emitter. Everything here is read-only once built.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from .runtime.types import SecurityRequirement, SecurityScheme

DEFAULT_GROUP = "default"


@dataclass(frozen=True)
class SpecDocument:
    """A parsed specification document and its document-level declarations."""

    raw: dict[str, Any]
    version: str  # "2.0" or the "3.x.y" string
    schemas_pointer: str  # "#/definitions" or "#/components/schemas"
    security_schemes: dict[str, SecurityScheme] = field(default_factory=dict)
    # None when the document declares no top-level `security`
    default_security: Optional[list[dict[str, list[str]]]] = None
    base_url: Optional[str] = None
    title: str = ""

    @property
    def paths(self) -> dict[str, Any]:
        return self.raw.get("paths") or {}

    @property
    def is_swagger2(self) -> bool:
        return self.version.startswith("2")


@dataclass(frozen=True)
class PathSegment:
    """One piece of a path template: literal text or a `{placeholder}`."""

    text: str
    is_placeholder: bool = False


@dataclass(frozen=True)
class Parameter:
    name: str
    location: Literal["path", "query", "header", "formData"]
    required: bool
    schema: Optional[str]  # pointer into the resolver arena
    description: str = ""


@dataclass(frozen=True)
class RequestBody:
    content_type: str
    required: bool
    schema: Optional[str]  # pointer; None for Swagger formData bodies
    description: str = ""
    form_fields: tuple[Parameter, ...] = ()


@dataclass(frozen=True)
class Response:
    status: str  # "200", "4XX", "default", ...
    description: str = ""
    content_type: Optional[str] = None
    schema: Optional[str] = None


@dataclass(frozen=True)
class Operation:
    """The normalized model of one HTTP method on one path."""

    id: str
    method: str  # upper case
    path: str
    segments: tuple[PathSegment, ...]
    tag: str = DEFAULT_GROUP
    summary: str = ""
    description: str = ""
    deprecated: bool = False
    parameters: tuple[Parameter, ...] = ()
    body: Optional[RequestBody] = None
    security: tuple[SecurityRequirement, ...] = ()
    responses: tuple[Response, ...] = ()
    default_response: Optional[Response] = None
    pointer: str = ""  # JSON pointer of the raw operation object

    @property
    def success_response(self) -> Optional[Response]:
        """The lowest declared 2xx response, if any."""
        for response in self.responses:
            if response.status.startswith("2"):
                return response
        return None

    @property
    def placeholders(self) -> list[str]:
        return [s.text for s in self.segments if s.is_placeholder]


@dataclass
class GeneratedModule:
    """One tag group of operations, rendered to one module."""

    group: str
    module_name: str
    operations: list[Operation] = field(default_factory=list)
