"""Load and parse an OpenAPI / Swagger document.

Turns JSON or YAML text into a SpecDocument and extracts the document-level
declarations: base URL, schema container, security schemes.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from .errors import SpecParseError
from .runtime.types import ApiKeyScheme, BasicScheme, BearerScheme, SecurityScheme
from .models import SpecDocument

logger = logging.getLogger(__name__)


def load_spec(path: str | Path) -> SpecDocument:
    """Read a specification file from disk."""
    spec_file = Path(path)
    try:
        text = spec_file.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecParseError(f"Cannot read specification {spec_file}: {e}") from e
    return parse_spec(text, source=str(spec_file))


def parse_spec(text: str, source: str = "<string>") -> SpecDocument:
    """Parse JSON or YAML specification text."""
    stripped = text.lstrip()
    try:
        if stripped.startswith("{"):
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as e:
        raise SpecParseError(f"Cannot parse {source}: {e}") from e
    return build_document(raw)


def build_document(raw: Any) -> SpecDocument:
    """Validate the top level of a parsed document and wrap it."""
    if not isinstance(raw, dict):
        raise SpecParseError("Specification root must be a mapping")

    if "openapi" in raw:
        version = str(raw["openapi"])
        if not version.startswith("3"):
            raise SpecParseError(f"Unsupported OpenAPI version {version!r}")
        schemas_pointer = "#/components/schemas"
        declared = (raw.get("components") or {}).get("securitySchemes") or {}
    elif "swagger" in raw:
        version = str(raw["swagger"])
        if version != "2.0":
            raise SpecParseError(f"Unsupported Swagger version {version!r}")
        schemas_pointer = "#/definitions"
        declared = raw.get("securityDefinitions") or {}
    else:
        raise SpecParseError("Document declares neither 'openapi' nor 'swagger'")

    paths = raw.get("paths")
    if paths is None:
        raw = {**raw, "paths": {}}
    elif not isinstance(paths, dict):
        raise SpecParseError("'paths' must be a mapping")

    default_security = raw.get("security")
    if default_security is not None and not isinstance(default_security, list):
        raise SpecParseError("Top-level 'security' must be a list")

    document = SpecDocument(
        raw=raw,
        version=version,
        schemas_pointer=schemas_pointer,
        security_schemes=parse_security_schemes(declared),
        default_security=default_security,
        base_url=get_base_url(raw),
        title=str((raw.get("info") or {}).get("title", "")),
    )
    logger.info(
        "Loaded %s %s with %d paths", "Swagger" if document.is_swagger2 else "OpenAPI",
        version, len(document.paths),
    )
    return document


def parse_security_schemes(declared: dict[str, Any]) -> dict[str, SecurityScheme]:
    """Turn document-level scheme declarations into scheme variants."""
    if not isinstance(declared, dict):
        raise SpecParseError("Security scheme declarations must be a mapping")
    schemes: dict[str, SecurityScheme] = {}
    for scheme_id, decl in declared.items():
        if not isinstance(decl, dict):
            raise SpecParseError(f"Security scheme {scheme_id!r} must be a mapping")
        schemes[scheme_id] = _parse_scheme(scheme_id, decl)
    return schemes


def _parse_scheme(scheme_id: str, decl: dict[str, Any]) -> SecurityScheme:
    scheme_type = decl.get("type")
    if scheme_type == "basic":
        return BasicScheme(scheme_id)
    if scheme_type == "http":
        http_scheme = str(decl.get("scheme", "")).lower()
        if http_scheme == "basic":
            return BasicScheme(scheme_id)
        if http_scheme == "bearer":
            return BearerScheme(scheme_id)
        raise SpecParseError(
            f"Security scheme {scheme_id!r}: unsupported http scheme {http_scheme!r}"
        )
    if scheme_type == "apiKey":
        location = decl.get("in")
        name = decl.get("name")
        if location not in ("header", "query"):
            raise SpecParseError(
                f"Security scheme {scheme_id!r}: apiKey location {location!r} is not supported"
            )
        if not name:
            raise SpecParseError(f"Security scheme {scheme_id!r}: apiKey needs a 'name'")
        return ApiKeyScheme(scheme_id, location, name)
    if scheme_type in ("oauth2", "openIdConnect"):
        return BearerScheme(scheme_id)
    raise SpecParseError(f"Security scheme {scheme_id!r}: unknown type {scheme_type!r}")


def get_base_url(raw: dict[str, Any]) -> str | None:
    """Derive the default base URL from `servers` or `host`/`basePath`."""
    servers = raw.get("servers")
    if servers:
        server = servers[0]
        url = server.get("url", "")
        # Substitute server variables with their defaults.
        for name, variable in (server.get("variables") or {}).items():
            url = url.replace("{" + name + "}", str(variable.get("default", "")))
        return url.rstrip("/") or None

    host = raw.get("host")
    base_path = raw.get("basePath", "")
    if not host:
        return base_path.rstrip("/") or None
    scheme = (raw.get("schemes") or ["https"])[0]
    return f"{scheme}://{host}{base_path}".rstrip("/")


def get_paths(document: SpecDocument) -> dict[str, Any]:
    """Extract paths from the document."""
    return document.paths
