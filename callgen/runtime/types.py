"""Value types shared by the gateway and the code it serves.

Generated modules build ``Endpoint`` literals from these classes, and the
generator itself reuses the security scheme variants.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal, NamedTuple, Union

# --- Security schemes -------------------------------------------------------


@dataclass(frozen=True)
class BasicScheme:
    """HTTP basic authentication."""

    id: str


@dataclass(frozen=True)
class ApiKeyScheme:
    """API key sent in a header or a query parameter."""

    id: str
    location: Literal["header", "query"]
    name: str


@dataclass(frozen=True)
class BearerScheme:
    """Bearer token (also used for OAuth2 and OpenID Connect)."""

    id: str


SecurityScheme = Union[BasicScheme, ApiKeyScheme, BearerScheme]


@dataclass(frozen=True)
class SecurityRequirement:
    scheme: SecurityScheme
    scopes: tuple[str, ...] = ()


@dataclass(frozen=True)
class SecurityRequest:
    """What the authorization resolver is asked for."""

    id: str
    scopes: tuple[str, ...] = ()


class BasicCredential(NamedTuple):
    username: str
    password: str


Credential = Union[str, BasicCredential, tuple]


# --- Endpoints --------------------------------------------------------------


@dataclass(frozen=True)
class EndpointParam:
    name: str
    location: Literal["path", "query", "header"]
    required: bool = False


@dataclass(frozen=True)
class EndpointBody:
    content_type: str = "application/json"
    required: bool = False


@dataclass(frozen=True)
class Endpoint:
    """Everything the gateway needs to know to execute one operation."""

    id: str
    method: str
    path: str
    parameters: tuple[EndpointParam, ...] = ()
    body: EndpointBody | None = None
    security: tuple[SecurityRequirement, ...] = ()


# --- Configuration ----------------------------------------------------------

AuthorizationResolver = Callable[[SecurityRequest], Union[Awaitable[Credential], Credential]]
Dispatch = Callable[["ActionEnvelope"], Any]


@dataclass(frozen=True)
class GatewayConfig:
    """Process-wide gateway configuration. Replaced as a whole by ``init``.

    ``transport`` is an ``httpx.AsyncClient`` (or anything with an async
    ``send(request)``); when it is ``None`` each call opens its own client.
    """

    url: str | None = None
    get_authorization: AuthorizationResolver | None = None
    transport: Any = None
    dispatch: Dispatch | None = None
    timeout: float | None = None


# --- Call lifecycle ---------------------------------------------------------


class CallState(str, enum.Enum):
    IDLE = "idle"
    AUTHORIZING = "authorizing"
    BUILDING = "building"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


Phase = Literal["start", "success", "error"]

PHASE_SUFFIXES: dict[str, str] = {
    "start": "START",
    "success": "SUCCESS",
    "error": "ERROR",
}


@dataclass(frozen=True)
class ActionEnvelope:
    """One lifecycle notification handed to the dispatch function."""

    type: str
    phase: Phase
    operation_id: str
    payload: Any = None
    error: Exception | None = field(default=None, compare=False)


def _constant_case(name: str) -> str:
    s1 = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    s2 = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", s1)
    return re.sub(r"[^A-Za-z0-9]+", "_", s2).strip("_").upper()


def action_types(operation_id: str) -> dict[str, str]:
    """Return the notification type names for each phase of an operation.

    >>> action_types("getPetById")["success"]
    'GET_PET_BY_ID_SUCCESS'
    """
    base = _constant_case(operation_id)
    return {phase: f"{base}_{suffix}" for phase, suffix in PHASE_SUFFIXES.items()}
