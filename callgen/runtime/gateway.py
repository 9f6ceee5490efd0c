"""The request gateway every generated callable goes through.

A call walks IDLE -> AUTHORIZING -> BUILDING -> IN_FLIGHT and ends in
SUCCEEDED or FAILED. Nothing is retried.
"""

from __future__ import annotations

import asyncio
import base64
import datetime
import inspect
import json
import logging
import re
from typing import Any, Awaitable, Callable, Mapping
from urllib.parse import quote

import httpx

from .errors import (
    AuthorizationError,
    CallError,
    ConfigurationError,
    RequestError,
    TransportError,
)
from .types import (
    ActionEnvelope,
    ApiKeyScheme,
    BasicCredential,
    BasicScheme,
    BearerScheme,
    CallState,
    Credential,
    Dispatch,
    Endpoint,
    GatewayConfig,
    SecurityRequest,
    SecurityScheme,
    action_types,
)

logger = logging.getLogger(__name__)

Thunk = Callable[..., Awaitable[ActionEnvelope]]

_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")


class Gateway:
    """Holds the current configuration and executes calls against it."""

    def __init__(self, config: GatewayConfig | None = None) -> None:
        self._config = config or GatewayConfig()

    @property
    def config(self) -> GatewayConfig:
        return self._config

    def init(self, config: GatewayConfig) -> GatewayConfig:
        """Replace the configuration. The latest call fully wins."""
        if not isinstance(config, GatewayConfig):
            raise ConfigurationError(
                f"init() expects a GatewayConfig, got {type(config).__name__}"
            )
        self._config = config
        logger.debug("Gateway configured for %s", config.url or "<no base url>")
        return config

    async def call(self, endpoint: Endpoint, params: Mapping[str, Any] | None = None) -> Any:
        """Execute ``endpoint`` with ``params`` and return the parsed payload.

        Raises a ``CallError`` subclass on failure.
        """
        config = self._config
        state = CallState.IDLE
        try:
            state = _transition(endpoint, state, CallState.AUTHORIZING)
            credentials = await _authorize(endpoint, config)

            state = _transition(endpoint, state, CallState.BUILDING)
            request = build_request(endpoint, params or {}, config, credentials)

            state = _transition(endpoint, state, CallState.IN_FLIGHT)
            response = await _send(endpoint, request, config)
            payload = _handle_response(endpoint, request, response)
        except CallError as exc:
            _transition(endpoint, state, CallState.FAILED)
            logger.debug("%s failed: %s", endpoint.id, exc)
            raise
        except Exception as exc:
            _transition(endpoint, state, CallState.FAILED)
            logger.warning("%s failed unexpectedly while %s", endpoint.id, state.value, exc_info=True)
            raise CallError(endpoint.id, f"unexpected failure while {state.value}: {exc!r}") from exc
        _transition(endpoint, state, CallState.SUCCEEDED)
        return payload

    def dispatched(self, endpoint: Endpoint, params: Mapping[str, Any] | None = None) -> Thunk:
        """Return a thunk that runs the call between lifecycle notifications.

        Awaiting ``thunk(dispatch)`` sends one start envelope, then exactly one
        success or error envelope, and returns that terminal envelope.
        """
        types = action_types(endpoint.id)

        async def thunk(dispatch: Dispatch | None = None) -> ActionEnvelope:
            target = dispatch or self._config.dispatch
            if target is None:
                raise ConfigurationError(
                    f"{endpoint.id}: no dispatch function given and none configured"
                )
            await _notify(
                target,
                ActionEnvelope(types["start"], "start", endpoint.id, payload=params),
            )
            try:
                payload = await self.call(endpoint, params)
            except CallError as exc:
                envelope = ActionEnvelope(types["error"], "error", endpoint.id, error=exc)
            else:
                envelope = ActionEnvelope(
                    types["success"], "success", endpoint.id, payload=payload
                )
            await _notify(target, envelope)
            return envelope

        return thunk


def _transition(endpoint: Endpoint, current: CallState, target: CallState) -> CallState:
    logger.debug("%s: %s -> %s", endpoint.id, current.value, target.value)
    return target


async def _notify(dispatch: Dispatch, envelope: ActionEnvelope) -> None:
    result = dispatch(envelope)
    if inspect.isawaitable(result):
        await result


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


async def _authorize(
    endpoint: Endpoint, config: GatewayConfig
) -> list[tuple[SecurityScheme, Credential]]:
    if not endpoint.security:
        return []
    resolver = config.get_authorization
    if resolver is None:
        schemes = ", ".join(req.scheme.id for req in endpoint.security)
        raise AuthorizationError(
            endpoint.id, f"requires authorization ({schemes}) but no get_authorization is configured"
        )

    async def resolve(request: SecurityRequest) -> Credential:
        try:
            credential = resolver(request)
            if inspect.isawaitable(credential):
                credential = await credential
        except Exception as exc:
            raise AuthorizationError(
                endpoint.id, f"authorization for {request.id!r} failed: {exc}"
            ) from exc
        if credential is None:
            raise AuthorizationError(endpoint.id, f"no credential returned for {request.id!r}")
        return credential

    # A failing resolver cancels its siblings.
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [
                group.create_task(resolve(SecurityRequest(req.scheme.id, req.scopes)))
                for req in endpoint.security
            ]
    except ExceptionGroup as group_error:
        raise group_error.exceptions[0]
    return [(req.scheme, task.result()) for req, task in zip(endpoint.security, tasks)]


def apply_credential(
    operation_id: str,
    scheme: SecurityScheme,
    credential: Credential,
    headers: dict[str, str],
    query: list[tuple[str, Any]],
) -> None:
    """Put ``credential`` where ``scheme`` says it belongs."""
    if isinstance(scheme, BearerScheme):
        headers["Authorization"] = f"Bearer {_text_credential(operation_id, scheme, credential)}"
    elif isinstance(scheme, ApiKeyScheme):
        key = _text_credential(operation_id, scheme, credential)
        if scheme.location == "header":
            headers[scheme.name] = key
        else:
            query.append((scheme.name, key))
    elif isinstance(scheme, BasicScheme):
        if not isinstance(credential, (BasicCredential, tuple, list)) or len(credential) != 2:
            raise AuthorizationError(
                operation_id, f"basic scheme {scheme.id!r} needs a (username, password) pair"
            )
        username, password = credential
        token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
        headers["Authorization"] = f"Basic {token}"
    else:
        raise AuthorizationError(operation_id, f"unknown security scheme {scheme!r}")


def _text_credential(operation_id: str, scheme: SecurityScheme, credential: Credential) -> str:
    if not isinstance(credential, str):
        raise AuthorizationError(
            operation_id,
            f"scheme {scheme.id!r} needs a string credential, got {type(credential).__name__}",
        )
    return credential


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------


def build_request(
    endpoint: Endpoint,
    params: Mapping[str, Any],
    config: GatewayConfig,
    credentials: list[tuple[SecurityScheme, Credential]] = (),
) -> httpx.Request:
    """Build the final ``httpx.Request`` for ``endpoint``."""
    if not config.url:
        raise RequestError(endpoint.id, "no base URL configured, call init() first")

    values = dict(params)
    body = values.pop("body", None) if endpoint.body is not None else None
    unknown = sorted(set(values) - {p.name for p in endpoint.parameters})
    if unknown:
        raise RequestError(endpoint.id, f"unexpected parameter(s): {', '.join(unknown)}")

    missing = [
        p.name for p in endpoint.parameters if p.required and values.get(p.name) is None
    ]
    if endpoint.body is not None and endpoint.body.required and body is None:
        missing.append("body")
    if missing:
        raise RequestError(endpoint.id, f"missing required parameter(s): {', '.join(missing)}")

    def substitute(match: re.Match) -> str:
        value = values.get(match.group(1))
        if value is None:
            raise RequestError(endpoint.id, f"missing path parameter {match.group(1)!r}")
        return _encode_path_value(value)

    path = _PLACEHOLDER.sub(substitute, endpoint.path)
    url = config.url.rstrip("/") + path

    headers: dict[str, str] = {}
    query: list[tuple[str, Any]] = []
    for param in endpoint.parameters:
        value = values.get(param.name)
        if value is None:
            continue
        if param.location == "query":
            items = value if isinstance(value, (list, tuple)) else [value]
            query.extend((param.name, _scalar_text(item)) for item in items if item is not None)
        elif param.location == "header":
            headers[param.name] = _scalar_text(value)

    for scheme, credential in credentials:
        apply_credential(endpoint.id, scheme, credential, headers, query)

    content_kwargs: dict[str, Any] = {}
    if endpoint.body is not None and body is not None:
        content_kwargs = _encode_body(endpoint, body, headers)

    extensions = {}
    if config.timeout is not None:
        extensions["timeout"] = httpx.Timeout(config.timeout).as_dict()

    try:
        return httpx.Request(
            endpoint.method,
            url,
            params=query or None,
            headers=headers,
            extensions=extensions,
            **content_kwargs,
        )
    except (UnicodeEncodeError, httpx.InvalidURL) as exc:
        raise RequestError(endpoint.id, f"cannot build request: {exc}") from exc


def _encode_path_value(value: Any) -> str:
    # Numbers are emitted in textual form, everything else percent-encoded.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return quote(_scalar_text(value), safe="")


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    return str(value)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _is_json(content_type: str) -> bool:
    media = content_type.split(";", 1)[0].strip().lower()
    return media == "application/json" or media.endswith("+json")


def _encode_body(endpoint: Endpoint, body: Any, headers: dict[str, str]) -> dict[str, Any]:
    content_type = endpoint.body.content_type
    if _is_json(content_type) or content_type == "*/*":
        try:
            content = json.dumps(body, default=_json_default).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise RequestError(endpoint.id, f"cannot serialize body: {exc}") from exc
        headers["Content-Type"] = "application/json" if content_type == "*/*" else content_type
        return {"content": content}

    if content_type == "application/x-www-form-urlencoded":
        if not isinstance(body, Mapping):
            raise RequestError(endpoint.id, "form body must be a mapping")
        return {"data": {k: _form_value(v) for k, v in body.items() if v is not None}}

    if content_type.startswith("multipart/"):
        if not isinstance(body, Mapping):
            raise RequestError(endpoint.id, "multipart body must be a mapping")
        data: dict[str, Any] = {}
        files: dict[str, Any] = {}
        for key, value in body.items():
            if value is None:
                continue
            if isinstance(value, (bytes, bytearray, tuple)) or hasattr(value, "read"):
                files[key] = value
            else:
                data[key] = _form_value(value)
        return {"data": data, "files": files}

    headers["Content-Type"] = content_type
    if isinstance(body, (bytes, bytearray)):
        return {"content": bytes(body)}
    if isinstance(body, str):
        return {"content": body.encode("utf-8")}
    raise RequestError(
        endpoint.id, f"body for content type {content_type!r} must be str or bytes"
    )


def _form_value(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_scalar_text(item) for item in value]
    return _scalar_text(value)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


async def _send(endpoint: Endpoint, request: httpx.Request, config: GatewayConfig) -> httpx.Response:
    try:
        if config.transport is not None:
            return await config.transport.send(request)
        async with httpx.AsyncClient() as client:
            return await client.send(request)
    except Exception as exc:
        raise TransportError(
            endpoint.id, f"{request.method} {request.url} failed: {exc}"
        ) from exc


def parse_payload(response: httpx.Response) -> Any:
    """Decode a response body: JSON when possible, else text or bytes."""
    if not response.content:
        return None
    content_type = response.headers.get("content-type", "").split(";", 1)[0].strip().lower()
    if not content_type or "json" in content_type:
        try:
            return response.json()
        except ValueError:
            return response.text
    if content_type.startswith("text/"):
        return response.text
    return response.content


def _handle_response(endpoint: Endpoint, request: httpx.Request, response: httpx.Response) -> Any:
    payload = parse_payload(response)
    if not response.is_success:
        raise RequestError(
            endpoint.id,
            f"{request.method} {request.url} returned {response.status_code}",
            status=response.status_code,
            body=payload,
        )
    return payload
