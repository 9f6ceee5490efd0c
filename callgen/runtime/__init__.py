"""Runtime shared by every generated client package.

Generated callables only touch the names exported here::

    from callgen import runtime

    runtime.init(runtime.GatewayConfig(url="https://petstore.example.com/v2"))
    pet = await runtime.call(GET_PET_BY_ID, {"petId": 42})
"""

from __future__ import annotations

from typing import Any, Mapping

from .errors import (
    AuthorizationError,
    CallError,
    ConfigurationError,
    GatewayError,
    RequestError,
    TransportError,
)
from .gateway import Gateway, Thunk, apply_credential, build_request, parse_payload
from .types import (
    ActionEnvelope,
    ApiKeyScheme,
    BasicCredential,
    BasicScheme,
    BearerScheme,
    CallState,
    Endpoint,
    EndpointBody,
    EndpointParam,
    GatewayConfig,
    SecurityRequest,
    SecurityRequirement,
    SecurityScheme,
    action_types,
)

default_gateway = Gateway()


def init(config: GatewayConfig | None = None, **options: Any) -> GatewayConfig:
    """Replace the process-wide configuration.

    Pass a ``GatewayConfig`` or its fields as keyword arguments, not both.
    """
    if config is not None and options:
        raise ConfigurationError("init() takes a GatewayConfig or keyword options, not both")
    if config is None:
        config = GatewayConfig(**options)
    return default_gateway.init(config)


def get_config() -> GatewayConfig:
    return default_gateway.config


async def call(endpoint: Endpoint, params: Mapping[str, Any] | None = None) -> Any:
    return await default_gateway.call(endpoint, params)


def dispatched(endpoint: Endpoint, params: Mapping[str, Any] | None = None) -> Thunk:
    return default_gateway.dispatched(endpoint, params)


__all__ = [
    "ActionEnvelope",
    "ApiKeyScheme",
    "AuthorizationError",
    "BasicCredential",
    "BasicScheme",
    "BearerScheme",
    "CallError",
    "CallState",
    "ConfigurationError",
    "Endpoint",
    "EndpointBody",
    "EndpointParam",
    "Gateway",
    "GatewayConfig",
    "GatewayError",
    "RequestError",
    "SecurityRequest",
    "SecurityRequirement",
    "SecurityScheme",
    "Thunk",
    "TransportError",
    "action_types",
    "apply_credential",
    "build_request",
    "call",
    "default_gateway",
    "dispatched",
    "get_config",
    "init",
    "parse_payload",
]
