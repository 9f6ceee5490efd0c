"""Call-time errors raised by the gateway."""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base class for runtime gateway errors."""


class ConfigurationError(GatewayError):
    """The gateway was used in a way its configuration does not allow."""


class CallError(GatewayError):
    """A single call failed. Always delivered through the call's result."""

    def __init__(self, operation_id: str, message: str) -> None:
        self.operation_id = operation_id
        super().__init__(f"{operation_id}: {message}")


class AuthorizationError(CallError):
    """Authorization could not be resolved; no request was sent."""


class RequestError(CallError):
    """The request was invalid or the server answered with a non-success status.

    ``status`` is ``None`` when the request was rejected before it was sent
    (for instance a missing required parameter).
    """

    def __init__(
        self,
        operation_id: str,
        message: str,
        status: int | None = None,
        body: Any = None,
    ) -> None:
        self.status = status
        self.body = body
        super().__init__(operation_id, message)


class TransportError(CallError):
    """No response was obtained from the transport."""
