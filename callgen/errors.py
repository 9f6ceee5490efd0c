"""Generation-time errors.

Any of these aborts the whole generation run.
"""

from __future__ import annotations


class CallgenError(Exception):
    """Base class for every error raised by callgen."""


class GenerationError(CallgenError):
    """Base class for errors that abort code generation."""


class SpecParseError(GenerationError):
    """The input document is malformed or structurally inconsistent."""


class UnresolvedReferenceError(GenerationError):
    """A reference pointer does not address an existing node."""

    def __init__(self, pointer: str, reason: str = "not found in document") -> None:
        self.pointer = pointer
        super().__init__(f"Cannot resolve {pointer!r}: {reason}")


class UndeclaredSecuritySchemeError(UnresolvedReferenceError):
    """A security requirement names a scheme the document never declares."""

    def __init__(self, scheme_id: str, operation_id: str) -> None:
        self.scheme_id = scheme_id
        self.operation_id = operation_id
        super().__init__(
            f"#/securitySchemes/{scheme_id}",
            f"security scheme used by operation {operation_id!r} is not declared",
        )


class UnsupportedSchemaConstructError(GenerationError):
    """A schema construct has no defined type mapping."""

    def __init__(self, pointer: str, reason: str) -> None:
        self.pointer = pointer
        super().__init__(f"Unsupported schema at {pointer!r}: {reason}")


class DuplicateOperationIdError(GenerationError):
    """Two distinct operations resolve to the same id."""

    def __init__(self, operation_id: str, first: str, second: str, reason: str = "") -> None:
        self.operation_id = operation_id
        message = f"Operation id {operation_id!r} is used by both {first} and {second}"
        super().__init__(f"{message}: {reason}" if reason else message)
