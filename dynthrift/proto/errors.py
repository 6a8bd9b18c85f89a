"""Exceptions raised by the dynamic RPC core."""

from typing import Any


class DynthriftError(RuntimeError):
    """Base class for errors raised by dynthrift."""


class SchemaError(DynthriftError):
    """Raised when a schema document cannot be turned into a type registry."""


class UnknownServiceError(DynthriftError):
    """Raised when a service is not declared in the schema."""


class UnknownMethodError(DynthriftError):
    """Raised when a method is not declared on the service."""


class UnknownStructError(DynthriftError):
    """Raised when a struct, union or exception is not declared in the schema."""


class UnsupportedTypeError(DynthriftError):
    """Raised for wire or schema types the codec does not implement."""


class TypeMismatchError(DynthriftError):
    """Raised when a value cannot be coerced to the type the schema demands."""

    def __init__(self, value: Any, type_name: str) -> None:
        super().__init__(f"cannot convert {value!r} to type {type_name}")
        self.value = value
        self.type_name = type_name


class RequiredFieldMissingError(DynthriftError):
    """Raised when a struct value lacks a required field."""

    def __init__(self, struct_name: str, field_name: str) -> None:
        super().__init__(f"field {struct_name}.{field_name} is required")
        self.struct_name = struct_name
        self.field_name = field_name


class MissingArgumentError(DynthriftError):
    """Raised when a call supplies fewer positional arguments than the method declares."""

    def __init__(self, method_name: str, argument_id: int, argument_name: str) -> None:
        super().__init__(f"{method_name}: argument #{argument_id} ({argument_name}) not supplied")
        self.method_name = method_name
        self.argument_id = argument_id
        self.argument_name = argument_name


class ProtocolViolationError(DynthriftError):
    """Raised when the peer sends data that breaks the framing contract."""


class SequenceMismatchError(ProtocolViolationError):
    """Raised when a response does not answer the outstanding request."""

    def __init__(self, expected: int, received: int) -> None:
        super().__init__(f"response out of sequence: expected {expected}, got {received}")
        self.expected = expected
        self.received = received


class SessionFaultedError(DynthriftError):
    """Raised when a call is attempted on a session that has faulted."""


class ApplicationException(DynthriftError):
    """An exception reported by the remote service.

    ``type`` holds one of the ``ApplicationExceptionType`` codes for
    exceptions delivered on the EXCEPTION message channel.
    """

    def __init__(self, message: str | None = None, type: int = 0) -> None:
        super().__init__(message or "unknown application exception")
        self.message = message
        self.type = type


class DeclaredException(ApplicationException):
    """An exception the method declares in its ``throws`` clause.

    ``name`` is the throws slot, ``type_name`` the exception struct and
    ``value`` the decoded fields.
    """

    def __init__(self, name: str, type_name: str, value: dict[str, Any]) -> None:
        message = value.get("message") if isinstance(value.get("message"), str) else None
        super().__init__(message or f"{type_name}: {value!r}")
        self.name = name
        self.type_name = type_name
        self.value = value
