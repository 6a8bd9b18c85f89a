"""Coercion of generic values to wire primitives on the write path."""

import math
import re
from typing import Any

from .binary import TType
from .errors import TypeMismatchError

# Generic values exchanged across the client boundary. Structs and maps are
# both dicts keyed by str, lists and sets are both lists.
GenericValue = (
    bool | int | float | str | bytes | list["GenericValue"] | dict[str, "GenericValue"] | None
)

INTEGER_BITS = {
    TType.BYTE: 8,
    TType.I16: 16,
    TType.I32: 32,
    TType.I64: 64,
}

_DECIMAL = re.compile(r"[+-]?[0-9]+")


def _wrap(value: int, bits: int) -> int:
    """Narrow an integer to a signed two's complement value of ``bits`` width."""
    mask = (1 << bits) - 1
    value &= mask
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise TypeMismatchError(value, "bool")


def to_string(value: Any) -> str | bytes:
    if isinstance(value, (str, bytes)):
        return value
    raise TypeMismatchError(value, "string")


def to_integer(value: Any, ttype: TType) -> int:
    """Coerce to an integer of the width of ``ttype``.

    Floats truncate toward zero, strings must be base-10 integers.
    """
    bits = INTEGER_BITS[ttype]
    type_name = ttype.name.lower()
    if isinstance(value, bool):
        raise TypeMismatchError(value, type_name)
    if isinstance(value, int):
        return _wrap(value, bits)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise TypeMismatchError(value, type_name)
        return _wrap(int(value), bits)
    if isinstance(value, str) and _DECIMAL.fullmatch(value):
        return _wrap(int(value, 10), bits)
    raise TypeMismatchError(value, type_name)


def to_double(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeMismatchError(value, "double")
    if isinstance(value, int):
        try:
            return float(value)
        except OverflowError:
            raise TypeMismatchError(value, "double") from None
    if isinstance(value, float):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            raise TypeMismatchError(value, "double") from None
    raise TypeMismatchError(value, "double")
