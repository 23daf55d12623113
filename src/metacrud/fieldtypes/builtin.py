"""Built-in field types and enum type factories.

Converters receive a non-empty raw value; empty input (``None``, ``""``) is
handled by the engine before conversion.
"""

from __future__ import annotations

import hashlib
import math
import re
from collections.abc import Iterable
from datetime import date, datetime
from typing import Any

from metacrud.fieldtypes.registry import Converted, RegisteredType, fail, ok

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
LSTR_MAX_LENGTH = 255

_TRUE_STRINGS = frozenset({"true", "yes", "on", "1"})
_FALSE_STRINGS = frozenset({"false", "no", "off", "0"})


def _convert_obj(value: Any) -> Converted:
    return ok(value)


def _convert_string(value: Any) -> Converted:
    return ok(str(value).strip())


def _convert_lstr(value: Any) -> Converted:
    text = str(value).strip()
    if len(text) > LSTR_MAX_LENGTH:
        return fail(f"string longer than {LSTR_MAX_LENGTH} characters")
    return ok(text)


def _convert_text(value: Any) -> Converted:
    return ok(str(value))


def _convert_boolean(value: Any) -> Converted:
    if isinstance(value, bool):
        return ok(value)
    if isinstance(value, int) and value in (0, 1):
        return ok(bool(value))
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return ok(True)
        if lowered in _FALSE_STRINGS:
            return ok(False)
    return fail(f"invalid boolean value {value!r}")


def _finite(number: int | float) -> Converted:
    if isinstance(number, float) and not math.isfinite(number):
        return fail(f"{number!r} is not a finite number")
    return ok(number)


def _convert_number(value: Any) -> Converted:
    if isinstance(value, bool):
        return fail("boolean is not a number")
    if isinstance(value, (int, float)):
        return _finite(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return ok(int(text))
        except ValueError:
            return _finite(float(text))
    return fail(f"invalid number value {value!r}")


def _convert_int(value: Any) -> Converted:
    if isinstance(value, bool):
        return fail("boolean is not an integer")
    if isinstance(value, int):
        return ok(value)
    if isinstance(value, float):
        if value.is_integer():
            return ok(int(value))
        return fail(f"{value!r} is not an integer")
    if isinstance(value, str):
        return ok(int(value.strip()))
    return fail(f"invalid integer value {value!r}")


def _convert_uint(value: Any) -> Converted:
    converted = _convert_int(value)
    if converted.ok and converted.value < 0:
        return fail(f"{converted.value} is negative")
    return converted


def _convert_float(value: Any) -> Converted:
    converted = _convert_number(value)
    if not converted.ok:
        return converted
    return ok(round(float(converted.value), 2))


def _convert_date(value: Any) -> Converted:
    if isinstance(value, (datetime, date)):
        return ok(value.isoformat())
    if isinstance(value, str):
        return ok(datetime.fromisoformat(value.strip()).isoformat())
    return fail(f"invalid date value {value!r}")


def _convert_email(value: Any) -> Converted:
    text = str(value).strip()
    if not EMAIL_PATTERN.match(text):
        return fail(f"invalid email address {text!r}")
    return ok(text)


def _convert_array(value: Any) -> Converted:
    if isinstance(value, (list, tuple)):
        return ok(list(value))
    if isinstance(value, str):
        return ok([part.strip() for part in value.split(",") if part.strip()])
    return fail(f"invalid array value {value!r}")


def password_type(salt: str = "") -> RegisteredType:
    """One-way hashed password type."""

    def convert(value: Any) -> Converted:
        digest = hashlib.sha256(f"{salt}{value}".encode()).hexdigest()
        return ok(digest)

    return RegisteredType("password", convert, "Salted SHA-256 digest")


def int_enum_type(name: str, values: Iterable[int]) -> RegisteredType:
    """Closed set of integers, e.g. an order status."""
    allowed = frozenset(values)

    def convert(value: Any) -> Converted:
        converted = _convert_int(value)
        if not converted.ok:
            return converted
        if converted.value not in allowed:
            return fail(f"{converted.value} is not one of {sorted(allowed)}")
        return converted

    return RegisteredType(name, convert, f"One of {sorted(allowed)}")


def string_enum_type(name: str, values: Iterable[str]) -> RegisteredType:
    """Closed set of strings."""
    allowed = frozenset(values)

    def convert(value: Any) -> Converted:
        text = str(value).strip()
        if text not in allowed:
            return fail(f"{text!r} is not one of {sorted(allowed)}")
        return ok(text)

    return RegisteredType(name, convert, f"One of {sorted(allowed)}")


def builtin_types(password_salt: str = "") -> list[RegisteredType]:
    """Return the built-in types in registration order."""
    return [
        RegisteredType("obj", _convert_obj, "Any value, unchanged"),
        RegisteredType("string", _convert_string, "Stripped string"),
        RegisteredType("lstr", _convert_lstr, f"String of at most {LSTR_MAX_LENGTH} characters"),
        RegisteredType("text", _convert_text, "Free text"),
        RegisteredType("boolean", _convert_boolean, "Boolean"),
        RegisteredType("number", _convert_number, "Integer or float"),
        RegisteredType("int", _convert_int, "Integer"),
        RegisteredType("uint", _convert_uint, "Non-negative integer"),
        RegisteredType("float", _convert_float, "Float rounded to 2 decimals"),
        RegisteredType("date", _convert_date, "ISO 8601 date or datetime"),
        RegisteredType("email", _convert_email, "Email address"),
        RegisteredType("array", _convert_array, "List of values"),
        password_type(password_salt),
    ]
