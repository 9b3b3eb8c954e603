"""
Parameter type coercion for route parameters.

Runs after the required check and before the request builders, so numeric
fields reach Kinesis as JSON numbers ("25" -> 25) and a value that cannot be
parsed is rejected with 400 instead of being forwarded as a string.

Declared types:
    string   str, passed through as sent
    integer  Limit, MaxResults
    number   Timestamp (epoch seconds, fractional allowed)
    array    PutRecords Records
    any      PutRecord Data / PartitionKey (passed through as sent)
"""

from __future__ import annotations

import math
from typing import Any, Callable


class ParamTypeError(ValueError):
    """Raised when a parameter value does not match its declared type."""

    pass


def _parse_numeric(value: Any, kind: str) -> float:
    # bool is an int subclass; a JSON true is never a valid Limit.
    if isinstance(value, bool):
        raise ParamTypeError(f"must be {kind}, got boolean")
    if isinstance(value, (int, float)):
        parsed = float(value)
    else:
        text = str(value).strip()
        try:
            parsed = float(text)
        except ValueError:
            raise ParamTypeError(f"must be {kind}, got {text!r}") from None
    # nan/inf parse as floats but have no JSON representation.
    if not math.isfinite(parsed):
        raise ParamTypeError(f"must be {kind}, got {value!r}")
    return parsed


def to_string(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


def to_integer(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    parsed = _parse_numeric(value, "an integer")
    if not parsed.is_integer():
        raise ParamTypeError(f"must be an integer, got {value!r}")
    return int(parsed)


def to_number(value: Any) -> int | float:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    parsed = _parse_numeric(value, "a number")
    if isinstance(value, float):
        return value
    text = str(value).strip().lower()
    # "1700000000" stays integral; "1700000000.5" and "1.7e9" stay float.
    if parsed.is_integer() and "." not in text and "e" not in text:
        return int(parsed)
    return parsed


def to_array(value: Any) -> list[Any]:
    if not isinstance(value, list):
        raise ParamTypeError(f"must be an array, got {type(value).__name__}")
    return value


TYPE_COERCERS: dict[str, Callable[[Any], Any]] = {
    "string": to_string,
    "integer": to_integer,
    "number": to_number,
    "array": to_array,
    "any": lambda value: value,
}


def validate_and_coerce_params(
    data_types: dict[str, str] | None,
    params: dict[str, Any] | None,
) -> dict[str, Any]:
    """
    Return a copy of *params* with each declared param coerced to its type.

    None and "" count as absent and are dropped. Params without a declared
    type pass through unchanged; unknown type names coerce as string.
    Raises ParamTypeError naming the first offending parameter.
    """
    out = dict(params or {})
    for name, data_type in (data_types or {}).items():
        value = out.get(name)
        if value is None or value == "":
            out.pop(name, None)
            continue
        coerce = TYPE_COERCERS.get(data_type, to_string)
        try:
            out[name] = coerce(value)
        except ParamTypeError as e:
            raise ParamTypeError(f"Parameter '{name}' {e}") from e
    return out
