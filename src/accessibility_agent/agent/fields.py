"""Flexible field extraction for job payloads.

Coordinators are not consistent about field names or value types, so every
field is looked up under a list of accepted aliases and coerced with one rule
set:

- int: int, integral float, or a decimal integer string ("42", " -7 ")
- bool: bool, "true"/"false" (any case), integer string or int (non-zero is true)
- str: str, numbers, bools ("true"/"false"); other JSON as compact JSON text

Scalars come from the first alias holding a coercible value. Lists collect
values from every alias, in alias order. Extraction never raises.
"""

import json
import re
from typing import Any

_INT_RE = re.compile(r"^\s*[+-]?\d+\s*$")


def coerce_int(value: Any) -> int | None:
    """Coerce a JSON value to int, or None if it is not an integer."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str) and _INT_RE.match(value):
        return int(value)
    return None


def coerce_bool(value: Any) -> bool | None:
    """Coerce a JSON value to bool, or None if it is not boolean-like."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text == "true":
            return True
        if text == "false":
            return False
        if _INT_RE.match(value):
            return int(value) != 0
    return None


def coerce_str(value: Any) -> str | None:
    """Coerce a JSON value to str; only None yields None."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return json.dumps(value, separators=(",", ":"))


class PayloadReader:
    """Typed, alias-aware accessor over an untyped job payload.

    A payload that is not a JSON object reads as empty.
    """

    def __init__(self, payload: Any):
        self._data: dict[str, Any] = payload if isinstance(payload, dict) else {}

    def _values(self, names: tuple[str, ...]):
        for name in names:
            if not name:
                continue
            value = self._data.get(name)
            if value is not None:
                yield value

    def get_str(self, *names: str) -> str | None:
        for value in self._values(names):
            text = coerce_str(value)
            if text is not None:
                return text
        return None

    def get_int(self, *names: str) -> int | None:
        for value in self._values(names):
            number = coerce_int(value)
            if number is not None:
                return number
        return None

    def get_bool(self, *names: str) -> bool | None:
        for value in self._values(names):
            flag = coerce_bool(value)
            if flag is not None:
                return flag
        return None

    def get_int_list(self, *names: str) -> list[int]:
        """Collect integers from list or scalar values; skips bad elements."""
        values: list[int] = []
        for value in self._values(names):
            items = value if isinstance(value, list) else [value]
            for item in items:
                number = coerce_int(item)
                if number is not None:
                    values.append(number)
        return values

    def get_str_list(self, *names: str) -> list[str]:
        """Collect strings from list, object (as key:value) or scalar values."""
        values: list[str] = []
        for value in self._values(names):
            if isinstance(value, list):
                for item in value:
                    text = coerce_str(item)
                    if text and text.strip():
                        values.append(text)
            elif isinstance(value, dict):
                for key, item in value.items():
                    text = coerce_str(item)
                    if text is not None:
                        values.append(f"{key}:{text}")
            else:
                text = coerce_str(value)
                if text and text.strip():
                    values.append(text)
        return values
