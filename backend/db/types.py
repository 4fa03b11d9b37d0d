# backend/db/types.py
"""
Column types shared by the ORM models.

Legacy rows store flags as 1/0, "t"/"f", "true"/"false" or real booleans
depending on which client wrote them. FlexibleBoolean is the single place that
turns any of those into a Python bool on read.
"""
from typing import Any, Optional

from sqlalchemy import Boolean
from sqlalchemy.types import TypeDecorator

_TRUE_STRINGS = {"1", "t", "true", "y", "yes", "on"}
_FALSE_STRINGS = {"0", "f", "false", "n", "no", "off", ""}


def to_bool(value: Any) -> Optional[bool]:
    """Canonical boolean coercion. None stays None; unknown strings raise."""
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (bytes, bytearray)):
        value = value.decode()
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"Cannot interpret {value!r} as a boolean")


class FlexibleBoolean(TypeDecorator):
    impl = Boolean
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return to_bool(value)

    def process_result_value(self, value, dialect):
        return to_bool(value)
