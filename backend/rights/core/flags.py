"""Canonical boolean flag conversion.

Legacy rows and payloads encode flags as 1, "1", "Yes", "true" or True.
Everything crossing the storage or API boundary goes through ``to_flag``.
"""

from typing import Any

from sqlalchemy.types import Boolean, TypeDecorator

TRUE_VALUES = frozenset({"1", "yes", "y", "true", "t", "on"})
FALSE_VALUES = frozenset({"0", "no", "n", "false", "f", "off", ""})


def to_flag(value: Any) -> bool:
    """Convert a legacy flag encoding to ``bool``.

    Raises:
        ValueError: if the value is not a recognised flag encoding
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value in (0, 1):
            return bool(value)
        raise ValueError(f"Integer flag must be 0 or 1, got {value}")
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in TRUE_VALUES:
            return True
        if normalized in FALSE_VALUES:
            return False
    raise ValueError(f"Unrecognised flag value: {value!r}")


class Flag(TypeDecorator):
    """Boolean column that accepts every legacy truthy encoding."""

    impl = Boolean
    cache_ok = True

    def process_bind_param(self, value: Any, dialect):
        if value is None:
            return None
        return to_flag(value)

    def process_result_value(self, value: Any, dialect):
        if value is None:
            return None
        return to_flag(value)

    @property
    def python_type(self) -> type[bool]:
        return bool
