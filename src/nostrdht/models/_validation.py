"""Shared validation helpers for frozen dataclass models.

Private module, used only by ``__post_init__`` methods in sibling model
modules to enforce runtime type and format constraints.
"""

from __future__ import annotations

from typing import Any


_HEX_DIGITS = frozenset("0123456789abcdef")


def validate_instance(value: Any, expected: type | tuple[type, ...], name: str) -> None:
    """Raise ``TypeError`` if *value* is not an instance of *expected*."""
    if not isinstance(value, expected):
        names = (
            " or ".join(t.__name__ for t in expected)
            if isinstance(expected, tuple)
            else expected.__name__
        )
        raise TypeError(f"{name} must be {names}, got {type(value).__name__}")


def validate_int(value: Any, name: str, *, minimum: int = 0, maximum: int | None = None) -> None:
    """Raise if *value* is not an ``int`` (``bool`` excluded) within bounds."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    if maximum is not None and value > maximum:
        raise ValueError(f"{name} must be <= {maximum}, got {value}")


def validate_hex(value: Any, name: str, length: int) -> None:
    """Raise if *value* is not a lowercase hex string of exactly *length* chars."""
    validate_instance(value, str, name)
    if len(value) != length:
        raise ValueError(f"{name} must be {length} hex characters, got {len(value)}")
    if not _HEX_DIGITS.issuperset(value):
        raise ValueError(f"{name} must be lowercase hex")


def validate_str_not_empty(value: Any, name: str) -> None:
    """Raise if *value* is not a non-empty ``str``."""
    validate_instance(value, str, name)
    if not value:
        raise ValueError(f"{name} must not be empty")
