"""Shared validation helpers for model dataclasses.

Private module, not part of the public API. Used by ``__post_init__``
methods and ``from_dict`` constructors in sibling model modules to enforce
runtime type constraints on relay-supplied data.
"""

from __future__ import annotations

from typing import Any

from .constants import is_hex64


def validate_instance(value: Any, expected: type | tuple[type, ...], name: str) -> None:
    """Raise ``TypeError`` if *value* is not an instance of *expected*."""
    if not isinstance(value, expected):
        names = (
            " or ".join(t.__name__ for t in expected)
            if isinstance(expected, tuple)
            else expected.__name__
        )
        article = "an" if names[0] in "AEIOUaeiou" else "a"
        raise TypeError(f"{name} must be {article} {names}, got {type(value).__name__}")


def validate_timestamp(value: Any, name: str) -> None:
    """Raise if *value* is not a non-negative ``int`` (``bool`` excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")


def validate_hex64(value: Any, name: str) -> None:
    """Raise if *value* is not a lowercase 64-character hex string."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    if not is_hex64(value):
        raise ValueError(f"{name} must be 64 lowercase hex characters")


def validate_str(value: Any, name: str) -> None:
    """Raise ``TypeError`` if *value* is not a ``str``."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
