"""
Query keys.

A query key is an ordered tuple of primitive values such as
``("campaigns",)`` or ``("loyalty", "balance", "u1")``. Keys are
hierarchical by convention: a shorter key acts as a prefix that matches
every key beginning with the same elements, which is what bulk
invalidation relies on.
"""

from __future__ import annotations

from typing import Any, Iterable, Union

from dashsync.core.errors import ValidationFailure


Primitive = Union[str, int, float, bool, None]
QueryKey = tuple[Primitive, ...]
KeyLike = Union[QueryKey, list, str]

_PRIMITIVES = (str, int, float, bool, type(None))


def normalize_key(key: KeyLike) -> QueryKey:
    """
    Convert a key-like value into a canonical QueryKey.

    A bare string is treated as a single-element key.

    Args:
        key: Tuple, list or string

    Returns:
        The key as a tuple

    Raises:
        ValidationFailure: If the key is empty or holds non-primitive elements
    """
    if isinstance(key, str):
        key = (key,)
    elif isinstance(key, (list, tuple)):
        key = tuple(key)
    else:
        raise ValidationFailure(f"Query key must be a sequence, got {type(key).__name__}", key=key)

    if not key:
        raise ValidationFailure("Query key must not be empty", key=key)

    for part in key:
        if not isinstance(part, _PRIMITIVES):
            raise ValidationFailure(
                f"Query key elements must be primitive values, got {type(part).__name__}",
                key=key,
            )

    return key


def matches_prefix(key: QueryKey, prefix: QueryKey) -> bool:
    """Check whether ``prefix`` is a leading slice of ``key``."""
    return len(prefix) <= len(key) and key[: len(prefix)] == prefix


def filter_keys(keys: Iterable[QueryKey], prefix: QueryKey, exact: bool = False) -> list[QueryKey]:
    """
    Select the keys targeted by an invalidation.

    Args:
        keys: Candidate keys
        prefix: Target key or prefix
        exact: Only match the target key itself

    Returns:
        Matching keys in iteration order
    """
    if exact:
        return [k for k in keys if k == prefix]
    return [k for k in keys if matches_prefix(k, prefix)]


def format_key(key: Any) -> str:
    """Render a key for log messages."""
    if isinstance(key, tuple):
        return "[" + ", ".join(repr(part) for part in key) + "]"
    return repr(key)
