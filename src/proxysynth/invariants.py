"""Invariant markers for the proxy engine."""

from __future__ import annotations

from typing import NoReturn, TypeVar

from proxysynth.exceptions import ConfigurationError, InternalEngineError, NullPointerError

T = TypeVar("T")


def never(
    reason: str = "",
    *,
    error: type[InternalEngineError] = InternalEngineError,
    **env: object,
) -> NoReturn:
    """Mark a code path as unreachable.

    Reaching it means the engine broke one of its own guarantees. The env
    payload is attached to the raised error for diagnostics only.
    """
    raise error(reason or f"{error.__name__} reached", env=env)


def require_not_none(value: T | None, name: str) -> T:
    if value is None:
        raise NullPointerError(f"{name} must not be None")
    return value


def require_all_not_none(values: object, name: str) -> tuple[object, ...]:
    if values is None:
        raise NullPointerError(f"{name} must not be None")
    if isinstance(values, (str, bytes, type)) or not hasattr(values, "__iter__"):
        raise ConfigurationError(f"{name} must be an iterable, got {type(values).__name__}")
    items = tuple(values)
    for index, item in enumerate(items):
        if item is None:
            raise NullPointerError(f"{name}[{index}] must not be None")
    return items
