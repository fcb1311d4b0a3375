"""Exact value narrowing for values crossing a proxy boundary.

Every contract parameter and return type is turned, once per generated
class, into a narrowing function ``narrow(value) -> value`` that either
hands the value back unchanged or raises ``ContractViolationError``. No
value is ever coerced: ``int`` rejects ``bool`` and a concrete type rejects
``None``. Arguments follow the numeric tower, so an ``int`` fits a ``float``
parameter and an ``int`` or ``float`` fits a ``complex`` one. Return values
are exact: a handler returning ``2`` for ``-> float`` is rejected. Hints
that cannot be checked at runtime (``Any``, bare ``TypeVar``s, non-runtime
protocols, unresolved forward references) produce no narrower at all, and
the emitter leaves the call out of the generated source.
"""

from __future__ import annotations

import collections.abc
import types
import typing
from typing import Any, Callable, Optional

from proxysynth.exceptions import ContractViolationError

Predicate = Callable[[object], bool]
Narrower = Callable[[object], object]

# Exact scalar types: a subclass instance is not accepted.
_EXACT_SCALARS: dict[type, tuple[type, ...]] = {
    int: (bool,),
}
# Argument-side widening along the numeric tower; bool never widens.
_WIDENED_SCALARS: dict[type, tuple[type, ...]] = {
    float: (float, int),
    complex: (complex, float, int),
}
_PASS_THROUGH_FORMS = {
    Any,
    typing.NoReturn,
    typing.ClassVar,
    typing.Final,
}
for _name in ("Never", "LiteralString", "Self"):
    if hasattr(typing, _name):
        _PASS_THROUGH_FORMS.add(getattr(typing, _name))


def describe_hint(hint: object) -> str:
    if hint is None or hint is type(None):
        return "None"
    if isinstance(hint, type):
        return hint.__qualname__
    return repr(hint).replace("typing.", "")


def _is_pass_through(hint: object) -> bool:
    try:
        return hint in _PASS_THROUGH_FORMS
    except TypeError:
        return False


def _class_predicate(hint: type, widening: bool) -> Optional[Predicate]:
    if hint is object:
        return None
    if getattr(hint, "_is_protocol", False) and not getattr(hint, "_is_runtime_protocol", False):
        return None
    accepted = _WIDENED_SCALARS.get(hint) if widening else None
    if accepted:
        return lambda value: isinstance(value, accepted) and not isinstance(value, bool)
    excluded = _EXACT_SCALARS.get(hint)
    if excluded:
        return lambda value: isinstance(value, hint) and not isinstance(value, excluded)
    return lambda value: isinstance(value, hint)


def _union_predicate(members: tuple[object, ...], widening: bool) -> Optional[Predicate]:
    predicates = []
    for member in members:
        predicate = predicate_for(member, widening=widening)
        if predicate is None:
            return None
        predicates.append(predicate)
    return lambda value: any(predicate(value) for predicate in predicates)


def predicate_for(hint: object, *, widening: bool = False) -> Optional[Predicate]:
    """Return a membership test for ``hint``, or ``None`` when anything fits.

    ``widening`` accepts numeric-tower promotions for argument values.
    """
    if hint is None or hint is type(None):
        return lambda value: value is None
    if isinstance(hint, (str, typing.ForwardRef)) or _is_pass_through(hint):
        return None
    if isinstance(hint, typing.TypeVar):
        if hint.__bound__ is not None:
            return predicate_for(hint.__bound__, widening=widening)
        if hint.__constraints__:
            return _union_predicate(hint.__constraints__, widening)
        return None
    supertype = getattr(hint, "__supertype__", None)
    if supertype is not None:
        return predicate_for(supertype, widening=widening)
    origin = typing.get_origin(hint)
    if origin is not None:
        args = typing.get_args(hint)
        if origin is typing.Union or origin is types.UnionType:
            return _union_predicate(args, widening)
        if origin is typing.Literal:
            return lambda value: any(value == arg and type(value) is type(arg) for arg in args)
        if origin is typing.Annotated:
            return predicate_for(args[0], widening=widening)
        if _is_pass_through(origin):
            return None
        if origin is collections.abc.Callable:
            return callable
        if isinstance(origin, type):
            return _class_predicate(origin, widening)
        return None
    if isinstance(hint, type):
        return _class_predicate(hint, widening)
    return None


def narrower_for(hint: object, *, where: str, widening: bool = False) -> Optional[Narrower]:
    predicate = predicate_for(hint, widening=widening)
    if predicate is None:
        return None
    expected = describe_hint(hint)

    def narrow(value: object) -> object:
        if predicate(value):
            return value
        raise ContractViolationError(
            f"{where}: expected {expected}, got {type(value).__name__}",
            method=where,
            expected=hint,
            actual=value,
        )

    narrow.__qualname__ = f"narrow[{expected}]"
    return narrow
