from __future__ import annotations

import abc
import inspect
import logging
import typing
from types import FunctionType
from typing import Any, Callable, Iterable, Protocol

from proxysynth.exceptions import ConfigurationError, SignatureResolutionError
from proxysynth.invariants import never
from proxysynth.synthesis.model import (
    MethodConflict,
    MethodSignature,
    MethodTable,
    ParameterSpec,
)

logger = logging.getLogger(__name__)

FRAMEWORK_BASES: frozenset[type] = frozenset({object, Protocol, typing.Generic, abc.ABC})

# Names the generated class owns itself; contracts cannot route them to a handler.
RESERVED_NAMES: frozenset[str] = frozenset(
    {
        "__init__",
        "__new__",
        "__init_subclass__",
        "__class_getitem__",
        "__subclasshook__",
        "__getattribute__",
        "__getattr__",
        "__setattr__",
        "__delattr__",
        "__del__",
        "__reduce__",
        "__reduce_ex__",
        "__getstate__",
        "__setstate__",
        "__dir__",
        "__sizeof__",
    }
)

_FAILURES_ATTR = "__proxysynth_failures__"


def declares_failures(*kinds: type[BaseException]) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Record the failure kinds a contract method documents.

    The kinds end up in ``MethodSignature.failure_kinds``. They are metadata
    only; nothing is enforced at call time.
    """
    for kind in kinds:
        if not (isinstance(kind, type) and issubclass(kind, BaseException)):
            raise ConfigurationError(f"failure kind must be an exception class, got {kind!r}")

    def decorate(function: Callable[..., Any]) -> Callable[..., Any]:
        setattr(function, _FAILURES_ATTR, tuple(kinds))
        return function

    return decorate


def is_dunder(name: str) -> bool:
    return len(name) > 4 and name.startswith("__") and name.endswith("__")


def contract_functions(contract: type) -> list[tuple[type, str, FunctionType]]:
    """Return (declaring, name, function) for every proxiable method of ``contract``.

    The most derived definition of each name wins; a name shadowed by a
    static or class method is not proxiable.
    """
    seen: set[str] = set()
    found: list[tuple[type, str, FunctionType]] = []
    for klass in contract.__mro__:
        if klass in FRAMEWORK_BASES:
            continue
        for name, value in vars(klass).items():
            if name in seen:
                continue
            seen.add(name)
            if name in RESERVED_NAMES or not isinstance(value, FunctionType):
                continue
            found.append((klass, name, value))
    return found


def _type_hints(function: FunctionType) -> dict[str, object]:
    try:
        return typing.get_type_hints(function)
    except (NameError, TypeError, AttributeError):
        # Unresolvable forward references stay as strings and are not narrowed.
        return dict(getattr(function, "__annotations__", {}) or {})


def _normalize_return(hint: object) -> object:
    if hint is type(None):
        return None
    return hint


def method_signature(declaring: type, name: str, function: FunctionType) -> MethodSignature:
    try:
        signature = inspect.signature(function)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"{declaring.__qualname__}.{name} has no inspectable signature"
        ) from exc
    params = list(signature.parameters.values())
    if not params or params[0].kind not in (
        inspect.Parameter.POSITIONAL_ONLY,
        inspect.Parameter.POSITIONAL_OR_KEYWORD,
    ):
        raise ConfigurationError(
            f"{declaring.__qualname__}.{name} does not take the instance as first parameter"
        )
    hints = _type_hints(function)
    specs = tuple(
        ParameterSpec(
            name=param.name,
            kind=param.kind,
            annotation=hints.get(param.name, Any),
            default=param.default,
        )
        for param in params[1:]
    )
    return_type = _normalize_return(hints.get("return", Any))
    return MethodSignature(
        declaring=declaring,
        name=name,
        parameters=specs,
        return_type=return_type,
        failure_kinds=tuple(getattr(function, _FAILURES_ATTR, ())),
        function=function,
    )


def _same_parameters(left: MethodSignature, right: MethodSignature) -> bool:
    if len(left.parameters) != len(right.parameters):
        return False
    return all(
        (a.name, a.kind, a.annotation, a.has_default) == (b.name, b.kind, b.annotation, b.has_default)
        for a, b in zip(left.parameters, right.parameters)
    )


def _narrower_return(left: object, right: object) -> tuple[bool, object]:
    if left == right:
        return True, left
    if left is None or right is None:
        return False, None
    if left is Any:
        return True, right
    if right is Any:
        return True, left
    if isinstance(left, type) and isinstance(right, type):
        if right in left.__mro__:
            return True, left
        if left in right.__mro__:
            return True, right
    return False, None


def build_method_table(contracts: Iterable[type]) -> MethodTable:
    """Merge the methods of ``contracts`` into one signature per name.

    Compatible duplicates collapse to the signature with the narrowest return
    type. Same-named methods with different parameters, or with return types
    neither of which is a subclass of the other, are recorded as conflicts;
    the first signature seen stays in the table.
    """
    by_name: dict[str, MethodSignature] = {}
    conflicts: list[MethodConflict] = []
    for contract in contracts:
        for declaring, name, function in contract_functions(contract):
            candidate = method_signature(declaring, name, function)
            current = by_name.get(name)
            if current is None:
                by_name[name] = candidate
                continue
            if current.function is function:
                continue
            if not _same_parameters(current, candidate):
                conflicts.append(
                    MethodConflict(name, current, candidate, "methods differ in parameters")
                )
                continue
            compatible, narrowest = _narrower_return(current.return_type, candidate.return_type)
            if not compatible:
                conflicts.append(
                    MethodConflict(name, current, candidate, "incompatible return types")
                )
            elif narrowest is not current.return_type and narrowest == candidate.return_type:
                by_name[name] = candidate
    table = MethodTable(signatures=tuple(by_name.values()), conflicts=tuple(conflicts))
    logger.debug(
        "method table built: %d signatures, %d conflicts", len(table.signatures), len(table.conflicts)
    )
    return table


def resolve_signature(declaring: type, name: str, parameter_types: tuple[object, ...]) -> MethodSignature:
    """Look ``name`` up on ``declaring`` by name and parameter types.

    Called from the body of every generated class. The contract was
    validated before synthesis, so a miss here is an engine bug.
    """
    function = vars(declaring).get(name)
    if not isinstance(function, FunctionType):
        never(
            f"no method {name} on {declaring.__qualname__}",
            error=SignatureResolutionError,
            declaring=declaring.__qualname__,
            method=name,
        )
    signature = method_signature(declaring, name, function)
    if signature.parameter_types != tuple(parameter_types):
        never(
            f"parameter types of {declaring.__qualname__}.{name} changed since synthesis",
            error=SignatureResolutionError,
            declaring=declaring.__qualname__,
            method=name,
        )
    return signature
