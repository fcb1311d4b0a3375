from __future__ import annotations

import abc
import inspect
import itertools
import logging
import threading
from types import FunctionType
from typing import Iterable, Literal

from proxysynth.exceptions import ConfigurationError
from proxysynth.synthesis.methods import FRAMEWORK_BASES, RESERVED_NAMES, is_dunder
from proxysynth.synthesis.model import ContractSet, MethodTable

logger = logging.getLogger(__name__)

ConflictPolicy = Literal["eager", "deferred"]

# Bookkeeping that ABCMeta and typing.Protocol store on every class.
_METADATA_NAMES = frozenset({"_abc_impl", "_is_protocol", "_is_runtime_protocol"})
_PROTOCOL_INIT_NAMES = frozenset({"_no_init", "_no_init_or_replace_init"})

_CLASS_COUNTER = itertools.count()
_CLASS_COUNTER_LOCK = threading.Lock()


def next_class_index() -> int:
    with _CLASS_COUNTER_LOCK:
        return next(_CLASS_COUNTER)


def qualified_name(contract: type) -> str:
    return f"{contract.__module__}.{contract.__qualname__}"


def is_public(contract: type) -> bool:
    return not any(part.startswith("_") for part in contract.__qualname__.split("."))


def _declared_annotations(klass: type) -> dict[str, object]:
    try:
        return dict(inspect.get_annotations(klass))
    except NameError:
        # Lazily evaluated annotations naming something undefined still declare state.
        return {"<unresolved>": None}


def _member_problem(klass: type, name: str, value: object) -> str | None:
    if name == "__init__":
        if isinstance(value, FunctionType) and value.__name__ in _PROTOCOL_INIT_NAMES:
            return None
        return "declares __init__"
    if name == "__slots__":
        return "declares __slots__" if value else None
    if name in RESERVED_NAMES and getattr(value, "__isabstractmethod__", False):
        return f"declares abstract {name}, which proxies cannot forward"
    if is_dunder(name) or name in _METADATA_NAMES:
        return None
    if isinstance(value, FunctionType):
        return None
    if isinstance(value, (staticmethod, classmethod)):
        if getattr(value, "__isabstractmethod__", False):
            return f"declares abstract {type(value).__name__} {name}"
        return None
    if isinstance(value, property):
        return f"declares property {name}"
    return f"declares data member {name}"


def contract_problem(candidate: object) -> str | None:
    """Return why ``candidate`` is not interface-like, or ``None`` if it is."""
    if not inspect.isclass(candidate):
        return "is not a class"
    if candidate in FRAMEWORK_BASES:
        return "is a framework base class"
    if not isinstance(candidate, abc.ABCMeta):
        return "is not an ABC or Protocol"
    for klass in candidate.__mro__:
        if klass in FRAMEWORK_BASES:
            continue
        if _declared_annotations(klass):
            return f"declares fields on {klass.__qualname__}"
        for name, value in vars(klass).items():
            problem = _member_problem(klass, name, value)
            if problem is not None:
                return problem
    return None


def is_contract(candidate: object) -> bool:
    return contract_problem(candidate) is None


def _describe(candidate: object) -> str:
    if inspect.isclass(candidate):
        return qualified_name(candidate)
    return repr(candidate)


def _canonical_key(contract: type) -> tuple[str, int]:
    return (qualified_name(contract), id(contract))


def _bases(contracts: tuple[type, ...]) -> tuple[type, ...]:
    # A contract that another requested contract already inherits from is
    # implied by it and would make the class statement's MRO inconsistent.
    return tuple(
        contract
        for contract in contracts
        if not any(other is not contract and contract in other.__mro__ for other in contracts)
    )


def normalize_contracts(contracts: Iterable[type], *, engine_namespace: str) -> ContractSet:
    """Validate a requested contract list and put it in canonical order.

    The generated class lives in the enclosing module of the non-public
    contracts when there are any, otherwise in ``engine_namespace``.
    """
    requested = tuple(contracts)
    shared_module: str | None = None
    seen: set[int] = set()
    for contract in requested:
        problem = contract_problem(contract)
        if problem is not None:
            raise ConfigurationError(f"{_describe(contract)} is not an interface: {problem}")
        if not is_public(contract):
            module = contract.__module__
            if shared_module is None:
                shared_module = module
            elif module != shared_module:
                raise ConfigurationError("non-public interfaces from different modules")
        if id(contract) in seen:
            raise ConfigurationError(f"repeated interface: {qualified_name(contract)}")
        seen.add(id(contract))
    ordered = tuple(sorted(requested, key=_canonical_key))
    contract_set = ContractSet(
        contracts=ordered,
        namespace=shared_module if shared_module is not None else engine_namespace,
        bases=_bases(ordered),
        non_public=shared_module is not None,
    )
    logger.debug(
        "normalized %d contracts into namespace %s", len(contract_set), contract_set.namespace
    )
    return contract_set


def check_conflicts(table: MethodTable, policy: ConflictPolicy) -> None:
    """Reject a conflicting method table up front under the eager policy.

    Under the deferred policy conflicts are left to the generated class
    body, which fails when the class is loaded.
    """
    if policy == "eager" and table.conflicts:
        details = "; ".join(conflict.describe() for conflict in table.conflicts)
        raise ConfigurationError(f"conflicting contract methods: {details}")


def allocate_class_name(prefix: str) -> str:
    return f"{prefix}{next_class_index()}"
