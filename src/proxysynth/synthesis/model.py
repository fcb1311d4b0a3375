from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Iterator, Mapping

if TYPE_CHECKING:
    from proxysynth.linkage import LoadingContext

ParameterKind = inspect._ParameterKind


@dataclass(frozen=True)
class ParameterSpec:
    name: str
    kind: ParameterKind
    annotation: object = Any
    default: object = field(default=inspect.Parameter.empty, compare=False)

    @property
    def has_default(self) -> bool:
        return self.default is not inspect.Parameter.empty

    @property
    def is_variadic(self) -> bool:
        return self.kind in (
            inspect.Parameter.VAR_POSITIONAL,
            inspect.Parameter.VAR_KEYWORD,
        )


@dataclass(frozen=True)
class MethodSignature:
    """Descriptor of one contract method, handed to interception handlers.

    Identity is structural: two signatures are equal when they name the same
    method on the same declaring contract with the same parameter and return
    types. ``function`` is the contract's own function object, kept for
    handlers that want to introspect it.
    """

    declaring: type
    name: str
    parameters: tuple[ParameterSpec, ...]
    return_type: object = Any
    failure_kinds: tuple[type[BaseException], ...] = field(default=(), compare=False)
    function: Callable[..., Any] | None = field(default=None, compare=False, repr=False)

    @property
    def parameter_types(self) -> tuple[object, ...]:
        return tuple(param.annotation for param in self.parameters)

    @property
    def returns_void(self) -> bool:
        return self.return_type is None

    @property
    def qualified_name(self) -> str:
        return f"{self.declaring.__module__}.{self.declaring.__qualname__}.{self.name}"

    def __str__(self) -> str:
        params = ", ".join(_describe(param.annotation) for param in self.parameters)
        return f"{self.declaring.__qualname__}.{self.name}({params}) -> {_describe(self.return_type)}"


@dataclass(frozen=True)
class MethodConflict:
    name: str
    first: MethodSignature
    second: MethodSignature
    reason: str

    def describe(self) -> str:
        return f"{self.reason}: {self.first} and {self.second}"


@dataclass(frozen=True)
class MethodTable:
    signatures: tuple[MethodSignature, ...] = ()
    conflicts: tuple[MethodConflict, ...] = ()

    def __iter__(self) -> Iterator[MethodSignature]:
        return iter(self.signatures)

    def __len__(self) -> int:
        return len(self.signatures)

    def names(self) -> frozenset[str]:
        return frozenset(signature.name for signature in self.signatures)


@dataclass(frozen=True)
class ContractSet:
    """Canonically ordered, deduplicated contracts of one proxy request."""

    contracts: tuple[type, ...]
    namespace: str
    bases: tuple[type, ...]
    non_public: bool = False

    def __iter__(self) -> Iterator[type]:
        return iter(self.contracts)

    def __len__(self) -> int:
        return len(self.contracts)


@dataclass(frozen=True, eq=False)
class ClassDefinition:
    """Rendered, not yet loaded, source of one generated proxy class."""

    name: str
    module: str
    source: str
    namespace: Mapping[str, object]
    signatures: tuple[MethodSignature, ...]

    @property
    def qualified_name(self) -> str:
        return f"{self.module}.{self.name}"


@dataclass(frozen=True, eq=False)
class GeneratedType:
    cls: type
    qualified_name: str
    context: LoadingContext
    contracts: ContractSet
    signatures: tuple[MethodSignature, ...]


def _describe(hint: object) -> str:
    if hint is None:
        return "None"
    if hint is Any:
        return "Any"
    if isinstance(hint, type):
        return hint.__qualname__
    return repr(hint).replace("typing.", "")
