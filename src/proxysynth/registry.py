from __future__ import annotations

import inspect
import threading
from typing import Callable, Generic, Hashable, TypeVar

from proxysynth.exceptions import InternalEngineError
from proxysynth.invariants import never, require_not_none
from proxysynth.synthesis.emission import HANDLER_SLOT
from proxysynth.synthesis.model import GeneratedType

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Constructor = Callable[[object], object]


class _GatedMemo(Generic[K, V]):
    """Append-only memo with one gate per key.

    The first caller for a key computes the value while holding the key's
    gate; concurrent callers for that key wait on the gate and then read the
    stored value. A failed computation stores nothing.
    """

    def __init__(self) -> None:
        self._entries: dict[K, V] = {}
        self._gates: dict[K, threading.Lock] = {}
        self._guard = threading.Lock()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: K) -> V | None:
        return self._entries.get(key)

    def _gate(self, key: K) -> threading.Lock:
        with self._guard:
            gate = self._gates.get(key)
            if gate is None:
                gate = self._gates[key] = threading.Lock()
            return gate

    def get_or_create(self, key: K, factory: Callable[[], V]) -> V:
        value = self._entries.get(key)
        if value is not None:
            return value
        with self._gate(key):
            value = self._entries.get(key)
            if value is None:
                value = factory()
                with self._guard:
                    self._entries[key] = value
        return value

    def values(self) -> tuple[V, ...]:
        with self._guard:
            return tuple(self._entries.values())


class TypeCache(_GatedMemo[tuple[object, tuple[type, ...]], GeneratedType]):
    """(loading context, canonical contracts) -> generated type."""


class ConstructorCache(_GatedMemo[type, Constructor]):
    """Generated class -> instantiation function."""


def resolve_constructor(cls: type) -> Constructor:
    init = vars(cls).get("__init__")
    if init is None:
        never(f"{cls.__qualname__} has no constructor", error=InternalEngineError)
    params = list(inspect.signature(init).parameters)
    if params != ["self", "handler"]:
        never(
            f"{cls.__qualname__} constructor takes {params}, expected a single handler",
            error=InternalEngineError,
        )
    return cls


class Registry:
    def __init__(self) -> None:
        self.types = TypeCache()
        self.constructors = ConstructorCache()

    def constructor_for(self, cls: type) -> Constructor:
        return self.constructors.get_or_create(cls, lambda: resolve_constructor(cls))

    def is_generated_type(self, cls: type) -> bool:
        return require_not_none(cls, "cls") in self.constructors

    def is_generated_instance(self, obj: object) -> bool:
        return type(require_not_none(obj, "obj")) in self.constructors

    def handler_of(self, proxy: object) -> object:
        if not self.is_generated_instance(proxy):
            return None
        return object.__getattribute__(proxy, HANDLER_SLOT)

    def generated_types(self) -> tuple[GeneratedType, ...]:
        return self.types.values()
