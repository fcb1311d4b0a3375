"""Collaborator contracts consumed by generated proxies.

Each proxy instance has exactly one interception handler. When a contract
method is called on the proxy, the call is encoded as a method signature, a
pre-resolved invoker and the argument tuple, and dispatched to
:meth:`InterceptionHandler.intercept`::

    class Echo:
        def __init__(self, target):
            self.target = target

        def intercept(self, proxy, method, invoker, args):
            return invoker(self.target, args)

Calling ``invoker(target, args)`` performs the literal method call on
``target`` without any reflective lookup; it is the counterpart of
``getattr(target, method.name)(*args)`` without the per-call cost.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Protocol, runtime_checkable

from proxysynth.exceptions import ConfigurationError

if TYPE_CHECKING:
    from proxysynth.synthesis.model import MethodSignature


@runtime_checkable
class Invoker(Protocol):
    def __call__(self, target: Any, args: tuple[Any, ...]) -> Any:
        """Invoke the bound contract method on ``target`` with ``args``.

        ``args`` has one element per declared parameter; a variadic
        positional parameter occupies one element holding a tuple and a
        variadic keyword parameter one element holding a dict. Returns the
        method result, or ``None`` for methods declared to return ``None``.
        Exceptions raised by the method propagate unwrapped.
        """
        ...


@runtime_checkable
class InterceptionHandler(Protocol):
    def intercept(
        self,
        proxy: Any,
        method: MethodSignature,
        invoker: Invoker,
        args: tuple[Any, ...],
    ) -> Any:
        """Decide the outcome of one call made on ``proxy``.

        Invoked exactly once per forwarded call, synchronously, on the
        calling thread. The returned value must fit the declared return
        type of ``method``; otherwise the proxy raises
        ``ContractViolationError``. Anything raised here reaches the
        original caller unchanged.
        """
        ...


@dataclass(frozen=True)
class FunctionHandler:
    """Adapts a plain four-argument callable to :class:`InterceptionHandler`."""

    function: Callable[[Any, "MethodSignature", Invoker, tuple[Any, ...]], Any]

    def intercept(self, proxy, method, invoker, args):
        return self.function(proxy, method, invoker, args)


def as_handler(handler: object) -> InterceptionHandler:
    intercept = getattr(handler, "intercept", None)
    if callable(intercept):
        return handler  # type: ignore[return-value]
    if callable(handler):
        return FunctionHandler(handler)
    raise ConfigurationError(
        f"handler must define intercept() or be callable, got {type(handler).__name__}"
    )
