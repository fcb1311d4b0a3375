"""Public entry points: synthesize, cache and instantiate proxies.

To create a proxy for some contract ``Foo``::

    proxy = create_proxy(default_context(), [Foo], handler)
    proxy.bar("hello")  # -> handler.intercept(proxy, <Foo.bar>, invoker, ("hello",))

Each :class:`Engine` owns its registries; the module-level functions share
one lazily created default engine.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Iterable, Mapping

from proxysynth.config import load_settings
from proxysynth.exceptions import ConfigurationError, InternalEngineError
from proxysynth.handlers import InterceptionHandler, as_handler
from proxysynth.invariants import require_all_not_none, require_not_none
from proxysynth.linkage import (
    DefinitionPort,
    ExecDefinitionPort,
    LinkageManager,
    LoadingContext,
    ModuleInjectionPort,
)
from proxysynth.registry import Registry
from proxysynth.schema import EngineSettings
from proxysynth.synthesis.emission import synthesize
from proxysynth.synthesis.methods import build_method_table
from proxysynth.synthesis.model import ContractSet, GeneratedType
from proxysynth.synthesis.normalize import (
    allocate_class_name,
    check_conflicts,
    normalize_contracts,
)

logger = logging.getLogger(__name__)


class Engine:
    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        port: DefinitionPort | None = None,
    ) -> None:
        self.settings = settings if settings is not None else EngineSettings()
        if port is None:
            if self.settings.publish_to_modules:
                port = ModuleInjectionPort(self.settings.namespace)
            else:
                port = ExecDefinitionPort()
        self.registry = Registry()
        self.linkage = LinkageManager(port)

    @classmethod
    def from_config(
        cls,
        root: Path | None = None,
        config_path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> Engine:
        return cls(load_settings(root=root, config_path=config_path, environ=environ))

    def create_proxy(
        self,
        context: LoadingContext,
        contracts: Iterable[type],
        handler: object,
    ) -> object:
        """Return a proxy implementing ``contracts`` that forwards to ``handler``.

        ``handler`` is an :class:`InterceptionHandler` or a plain callable
        taking ``(proxy, method, invoker, args)``.
        """
        require_not_none(context, "context")
        requested = require_all_not_none(contracts, "contracts")
        require_not_none(handler, "handler")
        if not isinstance(context, LoadingContext):
            raise ConfigurationError(
                f"context must be a LoadingContext, got {type(context).__name__}"
            )
        interceptor = as_handler(handler)
        contract_set = normalize_contracts(requested, engine_namespace=self.settings.namespace)
        generated = self.registry.types.get_or_create(
            (context, contract_set.contracts),
            lambda: self._generate(context, contract_set),
        )
        constructor = self.registry.constructor_for(generated.cls)
        try:
            return constructor(interceptor)
        except Exception as exc:
            raise InternalEngineError(
                f"failed to instantiate {generated.qualified_name}: {exc}",
                env={"name": generated.qualified_name},
            ) from exc

    def _generate(self, context: LoadingContext, contract_set: ContractSet) -> GeneratedType:
        table = build_method_table(contract_set.contracts)
        check_conflicts(table, self.settings.conflict_policy)
        class_name = allocate_class_name(self.settings.class_prefix)
        definition = synthesize(
            contract_set,
            table,
            class_name,
            check_returns=self.settings.check_returns,
        )
        cls = self.linkage.define(context, definition)
        return GeneratedType(
            cls=cls,
            qualified_name=definition.qualified_name,
            context=context,
            contracts=contract_set,
            signatures=definition.signatures,
        )

    def is_generated_type(self, cls: type) -> bool:
        return self.registry.is_generated_type(cls)

    def is_generated_instance(self, obj: object) -> bool:
        return self.registry.is_generated_instance(obj)

    def handler_of(self, proxy: object) -> InterceptionHandler:
        handler = self.registry.handler_of(require_not_none(proxy, "proxy"))
        if handler is None:
            raise ConfigurationError(f"{type(proxy).__qualname__} is not a generated proxy")
        return handler

    def generated_types(self) -> tuple[GeneratedType, ...]:
        return self.registry.generated_types()


_DEFAULT_LOCK = threading.Lock()
_DEFAULT_ENGINE: Engine | None = None
_DEFAULT_CONTEXT = LoadingContext("default")


def default_engine() -> Engine:
    global _DEFAULT_ENGINE
    with _DEFAULT_LOCK:
        if _DEFAULT_ENGINE is None:
            _DEFAULT_ENGINE = Engine.from_config()
        return _DEFAULT_ENGINE


def default_context() -> LoadingContext:
    return _DEFAULT_CONTEXT


def create_proxy(context: LoadingContext, contracts: Iterable[type], handler: object) -> object:
    return default_engine().create_proxy(context, contracts, handler)


def is_generated_type(cls: type) -> bool:
    return default_engine().is_generated_type(cls)


def is_generated_instance(obj: object) -> bool:
    return default_engine().is_generated_instance(obj)


def handler_of(proxy: object) -> InterceptionHandler:
    return default_engine().handler_of(proxy)
