from __future__ import annotations

import importlib
import linecache
import logging
import sys
import threading
from typing import Protocol

from proxysynth.exceptions import (
    ConfigurationError,
    FatalLoadError,
    IllegalStateError,
    InternalEngineError,
)
from proxysynth.invariants import never
from proxysynth.synthesis.model import ClassDefinition

logger = logging.getLogger(__name__)


class LoadingContext:
    """An isolated, append-only namespace of generated classes.

    Class identity is scoped to a context: the same contract set requested
    against two contexts yields two classes. Names are never redefined.
    """

    def __init__(self, name: str = "default") -> None:
        self.name = name
        self._classes: dict[str, type] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def __repr__(self) -> str:
        return f"LoadingContext({self.name!r})"

    def __contains__(self, qualified_name: object) -> bool:
        return qualified_name in self._classes

    def loading_lock(self, qualified_name: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(qualified_name)
            if lock is None:
                lock = self._locks[qualified_name] = threading.Lock()
            return lock

    def find_loaded(self, qualified_name: str) -> type | None:
        return self._classes.get(qualified_name)

    def record(self, qualified_name: str, cls: type) -> None:
        with self._guard:
            existing = self._classes.get(qualified_name)
            if existing is not None:
                never(
                    f"cannot define already loaded type: {existing!r}",
                    error=IllegalStateError,
                    context=self.name,
                    name=qualified_name,
                )
            self._classes[qualified_name] = cls

    def loaded_names(self) -> tuple[str, ...]:
        with self._guard:
            return tuple(self._classes)


class DefinitionPort(Protocol):
    def define(self, context: LoadingContext, definition: ClassDefinition) -> type: ...


class ExecDefinitionPort:
    """Loads a definition by compiling and executing its source.

    The source is registered with :mod:`linecache` so tracebacks through
    generated methods show the generated lines. The class is reachable only
    through the loading context. Its ``__module__`` is still the chosen
    namespace, which for non-public contracts is their own module, even
    though nothing is added to that module.
    """

    def define(self, context: LoadingContext, definition: ClassDefinition) -> type:
        filename = f"<proxysynth {context.name}:{definition.qualified_name}>"
        source = definition.source
        linecache.cache[filename] = (len(source), None, source.splitlines(True), filename)
        code = compile(source, filename, "exec")
        namespace = dict(definition.namespace)
        exec(code, namespace)
        return namespace[definition.name]


class ModuleInjectionPort(ExecDefinitionPort):
    """Also publishes each class as an attribute of its target module.

    This writes into a module the engine does not own, which is what lets a
    generated class for non-public contracts live next to them. The
    engine-owned namespace must be importable when the port is built; any
    other module must already be loaded.
    """

    def __init__(self, engine_namespace: str) -> None:
        try:
            importlib.import_module(engine_namespace)
        except ImportError as exc:
            raise ConfigurationError(
                f"engine namespace {engine_namespace!r} is not an importable module: {exc}"
            ) from exc
        self.engine_namespace = engine_namespace

    def define(self, context: LoadingContext, definition: ClassDefinition) -> type:
        cls = super().define(context, definition)
        module = sys.modules.get(definition.module)
        if module is None:
            logger.debug("module %s not loaded; %s stays unpublished", definition.module, definition.name)
            return cls
        if hasattr(module, definition.name):
            never(
                f"{definition.module} already has an attribute {definition.name}",
                error=IllegalStateError,
                name=definition.qualified_name,
            )
        setattr(module, definition.name, cls)
        return cls


class LinkageManager:
    def __init__(self, port: DefinitionPort) -> None:
        self.port = port

    def define(self, context: LoadingContext, definition: ClassDefinition) -> type:
        """Load ``definition`` into ``context`` exactly once.

        Names are allocated uniquely before synthesis, so finding one taken
        is an engine bug and raises :class:`IllegalStateError`.
        """
        name = definition.qualified_name
        with context.loading_lock(name):
            existing = context.find_loaded(name)
            if existing is not None:
                never(
                    f"cannot define already loaded type: {existing!r}",
                    error=IllegalStateError,
                    context=context.name,
                    name=name,
                )
            try:
                cls = self.port.define(context, definition)
            except InternalEngineError:
                raise
            except Exception as exc:
                raise FatalLoadError(
                    f"failed to load {name}: {exc}",
                    env={"context": context.name, "name": name},
                ) from exc
            context.record(name, cls)
        logger.info("defined %s in %r", name, context)
        return cls
