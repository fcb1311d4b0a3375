"""Exception hierarchy for proxysynth."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

_EMPTY_ENV: Mapping[str, object] = MappingProxyType({})


class ProxySynthError(Exception):
    """Base class of every error raised by the engine itself."""


class ConfigurationError(ProxySynthError, ValueError):
    """The requested contract set or the engine configuration is invalid."""


class NullPointerError(ProxySynthError, TypeError):
    """A required argument was ``None``."""


class ContractViolationError(ProxySynthError, TypeError):
    """A value handed across the proxy does not fit the declared type.

    Raised when an interception handler returns something the contract method
    cannot return, or when a handler feeds an invoker an argument the
    underlying method does not accept. The fault lies with the handler, not
    with the engine.
    """

    def __init__(self, message: str, *, method: str = "", expected: object = None, actual: object = None):
        super().__init__(message)
        self.method = method
        self.expected = expected
        self.actual = actual


class InternalEngineError(ProxySynthError, RuntimeError):
    """Sentinel exception for paths that should be unreachable.

    Raising this signals a bug in the engine rather than a mistake by the
    caller. Ordinary callers are not expected to catch it.
    """

    def __init__(self, message: str, *, env: Mapping[str, object] = _EMPTY_ENV):
        super().__init__(message)
        self.env = dict(env)


class IllegalStateError(InternalEngineError):
    """A class was about to be defined under a name that is already taken."""


class SignatureResolutionError(InternalEngineError):
    """A contract method could not be resolved while initializing a class."""


class FatalLoadError(InternalEngineError):
    """A synthesized class is structurally invalid and could not be loaded."""
