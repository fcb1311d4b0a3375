"""proxysynth package root."""

from proxysynth.engine import (
    Engine,
    create_proxy,
    default_context,
    default_engine,
    handler_of,
    is_generated_instance,
    is_generated_type,
)
from proxysynth.exceptions import (
    ConfigurationError,
    ContractViolationError,
    FatalLoadError,
    IllegalStateError,
    InternalEngineError,
    NullPointerError,
    ProxySynthError,
    SignatureResolutionError,
)
from proxysynth.handlers import FunctionHandler, InterceptionHandler, Invoker
from proxysynth.linkage import LoadingContext
from proxysynth.schema import EngineSettings
from proxysynth.synthesis.methods import declares_failures
from proxysynth.synthesis.model import MethodSignature

__all__ = [
    "__version__",
    "ConfigurationError",
    "ContractViolationError",
    "Engine",
    "EngineSettings",
    "FatalLoadError",
    "FunctionHandler",
    "IllegalStateError",
    "InterceptionHandler",
    "InternalEngineError",
    "Invoker",
    "LoadingContext",
    "MethodSignature",
    "NullPointerError",
    "ProxySynthError",
    "SignatureResolutionError",
    "create_proxy",
    "declares_failures",
    "default_context",
    "default_engine",
    "handler_of",
    "is_generated_instance",
    "is_generated_type",
]

__version__ = "0.1.0"
