"""Class synthesis for proxy contracts.

The synthesizer renders one Python module per contract set with libcst. For
a contract ``Foo`` with ``def bar(self, text: str) -> str`` the rendered
source is, in essence::

    class _Proxy0(_ps_c0):
        __slots__ = ('_proxysynth_handler',)
        _proxysynth_m0 = _ps_resolve(_ps_t0, 'bar', _ps_p0)

        def __init__(self, handler):
            _ps_set(self, '_proxysynth_handler', handler)

        def bar(self, text):
            return _ps_r0(self._proxysynth_handler.intercept(
                self, self._proxysynth_m0, _ps_invoke0, (text,)))
        _ps_adopt(bar, _ps_f0)

    def _ps_invoke0(target, args):
        return target.bar(_ps_a0_0(args[0]))

Every ``_ps_*`` name is bound in the definition's globals: contracts,
resolved narrowers, default values and a handful of helpers. Nothing is
looked up reflectively once the class exists.
"""

from __future__ import annotations

import inspect
import keyword
import logging
from typing import Callable, Sequence

import libcst as cst

from proxysynth.exceptions import ConfigurationError, FatalLoadError
from proxysynth.invariants import never
from proxysynth.synthesis.boxing import narrower_for
from proxysynth.synthesis.methods import resolve_signature
from proxysynth.synthesis.model import (
    ClassDefinition,
    ContractSet,
    MethodConflict,
    MethodSignature,
    MethodTable,
    ParameterSpec,
)

logger = logging.getLogger(__name__)

HANDLER_SLOT = "_proxysynth_handler"
SIGNATURE_ATTR_PREFIX = "_proxysynth_m"
_RESERVED_PREFIXES = ("_ps_", "_proxysynth_")

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


def _adopt(method: Callable[..., object], source: Callable[..., object]) -> None:
    method.__doc__ = source.__doc__
    try:
        method.__annotations__ = dict(getattr(source, "__annotations__", None) or {})
    except NameError:
        pass


def _fail_load(conflicts: tuple[MethodConflict, ...]) -> None:
    details = "; ".join(conflict.describe() for conflict in conflicts)
    never(
        f"duplicate method in generated class: {details}",
        error=FatalLoadError,
        methods=[conflict.name for conflict in conflicts],
    )


def _check_identifier(name: str, owner: str) -> None:
    if not name.isidentifier() or keyword.iskeyword(name):
        raise ConfigurationError(f"{owner}: {name!r} is not a valid identifier")
    if name.startswith(_RESERVED_PREFIXES):
        raise ConfigurationError(f"{owner}: {name!r} uses a name reserved for generated code")


def _statements(*lines: str) -> list[cst.BaseStatement]:
    return [cst.parse_statement(line) for line in lines]


def _function(
    name: str,
    parameters: cst.Parameters,
    body: Sequence[cst.BaseStatement],
    *,
    spaced: bool = True,
) -> cst.FunctionDef:
    return cst.FunctionDef(
        name=cst.Name(name),
        params=parameters,
        body=cst.IndentedBlock(body=list(body)),
        leading_lines=[cst.EmptyLine()] if spaced else [],
    )


def _simple_parameters(*names: str) -> cst.Parameters:
    return cst.Parameters(params=[cst.Param(name=cst.Name(name)) for name in names])


def _args_tuple(names: Sequence[str]) -> str:
    if len(names) == 1:
        return f"({names[0]},)"
    return "(" + ", ".join(names) + ")"


class _Emitter:
    def __init__(
        self,
        contract_set: ContractSet,
        table: MethodTable,
        class_name: str,
        *,
        check_returns: bool,
    ) -> None:
        self.contract_set = contract_set
        self.table = table
        self.class_name = class_name
        self.check_returns = check_returns
        self.namespace: dict[str, object] = {
            "__name__": contract_set.namespace,
            "_ps_resolve": resolve_signature,
            "_ps_set": object.__setattr__,
            "_ps_adopt": _adopt,
        }

    def bind(self, name: str, value: object) -> str:
        self.namespace[name] = value
        return name

    def render(self) -> ClassDefinition:
        body: list[cst.BaseStatement] = []
        if self.table.conflicts:
            self.bind("_ps_fail", _fail_load)
            self.bind("_ps_conflicts", self.table.conflicts)
            body.extend(_statements("_ps_fail(_ps_conflicts)"))
        body.extend(_statements(f"__slots__ = ({HANDLER_SLOT!r},)"))
        for index, signature in enumerate(self.table):
            declaring = self.bind(f"_ps_t{index}", signature.declaring)
            types = self.bind(f"_ps_p{index}", signature.parameter_types)
            body.extend(
                _statements(
                    f"{SIGNATURE_ATTR_PREFIX}{index} = _ps_resolve({declaring}, {signature.name!r}, {types})"
                )
            )
        body.extend(self._lifecycle_methods())
        invokers: list[cst.FunctionDef] = []
        for index, signature in enumerate(self.table):
            body.append(self._forwarding_method(index, signature))
            self.bind(f"_ps_f{index}", signature.function)
            body.extend(_statements(f"_ps_adopt({signature.name}, _ps_f{index})"))
            invokers.append(self._invoker(index, signature))
        bases = [
            cst.Arg(value=cst.Name(self.bind(f"_ps_c{index}", base)))
            for index, base in enumerate(self.contract_set.bases)
        ]
        class_def = cst.ClassDef(
            name=cst.Name(self.class_name),
            bases=bases,
            body=cst.IndentedBlock(body=body),
        )
        module = cst.Module(body=[class_def, *invokers])
        return ClassDefinition(
            name=self.class_name,
            module=self.contract_set.namespace,
            source=module.code,
            namespace=dict(self.namespace),
            signatures=self.table.signatures,
        )

    def _lifecycle_methods(self) -> list[cst.FunctionDef]:
        methods = [
            _function(
                "__init__",
                _simple_parameters("self", "handler"),
                _statements(f"_ps_set(self, {HANDLER_SLOT!r}, handler)"),
            ),
            _function(
                "__setattr__",
                _simple_parameters("self", "name", "value"),
                _statements(
                    "raise AttributeError(f'cannot set {name!r}: proxy instances are immutable')"
                ),
            ),
            _function(
                "__delattr__",
                _simple_parameters("self", "name"),
                _statements(
                    "raise AttributeError(f'cannot delete {name!r}: proxy instances are immutable')"
                ),
            ),
        ]
        if "__repr__" not in self.table.names():
            methods.append(
                _function(
                    "__repr__",
                    _simple_parameters("self"),
                    _statements(
                        f"return f'<{{type(self).__qualname__}} handler={{self.{HANDLER_SLOT}!r}}>'"
                    ),
                )
            )
        return methods

    def _parameters(self, receiver: str, signature: MethodSignature, index: int) -> cst.Parameters:
        posonly: list[cst.Param] = []
        regular: list[cst.Param] = []
        kwonly: list[cst.Param] = []
        star_arg: cst.Param | None = None
        star_kwarg: cst.Param | None = None
        for position, spec in enumerate(signature.parameters):
            default = None
            if spec.has_default:
                default = cst.Name(self.bind(f"_ps_d{index}_{position}", spec.default))
            param = cst.Param(name=cst.Name(spec.name), default=default)
            if spec.kind is inspect.Parameter.POSITIONAL_ONLY:
                posonly.append(param)
            elif spec.kind is inspect.Parameter.POSITIONAL_OR_KEYWORD:
                regular.append(param)
            elif spec.kind is inspect.Parameter.VAR_POSITIONAL:
                star_arg = param
            elif spec.kind is inspect.Parameter.KEYWORD_ONLY:
                kwonly.append(param)
            else:
                star_kwarg = param
        receiver_param = cst.Param(name=cst.Name(receiver))
        if posonly:
            posonly.insert(0, receiver_param)
        else:
            regular.insert(0, receiver_param)
        options: dict[str, object] = {
            "posonly_params": posonly,
            "params": regular,
            "kwonly_params": kwonly,
            "star_kwarg": star_kwarg,
        }
        if star_arg is not None:
            options["star_arg"] = star_arg
        return cst.Parameters(**options)

    def _forwarding_method(self, index: int, signature: MethodSignature) -> cst.FunctionDef:
        owner = f"{signature.declaring.__qualname__}.{signature.name}"
        _check_identifier(signature.name, owner)
        names = [spec.name for spec in signature.parameters]
        for name in names:
            _check_identifier(name, owner)
        receiver = "_ps_self" if "self" in names else "self"
        call = (
            f"{receiver}.{HANDLER_SLOT}.intercept("
            f"{receiver}, {receiver}.{SIGNATURE_ATTR_PREFIX}{index}, _ps_invoke{index}, {_args_tuple(names)})"
        )
        if signature.returns_void:
            lines = [call]
        else:
            narrower = None
            if self.check_returns:
                narrower = narrower_for(signature.return_type, where=f"{owner} return value")
            if narrower is None:
                lines = [f"return {call}"]
            else:
                lines = [f"return {self.bind(f'_ps_r{index}', narrower)}({call})"]
        return _function(
            signature.name,
            self._parameters(receiver, signature, index),
            _statements(*lines),
        )

    def _argument(self, index: int, position: int, spec: ParameterSpec, owner: str) -> str:
        item = f"args[{position}]"
        if spec.is_variadic:
            return item
        narrower = narrower_for(
            spec.annotation, where=f"{owner} argument {spec.name!r}", widening=True
        )
        if narrower is None:
            return item
        return f"{self.bind(f'_ps_a{index}_{position}', narrower)}({item})"

    def _invoker(self, index: int, signature: MethodSignature) -> cst.FunctionDef:
        owner = f"{signature.declaring.__qualname__}.{signature.name}"
        pieces: list[str] = []
        for position, spec in enumerate(signature.parameters):
            item = self._argument(index, position, spec, owner)
            if spec.kind in _POSITIONAL:
                pieces.append(item)
            elif spec.kind is inspect.Parameter.VAR_POSITIONAL:
                pieces.append(f"*{item}")
            elif spec.kind is inspect.Parameter.KEYWORD_ONLY:
                pieces.append(f"{spec.name}={item}")
            else:
                pieces.append(f"**{item}")
        call = f"target.{signature.name}({', '.join(pieces)})"
        if signature.returns_void:
            lines = [call, "return None"]
        else:
            lines = [f"return {call}"]
        return _function(
            f"_ps_invoke{index}",
            _simple_parameters("target", "args"),
            _statements(*lines),
        )


def synthesize(
    contract_set: ContractSet,
    table: MethodTable,
    class_name: str,
    *,
    check_returns: bool = True,
) -> ClassDefinition:
    """Render the class implementing ``contract_set``; nothing is loaded yet."""
    definition = _Emitter(contract_set, table, class_name, check_returns=check_returns).render()
    logger.debug(
        "synthesized %s with %d forwarding methods",
        definition.qualified_name,
        len(definition.signatures),
    )
    return definition
