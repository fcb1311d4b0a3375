from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

import pytest

import proxysynth
from proxysynth.engine import Engine
from proxysynth.exceptions import (
    ConfigurationError,
    ContractViolationError,
    FatalLoadError,
    NullPointerError,
)
from proxysynth.handlers import FunctionHandler
from proxysynth.linkage import LoadingContext
from proxysynth.synthesis.methods import method_signature
from tests.contract_helpers import (
    BytesSource,
    Circle,
    ConcreteClass,
    Counter,
    Greeter,
    Geometry,
    InitContract,
    LoudGreeter,
    ObjectSource,
    PrivateTarget,
    PropertyContract,
    PublicContract,
    PublicTarget,
    SizedSource,
    StatefulContract,
    TextSource,
    _OtherPrivateContract,
    _PrivateContract,
)
from tests.other_contract_helpers import _ForeignPrivateContract


class FriendlyGreeter:
    def greet(self, name, *, punctuation="!"):
        return f"hello {name}{punctuation}"

    def shout(self, *words, **options):
        return " ".join(words).upper() + "!" * options.get("volume", 1)


class TallyCounter:
    def __init__(self) -> None:
        self.total = 0

    def increment(self, step=1):
        self.total += step
        return self.total


def _null_handler(proxy, method, invoker, args):
    return None


def test_public_proxy_forwards_to_target(engine: Engine, context: LoadingContext, forwarding_handler) -> None:
    target = PublicTarget()
    proxy = engine.create_proxy(context, [PublicContract], forwarding_handler(target))
    cls = type(proxy)
    assert cls.__module__ == "proxysynth.generated"
    assert cls.__qualname__.startswith("_Proxy")
    assert f"{cls.__module__}.{cls.__qualname__}" in context
    assert proxy.test_string("hello") == "hello"
    assert engine.is_generated_instance(proxy)
    assert engine.is_generated_type(cls)
    assert proxy.test_void() is None
    assert not engine.is_generated_instance(object())
    assert not engine.is_generated_type(object)
    assert proxy.test_return_bool() is True
    assert proxy.test_return_int() == 4
    assert proxy.test_return_float() == 2.0
    assert proxy.test_return_bytes() == b"\x01"
    assert proxy.test_primitive("a", None, 1, 1.0, True, b"", 1j) == 0
    assert proxy.test_generic([1], {"k": object()}) is None
    assert isinstance(proxy, PublicContract)


def test_public_proxy_is_published_in_engine_namespace(engine: Engine, context: LoadingContext) -> None:
    import proxysynth.generated as generated

    proxy = engine.create_proxy(context, [Counter], _null_handler)
    assert getattr(generated, type(proxy).__name__) is type(proxy)


def test_private_proxy_lives_next_to_its_contract(engine: Engine, context: LoadingContext, forwarding_handler) -> None:
    import tests.contract_helpers as helpers

    proxy = engine.create_proxy(context, [_PrivateContract], forwarding_handler(PrivateTarget()))
    cls = type(proxy)
    assert cls.__module__ == "tests.contract_helpers"
    assert getattr(helpers, cls.__name__) is cls
    assert proxy.test_string("hello") == "hello"
    proxy.test_void()
    assert engine.is_generated_instance(proxy)


def test_private_contracts_from_one_module_combine(engine: Engine, context: LoadingContext, forwarding_handler) -> None:
    proxy = engine.create_proxy(
        context,
        [_OtherPrivateContract, _PrivateContract],
        forwarding_handler(PrivateTarget()),
    )
    assert type(proxy).__module__ == "tests.contract_helpers"
    assert proxy.ping() == "pong"


def test_private_contracts_from_different_modules_are_rejected(engine: Engine, context: LoadingContext) -> None:
    with pytest.raises(ConfigurationError, match="different modules"):
        engine.create_proxy(context, [_PrivateContract, _ForeignPrivateContract], _null_handler)
    assert context.loaded_names() == ()


def test_disjoint_contract_sets_get_distinct_types(engine: Engine, context: LoadingContext) -> None:
    first = engine.create_proxy(context, [Greeter], _null_handler)
    second = engine.create_proxy(context, [Counter], _null_handler)
    assert type(first) is not type(second)
    assert engine.is_generated_type(type(first))
    assert engine.is_generated_type(type(second))


def test_same_contract_set_in_any_order_reuses_one_type(engine: Engine, context: LoadingContext) -> None:
    first = engine.create_proxy(context, [Greeter, Counter], _null_handler)
    second = engine.create_proxy(context, [Counter, Greeter], _null_handler)
    third = engine.create_proxy(context, (Greeter, Counter), _null_handler)
    assert type(first) is type(second) is type(third)
    assert len(context.loaded_names()) == 1
    assert len(engine.generated_types()) == 1
    for _ in range(3):
        assert engine.is_generated_type(type(first))
        assert engine.is_generated_instance(second)


def test_contexts_scope_type_identity(engine: Engine) -> None:
    left = engine.create_proxy(LoadingContext("left"), [Greeter], _null_handler)
    right = engine.create_proxy(LoadingContext("right"), [Greeter], _null_handler)
    assert type(left) is not type(right)


def test_engines_do_not_share_registries(context: LoadingContext) -> None:
    first_engine = Engine()
    second_engine = Engine()
    first = first_engine.create_proxy(context, [Greeter], _null_handler)
    second = second_engine.create_proxy(context, [Greeter], _null_handler)
    assert type(first) is not type(second)
    assert first_engine.is_generated_instance(first)
    assert not first_engine.is_generated_instance(second)
    assert len(context.loaded_names()) == 2


def test_void_method_reports_void_signature(engine: Engine, context: LoadingContext) -> None:
    seen = []

    def _record(proxy, method, invoker, args):
        seen.append((proxy, method, args))
        return "discarded"

    proxy = engine.create_proxy(context, [PublicContract], _record)
    assert proxy.test_void() is None
    [(received_proxy, method, args)] = seen
    assert received_proxy is proxy
    assert method.name == "test_void"
    assert method.declaring is PublicContract
    assert method.returns_void
    assert args == ()


def test_handler_receives_structural_signature(engine: Engine, context: LoadingContext) -> None:
    seen = []

    def _record(proxy, method, invoker, args):
        seen.append(method)
        return "ok"

    proxy = engine.create_proxy(context, [PublicContract], _record)
    proxy.test_string("x")
    expected = method_signature(PublicContract, "test_string", PublicContract.test_string)
    assert seen[0] == expected
    assert seen[0].failure_kinds == (ValueError,)
    assert seen[0].parameter_types == (str,)
    assert seen[0].function is PublicContract.test_string


def test_keyword_only_and_default_parameters(engine: Engine, context: LoadingContext) -> None:
    seen = []
    target = FriendlyGreeter()

    def _record(proxy, method, invoker, args):
        seen.append(args)
        return invoker(target, args)

    proxy = engine.create_proxy(context, [Greeter], _record)
    assert proxy.greet("ada") == "hello ada!"
    assert proxy.greet("ada", punctuation="?") == "hello ada?"
    assert seen == [("ada", "!"), ("ada", "?")]


def test_variadic_parameters_travel_as_single_elements(engine: Engine, context: LoadingContext) -> None:
    seen = []
    target = FriendlyGreeter()

    def _record(proxy, method, invoker, args):
        seen.append(args)
        return invoker(target, args)

    proxy = engine.create_proxy(context, [LoudGreeter, Greeter], _record)
    assert proxy.shout("a", "b", volume=3) == "A B!!!"
    assert seen == [(("a", "b"), {"volume": 3})]
    assert proxy.greet("bo") == "hello bo!"
    assert isinstance(proxy, Greeter)
    assert isinstance(proxy, LoudGreeter)


def test_static_members_stay_on_the_contract(engine: Engine, context: LoadingContext) -> None:
    counter = TallyCounter()
    proxy = engine.create_proxy(context, [Counter], lambda p, m, invoker, args: invoker(counter, args))
    assert proxy.increment() == 1
    assert proxy.increment(4) == 5
    assert proxy.describe() == "counter"


@pytest.mark.parametrize(
    "contract",
    [ConcreteClass, object, StatefulContract, InitContract, PropertyContract, Protocol, 42],
)
def test_non_interface_contracts_are_rejected(engine: Engine, context: LoadingContext, contract) -> None:
    with pytest.raises(ConfigurationError, match="is not an interface"):
        engine.create_proxy(context, [contract], _null_handler)
    assert context.loaded_names() == ()
    assert engine.generated_types() == ()


def test_repeated_contract_is_rejected(engine: Engine, context: LoadingContext) -> None:
    with pytest.raises(ConfigurationError, match="repeated interface"):
        engine.create_proxy(context, [Greeter, Greeter], _null_handler)


@pytest.mark.parametrize(
    "arguments",
    [
        (None, [Greeter], _null_handler),
        ("context", None, _null_handler),
        ("context", [Greeter, None], _null_handler),
        ("context", [Greeter], None),
    ],
)
def test_missing_arguments_raise_null_pointer_error(engine: Engine, context: LoadingContext, arguments) -> None:
    resolved = tuple(context if value == "context" else value for value in arguments)
    with pytest.raises(NullPointerError):
        engine.create_proxy(*resolved)


def test_membership_queries_reject_none(engine: Engine) -> None:
    with pytest.raises(NullPointerError):
        engine.is_generated_type(None)
    with pytest.raises(NullPointerError):
        engine.is_generated_instance(None)


def test_context_must_be_a_loading_context(engine: Engine) -> None:
    with pytest.raises(ConfigurationError):
        engine.create_proxy(object(), [Greeter], _null_handler)


def test_concurrent_requests_define_one_type(engine: Engine, context: LoadingContext) -> None:
    orders = ([Greeter, Counter], [Counter, Greeter])

    def _request(index: int):
        return engine.create_proxy(context, orders[index % 2], _null_handler)

    with ThreadPoolExecutor(max_workers=32) as pool:
        proxies = list(pool.map(_request, range(128)))
    assert len({type(proxy) for proxy in proxies}) == 1
    assert len(context.loaded_names()) == 1


def test_handler_failure_surfaces_unchanged(engine: Engine, context: LoadingContext) -> None:
    failure = LookupError("boom")

    def _raise(proxy, method, invoker, args):
        raise failure

    proxy = engine.create_proxy(context, [Greeter], _raise)
    with pytest.raises(LookupError) as exc_info:
        proxy.greet("x")
    assert exc_info.value is failure


def test_target_failure_surfaces_unchanged(engine: Engine, context: LoadingContext, forwarding_handler) -> None:
    failure = ValueError("bad input")

    class FailingTarget:
        def greet(self, name, *, punctuation="!"):
            raise failure

    proxy = engine.create_proxy(context, [Greeter], forwarding_handler(FailingTarget()))
    with pytest.raises(ValueError) as exc_info:
        proxy.greet("x")
    assert exc_info.value is failure


def test_incompatible_return_value_is_a_contract_violation(engine: Engine, context: LoadingContext) -> None:
    proxy = engine.create_proxy(context, [PublicContract], lambda p, m, i, a: 3)
    with pytest.raises(ContractViolationError, match="expected str, got int"):
        proxy.test_string("x")
    with pytest.raises(TypeError):
        proxy.test_return_bool()


@pytest.mark.parametrize(
    ("method", "value"),
    [
        ("test_return_int", True),
        ("test_return_int", None),
        ("test_return_float", 2),
        ("test_return_bool", 1),
    ],
)
def test_return_values_are_not_coerced(engine: Engine, context: LoadingContext, method: str, value: object) -> None:
    proxy = engine.create_proxy(context, [PublicContract], lambda p, m, i, a: value)
    with pytest.raises(ContractViolationError):
        getattr(proxy, method)()


def test_return_checks_can_be_disabled(make_engine, context: LoadingContext) -> None:
    engine = make_engine(check_returns=False)
    proxy = engine.create_proxy(context, [PublicContract], lambda p, m, i, a: "not an int")
    assert proxy.test_return_int() == "not an int"


def test_invoker_rejects_mistyped_arguments(engine: Engine, context: LoadingContext, forwarding_handler) -> None:
    proxy = engine.create_proxy(context, [PublicContract], forwarding_handler(PublicTarget()))
    with pytest.raises(ContractViolationError, match="argument 'p3'"):
        proxy.test_primitive("a", None, True, 1.0, True, b"", 1j)


def test_numeric_arguments_widen_along_the_tower(engine: Engine, context: LoadingContext, forwarding_handler) -> None:
    proxy = engine.create_proxy(context, [Geometry], forwarding_handler(Circle()))
    assert proxy.area(2) == 12.0
    assert proxy.area(0.5) == 0.75
    assert proxy.rotate(1) == 1j
    assert proxy.rotate(2.0) == 2j
    with pytest.raises(ContractViolationError, match="argument 'radius': expected float, got bool"):
        proxy.area(True)
    with pytest.raises(ContractViolationError, match="argument 'turn'"):
        proxy.rotate("1")


def test_compatible_duplicate_methods_collapse_to_narrowest(engine: Engine, context: LoadingContext) -> None:
    seen = []

    def _record(proxy, method, invoker, args):
        seen.append(method)
        return "text"

    proxy = engine.create_proxy(context, [ObjectSource, TextSource], _record)
    assert proxy.read(1) == "text"
    assert seen[0].declaring is TextSource
    assert seen[0].return_type is str


def test_conflicting_methods_rejected_eagerly(engine: Engine, context: LoadingContext) -> None:
    with pytest.raises(ConfigurationError, match="incompatible return types"):
        engine.create_proxy(context, [TextSource, BytesSource], _null_handler)
    with pytest.raises(ConfigurationError, match="differ in parameters"):
        engine.create_proxy(context, [TextSource, SizedSource], _null_handler)
    assert context.loaded_names() == ()


def test_conflicting_methods_fail_at_load_when_deferred(make_engine, context: LoadingContext) -> None:
    engine = make_engine(conflict_policy="deferred")
    with pytest.raises(FatalLoadError, match="duplicate method"):
        engine.create_proxy(context, [TextSource, BytesSource], _null_handler)
    assert context.loaded_names() == ()
    assert engine.generated_types() == ()


def test_proxy_holds_one_immutable_handler(engine: Engine, context: LoadingContext) -> None:
    proxy = engine.create_proxy(context, [Greeter], _null_handler)
    handler = engine.handler_of(proxy)
    assert isinstance(handler, FunctionHandler)
    assert handler.function is _null_handler
    with pytest.raises(AttributeError):
        proxy._proxysynth_handler = None
    with pytest.raises(AttributeError):
        proxy.extra = 1
    with pytest.raises(AttributeError):
        del proxy._proxysynth_handler
    assert engine.handler_of(proxy) is handler
    assert "handler=" in repr(proxy)


def test_handler_objects_are_used_as_is(engine: Engine, context: LoadingContext) -> None:
    class Handler:
        def intercept(self, proxy, method, invoker, args):
            return f"{method.name}:{args[0]}"

    handler = Handler()
    proxy = engine.create_proxy(context, [Greeter], handler)
    assert engine.handler_of(proxy) is handler
    assert proxy.greet("x") == "greet:x"


def test_handler_of_rejects_other_objects(engine: Engine) -> None:
    with pytest.raises(ConfigurationError):
        engine.handler_of(object())


def test_unusable_handler_is_rejected(engine: Engine, context: LoadingContext) -> None:
    with pytest.raises(ConfigurationError):
        engine.create_proxy(context, [Greeter], 42)


def test_degraded_mode_keeps_types_out_of_modules(make_engine, context: LoadingContext) -> None:
    import proxysynth.generated as generated

    engine = make_engine(publish_to_modules=False)
    proxy = engine.create_proxy(context, [Greeter], _null_handler)
    cls = type(proxy)
    assert not hasattr(generated, cls.__name__)
    assert context.find_loaded(f"{cls.__module__}.{cls.__name__}") is cls


def test_empty_contract_set_builds_a_bare_proxy(engine: Engine, context: LoadingContext) -> None:
    proxy = engine.create_proxy(context, [], _null_handler)
    assert engine.is_generated_instance(proxy)
    assert type(proxy).__bases__ == (object,)


def test_generated_methods_keep_contract_metadata(engine: Engine, context: LoadingContext) -> None:
    proxy = engine.create_proxy(context, [Greeter], _null_handler)
    assert type(proxy).greet.__doc__ == Greeter.greet.__doc__
    assert "punctuation" in type(proxy).greet.__annotations__


def test_module_level_api_uses_default_engine() -> None:
    counter = TallyCounter()
    proxy = proxysynth.create_proxy(
        proxysynth.default_context(),
        [Counter],
        lambda p, m, invoker, args: invoker(counter, args),
    )
    assert proxy.increment(2) == 2
    assert proxysynth.is_generated_instance(proxy)
    assert proxysynth.is_generated_type(type(proxy))
    assert isinstance(proxysynth.handler_of(proxy), FunctionHandler)
    assert proxysynth.default_engine() is proxysynth.default_engine()


def test_unimportable_namespace_is_a_configuration_error(make_engine, context: LoadingContext) -> None:
    with pytest.raises(ConfigurationError, match="not an importable module"):
        make_engine(namespace="pkg_absent.proxies")
    engine = make_engine(namespace="pkg_absent.proxies", publish_to_modules=False)
    proxy = engine.create_proxy(context, [Greeter], _null_handler)
    assert type(proxy).__module__ == "pkg_absent.proxies"
    assert engine.is_generated_instance(proxy)


def test_abstract_reserved_method_is_rejected_before_definition(engine: Engine, context: LoadingContext) -> None:
    import abc

    class Lookup(abc.ABC):
        @abc.abstractmethod
        def __getattr__(self, name: str) -> object: ...

    with pytest.raises(ConfigurationError, match="declares abstract __getattr__"):
        engine.create_proxy(context, [Lookup], _null_handler)
    assert context.loaded_names() == ()


def test_degraded_mode_keeps_private_module_without_publishing(make_engine, context: LoadingContext) -> None:
    import tests.contract_helpers as helpers

    engine = make_engine(publish_to_modules=False)
    proxy = engine.create_proxy(context, [_PrivateContract], _null_handler)
    cls = type(proxy)
    assert cls.__module__ == "tests.contract_helpers"
    assert not hasattr(helpers, cls.__name__)
    assert context.find_loaded(f"tests.contract_helpers.{cls.__name__}") is cls
