from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT / "src", ROOT):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest

from proxysynth.engine import Engine
from proxysynth.linkage import LoadingContext
from proxysynth.schema import EngineSettings


@pytest.fixture
def engine() -> Engine:
    return Engine(EngineSettings())


@pytest.fixture
def context(request: pytest.FixtureRequest) -> LoadingContext:
    return LoadingContext(request.node.name)


@pytest.fixture
def make_engine():
    def _make(**overrides: object) -> Engine:
        return Engine(EngineSettings(**overrides))

    return _make


@pytest.fixture
def forwarding_handler():
    def _make(target: object):
        def _intercept(proxy, method, invoker, args):
            return invoker(target, args)

        return _intercept

    return _make
