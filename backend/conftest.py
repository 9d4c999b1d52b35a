"""
Shared fixtures: a fresh registry seeded with the builtins, an in-process
script runtime and an engine wired to both over an in-memory store.
"""

import pytest

from funcengine.backends.runtime.local import LocalScriptRuntime
from funcengine.funcs.catalog import register_builtin_funcs
from funcengine.funcs.registry import FuncRegistry
from funcengine.ir.component import ComponentSchema
from funcengine.ir.func import Func, FuncBackendKind
from funcengine.ir.visibility import Visibility
from funcengine.pipeline.context import EngineContext
from funcengine.pipeline.controller import ComponentEngine
from funcengine.store.memory import InMemoryGraphStore

WORKSPACE = "ws-1"


@pytest.fixture
def registry():
    registry = FuncRegistry()
    register_builtin_funcs(registry)
    return registry


@pytest.fixture
def runtime():
    return LocalScriptRuntime()


@pytest.fixture
def store():
    return InMemoryGraphStore()


@pytest.fixture
def head():
    return Visibility(WORKSPACE)


@pytest.fixture
def engine(store, registry, runtime):
    ctx = EngineContext.create(store=store, registry=registry, runtime=runtime)
    return ComponentEngine(ctx)


def add_script(registry, func_id, kind, handler=None, code=None):
    return registry.register(Func(id=func_id, name=func_id, kind=kind, handler=handler or func_id, code=code))


def open_component(store, name="srv-1", schema=None, component_id=None):
    """Create a component in a fresh change set and return (component, visibility)."""
    change_set = store.open_change_set(WORKSPACE, name="test")
    visibility = Visibility(WORKSPACE, change_set_id=change_set.id)
    component = store.create_component(
        name, schema or ComponentSchema(name="server"), visibility, component_id=component_id
    )
    return component, visibility


QUALIFICATION = FuncBackendKind.JS_QUALIFICATION
CODEGEN = FuncBackendKind.JS_CODE_GENERATION
ATTRIBUTE = FuncBackendKind.JS_ATTRIBUTE
RESOURCE = FuncBackendKind.JS_RESOURCE_SYNC
