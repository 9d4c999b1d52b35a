import asyncio

import pytest

from conftest import QUALIFICATION, WORKSPACE, add_script, open_component
from funcengine.ir.component import ComponentSchema
from funcengine.ir.errors import ComponentNotFoundError, NoWorkspaceError, StaleVisibilityError
from funcengine.ir.visibility import Visibility
from funcengine.trigger.pipeline import RunState, TriggerPipeline
from funcengine.visibility.resolver import VisibilityResolver

V1 = Visibility(WORKSPACE, change_set_id="cs-1")
V2 = Visibility(WORKSPACE, change_set_id="cs-2")


def test_superseded_run_is_cancelled():
    delivered = []

    async def runner(component_id, visibility):
        await asyncio.sleep(0.2 if visibility == V1 else 0.01)
        return f"result@{visibility.change_set_id}"

    async def scenario():
        pipeline = TriggerPipeline(runner=runner, sinks=[delivered.append])
        pipeline.watch("srv-1")
        pipeline.on_visibility(V1)
        await asyncio.sleep(0)
        pipeline.on_visibility(V2)
        await pipeline.drain()
        return pipeline

    pipeline = asyncio.run(scenario())

    assert [d.result for d in delivered] == ["result@cs-2"]
    assert pipeline.state("srv-1") == RunState.SETTLED
    assert pipeline.transitions("srv-1") == [
        RunState.COMPUTING,
        RunState.CANCELLED,
        RunState.COMPUTING,
        RunState.SETTLED,
    ]


def test_late_result_from_old_coordinate_is_dropped():
    delivered = []

    async def stubborn(component_id, visibility):
        if visibility == V1:
            try:
                await asyncio.sleep(1)
            except asyncio.CancelledError:
                # Finishes anyway, after the newer run has delivered.
                await asyncio.sleep(0.05)
            return "stale"
        await asyncio.sleep(0.01)
        return "fresh"

    async def scenario():
        pipeline = TriggerPipeline(runner=stubborn, sinks=[delivered.append])
        pipeline.watch("srv-1")
        pipeline.on_visibility(V1)
        await asyncio.sleep(0)
        pipeline.on_visibility(V2)
        await pipeline.drain()
        return pipeline

    pipeline = asyncio.run(scenario())

    assert [d.result for d in delivered] == ["fresh"]
    assert pipeline.last_result("srv-1").visibility == V2
    assert pipeline.result_at("srv-1", V2) == "fresh"
    with pytest.raises(StaleVisibilityError):
        pipeline.result_at("srv-1", V1)


def test_components_run_independently():
    delivered = []

    async def runner(component_id, visibility):
        await asyncio.sleep(0.01)
        return component_id

    async def scenario():
        pipeline = TriggerPipeline(runner=runner, sinks=[delivered.append])
        pipeline.on_visibility(V1)
        pipeline.watch("srv-1")
        pipeline.watch("srv-2")
        await pipeline.drain()

    asyncio.run(scenario())
    assert sorted(d.result for d in delivered) == ["srv-1", "srv-2"]
    assert all(d.generation == 1 for d in delivered)


def test_failed_run_is_not_delivered():
    delivered = []

    async def runner(component_id, visibility):
        raise ComponentNotFoundError(component_id, visibility)

    async def scenario():
        pipeline = TriggerPipeline(runner=runner, sinks=[delivered.append])
        pipeline.watch("ghost")
        pipeline.on_visibility(V1)
        await pipeline.drain()
        return pipeline

    pipeline = asyncio.run(scenario())
    assert delivered == []
    assert pipeline.state("ghost") == RunState.FAILED
    assert isinstance(pipeline.last_error("ghost"), ComponentNotFoundError)


def test_losing_the_workspace_stops_everything():
    async def runner(component_id, visibility):
        await asyncio.sleep(1)

    async def scenario():
        resolver = VisibilityResolver(workspace_id=WORKSPACE)
        pipeline = TriggerPipeline(runner=runner)
        pipeline.attach(resolver)
        pipeline.watch("srv-1")
        resolver.set_change_set("cs-1")
        await asyncio.sleep(0)
        resolver.set_workspace(None)
        await pipeline.drain()
        return pipeline

    pipeline = asyncio.run(scenario())
    assert pipeline.state("srv-1") == RunState.FAILED
    assert isinstance(pipeline.last_error("srv-1"), NoWorkspaceError)
    assert pipeline.last_result("srv-1") is None


def test_engine_follows_the_resolver(engine, store, registry, runtime):
    add_script(registry, "q:port", QUALIFICATION)
    runtime.register("q:port", lambda attrs, ctx: attrs["port"] == 22)
    schema = ComponentSchema(name="server", qualification_func_ids=("q:port",), defaults={"port": 22})
    component, v1 = open_component(store, schema=schema)
    v2 = Visibility(WORKSPACE, change_set_id=store.open_change_set(WORKSPACE).id)
    store.apply_change_set(v1.change_set_id)
    store.write(component.id, "port", 23, v2)

    async def scenario():
        resolver = VisibilityResolver(workspace_id=WORKSPACE)
        pipeline = TriggerPipeline(engine=engine)
        pipeline.attach(resolver)
        pipeline.watch(component.id)

        resolver.set_change_set(v1.change_set_id)
        await pipeline.drain()
        first = pipeline.result_at(component.id, v1)

        resolver.set_change_set(v2.change_set_id)
        await pipeline.drain()
        second = pipeline.result_at(component.id, v2)

        await pipeline.close()
        return first, second

    first, second = asyncio.run(scenario())
    assert first.qualified
    assert not second.qualified
