import asyncio

import pytest

from conftest import ATTRIBUTE, CODEGEN, QUALIFICATION, RESOURCE, WORKSPACE, add_script, open_component
from funcengine.ir.component import AttributePrototype, ComponentSchema
from funcengine.ir.errors import NoWorkspaceError, StaleVisibilityError
from funcengine.ir.results import ResourceStatus
from funcengine.ir.visibility import Visibility
from funcengine.pipeline.attributes import evaluation_order
from funcengine.pipeline.context import EngineContext
from funcengine.pipeline.controller import ComponentEngine


def slow_engine(store, registry, runtime, kind, timeout):
    ctx = EngineContext.create(store=store, registry=registry, runtime=runtime, timeouts={kind: timeout})
    return ComponentEngine(ctx)


# ============================================================
# QUALIFICATIONS
# ============================================================

def test_no_qualifications_means_qualified(engine, store):
    component, v = open_component(store)
    check = asyncio.run(engine.check_qualifications(component.id, v))
    assert check.success
    assert check.results == []


def test_failing_qualification_is_identifiable(engine, store, registry, runtime):
    add_script(registry, "q:hostname", QUALIFICATION)
    add_script(registry, "q:port", QUALIFICATION)
    runtime.register("q:hostname", lambda attrs, ctx: bool(attrs.get("hostname")))
    runtime.register("q:port", lambda attrs, ctx: {"success": attrs["port"] != 23, "message": "telnet port"})

    schema = ComponentSchema(
        name="server",
        qualification_func_ids=("q:hostname", "q:port"),
        defaults={"hostname": "web-01", "port": 23},
    )
    component, v = open_component(store, schema=schema)
    check = asyncio.run(engine.check_qualifications(component.id, v))

    assert not check.success
    assert check.failed() == ["q:port"]
    failed = [r for r in check.results if not r.success][0]
    assert failed.message == "telnet port"
    assert failed.visibility == v


def test_literal_and_timed_out_script(store, registry, runtime):
    add_script(registry, "q:slow", QUALIFICATION)

    @runtime.handler("q:slow")
    async def slow(attrs, ctx):
        await asyncio.sleep(1)
        return True

    schema = ComponentSchema(name="server", qualification_func_ids=("si:alwaysQualified", "q:slow"))
    component, v = open_component(store, schema=schema, component_id="srv-1")
    engine = slow_engine(store, registry, runtime, QUALIFICATION, 0.05)

    check = asyncio.run(engine.check_qualifications("srv-1", v))

    assert check.success is False
    by_func = {r.func_id: r for r in check.results}
    assert by_func["si:alwaysQualified"].success is True
    assert by_func["q:slow"].success is False
    assert by_func["q:slow"].error_kind == "timeout"


def test_missing_qualification_func(engine, store):
    schema = ComponentSchema(name="server", qualification_func_ids=("q:deleted",))
    component, v = open_component(store, schema=schema)
    check = asyncio.run(engine.check_qualifications(component.id, v))
    assert check.results[0].error_kind == "func_not_found"


def test_non_boolean_literal_cannot_qualify(engine, store):
    schema = ComponentSchema(name="server", qualification_func_ids=("si:setString",))
    component, v = open_component(store, schema=schema)
    check = asyncio.run(engine.check_qualifications(component.id, v))
    assert check.results[0].error_kind == "computation"


def test_no_workspace_is_rejected_before_dispatch(engine, registry, runtime):
    calls = []
    add_script(registry, "q:spy", QUALIFICATION)
    runtime.register("q:spy", lambda attrs, ctx: calls.append(attrs) or True)

    with pytest.raises(NoWorkspaceError):
        asyncio.run(engine.check_qualifications("srv-1", Visibility(None)))
    assert calls == []


def test_results_are_tagged_with_their_visibility(engine, store):
    component, v = open_component(store)
    check = asyncio.run(engine.check_qualifications(component.id, v))
    assert check.ensure_visibility(v) is check
    with pytest.raises(StaleVisibilityError):
        check.ensure_visibility(v.to_head())


def test_qualifications_see_only_their_change_set(engine, store, registry, runtime):
    add_script(registry, "q:port", QUALIFICATION)
    runtime.register("q:port", lambda attrs, ctx: attrs["port"] == 22)
    schema = ComponentSchema(name="server", qualification_func_ids=("q:port",), defaults={"port": 22})

    component, v1 = open_component(store, schema=schema)
    store.apply_change_set(v1.change_set_id)
    v2 = Visibility(WORKSPACE, change_set_id=store.open_change_set(WORKSPACE).id)
    v3 = Visibility(WORKSPACE, change_set_id=store.open_change_set(WORKSPACE).id)
    store.write(component.id, "port", 23, v2)

    assert not asyncio.run(engine.check_qualifications(component.id, v2)).success
    assert asyncio.run(engine.check_qualifications(component.id, v3)).success


# ============================================================
# ATTRIBUTES
# ============================================================

def test_evaluation_order():
    protos = {
        "fqdn": AttributePrototype("f", {"host": {"attribute": "hostname"}, "domain": {"attribute": "domain"}}),
        "hostname": AttributePrototype("f", {"value": {"value": "web"}}),
        "a": AttributePrototype("f", {"x": {"attribute": "b"}}),
        "b": AttributePrototype("f", {"x": {"attribute": "a"}}),
    }
    ordered, cyclic = evaluation_order(protos)
    assert ordered == ["hostname", "fqdn"]
    assert cyclic == ["a", "b"]


def test_attributes_are_computed_and_written(engine, store, registry, runtime):
    add_script(registry, "attr:fqdn", ATTRIBUTE)
    runtime.register("attr:fqdn", lambda args, ctx: f"{args['host']}.{args['domain']}")

    schema = ComponentSchema(
        name="server",
        defaults={"domain": "example.com"},
        attribute_prototypes={
            "hostname": AttributePrototype("si:setString", {"value": {"value": "web-01"}}),
            "fqdn": AttributePrototype(
                "attr:fqdn", {"host": {"attribute": "hostname"}, "domain": {"attribute": "domain"}}
            ),
            "port": AttributePrototype("si:setInteger", {"value": {"value": "22"}}),
        },
    )
    component, v = open_component(store, schema=schema)
    results = asyncio.run(engine.attributes.evaluate(component.id, v))

    snapshot = store.read(component.id, v)
    assert snapshot.get("hostname") == "web-01"
    assert snapshot.get("fqdn") == "web-01.example.com"
    assert not results["port"].ok
    assert "port" not in snapshot.attributes


def test_failed_dependency_blocks_dependents(engine, store, registry, runtime):
    add_script(registry, "attr:upper", ATTRIBUTE)
    runtime.register("attr:upper", lambda args, ctx: args["s"].upper())

    schema = ComponentSchema(
        name="server",
        attribute_prototypes={
            "hostname": AttributePrototype("si:setString", {"value": {"value": 7}}),
            "shout": AttributePrototype("attr:upper", {"s": {"attribute": "hostname"}}),
        },
    )
    component, v = open_component(store, schema=schema)
    results = asyncio.run(engine.attributes.evaluate(component.id, v))

    assert results["hostname"].error.kind == "type_mismatch"
    assert "missing dependency hostname" in results["shout"].error.message


def test_re_evaluation_does_not_rewrite_unchanged_values(engine, store):
    schema = ComponentSchema(
        name="server",
        attribute_prototypes={"hostname": AttributePrototype("si:setString", {"value": {"value": "web-01"}})},
    )
    component, v = open_component(store, schema=schema)
    asyncio.run(engine.attributes.evaluate(component.id, v))
    first = store.read(component.id, v).versions["hostname"]
    asyncio.run(engine.attributes.evaluate(component.id, v))
    assert store.read(component.id, v).versions["hostname"] == first


def test_restore_default_at_head_forces_change_set(engine, store):
    schema = ComponentSchema(name="server", defaults={"port": 22})
    component, v = open_component(store, schema=schema)
    store.write(component.id, "port", 2222, v)
    store.apply_change_set(v.change_set_id)

    moved, forced_id = engine.restore_default(component.id, "port", Visibility(WORKSPACE))

    assert forced_id is not None and moved.change_set_id == forced_id
    assert store.read(component.id, moved).get("port") == 22
    assert store.read(component.id, Visibility(WORKSPACE)).get("port") == 2222


# ============================================================
# CODE GENERATION
# ============================================================

def test_code_generation_is_idempotent(engine, store, registry, runtime):
    add_script(registry, "gen:cloud-init", CODEGEN)
    runtime.register("gen:cloud-init", lambda attrs, ctx: {
        "format": "json",
        "code": {"hostname": attrs["hostname"], "users": [{"name": "ops", "groups": ["wheel"]}]},
    })
    schema = ComponentSchema(
        name="server", code_generation_func_ids=("gen:cloud-init",), defaults={"hostname": "web-01"}
    )
    component, v = open_component(store, schema=schema)

    first = asyncio.run(engine.generate_code(component.id, v))
    second = asyncio.run(engine.generate_code(component.id, v))

    assert first[0].ok
    assert first[0].value.code == second[0].value.code
    assert first[0].value.to_dict() == second[0].value.to_dict()


# ============================================================
# RESOURCE SYNC
# ============================================================

def test_resource_sync_records_status(engine, store, registry, runtime):
    seen = []
    add_script(registry, "sync:ec2", RESOURCE)

    @runtime.handler("sync:ec2")
    def sync(payload, ctx):
        seen.append(payload)
        return {"status": "ok", "payload": {"instanceId": "i-123"}}

    schema = ComponentSchema(name="server", resource_sync_func_id="sync:ec2", defaults={"hostname": "web-01"})
    component, v = open_component(store, schema=schema)

    first = asyncio.run(engine.sync_resource(component.id, v))
    asyncio.run(engine.sync_resource(component.id, v))

    assert first.ok
    assert seen[0] == {"attributes": {"hostname": "web-01"}, "resource": None}
    assert seen[1]["resource"]["payload"] == {"instanceId": "i-123"}
    assert store.get_resource(component.id, v).status == ResourceStatus.OK


def test_resource_sync_failure_is_recorded(engine, store, registry, runtime):
    add_script(registry, "sync:broken", RESOURCE)

    @runtime.handler("sync:broken")
    def broken(payload, ctx):
        raise ConnectionError("api unreachable")

    schema = ComponentSchema(name="server", resource_sync_func_id="sync:broken")
    component, v = open_component(store, schema=schema)
    result = asyncio.run(engine.sync_resource(component.id, v))

    assert result.error.kind == "external_sync"
    record = store.get_resource(component.id, v)
    assert record.status == ResourceStatus.ERROR
    assert "api unreachable" in record.message


def test_component_without_resource_func(engine, store):
    component, v = open_component(store)
    assert asyncio.run(engine.sync_resource(component.id, v)) is None


# ============================================================
# CONFIRMATIONS
# ============================================================

def exists_confirmation(registry, runtime, func_id="confirm:exists", extra=()):
    add_script(registry, func_id, ATTRIBUTE)

    @runtime.handler(func_id)
    def exists(payload, ctx):
        if not (payload["resource"] or {}).get("payload"):
            return {"success": False, "recommendedActions": ["create", *extra]}
        return {"success": True, "recommendedActions": []}


def test_confirmation_follows_the_resource(engine, store, registry, runtime):
    exists_confirmation(registry, runtime)
    payloads = iter([{"instanceId": "i-1"}, None])
    add_script(registry, "sync:ec2", RESOURCE)
    runtime.register("sync:ec2", lambda payload, ctx: {"status": "ok", "payload": next(payloads)})

    schema = ComponentSchema(
        name="server",
        confirmation_func_ids=("confirm:exists",),
        resource_sync_func_id="sync:ec2",
        actions=frozenset({"create", "delete"}),
    )
    component, v = open_component(store, schema=schema)
    store.apply_change_set(v.change_set_id)
    head = Visibility(WORKSPACE)

    before = asyncio.run(engine.confirm(component.id, head))
    assert [(r.func_id, r.success, r.recommended_actions) for r in before] == [
        ("confirm:exists", False, ["create"])
    ]

    assert asyncio.run(engine.sync_resource(component.id, head)).ok
    assert asyncio.run(engine.recommendations(component.id, head)) == []
    assert asyncio.run(engine.confirm(component.id, head))[0].success is True

    # synced again, the resource is gone
    asyncio.run(engine.sync_resource(component.id, head))
    assert asyncio.run(engine.recommendations(component.id, head)) == ["create"]


def test_unsupported_recommendations_are_dropped(engine, store, registry, runtime):
    exists_confirmation(registry, runtime, extra=("refresh", "create"))
    schema = ComponentSchema(name="server", confirmation_func_ids=("confirm:exists",), actions=frozenset({"create"}))
    component, v = open_component(store, schema=schema)

    result = asyncio.run(engine.confirm(component.id, v))[0]
    assert result.recommended_actions == ["create", "create"]
    assert asyncio.run(engine.recommendations(component.id, v)) == ["create"]

    bare = ComponentSchema(name="server", confirmation_func_ids=("confirm:exists",))
    other, v2 = open_component(store, schema=bare, name="srv-2")
    assert asyncio.run(engine.recommendations(other.id, v2)) == []


def test_broken_confirmation_does_not_sink_siblings(engine, store, registry, runtime):
    exists_confirmation(registry, runtime)
    add_script(registry, "confirm:junk", ATTRIBUTE)
    runtime.register("confirm:junk", lambda payload, ctx: {"recommendedActions": "create"})
    schema = ComponentSchema(
        name="server",
        confirmation_func_ids=("confirm:junk", "confirm:gone", "si:setString", "confirm:exists"),
        actions=frozenset({"create"}),
    )
    component, v = open_component(store, schema=schema)

    results = {r.func_id: r for r in asyncio.run(engine.confirm(component.id, v))}

    assert results["confirm:junk"].error_kind == "computation"
    assert results["confirm:gone"].error_kind == "func_not_found"
    assert results["si:setString"].error_kind == "computation"
    assert results["confirm:exists"].recommended_actions == ["create"]
    assert results["confirm:exists"].to_dict()["recommendedActions"] == ["create"]


# ============================================================
# ENGINE
# ============================================================

def test_engine_run_at_head_skips_attribute_writes(engine, store, registry, runtime):
    add_script(registry, "q:named", QUALIFICATION)
    runtime.register("q:named", lambda attrs, ctx: bool(attrs.get("hostname")))
    schema = ComponentSchema(
        name="server",
        qualification_func_ids=("q:named",),
        attribute_prototypes={"hostname": AttributePrototype("si:setString", {"value": {"value": "web-01"}})},
    )
    component, v = open_component(store, schema=schema)
    store.apply_change_set(v.change_set_id)

    at_head = asyncio.run(engine.run(component.id, Visibility(WORKSPACE)))
    assert at_head.attributes == {}
    assert not at_head.qualified

    cs = Visibility(WORKSPACE, change_set_id=store.open_change_set(WORKSPACE).id)
    in_cs = asyncio.run(engine.run(component.id, cs))
    assert in_cs.attributes["hostname"].value == "web-01"
    assert in_cs.qualified
    assert in_cs.to_dict()["qualifications"]["success"] is True
    assert in_cs.to_dict()["confirmations"] == []
