import threading

import pytest

from conftest import WORKSPACE
from funcengine.ir.component import ComponentSchema
from funcengine.ir.errors import (
    ChangeSetNotFoundError,
    ComponentNotFoundError,
    ImmutableError,
    InvalidVisibilityError,
    NoWorkspaceError,
)
from funcengine.ir.results import ResourceStatus, ResourceSyncResult
from funcengine.ir.visibility import Visibility
from funcengine.store.base import ChangeSetStatus
from funcengine.store.memory import InMemoryGraphStore
from funcengine.store.sql import SqlGraphStore

SERVER = ComponentSchema(name="server", defaults={"port": 22, "hostname": ""})


@pytest.fixture(params=["memory", "sql"])
def graph(request):
    if request.param == "memory":
        return InMemoryGraphStore()
    return SqlGraphStore("sqlite://")


def change_set(graph, system_id=None):
    cs = graph.open_change_set(WORKSPACE, name="edit")
    return Visibility(WORKSPACE, system_id, cs.id)


def seeded(graph):
    """srv-1 applied to head, plus a fresh open change set."""
    v = change_set(graph)
    graph.create_component("srv-1", SERVER, v, component_id="srv-1")
    graph.write("srv-1", "hostname", "web-01", v)
    graph.apply_change_set(v.change_set_id)
    return change_set(graph)


def test_defaults_fill_unwritten_attributes(graph):
    v = change_set(graph)
    graph.create_component("srv-1", SERVER, v, component_id="srv-1")
    snapshot = graph.read("srv-1", v)
    assert snapshot.attributes == {"port": 22, "hostname": ""}
    assert snapshot.versions == {}


def test_read_after_write(graph):
    v = seeded(graph)
    receipt = graph.write("srv-1", "hostname", "web-02", v)

    assert receipt.version >= 1
    assert graph.read("srv-1", v).get("hostname") == "web-02"


def test_change_sets_are_isolated(graph):
    v1 = seeded(graph)
    v2 = change_set(graph)
    graph.write("srv-1", "hostname", "web-02", v1)

    assert graph.read("srv-1", v2).get("hostname") == "web-01"
    assert graph.read("srv-1", Visibility(WORKSPACE)).get("hostname") == "web-01"


def test_versions_increase_per_change_set(graph):
    v = seeded(graph)
    first = graph.write("srv-1", "port", 2222, v)
    second = graph.write("srv-1", "port", 2223, v)
    assert second.version == first.version + 1
    assert graph.read("srv-1", v).versions["port"] == second.version


def test_head_is_immutable(graph):
    seeded(graph)
    with pytest.raises(ImmutableError):
        graph.write("srv-1", "hostname", "nope", Visibility(WORKSPACE))
    assert graph.read("srv-1", Visibility(WORKSPACE)).get("hostname") == "web-01"


def test_applied_change_set_is_immutable(graph):
    v = seeded(graph)
    graph.write("srv-1", "port", 2222, v)
    graph.apply_change_set(v.change_set_id)

    with pytest.raises(ImmutableError):
        graph.write("srv-1", "port", 1, v)
    assert graph.read("srv-1", v).get("port") == 2222
    assert graph.get_change_set(v.change_set_id).status == ChangeSetStatus.APPLIED


def test_abandoned_change_set_is_immutable(graph):
    v = seeded(graph)
    graph.write("srv-1", "port", 2222, v)
    graph.abandon_change_set(v.change_set_id)

    with pytest.raises(ImmutableError):
        graph.write("srv-1", "port", 1, v)
    assert graph.read("srv-1", Visibility(WORKSPACE)).get("port") == 22


def test_apply_merges_into_head(graph):
    v = seeded(graph)
    graph.write("srv-1", "port", 2222, v)
    graph.apply_change_set(v.change_set_id)

    head = graph.read("srv-1", Visibility(WORKSPACE))
    assert head.get("port") == 2222
    assert head.get("hostname") == "web-01"


def test_system_layer_overrides_workspace_layer(graph):
    v = seeded(graph)
    system_v = Visibility(WORKSPACE, "sys-prod", v.change_set_id)
    graph.write("srv-1", "port", 2200, v)
    graph.write("srv-1", "port", 2201, system_v)

    assert graph.read("srv-1", system_v).get("port") == 2201
    assert graph.read("srv-1", v).get("port") == 2200
    assert graph.read("srv-1", Visibility(WORKSPACE, "sys-other", v.change_set_id)).get("port") == 2200


def test_remove_override_restores_default(graph):
    v = seeded(graph)
    graph.write("srv-1", "port", 2222, v)
    graph.remove_attribute_override("srv-1", "port", v)
    assert graph.read("srv-1", v).get("port") == 22

    graph.remove_attribute_override("srv-1", "hostname", v)
    assert graph.read("srv-1", v).get("hostname") == ""


def test_components_created_in_change_set_stay_there(graph):
    v = seeded(graph)
    other = change_set(graph)
    graph.create_component("db-1", SERVER, v, component_id="db-1")

    assert [e.label for e in graph.list_component_names(v)] == ["db-1", "srv-1"]
    assert [e.label for e in graph.list_component_names(other)] == ["srv-1"]
    with pytest.raises(ComponentNotFoundError):
        graph.read("db-1", other)

    graph.apply_change_set(v.change_set_id)
    assert [e.value for e in graph.list_component_names(Visibility(WORKSPACE))] == ["db-1", "srv-1"]


def test_copy_component(graph):
    v = seeded(graph)
    graph.write("srv-1", "port", 2222, v)
    pasted = graph.copy_component("srv-1", v)

    assert pasted.name == "srv-1 - Copy"
    assert pasted.id != "srv-1"
    copy = graph.read(pasted.id, v)
    assert copy.get("hostname") == "web-01"
    assert copy.get("port") == 2222


def test_paste_at_head_forces_a_change_set(graph):
    seeded(graph)
    head = Visibility(WORKSPACE)

    pasted, moved, forced_id = graph.paste_components(["srv-1"], head)

    assert forced_id is not None
    assert moved.change_set_id == forced_id
    assert graph.get_change_set(forced_id).is_open
    assert graph.read(pasted[0].id, moved).get("hostname") == "web-01"
    assert [e.value for e in graph.list_component_names(head)] == ["srv-1"]
    with pytest.raises(ComponentNotFoundError):
        graph.read(pasted[0].id, head)


def test_paste_in_open_change_set_does_not_force(graph):
    v = seeded(graph)
    pasted, moved, forced_id = graph.paste_components(["srv-1"], v)
    assert forced_id is None and moved == v
    assert pasted[0].name == "srv-1 - Copy"


def test_paste_unknown_component(graph):
    seeded(graph)
    with pytest.raises(ComponentNotFoundError):
        graph.paste_components(["srv-1", "ghost"], Visibility(WORKSPACE))


def test_force_change_set(graph):
    seeded(graph)
    moved, forced_id = graph.force_change_set(Visibility(WORKSPACE))
    assert forced_id is not None
    assert moved.change_set_id == forced_id
    assert graph.get_change_set(forced_id).is_open

    same, none = graph.force_change_set(moved)
    assert same == moved and none is None


def test_contract_errors(graph):
    v = seeded(graph)
    with pytest.raises(NoWorkspaceError):
        graph.read("srv-1", Visibility(None))
    with pytest.raises(ChangeSetNotFoundError):
        graph.read("srv-1", Visibility(WORKSPACE, change_set_id="cs_missing"))
    with pytest.raises(InvalidVisibilityError):
        graph.write("srv-1", "port", 1, Visibility("ws-other", change_set_id=v.change_set_id))


def test_resources_are_workspace_scoped(graph):
    v = seeded(graph)
    assert graph.get_resource("srv-1", v) is None

    graph.set_resource("srv-1", v, ResourceSyncResult(status=ResourceStatus.OK, payload={"id": "i-1"}))
    record = graph.get_resource("srv-1", Visibility(WORKSPACE))
    assert record.status == ResourceStatus.OK
    assert record.payload == {"id": "i-1"}


def test_concurrent_writes_get_distinct_versions():
    graph = InMemoryGraphStore()
    v = seeded(graph)
    receipts = []
    lock = threading.Lock()

    def writer(n):
        receipt = graph.write("srv-1", "port", n, v)
        with lock:
            receipts.append(receipt.version)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(receipts) == list(range(1, 21))
