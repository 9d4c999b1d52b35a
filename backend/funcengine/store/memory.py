import copy
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from funcengine.ir.component import Component, ComponentSchema, ComponentSnapshot
from funcengine.ir.errors import ChangeSetNotFoundError, ComponentNotFoundError
from funcengine.ir.results import ResourceSyncResult
from funcengine.ir.visibility import HEAD, Visibility
from funcengine.store.base import (
    ChangeSet,
    ChangeSetStatus,
    GraphStore,
    WriteReceipt,
    read_layers,
)

logger = logging.getLogger(__name__)

# (workspace_id, system_id, change_set_id, component_id)
LayerKey = Tuple[str, Optional[str], str, str]


@dataclass(frozen=True)
class AttributeVersion:
    value: Any
    version: int
    tombstone: bool = False


class InMemoryGraphStore(GraphStore):
    """
    Process-local store.

    Version histories are immutable tuples swapped in whole, so reads take no
    lock. Writes are serialised per (component, change set); the final
    open-check and append happen under the store lock so an apply can never
    interleave with a commit.
    """

    def __init__(self):
        self._change_sets: Dict[str, ChangeSet] = {}
        self._components: Dict[Tuple[str, str], Dict[str, Component]] = {}
        self._layers: Dict[LayerKey, Dict[str, Tuple[AttributeVersion, ...]]] = {}
        self._counters: Dict[Tuple[str, str], int] = {}
        self._resources: Dict[Tuple[str, str], ResourceSyncResult] = {}
        self._write_locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._lock = threading.RLock()

    # -------------------------------------------------
    # Change sets
    # -------------------------------------------------

    def open_change_set(self, workspace_id: str, name: str = "") -> ChangeSet:
        change_set = ChangeSet(workspace_id=workspace_id, name=name)
        with self._lock:
            self._change_sets[change_set.id] = change_set
        logger.info("[Store] opened change set %s in %s", change_set.id, workspace_id)
        return change_set

    def get_change_set(self, change_set_id: str) -> ChangeSet:
        change_set = self._change_sets.get(change_set_id)
        if change_set is None:
            raise ChangeSetNotFoundError(change_set_id)
        return change_set

    def apply_change_set(self, change_set_id: str) -> ChangeSet:
        with self._lock:
            change_set = self.get_change_set(change_set_id)
            self.ensure_writable(Visibility(change_set.workspace_id, change_set_id=change_set_id))
            change_set.status = ChangeSetStatus.APPLIED

            created = self._components.pop((change_set.workspace_id, change_set_id), {})
            self._components.setdefault((change_set.workspace_id, HEAD), {}).update(created)

            merged = 0
            for layer_key in sorted(k for k in self._layers if k[2] == change_set_id):
                workspace_id, system_id, _, component_id = layer_key
                for attribute, history in sorted(self._layers[layer_key].items()):
                    latest = history[-1]
                    self._append((workspace_id, system_id, HEAD, component_id), attribute,
                                 latest.value, latest.tombstone)
                    merged += 1

        logger.info("[Store] applied change set %s (%d attribute writes, %d components)",
                    change_set_id, merged, len(created))
        return change_set

    def abandon_change_set(self, change_set_id: str) -> ChangeSet:
        with self._lock:
            change_set = self.get_change_set(change_set_id)
            self.ensure_writable(Visibility(change_set.workspace_id, change_set_id=change_set_id))
            change_set.status = ChangeSetStatus.ABANDONED
        logger.info("[Store] abandoned change set %s", change_set_id)
        return change_set

    # -------------------------------------------------
    # Components
    # -------------------------------------------------

    def create_component(self, name: str, schema: ComponentSchema, visibility: Visibility,
                         component_id: Optional[str] = None) -> Component:
        component = Component(schema=schema, name=name)
        if component_id:
            component.id = component_id
        with self._lock:
            self.ensure_writable(visibility)
            bucket = self._components.setdefault((visibility.workspace_id, visibility.change_set_id), {})
            bucket[component.id] = component
        logger.debug("[Store] created %s '%s' at %s", component.id, name, visibility)
        return component

    def list_components(self, visibility: Visibility) -> List[Component]:
        self.ensure_readable(visibility)
        found = dict(self._components.get((visibility.workspace_id, HEAD), {}))
        if not visibility.is_head:
            found.update(self._components.get((visibility.workspace_id, visibility.change_set_id), {}))
        return list(found.values())

    def _find_component(self, component_id: str, visibility: Visibility) -> Component:
        for change_set_id in (visibility.change_set_id, HEAD):
            component = self._components.get((visibility.workspace_id, change_set_id), {}).get(component_id)
            if component is not None:
                return component
        raise ComponentNotFoundError(component_id, visibility)

    # -------------------------------------------------
    # Attributes
    # -------------------------------------------------

    def read(self, component_id: str, visibility: Visibility) -> ComponentSnapshot:
        self.ensure_readable(visibility)
        component = self._find_component(component_id, visibility)
        defaults = component.schema.defaults

        attributes: Dict[str, Any] = copy.deepcopy(dict(defaults))
        versions: Dict[str, int] = {}
        for change_set_id, system_id in read_layers(visibility):
            layer = self._layers.get((visibility.workspace_id, system_id, change_set_id, component_id), {})
            for attribute, history in list(layer.items()):
                latest = history[-1]
                if latest.tombstone:
                    if attribute in defaults:
                        attributes[attribute] = copy.deepcopy(defaults[attribute])
                    else:
                        attributes.pop(attribute, None)
                else:
                    attributes[attribute] = copy.deepcopy(latest.value)
                versions[attribute] = latest.version

        return ComponentSnapshot(
            component_id=component.id,
            name=component.name,
            schema=component.schema,
            attributes=attributes,
            visibility=visibility,
            versions=versions,
        )

    def write(self, component_id: str, attribute: str, value: Any, visibility: Visibility) -> WriteReceipt:
        return self._record(component_id, attribute, value, visibility, tombstone=False)

    def remove_attribute_override(self, component_id: str, attribute: str,
                                  visibility: Visibility) -> WriteReceipt:
        return self._record(component_id, attribute, None, visibility, tombstone=True)

    def _record(self, component_id: str, attribute: str, value: Any,
                visibility: Visibility, tombstone: bool) -> WriteReceipt:
        self.ensure_writable(visibility)
        self._find_component(component_id, visibility)
        layer_key = (visibility.workspace_id, visibility.system_id, visibility.change_set_id, component_id)
        with self._write_lock(component_id, visibility.change_set_id):
            with self._lock:
                # An apply may have closed the change set since the first check.
                self.ensure_writable(visibility)
                version = self._append(layer_key, attribute, value, tombstone)
        logger.debug("[Store] %s.%s v%d at %s", component_id, attribute, version, visibility)
        return WriteReceipt(component_id=component_id, attribute=attribute,
                            visibility=visibility, version=version)

    def _append(self, layer_key: LayerKey, attribute: str, value: Any, tombstone: bool) -> int:
        counter_key = (layer_key[3], layer_key[2])
        version = self._counters.get(counter_key, 0) + 1
        self._counters[counter_key] = version
        record = AttributeVersion(value=copy.deepcopy(value), version=version, tombstone=tombstone)
        layer = dict(self._layers.get(layer_key, {}))
        layer[attribute] = layer.get(attribute, ()) + (record,)
        self._layers[layer_key] = layer
        return version

    def _write_lock(self, component_id: str, change_set_id: str) -> threading.Lock:
        with self._lock:
            return self._write_locks.setdefault((component_id, change_set_id), threading.Lock())

    # -------------------------------------------------
    # Resources
    # -------------------------------------------------

    def set_resource(self, component_id: str, visibility: Visibility, result: ResourceSyncResult) -> None:
        visibility.require_workspace()
        with self._lock:
            self._resources[(visibility.workspace_id, component_id)] = result

    def get_resource(self, component_id: str, visibility: Visibility) -> Optional[ResourceSyncResult]:
        visibility.require_workspace()
        return self._resources.get((visibility.workspace_id, component_id))
