"""
Component Graph Store contract.

Versioned attribute storage scoped by visibility. Reads return the most
specific version visible at a coordinate:

    (change set, system) > (change set, no system) > (head, system) > (head, no system) > schema default

Writes are accepted only inside an open change set. Applying a change set
merges its writes and created components into head and closes it for good.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Tuple
import uuid

from funcengine.ir.component import Component, ComponentSchema, ComponentSnapshot, LabelEntry
from funcengine.ir.errors import ImmutableError, InvalidVisibilityError
from funcengine.ir.results import ResourceSyncResult
from funcengine.ir.visibility import HEAD, Visibility


class ChangeSetStatus(Enum):
    OPEN = "open"
    APPLIED = "applied"
    ABANDONED = "abandoned"


@dataclass
class ChangeSet:
    workspace_id: str
    name: str
    id: str = field(default_factory=lambda: f"cs_{uuid.uuid4().hex[:12]}")
    status: ChangeSetStatus = ChangeSetStatus.OPEN
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_open(self) -> bool:
        return self.status == ChangeSetStatus.OPEN


@dataclass(frozen=True)
class WriteReceipt:
    component_id: str
    attribute: str
    visibility: Visibility
    version: int


def read_layers(visibility: Visibility) -> List[Tuple[str, Optional[str]]]:
    """(change_set_id, system_id) layers, least specific first."""
    layers: List[Tuple[str, Optional[str]]] = [(HEAD, None)]
    if visibility.system_id:
        layers.append((HEAD, visibility.system_id))
    if not visibility.is_head:
        layers.append((visibility.change_set_id, None))
        if visibility.system_id:
            layers.append((visibility.change_set_id, visibility.system_id))
    return layers


class AttributeReader:
    """Read-only attribute access at a single coordinate, handed to scripts."""

    def __init__(self, store: "GraphStore", visibility: Visibility):
        self._store = store
        self.visibility = visibility

    def snapshot(self, component_id: str) -> ComponentSnapshot:
        return self._store.read(component_id, self.visibility)

    def get(self, component_id: str, attribute: str, default: Any = None) -> Any:
        return self.snapshot(component_id).get(attribute, default)


class GraphStore(ABC):

    # -------------------------------------------------
    # Change sets
    # -------------------------------------------------

    @abstractmethod
    def open_change_set(self, workspace_id: str, name: str = "") -> ChangeSet:
        ...

    @abstractmethod
    def get_change_set(self, change_set_id: str) -> ChangeSet:
        """Raises ChangeSetNotFoundError."""

    @abstractmethod
    def apply_change_set(self, change_set_id: str) -> ChangeSet:
        ...

    @abstractmethod
    def abandon_change_set(self, change_set_id: str) -> ChangeSet:
        ...

    def force_change_set(self, visibility: Visibility) -> Tuple[Visibility, Optional[str]]:
        """
        Writes need an open change set. At head, open one and return the
        moved visibility plus its id; otherwise return the visibility as is.
        """
        visibility.require_workspace()
        if not visibility.is_head:
            self.ensure_writable(visibility)
            return visibility, None
        change_set = self.open_change_set(visibility.workspace_id, name="forced")
        return visibility.with_change_set(change_set.id), change_set.id

    def ensure_writable(self, visibility: Visibility) -> ChangeSet:
        visibility.require_workspace()
        if visibility.is_head:
            raise ImmutableError(HEAD, reason="is the applied head")
        change_set = self.get_change_set(visibility.change_set_id)
        if change_set.workspace_id != visibility.workspace_id:
            raise InvalidVisibilityError(
                f"change set '{change_set.id}' does not belong to workspace '{visibility.workspace_id}'"
            )
        if not change_set.is_open:
            raise ImmutableError(change_set.id, reason=f"is {change_set.status.value}")
        return change_set

    def ensure_readable(self, visibility: Visibility) -> None:
        visibility.require_workspace()
        if visibility.is_head:
            return
        change_set = self.get_change_set(visibility.change_set_id)
        if change_set.workspace_id != visibility.workspace_id:
            raise InvalidVisibilityError(
                f"change set '{change_set.id}' does not belong to workspace '{visibility.workspace_id}'"
            )

    # -------------------------------------------------
    # Components
    # -------------------------------------------------

    @abstractmethod
    def create_component(self, name: str, schema: ComponentSchema, visibility: Visibility,
                         component_id: Optional[str] = None) -> Component:
        ...

    @abstractmethod
    def list_components(self, visibility: Visibility) -> List[Component]:
        ...

    def list_component_names(self, visibility: Visibility) -> List[LabelEntry]:
        entries = [LabelEntry(label=c.name, value=c.id) for c in self.list_components(visibility)]
        return sorted(entries, key=lambda e: (e.label, e.value))

    def copy_component(self, component_id: str, visibility: Visibility) -> Component:
        """Clone a component and its visible attributes into the same open change set."""
        self.ensure_writable(visibility)
        original = self.read(component_id, visibility)
        pasted = self.create_component(f"{original.name} - Copy", original.schema, visibility)
        for attribute, value in sorted(original.attributes.items()):
            if original.schema.defaults.get(attribute, _MISSING) == value:
                continue
            self.write(pasted.id, attribute, value, visibility)
        return pasted

    def paste_components(self, component_ids: List[str],
                         visibility: Visibility) -> Tuple[List[Component], Visibility, Optional[str]]:
        """
        Copy components read at `visibility`. At head a change set is forced
        open first; the copies land there and its id is returned.
        """
        visibility.require_workspace()
        for component_id in component_ids:
            self.read(component_id, visibility)

        visibility, forced_change_set_id = self.force_change_set(visibility)
        pasted = [self.copy_component(component_id, visibility) for component_id in component_ids]
        return pasted, visibility, forced_change_set_id

    # -------------------------------------------------
    # Attributes
    # -------------------------------------------------

    @abstractmethod
    def read(self, component_id: str, visibility: Visibility) -> ComponentSnapshot:
        ...

    @abstractmethod
    def write(self, component_id: str, attribute: str, value: Any, visibility: Visibility) -> WriteReceipt:
        ...

    @abstractmethod
    def remove_attribute_override(self, component_id: str, attribute: str,
                                  visibility: Visibility) -> WriteReceipt:
        """Reset an attribute to its schema default inside an open change set."""

    def reader(self, visibility: Visibility) -> AttributeReader:
        return AttributeReader(self, visibility)

    # -------------------------------------------------
    # Resources (mirror external state; not change-set scoped)
    # -------------------------------------------------

    @abstractmethod
    def set_resource(self, component_id: str, visibility: Visibility, result: ResourceSyncResult) -> None:
        ...

    @abstractmethod
    def get_resource(self, component_id: str, visibility: Visibility) -> Optional[ResourceSyncResult]:
        ...


_MISSING = object()
