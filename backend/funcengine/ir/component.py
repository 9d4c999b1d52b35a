from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple
import uuid

from .visibility import Visibility


class ComponentKind(Enum):
    SERVER = "server"
    OPERATING_SYSTEM = "operating_system"
    DISK_IMAGE = "disk_image"
    PORT = "port"
    CREDENTIAL = "credential"
    GENERIC = "generic"


@dataclass(frozen=True)
class AttributePrototype:
    """
    How an attribute gets its value: a func plus its argument sources.

    Each input maps an argument name to either {"attribute": <name>} (another
    attribute read at the same coordinate) or {"value": <literal>}.
    """
    func_id: str
    inputs: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    def dependencies(self) -> Tuple[str, ...]:
        return tuple(
            source["attribute"]
            for source in self.inputs.values()
            if "attribute" in source
        )


@dataclass(frozen=True)
class ComponentSchema:
    name: str
    kind: ComponentKind = ComponentKind.GENERIC
    qualification_func_ids: Tuple[str, ...] = ()
    code_generation_func_ids: Tuple[str, ...] = ()
    confirmation_func_ids: Tuple[str, ...] = ()
    resource_sync_func_id: Optional[str] = None
    attribute_prototypes: Mapping[str, AttributePrototype] = field(default_factory=dict)
    defaults: Mapping[str, Any] = field(default_factory=dict)
    actions: FrozenSet[str] = frozenset()

    def supports(self, action: str) -> bool:
        return action in self.actions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "qualification_func_ids": list(self.qualification_func_ids),
            "code_generation_func_ids": list(self.code_generation_func_ids),
            "confirmation_func_ids": list(self.confirmation_func_ids),
            "resource_sync_func_id": self.resource_sync_func_id,
            "attribute_prototypes": {
                attr: {"func_id": p.func_id, "inputs": {k: dict(v) for k, v in p.inputs.items()}}
                for attr, p in self.attribute_prototypes.items()
            },
            "defaults": dict(self.defaults),
            "actions": sorted(self.actions),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComponentSchema":
        return cls(
            name=data["name"],
            kind=ComponentKind(data.get("kind", ComponentKind.GENERIC.value)),
            qualification_func_ids=tuple(data.get("qualification_func_ids", ())),
            code_generation_func_ids=tuple(data.get("code_generation_func_ids", ())),
            confirmation_func_ids=tuple(data.get("confirmation_func_ids", ())),
            resource_sync_func_id=data.get("resource_sync_func_id"),
            attribute_prototypes={
                attr: AttributePrototype(func_id=p["func_id"], inputs=p.get("inputs", {}))
                for attr, p in data.get("attribute_prototypes", {}).items()
            },
            defaults=data.get("defaults", {}),
            actions=frozenset(data.get("actions", ())),
        )


@dataclass
class Component:
    schema: ComponentSchema
    name: str = ""
    id: str = field(default_factory=lambda: f"comp_{uuid.uuid4().hex[:12]}")

    @property
    def kind(self) -> ComponentKind:
        return self.schema.kind


@dataclass(frozen=True)
class ComponentSnapshot:
    """Point-in-time view of a component at exactly one coordinate."""
    component_id: str
    name: str
    schema: ComponentSchema
    attributes: Mapping[str, Any]
    visibility: Visibility
    versions: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))
        object.__setattr__(self, "versions", MappingProxyType(dict(self.versions)))

    @property
    def kind(self) -> ComponentKind:
        return self.schema.kind

    def get(self, attribute: str, default: Any = None) -> Any:
        return self.attributes.get(attribute, default)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "componentId": self.component_id,
            "name": self.name,
            "kind": self.kind.value,
            "attributes": dict(self.attributes),
            "visibility": self.visibility.to_dict(),
        }


@dataclass(frozen=True)
class LabelEntry:
    label: str
    value: str
