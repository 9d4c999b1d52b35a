"""
Function definitions and the backend-kind capability table.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, NamedTuple, Optional


class FuncBackendKind(Enum):
    ARRAY = "Array"
    BOOLEAN = "Boolean"
    IDENTITY = "Identity"
    INTEGER = "Integer"
    JS_QUALIFICATION = "JsQualification"
    JS_RESOURCE_SYNC = "JsResourceSync"
    JS_CODE_GENERATION = "JsCodeGeneration"
    JS_ATTRIBUTE = "JsAttribute"
    MAP = "Map"
    PROP_OBJECT = "PropObject"
    STRING = "String"
    UNSET = "Unset"
    JSON = "Json"
    VALIDATE_STRING_VALUE = "ValidateStringValue"


class KindCapabilities(NamedTuple):
    customizable: bool
    is_script: bool
    is_literal: bool
    side_effects: bool


_SCRIPT = KindCapabilities(customizable=True, is_script=True, is_literal=False, side_effects=False)
_LITERAL = KindCapabilities(customizable=False, is_script=False, is_literal=True, side_effects=False)
_SYSTEM = KindCapabilities(customizable=False, is_script=False, is_literal=False, side_effects=False)

KIND_CAPABILITIES: Dict[FuncBackendKind, KindCapabilities] = {
    FuncBackendKind.ARRAY: _LITERAL,
    FuncBackendKind.BOOLEAN: _LITERAL,
    FuncBackendKind.INTEGER: _LITERAL,
    FuncBackendKind.STRING: _LITERAL,
    FuncBackendKind.MAP: _LITERAL,
    FuncBackendKind.PROP_OBJECT: _LITERAL,
    FuncBackendKind.JSON: _LITERAL,
    FuncBackendKind.UNSET: _LITERAL,
    FuncBackendKind.IDENTITY: _SYSTEM,
    FuncBackendKind.VALIDATE_STRING_VALUE: _SYSTEM,
    FuncBackendKind.JS_ATTRIBUTE: _SCRIPT,
    FuncBackendKind.JS_QUALIFICATION: _SCRIPT,
    FuncBackendKind.JS_CODE_GENERATION: _SCRIPT,
    FuncBackendKind.JS_RESOURCE_SYNC: _SCRIPT._replace(side_effects=True),
}

def check_capability_table(table: Dict[FuncBackendKind, KindCapabilities]) -> None:
    missing = set(FuncBackendKind) - set(table)
    if missing:
        raise RuntimeError(f"capability table must cover every kind; missing {sorted(k.value for k in missing)}")


check_capability_table(KIND_CAPABILITIES)


def capabilities(kind: FuncBackendKind) -> KindCapabilities:
    return KIND_CAPABILITIES[kind]


def is_customizable_func_kind(kind: FuncBackendKind) -> bool:
    return KIND_CAPABILITIES[kind].customizable


@dataclass(frozen=True)
class Func:
    """
    A function definition. Read-only to the engine: a changed function is a
    new Func with a new id and a bumped revision.
    """
    id: str
    name: str
    kind: FuncBackendKind
    handler: str = ""
    description: Optional[str] = None
    code: Optional[str] = None
    is_builtin: bool = False
    revision: int = 1

    @property
    def capabilities(self) -> KindCapabilities:
        return KIND_CAPABILITIES[self.kind]

    @property
    def is_customizable(self) -> bool:
        return self.capabilities.customizable

    def next_revision(self, new_id: str, **changes) -> "Func":
        return replace(self, id=new_id, revision=self.revision + 1, **changes)
