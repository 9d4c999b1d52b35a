"""
Literal and identity backends.

Literal kinds check the input against the kind's shape and never coerce
across shapes: "1" is not an Integer and True is not an Integer either.
None is accepted by every literal kind and means the attribute is unset.
"""

import json
from collections.abc import Mapping
from typing import Any

from funcengine.backends.base import FuncBackend, FuncExecutionContext
from funcengine.ir.errors import TypeMismatchError
from funcengine.ir.func import Func, FuncBackendKind


def _check_string_keys(value: Mapping, expected: str) -> dict:
    for key in value:
        if not isinstance(key, str):
            raise TypeMismatchError(f"{expected} with string keys", key)
    return dict(value)


def _coerce_json(value: Any) -> Any:
    try:
        return json.loads(json.dumps(value))
    except (TypeError, ValueError):
        raise TypeMismatchError("a JSON-serialisable value", value) from None


class LiteralBackend(FuncBackend):
    kinds = frozenset({
        FuncBackendKind.ARRAY,
        FuncBackendKind.BOOLEAN,
        FuncBackendKind.INTEGER,
        FuncBackendKind.STRING,
        FuncBackendKind.MAP,
        FuncBackendKind.PROP_OBJECT,
        FuncBackendKind.JSON,
        FuncBackendKind.UNSET,
    })

    async def execute(self, func: Func, value: Any, context: FuncExecutionContext) -> Any:
        return self.coerce(func.kind, value)

    @staticmethod
    def coerce(kind: FuncBackendKind, value: Any) -> Any:
        if kind == FuncBackendKind.UNSET or value is None:
            return None

        if kind == FuncBackendKind.BOOLEAN:
            if not isinstance(value, bool):
                raise TypeMismatchError("Boolean", value)
            return value

        if kind == FuncBackendKind.INTEGER:
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeMismatchError("Integer", value)
            return value

        if kind == FuncBackendKind.STRING:
            if not isinstance(value, str):
                raise TypeMismatchError("String", value)
            return value

        if kind == FuncBackendKind.ARRAY:
            if not isinstance(value, (list, tuple)):
                raise TypeMismatchError("Array", value)
            return list(value)

        if kind == FuncBackendKind.MAP:
            if not isinstance(value, Mapping):
                raise TypeMismatchError("Map", value)
            return _check_string_keys(value, "Map")

        if kind == FuncBackendKind.PROP_OBJECT:
            if not isinstance(value, Mapping):
                raise TypeMismatchError("PropObject", value)
            return _check_string_keys(value, "PropObject")

        if kind == FuncBackendKind.JSON:
            return _coerce_json(value)

        raise TypeMismatchError(f"a literal kind, not {kind.value}", value)


class IdentityBackend(FuncBackend):
    kinds = frozenset({FuncBackendKind.IDENTITY})

    async def execute(self, func: Func, value: Any, context: FuncExecutionContext) -> Any:
        return value
