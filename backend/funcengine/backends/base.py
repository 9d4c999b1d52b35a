from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, FrozenSet, Optional

from funcengine.ir.func import Func, FuncBackendKind
from funcengine.ir.visibility import Visibility
from funcengine.store.base import AttributeReader


@dataclass(frozen=True)
class FuncExecutionContext:
    """
    Everything a function may see: the coordinate, the component it runs
    for, and read-only attribute access at that same coordinate.
    """
    visibility: Visibility
    component_id: Optional[str] = None
    reader: Optional[AttributeReader] = None

    def attribute(self, name: str, default: Any = None, component_id: Optional[str] = None) -> Any:
        target = component_id or self.component_id
        if self.reader is None or target is None:
            return default
        return self.reader.get(target, name, default)


class FuncBackend(ABC):
    kinds: FrozenSet[FuncBackendKind]

    @abstractmethod
    async def execute(self, func: Func, value: Any, context: FuncExecutionContext) -> Any:
        """
        Must:
        - return the function's value
        - raise an EngineError subclass on failure
        - NEVER write to the store
        """
