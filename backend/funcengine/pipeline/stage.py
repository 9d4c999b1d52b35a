from abc import ABC, abstractmethod
from typing import Any, Optional

import yaml

from funcengine.ir.component import ComponentSnapshot
from funcengine.ir.errors import ComputationError
from funcengine.ir.func import Func
from funcengine.ir.visibility import Visibility
from funcengine.pipeline.context import EngineContext


def literal_payload(func: Func) -> Optional[Any]:
    """Literal input carried in a non-script func's code payload, e.g. code: "true"."""
    if not func.code:
        return None
    try:
        return yaml.safe_load(func.code)
    except yaml.YAMLError as e:
        raise ComputationError(f"func '{func.id}' has a malformed code payload: {e}", func_id=func.id) from e


def func_input(func: Func, snapshot: ComponentSnapshot) -> Any:
    """What a component-level func (qualification, code generation) receives."""
    if func.capabilities.is_script:
        return dict(snapshot.attributes)
    return literal_payload(func)


class ComponentStage(ABC):
    name: str

    def __init__(self, ctx: EngineContext):
        self.ctx = ctx

    @abstractmethod
    async def run(self, component_id: str, visibility: Visibility) -> Any:
        """
        Must:
        - read through ctx.store at exactly `visibility`
        - dispatch through ctx.dispatcher
        - NEVER call other stages
        """
        pass
