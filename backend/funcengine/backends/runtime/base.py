from abc import ABC, abstractmethod
from typing import Any

from funcengine.ir.func import Func


class ScriptRuntime(ABC):
    @abstractmethod
    async def run(self, func: Func, value: Any, context) -> Any:
        """Run a script func's handler against its input and return the raw output"""
        pass
