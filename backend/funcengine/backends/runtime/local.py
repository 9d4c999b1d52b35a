import inspect
import logging
from typing import Any, Callable, Dict

from funcengine.backends.runtime.base import ScriptRuntime
from funcengine.ir.errors import ComputationError
from funcengine.ir.func import Func

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class LocalScriptRuntime(ScriptRuntime):
    """
    In-process runtime: handler names map to Python callables.

    A handler is called as handler(value, context) and may be a plain
    function or a coroutine function.
    """

    def __init__(self, handlers: Dict[str, Handler] = None):
        self.handlers: Dict[str, Handler] = dict(handlers or {})

    def register(self, name: str, handler: Handler) -> None:
        self.handlers[name] = handler

    def handler(self, name: str):
        """Decorator form of register()."""
        def decorator(fn: Handler) -> Handler:
            self.register(name, fn)
            return fn
        return decorator

    async def run(self, func: Func, value: Any, context) -> Any:
        handler = self.handlers.get(func.handler)
        if handler is None:
            raise ComputationError(f"no handler '{func.handler}' for func '{func.id}'", func_id=func.id)

        logger.debug("[LocalRuntime] %s -> %s", func.id, func.handler)
        result = handler(value, context)
        if inspect.isawaitable(result):
            result = await result
        return result
