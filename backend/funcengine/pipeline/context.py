from dataclasses import dataclass, field
from typing import Optional

from funcengine.backends.dispatcher import BackendDispatcher
from funcengine.backends.runtime.base import ScriptRuntime
from funcengine.funcs.registry import FuncRegistry, get_func_registry
from funcengine.store.base import GraphStore
from funcengine.store.memory import InMemoryGraphStore


@dataclass
class EngineContext:
    """
    Handles every engine operation needs. Passed explicitly into each
    orchestrator instead of being looked up from global state.
    """
    store: GraphStore
    registry: FuncRegistry
    dispatcher: BackendDispatcher = None

    def __post_init__(self):
        if self.dispatcher is None:
            self.dispatcher = BackendDispatcher(store=self.store)
        elif self.dispatcher.store is None:
            self.dispatcher.store = self.store

    @classmethod
    def create(
        cls,
        store: Optional[GraphStore] = None,
        registry: Optional[FuncRegistry] = None,
        runtime: Optional[ScriptRuntime] = None,
        timeouts: Optional[dict] = None,
    ) -> "EngineContext":
        store = store if store is not None else InMemoryGraphStore()
        registry = registry if registry is not None else get_func_registry()
        dispatcher = BackendDispatcher(runtime=runtime, store=store, timeouts=timeouts)
        return cls(store=store, registry=registry, dispatcher=dispatcher)
