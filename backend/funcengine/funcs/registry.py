# backend/funcengine/funcs/registry.py
"""
Func Registry - Central store for function definitions
"""

import logging
import threading
from typing import Dict, List, Optional

from funcengine.ir.errors import DuplicateFuncError, FuncNotFoundError
from funcengine.ir.func import Func, FuncBackendKind, is_customizable_func_kind

logger = logging.getLogger(__name__)


class FuncRegistry:
    """
    Central registry for function definitions

    Entries are never mutated or replaced. Editing a function means
    registering a new revision under a new id.
    """

    def __init__(self):
        self.funcs: Dict[str, Func] = {}
        self._kind_index: Dict[FuncBackendKind, List[str]] = {kind: [] for kind in FuncBackendKind}
        self._name_index: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def register(self, func: Func) -> Func:
        """Register a func. Owned by catalog loading and authoring tools."""
        with self._lock:
            if func.id in self.funcs:
                raise DuplicateFuncError(func.id)
            self.funcs[func.id] = func
            self._kind_index[func.kind].append(func.id)
            self._name_index.setdefault(func.name, []).append(func.id)
        logger.debug("[FuncRegistry] registered %s (%s, rev %d)", func.id, func.kind.value, func.revision)
        return func

    def revise(self, func_id: str, new_id: str, **changes) -> Func:
        """Register a new revision of an existing func; the original stays untouched."""
        return self.register(self.require(func_id).next_revision(new_id, **changes))

    def get(self, func_id: str) -> Optional[Func]:
        """Get a func by ID"""
        return self.funcs.get(func_id)

    def require(self, func_id: str) -> Func:
        func = self.funcs.get(func_id)
        if func is None:
            raise FuncNotFoundError(func_id)
        return func

    def latest(self, name: str) -> Optional[Func]:
        """Highest revision registered under a name"""
        candidates = [self.funcs[fid] for fid in self._name_index.get(name, [])]
        if not candidates:
            return None
        return max(candidates, key=lambda f: f.revision)

    def get_by_kind(self, kind: FuncBackendKind) -> List[Func]:
        return [self.funcs[fid] for fid in self._kind_index.get(kind, [])]

    def list_all(self) -> List[Func]:
        return list(self.funcs.values())

    def list_customizable(self) -> List[Func]:
        return [f for f in self.funcs.values() if f.is_customizable]

    @staticmethod
    def is_customizable(kind: FuncBackendKind) -> bool:
        return is_customizable_func_kind(kind)

    def __contains__(self, func_id: str) -> bool:
        return func_id in self.funcs

    def __len__(self) -> int:
        return len(self.funcs)


# Global registry instance
_global_registry: Optional[FuncRegistry] = None


def get_func_registry() -> FuncRegistry:
    """Get or create the global func registry, seeded with the builtins"""
    global _global_registry
    if _global_registry is None:
        logger.info("[FuncRegistry] creating global registry")
        registry = FuncRegistry()
        from funcengine.funcs.catalog import register_builtin_funcs
        register_builtin_funcs(registry)
        _global_registry = registry
    return _global_registry
