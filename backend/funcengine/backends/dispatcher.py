"""
Backend Dispatcher - runs one func under one visibility.

execute() never raises for a function-level failure; it returns a
FuncResult carrying the error. A backend that raises something other
than an EngineError is reported as a ComputationError. Contract
violations (no workspace) and cancellation still propagate.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, Optional

from funcengine import config
from funcengine.backends.base import FuncBackend, FuncExecutionContext
from funcengine.backends.literal import IdentityBackend, LiteralBackend
from funcengine.backends.runtime.base import ScriptRuntime
from funcengine.backends.runtime.local import LocalScriptRuntime
from funcengine.backends.script import (
    AttributeBackend,
    CodeGenerationBackend,
    QualificationBackend,
    ResourceSyncBackend,
)
from funcengine.backends.validation import ValidateStringBackend
from funcengine.ir.errors import ComputationError, EngineError, ExecutionTimeout, ExternalSyncError
from funcengine.ir.func import Func, FuncBackendKind
from funcengine.ir.results import FuncResult
from funcengine.ir.visibility import Visibility
from funcengine.store.base import GraphStore

logger = logging.getLogger(__name__)


def default_backends(runtime: ScriptRuntime) -> Iterable[FuncBackend]:
    return [
        LiteralBackend(),
        IdentityBackend(),
        ValidateStringBackend(),
        AttributeBackend(runtime),
        QualificationBackend(runtime),
        CodeGenerationBackend(runtime),
        ResourceSyncBackend(runtime),
    ]


class BackendDispatcher:

    def __init__(
        self,
        runtime: Optional[ScriptRuntime] = None,
        store: Optional[GraphStore] = None,
        timeouts: Optional[Dict[FuncBackendKind, Optional[float]]] = None,
        backends: Optional[Iterable[FuncBackend]] = None,
    ):
        self.runtime = runtime or LocalScriptRuntime()
        self.store = store
        self.timeouts = dict(config.load_timeouts())
        if timeouts:
            self.timeouts.update(timeouts)

        self._backends: Dict[FuncBackendKind, FuncBackend] = {}
        for backend in backends or default_backends(self.runtime):
            for kind in backend.kinds:
                self._backends[kind] = backend

        missing = set(FuncBackendKind) - set(self._backends)
        if missing:
            raise ValueError(f"no backend for kinds: {sorted(k.value for k in missing)}")

    def backend_for(self, kind: FuncBackendKind) -> FuncBackend:
        return self._backends[kind]

    def context_for(self, visibility: Visibility, component_id: Optional[str] = None) -> FuncExecutionContext:
        reader = self.store.reader(visibility) if self.store is not None else None
        return FuncExecutionContext(visibility=visibility, component_id=component_id, reader=reader)

    async def execute(
        self,
        func: Func,
        value: Any,
        visibility: Visibility,
        component_id: Optional[str] = None,
    ) -> FuncResult:
        visibility.require_workspace()
        backend = self._backends[func.kind]
        context = self.context_for(visibility, component_id)
        timeout = self.timeouts.get(func.kind)

        logger.debug("[Dispatcher] %s (%s) at %s", func.id, func.kind.value, visibility)
        try:
            if timeout is None:
                output = await backend.execute(func, value, context)
            else:
                output = await asyncio.wait_for(backend.execute(func, value, context), timeout)
        except asyncio.TimeoutError:
            error = self._timeout_error(func, timeout)
            logger.warning("[Dispatcher] %s timed out after %ss", func.id, timeout)
            return FuncResult.failure(func.id, func.kind, error)
        except EngineError as e:
            logger.warning("[Dispatcher] %s failed (%s): %s", func.id, e.kind, e.message)
            return FuncResult.failure(func.id, func.kind, e)
        except Exception as e:
            logger.exception("[Dispatcher] %s backend raised %s", func.id, type(e).__name__)
            error = ComputationError(f"func '{func.id}' raised {type(e).__name__}: {e}", func_id=func.id)
            return FuncResult.failure(func.id, func.kind, error)

        return FuncResult.success(func.id, func.kind, output)

    @staticmethod
    def _timeout_error(func: Func, timeout: float) -> EngineError:
        if func.capabilities.side_effects:
            # The remote side may still be mid-change.
            return ExternalSyncError(
                f"resource sync '{func.id}' exceeded {timeout:g}s; remote state unknown",
                func_id=func.id,
            )
        return ExecutionTimeout(func.id, timeout)
