"""
Script backends: attribute, qualification, code generation and resource sync.

All four hand the func to a ScriptRuntime and normalise what comes back.
Only resource sync may touch the outside world; its runtime call is
shielded, so a superseded run still completes remotely and the caller
just drops the outcome.
"""

import asyncio
import json
import logging
from typing import Any

from funcengine.backends.base import FuncBackend, FuncExecutionContext
from funcengine.backends.runtime.base import ScriptRuntime
from funcengine.ir.errors import ComputationError, EngineError, ExternalSyncError
from funcengine.ir.func import Func, FuncBackendKind
from funcengine.ir.results import CodeGenerationOutput, ResourceStatus, ResourceSyncResult

logger = logging.getLogger(__name__)


def canonical_json(value: Any) -> str:
    """Byte-stable JSON: sorted keys, fixed separators, no ASCII escaping drift."""
    return json.dumps(value, sort_keys=True, separators=(",", ": "), indent=2, ensure_ascii=False)


class ScriptBackend(FuncBackend):

    def __init__(self, runtime: ScriptRuntime):
        self.runtime = runtime

    async def invoke(self, func: Func, value: Any, context: FuncExecutionContext) -> Any:
        try:
            return await self.runtime.run(func, value, context)
        except EngineError:
            raise
        except Exception as e:
            raise ComputationError(f"func '{func.id}' raised {type(e).__name__}: {e}", func_id=func.id) from e

    async def execute(self, func: Func, value: Any, context: FuncExecutionContext) -> Any:
        return self.normalise(func, await self.invoke(func, value, context))

    def normalise(self, func: Func, output: Any) -> Any:
        return output


class AttributeBackend(ScriptBackend):
    kinds = frozenset({FuncBackendKind.JS_ATTRIBUTE})

    def normalise(self, func: Func, output: Any) -> Any:
        # Attribute values are stored as JSON.
        try:
            return json.loads(json.dumps(output, allow_nan=False))
        except (TypeError, ValueError) as e:
            raise ComputationError(
                f"attribute func '{func.id}' returned a non-JSON value: {e}", func_id=func.id
            ) from e


class QualificationBackend(ScriptBackend):
    kinds = frozenset({FuncBackendKind.JS_QUALIFICATION})

    def normalise(self, func: Func, output: Any) -> dict:
        if isinstance(output, bool):
            return {"success": output, "message": None}

        if isinstance(output, dict):
            if isinstance(output.get("success"), bool):
                return {"success": output["success"], "message": output.get("message")}
            # {"result": "success" | "warning" | "failure"}
            result = output.get("result")
            if result in ("success", "warning", "failure"):
                return {"success": result != "failure", "message": output.get("message")}

        raise ComputationError(
            f"qualification '{func.id}' returned malformed output: {output!r}", func_id=func.id
        )


class CodeGenerationBackend(ScriptBackend):
    kinds = frozenset({FuncBackendKind.JS_CODE_GENERATION})

    def normalise(self, func: Func, output: Any) -> CodeGenerationOutput:
        if isinstance(output, str):
            return CodeGenerationOutput(func_id=func.id, format="text", code=output)

        if isinstance(output, dict) and "code" in output:
            code = output["code"]
            fmt = str(output.get("format") or "json")
            if isinstance(code, (dict, list)):
                code = canonical_json(code)
            elif not isinstance(code, str):
                raise ComputationError(f"code generation '{func.id}' returned non-text code", func_id=func.id)
            return CodeGenerationOutput(func_id=func.id, format=fmt, code=code)

        raise ComputationError(
            f"code generation '{func.id}' returned malformed output: {output!r}", func_id=func.id
        )


class ResourceSyncBackend(ScriptBackend):
    kinds = frozenset({FuncBackendKind.JS_RESOURCE_SYNC})

    async def execute(self, func: Func, value: Any, context: FuncExecutionContext) -> ResourceSyncResult:
        remote = asyncio.ensure_future(self.runtime.run(func, value, context))
        try:
            output = await asyncio.shield(remote)
        except asyncio.CancelledError:
            if not remote.done():
                logger.warning("[ResourceSync] %s superseded; remote call left to finish, result will be dropped",
                               func.id)
                remote.add_done_callback(_log_orphan(func.id))
            raise
        except ExternalSyncError:
            raise
        except Exception as e:
            raise ExternalSyncError(f"resource sync '{func.id}' failed: {e}", func_id=func.id) from e
        return self.normalise(func, output)

    def normalise(self, func: Func, output: Any) -> ResourceSyncResult:
        if not isinstance(output, dict):
            raise ExternalSyncError(
                f"resource sync '{func.id}' returned malformed output: {output!r}", func_id=func.id
            )
        try:
            status = ResourceStatus(output.get("status", "ok"))
        except ValueError:
            raise ExternalSyncError(
                f"resource sync '{func.id}' returned unknown status {output.get('status')!r}", func_id=func.id
            ) from None

        result = ResourceSyncResult(
            status=status,
            payload=output.get("payload"),
            message=output.get("message"),
            logs=[str(line) for line in output.get("logs", [])],
        )
        if status == ResourceStatus.ERROR:
            raise ExternalSyncError(result.message or f"resource sync '{func.id}' reported error", func_id=func.id)
        return result


def _log_orphan(func_id: str):
    def callback(task: asyncio.Future) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("[ResourceSync] discarded %s finished with error: %s", func_id, error)
        else:
            logger.info("[ResourceSync] discarded %s finished remotely", func_id)
    return callback
