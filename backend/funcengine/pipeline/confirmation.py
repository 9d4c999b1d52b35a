"""
Confirmations - ask whether a component's resource is what it should be.

A confirmation is a JsAttribute func bound to the schema. It receives the
recorded resource (None before the first sync) and the attributes, and
answers {"success": bool, "recommendedActions": [...]}. Recommendations the
schema has no action for are dropped.
"""

import asyncio
import logging
from typing import Any, List, Optional

from funcengine.ir.component import ComponentSnapshot
from funcengine.ir.errors import ComputationError
from funcengine.ir.func import Func, FuncBackendKind
from funcengine.ir.results import ConfirmationResult, ResourceSyncResult
from funcengine.ir.visibility import Visibility
from funcengine.pipeline.stage import ComponentStage

logger = logging.getLogger(__name__)


class ConfirmationRunner(ComponentStage):

    name = "confirmation"

    async def run(self, component_id: str, visibility: Visibility) -> List[ConfirmationResult]:
        return await self.confirm(component_id, visibility)

    async def confirm(self, component_id: str, visibility: Visibility) -> List[ConfirmationResult]:
        visibility.require_workspace()
        snapshot = self.ctx.store.read(component_id, visibility)
        func_ids = snapshot.schema.confirmation_func_ids
        if not func_ids:
            return []

        resource = self.ctx.store.get_resource(component_id, visibility)
        results = await asyncio.gather(*(self._run_one(func_id, snapshot, resource) for func_id in func_ids))

        recommended = sorted({action for r in results for action in r.recommended_actions})
        logger.info("[Confirmation] %s at %s: %d confirmations, recommended %s",
                    component_id, visibility, len(results), recommended or "nothing")
        return list(results)

    async def recommendations(self, component_id: str, visibility: Visibility) -> List[str]:
        """Every recommended action across the component's confirmations, deduplicated."""
        seen: List[str] = []
        for result in await self.confirm(component_id, visibility):
            for action in result.recommended_actions:
                if action not in seen:
                    seen.append(action)
        return seen

    async def _run_one(self, func_id: str, snapshot: ComponentSnapshot,
                       resource: Optional[ResourceSyncResult]) -> ConfirmationResult:
        func = self.ctx.registry.get(func_id)
        if func is None:
            return self._result(snapshot, func_id, False, [], f"func '{func_id}' not found", "func_not_found")
        if func.kind != FuncBackendKind.JS_ATTRIBUTE:
            error = ComputationError(
                f"{func.kind.value} func '{func_id}' cannot act as a confirmation", func_id=func_id
            )
            return self._result(snapshot, func_id, False, [], error.message, error.kind)

        payload = {
            "resource": resource.to_dict() if resource is not None else None,
            "attributes": dict(snapshot.attributes),
        }
        outcome = await self.ctx.dispatcher.execute(
            func, payload, snapshot.visibility, component_id=snapshot.component_id
        )
        if not outcome.ok:
            return self._result(snapshot, func_id, False, [], outcome.error.message, outcome.error.kind)

        try:
            success, actions, message = self._normalise(func, outcome.value)
        except ComputationError as e:
            return self._result(snapshot, func_id, False, [], e.message, e.kind)

        supported = [action for action in actions if snapshot.schema.supports(action)]
        if len(supported) != len(actions):
            logger.debug("[Confirmation] %s dropped unsupported actions %s", func_id,
                         [a for a in actions if a not in supported])
        return self._result(snapshot, func_id, success, supported, message)

    @staticmethod
    def _normalise(func: Func, output: Any):
        if not isinstance(output, dict) or not isinstance(output.get("success"), bool):
            raise ComputationError(
                f"confirmation '{func.id}' returned malformed output: {output!r}", func_id=func.id
            )
        actions = output.get("recommendedActions") or []
        if not isinstance(actions, list) or not all(isinstance(a, str) for a in actions):
            raise ComputationError(
                f"confirmation '{func.id}' recommendedActions must be a list of action names", func_id=func.id
            )
        return output["success"], actions, output.get("message")

    @staticmethod
    def _result(snapshot: ComponentSnapshot, func_id: str, success: bool, actions: List[str],
                message: Optional[str], error_kind: Optional[str] = None) -> ConfirmationResult:
        return ConfirmationResult(
            component_id=snapshot.component_id,
            func_id=func_id,
            success=success,
            visibility=snapshot.visibility,
            recommended_actions=actions,
            message=message,
            error_kind=error_kind,
        )
