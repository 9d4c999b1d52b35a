"""
Resource sync - reconciles a component with the external system it models.

The only stage with side effects. Success and failure are both recorded in
the store as the component's resource status, so callers can tell a failed
sync apart from one that never ran.
"""

import logging
from typing import Optional

from funcengine.ir.errors import ExternalSyncError, FuncNotFoundError
from funcengine.ir.func import FuncBackendKind
from funcengine.ir.results import FuncResult, ResourceStatus, ResourceSyncResult
from funcengine.ir.visibility import Visibility
from funcengine.pipeline.stage import ComponentStage

logger = logging.getLogger(__name__)


class ResourceSyncRunner(ComponentStage):

    name = "resource"

    async def run(self, component_id: str, visibility: Visibility) -> Optional[FuncResult]:
        return await self.sync(component_id, visibility)

    async def sync(self, component_id: str, visibility: Visibility) -> Optional[FuncResult]:
        visibility.require_workspace()
        snapshot = self.ctx.store.read(component_id, visibility)
        func_id = snapshot.schema.resource_sync_func_id
        if func_id is None:
            return None

        func = self.ctx.registry.get(func_id)
        if func is None:
            return FuncResult.failure(func_id, FuncBackendKind.JS_RESOURCE_SYNC, FuncNotFoundError(func_id))

        prior = self.ctx.store.get_resource(component_id, visibility)
        payload = {
            "attributes": dict(snapshot.attributes),
            "resource": prior.to_dict() if prior is not None else None,
        }
        outcome = await self.ctx.dispatcher.execute(func, payload, visibility, component_id=component_id)

        if outcome.ok:
            self.ctx.store.set_resource(component_id, visibility, outcome.value)
            logger.info("[ResourceSync] %s synced (%s)", component_id, outcome.value.status.value)
        elif isinstance(outcome.error, ExternalSyncError):
            record = ResourceSyncResult(
                status=ResourceStatus.ERROR,
                payload=prior.payload if prior is not None else None,
                message=outcome.error.message,
            )
            self.ctx.store.set_resource(component_id, visibility, record)
            logger.warning("[ResourceSync] %s failed (partial=%s): %s",
                           component_id, outcome.error.partial, outcome.error.message)
        return outcome
