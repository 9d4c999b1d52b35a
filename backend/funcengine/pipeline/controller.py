import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from funcengine.ir.component import Component
from funcengine.ir.results import ConfirmationResult, FuncResult, QualificationCheck
from funcengine.ir.visibility import Visibility
from funcengine.pipeline.attributes import AttributeEvaluator
from funcengine.pipeline.codegen import CodeGenerationRunner
from funcengine.pipeline.confirmation import ConfirmationRunner
from funcengine.pipeline.context import EngineContext
from funcengine.pipeline.qualification import QualificationOrchestrator
from funcengine.pipeline.resource import ResourceSyncRunner

logger = logging.getLogger(__name__)


@dataclass
class ComponentRunResult:
    """Everything one engine pass produced for a component at one visibility."""
    component_id: str
    visibility: Visibility
    attributes: Dict[str, FuncResult] = field(default_factory=dict)
    qualifications: Optional[QualificationCheck] = None
    code: List[FuncResult] = field(default_factory=list)
    confirmations: List[ConfirmationResult] = field(default_factory=list)

    @property
    def qualified(self) -> bool:
        return self.qualifications is None or self.qualifications.success

    def to_dict(self) -> Dict[str, Any]:
        return {
            "componentId": self.component_id,
            "visibility": self.visibility.to_dict(),
            "attributes": {
                attr: {"value": r.value, "error": r.error.to_detail() if r.error else None}
                for attr, r in self.attributes.items()
            },
            "qualifications": self.qualifications.to_dict() if self.qualifications else None,
            "code": [
                r.value.to_dict() if r.ok else {"funcId": r.func_id, "error": r.error.to_detail()}
                for r in self.code
            ],
            "confirmations": [r.to_dict() for r in self.confirmations],
        }


class ComponentEngine:
    """
    Runs the per-component passes in order:
    attributes (open change sets only) -> qualifications + code generation
    + confirmations.

    Resource sync is never part of a recompute; it runs only on request.
    """

    def __init__(self, ctx: Optional[EngineContext] = None):
        self.ctx = ctx or EngineContext.create()
        self.attributes = AttributeEvaluator(self.ctx)
        self.qualifications = QualificationOrchestrator(self.ctx)
        self.codegen = CodeGenerationRunner(self.ctx)
        self.resources = ResourceSyncRunner(self.ctx)
        self.confirmations = ConfirmationRunner(self.ctx)

    @property
    def store(self):
        return self.ctx.store

    @property
    def registry(self):
        return self.ctx.registry

    async def run(self, component_id: str, visibility: Visibility) -> ComponentRunResult:
        visibility.require_workspace()
        result = ComponentRunResult(component_id=component_id, visibility=visibility)

        if self._is_writable(visibility):
            result.attributes = await self.attributes.evaluate(component_id, visibility)

        result.qualifications, result.code, result.confirmations = await asyncio.gather(
            self.qualifications.check_qualifications(component_id, visibility),
            self.codegen.generate(component_id, visibility),
            self.confirmations.confirm(component_id, visibility),
        )
        logger.info("[Engine] %s at %s: qualified=%s", component_id, visibility, result.qualified)
        return result

    async def run_many(self, component_ids: List[str], visibility: Visibility) -> List[ComponentRunResult]:
        return list(await asyncio.gather(*(self.run(cid, visibility) for cid in component_ids)))

    async def check_qualifications(self, component_id: str, visibility: Visibility) -> QualificationCheck:
        return await self.qualifications.check_qualifications(component_id, visibility)

    async def generate_code(self, component_id: str, visibility: Visibility) -> List[FuncResult]:
        return await self.codegen.generate(component_id, visibility)

    async def sync_resource(self, component_id: str, visibility: Visibility) -> Optional[FuncResult]:
        return await self.resources.sync(component_id, visibility)

    async def confirm(self, component_id: str, visibility: Visibility) -> List[ConfirmationResult]:
        return await self.confirmations.confirm(component_id, visibility)

    async def recommendations(self, component_id: str, visibility: Visibility) -> List[str]:
        return await self.confirmations.recommendations(component_id, visibility)

    def restore_default(self, component_id: str, attribute: str,
                        visibility: Visibility) -> Tuple[Visibility, Optional[str]]:
        return self.attributes.restore_default(component_id, attribute, visibility)

    def paste_components(self, component_ids: List[str],
                         visibility: Visibility) -> Tuple[List[Component], Visibility, Optional[str]]:
        pasted, visibility, forced_id = self.ctx.store.paste_components(component_ids, visibility)
        logger.info("[Engine] pasted %d components at %s", len(pasted), visibility)
        return pasted, visibility, forced_id

    def _is_writable(self, visibility: Visibility) -> bool:
        if visibility.is_head:
            return False
        return self.ctx.store.get_change_set(visibility.change_set_id).is_open
