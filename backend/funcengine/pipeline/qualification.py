import asyncio
import logging
from typing import Optional

from funcengine.ir.component import ComponentSnapshot
from funcengine.ir.errors import ComputationError
from funcengine.ir.func import FuncBackendKind
from funcengine.ir.results import FuncResult, QualificationCheck, QualificationResult
from funcengine.ir.visibility import Visibility
from funcengine.pipeline.stage import ComponentStage, func_input

logger = logging.getLogger(__name__)


class QualificationOrchestrator(ComponentStage):
    """
    Runs every qualification bound to a component and ANDs the outcomes.

    A component with no qualifications is qualified. One failing or erroring
    func fails the whole check but never stops its siblings from running.
    """

    name = "qualification"

    async def run(self, component_id: str, visibility: Visibility) -> QualificationCheck:
        return await self.check_qualifications(component_id, visibility)

    async def check_qualifications(self, component_id: str, visibility: Visibility) -> QualificationCheck:
        # Contract first: nothing is read or dispatched without a workspace.
        visibility.require_workspace()

        snapshot = self.ctx.store.read(component_id, visibility)
        func_ids = snapshot.schema.qualification_func_ids
        if not func_ids:
            return QualificationCheck(component_id=component_id, visibility=visibility)

        results = await asyncio.gather(*(self._run_one(func_id, snapshot) for func_id in func_ids))
        check = QualificationCheck(component_id=component_id, visibility=visibility, results=list(results))

        if check.success:
            logger.info("[Qualification] %s qualified at %s (%d checks)", component_id, visibility, len(results))
        else:
            logger.info("[Qualification] %s NOT qualified at %s; failing: %s",
                        component_id, visibility, ", ".join(check.failed()))
        return check

    async def _run_one(self, func_id: str, snapshot: ComponentSnapshot) -> QualificationResult:
        func = self.ctx.registry.get(func_id)
        if func is None:
            return self._result(snapshot, func_id, False, f"func '{func_id}' not found", "func_not_found")

        try:
            value = func_input(func, snapshot)
        except ComputationError as e:
            return self._result(snapshot, func_id, False, e.message, e.kind)

        outcome = await self.ctx.dispatcher.execute(
            func, value, snapshot.visibility, component_id=snapshot.component_id
        )
        return self._from_func_result(snapshot, outcome)

    def _from_func_result(self, snapshot: ComponentSnapshot, outcome: FuncResult) -> QualificationResult:
        if not outcome.ok:
            return self._result(snapshot, outcome.func_id, False, outcome.error.message, outcome.error.kind)

        if outcome.kind == FuncBackendKind.JS_QUALIFICATION:
            return self._result(snapshot, outcome.func_id, outcome.value["success"], outcome.value.get("message"))

        if outcome.kind in (FuncBackendKind.BOOLEAN, FuncBackendKind.IDENTITY) and isinstance(outcome.value, bool):
            return self._result(snapshot, outcome.func_id, outcome.value, None)

        error = ComputationError(
            f"{outcome.kind.value} func '{outcome.func_id}' cannot act as a qualification "
            f"(produced {type(outcome.value).__name__})",
            func_id=outcome.func_id,
        )
        return self._result(snapshot, outcome.func_id, False, error.message, error.kind)

    @staticmethod
    def _result(snapshot: ComponentSnapshot, func_id: str, success: bool,
                message: Optional[str], error_kind: Optional[str] = None) -> QualificationResult:
        return QualificationResult(
            component_id=snapshot.component_id,
            func_id=func_id,
            success=success,
            visibility=snapshot.visibility,
            message=message,
            error_kind=error_kind,
        )
