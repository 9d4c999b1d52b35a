import asyncio
import logging
from typing import List

from funcengine.ir.component import ComponentSnapshot
from funcengine.ir.errors import ComputationError, FuncNotFoundError
from funcengine.ir.func import FuncBackendKind
from funcengine.ir.results import FuncResult
from funcengine.ir.visibility import Visibility
from funcengine.pipeline.stage import ComponentStage, func_input

logger = logging.getLogger(__name__)


class CodeGenerationRunner(ComponentStage):
    """
    Renders every code generation func bound to a component.

    Output is a pure function of the attribute snapshot: same visibility and
    same attributes give byte-identical code.
    """

    name = "codegen"

    async def run(self, component_id: str, visibility: Visibility) -> List[FuncResult]:
        return await self.generate(component_id, visibility)

    async def generate(self, component_id: str, visibility: Visibility) -> List[FuncResult]:
        visibility.require_workspace()
        snapshot = self.ctx.store.read(component_id, visibility)
        func_ids = snapshot.schema.code_generation_func_ids
        if not func_ids:
            return []

        results = await asyncio.gather(*(self._run_one(func_id, snapshot) for func_id in func_ids))
        failures = [r.func_id for r in results if not r.ok]
        if failures:
            logger.warning("[CodeGen] %s at %s: failed %s", component_id, visibility, ", ".join(failures))
        else:
            logger.info("[CodeGen] %s at %s: %d outputs", component_id, visibility, len(results))
        return list(results)

    async def _run_one(self, func_id: str, snapshot: ComponentSnapshot) -> FuncResult:
        func = self.ctx.registry.get(func_id)
        if func is None:
            return FuncResult.failure(func_id, FuncBackendKind.JS_CODE_GENERATION, FuncNotFoundError(func_id))
        try:
            value = func_input(func, snapshot)
        except ComputationError as e:
            return FuncResult.failure(func.id, func.kind, e)
        return await self.ctx.dispatcher.execute(
            func, value, snapshot.visibility, component_id=snapshot.component_id
        )
