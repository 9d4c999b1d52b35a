"""
Attribute evaluation - computes a component's attribute prototypes and
merges the values back into the open change set.

Prototypes run in dependency order. A prototype whose dependency failed is
not dispatched; it fails with a ComputationError naming the missing input.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from funcengine.ir.component import AttributePrototype, ComponentSnapshot
from funcengine.ir.errors import ComputationError, FuncNotFoundError
from funcengine.ir.func import FuncBackendKind
from funcengine.ir.results import FuncResult
from funcengine.ir.visibility import Visibility
from funcengine.pipeline.stage import ComponentStage

logger = logging.getLogger(__name__)


def evaluation_order(prototypes: Mapping[str, AttributePrototype]) -> Tuple[List[str], List[str]]:
    """
    Topological order over attributes that have prototypes.
    Returns (ordered, cyclic); cyclic attributes can never be computed.
    """
    pending = {
        attr: {dep for dep in proto.dependencies() if dep in prototypes and dep != attr}
        for attr, proto in prototypes.items()
    }
    ordered: List[str] = []
    while pending:
        ready = sorted(attr for attr, deps in pending.items() if not deps)
        if not ready:
            break
        for attr in ready:
            ordered.append(attr)
            del pending[attr]
        for deps in pending.values():
            deps.difference_update(ready)
    return ordered, sorted(pending)


class AttributeEvaluator(ComponentStage):

    name = "attributes"

    async def run(self, component_id: str, visibility: Visibility) -> Dict[str, FuncResult]:
        return await self.evaluate(component_id, visibility)

    async def evaluate(self, component_id: str, visibility: Visibility) -> Dict[str, FuncResult]:
        self.ctx.store.ensure_writable(visibility)
        snapshot = self.ctx.store.read(component_id, visibility)
        prototypes = snapshot.schema.attribute_prototypes
        ordered, cyclic = evaluation_order(prototypes)

        values: Dict[str, Any] = dict(snapshot.attributes)
        results: Dict[str, FuncResult] = {}
        failed = set()

        for attr in cyclic:
            proto = prototypes[attr]
            error = ComputationError(f"attribute '{attr}' is part of a dependency cycle", func_id=proto.func_id)
            results[attr] = self._failure(proto, error)
            failed.add(attr)

        for attr in ordered:
            proto = prototypes[attr]
            missing = [dep for dep in proto.dependencies() if dep in failed]
            if missing:
                error = ComputationError(
                    f"attribute '{attr}' is missing dependency {', '.join(missing)}", func_id=proto.func_id
                )
                results[attr] = self._failure(proto, error)
                failed.add(attr)
                continue

            result = await self._evaluate_one(snapshot, attr, proto, values)
            results[attr] = result
            if not result.ok:
                failed.add(attr)
                continue

            if values.get(attr, _MISSING) != result.value or attr not in snapshot.versions:
                self.ctx.store.write(component_id, attr, result.value, visibility)
            values[attr] = result.value

        if failed:
            logger.warning("[Attributes] %s at %s: %d of %d prototypes failed",
                           component_id, visibility, len(failed), len(prototypes))
        return results

    async def _evaluate_one(self, snapshot: ComponentSnapshot, attr: str,
                            proto: AttributePrototype, values: Dict[str, Any]) -> FuncResult:
        func = self.ctx.registry.get(proto.func_id)
        if func is None:
            return self._failure(proto, FuncNotFoundError(proto.func_id))

        args = self._build_args(proto, values)
        if func.capabilities.is_script:
            value = args
        elif len(args) == 1:
            value = next(iter(args.values()))
        elif not args:
            value = None
        else:
            value = args

        return await self.ctx.dispatcher.execute(func, value, snapshot.visibility,
                                                 component_id=snapshot.component_id)

    @staticmethod
    def _build_args(proto: AttributePrototype, values: Dict[str, Any]) -> Dict[str, Any]:
        args = {}
        for name, source in proto.inputs.items():
            if "attribute" in source:
                args[name] = values.get(source["attribute"])
            else:
                args[name] = source.get("value")
        return args

    def _failure(self, proto: AttributePrototype, error) -> FuncResult:
        func = self.ctx.registry.get(proto.func_id)
        kind = func.kind if func is not None else FuncBackendKind.JS_ATTRIBUTE
        return FuncResult.failure(proto.func_id, kind, error)

    def restore_default(self, component_id: str, attribute: str,
                        visibility: Visibility) -> Tuple[Visibility, Optional[str]]:
        """
        Drop a user override so the attribute falls back to its default.
        At head a change set is forced open first; its id is returned.
        """
        visibility, forced_change_set_id = self.ctx.store.force_change_set(visibility)
        self.ctx.store.remove_attribute_override(component_id, attribute, visibility)
        logger.info("[Attributes] restored default for %s.%s at %s", component_id, attribute, visibility)
        return visibility, forced_change_set_id


_MISSING = object()
