from funcengine.pipeline.attributes import AttributeEvaluator, evaluation_order
from funcengine.pipeline.codegen import CodeGenerationRunner
from funcengine.pipeline.confirmation import ConfirmationRunner
from funcengine.pipeline.context import EngineContext
from funcengine.pipeline.controller import ComponentEngine, ComponentRunResult
from funcengine.pipeline.qualification import QualificationOrchestrator
from funcengine.pipeline.resource import ResourceSyncRunner
from funcengine.pipeline.stage import ComponentStage

__all__ = [
    "AttributeEvaluator",
    "CodeGenerationRunner",
    "ComponentEngine",
    "ComponentRunResult",
    "ComponentStage",
    "ConfirmationRunner",
    "EngineContext",
    "QualificationOrchestrator",
    "ResourceSyncRunner",
    "evaluation_order",
]
