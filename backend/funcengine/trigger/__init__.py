from funcengine.trigger.pipeline import Delivery, RunState, TriggerPipeline

__all__ = ["Delivery", "RunState", "TriggerPipeline"]
