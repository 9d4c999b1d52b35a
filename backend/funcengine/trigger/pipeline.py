"""
Trigger Pipeline - re-runs watched components whenever the visibility moves.

Every visibility change bumps a per-component generation, cancels whatever
is still in flight for that component and starts a fresh run. A run may
only deliver while its generation is still the current one, so a slow run
for an old coordinate can never land after a newer coordinate's result.

on_visibility() must be called from the thread running the event loop.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from funcengine.ir.errors import EngineError, NoWorkspaceError, StaleVisibilityError
from funcengine.ir.visibility import Visibility
from funcengine.pipeline.controller import ComponentEngine
from funcengine.visibility.resolver import VisibilityResolver

logger = logging.getLogger(__name__)

Runner = Callable[[str, Visibility], Awaitable[Any]]


class RunState(Enum):
    IDLE = "idle"
    COMPUTING = "computing"
    SETTLED = "settled"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class Delivery:
    """A result handed to sinks, tagged with where and when it was computed."""
    component_id: str
    visibility: Visibility
    generation: int
    result: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


Sink = Callable[[Delivery], None]


@dataclass
class _Slot:
    state: RunState = RunState.IDLE
    generation: int = 0
    task: Optional[asyncio.Task] = None
    last: Optional[Delivery] = None
    error: Optional[Exception] = None
    transitions: List[RunState] = field(default_factory=list)

    def move(self, state: RunState) -> None:
        self.state = state
        self.transitions.append(state)


class TriggerPipeline:

    def __init__(self, runner: Optional[Runner] = None, engine=None, sinks: Optional[List[Sink]] = None):
        if runner is None:
            runner = (engine or ComponentEngine()).run
        self.runner = runner
        self._sinks: List[Sink] = list(sinks or [])
        self._slots: Dict[str, _Slot] = {}
        self._visibility: Optional[Visibility] = None
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None

    # -------------------------------------------------
    # Wiring
    # -------------------------------------------------

    def attach(self, resolver: VisibilityResolver) -> None:
        """Follow a resolver. Replaces any previous subscription."""
        self.detach()
        self._unsubscribe = resolver.subscribe(self.on_visibility, self.on_error)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def add_sink(self, sink: Sink) -> None:
        self._sinks.append(sink)

    def watch(self, component_id: str) -> None:
        if component_id in self._slots:
            return
        self._slots[component_id] = _Slot()
        if self._visibility is not None:
            self._start(component_id, self._visibility)

    def unwatch(self, component_id: str) -> None:
        slot = self._slots.pop(component_id, None)
        if slot is not None and slot.task is not None and not slot.task.done():
            slot.task.cancel()

    # -------------------------------------------------
    # Signals
    # -------------------------------------------------

    def on_visibility(self, visibility: Visibility) -> None:
        if visibility == self._visibility:
            return
        logger.debug("[Trigger] visibility -> %s; restarting %d components", visibility, len(self._slots))
        self._visibility = visibility
        for component_id in list(self._slots):
            self._start(component_id, visibility)

    def on_error(self, error: NoWorkspaceError) -> None:
        """Upstream lost its workspace: nothing may keep computing."""
        logger.warning("[Trigger] %s", error.message)
        self._visibility = None
        for component_id, slot in self._slots.items():
            self._cancel(slot)
            slot.generation += 1
            slot.last = None
            slot.error = error
            slot.move(RunState.FAILED)

    # -------------------------------------------------
    # Results
    # -------------------------------------------------

    def state(self, component_id: str) -> RunState:
        return self._slots[component_id].state

    def transitions(self, component_id: str) -> List[RunState]:
        return list(self._slots[component_id].transitions)

    def last_result(self, component_id: str) -> Optional[Delivery]:
        """Last delivered result, whatever visibility it was computed at."""
        slot = self._slots.get(component_id)
        return slot.last if slot is not None else None

    def last_error(self, component_id: str) -> Optional[Exception]:
        slot = self._slots.get(component_id)
        return slot.error if slot is not None else None

    def result_at(self, component_id: str, visibility: Visibility) -> Any:
        """The delivered result, only if it belongs to `visibility`."""
        delivery = self.last_result(component_id)
        if delivery is None or delivery.visibility != visibility:
            raise StaleVisibilityError(f"no result for '{component_id}' at {visibility}")
        return delivery.result

    async def drain(self) -> None:
        """Wait until nothing is in flight, including runs started meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        self.detach()
        for slot in self._slots.values():
            self._cancel(slot)
        await self.drain()

    # -------------------------------------------------
    # Runs
    # -------------------------------------------------

    def _start(self, component_id: str, visibility: Visibility) -> None:
        slot = self._slots[component_id]
        self._cancel(slot)
        slot.generation += 1
        slot.move(RunState.COMPUTING)
        task = asyncio.get_running_loop().create_task(self._run(component_id, visibility, slot.generation))
        slot.task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel(self, slot: _Slot) -> None:
        if slot.task is not None and not slot.task.done():
            slot.task.cancel()
            slot.move(RunState.CANCELLED)
        slot.task = None

    async def _run(self, component_id: str, visibility: Visibility, generation: int) -> None:
        try:
            result = await self.runner(component_id, visibility)
        except asyncio.CancelledError:
            logger.debug("[Trigger] %s gen %d cancelled", component_id, generation)
            raise
        except EngineError as e:
            logger.warning("[Trigger] %s at %s failed: %s", component_id, visibility, e.message)
            self._settle(component_id, Delivery(component_id, visibility, generation, error=e))
            return
        except Exception as e:
            logger.exception("[Trigger] %s at %s raised", component_id, visibility)
            self._settle(component_id, Delivery(component_id, visibility, generation, error=e))
            return

        self._settle(component_id, Delivery(component_id, visibility, generation, result=result))

    def _settle(self, component_id: str, delivery: Delivery) -> None:
        slot = self._slots.get(component_id)
        if slot is None or slot.generation != delivery.generation:
            logger.debug("[Trigger] dropping stale result for %s gen %d", component_id, delivery.generation)
            return

        slot.task = None
        if not delivery.ok:
            slot.error = delivery.error
            slot.move(RunState.FAILED)
            return

        slot.error = None
        slot.last = delivery
        slot.move(RunState.SETTLED)
        for sink in list(self._sinks):
            sink(delivery)
