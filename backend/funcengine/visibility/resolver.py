"""
Visibility Resolver - combines the workspace, system and change set signals
into one coordinate.

Combine-latest semantics: a change on any axis re-fires immediately with the
last-seen values of the other two. Subscribers only hear about a coordinate
when the combination actually changed.

Setters may be called from any thread. Deliveries are serialised, so every
subscriber sees coordinates in the order they became current, and the last
one delivered is always current().
"""

import logging
import threading
from typing import Callable, List, Optional, Tuple

from funcengine.ir.errors import NoWorkspaceError
from funcengine.ir.visibility import HEAD, Visibility

logger = logging.getLogger(__name__)

_UNSET = object()

OnNext = Callable[[Visibility], None]
OnError = Callable[[NoWorkspaceError], None]


class VisibilityResolver:

    def __init__(
        self,
        workspace_id: Optional[str] = None,
        system_id: Optional[str] = None,
        change_set_id: Optional[str] = None,
    ):
        self._lock = threading.Lock()
        # serialises compute + delivery; reentrant so subscribers may set axes
        self._deliver = threading.RLock()
        self._sequence = 0
        self._workspace_id = workspace_id
        self._system_id = system_id
        self._change_set_id = change_set_id or HEAD
        self._last_emitted = _UNSET
        self._subscribers: List[Tuple[OnNext, Optional[OnError]]] = []

    # -------------------------------------------------
    # Upstream signals
    # -------------------------------------------------

    def set_workspace(self, workspace_id: Optional[str]) -> None:
        with self._lock:
            self._workspace_id = workspace_id
        self._fire()

    def set_system(self, system_id: Optional[str]) -> None:
        with self._lock:
            self._system_id = system_id
        self._fire()

    def set_change_set(self, change_set_id: Optional[str]) -> None:
        with self._lock:
            self._change_set_id = change_set_id or HEAD
        self._fire()

    # -------------------------------------------------
    # Downstream
    # -------------------------------------------------

    def subscribe(self, on_next: OnNext, on_error: Optional[OnError] = None) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        entry = (on_next, on_error)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def current(self) -> Visibility:
        with self._lock:
            combined = self._combine()
        if combined is None:
            raise NoWorkspaceError()
        return combined

    def _combine(self) -> Optional[Visibility]:
        if not self._workspace_id:
            return None
        return Visibility(
            workspace_id=self._workspace_id,
            system_id=self._system_id,
            change_set_id=self._change_set_id,
        )

    def _fire(self) -> None:
        with self._deliver:
            with self._lock:
                combined = self._combine()
                if combined == self._last_emitted:
                    return
                self._last_emitted = combined
                self._sequence += 1
                sequence = self._sequence
                subscribers = list(self._subscribers)

            if combined is None:
                logger.warning("[VisibilityResolver] no workspace selected")
                error = NoWorkspaceError()
                for _, on_error in subscribers:
                    if sequence != self._sequence:
                        return
                    if on_error is not None:
                        on_error(error)
                return

            logger.debug("[VisibilityResolver] visibility -> %s", combined)
            for on_next, _ in subscribers:
                # a subscriber changed an axis; the newer coordinate was already delivered
                if sequence != self._sequence:
                    return
                on_next(combined)
