"""Process-wide sync state with ordered change notifications."""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Set

from core.logs import get_logger


IDLE = "idle"
SYNCING = "syncing"
SUCCESS = "success"
ERROR = "error"

ALLOWED_TRANSITIONS: Dict[str, Set[str]] = {
    IDLE: {SYNCING},
    SYNCING: {SUCCESS, ERROR},
    SUCCESS: {IDLE, SYNCING},
    ERROR: {IDLE, SYNCING},
}


@dataclass(frozen=True)
class SyncState:
    status: str = IDLE
    pending_changes: int = 0
    is_online: bool = True
    last_sync_at: Optional[int] = None


Listener = Callable[[SyncState], None]


class SyncStateTracker:
    def __init__(self, *, is_online: bool = True) -> None:
        self._state = SyncState(is_online=is_online)
        self._listeners: List[Listener] = []
        self.logger = get_logger()

    @property
    def state(self) -> SyncState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; it receives the current state right away."""

        self._listeners.append(listener)
        self._deliver(listener, self._state)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def transition(self, status: str) -> None:
        current = self._state.status
        if status not in ALLOWED_TRANSITIONS.get(current, set()):
            raise ValueError(f"Invalid sync status transition: {current} -> {status}")
        self._set(status=status)

    def update(self, **changes) -> None:
        if "status" in changes:
            raise ValueError("Use transition() to change the sync status")
        self._set(**changes)

    def reset(self) -> None:
        """Back to idle/empty, keeping the connectivity flag."""
        self._set(status=IDLE, pending_changes=0, last_sync_at=None)

    def _set(self, **changes) -> None:
        updated = replace(self._state, **changes)
        if updated == self._state:
            return
        self._state = updated
        for listener in list(self._listeners):
            self._deliver(listener, updated)

    def _deliver(self, listener: Listener, state: SyncState) -> None:
        try:
            listener(state)
        except Exception:
            self.logger.exception("Sync state listener %r failed", listener)


__all__ = [
    "ALLOWED_TRANSITIONS",
    "ERROR",
    "IDLE",
    "SUCCESS",
    "SYNCING",
    "SyncState",
    "SyncStateTracker",
]
