"""Durable, ordered, retryable queue of local mutations awaiting upload."""
from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from core.logs import get_logger
from core.priorities import normalize_resource_type, priority_rank
from core.settings import SYNC
from datetime_utils import now_ms
from services import sync_state
from services.conflicts import detect_conflict, merge_records, same_content, server_is_stale
from services.error_reporting import ErrorReporter
from services.queue_types import (
    ACTIONS,
    CREATE,
    FAILED,
    KEEP_LOCAL,
    KEEP_SERVER,
    MERGE,
    PENDING,
    RESOLUTIONS,
    SYNCED,
    SYNCING,
    UPDATE,
    ConflictResolution,
    QueueItem,
    QueueSnapshot,
    SyncResult,
    make_id,
)
from services.remote_writer import RemoteWriteError, RemoteWriter, VersionConflictError, WriteResult
from services.retry_policy import RetryPolicy


CONFLICT_MESSAGE = "Conflict: remote record changed since it was read"


def _copy(item: QueueItem) -> QueueItem:
    return replace(item, data=dict(item.data))


class OfflineSyncQueue:
    """Owns the queue, the pending conflicts and the session's sync state.

    All mutation goes through the methods below; callers only ever receive
    copies of queue items. A drain works on the items that were eligible
    when it started; anything enqueued meanwhile waits for the next drain.
    """

    def __init__(
        self,
        writer: RemoteWriter,
        store=None,
        *,
        policy: Optional[RetryPolicy] = None,
        reporter: Optional[ErrorReporter] = None,
        clock: Callable[[], int] = now_ms,
        is_online: bool = True,
        priority_drain: bool = SYNC.priority_drain,
    ) -> None:
        self.writer = writer
        self.store = store
        self.policy = policy or RetryPolicy()
        self.reporter = reporter or ErrorReporter()
        self.priority_drain = priority_drain
        self.logger = get_logger()
        self._clock = clock
        self._tracker = sync_state.SyncStateTracker(is_online=is_online)
        self._items: List[QueueItem] = []
        self._conflicts: Dict[str, ConflictResolution] = {}
        self._last_sync_at: Optional[int] = None
        self._draining = False
        self._loaded = store is None
        self._restore()

    # ------------------------------------------------------------------
    # Public API
    def enqueue(self, type: str, action: str, data: Optional[Mapping[str, Any]] = None) -> QueueItem:
        if action not in ACTIONS:
            raise ValueError(f"Unsupported action: {action}")
        resource = normalize_resource_type(type)
        if not resource:
            raise ValueError("Queue items need a resource type")
        item = self._append(resource, action, dict(data or {}))
        self.logger.debug("Enqueued %s %s as %s", action, resource, item.id)
        self._changed()
        return _copy(item)

    async def drain(self, *, priority_order: Optional[bool] = None) -> SyncResult:
        """Send every eligible item once, oldest first.

        ``priority_order=True`` drains payments, then students, then settings
        (oldest first within each kind). Triggers arriving while a drain is
        running are coalesced into a no-op.
        """

        if self._draining:
            self.logger.debug("Drain already running; trigger coalesced")
            return SyncResult(skipped=True)
        if not self._tracker.state.is_online:
            return SyncResult(skipped=True, offline=True, errors=["Device is offline"])

        ordered = self.priority_drain if priority_order is None else priority_order
        self._draining = True
        result = SyncResult()
        try:
            self._tracker.transition(sync_state.SYNCING)
            batch = self._eligible(self._clock(), ordered)
            self.logger.info("Drain started: %d eligible of %d queued", len(batch), len(self._items))
            for item in batch:
                if not self._holds(item) or item.status != PENDING:
                    continue
                await self._process(item, result)
            result.finished_at = self._clock()
            # end_session() may have reset the tracker while a write was in flight
            if self._tracker.state.status == sync_state.SYNCING:
                self._last_sync_at = result.finished_at
                failed = result.failed or result.conflicted
                self._tracker.transition(sync_state.ERROR if failed else sync_state.SUCCESS)
        except Exception as exc:
            self.reporter.report(exc, {"operation": "drain"})
            result.errors.append(str(exc) or exc.__class__.__name__)
            if self._tracker.state.status == sync_state.SYNCING:
                self._tracker.transition(sync_state.ERROR)
        finally:
            self._draining = False
            self._changed()

        self.logger.info(
            "Drain finished: synced=%d failed=%d conflicted=%d",
            result.synced,
            result.failed,
            result.conflicted,
        )
        return result

    def get_pending_count(self) -> int:
        return sum(1 for item in self._items if item.status != SYNCED)

    def resolve_conflict(self, conflict_id: str, resolution: str) -> None:
        if resolution not in RESOLUTIONS:
            raise ValueError(f"Unsupported resolution: {resolution}")
        conflict = self._conflicts.pop(conflict_id, None)
        if conflict is None:
            self.logger.warning("Conflict %s not found", conflict_id)
            return
        conflict.resolution = resolution
        item = self._find(conflict.item_id)
        self.logger.info("Resolving conflict %s for %s with %s", conflict_id, conflict.item_id, resolution)

        if item is not None:
            if resolution == KEEP_LOCAL:
                item.status = PENDING
                item.conflict_id = None
                item.overwrite = True
                item.next_attempt_at = None
                item.last_error = None
            elif resolution == KEEP_SERVER:
                self._items.remove(item)
            elif resolution == MERGE:
                merged = merge_records(conflict.server_data, conflict.local_data)
                self._items.remove(item)
                action = UPDATE if item.action == CREATE else item.action
                self._append(item.type, action, merged, overwrite=True)
        self._changed()

    def clear_synced(self) -> int:
        before = len(self._items)
        self._items = [item for item in self._items if item.status != SYNCED]
        removed = before - len(self._items)
        if removed:
            self.logger.info("Cleared %d synced items", removed)
            self._changed()
        return removed

    def retry_item(self, item_id: str) -> bool:
        """Operator reset of a failed item's attempt counter."""

        item = self._find(item_id)
        if item is None or item.status != FAILED or item.conflict_id:
            return False
        item.sync_attempts = 0
        item.status = PENDING
        item.next_attempt_at = None
        self.logger.info("Item %s reset for retry", item_id)
        self._changed()
        return True

    def items(self) -> List[QueueItem]:
        return [_copy(item) for item in self._items]

    def get_item(self, item_id: str) -> Optional[QueueItem]:
        item = self._find(item_id)
        return _copy(item) if item else None

    def conflicts(self) -> List[ConflictResolution]:
        return [replace(c) for c in self._conflicts.values()]

    def needs_attention(self) -> List[QueueItem]:
        return [
            _copy(item)
            for item in self._items
            if item.status == FAILED and (item.conflict_id or self.policy.exhausted(item))
        ]

    def has_work(self, now: Optional[int] = None) -> bool:
        moment = self._clock() if now is None else now
        return any(self.policy.is_due(item, moment) for item in self._items)

    # ------------------------------------------------------------------
    # Sync state
    @property
    def state(self) -> sync_state.SyncState:
        return self._tracker.state

    @property
    def is_online(self) -> bool:
        return self._tracker.state.is_online

    @property
    def is_draining(self) -> bool:
        return self._draining

    def set_online(self, online: bool) -> None:
        self._tracker.update(is_online=bool(online))

    def subscribe(self, listener: Callable[[sync_state.SyncState], None]) -> Callable[[], None]:
        return self._tracker.subscribe(listener)

    def end_session(self) -> None:
        self._tracker.reset()

    # ------------------------------------------------------------------
    # Drain helpers
    def _eligible(self, now: int, ordered: bool) -> List[QueueItem]:
        for item in self._items:
            if self.policy.should_retry(item, now):
                item.status = PENDING
        due = [item for item in self._items if self.policy.is_due(item, now) and item.status == PENDING]
        if ordered:
            return sorted(due, key=lambda i: (priority_rank(i.type), i.timestamp))
        return sorted(due, key=lambda i: i.timestamp)

    async def _process(self, item: QueueItem, result: SyncResult) -> None:
        item.status = SYNCING
        result.processed += 1
        try:
            outcome = await self._send(item)
            if outcome.ok:
                self._mark_synced(item, result)
            elif outcome.conflict:
                await self._handle_conflict(item, outcome.server_snapshot, result)
            else:
                self._mark_failed(item, outcome.error or "Sync failed", result, retryable=outcome.retryable)
        except Exception as exc:
            self.reporter.report(exc, {"item_id": item.id, "operation": "process"})
            if item.status == SYNCING:
                self._mark_failed(item, str(exc) or exc.__class__.__name__, result)
        self._changed()

    async def _send(self, item: QueueItem, *, overwrite: Optional[bool] = None) -> WriteResult:
        force = item.overwrite if overwrite is None else overwrite
        try:
            outcome = await self.writer.write(item.type, item.action, dict(item.data), overwrite=force)
            return WriteResult.coerce(outcome)
        except VersionConflictError as exc:
            return WriteResult.conflicted(exc.server_snapshot)
        except RemoteWriteError as exc:
            return WriteResult.failed(str(exc) or "Remote write failed", retryable=exc.retryable)
        except Exception as exc:
            self.reporter.report(exc, {"item_id": item.id, "type": item.type, "action": item.action})
            return WriteResult.failed(str(exc) or exc.__class__.__name__)

    async def _handle_conflict(
        self,
        item: QueueItem,
        server: Optional[Dict[str, Any]],
        result: SyncResult,
    ) -> None:
        snapshot = dict(server or {})
        if snapshot and same_content(item.data, snapshot):
            self._mark_synced(item, result)
            return

        if snapshot and server_is_stale(item.data, snapshot) and not item.overwrite:
            self.logger.info("Remote copy of %s is older than the local one; overwriting", item.id)
            retry = await self._send(item, overwrite=True)
            if retry.ok:
                self._mark_synced(item, result)
                return
            if not retry.conflict:
                self._mark_failed(item, retry.error or "Sync failed", result, retryable=retry.retryable)
                return
            snapshot = dict(retry.server_snapshot or {})

        if not detect_conflict(item.data, snapshot):
            self._mark_failed(item, "Remote rejected overwrite of an older record", result)
            return
        self._record_conflict(item, snapshot, result)

    def _record_conflict(self, item: QueueItem, server: Dict[str, Any], result: SyncResult) -> None:
        created = self._clock()
        conflict = ConflictResolution(
            id=self._new_id("conflict", created),
            item_id=item.id,
            local_data=dict(item.data),
            server_data=server,
            created_at=created,
        )
        self._conflicts[conflict.id] = conflict
        item.status = FAILED
        item.conflict_id = conflict.id
        item.next_attempt_at = None
        item.last_error = CONFLICT_MESSAGE
        result.conflicted += 1
        result.errors.append(f"{item.type} {item.id}: {CONFLICT_MESSAGE}")
        self.logger.warning("Conflict %s recorded for %s %s", conflict.id, item.type, item.id)

    def _mark_synced(self, item: QueueItem, result: SyncResult) -> None:
        item.status = SYNCED
        item.last_error = None
        item.next_attempt_at = None
        item.overwrite = False
        result.synced += 1

    def _mark_failed(self, item: QueueItem, message: str, result: SyncResult, *, retryable: bool = True) -> None:
        item.sync_attempts += 1
        if not retryable:
            item.sync_attempts = max(item.sync_attempts, self.policy.max_retries)
        item.status = FAILED
        item.last_error = message
        if item.sync_attempts < self.policy.max_retries:
            item.next_attempt_at = self.policy.next_attempt_at(item.sync_attempts, self._clock())
        else:
            item.next_attempt_at = None
            self.logger.warning(
                "%s %s reached the retry ceiling (%d); needs manual attention",
                item.type,
                item.id,
                self.policy.max_retries,
            )
        result.failed += 1
        result.errors.append(f"{item.type} {item.id}: {message}")
        self.logger.warning("Sync of %s %s failed: %s", item.type, item.id, message)

    # ------------------------------------------------------------------
    # Internals
    def _append(self, type: str, action: str, data: Dict[str, Any], *, overwrite: bool = False) -> QueueItem:
        timestamp = self._clock()
        item = QueueItem(
            id=self._new_id("queue", timestamp),
            type=type,
            action=action,
            data=data,
            timestamp=timestamp,
            overwrite=overwrite,
        )
        self._items.append(item)
        return item

    def _new_id(self, prefix: str, timestamp: int) -> str:
        taken = {item.id for item in self._items} | set(self._conflicts)
        while True:
            candidate = make_id(prefix, timestamp)
            if candidate not in taken:
                return candidate

    def _find(self, item_id: str) -> Optional[QueueItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def _holds(self, item: QueueItem) -> bool:
        return any(existing is item for existing in self._items)

    def _restore(self) -> bool:
        """Load the stored queue, merging it under anything queued since.

        Returns False (and leaves the store untouched on later saves) while
        the stored rows could not be read.
        """

        if self.store is None or self._loaded:
            return True
        try:
            snapshot = self.store.load()
        except (SQLAlchemyError, OSError) as exc:
            self.reporter.report(exc, {"operation": "load"})
            return False
        stored_ids = {item.id for item in snapshot.items}
        items = list(snapshot.items) + [i for i in self._items if i.id not in stored_ids]
        self._items = sorted(items, key=lambda i: i.timestamp)
        conflicts = {c.id: c for c in snapshot.conflicts}
        for conflict_id, conflict in self._conflicts.items():
            conflicts.setdefault(conflict_id, conflict)
        self._conflicts = conflicts
        for item in self._items:
            if item.conflict_id and item.conflict_id not in self._conflicts:
                item.conflict_id = None
        stamps = [s for s in (snapshot.last_sync_at, self._last_sync_at) if s is not None]
        self._last_sync_at = max(stamps) if stamps else None
        self._loaded = True
        self._refresh_state()
        return True

    def _refresh_state(self) -> None:
        self._tracker.update(
            pending_changes=self.get_pending_count(),
            last_sync_at=self._last_sync_at,
        )

    def _persist(self) -> None:
        if self.store is None:
            return
        if not self._restore():
            self.logger.warning("Stored queue is unreadable; keeping %d items in memory only", len(self._items))
            return
        snapshot = QueueSnapshot(
            items=[_copy(item) for item in self._items],
            conflicts=[replace(c) for c in self._conflicts.values()],
            last_sync_at=self._last_sync_at,
        )
        try:
            self.store.save(snapshot)
        except (SQLAlchemyError, OSError) as exc:
            self.reporter.report(exc, {"operation": "save", "items": len(snapshot.items)})

    def _changed(self) -> None:
        self._refresh_state()
        self._persist()


__all__ = ["CONFLICT_MESSAGE", "OfflineSyncQueue"]
