"""Persistence of the offline queue across sessions."""
from __future__ import annotations

import json
from typing import Any, Callable, Dict, Optional, Protocol

from sqlalchemy import delete
from sqlmodel import Session, select

from models.queue_entry import ConflictEntry, QueueEntry, SyncMeta
from services.queue_types import (
    PENDING,
    SYNCING,
    ConflictResolution,
    QueueItem,
    QueueSnapshot,
)
from storage.db import get_session


class QueueStore(Protocol):
    def load(self) -> QueueSnapshot:
        ...

    def save(self, snapshot: QueueSnapshot) -> None:
        ...


def _dump(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, default=str)


def _load(payload: Optional[str]) -> Dict[str, Any]:
    if not payload:
        return {}
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def _to_item(row: QueueEntry) -> QueueItem:
    status = row.status
    if status == SYNCING:
        # Interrupted mid-drain; the write was never confirmed.
        status = PENDING
    return QueueItem(
        id=row.id,
        type=row.type,
        action=row.action,
        data=_load(row.payload),
        timestamp=row.timestamp,
        status=status,
        sync_attempts=row.sync_attempts,
        last_error=row.last_error,
        next_attempt_at=row.next_attempt_at,
        conflict_id=row.conflict_id,
        overwrite=bool(row.overwrite),
    )


def _to_row(item: QueueItem) -> QueueEntry:
    return QueueEntry(
        id=item.id,
        type=item.type,
        action=item.action,
        payload=_dump(item.data),
        timestamp=item.timestamp,
        status=item.status,
        sync_attempts=item.sync_attempts,
        last_error=item.last_error[:1000] if item.last_error else None,
        next_attempt_at=item.next_attempt_at,
        conflict_id=item.conflict_id,
        overwrite=item.overwrite,
    )


class SqlQueueStore:
    """Save/load the whole queue snapshot in a single transaction."""

    def __init__(self, session_factory: Callable[[], Session] = get_session):
        self._session_factory = session_factory

    def load(self) -> QueueSnapshot:
        with self._session_factory() as session:
            rows = session.exec(select(QueueEntry).order_by(QueueEntry.timestamp.asc())).all()
            conflict_rows = session.exec(
                select(ConflictEntry).order_by(ConflictEntry.created_at.asc())
            ).all()
            meta = session.get(SyncMeta, 1)

            items = [_to_item(row) for row in rows]
            conflicts = [
                ConflictResolution(
                    id=row.id,
                    item_id=row.item_id,
                    local_data=_load(row.local_payload),
                    server_data=_load(row.server_payload),
                    created_at=row.created_at,
                    resolution=row.resolution,
                )
                for row in conflict_rows
            ]
            return QueueSnapshot(
                items=items,
                conflicts=conflicts,
                last_sync_at=meta.last_sync_at if meta else None,
            )

    def save(self, snapshot: QueueSnapshot) -> None:
        with self._session_factory() as session:
            session.execute(delete(QueueEntry))
            session.execute(delete(ConflictEntry))
            for item in snapshot.items:
                session.add(_to_row(item))
            for conflict in snapshot.conflicts:
                session.add(
                    ConflictEntry(
                        id=conflict.id,
                        item_id=conflict.item_id,
                        local_payload=_dump(conflict.local_data),
                        server_payload=_dump(conflict.server_data),
                        created_at=conflict.created_at,
                        resolution=conflict.resolution,
                    )
                )
            meta = session.get(SyncMeta, 1) or SyncMeta(id=1)
            meta.last_sync_at = snapshot.last_sync_at
            session.add(meta)
            session.commit()


__all__ = ["QueueStore", "SqlQueueStore"]
