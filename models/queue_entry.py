"""SQLModel tables backing the offline sync queue."""

from __future__ import annotations

from typing import Optional

from sqlmodel import Field, SQLModel


class QueueEntry(SQLModel, table=True):
    id: str = Field(primary_key=True)
    type: str = Field(index=True)
    action: str
    payload: str
    timestamp: int = Field(index=True)
    status: str = Field(default="pending", index=True)
    sync_attempts: int = Field(default=0)
    last_error: Optional[str] = None
    next_attempt_at: Optional[int] = None
    conflict_id: Optional[str] = None
    overwrite: bool = Field(default=False)


class ConflictEntry(SQLModel, table=True):
    """Unresolved conflict between a queued mutation and the remote record."""

    id: str = Field(primary_key=True)
    item_id: str = Field(index=True)
    local_payload: str
    server_payload: str
    created_at: int
    resolution: Optional[str] = None


class SyncMeta(SQLModel, table=True):
    id: int = Field(default=1, primary_key=True)
    last_sync_at: Optional[int] = None


__all__ = ["ConflictEntry", "QueueEntry", "SyncMeta"]
