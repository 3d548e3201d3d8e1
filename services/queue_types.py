"""Value types shared by the offline queue and its persistence."""
from __future__ import annotations

import random
import string
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


PENDING = "pending"
SYNCING = "syncing"
SYNCED = "synced"
FAILED = "failed"

CREATE = "create"
UPDATE = "update"
DELETE = "delete"
ACTIONS = (CREATE, UPDATE, DELETE)

KEEP_LOCAL = "keep-local"
KEEP_SERVER = "keep-server"
MERGE = "merge"
RESOLUTIONS = (KEEP_LOCAL, KEEP_SERVER, MERGE)

_ALPHABET = string.ascii_lowercase + string.digits


def make_id(prefix: str, timestamp_ms: int) -> str:
    """``<prefix>_<epoch ms>_<9 random base36 chars>``."""
    suffix = "".join(random.choices(_ALPHABET, k=9))
    return f"{prefix}_{timestamp_ms}_{suffix}"


@dataclass
class QueueItem:
    id: str
    type: str
    action: str
    data: Dict[str, Any]
    timestamp: int
    status: str = PENDING
    sync_attempts: int = 0
    last_error: Optional[str] = None
    next_attempt_at: Optional[int] = None
    conflict_id: Optional[str] = None
    overwrite: bool = False


@dataclass
class ConflictResolution:
    id: str
    item_id: str
    local_data: Dict[str, Any]
    server_data: Dict[str, Any]
    created_at: int
    resolution: Optional[str] = None


@dataclass
class QueueSnapshot:
    """Everything that survives a session. Never includes the sync status."""

    items: List[QueueItem] = field(default_factory=list)
    conflicts: List[ConflictResolution] = field(default_factory=list)
    last_sync_at: Optional[int] = None


@dataclass
class SyncResult:
    synced: int = 0
    failed: int = 0
    conflicted: int = 0
    processed: int = 0
    skipped: bool = False
    offline: bool = False
    errors: List[str] = field(default_factory=list)
    finished_at: Optional[int] = None


__all__ = [
    "ACTIONS",
    "CREATE",
    "ConflictResolution",
    "DELETE",
    "FAILED",
    "KEEP_LOCAL",
    "KEEP_SERVER",
    "MERGE",
    "PENDING",
    "QueueItem",
    "QueueSnapshot",
    "RESOLUTIONS",
    "SYNCED",
    "SYNCING",
    "SyncResult",
    "UPDATE",
    "make_id",
]
