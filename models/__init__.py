"""ORM models exposed by the EduPay offline store."""
from .queue_entry import ConflictEntry, QueueEntry, SyncMeta

__all__ = ["ConflictEntry", "QueueEntry", "SyncMeta"]
