from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.settings import SYNC
from services.queue_types import FAILED, PENDING, QueueItem


def get_backoff_delay(
    attempt: int,
    base_delay: int = SYNC.base_delay_ms,
    max_delay: int = SYNC.max_delay_ms,
) -> int:
    """``min(base_delay * 2**attempt, max_delay)`` in milliseconds."""
    return min(base_delay * (2 ** max(attempt, 0)), max_delay)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = SYNC.max_retries
    base_delay_ms: int = SYNC.base_delay_ms
    max_delay_ms: int = SYNC.max_delay_ms

    def backoff(self, attempt: int) -> int:
        return get_backoff_delay(attempt, self.base_delay_ms, self.max_delay_ms)

    def next_attempt_at(self, attempts: int, failed_at: int) -> int:
        return failed_at + self.backoff(attempts)

    def exhausted(self, item: QueueItem) -> bool:
        return item.status == FAILED and item.sync_attempts >= self.max_retries

    def should_retry(self, item: QueueItem, now: Optional[int] = None) -> bool:
        """True for a failed, unconflicted item under the ceiling whose delay elapsed."""
        if item.status != FAILED or item.conflict_id:
            return False
        if item.sync_attempts >= self.max_retries:
            return False
        if now is not None and item.next_attempt_at is not None:
            return now >= item.next_attempt_at
        return True

    def is_due(self, item: QueueItem, now: int) -> bool:
        if item.status == PENDING:
            return item.next_attempt_at is None or now >= item.next_attempt_at
        return self.should_retry(item, now)


__all__ = ["RetryPolicy", "get_backoff_delay"]
