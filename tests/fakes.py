"""Test doubles for the remote store."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from services.remote_writer import WriteResult


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeWriter:
    """Records calls and replays scripted outcomes per document id."""

    def __init__(self):
        self.calls: List[Tuple[str, str, Dict[str, Any], bool]] = []
        self.script: Dict[str, List[Any]] = {}

    def plan(self, doc_id: str, *outcomes: Any) -> None:
        self.script.setdefault(doc_id, []).extend(outcomes)

    async def write(self, type: str, action: str, data: Dict[str, Any], *, overwrite: bool = False):
        self.calls.append((type, action, dict(data), overwrite))
        queue = self.script.get(str(data.get("id")), [])
        outcome: Optional[Any] = queue.pop(0) if queue else WriteResult.success()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    @property
    def written_ids(self) -> List[Any]:
        return [call[2].get("id") for call in self.calls]


__all__ = ["FakeClock", "FakeWriter"]
