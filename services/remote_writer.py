"""Boundary between the offline queue and the remote document store."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol


@dataclass(frozen=True)
class WriteResult:
    ok: bool = False
    conflict: bool = False
    server_snapshot: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    retryable: bool = True

    @classmethod
    def success(cls) -> "WriteResult":
        return cls(ok=True)

    @classmethod
    def conflicted(cls, server_snapshot: Optional[Dict[str, Any]]) -> "WriteResult":
        return cls(conflict=True, server_snapshot=dict(server_snapshot or {}))

    @classmethod
    def failed(cls, message: str, *, retryable: bool = True) -> "WriteResult":
        return cls(error=message, retryable=retryable)

    @classmethod
    def coerce(cls, value: Any) -> "WriteResult":
        """Accept a WriteResult, ``True`` or a plain mapping from a writer."""

        if isinstance(value, WriteResult):
            return value
        if value is True:
            return cls.success()
        if isinstance(value, Mapping):
            if value.get("ok"):
                return cls.success()
            if value.get("conflict"):
                snapshot = value.get("server_snapshot", value.get("serverSnapshot"))
                return cls.conflicted(snapshot)
            message = value.get("message") or value.get("error") or "Remote write failed"
            return cls.failed(str(message), retryable=bool(value.get("retryable", True)))
        return cls.failed("Remote writer returned no result")


class RemoteWriteError(Exception):
    def __init__(self, message: str, *, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class VersionConflictError(Exception):
    def __init__(self, server_snapshot: Optional[Dict[str, Any]], message: str = "Remote record changed"):
        super().__init__(message)
        self.server_snapshot = dict(server_snapshot or {})


class RemoteWriter(Protocol):
    async def write(
        self,
        type: str,
        action: str,
        data: Dict[str, Any],
        *,
        overwrite: bool = False,
    ) -> WriteResult:
        ...


__all__ = ["RemoteWriteError", "RemoteWriter", "VersionConflictError", "WriteResult"]
