from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Mapping, Optional

from core.logs import get_logger
from datetime_utils import now_ms


@dataclass
class ErrorReport:
    message: str
    kind: str
    context: Dict[str, Any] = field(default_factory=dict)
    reported_at: int = 0


class ErrorReporter:
    """Default telemetry sink: log the failure and keep a short history."""

    def __init__(self, history: int = 50) -> None:
        self.logger = get_logger("edupay.errors", "errors.log")
        self._recent: Deque[ErrorReport] = deque(maxlen=history)

    def report(self, error: BaseException | str, context: Optional[Mapping[str, Any]] = None) -> ErrorReport:
        ctx = dict(context or {})
        if isinstance(error, BaseException):
            message, kind = str(error) or error.__class__.__name__, error.__class__.__name__
        else:
            message, kind = str(error), "message"
        entry = ErrorReport(message=message, kind=kind, context=ctx, reported_at=now_ms())
        self._recent.append(entry)
        self.logger.error("%s: %s | context=%s", kind, message, ctx)
        return entry

    def recent(self) -> List[ErrorReport]:
        return list(self._recent)


__all__ = ["ErrorReport", "ErrorReporter"]
