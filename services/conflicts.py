"""Detection and resolution of local/remote record conflicts."""
from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from datetime_utils import coerce_epoch_ms


MODIFIED_AT_KEYS = ("updatedAt", "updated_at", "lastModified", "last_modified")


def modified_at(snapshot: Mapping[str, Any]) -> Optional[int]:
    for key in MODIFIED_AT_KEYS:
        if key in snapshot:
            value = coerce_epoch_ms(snapshot.get(key))
            if value is not None:
                return value
    return None


def _content(snapshot: Mapping[str, Any]) -> str:
    body = {k: v for k, v in snapshot.items() if k not in MODIFIED_AT_KEYS}
    return json.dumps(body, sort_keys=True, default=str, ensure_ascii=False)


def same_content(local: Mapping[str, Any], server: Mapping[str, Any]) -> bool:
    """Compare two snapshots ignoring their modification timestamps."""
    return _content(local) == _content(server)


def server_is_stale(local: Mapping[str, Any], server: Mapping[str, Any]) -> bool:
    local_ts = modified_at(local)
    server_ts = modified_at(server)
    if local_ts is None or server_ts is None:
        return False
    return server_ts < local_ts


def detect_conflict(local: Mapping[str, Any], server: Optional[Mapping[str, Any]]) -> bool:
    """A conflict needs differing content and a server copy that is not older."""

    if server is None:
        return False
    if same_content(local, server):
        return False
    return not server_is_stale(local, server)


def merge_records(server: Mapping[str, Any], local: Mapping[str, Any]) -> Dict[str, Any]:
    """Shallow merge: local fields override, server-only fields survive."""
    merged = dict(server)
    merged.update(local)
    return merged


__all__ = [
    "MODIFIED_AT_KEYS",
    "detect_conflict",
    "merge_records",
    "modified_at",
    "same_content",
    "server_is_stale",
]
