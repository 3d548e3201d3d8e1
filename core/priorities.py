"""Drain priority of queued resource kinds."""
from __future__ import annotations

from typing import Dict

# Lower rank drains first when priority-ordered draining is requested.
# Payments go before student edits, student edits before settings changes.
PRIORITY_RANKS: Dict[str, int] = {
    "payment": 0,
    "student": 1,
    "settings": 2,
}

UNKNOWN_RANK = len(PRIORITY_RANKS)


def normalize_resource_type(value: str | None) -> str:
    """Lower-case and strip a resource tag; ``payments`` becomes ``payment``."""
    if not value:
        return ""
    lowered = str(value).strip().lower()
    if lowered not in PRIORITY_RANKS and lowered.endswith("s") and lowered[:-1] in PRIORITY_RANKS:
        return lowered[:-1]
    return lowered


def priority_rank(resource_type: str | None) -> int:
    return PRIORITY_RANKS.get(normalize_resource_type(resource_type), UNKNOWN_RANK)
