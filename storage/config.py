"""Simple JSON-backed configuration store."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from core.settings import CONFIG_PATH, FIRESTORE, SYNC
from services.retry_policy import RetryPolicy


@dataclass
class AppConfig:
    """Per-installation overrides persisted to ``config.json``."""

    school_id: Optional[str] = None
    project_id: Optional[str] = FIRESTORE.project_id
    max_retries: int = SYNC.max_retries
    base_delay_ms: int = SYNC.base_delay_ms
    max_delay_ms: int = SYNC.max_delay_ms
    auto_sync_interval_sec: int = SYNC.auto_sync_interval_sec
    priority_drain: bool = SYNC.priority_drain

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=max(int(self.max_retries), 1),
            base_delay_ms=max(int(self.base_delay_ms), 0),
            max_delay_ms=max(int(self.max_delay_ms), 0),
        )


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _load_raw(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def load_config(path: Optional[Path] = None) -> AppConfig:
    target = path or CONFIG_PATH
    data = _load_raw(target)
    known = {f.name for f in fields(AppConfig)}
    return AppConfig(**{key: value for key, value in data.items() if key in known})


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    target = path or CONFIG_PATH
    _ensure_parent(target)
    payload = json.dumps(asdict(config), ensure_ascii=False, indent=2, sort_keys=True)
    tmp = target.with_suffix(".tmp")
    try:
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(target)
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass


def update_config(path: Optional[Path] = None, **changes: Any) -> AppConfig:
    target = path or CONFIG_PATH
    cfg = load_config(target)
    for key, value in changes.items():
        if hasattr(cfg, key):
            setattr(cfg, key, value)
    save_config(cfg, target)
    return cfg


__all__ = ["AppConfig", "load_config", "save_config", "update_config"]
