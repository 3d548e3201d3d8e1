"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``.

    ``EDUPAY_DATA_DIR`` in the environment overrides the platform default.
    """

    platform_id = (platform or sys.platform).lower()
    environ = dict(os.environ if env is None else env)
    override = environ.get("EDUPAY_DATA_DIR")
    if override:
        return Path(override).expanduser()

    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "EduPay Ledger"


DATA_DIR = get_default_data_dir(APP_NAME)
SECRETS_DIR = DATA_DIR / "secrets"
LOG_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, SECRETS_DIR, LOG_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "offline_queue.db"
CONFIG_PATH = DATA_DIR / "config.json"
TOKEN_PATH = DATA_DIR / "token.json"
CLIENT_SECRET_PATH = SECRETS_DIR / "client_secret.json"


@dataclass(frozen=True)
class SyncSettings:
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30_000
    auto_sync_interval_sec: int = 30
    clear_synced_delay_sec: int = 5
    write_timeout_sec: float = 30.0
    priority_drain: bool = False


SYNC = SyncSettings()


@dataclass(frozen=True)
class FirestoreSettings:
    project_id: Optional[str] = os.environ.get("EDUPAY_FIREBASE_PROJECT")
    database: str = "(default)"
    scopes: tuple[str, ...] = (
        "https://www.googleapis.com/auth/datastore",
    )
    collections: tuple[tuple[str, str], ...] = (
        ("payment", "payments"),
        ("student", "students"),
        ("settings", "settings"),
    )


FIRESTORE = FirestoreSettings()


@dataclass(frozen=True)
class ClearanceSettings:
    # Advisory base for shortfall estimates when a student's total fees are unknown.
    nominal_fee_base: int = 1_000_000
    follow_up_window_days: int = 3


CLEARANCE = ClearanceSettings()


@dataclass(frozen=True)
class ReconciliationSettings:
    auto_match_confidence: int = 80
    suggestion_confidence: int = 30
    max_suggestions: int = 5
    close_amount_tolerance: int = 1000


RECONCILIATION = ReconciliationSettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "SECRETS_DIR",
    "LOG_DIR",
    "DB_PATH",
    "CONFIG_PATH",
    "TOKEN_PATH",
    "CLIENT_SECRET_PATH",
    "SYNC",
    "FIRESTORE",
    "CLEARANCE",
    "RECONCILIATION",
    "get_default_data_dir",
]
