"""Ad-hoc database migrations for the offline queue store."""

from __future__ import annotations

from sqlalchemy import text


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def ensure_queue_columns(conn) -> None:
    columns = {
        "next_attempt_at": "INTEGER",
        "conflict_id": "TEXT",
        "overwrite": "BOOLEAN NOT NULL DEFAULT 0",
    }
    for name, ddl_type in columns.items():
        if not _column_exists(conn, "queueentry", name):
            conn.execute(text(f"ALTER TABLE queueentry ADD COLUMN {name} {ddl_type}"))

    # Early builds stored the transient in-flight status; nothing is in flight at startup.
    conn.execute(text("UPDATE queueentry SET status = 'pending' WHERE status = 'syncing'"))


def ensure_queue_indexes(conn) -> None:
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS ix_queueentry_status_timestamp
            ON queueentry (status, timestamp)
            """
        )
    )
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_conflictentry_item_id ON conflictentry (item_id)"))


def run_all(engine) -> None:
    with engine.begin() as conn:
        ensure_queue_columns(conn)
        ensure_queue_indexes(conn)


__all__ = ["run_all"]
