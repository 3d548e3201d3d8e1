# edupay/main.py
import os, sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import argparse
import asyncio
import logging
from datetime import datetime

from core.logs import LOG_FORMAT
from core.settings import APP_NAME
from services.auto_sync import AutoSync
from services.firestore_writer import FirestoreWriter
from services.google_auth import GoogleAuth
from services.queue_types import RESOLUTIONS
from services.sync_queue import OfflineSyncQueue
from storage.config import load_config
from storage.db import init_db
from storage.queue_store import SqlQueueStore


def _fmt_ms(value):
    if value is None:
        return "never"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _attach_log_file(path: str) -> None:
    logging.basicConfig(filename=path, format=LOG_FORMAT, level=logging.INFO, encoding="utf-8")


def _build_queue(config, *, with_writer: bool = False) -> OfflineSyncQueue:
    writer = None
    if with_writer:
        writer = FirestoreWriter(GoogleAuth(), school_id=config.school_id, project_id=config.project_id)
    return OfflineSyncQueue(
        writer,
        SqlQueueStore(),
        policy=config.retry_policy(),
        priority_drain=config.priority_drain,
    )


def cmd_status(queue: OfflineSyncQueue, args) -> int:
    state = queue.state
    print(f"Pending changes: {state.pending_changes}")
    print(f"Last sync: {_fmt_ms(state.last_sync_at)}")
    for item in queue.items():
        error = f"  ({item.last_error})" if item.last_error else ""
        print(f"  {item.id}  {item.type:<8} {item.action:<6} {item.status:<7} attempts={item.sync_attempts}{error}")
    attention = queue.needs_attention()
    if attention:
        print(f"Needs attention: {len(attention)}")
    return 0


def cmd_drain(queue: OfflineSyncQueue, args) -> int:
    result = asyncio.run(queue.drain(priority_order=args.priority or None))
    print(f"Synced {result.synced}, failed {result.failed}, conflicts {result.conflicted}")
    for error in result.errors:
        print(f"  {error}")
    return 0 if not (result.failed or result.conflicted) else 1


async def _watch(auto: AutoSync, seconds) -> None:
    auto.start()
    try:
        if seconds:
            await asyncio.sleep(seconds)
        else:
            await asyncio.Event().wait()
    finally:
        await auto.stop()


def cmd_watch(queue: OfflineSyncQueue, args) -> int:
    auto = AutoSync.from_config(queue, args.config)
    print(f"Syncing every {auto.interval_sec}s, Ctrl+C to stop")
    try:
        asyncio.run(_watch(auto, args.seconds))
    except KeyboardInterrupt:
        pass
    print(f"Pending changes: {queue.get_pending_count()}")
    return 0


def cmd_clear_synced(queue: OfflineSyncQueue, args) -> int:
    print(f"Removed {queue.clear_synced()} synced items")
    return 0


def cmd_conflicts(queue: OfflineSyncQueue, args) -> int:
    conflicts = queue.conflicts()
    if not conflicts:
        print("No conflicts")
    for conflict in conflicts:
        print(f"{conflict.id}  item={conflict.item_id}  at {_fmt_ms(conflict.created_at)}")
        print(f"  local:  {conflict.local_data}")
        print(f"  server: {conflict.server_data}")
    return 0


def cmd_resolve(queue: OfflineSyncQueue, args) -> int:
    known = {c.id for c in queue.conflicts()}
    if args.conflict_id not in known:
        print(f"Conflict {args.conflict_id} not found")
        return 1
    queue.resolve_conflict(args.conflict_id, args.resolution)
    print(f"Resolved {args.conflict_id} with {args.resolution}")
    return 0


def cmd_retry(queue: OfflineSyncQueue, args) -> int:
    if queue.retry_item(args.item_id):
        print(f"{args.item_id} queued for retry")
        return 0
    print(f"{args.item_id} is not a failed item that can be retried")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=f"{APP_NAME} offline sync queue.")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--log", type=str, default=None, help="Also write logs to this file.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", parents=[common], help="Show queue contents and sync state.").set_defaults(func=cmd_status)

    drain = sub.add_parser("drain", parents=[common], help="Upload queued changes now.")
    drain.add_argument("--priority", action="store_true", help="Payments first, then students, then settings.")
    drain.set_defaults(func=cmd_drain)

    watch = sub.add_parser("watch", parents=[common], help="Keep draining on the configured interval.")
    watch.add_argument("--seconds", type=float, default=None, help="Stop after this many seconds.")
    watch.set_defaults(func=cmd_watch)

    sub.add_parser("clear-synced", parents=[common], help="Drop synced items.").set_defaults(func=cmd_clear_synced)
    sub.add_parser("conflicts", parents=[common], help="List unresolved conflicts.").set_defaults(func=cmd_conflicts)

    resolve = sub.add_parser("resolve", parents=[common], help="Resolve a conflict.")
    resolve.add_argument("conflict_id")
    resolve.add_argument("resolution", choices=RESOLUTIONS)
    resolve.set_defaults(func=cmd_resolve)

    retry = sub.add_parser("retry", parents=[common], help="Reset a failed item's attempts.")
    retry.add_argument("item_id")
    retry.set_defaults(func=cmd_retry)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.log:
        _attach_log_file(args.log)
    init_db()
    config = load_config()
    args.config = config
    remote = args.command in ("drain", "watch")
    if remote and not config.school_id:
        print("Set school_id in config.json before draining")
        return 2
    queue = _build_queue(config, with_writer=remote)
    return args.func(queue, args)


if __name__ == "__main__":
    sys.exit(main())
