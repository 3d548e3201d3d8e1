import asyncio
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fakes import FakeClock, FakeWriter
from services.auto_sync import AutoSync
from services.queue_types import CREATE, SYNCED
from services.sync_queue import OfflineSyncQueue
from storage.config import AppConfig


def _queue(writer, *, online=True):
    return OfflineSyncQueue(writer, clock=FakeClock(), is_online=online)


def test_reconnect_drains_pending_work():
    writer = FakeWriter()
    queue = _queue(writer, online=False)
    queue.enqueue("payment", CREATE, {"id": "p1"})
    auto = AutoSync(queue, clear_delay_sec=0)

    result = asyncio.run(auto.set_online(True))

    assert result.synced == 1
    assert writer.written_ids == ["p1"]
    assert queue.items() == []


def test_reconnect_without_work_does_not_drain():
    writer = FakeWriter()
    queue = _queue(writer, online=False)
    auto = AutoSync(queue)

    assert asyncio.run(auto.set_online(True)) is None
    assert queue.state.status == "idle"


def test_going_offline_keeps_items():
    writer = FakeWriter()
    queue = _queue(writer)
    queue.enqueue("payment", CREATE, {"id": "p1"})
    auto = AutoSync(queue)

    assert asyncio.run(auto.set_online(False)) is None
    assert writer.calls == []
    assert queue.get_pending_count() == 1


def test_synced_items_are_swept_after_delay():
    async def scenario():
        writer = FakeWriter()
        queue = _queue(writer)
        item = queue.enqueue("payment", CREATE, {"id": "p1"})
        auto = AutoSync(queue, clear_delay_sec=0.01)
        await auto.run_once()
        before = queue.get_item(item.id)
        await asyncio.sleep(0.05)
        return before, queue.items()

    before, after = asyncio.run(scenario())

    assert before.status == SYNCED
    assert after == []


def test_periodic_loop_drains_until_stopped():
    async def scenario():
        writer = FakeWriter()
        queue = _queue(writer)
        auto = AutoSync(queue, interval_sec=0.01, clear_delay_sec=0)
        auto.start()
        queue.enqueue("payment", CREATE, {"id": "p1"})
        await asyncio.sleep(0.05)
        queue.enqueue("student", CREATE, {"id": "s1"})
        await asyncio.sleep(0.05)
        await auto.stop()
        return auto, writer

    auto, writer = asyncio.run(scenario())

    assert writer.written_ids == ["p1", "s1"]
    assert auto.running is False


def test_from_config_uses_saved_interval_and_order():
    queue = _queue(FakeWriter())
    config = AppConfig(auto_sync_interval_sec=7, priority_drain=True)

    auto = AutoSync.from_config(queue, config)

    assert auto.interval_sec == 7
    assert auto.priority_order is True
