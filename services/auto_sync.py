from __future__ import annotations

import asyncio
import contextlib
from typing import Optional, Set

from core.logs import get_logger
from core.settings import SYNC
from services.queue_types import SyncResult
from services.sync_queue import OfflineSyncQueue


class AutoSync:
    """Drains the queue on reconnect and on a fixed interval while online."""

    def __init__(
        self,
        queue: OfflineSyncQueue,
        *,
        interval_sec: float = SYNC.auto_sync_interval_sec,
        clear_delay_sec: float = SYNC.clear_synced_delay_sec,
        priority_order: Optional[bool] = None,
    ) -> None:
        self.queue = queue
        self.interval_sec = interval_sec
        self.clear_delay_sec = clear_delay_sec
        self.priority_order = priority_order
        self.logger = get_logger()
        self._loop_task: Optional[asyncio.Task] = None
        self._sweeps: Set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, queue: OfflineSyncQueue, config) -> "AutoSync":
        """Build a loop using the interval and drain order saved in config.json."""

        return cls(
            queue,
            interval_sec=config.auto_sync_interval_sec,
            priority_order=config.priority_drain,
        )

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def set_online(self, online: bool) -> Optional[SyncResult]:
        was_online = self.queue.is_online
        self.queue.set_online(online)
        if online and not was_online:
            self.logger.info("Connectivity restored")
            if self.queue.has_work():
                return await self.run_once()
        elif not online and was_online:
            self.logger.info("Connectivity lost; queued changes stay local")
        return None

    async def run_once(self) -> SyncResult:
        result = await self.queue.drain(priority_order=self.priority_order)
        if result.synced:
            self._schedule_sweep()
        return result

    def start(self) -> None:
        """Start the periodic drain; needs a running event loop."""

        if self.running:
            return
        self._loop_task = asyncio.get_running_loop().create_task(self._run())
        self.logger.info("Auto-sync started (every %ss)", self.interval_sec)

    async def stop(self) -> None:
        tasks = list(self._sweeps)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._loop_task = None
        self._sweeps.clear()
        self.logger.info("Auto-sync stopped")

    async def _run(self) -> None:
        while True:
            if self.queue.is_online and self.queue.has_work():
                await self.run_once()
            await asyncio.sleep(self.interval_sec)

    def _schedule_sweep(self) -> None:
        if self.clear_delay_sec <= 0:
            self.queue.clear_synced()
            return
        task = asyncio.get_running_loop().create_task(self._sweep())
        self._sweeps.add(task)
        task.add_done_callback(self._sweeps.discard)

    async def _sweep(self) -> None:
        await asyncio.sleep(self.clear_delay_sec)
        self.queue.clear_synced()


__all__ = ["AutoSync"]
