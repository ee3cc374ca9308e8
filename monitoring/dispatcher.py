'''
MonitorDispatcher is the single point where the two event sources meet:
timer ticks (refresh the display snapshot) and operator switchover requests.
Both go through one queue and one consumer, so a refresh never runs while a
switchover is in flight. Ticks are coalesced and dropped while a switchover
runs, which pauses the timer for the duration of the handover.
'''

import asyncio
import logging
from typing import Optional

from monitoring.monitor import ReplicationMonitor

logger = logging.getLogger(__name__)

TICK = "tick"
SWITCHOVER = "switchover"


class MonitorDispatcher:
    def __init__(self, monitor: ReplicationMonitor, interval: float = 3.0):
        self.monitor = monitor
        self.interval = interval
        self._queue: Optional[asyncio.Queue] = None
        self._tasks = []
        self._tick_pending = False
        self.switchover_running = False

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self):
        self._queue = asyncio.Queue()
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._ticker()),
            loop.create_task(self._dispatch()),
        ]
        logger.info("[Dispatcher] Started, refreshing every %ss", self.interval)

    async def stop(self):
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("[Dispatcher] Stopped")

    async def request_switchover(self):
        """Queues an operator switchover and waits for its result."""
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((SWITCHOVER, future))
        return await future

    def tick(self):
        if self._tick_pending or self.switchover_running:
            return
        self._tick_pending = True
        self._queue.put_nowait((TICK, None))

    async def _ticker(self):
        while True:
            self.tick()
            await asyncio.sleep(self.interval)

    async def _dispatch(self):
        while True:
            kind, future = await self._queue.get()
            if kind == TICK:
                self._tick_pending = False
                try:
                    await asyncio.to_thread(self.monitor.refresh)
                except Exception:
                    logger.exception("[Dispatcher] Refresh failed")
                continue

            self.switchover_running = True
            try:
                result = await asyncio.to_thread(self.monitor.request_switchover)
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self.switchover_running = False
