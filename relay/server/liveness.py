"""Periodic heartbeat probing and reaping of unresponsive connections."""

import asyncio
import contextlib
from typing import Iterable, Optional

from websockets.exceptions import ConnectionClosed

from .dispatcher import FanoutDispatcher
from .registry import ConnectionRecord, ConnectionRegistry
from config import RELAY_HEARTBEAT_INTERVAL
from utils.logger import logger, log_exception


class LivenessMonitor:
    """Pings every connection once per interval and reaps the silent ones.

    A record whose ``live`` flag is still clear when the next cycle starts
    has shown no traffic and answered no ping for a whole interval.
    """

    def __init__(
        self,
        registries: Iterable[ConnectionRegistry],
        dispatcher: FanoutDispatcher,
        interval: float = RELAY_HEARTBEAT_INTERVAL,
        lock: Optional[asyncio.Lock] = None,
    ):
        self.registries = list(registries)
        self.dispatcher = dispatcher
        self.interval = interval
        self._lock = lock or asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    async def run_cycle(self) -> int:
        """Run one ping cycle. Returns the number of connections reaped."""
        reaped = 0
        async with self._lock:
            for registry in self.registries:
                for record in registry.records():
                    if not record.live:
                        logger.info(f"{registry.role.value} {record.id} missed heartbeat")
                        await self.dispatcher.mark_dead(registry, record.id)
                        reaped += 1
                        continue

                    record.live = False
                    if not await self._ping(record):
                        await self.dispatcher.mark_dead(registry, record.id)
                        reaped += 1
        return reaped

    async def _ping(self, record: ConnectionRecord) -> bool:
        try:
            pong_waiter = await asyncio.wait_for(record.transport.ping(), self.dispatcher.send_timeout)
        except asyncio.TimeoutError:
            logger.debug(f"{record.role.value} {record.id}: ping timed out")
            return False
        except (ConnectionClosed, OSError) as e:
            logger.debug(f"{record.role.value} {record.id}: ping failed: {e}")
            return False

        def _on_pong(fut: asyncio.Future) -> None:
            if not fut.cancelled() and fut.exception() is None:
                record.mark_alive()

        pong_waiter.add_done_callback(_on_pong)
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_cycle()
            except Exception:
                log_exception("Liveness cycle failed")

    def start(self) -> None:
        """Start probing in the background."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
