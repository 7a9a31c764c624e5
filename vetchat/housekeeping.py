"""
Periodic background maintenance for a running server.

    - expired cache entries are swept every ``sweep_interval_sec``
    - the cache is snapshotted every ``persist_interval_sec``
    - stale slot bookings are cleaned every ``slot_cleanup_interval_sec``
    - idle rate-limit buckets are dropped on the cache sweep cadence

The snapshot is loaded before the first request and written once more
on shutdown.
"""

import asyncio
import logging
from typing import Callable

from vetchat.context import AppContext

logger = logging.getLogger(__name__)


class Housekeeper:
    """Owns the background maintenance tasks for one AppContext."""

    def __init__(self, context: AppContext) -> None:
        self._context = context
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        ctx = self._context
        restored = await asyncio.to_thread(ctx.cache.load)
        logger.info("Housekeeper starting with %d cached answers", restored)

        cache_cfg = ctx.config.cache
        self._tasks = [
            self._spawn("cache-sweep", cache_cfg.sweep_interval_sec, self.sweep_cache),
            self._spawn("cache-persist", cache_cfg.persist_interval_sec, self.persist_cache),
            self._spawn(
                "slot-cleanup", ctx.config.clinic.slot_cleanup_interval_sec, self.cleanup_slots
            ),
            self._spawn("rate-limit-sweep", cache_cfg.sweep_interval_sec, self.sweep_rate_limits),
        ]

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await self.persist_cache()
        logger.info("Housekeeper stopped")

    def _spawn(self, name: str, interval: float, job: Callable) -> asyncio.Task:
        return asyncio.create_task(self._run_every(name, interval, job), name=name)

    async def _run_every(self, name: str, interval: float, job: Callable) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Housekeeping job %s failed", name)

    # --- Jobs ---

    async def sweep_cache(self) -> int:
        return self._context.cache.sweep_expired()

    async def persist_cache(self) -> bool:
        return await asyncio.to_thread(self._context.cache.persist)

    async def cleanup_slots(self) -> int:
        return self._context.slot_manager.cleanup()

    async def sweep_rate_limits(self) -> int:
        return self._context.rate_limiter.sweep()
