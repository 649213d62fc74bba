"""
Background maintenance scheduling
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Runs an async job on a fixed interval in its own asyncio task.

    The job is never run inline with request handling; ``stop`` cancels the
    task and waits for it to finish.
    """

    def __init__(self, name: str, job: Callable[[], Awaitable[object]], interval_seconds: float):
        self.name = name
        self.job = job
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info(f"Started periodic task {self.name} (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info(f"Stopped periodic task {self.name}")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                result = await self.job()
                logger.debug(f"Periodic task {self.name} completed: {result}")
            except Exception as e:
                logger.error(f"Periodic task {self.name} failed: {e}")
