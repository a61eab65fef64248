# backend/app/services/background_jobs.py

import asyncio
from typing import Coroutine, Optional, Set

from app.core.logger import logger


class BackgroundJobRegistry:
    """
    Fire-and-forget tasks that must still run to completion.

    The registry keeps a strong reference to every task until it finishes,
    reports failures to the log (nobody awaits these tasks), and lets the
    host wait for stragglers on shutdown via `drain()`.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        self.completed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug(f"Background job started: {task.get_name()} (pending={self.pending})")
        return task

    def _on_done(self, task: asyncio.Task):
        self._tasks.discard(task)

        if task.cancelled():
            logger.warning(f"Background job cancelled: {task.get_name()}")
            return

        error = task.exception()
        if error is not None:
            self.failed += 1
            logger.error(
                f"Background job failed: {task.get_name()}: {error!r}",
                exc_info=(type(error), error, error.__traceback__),
            )
            return

        self.completed += 1
        logger.debug(f"Background job done: {task.get_name()}")

    async def drain(self, timeout: Optional[float] = None):
        """
        Wait until every job spawned so far (and any they spawn) has finished.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while self._tasks:
            # only wait on tasks owned by this loop
            tasks = [t for t in self._tasks if t.get_loop() is loop and not t.done()]
            if not tasks:
                break
            remaining = None if deadline is None else max(deadline - loop.time(), 0)
            logger.info(f"Waiting for {len(tasks)} background job(s) to finish")
            _, still_running = await asyncio.wait(tasks, timeout=remaining)
            if still_running and deadline is not None and loop.time() >= deadline:
                logger.warning(f"{len(still_running)} background job(s) still running after {timeout}s")
                break
