"""Background work detached from the request/response cycle.

BackgroundRunner owns fire-and-forget tasks spawned by request handlers.
QueueSweeper is the optional periodic trigger that drains jobs left
queued after a burst or waiting out a retry delay.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from journal_transcriber.queue.transcription_queue import TranscriptionQueue

logger = logging.getLogger(__name__)


class BackgroundRunner:
    """Holds references to detached tasks and logs their failures.

    A failing task is logged and dropped; it never affects the request
    that spawned it.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task %s failed: %s",
                task.get_name(),
                exc,
                exc_info=exc,
                extra={"error": str(exc)},
            )

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for outstanding tasks; cancel any still running after timeout."""
        if not self._tasks:
            return
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            logger.warning("Cancelling background task %s", task.get_name())
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


class QueueSweeper:
    """Periodically runs a batch pass until stopped.

    Args:
        queue: The transcription queue to drain.
        interval: Seconds to sleep between passes.
    """

    def __init__(self, queue: TranscriptionQueue, interval: float) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._queue = queue
        self.interval = interval
        self._running = False

    async def sweep_once(self) -> int:
        """Run a single batch pass. Returns the number of jobs processed."""
        processed = await self._queue.process_next_batch()
        return len(processed)

    async def run(self) -> None:
        """Start the sweep loop. Runs until stopped."""
        self._running = True
        logger.info("Queue sweeper starting (interval %.1fs)", self.interval)

        while self._running:
            try:
                count = await self.sweep_once()
                if count > 0:
                    logger.info("Swept %d jobs this cycle", count)
            except Exception:
                logger.error("Unexpected error in sweep cycle", exc_info=True)

            await asyncio.sleep(self.interval)

    def stop(self) -> None:
        """Signal the sweep loop to stop."""
        self._running = False
        logger.info("Queue sweeper stopping")
