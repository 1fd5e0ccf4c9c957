"""Background execution queue for agent tasks."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Protocol, Tuple

LOGGER = logging.getLogger("aegis.delegation.queue")

TaskHandler = Callable[[str], Awaitable[object]]


class TaskQueue(Protocol):
    def enqueue(self, task_id: str) -> None:
        ...


class AsyncioTaskQueue:
    """Worker pool over an ``asyncio.Queue``.

    A handler failure re-queues the task until ``max_attempts`` runs were
    made; the last failure is logged. Execution is at-least-once; the
    repository's ``claim`` keeps two workers off the same task.
    """

    def __init__(self, handler: TaskHandler, workers: int = 2, max_attempts: int = 2):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.handler = handler
        self.workers = workers
        self.max_attempts = max(1, max_attempts)
        self._queue: "asyncio.Queue[Tuple[str, int]]" = asyncio.Queue()
        self._workers: List[asyncio.Task] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.failed: List[str] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(self, task_id: str) -> None:
        """Queue a task; safe to call from tool threads."""
        if self._loop is not None and not self._on_loop():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, (task_id, 1))
        else:
            self._queue.put_nowait((task_id, 1))
        LOGGER.info(f"Queued task {task_id} for background execution")

    async def start(self) -> None:
        if self._workers:
            return
        self._loop = asyncio.get_running_loop()
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"aegis-task-worker-{index}")
            for index in range(self.workers)
        ]
        LOGGER.info(f"Started {self.workers} task worker(s)")

    async def join(self) -> None:
        """Wait until every queued task (including retries) was processed."""
        await self._queue.join()

    async def stop(self) -> None:
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        LOGGER.info("Task workers stopped")

    def _on_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    async def _worker(self, index: int) -> None:
        while True:
            task_id, attempt = await self._queue.get()
            try:
                await self._run(task_id, attempt)
            finally:
                self._queue.task_done()

    async def _run(self, task_id: str, attempt: int) -> Optional[object]:
        LOGGER.debug(f"Running task {task_id} (attempt {attempt}/{self.max_attempts})")
        try:
            return await self.handler(task_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if attempt < self.max_attempts:
                LOGGER.warning(f"Task {task_id} failed on attempt {attempt}, retrying: {e}")
                self._queue.put_nowait((task_id, attempt + 1))
            else:
                LOGGER.error(f"Task {task_id} failed after {attempt} attempt(s): {type(e).__name__}: {e}")
                self.failed.append(task_id)
            return None
