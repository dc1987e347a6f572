"""In-process worker pool that runs dispatched tasks off the request path."""

import asyncio
import logging
from typing import Awaitable, Callable
from uuid import UUID

logger = logging.getLogger(__name__)

TaskHandler = Callable[[UUID], Awaitable[None]]


class TaskWorkerPool:
    """Bounded queue of task ids drained by a fixed number of asyncio workers.

    ``dispatch`` waits for queue space when the queue is full, which bounds the
    number of runs in flight. Handler errors are logged and never stop a worker.
    """

    def __init__(self, handler: TaskHandler, workers: int = 4, max_queue_size: int = 100) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self._handler = handler
        self._worker_count = workers
        self._queue: asyncio.Queue[UUID] = asyncio.Queue(maxsize=max_queue_size)
        self._workers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._run(number), name=f"resize-worker-{number}")
            for number in range(self._worker_count)
        ]
        logger.info(f"Worker pool started with {self._worker_count} worker(s)")

    async def stop(self) -> None:
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Worker pool stopped.")

    async def dispatch(self, task_id: UUID) -> None:
        await self._queue.put(task_id)
        logger.debug(f"Queued task {task_id} ({self._queue.qsize()} waiting)")

    async def join(self) -> None:
        """Wait until every queued task has been handled."""
        await self._queue.join()

    async def _run(self, number: int) -> None:
        while True:
            task_id = await self._queue.get()
            try:
                logger.info(f"Worker {number} processing task {task_id}")
                await self._handler(task_id)
            except Exception as exc:  # noqa: BLE001
                logger.error(f"Worker {number} failed on task {task_id}: {exc}", exc_info=True)
            finally:
                self._queue.task_done()
