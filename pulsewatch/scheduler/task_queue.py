"""
In-process task queue between pipeline stages.

- Bounded asyncio.Queue: submit() blocks when full (backpressure)
- Fixed pool of worker coroutines: bounded parallelism
- Per-task failure isolation; transient failures are retried with
  exponential backoff up to max_attempts
- Identical tasks already queued or running are not queued twice
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Hashable, List, Optional, Set, Tuple

from ..common.errors import NotFoundError, ValidationError
from ..common.retry import backoff_delay, is_transient
from ..common.tasks import PipelineTask
from ..config.settings import settings

logger = logging.getLogger(__name__)

TaskHandler = Callable[..., Awaitable[object]]


def _task_key(task: PipelineTask) -> Tuple[str, Hashable]:
    return task.kind, tuple(sorted(task.payload.items()))


class TaskQueue:
    def __init__(
        self,
        workers: Optional[int] = None,
        maxsize: Optional[int] = None,
        max_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
    ):
        self.worker_count = workers or settings.task_queue_workers
        self.max_attempts = max_attempts or settings.task_max_attempts
        self.retry_base_delay = (
            settings.task_retry_base_delay if retry_base_delay is None else retry_base_delay
        )
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize or settings.task_queue_maxsize)
        self._handlers: Dict[str, TaskHandler] = {}
        self._workers: List[asyncio.Task] = []
        self._retries: Set[asyncio.Task] = set()
        self._inflight: Set[Tuple[str, Hashable]] = set()
        self.stats = {"submitted": 0, "deduplicated": 0, "succeeded": 0, "failed": 0, "retried": 0}

    def register(self, kind: str, handler: TaskHandler):
        """Handler is called with the task payload as keyword arguments."""
        self._handlers[kind] = handler

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def pending(self) -> int:
        return self._queue.qsize() + len(self._retries)

    async def submit(self, task: PipelineTask) -> None:
        if task.kind not in self._handlers:
            raise ValueError(f"No handler registered for task kind '{task.kind}'")
        key = _task_key(task)
        if key in self._inflight:
            self.stats["deduplicated"] += 1
            logger.debug(f"Task {task.describe()} already queued, skipping")
            return
        self._inflight.add(key)
        self.stats["submitted"] += 1
        await self._queue.put(task)

    async def start(self):
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"task-worker-{i}")
            for i in range(self.worker_count)
        ]
        logger.info(f"Task queue started with {self.worker_count} workers")

    async def stop(self, drain: bool = False):
        if drain and self._workers:
            await self.join()
        pending = self._workers + list(self._retries)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._workers = []
        self._retries.clear()
        logger.info(f"Task queue stopped: {self.stats}")

    async def join(self):
        """Wait until every submitted task (including scheduled retries) is finished."""
        while True:
            await self._queue.join()
            if not self._retries:
                return
            await asyncio.gather(*list(self._retries), return_exceptions=True)

    async def _worker(self, index: int):
        while True:
            task = await self._queue.get()
            try:
                await self._run(task)
            finally:
                self._queue.task_done()

    async def _run(self, task: PipelineTask):
        key = _task_key(task)
        handler = self._handlers[task.kind]
        try:
            await handler(**task.payload)
        except (ValidationError, NotFoundError) as e:
            self._finish(key, "failed")
            logger.warning(f"TASK_DROPPED: {task.describe()}: {e}")
        except Exception as e:
            task.attempt += 1
            if is_transient(e) and task.attempt < self.max_attempts:
                delay = backoff_delay(task.attempt - 1, self.retry_base_delay) if self.retry_base_delay else 0
                self.stats["retried"] += 1
                logger.warning(
                    f"TASK_RETRY: {task.describe()} failed ({type(e).__name__}: {e}), "
                    f"retrying in {delay:.1f}s (attempt {task.attempt}/{self.max_attempts})"
                )
                retry = asyncio.create_task(self._requeue_later(task, delay))
                self._retries.add(retry)
                retry.add_done_callback(self._retries.discard)
            else:
                self._finish(key, "failed")
                logger.error(
                    f"TASK_FAILED: {task.describe()} after {task.attempt} attempt(s): "
                    f"{type(e).__name__}: {e}"
                )
        else:
            self._finish(key, "succeeded")

    def _finish(self, key, outcome: str):
        self._inflight.discard(key)
        self.stats[outcome] += 1

    async def _requeue_later(self, task: PipelineTask, delay: float):
        if delay:
            await asyncio.sleep(delay)
        await self._queue.put(task)
