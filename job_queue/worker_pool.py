"""
Job Queue — Bounded in-memory buffer drained by a fixed pool of workers.

    send_email / send_sms ──enqueue──▶ ┌──────────────────┐      ┌──────────┐
    startup (pending jobs) ──enqueue──▶│ asyncio.Queue    │─────▶│ worker 0 │
                                       │ (capacity N)     │─────▶│ worker 1 │
                                       └──────────────────┘ ...  └──────────┘

Enqueue never blocks the caller:
  - free slot       → put_nowait
  - buffer full     → one producer task waits up to `enqueue_timeout`
                      for a slot; the number of such tasks is capped
  - timeout / cap   → job is spilled: dropped from memory only. It is still
                      pending in the job repository and is enqueued again
                      on the next start.

Ordering is FIFO inside the buffer; jobs whose enqueue had to wait may be
overtaken by later submissions.

Stopping: workers exit at their next wait on the buffer. A job already
taken from the buffer runs to completion; jobs still in the buffer are
abandoned (they remain pending in storage).
"""
from __future__ import annotations

import asyncio
import structlog
from typing import Any, Awaitable, Callable, Optional

from models.schemas import Job

logger = structlog.get_logger()

JobHandler = Callable[[Job], Awaitable[Any]]


class WorkerPool:
    """
    Usage:
        pool = WorkerPool(handler, capacity=1000, worker_count=5)
        pool.start()
        pool.enqueue(job)     # returns immediately
        await pool.stop()
    """

    def __init__(
        self,
        handler: JobHandler,
        capacity: int = 1000,
        worker_count: int = 5,
        enqueue_timeout: float = 5.0,
        max_pending_enqueues: int = 1000,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        self.handler = handler
        self.capacity = capacity
        self.worker_count = worker_count
        self.enqueue_timeout = enqueue_timeout
        self.max_pending_enqueues = max_pending_enqueues
        self._queue: asyncio.Queue[Job] = asyncio.Queue(maxsize=capacity)
        self._stopping = asyncio.Event()
        self._workers: list[asyncio.Task] = []
        self._producers: set[asyncio.Task] = set()
        self.spilled = 0

    # ── Lifecycle ─────────────────────────────────────────

    @property
    def running(self) -> bool:
        return bool(self._workers) and not self._stopping.is_set()

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"notify-worker-{i}")
            for i in range(self.worker_count)
        ]
        logger.info("worker_pool_started",
                    workers=self.worker_count,
                    capacity=self.capacity)

    async def stop(self) -> None:
        """Signal all workers and wait for in-flight jobs to finish."""
        self._stopping.set()
        for task in list(self._producers):
            task.cancel()
        await asyncio.gather(*self._producers, return_exceptions=True)
        await asyncio.gather(*self._workers, return_exceptions=True)
        logger.info("worker_pool_stopped", abandoned=self._queue.qsize())

    # ── Enqueue ───────────────────────────────────────────

    def enqueue(self, job: Job) -> bool:
        """
        Hand a job to the workers without blocking.

        Returns False when the job was refused (already sent, pool stopping)
        or spilled immediately; True when it is buffered or waiting for a slot.
        """
        if not job.is_pending:
            logger.warning("job_already_sent_not_enqueued", job_id=job.id)
            return False
        if self._stopping.is_set():
            logger.info("job_not_enqueued_pool_stopping", job_id=job.id)
            return False

        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            return self._enqueue_when_free(job)

        logger.debug("job_enqueued", job_id=job.id, depth=self._queue.qsize())
        return True

    def _enqueue_when_free(self, job: Job) -> bool:
        if len(self._producers) >= self.max_pending_enqueues:
            self._spill(job, reason="too_many_waiting_enqueues")
            return False

        task = asyncio.create_task(self._put_with_timeout(job))
        self._producers.add(task)
        task.add_done_callback(self._producers.discard)
        return True

    async def _put_with_timeout(self, job: Job) -> None:
        try:
            await asyncio.wait_for(self._queue.put(job), timeout=self.enqueue_timeout)
        except asyncio.TimeoutError:
            self._spill(job, reason="buffer_full")
        else:
            logger.debug("job_enqueued_after_wait", job_id=job.id)

    def _spill(self, job: Job, reason: str) -> None:
        self.spilled += 1
        logger.warning("job_spilled_to_storage",
                       job_id=job.id,
                       reason=reason,
                       depth=self._queue.qsize())

    # ── Workers ───────────────────────────────────────────

    async def _worker(self, index: int) -> None:
        while not self._stopping.is_set():
            getter = asyncio.ensure_future(self._queue.get())
            stopper = asyncio.ensure_future(self._stopping.wait())
            done, pending = await asyncio.wait(
                {getter, stopper}, return_when=asyncio.FIRST_COMPLETED,
            )
            for task in pending:
                task.cancel()
            if getter not in done:
                break

            # once taken from the buffer a job always runs to completion
            job = getter.result()
            try:
                await self.handler(job)
            except Exception as e:
                logger.error("job_handler_error",
                             worker=index,
                             job_id=job.id,
                             error=str(e),
                             exc_info=True)
            finally:
                self._queue.task_done()

        logger.debug("worker_stopped", worker=index)

    # ── Introspection ─────────────────────────────────────

    def qsize(self) -> int:
        return self._queue.qsize()

    def pending_enqueues(self) -> int:
        return len(self._producers)

    async def join(self) -> None:
        """Wait until every buffered job has been processed (tests, drains)."""
        await self._queue.join()
