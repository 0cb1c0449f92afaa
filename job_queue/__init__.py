"""
Job Queue — Hands persisted jobs to a fixed pool of async workers.

- Bounded in-memory asyncio.Queue shared by all workers
- Enqueue never blocks the submitter; overflow is spilled to storage-only
- Single-process only; durability comes from the job repository
"""
from job_queue.worker_pool import WorkerPool

__all__ = ["WorkerPool"]
