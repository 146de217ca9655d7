"""Batch orchestrator for per-period image generation.

This orchestrator:
1. Creates one job per period key for the current source image
2. Drains a FIFO work queue with a fixed number of concurrent workers
3. Publishes every job transition to subscribers as it happens
4. Re-runs single jobs on demand, outside the worker pool
"""

import asyncio
import inspect
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional, Set

from .models import GenerationFailed, Job, JobStatus, JobUpdate
from .prompts import prompt_for

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 2

GenerateFn = Callable[[Any, str], Awaitable[Any]]
Observer = Callable[[JobUpdate], None]


class WorkQueue:
    """FIFO of period keys; each key is handed out exactly once."""

    def __init__(self, keys: Iterable[str] = ()):
        self.pending: Deque[str] = deque()
        self.claimed: Set[str] = set()
        for key in keys:
            self.put(key)

    def put(self, key: str):
        if key in self.claimed or key in self.pending:
            raise ValueError(f"Key {key} already queued")
        self.pending.append(key)

    def claim(self) -> Optional[str]:
        """Return the next key, or None once the queue is drained."""
        if not self.pending:
            return None
        key = self.pending.popleft()
        self.claimed.add(key)
        return key

    def __len__(self) -> int:
        return len(self.pending)


class BatchOrchestrator:
    """Owns the jobs of the current batch and runs their generation calls."""

    def __init__(self, concurrency: int = DEFAULT_CONCURRENCY, prompt_template: Optional[str] = None):
        if concurrency < 1:
            raise ValueError(f"Concurrency must be at least 1, got {concurrency}")
        self.concurrency = concurrency
        self.prompt_template = prompt_template

        # Batch state
        self.jobs: Dict[str, Job] = {}
        self.source_image: Any = None
        self.running = False
        self._generate: Optional[GenerateFn] = None
        self._in_flight: Set[str] = set()
        self._epoch = 0

        self._observers: List[Observer] = []
        self._retry_tasks: Set[asyncio.Task] = set()

    # ---------- Observers ----------

    def subscribe(self, callback: Observer) -> Observer:
        """Register a callback for job transitions."""
        self._observers.append(callback)
        return callback

    def unsubscribe(self, callback: Observer):
        if callback in self._observers:
            self._observers.remove(callback)

    def _publish(self, job: Job):
        update = JobUpdate.from_job(job)
        for callback in list(self._observers):
            try:
                callback(update)
            except Exception as e:
                logger.error(f"Job observer failed for {job.key}: {e}")

    # ---------- Batch ----------

    async def start_batch(self, source_image: Any, periods: Iterable[str], generate: GenerateFn) -> Dict[str, Job]:
        """Generate one image per period and return the final snapshot.

        Any previous batch is replaced in full. Results still arriving for the
        replaced batch are kept out of the new one: they only reach the
        snapshot returned to the replaced call, where keys its workers never
        claimed stay pending.
        """
        keys = list(periods)
        if not keys:
            raise ValueError("At least one period is required")
        duplicates = sorted({key for key in keys if keys.count(key) > 1})
        if duplicates:
            raise ValueError(f"Duplicate period keys: {', '.join(duplicates)}")
        if source_image is None:
            raise ValueError("A source image is required")

        self._epoch += 1
        epoch = self._epoch
        self.source_image = source_image
        self._generate = generate
        self._in_flight = set()
        jobs = {key: Job(key=key) for key in keys}
        self.jobs = jobs
        for job in jobs.values():
            self._publish(job)

        queue = WorkQueue(keys)
        logger.info(f"Starting batch of {len(keys)} jobs with {self.concurrency} workers")
        self.running = True
        workers = [
            asyncio.create_task(self._worker(worker_id, queue, generate, epoch, jobs))
            for worker_id in range(self.concurrency)
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            if epoch == self._epoch:
                self.running = False

        done = sum(1 for j in jobs.values() if j.status is JobStatus.DONE)
        failed = sum(1 for j in jobs.values() if j.status is JobStatus.FAILED)
        logger.info(f"Batch finished: {done} done, {failed} failed")
        return {key: job.copy() for key, job in jobs.items()}

    async def _worker(self, worker_id: int, queue: WorkQueue, generate: GenerateFn, epoch: int, jobs: Dict[str, Job]):
        while epoch == self._epoch:
            key = queue.claim()
            if key is None:
                break
            logger.debug(f"Worker {worker_id} claimed {key}")
            self._dispatch(key)
            await self._run_job(key, generate, epoch, jobs)

    def _dispatch(self, key: str):
        self._in_flight.add(key)
        self.jobs[key].attempts += 1

    async def _run_job(self, key: str, generate: GenerateFn, epoch: int, jobs: Dict[str, Job]):
        prompt = prompt_for(key, self.prompt_template)
        try:
            result = generate(self.source_image, prompt)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            failure = GenerationFailed.from_exception(key, e)
            logger.error(f"Failed to generate image for {key}: {failure.reason}")
            self._finish(key, epoch, jobs, failure=failure)
        else:
            self._finish(key, epoch, jobs, result=result)

    def _finish(
        self,
        key: str,
        epoch: int,
        jobs: Dict[str, Job],
        result: Any = None,
        failure: Optional[GenerationFailed] = None,
    ):
        job = jobs[key]
        if failure is None:
            job.mark_done(result)
        else:
            job.mark_failed(failure.reason)
        if epoch != self._epoch:
            # replaced batch: only its own caller sees this outcome
            logger.debug(f"Not publishing outcome for {key} from a replaced batch")
            return

        self._in_flight.discard(key)
        self._publish(job)

    # ---------- Retry ----------

    def can_retry(self, key: str) -> bool:
        """True when the job exists and nothing is generating for it."""
        job = self.jobs.get(key)
        if job is None:
            return False
        return key not in self._in_flight and job.status.is_terminal

    async def retry_job(self, key: str, generate: Optional[GenerateFn] = None) -> bool:
        """Re-run generation for one job.

        Returns False without side effects while the job is pending or in flight.
        """
        if not self.jobs:
            raise RuntimeError("No batch has been started")
        if key not in self.jobs:
            raise KeyError(key)
        if not self.can_retry(key):
            logger.debug(f"Ignoring retry for {key}: generation already in progress")
            return False

        generate = generate or self._generate
        if generate is None:
            raise RuntimeError("No generate function available for retry")

        epoch = self._epoch
        logger.info(f"Regenerating image for {key}...")
        job = self.jobs[key]
        job.mark_pending()
        self._dispatch(key)
        self._publish(job)
        await self._run_job(key, generate, epoch, self.jobs)
        return True

    def request_retry(self, key: str, generate: Optional[GenerateFn] = None) -> Optional[asyncio.Task]:
        """Schedule retry_job from synchronous code, e.g. a gesture callback.

        Must be called with a running event loop. Returns None when the retry
        would be ignored.
        """
        if not self.can_retry(key):
            logger.debug(f"Ignoring retry request for {key}")
            return None
        task = asyncio.get_running_loop().create_task(self.retry_job(key, generate))
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)
        return task

    async def wait_for_retries(self):
        """Wait for every retry scheduled through request_retry."""
        while self._retry_tasks:
            await asyncio.gather(*list(self._retry_tasks))

    @property
    def pending_retries(self) -> int:
        return len(self._retry_tasks)

    # ---------- Read model ----------

    def snapshot(self) -> Dict[str, Job]:
        """Copy of every job, in period order."""
        return {key: job.copy() for key, job in self.jobs.items()}

    def completed_results(self) -> Dict[str, Any]:
        """Results of every finished job, in period order."""
        return {key: job.result for key, job in self.jobs.items() if job.status is JobStatus.DONE}

    def failures(self) -> List[GenerationFailed]:
        return [
            GenerationFailed(key, job.error)
            for key, job in self.jobs.items()
            if job.status is JobStatus.FAILED
        ]

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def stats(self) -> Dict[str, int]:
        """Get job statistics."""
        return {
            "total": len(self.jobs),
            "pending": sum(1 for j in self.jobs.values() if j.status is JobStatus.PENDING),
            "in_flight": len(self._in_flight),
            "done": sum(1 for j in self.jobs.values() if j.status is JobStatus.DONE),
            "failed": sum(1 for j in self.jobs.values() if j.status is JobStatus.FAILED),
        }

    def reset(self):
        """Drop the current batch."""
        self._epoch += 1
        self.jobs = {}
        self.source_image = None
        self.running = False
        self._generate = None
        self._in_flight = set()
