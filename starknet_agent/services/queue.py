"""
In-process job queues.

Each named queue is an ``asyncio.Queue`` consumed by a pool of worker tasks.
A job whose handler raises a retryable error is put back after an
exponential backoff delay until its attempts run out.
"""
import asyncio
import logging
import uuid
from datetime import datetime as dt
from datetime import timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from pydantic import BaseModel, Field

from starknet_agent.domains.jobs import JobType, QueueMetrics, RetryConfig

logger = logging.getLogger(__name__)

DEFAULT_QUEUES = [JobType.FILE_INGESTION.value]


class QueueJob(BaseModel):
    """A unit of work travelling through a queue."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(..., description="Job type")
    queue_name: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    state: str = "waiting"
    attempts_made: int = 0
    max_attempts: int = 1
    result: Optional[Any] = None
    failed_reason: Optional[str] = None
    created_at: dt = Field(default_factory=lambda: dt.now(tz=timezone.utc))
    finished_at: Optional[dt] = None

    def can_retry(self, error: BaseException) -> bool:
        """Whether a failure of the current attempt will be retried."""
        retryable = getattr(error, "retryable", True)
        return bool(retryable) and self.attempts_made + 1 < self.max_attempts


JobHandler = Callable[[QueueJob], Awaitable[Any]]


class QueueManager:
    """Owns the named queues and the workers consuming them."""

    def __init__(
        self,
        queue_names: Optional[List[str]] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.queue_names = list(queue_names or DEFAULT_QUEUES)
        self.retry_config = retry_config or RetryConfig()
        self._queues: Dict[str, asyncio.Queue] = {}
        self._running: Dict[str, asyncio.Event] = {}
        self._jobs: Dict[str, QueueJob] = {}
        self._workers: List[asyncio.Task] = []
        self._delayed: Set[asyncio.Task] = set()
        self.initialized = False

    def initialize(self) -> None:
        if self.initialized:
            logger.warning("QueueManager already initialized")
            return
        for name in self.queue_names:
            self._queues[name] = asyncio.Queue()
            running = asyncio.Event()
            running.set()
            self._running[name] = running
        self.initialized = True
        logger.info(f"Initialized {len(self._queues)} queue(s)")

    def _queue(self, queue_name: str) -> asyncio.Queue:
        if not self.initialized:
            raise RuntimeError("QueueManager not initialized. Call initialize() first.")
        queue = self._queues.get(queue_name)
        if queue is None:
            raise ValueError(f"Queue {queue_name} not found")
        return queue

    async def add_job(
        self,
        queue_name: str,
        job_type: str,
        payload: Dict[str, Any],
        job_id: Optional[str] = None,
        max_attempts: Optional[int] = None,
    ) -> QueueJob:
        """Queue a job and return it."""
        queue = self._queue(queue_name)
        job = QueueJob(
            name=job_type,
            queue_name=queue_name,
            payload=payload,
            max_attempts=max_attempts or self.retry_config.max_retries + 1,
        )
        if job_id:
            job.id = job_id
        self._jobs[job.id] = job
        await queue.put(job)
        logger.debug(f"Added job {job.id} ({job_type}) to queue {queue_name}")
        return job

    def get_job(self, job_id: str) -> Optional[QueueJob]:
        return self._jobs.get(job_id)

    def process(self, queue_name: str, handler: JobHandler, concurrency: int = 1) -> None:
        """Start ``concurrency`` workers feeding jobs from ``queue_name`` to ``handler``."""
        queue = self._queue(queue_name)
        if concurrency <= 0:
            raise ValueError("concurrency must be a positive integer")
        for index in range(concurrency):
            task = asyncio.create_task(
                self._worker(queue_name, queue, handler),
                name=f"{queue_name}-worker-{index}",
            )
            self._workers.append(task)
        logger.info(f"Started {concurrency} worker(s) for queue {queue_name}")

    async def _worker(
        self, queue_name: str, queue: asyncio.Queue, handler: JobHandler
    ) -> None:
        while True:
            job: QueueJob = await queue.get()
            try:
                await self._running[queue_name].wait()
                await self._run(job, handler)
            finally:
                queue.task_done()

    async def _run(self, job: QueueJob, handler: JobHandler) -> None:
        job.state = "active"
        try:
            job.result = await handler(job)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            retry = job.can_retry(e)
            job.attempts_made += 1
            job.failed_reason = str(e)
            if retry:
                delay = self.retry_config.delay_for(job.attempts_made)
                job.state = "delayed"
                logger.warning(
                    f"Job {job.id} failed (attempt {job.attempts_made}/{job.max_attempts}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                self._schedule_retry(job, delay)
            else:
                self._finish(job, "failed")
                logger.error(f"Job {job.id} in queue {job.queue_name} failed: {e}")
            return

        job.attempts_made += 1
        job.failed_reason = None
        self._finish(job, "completed")
        logger.debug(f"Job {job.id} in queue {job.queue_name} completed")

    @staticmethod
    def _finish(job: QueueJob, state: str) -> None:
        # Finished jobs stay for metrics; the payload may hold whole files
        job.state = state
        job.finished_at = dt.now(tz=timezone.utc)
        job.payload = {}

    def _schedule_retry(self, job: QueueJob, delay: float) -> None:
        async def requeue() -> None:
            await asyncio.sleep(delay)
            job.state = "waiting"
            await self._queues[job.queue_name].put(job)

        task = asyncio.create_task(requeue())
        self._delayed.add(task)
        task.add_done_callback(self._delayed.discard)

    async def drain(self, queue_name: Optional[str] = None) -> None:
        """Wait until every queued job, including scheduled retries, has finished.

        Never returns while a queue with pending work is paused.
        """
        names = [queue_name] if queue_name else list(self._queues)
        queues = [self._queue(name) for name in names]
        while True:
            for queue in queues:
                await queue.join()
            if not self._delayed:
                return
            await asyncio.gather(*list(self._delayed), return_exceptions=True)

    def get_queue_metrics(self, queue_name: str) -> QueueMetrics:
        self._queue(queue_name)
        counts = {"waiting": 0, "active": 0, "completed": 0, "failed": 0, "delayed": 0}
        for job in self._jobs.values():
            if job.queue_name == queue_name and job.state in counts:
                counts[job.state] += 1
        return QueueMetrics(
            queue_name=queue_name,
            paused=not self._running[queue_name].is_set(),
            **counts,
        )

    def get_all_queue_metrics(self) -> List[QueueMetrics]:
        return [self.get_queue_metrics(name) for name in self._queues]

    def pause_queue(self, queue_name: str) -> None:
        self._queue(queue_name)
        self._running[queue_name].clear()
        logger.info(f"Paused queue {queue_name}")

    def resume_queue(self, queue_name: str) -> None:
        self._queue(queue_name)
        self._running[queue_name].set()
        logger.info(f"Resumed queue {queue_name}")

    async def close(self) -> None:
        """Cancel workers and pending retries."""
        logger.info("Closing queue manager...")
        tasks = self._workers + list(self._delayed)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers.clear()
        self._delayed.clear()
        self._queues.clear()
        self._running.clear()
        self.initialized = False
        logger.info("Queue manager closed successfully")
