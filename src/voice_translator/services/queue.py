"""Bounded-concurrency job queue with per-attempt timeout, retry/backoff and dead-lettering.

A fixed pool of asyncio worker tasks drains the waiting jobs, so the worker
count is the ceiling on concurrent calls to whatever the queue's task function
talks to. Job state lives only here: callers get a read-only ``JobHandle``.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections import Counter
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

import structlog

from src.voice_translator.errors import JobCancelled, JobDeadLettered, JobTimeout, QueueSaturated
from src.voice_translator.models.queue import TERMINAL_STATES, JobState, QueueStats, RetryPolicy

logger = structlog.get_logger()

P = TypeVar("P")
R = TypeVar("R")


class QueueJob:
    """Internal job record; mutated exclusively by ``JobQueue``."""

    def __init__(self, job_id: str, payload: Any, max_attempts: int, future: asyncio.Future) -> None:
        self.id = job_id
        self.payload = payload
        self.attempts = 0
        self.max_attempts = max_attempts
        self.state = JobState.waiting
        self.enqueued_at = time.time()
        self.last_error: BaseException | None = None
        self.future = future
        self.attempt_task: asyncio.Task | None = None
        self.retry_timer: asyncio.TimerHandle | None = None
        self._started = time.monotonic()
        self._finished: float | None = None


class JobHandle:
    """Read-only view of a job owned by a ``JobQueue``."""

    def __init__(self, job: QueueJob, queue: JobQueue) -> None:
        self._job = job
        self._queue = queue

    def __repr__(self) -> str:
        return f"<JobHandle {self.id} {self.state.value} attempts={self.attempts}>"

    @property
    def id(self) -> str:
        return self._job.id

    @property
    def state(self) -> JobState:
        return self._job.state

    @property
    def attempts(self) -> int:
        return self._job.attempts

    @property
    def max_attempts(self) -> int:
        return self._job.max_attempts

    @property
    def last_error(self) -> BaseException | None:
        return self._job.last_error

    @property
    def enqueued_at(self) -> float:
        return self._job.enqueued_at

    @property
    def done(self) -> bool:
        return self._job.state in TERMINAL_STATES

    @property
    def duration_ms(self) -> float:
        end = self._job._finished if self._job._finished is not None else time.monotonic()
        return round((end - self._job._started) * 1000, 2)

    async def result(self) -> Any:
        return await self._queue.wait(self)

    def cancel(self) -> bool:
        return self._queue.cancel(self)


class JobQueue(Generic[P, R]):
    """Runs ``task(payload)`` for every enqueued payload on a bounded worker pool."""

    def __init__(
        self,
        name: str,
        task: Callable[[P], Awaitable[R]],
        *,
        concurrency: int = 1,
        max_backlog: int = 100,
        policy: RetryPolicy | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if max_backlog < 1:
            raise ValueError("max_backlog must be at least 1")
        self.name = name
        self.concurrency = concurrency
        self.max_backlog = max_backlog
        self.policy = policy or RetryPolicy()
        self._task = task
        self._pending: asyncio.Queue[QueueJob] | None = None
        self._workers: list[asyncio.Task] = []
        self._live: dict[str, QueueJob] = {}
        self._counts: Counter[JobState] = Counter()
        self._ids = itertools.count(1)

    # ---- Lifecycle ----

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        """Spawn the worker pool. Must be called from inside a running event loop."""
        if self._workers:
            return
        self._pending = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker(), name=f"{self.name}-worker-{i}")
            for i in range(self.concurrency)
        ]
        logger.info(
            "Job queue started",
            queue=self.name,
            concurrency=self.concurrency,
            max_backlog=self.max_backlog,
            max_attempts=self.policy.max_attempts,
        )

    async def stop(self) -> None:
        """Cancel every unfinished job and shut the workers down."""
        for job in list(self._live.values()):
            self._cancel_job(job)
        workers, self._workers = self._workers, []
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        self._pending = None
        if workers:
            logger.info("Job queue stopped", queue=self.name)

    # ---- Public API ----

    def enqueue(self, payload: P) -> JobHandle:
        """Admit a job without waiting for it; raises QueueSaturated when the backlog is full."""
        if self._counts[JobState.waiting] >= self.max_backlog:
            logger.warning("Queue saturated", queue=self.name, backlog=self.max_backlog)
            raise QueueSaturated(self.name, self.max_backlog)
        self.start()

        loop = asyncio.get_running_loop()
        job = QueueJob(
            f"{self.name}-{next(self._ids)}", payload, self.policy.max_attempts, loop.create_future()
        )
        self._live[job.id] = job
        self._counts[JobState.waiting] += 1
        self._pending.put_nowait(job)
        logger.debug("Job enqueued", queue=self.name, job_id=job.id)
        return JobHandle(job, self)

    async def wait(self, handle: JobHandle) -> R:
        """Wait for a terminal state: return the result, or raise JobDeadLettered / JobCancelled."""
        job = handle._job
        try:
            # shield: a caller giving up must not cancel the job for other waiters
            return await asyncio.shield(job.future)
        except asyncio.CancelledError:
            if job.future.cancelled():
                raise JobCancelled(job.id) from None
            raise

    def cancel(self, handle: JobHandle) -> bool:
        """Cancel a job that has not finished yet. Returns False if it already had."""
        return self._cancel_job(handle._job)

    def stats(self) -> QueueStats:
        return QueueStats(**{state.value: self._counts[state] for state in JobState})

    # ---- Internals ----

    def _transition(self, job: QueueJob, state: JobState) -> bool:
        # live states are current counts, terminal states are running totals
        if job.state in TERMINAL_STATES:
            logger.debug(
                "Ignoring transition out of terminal state",
                queue=self.name,
                job_id=job.id,
                state=job.state.value,
                target=state.value,
            )
            return False
        self._counts[job.state] -= 1
        job.state = state
        self._counts[state] += 1
        if state in TERMINAL_STATES:
            job._finished = time.monotonic()
            self._live.pop(job.id, None)
        return True

    def _cancel_job(self, job: QueueJob) -> bool:
        if job.state in TERMINAL_STATES:
            return False
        if job.retry_timer is not None:
            job.retry_timer.cancel()
            job.retry_timer = None
        attempt = job.attempt_task
        self._transition(job, JobState.cancelled)
        job.future.cancel()
        if attempt is not None and not attempt.done():
            attempt.cancel()
        logger.info("Job cancelled", queue=self.name, job_id=job.id, attempts=job.attempts)
        return True

    async def _worker(self) -> None:
        while True:
            job = await self._pending.get()
            try:
                # cancelled while waiting in line
                if job.state is JobState.waiting:
                    await self._run_attempt(job)
            except Exception as e:
                logger.error("Worker failed on job", queue=self.name, job_id=job.id, error=str(e))
            finally:
                self._pending.task_done()

    async def _run_attempt(self, job: QueueJob) -> None:
        self._transition(job, JobState.active)
        job.attempts += 1
        job.attempt_task = asyncio.ensure_future(self._call(job))
        try:
            result = await job.attempt_task
        except asyncio.CancelledError:
            if job.state is JobState.cancelled:
                return
            raise
        except Exception as exc:
            # cancelled after the attempt finished but before this resumed
            if job.state is JobState.cancelled:
                return
            self._handle_failure(job, exc)
            return
        finally:
            job.attempt_task = None

        if job.state is JobState.cancelled:
            return
        self._transition(job, JobState.completed)
        job.future.set_result(result)
        logger.debug("Job completed", queue=self.name, job_id=job.id, attempts=job.attempts)

    async def _call(self, job: QueueJob) -> R:
        timeout = self.policy.attempt_timeout
        if timeout is None:
            return await self._task(job.payload)
        try:
            return await asyncio.wait_for(self._task(job.payload), timeout)
        except asyncio.TimeoutError as exc:
            raise JobTimeout(job.id, timeout) from exc

    def _handle_failure(self, job: QueueJob, exc: Exception) -> None:
        job.last_error = exc
        if self.policy.should_retry(job.attempts, exc):
            delay = self.policy.delay_for(job.attempts)
            self._transition(job, JobState.failed)
            logger.warning(
                "Job attempt failed, retrying",
                queue=self.name,
                job_id=job.id,
                attempt=job.attempts,
                max_attempts=job.max_attempts,
                delay=delay,
                error=str(exc),
            )
            job.retry_timer = asyncio.get_running_loop().call_later(delay, self._readmit, job)
            return

        self._transition(job, JobState.dead_lettered)
        logger.error(
            "Job dead-lettered",
            queue=self.name,
            job_id=job.id,
            attempts=job.attempts,
            retryable=getattr(exc, "retryable", True),
            error=str(exc),
        )
        job.future.set_exception(JobDeadLettered(job.id, job.attempts, exc))

    def _readmit(self, job: QueueJob) -> None:
        job.retry_timer = None
        if job.state is not JobState.failed or self._pending is None:
            return
        self._transition(job, JobState.waiting)
        self._pending.put_nowait(job)
