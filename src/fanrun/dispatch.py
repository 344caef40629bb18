"""Fan jobs out across a fixed pool of worker threads.

All jobs go into one FIFO queue up front. Each of the ``parallel`` workers
pops jobs until the queue is empty and then exits; nothing is added once
dispatch starts, so an empty queue means the work is done.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Iterable

from fanrun.config import RunConfig
from fanrun.executor import RemoteExecutor
from fanrun.jobs import Job, JobStatus

logger = logging.getLogger(__name__)


class JobQueue:
    """Thread-safe FIFO of jobs with a non-blocking pop."""

    def __init__(self, jobs: Iterable[Job] = ()):
        self._items: deque[Job] = deque(jobs)
        self._lock = threading.Lock()

    def push(self, job: Job) -> None:
        with self._lock:
            self._items.append(job)

    def try_pop(self) -> Job | None:
        """Return the next job, or None when the queue is empty."""
        with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class Dispatcher:
    """Run every job once across ``config.parallel`` workers."""

    def __init__(self, config: RunConfig, executor: RemoteExecutor):
        if config.parallel < 1:
            raise ValueError("parallel must be at least 1, got %d" % config.parallel)
        self.config = config
        self.executor = executor

    def run(self, jobs: list[Job]) -> list[Job]:
        """Process *jobs* and block until every worker has exited.

        With one worker, jobs run strictly in list order. Completion order
        across hosts is otherwise unspecified.

        Returns:
            The same job list, each with its terminal status recorded.
        """
        queue = JobQueue()
        for job in jobs:
            queue.push(job)

        parallel = self.config.parallel
        logger.debug("Dispatching %d jobs across %d workers", len(jobs), parallel)

        t0 = time.monotonic()
        workers = [
            threading.Thread(target=self._worker, args=(queue,), name="fanrun-worker-%d" % i, daemon=True)
            for i in range(parallel)
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        elapsed = time.monotonic() - t0
        ok = sum(1 for job in jobs if job.status is JobStatus.OK)
        logger.debug("Dispatch done: %d/%d OK (%.1fs total)", ok, len(jobs), elapsed)
        logger.info("-::Done processing all servers")
        return jobs

    def _worker(self, queue: JobQueue) -> None:
        while (job := queue.try_pop()) is not None:
            try:
                outcome = self.executor.run(job)
            except Exception as e:
                logger.error("%s::worker::%s", job.server, e)
                logger.error("%s::worker::%r", job.server, e)
                job.status = JobStatus.ERROR
                continue
            job.status = outcome.status


def report_summary(jobs: list[Job]) -> list[Job]:
    """Warn about every job that did not finish OK, in input order.

    Returns:
        The jobs without a successful result.
    """
    missing = [job for job in jobs if job.status is not JobStatus.OK]
    for job in missing:
        logger.warning("%s::No job result", job.server)
    return missing
