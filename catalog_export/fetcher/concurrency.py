"""Bounded concurrency runner with per-item retries."""

import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

from catalog_export.errors import AggregateBatchError
from catalog_export.fetcher.retry_handler import BackoffPolicy, RetryHandler, fixed_backoff
from catalog_export.models.data_models import BatchJob, JobState


T = TypeVar("T")
R = TypeVar("R")


class BoundedConcurrencyRunner:
    """
    Runs async work over a list of items with a concurrency ceiling.

    Items are split into sequential batches of ``concurrency`` items. All
    workers of a batch run concurrently; a failing worker is retried up to
    ``retries`` times and, once exhausted, is marked failed without stopping
    its batch. A pause of ``batch_pause`` seconds separates batches.

    Results are always returned in input order, whatever order the workers
    complete in.
    """

    def __init__(
        self,
        concurrency: int = 3,
        retries: int = 2,
        retry_delay: float = 1.0,
        batch_pause: float = 0.1,
        backoff: Optional[BackoffPolicy] = None,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger=None
    ):
        if concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got: {concurrency}")
        self.concurrency = concurrency
        self.retries = retries
        self.batch_pause = batch_pause
        self._sleep = sleeper
        self.logger = logger
        self.retry_handler = RetryHandler(
            max_retries=retries,
            backoff=backoff or fixed_backoff(retry_delay),
            sleeper=sleeper,
            logger=logger
        )
        self.batches_dispatched = 0

    async def run(self, items: Sequence[T], worker: Callable[[T], Awaitable[R]]) -> List[R]:
        """
        Process every item and return the results in input order.

        Raises:
            AggregateBatchError: If any item failed after exhausting retries.
                The error lists each failed item and carries partial results.
        """
        jobs = await self.run_jobs(items, worker)

        failures = [(job.item, job.error) for job in jobs if job.state is JobState.FAILED]
        results = [job.result for job in jobs]
        if failures:
            raise AggregateBatchError(failures, results)
        return results

    async def run_jobs(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[R]]
    ) -> List[BatchJob[T]]:
        """Process every item and return its job record, without raising."""
        jobs = [BatchJob(item=item, index=index) for index, item in enumerate(items)]

        for start in range(0, len(jobs), self.concurrency):
            if start > 0 and self.batch_pause > 0:
                await self._sleep(self.batch_pause)

            batch = jobs[start:start + self.concurrency]
            self.batches_dispatched += 1
            batch_start = time.perf_counter()

            await asyncio.gather(*(self._run_job(job, worker) for job in batch))

            if self.logger:
                self.logger.batch_processed(
                    batch=self.batches_dispatched,
                    batch_size=len(batch),
                    failed=sum(1 for job in batch if job.state is JobState.FAILED),
                    elapsed_ms=(time.perf_counter() - batch_start) * 1000
                )

        return jobs

    async def _run_job(self, job: BatchJob[T], worker: Callable[[T], Awaitable[R]]) -> None:
        async def attempt() -> R:
            job.attempts += 1
            return await worker(job.item)

        try:
            job.result = await self.retry_handler.execute(attempt)
            job.state = JobState.SUCCEEDED
        except Exception as e:
            job.error = e
            job.state = JobState.FAILED
