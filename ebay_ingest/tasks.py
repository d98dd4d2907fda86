"""
Tracked background execution of submitted jobs.
"""
import asyncio
import logging
from typing import Dict, Optional

from .core import Pipeline
from .models import PipelineResult, ScrapeJob

logger = logging.getLogger(__name__)


class BackgroundRunner:
    """
    Runs jobs outside the request that created them.

    Every task is kept until it finishes so failures are logged with their
    job id and shutdown can wait for work in flight.
    """

    def __init__(self, pipeline: Pipeline):
        self.pipeline = pipeline
        self._tasks: Dict[int, asyncio.Task] = {}

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def submit(self, job: ScrapeJob) -> Optional[asyncio.Task]:
        """Schedule a pending job. Returns None if it is already being handled."""
        if job.id in self._tasks:
            return None
        task = asyncio.create_task(self._run(job), name=f"scrape-job-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda t, job_id=job.id: self._finished(job_id, t))
        return task

    async def _run(self, job: ScrapeJob) -> Optional[PipelineResult]:
        claimed = self.pipeline.jobs.claim(job.id)
        if claimed is None:
            logger.info(f"Job {job.id} already picked up by another worker; skipping")
            return None
        return await self.pipeline.execute_claimed(claimed)

    def _finished(self, job_id: int, task: asyncio.Task) -> None:
        self._tasks.pop(job_id, None)
        if task.cancelled():
            logger.warning(f"Background job {job_id} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background job {job_id} crashed: {error!r}")
            self.pipeline.jobs.fail(job_id, str(error) or type(error).__name__)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Wait for in-flight jobs; cancel whatever is still running after `timeout`."""
        if not self._tasks:
            return
        logger.info(f"Waiting for {len(self._tasks)} background jobs...")
        try:
            await asyncio.wait_for(self.wait_idle(), timeout=timeout)
        except asyncio.TimeoutError:
            for task in list(self._tasks.values()):
                task.cancel()
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
