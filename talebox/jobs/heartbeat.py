"""
Heartbeat for a claimed job.

While a job is being processed its ``updated_at`` is refreshed periodically
so other workers do not treat it as stale. The ticker lives exactly as long
as the ``async with`` block around the processing pass.
"""

import asyncio
from typing import Optional

from talebox.database.jobs import JobQueueService
from talebox.utils.logging import job_logger as logger


class JobHeartbeat:
    """
    Usage:
        async with JobHeartbeat(jobs, job_id, interval):
            ... long running work ...
    """

    def __init__(self, jobs: JobQueueService, job_id: str, interval_seconds: float = 30.0):
        self.jobs = jobs
        self.job_id = job_id
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.jobs.heartbeat(self.job_id)
            except Exception as e:
                logger.warning(f"Heartbeat failed: {e}", job_id=self.job_id)

    async def __aenter__(self) -> "JobHeartbeat":
        self._task = asyncio.create_task(self._run())
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        return False
