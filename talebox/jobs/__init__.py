"""
Story job pipeline.

Components:
- JobQueueService (talebox.database.jobs): Supabase-backed job rows and claims
- JobHeartbeat: keeps a claimed job fresh while it is processed
- StoryJobProcessor: runs claimed jobs through text and audio generation

Usage:
    from talebox.jobs import get_job_processor
    result = await get_job_processor().process_batch(max_jobs=5)
"""

from talebox.jobs.heartbeat import JobHeartbeat
from talebox.jobs.processor import (
    JobBatchResult,
    ProcessOutcome,
    StoryJobProcessor,
    get_job_processor,
)

__all__ = [
    "JobHeartbeat",
    "JobBatchResult",
    "ProcessOutcome",
    "StoryJobProcessor",
    "get_job_processor",
]
