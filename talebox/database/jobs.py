"""
Job Queue Service

Durable story job queue on the ``story_jobs`` table.

Claiming is a compare-and-swap update: the row only moves to ``processing``
if its status and attempt counter still match what the claimer just read.
That conditional update is the only serialization point between concurrent
workers, so at most one of them can win a given job.
"""

from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Optional, Dict, Any, Sequence

from supabase import Client

from talebox.config import JobSettings, config
from talebox.utils.logging import job_logger as logger

from .client import get_supabase_admin_client


class JobStatus(str, Enum):
    """Status values for story generation jobs"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


JOB_COLUMNS = "id, story_id, user_id, status, attempts, last_error, created_at, updated_at"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobQueueService:
    """
    Service class for job queue operations.

    Provides:
    - FIFO claiming of pending jobs
    - Reclaiming of processing jobs whose heartbeat went stale (crashed worker)
    - Heartbeat and terminal/requeue transitions for the owning processor
    """

    def __init__(
        self,
        client: Optional[Client] = None,
        settings: Optional[JobSettings] = None
    ):
        self._client = client
        self.settings = settings or config.job_settings()

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    # =========================================================================
    # Job Creation
    # =========================================================================

    async def create_job(self, story_id: str, user_id: str) -> Dict[str, Any]:
        """Create the pending job that accompanies a new story."""
        now = _now_iso()
        job_data = {
            "story_id": str(story_id),
            "user_id": str(user_id),
            "status": JobStatus.PENDING.value,
            "attempts": 0,
            "last_error": None,
            "created_at": now,
            "updated_at": now,
        }

        result = self.client.table("story_jobs").insert(job_data).execute()
        return result.data[0]

    # =========================================================================
    # Job Retrieval
    # =========================================================================

    async def get_job_by_id(self, job_id: str) -> Optional[Dict[str, Any]]:
        result = (
            self.client.table("story_jobs")
            .select(JOB_COLUMNS)
            .eq("id", str(job_id))
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def get_latest_for_story(self, story_id: str) -> Optional[Dict[str, Any]]:
        """Most recently created job for a story (progress projection)."""
        result = (
            self.client.table("story_jobs")
            .select(JOB_COLUMNS)
            .eq("story_id", str(story_id))
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def find_active_job_for_owner(self, user_id: str) -> Optional[Dict[str, Any]]:
        """
        Find the job a user's progress poll should advance.

        Oldest pending job first; otherwise the processing job with the oldest
        heartbeat (the one most likely to need help).
        """
        pending = (
            self.client.table("story_jobs")
            .select(JOB_COLUMNS)
            .eq("user_id", str(user_id))
            .eq("status", JobStatus.PENDING.value)
            .order("created_at")
            .limit(1)
            .execute()
        )
        if pending.data:
            return pending.data[0]

        processing = (
            self.client.table("story_jobs")
            .select(JOB_COLUMNS)
            .eq("user_id", str(user_id))
            .eq("status", JobStatus.PROCESSING.value)
            .order("updated_at")
            .limit(1)
            .execute()
        )
        return processing.data[0] if processing.data else None

    # =========================================================================
    # Claiming
    # =========================================================================

    def stale_cutoff(self, now: Optional[datetime] = None) -> datetime:
        now = now or datetime.now(timezone.utc)
        return now - timedelta(seconds=self.settings.stale_after_seconds)

    async def _find_pending_candidate(
        self,
        story_id: Optional[str],
        exclude_ids: Sequence[str] = ()
    ) -> Optional[Dict[str, Any]]:
        query = (
            self.client.table("story_jobs")
            .select(JOB_COLUMNS)
            .eq("status", JobStatus.PENDING.value)
        )
        if story_id:
            query = query.eq("story_id", str(story_id))
        if exclude_ids:
            query = query.not_.in_("id", list(exclude_ids))

        result = query.order("created_at").limit(1).execute()
        return result.data[0] if result.data else None

    async def _find_stale_candidate(self, story_id: Optional[str]) -> Optional[Dict[str, Any]]:
        query = (
            self.client.table("story_jobs")
            .select(JOB_COLUMNS)
            .eq("status", JobStatus.PROCESSING.value)
            .lt("updated_at", self.stale_cutoff().isoformat())
        )
        if story_id:
            query = query.eq("story_id", str(story_id))

        result = query.order("updated_at").limit(1).execute()
        return result.data[0] if result.data else None

    async def claim_next(
        self,
        story_id: Optional[str] = None,
        exclude_ids: Sequence[str] = ()
    ) -> Optional[Dict[str, Any]]:
        """
        Claim the next job, optionally restricted to one story.

        Pending jobs listed in exclude_ids are passed over, so a batch does
        not pick up a job it has just requeued.

        Returns the claimed job, or None when nothing qualified or another
        worker won the race for the candidate.
        """
        candidate = await self._find_pending_candidate(story_id, exclude_ids)
        if candidate is None:
            candidate = await self._find_stale_candidate(story_id)
        if candidate is None:
            return None

        claimed_at = _now_iso()
        observed_status = candidate["status"]
        observed_attempts = candidate.get("attempts") or 0
        is_reclaim = observed_status == JobStatus.PROCESSING.value

        update_data = {
            "status": JobStatus.PROCESSING.value,
            "attempts": observed_attempts + 1,
            "updated_at": claimed_at,
            "last_error": f"Retrying stale job ({claimed_at})" if is_reclaim else None,
        }

        result = (
            self.client.table("story_jobs")
            .update(update_data)
            .eq("id", candidate["id"])
            .eq("status", observed_status)
            .eq("attempts", observed_attempts)
            .execute()
        )

        if not result.data:
            logger.info("Job claimed by another worker", job_id=candidate["id"])
            return None

        claimed = result.data[0]
        if is_reclaim:
            logger.warning(
                "Reclaimed stale processing job",
                job_id=claimed["id"],
                story_id=claimed["story_id"],
                attempts=claimed["attempts"],
            )
        else:
            logger.info(
                "Job claimed",
                job_id=claimed["id"],
                story_id=claimed["story_id"],
                attempts=claimed["attempts"],
            )
        return claimed

    # =========================================================================
    # Job Status Updates
    # =========================================================================

    async def heartbeat(self, job_id: str) -> bool:
        """
        Refresh the claim timestamp of a job that is still processing.

        Returns False (not an error) when the job already left processing.
        """
        result = (
            self.client.table("story_jobs")
            .update({"updated_at": _now_iso()})
            .eq("id", str(job_id))
            .eq("status", JobStatus.PROCESSING.value)
            .execute()
        )
        return bool(result.data)

    async def _set_status(
        self,
        job_id: str,
        status: JobStatus,
        last_error: Optional[str]
    ) -> Optional[Dict[str, Any]]:
        result = (
            self.client.table("story_jobs")
            .update({
                "status": status.value,
                "updated_at": _now_iso(),
                "last_error": last_error,
            })
            .eq("id", str(job_id))
            .execute()
        )
        return result.data[0] if result.data else None

    async def mark_completed(self, job_id: str) -> Optional[Dict[str, Any]]:
        return await self._set_status(job_id, JobStatus.COMPLETED, None)

    async def mark_failed(self, job_id: str, error_message: str) -> Optional[Dict[str, Any]]:
        return await self._set_status(job_id, JobStatus.ERROR, error_message)

    async def mark_pending(
        self,
        job_id: str,
        reason: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Requeue a job whose work is incomplete but not failed."""
        return await self._set_status(job_id, JobStatus.PENDING, reason)

    async def delete_for_story(self, story_id: str) -> int:
        result = self.client.table("story_jobs").delete().eq("story_id", str(story_id)).execute()
        return len(result.data or [])

    # =========================================================================
    # Admin/Dashboard Queries
    # =========================================================================

    async def get_queue_stats(self) -> Dict[str, Any]:
        """Get job queue statistics for the admin dashboard."""
        all_jobs = (
            self.client.table("story_jobs")
            .select("status, attempts")
            .execute()
        )

        status_counts = {status.value: 0 for status in JobStatus}
        retried = 0
        for job in all_jobs.data:
            status = job.get("status")
            if status in status_counts:
                status_counts[status] += 1
            if (job.get("attempts") or 0) > 1:
                retried += 1

        return {
            "total": len(all_jobs.data),
            "retried": retried,
            "stale_after_seconds": self.settings.stale_after_seconds,
            **status_counts,
        }
