"""
Story job processor.

Advances one story through the pipeline per claimed job:

    pending -> generating_story -> generated -> generating_audio -> ready

with ``error`` reachable from any state. Each pass is short; a job waiting
on the speech provider is put back to pending and picked up again by the
next trigger (worker endpoint, progress poll or the post-intake hook).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from talebox.audio.generation import AudioGenerationError, AudioGenerationService
from talebox.config import JobSettings, config
from talebox.database.audios import AudioService
from talebox.database.jobs import JobQueueService
from talebox.database.stories import ACTIVE_STORY_STATUSES, StoryService, StoryStatus
from talebox.storyteller.generation import StoryGenerator
from talebox.utils.logging import job_logger as logger

from .heartbeat import JobHeartbeat


ERROR_MESSAGE_LIMIT = 1000


class ProcessOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class JobBatchResult(BaseModel):
    processed: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)

    def record(self, outcome: ProcessOutcome):
        if outcome == ProcessOutcome.COMPLETED:
            self.completed += 1
        elif outcome == ProcessOutcome.FAILED:
            self.failed += 1
        else:
            self.skipped += 1


def narrator_voice(inputs: Dict[str, Any]) -> Optional[str]:
    narrator = inputs.get("narrator")
    if not isinstance(narrator, dict):
        return None
    option_id = narrator.get("optionId")
    if not isinstance(option_id, str):
        return None
    return option_id.strip() or None


class StoryJobProcessor:
    """Claims story jobs and runs them through text and audio generation."""

    def __init__(
        self,
        jobs: Optional[JobQueueService] = None,
        stories: Optional[StoryService] = None,
        audios: Optional[AudioService] = None,
        audio_generation: Optional[AudioGenerationService] = None,
        story_generator: Optional[StoryGenerator] = None,
        settings: Optional[JobSettings] = None,
    ):
        self.settings = settings or config.job_settings()
        self.jobs = jobs or JobQueueService(settings=self.settings)
        self.stories = stories or StoryService()
        self.audios = audios or AudioService()
        self.audio_generation = audio_generation or AudioGenerationService(
            stories=self.stories,
            audios=self.audios,
        )
        self.story_generator = story_generator or StoryGenerator()

    def clamp_batch_size(self, max_jobs: Optional[int]) -> int:
        if not max_jobs:
            return self.settings.default_batch_size
        return max(1, min(self.settings.max_batch_size, int(max_jobs)))

    # =========================================================================
    # Single job
    # =========================================================================

    async def process_one(self, job: Dict[str, Any]) -> ProcessOutcome:
        """
        Run one claimed job.

        Never raises: unexpected failures mark the story and job as error and
        are reported as FAILED.
        """
        async with JobHeartbeat(self.jobs, job["id"], self.settings.heartbeat_interval_seconds):
            try:
                return await self._run(job)
            except Exception as e:
                message = (str(e) or e.__class__.__name__)[:ERROR_MESSAGE_LIMIT]
                logger.error(f"Job failed: {message}", job_id=job["id"], story_id=job["story_id"])
                await self._fail_story_and_job(job, message)
                return ProcessOutcome.FAILED

    async def _fail_story_and_job(self, job: Dict[str, Any], message: str):
        try:
            await self.stories.update_status(
                job["story_id"],
                StoryStatus.ERROR,
                generation_error=message,
            )
        except Exception as e:
            logger.error(f"Could not mark story as error: {e}", story_id=job["story_id"])

        try:
            await self.jobs.mark_failed(job["id"], message)
        except Exception as e:
            logger.error(f"Could not mark job as error: {e}", job_id=job["id"])

    async def _run(self, job: Dict[str, Any]) -> ProcessOutcome:
        job_id = job["id"]
        story = await self.stories.get_by_id(job["story_id"])

        if not story:
            await self.jobs.mark_failed(job_id, f"Story {job['story_id']} not found")
            return ProcessOutcome.FAILED

        story_id = story["id"]
        inputs = story.get("inputs")
        if inputs is None or not isinstance(inputs, dict):
            message = "Story inputs are missing or invalid"
            await self.stories.update_status(story_id, StoryStatus.ERROR, generation_error=message)
            await self.jobs.mark_failed(job_id, message)
            return ProcessOutcome.FAILED

        status = story.get("status")
        if status and status not in ACTIVE_STORY_STATUSES:
            logger.info("Story already finished, skipping job", job_id=job_id, story_id=story_id, status=status)
            await self.jobs.mark_completed(job_id)
            return ProcessOutcome.SKIPPED

        if not (story.get("story_text") or "").strip():
            await self.stories.update_status(story_id, StoryStatus.GENERATING_STORY, generation_error=None)

            generated = await self.story_generator.generate(inputs)

            await self.stories.update_status(
                story_id,
                StoryStatus.GENERATED,
                title=generated.title,
                story_text=generated.story_text,
                generated_at=datetime.now(timezone.utc).isoformat(),
                generation_error=None,
            )
            logger.info("Story text saved", job_id=job_id, story_id=story_id)
        elif status in (StoryStatus.PENDING.value, StoryStatus.GENERATING_STORY.value):
            await self.stories.update_status(story_id, StoryStatus.GENERATED, generation_error=None)

        voice_id = narrator_voice(inputs)
        if voice_id:
            outcome = await self._narrate(job_id, story_id, story["user_id"], voice_id)
            if outcome is not None:
                return outcome

        await self.jobs.mark_completed(job_id)
        logger.info("Job completed", job_id=job_id, story_id=story_id)
        return ProcessOutcome.COMPLETED

    async def _narrate(
        self,
        job_id: str,
        story_id: str,
        owner_id: str,
        voice_id: str
    ) -> Optional[ProcessOutcome]:
        """Audio step; returns SKIPPED when the job was requeued, otherwise None."""
        if await self.audios.has_ready_audio(story_id):
            await self.stories.update_status(story_id, StoryStatus.READY, generation_error=None)
            return None

        await self.stories.update_status(story_id, StoryStatus.GENERATING_AUDIO, generation_error=None)

        try:
            result = await self.audio_generation.generate_audio_for_story(story_id, owner_id, voice_id)
        except AudioGenerationError as e:
            # Narration is best-effort; the story text stays available.
            logger.warning(
                f"Audio failed, keeping story text: {e.message}",
                job_id=job_id,
                story_id=story_id,
                code=e.code,
            )
            await self.stories.update_status(story_id, StoryStatus.GENERATED)
            return None

        if result.status == "ready":
            await self.stories.update_status(story_id, StoryStatus.READY, generation_error=None)
            return None

        await self.jobs.mark_pending(job_id, "Waiting for speech provider")
        logger.info("Audio pending, job requeued", job_id=job_id, story_id=story_id, task_id=result.task_id)
        return ProcessOutcome.SKIPPED

    # =========================================================================
    # Batch
    # =========================================================================

    async def process_batch(
        self,
        max_jobs: Optional[int] = None,
        only_story_id: Optional[str] = None
    ) -> JobBatchResult:
        """
        Claim and process up to max_jobs jobs.

        In single-story mode at most one job is processed; callers re-invoke
        to keep the story moving.
        """
        limit = self.clamp_batch_size(max_jobs)
        only_story_id = (only_story_id or "").strip() or None
        result = JobBatchResult()
        handled: List[str] = []

        for _ in range(limit):
            try:
                job = await self.jobs.claim_next(only_story_id, exclude_ids=handled)
            except Exception as e:
                logger.error(f"Failed to claim job: {e}")
                result.errors.append(str(e) or "Failed to claim job")
                break

            if job is None:
                break

            result.processed += 1
            handled.append(job["id"])
            try:
                outcome = await self.process_one(job)
                result.record(outcome)
            except Exception as e:
                message = str(e) or "Failed to process job"
                result.failed += 1
                result.errors.append(f"job {job['id']}: {message}")
                try:
                    await self.jobs.mark_failed(job["id"], message[:ERROR_MESSAGE_LIMIT])
                except Exception as mark_error:
                    result.errors.append(f"job {job['id']}: {mark_error}")

            if only_story_id:
                break

        if result.processed:
            logger.info(
                "Batch finished",
                processed=result.processed,
                completed=result.completed,
                failed=result.failed,
                skipped=result.skipped,
            )
        return result


_processor: Optional[StoryJobProcessor] = None


def get_job_processor() -> StoryJobProcessor:
    """Get or create the shared processor (used by routes and the CLI)."""
    global _processor
    if _processor is None:
        _processor = StoryJobProcessor()
    return _processor
