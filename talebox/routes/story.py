"""
Story Pipeline Routes

Endpoints that create story requests and drive the job pipeline:
- POST /api/story/start        create a story + job, kick off processing
- GET|POST /api/story/worker   scheduler-triggered batch (shared secret)
- POST /api/story/progress     owner-triggered single step
- POST /api/story/audio        owner-triggered narration
- DELETE /api/story/audio/{id} remove a story's narrations
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from talebox.audio.generation import AudioGenerationError, AudioGenerationService
from talebox.config import config
from talebox.database.audios import AudioService
from talebox.database.jobs import JobQueueService
from talebox.database.storage import AudioStorage
from talebox.database.stories import StoryService, StoryStatus
from talebox.jobs.processor import StoryJobProcessor, get_job_processor
from talebox.routes.auth import get_current_user_id
from talebox.security import verify_worker_secret
from talebox.storyteller.generation import get_story_title
from talebox.utils.logging import api_logger as logger

router = APIRouter(prefix="/api/story", tags=["story"])

DAILY_LIMIT_MESSAGE = "Today's story magic has been used up. Come back tomorrow for a new story."


# =============================================================================
# Request/Response Models
# =============================================================================

class StartStoryRequest(BaseModel):
    storyState: Dict[str, Any]


class StartStoryResponse(BaseModel):
    success: bool = True
    story_id: str
    status: str
    story: Dict[str, Any]


class WorkerRequest(BaseModel):
    max_jobs: Optional[int] = None
    story_id: Optional[str] = None


class AudioRequest(BaseModel):
    story_id: str = Field(..., min_length=1)
    voice_id: Optional[str] = None
    wait: bool = False


# =============================================================================
# Dependencies
# =============================================================================

def get_story_service() -> StoryService:
    return StoryService()


def get_job_queue() -> JobQueueService:
    return JobQueueService()


def get_audio_service() -> AudioService:
    return AudioService()


def get_audio_storage() -> AudioStorage:
    return AudioStorage()


def get_audio_generation_service() -> AudioGenerationService:
    return AudioGenerationService()


def get_processor() -> StoryJobProcessor:
    return get_job_processor()


def utc_day_start(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


async def run_story_job(processor: StoryJobProcessor, story_id: str):
    """Post-response hook: advance the new story by one job; never raises."""
    try:
        result = await processor.process_batch(max_jobs=1, only_story_id=story_id)
        if result.errors:
            logger.error("Auto-triggered job finished with errors", story_id=story_id, errors=result.errors)
    except Exception as e:
        logger.error(f"Auto-triggered job failed: {e}", story_id=story_id)


# =============================================================================
# Intake
# =============================================================================

@router.post("/start", response_model=StartStoryResponse)
async def start_story(
    request: StartStoryRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    stories: StoryService = Depends(get_story_service),
    jobs: JobQueueService = Depends(get_job_queue),
    processor: StoryJobProcessor = Depends(get_processor),
):
    """
    Create a pending story and its job, then process it after responding.

    Enforces DAILY_STORY_LIMIT stories per user per UTC day.
    """
    limit = config.DAILY_STORY_LIMIT
    if limit > 0:
        try:
            created_today = await stories.count_created_since(user_id, utc_day_start(), limit=limit)
        except Exception as e:
            logger.error(f"Daily limit check failed: {e}", user_id=user_id)
            raise HTTPException(status_code=500, detail=f"Could not check the daily limit: {e}")

        if created_today >= limit:
            raise HTTPException(
                status_code=429,
                detail={"error": DAILY_LIMIT_MESSAGE, "code": "daily_story_limit_reached"}
            )

    try:
        story = await stories.create(user_id, get_story_title(request.storyState), request.storyState)
    except Exception as e:
        logger.error(f"Could not create story: {e}", user_id=user_id)
        raise HTTPException(status_code=500, detail=f"Could not create the pending story: {e}")

    try:
        await jobs.create_job(story["id"], user_id)
    except Exception as e:
        logger.error(f"Could not enqueue job: {e}", story_id=story["id"])
        try:
            await stories.update_status(
                story["id"],
                StoryStatus.ERROR,
                generation_error=f"Could not enqueue job: {e}",
            )
        except Exception as update_error:
            logger.error(f"Could not mark story as error: {update_error}", story_id=story["id"])
        raise HTTPException(status_code=500, detail=f"Could not enqueue the job: {e}")

    background_tasks.add_task(run_story_job, processor, story["id"])
    logger.info("Story started", story_id=story["id"], user_id=user_id)

    return StartStoryResponse(
        story_id=story["id"],
        status=story["status"],
        story={
            "id": story["id"],
            "title": story["title"],
            "created_at": story.get("created_at"),
            "status": story["status"],
        },
    )


# =============================================================================
# Job Triggers
# =============================================================================

async def _run_worker(processor: StoryJobProcessor, max_jobs: Optional[int], story_id: Optional[str]):
    result = await processor.process_batch(max_jobs=max_jobs, only_story_id=story_id)
    return {"success": True, **result.model_dump()}


@router.get("/worker", dependencies=[Depends(verify_worker_secret)])
async def run_worker_get(
    max_jobs: Optional[int] = Query(None),
    story_id: Optional[str] = Query(None),
    processor: StoryJobProcessor = Depends(get_processor),
):
    """Process a batch of jobs (for cron-style schedulers)."""
    return await _run_worker(processor, max_jobs, story_id)


@router.post("/worker", dependencies=[Depends(verify_worker_secret)])
async def run_worker_post(
    payload: Optional[WorkerRequest] = Body(None),
    processor: StoryJobProcessor = Depends(get_processor),
):
    """Process a batch of jobs; the JSON body is optional."""
    payload = payload or WorkerRequest()
    return await _run_worker(processor, payload.max_jobs, payload.story_id)


@router.post("/progress")
async def advance_progress(
    user_id: str = Depends(get_current_user_id),
    jobs: JobQueueService = Depends(get_job_queue),
    processor: StoryJobProcessor = Depends(get_processor),
):
    """Advance the caller's oldest unfinished story by one step."""
    try:
        job = await jobs.find_active_job_for_owner(user_id)
    except Exception as e:
        logger.error(f"Could not look up active job: {e}", user_id=user_id)
        raise HTTPException(status_code=500, detail=f"Could not look up jobs: {e}")

    if not job:
        return {
            "success": True,
            "processed": 0,
            "completed": 0,
            "failed": 0,
            "skipped": 0,
            "errors": [],
            "reason": "no_pending_jobs_for_user",
        }

    result = await processor.process_batch(max_jobs=1, only_story_id=job["story_id"])
    return {
        "success": True,
        "candidate_story_id": job["story_id"],
        **result.model_dump(),
    }


# =============================================================================
# Audio
# =============================================================================

@router.post("/audio")
async def generate_audio(
    request: AudioRequest,
    user_id: str = Depends(get_current_user_id),
    audio_generation: AudioGenerationService = Depends(get_audio_generation_service),
):
    """
    Generate (or resume) the narration of one of the caller's stories.

    With wait=true the request polls until the narration is ready or fails.
    """
    story_id = request.story_id.strip()
    try:
        if request.wait:
            result = await audio_generation.wait_for_audio(story_id, user_id, request.voice_id)
        else:
            result = await audio_generation.generate_audio_for_story(story_id, user_id, request.voice_id)
    except AudioGenerationError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_dict())

    return {"success": True, "audio": result.model_dump()}


@router.delete("/audio/{story_id}")
async def delete_audio(
    story_id: str,
    user_id: str = Depends(get_current_user_id),
    stories: StoryService = Depends(get_story_service),
    audios: AudioService = Depends(get_audio_service),
    storage: AudioStorage = Depends(get_audio_storage),
):
    """Delete every narration of one of the caller's stories."""
    story = await stories.get_owned(story_id, user_id)
    if not story:
        raise HTTPException(status_code=404, detail="Story not found")

    paths = await audios.list_storage_paths(story_id)
    files_removed = storage.remove(paths)
    deleted = await audios.delete_for_story(story_id)

    logger.info("Deleted story audio", story_id=story_id, rows=deleted, files=len(paths))
    return {"success": True, "deleted": deleted, "files_removed": files_removed}
