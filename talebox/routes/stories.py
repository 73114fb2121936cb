"""
Story Library Routes

Read-side projections the client polls while a story is being produced,
plus deletion of a whole story.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from talebox.database.audios import AudioService, pick_current_audio
from talebox.database.jobs import JobQueueService
from talebox.database.storage import AudioStorage
from talebox.database.stories import StoryService
from talebox.routes.auth import get_current_user_id
from talebox.routes.story import (
    get_audio_service,
    get_audio_storage,
    get_job_queue,
    get_story_service,
)
from talebox.utils.logging import api_logger as logger

router = APIRouter(prefix="/api/stories", tags=["stories"])


def audio_projection(audio: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not audio:
        return None
    return {
        "audio_url": audio.get("audio_url"),
        "status": audio.get("status"),
        "voice_id": audio.get("voice_id"),
        "generation_error": audio.get("generation_error"),
    }


def job_projection(job: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not job:
        return None
    return {
        "id": job.get("id"),
        "status": job.get("status"),
        "attempts": job.get("attempts"),
        "last_error": job.get("last_error"),
        "updated_at": job.get("updated_at"),
    }


@router.get("")
async def list_stories(
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    stories: StoryService = Depends(get_story_service),
    audios: AudioService = Depends(get_audio_service),
):
    """The caller's stories, newest first, each with its current narration."""
    try:
        rows: List[Dict[str, Any]] = await stories.get_user_stories(user_id, limit=limit)
        current = await audios.get_current_for_stories([row["id"] for row in rows])
    except Exception as e:
        logger.error(f"Failed to load stories: {e}", user_id=user_id)
        raise HTTPException(status_code=500, detail=f"Could not load stories: {e}")

    return {
        "stories": [
            {**row, "audio": audio_projection(current.get(row["id"]))}
            for row in rows
        ]
    }


@router.get("/{story_id}")
async def get_story(
    story_id: str,
    user_id: str = Depends(get_current_user_id),
    stories: StoryService = Depends(get_story_service),
    audios: AudioService = Depends(get_audio_service),
    jobs: JobQueueService = Depends(get_job_queue),
):
    """One story with its current narration and latest job."""
    story = await stories.get_owned(story_id, user_id)
    if not story:
        raise HTTPException(status_code=404, detail="Story not found")

    audio_rows = await audios.list_for_stories([story_id])
    job = await jobs.get_latest_for_story(story_id)

    return {
        "story": {
            **story,
            "audio": audio_projection(pick_current_audio(audio_rows)),
            "job": job_projection(job),
        }
    }


@router.delete("/{story_id}")
async def delete_story(
    story_id: str,
    user_id: str = Depends(get_current_user_id),
    stories: StoryService = Depends(get_story_service),
    audios: AudioService = Depends(get_audio_service),
    jobs: JobQueueService = Depends(get_job_queue),
    storage: AudioStorage = Depends(get_audio_storage),
):
    """Delete a story together with its narrations and jobs."""
    story = await stories.get_owned(story_id, user_id)
    if not story:
        raise HTTPException(status_code=404, detail="Story not found")

    storage.remove(await audios.list_storage_paths(story_id))
    await audios.delete_for_story(story_id)
    await jobs.delete_for_story(story_id)
    await stories.delete(story_id, user_id)

    logger.info("Story deleted", story_id=story_id, user_id=user_id)
    return {"success": True}
