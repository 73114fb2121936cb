"""
Audio Generation Service

Drives one story's narration through the speech task provider. Each call
advances the story's pending audio row by at most one step (create the task,
or check it once and finish it), so repeated calls resume instead of starting
over.
"""

import asyncio
from datetime import datetime, timezone
from typing import Literal, Optional, Dict, Any

from pydantic import BaseModel
from supabase import Client

from talebox.config import AudioSettings, config
from talebox.database.audios import AudioService, AudioStatus
from talebox.database.storage import AudioStorage, AudioStorageError, build_audio_path
from talebox.database.stories import StoryService
from talebox.tts.client import SpeechTaskClient, TaskState
from talebox.tts.errors import (
    DETAIL_LIMIT,
    ProviderBadResponse,
    ProviderError,
    ProviderTaskError,
    ProviderTimeoutError,
)
from talebox.utils.logging import audio_logger as logger


class AudioGenerationError(Exception):
    """Audio failure with an HTTP status hint and a machine-readable code."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        detail: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.detail = detail

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, "detail": self.detail}


class AudioGenerationResult(BaseModel):
    status: Literal["pending", "ready"]
    audio_id: str
    story_id: str
    voice_id: Optional[str] = None
    task_id: Optional[str] = None
    storage_path: Optional[str] = None
    audio_url: Optional[str] = None
    generated_at: Optional[str] = None


def _row_age_seconds(audio: Dict[str, Any]) -> float:
    created_at = audio.get("created_at")
    if not created_at:
        return 0.0
    try:
        created = datetime.fromisoformat(created_at)
    except ValueError:
        return 0.0
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return (datetime.now(timezone.utc) - created).total_seconds()


class AudioGenerationService:
    """
    Orchestrates narration for a single story.

    Collaborators are injectable; by default they share the admin Supabase
    client and the global audio settings.
    """

    def __init__(
        self,
        client: Optional[Client] = None,
        settings: Optional[AudioSettings] = None,
        task_client: Optional[SpeechTaskClient] = None,
        stories: Optional[StoryService] = None,
        audios: Optional[AudioService] = None,
        storage: Optional[AudioStorage] = None,
    ):
        self.settings = settings or config.audio_settings()
        self.stories = stories or StoryService(client)
        self.audios = audios or AudioService(client)
        self.storage = storage or AudioStorage(client, self.settings)
        self._task_client = task_client

    def _get_task_client(self) -> Optional[SpeechTaskClient]:
        if self._task_client is None and self.settings.api_key:
            self._task_client = SpeechTaskClient.from_settings(self.settings)
        return self._task_client

    async def _mark_error(self, audio_id: str, message: str):
        """Record the failure on the row; a failed write must not hide the original error."""
        try:
            await self.audios.update(
                audio_id,
                status=AudioStatus.ERROR.value,
                generation_error=message[:DETAIL_LIMIT],
            )
        except Exception as e:
            logger.error(f"Failed to mark audio as error: {e}", audio_id=audio_id)

    async def _fail(
        self,
        audio_id: str,
        message: str,
        status_code: int,
        code: str,
        detail: Optional[str] = None,
        recorded: Optional[str] = None
    ) -> AudioGenerationError:
        await self._mark_error(audio_id, recorded or detail or message)
        logger.error(message, audio_id=audio_id, code=code, detail=detail)
        return AudioGenerationError(message, status_code, code, detail)

    # =========================================================================
    # Generation
    # =========================================================================

    async def generate_audio_for_story(
        self,
        story_id: str,
        owner_id: str,
        voice_id: Optional[str] = None
    ) -> AudioGenerationResult:
        """
        Advance the story's narration by one step.

        Returns a pending result while the provider task is running and a
        ready result once the narration is stored. Raises
        AudioGenerationError otherwise, after marking the audio row error.
        """
        try:
            story = await self.stories.get_owned(story_id, owner_id)
        except Exception as e:
            logger.error(f"Story lookup failed: {e}", story_id=story_id)
            raise AudioGenerationError(
                "Story not found", 404, "story_not_found", detail=str(e)[:DETAIL_LIMIT]
            )
        if not story or not (story.get("story_text") or "").strip():
            raise AudioGenerationError("Story not found", 404, "story_not_found")

        title = story.get("title")
        text = f"Title: {title}\n\n{story['story_text']}" if title else story["story_text"]

        effective_voice = (voice_id or "").strip() or self.settings.default_voice_id
        if not effective_voice:
            raise AudioGenerationError("voice_id is required", 400, "voice_required")

        try:
            audio = await self.audios.find_pending(story_id, owner_id)
            if audio is None:
                audio = await self.audios.create_pending(story_id, owner_id, effective_voice)
                logger.info("Created pending audio", story_id=story_id, audio_id=audio["id"])
            elif not audio.get("voice_id"):
                await self.audios.update(audio["id"], voice_id=effective_voice)
                audio["voice_id"] = effective_voice
        except Exception as e:
            logger.error(f"Failed to prepare audio row: {e}", story_id=story_id)
            raise AudioGenerationError(
                "Failed to create audio record", 500, "audio_insert_failed", detail=str(e)[:DETAIL_LIMIT]
            )

        audio_id = audio["id"]

        if len(text) > self.settings.max_chars:
            message = "Story exceeds the character limit for audio"
            detail = f"Length: {len(text)}. Maximum: {self.settings.max_chars}."
            raise await self._fail(
                audio_id, message, 400, "max_chars",
                detail=detail, recorded=f"{message}. {detail}",
            )

        task_client = self._get_task_client()
        if task_client is None:
            raise await self._fail(audio_id, "TTS_API_KEY not configured", 500, "config_missing")

        try:
            return await self._advance(task_client, audio, text, story_id, owner_id)
        except AudioGenerationError:
            raise
        except ProviderError as e:
            raise await self._fail(audio_id, e.message, e.status_code, e.code, detail=e.detail)
        except Exception as e:
            raise await self._fail(
                audio_id, "Audio generation failed", 500, "internal_error", detail=str(e)[:DETAIL_LIMIT]
            )

    async def _advance(
        self,
        task_client: SpeechTaskClient,
        audio: Dict[str, Any],
        text: str,
        story_id: str,
        owner_id: str
    ) -> AudioGenerationResult:
        audio_id = audio["id"]
        task_id = audio.get("external_task_id")

        if not task_id:
            task_id = await task_client.create_task(
                text,
                audio["voice_id"],
                self.settings.model_params(),
            )
            await self.audios.update(audio_id, external_task_id=task_id)

        status = await task_client.get_task_status(task_id)

        if status.status == TaskState.COMPLETED:
            if not status.result_url:
                raise ProviderBadResponse("Speech task completed without a result")
            return await self._finish(task_client, audio, task_id, status.result_url, story_id, owner_id)

        if status.status == TaskState.ERROR:
            detail = status.error_detail or "Speech task failed"
            raise ProviderTaskError(detail, detail=detail)

        if _row_age_seconds(audio) > self.settings.timeout_seconds:
            raise ProviderTimeoutError(
                "Timed out waiting for the speech provider",
                detail=f"task {task_id} pending for over {self.settings.timeout_seconds:.0f}s",
            )

        logger.debug("Speech task still pending", audio_id=audio_id, task_id=task_id)
        return AudioGenerationResult(
            status="pending",
            audio_id=audio_id,
            story_id=str(story_id),
            voice_id=audio.get("voice_id"),
            task_id=task_id,
        )

    async def _finish(
        self,
        task_client: SpeechTaskClient,
        audio: Dict[str, Any],
        task_id: str,
        result_url: str,
        story_id: str,
        owner_id: str
    ) -> AudioGenerationResult:
        audio_id = audio["id"]
        data = await task_client.download_result(result_url)

        storage_path = build_audio_path(owner_id, story_id, audio_id)
        try:
            self.storage.upload(storage_path, data)
        except AudioStorageError as e:
            raise await self._fail(audio_id, "Audio upload failed", 500, "storage_upload_failed", detail=str(e))

        try:
            audio_url = self.storage.resolve_url(storage_path)
        except AudioStorageError as e:
            raise await self._fail(audio_id, "Could not create audio URL", 500, "audio_url_failed", detail=str(e))

        generated_at = datetime.now(timezone.utc).isoformat()
        await self.audios.update(
            audio_id,
            status=AudioStatus.READY.value,
            storage_path=storage_path,
            audio_url=audio_url,
            generated_at=generated_at,
            generation_error=None,
        )

        logger.info(
            "Audio ready",
            story_id=story_id,
            audio_id=audio_id,
            task_id=task_id,
            bytes=len(data),
        )
        return AudioGenerationResult(
            status="ready",
            audio_id=audio_id,
            story_id=str(story_id),
            voice_id=audio.get("voice_id"),
            task_id=task_id,
            storage_path=storage_path,
            audio_url=audio_url,
            generated_at=generated_at,
        )

    async def wait_for_audio(
        self,
        story_id: str,
        owner_id: str,
        voice_id: Optional[str] = None
    ) -> AudioGenerationResult:
        """
        Keep advancing until the narration is ready or fails.

        The pending-row timeout inside generate_audio_for_story bounds the loop.
        """
        while True:
            result = await self.generate_audio_for_story(story_id, owner_id, voice_id)
            if result.status != "pending":
                return result
            await asyncio.sleep(self.settings.poll_interval_seconds)
