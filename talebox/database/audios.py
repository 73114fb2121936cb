"""
Audio Service

Handles ``audios`` rows: one row per synthesis attempt for a story.

The in-flight provider task handle lives in ``external_task_id``;
``storage_path`` is only written once the narration is uploaded.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List, Iterable

from supabase import Client

from .client import get_supabase_admin_client


class AudioStatus(str, Enum):
    """Status values for narration attempts"""
    PENDING = "pending"
    READY = "ready"
    ERROR = "error"


AUDIO_COLUMNS = (
    "id, story_id, user_id, voice_id, status, external_task_id, storage_path, "
    "audio_url, generation_error, generated_at, created_at"
)


def audio_priority(audio: Dict[str, Any]) -> int:
    """Display priority: delivered audio first, then in-flight, then failed."""
    status = audio.get("status")
    if status == AudioStatus.READY.value and audio.get("audio_url"):
        return 0
    if status == AudioStatus.PENDING.value:
        return 1
    if status == AudioStatus.ERROR.value:
        return 2
    return 3


def _created_timestamp(audio: Dict[str, Any]) -> float:
    value = audio.get("created_at")
    if not value:
        return 0.0
    try:
        return datetime.fromisoformat(value).timestamp()
    except ValueError:
        return 0.0


def pick_current_audio(audios: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Pick the audio row to show for a story (best priority, then newest)."""
    current = None
    for audio in audios:
        if current is None:
            current = audio
            continue
        candidate_priority = audio_priority(audio)
        current_priority = audio_priority(current)
        if candidate_priority != current_priority:
            if candidate_priority < current_priority:
                current = audio
        elif _created_timestamp(audio) > _created_timestamp(current):
            current = audio
    return current


class AudioService:
    """
    Service class for audio row operations.
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    async def find_pending(self, story_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        """Newest unresolved audio row for (story, owner), if any."""
        result = (
            self.client.table("audios")
            .select(AUDIO_COLUMNS)
            .eq("story_id", str(story_id))
            .eq("user_id", str(user_id))
            .eq("status", AudioStatus.PENDING.value)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def create_pending(
        self,
        story_id: str,
        user_id: str,
        voice_id: Optional[str]
    ) -> Dict[str, Any]:
        audio_data = {
            "story_id": str(story_id),
            "user_id": str(user_id),
            "voice_id": voice_id,
            "status": AudioStatus.PENDING.value,
            "external_task_id": None,
            "storage_path": None,
            "audio_url": None,
            "generation_error": None,
            "generated_at": None,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        result = self.client.table("audios").insert(audio_data).execute()
        return result.data[0]

    async def update(self, audio_id: str, **fields: Any) -> Optional[Dict[str, Any]]:
        """Write only the given columns of one audio row."""
        result = (
            self.client.table("audios")
            .update(fields)
            .eq("id", str(audio_id))
            .execute()
        )
        return result.data[0] if result.data else None

    async def has_ready_audio(self, story_id: str) -> bool:
        """Whether the story already has a delivered narration."""
        result = (
            self.client.table("audios")
            .select("id")
            .eq("story_id", str(story_id))
            .eq("status", AudioStatus.READY.value)
            .not_.is_("audio_url", "null")
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return bool(result.data)

    async def list_for_stories(self, story_ids: List[str]) -> List[Dict[str, Any]]:
        if not story_ids:
            return []
        result = (
            self.client.table("audios")
            .select(AUDIO_COLUMNS)
            .in_("story_id", [str(story_id) for story_id in story_ids])
            .order("created_at", desc=True)
            .execute()
        )
        return result.data

    async def get_current_for_stories(self, story_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        """Map story id -> current audio row, following the display priority."""
        by_story: Dict[str, List[Dict[str, Any]]] = {}
        for audio in await self.list_for_stories(story_ids):
            by_story.setdefault(audio["story_id"], []).append(audio)
        return {
            story_id: pick_current_audio(rows)
            for story_id, rows in by_story.items()
        }

    async def list_storage_paths(self, story_id: str) -> List[str]:
        """Stored narration files of a story (rows that never uploaded are skipped)."""
        result = (
            self.client.table("audios")
            .select("id, storage_path")
            .eq("story_id", str(story_id))
            .execute()
        )
        return [row["storage_path"] for row in result.data if row.get("storage_path")]

    async def delete_for_story(self, story_id: str) -> int:
        result = self.client.table("audios").delete().eq("story_id", str(story_id)).execute()
        return len(result.data or [])
