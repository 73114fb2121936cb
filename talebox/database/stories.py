"""
Story Service

Handles story rows: creation by the intake endpoint, lookups by the
pipeline, and status transitions driven by the job processor.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List
from uuid import uuid4

from supabase import Client

from .client import get_supabase_admin_client


class StoryStatus(str, Enum):
    """Per-story generation states"""
    PENDING = "pending"
    GENERATING_STORY = "generating_story"
    GENERATED = "generated"
    GENERATING_AUDIO = "generating_audio"
    READY = "ready"
    ERROR = "error"


# Statuses a job may still work on; anything else is a terminal outcome.
ACTIVE_STORY_STATUSES = (
    StoryStatus.PENDING.value,
    StoryStatus.GENERATING_STORY.value,
    StoryStatus.GENERATING_AUDIO.value,
    StoryStatus.GENERATED.value,
)


class StoryService:
    """
    Service class for story operations.
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    # =========================================================================
    # Story Creation
    # =========================================================================

    async def create(
        self,
        user_id: str,
        title: str,
        inputs: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Create a pending story request.

        The story text stays empty until the job processor generates it.
        """
        story_data = {
            "id": str(uuid4()),
            "user_id": str(user_id),
            "title": title,
            "inputs": inputs,
            "story_text": "",
            "status": StoryStatus.PENDING.value,
            "generation_error": None,
            "generated_at": None,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }

        result = self.client.table("stories").insert(story_data).execute()
        return result.data[0]

    # =========================================================================
    # Story Retrieval
    # =========================================================================

    async def get_by_id(self, story_id: str) -> Optional[Dict[str, Any]]:
        """Get story by ID."""
        result = (
            self.client.table("stories")
            .select("*")
            .eq("id", str(story_id))
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def get_owned(self, story_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        """Get a story only if it belongs to the given owner."""
        result = (
            self.client.table("stories")
            .select("*")
            .eq("id", str(story_id))
            .eq("user_id", str(user_id))
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def get_user_stories(
        self,
        user_id: str,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        """Get a user's stories, newest first."""
        result = (
            self.client.table("stories")
            .select("id, title, inputs, story_text, status, generation_error, generated_at, created_at")
            .eq("user_id", str(user_id))
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return result.data

    async def count_created_since(self, user_id: str, since: datetime, limit: int = 100) -> int:
        """Count stories a user created since the given instant (capped at limit)."""
        result = (
            self.client.table("stories")
            .select("id")
            .eq("user_id", str(user_id))
            .gte("created_at", since.isoformat())
            .limit(limit)
            .execute()
        )
        return len(result.data)

    # =========================================================================
    # Story Updates
    # =========================================================================

    async def update_status(
        self,
        story_id: str,
        status: StoryStatus,
        **fields: Any
    ) -> Optional[Dict[str, Any]]:
        """
        Set the story status plus any extra columns.

        Only the columns passed are written, so callers choose whether to
        clear generation_error (pass None) or leave it untouched.
        """
        update_data = {"status": status.value, **fields}

        result = (
            self.client.table("stories")
            .update(update_data)
            .eq("id", str(story_id))
            .execute()
        )
        return result.data[0] if result.data else None

    # =========================================================================
    # Story Deletion
    # =========================================================================

    async def delete(self, story_id: str, user_id: str) -> bool:
        """Delete an owned story row. Returns False when nothing matched."""
        result = (
            self.client.table("stories")
            .delete()
            .eq("id", str(story_id))
            .eq("user_id", str(user_id))
            .execute()
        )
        return bool(result.data)
