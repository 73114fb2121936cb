"""
Talebox Database Layer

This module provides the Supabase client and service classes for the
stories, story_jobs and audios tables and the narration storage bucket.
"""

from .client import get_supabase_client, get_supabase_admin_client, SupabaseClientError
from .stories import StoryService, StoryStatus, ACTIVE_STORY_STATUSES
from .jobs import JobQueueService, JobStatus
from .audios import AudioService, AudioStatus, pick_current_audio
from .storage import AudioStorage, AudioStorageError, build_audio_path

__all__ = [
    "get_supabase_client",
    "get_supabase_admin_client",
    "SupabaseClientError",
    "StoryService",
    "StoryStatus",
    "ACTIVE_STORY_STATUSES",
    "JobQueueService",
    "JobStatus",
    "AudioService",
    "AudioStatus",
    "pick_current_audio",
    "AudioStorage",
    "AudioStorageError",
    "build_audio_path",
]
