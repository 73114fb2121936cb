"""
Audio storage on Supabase Storage.

Uploads overwrite by path, so retrying the upload for the same audio row is
safe.
"""

from typing import List, Optional

from supabase import Client

from talebox.config import AudioSettings, config
from talebox.utils.logging import audio_logger as logger

from .client import get_supabase_admin_client


AUDIO_CONTENT_TYPE = "audio/mpeg"


class AudioStorageError(Exception):
    """Raised when an upload fails or no URL can be issued for a stored file."""
    pass


def build_audio_path(user_id: str, story_id: str, audio_id: str) -> str:
    return f"users/{user_id}/stories/{story_id}/{audio_id}.mp3"


class AudioStorage:
    """Upload narrations and resolve retrievable URLs for them."""

    def __init__(
        self,
        client: Optional[Client] = None,
        settings: Optional[AudioSettings] = None
    ):
        self._client = client
        self.settings = settings or config.audio_settings()

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    @property
    def bucket(self):
        return self.client.storage.from_(self.settings.bucket)

    def upload(self, path: str, data: bytes) -> str:
        try:
            self.bucket.upload(
                path,
                data,
                {"content-type": AUDIO_CONTENT_TYPE, "upsert": "true"},
            )
        except Exception as e:
            raise AudioStorageError(f"Upload failed for {path}: {e}") from e
        return path

    def resolve_url(self, path: str) -> str:
        """
        Public URL when the bucket is public, otherwise a signed URL.

        A failed signing attempt is logged; AudioStorageError is raised only
        when no URL could be produced at all.
        """
        url = None
        if self.settings.public_bucket:
            url = self.bucket.get_public_url(path) or None

        if not url:
            try:
                signed = self.bucket.create_signed_url(path, self.settings.signed_url_ttl_seconds)
                url = signed.get("signedURL") or signed.get("signedUrl")
            except Exception as e:
                logger.error(f"Could not create signed URL: {e}", path=path)

        if not url:
            raise AudioStorageError(f"No URL available for {path}")
        return url

    def remove(self, paths: List[str]) -> bool:
        """Delete stored files; failures are logged and reported as False."""
        if not paths:
            return True
        try:
            self.bucket.remove(paths)
        except Exception as e:
            logger.error(f"Could not remove audio files: {e}", paths=paths)
            return False
        return True
