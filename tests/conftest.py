"""Pytest configuration and fixtures."""

from datetime import datetime, timezone

import pytest

from talebox.audio.generation import AudioGenerationService
from talebox.config import AudioSettings, JobSettings
from talebox.database.audios import AudioService
from talebox.database.jobs import JobQueueService
from talebox.database.storage import AudioStorage
from talebox.database.stories import StoryService
from talebox.jobs.processor import StoryJobProcessor
from talebox.tts.client import SpeechTaskClient

from tests.fakes import FakeSpeechProvider, FakeStoryGenerator, FakeSupabase


OWNER_ID = "user-1"

NARRATED_INPUTS = {
    "hero": {"optionId": "luna", "optionName": "Luna, the inventor"},
    "place": {"optionId": "forest", "optionName": "A singing forest"},
    "narrator": {"optionId": "voice-abc", "optionName": "Warm narrator"},
}

SILENT_INPUTS = {
    "hero": {"optionId": "luna", "optionName": "Luna, the inventor"},
}


def iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat()


@pytest.fixture
def db():
    return FakeSupabase()


@pytest.fixture
def audio_settings():
    return AudioSettings(
        api_key="tts-test-key",
        api_base_url="https://tts.test/api/v1",
        default_voice_id=None,
        max_chars=10000,
        timeout_seconds=900,
        poll_interval_seconds=0,
        request_timeout_seconds=5,
        bucket="audios",
        public_bucket=True,
    )


@pytest.fixture
def job_settings():
    return JobSettings.build(audio_timeout_seconds=900, heartbeat_interval_seconds=30)


@pytest.fixture
def provider():
    return FakeSpeechProvider()


@pytest.fixture
def task_client(provider, audio_settings):
    return SpeechTaskClient.from_settings(audio_settings, transport=provider.transport())


@pytest.fixture
def stories(db):
    return StoryService(db)


@pytest.fixture
def jobs(db, job_settings):
    return JobQueueService(db, job_settings)


@pytest.fixture
def audios(db):
    return AudioService(db)


@pytest.fixture
def storage(db, audio_settings):
    return AudioStorage(db, audio_settings)


@pytest.fixture
def audio_generation(db, audio_settings, task_client, stories, audios, storage):
    return AudioGenerationService(
        client=db,
        settings=audio_settings,
        task_client=task_client,
        stories=stories,
        audios=audios,
        storage=storage,
    )


@pytest.fixture
def story_generator():
    return FakeStoryGenerator()


@pytest.fixture
def processor(jobs, stories, audios, audio_generation, story_generator, job_settings):
    return StoryJobProcessor(
        jobs=jobs,
        stories=stories,
        audios=audios,
        audio_generation=audio_generation,
        story_generator=story_generator,
        settings=job_settings,
    )


@pytest.fixture
def make_story(db):
    """Insert a story row directly."""
    def _make(
        inputs=None,
        status="pending",
        story_text="",
        title="Luna's story",
        user_id=OWNER_ID,
        **extra
    ):
        return db.add(
            "stories",
            user_id=user_id,
            title=title,
            inputs=NARRATED_INPUTS if inputs is None else inputs,
            story_text=story_text,
            status=status,
            generation_error=None,
            generated_at=None,
            created_at=iso(datetime.now(timezone.utc)),
            **extra
        )
    return _make
