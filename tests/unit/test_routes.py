"""API tests against the FastAPI app with in-memory collaborators."""

from datetime import datetime, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from talebox.api.main import app
from talebox.config import config
from talebox.routes import story as story_routes
from talebox.routes.auth import DEV_USER_ID, get_current_user_id
from talebox.utils.logging import get_log_buffer

from tests.conftest import NARRATED_INPUTS, OWNER_ID, SILENT_INPUTS, iso


WORKER_SECRET = "worker-secret"


@pytest.fixture
def settings(monkeypatch):
    monkeypatch.setattr(config, "STORY_WORKER_SECRET", WORKER_SECRET)
    monkeypatch.setattr(config, "CRON_SECRET", None)
    monkeypatch.setattr(config, "DAILY_STORY_LIMIT", 1)
    monkeypatch.setattr(config, "DEV_MODE", True)
    return config


@pytest.fixture
def client(settings, stories, jobs, audios, storage, audio_generation, processor):
    overrides = {
        get_current_user_id: lambda: OWNER_ID,
        story_routes.get_story_service: lambda: stories,
        story_routes.get_job_queue: lambda: jobs,
        story_routes.get_audio_service: lambda: audios,
        story_routes.get_audio_storage: lambda: storage,
        story_routes.get_audio_generation_service: lambda: audio_generation,
        story_routes.get_processor: lambda: processor,
    }
    app.dependency_overrides.update(overrides)
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


def worker_headers():
    return {"X-Worker-Secret": WORKER_SECRET}


def enqueue(db, story, status="pending"):
    now = iso(datetime.now(timezone.utc))
    return db.add(
        "story_jobs",
        story_id=story["id"],
        user_id=story["user_id"],
        status=status,
        attempts=0,
        last_error=None,
        created_at=now,
        updated_at=now,
    )


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_supabase_health_not_configured(self, client, monkeypatch):
        monkeypatch.setattr(config, "SUPABASE_URL", None)

        response = client.get("/api/health/supabase")

        assert response.status_code == 503
        assert response.json()["ok"] is False


class TestAuth:

    def test_dev_mode_without_header(self, settings):
        with TestClient(app) as test_client:
            response = test_client.get("/api/auth/me")

        assert response.status_code == 200
        assert response.json() == {"user_id": DEV_USER_ID, "dev_mode": True}

    def test_header_required_outside_dev_mode(self, settings, monkeypatch):
        monkeypatch.setattr(config, "DEV_MODE", False)

        with TestClient(app) as test_client:
            response = test_client.get("/api/auth/me")

        assert response.status_code == 401

    def test_malformed_header(self, settings):
        with TestClient(app) as test_client:
            response = test_client.get("/api/auth/me", headers={"Authorization": "Token abc"})

        assert response.status_code == 401


class TestStart:

    def test_start_creates_story_and_runs_job(self, client, db, provider):
        response = client.post("/api/story/start", json={"storyState": NARRATED_INPUTS})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["status"] == "pending"
        assert body["story"]["title"] == "The story of Luna, the inventor"

        # The background task advanced the story after the response.
        story = db.get("stories", body["story_id"])
        assert story["status"] == "ready"
        assert story["user_id"] == OWNER_ID
        job = db.rows("story_jobs")[0]
        assert job["story_id"] == body["story_id"]
        assert job["status"] == "completed"
        assert len(provider.created) == 1

    def test_daily_limit(self, client, make_story):
        make_story()

        response = client.post("/api/story/start", json={"storyState": SILENT_INPUTS})

        assert response.status_code == 429
        assert response.json()["detail"]["code"] == "daily_story_limit_reached"

    def test_zero_limit_means_unlimited(self, client, make_story, monkeypatch):
        monkeypatch.setattr(config, "DAILY_STORY_LIMIT", 0)
        make_story()

        response = client.post("/api/story/start", json={"storyState": SILENT_INPUTS})

        assert response.status_code == 200

    def test_enqueue_failure_marks_story_error(self, client, db):
        db.failures[("story_jobs", "insert")] = RuntimeError("insert refused")

        response = client.post("/api/story/start", json={"storyState": SILENT_INPUTS})

        assert response.status_code == 500
        story = db.rows("stories")[0]
        assert story["status"] == "error"
        assert "insert refused" in story["generation_error"]

    def test_invalid_body(self, client):
        response = client.post("/api/story/start", json={"storyState": "not-an-object"})

        assert response.status_code == 422


class TestWorker:

    def test_requires_secret(self, client):
        assert client.post("/api/story/worker").status_code == 401
        assert client.get("/api/story/worker", headers={"X-Worker-Secret": "wrong"}).status_code == 401

    def test_unconfigured_secret(self, client, monkeypatch):
        monkeypatch.setattr(config, "STORY_WORKER_SECRET", None)

        response = client.post("/api/story/worker", headers=worker_headers())

        assert response.status_code == 500

    def test_bearer_and_cron_fallback(self, client, monkeypatch):
        monkeypatch.setattr(config, "STORY_WORKER_SECRET", None)
        monkeypatch.setattr(config, "CRON_SECRET", "cron-secret")

        response = client.get("/api/story/worker", headers={"Authorization": "Bearer cron-secret"})

        assert response.status_code == 200

    def test_post_processes_batch(self, client, db, make_story):
        enqueue(db, make_story(inputs=SILENT_INPUTS))
        enqueue(db, make_story(inputs=SILENT_INPUTS))

        response = client.post("/api/story/worker", headers=worker_headers(), json={"max_jobs": 1})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "processed": 1,
            "completed": 1,
            "failed": 0,
            "skipped": 0,
            "errors": [],
        }

    def test_get_with_story_filter(self, client, db, make_story):
        enqueue(db, make_story(inputs=SILENT_INPUTS))
        target = make_story(inputs=SILENT_INPUTS)
        enqueue(db, target)

        response = client.get(
            "/api/story/worker",
            params={"story_id": target["id"]},
            headers=worker_headers(),
        )

        assert response.json()["processed"] == 1
        assert db.get("stories", target["id"])["status"] == "generated"


class TestProgress:

    def test_nothing_to_do(self, client):
        response = client.post("/api/story/progress")

        assert response.status_code == 200
        assert response.json()["reason"] == "no_pending_jobs_for_user"
        assert response.json()["processed"] == 0

    def test_advances_callers_story(self, client, db, make_story):
        story = make_story(inputs=SILENT_INPUTS)
        enqueue(db, story)
        enqueue(db, make_story(inputs=SILENT_INPUTS, user_id="user-2"))

        response = client.post("/api/story/progress")

        body = response.json()
        assert body["candidate_story_id"] == story["id"]
        assert body["completed"] == 1
        assert db.get("stories", story["id"])["status"] == "generated"


class TestAudio:

    def test_generates_audio(self, client, make_story):
        story = make_story(story_text="Once.")

        response = client.post("/api/story/audio", json={"story_id": story["id"], "voice_id": "voice-abc"})

        assert response.status_code == 200
        audio = response.json()["audio"]
        assert audio["status"] == "ready"
        assert audio["audio_url"].startswith("https://storage.test/")

    def test_pending_audio(self, client, provider, make_story):
        provider.status = "processing"
        story = make_story(story_text="Once.")

        response = client.post("/api/story/audio", json={"story_id": story["id"], "voice_id": "voice-abc"})

        assert response.json()["audio"]["status"] == "pending"

    def test_error_mapping(self, client, provider, make_story):
        provider.create_response = httpx.Response(402, text="no credits")
        story = make_story(story_text="Once.")

        response = client.post("/api/story/audio", json={"story_id": story["id"], "voice_id": "voice-abc"})

        assert response.status_code == 502
        assert response.json() == {
            "error": "Insufficient credits with the speech provider",
            "code": "credits_or_quota",
            "detail": "no credits",
        }

    def test_missing_voice(self, client, make_story):
        story = make_story(story_text="Once.")

        response = client.post("/api/story/audio", json={"story_id": story["id"]})

        assert response.status_code == 400
        assert response.json()["code"] == "voice_required"

    def test_delete_audio(self, client, db, make_story):
        story = make_story(story_text="Once.")
        created = client.post("/api/story/audio", json={"story_id": story["id"], "voice_id": "voice-abc"})
        path = created.json()["audio"]["storage_path"]

        response = client.delete(f"/api/story/audio/{story['id']}")

        assert response.json() == {"success": True, "deleted": 1, "files_removed": True}
        assert db.rows("audios") == []
        assert ("audios", path) not in db.storage.files

    def test_delete_audio_of_foreign_story(self, client, make_story):
        story = make_story(story_text="Once.", user_id="user-2")

        assert client.delete(f"/api/story/audio/{story['id']}").status_code == 404


class TestStories:

    def test_list_with_current_audio(self, client, db, make_story):
        story = make_story(story_text="Once.", status="ready")
        make_story(user_id="user-2")
        db.add(
            "audios",
            story_id=story["id"],
            user_id=OWNER_ID,
            voice_id="voice-abc",
            status="error",
            audio_url=None,
            generation_error="old failure",
            created_at="2026-01-01T00:00:00+00:00",
        )
        db.add(
            "audios",
            story_id=story["id"],
            user_id=OWNER_ID,
            voice_id="voice-abc",
            status="ready",
            audio_url="https://storage.test/a.mp3",
            generation_error=None,
            created_at="2025-12-01T00:00:00+00:00",
        )

        response = client.get("/api/stories")

        listed = response.json()["stories"]
        assert [row["id"] for row in listed] == [story["id"]]
        assert listed[0]["audio"] == {
            "audio_url": "https://storage.test/a.mp3",
            "status": "ready",
            "voice_id": "voice-abc",
            "generation_error": None,
        }

    def test_detail_includes_job(self, client, db, make_story):
        story = make_story()
        job = enqueue(db, story)

        response = client.get(f"/api/stories/{story['id']}")

        detail = response.json()["story"]
        assert detail["audio"] is None
        assert detail["job"]["id"] == job["id"]
        assert detail["job"]["status"] == "pending"

    def test_detail_of_foreign_story(self, client, make_story):
        story = make_story(user_id="user-2")

        assert client.get(f"/api/stories/{story['id']}").status_code == 404

    def test_delete_story(self, client, db, make_story):
        story = make_story(story_text="Once.")
        client.post("/api/story/audio", json={"story_id": story["id"], "voice_id": "voice-abc"})
        enqueue(db, story, status="completed")

        response = client.delete(f"/api/stories/{story['id']}")

        assert response.json() == {"success": True}
        assert db.rows("stories") == []
        assert db.rows("audios") == []
        assert db.rows("story_jobs") == []
        assert db.storage.files == {}


class TestAdmin:

    def test_requires_secret(self, client):
        assert client.get("/api/admin/jobs/stats").status_code == 401

    def test_job_stats(self, client, db, make_story):
        enqueue(db, make_story())

        response = client.get("/api/admin/jobs/stats", headers=worker_headers())

        assert response.status_code == 200
        assert response.json()["jobs"]["pending"] == 1

    def test_logs(self, client):
        get_log_buffer().clear()

        assert client.get("/api/admin/logs", params={"level": "loud"}, headers=worker_headers()).status_code == 400
        assert "logs" in client.get("/api/admin/logs", headers=worker_headers()).json()
        assert client.post("/api/admin/logs/clear", headers=worker_headers()).json() == {"status": "cleared"}
