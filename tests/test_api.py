"""
Tests for the StoryReel API

Routes run through FastAPI's TestClient with fake providers and an
isolated job service.
"""

import asyncio
import io
import json
import threading
import time
import zipfile

import pytest
from fastapi.testclient import TestClient

from storyreel_core_schemas import VideoProvider
from storyreel_services import JobService

from storyreel_api.app import create_app
from storyreel_api.deps import get_jobs, get_registry

from conftest import FakeVideoGenerator


@pytest.fixture
def jobs() -> JobService:
    return JobService()


@pytest.fixture
def client(temp_dir, registry, jobs):
    app = create_app(projects_dir=temp_dir / "projects")
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_jobs] = lambda: jobs
    with TestClient(app) as client:
        yield client


@pytest.fixture
def project_id(client, sample_story_text) -> str:
    response = client.post("/projects", json={
        "name": "The Lighthouse",
        "story_text": sample_story_text,
        "settings": {"scene_count": 1},
    })
    assert response.status_code == 201, response.text
    return response.json()["id"]


@pytest.fixture
def storyboarded(client, project_id) -> str:
    assert client.post(f"/projects/{project_id}/segment", json={"method": "simple"}).status_code == 200
    assert client.post(f"/projects/{project_id}/storyboard", json={}).status_code == 200
    return project_id


def wait_for_job(client, job_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        job = client.get(f"/jobs/{job_id}").json()
        if job["status"] not in ("pending", "running"):
            return job
        time.sleep(0.01)
    raise AssertionError(f"Job {job_id} did not finish")


class TestProjects:
    """Tests for project routes."""

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_create_project(self, client, project_id):
        detail = client.get(f"/projects/{project_id}").json()

        assert project_id == "the-lighthouse"
        assert detail["status"] == "draft"
        assert detail["paragraphs"] == []
        assert client.get(f"/projects/{project_id}/settings").json()["scene_count"] == 1

    def test_duplicate_name_rejected(self, client, project_id):
        response = client.post("/projects", json={"name": "The Lighthouse", "story_text": "x"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_list_projects(self, client, project_id):
        body = client.get("/projects").json()

        assert [p["id"] for p in body["data"]] == [project_id]
        assert body["pagination"]["total"] == 1
        assert client.get("/projects", params={"status": "completed"}).json()["data"] == []

    def test_unknown_project(self, client):
        response = client.get("/projects/missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_path_traversal_rejected(self, client):
        assert client.get("/projects/..%2F..%2Fetc").status_code in (400, 404)

    def test_update_settings(self, client, project_id):
        response = client.put(f"/projects/{project_id}/settings", json={"style": "watercolor", "generate_video": False})

        assert response.status_code == 200
        assert response.json()["style"] == "Watercolor"
        assert response.json()["generate_video"] is False
        assert "credentials" not in response.json()

    def test_invalid_settings(self, client, project_id):
        response = client.put(f"/projects/{project_id}/settings", json={"style": "Vaporwave"})

        assert response.status_code == 400
        assert response.json()["error"]["field"] == "style"

    def test_segment_and_storyboard(self, client, project_id):
        segmented = client.post(f"/projects/{project_id}/segment", json={"method": "simple"}).json()
        assert len(segmented["paragraphs"]) == 3
        assert segmented["used_fallback"] is False

        detail = client.post(f"/projects/{project_id}/storyboard", json={}).json()

        assert detail["status"] == "storyboarded"
        assert detail["scene_count"] == 3
        scene = detail["paragraphs"][0]["scenes"][0]
        assert scene["start_prompt"].endswith("start 1")
        assert scene["video_status"] == "idle"

    def test_segment_fallback(self, client, project_id, segmenter):
        segmenter.fail = True

        body = client.post(f"/projects/{project_id}/segment", json={"method": "gemini"}).json()

        assert body["used_fallback"] is True
        assert body["method"] == "simple"

    def test_storyboard_before_segment(self, client, project_id):
        response = client.post(f"/projects/{project_id}/storyboard", json={})

        assert response.status_code == 400
        assert response.json()["error"]["field"] == "segments"


class TestGeneration:
    """Tests for generation jobs, assets and export."""

    def test_generate_before_storyboard(self, client, project_id):
        response = client.post(f"/projects/{project_id}/generate", json={})

        assert response.status_code == 400

    def test_generate(self, client, storyboarded):
        response = client.post(f"/projects/{storyboarded}/generate", json={"concurrency": 2})
        assert response.status_code == 202
        job = wait_for_job(client, response.json()["job_id"])

        assert job["status"] == "completed", job
        assert job["percent"] == 100
        assert job["result"]["generated_count"] == 12
        status = client.get(f"/projects/{storyboarded}/status").json()
        assert status["status"] == "completed"
        assert status["assets"]["video"]["success"] == 3

    def test_second_job_conflicts(self, client, storyboarded, jobs):
        jobs.create_job("generate", project_id=storyboarded)

        response = client.post(f"/projects/{storyboarded}/generate", json={})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "RUN_IN_PROGRESS"

    def test_assets_and_export(self, client, storyboarded):
        job_id = client.post(f"/projects/{storyboarded}/generate", json={}).json()["job_id"]
        wait_for_job(client, job_id)
        paragraph = client.get(f"/projects/{storyboarded}").json()["paragraphs"][0]
        scene = paragraph["scenes"][0]

        frame = client.get(
            f"/projects/{storyboarded}/assets/{paragraph['id']}/start",
            params={"scene_id": scene["id"]},
        )
        audio = client.get(f"/projects/{storyboarded}/assets/{paragraph['id']}/audio")
        missing_scene = client.get(f"/projects/{storyboarded}/assets/{paragraph['id']}/video")
        export = client.get(f"/projects/{storyboarded}/export")

        assert frame.status_code == 200
        assert frame.headers["content-type"] == "image/png"
        assert frame.content == f"img:{scene['start_prompt']}".encode()
        assert audio.content == f"wav:{paragraph['text']}".encode()
        assert missing_scene.status_code == 400
        assert missing_scene.json()["error"]["field"] == "scene_id"
        assert export.headers["content-type"] == "application/zip"
        with zipfile.ZipFile(io.BytesIO(export.content)) as z:
            assert len(z.namelist()) == 3 * 5

    def test_asset_not_generated(self, client, storyboarded):
        paragraph = client.get(f"/projects/{storyboarded}").json()["paragraphs"][0]

        response = client.get(f"/projects/{storyboarded}/assets/{paragraph['id']}/audio")

        assert response.status_code == 404

    def test_regenerate(self, client, storyboarded, video_generator):
        wait_for_job(client, client.post(f"/projects/{storyboarded}/generate", json={}).json()["job_id"])
        paragraph = client.get(f"/projects/{storyboarded}").json()["paragraphs"][1]
        video_generator.calls.clear()

        response = client.post(f"/projects/{storyboarded}/regenerate", json={
            "paragraph_id": paragraph["id"],
            "scene_id": paragraph["scenes"][0]["id"],
            "slot": "video",
        })
        job = wait_for_job(client, response.json()["job_id"])

        assert response.status_code == 202
        assert job["type"] == "regenerate"
        assert job["status"] == "completed"
        assert len(video_generator.calls) == 1

    def test_regenerate_unknown_node(self, client, storyboarded, jobs):
        response = client.post(f"/projects/{storyboarded}/regenerate", json={
            "paragraph_id": "nope",
            "slot": "audio",
        })

        assert response.status_code == 404
        assert jobs.list_jobs()[1] == 0

    def test_regenerate_audio_with_scene(self, client, storyboarded):
        paragraph = client.get(f"/projects/{storyboarded}").json()["paragraphs"][0]

        response = client.post(f"/projects/{storyboarded}/regenerate", json={
            "paragraph_id": paragraph["id"],
            "scene_id": paragraph["scenes"][0]["id"],
            "slot": "audio",
        })

        assert response.status_code == 400


class HeldVideo(FakeVideoGenerator):
    """Video adapter that stays busy until released from the test thread."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    async def generate_video(self, start, end, prompt, credential):
        self.entered.set()
        while not self.release.is_set():
            await asyncio.sleep(0.01)
        return await super().generate_video(start, end, prompt, credential)


class TestProjectLockedDuringJob:
    """Project-changing routes are refused while a job owns the project."""

    def test_changes_rejected_while_job_active(self, client, storyboarded, jobs):
        before = client.get(f"/projects/{storyboarded}").json()
        job = jobs.create_job("generate", project_id=storyboarded)

        responses = [
            client.put(f"/projects/{storyboarded}/settings", json={"scene_count": 2}),
            client.post(f"/projects/{storyboarded}/segment", json={"method": "simple"}),
            client.post(f"/projects/{storyboarded}/storyboard", json={"overwrite": True}),
        ]

        assert [r.status_code for r in responses] == [409, 409, 409]
        assert {r.json()["error"]["code"] for r in responses} == {"RUN_IN_PROGRESS"}
        assert client.get(f"/projects/{storyboarded}").json()["paragraphs"] == before["paragraphs"]
        assert client.get(f"/projects/{storyboarded}/settings").json()["scene_count"] == 1
        assert client.get(f"/projects/{storyboarded}/status").status_code == 200

        jobs.cancel_job(job.id)

        assert client.put(f"/projects/{storyboarded}/settings", json={"scene_count": 2}).status_code == 200

    def test_storyboard_during_generation_keeps_frames(self, client, storyboarded, registry):
        held = HeldVideo()
        registry.register_video(VideoProvider.VEO, lambda s: held)

        job_id = client.post(f"/projects/{storyboarded}/generate", json={}).json()["job_id"]
        try:
            assert held.entered.wait(5)
            settings = client.put(f"/projects/{storyboarded}/settings", json={"scene_count": 2})
            storyboard = client.post(f"/projects/{storyboarded}/storyboard", json={})
        finally:
            held.release.set()
        job = wait_for_job(client, job_id)

        assert settings.status_code == 409
        assert storyboard.status_code == 409
        assert job["status"] == "completed", job
        detail = client.get(f"/projects/{storyboarded}").json()
        assert [len(p["scenes"]) for p in detail["paragraphs"]] == [1, 1, 1]
        paragraph = detail["paragraphs"][0]
        scene = paragraph["scenes"][0]
        assert scene["start_image_status"] == "success"
        frame = client.get(
            f"/projects/{storyboarded}/assets/{paragraph['id']}/start",
            params={"scene_id": scene["id"]},
        )
        assert frame.status_code == 200

    def test_invalid_stored_settings_leave_no_job(self, client, storyboarded, jobs, temp_dir):
        settings_file = temp_dir / "projects" / storyboarded / "settings.json"
        settings_file.write_text(json.dumps({"scene_count": 50}), encoding="utf-8")

        response = client.post(f"/projects/{storyboarded}/generate", json={})

        assert response.status_code == 400
        assert response.json()["error"]["field"] == "scene_count"
        assert jobs.active_job(storyboarded) is None
        assert jobs.list_jobs()[1] == 0


class TestJobs:
    """Tests for job routes."""

    def test_list_and_cancel(self, client, jobs):
        job = jobs.create_job("generate", project_id="p")

        listed = client.get("/jobs", params={"project_id": "p"}).json()
        cancelled = client.delete(f"/jobs/{job.id}")
        again = client.delete(f"/jobs/{job.id}")

        assert listed["pagination"]["total"] == 1
        assert cancelled.json()["status"] == "cancelled"
        assert again.status_code == 409

    def test_unknown_job(self, client):
        assert client.get("/jobs/nope").status_code == 404


class TestAuth:
    def test_bearer_token_required(self, temp_dir):
        app = create_app(projects_dir=temp_dir / "projects", require_auth=True, api_keys={"secret"})

        with TestClient(app) as client:
            assert client.get("/projects").status_code == 401
            assert client.get("/projects", headers={"Authorization": "Bearer wrong"}).status_code == 403
            assert client.get("/projects", headers={"Authorization": "Bearer secret"}).status_code == 200

        create_app(projects_dir=temp_dir / "projects")
