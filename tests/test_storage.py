"""
Tests for project storage

Tests for storyreel_storage/storage.py
"""

import json

import pytest

from storyreel_core_schemas import (
    Asset,
    Credentials,
    GenerationSettings,
    GenerationStatus,
    Paragraph,
    Scene,
)
from storyreel_storage import JSONStorage, ProjectManager

S = GenerationStatus


def storyboarded_paragraphs() -> list[Paragraph]:
    return [
        Paragraph(
            id="p1",
            text="Paragraph one.",
            audio_status=S.SUCCESS,
            audio=Asset(mime_type="audio/wav", data=b"RIFFwav"),
            scenes=[
                Scene(
                    id="s1",
                    start_prompt="dawn",
                    end_prompt="noon",
                    start_image_status=S.SUCCESS,
                    start_image=Asset(mime_type="image/png", data=b"png-bytes"),
                    end_image_status=S.ERROR,
                    end_image_error="quota exceeded",
                    video_status=S.SKIPPED,
                )
            ],
        )
    ]


class TestProjectManager:
    """Tests for create/save/load."""

    def test_create_and_load(self, temp_dir):
        manager = ProjectManager.create(temp_dir / "story", "Story", source_text="Once.", project_id="story")

        loaded = ProjectManager.load(temp_dir / "story")

        assert ProjectManager.exists(temp_dir / "story")
        assert loaded.project.id == "story"
        assert loaded.project.source_text == "Once."
        assert manager.path == temp_dir / "story"

    def test_round_trip_with_assets(self, temp_dir):
        manager = ProjectManager.create(temp_dir, "Story")
        manager.project.paragraphs = storyboarded_paragraphs()
        manager.save()

        paragraph = ProjectManager.load(temp_dir).project.paragraphs[0]
        scene = paragraph.scenes[0]

        assert paragraph.audio.data == b"RIFFwav"
        assert scene.start_image.data == b"png-bytes"
        assert scene.end_image_status == S.ERROR
        assert scene.end_image_error == "quota exceeded"
        assert scene.video_status == S.SKIPPED
        assert (temp_dir / "assets" / "p1" / "s1_start.png").read_bytes() == b"png-bytes"
        assert (temp_dir / "assets" / "p1" / "audio.wav").exists()

    def test_payload_not_in_json(self, temp_dir):
        manager = ProjectManager.create(temp_dir, "Story")
        manager.project.paragraphs = storyboarded_paragraphs()
        manager.save()

        data = json.loads((temp_dir / "project.json").read_text())

        assert data["paragraphs"][0]["audio"] == {"mime_type": "audio/wav"}

    def test_missing_asset_file_resets_slot(self, temp_dir):
        manager = ProjectManager.create(temp_dir, "Story")
        manager.project.paragraphs = storyboarded_paragraphs()
        manager.save()
        (temp_dir / "assets" / "p1" / "s1_start.png").unlink()

        scene = ProjectManager.load(temp_dir).project.paragraphs[0].scenes[0]

        assert scene.start_image is None
        assert scene.start_image_status == S.IDLE

    def test_replaced_assets_pruned(self, temp_dir):
        manager = ProjectManager.create(temp_dir, "Story")
        manager.project.paragraphs = storyboarded_paragraphs()
        manager.save()

        manager.project.paragraphs = [Paragraph(id="p2", text="New.")]
        manager.save()

        assert not (temp_dir / "assets" / "p1").exists()

    def test_load_missing_project(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            ProjectManager.load(temp_dir / "nothing")


class TestSettings:
    """Tests for settings persistence."""

    def test_defaults_when_unsaved(self, temp_dir):
        settings = JSONStorage(temp_dir).load_settings()

        assert settings == GenerationSettings()

    def test_credentials_never_persisted(self, temp_dir):
        storage = JSONStorage(temp_dir)
        storage.save_settings(GenerationSettings(scene_count=5, credentials=Credentials(google="secret")))

        raw = (temp_dir / "settings.json").read_text()
        loaded = storage.load_settings(Credentials(leonardo="leo"))

        assert "secret" not in raw
        assert loaded.scene_count == 5
        assert loaded.credentials.google is None
        assert loaded.credentials.leonardo == "leo"

    def test_manager_uses_env_credentials(self, temp_dir):
        manager = ProjectManager.create(temp_dir, "Story")

        assert manager.load_settings().credentials.google == "test-google-key"
