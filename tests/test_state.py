"""
Tests for the Asset State Store and core models

Tests for storyreel_services/state.py and storyreel_core_schemas/models.py
"""

import pytest

from storyreel_core_schemas import (
    Asset,
    Credentials,
    GenerationSettings,
    GenerationStatus,
    Paragraph,
    ProviderError,
    ProviderErrorKind,
    Scene,
    check_payload_invariant,
    extension_for,
)
from storyreel_services import AssetStateStore, NotFoundError

from conftest import make_paragraphs, success_asset


class TestApplyUpdate:
    """Tests for targeted updates."""

    def test_scene_update_replaces_only_target(self):
        store = AssetStateStore(make_paragraphs(2, 2))
        p1_before, p2_before = store.paragraphs
        other_scene = p1_before.scenes[1]

        updated = store.apply_update("p1", "p1s1", start_prompt="a lighthouse at dawn")

        p1_after, p2_after = store.paragraphs
        assert updated is p1_after
        assert p1_after is not p1_before
        assert p2_after is p2_before
        assert p1_after.scenes[1] is other_scene
        assert p1_after.scenes[0].start_prompt == "a lighthouse at dawn"
        assert p1_before.scenes[0].start_prompt == "p1s1 start"

    def test_paragraph_update(self):
        store = AssetStateStore(make_paragraphs(1, 1))

        store.apply_update(
            "p1",
            audio_status=GenerationStatus.SUCCESS,
            audio=success_asset("audio/wav"),
        )

        assert store.get_paragraph("p1").audio.mime_type == "audio/wav"

    def test_unknown_ids(self):
        store = AssetStateStore(make_paragraphs(1, 1))

        with pytest.raises(NotFoundError):
            store.apply_update("missing", audio_status=GenerationStatus.IDLE)
        with pytest.raises(NotFoundError):
            store.apply_update("p1", "missing", video_status=GenerationStatus.IDLE)

    def test_unknown_or_structural_fields_rejected(self):
        store = AssetStateStore(make_paragraphs(1, 1))

        with pytest.raises(ValueError):
            store.apply_update("p1", colour="blue")
        with pytest.raises(ValueError):
            store.apply_update("p1", scenes=[])
        with pytest.raises(ValueError):
            store.apply_update("p1", "p1s1", id="other")

    def test_payload_without_success_rejected(self):
        store = AssetStateStore(make_paragraphs(1, 1))

        with pytest.raises(ValueError):
            store.apply_update("p1", "p1s1", start_image=success_asset())
        with pytest.raises(ValueError):
            store.apply_update("p1", audio_status=GenerationStatus.SUCCESS)

        assert store.get_scene("p1", "p1s1").start_image is None

    def test_invalid_initial_tree_rejected(self):
        paragraph = Paragraph(id="p1", text="x", audio_status=GenerationStatus.SUCCESS)

        with pytest.raises(ValueError):
            AssetStateStore([paragraph])


class TestSubscribe:
    """Tests for change listeners."""

    def test_listener_receives_node_ids(self):
        store = AssetStateStore(make_paragraphs(1, 1))
        events = []
        unsubscribe = store.subscribe(lambda pid, sid: events.append((pid, sid)))

        store.apply_update("p1", audio_status=GenerationStatus.PENDING)
        store.apply_update("p1", "p1s1", video_status=GenerationStatus.SKIPPED)
        unsubscribe()
        store.apply_update("p1", audio_status=GenerationStatus.IDLE)

        assert events == [("p1", None), ("p1", "p1s1")]


class TestModels:
    """Tests for the core models."""

    def test_asset_payload_not_serialized(self):
        asset = Asset(mime_type="image/png", data=b"\x89PNG")

        assert asset.model_dump() == {"mime_type": "image/png"}
        assert asset.size == 4
        assert asset.extension == "png"

    def test_extension_for_unknown_mime(self):
        assert extension_for("audio/mpeg") == "mp3"
        assert extension_for("image/gif") == "gif"

    def test_scene_error_msg(self):
        scene = Scene(end_image_status=GenerationStatus.ERROR, end_image_error="quota")

        assert scene.error_msg == "quota"

    def test_check_payload_invariant(self):
        scene = Scene(video_status=GenerationStatus.SUCCESS, video=success_asset("video/mp4"))
        check_payload_invariant(scene)

        with pytest.raises(ValueError):
            check_payload_invariant(Scene(video_status=GenerationStatus.SUCCESS))

    def test_settings_defaults(self):
        settings = GenerationSettings()

        assert settings.scene_count == 3
        assert settings.aspect_ratio.value == "16:9"
        assert settings.style == "Cinematic"
        assert settings.voice == "Fenrir"
        assert settings.generate_audio and settings.generate_video

    def test_settings_style_case_insensitive(self):
        assert GenerationSettings(style="oil painting").style == "Oil Painting"

    @pytest.mark.parametrize("changes", [{"scene_count": 0}, {"scene_count": 21}, {"style": "Vaporwave"}, {"voice": " "}])
    def test_settings_rejects_invalid(self, changes):
        with pytest.raises(ValueError):
            GenerationSettings(**changes)

    def test_settings_are_frozen(self):
        settings = GenerationSettings()

        with pytest.raises(ValueError):
            settings.scene_count = 5

    def test_credentials_from_env(self, monkeypatch):
        monkeypatch.setenv("LEONARDO_API_KEY", "leo")
        monkeypatch.setenv("OPENAI_API_KEY", "")

        credentials = Credentials.from_env()

        assert credentials.google == "test-google-key"
        assert credentials.leonardo == "leo"
        assert credentials.openai is None
        assert credentials.configured() == ["google", "leonardo"]

    def test_credentials_merged(self):
        merged = Credentials(google="a", kling="k").merged(Credentials(google="b"))

        assert merged.google == "b"
        assert merged.kling == "k"


class TestProviderError:
    """Tests for provider error classification."""

    @pytest.mark.parametrize(
        "status_code, kind",
        [
            (401, ProviderErrorKind.AUTH),
            (403, ProviderErrorKind.AUTH),
            (404, ProviderErrorKind.NOT_FOUND),
            (429, ProviderErrorKind.RATE_LIMIT),
            (500, ProviderErrorKind.UNKNOWN),
            (None, ProviderErrorKind.UNKNOWN),
        ],
    )
    def test_kind_from_status(self, status_code, kind):
        assert ProviderErrorKind.from_status_code(status_code) == kind

    def test_str_includes_provider(self):
        assert str(ProviderError("quota exceeded", provider="kling")) == "[kling] quota exceeded"
