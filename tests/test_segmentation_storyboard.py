"""
Tests for segmentation, scene commit and storyboard prompts

Tests for storyreel_services/segmentation.py and storyreel_services/storyboard.py
"""

import pytest

from storyreel_core_schemas import (
    Asset,
    Credentials,
    GenerationStatus,
    Paragraph,
    Scene,
    SegmentationMethod,
)
from storyreel_services import (
    NotFoundError,
    SegmentationService,
    StoryboardService,
    ValidationError,
    commit_paragraphs,
    split_paragraphs,
)

S = GenerationStatus


class TestSplitParagraphs:
    """Tests for the blank-line splitter."""

    def test_splits_on_blank_lines(self, sample_story_text):
        assert split_paragraphs(sample_story_text) == [
            "The lighthouse keeper woke before dawn.",
            "A ship appeared on the horizon, sails torn.",
            "By noon the whole village stood on the pier.",
        ]

    def test_whitespace_only_lines_separate(self):
        assert split_paragraphs("one\n   \ntwo\n\n\n\nthree") == ["one", "two", "three"]

    def test_single_newlines_kept(self):
        assert split_paragraphs("line one\nline two") == ["line one\nline two"]

    def test_empty(self):
        assert split_paragraphs("  \n\n ") == []


class TestSegmentationService:
    """Tests for segmentation with fallback."""

    async def test_simple_method_is_local(self, registry, segmenter, sample_story_text):
        result = await SegmentationService(registry).segment(
            sample_story_text, SegmentationMethod.SIMPLE, Credentials()
        )

        assert len(result.paragraphs) == 3
        assert result.method == SegmentationMethod.SIMPLE
        assert not result.used_fallback
        assert segmenter.calls == 0

    async def test_remote_method(self, registry, sample_story_text):
        result = await SegmentationService(registry).segment(
            sample_story_text, SegmentationMethod.GEMINI, Credentials(google="key")
        )

        assert result.paragraphs == ["First paragraph.", "Second paragraph."]
        assert result.method == SegmentationMethod.GEMINI

    async def test_remote_failure_falls_back(self, registry, segmenter, sample_story_text):
        segmenter.fail = True

        result = await SegmentationService(registry).segment(
            sample_story_text, SegmentationMethod.GEMINI, Credentials(google="key")
        )

        assert result.used_fallback
        assert "unavailable" in result.fallback_reason
        assert result.method == SegmentationMethod.SIMPLE
        assert result.paragraphs == split_paragraphs(sample_story_text)

    async def test_empty_text_rejected(self, registry):
        with pytest.raises(ValidationError) as exc_info:
            await SegmentationService(registry).segment("   ", SegmentationMethod.SIMPLE, Credentials())

        assert exc_info.value.field == "text"


class TestCommitParagraphs:
    """Tests for building the paragraph tree."""

    def test_fresh_commit(self):
        paragraphs = commit_paragraphs(["One.", "  ", "Two."], scene_count=3)

        assert [p.text for p in paragraphs] == ["One.", "Two."]
        for paragraph in paragraphs:
            assert len(paragraph.scenes) == 3
            assert paragraph.audio_status == S.IDLE
            assert all(s.start_prompt == "" and s.video_status == S.IDLE for s in paragraph.scenes)
        assert len({s.id for p in paragraphs for s in p.scenes}) == 6

    def test_recommit_keeps_narration_not_scenes(self):
        previous = [
            Paragraph(
                id="keep",
                text="One.",
                audio_status=S.SUCCESS,
                audio=Asset(mime_type="audio/wav", data=b"wav"),
                scenes=[Scene(id="old", start_prompt="old prompt")],
            ),
            Paragraph(id="pending", text="Two.", audio_status=S.PENDING),
        ]

        paragraphs = commit_paragraphs(["One.", "Two.", "Three."], scene_count=2, previous=previous)

        assert paragraphs[0].id == "keep"
        assert paragraphs[0].audio.data == b"wav"
        assert [s.start_prompt for s in paragraphs[0].scenes] == ["", ""]
        assert "old" not in [s.id for s in paragraphs[0].scenes]
        assert paragraphs[1].audio_status == S.IDLE
        assert paragraphs[2].id not in ("keep", "pending")

    def test_rejects_empty_segments(self):
        with pytest.raises(ValidationError):
            commit_paragraphs(["", "  "], scene_count=1)

    def test_rejects_zero_scenes(self):
        with pytest.raises(ValidationError) as exc_info:
            commit_paragraphs(["One."], scene_count=0)

        assert exc_info.value.field == "scene_count"


class TestStoryboard:
    """Tests for scene prompt generation."""

    async def test_fills_prompts(self, registry, settings):
        paragraphs = commit_paragraphs(["A storm.", "Calm."], scene_count=2)
        completed = []

        result = await StoryboardService(registry).generate_prompts(
            paragraphs, settings, on_paragraph_complete=completed.append
        )

        assert [s.start_prompt for s in result[0].scenes] == ["A storm. start 1", "A storm. start 2"]
        assert result[1].scenes[1].end_prompt == "Calm. end 2"
        assert [p.id for p in completed] == [p.id for p in paragraphs]

    async def test_existing_prompts_kept(self, registry, settings, prompt_writer):
        paragraph = Paragraph(text="Done.", scenes=[Scene(start_prompt="mine", end_prompt="also mine")])

        result = await StoryboardService(registry).generate_prompts([paragraph], settings)

        assert result[0] is paragraph
        assert prompt_writer.calls == 0

    async def test_overwrite_replaces_prompts(self, registry, settings):
        paragraph = Paragraph(text="Done.", scenes=[Scene(start_prompt="mine", end_prompt="also mine")])

        result = await StoryboardService(registry).generate_prompts([paragraph], settings, overwrite=True)

        assert result[0].scenes[0].start_prompt == "Done. start 1"

    async def test_partial_prompt_only_fills_gap(self, registry, settings):
        paragraph = Paragraph(text="Half.", scenes=[Scene(start_prompt="mine")])

        result = await StoryboardService(registry).generate_prompts([paragraph], settings)

        assert result[0].scenes[0].start_prompt == "mine"
        assert result[0].scenes[0].end_prompt == "Half. end 1"

    async def test_extra_prompts_truncated(self, registry, settings, prompt_writer):
        prompt_writer.extra = 2
        paragraphs = commit_paragraphs(["Many."], scene_count=1)

        result = await StoryboardService(registry).generate_prompts(paragraphs, settings)

        assert len(result[0].scenes) == 1
        assert result[0].scenes[0].start_prompt == "Many. start 1"

    async def test_writer_failure_uses_placeholders(self, registry, settings, prompt_writer):
        prompt_writer.fail = True
        paragraphs = commit_paragraphs(["A very long paragraph about the sea."], scene_count=2)

        result = await StoryboardService(registry).generate_prompts(paragraphs, settings)

        for scene in result[0].scenes:
            assert scene.start_prompt == "Scene from: A very long paragrap..."
            assert scene.end_prompt == "Camera zooms out."


class TestRewritePrompt:
    """Tests for single prompt rewrites."""

    async def test_rewrite(self, registry, settings):
        paragraph = Paragraph(text="x", scenes=[Scene(id="s1", start_prompt="a", end_prompt="b")])

        prompt = await StoryboardService(registry).rewrite_prompt(paragraph, "s1", "end", settings)

        assert prompt == "rewritten end: b"

    async def test_failure_keeps_current(self, registry, settings, prompt_writer):
        prompt_writer.fail = True
        paragraph = Paragraph(text="x", scenes=[Scene(id="s1", start_prompt="a", end_prompt="b")])

        prompt = await StoryboardService(registry).rewrite_prompt(paragraph, "s1", "start", settings)

        assert prompt == "a"

    async def test_unknown_scene(self, registry, settings):
        with pytest.raises(NotFoundError):
            await StoryboardService(registry).rewrite_prompt(Paragraph(text="x"), "nope", "start", settings)
