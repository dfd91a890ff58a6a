"""
Pytest Configuration and Fixtures

Fake provider adapters and sample story trees shared by all tests.
No test talks to a real provider.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Optional

import pytest

from storyreel_core_schemas import (
    AspectRatio,
    Asset,
    AudioProvider,
    Credentials,
    GenerationSettings,
    GenerationStatus,
    ImageProvider,
    Paragraph,
    ProviderError,
    Scene,
    ScenePrompt,
    SegmentationError,
    SegmentationMethod,
    VideoProvider,
)
from storyreel_providers import (
    AudioGenerator,
    ImageGenerator,
    ProviderRegistry,
    ProviderSet,
    ScenePromptWriter,
    TextSegmenter,
    VideoGenerator,
)


class FakeImageGenerator(ImageGenerator):
    """Returns a PNG asset whose bytes encode the prompt; fails for listed prompts."""

    def __init__(self, fail_prompts=(), crash_prompts=()):
        self.calls: list[str] = []
        self.fail_prompts = set(fail_prompts)
        self.crash_prompts = set(crash_prompts)

    async def generate_image(self, prompt, aspect_ratio, style, credential) -> Asset:
        self.calls.append(prompt)
        if prompt in self.fail_prompts:
            raise ProviderError(f"image failed: {prompt}", provider="fake")
        if prompt in self.crash_prompts:
            raise RuntimeError("adapter bug")
        return Asset(mime_type="image/png", data=f"img:{prompt}".encode())


class FakeAudioGenerator(AudioGenerator):
    def __init__(self, fail_texts=()):
        self.calls: list[str] = []
        self.fail_texts = set(fail_texts)

    async def generate_audio(self, text, voice, credential) -> Asset:
        self.calls.append(text)
        if text in self.fail_texts:
            raise ProviderError(f"audio failed: {text}", provider="fake")
        return Asset(mime_type="audio/wav", data=f"wav:{text}".encode())


class FakeVideoGenerator(VideoGenerator):
    """Records the frames it was given; optionally observes the store while running."""

    def __init__(self, fail=False, observer=None):
        self.calls: list[tuple[bytes, bytes, str]] = []
        self.fail = fail
        self.observer = observer

    async def generate_video(self, start, end, prompt, credential) -> Asset:
        self.calls.append((start.data, end.data, prompt))
        if self.observer:
            self.observer()
        if self.fail:
            raise ProviderError("video failed", provider="fake")
        return Asset(mime_type="video/mp4", data=b"mp4:" + start.data + b"|" + end.data)


class FakeSegmenter(TextSegmenter):
    def __init__(self, paragraphs: Optional[list[str]] = None, fail: bool = False):
        self.paragraphs = paragraphs or []
        self.fail = fail
        self.calls = 0

    async def segment_text(self, text, credential) -> list[str]:
        self.calls += 1
        if self.fail:
            raise SegmentationError("segmentation service unavailable", provider="fake")
        return list(self.paragraphs)


class FakePromptWriter(ScenePromptWriter):
    def __init__(self, fail: bool = False, extra: int = 0):
        self.fail = fail
        self.extra = extra
        self.calls = 0

    async def generate_scene_prompts(self, paragraph_text, count, style, credential) -> list[ScenePrompt]:
        self.calls += 1
        if self.fail:
            raise ProviderError("prompt writer down", provider="fake")
        return [
            ScenePrompt(start=f"{paragraph_text} start {i}", end=f"{paragraph_text} end {i}")
            for i in range(1, count + self.extra + 1)
        ]

    async def rewrite_prompt(self, paragraph_text, current_prompt, which, style, credential) -> str:
        if self.fail:
            raise ProviderError("prompt writer down", provider="fake")
        return f"rewritten {which}: {current_prompt}"


def make_paragraphs(count: int = 2, scenes: int = 1) -> list[Paragraph]:
    """Idle paragraphs with predictable ids and prompts (p1/p1s1 start, ...)."""
    return [
        Paragraph(
            id=f"p{p}",
            text=f"Paragraph {p} text.",
            scenes=[
                Scene(id=f"p{p}s{s}", start_prompt=f"p{p}s{s} start", end_prompt=f"p{p}s{s} end")
                for s in range(1, scenes + 1)
            ],
        )
        for p in range(1, count + 1)
    ]


def success_asset(mime_type: str = "image/png", data: bytes = b"done") -> Asset:
    return Asset(mime_type=mime_type, data=data)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(google="test-google-key", leonardo="test-leonardo-key")


@pytest.fixture
def settings(credentials) -> GenerationSettings:
    """Default settings with fake credentials."""
    return GenerationSettings(scene_count=1, aspect_ratio=AspectRatio.LANDSCAPE, credentials=credentials)


@pytest.fixture
def image_generator() -> FakeImageGenerator:
    return FakeImageGenerator()


@pytest.fixture
def audio_generator() -> FakeAudioGenerator:
    return FakeAudioGenerator()


@pytest.fixture
def video_generator() -> FakeVideoGenerator:
    return FakeVideoGenerator()


@pytest.fixture
def providers(image_generator, audio_generator, video_generator) -> ProviderSet:
    return ProviderSet(
        image=image_generator,
        audio=audio_generator,
        video=video_generator,
        image_credential="test-google-key",
        audio_credential="test-google-key",
        video_credential="test-google-key",
    )


@pytest.fixture
def segmenter() -> FakeSegmenter:
    return FakeSegmenter(["First paragraph.", "Second paragraph."])


@pytest.fixture
def prompt_writer() -> FakePromptWriter:
    return FakePromptWriter()


@pytest.fixture
def registry(image_generator, audio_generator, video_generator, segmenter, prompt_writer) -> ProviderRegistry:
    """Registry whose default providers are all fakes."""
    registry = ProviderRegistry()
    registry.register_image(ImageProvider.GEMINI_FLASH, lambda s: image_generator)
    registry.register_audio(AudioProvider.GEMINI_TTS, lambda s: audio_generator)
    registry.register_video(VideoProvider.VEO, lambda s: video_generator)
    registry.register_segmenter(SegmentationMethod.GEMINI, lambda: segmenter)
    registry.register_prompt_writer(lambda: prompt_writer)
    return registry


@pytest.fixture
def sample_story_text() -> str:
    return (
        "The lighthouse keeper woke before dawn.\n\n"
        "A ship appeared on the horizon, sails torn.\n\n"
        "By noon the whole village stood on the pier."
    )


@pytest.fixture(autouse=True)
def clear_provider_env(monkeypatch):
    """Keep real API keys in the environment out of tests."""
    for var in Credentials.ENV_VARS.values():
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("GOOGLE_API_KEY", "test-google-key")


def statuses(paragraph: Paragraph) -> list[GenerationStatus]:
    """Audio status followed by start/end/video status of every scene."""
    result = [paragraph.audio_status]
    for scene in paragraph.scenes:
        result.extend([scene.start_image_status, scene.end_image_status, scene.video_status])
    return result
