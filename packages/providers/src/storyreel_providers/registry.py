"""Capability-keyed adapter registry."""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from storyreel_core_schemas import (
    AudioProvider,
    Credentials,
    GenerationSettings,
    ImageProvider,
    SegmentationMethod,
    VideoProvider,
)
from storyreel_providers.base import (
    AudioGenerator,
    ImageGenerator,
    KeyValidator,
    ScenePromptWriter,
    TextSegmenter,
    VideoGenerator,
)
from storyreel_providers.elevenlabs import ElevenLabsAdapter
from storyreel_providers.gemini import (
    GeminiImageAdapter,
    GeminiSpeechAdapter,
    GeminiTextAdapter,
    VeoVideoAdapter,
)
from storyreel_providers.hailuo import HailuoVideoAdapter
from storyreel_providers.kling import KlingVideoAdapter
from storyreel_providers.leonardo import LeonardoAdapter
from storyreel_providers.openai import OpenAIAdapter, SoraVideoAdapter

logger = logging.getLogger(__name__)

# Which credential slot each provider reads.
IMAGE_CREDENTIALS = {
    ImageProvider.GEMINI_FLASH: "google",
    ImageProvider.IMAGEN_3: "google",
    ImageProvider.IMAGEN_4: "google",
    ImageProvider.LEONARDO: "leonardo",
}
AUDIO_CREDENTIALS = {
    AudioProvider.GEMINI_TTS: "google",
    AudioProvider.ELEVENLABS: "elevenlabs",
}
VIDEO_CREDENTIALS = {
    VideoProvider.VEO: "google",
    VideoProvider.KLING: "kling",
    VideoProvider.HAILUO: "hailuo",
    VideoProvider.SORA: "openai",
}
SEGMENTATION_CREDENTIALS = {
    SegmentationMethod.GEMINI: "google",
    SegmentationMethod.GPT4: "openai",
}


def _credential(credentials: Credentials, slot: str) -> Optional[str]:
    return getattr(credentials, slot)


@dataclass(frozen=True)
class ProviderSet:
    """Adapters and credentials resolved for one generation pass."""

    image: ImageGenerator
    audio: AudioGenerator
    video: VideoGenerator
    image_credential: Optional[str] = None
    audio_credential: Optional[str] = None
    video_credential: Optional[str] = None


class ProviderRegistry:
    """Maps provider tags to adapter factories.

    Factories receive the run's settings so adapters can bake in
    per-run parameters such as the aspect ratio.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        gemini_client_factory: Optional[Callable[[str], Any]] = None,
    ):
        """Initialize the registry with the built-in adapters.

        Args:
            transport: Optional httpx transport shared by REST adapters
            gemini_client_factory: Optional factory building google-genai clients from a key
        """
        http = {"transport": transport}
        gemini = {"client_factory": gemini_client_factory}

        self._images: dict[ImageProvider, Callable[[GenerationSettings], ImageGenerator]] = {
            ImageProvider.GEMINI_FLASH: lambda s: GeminiImageAdapter(ImageProvider.GEMINI_FLASH.value, **gemini),
            ImageProvider.IMAGEN_3: lambda s: GeminiImageAdapter(ImageProvider.IMAGEN_3.value, **gemini),
            ImageProvider.IMAGEN_4: lambda s: GeminiImageAdapter(ImageProvider.IMAGEN_4.value, **gemini),
            ImageProvider.LEONARDO: lambda s: LeonardoAdapter(**http),
        }
        self._audio: dict[AudioProvider, Callable[[GenerationSettings], AudioGenerator]] = {
            AudioProvider.GEMINI_TTS: lambda s: GeminiSpeechAdapter(**gemini),
            AudioProvider.ELEVENLABS: lambda s: ElevenLabsAdapter(**http),
        }
        self._video: dict[VideoProvider, Callable[[GenerationSettings], VideoGenerator]] = {
            VideoProvider.VEO: lambda s: VeoVideoAdapter(aspect_ratio=s.aspect_ratio, transport=transport, **gemini),
            VideoProvider.KLING: lambda s: KlingVideoAdapter(**http),
            VideoProvider.HAILUO: lambda s: HailuoVideoAdapter(**http),
            VideoProvider.SORA: lambda s: SoraVideoAdapter(aspect_ratio=s.aspect_ratio, **http),
        }
        self._segmenters: dict[SegmentationMethod, Callable[[], TextSegmenter]] = {
            SegmentationMethod.GEMINI: lambda: GeminiTextAdapter(**gemini),
            SegmentationMethod.GPT4: lambda: OpenAIAdapter(**http),
        }
        self._validators: dict[str, Callable[[], KeyValidator]] = {
            "google": lambda: GeminiTextAdapter(**gemini),
            "leonardo": lambda: LeonardoAdapter(**http),
            "elevenlabs": lambda: ElevenLabsAdapter(**http),
            "kling": lambda: KlingVideoAdapter(**http),
            "hailuo": lambda: HailuoVideoAdapter(**http),
            "openai": lambda: OpenAIAdapter(**http),
        }
        self._prompt_writer: Callable[[], ScenePromptWriter] = lambda: GeminiTextAdapter(**gemini)

    def register_image(self, tag: ImageProvider, factory: Callable[[GenerationSettings], ImageGenerator]) -> None:
        self._images[tag] = factory

    def register_audio(self, tag: AudioProvider, factory: Callable[[GenerationSettings], AudioGenerator]) -> None:
        self._audio[tag] = factory

    def register_video(self, tag: VideoProvider, factory: Callable[[GenerationSettings], VideoGenerator]) -> None:
        self._video[tag] = factory

    def register_segmenter(self, method: SegmentationMethod, factory: Callable[[], TextSegmenter]) -> None:
        self._segmenters[method] = factory

    def register_prompt_writer(self, factory: Callable[[], ScenePromptWriter]) -> None:
        self._prompt_writer = factory

    def resolve(self, settings: GenerationSettings) -> ProviderSet:
        """Build the adapters selected by ``settings``.

        Raises:
            KeyError: If a selected provider has no registered factory
        """
        credentials = settings.credentials
        providers = ProviderSet(
            image=self._images[settings.image_provider](settings),
            audio=self._audio[settings.audio_provider](settings),
            video=self._video[settings.video_provider](settings),
            image_credential=_credential(credentials, IMAGE_CREDENTIALS[settings.image_provider]),
            audio_credential=_credential(credentials, AUDIO_CREDENTIALS[settings.audio_provider]),
            video_credential=_credential(credentials, VIDEO_CREDENTIALS[settings.video_provider]),
        )
        logger.debug(
            "Resolved providers: image=%s audio=%s video=%s",
            settings.image_provider.value,
            settings.audio_provider.value,
            settings.video_provider.value,
        )
        return providers

    def segmenter(self, method: SegmentationMethod) -> Optional[TextSegmenter]:
        """Adapter for a remote segmentation method, or None for the local splitter."""
        factory = self._segmenters.get(method)
        return factory() if factory else None

    def segmentation_credential(self, method: SegmentationMethod, credentials: Credentials) -> Optional[str]:
        slot = SEGMENTATION_CREDENTIALS.get(method)
        return _credential(credentials, slot) if slot else None

    def prompt_writer(self) -> ScenePromptWriter:
        return self._prompt_writer()

    def validator_for(self, slot: str) -> KeyValidator:
        """Key validator for a credential slot name (``google``, ``leonardo``, ...).

        Raises:
            KeyError: If the slot is unknown
        """
        return self._validators[slot]()

    @property
    def validator_slots(self) -> list[str]:
        return list(self._validators)
