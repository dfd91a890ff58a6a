"""Provider adapters for StoryReel."""

from storyreel_providers.audio import pcm_to_wav
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
from storyreel_providers.polling import poll_until
from storyreel_providers.registry import ProviderRegistry, ProviderSet

__all__ = [
    # Contracts
    "AudioGenerator",
    "ImageGenerator",
    "KeyValidator",
    "ScenePromptWriter",
    "TextSegmenter",
    "VideoGenerator",
    # Adapters
    "ElevenLabsAdapter",
    "GeminiImageAdapter",
    "GeminiSpeechAdapter",
    "GeminiTextAdapter",
    "HailuoVideoAdapter",
    "KlingVideoAdapter",
    "LeonardoAdapter",
    "OpenAIAdapter",
    "SoraVideoAdapter",
    "VeoVideoAdapter",
    # Registry
    "ProviderRegistry",
    "ProviderSet",
    # Utilities
    "pcm_to_wav",
    "poll_until",
]
