"""Capability contracts implemented by every provider adapter."""

from abc import ABC, abstractmethod
from typing import Literal, Optional

from storyreel_core_schemas import Asset, AspectRatio, ProviderError, ProviderErrorKind, ScenePrompt


class TextSegmenter(ABC):
    """Splits a story into ordered paragraphs."""

    @abstractmethod
    async def segment_text(self, text: str, credential: Optional[str]) -> list[str]:
        """Split story text into paragraphs.

        Raises:
            SegmentationError: On network or parse failure
        """
        ...


class ScenePromptWriter(ABC):
    """Writes start/end frame prompts for the scenes of a paragraph."""

    @abstractmethod
    async def generate_scene_prompts(
        self,
        paragraph_text: str,
        count: int,
        style: str,
        credential: Optional[str],
    ) -> list[ScenePrompt]:
        ...

    @abstractmethod
    async def rewrite_prompt(
        self,
        paragraph_text: str,
        current_prompt: str,
        which: Literal["start", "end"],
        style: str,
        credential: Optional[str],
    ) -> str:
        ...


class ImageGenerator(ABC):
    """Generates a still frame from a prompt."""

    @abstractmethod
    async def generate_image(
        self,
        prompt: str,
        aspect_ratio: AspectRatio,
        style: str,
        credential: Optional[str],
    ) -> Asset:
        """Generate one image.

        Raises:
            ProviderError: If the provider rejects or fails the request
        """
        ...


class AudioGenerator(ABC):
    """Narrates text into a playable audio container."""

    @abstractmethod
    async def generate_audio(self, text: str, voice: str, credential: Optional[str]) -> Asset:
        ...


class VideoGenerator(ABC):
    """Renders a transition clip between two frames."""

    @abstractmethod
    async def generate_video(
        self,
        start: Asset,
        end: Asset,
        prompt: str,
        credential: Optional[str],
    ) -> Asset:
        """Generate a video interpolating from ``start`` to ``end``.

        Raises:
            ProviderError: If the provider rejects or fails the job
            ProviderTimeoutError: If the job does not finish within the poll budget
        """
        ...


class KeyValidator(ABC):
    """Checks that a credential is accepted by its provider."""

    @abstractmethod
    async def validate_key(self, credential: Optional[str]) -> bool:
        """Return True if the key works. Never raises."""
        ...


def require_credential(credential: Optional[str], provider: str) -> str:
    """Return the credential or raise an AUTH ProviderError if it is missing."""
    if not credential:
        raise ProviderError(
            f"No API key configured for {provider}",
            kind=ProviderErrorKind.AUTH,
            provider=provider,
        )
    return credential


def styled_prompt(prompt: str, style: Optional[str]) -> str:
    """Prefix a prompt with its style hint."""
    if style:
        return f"{style} style. {prompt}"
    return prompt
