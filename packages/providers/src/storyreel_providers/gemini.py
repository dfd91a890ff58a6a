"""Google adapters: Gemini text, Gemini/Imagen images, Gemini TTS and Veo video."""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Literal, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from storyreel_core_schemas import (
    AspectRatio,
    Asset,
    ProviderError,
    ProviderErrorKind,
    ScenePrompt,
    SegmentationError,
)
from storyreel_providers.audio import parse_audio_mime, pcm_to_wav
from storyreel_providers.base import (
    AudioGenerator,
    ImageGenerator,
    KeyValidator,
    ScenePromptWriter,
    TextSegmenter,
    VideoGenerator,
    require_credential,
    styled_prompt,
)
from storyreel_providers.http import error_from_response, translate_transport_errors
from storyreel_providers.polling import poll_until
from storyreel_providers.templates import render
from storyreel_providers.templates.prompts import REWRITE_PROMPT, SCENE_PROMPTS_PROMPT, SEGMENT_PROMPT

logger = logging.getLogger(__name__)

_SEGMENTS = TypeAdapter(list[str])
_SCENE_PROMPTS = TypeAdapter(list[ScenePrompt])


@contextmanager
def translate_api_errors(provider: str) -> Iterator[None]:
    """Re-raise google-genai API errors as ProviderError."""
    try:
        yield
    except genai_errors.APIError as e:
        raise ProviderError(
            e.message or str(e),
            kind=ProviderErrorKind.from_status_code(e.code),
            provider=provider,
            status_code=e.code,
        ) from e


def extract_json_text(response) -> str:
    """Extract and clean JSON text from a Gemini response.

    Handles missing candidates, safety blocks and code fences.

    Raises:
        RuntimeError: If no JSON text can be extracted
    """
    if response is None or not getattr(response, "candidates", None):
        raise RuntimeError(
            "Gemini API response has no candidates. "
            "This may indicate content was blocked or an API error occurred."
        )

    candidate = response.candidates[0]
    finish_reason = str(getattr(candidate, "finish_reason", "") or "")
    if "SAFETY" in finish_reason:
        raise RuntimeError(f"Gemini blocked response due to safety filters: {finish_reason}")

    text = response.text
    if not text or not text.strip():
        raise RuntimeError("Gemini API returned empty text.")

    text = text.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        text = text[first_newline + 1:] if first_newline != -1 else text[3:]
    if text.endswith("```"):
        text = text[:-3]

    return text.strip()


def inline_payload(response) -> Optional[types.Blob]:
    """Return the first inline binary part of a response, if any."""
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            if part.inline_data is not None and part.inline_data.data:
                return part.inline_data
    return None


class GeminiAdapter:
    """Base for adapters backed by a google-genai client.

    Clients are created lazily, one per API key.
    """

    PROVIDER = "gemini"

    def __init__(self, client_factory: Optional[Callable[[str], Any]] = None):
        self._client_factory = client_factory or (lambda key: genai.Client(api_key=key))
        self._clients: dict[str, Any] = {}

    def _client(self, credential: Optional[str]):
        key = require_credential(credential, self.PROVIDER)
        if key not in self._clients:
            self._clients[key] = self._client_factory(key)
        return self._clients[key]


class GeminiTextAdapter(GeminiAdapter, TextSegmenter, ScenePromptWriter, KeyValidator):
    """Segmentation, storyboard prompts and key checks on Gemini Flash."""

    TEXT_MODEL = "gemini-2.5-flash"

    def __init__(
        self,
        model: Optional[str] = None,
        client_factory: Optional[Callable[[str], Any]] = None,
    ):
        super().__init__(client_factory)
        self.model = model or self.TEXT_MODEL

    async def segment_text(self, text: str, credential: Optional[str]) -> list[str]:
        """Split a story into paragraphs suitable for video adaptation.

        Raises:
            SegmentationError: If the call fails or the reply is not a list of strings
        """
        try:
            client = self._client(credential)
            with translate_api_errors(self.PROVIDER):
                response = await client.aio.models.generate_content(
                    model=self.model,
                    contents=render(SEGMENT_PROMPT, text=text, json_object=False),
                    config=types.GenerateContentConfig(
                        response_mime_type="application/json",
                        response_schema=list[str],
                    ),
                )
            paragraphs = _SEGMENTS.validate_json(extract_json_text(response))
        except (ProviderError, RuntimeError, PydanticValidationError, httpx.HTTPError) as e:
            raise SegmentationError(f"Gemini segmentation failed: {e}", provider=self.PROVIDER) from e

        paragraphs = [p.strip() for p in paragraphs if p and p.strip()]
        if not paragraphs:
            raise SegmentationError("Gemini returned no paragraphs", provider=self.PROVIDER)
        return paragraphs

    async def generate_scene_prompts(
        self,
        paragraph_text: str,
        count: int,
        style: str,
        credential: Optional[str],
    ) -> list[ScenePrompt]:
        """Describe ``count`` scenes of a paragraph as start/end frame prompts.

        Raises:
            ProviderError: If the call fails or the reply cannot be parsed
        """
        client = self._client(credential)
        with translate_api_errors(self.PROVIDER), translate_transport_errors(self.PROVIDER):
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=render(SCENE_PROMPTS_PROMPT, paragraph=paragraph_text, count=count, style=style),
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=list[ScenePrompt],
                ),
            )
        try:
            return _SCENE_PROMPTS.validate_json(extract_json_text(response))
        except (RuntimeError, PydanticValidationError) as e:
            raise ProviderError(f"Could not parse scene prompts: {e}", provider=self.PROVIDER) from e

    async def rewrite_prompt(
        self,
        paragraph_text: str,
        current_prompt: str,
        which: Literal["start", "end"],
        style: str,
        credential: Optional[str],
    ) -> str:
        client = self._client(credential)
        with translate_api_errors(self.PROVIDER), translate_transport_errors(self.PROVIDER):
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=render(
                    REWRITE_PROMPT,
                    paragraph=paragraph_text,
                    current_prompt=current_prompt,
                    which=which,
                    style=style,
                ),
            )
        text = (response.text or "").strip()
        if not text:
            raise ProviderError("Gemini returned an empty prompt", provider=self.PROVIDER)
        return text

    async def validate_key(self, credential: Optional[str]) -> bool:
        if not credential:
            return False
        try:
            client = self._client(credential)
            await client.aio.models.generate_content(model=self.model, contents="test")
            return True
        except Exception as e:
            logger.warning("Gemini key validation failed: %s", e)
            return False


class GeminiImageAdapter(GeminiAdapter, ImageGenerator):
    """Image generation on Gemini Flash Image or Imagen.

    Imagen models fall back to Gemini Flash Image when the model is not
    found or not enabled for the key (HTTP 404/403). Other models and other
    errors are never retried.
    """

    FLASH_MODEL = "gemini-2.5-flash-image"
    FALLBACK_STATUS_CODES = (403, 404)

    def __init__(
        self,
        model: Optional[str] = None,
        fallback_to_flash: bool = True,
        client_factory: Optional[Callable[[str], Any]] = None,
    ):
        super().__init__(client_factory)
        self.model = model or self.FLASH_MODEL
        self.fallback_to_flash = fallback_to_flash

    @property
    def is_imagen(self) -> bool:
        return self.model.startswith("imagen")

    async def generate_image(
        self,
        prompt: str,
        aspect_ratio: AspectRatio,
        style: str,
        credential: Optional[str],
    ) -> Asset:
        client = self._client(credential)
        full_prompt = styled_prompt(prompt, style)

        if not self.is_imagen:
            return await self._generate_flash(client, self.model, full_prompt, aspect_ratio)

        try:
            return await self._generate_imagen(client, full_prompt, aspect_ratio)
        except ProviderError as e:
            if not self.fallback_to_flash or e.status_code not in self.FALLBACK_STATUS_CODES:
                raise
            logger.warning(
                "Imagen model %s unavailable (%s); falling back to %s",
                self.model, e.status_code, self.FLASH_MODEL,
            )
            return await self._generate_flash(client, self.FLASH_MODEL, full_prompt, aspect_ratio)

    async def _generate_flash(self, client, model: str, prompt: str, aspect_ratio: AspectRatio) -> Asset:
        with translate_api_errors(self.PROVIDER), translate_transport_errors(self.PROVIDER):
            response = await client.aio.models.generate_content(
                model=model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    response_modalities=["IMAGE", "TEXT"],
                    image_config=types.ImageConfig(aspect_ratio=aspect_ratio.value),
                ),
            )

        blob = inline_payload(response)
        if blob is None:
            raise ProviderError(f"No image data returned from {model}", provider=self.PROVIDER)
        return Asset(mime_type=blob.mime_type or "image/png", data=blob.data)

    async def _generate_imagen(self, client, prompt: str, aspect_ratio: AspectRatio) -> Asset:
        with translate_api_errors(self.PROVIDER), translate_transport_errors(self.PROVIDER):
            response = await client.aio.models.generate_images(
                model=self.model,
                prompt=prompt,
                config=types.GenerateImagesConfig(
                    number_of_images=1,
                    aspect_ratio=aspect_ratio.value,
                    output_mime_type="image/png",
                ),
            )

        images = response.generated_images or []
        if not images or images[0].image is None or not images[0].image.image_bytes:
            raise ProviderError(f"No image data returned from {self.model}", provider=self.PROVIDER)
        image = images[0].image
        return Asset(mime_type=image.mime_type or "image/png", data=image.image_bytes)


class GeminiSpeechAdapter(GeminiAdapter, AudioGenerator):
    """Narration with Gemini TTS, repackaged from raw PCM into WAV."""

    TTS_MODEL = "gemini-2.5-flash-preview-tts"

    def __init__(
        self,
        model: Optional[str] = None,
        client_factory: Optional[Callable[[str], Any]] = None,
    ):
        super().__init__(client_factory)
        self.model = model or self.TTS_MODEL

    async def generate_audio(self, text: str, voice: str, credential: Optional[str]) -> Asset:
        client = self._client(credential)
        with translate_api_errors(self.PROVIDER), translate_transport_errors(self.PROVIDER):
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=text,
                config=types.GenerateContentConfig(
                    response_modalities=["AUDIO"],
                    speech_config=types.SpeechConfig(
                        voice_config=types.VoiceConfig(
                            prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
                        ),
                    ),
                ),
            )

        blob = inline_payload(response)
        if blob is None:
            raise ProviderError("No audio data returned", provider=self.PROVIDER)

        sample_rate = parse_audio_mime(blob.mime_type or "")
        return Asset(mime_type="audio/wav", data=pcm_to_wav(blob.data, sample_rate=sample_rate))


class VeoVideoAdapter(GeminiAdapter, VideoGenerator):
    """First-frame/last-frame interpolation with Veo (long-running operation)."""

    PROVIDER = "veo"
    VIDEO_MODEL = "veo-3.1-fast-generate-preview"
    RESOLUTION = "720p"

    def __init__(
        self,
        aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE,
        model: Optional[str] = None,
        poll_interval: float = 5.0,
        max_poll_attempts: int = 60,
        client_factory: Optional[Callable[[str], Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(client_factory)
        self.aspect_ratio = aspect_ratio
        self.model = model or self.VIDEO_MODEL
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self._transport = transport

    @property
    def veo_aspect_ratio(self) -> str:
        # Veo renders landscape or portrait only.
        return "9:16" if self.aspect_ratio.is_portrait else "16:9"

    async def generate_video(
        self,
        start: Asset,
        end: Asset,
        prompt: str,
        credential: Optional[str],
    ) -> Asset:
        client = self._client(credential)

        with translate_api_errors(self.PROVIDER), translate_transport_errors(self.PROVIDER):
            operation = await client.aio.models.generate_videos(
                model=self.model,
                prompt=prompt,
                image=types.Image(image_bytes=start.data, mime_type=start.mime_type),
                config=types.GenerateVideosConfig(
                    number_of_videos=1,
                    resolution=self.RESOLUTION,
                    aspect_ratio=self.veo_aspect_ratio,
                    last_frame=types.Image(image_bytes=end.data, mime_type=end.mime_type),
                ),
            )
            logger.info("Veo operation started: %s", getattr(operation, "name", "?"))

            operation = await poll_until(
                lambda: client.aio.operations.get(operation),
                lambda op: bool(op.done),
                provider=self.PROVIDER,
                interval=self.poll_interval,
                max_attempts=self.max_poll_attempts,
                initial=operation,
            )

        if operation.error:
            raise ProviderError(f"Veo operation failed: {operation.error}", provider=self.PROVIDER)

        generated = operation.response.generated_videos if operation.response else None
        if not generated or generated[0].video is None:
            raise ProviderError("No video returned", provider=self.PROVIDER)

        video = generated[0].video
        if video.video_bytes:
            return Asset(mime_type=video.mime_type or "video/mp4", data=video.video_bytes)
        if not video.uri:
            raise ProviderError("Veo returned neither bytes nor a URI", provider=self.PROVIDER)

        data = await self._download(video.uri, credential)
        return Asset(mime_type=video.mime_type or "video/mp4", data=data)

    async def _download(self, uri: str, credential: str) -> bytes:
        with translate_transport_errors(self.PROVIDER):
            async with httpx.AsyncClient(
                timeout=300.0,
                transport=self._transport,
                follow_redirects=True,
            ) as http:
                response = await http.get(uri, headers={"x-goog-api-key": credential})
        if response.is_error:
            raise error_from_response(response, self.PROVIDER)
        return response.content
