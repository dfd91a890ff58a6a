"""OpenAI adapters: GPT-4o story segmentation and Sora video."""

import json
import logging
from typing import Any, Optional

import httpx

from storyreel_core_schemas import AspectRatio, Asset, ProviderError, SegmentationError
from storyreel_providers.base import KeyValidator, TextSegmenter, VideoGenerator, require_credential
from storyreel_providers.http import HTTPAdapter, translate_transport_errors
from storyreel_providers.polling import poll_until
from storyreel_providers.templates import render
from storyreel_providers.templates.prompts import SEGMENT_PROMPT

logger = logging.getLogger(__name__)


def parse_segments(content: str) -> list[str]:
    """Pull a list of paragraphs out of a JSON chat reply.

    Accepts a bare array or an object with a ``paragraphs`` or ``scenes`` key.
    """
    data = json.loads(content)
    if isinstance(data, dict):
        data = data.get("paragraphs") or data.get("scenes")
    if not isinstance(data, list):
        raise ValueError("reply does not contain a list of paragraphs")
    return [str(item).strip() for item in data if str(item).strip()]


class OpenAIAdapter(HTTPAdapter, TextSegmenter, KeyValidator):
    """Story segmentation through chat completions."""

    PROVIDER = "openai"
    BASE_URL = "https://api.openai.com/v1"
    CHAT_MODEL = "gpt-4o"

    def __init__(self, model: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.model = model or self.CHAT_MODEL

    async def segment_text(self, text: str, credential: Optional[str]) -> list[str]:
        try:
            key = require_credential(credential, self.PROVIDER)
            with translate_transport_errors(self.PROVIDER):
                async with self._client() as client:
                    response = await client.post(
                        "/chat/completions",
                        headers=self._headers(key),
                        json={
                            "model": self.model,
                            "messages": [
                                {"role": "user", "content": render(SEGMENT_PROMPT, text=text, json_object=True)},
                            ],
                            "temperature": 0.3,
                            "response_format": {"type": "json_object"},
                        },
                    )
            body = self._json(response)
            content = body["choices"][0]["message"]["content"] or ""
            paragraphs = parse_segments(content)
        except (ProviderError, KeyError, IndexError, TypeError, ValueError) as e:
            raise SegmentationError(f"OpenAI segmentation failed: {e}", provider=self.PROVIDER) from e

        if not paragraphs:
            raise SegmentationError("OpenAI returned no paragraphs", provider=self.PROVIDER)
        return paragraphs

    async def validate_key(self, credential: Optional[str]) -> bool:
        if not credential:
            return False
        return await self._probe("/models", self._headers(credential))


class SoraVideoAdapter(HTTPAdapter, VideoGenerator):
    """Image-to-video with Sora, seeded from the start frame."""

    PROVIDER = "sora"
    BASE_URL = "https://api.openai.com/v1"
    VIDEO_MODEL = "sora-2"
    SECONDS = "4"

    def __init__(
        self,
        aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE,
        model: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.aspect_ratio = aspect_ratio
        self.model = model or self.VIDEO_MODEL

    @property
    def size(self) -> str:
        return "720x1280" if self.aspect_ratio.is_portrait else "1280x720"

    async def generate_video(
        self,
        start: Asset,
        end: Asset,
        prompt: str,
        credential: Optional[str],
    ) -> Asset:
        # Sora takes a single reference frame; the end frame is conveyed through the prompt.
        key = require_credential(credential, self.PROVIDER)
        headers = self._headers(key)

        with translate_transport_errors(self.PROVIDER):
            async with self._client() as client:
                response = await client.post(
                    "/videos",
                    headers=headers,
                    data={
                        "model": self.model,
                        "prompt": prompt,
                        "seconds": self.SECONDS,
                        "size": self.size,
                    },
                    files={"input_reference": (f"start.{start.extension}", start.data, start.mime_type)},
                )
                job = self._json(response)
                video_id = job.get("id")
                if not video_id:
                    raise ProviderError("No video ID returned", provider=self.PROVIDER)
                logger.info("Sora video job started: %s", video_id)

                async def fetch() -> dict[str, Any]:
                    return self._json(await client.get(f"/videos/{video_id}", headers=headers))

                job = await poll_until(
                    fetch,
                    lambda j: j.get("status") in ("completed", "failed"),
                    provider=self.PROVIDER,
                    interval=self.poll_interval,
                    max_attempts=self.max_poll_attempts,
                    initial=job,
                )

                if job.get("status") == "failed":
                    message = (job.get("error") or {}).get("message", "unknown error")
                    raise ProviderError(f"Sora job failed: {message}", provider=self.PROVIDER)

                content = await client.get(
                    f"/videos/{video_id}/content",
                    headers=headers,
                    timeout=httpx.Timeout(self.DOWNLOAD_TIMEOUT),
                )
        self._check(content)
        return Asset(mime_type="video/mp4", data=content.content)
