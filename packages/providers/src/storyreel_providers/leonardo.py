"""Leonardo.ai image adapter (create generation, poll, download)."""

import logging
from typing import Any, Optional

from storyreel_core_schemas import AspectRatio, Asset, ProviderError, mime_for_extension
from storyreel_providers.base import ImageGenerator, KeyValidator, require_credential, styled_prompt
from storyreel_providers.http import HTTPAdapter, translate_transport_errors
from storyreel_providers.polling import poll_until

logger = logging.getLogger(__name__)


def leonardo_dimensions(aspect_ratio: AspectRatio, base_size: int = 1024) -> tuple[int, int]:
    """Convert an aspect ratio into pixel dimensions with ``base_size`` on the long edge."""
    width, height = (int(x) for x in aspect_ratio.value.split(":"))
    if width >= height:
        return base_size, round(base_size * height / width)
    return round(base_size * width / height), base_size


class LeonardoAdapter(HTTPAdapter, ImageGenerator, KeyValidator):
    """Image generation through the Leonardo REST API."""

    PROVIDER = "leonardo"
    BASE_URL = "https://cloud.leonardo.ai/api/rest/v1"
    MODEL_ID = "b24e16ff-06e3-43eb-8d33-4416c2d75876"
    POLL_INTERVAL = 2.0
    MAX_POLL_ATTEMPTS = 60

    def _headers(self, credential: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {credential}",
            "Accept": "application/json",
        }

    async def generate_image(
        self,
        prompt: str,
        aspect_ratio: AspectRatio,
        style: str,
        credential: Optional[str],
    ) -> Asset:
        key = require_credential(credential, self.PROVIDER)
        headers = self._headers(key)
        width, height = leonardo_dimensions(aspect_ratio)

        with translate_transport_errors(self.PROVIDER):
            async with self._client() as client:
                response = await client.post(
                    "/generations",
                    headers=headers,
                    json={
                        "prompt": styled_prompt(prompt, style),
                        "num_images": 1,
                        "width": width,
                        "height": height,
                        "modelId": self.MODEL_ID,
                        "alchemy": True,
                    },
                )
                body = self._json(response)
                generation_id = (body.get("sdGenerationJob") or {}).get("generationId")
                if not generation_id:
                    raise ProviderError("No generation ID returned", provider=self.PROVIDER)
                logger.info("Leonardo generation started: %s", generation_id)

                async def fetch() -> dict[str, Any]:
                    status_response = await client.get(f"/generations/{generation_id}", headers=headers)
                    return self._json(status_response).get("generations_by_pk") or {}

                generation = await poll_until(
                    fetch,
                    lambda g: g.get("status") in ("COMPLETE", "FAILED"),
                    provider=self.PROVIDER,
                    interval=self.poll_interval,
                    max_attempts=self.max_poll_attempts,
                )

        if generation.get("status") == "FAILED":
            raise ProviderError("Leonardo generation failed", provider=self.PROVIDER)

        images = generation.get("generated_images") or []
        if not images or not images[0].get("url"):
            raise ProviderError("Leonardo returned no image URL", provider=self.PROVIDER)

        url = images[0]["url"]
        data = await self._download(url)
        extension = url.rsplit(".", 1)[-1].split("?")[0] if "." in url else "png"
        mime_type = mime_for_extension(extension)
        if not mime_type.startswith("image/"):
            mime_type = "image/png"
        return Asset(mime_type=mime_type, data=data)

    async def validate_key(self, credential: Optional[str]) -> bool:
        if not credential:
            return False
        return await self._probe("/me", self._headers(credential))
