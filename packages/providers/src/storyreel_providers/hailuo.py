"""Hailuo (MiniMax) first/last frame video adapter."""

import base64
import logging
from typing import Any, Optional

from storyreel_core_schemas import Asset, ProviderError
from storyreel_providers.base import KeyValidator, VideoGenerator, require_credential
from storyreel_providers.http import HTTPAdapter, translate_transport_errors
from storyreel_providers.polling import poll_until

logger = logging.getLogger(__name__)


def data_url(asset: Asset) -> str:
    """Encode an asset as a base64 data URL."""
    return f"data:{asset.mime_type};base64,{base64.b64encode(asset.data).decode('ascii')}"


class HailuoVideoAdapter(HTTPAdapter, VideoGenerator, KeyValidator):
    """Video generation task API: create, poll, resolve file, download."""

    PROVIDER = "hailuo"
    BASE_URL = "https://api.minimax.io/v1"
    VIDEO_MODEL = "MiniMax-Hailuo-02"

    async def generate_video(
        self,
        start: Asset,
        end: Asset,
        prompt: str,
        credential: Optional[str],
    ) -> Asset:
        key = require_credential(credential, self.PROVIDER)
        headers = self._headers(key)

        with translate_transport_errors(self.PROVIDER):
            async with self._client() as client:
                response = await client.post(
                    "/video_generation",
                    headers=headers,
                    json={
                        "model": self.VIDEO_MODEL,
                        "prompt": prompt,
                        "first_frame_image": data_url(start),
                        "last_frame_image": data_url(end),
                        "resolution": "768P",
                        "duration": 6,
                    },
                )
                task_id = self._json(response).get("task_id")
                if not task_id:
                    raise ProviderError("No task ID returned", provider=self.PROVIDER)
                logger.info("Hailuo task started: %s", task_id)

                async def fetch() -> dict[str, Any]:
                    return self._json(await client.get(
                        "/query/video_generation",
                        params={"task_id": task_id},
                        headers=headers,
                    ))

                task = await poll_until(
                    fetch,
                    lambda t: t.get("status") in ("Success", "Fail"),
                    provider=self.PROVIDER,
                    interval=self.poll_interval,
                    max_attempts=self.max_poll_attempts,
                )

                if task.get("status") == "Fail":
                    raise ProviderError("Hailuo task failed", provider=self.PROVIDER)

                file_id = task.get("file_id")
                if not file_id:
                    raise ProviderError("Hailuo returned no file ID", provider=self.PROVIDER)

                retrieved = self._json(await client.get(
                    "/files/retrieve",
                    params={"file_id": file_id},
                    headers=headers,
                ))

        url = (retrieved.get("file") or {}).get("download_url")
        if not url:
            raise ProviderError("Hailuo returned no download URL", provider=self.PROVIDER)

        return Asset(mime_type="video/mp4", data=await self._download(url))

    async def validate_key(self, credential: Optional[str]) -> bool:
        if not credential:
            return False
        return await self._probe("/files/list", self._headers(credential))
