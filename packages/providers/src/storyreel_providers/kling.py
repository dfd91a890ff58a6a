"""Kling AI image-to-video adapter."""

import base64
import logging
from typing import Any, Optional

from storyreel_core_schemas import Asset, ProviderError
from storyreel_providers.base import KeyValidator, VideoGenerator, require_credential
from storyreel_providers.http import HTTPAdapter, translate_transport_errors
from storyreel_providers.polling import poll_until

logger = logging.getLogger(__name__)


class KlingVideoAdapter(HTTPAdapter, VideoGenerator, KeyValidator):
    """Start/end frame video through the Kling image2video task API."""

    PROVIDER = "kling"
    BASE_URL = "https://api.klingai.com/v1"
    MODEL_NAME = "kling-v1-6"
    DURATION = "5"

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
                    "/videos/image2video",
                    headers=headers,
                    json={
                        "model_name": self.MODEL_NAME,
                        "image": base64.b64encode(start.data).decode("ascii"),
                        "image_tail": base64.b64encode(end.data).decode("ascii"),
                        "prompt": prompt,
                        "duration": self.DURATION,
                        "mode": "pro",
                    },
                )
                task_id = (self._json(response).get("data") or {}).get("task_id")
                if not task_id:
                    raise ProviderError("No task ID returned", provider=self.PROVIDER)
                logger.info("Kling task started: %s", task_id)

                async def fetch() -> dict[str, Any]:
                    body = self._json(await client.get(f"/videos/image2video/{task_id}", headers=headers))
                    return body.get("data") or {}

                task = await poll_until(
                    fetch,
                    lambda t: t.get("task_status") in ("succeed", "failed"),
                    provider=self.PROVIDER,
                    interval=self.poll_interval,
                    max_attempts=self.max_poll_attempts,
                )

        if task.get("task_status") == "failed":
            message = task.get("task_status_msg") or "unknown error"
            raise ProviderError(f"Kling task failed: {message}", provider=self.PROVIDER)

        videos = (task.get("task_result") or {}).get("videos") or []
        if not videos or not videos[0].get("url"):
            raise ProviderError("Kling returned no video URL", provider=self.PROVIDER)

        return Asset(mime_type="video/mp4", data=await self._download(videos[0]["url"]))

    async def validate_key(self, credential: Optional[str]) -> bool:
        if not credential:
            return False
        return await self._probe("/user", self._headers(credential))
