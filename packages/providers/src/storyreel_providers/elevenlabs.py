"""ElevenLabs text-to-speech adapter."""

from typing import Optional

from storyreel_core_schemas import VOICES, Asset, ProviderError
from storyreel_providers.base import AudioGenerator, KeyValidator, require_credential
from storyreel_providers.http import HTTPAdapter, translate_transport_errors


class ElevenLabsAdapter(HTTPAdapter, AudioGenerator, KeyValidator):
    """Narration through the ElevenLabs REST API (MP3 output)."""

    PROVIDER = "elevenlabs"
    BASE_URL = "https://api.elevenlabs.io/v1"
    MODEL_ID = "eleven_multilingual_v2"
    OUTPUT_FORMAT = "mp3_22050_32"
    # "Rachel", used when the configured voice is one of the Gemini prebuilt names.
    DEFAULT_VOICE_ID = "21m00Tcm4TlvDq8ikWAM"

    def __init__(self, default_voice_id: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.default_voice_id = default_voice_id or self.DEFAULT_VOICE_ID

    def _headers(self, credential: str) -> dict[str, str]:
        return {"xi-api-key": credential}

    def voice_id(self, voice: str) -> str:
        """Resolve a configured voice into an ElevenLabs voice id."""
        if not voice or voice in VOICES:
            return self.default_voice_id
        return voice

    async def generate_audio(self, text: str, voice: str, credential: Optional[str]) -> Asset:
        key = require_credential(credential, self.PROVIDER)

        with translate_transport_errors(self.PROVIDER):
            async with self._client() as client:
                response = await client.post(
                    f"/text-to-speech/{self.voice_id(voice)}",
                    params={"output_format": self.OUTPUT_FORMAT},
                    headers={**self._headers(key), "Accept": "audio/mpeg"},
                    json={
                        "text": text,
                        "model_id": self.MODEL_ID,
                        "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
                    },
                )
        self._check(response)

        if not response.content:
            raise ProviderError("No audio data returned", provider=self.PROVIDER)
        return Asset(mime_type="audio/mpeg", data=response.content)

    async def validate_key(self, credential: Optional[str]) -> bool:
        if not credential:
            return False
        return await self._probe("/user", self._headers(credential))
