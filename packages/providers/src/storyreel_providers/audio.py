"""Audio container helpers."""

import io
import wave

# Gemini TTS streams raw 16-bit little-endian mono PCM at 24 kHz.
TTS_SAMPLE_RATE = 24000
TTS_CHANNELS = 1
TTS_SAMPLE_WIDTH = 2


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int = TTS_SAMPLE_RATE,
    channels: int = TTS_CHANNELS,
    sample_width: int = TTS_SAMPLE_WIDTH,
) -> bytes:
    """Wrap raw PCM frames in a WAV container.

    Args:
        pcm: Raw PCM sample data
        sample_rate: Frames per second
        channels: Number of interleaved channels
        sample_width: Bytes per sample

    Returns:
        WAV file bytes
    """
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buffer.getvalue()


def parse_audio_mime(mime_type: str) -> int:
    """Extract the sample rate from an ``audio/L16;rate=24000`` style mime type."""
    for part in mime_type.split(";"):
        key, _, value = part.strip().partition("=")
        if key.lower() == "rate" and value.isdigit():
            return int(value)
    return TTS_SAMPLE_RATE
