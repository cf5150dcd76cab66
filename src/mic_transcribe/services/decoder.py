from __future__ import annotations

import io
import logging

import soundfile as sf

from mic_transcribe.errors import DecodeError
from mic_transcribe.services.encoder import WAV_CONTENT_TYPE, encode_wav
from mic_transcribe.types import AudioBuffer

logger = logging.getLogger(__name__)


def decode_audio(data: bytes) -> AudioBuffer:
    try:
        samples, sample_rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
    except (sf.SoundFileError, RuntimeError) as exc:
        raise DecodeError(f"Could not decode audio: {exc}") from exc

    # soundfile yields frames x channels
    channels = [samples[:, index] for index in range(samples.shape[1])]
    return AudioBuffer(channels=channels, sample_rate=int(sample_rate))


def prepare_audio(data: bytes, content_type: str) -> tuple[bytes, str]:
    """Convert a captured clip to WAV, or hand back the original bytes if it can't be decoded."""
    try:
        buffer = decode_audio(data)
    except DecodeError as exc:
        logger.warning("Shipping original %s audio unconverted: %s", content_type, exc)
        return data, content_type
    return encode_wav(buffer), WAV_CONTENT_TYPE
