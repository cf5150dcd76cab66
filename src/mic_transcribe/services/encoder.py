"""WAV container encoding.

Produces the canonical 44-byte-header RIFF/WAVE layout with 16-bit little-endian
PCM samples, interleaved frame by frame.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

import numpy as np

from mic_transcribe.types import AudioBuffer

HEADER_SIZE = 44
BITS_PER_SAMPLE = 16
BYTES_PER_SAMPLE = 2
PCM_FORMAT = 1
PCM_SCALE = 32767.0
WAV_CONTENT_TYPE = "audio/wav"

# RIFF id, riff size, WAVE id, fmt id, fmt size, format, channels, rate,
# byte rate, block align, bits per sample, data id, data size
_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


@dataclass(frozen=True, slots=True)
class WavHeader:
    riff_size: int
    audio_format: int
    channel_count: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_length: int


def encode_wav(buffer: AudioBuffer) -> bytes:
    """Encode a decoded audio buffer as a 16-bit PCM WAV container.

    Args:
        buffer: Float samples per channel, normalized to [-1, 1].

    Returns:
        Header followed by ``frame_count * channel_count`` int16 samples in
        frame-major, channel-minor order.

    Raises:
        ValueError: If the buffer has no channels or uneven channel lengths.
    """
    if buffer.channel_count < 1:
        raise ValueError("Audio buffer must have at least one channel")
    frame_count = buffer.frame_count
    if any(len(channel) != frame_count for channel in buffer.channels):
        raise ValueError("Audio buffer channels must share a frame count")

    channel_count = buffer.channel_count
    data_length = frame_count * channel_count * BYTES_PER_SAMPLE
    header = _HEADER.pack(
        b"RIFF",
        36 + data_length,
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT,
        channel_count,
        buffer.sample_rate,
        buffer.sample_rate * channel_count * BYTES_PER_SAMPLE,
        channel_count * BYTES_PER_SAMPLE,
        BITS_PER_SAMPLE,
        b"data",
        data_length,
    )

    frames = np.stack(
        [np.asarray(channel, dtype=np.float64) for channel in buffer.channels],
        axis=1,
    )
    clipped = np.clip(frames, -1.0, 1.0)
    pcm = (clipped * PCM_SCALE).astype("<i2")
    return header + pcm.tobytes()


def decode_wav_header(data: bytes) -> WavHeader:
    """Read back the fixed header fields written by :func:`encode_wav`."""
    if len(data) < HEADER_SIZE:
        raise ValueError(f"WAV data shorter than {HEADER_SIZE} bytes")
    fields = _HEADER.unpack_from(data)
    if fields[0] != b"RIFF" or fields[2] != b"WAVE" or fields[11] != b"data":
        raise ValueError("Not a canonical RIFF/WAVE container")
    return WavHeader(
        riff_size=fields[1],
        audio_format=fields[5],
        channel_count=fields[6],
        sample_rate=fields[7],
        byte_rate=fields[8],
        block_align=fields[9],
        bits_per_sample=fields[10],
        data_length=fields[12],
    )


def pcm16_samples(data: bytes) -> np.ndarray:
    """Return the interleaved PCM payload as float32 frames x channels."""
    header = decode_wav_header(data)
    pcm = np.frombuffer(data, dtype="<i2", offset=HEADER_SIZE, count=header.data_length // BYTES_PER_SAMPLE)
    return (pcm.astype(np.float32) / PCM_SCALE).reshape(-1, header.channel_count)
