"""
Audio format helpers.

The wire format towards Gemini Live is 16-bit little-endian PCM, 16 kHz,
mono. Inbound agent audio is 16-bit PCM at 24 kHz. Internally samples are
float32 in [-1.0, 1.0].
"""

from __future__ import annotations

from math import gcd

import numpy as np
from scipy.signal import resample_poly

WIRE_SAMPLE_RATE = 16000
PLAYBACK_SAMPLE_RATE = 24000
PCM16_BYTES_PER_SAMPLE = 2

__all__ = [
    "PCM16_BYTES_PER_SAMPLE",
    "PLAYBACK_SAMPLE_RATE",
    "WIRE_SAMPLE_RATE",
    "float_to_pcm16",
    "pcm16_mime_type",
    "pcm16_to_float",
    "parse_pcm_rate",
    "resample",
    "to_mono",
]


def pcm16_mime_type(sample_rate: int) -> str:
    return f"audio/pcm;rate={sample_rate}"


def parse_pcm_rate(mime_type: str, default: int = PLAYBACK_SAMPLE_RATE) -> int:
    """Extract the rate parameter from e.g. ``audio/pcm;rate=24000``."""
    for part in (mime_type or "").split(";")[1:]:
        key, _, value = part.strip().partition("=")
        if key == "rate" and value.isdigit():
            return int(value)
    return default


def to_mono(samples: np.ndarray) -> np.ndarray:
    """Average interleaved channels; shape (frames, channels) -> (frames,)."""
    samples = np.asarray(samples, dtype=np.float32)
    if samples.ndim == 2:
        return samples.mean(axis=1).astype(np.float32)
    return samples


def resample(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Polyphase resampling of a mono float signal (anti-alias filtered)."""
    if source_rate == target_rate or samples.size == 0:
        return samples
    divisor = gcd(target_rate, source_rate)
    up = target_rate // divisor
    down = source_rate // divisor
    return resample_poly(samples, up, down).astype(np.float32)


def float_to_pcm16(samples: np.ndarray) -> bytes:
    """Clip to [-1, 1] and scale to signed 16-bit little-endian PCM."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2").tobytes()


def pcm16_to_float(data: bytes, channels: int = 1) -> np.ndarray:
    """Decode 16-bit PCM into float32, shape (frames,) or (frames, channels).

    A trailing odd byte (incomplete sample) is ignored.
    """
    usable = len(data) - (len(data) % (PCM16_BYTES_PER_SAMPLE * channels))
    ints = np.frombuffer(data[:usable], dtype="<i2")
    floats = ints.astype(np.float32) / 32768.0
    if channels > 1:
        return floats.reshape(-1, channels)
    return floats
