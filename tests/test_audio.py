"""
Tests for PCM conversion helpers and microphone capture windowing.
"""

import asyncio

import numpy as np
import pytest

from src.audio import (
    float_to_pcm16,
    parse_pcm_rate,
    pcm16_mime_type,
    pcm16_to_float,
    resample,
    to_mono,
)
from src.audio.capture import AudioCapture

from tests.conftest import drain


class TestConversions:
    def test_float_to_pcm16_clips_and_scales(self):
        pcm = float_to_pcm16(np.array([0.0, 1.0, -1.0, 2.0, -2.0], dtype=np.float32))
        values = np.frombuffer(pcm, dtype="<i2").tolist()
        assert values == [0, 32767, -32767, 32767, -32767]

    def test_pcm16_to_float_ignores_trailing_byte(self):
        data = np.array([16384, -16384], dtype="<i2").tobytes() + b"\x01"
        floats = pcm16_to_float(data)
        assert floats.tolist() == pytest.approx([0.5, -0.5])

    def test_pcm16_to_float_interleaved(self):
        data = np.array([100, 200, 300, 400], dtype="<i2").tobytes()
        assert pcm16_to_float(data, channels=2).shape == (2, 2)

    def test_to_mono_averages_channels(self):
        stereo = np.array([[1.0, 0.0], [0.5, 0.5]], dtype=np.float32)
        assert to_mono(stereo).tolist() == pytest.approx([0.5, 0.5])

    def test_resample_length(self):
        samples = np.zeros(48000, dtype=np.float32)
        assert resample(samples, 48000, 16000).size == 16000
        assert resample(samples, 16000, 16000) is samples

    @staticmethod
    def _tone(freq, rate=48000, seconds=1.0):
        t = np.arange(int(rate * seconds)) / rate
        return (0.5 * np.sin(2 * np.pi * freq * t)).astype(np.float32)

    @staticmethod
    def _rms(samples):
        return float(np.sqrt(np.mean(np.square(samples[100:-100], dtype=np.float64))))

    def test_resample_attenuates_tone_above_target_nyquist(self):
        # 10 kHz cannot be represented at 16 kHz and must not fold back to 6 kHz.
        tone = self._tone(10000)
        out = resample(tone, 48000, 16000)
        assert self._rms(out) < 0.1 * self._rms(tone)

    def test_resample_preserves_speech_band_tone(self):
        tone = self._tone(1000)
        out = resample(tone, 48000, 16000)
        assert out.dtype == np.float32
        assert self._rms(out) == pytest.approx(self._rms(tone), rel=0.05)

    def test_mime_rate_round_trip(self):
        assert pcm16_mime_type(16000) == "audio/pcm;rate=16000"
        assert parse_pcm_rate("audio/pcm;rate=24000") == 24000
        assert parse_pcm_rate("audio/pcm", default=22050) == 22050
        assert parse_pcm_rate("audio/pcm;rate=abc") == 24000


class TestAudioCapture:
    @pytest.mark.asyncio
    async def test_emits_fixed_windows_at_wire_rate(self):
        chunks = []
        capture = AudioCapture(chunks.append, chunk_samples=1024)
        capture.start()

        # 48 kHz stereo in, 16 kHz mono out: 6144 frames -> 2048 samples -> two windows.
        capture.on_buffer(np.full((6144, 2), 0.25, dtype=np.float32), 48000)
        await drain()

        assert len(chunks) == 2
        assert all(len(c) == 2048 for c in chunks)

    @pytest.mark.asyncio
    async def test_partial_window_is_buffered(self):
        chunks = []
        capture = AudioCapture(chunks.append, chunk_samples=4096)
        capture.start()

        capture.on_buffer(np.zeros(3000, dtype=np.float32), 16000)
        await drain()
        assert chunks == []

        capture.on_buffer(np.zeros(1096, dtype=np.float32), 16000)
        await drain()
        assert len(chunks) == 1

    @pytest.mark.asyncio
    async def test_buffers_from_device_thread(self):
        chunks = []
        capture = AudioCapture(chunks.append, chunk_samples=512)
        capture.start()

        await asyncio.to_thread(capture.on_buffer, np.zeros(1024, dtype=np.float32), 16000)
        await drain()

        assert len(chunks) == 2

    @pytest.mark.asyncio
    async def test_nothing_emitted_after_stop(self):
        chunks = []
        capture = AudioCapture(chunks.append, chunk_samples=256)
        capture.start()
        capture.on_buffer(np.zeros(256, dtype=np.float32), 16000)
        capture.stop()
        await drain()

        capture.on_buffer(np.zeros(256, dtype=np.float32), 16000)
        await drain()
        assert chunks == []
