"""
Microphone capture conversion.

Device buffers arrive at whatever rate and channel count the microphone
uses, possibly on a device thread. They are converted to the wire format
(PCM16, 16 kHz, mono) and emitted in fixed windows of ``chunk_samples``
samples on the event loop thread. Conversion is cheap enough to run inline;
nothing here awaits.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Callable, Optional

import numpy as np

from ..logging_config import get_logger
from . import PCM16_BYTES_PER_SAMPLE, WIRE_SAMPLE_RATE, float_to_pcm16, resample, to_mono

logger = get_logger(__name__)

ChunkSink = Callable[[bytes], None]


class AudioCapture:
    """Turns raw microphone buffers into wire-format chunks."""

    def __init__(
        self,
        sink: ChunkSink,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        chunk_samples: int = 4096,
        target_rate: int = WIRE_SAMPLE_RATE,
    ):
        self._sink = sink
        self._loop = loop
        self._chunk_bytes = chunk_samples * PCM16_BYTES_PER_SAMPLE
        self._target_rate = target_rate
        self._buffer = bytearray()
        self._lock = threading.Lock()
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._active = True

    def stop(self) -> None:
        self._active = False
        with self._lock:
            self._buffer.clear()

    def on_buffer(self, samples: np.ndarray, sample_rate: int) -> None:
        """Microphone callback: convert, window and hand chunks to the loop."""
        if not self._active:
            return
        mono = to_mono(samples)
        pcm = float_to_pcm16(resample(mono, sample_rate, self._target_rate))

        chunks = []
        with self._lock:
            self._buffer.extend(pcm)
            while len(self._buffer) >= self._chunk_bytes:
                chunks.append(bytes(self._buffer[:self._chunk_bytes]))
                del self._buffer[:self._chunk_bytes]

        for chunk in chunks:
            try:
                self._loop.call_soon_threadsafe(self._emit, chunk)
            except RuntimeError:
                # Loop closed underneath the device thread.
                logger.debug("Dropping microphone chunk; event loop is closed")
                return

    def _emit(self, chunk: bytes) -> None:
        # Re-check on the loop thread: stop() may have run since the hop.
        if self._active:
            self._sink(chunk)
