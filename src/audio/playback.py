"""
Gapless playback scheduling for streamed agent audio.

Each decoded chunk starts at ``max(now, next_start_time)`` on the output
clock and the cursor advances by the chunk's playing time, so a continuous
stream plays back to back with no gap or overlap, and a late chunk starts
immediately. Scheduling follows cumulative duration, not arrival time, so
variable decode latency cannot reorder or overlap chunks.

On barge-in every scheduled handle is stopped and the cursor returns to 0.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Set

from prometheus_client import Counter

from ..devices.base import AudioOutput, PlaybackHandle
from ..logging_config import get_logger
from . import PLAYBACK_SAMPLE_RATE, pcm16_to_float, to_mono

logger = get_logger(__name__)

_PLAYBACK_CHUNKS = Counter(
    "live_tutor_playback_chunks_total",
    "Agent audio chunks scheduled for playback",
)
_PLAYBACK_INTERRUPTS = Counter(
    "live_tutor_playback_interrupts_total",
    "Playback interruptions (barge-in or teardown)",
)


class PlaybackScheduler:
    def __init__(self, output: AudioOutput, *, speech_rate: float = 1.0):
        self._output = output
        self.speech_rate = speech_rate
        self.next_start_time = 0.0
        self._scheduled: Set[PlaybackHandle] = set()
        # FIFO: decode + schedule happen strictly in arrival order.
        self._order_lock = asyncio.Lock()
        self._generation = 0

    @property
    def scheduled(self) -> Set[PlaybackHandle]:
        return set(self._scheduled)

    async def enqueue(
        self,
        data: bytes,
        sample_rate: int = PLAYBACK_SAMPLE_RATE,
        channels: int = 1,
    ) -> Optional[float]:
        """Decode and schedule one chunk. Returns its start time, or None if dropped."""
        generation = self._generation
        async with self._order_lock:
            samples = await asyncio.to_thread(pcm16_to_float, data, channels)
            if generation != self._generation:
                logger.debug("Dropping audio chunk decoded across an interrupt")
                return None
            return self._schedule(to_mono(samples), sample_rate)

    def _schedule(self, samples, sample_rate: int) -> Optional[float]:
        if samples.size == 0:
            return None
        rate = self.speech_rate if self.speech_rate > 0 else 1.0
        duration = samples.size / float(sample_rate) / rate
        start_time = max(self._output.current_time, self.next_start_time)

        handle: Optional[PlaybackHandle] = None

        def _ended() -> None:
            if handle is not None:
                self._scheduled.discard(handle)

        handle = self._output.schedule(samples, sample_rate, start_time, rate, _ended)
        self._scheduled.add(handle)
        self.next_start_time = start_time + duration
        _PLAYBACK_CHUNKS.inc()
        return start_time

    def interrupt(self) -> None:
        """Stop everything scheduled and reset the cursor."""
        self._generation += 1
        handles = list(self._scheduled)
        self._scheduled.clear()
        for handle in handles:
            try:
                handle.stop()
            except Exception as e:
                logger.warning("Could not stop audio handle", error=str(e))
        self.next_start_time = 0.0
        if handles:
            _PLAYBACK_INTERRUPTS.inc()
            logger.info("Playback interrupted", stopped=len(handles))
