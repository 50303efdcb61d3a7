"""
Device interfaces consumed by the session orchestrator.

Camera/microphone acquisition and the speaker are platform concerns; the
orchestrator only depends on these abstract contracts.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

import numpy as np

# (samples, sample_rate): float32 frames, mono (n,) or interleaved (n, channels).
# May be invoked from a device thread.
MicrophoneCallback = Callable[[np.ndarray, int], None]


class MediaDevices(ABC):
    """Camera + microphone owned for the duration of the permission grant."""

    @abstractmethod
    async def open(self, facing_mode: str = "user") -> None:
        """Acquire camera and microphone. Raises PermissionDenied on refusal."""

    @abstractmethod
    async def switch_camera(self, facing_mode: str) -> None:
        """Replace the video source keeping the microphone untouched."""

    @abstractmethod
    async def capture_frame(self, quality: float = 0.8) -> Optional[bytes]:
        """Return one JPEG still, or None if the camera has no frame yet."""

    @abstractmethod
    def start_microphone(self, callback: MicrophoneCallback) -> None:
        """Start delivering microphone buffers to ``callback``."""

    @abstractmethod
    def stop_microphone(self) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        """Release camera and microphone."""


class PlaybackHandle(ABC):
    @abstractmethod
    def stop(self) -> None:
        ...


class AudioOutput(ABC):
    """A speaker with its own monotonic clock, able to start buffers at a given time."""

    @property
    @abstractmethod
    def current_time(self) -> float:
        """Seconds on the output's clock."""

    @abstractmethod
    def schedule(
        self,
        samples: np.ndarray,
        sample_rate: int,
        start_time: float,
        playback_rate: float,
        on_ended: Callable[[], None],
    ) -> PlaybackHandle:
        """Play ``samples`` starting at ``start_time``; call ``on_ended`` when done or stopped."""
