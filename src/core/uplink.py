"""
Media uplink scheduler.

Microphone chunks and periodic camera stills share one outbound channel to
the live session. A single sender task drains an outbound queue, which keeps
per-type ordering (audio after audio, image after image) without imposing any
order between the two types. A timer task captures one JPEG still every
``frame_interval_sec``.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from prometheus_client import Counter

from ..audio import WIRE_SAMPLE_RATE, pcm16_mime_type
from ..logging_config import get_logger
from .models import MediaBlob

logger = get_logger(__name__)

FrameSource = Callable[[], Awaitable[Optional[bytes]]]
MediaSender = Callable[[MediaBlob], Awaitable[None]]

_FRAMES_SENT = Counter(
    "live_tutor_frames_sent_total",
    "Camera stills sent to the live session",
)


class MediaUplinkScheduler:
    def __init__(
        self,
        capture_frame: FrameSource,
        *,
        frame_interval_sec: float = 1.0,
        audio_sample_rate: int = WIRE_SAMPLE_RATE,
    ):
        self._capture_frame = capture_frame
        self._frame_interval = frame_interval_sec
        self._audio_mime = pcm16_mime_type(audio_sample_rate)

        self._send: Optional[MediaSender] = None
        self._outbox: Optional[asyncio.Queue] = None
        self._frame_task: Optional[asyncio.Task] = None
        self._sender_task: Optional[asyncio.Task] = None
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def start(self, send: MediaSender) -> None:
        if self._active:
            return
        self._send = send
        self._outbox = asyncio.Queue()
        self._active = True
        self._sender_task = asyncio.create_task(self._sender_loop(self._outbox), name="uplink-sender")
        self._frame_task = asyncio.create_task(self._frame_loop(), name="uplink-frames")
        logger.debug("Media uplink started", frame_interval_sec=self._frame_interval)

    def push_audio(self, pcm: bytes) -> None:
        """Queue one microphone chunk for immediate sending."""
        if not self._active or self._outbox is None:
            return
        self._outbox.put_nowait(MediaBlob(data=pcm, mime_type=self._audio_mime))

    def stop(self) -> None:
        """Cancel the frame timer and the sender. Nothing is sent after this returns."""
        if not self._active and self._frame_task is None and self._sender_task is None:
            return
        self._active = False
        for task in (self._frame_task, self._sender_task):
            if task is not None and not task.done():
                task.cancel()
        self._frame_task = None
        self._sender_task = None
        self._outbox = None
        self._send = None
        logger.debug("Media uplink stopped")

    async def _frame_loop(self) -> None:
        while self._active:
            await asyncio.sleep(self._frame_interval)
            if not self._active:
                return
            try:
                frame = await self._capture_frame()
            except Exception as e:
                logger.warning("Frame capture failed", error=str(e))
                continue
            if frame and self._active and self._outbox is not None:
                self._outbox.put_nowait(MediaBlob(data=frame, mime_type="image/jpeg"))

    async def _sender_loop(self, outbox: asyncio.Queue) -> None:
        while True:
            blob: MediaBlob = await outbox.get()
            if not self._active or self._send is None:
                return
            try:
                await self._send(blob)
            except Exception as e:
                logger.error("Failed to send media", mime_type=blob.mime_type, error=str(e))
                continue
            if blob.mime_type == "image/jpeg":
                _FRAMES_SENT.inc()
