"""
Provider interfaces for the remote live agent.

The session controller only sees these contracts, so any bidirectional
speech/vision backend can be plugged in behind them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from ..core.models import InboundEvent, MediaBlob

OnInboundEvent = Callable[[InboundEvent], Awaitable[None]]
OnStreamError = Callable[[Exception], Awaitable[None]]
OnStreamClose = Callable[[Optional[int], str], Awaitable[None]]


@dataclass
class LiveConnectConfig:
    """Per-session connection parameters."""
    system_instruction: str
    voice_name: str = "Zephyr"
    response_modalities: List[str] = field(default_factory=lambda: ["AUDIO"])
    input_transcription: bool = True
    output_transcription: bool = True


class LiveSession(ABC):
    """Handle to an open bidirectional session."""

    @abstractmethod
    async def send_realtime_input(self, text: Optional[str] = None, media: Optional[MediaBlob] = None) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the session. Must be idempotent and must not fire the close callback."""


class LiveTransport(ABC):
    @abstractmethod
    async def connect(
        self,
        config: LiveConnectConfig,
        on_event: OnInboundEvent,
        on_error: OnStreamError,
        on_close: OnStreamClose,
    ) -> LiveSession:
        """Open a session; raises ConnectionFailure if the handshake fails."""
