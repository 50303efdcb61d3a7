"""
Google Gemini Live API transport.

Opens a BidiGenerateContent WebSocket, performs the setup handshake and
exposes the session through the LiveSession contract:

- Outbound: ``realtimeInput.mediaChunks`` for microphone PCM (16 kHz) and JPEG
  stills, ``realtimeInput.text`` for typed input.
- Inbound: every ``serverContent`` message is parsed into one InboundEvent
  (transcription fragments, turnComplete, inline 24 kHz PCM audio,
  interrupted) and handed to the session controller in arrival order.

Lifecycle:
1. connect() -> WebSocket open, receive loop started, setup sent
2. setupComplete ACK awaited (timeout -> ConnectionFailure)
3. keepalive loop keeps idle sessions open
4. close() -> tasks cancelled, WebSocket closed, no callbacks fired
"""

from __future__ import annotations

import asyncio
import base64
import contextlib
import json
import time
from typing import Any, Callable, Dict, Optional

from prometheus_client import Counter, Gauge
from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK
from websockets.protocol import State

from ..config import LiveSessionConfig
from ..core.errors import ConnectionFailure, StreamError
from ..core.models import InboundEvent, MediaBlob
from ..logging_config import get_logger
from .base import (
    LiveConnectConfig,
    LiveSession,
    LiveTransport,
    OnInboundEvent,
    OnStreamClose,
    OnStreamError,
)

logger = get_logger(__name__)

_CLOSE_CODE_MEANINGS = {
    1000: "Normal closure",
    1001: "Going away",
    1002: "Protocol error",
    1006: "Abnormal closure (no close frame)",
    1007: "Invalid frame payload data",
    1008: "Policy violation (likely auth/permission issue)",
    1009: "Message too big",
    1011: "Internal server error",
}

# Metrics
_LIVE_SESSIONS = Gauge(
    "live_tutor_gemini_live_active_sessions",
    "Number of active Gemini Live sessions",
)
_LIVE_BYTES_SENT = Counter(
    "live_tutor_gemini_live_media_bytes_sent",
    "Media bytes sent to Gemini Live, by kind",
    labelnames=("kind",),
)
_LIVE_AUDIO_RECEIVED = Counter(
    "live_tutor_gemini_live_audio_bytes_received",
    "Audio bytes received from Gemini Live",
)


def build_setup_message(settings: LiveSessionConfig, config: LiveConnectConfig) -> Dict[str, Any]:
    """Session setup payload (camelCase, as the Live API expects)."""
    setup: Dict[str, Any] = {
        "model": f"models/{settings.model}",
        "generationConfig": {
            "responseModalities": [m.upper() for m in config.response_modalities],
            "speechConfig": {
                "voiceConfig": {
                    "prebuiltVoiceConfig": {"voiceName": config.voice_name or settings.voice_name}
                }
            },
        },
    }
    if config.system_instruction:
        setup["systemInstruction"] = {"parts": [{"text": config.system_instruction}]}
    # Empty object enables transcription with default settings
    if config.input_transcription:
        setup["inputAudioTranscription"] = {}
    if config.output_transcription:
        setup["outputAudioTranscription"] = {}
    return {"setup": setup}


def parse_server_message(data: Dict[str, Any]) -> Optional[InboundEvent]:
    """Map one server message to an InboundEvent; None for messages the session ignores.

    Transcription fragments are incremental (" What", " is", " the"...), never
    cumulative, so they are passed through untouched for the caller to concatenate.
    """
    if "goAway" in data:
        return InboundEvent(go_away=True)

    content = data.get("serverContent")
    if not isinstance(content, dict):
        return None

    event = InboundEvent(
        input_transcription=(content.get("inputTranscription") or {}).get("text") or None,
        output_transcription=(content.get("outputTranscription") or {}).get("text") or None,
        turn_complete=bool(content.get("turnComplete", False)),
        interrupted=bool(content.get("interrupted", False)),
    )

    audio_parts = []
    for part in (content.get("modelTurn") or {}).get("parts", []):
        inline = part.get("inlineData")
        if inline and str(inline.get("mimeType", "")).startswith("audio/pcm") and inline.get("data"):
            audio_parts.append((inline["mimeType"], base64.b64decode(inline["data"])))
    if audio_parts:
        mime_type = audio_parts[0][0]
        event.audio = MediaBlob(data=b"".join(chunk for _, chunk in audio_parts), mime_type=mime_type)

    return None if event.is_empty else event


class GeminiLiveSession(LiveSession):
    """One open BidiGenerateContent WebSocket."""

    def __init__(
        self,
        websocket: ClientConnection,
        settings: LiveSessionConfig,
        on_event: OnInboundEvent,
        on_error: OnStreamError,
        on_close: OnStreamClose,
    ):
        self.websocket = websocket
        self._settings = settings
        self._on_event = on_event
        self._on_error = on_error
        self._on_close = on_close
        self._send_lock = asyncio.Lock()
        self._setup_ack = asyncio.Event()
        self._receive_task: Optional[asyncio.Task] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._closing = False
        self._started_at = time.monotonic()

    @property
    def is_open(self) -> bool:
        return not self._closing and self.websocket.state is State.OPEN

    async def handshake(self, setup_msg: Dict[str, Any]) -> None:
        # Receive loop first so it can catch setupComplete
        self._receive_task = asyncio.create_task(self._receive_loop(), name="gemini-live-receive")
        await self._send_json(setup_msg)
        ack_waiter = asyncio.create_task(self._setup_ack.wait())
        try:
            await asyncio.wait(
                {ack_waiter, self._receive_task},
                timeout=self._settings.setup_timeout_sec,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            ack_waiter.cancel()
        if not self._setup_ack.is_set():
            if self._receive_task.done():
                raise ConnectionFailure("Gemini Live closed the connection during setup.")
            raise asyncio.TimeoutError("setupComplete not received")
        self._keepalive_task = asyncio.create_task(self._keepalive_loop(), name="gemini-live-keepalive")

    async def _send_json(self, message: Dict[str, Any]) -> None:
        if self._closing:
            return
        async with self._send_lock:
            await self.websocket.send(json.dumps(message))

    async def send_realtime_input(self, text: Optional[str] = None, media: Optional[MediaBlob] = None) -> None:
        if not self.is_open:
            logger.debug("Dropping realtime input; session not open")
            return
        realtime_input: Dict[str, Any] = {}
        if text:
            realtime_input["text"] = text
        if media is not None:
            realtime_input["mediaChunks"] = [
                {"mimeType": media.mime_type, "data": base64.b64encode(media.data).decode("ascii")}
            ]
            kind = "image" if media.mime_type.startswith("image/") else "audio"
            _LIVE_BYTES_SENT.labels(kind=kind).inc(len(media.data))
        if not realtime_input:
            return
        await self._send_json({"realtimeInput": realtime_input})

    async def _receive_loop(self) -> None:
        try:
            async for raw in self.websocket:
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError as e:
                    logger.error("Failed to decode Gemini Live message", error=str(e))
                    continue
                if "setupComplete" in data:
                    logger.info("Gemini Live setup complete (ACK received)")
                    self._setup_ack.set()
                    continue
                event = parse_server_message(data)
                if event is None:
                    continue
                if event.audio is not None:
                    _LIVE_AUDIO_RECEIVED.inc(len(event.audio.data))
                try:
                    await self._on_event(event)
                except Exception as e:
                    logger.error("Error handling Gemini Live event", error=str(e), exc_info=True)
        except ConnectionClosed as e:
            if self._closing or not self._setup_ack.is_set():
                return
            code = e.rcvd.code if e.rcvd is not None else None
            reason = e.rcvd.reason if e.rcvd is not None else ""
            logger.warning(
                "Gemini Live WebSocket closed",
                code=code,
                meaning=_CLOSE_CODE_MEANINGS.get(code, "Unknown"),
                reason=reason,
            )
            if code == 1008:
                logger.error(
                    "Policy violation (1008) - check API key permissions and Gemini Live API access",
                )
            if isinstance(e, ConnectionClosedOK):
                await self._on_close(code, reason)
            else:
                await self._on_error(StreamError(cause=e))
            return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._closing or not self._setup_ack.is_set():
                return
            logger.error("Gemini Live receive loop error", error=str(e), exc_info=True)
            await self._on_error(StreamError(cause=e))
            return

        if not self._closing and self._setup_ack.is_set():
            # Normal closure (1000/1001) ends iteration without raising
            await self._on_close(self.websocket.close_code, self.websocket.close_reason or "")

    async def _keepalive_loop(self) -> None:
        while self.is_open:
            await asyncio.sleep(self._settings.keepalive_interval_sec)
            try:
                await self._send_json({"realtimeInput": {}})
            except ConnectionClosed:
                return
            except Exception as e:
                logger.error("Keepalive error", error=str(e))

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        current = asyncio.current_task()
        for task in (self._keepalive_task, self._receive_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        if self.websocket.state is not State.CLOSED:
            with contextlib.suppress(ConnectionClosed):
                await self.websocket.close()
        _LIVE_SESSIONS.dec()
        logger.info(
            "Gemini Live session closed",
            duration_seconds=round(time.monotonic() - self._started_at, 2),
        )


class GeminiLiveTransport(LiveTransport):
    """Creates GeminiLiveSession instances from the ``live`` config section."""

    def __init__(self, settings: LiveSessionConfig, connector: Callable[..., Any] = ws_connect):
        self.settings = settings
        self._connector = connector

    async def connect(
        self,
        config: LiveConnectConfig,
        on_event: OnInboundEvent,
        on_error: OnStreamError,
        on_close: OnStreamClose,
    ) -> GeminiLiveSession:
        api_key = self.settings.api_key or ""
        if not api_key:
            logger.error("GOOGLE_API_KEY not found; cannot connect to Gemini Live")
            raise ConnectionFailure("A Gemini API key is required (set GOOGLE_API_KEY).")

        logger.info("Connecting to Gemini Live", model=self.settings.model, voice=config.voice_name)
        try:
            websocket = await self._connector(
                f"{self.settings.base_url}?key={api_key}",
                max_size=self.settings.max_message_bytes,
            )
        except Exception as e:
            logger.error("Failed to open Gemini Live WebSocket", error=str(e), exc_info=True)
            raise ConnectionFailure(cause=e) from e

        _LIVE_SESSIONS.inc()
        session = GeminiLiveSession(websocket, self.settings, on_event, on_error, on_close)
        try:
            await session.handshake(build_setup_message(self.settings, config))
        except Exception as e:
            logger.error("Gemini Live setup failed", error=str(e) or type(e).__name__, exc_info=True)
            await session.close()
            raise ConnectionFailure(cause=e) from e

        logger.info(
            "Gemini Live session started",
            has_system_instruction=bool(config.system_instruction),
        )
        return session
