"""
Session lifecycle controller.

Owns every resource of a live tutoring session (device wiring, the remote
connection, the uplink timer, playback, transcript and enrichment queue) and
the status state machine:

    idle -> initializing -> ready -> initializing -> listening
                 |                        |              |
             (denied)              (connect failed)  (end / remote close / error)
                 v                        v              v
               idle                     ready      ready (or idle without permissions)

Every suspension point (frame capture, scene description, connect, decode,
enrichment) may resume after the session it belonged to has ended. The
controller tracks a session epoch; continuations and transport callbacks
compare their epoch before touching state, so stale work becomes a no-op.

Teardown is a sequence of guarded releases (check, clear, release) and is
safe to run any number of times from any trigger.
"""

from __future__ import annotations

import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..audio import parse_pcm_rate
from ..audio.capture import AudioCapture
from ..audio.playback import PlaybackScheduler
from ..config import DIFFICULTY_LEVELS, AppConfig
from ..devices.base import AudioOutput, MediaDevices
from ..logging_config import clear_correlation_id, get_logger, set_correlation_id
from ..providers.base import LiveConnectConfig, LiveSession, LiveTransport
from .enrichment import Enricher, EnrichmentWorker
from .errors import ConnectionFailure, PermissionDenied, SessionError, StreamError
from .models import ConversationEntry, EnrichmentJob, InboundEvent, MediaBlob, SessionStatus, Speaker
from .prompts import build_system_instruction
from .transcript import TranscriptStateMachine
from .uplink import MediaUplinkScheduler

logger = get_logger(__name__)

SceneDescriber = Callable[[bytes], Awaitable[str]]
EventListener = Callable[[Dict[str, Any]], None]


class SessionController:
    def __init__(
        self,
        *,
        devices: MediaDevices,
        audio_output: AudioOutput,
        transport: LiveTransport,
        describe_scene: SceneDescriber,
        enrich: Enricher,
        config: Optional[AppConfig] = None,
    ):
        self.config = config or AppConfig()
        self.devices = devices
        self.transport = transport
        self._describe_scene = describe_scene

        self.status = SessionStatus.IDLE
        self.has_permissions = False
        self.facing_mode = self.config.media.initial_facing_mode
        self.last_error: Optional[str] = None
        self.session_id: Optional[str] = None

        self.transcript = TranscriptStateMachine(pending_marker=self.config.enrichment.pending_marker)
        self.transcript.add_listener(self._on_transcript_changed)
        self.playback = PlaybackScheduler(audio_output, speech_rate=self.config.playback.speech_rate)
        self.uplink = MediaUplinkScheduler(
            self._capture_frame,
            frame_interval_sec=self.config.media.frame_interval_sec,
            audio_sample_rate=self.config.live.input_sample_rate_hz,
        )
        self.enrichment = EnrichmentWorker(
            self.transcript,
            enrich,
            context_window=self.config.enrichment.context_window,
            failure_marker=self.config.enrichment.failure_marker,
        )

        self.capture: Optional[AudioCapture] = None
        self._session: Optional[LiveSession] = None
        self._epoch = 0
        self._listeners: List[EventListener] = []

    # -- events ------------------------------------------------------------

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def _emit(self, event: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning("Session listener failed", event_type=event.get("type"), error=str(e))

    def _set_status(self, status: SessionStatus) -> None:
        if status is self.status:
            return
        previous, self.status = self.status, status
        logger.info("Session status changed", previous=previous.value, status=status.value)
        self._emit({"type": "StatusChanged", "status": status.value, "previous": previous.value})

    def _report(self, error: SessionError) -> None:
        self.last_error = error.user_message
        logger.error(
            "Session error",
            kind=type(error).__name__,
            message=error.user_message,
            cause=str(error.cause) if error.cause else None,
        )
        self._emit({"type": "Error", "kind": type(error).__name__, "message": error.user_message})

    def _on_transcript_changed(self, entry: Optional[ConversationEntry]) -> None:
        if entry is None:
            self._emit({"type": "TranscriptCleared"})
        else:
            self._emit({"type": "TranscriptUpdated", "entry": entry.to_dict()})

    @property
    def conversation(self) -> List[ConversationEntry]:
        return self.transcript.entries

    # -- permissions -------------------------------------------------------

    async def request_permissions(self) -> bool:
        """Acquire camera and microphone: idle -> initializing -> ready (or back to idle)."""
        if self.has_permissions:
            return True
        if self.status is not SessionStatus.IDLE:
            return False
        self.last_error = None
        self._epoch += 1
        epoch = self._epoch
        self._set_status(SessionStatus.INITIALIZING)
        try:
            await self.devices.open(self.facing_mode)
        except Exception as e:
            if epoch != self._epoch:
                return False
            error = e if isinstance(e, PermissionDenied) else PermissionDenied(cause=e)
            self.has_permissions = False
            self._report(error)
            self._set_status(SessionStatus.IDLE)
            return False
        if epoch != self._epoch:
            # Released while the prompt was open. A newer request in flight keeps the devices.
            logger.info("Devices released during permission request; closing late grant")
            if self.status is SessionStatus.IDLE:
                self.devices.close()
            return False
        self.has_permissions = True
        self._set_status(SessionStatus.READY)
        return True

    async def release_devices(self) -> None:
        """End any session and give camera and microphone back."""
        await self._teardown("release")
        if self.has_permissions:
            self.devices.close()
            self.has_permissions = False
        self._set_status(SessionStatus.IDLE)

    async def switch_camera(self) -> bool:
        if self.status not in (SessionStatus.READY, SessionStatus.LISTENING):
            return False
        new_mode = "environment" if self.facing_mode == "user" else "user"
        try:
            await self.devices.switch_camera(new_mode)
        except Exception as e:
            self._report(SessionError("Could not switch the camera.", cause=e))
            return False
        self.facing_mode = new_mode
        logger.info("Camera switched", facing_mode=new_mode)
        return True

    # -- settings ----------------------------------------------------------

    def set_speech_rate(self, rate: float) -> float:
        rate = min(2.0, max(0.5, float(rate)))
        self.config.playback.speech_rate = rate
        self.playback.speech_rate = rate
        return rate

    def set_difficulty(self, difficulty: str) -> None:
        """Takes effect for the next session's persona and for subsequent enrichments."""
        if difficulty not in DIFFICULTY_LEVELS:
            raise ValueError(f"difficulty must be one of {', '.join(DIFFICULTY_LEVELS)}")
        self.config.tutor.difficulty = difficulty

    # -- session start -----------------------------------------------------

    async def _capture_frame(self) -> Optional[bytes]:
        try:
            return await self.devices.capture_frame(self.config.media.jpeg_quality)
        except Exception as e:
            logger.warning("Camera frame capture failed", error=str(e))
            return None

    async def start_session(self) -> bool:
        """ready -> initializing -> listening. Returns True once listening."""
        if not self.has_permissions or self.status is not SessionStatus.READY:
            return False

        self.last_error = None
        self._epoch += 1
        epoch = self._epoch
        self.session_id = set_correlation_id(str(uuid.uuid4()))
        self._set_status(SessionStatus.INITIALIZING)
        self.transcript.reset()

        frame = await self._capture_frame()
        if epoch != self._epoch:
            return False
        if not frame:
            self._report(SessionError("Could not capture an image from the camera."))
            self._set_status(SessionStatus.READY)
            return False

        try:
            scene = await self._describe_scene(frame)
        except Exception as e:
            logger.warning("Scene description failed; using fallback", error=str(e))
            scene = self.config.content.scene_fallback
        if epoch != self._epoch:
            return False

        connect_config = LiveConnectConfig(
            system_instruction=build_system_instruction(
                scene, self.config.tutor.difficulty, self.config.enrichment.learner_language
            ),
            voice_name=self.config.live.voice_name,
            response_modalities=list(self.config.live.response_modalities),
            input_transcription=self.config.live.enable_input_transcription,
            output_transcription=self.config.live.enable_output_transcription,
        )
        on_event, on_error, on_close = self._bind_callbacks(epoch)
        try:
            session = await self.transport.connect(connect_config, on_event, on_error, on_close)
        except Exception as e:
            if epoch != self._epoch:
                return False
            error = e if isinstance(e, ConnectionFailure) else ConnectionFailure(cause=e)
            self._report(error)
            self._set_status(SessionStatus.READY)
            return False

        if epoch != self._epoch:
            # Ended while the handshake was in flight.
            logger.info("Session ended during connect; closing late connection")
            await session.close()
            return False

        self._session = session
        self._open_media()
        self._set_status(SessionStatus.LISTENING)
        logger.info("Session listening", scene=scene[:80])
        return True

    def _open_media(self) -> None:
        self.capture = AudioCapture(
            self.uplink.push_audio,
            chunk_samples=self.config.media.capture_chunk_samples,
            target_rate=self.config.live.input_sample_rate_hz,
        )
        self.capture.start()
        self.devices.start_microphone(self.capture.on_buffer)
        self.uplink.start(self._send_media)
        self.enrichment.start()

    async def _send_media(self, blob: MediaBlob) -> None:
        session = self._session
        if session is not None:
            await session.send_realtime_input(media=blob)

    def _bind_callbacks(self, epoch: int):
        async def on_event(event: InboundEvent) -> None:
            if epoch == self._epoch:
                await self.dispatch(event)

        async def on_error(exc: Exception) -> None:
            if epoch == self._epoch:
                await self._handle_stream_error(exc)

        async def on_close(code: Optional[int], reason: str) -> None:
            if epoch == self._epoch:
                logger.info("Remote closed the session", code=code, reason=reason)
                await self._teardown("remote_close")

        return on_event, on_error, on_close

    # -- inbound -----------------------------------------------------------

    async def dispatch(self, event: InboundEvent) -> None:
        """Apply one inbound message: transcript first, then audio, then barge-in."""
        for job in self.route_transcript(event):
            self.enrichment.submit(job)
        if event.audio is not None:
            await self._play(event.audio)
        if event.interrupted:
            self.playback.interrupt()
        if event.go_away:
            logger.warning("Remote agent sent goAway; the session will close soon")

    def route_transcript(self, event: InboundEvent) -> List[EnrichmentJob]:
        """Apply the transcription parts of a message and return the jobs it completes.

        Runs without suspending, so a message's transcript changes are visible
        before any of its audio is decoded.
        """
        if event.input_transcription:
            self.transcript.on_delta(Speaker.USER, event.input_transcription)
        if event.output_transcription:
            self.transcript.on_delta(Speaker.AGENT, event.output_transcription)
        if event.turn_complete:
            return self.transcript.on_turn_complete()
        return []

    async def _play(self, audio: MediaBlob) -> None:
        rate = parse_pcm_rate(audio.mime_type, self.config.live.output_sample_rate_hz)
        await self.playback.enqueue(audio.data, rate, self.config.playback.channels)

    async def _handle_stream_error(self, exc: Exception) -> None:
        error = exc if isinstance(exc, StreamError) else StreamError(cause=exc)
        self._report(error)
        self._set_status(SessionStatus.ERROR)
        await self._teardown("stream_error")

    # -- outbound text -----------------------------------------------------

    async def send_text(self, text: str) -> Optional[ConversationEntry]:
        """Typed input: new entry and enrichment job right away, then forward to the agent."""
        text = (text or "").strip()
        session = self._session
        if not text or session is None or self.status is not SessionStatus.LISTENING:
            return None
        entry, job = self.transcript.on_user_text(text)
        self.enrichment.submit(job)
        try:
            await session.send_realtime_input(text=text)
        except Exception as e:
            logger.error("Failed to send text to the live session", error=str(e))
        return entry

    # -- teardown ----------------------------------------------------------

    async def end_session(self) -> None:
        await self._teardown("user")

    async def _teardown(self, reason: str) -> None:
        self._epoch += 1

        self.uplink.stop()

        capture, self.capture = self.capture, None
        if capture is not None:
            capture.stop()
            try:
                self.devices.stop_microphone()
            except Exception as e:
                logger.warning("Failed to stop microphone", error=str(e))

        self.playback.interrupt()
        self.enrichment.stop()
        self.transcript.reset()

        session, self._session = self._session, None
        if session is not None:
            logger.info("Ending session", reason=reason, session_id=self.session_id)
            try:
                await session.close()
            except Exception as e:
                logger.warning("Error closing live session", error=str(e))

        self.session_id = None
        clear_correlation_id()
        self._set_status(SessionStatus.READY if self.has_permissions else SessionStatus.IDLE)
