"""
Shared in-memory fakes for the session orchestrator tests.

None of these touch real devices or the network: the audio output has a
settable clock, the transport hands out recording sessions, and the gated
enricher lets a test decide when each enrichment call returns.
"""

import asyncio
from typing import List, Optional

import pytest

from src.core.models import EnrichmentResult, Phonetic
from src.devices.base import AudioOutput, MediaDevices, PlaybackHandle
from src.providers.base import LiveSession, LiveTransport


async def drain(rounds: int = 10) -> None:
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeHandle(PlaybackHandle):
    def __init__(self, on_ended):
        self.on_ended = on_ended
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True
        self.on_ended()


class FakeAudioOutput(AudioOutput):
    def __init__(self):
        self.now = 0.0
        self.calls = []
        self.handles: List[FakeHandle] = []

    @property
    def current_time(self) -> float:
        return self.now

    def schedule(self, samples, sample_rate, start_time, playback_rate, on_ended):
        self.calls.append(
            {"samples": samples, "sample_rate": sample_rate, "start": start_time, "rate": playback_rate}
        )
        handle = FakeHandle(on_ended)
        self.handles.append(handle)
        return handle


class FakeDevices(MediaDevices):
    def __init__(self, frame: Optional[bytes] = b"\xff\xd8jpeg", deny: bool = False):
        self.frame = frame
        self.deny = deny
        self.opened_with: Optional[str] = None
        self.facing_modes: List[str] = []
        self.mic_callback = None
        self.mic_stopped = 0
        self.closed = False
        self.gate: Optional[asyncio.Event] = None

    async def open(self, facing_mode: str = "user") -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.deny:
            raise PermissionError("NotAllowedError")
        self.opened_with = facing_mode

    async def switch_camera(self, facing_mode: str) -> None:
        self.facing_modes.append(facing_mode)

    async def capture_frame(self, quality: float = 0.8) -> Optional[bytes]:
        return self.frame

    def start_microphone(self, callback) -> None:
        self.mic_callback = callback

    def stop_microphone(self) -> None:
        self.mic_callback = None
        self.mic_stopped += 1

    def close(self) -> None:
        self.closed = True


class FakeLiveSession(LiveSession):
    def __init__(self):
        self.texts: List[str] = []
        self.media = []
        self.close_calls = 0

    async def send_realtime_input(self, text=None, media=None) -> None:
        if text is not None:
            self.texts.append(text)
        if media is not None:
            self.media.append(media)

    async def close(self) -> None:
        self.close_calls += 1


class FakeTransport(LiveTransport):
    """Records connect() arguments; optionally fails or waits on a gate."""

    def __init__(self, fail: Optional[Exception] = None):
        self.fail = fail
        self.gate: Optional[asyncio.Event] = None
        self.sessions: List[FakeLiveSession] = []
        self.config = None
        self.on_event = None
        self.on_error = None
        self.on_close = None

    async def connect(self, config, on_event, on_error, on_close):
        self.config = config
        self.on_event, self.on_error, self.on_close = on_event, on_error, on_close
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            raise self.fail
        session = FakeLiveSession()
        self.sessions.append(session)
        return session


class GatedEnricher:
    """Enricher whose calls stay in flight until the test resolves them."""

    def __init__(self):
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, text, context):
        future = asyncio.get_running_loop().create_future()
        self.calls.append((text, list(context), future))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            return await future
        finally:
            self.in_flight -= 1

    def resolve(self, index: int, translation: str = "translated", phonetics=()) -> None:
        self.calls[index][2].set_result(
            EnrichmentResult(translation=translation, phonetics=[Phonetic(w, i) for w, i in phonetics])
        )

    def fail(self, index: int, exc: Optional[Exception] = None) -> None:
        self.calls[index][2].set_exception(exc or RuntimeError("enrichment backend down"))


@pytest.fixture
def audio_output():
    return FakeAudioOutput()


@pytest.fixture
def devices():
    return FakeDevices()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def enricher():
    return GatedEnricher()
