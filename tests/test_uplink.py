"""
Tests for the media uplink scheduler (microphone chunks + periodic stills).
"""

import asyncio

import pytest

from src.core.uplink import MediaUplinkScheduler

from tests.conftest import drain


class Recorder:
    def __init__(self):
        self.blobs = []

    async def __call__(self, blob):
        self.blobs.append(blob)


@pytest.mark.asyncio
async def test_audio_forwarded_in_order_with_mime():
    async def no_frame():
        return None

    sent = Recorder()
    uplink = MediaUplinkScheduler(no_frame, frame_interval_sec=60)
    uplink.start(sent)

    for i in range(3):
        uplink.push_audio(bytes([i]) * 4)
    await drain()

    assert [b.data[0] for b in sent.blobs] == [0, 1, 2]
    assert {b.mime_type for b in sent.blobs} == {"audio/pcm;rate=16000"}
    uplink.stop()


@pytest.mark.asyncio
async def test_frames_sent_on_timer():
    frames = iter([b"jpeg-1", b"jpeg-2", b"jpeg-3", b"jpeg-4"])

    async def capture():
        return next(frames, None)

    sent = Recorder()
    uplink = MediaUplinkScheduler(capture, frame_interval_sec=0.01)
    uplink.start(sent)
    await asyncio.sleep(0.08)
    uplink.stop()

    images = [b for b in sent.blobs if b.mime_type == "image/jpeg"]
    assert len(images) >= 2
    assert [b.data for b in images] == [b"jpeg-%d" % (i + 1) for i in range(len(images))]


@pytest.mark.asyncio
async def test_nothing_sent_after_stop():
    async def capture():
        return b"jpeg"

    sent = Recorder()
    uplink = MediaUplinkScheduler(capture, frame_interval_sec=0.01)
    uplink.start(sent)
    uplink.stop()
    uplink.push_audio(b"\x00\x00")
    await asyncio.sleep(0.05)

    assert sent.blobs == []
    assert uplink.active is False
    uplink.stop()  # idempotent


@pytest.mark.asyncio
async def test_send_failure_does_not_stop_sender():
    async def no_frame():
        return None

    sent = []

    async def flaky(blob):
        if not sent and blob.data == b"a":
            sent.append("failed")
            raise ConnectionError("socket hiccup")
        sent.append(blob.data)

    uplink = MediaUplinkScheduler(no_frame, frame_interval_sec=60)
    uplink.start(flaky)
    uplink.push_audio(b"a")
    uplink.push_audio(b"b")
    await drain()

    assert sent == ["failed", b"b"]
    uplink.stop()
