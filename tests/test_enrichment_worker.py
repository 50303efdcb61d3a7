"""
Tests for the single-flight enrichment worker.
"""

import pytest

from src.core.enrichment import EnrichmentWorker
from src.core.models import Speaker
from src.core.transcript import TranscriptStateMachine

from tests.conftest import drain


@pytest.fixture
def transcript():
    return TranscriptStateMachine()


@pytest.mark.asyncio
async def test_never_two_calls_in_flight(transcript, enricher):
    worker = EnrichmentWorker(transcript, enricher)
    for text in ("one", "two", "three"):
        worker.submit(transcript.on_user_text(text)[1])

    await drain()
    assert len(enricher.calls) == 1
    assert worker.busy is True
    assert worker.pending == 2

    enricher.resolve(0)
    await drain()
    assert len(enricher.calls) == 2
    enricher.resolve(1)
    await drain()
    enricher.resolve(2)
    await drain()

    assert [c[0] for c in enricher.calls] == ["one", "two", "three"]
    assert enricher.max_in_flight == 1
    assert worker.busy is False
    worker.stop()


@pytest.mark.asyncio
async def test_late_result_lands_on_its_own_entry(transcript, enricher):
    """A slow result for an old entry updates that entry after newer ones were added."""
    worker = EnrichmentWorker(transcript, enricher)
    transcript.on_delta(Speaker.USER, "Where is the cat?")
    (job,) = transcript.on_turn_complete()
    worker.submit(job)
    await drain()

    newer = [transcript.on_user_text(f"newer {i}")[0] for i in range(3)]
    enricher.resolve(0, translation="猫在哪里？", phonetics=[("cat", "/kæt/")])
    await drain()

    target = transcript.get(job.target_entry_id)
    assert target.translation == "猫在哪里？"
    assert target.phonetics[0].ipa == "/kæt/"
    assert target.finalized is True
    assert all(transcript.get(e.id).translation == "..." for e in newer)
    worker.stop()


@pytest.mark.asyncio
async def test_failure_marks_sentinel_and_moves_on(transcript, enricher):
    worker = EnrichmentWorker(transcript, enricher, failure_marker="translation failed")
    first, job1 = transcript.on_user_text("first")
    second, job2 = transcript.on_user_text("second")
    worker.submit(job1)
    worker.submit(job2)
    await drain()

    enricher.fail(0)
    await drain()
    assert transcript.get(first.id).translation == "translation failed"
    assert transcript.get(first.id).finalized is True
    # No retry: the next call is for the second job.
    assert [c[0] for c in enricher.calls] == ["first", "second"]

    enricher.resolve(1, translation="第二")
    await drain()
    assert transcript.get(second.id).translation == "第二"
    worker.stop()


@pytest.mark.asyncio
async def test_context_taken_at_dequeue_time(transcript, enricher):
    worker = EnrichmentWorker(transcript, enricher, context_window=2)
    transcript.on_user_text("a")
    transcript.on_user_text("b")
    _, job = transcript.on_user_text("c")
    worker.submit(job)
    await drain()

    _, context, _ = enricher.calls[0]
    assert [t.text for t in context] == ["a", "b"]
    enricher.resolve(0)
    await drain()
    worker.stop()


@pytest.mark.asyncio
async def test_stop_during_flight_discards_result(transcript, enricher):
    """Teardown with a call in flight: no exception and no resurrected entries."""
    worker = EnrichmentWorker(transcript, enricher)
    entry, job = transcript.on_user_text("in flight")
    _, queued = transcript.on_user_text("queued")
    worker.submit(job)
    worker.submit(queued)
    await drain()

    worker.stop()
    transcript.reset()
    assert worker.busy is False
    assert worker.pending == 0

    enricher.resolve(0, translation="late")
    await drain()

    assert len(transcript) == 0
    assert len(enricher.calls) == 1


@pytest.mark.asyncio
async def test_stop_during_flight_ignores_late_failure(transcript, enricher):
    worker = EnrichmentWorker(transcript, enricher)
    entry, job = transcript.on_user_text("in flight")
    worker.submit(job)
    await drain()

    worker.stop()
    enricher.fail(0)
    await drain()

    assert transcript.get(entry.id).translation == "..."
    assert transcript.get(entry.id).finalized is False


@pytest.mark.asyncio
async def test_restart_after_stop_processes_new_jobs(transcript, enricher):
    worker = EnrichmentWorker(transcript, enricher)
    worker.submit(transcript.on_user_text("old")[1])
    await drain()
    worker.stop()
    worker.stop()  # repeated stop is harmless

    entry, job = transcript.on_user_text("new")
    worker.submit(job)
    await drain()
    # The stale call is still parked; the new loop runs independently.
    assert [c[0] for c in enricher.calls] == ["old", "new"]
    enricher.resolve(1, translation="新")
    await drain()
    assert transcript.get(entry.id).translation == "新"

    enricher.resolve(0)
    await drain()
    worker.stop()
