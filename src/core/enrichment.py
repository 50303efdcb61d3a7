"""
Enrichment worker.

A single worker loop drains a FIFO queue of enrichment jobs, so at most one
call to the external enricher is ever in flight. Results are merged into the
transcript by entry id; a failed call finalizes the entry with a sentinel and
the loop moves straight on to the next job. Nothing is retried.

Stopping the worker clears the queue and invalidates the running loop. A call
that is already in flight is left to finish, and its result is discarded.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, List, Optional

from prometheus_client import Counter, Histogram

from ..logging_config import get_logger
from .models import ContextTurn, EnrichmentJob, EnrichmentResult
from .transcript import TranscriptStateMachine

logger = get_logger(__name__)

Enricher = Callable[[str, List[ContextTurn]], Awaitable[EnrichmentResult]]

_ENRICHMENT_JOBS = Counter(
    "live_tutor_enrichment_jobs_total",
    "Enrichment jobs processed, by outcome",
    labelnames=("outcome",),
)
_ENRICHMENT_LATENCY = Histogram(
    "live_tutor_enrichment_latency_seconds",
    "Latency of external enrichment calls",
)


class EnrichmentWorker:
    """Serialized translation/phonetics enrichment for finalized utterances."""

    def __init__(
        self,
        transcript: TranscriptStateMachine,
        enrich: Enricher,
        *,
        context_window: int = 4,
        failure_marker: str = "translation failed",
    ):
        self._transcript = transcript
        self._enrich = enrich
        self._context_window = context_window
        self._failure_marker = failure_marker

        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._epoch = 0
        self.busy = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(
            self._run(self._epoch, self._queue),
            name=f"enrichment-worker-{self._epoch}",
        )

    def submit(self, job: EnrichmentJob) -> None:
        """Queue a job; the worker loop picks it up in FIFO order."""
        self._queue.put_nowait(job)
        logger.debug(
            "Enrichment job queued",
            entry_id=job.target_entry_id,
            speaker=job.speaker.value,
            pending=self._queue.qsize(),
        )
        if not self.running:
            self.start()

    def stop(self) -> None:
        """Drop queued jobs and detach the current loop.

        Safe to call repeatedly. An in-flight enrichment call is not cancelled;
        the old loop notices the epoch change when it resumes and exits.
        """
        old_queue, old_task = self._queue, self._task
        self._epoch += 1
        self._queue = asyncio.Queue()
        self._task = None
        self.busy = False

        dropped = 0
        while not old_queue.empty():
            old_queue.get_nowait()
            dropped += 1
        if old_task is not None and not old_task.done():
            # Wakes a loop parked on get(); a busy loop exits after its call.
            old_queue.put_nowait(None)
        if dropped:
            logger.info("Enrichment queue cleared", dropped=dropped)

    async def _run(self, epoch: int, queue: asyncio.Queue) -> None:
        while True:
            job = await queue.get()
            if job is None or epoch != self._epoch:
                return
            self.busy = True
            try:
                await self._process(job, epoch)
            finally:
                if epoch == self._epoch:
                    self.busy = False
            if epoch != self._epoch:
                return

    async def _process(self, job: EnrichmentJob, epoch: int) -> None:
        # Context is taken at dequeue time; newer entries may exist by now.
        context = self._transcript.context_for(job.target_entry_id, self._context_window)
        started = time.monotonic()
        try:
            result = await self._enrich(job.text, context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            _ENRICHMENT_JOBS.labels(outcome="failed").inc()
            logger.warning(
                "Enrichment failed",
                entry_id=job.target_entry_id,
                error=str(e),
                exc_info=True,
            )
            if epoch == self._epoch:
                self._transcript.mark_enrichment_failed(job.target_entry_id, self._failure_marker)
            return
        finally:
            _ENRICHMENT_LATENCY.observe(time.monotonic() - started)

        if epoch != self._epoch:
            _ENRICHMENT_JOBS.labels(outcome="discarded").inc()
            logger.debug("Discarding enrichment from a finished session", entry_id=job.target_entry_id)
            return

        _ENRICHMENT_JOBS.labels(outcome="applied").inc()
        self._transcript.apply_enrichment(job.target_entry_id, result)
        logger.debug(
            "Enrichment applied",
            entry_id=job.target_entry_id,
            phonetics=len(result.phonetics),
        )
