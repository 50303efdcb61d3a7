"""
Transcript state machine.

Accumulates streamed transcription deltas into open turns per speaker,
closes them on turn-complete and owns the ordered conversation log. The log
is mutated by two flows (streaming deltas and enrichment merges) and both go
through entry ids only, never through positions.

Per speaker: NoOpenTurn -> TurnOpen -> (turn complete) -> NoOpenTurn
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Tuple

from ..logging_config import get_logger
from .models import (
    ContextTurn,
    ConversationEntry,
    EnrichmentJob,
    EnrichmentResult,
    Speaker,
    TurnAccumulator,
    new_entry_id,
)

logger = get_logger(__name__)

TranscriptListener = Callable[[Optional[ConversationEntry]], None]


class TranscriptStateMachine:
    """Ordered conversation log plus one turn accumulator per speaker."""

    def __init__(self, pending_marker: str = "...", id_factory: Callable[[Speaker], str] = new_entry_id):
        self._pending_marker = pending_marker
        self._id_factory = id_factory
        self._entries: List[ConversationEntry] = []
        self._by_id: Dict[str, ConversationEntry] = {}
        self._turns: Dict[Speaker, TurnAccumulator] = {s: TurnAccumulator() for s in Speaker}
        self._listeners: List[TranscriptListener] = []

    # -- observation -------------------------------------------------------

    def add_listener(self, listener: TranscriptListener) -> None:
        self._listeners.append(listener)

    def _notify(self, entry: Optional[ConversationEntry]) -> None:
        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception as e:
                logger.warning("Transcript listener failed", error=str(e), exc_info=True)

    @property
    def entries(self) -> List[ConversationEntry]:
        return list(self._entries)

    def get(self, entry_id: str) -> Optional[ConversationEntry]:
        return self._by_id.get(entry_id)

    def accumulator(self, speaker: Speaker) -> TurnAccumulator:
        return self._turns[speaker]

    def has_open_turn(self, speaker: Speaker) -> bool:
        return self._turns[speaker].is_open

    def __len__(self) -> int:
        return len(self._entries)

    # -- streaming path ----------------------------------------------------

    def _append(self, speaker: Speaker, text: str) -> ConversationEntry:
        entry = ConversationEntry(
            id=self._id_factory(speaker),
            speaker=speaker,
            text=text,
            translation=self._pending_marker,
        )
        self._entries.append(entry)
        self._by_id[entry.id] = entry
        return entry

    def on_delta(self, speaker: Speaker, fragment: str) -> Optional[ConversationEntry]:
        """Extend the speaker's open turn, opening one (and a new entry) if needed."""
        if not fragment:
            return None

        turn = self._turns[speaker]
        entry = self._by_id.get(turn.open_entry_id) if turn.is_open else None
        if entry is None:
            entry = self._append(speaker, fragment)
            turn.open_entry_id = entry.id
            turn.buffered_text = fragment
            logger.debug("Opened turn", speaker=speaker.value, entry_id=entry.id)
        else:
            turn.buffered_text += fragment
            entry.text = turn.buffered_text

        self._notify(entry)
        return entry

    def on_turn_complete(self) -> List[EnrichmentJob]:
        """Close every open turn and return one enrichment job per closed turn.

        Entries stay unfinalized until their enrichment lands.
        """
        jobs: List[EnrichmentJob] = []
        for speaker in (Speaker.USER, Speaker.AGENT):
            turn = self._turns[speaker]
            if not turn.is_open:
                continue
            jobs.append(EnrichmentJob(text=turn.buffered_text, speaker=speaker, target_entry_id=turn.open_entry_id))
            logger.info(
                "Turn complete",
                speaker=speaker.value,
                entry_id=turn.open_entry_id,
                text=turn.buffered_text[:150],
            )
            turn.clear()
        return jobs

    # -- typed path --------------------------------------------------------

    def on_user_text(self, text: str) -> Tuple[ConversationEntry, EnrichmentJob]:
        """Record typed input as its own entry, bypassing the turn accumulators."""
        entry = self._append(Speaker.USER, text)
        self._notify(entry)
        return entry, EnrichmentJob(text=text, speaker=Speaker.USER, target_entry_id=entry.id)

    # -- enrichment merge --------------------------------------------------

    def context_for(self, entry_id: str, size: int = 4) -> List[ContextTurn]:
        """Up to ``size`` entries immediately preceding the entry's current position."""
        entry = self._by_id.get(entry_id)
        if entry is None or size <= 0:
            return []
        index = self._entries.index(entry)
        window = self._entries[max(0, index - size):index]
        return [ContextTurn(speaker=e.speaker, text=e.text) for e in window]

    def apply_enrichment(self, entry_id: str, result: EnrichmentResult) -> Optional[ConversationEntry]:
        entry = self._by_id.get(entry_id)
        if entry is None:
            logger.debug("Enrichment target no longer exists", entry_id=entry_id)
            return None
        entry.translation = result.translation
        entry.phonetics = list(result.phonetics)
        entry.finalized = True
        self._notify(entry)
        return entry

    def mark_enrichment_failed(self, entry_id: str, marker: str) -> Optional[ConversationEntry]:
        entry = self._by_id.get(entry_id)
        if entry is None:
            return None
        entry.translation = marker
        entry.finalized = True
        self._notify(entry)
        return entry

    # -- reset -------------------------------------------------------------

    def clear_turns(self) -> None:
        for turn in self._turns.values():
            turn.clear()

    def reset(self) -> None:
        """Drop every entry and every open turn."""
        had_entries = bool(self._entries)
        self._entries.clear()
        self._by_id.clear()
        self.clear_turns()
        if had_entries:
            self._notify(None)
