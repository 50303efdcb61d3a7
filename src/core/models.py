"""
Core data models for the live tutor session.

Typed structures shared by the transcript, the enrichment worker, the
transport and the session controller.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Speaker(str, Enum):
    USER = "user"
    AGENT = "agent"


class SessionStatus(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    READY = "ready"
    LISTENING = "listening"
    ERROR = "error"


def new_entry_id(speaker: Speaker) -> str:
    return f"{speaker.value}-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class Phonetic:
    word: str
    ipa: str


@dataclass
class ConversationEntry:
    """One line of the conversation log.

    ``id`` never changes after creation and is the only key used to locate
    an entry for later updates.
    """
    id: str
    speaker: Speaker
    text: str = ""
    translation: str = ""
    phonetics: List[Phonetic] = field(default_factory=list)
    finalized: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "speaker": self.speaker.value,
            "text": self.text,
            "translation": self.translation,
            "phonetics": [{"word": p.word, "ipa": p.ipa} for p in self.phonetics],
            "finalized": self.finalized,
        }


@dataclass
class TurnAccumulator:
    """Transient state of one speaker's open turn."""
    open_entry_id: Optional[str] = None
    buffered_text: str = ""

    @property
    def is_open(self) -> bool:
        return self.open_entry_id is not None

    def clear(self) -> None:
        self.open_entry_id = None
        self.buffered_text = ""


@dataclass(frozen=True)
class EnrichmentJob:
    text: str
    speaker: Speaker
    target_entry_id: str


@dataclass(frozen=True)
class ContextTurn:
    speaker: Speaker
    text: str


@dataclass
class EnrichmentResult:
    translation: str
    phonetics: List[Phonetic] = field(default_factory=list)


@dataclass(frozen=True)
class MediaBlob:
    data: bytes
    mime_type: str


@dataclass
class InboundEvent:
    """Everything one server message carried, in a transport-neutral shape.

    A single message may set several fields at once (for example an output
    transcription fragment together with an audio chunk).
    """
    input_transcription: Optional[str] = None
    output_transcription: Optional[str] = None
    turn_complete: bool = False
    audio: Optional[MediaBlob] = None
    interrupted: bool = False
    go_away: bool = False

    @property
    def is_empty(self) -> bool:
        return not (
            self.input_transcription
            or self.output_transcription
            or self.turn_complete
            or self.audio
            or self.interrupted
            or self.go_away
        )
