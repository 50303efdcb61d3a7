"""
Configuration models for the live tutor session.

Pydantic v2 models for validation and type safety. Every section has usable
defaults so that a config file only needs to override what differs.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

DIFFICULTY_LEVELS = ("elementary", "middle_school", "high_school", "university")


class LiveSessionConfig(BaseModel):
    """Gemini Live (BidiGenerateContent) connection settings."""
    api_key: Optional[str] = None
    base_url: str = Field(
        default="wss://generativelanguage.googleapis.com/ws/google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
    )
    model: str = Field(default="gemini-2.5-flash-native-audio-preview-09-2025")
    voice_name: str = Field(default="Zephyr")
    response_modalities: List[str] = Field(default_factory=lambda: ["AUDIO"])
    enable_input_transcription: bool = Field(default=True)
    enable_output_transcription: bool = Field(default=True)
    input_sample_rate_hz: int = Field(default=16000)
    output_sample_rate_hz: int = Field(default=24000)
    setup_timeout_sec: float = Field(default=5.0)
    keepalive_interval_sec: float = Field(default=15.0)
    max_message_bytes: int = Field(default=10 * 1024 * 1024)


class ContentConfig(BaseModel):
    """One-shot generateContent endpoints (scene description and enrichment)."""
    api_key: Optional[str] = None
    base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    scene_model: str = Field(default="gemini-2.5-flash-image")
    enrichment_model: str = Field(default="gemini-2.5-flash")
    timeout_sec: float = Field(default=20.0)
    scene_fallback: str = Field(default="a room with a person in it.")


class MediaConfig(BaseModel):
    """Microphone and camera uplink settings."""
    capture_chunk_samples: int = Field(default=4096)
    frame_interval_sec: float = Field(default=1.0)
    jpeg_quality: float = Field(default=0.8)
    initial_facing_mode: str = Field(default="user")

    @field_validator("initial_facing_mode")
    @classmethod
    def _check_facing_mode(cls, v: str) -> str:
        if v not in ("user", "environment"):
            raise ValueError(f"facing mode must be 'user' or 'environment', got {v!r}")
        return v


class PlaybackConfig(BaseModel):
    speech_rate: float = Field(default=1.0, ge=0.5, le=2.0)
    channels: int = Field(default=1)


class EnrichmentConfig(BaseModel):
    context_window: int = Field(default=4, ge=0)
    failure_marker: str = Field(default="translation failed")
    pending_marker: str = Field(default="...")
    learner_language: str = Field(default="Chinese")
    max_phonetic_words: int = Field(default=3)


class TutorConfig(BaseModel):
    difficulty: str = Field(default="middle_school")

    @field_validator("difficulty")
    @classmethod
    def _check_difficulty(cls, v: str) -> str:
        if v not in DIFFICULTY_LEVELS:
            raise ValueError(f"difficulty must be one of {', '.join(DIFFICULTY_LEVELS)}")
        return v


class LoggingConfig(BaseModel):
    level: str = Field(default="info")  # debug|info|warning|error|critical
    format: str = Field(default="json")  # json|console


class AppConfig(BaseModel):
    live: LiveSessionConfig = Field(default_factory=LiveSessionConfig)
    content: ContentConfig = Field(default_factory=ContentConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    tutor: TutorConfig = Field(default_factory=TutorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
