"""
Configuration package for the live tutor session.

This package contains:
- schema: Pydantic models for every config section
- loaders: YAML file loading and parsing
- security: API key injection (environment only)
- defaults: Environment overrides for commonly tuned settings
"""

import os
from typing import Optional

import structlog

from src.config.defaults import apply_live_defaults, apply_logging_defaults, apply_tutor_defaults
from src.config.loaders import load_yaml_with_env_expansion, resolve_config_path
from src.config.schema import (
    DIFFICULTY_LEVELS,
    AppConfig,
    ContentConfig,
    EnrichmentConfig,
    LiveSessionConfig,
    LoggingConfig,
    MediaConfig,
    PlaybackConfig,
    TutorConfig,
)
from src.config.security import expand_prompt_tokens, inject_api_keys

logger = structlog.get_logger(__name__)


def load_config(path: Optional[str] = None) -> AppConfig:
    """
    Load and validate configuration from YAML file.

    A missing file is not an error when no path was given explicitly: the
    defaults plus environment overrides are a complete configuration.

    Raises:
        FileNotFoundError: If an explicitly requested file doesn't exist
        yaml.YAMLError: If YAML parsing fails
        pydantic.ValidationError: If values are out of range
    """
    resolved = resolve_config_path(path)
    if path is None and not os.path.exists(resolved):
        logger.info("No tutor config file found; using defaults", path=resolved)
        config_data = {}
    else:
        config_data = load_yaml_with_env_expansion(resolved)

    inject_api_keys(config_data)
    expand_prompt_tokens(config_data)

    apply_live_defaults(config_data)
    apply_tutor_defaults(config_data)
    apply_logging_defaults(config_data)

    return AppConfig(**config_data)


def validate_config(config: AppConfig) -> tuple[list[str], list[str]]:
    """Validate configuration before a session is attempted.

    Returns:
        (errors, warnings): errors block session start, warnings are logged.
    """
    errors = []
    warnings = []

    if not config.live.api_key:
        errors.append("No Gemini API key configured (set GOOGLE_API_KEY or GEMINI_API_KEY)")
    if "AUDIO" not in [m.upper() for m in config.live.response_modalities]:
        errors.append("live.response_modalities must include AUDIO for spoken replies")
    if config.live.input_sample_rate_hz != 16000:
        warnings.append(
            f"live.input_sample_rate_hz={config.live.input_sample_rate_hz}; Gemini Live expects 16000 Hz PCM input"
        )
    if not (config.live.enable_input_transcription and config.live.enable_output_transcription):
        warnings.append("Transcription disabled for one direction; the transcript will be incomplete")
    if config.media.frame_interval_sec < 0.5:
        warnings.append(
            f"media.frame_interval_sec={config.media.frame_interval_sec} sends frames faster than 2/s"
        )
    if config.enrichment.context_window > 10:
        warnings.append("enrichment.context_window is large; enrichment prompts will grow accordingly")
    if config.logging.level.lower() == "debug":
        warnings.append("Debug logging enabled; transcripts will appear in logs")

    return errors, warnings


__all__ = [
    'DIFFICULTY_LEVELS',
    'AppConfig',
    'ContentConfig',
    'EnrichmentConfig',
    'LiveSessionConfig',
    'LoggingConfig',
    'MediaConfig',
    'PlaybackConfig',
    'TutorConfig',
    'load_config',
    'validate_config',
]
