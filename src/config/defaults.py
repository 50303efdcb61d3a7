"""
Default value application for configuration.

Environment variables override YAML for the handful of settings that are
commonly tuned per machine or per learner without editing the file.
"""

import os
from typing import Any, Dict


def _float_env(name: str, fallback: Any) -> Any:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return fallback
    try:
        return float(raw)
    except ValueError:
        return fallback


def apply_tutor_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply learner settings.

    Environment variables:
    - TUTOR_DIFFICULTY: elementary|middle_school|high_school|university
    - TUTOR_SPEECH_RATE: playback rate multiplier (0.5 - 2.0)
    """
    tutor_cfg = config_data.get('tutor') or {}
    difficulty = os.getenv('TUTOR_DIFFICULTY', '').strip()
    if difficulty:
        tutor_cfg['difficulty'] = difficulty
    config_data['tutor'] = tutor_cfg

    playback_cfg = config_data.get('playback') or {}
    playback_cfg['speech_rate'] = _float_env('TUTOR_SPEECH_RATE', playback_cfg.get('speech_rate', 1.0))
    config_data['playback'] = playback_cfg


def apply_live_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply Gemini Live defaults.

    Environment variables:
    - GEMINI_LIVE_MODEL: Override the live model
    - GEMINI_LIVE_VOICE: Override the prebuilt voice name
    """
    live_cfg = config_data.get('live') or {}
    model = os.getenv('GEMINI_LIVE_MODEL', '').strip()
    if model:
        live_cfg['model'] = model
    voice = os.getenv('GEMINI_LIVE_VOICE', '').strip()
    if voice:
        live_cfg['voice_name'] = voice
    config_data['live'] = live_cfg


def apply_logging_defaults(config_data: Dict[str, Any]) -> None:
    """LOG_LEVEL / LOG_FORMAT win over the YAML logging block."""
    logging_cfg = config_data.get('logging') or {}
    logging_cfg.setdefault('level', 'info')
    logging_cfg.setdefault('format', 'json')
    if os.getenv('LOG_LEVEL'):
        logging_cfg['level'] = os.getenv('LOG_LEVEL', 'info').lower()
    if os.getenv('LOG_FORMAT'):
        logging_cfg['format'] = os.getenv('LOG_FORMAT', 'json').lower()
    config_data['logging'] = logging_cfg
