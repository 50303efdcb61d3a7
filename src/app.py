"""
Application wiring.

Loads configuration, sets up logging, validates the config and builds a
SessionController backed by the Gemini Live transport and the Gemini content
client. Platform code supplies the MediaDevices and AudioOutput
implementations and drives the controller from its UI.
"""

from __future__ import annotations

from typing import Optional

from .config import AppConfig, load_config, validate_config
from .core.session_controller import SessionController
from .devices.base import AudioOutput, MediaDevices
from .logging_config import configure_logging, get_logger
from .providers.base import LiveTransport
from .providers.gemini_content import GeminiContentClient
from .providers.google_live import GeminiLiveTransport

logger = get_logger(__name__)


class TutorApp:
    """A controller plus the long-lived clients it depends on."""

    def __init__(self, controller: SessionController, content: GeminiContentClient):
        self.controller = controller
        self.content = content

    async def close(self) -> None:
        await self.controller.release_devices()
        await self.content.close()
        logger.info("Live tutor has shut down.")


def build_controller(
    config: AppConfig,
    devices: MediaDevices,
    audio_output: AudioOutput,
    *,
    transport: Optional[LiveTransport] = None,
    content: Optional[GeminiContentClient] = None,
) -> TutorApp:
    # The content client shares the tutor section so difficulty changes reach enrichment.
    content = content or GeminiContentClient(config.content, config.enrichment, config.tutor)
    controller = SessionController(
        devices=devices,
        audio_output=audio_output,
        transport=transport or GeminiLiveTransport(config.live),
        describe_scene=content.describe_scene,
        enrich=content.enrich,
        config=config,
    )
    return TutorApp(controller, content)


def create_app(
    devices: MediaDevices,
    audio_output: AudioOutput,
    config_path: Optional[str] = None,
) -> TutorApp:
    config = load_config(config_path)
    configure_logging(log_level=config.logging.level.upper(), log_format=config.logging.format)

    errors, warnings = validate_config(config)
    if errors:
        logger.error("Configuration validation FAILED", errors=errors, warnings=warnings)
        raise RuntimeError(f"Configuration errors: {errors}")
    if warnings:
        logger.warning("Configuration warnings", warnings=warnings)
    logger.info(
        "Configuration validation passed",
        model=config.live.model,
        difficulty=config.tutor.difficulty,
    )

    return build_controller(config, devices, audio_output)
