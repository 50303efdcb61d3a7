import pytest

from src.app import build_controller, create_app
from src.config import AppConfig
from src.core.models import SessionStatus
from src.providers.google_live import GeminiLiveTransport


def test_build_controller_shares_tutor_settings(devices, audio_output, transport):
    config = AppConfig()
    app = build_controller(config, devices, audio_output, transport=transport)

    assert app.controller.status is SessionStatus.IDLE
    assert app.controller.transport is transport
    # Difficulty changed on the controller reaches the enrichment prompts.
    app.controller.set_difficulty("elementary")
    assert app.content.tutor.difficulty == "elementary"


def test_create_app_uses_gemini_transport(monkeypatch, devices, audio_output):
    monkeypatch.setenv("GOOGLE_API_KEY", "test-key")
    monkeypatch.setenv("LOG_FORMAT", "console")
    app = create_app(devices, audio_output, "config/tutor.yaml")

    assert isinstance(app.controller.transport, GeminiLiveTransport)
    assert app.controller.transport.settings.api_key == "test-key"


def test_create_app_rejects_missing_key(monkeypatch, devices, audio_output):
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    with pytest.raises(RuntimeError):
        create_app(devices, audio_output, "config/tutor.yaml")


@pytest.mark.asyncio
async def test_close_releases_devices(devices, audio_output, transport):
    app = build_controller(AppConfig(), devices, audio_output, transport=transport)
    await app.controller.request_permissions()

    await app.close()

    assert devices.closed is True
    assert app.controller.status is SessionStatus.IDLE
