"""
Test log sanitization and the per-session correlation id.

The Gemini key is the only secret this process holds; it must never reach
log output in clear, while session fields stay readable.
"""

from src.logging_config import (
    add_correlation_id,
    clear_correlation_id,
    get_correlation_id,
    sanitize_secrets,
    set_correlation_id,
)


class TestGeminiKeyRedaction:
    def test_api_key_field_redacted(self):
        event_dict = {"event": "Connecting to Gemini Live", "api_key": "AIzaSyExampleKey0123"}
        result = sanitize_secrets(None, None, event_dict)

        assert result["api_key"] == "AI***REDACTED***"
        assert result["event"] == "Connecting to Gemini Live"

    def test_goog_api_key_header_redacted(self):
        """generateContent requests carry the key in the x-goog-api-key header."""
        event_dict = {
            "event": "generateContent request",
            "headers": {"x-goog-api-key": "AIzaSyExampleKey0123", "Content-Type": "application/json"},
        }
        result = sanitize_secrets(None, None, event_dict)

        assert result["headers"]["x-goog-api-key"] == "AI***REDACTED***"
        assert result["headers"]["Content-Type"] == "application/json"

    def test_key_inside_live_settings_redacted(self):
        event_dict = {
            "event": "Config loaded",
            "live": {"model": "gemini-2.5-flash-native-audio-preview-09-2025", "api_key": "AIzaSyExampleKey0123"},
        }
        result = sanitize_secrets(None, None, event_dict)

        assert result["live"]["api_key"] == "AI***REDACTED***"
        assert result["live"]["model"] == "gemini-2.5-flash-native-audio-preview-09-2025"

    def test_missing_key_left_as_is(self):
        assert sanitize_secrets(None, None, {"api_key": None})["api_key"] is None
        assert sanitize_secrets(None, None, {"api_key": ""})["api_key"] == ""

    def test_session_fields_not_redacted(self):
        event_dict = {
            "event": "Uplink started",
            "session_id": "3f1c9a",
            "entry_id": "user-0a1b2c3d4e5f",
            "passthrough_mime_types": ["audio/pcm;rate=16000", "image/jpeg"],
            "frame_interval_sec": 1.0,
            "close_code": 1000,
        }
        result = sanitize_secrets(None, None, dict(event_dict))

        assert result == event_dict


class TestCorrelationId:
    """Tests for the per-session correlation id."""

    def test_set_and_clear(self):
        session_id = set_correlation_id("session-1")
        assert session_id == "session-1"
        assert get_correlation_id() == "session-1"

        result = add_correlation_id(None, None, {"event": "Session listening"})
        assert result["correlation_id"] == "session-1"

        clear_correlation_id()
        assert "correlation_id" not in add_correlation_id(None, None, {"event": "idle"})

    def test_generated_when_not_given(self):
        session_id = set_correlation_id()
        assert session_id
        assert get_correlation_id() == session_id
        clear_correlation_id()
