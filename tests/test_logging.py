"""
Tests for logging helpers.
"""

import structlog

from nswot.core.logging import bind_analysis_id, clear_analysis_id, redact_secrets


class TestRedaction:
    """Test that credentials are masked before rendering."""

    def test_masks_known_secret_fields(self):
        event = {"event": "request_sent", "api_key": "sk-live", "Authorization": "Bearer x", "model": "m"}

        result = redact_secrets(None, "info", event)

        assert result["api_key"] == "***"
        assert result["Authorization"] == "***"
        assert result["model"] == "m"

    def test_leaves_empty_values(self):
        assert redact_secrets(None, "info", {"api_key": None}) == {"api_key": None}


class TestAnalysisId:
    """Test analysis id binding."""

    def test_bind_and_clear(self):
        analysis_id = bind_analysis_id("abc123")

        assert analysis_id == "abc123"
        assert structlog.contextvars.get_contextvars()["analysis_id"] == "abc123"

        clear_analysis_id()
        assert "analysis_id" not in structlog.contextvars.get_contextvars()

    def test_generates_short_id(self):
        analysis_id = bind_analysis_id()
        try:
            assert len(analysis_id) == 8
        finally:
            clear_analysis_id()
