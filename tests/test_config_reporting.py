"""Tests for core/config.py validation and core/reporting.py capture."""

from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from core import reporting
from core.backend import BackendError
from core.config import Settings


class TestSettings:
    def test_production_requires_backend(self):
        with pytest.raises(ValidationError, match="BACKEND_URL and BACKEND_ANON_KEY"):
            Settings(debug=False, backend_url="", backend_anon_key="", _env_file=None)

    def test_debug_only_warns(self):
        settings = Settings(debug=True, backend_url="", backend_anon_key="", _env_file=None)
        assert settings.backend_url == ""

    def test_trailing_slash_stripped(self):
        settings = Settings(debug=False, backend_url="https://x.example.co/", backend_anon_key="k", _env_file=None)
        assert settings.backend_url == "https://x.example.co"

    def test_defaults(self):
        settings = Settings(debug=True, _env_file=None)
        assert settings.notes_table == "notes"
        assert settings.view_cache_ttl == 300
        assert settings.request_timeout == 10.0


class TestReporting:
    def test_init_without_dsn_is_disabled(self):
        settings = Settings(debug=True, sentry_dsn="", _env_file=None)
        with patch.object(reporting.sentry_sdk, "init") as init:
            assert reporting.init_reporting(settings) is False
        init.assert_not_called()

    def test_init_with_dsn(self):
        settings = Settings(
            debug=True,
            sentry_dsn="https://public@sentry.example.com/1",
            sentry_environment="staging",
            _env_file=None,
        )
        with patch.object(reporting.sentry_sdk, "init") as init:
            assert reporting.init_reporting(settings) is True
        kwargs = init.call_args.kwargs
        assert kwargs["dsn"] == "https://public@sentry.example.com/1"
        assert kwargs["environment"] == "staging"
        assert kwargs["send_default_pii"] is False

    def test_capture_tags_operation_and_logs(self, caplog):
        scope = MagicMock()
        scope_cm = MagicMock()
        scope_cm.__enter__.return_value = scope
        error = BackendError("boom", code="network_error")

        with patch.object(reporting.sentry_sdk, "new_scope", return_value=scope_cm), patch.object(
            reporting.sentry_sdk, "capture_exception"
        ) as capture, caplog.at_level("ERROR", logger="notekeep.reporting"):
            reporting.capture_exception(error, "create_note", user_id="u1")

        scope.set_tag.assert_called_once_with("operation", "create_note")
        scope.set_extra.assert_called_once_with("user_id", "u1")
        capture.assert_called_once_with(error)
        assert "create_note failed" in caplog.text
