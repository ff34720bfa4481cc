# =============================================================================
# tests/unit/test_settings.py
# Unit Tests for Settings, Errors and Logging
# =============================================================================

import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from medbuddy_core.config import DEFAULT_DB_PATH, load_settings
from medbuddy_core.errors import (
    ConfigurationError,
    DataValidationError,
    ErrorContext,
    RemoteConflictError,
    error_boundary,
    handle_error,
)
from medbuddy_core.logging import LogContext, RedactSecretsFilter, setup_logging
from medbuddy_core.services import BaseService, ServiceResult


class TestLoadSettings:
    """Test environment parsing"""

    def test_defaults(self):
        settings = load_settings(env={})

        assert settings.db_path == DEFAULT_DB_PATH
        assert settings.remote_api_url == "https://api.github.com"
        assert settings.remote_timeout == 15.0
        assert settings.auto_sync_interval == 300
        assert settings.log_level == "INFO"

    def test_overrides(self):
        settings = load_settings(env={
            "MEDBUDDY_DB_PATH": "/tmp/x.db",
            "MEDBUDDY_REMOTE_API_URL": "https://ghe.example.test/api/v3/",
            "MEDBUDDY_REMOTE_TIMEOUT": "4.5",
            "MEDBUDDY_AUTO_SYNC_INTERVAL": "0",
            "MEDBUDDY_LOG_LEVEL": "debug",
        })

        assert settings.db_path == Path("/tmp/x.db")
        assert settings.remote_api_url == "https://ghe.example.test/api/v3"
        assert settings.remote_timeout == 4.5
        assert settings.auto_sync_interval == 0
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize("value", ["soon", "-5"])
    def test_bad_interval_rejected(self, value):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(env={"MEDBUDDY_AUTO_SYNC_INTERVAL": value})

        assert exc_info.value.details["config_key"] == "MEDBUDDY_AUTO_SYNC_INTERVAL"

    @pytest.mark.parametrize("value", ["0", "0.0", "-1", "nan"])
    def test_timeout_must_be_positive(self, value):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(env={"MEDBUDDY_REMOTE_TIMEOUT": value})

        assert exc_info.value.details["config_key"] == "MEDBUDDY_REMOTE_TIMEOUT"

    def test_zero_interval_allowed(self):
        assert load_settings(env={"MEDBUDDY_AUTO_SYNC_INTERVAL": "0"}).auto_sync_interval == 0


class TestErrors:
    """Test exception hierarchy and handlers"""

    def test_error_codes(self):
        assert DataValidationError("x").code == "DATA_001"
        assert ConfigurationError("x").code == "CONFIG_001"
        assert RemoteConflictError("x", status_code=409).code == "SYNC_003"

    def test_to_dict(self):
        data = RemoteConflictError("moved", status_code=409).to_dict()

        assert data["error_type"] == "RemoteConflictError"
        assert data["details"] == {"status_code": 409}

    def test_handle_error_shows_message(self):
        with patch("medbuddy_core.errors.handlers.st") as mock_st:
            handle_error(DataValidationError("Name is required"))

        mock_st.error.assert_called_once_with("Invalid data: Name is required")

    def test_handle_error_can_stay_silent(self):
        with patch("medbuddy_core.errors.handlers.st") as mock_st:
            handle_error(DataValidationError("x"), show_user_message=False)

        mock_st.error.assert_not_called()

    def test_error_context_suppresses_recoverable(self):
        with patch("medbuddy_core.errors.handlers.st") as mock_st:
            with ErrorContext("Saving"):
                raise DataValidationError("bad")

        mock_st.error.assert_called_once()

    def test_error_context_reraises_unrecoverable(self):
        with patch("medbuddy_core.errors.handlers.st"):
            with pytest.raises(ConfigurationError):
                with ErrorContext("Saving", recoverable=False):
                    raise ConfigurationError("bad")

    def test_error_boundary(self):
        @error_boundary(default_return=[], error_message="Chart unavailable")
        def render():
            raise RuntimeError("plot failed")

        with patch("medbuddy_core.errors.handlers.st") as mock_st:
            assert render() == []

        mock_st.error.assert_called_once_with("Error: Chart unavailable")


class TestBaseService:
    """Test ServiceResult wrapping"""

    class _Service(BaseService):
        pass

    def test_success(self):
        result = self._Service().safe_execute("Adding", lambda: 42)

        assert result == ServiceResult(success=True, data=42)
        assert bool(result)

    def test_domain_error_keeps_code(self):
        def fail():
            raise DataValidationError("Name is required", field="name")

        result = self._Service().safe_execute("Adding", fail)

        assert not result
        assert result.error_code == "DATA_001"
        assert result.metadata == {"field": "name"}

    def test_unexpected_error(self):
        def fail():
            raise KeyError("x")

        result = self._Service().safe_execute("Adding", fail)

        assert not result.success
        assert result.error_code == "UNKNOWN"


class TestLogging:
    """Test logging helpers"""

    def test_setup_logging_accepts_level_name(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging(level="warning", log_to_file=False)
            assert root.level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

    def test_log_context_reports_failure(self, caplog):
        logger = logging.getLogger("medbuddy_core.test")

        with caplog.at_level(logging.DEBUG, logger="medbuddy_core.test"):
            with pytest.raises(ValueError):
                with LogContext(logger, "Importing backup"):
                    raise ValueError("bad file")

        assert "Importing backup: started" in caplog.text
        assert "Importing backup: failed after" in caplog.text
        assert "ValueError: bad file" in caplog.text

    @pytest.mark.parametrize("message", [
        "Authorization: Bearer ghp_abc123XYZ",
        "token=ghp_abc123XYZ was rejected",
    ])
    def test_tokens_are_redacted(self, message):
        record = logging.LogRecord("medbuddy_core", logging.INFO, __file__, 1, message, (), None)

        assert RedactSecretsFilter().filter(record)
        assert "abc123XYZ" not in record.getMessage()
