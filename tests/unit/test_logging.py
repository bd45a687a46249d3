"""Unit tests for logging configuration."""

import logging

import structlog

from transaction_service.logging import configure_logging, mask_sensitive_values


class TestMaskSensitiveValues:
    """Tests for the credential masking processor."""

    def test_masks_credentials(self) -> None:
        event = {"event": "verify", "credential": "abc", "authorization": "Bearer abc", "user_id": "user-001"}

        masked = mask_sensitive_values(None, "info", event)

        assert masked["credential"] == "***"
        assert masked["authorization"] == "***"
        assert masked["user_id"] == "user-001"

    def test_empty_values_untouched(self) -> None:
        masked = mask_sensitive_values(None, "info", {"event": "verify", "token": ""})

        assert masked["token"] == ""


class TestConfigureLogging:
    """Tests for configure_logging."""

    def teardown_method(self) -> None:
        logging.getLogger().handlers.clear()
        structlog.reset_defaults()
        structlog.contextvars.clear_contextvars()

    def test_sets_root_level(self) -> None:
        configure_logging(level="debug", log_format="console")

        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_binds_service_name(self) -> None:
        configure_logging(level="INFO", log_format="json", service_name="transaction-service-test")

        assert structlog.contextvars.get_contextvars()["service"] == "transaction-service-test"

    def test_json_output_masks_tokens(self, capsys) -> None:
        configure_logging(level="INFO", log_format="json")

        structlog.get_logger("test").info("token_checked", access_token="secret-value")

        out = capsys.readouterr().out
        assert "token_checked" in out
        assert "secret-value" not in out
