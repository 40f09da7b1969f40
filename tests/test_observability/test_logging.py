"""Tests for structlog configuration and secret redaction."""

import logging

import pytest
import structlog

from regiq.observability.logging import (
    HANDLER_NAME,
    REDACTED,
    redact_secrets,
    setup_logging,
)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler.get_name() == HANDLER_NAME:
            root.removeHandler(handler)
    root.setLevel(level)
    structlog.reset_defaults()


class TestRedactSecrets:
    def test_masks_credential_fields(self):
        event = redact_secrets(None, "info", {"event": "x", "api_key": "k1", "Authorization": "Bearer t"})

        assert event["api_key"] == REDACTED
        assert event["Authorization"] == REDACTED
        assert event["event"] == "x"

    def test_masks_key_in_url(self):
        event = redact_secrets(
            None,
            "info",
            {"event": "GET https://api.fda.gov/food/enforcement.json?api_key=abc123&limit=5"},
        )

        assert "abc123" not in event["event"]
        assert f"api_key={REDACTED}&limit=5" in event["event"]

    def test_masks_nested_headers(self):
        event = redact_secrets(None, "info", {"headers": {"X-API-KEY": "k", "Accept": "json"}})

        assert event["headers"] == {"X-API-KEY": REDACTED, "Accept": "json"}

    def test_leaves_other_values(self):
        event = redact_secrets(None, "info", {"event": "done", "records": 3, "source": "FDA"})

        assert event == {"event": "done", "records": 3, "source": "FDA"}


class TestSetupLogging:
    def test_repeated_setup_keeps_one_handler(self, restore_logging):
        setup_logging()
        setup_logging()

        handlers = [h for h in logging.getLogger().handlers if h.get_name() == HANDLER_NAME]
        assert len(handlers) == 1

    def test_stdlib_records_are_redacted(self, restore_logging, capsys):
        setup_logging()

        logging.getLogger("regiq.ingestion.test").warning(
            "GET https://api.fda.gov/x?api_key=%s", "secret-value"
        )

        out = capsys.readouterr().out
        assert "secret-value" not in out
        assert f"api_key={REDACTED}" in out

    def test_level_from_settings(self, restore_logging, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "WARNING")

        setup_logging()

        assert logging.getLogger().level == logging.WARNING
