"""Tests for logging setup and configuration."""

import json
import logging
from logging.handlers import TimedRotatingFileHandler

import pytest

from gcp_auth.logging.formatters import ConsoleFormatter, JSONFormatter
from gcp_auth.logging.setup import NOISY_LOGGERS, get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:

    def test_console_only(self):
        logger = setup_logging("gcp_auth.test")

        root = logging.getLogger()
        assert logger.name == "gcp_auth.test"
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, ConsoleFormatter)
        assert root.handlers[0].level == logging.INFO

    def test_json_console(self):
        setup_logging(json_format=True, console_level=logging.WARNING)

        handler = logging.getLogger().handlers[0]
        assert isinstance(handler.formatter, JSONFormatter)
        assert handler.level == logging.WARNING

    def test_file_handler_writes_json(self, tmp_path):
        log_file = tmp_path / "logs" / "auth.log"
        logger = setup_logging(log_file=log_file)

        file_handlers = [
            h for h in logging.getLogger().handlers if isinstance(h, TimedRotatingFileHandler)
        ]
        assert len(file_handlers) == 1
        assert file_handlers[0].backupCount == 7

        logger.info("Token valid", extra={"provider": "gcloud", "access_token": "ya29.x"})
        file_handlers[0].flush()

        lines = log_file.read_text().strip().splitlines()
        entry = json.loads(lines[-1])
        assert entry["message"] == "Token valid"
        assert entry["provider"] == "gcloud"
        assert entry["access_token"] == "[REDACTED]"

    def test_noisy_loggers_suppressed(self):
        setup_logging()
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_noisy_loggers_only_cover_libraries_in_use(self):
        assert "aiohttp.client" in NOISY_LOGGERS
        assert "urllib3" not in NOISY_LOGGERS


def test_get_logger():
    assert get_logger("gcp_auth.oauth2") is logging.getLogger("gcp_auth.oauth2")
