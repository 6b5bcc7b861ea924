"""Logging setup: component binding, mode tagging and library levels."""

import logging

import orjson
import pytest
import structlog
from structlog.testing import capture_logs

from launchsniper.logging import LOGGER_NAME, get_logger, setup_logging


@pytest.fixture
def restore_logging():
    yield
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)


def test_component_is_bound():
    with capture_logs() as entries:
        get_logger("admission").info("Trade not admitted", check="balance")

    assert entries[0]["component"] == "admission"
    assert entries[0]["check"] == "balance"


def test_json_file_output_is_tagged(tmp_path, restore_logging):
    log_file = tmp_path / "agent.log"

    setup_logging(level="INFO", json_output=True, log_file=str(log_file), dry_run=True)
    get_logger("execution").info("Buy confirmed", asset_id="Mint111")
    for handler in logging.getLogger().handlers:
        handler.flush()

    line = log_file.read_text().strip().splitlines()[-1]
    entry = orjson.loads(line)
    assert entry["event"] == "Buy confirmed"
    assert entry["component"] == "execution"
    assert entry["mode"] == "paper"
    assert entry["logger"] == LOGGER_NAME
    assert entry["level"] == "info"


def test_library_loggers_quieted_unless_debug(restore_logging):
    setup_logging(level="INFO")
    assert logging.getLogger("httpx").level == logging.WARNING

    setup_logging(level="DEBUG")
    assert logging.getLogger("httpx").level == logging.DEBUG
