"""
Tests for logging setup.
"""

import logging
import logging.handlers
from pathlib import Path

from tagwatch.core.observability.logging_config import setup_logging


def _file_handlers() -> list[logging.handlers.TimedRotatingFileHandler]:
    return [
        h
        for h in logging.getLogger().handlers
        if isinstance(h, logging.handlers.TimedRotatingFileHandler)
    ]


def test_console_only():
    setup_logging(level="INFO")
    root = logging.getLogger()
    assert root.level == logging.INFO
    assert len(root.handlers) == 1
    assert _file_handlers() == []


def test_unknown_level_falls_back_to_warning():
    setup_logging(level="LOUD")
    assert logging.getLogger().level == logging.WARNING


def test_repeated_setup_replaces_handlers():
    setup_logging(level="INFO")
    setup_logging(level="DEBUG")
    assert len(logging.getLogger().handlers) == 1


def test_file_rotates_daily_keeping_one(tmp_path: Path):
    log_file = tmp_path / "logs" / "poller.log"
    setup_logging(level="WARNING", log_file=log_file, log_file_level="DEBUG", keep_days=1)

    handler = _file_handlers()[0]
    assert handler.when == "MIDNIGHT"
    assert handler.backupCount == 1
    assert handler.level == logging.DEBUG
    # root must let DEBUG records through to the file
    assert logging.getLogger().level == logging.DEBUG

    logging.getLogger("tagwatch.test").info("cycle done")
    handler.flush()
    assert "cycle done" in log_file.read_text()


def test_third_party_quieted():
    logging.getLogger("urllib3").setLevel(logging.DEBUG)
    setup_logging(level="INFO")
    assert logging.getLogger("urllib3").level == logging.WARNING
