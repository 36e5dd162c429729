# tests/test_logging_mods.py
import logging
import logging as std_logging

import utils.logging as logging_utils
from config import settings


def test_setup_logging_file_error(monkeypatch, caplog):
    caplog.set_level(logging.ERROR)
    root_logger = std_logging.getLogger()

    class Handlers(list):
        def clear(self):
            pass

    monkeypatch.setattr(root_logger, "handlers", Handlers([caplog.handler]))
    logging_utils.structlog.configure(
        logger_factory=logging_utils.structlog.stdlib.LoggerFactory()
    )
    monkeypatch.setattr(logging_utils, "logger", logging_utils.structlog.get_logger("t"))

    def raise_handler(*_a, **_k):
        raise OSError("fail")

    monkeypatch.setattr(std_logging.handlers, "RotatingFileHandler", raise_handler)
    monkeypatch.setattr(settings, "LOG_FILE", "temp.log")

    logging_utils.setup_logging()

    assert any(
        "Error setting up file logger" in record.getMessage() for record in caplog.records
    )


def test_setup_logging_without_file_uses_plain_console(monkeypatch):
    root_logger = std_logging.getLogger()
    monkeypatch.setattr(root_logger, "handlers", [])
    monkeypatch.setattr(settings, "LOG_FILE", None)
    monkeypatch.setattr(settings, "ENABLE_RICH_PROGRESS", False)

    logging_utils.setup_logging()

    assert [type(h) for h in root_logger.handlers] == [std_logging.StreamHandler]
