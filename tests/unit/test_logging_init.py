from __future__ import annotations

import logging
from io import StringIO

from sales_ingest.logging import init as log_init
from sales_ingest.logging.init import LabeledFormatter, get_logger, log_summary, reset_logging, setup_logging


def test_setup_logging_creates_app_logger():
    reset_logging()
    logger = setup_logging()
    assert logger.name == "sales_ingest"
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, LabeledFormatter)
    assert logger.propagate is False


def test_labeled_prefixes():
    captured = StringIO()
    logger = logging.getLogger("test_sales_ingest_labels")
    logger.setLevel(logging.INFO)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logging.addLevelName(25, "SUMMARY")
    handler = logging.StreamHandler(captured)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    logger.info("Test info message")
    logger.warning("Test warning message")
    logger.error("Test error message")
    logger.log(25, "Test summary message")

    lines = captured.getvalue().strip().split('\n')
    assert lines == [
        "INFO Test info message",
        "WARN Test warning message",
        "ERROR Test error message",
        "SUMMARY Test summary message",
    ]


def test_setup_logging_idempotent():
    reset_logging()
    logger1 = setup_logging()
    logger2 = setup_logging()
    assert logger1 is logger2
    assert get_logger() is logger1
    assert len(logger1.handlers) == 1


def test_module_loggers_reach_app_handler(capsys):
    reset_logging()
    setup_logging()
    logging.getLogger("sales_ingest.normalizers.ecommerce").info("ecommerce: rows=1")
    assert "INFO ecommerce: rows=1" in capsys.readouterr().out


def test_log_summary_and_debug(capsys):
    reset_logging()
    setup_logging()
    log_summary("file=a.csv rows=1")
    logging.getLogger("sales_ingest.parsing").debug("hidden")
    log_init.enable_debug()
    logging.getLogger("sales_ingest.parsing").debug("shown")
    out = capsys.readouterr().out
    assert "SUMMARY file=a.csv rows=1" in out
    assert "hidden" not in out
    assert "DEBUG shown" in out
    reset_logging()
