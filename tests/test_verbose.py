"""Tests for run logging and logger isolation."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from bookgrade.verbose import close_logger, setup_logger


def test_logger_creates_debug_log(tmp_path: Path):
    debug_file = tmp_path / "nested" / "debug.log"
    logger = setup_logger(debug_file=debug_file, verbose=False, logger_name="bookgrade_t1")

    assert not logger.disabled
    assert logger.level == logging.DEBUG
    assert debug_file.exists()


def test_logger_writes_to_file(tmp_path: Path):
    debug_file = tmp_path / "debug.log"
    logger = setup_logger(debug_file=debug_file, logger_name="bookgrade_t2")

    logger.debug("test message")

    content = debug_file.read_text()
    assert "test message" in content
    assert "DEBUG bookgrade_t2" in content


def test_verbose_mode_adds_stderr_handler(tmp_path: Path):
    quiet = setup_logger(tmp_path / "a.log", verbose=False, logger_name="bookgrade_quiet")
    loud = setup_logger(tmp_path / "b.log", verbose=True, logger_name="bookgrade_loud")

    assert [type(h).__name__ for h in quiet.handlers] == ["FileHandler"]
    handler_types = [type(h).__name__ for h in loud.handlers]
    assert "FileHandler" in handler_types
    assert "StreamHandler" in handler_types


def test_unique_logger_names_are_isolated(tmp_path: Path):
    log1 = tmp_path / "run1.log"
    log2 = tmp_path / "run2.log"
    logger1 = setup_logger(log1, logger_name="bookgrade_run1")
    logger2 = setup_logger(log2, logger_name="bookgrade_run2")

    logger1.debug("Message from run1")
    logger2.debug("Message from run2")

    assert "Message from run1" in log1.read_text()
    assert "Message from run2" not in log1.read_text()
    assert "Message from run2" in log2.read_text()
    assert "Message from run1" not in log2.read_text()


def test_same_logger_name_raises_error(tmp_path: Path):
    setup_logger(tmp_path / "log1.log", logger_name="bookgrade_shared")

    with pytest.raises(RuntimeError) as exc_info:
        setup_logger(tmp_path / "log2.log", logger_name="bookgrade_shared")

    assert "bookgrade_shared" in str(exc_info.value)
    assert "already exists" in str(exc_info.value)


def test_close_logger_allows_reuse(tmp_path: Path):
    logger = setup_logger(tmp_path / "first.log", logger_name="bookgrade_reuse")
    close_logger(logger)

    assert logger.handlers == []
    assert logger.propagate
    again = setup_logger(tmp_path / "second.log", logger_name="bookgrade_reuse")
    again.info("second run")
    assert "second run" in (tmp_path / "second.log").read_text()


def test_library_records_reach_run_log(tmp_path: Path):
    debug_file = tmp_path / "debug.log"
    setup_logger(debug_file, logger_name="bookgrade")

    logging.getLogger("bookgrade.scoring").warning("from a library module")

    assert "from a library module" in debug_file.read_text()
