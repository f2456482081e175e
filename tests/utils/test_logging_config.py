# tests/utils/test_logging_config.py
"""Unit tests for logging configuration utility.
=================================================

Tests for the logging setup utility in `redcli.utils.logging_config`.

This module verifies that `setup_logging`:
- Creates rotating file handlers for the main log and a separate error log
  when `separate_error_log` is enabled.
- Honors the configured levels for each handler.
- Can disable console logging when `log_to_console` is set to False.
- Enables the key-event trace only when `REDCLI_KEYTRACE` is set.

Log files go to a temporary `REDCLI_LOG_DIR` to avoid touching real files.
"""

import logging
from pathlib import Path
from typing import Generator

import pytest

from redcli.utils import logging_config


@pytest.fixture(autouse=True)
def restore_root_handlers(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Points the log directory at tmp_path and restores root handlers afterwards."""
    monkeypatch.setenv("REDCLI_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("REDCLI_KEYTRACE", raising=False)
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)


def test_setup_logging_creates_handlers(tmp_path: Path) -> None:
    """`setup_logging` should add rotating file handlers with proper levels.

    Scenario:
    - Console logging is disabled.
    - Separate error log is requested.
    - File handler level is INFO.
    - Error file handler level is ERROR.
    """
    logging_config.setup_logging(
        {
            "logging": {
                "file_level": "INFO",
                "console_level": "ERROR",
                "log_to_console": False,
                "separate_error_log": True,
            }
        }
    )

    root = logging.getLogger()
    names = {type(h).__name__ for h in root.handlers}

    assert "RotatingFileHandler" in names
    # Exactly two handlers: main file + error file
    assert len(root.handlers) == 2
    assert root.handlers[0].level == logging.INFO
    assert root.handlers[1].level == logging.ERROR
    assert (tmp_path / "logs" / "editor.log").exists()
    assert (tmp_path / "logs" / "error.log").exists()


def test_console_handler_is_optional() -> None:
    logging_config.setup_logging({"logging": {"log_to_console": True, "console_level": "error"}})
    root = logging.getLogger()
    stream_handlers = [h for h in root.handlers if type(h) is logging.StreamHandler]
    assert len(stream_handlers) == 1
    assert stream_handlers[0].level == logging.ERROR
    assert root.level == logging.DEBUG


def test_key_trace_disabled_by_default() -> None:
    logging_config.setup_logging({})
    assert logging_config.KEY_LOGGER.disabled is True
    assert logging_config.KEY_LOGGER.propagate is False


def test_key_trace_enabled_by_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REDCLI_KEYTRACE", "1")
    logging_config.setup_logging({})
    assert logging_config.KEY_LOGGER.disabled is False
    assert (tmp_path / "logs" / "keytrace.log").exists()
    for handler in logging_config.KEY_LOGGER.handlers:
        handler.close()


def test_resolve_log_dir_falls_back_to_temp(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    monkeypatch.setenv("REDCLI_LOG_DIR", str(blocker / "logs"))
    log_dir = logging_config.resolve_log_dir()
    assert log_dir.name == "redcli-logs"
    assert log_dir.is_dir()
