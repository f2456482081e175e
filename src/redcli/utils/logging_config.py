# redcli/utils/logging_config.py
"""redcli.utils.logging_config
=============================

Logging setup for the Redcli editor.

A curses application cannot print diagnostics to the terminal it is drawing
on, so everything goes to rotating files:

    - ``editor.log``: all records from ``file_level`` upward.
    - ``error.log``: ERROR and CRITICAL only, when ``separate_error_log``.
    - ``keytrace.log``: raw key events, only with ``REDCLI_KEYTRACE=1``.
    - stderr: optional, from ``console_level`` upward.

Log files live in ``$REDCLI_LOG_DIR`` if set, otherwise in
``~/.config/redcli/logs``; when that directory cannot be created the system
temp directory is used. ``setup_logging`` never raises.

Globals:
    logger: Main application logger ("redcli").
    KEY_LOGGER: Logger for raw key-press trace events ("redcli.keyevents").
"""

import logging
import logging.handlers
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional


logger = logging.getLogger("redcli")
KEY_LOGGER = logging.getLogger("redcli.keyevents")

FILE_FORMAT = "%(asctime)s - %(levelname)-8s - %(name)-15s - %(message)s (%(filename)s:%(lineno)d)"
CONSOLE_FORMAT = "%(levelname)-8s - %(name)-12s - %(message)s"


def resolve_log_dir() -> Path:
    """Returns an existing, writable directory for log files."""
    candidate = Path(
        os.environ.get("REDCLI_LOG_DIR") or Path.home() / ".config" / "redcli" / "logs"
    )
    try:
        candidate.mkdir(parents=True, exist_ok=True)
        return candidate
    except OSError as e_mkdir:
        fallback = Path(tempfile.gettempdir()) / "redcli-logs"
        print(
            f"Error creating log directory '{candidate}': {e_mkdir}. Using '{fallback}'.",
            file=sys.stderr,
        )
        fallback.mkdir(parents=True, exist_ok=True)
        return fallback


def _rotating_handler(
    path: Path, level: int, max_bytes: int, backups: int, fmt: str
) -> Optional[logging.Handler]:
    try:
        handler = logging.handlers.RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8"
        )
    except OSError as e_fh:
        print(f"Error setting up log file '{path}': {e_fh}.", file=sys.stderr)
        return None
    handler.setFormatter(logging.Formatter(fmt))
    handler.setLevel(level)
    return handler


def setup_logging(config: Optional[dict[str, Any]] = None) -> None:
    """Configures the root logger and the key-event logger.

    Only the ``[logging]`` table of ``config`` is consulted:

        - ``file_level`` (str): level for editor.log. Default ``"DEBUG"``.
        - ``console_level`` (str): level for stderr. Default ``"WARNING"``.
        - ``log_to_console`` (bool): attach the stderr handler. Default ``False``.
        - ``separate_error_log`` (bool): also write error.log. Default ``False``.

    Calling it again replaces the previously attached handlers.
    """
    settings = (config or {}).get("logging", {})
    file_level = getattr(logging, str(settings.get("file_level", "DEBUG")).upper(), logging.DEBUG)
    log_dir = resolve_log_dir()

    handlers: list[logging.Handler] = []
    file_handler = _rotating_handler(
        log_dir / "editor.log", file_level, 2 * 1024 * 1024, 5, FILE_FORMAT
    )
    if file_handler:
        handlers.append(file_handler)

    if settings.get("log_to_console", False):
        console_level = getattr(
            logging, str(settings.get("console_level", "WARNING")).upper(), logging.WARNING
        )
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console_handler.setLevel(console_level)
        handlers.append(console_handler)

    if settings.get("separate_error_log", False):
        error_handler = _rotating_handler(
            log_dir / "error.log", logging.ERROR, 1024 * 1024, 3, FILE_FORMAT
        )
        if error_handler:
            handlers.append(error_handler)

    root_logger = logging.getLogger()
    for old in root_logger.handlers:
        old.close()
    root_logger.handlers = handlers
    root_logger.setLevel(file_level)

    KEY_LOGGER.propagate = False
    KEY_LOGGER.setLevel(logging.DEBUG)
    KEY_LOGGER.handlers = []
    KEY_LOGGER.disabled = False
    if os.environ.get("REDCLI_KEYTRACE", "").lower() in {"1", "true", "yes"}:
        key_handler = _rotating_handler(
            log_dir / "keytrace.log", logging.DEBUG, 1024 * 1024, 3, "%(asctime)s - %(message)s"
        )
        if key_handler:
            KEY_LOGGER.addHandler(key_handler)
            logging.info(f"Key event tracing enabled, logging to '{log_dir / 'keytrace.log'}'.")
        else:
            KEY_LOGGER.disabled = True
    else:
        KEY_LOGGER.addHandler(logging.NullHandler())
        KEY_LOGGER.disabled = True

    logging.info(
        f"Logging setup complete in '{log_dir}'. Root level: "
        f"{logging.getLevelName(root_logger.level)}."
    )
