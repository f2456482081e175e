#!/usr/bin/env python3
# /redcli/main.py
"""
Redcli Main Entry Point
=======================

This script is the primary entry point for launching the Redcli editor. It performs:
1) Environment Loading: reads ~/.config/redcli/.env and a project .env early (log dir, key trace).
2) Path Setup: ensures the redcli package under src/ is importable.
3) Configuration & Logging: loads config and initializes logging ASAP.
4) Core Import: imports the Redcli class after logging is ready.
5) Curses Wrapper: safely initializes/tears down curses to avoid terminal corruption.
6) Application Run: instantiates Redcli, opens the CLI file and starts its main loop.
"""

from __future__ import annotations

import curses
import locale
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any, Optional

from dotenv import find_dotenv, load_dotenv


# --- Step 1: Load Environment Variables (user config dir, then the project) ---
load_dotenv(dotenv_path=Path.home() / ".config" / "redcli" / ".env")
load_dotenv(find_dotenv(usecwd=True))

# --- Step 2: Set up the Python Path ---
source_root = os.path.join(os.path.dirname(os.path.abspath(__file__)), "src")
if source_root not in sys.path:
    sys.path.insert(0, source_root)

# --- Step 3: Immediate Logging and Configuration Setup ---
try:
    from redcli.utils.logging_config import setup_logging
    from redcli.utils.utils import load_config

    config: dict[str, Any] = load_config()
    setup_logging(config)
    logger = logging.getLogger("redcli")
except Exception as e:
    # Logging is not ready; print to stderr and exit.
    print(f"FATAL: Could not initialize configuration or logging system: {e}", file=sys.stderr)
    import traceback
    traceback.print_exc()
    sys.exit(1)

# --- Step 4: Import the Core Application ---
try:
    from redcli.core.Redcli import Redcli
except ImportError as e:
    logger.critical("Failed to import a critical application component: %s", e, exc_info=True)
    sys.exit(1)


def _resolve_cli_path(argv: list[str]) -> Optional[str]:
    """Optional file path from argv[1]; it need not exist yet."""
    if len(argv) <= 1:
        return None
    raw = argv[1].strip()
    if not raw:
        return None
    return str(Path(raw).expanduser().resolve())


# --- Step 5: Curses Application Runner ---
def main_app_runner(stdscr: curses.window, config: dict[str, Any], file_to_open: Optional[str]) -> None:
    """
    Target for `curses.wrapper`.

    Sets a short ESC delay for snappy Alt combos, blocks terminal suspension
    (SIGTSTP), opens the CLI path (a missing file becomes a new buffer with
    that name) and runs the editor until it stops.
    """
    try:
        curses.set_escdelay(25)
    except curses.error:
        os.environ.setdefault("ESCDELAY", "25")

    editor = Redcli(stdscr, config=config)

    if hasattr(signal, "SIGTSTP"):
        try:
            signal.signal(signal.SIGTSTP, signal.SIG_IGN)
        except (OSError, ValueError):
            logger.debug("Could not ignore SIGTSTP", exc_info=True)

    editor.open_initial_file(file_to_open)
    editor.run()


def start() -> None:
    """Initializes locale and runs the curses application via wrapper."""
    logger.info("Redcli editor starting up...")

    # Locale is important for proper character width/encoding behavior in curses.
    try:
        locale.setlocale(locale.LC_ALL, "")
    except locale.Error:
        logger.warning("Could not set system locale. Character rendering may be affected.")

    file_to_open = _resolve_cli_path(sys.argv)

    try:
        # \x1b[?1h application cursor keys, \x1b= keypad application mode.
        if sys.platform != "win32":
            sys.stdout.write("\x1b[?1h\x1b=")
            sys.stdout.flush()

        curses.wrapper(main_app_runner, config, file_to_open)

        logger.info("Redcli editor shut down gracefully.")
    except Exception:
        logger.critical("Unhandled exception at the top level.", exc_info=True)
        sys.exit(1)
    finally:
        if sys.platform != "win32":
            sys.stdout.write("\x1b[?1l\x1b>")
            sys.stdout.flush()


if __name__ == "__main__":
    start()
