# tests/conftest.py
"""Pytest configuration with shared fixtures for the Redcli editor tests.

Curses calls that need an initialized screen are mocked, so the suite runs
without a terminal.
"""

from __future__ import annotations

import queue
import tempfile
from pathlib import Path
from typing import Any, Generator
from unittest.mock import MagicMock, patch

import pytest

from redcli.core.Document import Document
from redcli.core.Redcli import Redcli
from redcli.utils.utils import DEFAULT_CONFIG, deep_merge


# --- Automatic mocking of the curses module ---
@pytest.fixture(autouse=True)
def mock_curses_functions() -> Generator[None, None, None]:
    """Mock `curses` functions that require `initscr()`.

    Constants like `KEY_UP` and `A_REVERSE` stay real; functions touching
    the terminal and the color globals set by `start_color()` are replaced.
    """
    with patch.multiple(
        "curses",
        create=True,
        curs_set=MagicMock(return_value=1),
        init_pair=MagicMock(return_value=None),
        color_pair=MagicMock(side_effect=lambda n: n << 8),
        has_colors=MagicMock(return_value=True),
        start_color=MagicMock(),
        use_default_colors=MagicMock(),
        doupdate=MagicMock(),
        raw=MagicMock(),
        noecho=MagicMock(),
        COLORS=256,
        COLOR_PAIRS=256,
        ACS_HLINE=ord("-"),
        ACS_VLINE=ord("|"),
    ):
        yield


# --- Base fixtures for curses and configuration ---
@pytest.fixture
def mock_stdscr() -> MagicMock:
    """A mocked `stdscr` with terminal size set to (24, 80)."""
    stdscr = MagicMock()
    stdscr.getmaxyx.return_value = (24, 80)
    return stdscr


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Default configuration with a few test-friendly overrides."""
    return deep_merge(
        DEFAULT_CONFIG,
        {
            "editor": {"use_system_clipboard": False, "external_check_interval": 0.0},
            "completion": {"debounce_ms": 0},
        },
    )


# --- Redcli fixtures ---
@pytest.fixture
def real_editor(mock_stdscr: MagicMock, mock_config: dict[str, Any]) -> Redcli:
    """A real `Redcli` in lightweight mode (no background engine, no termios)."""
    return Redcli(mock_stdscr, mock_config, lightweight_mode=True)


@pytest.fixture
def editor_with_text(real_editor: Redcli, sample_text: list[str]) -> Redcli:
    """A `Redcli` whose active document holds `sample_text` as Python."""
    real_editor.session.close()
    real_editor.session.new_document("\n".join(sample_text), language="python")
    return real_editor


@pytest.fixture
def python_document(mock_config: dict[str, Any], sample_text: list[str]) -> Document:
    """A standalone Python document built from `sample_text`."""
    return Document("\n".join(sample_text), config=mock_config, language="python")


# --- Filesystem fixtures ---
@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """A temporary directory with sample files and a subdirectory."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        tmp_path = Path(tmp_dir)
        (tmp_path / "file1.txt").write_text("Content of file1")
        (tmp_path / "file2.py").write_text("print('Hello, world!')")
        subdir = tmp_path / "subdir"
        subdir.mkdir()
        (subdir / "subfile.txt").write_text("Content of subfile")
        yield tmp_path


@pytest.fixture
def test_file_path(temp_dir: Path) -> Path:
    test_file = temp_dir / "test_file.py"
    test_file.write_text("print('Hello, world!')\n")
    return test_file


# --- Helper fixtures ---
@pytest.fixture
def sample_text() -> list[str]:
    """A sample code snippet as a list of lines."""
    return [
        "def hello_world():",
        "    # This is a comment",
        "    print('Hello, world!')",
        "    return True",
        "",
    ]


@pytest.fixture
def ui_queue() -> queue.Queue[dict[str, Any]]:
    return queue.Queue()
