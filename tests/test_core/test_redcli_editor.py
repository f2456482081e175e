# tests/test_core/test_redcli_editor.py
"""Test suite for the Redcli class.
===================================

Tests for the `Redcli` controller, driven through a real instance in
lightweight mode (no background engine, no termios changes).

This module validates the following functionality:

1. Initialization
   - Core attributes, default state and components.

2. Clipboard integration (pyperclip)
   - Availability checks and exception handling.
   - Copy, cut and paste through the internal and system clipboards.

3. Typing and indentation
   - Insert and replace modes, Enter/Backspace, smart tab and unindent.

4. Cursor movement
   - End/Down column memory, smart Home, word movement.

5. Prompts
   - Go to line, find, search options, replace current and replace all
     (prompt is patched).

6. Documents and exit
   - New/switch/open documents and the exit confirmation flow.

Usage
-----
Run just this file:

    pytest -q tests/test_core/test_redcli_editor.py

"""

from __future__ import annotations

import importlib
from pathlib import Path
from unittest.mock import MagicMock, Mock, patch

import pytest

from redcli.core.CodeCommenter import CodeCommenter
from redcli.core.EditorErrors import RangeError
from redcli.core.Redcli import Redcli
from redcli.core.SearchEngine import SearchOptions
from redcli.core.TextBuffer import Position
from redcli.ui.DrawScreen import DrawScreen
from redcli.ui.KeyBinder import KeyBinder


redcli_module = importlib.import_module("redcli.core.Redcli")


def select(editor: Redcli, start: tuple[int, int], end: tuple[int, int]) -> None:
    editor.document.set_cursor(Position(*start))
    editor.document.set_cursor(Position(*end), extend=True)


class TestInitialization:
    def test_init_basic_attributes(self, real_editor: Redcli) -> None:
        assert real_editor.is_lightweight is True
        assert real_editor.async_engine is None
        assert real_editor.insert_mode is True
        assert real_editor.status_message == "Ready"
        assert real_editor.document.path is None
        assert real_editor.visible_lines == 22

    def test_init_components(self, real_editor: Redcli) -> None:
        assert isinstance(real_editor.commenter, CodeCommenter)
        assert isinstance(real_editor.drawer, DrawScreen)
        assert isinstance(real_editor.keybinder, KeyBinder)
        assert real_editor.handle_input == real_editor.keybinder.handle_input

    def test_set_status_message(self, real_editor: Redcli) -> None:
        real_editor._set_status_message("Test message")
        assert real_editor.status_message == "Test message"
        assert real_editor.session.status_message == "Test message"

    def test_handle_resize(self, real_editor: Redcli) -> None:
        real_editor.stdscr.getmaxyx.return_value = (30, 100)
        real_editor.scroll_left = 7
        assert real_editor.handle_resize()
        assert real_editor.visible_lines == 28
        assert real_editor.last_window_size == (30, 100)
        assert real_editor.scroll_left == 0


class TestClipboard:
    def test_check_pyclip_disabled_in_config(self, real_editor: Redcli) -> None:
        real_editor.config["editor"]["use_system_clipboard"] = False
        assert real_editor._check_pyclip_availability() is False

    def test_check_pyclip_available(self, real_editor: Redcli) -> None:
        real_editor.config["editor"]["use_system_clipboard"] = True
        with patch.object(redcli_module, "pyperclip") as mock_pyperclip:
            mock_pyperclip.copy.return_value = None
            assert real_editor._check_pyclip_availability() is True

    def test_check_pyclip_exception(self, real_editor: Redcli) -> None:
        class MockPyperclipException(Exception):
            """Stands in for pyperclip's error type."""

        real_editor.config["editor"]["use_system_clipboard"] = True
        with patch.object(redcli_module, "pyperclip") as mock_pyperclip:
            mock_pyperclip.PyperclipException = MockPyperclipException
            mock_pyperclip.copy.side_effect = MockPyperclipException("Clipboard error")
            assert real_editor._check_pyclip_availability() is False

    def test_copy_without_selection_copies_line(self, editor_with_text: Redcli) -> None:
        assert editor_with_text.copy() is True
        assert editor_with_text.internal_clipboard == "def hello_world():\n"
        assert editor_with_text.status_message == "Line copied"

    def test_copy_to_internal_clipboard(self, editor_with_text: Redcli) -> None:
        select(editor_with_text, (0, 0), (0, 5))
        assert editor_with_text.copy() is True
        assert editor_with_text.internal_clipboard == "def h"
        assert "Copied to internal clipboard" in editor_with_text.status_message

    def test_copy_to_system_clipboard(self, editor_with_text: Redcli) -> None:
        select(editor_with_text, (0, 0), (0, 5))
        editor_with_text.use_system_clipboard = True
        editor_with_text.pyclip_available = True
        with patch.object(redcli_module, "pyperclip") as mock_pyperclip:
            assert editor_with_text.copy() is True
            mock_pyperclip.copy.assert_called_once_with("def h")
        assert "Copied to system clipboard" in editor_with_text.status_message

    def test_cut_line_then_paste_restores(self, editor_with_text: Redcli) -> None:
        original = editor_with_text.document.buffer.text()
        editor_with_text.document.set_cursor(Position(1, 3))

        editor_with_text.cut()
        assert editor_with_text.internal_clipboard == "    # This is a comment\n"
        assert editor_with_text.document.buffer.line(1) == "    print('Hello, world!')"
        assert editor_with_text.document.cursor == Position(1, 0)
        assert editor_with_text.status_message == "Line cut"

        editor_with_text.paste()
        assert editor_with_text.document.buffer.text() == original
        assert editor_with_text.status_message == "Pasted from clipboard"

    def test_cut_selection(self, editor_with_text: Redcli) -> None:
        select(editor_with_text, (0, 4), (0, 9))
        editor_with_text.cut()
        assert editor_with_text.internal_clipboard == "hello"
        assert editor_with_text.document.buffer.line(0) == "def _world():"

    def test_paste_empty_clipboard(self, real_editor: Redcli) -> None:
        real_editor.paste()
        assert real_editor.status_message == "Clipboard is empty"

    def test_paste_is_one_undo_step(self, real_editor: Redcli) -> None:
        real_editor.internal_clipboard = "a\r\nb\nc"
        real_editor.paste()
        assert list(real_editor.document.buffer) == ["a", "b", "c"]
        real_editor.undo()
        assert real_editor.document.buffer.text() == ""


class TestTyping:
    def test_type_and_undo_redo(self, real_editor: Redcli) -> None:
        assert real_editor.type_character("x")
        assert real_editor.document.buffer.text() == "x"
        assert real_editor.undo()
        assert real_editor.document.buffer.text() == ""
        assert real_editor.status_message == "Action undone"
        real_editor.undo()
        assert real_editor.status_message == "Nothing to undo"
        real_editor.redo()
        assert real_editor.document.buffer.text() == "x"
        assert real_editor.status_message == "Action redone"

    def test_replace_mode_overwrites(self, editor_with_text: Redcli) -> None:
        editor_with_text.toggle_insert_mode()
        assert editor_with_text.status_message == "Mode: Replace"
        editor_with_text.type_character("D")
        assert editor_with_text.document.buffer.line(0) == "Def hello_world():"
        assert editor_with_text.document.cursor == Position(0, 1)

    def test_enter_and_backspace(self, real_editor: Redcli) -> None:
        real_editor.type_character("a")
        real_editor.handle_enter()
        assert list(real_editor.document.buffer) == ["a", ""]
        assert real_editor.handle_backspace()
        assert real_editor.document.buffer.text() == "a"
        real_editor.document.set_cursor(Position(0, 0))
        assert real_editor.handle_backspace() is False

    def test_smart_tab_indents_selected_lines(self, editor_with_text: Redcli) -> None:
        select(editor_with_text, (0, 0), (2, 0))
        editor_with_text.handle_smart_tab()
        lines = list(editor_with_text.document.buffer)
        assert lines[0] == "    def hello_world():"
        assert lines[1] == "        # This is a comment"
        assert lines[2] == "    print('Hello, world!')"
        assert editor_with_text.status_message == "Indented 2 line(s)"

    def test_smart_tab_without_selection_inserts(self, real_editor: Redcli) -> None:
        real_editor.handle_smart_tab()
        assert real_editor.document.buffer.text() == "    "

    def test_smart_unindent_current_line(self, editor_with_text: Redcli) -> None:
        editor_with_text.document.set_cursor(Position(2, 8))
        editor_with_text.handle_smart_unindent()
        assert editor_with_text.document.buffer.line(2) == "print('Hello, world!')"
        assert editor_with_text.status_message == "Unindented 1 line(s)"

    def test_smart_unindent_nothing(self, editor_with_text: Redcli) -> None:
        editor_with_text.handle_smart_unindent()
        assert editor_with_text.status_message == "Nothing to unindent"

    def test_toggle_comment_current_line(self, editor_with_text: Redcli) -> None:
        editor_with_text.toggle_comment_block()
        assert editor_with_text.document.buffer.line(0) == "# def hello_world():"


class TestMovement:
    def test_end_then_down_keeps_column(self, editor_with_text: Redcli) -> None:
        editor_with_text.handle_end()
        assert editor_with_text.document.cursor == Position(0, 18)
        editor_with_text.handle_down()
        assert editor_with_text.document.cursor == Position(1, 18)
        editor_with_text.handle_down()
        assert editor_with_text.document.cursor == Position(2, 18)

    def test_smart_home(self, editor_with_text: Redcli) -> None:
        editor_with_text.document.set_cursor(Position(2, 10))
        editor_with_text.handle_home()
        assert editor_with_text.document.cursor == Position(2, 4)
        editor_with_text.handle_home()
        assert editor_with_text.document.cursor == Position(2, 0)

    def test_word_movement(self, editor_with_text: Redcli) -> None:
        editor_with_text.word_right()
        assert editor_with_text.document.cursor == Position(0, 3)
        editor_with_text.word_right()
        assert editor_with_text.document.cursor == Position(0, 15)
        editor_with_text.word_left()
        assert editor_with_text.document.cursor == Position(0, 4)

    def test_left_at_start_does_not_redraw(self, editor_with_text: Redcli) -> None:
        assert editor_with_text.handle_left() is False
        assert editor_with_text.handle_right() is True

    def test_extend_selection(self, editor_with_text: Redcli) -> None:
        editor_with_text.extend_selection_right()
        editor_with_text.extend_selection_right()
        assert editor_with_text.document.selected_text() == "de"
        editor_with_text.handle_right()
        assert editor_with_text.document.selection() is None
        assert editor_with_text.document.cursor == Position(0, 2)


class TestPrompts:
    @pytest.mark.parametrize(
        "answer, expected_cursor, expected_status",
        [
            ("3", Position(2, 0), "Moved to line 3"),
            ("+1", Position(1, 0), "Moved to line 2"),
            ("3:5", Position(2, 4), "Moved to line 3"),
        ],
    )
    def test_goto_line(
        self,
        editor_with_text: Redcli,
        answer: str,
        expected_cursor: Position,
        expected_status: str,
    ) -> None:
        with patch.object(editor_with_text, "prompt", return_value=answer):
            editor_with_text.goto_line()
        assert editor_with_text.document.cursor == expected_cursor
        assert editor_with_text.status_message == expected_status

    @pytest.mark.parametrize(
        "answer, expected_status",
        [
            (None, "Goto cancelled"),
            ("abc", "Invalid line number: abc"),
            ("99", "Line number out of range (1-5)"),
        ],
    )
    def test_goto_line_rejected(
        self, editor_with_text: Redcli, answer: str, expected_status: str
    ) -> None:
        with patch.object(editor_with_text, "prompt", return_value=answer):
            editor_with_text.goto_line()
        assert editor_with_text.document.cursor == Position(0, 0)
        assert editor_with_text.status_message == expected_status

    def test_find_and_step(self, editor_with_text: Redcli) -> None:
        with patch.object(editor_with_text, "prompt", return_value="world"):
            editor_with_text.find_prompt()
        assert editor_with_text.status_message == "Found 2 match(es) for 'world' [Aa]"
        assert editor_with_text.document.cursor == Position(0, 10)

        editor_with_text.find_next()
        assert editor_with_text.document.cursor == Position(2, 18)
        assert editor_with_text.status_message == "Match 2 of 2 for 'world'"
        editor_with_text.find_next()
        assert editor_with_text.document.cursor == Position(0, 10)

    def test_find_next_without_search(self, editor_with_text: Redcli) -> None:
        editor_with_text.find_next()
        assert editor_with_text.status_message == "No search term. Use Find (Ctrl+F) first."

    def test_invalid_regex_is_reported(self, editor_with_text: Redcli) -> None:
        editor_with_text.search_flags = SearchOptions(regex=True)
        with patch.object(editor_with_text, "prompt", return_value="("):
            editor_with_text.find_prompt()
        assert editor_with_text.status_message.startswith("Invalid pattern")

    def test_search_options_rerun_active_search(self, editor_with_text: Redcli) -> None:
        with patch.object(editor_with_text, "prompt", return_value="hello"):
            editor_with_text.find_prompt()
        assert len(editor_with_text.document.search.matches) == 1

        with patch.object(editor_with_text, "prompt", return_value="c"):
            editor_with_text.search_options()
        assert editor_with_text.search_flags.case_sensitive is False
        assert len(editor_with_text.document.search.matches) == 2
        assert editor_with_text.status_message.endswith("[aa]")

    def test_search_options_unchanged(self, editor_with_text: Redcli) -> None:
        with patch.object(editor_with_text, "prompt", return_value=None):
            editor_with_text.search_options()
        assert editor_with_text.status_message == "Search options unchanged"

    def test_replace_all_is_one_undo_step(self, editor_with_text: Redcli) -> None:
        original = editor_with_text.document.buffer.text()
        with patch.object(editor_with_text, "prompt", side_effect=["world", "there"]):
            editor_with_text.search_and_replace()
        assert editor_with_text.status_message == "Replaced 2 occurrence(s) of 'world'"
        assert editor_with_text.document.buffer.line(0) == "def hello_there():"
        assert editor_with_text.document.buffer.line(2) == "    print('Hello, there!')"

        editor_with_text.undo()
        assert editor_with_text.document.buffer.text() == original

    def test_replace_all_failure_is_reported_without_undo_step(self, editor_with_text: Redcli) -> None:
        document = editor_with_text.document
        original = document.buffer.text()
        with (
            patch.object(editor_with_text, "prompt", side_effect=["world", "there"]),
            patch.object(document.search, "replace_all", side_effect=RangeError("Stale match at (0, 10)")),
        ):
            editor_with_text.search_and_replace()
        assert editor_with_text.status_message == "Replace all failed, nothing changed: Stale match at (0, 10)"
        assert document.buffer.text() == original
        assert not document.history.can_undo
        assert document.history._compound_depth == 0

    def test_replace_current_steps_through_matches(self, editor_with_text: Redcli) -> None:
        document = editor_with_text.document
        with patch.object(editor_with_text, "prompt", return_value="world"):
            editor_with_text.find_prompt()

        with patch.object(editor_with_text, "prompt", return_value="there"):
            editor_with_text.replace_current()
        assert document.buffer.line(0) == "def hello_there():"
        assert document.buffer.line(2) == "    print('Hello, world!')"
        assert document.cursor == Position(2, 18)
        assert editor_with_text.status_message == "Replaced 1 occurrence; 1 remaining"

        with patch.object(editor_with_text, "prompt", return_value="there"):
            editor_with_text.replace_current()
        assert document.buffer.line(2) == "    print('Hello, there!')"
        assert document.cursor == Position(2, 23)
        assert editor_with_text.status_message == "Replaced 1 occurrence; no more matches for 'world'"

        editor_with_text.undo()
        assert document.buffer.line(2) == "    print('Hello, world!')"
        assert document.buffer.line(0) == "def hello_there():"

    def test_replace_current_without_search(self, editor_with_text: Redcli) -> None:
        with patch.object(editor_with_text, "prompt") as prompt:
            editor_with_text.replace_current()
        prompt.assert_not_called()
        assert editor_with_text.status_message == "No search term. Use Find (Ctrl+F) first."

    def test_replace_current_reports_stale_match(self, editor_with_text: Redcli) -> None:
        document = editor_with_text.document
        with patch.object(editor_with_text, "prompt", return_value="world"):
            editor_with_text.find_prompt()
        original = document.buffer.text()
        with (
            patch.object(editor_with_text, "prompt", return_value="there"),
            patch.object(document.search, "replace", side_effect=RangeError("Stale match (0, 10, 15)")),
        ):
            editor_with_text.replace_current()
        assert editor_with_text.status_message == "Match is out of date, search again: Stale match (0, 10, 15)"
        assert document.buffer.text() == original

    def test_replace_current_is_bound(self, editor_with_text: Redcli) -> None:
        assert editor_with_text.keybinder.lookup("alt+e") == "replace_current"
        assert editor_with_text.keybinder.action_map["alt-e"] == editor_with_text.replace_current


class TestUiState:
    def test_toggle_line_numbers(self, real_editor: Redcli) -> None:
        assert real_editor.show_line_numbers is True
        real_editor.toggle_line_numbers()
        assert real_editor.show_line_numbers is False
        assert real_editor.status_message == "Line numbers off"

    def test_escape_cancels_innermost_state(self, editor_with_text: Redcli) -> None:
        select(editor_with_text, (0, 0), (0, 3))
        editor_with_text.output_visible = True

        assert editor_with_text.handle_escape()
        assert editor_with_text.status_message == "Selection cancelled"
        assert editor_with_text.handle_escape()
        assert editor_with_text.status_message == "Output panel closed"
        assert editor_with_text.handle_escape()
        assert editor_with_text.status_message == "Nothing to cancel"
        assert editor_with_text.handle_escape() is False

    def test_widths(self, real_editor: Redcli) -> None:
        assert real_editor.get_string_width("abc") == 3
        assert real_editor.get_string_width("你好") == 4
        assert real_editor.get_char_width("\u0301") == 0
        assert real_editor.get_char_width("ab") == 1


class TestDocuments:
    def test_switch_requires_two_documents(self, real_editor: Redcli) -> None:
        real_editor.next_document()
        assert real_editor.status_message == "No other open files"
        first = real_editor.document
        real_editor.new_file()
        assert real_editor.document is not first
        real_editor.next_document()
        assert real_editor.document is first
        assert real_editor.status_message == "Switched to [No Name]"

    def test_open_file(self, real_editor: Redcli, temp_dir: Path) -> None:
        real_editor.open_file(str(temp_dir / "file2.py"))
        assert real_editor.document.path == str(temp_dir / "file2.py")
        assert real_editor.document.language == "python"

    def test_open_directory_is_refused(self, real_editor: Redcli, temp_dir: Path) -> None:
        real_editor.open_file(str(temp_dir))
        assert real_editor.status_message.startswith("Cannot open a directory")

    def test_open_initial_file_replaces_scratch(self, real_editor: Redcli, test_file_path: Path) -> None:
        real_editor.open_initial_file(str(test_file_path))
        assert len(real_editor.session.documents) == 1
        assert real_editor.document.path == str(test_file_path)

    def test_exit_clean(self, real_editor: Redcli) -> None:
        real_editor.running = True
        real_editor.exit_editor()
        assert real_editor.running is False

    def test_exit_cancelled_at_prompt(self, real_editor: Redcli) -> None:
        real_editor.running = True
        real_editor.type_character("x")
        with patch.object(real_editor, "prompt", return_value=None) as mock_prompt:
            real_editor.exit_editor()
        mock_prompt.assert_called_once()
        assert real_editor.running is True
        assert real_editor.status_message == "Exit cancelled by user."

    def test_exit_discarding_changes(self, real_editor: Redcli) -> None:
        real_editor.running = True
        real_editor.type_character("x")
        real_editor.session.shutdown = Mock()
        with patch.object(real_editor, "prompt", return_value="n"):
            real_editor.exit_editor()
        assert real_editor.running is False
        real_editor.session.shutdown.assert_called_once()

    def test_run_unsaved_new_file_asks_for_name(self, real_editor: Redcli) -> None:
        real_editor.type_character("x")
        real_editor.save_file_as = MagicMock(return_value=False)
        assert real_editor.run_file()
        real_editor.save_file_as.assert_called_once()
        assert real_editor.output_visible is False
