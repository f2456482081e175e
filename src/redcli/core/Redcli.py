# redcli/core/Redcli.py
# ruff: noqa: E501
"""redcli.core.Redcli.py
============================
Redcli: Main Module for the Redcli Terminal Code Editor

This module defines the Redcli class, the controller that connects the
terminal to the editing core. It manages:

- Documents (open, new, save, save as, close, reload, switch)
- Text editing, selection and navigation on the active document
- Clipboard integration (internal and system via pyperclip)
- Undo/redo through the document history
- Find, find next/previous, search options, replace current and replace all
- Code completion popup (requests, navigation, acceptance)
- Running the current file and the output panel
- Comment tools (toggle, delete comments, remove empty lines)
- Main loop, screen rendering and keybinding delegation

Editing semantics live in the core modules (TextBuffer, Document,
SearchEngine, CompletionEngine, ExecutionRunner); this class only turns key
presses into calls on them and reports the outcome on the status line.
Action methods return True when the screen needs a redraw.
"""

import curses
import logging
import os
import queue
import re
import sys
import threading
import unicodedata
from typing import Any, Optional, cast

import pyperclip
from wcwidth import wcswidth, wcwidth

from redcli.core.AsyncEngine import AsyncEngine
from redcli.core.CodeCommenter import CodeCommenter
from redcli.core.Document import Document, leading_whitespace
from redcli.core.EditorErrors import PatternError, RangeError
from redcli.core.SearchEngine import Match, SearchOptions
from redcli.core.Session import EditorSession
from redcli.core.TextBuffer import Position, Range
from redcli.ui.DrawScreen import DrawScreen
from redcli.ui.KeyBinder import KeyBinder
from redcli.utils.utils import hex_to_xterm


if sys.platform != "win32":
    import termios


logger = logging.getLogger("redcli")

WORD_RE = re.compile(r"\w+")
HELP_PAIR_ID_START = 40


## ==================== Redcli Class ====================
class Redcli:
    """Class Redcli
    =========================
    Main controller of the Redcli editor.

    Attributes:
        stdscr (curses.window): The main curses window.
        config (dict): The configuration dictionary.
        is_lightweight (bool): No background engine; completion runs inline.
        show_line_numbers (bool): Whether the gutter is drawn.
        session (EditorSession): Documents, jobs, completion and messages.
        colors (dict): Semantic color name -> curses attribute.
        scroll_top (int): First visible line.
        scroll_left (int): First visible display column.
        visible_lines (int): Text rows on screen.
        insert_mode (bool): False when typing overwrites characters.
        output_visible (bool): Whether the output panel is shown.
        search_flags (SearchOptions): Options used by the next search.
        internal_clipboard (str): Fallback clipboard.
        running (bool): Main loop flag.
    """

    def _set_status_message(self, message_for_statusbar: str) -> None:
        """Sets the status-bar message."""
        message_for_statusbar = str(message_for_statusbar)
        if self.session.status_message != message_for_statusbar:
            self.session.status_message = message_for_statusbar
            logging.debug(f"Status message set directly to: '{message_for_statusbar}'")

    @property
    def status_message(self) -> str:
        return self.session.status_message

    @property
    def document(self) -> Document:
        """The focused document."""
        return self.session.active

    # -- Initialization and Setup ---
    def __init__(
        self,
        stdscr: "curses.window",
        config: dict[str, Any],
        lightweight_mode: bool = False,
        show_line_numbers: bool = True,
    ) -> None:
        """Creates and fully initializes a `Redcli` instance."""
        self.stdscr = stdscr
        self.config: dict[str, Any] = config
        self.is_lightweight: bool = lightweight_mode
        self.show_line_numbers: bool = config.get("editor", {}).get(
            "show_line_numbers", show_line_numbers
        )

        self._initialize_state()
        self._initialize_components()
        self._setup_environment()

        self.handle_resize()
        logging.info(f"Redcli initialized successfully. Lightweight: {self.is_lightweight}")

    def _initialize_state(self) -> None:
        """Initializes all editor state attributes to their default values."""
        self.scroll_top: int = 0
        self.scroll_left: int = 0
        self.insert_mode: bool = True
        self.visible_lines: int = 0
        self.last_window_size: tuple[int, int] = (0, 0)
        self._force_full_redraw: bool = False
        self.output_visible: bool = False
        self.search_flags = SearchOptions()
        self.internal_clipboard: str = ""
        self.running: bool = False
        self._exit_in_progress: bool = False
        self._state_lock: threading.RLock = threading.RLock()

    def _initialize_components(self) -> None:
        """Creates the session, drawer and keybinder."""
        self.colors: dict[str, int] = {}
        self.init_colors()

        messages: queue.Queue[dict[str, Any]] = queue.Queue()
        self.async_engine: Optional[AsyncEngine] = None
        if not self.is_lightweight:
            self.async_engine = AsyncEngine(to_ui_queue=messages, config=self.config)
            self.async_engine.start()
        self.session = EditorSession(self.config, messages=messages, async_engine=self.async_engine)
        self.session.new_document()
        self.session.status_message = "Ready"

        self.commenter = CodeCommenter(self.config)
        self.drawer = DrawScreen(self, self.config)
        self.keybinder = KeyBinder(self)
        self.handle_input = self.keybinder.handle_input

    def _setup_environment(self) -> None:
        """Configures terminal settings and the clipboard."""
        self.stdscr.keypad(True)
        curses.curs_set(1)
        self.original_termios_attrs: Optional[list[Any]] = None

        self.use_system_clipboard: bool = self.config.get("editor", {}).get(
            "use_system_clipboard", True
        )
        self.pyclip_available: bool = False

        if self.is_lightweight:
            return

        # Ctrl+S/Ctrl+Q/Ctrl+Z must reach the editor instead of the tty.
        if sys.platform != "win32":
            try:
                fd = sys.stdin.fileno()
                self.original_termios_attrs = termios.tcgetattr(fd)
                attrs = list(self.original_termios_attrs)
                attrs[0] &= ~(termios.IXON | termios.IXOFF)
                attrs[3] &= ~(termios.ICANON | termios.ISIG)
                termios.tcsetattr(fd, termios.TCSANOW, attrs)
            except (termios.error, OSError, ValueError) as exc:
                logging.warning("Could not set Unix terminal attributes: %s", exc)

        curses.raw()
        curses.noecho()

        self.pyclip_available = self._check_pyclip_availability()
        if not self.pyclip_available:
            self.use_system_clipboard = False

    def open_initial_file(self, path: Optional[str]) -> None:
        """Replaces the startup scratch buffer with ``path``."""
        if not path:
            return
        scratch = self.session.documents[0] if self.session.documents else None
        if self.session.open(path) is not None and scratch is not None and scratch is not self.document:
            if not scratch.modified and scratch.path is None:
                self.session.close(scratch)
                self.session.active_index = len(self.session.documents) - 1

    # ----- Clipboard Handling -------
    def _check_pyclip_availability(self) -> bool:
        """Checks that pyperclip can reach a system clipboard."""
        if not self.config.get("editor", {}).get("use_system_clipboard", True):
            logging.debug("System clipboard usage is disabled by editor configuration.")
            return False
        try:
            pyperclip.copy("")
            logging.debug("pyperclip and system clipboard utilities appear to be available.")
            return True
        except pyperclip.PyperclipException as e:
            logging.warning(
                f"System clipboard unavailable via pyperclip: {str(e)}. "
                f"Falling back to internal clipboard. Ensure clipboard utilities "
                f"(e.g., xclip, xsel, wl-copy, pbcopy) are installed."
            )
            return False

    def _put_clipboard(self, text: str) -> str:
        """Stores ``text``; returns where it went for the status line."""
        self.internal_clipboard = text
        if self.use_system_clipboard and self.pyclip_available:
            try:
                pyperclip.copy(text)
                return "system clipboard"
            except pyperclip.PyperclipException as e:
                logging.error(f"Failed to copy to system clipboard: {e}", exc_info=True)
                return "internal clipboard (system clipboard error)"
        return "internal clipboard"

    def _get_clipboard(self) -> str:
        if self.use_system_clipboard and self.pyclip_available:
            try:
                text = pyperclip.paste()
                if text:
                    return text
            except pyperclip.PyperclipException as e:
                logging.error(f"Failed to paste from system clipboard: {e}", exc_info=True)
        return self.internal_clipboard

    def _current_line_range(self) -> Range:
        """The cursor line including its line break, for line cut."""
        buffer = self.document.buffer
        line = self.document.cursor.line
        if line < buffer.line_count() - 1:
            return Range(Position(line, 0), Position(line + 1, 0))
        if line > 0:
            return Range(Position(line - 1, len(buffer.line(line - 1))), Position(line, len(buffer.line(line))))
        return Range(Position(0, 0), Position(0, len(buffer.line(0))))

    def copy(self) -> bool:
        """Copies the selection, or the current line when nothing is selected."""
        document = self.document
        selected = document.selected_text()
        if selected:
            target = self._put_clipboard(selected)
            self._set_status_message(f"Copied to {target}")
        else:
            self._put_clipboard(document.buffer.line(document.cursor.line) + "\n")
            self._set_status_message("Line copied")
        return True

    def cut(self) -> bool:
        """Cuts the selection, or the current line when nothing is selected."""
        document = self.document
        selected = document.selected_text()
        if selected:
            target = self._put_clipboard(selected)
            document.delete_selection()
            self._set_status_message(f"Cut to {target}")
            return True
        line = document.cursor.line
        self._put_clipboard(document.buffer.line(line) + "\n")
        document.buffer.delete(self._current_line_range())
        document.set_cursor(Position(min(line, document.buffer.line_count() - 1), 0))
        self._set_status_message("Line cut")
        return True

    def paste(self) -> bool:
        text = self._get_clipboard()
        if not text:
            self._set_status_message("Clipboard is empty")
            return True
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        document = self.document
        document.history.begin_compound_action()
        try:
            document.insert_text(text)
        finally:
            document.history.end_compound_action()
        self._set_status_message("Pasted from clipboard")
        return True

    # ----- Undo / Redo -------
    def undo(self) -> bool:
        try:
            return self.document.history.undo()
        except RangeError as e:
            self._set_status_message(f"Undo failed: {e}")
            return True

    def redo(self) -> bool:
        try:
            return self.document.history.redo()
        except RangeError as e:
            self._set_status_message(f"Redo failed: {e}")
            return True

    # ----- Typing -------
    def type_character(self, char: str) -> bool:
        """Inserts (or, in replace mode, overwrites with) a typed character."""
        document = self.document
        line, col = document.cursor
        text = document.buffer.line(line)
        if not self.insert_mode and document.selection() is None and col < len(text):
            document.buffer.replace(Range(Position(line, col), Position(line, col + 1)), char)
            document.set_cursor(Position(line, col + 1))
        else:
            document.insert_text(char)
        self._update_completion_after_typing(char)
        return True

    def _update_completion_after_typing(self, char: str) -> None:
        if WORD_RE.fullmatch(char):
            if self.session.suggestions or self.config.get("completion", {}).get("auto_trigger", True):
                self.session.request_completion()
        elif self.session.suggestions:
            self.session.dismiss_completion()

    def handle_enter(self) -> bool:
        self.document.insert_newline()
        return True

    def handle_backspace(self) -> bool:
        had_popup = bool(self.session.suggestions)
        if self.document.delete_backward() is None:
            return False
        if had_popup:
            self.session.request_completion()
        return True

    def handle_delete(self) -> bool:
        return self.document.delete_forward() is not None

    def _selected_line_span(self) -> Optional[tuple[int, int]]:
        """First and last line of a multi-line selection.

        A selection ending at column 0 does not include that last line.
        """
        rng = self.document.selection()
        if rng is None:
            return None
        last = rng.end.line
        if rng.end.col == 0 and last > rng.start.line:
            last -= 1
        return rng.start.line, last

    def handle_smart_tab(self) -> bool:
        """Indents a multi-line selection, otherwise inserts indentation."""
        document = self.document
        span = self._selected_line_span()
        if span is None or span[0] == span[1]:
            document.insert_tab()
            return True
        first, last = span
        unit = document.indent_unit()
        lines = [unit + line if line.strip() else line for line in document.buffer.lines(first, last + 1)]
        document.replace_lines(first, last, lines)
        document.anchor = Position(first, 0)
        document.cursor = Position(last, len(document.buffer.line(last)))
        self._set_status_message(f"Indented {last - first + 1} line(s)")
        return True

    def handle_smart_unindent(self) -> bool:
        """Removes one indentation level from the selected lines or the current line."""
        document = self.document
        span = self._selected_line_span() or (document.cursor.line, document.cursor.line)
        first, last = span
        lines = document.buffer.lines(first, last + 1)
        new_lines = []
        for line in lines:
            indent = leading_whitespace(line)
            if indent.startswith("\t"):
                cut = 1
            else:
                cut = min(len(indent) - len(indent.lstrip(" ")), document.tab_size)
            new_lines.append(line[cut:])
        if new_lines == lines:
            self._set_status_message("Nothing to unindent")
            return True
        document.replace_lines(first, last, new_lines)
        self._set_status_message(f"Unindented {last - first + 1} line(s)")
        return True

    def toggle_insert_mode(self) -> bool:
        self.insert_mode = not self.insert_mode
        self._set_status_message(f"Mode: {'Insert' if self.insert_mode else 'Replace'}")
        return True

    # ----- Cursor movement -------
    def _move(self, pos: Position, extend: bool = False, keep_column: bool = False) -> bool:
        document = self.document
        before = (document.cursor, document.anchor)
        if not keep_column:
            document.preferred_col = None
        document.set_cursor(pos, extend=extend)
        return (document.cursor, document.anchor) != before

    def _vertical_target(self, delta: int) -> Position:
        document = self.document
        line, col = document.cursor
        if document.preferred_col is None:
            document.preferred_col = col
        target_line = min(max(line + delta, 0), document.buffer.line_count() - 1)
        return Position(target_line, min(document.preferred_col, len(document.buffer.line(target_line))))

    def _left_target(self) -> Position:
        document = self.document
        line, col = document.cursor
        if col > 0:
            return Position(line, col - 1)
        if line > 0:
            return Position(line - 1, len(document.buffer.line(line - 1)))
        return document.cursor

    def _right_target(self) -> Position:
        document = self.document
        line, col = document.cursor
        if col < len(document.buffer.line(line)):
            return Position(line, col + 1)
        if line < document.buffer.line_count() - 1:
            return Position(line + 1, 0)
        return document.cursor

    def _home_target(self) -> Position:
        """Smart home: first non-blank character, then column 0."""
        document = self.document
        line, col = document.cursor
        indent = len(leading_whitespace(document.buffer.line(line)))
        return Position(line, 0 if col == indent else indent)

    def _end_target(self) -> Position:
        line = self.document.cursor.line
        return Position(line, len(self.document.buffer.line(line)))

    def handle_up(self) -> bool:
        return self._move(self._vertical_target(-1), keep_column=True)

    def handle_down(self) -> bool:
        return self._move(self._vertical_target(1), keep_column=True)

    def handle_left(self) -> bool:
        rng = self.document.selection()
        if rng is not None:
            return self._move(rng.start)
        return self._move(self._left_target())

    def handle_right(self) -> bool:
        rng = self.document.selection()
        if rng is not None:
            return self._move(rng.end)
        return self._move(self._right_target())

    def handle_home(self) -> bool:
        return self._move(self._home_target())

    def handle_end(self) -> bool:
        return self._move(self._end_target())

    def handle_page_up(self) -> bool:
        page = max(1, self.drawer.text_area_height() - 1)
        self.scroll_top = max(0, self.scroll_top - page)
        self._move(self._vertical_target(-page), keep_column=True)
        return True

    def handle_page_down(self) -> bool:
        page = max(1, self.drawer.text_area_height() - 1)
        last_top = max(0, self.document.buffer.line_count() - page)
        self.scroll_top = min(last_top, self.scroll_top + page)
        self._move(self._vertical_target(page), keep_column=True)
        return True

    def _word_target(self, forward: bool) -> Position:
        """Start of the previous word or end of the next one, crossing lines."""
        document = self.document
        line, col = document.cursor
        text = document.buffer.line(line)
        if forward:
            match = WORD_RE.search(text, col)
            while match is None and line < document.buffer.line_count() - 1:
                line += 1
                text = document.buffer.line(line)
                match = WORD_RE.search(text)
            return Position(line, match.end() if match else len(text))
        starts = [m.start() for m in WORD_RE.finditer(text) if m.start() < col]
        while not starts and line > 0:
            line -= 1
            text = document.buffer.line(line)
            starts = [m.start() for m in WORD_RE.finditer(text)]
        return Position(line, starts[-1] if starts else 0)

    def word_left(self) -> bool:
        return self._move(self._word_target(forward=False))

    def word_right(self) -> bool:
        return self._move(self._word_target(forward=True))

    def extend_selection_up(self) -> bool:
        return self._move(self._vertical_target(-1), extend=True, keep_column=True)

    def extend_selection_down(self) -> bool:
        return self._move(self._vertical_target(1), extend=True, keep_column=True)

    def extend_selection_left(self) -> bool:
        return self._move(self._left_target(), extend=True)

    def extend_selection_right(self) -> bool:
        return self._move(self._right_target(), extend=True)

    def select_to_home(self) -> bool:
        return self._move(self._home_target(), extend=True)

    def select_to_end(self) -> bool:
        return self._move(self._end_target(), extend=True)

    def select_all(self) -> bool:
        self.document.select_all()
        self._set_status_message("All text selected")
        return True

    def goto_line(self) -> bool:
        """Prompts for a line number ("42", "+10", "-3" or "42:7")."""
        document = self.document
        total = document.buffer.line_count()
        answer = self.prompt(f"Go to line (1-{total}, +N, -N, N:C): ")
        if not answer:
            self._set_status_message("Goto cancelled")
            return True
        line_part, _, col_part = answer.partition(":")
        try:
            if line_part.startswith(("+", "-")):
                target = document.cursor.line + int(line_part)
            else:
                target = int(line_part) - 1
            col = int(col_part) - 1 if col_part else 0
        except ValueError:
            self._set_status_message(f"Invalid line number: {answer}")
            return True
        if not 0 <= target < total:
            self._set_status_message(f"Line number out of range (1-{total})")
            return True
        self._move(Position(target, max(col, 0)))
        self._set_status_message(f"Moved to line {target + 1}")
        return True

    # ----- Files and documents -------
    def _confirm_discard(self, document: Document, action: str) -> bool:
        """Asks to save a modified document; False aborts the action."""
        if not document.modified:
            return True
        ans = self.prompt(f"Save changes to {document.name} before {action}? (y/n): ", is_yes_no_prompt=True)
        if ans == "y":
            return self._save_document(document)
        if ans == "n":
            return True
        self._set_status_message(f"{action.capitalize()} cancelled")
        return False

    def _save_document(self, document: Document) -> bool:
        if document is not self.document:
            self.session.active_index = self.session.documents.index(document)
        if not document.path:
            return self.save_file_as()
        return self.session.save_active()

    def new_file(self) -> bool:
        self.session.new_document()
        self.scroll_top = self.scroll_left = 0
        self._set_status_message("New file")
        return True

    def open_file(self, filename_to_open: Optional[str] = None) -> bool:
        """Opens a file in a new document (or focuses it if already open)."""
        if not filename_to_open:
            filename_to_open = self.prompt("Open file: ")
        if not filename_to_open:
            self._set_status_message("Open cancelled")
            return True
        path = os.path.expanduser(filename_to_open)
        if os.path.isdir(path):
            self._set_status_message(f"Cannot open a directory: {filename_to_open}")
            return True
        if self.session.open(path) is not None:
            self.scroll_top = self.scroll_left = 0
            self._force_full_redraw = True
        return True

    def save_file(self) -> bool:
        """Saves the active document, asking for a name if it has none."""
        if not self.document.path:
            return self.save_file_as()
        return self.session.save_active()

    def save_file_as(self) -> bool:
        document = self.document
        default_name = document.path or self.config.get("editor", {}).get(
            "default_new_filename", "untitled.txt"
        )
        answer = self.prompt("Save file as: ", initial=default_name)
        if not answer:
            self._set_status_message("Save as cancelled")
            return False
        path = os.path.expanduser(answer)
        if os.path.isdir(path):
            self._set_status_message(f"Cannot save: '{answer}' is a directory")
            return False
        if os.path.exists(path) and path != document.path:
            ans = self.prompt(f"File '{answer}' exists. Overwrite? (y/n): ", is_yes_no_prompt=True)
            if ans != "y":
                self._set_status_message("Save as cancelled")
                return False
        return self.session.save_active(path)

    def close_file(self) -> bool:
        document = self.document
        if not self._confirm_discard(document, "closing"):
            return True
        self.session.close(document)
        self.scroll_top = self.scroll_left = 0
        self._force_full_redraw = True
        self._set_status_message(f"Closed {document.name}")
        return True

    def next_document(self) -> bool:
        if len(self.session.documents) < 2:
            self._set_status_message("No other open files")
            return True
        document = self.session.next_document(1)
        self.scroll_top = self.scroll_left = 0
        self._set_status_message(f"Switched to {document.name}")
        return True

    def previous_document(self) -> bool:
        if len(self.session.documents) < 2:
            self._set_status_message("No other open files")
            return True
        document = self.session.next_document(-1)
        self.scroll_top = self.scroll_left = 0
        self._set_status_message(f"Switched to {document.name}")
        return True

    def reload_file(self) -> bool:
        document = self.document
        if not document.path:
            self._set_status_message("Buffer has no file to reload")
            return True
        if document.modified:
            ans = self.prompt("Discard changes and reload from disk? (y/n): ", is_yes_no_prompt=True)
            if ans != "y":
                self._set_status_message("Reload cancelled")
                return True
        try:
            document.reload()
        except OSError as e:
            logging.error(f"Reload of '{document.path}' failed: {e}")
            self._set_status_message(f"Reload failed: {e}")
        return True

    def check_external_changes(self) -> bool:
        """Reloads clean documents changed on disk; warns about modified ones."""
        changed = False
        for document in self.session.check_external_changes():
            if not document.modified:
                try:
                    document.reload()
                except OSError as e:
                    self._set_status_message(f"Reload failed: {e}")
            else:
                self._set_status_message(f"{document.name} changed on disk (F4 to reload)")
                try:
                    document.mtime = os.path.getmtime(cast(str, document.path))
                except OSError:
                    document.mtime = None
            changed = True
        return changed

    def exit_editor(self) -> None:
        """Asks about unsaved documents, then stops the main loop.

        Does not call sys.exit(); curses.wrapper restores the terminal once
        run() returns.
        """
        if self._exit_in_progress:
            return
        self._exit_in_progress = True
        logger.info("--- EXIT SEQUENCE INITIATED ---")

        for document in list(self.session.documents):
            if not document.modified:
                continue
            self.session.active_index = self.session.documents.index(document)
            ans = self.prompt(f"Save changes to {document.name} before exiting? (y/n): ", is_yes_no_prompt=True)
            if ans == "y":
                if not self._save_document(document):
                    self._set_status_message("Save failed or was cancelled. Exit aborted.")
                    self._exit_in_progress = False
                    return
            elif ans != "n":
                self._set_status_message("Exit cancelled by user.")
                logging.info("User cancelled exit at the save prompt.")
                self._exit_in_progress = False
                return

        self.running = False
        logging.info("Main loop stop signaled. The application will exit cleanly.")
        self.session.shutdown()

    def close(self) -> None:
        """Restores terminal attributes changed in _setup_environment."""
        if self.original_termios_attrs is not None and sys.platform != "win32":
            try:
                termios.tcsetattr(sys.stdin.fileno(), termios.TCSANOW, self.original_termios_attrs)
            except (termios.error, OSError, ValueError) as exc:
                logging.warning("Could not restore terminal attributes: %s", exc)

    # ----- Search -------
    def _goto_match(self, match: Optional[Match]) -> None:
        if match is not None:
            self.document.set_cursor(Position(match.line, match.start))

    def _run_search(self, pattern: str) -> bool:
        document = self.document
        try:
            matches = document.search.search(pattern, self.search_flags)
        except PatternError as e:
            self._set_status_message(f"Invalid pattern: {e.reason}")
            return False
        if not matches:
            self._set_status_message(f"'{pattern}' not found")
            return True
        self._goto_match(document.search.seek(document.cursor))
        self._set_status_message(
            f"Found {len(matches)} match(es) for '{pattern}' [{self.search_flags.describe()}]"
        )
        return True

    def find_prompt(self) -> bool:
        document = self.document
        term = self.prompt(f"Find [{self.search_flags.describe()}]: ", initial=document.search.pattern)
        if not term:
            document.search.clear()
            self._set_status_message("Search cancelled")
            return True
        self._run_search(term)
        return True

    def _step_match(self, forward: bool) -> bool:
        search = self.document.search
        if not search.pattern:
            self._set_status_message("No search term. Use Find (Ctrl+F) first.")
            return True
        if not search.matches:
            self._set_status_message(f"No matches found for '{search.pattern}'.")
            return True
        match = search.next_match() if forward else search.previous_match()
        self._goto_match(match)
        self._set_status_message(
            f"Match {search.current_index + 1} of {len(search.matches)} for '{search.pattern}'"
        )
        return True

    def find_next(self) -> bool:
        return self._step_match(forward=True)

    def find_previous(self) -> bool:
        return self._step_match(forward=False)

    def search_options(self) -> bool:
        """Toggles case sensitivity, whole word or regex; re-runs the active search."""
        flags = self.search_flags
        choice = self.prompt(
            f"Toggle: [c]ase [w]hole word [r]egex (now {flags.describe()}): ", choices="cwr"
        )
        if choice == "c":
            self.search_flags = SearchOptions(not flags.case_sensitive, flags.whole_word, flags.regex)
        elif choice == "w":
            self.search_flags = SearchOptions(flags.case_sensitive, not flags.whole_word, flags.regex)
        elif choice == "r":
            self.search_flags = SearchOptions(flags.case_sensitive, flags.whole_word, not flags.regex)
        else:
            self._set_status_message("Search options unchanged")
            return True
        pattern = self.document.search.pattern
        if pattern:
            self._run_search(pattern)
        else:
            self._set_status_message(f"Search options: {self.search_flags.describe()}")
        return True

    def search_and_replace(self) -> bool:
        """Replaces every match of a pattern as one undo step."""
        document = self.document
        pattern = self.prompt(f"Search for [{self.search_flags.describe()}]: ", initial=document.search.pattern)
        if not pattern:
            self._set_status_message("Search/Replace cancelled")
            return True
        replacement = self.prompt("Replace with: ")
        if replacement is None:
            self._set_status_message("Search/Replace cancelled (no replacement text)")
            return True
        document.history.begin_compound_action()
        try:
            edits = document.search.replace_all(pattern, replacement, self.search_flags)
        except PatternError as e:
            document.history.abort_compound_action()
            self._set_status_message(f"Invalid pattern: {e.reason}")
            return True
        except RangeError as e:
            document.history.abort_compound_action()
            logging.error(f"Replace all rolled back: {e}")
            self._set_status_message(f"Replace all failed, nothing changed: {e}")
            return True
        document.history.end_compound_action()
        if edits:
            self._set_status_message(f"Replaced {len(edits)} occurrence(s) of '{pattern}'")
        else:
            self._set_status_message(f"'{pattern}' not found")
        return True

    def replace_current(self) -> bool:
        """Replaces the current match of the active search and moves to the next one."""
        search = self.document.search
        if not search.pattern:
            self._set_status_message("No search term. Use Find (Ctrl+F) first.")
            return True
        match = search.current
        if match is None:
            self._set_status_message(f"No matches found for '{search.pattern}'.")
            return True
        replacement = self.prompt("Replace with: ")
        if replacement is None:
            self._set_status_message("Replace cancelled")
            return True
        try:
            edit = search.replace(match, replacement)
        except RangeError as e:
            logging.warning(f"replace_current: {e}")
            self._set_status_message(f"Match is out of date, search again: {e}")
            return True

        if search.matches:
            self._goto_match(search.seek(edit.new_end))
            self._set_status_message(f"Replaced 1 occurrence; {len(search.matches)} remaining")
        else:
            self.document.set_cursor(edit.new_end)
            self._set_status_message(f"Replaced 1 occurrence; no more matches for '{search.pattern}'")
        return True

    # ----- Completion -------
    def trigger_completion(self) -> bool:
        if not self.session.completion.enabled:
            self._set_status_message("Completion is disabled")
            return True
        token = self.session.request_completion()
        if token is None:
            self._set_status_message("Nothing to complete")
        elif self.async_engine is None and not self.session.suggestions:
            self._set_status_message("No completions")
        return True

    def accept_completion(self) -> bool:
        if self.session.accept_suggestion():
            return True
        self._set_status_message("No completion selected")
        return True

    # ----- Execution -------
    def run_file(self) -> bool:
        document = self.document
        if document.modified and document.path is None:
            if not self.save_file_as():
                return True
        if self.session.run_active() is not None or self.session.output_lines:
            self.output_visible = True
            self._force_full_redraw = True
        return True

    def cancel_job(self) -> bool:
        self.session.cancel_job()
        return True

    def toggle_output_panel(self) -> bool:
        self.output_visible = not self.output_visible
        self._force_full_redraw = True
        self._set_status_message(f"Output panel {'shown' if self.output_visible else 'hidden'}")
        return True

    # ----- Code tools -------
    def _lines_for_comment_toggle(self) -> tuple[int, int]:
        span = self._selected_line_span()
        if span is not None:
            return span
        line = self.document.cursor.line
        return line, line

    def toggle_comment_block(self) -> bool:
        start_y, end_y = self._lines_for_comment_toggle()
        self.commenter.perform_toggle(self.document, start_y, end_y)
        return True

    def show_tool_menu(self) -> bool:
        """Single-key menu for the comment and cleanup tools."""
        choice = self.prompt(
            "Tools: [1] toggle comment [2] delete comments [3] remove empty lines [4] clear undo history: ",
            choices="1234",
        )
        document = self.document
        if choice == "1":
            return self.toggle_comment_block()
        if choice == "2":
            self.commenter.delete_comments(document)
        elif choice == "3":
            self.commenter.remove_empty_lines(document)
        elif choice == "4":
            document.history.clear()
            self._set_status_message("Undo history cleared")
        else:
            self._set_status_message("Tool menu closed")
        return True

    # ----- UI state -------
    def toggle_line_numbers(self) -> bool:
        self.show_line_numbers = not self.show_line_numbers
        self._force_full_redraw = True
        self._set_status_message(f"Line numbers {'on' if self.show_line_numbers else 'off'}")
        return True

    def cancel_operation(self) -> bool:
        """Cancels the innermost active state: selection, search, output panel."""
        document = self.document
        if document.selection() is not None:
            document.clear_selection()
            self._set_status_message("Selection cancelled")
            return True
        if document.search.pattern:
            document.search.clear()
            self._set_status_message("Search highlighting cleared")
            return True
        if self.output_visible:
            self.output_visible = False
            self._force_full_redraw = True
            self._set_status_message("Output panel closed")
            return True
        return False

    def handle_escape(self) -> bool:
        if self.cancel_operation():
            return True
        original_status = self.status_message
        self._set_status_message("Nothing to cancel")
        return self.status_message != original_status

    def handle_resize(self) -> bool:
        """Recomputes the window geometry and forces a full redraw."""
        logging.debug("handle_resize called")
        self._force_full_redraw = True
        new_height, new_width = self.stdscr.getmaxyx()
        self.visible_lines = max(1, new_height - 2)
        self.last_window_size = (new_height, new_width)
        self.scroll_left = 0
        logging.debug(f"Window resized to {new_width}x{new_height}. Visible text lines: {self.visible_lines}.")
        return True

    # ----- Widths -------
    def get_char_width(self, char: str) -> int:
        """Display width of one character.

        Control and combining characters are 0; undefined widths count as 1.
        """
        if not isinstance(char, str) or len(char) != 1:
            return 1
        if unicodedata.category(char) in ("Cc", "Cf"):
            if char == "\t":
                width = wcwidth(char)
                return width if width >= 0 else 1
            return 0
        if unicodedata.combining(char):
            return 0
        width = wcwidth(char)
        return width if width >= 0 else 1

    def get_string_width(self, text: str) -> int:
        """Display width of a string, summing characters if wcswidth gives up."""
        if not isinstance(text, str):
            logging.warning(f"get_string_width received non-string input: {type(text)}")
            return 0
        width = cast(int, wcswidth(text))
        if width != -1:
            return width
        return sum(self.get_char_width(char) for char in text)

    # ------------------ Prompting for Input ------------------
    def prompt(
        self,
        message: str,
        initial: str = "",
        is_yes_no_prompt: bool = False,
        max_len: int = 1024,
        timeout_seconds: int = 60,
        choices: Optional[str] = None,
    ) -> Optional[str]:
        """Reads a line of input on the last screen row.

        With ``is_yes_no_prompt`` (or ``choices``) the first matching key is
        returned immediately. Returns None on Esc or timeout.
        """
        logging.debug(f"Prompt called. Message: '{message}', Initial: '{initial}'")
        if is_yes_no_prompt:
            choices = "yn"

        original_cursor_visibility = curses.curs_set(1)
        self.stdscr.nodelay(False)
        self.stdscr.timeout(timeout_seconds * 1000 if timeout_seconds > 0 else -1)

        input_buffer = list(initial)
        cursor_pos = len(input_buffer)

        try:
            while True:
                h, w = self.stdscr.getmaxyx()
                prompt_y = h - 1
                shown = f"{message}{''.join(input_buffer)}"
                self.stdscr.move(prompt_y, 0)
                self.stdscr.clrtoeol()
                self.stdscr.addstr(prompt_y, 0, shown[: max(0, w - 1)], self.colors.get("status", curses.A_NORMAL))
                self.stdscr.move(prompt_y, min(len(message) + cursor_pos, max(0, w - 1)))
                self.stdscr.refresh()

                try:
                    wch = self.stdscr.get_wch()
                except curses.error:
                    return None
                key = ord(wch) if isinstance(wch, str) else wch
                if key == curses.ERR:
                    return None

                if key == curses.KEY_ENTER or key in (10, 13):
                    if choices:
                        continue
                    return "".join(input_buffer).strip()
                if key == 27:
                    return None
                if key in (curses.KEY_BACKSPACE, 127, 8):
                    if cursor_pos > 0:
                        cursor_pos -= 1
                        input_buffer.pop(cursor_pos)
                elif key == curses.KEY_LEFT:
                    cursor_pos = max(0, cursor_pos - 1)
                elif key == curses.KEY_RIGHT:
                    cursor_pos = min(len(input_buffer), cursor_pos + 1)
                elif key == curses.KEY_HOME:
                    cursor_pos = 0
                elif key == curses.KEY_END:
                    cursor_pos = len(input_buffer)
                elif 32 <= key < 0x110000:
                    char = chr(key)
                    if choices:
                        if char.lower() in choices:
                            return char.lower()
                    elif len(input_buffer) < max_len:
                        input_buffer.insert(cursor_pos, char)
                        cursor_pos += 1
        finally:
            self.stdscr.nodelay(True)
            self.stdscr.timeout(KeyBinder.INPUT_TIMEOUT_MS)
            curses.curs_set(original_cursor_visibility)
            self._force_full_redraw = True

    # ==================== COLORS ==================================
    def init_colors(self) -> None:
        """Initializes curses color pairs with graceful degradation."""
        self.colors = {}

        if not curses.has_colors() or curses.COLORS < 8:
            logging.warning("Terminal has no or limited color support (< 8). Using monochrome attributes.")
            self.colors = {
                "default": curses.A_NORMAL,
                "text": curses.A_NORMAL,
                "comment": curses.A_DIM,
                "docstring": curses.A_DIM,
                "keyword": curses.A_BOLD,
                "string": curses.A_NORMAL,
                "number": curses.A_NORMAL,
                "function": curses.A_BOLD,
                "class": curses.A_BOLD,
                "constant": curses.A_BOLD,
                "type": curses.A_NORMAL,
                "builtin": curses.A_NORMAL,
                "operator": curses.A_NORMAL,
                "punctuation": curses.A_NORMAL,
                "decorator": curses.A_BOLD,
                "tag": curses.A_NORMAL,
                "attribute": curses.A_NORMAL,
                "error": curses.A_REVERSE | curses.A_BOLD,
                "status": curses.A_REVERSE,
                "status_error": curses.A_REVERSE | curses.A_BOLD,
                "line_number": curses.A_DIM,
                "search_highlight": curses.A_REVERSE,
                "current_match": curses.A_REVERSE | curses.A_BOLD,
            }
            return

        curses.start_color()
        curses.use_default_colors()

        color_definitions = {
            # Syntax Highlighting
            "default": ("#C9D1D9", curses.COLOR_WHITE, curses.A_NORMAL),
            "text": ("#C9D1D9", curses.COLOR_WHITE, curses.A_NORMAL),
            "comment": ("#8B949E", curses.COLOR_WHITE, curses.A_DIM),
            "docstring": ("#8B949E", curses.COLOR_GREEN, curses.A_NORMAL),
            "keyword": ("#FF7B72", curses.COLOR_MAGENTA, curses.A_NORMAL),
            "string": ("#A5D6FF", curses.COLOR_CYAN, curses.A_NORMAL),
            "number": ("#79C0FF", curses.COLOR_BLUE, curses.A_NORMAL),
            "function": ("#D2A8FF", curses.COLOR_YELLOW, curses.A_BOLD),
            "class": ("#F2CC60", curses.COLOR_YELLOW, curses.A_BOLD),
            "constant": ("#79C0FF", curses.COLOR_CYAN, curses.A_BOLD),
            "type": ("#F2CC60", curses.COLOR_YELLOW, curses.A_NORMAL),
            "builtin": ("#56B6C2", curses.COLOR_CYAN, curses.A_NORMAL),
            "operator": ("#FF7B72", curses.COLOR_RED, curses.A_NORMAL),
            "punctuation": ("#C9D1D9", curses.COLOR_WHITE, curses.A_NORMAL),
            "decorator": ("#D2A8FF", curses.COLOR_MAGENTA, curses.A_BOLD),
            "tag": ("#7EE787", curses.COLOR_GREEN, curses.A_NORMAL),
            "attribute": ("#79C0FF", curses.COLOR_CYAN, curses.A_NORMAL),
            # UI Elements
            "error": ("#F85149", curses.COLOR_RED, curses.A_BOLD),
            "status": ("#C9D1D9", curses.COLOR_WHITE, curses.A_REVERSE),
            "status_error": ("#F85149", curses.COLOR_RED, curses.A_REVERSE | curses.A_BOLD),
            "line_number": ("#817248", curses.COLOR_YELLOW, curses.A_DIM),
            "search_highlight": ("#000000", curses.COLOR_BLACK, curses.A_NORMAL),
            "current_match": ("#000000", curses.COLOR_BLACK, curses.A_BOLD),
        }

        user_colors = self.config.get("colors", {})
        pair_id_counter = 1
        can_use_256_colors = curses.COLORS >= 256

        for name, (default_hex, default_8_color, attr) in color_definitions.items():
            if pair_id_counter >= curses.COLOR_PAIRS:
                logging.warning(f"Ran out of color pairs. Cannot initialize '{name}' and subsequent colors.")
                self.colors[name] = attr
                continue

            bg = -1
            if can_use_256_colors:
                try:
                    fg = hex_to_xterm(user_colors.get(name, default_hex))
                except ValueError:
                    fg = hex_to_xterm(default_hex)
            else:
                fg = default_8_color

            if name in ("search_highlight", "current_match"):
                bg_key = f"{name}_bg"
                bg_default = "#FFAB70" if name == "search_highlight" else "#FF8700"
                if can_use_256_colors:
                    try:
                        bg = hex_to_xterm(user_colors.get(bg_key, bg_default))
                    except ValueError:
                        bg = 215 if name == "search_highlight" else 208
                else:
                    bg = curses.COLOR_YELLOW if name == "search_highlight" else curses.COLOR_RED

            try:
                curses.init_pair(pair_id_counter, fg, bg)
                self.colors[name] = curses.color_pair(pair_id_counter) | attr
                pair_id_counter += 1
            except curses.error as e:
                logging.error(f"Failed to initialize curses pair for '{name}': {e}")
                self.colors[name] = attr

    # ==================== HELP ==================================
    def _build_help_lines(self) -> list[str]:
        def _kb(action: str) -> str:
            """First configured key string for *action*, prettified."""
            keys = [k for k in self.keybinder.keybindings.get(action, []) if isinstance(k, str)]
            raw = self.config.get("keybindings", {}).get(action)
            if isinstance(raw, str):
                keys = [raw.split("|")[0]]
            elif isinstance(raw, list) and raw and isinstance(raw[0], str):
                keys = [raw[0]]
            if not keys:
                return "-"
            parts = keys[0].strip().lower().replace("alt-", "alt+").split("+")
            formatted = []
            for part in parts:
                if part in {"ctrl", "alt", "shift"}:
                    formatted.append(part.capitalize())
                elif len(part) == 1 and part.isalpha():
                    formatted.append(part.upper())
                elif part.startswith("f") and part[1:].isdigit():
                    formatted.append(part.upper())
                else:
                    formatted.append(part.capitalize() if part.isalpha() else part)
            return "+".join(formatted)

        sections: list[tuple[str, list[tuple[str, str]]]] = [
            ("File Operations:", [
                ("new_file", "New file"), ("open_file", "Open file"),
                ("save_file", "Save"), ("save_as", "Save as..."),
                ("close_file", "Close file"), ("next_document", "Next open file"),
                ("previous_document", "Previous open file"),
                ("reload_file", "Reload from disk"), ("quit", "Quit editor"),
            ]),
            ("Editing:", [
                ("copy", "Copy (line if no selection)"), ("cut", "Cut (line if no selection)"),
                ("paste", "Paste"), ("select_all", "Select all"),
                ("undo", "Undo"), ("redo", "Redo"),
                ("tab", "Smart Tab / Indent block"), ("shift_tab", "Unindent"),
                ("toggle_comment_block", "Comment/Uncomment lines"),
                ("trigger_completion", "Complete word"), ("tool_menu", "Code tools menu"),
            ]),
            ("Navigation & Search:", [
                ("goto_line", "Go to line"), ("find", "Find"),
                ("find_next", "Find next"), ("find_previous", "Find previous"),
                ("search_options", "Search options (case/word/regex)"),
                ("replace_current", "Replace current match"), ("search_and_replace", "Replace all"),
                ("word_left", "Previous word"), ("word_right", "Next word"),
            ]),
            ("Running:", [
                ("run_file", "Run current file"), ("cancel_job", "Stop running program"),
                ("toggle_output_panel", "Show/hide output"),
            ]),
            ("Interface:", [
                ("toggle_line_numbers", "Toggle line numbers"), ("help", "This help screen"),
                ("cancel_operation", "Cancel / Close popup"),
                ("toggle_insert_mode", "Insert/Replace mode"),
            ]),
        ]
        lines = ["                 ──  Redcli Help  ──  ", ""]
        for title, entries in sections:
            lines.append(f"  {title}")
            lines.extend(f"    {_kb(action):<22}: {label}" for action, label in entries)
            lines.append("")
        lines.extend([
            "   ────────────────────────────────────────────────────",
            "",
            "              Press any key to close help",
        ])
        return lines

    def show_help(self) -> bool:
        """Displays a centered, scrollable help window until a key is pressed."""
        lines = self._build_help_lines()
        term_h, term_w = self.stdscr.getmaxyx()
        text_max_width = max(len(line) for line in lines)
        view_w = max(20, min(text_max_width + 6, term_w - 4))
        view_h = max(8, min(len(lines) + 4, term_h - 4))
        view_y = max(0, (term_h - view_h) // 2)
        view_x = max(0, (term_w - view_w) // 2)
        if view_h > term_h or view_w > term_w:
            self._set_status_message("Terminal too small for help.")
            return True

        text_attr = curses.A_NORMAL
        border_attr = curses.A_BOLD
        try:
            if curses.has_colors() and curses.COLOR_PAIRS > HELP_PAIR_ID_START + 1:
                if curses.COLORS >= 256:
                    curses.init_pair(HELP_PAIR_ID_START, 231, 236)
                    curses.init_pair(HELP_PAIR_ID_START + 1, 250, 236)
                else:
                    curses.init_pair(HELP_PAIR_ID_START, curses.COLOR_WHITE, curses.COLOR_BLUE)
                    curses.init_pair(HELP_PAIR_ID_START + 1, curses.COLOR_CYAN, curses.COLOR_BLUE)
                text_attr = curses.color_pair(HELP_PAIR_ID_START)
                border_attr = curses.color_pair(HELP_PAIR_ID_START + 1) | curses.A_BOLD
        except curses.error as e_color:
            logging.warning(f"Redcli.show_help: Curses error initializing help colors: {e_color}. Using defaults.")

        original_cursor_visibility = curses.curs_set(0)
        try:
            win = curses.newwin(view_h, view_w, view_y, view_x)
            win.keypad(True)
            win.bkgd(" ", text_attr)
            rows = view_h - 2
            max_scroll = max(0, len(lines) - rows)
            top = 0
            while True:
                win.erase()
                win.attron(border_attr)
                win.border()
                win.attroff(border_attr)
                for i, line in enumerate(lines[top : top + rows]):
                    try:
                        win.addstr(i + 1, 2, line[: view_w - 4], text_attr)
                    except curses.error:
                        pass
                win.refresh()
                key_press = win.getch()
                if key_press in (curses.KEY_UP, ord("k")):
                    top = max(0, top - 1)
                elif key_press in (curses.KEY_DOWN, ord("j")):
                    top = min(max_scroll, top + 1)
                elif key_press == curses.KEY_PPAGE:
                    top = max(0, top - rows)
                elif key_press == curses.KEY_NPAGE:
                    top = min(max_scroll, top + rows)
                elif key_press != curses.ERR:
                    break
        except curses.error as e_curses_help:
            logging.error(f"Redcli.show_help: Curses error in help window: {e_curses_help}", exc_info=True)
            self._set_status_message(f"Help display error: {e_curses_help}")
        finally:
            if original_cursor_visibility not in (None, curses.ERR):
                try:
                    curses.curs_set(original_cursor_visibility)
                except curses.error:
                    pass
            self._force_full_redraw = True
        self._set_status_message("Help closed")
        return True

    # ------------------  Main editor loop  ------------------------
    def run(self) -> None:
        """The main event loop: process events and input, then render."""
        logger.info("Editor main loop started.")
        self.running = True
        self._force_full_redraw = True

        self.stdscr.nodelay(True)
        self.stdscr.timeout(KeyBinder.INPUT_TIMEOUT_MS)

        while self.running:
            try:
                redraw_needed = self._process_events_and_input()
                self._render_screen(redraw_needed)
            except KeyboardInterrupt:
                logger.info("Main loop interrupted by KeyboardInterrupt. Initiating exit sequence.")
                self.exit_editor()
                break
            except Exception as e:
                logger.critical("Unhandled exception in main loop: %s", e, exc_info=True)
                self.exit_editor()
                break

        self.close()
        logger.info("Editor main loop finished.")

    def _process_events_and_input(self) -> bool:
        """Applies background messages, checks files on disk, then reads one key."""
        redraw_needed = False

        with self._state_lock:
            if self.session.process_messages():
                redraw_needed = True
            if self.check_external_changes():
                redraw_needed = True

        key_input = self.keybinder.get_key_input()
        if key_input != curses.ERR and key_input != -1:
            if key_input == curses.KEY_RESIZE:
                if self.handle_resize():
                    redraw_needed = True
            elif self.handle_input(key_input):
                redraw_needed = True

        return redraw_needed

    def _render_screen(self, redraw_needed: bool) -> None:
        """Redraws only when something changed, then flushes with doupdate()."""
        if not redraw_needed and not self._force_full_redraw:
            return
        self.drawer.draw()
        curses.curs_set(1)
        self.drawer._position_cursor()
        curses.doupdate()
        self._force_full_redraw = False
