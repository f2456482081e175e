# redcli/core/Document.py
"""Document Module
=================
One open file: its buffer, the components that follow the buffer, the
cursor/selection, and the file metadata needed to save it back unchanged.

Everything that depends on buffer content subscribes to the buffer's edit
notifications in a fixed order: highlighter, search, symbol index, undo
history, and finally the document itself, which shifts the cursor and the
selection anchor so they stay on valid coordinates.
"""

import logging
import os
import time
from typing import Any, Callable, Optional

from redcli.core.CompletionEngine import CompletionContext, Suggestion, SymbolIndex, prefix_before
from redcli.core.Highlighter import Highlighter
from redcli.core.History import History
from redcli.core.SearchEngine import SearchEngine
from redcli.core.TextBuffer import Edit, Position, Range, TextBuffer
from redcli.utils.fileio import NEWLINE_NAMES, read_text_file, write_text_file
from redcli.utils.utils import detect_language


logger = logging.getLogger("redcli")

StatusCallback = Callable[[str], None]


def shift_position(pos: Position, edit: Edit) -> Position:
    """Maps a position across an edit.

    Positions before the edit are unchanged, positions inside the replaced
    text collapse to the end of the new text, positions after it move with
    the text that follows.
    """
    if pos < edit.start:
        return pos
    old_end = edit.old_end
    new_end = edit.new_end
    if pos < old_end:
        return new_end
    if pos.line == old_end.line:
        return Position(new_end.line, new_end.col + (pos.col - old_end.col))
    return Position(pos.line + edit.line_delta, pos.col)


def leading_whitespace(text: str) -> str:
    return text[: len(text) - len(text.lstrip(" \t"))]


# ==================== Document Class ====================
class Document:
    """Class Document
    ================
    Editing state of one buffer.

    Attributes:
        buffer (TextBuffer): The text.
        highlighter (Highlighter): Span cache for the buffer.
        search (SearchEngine): Find/replace state for the buffer.
        symbols (SymbolIndex): Identifiers for completion.
        history (History): Undo/redo stacks.
        cursor (Position): Insertion point.
        anchor (Optional[Position]): Other end of the selection, if any.
        path (Optional[str]): File path, None for a new buffer.
        encoding (str): Encoding used to read and write the file.
        newline (str): Line terminator written on save.
        trailing_newline (bool): Whether the file ends with a terminator.
        language (str): Language tag (highlighting, completion, execution).
        mtime (Optional[float]): Modification time when last read or written.
    """

    def __init__(
        self,
        text: str = "",
        path: Optional[str] = None,
        config: Optional[dict[str, Any]] = None,
        language: Optional[str] = None,
        encoding: str = "utf-8",
        newline: str = "\n",
        trailing_newline: bool = False,
        on_status: Optional[StatusCallback] = None,
        lines: Optional[list[str]] = None,
    ) -> None:
        self.config: dict[str, Any] = config or {}
        editor_settings = self.config.get("editor", {})
        self.tab_size: int = int(editor_settings.get("tab_size", 4))
        self.use_spaces: bool = bool(editor_settings.get("use_spaces", True))
        self.check_interval: float = float(editor_settings.get("external_check_interval", 1.0))

        self.path = path
        self.encoding = encoding
        self.newline = newline
        self.trailing_newline = trailing_newline
        self.language = detect_language(path, self.config, language)
        self.mtime: Optional[float] = None
        self._last_check = 0.0
        self.on_status = on_status
        self.status_message = ""

        self.cursor = Position(0, 0)
        self.anchor: Optional[Position] = None
        self.preferred_col: Optional[int] = None

        self._attach(TextBuffer.from_lines(lines) if lines is not None else TextBuffer(text))

    def _attach(self, buffer: TextBuffer) -> None:
        self.buffer = buffer
        self.highlighter = Highlighter(buffer, self.language)
        self.search = SearchEngine(buffer)
        self.symbols = SymbolIndex(buffer)
        self.history = History(self)
        buffer.subscribe(self.highlighter.on_edit)
        buffer.subscribe(self.search.on_edit)
        buffer.subscribe(self.symbols.on_edit)
        buffer.subscribe(self.history.add_action)
        buffer.subscribe(self._track_cursor)

    @classmethod
    def open(
        cls,
        path: str,
        config: Optional[dict[str, Any]] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> "Document":
        """Loads ``path``; raises OSError (including FileTooLargeError)."""
        config = config or {}
        limit_mb = config.get("editor", {}).get("max_file_size_mb")
        loaded = read_text_file(path, int(limit_mb * 1024 * 1024) if limit_mb else None)
        document = cls(
            path=path,
            config=config,
            encoding=loaded.encoding,
            newline=loaded.newline,
            trailing_newline=loaded.trailing_newline,
            on_status=on_status,
            lines=loaded.lines,
        )
        document.mtime = loaded.mtime
        return document

    # ---- status / state ------------------------------------------------

    def _set_status_message(self, message: str) -> None:
        self.status_message = message
        if self.on_status is not None:
            self.on_status(message)

    @property
    def modified(self) -> bool:
        return not self.history.is_at_savepoint()

    @property
    def version(self) -> int:
        return self.buffer.version

    @property
    def name(self) -> str:
        return os.path.basename(self.path) if self.path else "[No Name]"

    @property
    def newline_name(self) -> str:
        return NEWLINE_NAMES.get(self.newline, "LF")

    def set_language(self, language: str) -> None:
        self.language = language
        self.highlighter.set_language(language)

    # ---- file I/O ------------------------------------------------------

    def save(self, path: Optional[str] = None) -> None:
        """Writes the buffer; raises OSError and leaves the buffer untouched."""
        target = path or self.path
        if not target:
            raise OSError("No file name given")
        self.mtime = write_text_file(
            target, list(self.buffer), self.encoding, self.newline, self.trailing_newline
        )
        if target != self.path:
            self.path = target
            new_language = detect_language(target, self.config)
            if new_language != self.language:
                self.set_language(new_language)
        self.history.mark_saved()
        self._set_status_message(f"Saved {self.name}")

    def has_external_changes(self, now: Optional[float] = None) -> bool:
        """True if the file's mtime moved; checks at most once per interval."""
        if not self.path or self.mtime is None:
            return False
        now = time.monotonic() if now is None else now
        if now - self._last_check < self.check_interval:
            return False
        self._last_check = now
        try:
            return os.path.getmtime(self.path) != self.mtime
        except OSError:
            return False

    def reload(self) -> None:
        """Re-reads the file from disk, discarding undo history."""
        if not self.path:
            return
        limit_mb = self.config.get("editor", {}).get("max_file_size_mb")
        loaded = read_text_file(self.path, int(limit_mb * 1024 * 1024) if limit_mb else None)
        self.encoding = loaded.encoding
        self.newline = loaded.newline
        self.trailing_newline = loaded.trailing_newline
        self.mtime = loaded.mtime
        pattern, options = self.search.pattern, self.search.options
        self._attach(TextBuffer.from_lines(loaded.lines))
        if pattern:
            self.search.search(pattern, options)
        self.cursor = self.clamp(self.cursor)
        self.anchor = None
        logger.info(f"Reloaded '{self.path}' ({self.buffer.line_count()} lines)")
        self._set_status_message(f"Reloaded {self.name} from disk")

    # ---- cursor / selection --------------------------------------------

    def clamp(self, pos: Position) -> Position:
        line = min(max(pos[0], 0), self.buffer.line_count() - 1)
        col = min(max(pos[1], 0), len(self.buffer.line(line)))
        return Position(line, col)

    def set_cursor(self, pos: Position, extend: bool = False) -> None:
        """Moves the cursor; with ``extend`` the selection grows instead."""
        if extend:
            if self.anchor is None:
                self.anchor = self.cursor
        else:
            self.anchor = None
        self.cursor = self.clamp(pos)

    def clear_selection(self) -> None:
        self.anchor = None

    def selection(self) -> Optional[Range]:
        if self.anchor is None or self.anchor == self.cursor:
            return None
        return Range(self.anchor, self.cursor).normalized()

    def selected_text(self) -> str:
        rng = self.selection()
        return self.buffer.text_range(rng) if rng else ""

    def select_all(self) -> None:
        self.anchor = Position(0, 0)
        self.cursor = self.buffer.end_position()

    def _track_cursor(self, edit: Edit) -> None:
        self.cursor = self.clamp(shift_position(self.cursor, edit))
        if self.anchor is not None:
            self.anchor = self.clamp(shift_position(self.anchor, edit))

    # ---- editing -------------------------------------------------------

    def insert_text(self, text: str) -> Edit:
        """Types ``text`` at the cursor, replacing the selection if any."""
        rng = self.selection()
        if rng is not None:
            edit = self.buffer.replace(rng, text)
        else:
            edit = self.buffer.insert(self.cursor, text)
        self.anchor = None
        self.cursor = edit.new_end
        self.preferred_col = None
        return edit

    def delete_selection(self) -> Optional[Edit]:
        rng = self.selection()
        if rng is None:
            return None
        edit = self.buffer.delete(rng)
        self.anchor = None
        self.cursor = rng.start
        return edit

    def insert_newline(self) -> Edit:
        """Splits the line at the cursor, keeping the current indentation."""
        indent = leading_whitespace(self.buffer.line(self.cursor.line)[: self.cursor.col])
        return self.insert_text("\n" + indent)

    def indent_unit(self) -> str:
        return " " * self.tab_size if self.use_spaces else "\t"

    def insert_tab(self) -> Edit:
        if self.use_spaces:
            width = self.tab_size - (self.cursor.col % self.tab_size)
            return self.insert_text(" " * width)
        return self.insert_text("\t")

    def delete_backward(self) -> Optional[Edit]:
        """Backspace: removes the selection or the character before the cursor."""
        if self.selection() is not None:
            return self.delete_selection()
        line, col = self.cursor
        if col > 0:
            start = Position(line, col - 1)
        elif line > 0:
            start = Position(line - 1, len(self.buffer.line(line - 1)))
        else:
            return None
        edit = self.buffer.delete(Range(start, self.cursor))
        self.cursor = start
        return edit

    def delete_forward(self) -> Optional[Edit]:
        """Delete: removes the selection or the character under the cursor."""
        if self.selection() is not None:
            return self.delete_selection()
        line, col = self.cursor
        if col < len(self.buffer.line(line)):
            end = Position(line, col + 1)
        elif line < self.buffer.line_count() - 1:
            end = Position(line + 1, 0)
        else:
            return None
        return self.buffer.delete(Range(self.cursor, end))

    def replace_lines(self, first: int, last: int, new_lines: list[str]) -> Optional[Edit]:
        """Replaces whole lines ``first..last`` (inclusive) if they differ."""
        old = self.buffer.lines(first, last + 1)
        if old == new_lines:
            return None
        rng = Range(Position(first, 0), Position(last, len(old[-1])))
        return self.buffer.replace(rng, "\n".join(new_lines))

    # ---- completion ----------------------------------------------------

    def completion_prefix(self) -> str:
        line, col = self.cursor
        return prefix_before(self.buffer.line(line), col)

    def completion_context(self) -> CompletionContext:
        return CompletionContext(
            snapshot=self.buffer.snapshot(),
            cursor=self.cursor,
            prefix=self.completion_prefix(),
            version=self.buffer.version,
            language=self.language,
            symbols=self.symbols.symbols(),
        )

    def apply_completion(self, suggestion: Suggestion) -> Edit:
        """Replaces the identifier prefix with the suggestion.

        Continuation lines of a multi-line snippet get the current line's
        indentation. A trailing ``()``/``[]`` pair leaves the cursor inside it.
        """
        line, col = self.cursor
        prefix = self.completion_prefix()
        start = Position(line, col - len(prefix))
        indent = leading_whitespace(self.buffer.line(line))
        text = suggestion.insertion_text.replace("\n", "\n" + indent)
        edit = self.buffer.replace(Range(start, self.cursor), text)
        self.anchor = None
        end = edit.new_end
        if "\n" not in text and text.endswith(("()", "[]")):
            end = Position(end.line, end.col - 1)
        self.cursor = end
        return edit
