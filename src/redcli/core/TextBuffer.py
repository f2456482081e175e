# redcli/core/TextBuffer.py
"""TextBuffer Module
===================
Line-oriented text storage for the editing engine.

The buffer keeps its lines in a list of bounded chunks together with the
index of the first line of each chunk, so a line lookup is a binary search
over the chunk starts and an edit only rewrites the chunk(s) it touches.
Chunks that grow past ``CHUNK_SIZE`` lines are split; chunks that shrink
below a quarter of that are merged with a neighbour.

Every mutating call returns the :class:`Edit` actually performed. An Edit
records the start position, the text that was replaced and the text that
replaced it, which makes it trivially invertible and lets listeners
(highlighter, search, undo history) compute the exact damage region.

Key Features:
-------------
- Sub-linear line lookup and localized edits on large files.
- Edits are verified against the current content before being applied, so
  a stale Edit raises instead of corrupting the buffer.
- Out-of-range coordinates raise ``RangeError``; nothing is ever clamped.
- Edit listeners are notified synchronously after each mutation.

Classes:
--------
- Position, Range: Buffer coordinates.
- Edit: One atomic, invertible change.
- TextBuffer: The mutable store.
"""

import bisect
import logging
from dataclasses import dataclass
from typing import Callable, Iterator, NamedTuple, Optional

from redcli.core.EditorErrors import RangeError


CHUNK_SIZE = 512
MIN_CHUNK_SIZE = CHUNK_SIZE // 4

EditListener = Callable[["Edit"], None]


class Position(NamedTuple):
    """A (line, column) cursor position; column may equal the line length."""

    line: int
    col: int


class Range(NamedTuple):
    """A half-open span of buffer text between two positions."""

    start: Position
    end: Position

    def normalized(self) -> "Range":
        """Returns the range with ``start <= end``."""
        if self.end < self.start:
            return Range(self.end, self.start)
        return self

    @property
    def is_empty(self) -> bool:
        return self.start == self.end


def text_end(start: Position, text: str) -> Position:
    """Returns the position reached after writing ``text`` at ``start``."""
    newlines = text.count("\n")
    if not newlines:
        return Position(start.line, start.col + len(text))
    return Position(start.line + newlines, len(text) - text.rfind("\n") - 1)


def normalize_newlines(text: str) -> str:
    """Converts CRLF and lone CR terminators to LF."""
    if "\r" not in text:
        return text
    return text.replace("\r\n", "\n").replace("\r", "\n")


@dataclass(frozen=True)
class Edit:
    """One atomic change: ``old_text`` at ``start`` became ``new_text``.

    An insertion has an empty ``old_text``; a deletion an empty ``new_text``.
    """

    start: Position
    old_text: str
    new_text: str

    @property
    def old_end(self) -> Position:
        return text_end(self.start, self.old_text)

    @property
    def new_end(self) -> Position:
        return text_end(self.start, self.new_text)

    @property
    def first_line(self) -> int:
        return self.start.line

    @property
    def old_last_line(self) -> int:
        return self.start.line + self.old_text.count("\n")

    @property
    def new_last_line(self) -> int:
        return self.start.line + self.new_text.count("\n")

    @property
    def line_delta(self) -> int:
        return self.new_text.count("\n") - self.old_text.count("\n")

    @property
    def kind(self) -> str:
        if not self.old_text:
            return "insert"
        if not self.new_text:
            return "delete"
        return "replace"

    def inverted(self) -> "Edit":
        return Edit(self.start, self.new_text, self.old_text)


# ==================== TextBuffer Class ====================
class TextBuffer:
    """Class TextBuffer
    ==================
    Chunked line store with invertible edits.

    Attributes:
        version (int): Incremented on every applied edit. Background work
            tags its results with the version it saw to detect staleness.

    Methods:
        insert(pos, text) -> Edit
        delete(rng) -> Edit
        replace(rng, text) -> Edit
        apply(edit) -> Edit
        invert(edit) -> Edit
        line(i) -> str
        line_count() -> int
        char_at(pos) -> str
        text_range(rng) -> str
        subscribe(listener) -> unsubscribe callable
    """

    def __init__(self, text: str = "") -> None:
        self._chunks: list[list[str]] = []
        self._starts: list[int] = []
        self._listeners: list[EditListener] = []
        self.version: int = 0
        self._load(normalize_newlines(text).split("\n"))

    @classmethod
    def from_lines(cls, lines: list[str]) -> "TextBuffer":
        """Builds a buffer from already-split lines (no terminators)."""
        buffer = cls()
        buffer._load(list(lines) or [""])
        return buffer

    def _load(self, lines: list[str]) -> None:
        self._chunks = [
            lines[i : i + CHUNK_SIZE] for i in range(0, len(lines), CHUNK_SIZE)
        ] or [[""]]
        self._reindex(0)

    def _reindex(self, from_chunk: int) -> None:
        del self._starts[from_chunk:]
        total = 0
        if from_chunk:
            total = self._starts[from_chunk - 1] + len(self._chunks[from_chunk - 1])
        for chunk in self._chunks[from_chunk:]:
            self._starts.append(total)
            total += len(chunk)

    def _locate(self, line: int) -> tuple[int, int]:
        chunk_index = bisect.bisect_right(self._starts, line) - 1
        return chunk_index, line - self._starts[chunk_index]

    # ---- reading -------------------------------------------------------

    def line_count(self) -> int:
        return self._starts[-1] + len(self._chunks[-1])

    def line(self, index: int) -> str:
        if not 0 <= index < self.line_count():
            raise RangeError(
                f"Line {index} out of range (buffer has {self.line_count()} lines)"
            )
        chunk_index, offset = self._locate(index)
        return self._chunks[chunk_index][offset]

    def lines(self, start: int = 0, end: Optional[int] = None) -> list[str]:
        """Returns lines ``[start, end)``; bounds are clipped like a slice."""
        count = self.line_count()
        end = count if end is None else min(end, count)
        start = max(0, start)
        if start >= end:
            return []
        chunk_index, offset = self._locate(start)
        result: list[str] = []
        while len(result) < end - start:
            chunk = self._chunks[chunk_index]
            result.extend(chunk[offset : offset + (end - start - len(result))])
            chunk_index += 1
            offset = 0
        return result

    def __iter__(self) -> Iterator[str]:
        for chunk in self._chunks:
            yield from chunk

    def snapshot(self) -> tuple[str, ...]:
        """Immutable copy of all lines for background consumers."""
        return tuple(self)

    def text(self) -> str:
        return "\n".join(self)

    def end_position(self) -> Position:
        last = self.line_count() - 1
        return Position(last, len(self.line(last)))

    def check_position(self, pos: Position) -> None:
        """Raises ``RangeError`` unless ``pos`` is a valid cursor position."""
        line, col = pos
        if not 0 <= line < self.line_count():
            raise RangeError(f"Position {tuple(pos)} is outside the buffer")
        length = len(self.line(line))
        if not 0 <= col <= length:
            raise RangeError(
                f"Column {col} out of range on line {line} (length {length})"
            )

    def char_at(self, pos: Position) -> str:
        """Returns the character at ``pos``; ``"\\n"`` at an inner line end."""
        self.check_position(pos)
        text = self.line(pos.line)
        if pos.col < len(text):
            return text[pos.col]
        if pos.line < self.line_count() - 1:
            return "\n"
        raise RangeError(f"No character at end of buffer {tuple(pos)}")

    def text_range(self, rng: Range) -> str:
        start, end = rng.normalized()
        self.check_position(start)
        self.check_position(end)
        if start.line == end.line:
            return self.line(start.line)[start.col : end.col]
        parts = self.lines(start.line, end.line + 1)
        parts[0] = parts[0][start.col :]
        parts[-1] = parts[-1][: end.col]
        return "\n".join(parts)

    # ---- mutation ------------------------------------------------------

    def insert(self, pos: Position, text: str) -> Edit:
        pos = Position(*pos)
        self.check_position(pos)
        return self._perform(Edit(pos, "", normalize_newlines(text)))

    def delete(self, rng: Range) -> Edit:
        rng = Range(Position(*rng[0]), Position(*rng[1])).normalized()
        return self._perform(Edit(rng.start, self.text_range(rng), ""))

    def replace(self, rng: Range, text: str) -> Edit:
        rng = Range(Position(*rng[0]), Position(*rng[1])).normalized()
        old_text = self.text_range(rng)
        return self._perform(Edit(rng.start, old_text, normalize_newlines(text)))

    def apply(self, edit: Edit) -> Edit:
        """Re-applies a recorded Edit after checking it matches the buffer."""
        end = edit.old_end
        self.check_position(edit.start)
        self.check_position(end)
        current = self.text_range(Range(edit.start, end))
        if current != edit.old_text:
            raise RangeError(
                f"Stale edit at {tuple(edit.start)}: expected {edit.old_text!r}, "
                f"found {current!r}"
            )
        return self._perform(edit)

    @staticmethod
    def invert(edit: Edit) -> Edit:
        return edit.inverted()

    def _perform(self, edit: Edit) -> Edit:
        if not edit.old_text and not edit.new_text:
            return edit
        start = edit.start
        end = edit.old_end
        head = self.line(start.line)[: start.col]
        tail = self.line(end.line)[end.col :]
        self._splice(start.line, end.line, (head + edit.new_text + tail).split("\n"))
        self.version += 1
        logging.debug(
            f"TextBuffer: {edit.kind} at {tuple(start)}, "
            f"line delta {edit.line_delta}, version {self.version}"
        )
        for listener in list(self._listeners):
            listener(edit)
        return edit

    def _splice(self, first: int, last: int, new_lines: list[str]) -> None:
        """Replaces lines ``first..last`` (inclusive) with ``new_lines``."""
        first_chunk, first_offset = self._locate(first)
        last_chunk, last_offset = self._locate(last)
        merged = (
            self._chunks[first_chunk][:first_offset]
            + new_lines
            + self._chunks[last_chunk][last_offset + 1 :]
        )
        pieces = [
            merged[i : i + CHUNK_SIZE] for i in range(0, len(merged), CHUNK_SIZE)
        ]
        self._chunks[first_chunk : last_chunk + 1] = pieces
        reindex_from = first_chunk
        # Fold an undersized chunk into its predecessor.
        if (
            len(pieces) == 1
            and len(pieces[0]) < MIN_CHUNK_SIZE
            and first_chunk > 0
            and len(self._chunks[first_chunk - 1]) + len(pieces[0]) <= CHUNK_SIZE
        ):
            self._chunks[first_chunk - 1].extend(self._chunks.pop(first_chunk))
            reindex_from = first_chunk - 1
        self._reindex(reindex_from)

    # ---- listeners -----------------------------------------------------

    def subscribe(self, listener: EditListener) -> Callable[[], None]:
        """Registers ``listener(edit)``; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
