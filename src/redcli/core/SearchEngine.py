# redcli/core/SearchEngine.py
"""SearchEngine Module
=====================
Find and replace over a :class:`TextBuffer`.

The engine keeps the live match set for the current query. After an edit
only the lines the edit produced are rescanned; matches above the damage are
kept as they are and matches below it are shifted by the edit's line delta.
A full rescan happens only when the pattern or its options change.

Classes:
--------
- SearchOptions: case sensitivity, whole-word, regex.
- Match: (line, start, end) of one occurrence.
- SearchEngine: Match set, cyclic navigation, replace and replace-all.
"""

import logging
import re
from dataclasses import dataclass
from typing import NamedTuple, Optional

from redcli.core.EditorErrors import PatternError, RangeError
from redcli.core.TextBuffer import Edit, Position, Range, TextBuffer


@dataclass(frozen=True)
class SearchOptions:
    case_sensitive: bool = True
    whole_word: bool = False
    regex: bool = False

    def describe(self) -> str:
        """Short flag string for the status bar, e.g. ``"Aa W .*"``."""
        flags = [
            "Aa" if self.case_sensitive else "aa",
            "W" if self.whole_word else "",
            ".*" if self.regex else "",
        ]
        return " ".join(flag for flag in flags if flag)


class Match(NamedTuple):
    line: int
    start: int
    end: int


# ==================== SearchEngine Class ====================
class SearchEngine:
    """Class SearchEngine
    ====================
    Holds the current query and its match set for one buffer.

    Attributes:
        pattern (str): Last successfully compiled pattern ("" when idle).
        options (SearchOptions): Options the pattern was compiled with.
        matches (list[Match]): Ordered, non-overlapping occurrences.
        current_index (int): Index of the current match, -1 when none.
    """

    def __init__(self, buffer: TextBuffer) -> None:
        self.buffer = buffer
        self.pattern: str = ""
        self.options = SearchOptions()
        self.matches: list[Match] = []
        self.current_index: int = -1
        self._compiled: Optional[re.Pattern[str]] = None

    @staticmethod
    def compile(pattern: str, options: SearchOptions) -> Optional[re.Pattern[str]]:
        """Compiles a query; returns None when a plain substring scan will do."""
        if not options.regex and options.case_sensitive and not options.whole_word:
            return None
        source = pattern if options.regex else re.escape(pattern)
        if options.whole_word:
            source = rf"(?<!\w)(?:{source})(?!\w)"
        flags = 0 if options.case_sensitive else re.IGNORECASE
        try:
            return re.compile(source, flags)
        except re.error as e:
            raise PatternError(pattern, str(e)) from e

    def search(
        self, pattern: str, options: Optional[SearchOptions] = None
    ) -> list[Match]:
        """Runs a new query over the whole buffer.

        Raises:
            PatternError: The regex is invalid. The previous query and its
                matches stay in effect.
        """
        options = options or SearchOptions()
        compiled = self.compile(pattern, options) if pattern else None
        self.pattern = pattern
        self.options = options
        self._compiled = compiled
        self.matches = self._scan(0, self.buffer.line_count()) if pattern else []
        self.current_index = 0 if self.matches else -1
        logging.debug(
            f"SearchEngine: '{pattern}' [{options.describe()}] -> {len(self.matches)} matches"
        )
        return list(self.matches)

    def clear(self) -> None:
        self.pattern = ""
        self._compiled = None
        self.matches = []
        self.current_index = -1

    def _scan_line(self, index: int, text: str) -> list[Match]:
        found: list[Match] = []
        if self._compiled is None:
            width = len(self.pattern)
            pos = text.find(self.pattern)
            while pos != -1:
                found.append(Match(index, pos, pos + width))
                pos = text.find(self.pattern, pos + width)
            return found
        for m in self._compiled.finditer(text):
            if m.end() > m.start():
                found.append(Match(index, m.start(), m.end()))
        return found

    def _scan(self, first: int, end: int) -> list[Match]:
        found: list[Match] = []
        for offset, text in enumerate(self.buffer.lines(first, end)):
            found.extend(self._scan_line(first + offset, text))
        return found

    # ---- navigation ----------------------------------------------------

    @property
    def current(self) -> Optional[Match]:
        if 0 <= self.current_index < len(self.matches):
            return self.matches[self.current_index]
        return None

    def next_match(self) -> Optional[Match]:
        if not self.matches:
            return None
        self.current_index = (self.current_index + 1) % len(self.matches)
        return self.matches[self.current_index]

    def previous_match(self) -> Optional[Match]:
        if not self.matches:
            return None
        self.current_index = (self.current_index - 1) % len(self.matches)
        return self.matches[self.current_index]

    def seek(self, pos: Position) -> Optional[Match]:
        """Makes the first match at or after ``pos`` current (wrapping)."""
        if not self.matches:
            return None
        for index, match in enumerate(self.matches):
            if (match.line, match.start) >= tuple(pos):
                self.current_index = index
                break
        else:
            self.current_index = 0
        return self.matches[self.current_index]

    # ---- replacement ---------------------------------------------------

    def replacement_for(self, match: Match, text: str) -> str:
        """Expands ``text`` for ``match``; raises RangeError if it is stale."""
        line = self.buffer.line(match.line)
        if self._compiled is None:
            if line[match.start : match.end] != self.pattern:
                raise RangeError(f"Stale match {tuple(match)}")
            return text
        m = self._compiled.match(line, match.start)
        if m is None or m.end() != match.end:
            raise RangeError(f"Stale match {tuple(match)}")
        if self.options.regex:
            return m.expand(text)
        return text

    def replace(self, match: Match, text: str) -> Edit:
        replacement = self.replacement_for(match, text)
        rng = Range(Position(match.line, match.start), Position(match.line, match.end))
        return self.buffer.replace(rng, replacement)

    def replace_all(
        self, pattern: str, text: str, options: Optional[SearchOptions] = None
    ) -> list[Edit]:
        """Replaces every occurrence, last one first; returns the Edits.

        Replacements are expanded against the unmodified buffer, so a
        pattern with lookaround sees the same context it was found in.
        If an edit fails, the ones already applied are reverted before the
        error propagates.
        """
        targets = self.search(pattern, options)
        planned = [
            (
                Range(Position(match.line, match.start), Position(match.line, match.end)),
                self.buffer.line(match.line)[match.start : match.end],
                self.replacement_for(match, text),
            )
            for match in targets
        ]
        edits: list[Edit] = []
        try:
            for rng, found, replacement in reversed(planned):
                if self.buffer.text_range(rng) != found:
                    raise RangeError(f"Stale match at {tuple(rng.start)}")
                edits.append(self.buffer.replace(rng, replacement))
        except RangeError:
            for edit in reversed(edits):
                self.buffer.apply(edit.inverted())
            raise
        logging.info(f"SearchEngine: replaced {len(edits)} occurrence(s) of '{pattern}'")
        return edits

    # ---- incremental maintenance ---------------------------------------

    def on_edit(self, edit: Edit) -> None:
        """Buffer listener: rescans only the lines the edit produced."""
        if not self.pattern:
            return
        first = edit.first_line
        old_last = edit.old_last_line
        delta = edit.line_delta
        current = self.current
        old_index = self.current_index

        before = [m for m in self.matches if m.line < first]
        untouched_upto = len(before) + sum(
            1 for m in self.matches if first <= m.line <= old_last
        )
        after = [
            Match(m.line + delta, m.start, m.end)
            for m in self.matches
            if m.line > old_last
        ]
        rescanned = self._scan(first, edit.new_last_line + 1)
        self.matches = before + rescanned + after

        if not self.matches:
            self.current_index = -1
        elif current is None:
            self.current_index = 0
        elif current.line < first:
            self.current_index = old_index
        elif current.line > old_last:
            self.current_index = len(before) + len(rescanned) + (old_index - untouched_upto)
        else:
            self.current_index = min(len(before), len(self.matches) - 1)
