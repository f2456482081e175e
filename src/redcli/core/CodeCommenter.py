# redcli/core/CodeCommenter.py
"""CodeCommenter Module
====================
Comment-related code tools: toggle line/block comments over a line range,
delete every comment in a file, and remove empty lines.

All changes go through the document's buffer, inside a compound history
action, so each tool invocation is one undo step.

Classes:
--------
- `CodeCommenter`: The comment tools for one editor session.
"""

import logging
from typing import Any, Optional

from redcli.core.Document import Document, leading_whitespace
from redcli.core.TextBuffer import Position, Range


## ================= CodeCommenter Class ====================
class CodeCommenter:
    """Manages comment toggling and comment/blank-line cleanup.

    Comment syntax comes from the ``comments`` table of the configuration:
    ``line_prefix`` for line comments and ``block_delims`` for block
    comments. Line comments are preferred when a language has both.

    Methods:
        perform_toggle: Toggles comments for a line range.
        delete_comments: Removes every comment span, keeping strings intact.
        remove_empty_lines: Deletes whitespace-only lines.
    """

    def __init__(self, config: dict[str, Any]) -> None:
        self.config = config

    def _comment_info(self, language: str) -> dict[str, Any]:
        return self.config.get("comments", {}).get(language, {})

    def perform_toggle(self, document: Document, start_y: int, end_y: int) -> bool:
        """Toggles comments on lines ``start_y..end_y``; returns True on change."""
        info = self._comment_info(document.language)
        prefix: Optional[str] = info.get("line_prefix")
        delims = info.get("block_delims")
        if not prefix and not delims:
            document._set_status_message("Comments not supported for this language.")
            return False

        document.history.begin_compound_action()
        try:
            if prefix:
                changed = self._toggle_line_comments(document, start_y, end_y, prefix)
            else:
                changed = self._toggle_block_comment(document, start_y, end_y, tuple(delims))
        finally:
            document.history.end_compound_action()
        return changed

    def _toggle_line_comments(
        self, document: Document, start_y: int, end_y: int, comment_prefix: str
    ) -> bool:
        """Uncomments if every non-blank line is commented, else comments.

        Blank lines are left alone. Comments are inserted at the minimum
        indentation of the range so the block stays aligned.
        """
        marker = comment_prefix.strip()
        lines = document.buffer.lines(start_y, end_y + 1)
        non_blank = [line for line in lines if line.strip()]
        if not non_blank:
            return False

        if all(line.lstrip().startswith(marker) for line in non_blank):
            new_lines = []
            for line in lines:
                stripped = line.lstrip()
                if stripped.startswith(marker):
                    rest = stripped[len(marker) :]
                    if rest.startswith(" "):
                        rest = rest[1:]
                    line = line[: len(line) - len(stripped)] + rest
                new_lines.append(line)
            message = f"Removed '{marker}' line comments"
        else:
            indent = min(len(leading_whitespace(line)) for line in non_blank)
            new_lines = [
                line[:indent] + marker + " " + line[indent:]
                if line.strip() and not line.lstrip().startswith(marker)
                else line
                for line in lines
            ]
            message = f"Added '{marker}' line comments"

        edit = document.replace_lines(start_y, end_y, new_lines)
        document._set_status_message(message)
        return edit is not None

    def _toggle_block_comment(
        self, document: Document, start_y: int, end_y: int, block_delims: tuple[str, str]
    ) -> bool:
        """Wraps or unwraps the line range with block delimiters."""
        open_tag, close_tag = block_delims
        lines = document.buffer.lines(start_y, end_y + 1)
        if lines[0].lstrip().startswith(open_tag) and lines[-1].rstrip().endswith(close_tag):
            lines[0] = lines[0].replace(open_tag + " ", "", 1) if open_tag + " " in lines[0] else lines[0].replace(open_tag, "", 1)
            tail = lines[-1].rstrip()
            cut = tail.rfind(close_tag)
            lines[-1] = tail[:cut].rstrip(" ") if tail[:cut].strip() else tail[:cut]
            message = f"Removed '{open_tag} {close_tag}' block comment"
        else:
            indent = leading_whitespace(lines[0])
            lines[0] = indent + open_tag + " " + lines[0][len(indent) :]
            lines[-1] = lines[-1] + " " + close_tag
            message = f"Added '{open_tag} {close_tag}' block comment"
        edit = document.replace_lines(start_y, end_y, lines)
        document._set_status_message(message)
        return edit is not None

    def delete_comments(self, document: Document) -> int:
        """Removes all comment spans; returns the number of spans deleted.

        Comment detection uses the highlighter, so comment markers inside
        string literals are untouched. Lines left blank by the removal are
        deleted; trailing whitespace before a removed comment is trimmed.
        """
        highlighter = document.highlighter
        buffer = document.buffer
        targets: list[tuple[int, int, int]] = []
        for line in range(buffer.line_count()):
            for span in highlighter.spans(line):
                if span.kind == "comment":
                    targets.append((line, span.start, span.end))
        if not targets:
            document._set_status_message("No comments found")
            return 0

        emptied: set[int] = set()
        document.history.begin_compound_action()
        try:
            for line, start, end in reversed(targets):
                text = buffer.line(line)
                cut = len(text[:start].rstrip()) if end == len(text) else start
                buffer.delete(Range(Position(line, cut), Position(line, end)))
                if text.strip() and not buffer.line(line).strip():
                    emptied.add(line)
            for line in sorted(emptied, reverse=True):
                self._delete_line(document, line)
        finally:
            document.history.end_compound_action()
        logging.info(f"CodeCommenter: deleted {len(targets)} comment span(s)")
        document._set_status_message(f"Deleted {len(targets)} comment(s)")
        return len(targets)

    def remove_empty_lines(self, document: Document) -> int:
        """Deletes whitespace-only lines; returns how many were removed."""
        buffer = document.buffer
        blanks = [i for i, text in enumerate(buffer) if not text.strip()]
        if len(blanks) == buffer.line_count():
            blanks = blanks[1:]
        if not blanks:
            document._set_status_message("No empty lines")
            return 0
        document.history.begin_compound_action()
        try:
            for line in reversed(blanks):
                self._delete_line(document, line)
        finally:
            document.history.end_compound_action()
        document._set_status_message(f"Removed {len(blanks)} empty line(s)")
        return len(blanks)

    @staticmethod
    def _delete_line(document: Document, line: int) -> None:
        buffer = document.buffer
        if buffer.line_count() == 1:
            buffer.delete(Range(Position(0, 0), Position(0, len(buffer.line(0)))))
        elif line < buffer.line_count() - 1:
            buffer.delete(Range(Position(line, 0), Position(line + 1, 0)))
        else:
            previous = buffer.line(line - 1)
            buffer.delete(
                Range(Position(line - 1, len(previous)), Position(line, len(buffer.line(line))))
            )
