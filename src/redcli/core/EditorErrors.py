# redcli/core/EditorErrors.py
"""EditorErrors Module
=====================
Exception taxonomy shared by the editing engine.

The core components raise these; the curses controller catches the
recoverable ones and turns them into status-bar messages.

Classes:
--------
- EditorError: Base class for every engine error.
- RangeError: A position or range lies outside the current buffer bounds.
- PatternError: A search pattern could not be compiled.
- SpawnError: An external interpreter or compiler could not be started.
- FileTooLargeError: A file exceeds the configured open limit.
"""

from typing import Optional, Sequence


class EditorError(Exception):
    """Base class for all errors raised by the editing engine."""


class RangeError(EditorError, IndexError):
    """Raised when buffer coordinates are out of bounds or stale.

    This always signals a synchronisation bug in the caller; the buffer
    never clamps coordinates on its own.
    """


class PatternError(EditorError, ValueError):
    """Raised when a search pattern is not a valid regular expression."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"Invalid pattern '{pattern}': {reason}")
        self.pattern = pattern
        self.reason = reason


class SpawnError(EditorError, OSError):
    """Raised when an execution job cannot be started."""

    def __init__(self, message: str, command: Optional[Sequence[str]] = None) -> None:
        super().__init__(message)
        self.command = list(command) if command else []


class FileTooLargeError(EditorError, OSError):
    """Raised when a file is larger than ``editor.max_file_size_mb``."""
