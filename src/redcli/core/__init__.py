# src/redcli/core/__init__.py
"""Public facade for redcli.core: re-export main classes from CamelCase modules.

Keeps Java-like file names (TextBuffer.py, Highlighter.py, ...),
but provides flat imports for convenience and stability.
"""

# Re-export classes/symbols from CamelCase modules
from .AsyncEngine import AsyncEngine  # noqa: F401
from .CodeCommenter import CodeCommenter  # noqa: F401
from .CompletionEngine import CompletionEngine, Suggestion  # noqa: F401
from .Document import Document  # noqa: F401
from .EditorErrors import EditorError, PatternError, RangeError, SpawnError  # noqa: F401
from .ExecutionRunner import ExecutionRunner, ExternalJob, JobState  # noqa: F401
from .Highlighter import Highlighter, HighlightSpan  # noqa: F401
from .History import History  # noqa: F401
from .Redcli import Redcli  # noqa: F401
from .SearchEngine import SearchEngine, SearchOptions  # noqa: F401
from .Session import EditorSession  # noqa: F401
from .TextBuffer import Edit, Position, Range, TextBuffer  # noqa: F401


__all__ = [
    "AsyncEngine",
    "CodeCommenter",
    "CompletionEngine",
    "Document",
    "Edit",
    "EditorError",
    "EditorSession",
    "ExecutionRunner",
    "ExternalJob",
    "HighlightSpan",
    "Highlighter",
    "History",
    "JobState",
    "PatternError",
    "Position",
    "Range",
    "RangeError",
    "Redcli",
    "SearchEngine",
    "SearchOptions",
    "SpawnError",
    "Suggestion",
    "TextBuffer",
]
