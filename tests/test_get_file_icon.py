# tests/test_get_file_icon.py
"""Unit tests for the `get_file_icon` utility function.

This module verifies that the correct icon is returned based on
file names and extensions using a configurable mapping.
"""

from redcli.utils.utils import get_file_icon


# Sample configuration used across tests
sample_config = {
    "file_icons": {
        "default": "❓",  # Fallback icon for unsupported files
        "text": "📝",  # Icon for plain text files
        "python": "🐍",  # Icon for Python files
        "docs": "📘",  # Documentation files (blue book)
    },
    "supported_formats": {
        "python": ["py", "pyw"],
        "text": ["txt", "log"],
        # Exact names (case-insensitive, without extension) +
        # extensions to be associated with the documentation icon 📘
        "docs": ["readme", "md", "rst", "guide", "manual"],
    },
}


def test_icon_for_exact_filename() -> None:
    """Ensure that exact file names and extensions map to the docs icon."""
    assert get_file_icon("readme", sample_config) == "📘"
    assert get_file_icon("README.md", sample_config) == "📘"


def test_icon_for_extension() -> None:
    assert get_file_icon("/src/main.py", sample_config) == "🐍"
    assert get_file_icon("server.LOG", sample_config) == "📝"


def test_icon_fallbacks() -> None:
    """Unknown extensions get the text icon; a missing name gets the default."""
    assert get_file_icon("archive.zip", sample_config) == "📝"
    assert get_file_icon(None, sample_config) == "❓"
    assert get_file_icon("a.py", "not a dict") == "❓"  # type: ignore[arg-type]
