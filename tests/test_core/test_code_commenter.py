# tests/test_core/test_code_commenter.py
"""Unit tests for `CodeCommenter`.
==================================

Line and block comment toggling, comment deletion that leaves string
literals alone, and empty-line removal. Every tool call must be a single
undo step.
"""

from typing import Any

import pytest

from redcli.core.CodeCommenter import CodeCommenter
from redcli.core.Document import Document


@pytest.fixture
def commenter(mock_config: dict[str, Any]) -> CodeCommenter:
    return CodeCommenter(mock_config)


def make_doc(text: str, language: str, config: dict[str, Any]) -> Document:
    return Document(text, config=config, language=language)


class TestToggle:
    def test_comment_then_uncomment_python(
        self, commenter: CodeCommenter, mock_config: dict[str, Any]
    ) -> None:
        doc = make_doc("def f():\n    x = 1\n\n    return x", "python", mock_config)
        assert commenter.perform_toggle(doc, 0, 3)
        assert list(doc.buffer) == ["# def f():", "#     x = 1", "", "#     return x"]
        assert doc.status_message == "Added '#' line comments"

        assert commenter.perform_toggle(doc, 0, 3)
        assert list(doc.buffer) == ["def f():", "    x = 1", "", "    return x"]

    def test_comment_at_minimum_indent(
        self, commenter: CodeCommenter, mock_config: dict[str, Any]
    ) -> None:
        doc = make_doc("    a()\n        b()", "python", mock_config)
        commenter.perform_toggle(doc, 0, 1)
        assert list(doc.buffer) == ["    # a()", "    #     b()"]

    def test_mixed_range_is_commented(
        self, commenter: CodeCommenter, mock_config: dict[str, Any]
    ) -> None:
        doc = make_doc("# done\ntodo", "python", mock_config)
        commenter.perform_toggle(doc, 0, 1)
        assert list(doc.buffer) == ["# done", "# todo"]

    def test_toggle_is_one_undo_step(
        self, commenter: CodeCommenter, mock_config: dict[str, Any]
    ) -> None:
        doc = make_doc("a\nb\nc", "python", mock_config)
        commenter.perform_toggle(doc, 0, 2)
        doc.history.undo()
        assert doc.buffer.text() == "a\nb\nc"

    def test_block_comment_for_css(
        self, commenter: CodeCommenter, mock_config: dict[str, Any]
    ) -> None:
        doc = make_doc("a { color: red; }\nb { color: blue; }", "css", mock_config)
        commenter.perform_toggle(doc, 0, 1)
        assert list(doc.buffer) == ["/* a { color: red; }", "b { color: blue; } */"]
        commenter.perform_toggle(doc, 0, 1)
        assert list(doc.buffer) == ["a { color: red; }", "b { color: blue; }"]

    def test_unsupported_language(
        self, commenter: CodeCommenter, mock_config: dict[str, Any]
    ) -> None:
        doc = make_doc("plain", "text", mock_config)
        assert not commenter.perform_toggle(doc, 0, 0)
        assert doc.status_message == "Comments not supported for this language."


class TestCleanup:
    def test_delete_comments_keeps_strings(
        self, commenter: CodeCommenter, mock_config: dict[str, Any]
    ) -> None:
        doc = make_doc("# header\nurl = '#not-a-comment'  # trailing\nx = 1", "python", mock_config)
        assert commenter.delete_comments(doc) == 2
        assert list(doc.buffer) == ["url = '#not-a-comment'", "x = 1"]
        doc.history.undo()
        assert doc.buffer.line(0) == "# header"

    def test_delete_comments_none_found(
        self, commenter: CodeCommenter, mock_config: dict[str, Any]
    ) -> None:
        doc = make_doc("x = 1", "python", mock_config)
        assert commenter.delete_comments(doc) == 0
        assert doc.status_message == "No comments found"

    def test_remove_empty_lines(
        self, commenter: CodeCommenter, mock_config: dict[str, Any]
    ) -> None:
        doc = make_doc("a\n\n   \nb\n", "python", mock_config)
        assert commenter.remove_empty_lines(doc) == 3
        assert list(doc.buffer) == ["a", "b"]
        assert doc.status_message == "Removed 3 empty line(s)"
