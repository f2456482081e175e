# tests/test_core/test_history.py
"""History Tests
========================

Unit tests for the History class.

This test module verifies that the History class:

1. Records every buffer edit and clears the redo stack on new edits.
2. Groups edits made between `begin_compound_action` and
   `end_compound_action` into a single undo step.
3. Restores text and cursor on undo/redo, and tracks the save point used
   for the document's modified flag.
4. Refuses to replay edits that no longer match the buffer.
"""

import pytest

from redcli.core.Document import Document
from redcli.core.EditorErrors import RangeError
from redcli.core.TextBuffer import Position, Range


@pytest.fixture
def doc() -> Document:
    return Document("hello world")


def test_add_and_clear(doc: Document) -> None:
    """Test: Each edit is a group; `clear()` empties both stacks."""
    doc.buffer.insert(Position(0, 5), ",")
    doc.buffer.insert(Position(0, 12), "!")

    assert len(doc.history._action_history) == 2
    assert doc.history._undone_actions == []

    doc.history.clear()
    assert doc.history._action_history == []
    assert doc.history._undone_actions == []


def test_undo_redo_restores_text_and_cursor(doc: Document) -> None:
    """Test: Undo reverts the last edit, redo re-applies it."""
    doc.set_cursor(Position(0, 5))
    doc.insert_text(" there")
    assert doc.buffer.text() == "hello there world"

    assert doc.history.undo() is True
    assert doc.buffer.text() == "hello world"
    assert doc.cursor == Position(0, 5)
    assert doc.status_message == "Action undone"

    assert doc.history.redo() is True
    assert doc.buffer.text() == "hello there world"
    assert doc.cursor == Position(0, 11)


def test_compound_action_is_one_step(doc: Document) -> None:
    """Test: A compound action undoes in a single step."""
    doc.history.begin_compound_action()
    doc.buffer.insert(Position(0, 0), "A")
    doc.buffer.insert(Position(0, 1), "B")
    doc.history.begin_compound_action()
    doc.buffer.insert(Position(0, 2), "C")
    doc.history.end_compound_action()
    doc.history.end_compound_action()

    assert len(doc.history._action_history) == 1
    doc.history.undo()
    assert doc.buffer.text() == "hello world"


def test_new_edit_clears_redo_stack(doc: Document) -> None:
    """Test: Redo is impossible after a fresh edit."""
    doc.buffer.insert(Position(0, 0), "x")
    doc.history.undo()
    assert doc.history.can_redo
    doc.buffer.insert(Position(0, 0), "y")
    assert not doc.history.can_redo
    doc.history.redo()
    assert doc.status_message == "Nothing to redo"


def test_nothing_to_undo(doc: Document) -> None:
    assert doc.history.undo() is True
    assert doc.status_message == "Nothing to undo"


def test_modified_flag_follows_savepoint(doc: Document) -> None:
    """Test: Undoing back to the saved state clears the modified flag."""
    assert not doc.modified
    doc.buffer.insert(Position(0, 0), "x")
    assert doc.modified
    doc.history.undo()
    assert not doc.modified
    doc.history.redo()
    assert doc.modified
    doc.history.mark_saved()
    assert not doc.modified


def test_savepoint_lost_when_redo_branch_discarded(doc: Document) -> None:
    doc.buffer.insert(Position(0, 0), "x")
    doc.history.mark_saved()
    doc.history.undo()
    doc.buffer.insert(Position(0, 0), "y")
    doc.history.undo()
    assert doc.modified


def test_undo_out_of_sync_raises(doc: Document) -> None:
    """Test: A desynchronised history raises instead of corrupting text."""
    doc.buffer.insert(Position(0, 11), "!")
    doc.history._replaying = True
    doc.buffer.delete(Range(Position(0, 0), Position(0, 12)))
    doc.history._replaying = False

    with pytest.raises(RangeError):
        doc.history.undo()
    assert doc.buffer.text() == ""
    assert doc.history.can_undo


def test_failed_compound_undo_reverts_partial_replay(doc: Document) -> None:
    """Test: A group that fails halfway is rolled back, not half-applied."""
    doc.history.begin_compound_action()
    doc.buffer.insert(Position(0, 0), "A")
    doc.buffer.insert(Position(0, 12), "Z")
    doc.history.end_compound_action()
    assert doc.buffer.text() == "Ahello worldZ"

    # Change the group's first character behind the history's back.
    doc.history._replaying = True
    doc.buffer.replace(Range(Position(0, 0), Position(0, 1)), "B")
    doc.history._replaying = False

    for _ in range(2):
        with pytest.raises(RangeError):
            doc.history.undo()
        assert doc.buffer.text() == "Bhello worldZ"
        assert len(doc.history._action_history) == 1
        assert not doc.history.can_redo


def test_aborted_compound_action_leaves_no_undo_step(doc: Document) -> None:
    doc.buffer.insert(Position(0, 0), "x")
    doc.history.begin_compound_action()
    edit = doc.buffer.insert(Position(0, 1), "y")
    doc.buffer.apply(edit.inverted())
    doc.history.abort_compound_action()

    assert doc.buffer.text() == "xhello world"
    assert len(doc.history._action_history) == 1
    doc.history.undo()
    assert doc.buffer.text() == "hello world"
