# tests/test_core/test_text_buffer.py
"""Unit tests for `TextBuffer`.
===============================

Covers line access, the three mutation forms and the Edit records they
return, strict range checking, chunk bookkeeping on large buffers and the
synchronous listener notifications.
"""

import importlib
import random

import pytest

from redcli.core.EditorErrors import RangeError
from redcli.core.TextBuffer import Edit, Position, Range, TextBuffer


# The package re-exports the class under the module name.
text_buffer_module = importlib.import_module("redcli.core.TextBuffer")


def test_empty_buffer_has_one_empty_line() -> None:
    buf = TextBuffer()
    assert buf.line_count() == 1
    assert buf.line(0) == ""
    assert buf.end_position() == Position(0, 0)


def test_crlf_is_normalized_on_load() -> None:
    buf = TextBuffer("a\r\nb\rc")
    assert list(buf) == ["a", "b", "c"]


def test_insert_single_line() -> None:
    buf = TextBuffer("hello world")
    edit = buf.insert(Position(0, 5), ",")
    assert buf.text() == "hello, world"
    assert edit == Edit(Position(0, 5), "", ",")
    assert edit.kind == "insert"
    assert edit.new_end == Position(0, 6)
    assert buf.version == 1


def test_insert_newlines_splits_lines() -> None:
    buf = TextBuffer("abcdef")
    edit = buf.insert(Position(0, 3), "X\nY\nZ")
    assert list(buf) == ["abcX", "Y", "Zdef"]
    assert edit.line_delta == 2
    assert edit.new_end == Position(2, 1)


def test_delete_across_lines_records_old_text() -> None:
    buf = TextBuffer("one\ntwo\nthree")
    edit = buf.delete(Range(Position(0, 2), Position(2, 1)))
    assert buf.text() == "onhree"
    assert edit.old_text == "e\ntwo\nt"
    assert edit.kind == "delete"
    assert edit.line_delta == -2


def test_delete_accepts_reversed_range() -> None:
    buf = TextBuffer("abcdef")
    buf.delete(Range(Position(0, 4), Position(0, 1)))
    assert buf.text() == "aef"


def test_replace_and_invert_restore_original() -> None:
    buf = TextBuffer("let x = 1;\nlet y = 2;")
    edit = buf.replace(Range(Position(0, 4), Position(1, 5)), "z")
    assert buf.text() == "let z = 2;"
    buf.apply(TextBuffer.invert(edit))
    assert buf.text() == "let x = 1;\nlet y = 2;"


def test_apply_rejects_stale_edit() -> None:
    buf = TextBuffer("abc")
    stale = Edit(Position(0, 0), "xyz", "")
    with pytest.raises(RangeError):
        buf.apply(stale)
    assert buf.text() == "abc"


@pytest.mark.parametrize(
    "pos",
    [Position(-1, 0), Position(3, 0), Position(0, 4), Position(1, -1)],
)
def test_out_of_range_positions_raise(pos: Position) -> None:
    buf = TextBuffer("abc\nde\nf")
    with pytest.raises(RangeError):
        buf.insert(pos, "x")
    assert buf.version == 0


def test_line_out_of_range_raises() -> None:
    buf = TextBuffer("a\nb")
    with pytest.raises(RangeError):
        buf.line(2)


def test_char_at_reports_inner_newline() -> None:
    buf = TextBuffer("ab\ncd")
    assert buf.char_at(Position(0, 1)) == "b"
    assert buf.char_at(Position(0, 2)) == "\n"
    with pytest.raises(RangeError):
        buf.char_at(Position(1, 2))


def test_text_range_multi_line() -> None:
    buf = TextBuffer("first\nsecond\nthird")
    assert buf.text_range(Range(Position(0, 3), Position(2, 2))) == "st\nsecond\nth"


def test_lines_slice_is_clipped() -> None:
    buf = TextBuffer("a\nb\nc")
    assert buf.lines(1, 10) == ["b", "c"]
    assert buf.lines(5, 7) == []


def test_large_buffer_spans_chunks(monkeypatch: pytest.MonkeyPatch) -> None:
    """Edits that cross chunk boundaries keep line lookup consistent."""
    monkeypatch.setattr(text_buffer_module, "CHUNK_SIZE", 8)
    monkeypatch.setattr(text_buffer_module, "MIN_CHUNK_SIZE", 2)
    lines = [f"line {i}" for i in range(50)]
    buf = TextBuffer("\n".join(lines))
    assert len(buf._chunks) > 1

    buf.insert(Position(7, 6), "\n".join(f"new {i}" for i in range(20)))
    assert buf.line_count() == 69
    assert buf.line(7) == "line 7new 0"
    assert buf.line(8) == "new 1"
    assert buf.line(26) == "new 19"
    assert buf.line(27) == "line 8"

    buf.delete(Range(Position(3, 0), Position(40, 0)))
    assert buf.line_count() == 32
    assert buf.line(2) == "line 2"
    assert buf.line(3) == "line 21"
    assert buf.line(31) == "line 49"
    assert list(buf) == [buf.line(i) for i in range(buf.line_count())]
    assert buf._starts[0] == 0
    for index in range(1, len(buf._starts)):
        assert buf._starts[index] == buf._starts[index - 1] + len(buf._chunks[index - 1])


INSERTED_TEXTS = ["x", "\n", "ab\ncd", "\n\n\n", "row\n" * 12, ""]


def random_edit(buf: TextBuffer, rng: random.Random) -> Edit:
    """One insert, delete or replace at valid random coordinates."""
    line_a = rng.randrange(buf.line_count())
    start = Position(line_a, rng.randint(0, len(buf.line(line_a))))
    text = rng.choice(INSERTED_TEXTS)
    kind = rng.choice(["insert", "delete", "replace"])
    if kind == "insert":
        return buf.insert(start, text)
    line_b = min(buf.line_count() - 1, line_a + rng.randint(0, 20))
    end = Position(line_b, rng.randint(0, len(buf.line(line_b))))
    if kind == "delete":
        return buf.delete(Range(start, end))
    return buf.replace(Range(start, end), text)


@pytest.mark.parametrize("seed", range(10))
def test_inverted_edit_sequence_restores_buffer(monkeypatch: pytest.MonkeyPatch, seed: int) -> None:
    """Undoing a mixed edit sequence in reverse restores text and line structure."""
    monkeypatch.setattr(text_buffer_module, "CHUNK_SIZE", 8)
    monkeypatch.setattr(text_buffer_module, "MIN_CHUNK_SIZE", 2)
    original = [f"line {i}" for i in range(40)]
    buf = TextBuffer("\n".join(original))
    rng = random.Random(seed)

    edits = [random_edit(buf, rng) for _ in range(60)]
    for edit in reversed(edits):
        buf.apply(buf.invert(edit))

    assert list(buf) == original
    assert buf.line_count() == len(original)
    assert [buf.line(i) for i in range(buf.line_count())] == original
    assert buf._starts[0] == 0
    for index in range(1, len(buf._starts)):
        assert buf._starts[index] == buf._starts[index - 1] + len(buf._chunks[index - 1])


def test_listeners_receive_each_edit_and_can_unsubscribe() -> None:
    buf = TextBuffer("x")
    seen: list[Edit] = []
    unsubscribe = buf.subscribe(seen.append)
    buf.insert(Position(0, 1), "y")
    unsubscribe()
    buf.insert(Position(0, 2), "z")
    assert [edit.new_text for edit in seen] == ["y"]


def test_empty_edit_is_a_noop() -> None:
    buf = TextBuffer("abc")
    buf.insert(Position(0, 1), "")
    assert buf.version == 0


def test_snapshot_is_immutable_copy() -> None:
    buf = TextBuffer("a\nb")
    snap = buf.snapshot()
    buf.insert(Position(0, 0), "z")
    assert snap == ("a", "b")
