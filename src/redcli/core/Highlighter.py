# redcli/core/Highlighter.py
"""Highlighter Module
====================
Incremental, line-by-line syntax highlighting on top of Pygments.

Pygments lexers normally tokenize a whole document. This module drives a
``RegexLexer``'s compiled state tables one line at a time, carrying the
lexer state stack from the end of one line into the start of the next.
That turns tokenization into a pure function::

    (line text, incoming state) -> (spans, outgoing state)

which is memoized, and lets the per-document :class:`Highlighter` re-tokenize
only the lines an edit touched plus the lines whose incoming state actually
changed (an opened triple-quoted string, an unterminated block comment...).

Key Features:
-------------
- Language chosen once from the declared language tag; unknown languages
  fall back to Pygments' ``TextLexer`` and produce a single "text" span.
- Spans per line are ordered, non-overlapping and cover ``[0, len(line))``.
- Fixed-point propagation after edits: re-tokenizing stops as soon as a
  line's incoming state equals the one it was cached with.
- Lines never requested are never tokenized.

Classes:
--------
- HighlightSpan: (line, start, end, kind) result tuple.
- LineTokenizer: The pure, memoized per-line tokenizer.
- Highlighter: Per-document span cache fed by buffer edit notifications.
"""

import functools
import logging
from dataclasses import dataclass
from typing import Iterable, NamedTuple, Optional

from pygments.lexer import ExtendedRegexLexer, Lexer, RegexLexer
from pygments.lexers import get_lexer_by_name
from pygments.lexers.special import TextLexer
from pygments.token import Token, _TokenType
from pygments.util import ClassNotFound

from redcli.core.EditorErrors import RangeError
from redcli.core.TextBuffer import Edit, TextBuffer


LexState = tuple[str, ...]
RawSpan = tuple[int, int, str]

ROOT_STATE: LexState = ("root",)

# Language tags whose Pygments alias differs from the tag itself.
LEXER_ALIASES: dict[str, str] = {
    "shell": "bash",
    "csharp": "csharp",
    "cpp": "cpp",
    "c": "c",
    "javascript": "javascript",
    "typescript": "typescript",
    "dockerfile": "docker",
    "makefile": "make",
    "markdown": "markdown",
    "json": "json",
    "yaml": "yaml",
    "toml": "toml",
}

# Checked from most to least specific; a token type maps to the first entry
# that is the type itself or one of its parents.
TOKEN_KINDS: tuple[tuple[_TokenType, str], ...] = (
    (Token.Comment, "comment"),
    (Token.Literal.String.Doc, "docstring"),
    (Token.Literal.String, "string"),
    (Token.Literal.Number, "number"),
    (Token.Keyword.Constant, "constant"),
    (Token.Keyword.Type, "type"),
    (Token.Keyword, "keyword"),
    (Token.Operator.Word, "keyword"),
    (Token.Operator, "operator"),
    (Token.Punctuation, "punctuation"),
    (Token.Name.Decorator, "decorator"),
    (Token.Name.Function, "function"),
    (Token.Name.Class, "class"),
    (Token.Name.Exception, "class"),
    (Token.Name.Builtin, "builtin"),
    (Token.Name.Tag, "tag"),
    (Token.Name.Attribute, "attribute"),
    (Token.Generic.Heading, "keyword"),
    (Token.Error, "error"),
)


@functools.lru_cache(maxsize=512)
def token_kind(ttype: _TokenType) -> str:
    """Maps a Pygments token type onto the editor's small set of kinds."""
    for parent, kind in TOKEN_KINDS:
        if ttype in parent:
            return kind
    return "text"


def lexer_for_language(language: Optional[str]) -> Lexer:
    """Returns a Pygments lexer for a language tag, or ``TextLexer``."""
    if not language or language == "text":
        return TextLexer()
    alias = LEXER_ALIASES.get(language, language)
    try:
        return get_lexer_by_name(alias)
    except ClassNotFound:
        logging.debug(f"No Pygments lexer for language '{language}', using text")
        return TextLexer()


class HighlightSpan(NamedTuple):
    line: int
    start: int
    end: int
    kind: str


def _push_span(spans: list[RawSpan], start: int, end: int, kind: str) -> None:
    if spans and spans[-1][2] == kind and spans[-1][1] == start:
        spans[-1] = (spans[-1][0], end, kind)
    else:
        spans.append((start, end, kind))


def normalize_spans(
    raw: Iterable[tuple[int, _TokenType, str]], length: int
) -> tuple[RawSpan, ...]:
    """Clips raw tokens to the line, fills gaps with "text" and merges runs."""
    spans: list[RawSpan] = []
    cursor = 0
    for index, ttype, value in raw:
        start = max(index, cursor)
        end = min(index + len(value), length)
        if end <= start:
            continue
        if start > cursor:
            _push_span(spans, cursor, start, "text")
        _push_span(spans, start, end, token_kind(ttype))
        cursor = end
    if cursor < length:
        _push_span(spans, cursor, length, "text")
    return tuple(spans)


# ==================== LineTokenizer Class ====================
class LineTokenizer:
    """Class LineTokenizer
    =====================
    Pure per-line tokenizer around one Pygments lexer instance.

    For ``RegexLexer`` subclasses the lexer's compiled ``_tokens`` table is
    walked directly so the state stack survives the line boundary. Other
    lexers (``TextLexer``, ``ExtendedRegexLexer`` subclasses, hand-written
    lexers) tokenize each line in isolation with a constant state.
    """

    def __init__(self, lexer: Lexer, cache_size: int = 4096) -> None:
        self.lexer = lexer
        self.stateful = isinstance(lexer, RegexLexer) and not isinstance(
            lexer, ExtendedRegexLexer
        )
        self.tokenize = functools.lru_cache(maxsize=cache_size)(self._tokenize)

    def _tokenize(
        self, line: str, state: LexState
    ) -> tuple[tuple[RawSpan, ...], LexState]:
        if self.stateful:
            raw, out_state = self._lex_with_state(line, state)
        else:
            raw, out_state = list(self.lexer.get_tokens_unprocessed(line)), state
        return normalize_spans(raw, len(line)), out_state

    def _lex_with_state(
        self, line: str, state: LexState
    ) -> tuple[list[tuple[int, _TokenType, str]], LexState]:
        lexer = self.lexer
        tokendefs = lexer._tokens
        stack = list(state)
        if not stack or any(name not in tokendefs for name in stack):
            stack = list(ROOT_STATE)
        statetokens = tokendefs[stack[-1]]
        text = line + "\n"
        tokens: list[tuple[int, _TokenType, str]] = []
        pos = 0
        # Stops once the newline is consumed; the next line resumes from here.
        while pos < len(text):
            for rexmatch, action, new_state in statetokens:
                m = rexmatch(text, pos)
                if not m:
                    continue
                if action is not None:
                    if type(action) is _TokenType:
                        tokens.append((pos, action, m.group()))
                    else:
                        tokens.extend(action(lexer, m))
                pos = m.end()
                if new_state is not None:
                    self._transition(stack, new_state)
                    statetokens = tokendefs[stack[-1]]
                break
            else:
                if text[pos] == "\n":
                    stack = list(ROOT_STATE)
                    statetokens = tokendefs["root"]
                else:
                    tokens.append((pos, Token.Error, text[pos]))
                pos += 1
        return tokens, tuple(stack)

    @staticmethod
    def _transition(stack: list[str], new_state: object) -> None:
        if isinstance(new_state, tuple):
            for name in new_state:
                if name == "#pop":
                    if len(stack) > 1:
                        stack.pop()
                elif name == "#push":
                    stack.append(stack[-1])
                else:
                    stack.append(name)
        elif isinstance(new_state, int):
            if abs(new_state) >= len(stack):
                del stack[1:]
            else:
                del stack[new_state:]
        elif new_state == "#push":
            stack.append(stack[-1])


@dataclass
class _LineEntry:
    text: str
    in_state: LexState
    out_state: LexState
    spans: tuple[RawSpan, ...]


# ==================== Highlighter Class ====================
class Highlighter:
    """Class Highlighter
    ===================
    Per-document highlight cache.

    Entries ``[0, _valid_upto)`` form a consistent chain: each entry's
    incoming state is its predecessor's outgoing state. Entries past that
    point may be stale and are re-validated lazily on request.

    Attributes:
        language (str): Language tag the lexer was chosen for.
        tokenized_lines (int): Number of line tokenizations performed;
            used to observe how much work an edit caused.
    """

    def __init__(self, buffer: TextBuffer, language: Optional[str] = None) -> None:
        self.buffer = buffer
        self.language = language or "text"
        self.tokenizer = LineTokenizer(lexer_for_language(language))
        self._entries: list[Optional[_LineEntry]] = [None] * buffer.line_count()
        self._valid_upto = 0
        self.tokenized_lines = 0

    def set_language(self, language: Optional[str]) -> None:
        self.language = language or "text"
        self.tokenizer = LineTokenizer(lexer_for_language(language))
        self.invalidate()

    def invalidate(self) -> None:
        """Drops every cached line, e.g. after a full reload."""
        self._entries = [None] * self.buffer.line_count()
        self._valid_upto = 0

    def spans(self, line: int) -> list[HighlightSpan]:
        if not 0 <= line < self.buffer.line_count():
            raise RangeError(f"Cannot highlight line {line}: out of range")
        self._ensure(line)
        entry = self._entries[line]
        assert entry is not None
        return [HighlightSpan(line, start, end, kind) for start, end, kind in entry.spans]

    def kind_at(self, line: int, col: int) -> str:
        for span in self.spans(line):
            if span.start <= col < span.end:
                return span.kind
        return "text"

    def _state_before(self, line: int) -> LexState:
        if line == 0:
            return ROOT_STATE
        previous = self._entries[line - 1]
        assert previous is not None
        return previous.out_state

    def _tokenize_into(self, index: int, text: str, state: LexState) -> _LineEntry:
        spans, out_state = self.tokenizer.tokenize(text, state)
        entry = _LineEntry(text, state, out_state, spans)
        self._entries[index] = entry
        self.tokenized_lines += 1
        return entry

    def _ensure(self, upto: int) -> None:
        if upto < self._valid_upto:
            return
        index = self._valid_upto
        state = self._state_before(index)
        while index <= upto:
            text = self.buffer.line(index)
            entry = self._entries[index]
            if entry is None or entry.text != text or entry.in_state != state:
                entry = self._tokenize_into(index, text, state)
            state = entry.out_state
            index += 1
        self._valid_upto = upto + 1

    def on_edit(self, edit: Edit) -> None:
        """Buffer listener: splices the cache and re-tokenizes the damage."""
        first = edit.first_line
        old_last = edit.old_last_line
        new_last = edit.new_last_line
        previously_valid = self._valid_upto
        self._entries[first : old_last + 1] = [None] * (new_last - first + 1)

        if previously_valid <= old_last:
            # Nothing cached past the damage; recompute lazily when drawn.
            self._valid_upto = min(previously_valid, first)
            return

        known_end = previously_valid + edit.line_delta
        self._valid_upto = first
        state = self._state_before(first)
        index = first
        while index < known_end:
            text = self.buffer.line(index)
            cached = self._entries[index]
            if index > new_last and cached is not None and cached.in_state == state:
                logging.debug(
                    f"Highlighter: fixed point at line {index} after edit on {first}"
                )
                self._valid_upto = known_end
                return
            state = self._tokenize_into(index, text, state).out_state
            index += 1
        self._valid_upto = index
