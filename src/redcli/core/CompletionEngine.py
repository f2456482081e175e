# redcli/core/CompletionEngine.py
"""CompletionEngine Module
=========================
Ranked identifier/keyword/snippet suggestions with debounced, cancellable
background dispatch.

Every call to :meth:`CompletionEngine.request` issues a new, strictly
increasing token and cancels every earlier one. The actual candidate
computation runs on the :class:`~redcli.core.AsyncEngine.AsyncEngine` loop
after a debounce delay, against an immutable snapshot of the buffer. When a
result arrives back on the UI thread, :meth:`CompletionEngine.accept`
surfaces it only if its token is still the latest and the document has not
changed since the snapshot was taken.

Key Features:
-------------
- Candidate sources: an incremental in-buffer symbol index and a static
  per-language keyword/snippet table.
- Ranking: exact-prefix matches first (shorter, then lexicographic), then
  subsequence matches by match density (ties lexicographic).
- Request states: Issued -> Completed | Cancelled. No retries.

Classes:
--------
- CompletionContext, Suggestion, CompletionResult
- SymbolIndex: Identifier counts per line, updated from buffer edits.
- CompletionEngine: Token bookkeeping and ranking.
"""

import asyncio
import itertools
import logging
import re
import threading
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from redcli.core.TextBuffer import Edit, Position, TextBuffer


IDENTIFIER_RE = re.compile(r"[^\W\d]\w*")
PREFIX_RE = re.compile(r"[^\W\d]\w*$")

SOURCE_PRIORITY = {"keyword": 0, "snippet": 1, "buffer": 2}

# Request states remembered behind the latest token.
KEPT_STATES = 64

LANGUAGE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "python": (
        "False", "None", "True", "and", "as", "assert", "async", "await",
        "break", "class", "continue", "def", "del", "elif", "else", "except",
        "finally", "for", "from", "global", "if", "import", "in", "is",
        "lambda", "nonlocal", "not", "or", "pass", "raise", "return", "try",
        "while", "with", "yield", "print", "len", "range", "enumerate",
        "isinstance", "sorted", "reversed",
    ),
    "rust": (
        "as", "async", "await", "break", "const", "continue", "crate", "dyn",
        "else", "enum", "extern", "fn", "for", "if", "impl", "in", "let",
        "loop", "match", "mod", "move", "mut", "pub", "ref", "return", "self",
        "Self", "static", "struct", "super", "trait", "type", "unsafe", "use",
        "where", "while", "Option", "Result", "Some", "None", "Ok", "Err",
        "String", "Vec", "HashMap", "Box",
    ),
    "javascript": (
        "async", "await", "break", "case", "catch", "class", "const",
        "continue", "default", "delete", "do", "else", "export", "extends",
        "finally", "for", "function", "if", "import", "in", "instanceof",
        "let", "new", "null", "return", "switch", "this", "throw", "try",
        "typeof", "undefined", "var", "while", "yield",
    ),
    "typescript": (
        "abstract", "any", "async", "await", "boolean", "class", "const",
        "enum", "export", "extends", "function", "implements", "import",
        "interface", "let", "namespace", "number", "private", "protected",
        "public", "readonly", "return", "string", "type", "unknown", "void",
    ),
    "go": (
        "break", "case", "chan", "const", "continue", "default", "defer",
        "else", "fallthrough", "for", "func", "go", "goto", "if", "import",
        "interface", "map", "package", "range", "return", "select", "struct",
        "switch", "type", "var",
    ),
    "csharp": (
        "abstract", "async", "await", "bool", "break", "case", "catch", "class",
        "const", "continue", "foreach", "if", "interface", "internal",
        "namespace", "new", "override", "private", "protected", "public",
        "readonly", "return", "static", "string", "switch", "this", "throw",
        "try", "using", "var", "virtual", "void", "while",
    ),
    "c": (
        "break", "case", "char", "const", "continue", "default", "do",
        "double", "else", "enum", "extern", "float", "for", "goto", "if",
        "include", "int", "long", "return", "short", "signed", "sizeof",
        "static", "struct", "switch", "typedef", "union", "unsigned", "void",
        "volatile", "while",
    ),
    "ruby": (
        "begin", "class", "def", "do", "else", "elsif", "end", "ensure",
        "false", "module", "nil", "puts", "require", "rescue", "return",
        "self", "true", "unless", "until", "when", "while", "yield",
    ),
    "shell": (
        "case", "do", "done", "echo", "elif", "else", "esac", "export", "fi",
        "for", "function", "if", "in", "local", "read", "return", "then",
        "until", "while",
    ),
}
LANGUAGE_KEYWORDS["cpp"] = LANGUAGE_KEYWORDS["c"] + (
    "auto", "class", "delete", "namespace", "new", "nullptr", "private",
    "protected", "public", "template", "this", "throw", "try", "catch",
    "using", "virtual",
)

# label -> insertion text; continuation lines are re-indented on insert.
LANGUAGE_SNIPPETS: dict[str, dict[str, str]] = {
    "python": {
        "def ():": "def ():\n    ",
        "class ():": "class ():\n    ",
        "ifmain": "if __name__ == '__main__':\n    ",
        "try/except": "try:\n    \nexcept Exception as e:\n    ",
        "with_open": "with open() as f:\n    ",
        "init": "def __init__(self):\n    ",
        "property": "@property\ndef (self):\n    ",
        "print()": "print()",
    },
    "rust": {
        "fn main": "fn main() {\n    \n}",
        "println!": "println!()",
        "eprintln!": "eprintln!()",
        "format!": "format!()",
        "vec!": "vec![]",
        "match {}": "match  {\n    _ => \n}",
        "impl {}": "impl  {\n    \n}",
        "derive": "#[derive(Debug)]",
        "test": "#[test]\nfn test_() {\n    \n}",
    },
    "javascript": {
        "function": "function () {\n    \n}",
        "arrow": "() => {\n    \n}",
        "console.log": "console.log()",
        "try/catch": "try {\n    \n} catch (error) {\n    \n}",
    },
    "go": {
        "func main": "func main() {\n\t\n}",
        "iferr": "if err != nil {\n\treturn err\n}",
        "fmt.Println": "fmt.Println()",
    },
    "csharp": {
        "Console.WriteLine": "Console.WriteLine();",
        "foreach ()": "foreach (var item in )\n{\n    \n}",
    },
}


class RequestState(Enum):
    ISSUED = "issued"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class CompletionContext:
    """Everything a background ranking pass needs, frozen at request time."""

    snapshot: tuple[str, ...]
    cursor: Position
    prefix: str
    version: int = 0
    language: str = "text"
    symbols: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class Suggestion:
    label: str
    insertion_text: str
    score: float
    source: str


@dataclass
class CompletionResult:
    token: int
    context: CompletionContext
    suggestions: list[Suggestion]


def prefix_before(line: str, col: int) -> str:
    """Returns the identifier immediately left of ``col`` ("" if none)."""
    m = PREFIX_RE.search(line[:col])
    return m.group() if m else ""


def match_density(prefix: str, label: str) -> float:
    """Best ``len(prefix) / span`` over all subsequence placements, or 0.0.

    Case-insensitive. The span is the length of the shortest window of
    ``label`` containing the prefix characters in order.
    """
    needle = prefix.lower()
    hay = label.lower()
    if not needle:
        return 0.0
    best = 0
    for start, char in enumerate(hay):
        if char != needle[0]:
            continue
        pos = start
        matched = 0
        while pos < len(hay) and matched < len(needle):
            if hay[pos] == needle[matched]:
                matched += 1
            pos += 1
        if matched < len(needle):
            break
        span = pos - start
        if not best or span < best:
            best = span
    return len(needle) / best if best else 0.0


def rank(
    prefix: str,
    candidates: Iterable[tuple[str, str, str]],
    limit: Optional[int] = None,
) -> list[Suggestion]:
    """Ranks ``(label, insertion_text, source)`` candidates against ``prefix``.

    Duplicate labels keep the highest-priority source (keyword, then
    snippet, then buffer). A candidate identical to the prefix is dropped.
    """
    unique: dict[str, tuple[str, str]] = {}
    for label, insertion, source in candidates:
        kept = unique.get(label)
        if kept is None or SOURCE_PRIORITY[source] < SOURCE_PRIORITY[kept[1]]:
            unique[label] = (insertion, source)

    exact: list[Suggestion] = []
    fuzzy: list[Suggestion] = []
    for label, (insertion, source) in unique.items():
        if not prefix or label == prefix:
            continue
        if label.startswith(prefix):
            score = 1.0 + 1.0 / (1 + len(label))
            exact.append(Suggestion(label, insertion, score, source))
            continue
        density = match_density(prefix, label)
        if density:
            fuzzy.append(Suggestion(label, insertion, density, source))

    exact.sort(key=lambda s: (len(s.label), s.label))
    fuzzy.sort(key=lambda s: (-s.score, s.label))
    ranked = exact + fuzzy
    return ranked[:limit] if limit else ranked


# ==================== SymbolIndex Class ====================
class SymbolIndex:
    """Identifier occurrence counts for one buffer, kept per line."""

    def __init__(self, buffer: TextBuffer) -> None:
        self.buffer = buffer
        self._per_line: list[list[str]] = []
        self._counts: Counter[str] = Counter()
        self.rebuild()

    def rebuild(self) -> None:
        self._per_line = [IDENTIFIER_RE.findall(line) for line in self.buffer]
        self._counts = Counter(itertools.chain.from_iterable(self._per_line))

    def on_edit(self, edit: Edit) -> None:
        first = edit.first_line
        removed = self._per_line[first : edit.old_last_line + 1]
        for words in removed:
            self._counts.subtract(words)
        added = [
            IDENTIFIER_RE.findall(line)
            for line in self.buffer.lines(first, edit.new_last_line + 1)
        ]
        for words in added:
            self._counts.update(words)
        self._per_line[first : edit.old_last_line + 1] = added
        self._counts = +self._counts

    def count(self, word: str) -> int:
        return self._counts.get(word, 0)

    def symbols(self) -> frozenset[str]:
        return frozenset(self._counts)


# ==================== CompletionEngine Class ====================
class CompletionEngine:
    """Class CompletionEngine
    ========================
    Issues completion requests and filters their results for staleness.

    Attributes:
        latest_token (int): Token of the most recent request (0 = none yet).
        debounce_ms (int): Delay before a request is computed.
        max_items (int): Upper bound on surfaced suggestions.
        states (dict[int, RequestState]): Per-token request state.

    Methods:
        request(context) -> int
        run_request(token) -> Optional[CompletionResult]   (coroutine)
        accept(result, current_version) -> Optional[list[Suggestion]]
        complete(context) -> list[Suggestion]
        cancel_pending()
    """

    def __init__(
        self,
        config: dict[str, Any],
        submit: Optional[Callable[[dict[str, Any]], None]] = None,
    ) -> None:
        settings = config.get("completion", {})
        self.enabled: bool = bool(settings.get("enabled", True))
        self.debounce_ms: int = int(settings.get("debounce_ms", 120))
        self.max_items: int = int(settings.get("max_items", 12))
        self.min_prefix: int = int(settings.get("min_prefix", 1))
        self.submit = submit
        self.latest_token = 0
        self.states: dict[int, RequestState] = {}
        self._contexts: dict[int, CompletionContext] = {}
        self._oldest_token = 1
        self._lock = threading.Lock()

    def complete(self, context: CompletionContext) -> list[Suggestion]:
        """Synchronous ranking pass over a context; pure with respect to it."""
        language = context.language
        candidates: list[tuple[str, str, str]] = [
            (word, word, "keyword") for word in LANGUAGE_KEYWORDS.get(language, ())
        ]
        candidates.extend(
            (label, text, "snippet")
            for label, text in LANGUAGE_SNIPPETS.get(language, {}).items()
        )
        candidates.extend((word, word, "buffer") for word in context.symbols)
        return rank(context.prefix, candidates, self.max_items)

    def request(self, context: CompletionContext) -> int:
        """Issues a new request and cancels all earlier ones."""
        with self._lock:
            # Only the latest request can still be issued.
            previous = self.latest_token
            if self.states.get(previous) is RequestState.ISSUED:
                self.states[previous] = RequestState.CANCELLED
                self._contexts.pop(previous, None)
            self.latest_token += 1
            token = self.latest_token
            self.states[token] = RequestState.ISSUED
            self._contexts[token] = context
            self._prune_states()
        logging.debug(f"CompletionEngine: issued request {token} for '{context.prefix}'")
        if self.submit is not None:
            self.submit({"type": "completion", "engine": self, "token": token})
        return token

    def _prune_states(self) -> None:
        """Drops states older than the last ``KEPT_STATES`` tokens. Caller holds the lock."""
        horizon = self.latest_token - KEPT_STATES
        while self._oldest_token < horizon:
            self.states.pop(self._oldest_token, None)
            self._contexts.pop(self._oldest_token, None)
            self._oldest_token += 1

    def cancel_pending(self) -> None:
        with self._lock:
            for token, state in self.states.items():
                if state is RequestState.ISSUED:
                    self.states[token] = RequestState.CANCELLED
            self._contexts.clear()

    def is_current(self, token: int) -> bool:
        with self._lock:
            return (
                token == self.latest_token
                and self.states.get(token) is RequestState.ISSUED
            )

    async def run_request(self, token: int) -> Optional[CompletionResult]:
        """Background half of a request: debounce, then rank the snapshot.

        Returns None when the request was superseded while waiting.
        """
        await asyncio.sleep(self.debounce_ms / 1000)
        with self._lock:
            context = self._contexts.get(token)
        if context is None or not self.is_current(token):
            logging.debug(f"CompletionEngine: request {token} superseded before running")
            return None
        return CompletionResult(token, context, self.complete(context))

    def accept(
        self, result: CompletionResult, current_version: Optional[int] = None
    ) -> Optional[list[Suggestion]]:
        """UI-thread half: returns suggestions only for a fresh result."""
        with self._lock:
            state = self.states.get(result.token)
            stale = result.token != self.latest_token or state is not RequestState.ISSUED
            if not stale and current_version is not None:
                stale = result.context.version != current_version
            if result.token >= self._oldest_token:
                self.states[result.token] = (
                    RequestState.CANCELLED if stale else RequestState.COMPLETED
                )
            self._contexts.pop(result.token, None)
            self._prune_states()
        if stale:
            logging.debug(f"CompletionEngine: discarded stale result {result.token}")
            return None
        return result.suggestions
