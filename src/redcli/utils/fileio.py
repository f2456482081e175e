# redcli/utils/fileio.py
"""
redcli.utils.fileio
===================

Reading and writing source files without losing their on-disk shape.

A file is loaded fully into memory. Its encoding is detected with
``chardet`` and tried in a fixed fallback order, its lines are split on any
of ``\\r\\n``, ``\\r`` or ``\\n``, and the first terminator seen is recorded
together with whether the file ended with one. Saving writes the lines back
joined with that terminator and restores (or omits) the trailing newline
exactly as it was found.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Optional

import chardet

from redcli.core.EditorErrors import FileTooLargeError


logger = logging.getLogger("redcli")

NEWLINE_RE = re.compile(r"\r\n|\r|\n")
CHARDET_SAMPLE_SIZE = 20 * 1024
CONFIDENT = 0.75
NEWLINE_NAMES = {"\n": "LF", "\r\n": "CRLF", "\r": "CR"}


@dataclass
class LoadedText:
    lines: list[str]
    encoding: str
    newline: str
    trailing_newline: bool
    mtime: Optional[float]


def split_lines(text: str) -> tuple[list[str], str, bool]:
    """Splits text into lines; returns (lines, newline style, trailing flag)."""
    first = NEWLINE_RE.search(text)
    newline = first.group() if first else "\n"
    lines = NEWLINE_RE.split(text)
    trailing = len(lines) > 1 and lines[-1] == ""
    if trailing:
        lines.pop()
    return lines, newline, trailing


def join_lines(lines: list[str], newline: str, trailing_newline: bool) -> str:
    text = newline.join(lines)
    if trailing_newline:
        text += newline
    return text


def decode_bytes(raw: bytes) -> tuple[str, str]:
    """Decodes file bytes; returns (text, encoding actually used).

    Order: chardet's guess (strict if confident, else with replacement),
    utf-8 strict, latin-1 strict, then utf-8 with replacement.
    """
    if not raw:
        return "", "utf-8"
    guess = chardet.detect(raw[:CHARDET_SAMPLE_SIZE])
    encoding_guess = guess.get("encoding")
    confidence = guess.get("confidence") or 0.0
    logger.debug(f"chardet guessed '{encoding_guess}' with confidence {confidence:.2f}")

    attempts: list[tuple[str, str]] = []
    if encoding_guess:
        attempts.append((encoding_guess, "strict" if confidence >= CONFIDENT else "replace"))
    for fallback in (("utf-8", "strict"), ("latin-1", "strict"), ("utf-8", "replace")):
        if fallback not in attempts:
            attempts.append(fallback)

    for encoding, errors in attempts:
        try:
            text = raw.decode(encoding, errors=errors)
            # Saving as ascii would mangle any non-ascii text typed later.
            return text, "utf-8" if encoding.lower() == "ascii" else encoding
        except (UnicodeDecodeError, LookupError) as e:
            logger.debug(f"Decoding with {encoding}/{errors} failed: {e}")
    return raw.decode("utf-8", errors="replace"), "utf-8"


def read_text_file(path: str, max_bytes: Optional[int] = None) -> LoadedText:
    """Loads a file for editing.

    Raises:
        IsADirectoryError: ``path`` is a directory.
        FileTooLargeError: The file exceeds ``max_bytes``.
        OSError: Any other I/O failure.
    """
    if os.path.isdir(path):
        raise IsADirectoryError(f"Cannot edit a directory: {path}")
    size = os.path.getsize(path)
    if max_bytes is not None and size > max_bytes:
        raise FileTooLargeError(
            f"File '{path}' is {size / 1024 / 1024:.1f} MB, limit is {max_bytes / 1024 / 1024:.0f} MB"
        )
    with open(path, "rb") as f:
        raw = f.read()
    text, encoding = decode_bytes(raw)
    lines, newline, trailing = split_lines(text)
    logger.info(
        f"Loaded '{path}': {len(lines)} lines, {encoding}, "
        f"{NEWLINE_NAMES.get(newline, '?')}, trailing newline: {trailing}"
    )
    return LoadedText(lines, encoding, newline, trailing, os.path.getmtime(path))


def write_text_file(
    path: str, lines: list[str], encoding: str, newline: str, trailing_newline: bool
) -> float:
    """Writes lines back verbatim; returns the new modification time."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    data = join_lines(lines, newline, trailing_newline).encode(encoding, errors="replace")
    with open(path, "wb") as f:
        f.write(data)
    logger.info(f"Saved '{path}' ({len(data)} bytes, {encoding})")
    return os.path.getmtime(path)
