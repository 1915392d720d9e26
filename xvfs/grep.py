"""Simple grep supporting only the ^ . * $ operators."""

from __future__ import annotations

import sys
from typing import BinaryIO, Iterator

_BUFSIZE = 1024


def _text(value) -> str:
    return value.decode("latin-1") if isinstance(value, (bytes, bytearray)) else value


def match(pattern, text) -> bool:
    """Return True if the pattern matches anywhere in text."""
    pattern, text = _text(pattern), _text(text)
    if pattern.startswith("^"):
        return _match_here(pattern, 1, text, 0)
    return any(_match_here(pattern, 0, text, j) for j in range(len(text) + 1))


def _match_here(pattern: str, i: int, text: str, j: int) -> bool:
    """Match pattern[i:] at the beginning of text[j:]."""
    while True:
        if i == len(pattern):
            return True
        if i + 1 < len(pattern) and pattern[i + 1] == "*":
            return _match_star(pattern[i], pattern, i + 2, text, j)
        if pattern[i] == "$" and i + 1 == len(pattern):
            return j == len(text)
        if j < len(text) and pattern[i] in (".", text[j]):
            i += 1
            j += 1
            continue
        return False


def _match_star(c: str, pattern: str, i: int, text: str, j: int) -> bool:
    """Match c* followed by pattern[i:] at the beginning of text[j:]."""
    while True:
        if _match_here(pattern, i, text, j):
            return True
        if j < len(text) and (text[j] == c or c == "."):
            j += 1
        else:
            return False


def grep(pattern, stream: BinaryIO) -> Iterator[bytes]:
    """Yield each complete line of the stream that matches, newline included.

    A line that does not fit in the read buffer is dropped, as is a final
    line without a newline.
    """
    pending = b""
    while True:
        chunk = stream.read(_BUFSIZE - 1 - len(pending))
        if not chunk:
            return
        pending += chunk
        *lines, rest = pending.split(b"\n")
        for line in lines:
            if match(pattern, line):
                yield line + b"\n"
        pending = rest if lines else b""


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        sys.stderr.write("usage: grep pattern [file ...]\n")
        return 1
    pattern, paths = args[0], args[1:]
    out = sys.stdout.buffer
    if not paths:
        out.writelines(grep(pattern, sys.stdin.buffer))
        out.flush()
        return 0
    for path in paths:
        try:
            stream = open(path, "rb")
        except OSError:
            out.write(f"grep: cannot open {path}\n".encode())
            out.flush()
            return 1
        with stream:
            out.writelines(grep(pattern, stream))
    out.flush()
    return 0