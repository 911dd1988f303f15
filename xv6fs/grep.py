"""Line filter using a small regular-expression matcher.

Only the operators ``^`` (start), ``$`` (end), ``.`` (any character)
and ``*`` (zero or more of the preceding character) are understood.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from typing import TextIO

BUFSIZE = 1024

__all__ = ["BUFSIZE", "grep", "main", "match"]


def _matchhere(pattern: str, pi: int, text: str, ti: int) -> bool:
    if pi == len(pattern):
        return True
    if pi + 1 < len(pattern) and pattern[pi + 1] == "*":
        return _matchstar(pattern[pi], pattern, pi + 2, text, ti)
    if pattern[pi] == "$" and pi + 1 == len(pattern):
        return ti == len(text)
    if ti < len(text) and pattern[pi] in (".", text[ti]):
        return _matchhere(pattern, pi + 1, text, ti + 1)
    return False


def _matchstar(c: str, pattern: str, pi: int, text: str, ti: int) -> bool:
    while True:
        if _matchhere(pattern, pi, text, ti):
            return True
        if ti < len(text) and (text[ti] == c or c == "."):
            ti += 1
            continue
        return False


def match(pattern: str, text: str) -> bool:
    """True if pattern matches anywhere in text."""
    if pattern.startswith("^"):
        return _matchhere(pattern, 1, text, 0)
    return any(_matchhere(pattern, 0, text, i) for i in range(len(text) + 1))


def grep(pattern: str, stream: TextIO) -> Iterator[str]:
    """Yield each newline-terminated line of stream that matches pattern.

    Input is read into a buffer of BUFSIZE - 1 characters; a read that
    leaves no complete line in the buffer discards it, and a final line
    without a newline is never reported.
    """
    pending = ""
    while True:
        chunk = stream.read(BUFSIZE - 1 - len(pending))
        if not chunk:
            break
        pending += chunk
        *lines, rest = pending.split("\n")
        for line in lines:
            if match(pattern, line):
                yield line + "\n"
        pending = rest if lines else ""


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 1
    pattern, paths = args[0], args[1:]
    if not paths:
        sys.stdout.writelines(grep(pattern, sys.stdin))
        return 0
    for path in paths:
        try:
            f = open(path, encoding="latin-1", newline="")
        except OSError:
            print(f"grep: cannot open {path}")
            return 1
        with f:
            sys.stdout.writelines(grep(pattern, f))
    return 0


if __name__ == "__main__":
    sys.exit(main())