"""A small grep supporting only the ^ . * $ operators."""

from __future__ import annotations

import sys
from typing import BinaryIO, Iterator, Optional, Sequence

_BUFSIZE = 1024


def match(regex: str, text: str) -> bool:
    """Search for ``regex`` anywhere in ``text``."""
    if regex.startswith("^"):
        return _matchhere(regex, 1, text, 0)
    # The empty suffix must be tried too.
    return any(_matchhere(regex, 0, text, start) for start in range(len(text) + 1))


def _matchhere(regex: str, ri: int, text: str, ti: int) -> bool:
    """Match ``regex[ri:]`` at the start of ``text[ti:]``."""
    while True:
        if ri == len(regex):
            return True
        if ri + 1 < len(regex) and regex[ri + 1] == "*":
            return _matchstar(regex[ri], regex, ri + 2, text, ti)
        if regex[ri] == "$" and ri + 1 == len(regex):
            return ti == len(text)
        if ti < len(text) and (regex[ri] == "." or regex[ri] == text[ti]):
            ri += 1
            ti += 1
            continue
        return False


def _matchstar(c: str, regex: str, ri: int, text: str, ti: int) -> bool:
    """Match ``c*`` followed by ``regex[ri:]`` at the start of ``text[ti:]``."""
    while True:
        if _matchhere(regex, ri, text, ti):
            return True
        if ti < len(text) and (text[ti] == c or c == "."):
            ti += 1
        else:
            return False


def grep_lines(pattern: str, stream: BinaryIO) -> Iterator[bytes]:
    """Yield each newline-terminated line of ``stream`` that matches ``pattern``.

    Input is read into a fixed-size buffer; data with no newline in the
    buffer is discarded, and so is a final line without a newline.
    """
    pending = b""
    while True:
        chunk = stream.read(_BUFSIZE - 1 - len(pending))
        if not chunk:
            break
        *lines, rest = (pending + chunk).split(b"\n")
        for line in lines:
            if match(pattern, line.decode("latin-1")):
                yield line + b"\n"
        pending = rest if lines else b""


def _emit(lines: Iterator[bytes]) -> None:
    for line in lines:
        sys.stdout.write(line.decode("latin-1"))


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 1
    pattern, *paths = args

    if not paths:
        _emit(grep_lines(pattern, sys.stdin.buffer))
        return 0

    for path in paths:
        try:
            stream = open(path, "rb")
        except OSError:
            print(f"grep: cannot open {path}")
            return 1
        with stream:
            _emit(grep_lines(pattern, stream))
    return 0


if __name__ == "__main__":
    sys.exit(main())