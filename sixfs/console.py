"""Console: line-edited keyboard input and output to a text screen and serial line."""

from __future__ import annotations

import threading
from typing import Iterable, List, Union

BACKSPACE = 0x100
INPUT_BUF = 128

COLUMNS = 80
ROWS = 25
_ATTR = 0x0700  # black on white


def _ctrl(x: str) -> int:
    return ord(x) - ord("@")


class Screen:
    """An 80x25 text screen of character cells with a cursor."""

    def __init__(self) -> None:
        self.cells: List[int] = [0] * (COLUMNS * ROWS)
        self.pos = 0

    def putc(self, c: int) -> None:
        """Draw one character, handling newline, backspace and scrolling."""
        pos = self.pos
        if c == ord("\n"):
            pos += COLUMNS - pos % COLUMNS
        elif c == BACKSPACE:
            if pos > 0:
                pos -= 1
        else:
            self.cells[pos] = (c & 0xFF) | _ATTR
            pos += 1

        if pos < 0 or pos > ROWS * COLUMNS:
            raise RuntimeError("pos under/overflow")

        if pos // COLUMNS >= ROWS - 1:
            self.cells[: 23 * COLUMNS] = self.cells[COLUMNS : 24 * COLUMNS]
            pos -= COLUMNS
            self.cells[pos : 24 * COLUMNS] = [0] * (24 * COLUMNS - pos)

        self.pos = pos
        self.cells[pos] = ord(" ") | _ATTR

    def text(self) -> str:
        """The screen contents as lines without trailing blanks."""
        rows = []
        for start in range(0, ROWS * COLUMNS, COLUMNS):
            row = "".join(
                chr(cell & 0xFF) if cell & 0xFF else " "
                for cell in self.cells[start : start + COLUMNS]
            )
            rows.append(row.rstrip())
        return "\n".join(rows).rstrip("\n")


class Console:
    """Keyboard input with line editing; output goes to the screen and serial line."""

    def __init__(self) -> None:
        self.screen = Screen()
        self.output = bytearray()  # what the serial line received
        self._buf = bytearray(INPUT_BUF)
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index
        self._cond = threading.Condition()

    def putc(self, c: int) -> None:
        """Emit one character; BACKSPACE erases on the serial line."""
        if c == BACKSPACE:
            self.output += b"\b \b"
        else:
            self.output.append(c & 0xFF)
        self.screen.putc(c)

    def interrupt(self, chars: Union[str, bytes, Iterable[int]]) -> bool:
        """Process typed characters; returns True if a process listing (^P) was asked for."""
        if isinstance(chars, str):
            chars = [ord(ch) for ch in chars]
        dump = False
        with self._cond:
            for c in chars:
                if c == _ctrl("P"):
                    dump = True
                elif c == _ctrl("U"):
                    while self._e != self._w and self._buf[(self._e - 1) % INPUT_BUF] != ord("\n"):
                        self._e -= 1
                        self.putc(BACKSPACE)
                elif c in (_ctrl("H"), 0x7F):
                    if self._e != self._w:
                        self._e -= 1
                        self.putc(BACKSPACE)
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    if c == ord("\r"):
                        c = ord("\n")
                    self._buf[self._e % INPUT_BUF] = c & 0xFF
                    self._e += 1
                    self.putc(c)
                    if c in (ord("\n"), _ctrl("D")) or self._e == self._r + INPUT_BUF:
                        self._w = self._e
                        self._cond.notify_all()
        return dump

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes of completed input, stopping after a newline.

        ^D ends the read; if bytes were already read it is kept for the next
        read, which then returns b"".
        """
        target = n
        out = bytearray()
        with self._cond:
            while n > 0:
                while self._r == self._w:
                    self._cond.wait()
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == _ctrl("D"):
                    if n < target:
                        self._r -= 1
                    break
                out.append(c)
                n -= 1
                if c == ord("\n"):
                    break
        return bytes(out)

    def write(self, data: bytes) -> int:
        """Write ``data`` to the console and return its length."""
        with self._cond:
            for byte in data:
                self.putc(byte & 0xFF)
        return len(data)