"""Minimal printf-style formatting as done by the user library and the kernel console."""

from __future__ import annotations

from typing import Any, Iterator, List

_UPPER_DIGITS = "0123456789ABCDEF"
_LOWER_DIGITS = "0123456789abcdef"


def _printint(value: int, base: int, signed: bool, digits: str) -> str:
    x = int(value) & 0xFFFFFFFF
    negative = signed and bool(x & 0x80000000)
    if negative:
        x = 0x100000000 - x
    out: List[str] = []
    while True:
        out.append(digits[x % base])
        x //= base
        if x == 0:
            break
    if negative:
        out.append("-")
    return "".join(reversed(out))


def _c_string(value: Any) -> str:
    if value is None:
        return "(null)"
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("latin-1")
    return str(value).split("\0", 1)[0]


def _take(args: Iterator[Any]) -> Any:
    try:
        return next(args)
    except StopIteration:
        raise TypeError("not enough arguments for format string") from None


def _format(fmt: str, args: tuple, digits: str, allow_char: bool) -> str:
    remaining = iter(args)
    out: List[str] = []
    escaped = False
    for c in fmt.split("\0", 1)[0]:
        if not escaped:
            if c == "%":
                escaped = True
            else:
                out.append(c)
            continue
        escaped = False
        if c == "d":
            out.append(_printint(_take(remaining), 10, True, digits))
        elif c in "xp":
            out.append(_printint(_take(remaining), 16, False, digits))
        elif c == "s":
            out.append(_c_string(_take(remaining)))
        elif c == "c" and allow_char:
            value = _take(remaining)
            if isinstance(value, str):
                value = ord(value)
            out.append(chr(value & 0xFF))
        elif c == "%":
            out.append("%")
        else:
            # Unknown sequences are printed to draw attention.
            out.append("%" + c)
    return "".join(out)


def format_printf(fmt: str, *args: Any) -> str:
    """Format like the user-level printf: %d, %x, %p, %s, %c and %%."""
    return _format(fmt, args, _UPPER_DIGITS, allow_char=True)


def format_cprintf(fmt: str, *args: Any) -> str:
    """Format like the console cprintf: %d, %x, %p, %s and %%, lower-case hex."""
    if fmt is None:
        raise ValueError("null fmt")
    return _format(fmt, args, _LOWER_DIGITS, allow_char=False)