"""PC keyboard: turns scan codes into characters, tracking modifier keys."""

from __future__ import annotations

from typing import Dict, Iterable, List

NO = 0

SHIFT = 1 << 0
CTL = 1 << 1
ALT = 1 << 2

CAPSLOCK = 1 << 3
NUMLOCK = 1 << 4
SCROLLLOCK = 1 << 5

E0ESC = 1 << 6

KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def _c(x: str) -> int:
    """Control-x."""
    return (ord(x) - ord("@")) & 0xFF


def _table(head: List[int], extra: Dict[int, int]) -> List[int]:
    table = head + [NO] * (256 - len(head))
    for code, value in extra.items():
        table[code] = value
    return table


_SPECIAL = {
    0xC8: KEY_UP,
    0xD0: KEY_DN,
    0xC9: KEY_PGUP,
    0xD1: KEY_PGDN,
    0xCB: KEY_LF,
    0xCD: KEY_RT,
    0x97: KEY_HOME,
    0xCF: KEY_END,
    0xD2: KEY_INS,
    0xD3: KEY_DEL,
}

_KEYPAD_ROWS = (
    "\0 \0\0\0\0\0\0"  # 0x38
    "\0\0\0\0\0\0\0" "7"  # 0x40
    "89-456+1"
    "230.\0\0\0\0"  # 0x50
)

_NORMAL = (
    "\0\x1b123456"  # 0x00
    "7890-=\b\t"
    "qwertyui"  # 0x10
    "op[]\n\0as"
    "dfghjkl;"  # 0x20
    "'`\0\\zxcv"
    "bnm,./\0*"  # 0x30
) + _KEYPAD_ROWS

_SHIFTED = (
    "\0\x1b!@#$%^"  # 0x00
    "&*()_+\b\t"
    "QWERTYUI"  # 0x10
    "OP{}\n\0AS"
    "DFGHJKL:"  # 0x20
    '"~\0|ZXCV'
    "BNM<>?\0*"  # 0x30
) + _KEYPAD_ROWS

_CTL_HEAD = (
    [NO] * 16
    + [_c(ch) for ch in "QWERTYUI"]
    + [_c("O"), _c("P"), NO, NO, ord("\r"), NO, _c("A"), _c("S")]
    + [_c(ch) for ch in "DFGHJKL"] + [NO]
    + [NO, NO, NO, _c("\\"), _c("Z"), _c("X"), _c("C"), _c("V")]
    + [_c("B"), _c("N"), _c("M"), NO, NO, _c("/"), NO, NO]
)

NORMALMAP = _table([ord(ch) for ch in _NORMAL], {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL})
SHIFTMAP = _table([ord(ch) for ch in _SHIFTED], {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL})
CTLMAP = _table(_CTL_HEAD, {0x9C: ord("\r"), 0xB5: _c("/"), **_SPECIAL})

SHIFTCODE = _table([], {0x1D: CTL, 0x2A: SHIFT, 0x36: SHIFT, 0x38: ALT, 0x9D: CTL, 0xB8: ALT})
TOGGLECODE = _table([], {0x3A: CAPSLOCK, 0x45: NUMLOCK, 0x46: SCROLLLOCK})

_CHARCODE = (NORMALMAP, SHIFTMAP, CTLMAP, CTLMAP)


class Keyboard:
    """Scan-code decoder holding the current modifier and lock state."""

    def __init__(self) -> None:
        self.shift = 0

    def feed(self, scancode: int) -> int:
        """Decode one scan code; returns the character code, or 0 if none."""
        if not 0 <= scancode <= 0xFF:
            raise ValueError(f"scan code out of range: {scancode}")
        data = scancode
        if data == 0xE0:
            self.shift |= E0ESC
            return 0
        if data & 0x80:
            # Key released.
            if not self.shift & E0ESC:
                data &= 0x7F
            self.shift &= ~(SHIFTCODE[data] | E0ESC)
            return 0
        if self.shift & E0ESC:
            data |= 0x80
            self.shift &= ~E0ESC

        self.shift |= SHIFTCODE[data]
        self.shift ^= TOGGLECODE[data]
        c = _CHARCODE[self.shift & (CTL | SHIFT)][data]
        if self.shift & CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c += ord("A") - ord("a")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c

    def translate(self, scancodes: Iterable[int]) -> bytes:
        """Decode a run of scan codes into the characters they produce."""
        return bytes(c for c in map(self.feed, scancodes) if c)