"""Decoder for PC keyboard scan codes (set 1) into characters."""

from __future__ import annotations

__all__ = [
    "ALT",
    "CAPSLOCK",
    "CTL",
    "E0ESC",
    "KEY_DEL",
    "KEY_DN",
    "KEY_END",
    "KEY_HOME",
    "KEY_INS",
    "KEY_LF",
    "KEY_PGDN",
    "KEY_PGUP",
    "KEY_RT",
    "KEY_UP",
    "NUMLOCK",
    "SCROLLLOCK",
    "SHIFT",
    "KeyboardDecoder",
]

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


def _ctrl(ch: str) -> int:
    """Control code of a character, as an unsigned byte."""
    return (ord(ch) - ord("@")) & 0xFF


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


def _table(codes: list[int], extra: dict[int, int]) -> tuple[int, ...]:
    table = [0] * 256
    table[: len(codes)] = codes
    for index, value in {**extra, **_SPECIAL}.items():
        table[index] = value
    return tuple(table)


_KEYPAD = (
    "\x00 \x00\x00\x00\x00\x00\x00"  # 0x38
    "\x00\x00\x00\x00\x00\x00\x007"  # 0x40
    "89-456+1"
    "230.\x00\x00\x00\x00"  # 0x50
)

_NORMAL = _table(
    [
        ord(c)
        for c in (
            "\x00\x1b123456"  # 0x00
            "7890-=\b\t"
            "qwertyui"  # 0x10
            "op[]\n\x00as"
            "dfghjkl;"  # 0x20
            "'`\x00\\zxcv"
            "bnm,./\x00*"  # 0x30
            + _KEYPAD
        )
    ],
    {0x9C: ord("\n"), 0xB5: ord("/")},
)

_SHIFTED = _table(
    [
        ord(c)
        for c in (
            "\x00\x1b!@#$%^"  # 0x00
            "&*()_+\b\t"
            "QWERTYUI"  # 0x10
            "OP{}\n\x00AS"
            'DFGHJKL:'  # 0x20
            '"~\x00|ZXCV'
            "BNM<>?\x00*"  # 0x30
            + _KEYPAD
        )
    ],
    {0x9C: ord("\n"), 0xB5: ord("/")},
)

_CONTROL = _table(
    [0] * 16
    + [_ctrl(c) for c in "QWERTYUI"]
    + [_ctrl("O"), _ctrl("P"), 0, 0, ord("\r"), 0, _ctrl("A"), _ctrl("S")]
    + [_ctrl(c) for c in "DFGHJKL"]
    + [0]
    + [0, 0, 0, _ctrl("\\")]
    + [_ctrl(c) for c in "ZXCV"]
    + [_ctrl("B"), _ctrl("N"), _ctrl("M"), 0, 0, _ctrl("/"), 0, 0],
    {0x9C: ord("\r"), 0xB5: _ctrl("/")},
)

_SHIFTCODE = {0x1D: CTL, 0x2A: SHIFT, 0x36: SHIFT, 0x38: ALT, 0x9D: CTL, 0xB8: ALT}
_TOGGLECODE = {0x3A: CAPSLOCK, 0x45: NUMLOCK, 0x46: SCROLLLOCK}

# Indexed by the SHIFT and CTL bits of the modifier state.
_CHARCODE = (_NORMAL, _SHIFTED, _CONTROL, _CONTROL)


class KeyboardDecoder:
    """Tracks modifier keys and turns scan codes into character codes."""

    def __init__(self) -> None:
        self.shift = 0

    def feed(self, scancode: int) -> int:
        """Decode one scan code; 0 means no character (release, escape, modifier)."""
        if not 0 <= scancode <= 0xFF:
            raise ValueError(f"scan code {scancode} is not a byte")
        data = scancode
        if data == 0xE0:
            self.shift |= E0ESC
            return 0
        if data & 0x80:
            # Key released.
            if not self.shift & E0ESC:
                data &= 0x7F
            self.shift &= ~(_SHIFTCODE.get(data, 0) | E0ESC)
            return 0
        if self.shift & E0ESC:
            # The previous code was an E0 escape.
            data |= 0x80
            self.shift &= ~E0ESC

        self.shift |= _SHIFTCODE.get(data, 0)
        self.shift ^= _TOGGLECODE.get(data, 0)
        c = _CHARCODE[self.shift & (CTL | SHIFT)][data]
        if self.shift & CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c += ord("A") - ord("a")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c