"""Minimal printf-style formatting for user programs and the console.

Both understand %d, %x, %p, %s and %%; the user form also takes %c.
Numbers are treated as 32-bit values. An unknown conversion is copied
through with its '%' so that it stands out.
"""

from __future__ import annotations

from collections.abc import Iterator

__all__ = ["cprintf", "uprintf"]

_UPPER = "0123456789ABCDEF"
_LOWER = "0123456789abcdef"


def _number(value: int, base: int, signed: bool, digits: str) -> str:
    x = int(value) & 0xFFFFFFFF
    neg = signed and x >= 1 << 31
    if neg:
        x = (1 << 32) - x
    out = []
    while True:
        out.append(digits[x % base])
        x //= base
        if x == 0:
            break
    if neg:
        out.append("-")
    return "".join(reversed(out))


def _format(fmt: str, args: tuple, digits: str, with_char: bool) -> str:
    it: Iterator = iter(args)

    def arg():
        try:
            return next(it)
        except StopIteration:
            raise ValueError(f"not enough arguments for format {fmt!r}") from None

    out = []
    i = 0
    while i < len(fmt):
        c = fmt[i]
        i += 1
        if c != "%":
            out.append(c)
            continue
        if i >= len(fmt):
            break
        c = fmt[i]
        i += 1
        if c == "d":
            out.append(_number(arg(), 10, True, digits))
        elif c in "xp":
            out.append(_number(arg(), 16, False, digits))
        elif c == "s":
            s = arg()
            out.append("(null)" if s is None else str(s))
        elif c == "c" and with_char:
            ch = arg()
            out.append(ch if isinstance(ch, str) else chr(int(ch) & 0xFF))
        elif c == "%":
            out.append("%")
        else:
            out.append("%" + c)
    return "".join(out)


def uprintf(fmt: str, *args) -> str:
    """Format as a user program does: upper-case hex, %c supported."""
    return _format(fmt, args, _UPPER, True)


def cprintf(fmt: str, *args) -> str:
    """Format as the console does: lower-case hex, no %c."""
    if fmt is None:
        raise ValueError("null fmt")
    return _format(fmt, args, _LOWER, False)