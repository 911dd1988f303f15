"""Console line discipline: input editing, echo and line-at-a-time reads."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable

INPUT_BUF = 128

__all__ = ["INPUT_BUF", "ConsoleInput"]


def _ctrl(ch: str) -> int:
    return ord(ch) - ord("@")


_PROCDUMP = _ctrl("P")
_KILL_LINE = _ctrl("U")
_BACKSPACE = _ctrl("H")
_DELETE = 0x7F
_EOF = _ctrl("D")
_NEWLINE = ord("\n")
_RETURN = ord("\r")

_ERASE_ECHO = "\b \b"


class ConsoleInput:
    """The console's input buffer.

    Characters arrive through ``interrupt`` and are echoed; a line becomes
    readable when it ends in a newline or ^D, or when the buffer fills.
    """

    def __init__(
        self,
        echo: Callable[[str], None] | None = None,
        procdump: Callable[[], None] | None = None,
    ) -> None:
        self._buf = bytearray(INPUT_BUF)
        self.r = 0  # read index
        self.w = 0  # write index
        self.e = 0  # edit index
        self._echoed: list[str] = []
        self._echo = echo if echo is not None else self._echoed.append
        self._procdump = procdump
        self.killed = False
        self._cond = threading.Condition()

    @property
    def echoed(self) -> str:
        """Everything echoed so far by the default echo."""
        return "".join(self._echoed)

    def _put(self, c: int) -> None:
        self._echo(_ERASE_ECHO if c is None else chr(c))

    def interrupt(self, chars: Iterable[int] | str) -> None:
        """Take typed characters, handling line editing and ^P."""
        codes = [ord(ch) for ch in chars] if isinstance(chars, str) else list(chars)
        doprocdump = False
        with self._cond:
            for c in codes:
                if not 0 <= c <= 0xFF:
                    raise ValueError(f"character code {c} is not a byte")
                if c == _PROCDUMP:
                    doprocdump = True
                elif c == _KILL_LINE:
                    while (
                        self.e != self.w
                        and self._buf[(self.e - 1) % INPUT_BUF] != _NEWLINE
                    ):
                        self.e -= 1
                        self._put(None)
                elif c in (_BACKSPACE, _DELETE):
                    if self.e != self.w:
                        self.e -= 1
                        self._put(None)
                elif c != 0 and self.e - self.r < INPUT_BUF:
                    if c == _RETURN:
                        c = _NEWLINE
                    self._buf[self.e % INPUT_BUF] = c
                    self.e += 1
                    self._put(c)
                    if c in (_NEWLINE, _EOF) or self.e == self.r + INPUT_BUF:
                        self.w = self.e
                        self._cond.notify_all()
        if doprocdump and self._procdump is not None:
            self._procdump()

    def kill(self) -> None:
        """Make readers waiting for input give up."""
        with self._cond:
            self.killed = True
            self._cond.notify_all()

    def read(self, n: int) -> bytes:
        """Read up to n bytes, stopping after a newline; waits for a finished line.

        ^D ends the read; an empty result means end of input. Raises
        InterruptedError if the console is killed while waiting.
        """
        target = n
        out = bytearray()
        with self._cond:
            while n > 0:
                while self.r == self.w:
                    if self.killed:
                        raise InterruptedError("console read killed")
                    self._cond.wait()
                c = self._buf[self.r % INPUT_BUF]
                self.r += 1
                if c == _EOF:
                    if n < target:
                        # Keep ^D so the next read returns nothing.
                        self.r -= 1
                    break
                out.append(c)
                n -= 1
                if c == _NEWLINE:
                    break
        return bytes(out)