"""Console line discipline and a text-mode screen model."""

from __future__ import annotations

import threading
from typing import Callable, Iterable

from .layout import KernelPanic

BACKSPACE = 0x100
INPUT_BUF = 128
COLS = 80
ROWS = 25
_ATTR = 0x0700


def _ctrl(ch: str) -> int:
    return ord(ch) - ord("@")


def _code(c: int | str) -> int:
    return ord(c) if isinstance(c, str) else c


class CgaScreen:
    """An 80x25 colour text screen that scrolls after 24 rows."""

    def __init__(self) -> None:
        self.cells = [0] * (COLS * ROWS)
        self.pos = 0

    def putc(self, c: int | str) -> None:
        c = _code(c)
        pos = self.pos
        if c == ord("\n"):
            pos += COLS - pos % COLS
        elif c == BACKSPACE:
            if pos > 0:
                pos -= 1
        else:
            self.cells[pos] = (c & 0xFF) | _ATTR
            pos += 1

        if pos < 0 or pos > ROWS * COLS:
            raise KernelPanic("pos under/overflow")

        if pos // COLS >= 24:
            self.cells[: 23 * COLS] = self.cells[COLS : 24 * COLS]
            pos -= COLS
            self.cells[pos : 24 * COLS] = [0] * (24 * COLS - pos)

        self.pos = pos
        self.cells[pos] = ord(" ") | _ATTR

    def text(self) -> str:
        """Screen contents, one line per row, trailing blanks removed."""
        rows = []
        for start in range(0, ROWS * COLS, COLS):
            row = self.cells[start : start + COLS]
            rows.append("".join(chr(cell & 0xFF) if cell & 0xFF else " " for cell in row).rstrip())
        while rows and not rows[-1]:
            rows.pop()
        return "\n".join(rows)


class Console:
    """Keyboard input editing and echo, with blocking line reads."""

    def __init__(
        self,
        output: Callable[[str], None] | None = None,
        on_procdump: Callable[[], None] | None = None,
    ) -> None:
        self.output = output
        self.on_procdump = on_procdump
        self.screen = CgaScreen()
        self._buf = [0] * INPUT_BUF
        self._r = 0
        self._w = 0
        self._e = 0
        self._cond = threading.Condition(threading.Lock())

    def _putc(self, c: int) -> None:
        if self.output is not None:
            if c == BACKSPACE:
                for ch in "\b \b":
                    self.output(ch)
            else:
                self.output(chr(c))
        self.screen.putc(c)

    def interrupt(self, chars: Iterable[int] | str) -> None:
        """Handle typed characters: editing keys, echo and line completion."""
        codes = (ord(ch) for ch in chars) if isinstance(chars, str) else iter(chars)
        procdump = False
        with self._cond:
            for c in codes:
                if c < 0:
                    break
                if c == _ctrl("P"):
                    procdump = True
                elif c == _ctrl("U"):
                    while self._e != self._w and self._buf[(self._e - 1) % INPUT_BUF] != ord("\n"):
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c in (_ctrl("H"), 0x7F):
                    if self._e != self._w:
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    if c == ord("\r"):
                        c = ord("\n")
                    self._buf[self._e % INPUT_BUF] = c
                    self._e += 1
                    self._putc(c)
                    if c in (ord("\n"), _ctrl("D")) or self._e == self._r + INPUT_BUF:
                        self._w = self._e
                        self._cond.notify_all()
        if procdump and self.on_procdump is not None:
            self.on_procdump()

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, stopping after a newline; blocks for input."""
        out = bytearray()
        with self._cond:
            while len(out) < n:
                while self._r == self._w:
                    self._cond.wait()
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == _ctrl("D"):
                    if out:
                        # Leave ^D so the next read returns nothing.
                        self._r -= 1
                    break
                out.append(c & 0xFF)
                if c == ord("\n"):
                    break
        return bytes(out)

    def write(self, data: bytes | str) -> int:
        """Echo ``data`` to the output and screen; returns its length."""
        raw = data.encode("latin-1") if isinstance(data, str) else bytes(data)
        with self._cond:
            for b in raw:
                self._putc(b & 0xFF)
        return len(raw)