"""Console: line-edited keyboard input, output to a text screen and a serial line."""

from __future__ import annotations

import threading
from typing import Callable, Iterable, Optional

from .fmt import LOWER_DIGITS, format_int

BACKSPACE = 0x100
INPUT_BUF = 128
COLUMNS = 80
ROWS = 25
_ATTR = 0x0700  # black on white


def _ctl(ch: str) -> int:
    return ord(ch) - ord("@")


def kprintf(fmt: Optional[str], *args) -> str:
    """Format like the kernel printf (%d, %x, %p, %s, %%) and return the text."""
    if fmt is None:
        raise ValueError("null fmt")
    pending = iter(args)

    def next_arg():
        try:
            return next(pending)
        except StopIteration:
            raise TypeError("not enough arguments for format string") from None

    out: list[str] = []
    chars = iter(fmt)
    for c in chars:
        if c != "%":
            out.append(c)
            continue
        spec = next(chars, None)
        if spec is None:
            break
        if spec == "d":
            out.append(format_int(next_arg(), 10, True, LOWER_DIGITS))
        elif spec in ("x", "p"):
            out.append(format_int(next_arg(), 16, False, LOWER_DIGITS))
        elif spec == "s":
            s = next_arg()
            if s is None:
                out.append("(null)")
            elif isinstance(s, (bytes, bytearray)):
                out.append(s.decode("latin-1"))
            else:
                out.append(str(s))
        elif spec == "%":
            out.append("%")
        else:
            # Unknown sequence is printed to draw attention.
            out.append("%" + spec)
    return "".join(out)


class Screen:
    """A CGA text screen: 80x25 cells of character and attribute, and a cursor."""

    def __init__(self) -> None:
        self.cells = [0] * (COLUMNS * ROWS)
        self.pos = 0

    def put(self, c: int) -> None:
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

        if pos // COLUMNS >= 24:
            # Scroll up one row.
            self.cells[0 : 23 * COLUMNS] = self.cells[COLUMNS : 24 * COLUMNS]
            pos -= COLUMNS
            self.cells[pos : 24 * COLUMNS] = [0] * (24 * COLUMNS - pos)

        self.pos = pos
        self.cells[pos] = ord(" ") | _ATTR


class Console:
    """Keyboard input with line editing; output echoed to the screen and serial line."""

    def __init__(
        self,
        screen: Optional[Screen] = None,
        procdump: Optional[Callable[[], None]] = None,
    ) -> None:
        self.screen = screen if screen is not None else Screen()
        self.serial = bytearray()
        self.procdump = procdump
        self.killed = False
        self._cond = threading.Condition()
        self._buf = [0] * INPUT_BUF
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index

    def _putc(self, c: int) -> None:
        if c == BACKSPACE:
            self.serial += b"\b \b"
        else:
            self.serial.append(c & 0xFF)
        self.screen.put(c)

    def interrupt(self, chars: Iterable) -> None:
        """Handle typed characters (a string, bytes or character codes)."""
        codes = (ord(ch) if isinstance(ch, str) else ch for ch in chars)
        doprocdump = False
        with self._cond:
            for c in codes:
                if c < 0:
                    break
                if c == _ctl("P"):
                    doprocdump = True
                elif c == _ctl("U"):
                    while self._e != self._w and self._buf[(self._e - 1) % INPUT_BUF] != ord("\n"):
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c in (_ctl("H"), 0x7F):
                    if self._e != self._w:
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    if c == ord("\r"):
                        c = ord("\n")
                    self._buf[self._e % INPUT_BUF] = c
                    self._e += 1
                    self._putc(c)
                    if c in (ord("\n"), _ctl("D")) or self._e == self._r + INPUT_BUF:
                        self._w = self._e
                        self._cond.notify_all()
        if doprocdump and self.procdump is not None:
            self.procdump()

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, at most one line; Control-D marks end of input."""
        target = n
        out = bytearray()
        with self._cond:
            while n > 0:
                while self._r == self._w:
                    if self.killed:
                        raise InterruptedError("console read interrupted")
                    self._cond.wait(0.05)
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == _ctl("D"):
                    if n < target:
                        # Keep ^D so the next read returns nothing.
                        self._r -= 1
                    break
                out.append(c & 0xFF)
                n -= 1
                if c == ord("\n"):
                    break
        return bytes(out)

    def write(self, data) -> int:
        """Write bytes (or text) to the console; returns the count written."""
        if isinstance(data, str):
            data = data.encode("latin-1")
        with self._cond:
            for byte in bytes(data):
                self._putc(byte & 0xFF)
        return len(data)