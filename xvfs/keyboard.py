"""PC keyboard: turns scan codes into characters, tracking modifier state."""

from __future__ import annotations

SHIFT = 1 << 0
CTL = 1 << 1
ALT = 1 << 2
CAPSLOCK = 1 << 3
NUMLOCK = 1 << 4
SCROLLLOCK = 1 << 5
E0ESC = 1 << 6

# Special key codes.
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


def _ctl(ch: str) -> int:
    """Control code for a character, as an unsigned byte."""
    return (ord(ch) - ord("@")) & 0xFF


_SHIFTCODE = {0x1D: CTL, 0x2A: SHIFT, 0x36: SHIFT, 0x38: ALT, 0x9D: CTL, 0xB8: ALT}
_TOGGLECODE = {0x3A: CAPSLOCK, 0x45: NUMLOCK, 0x46: SCROLLLOCK}

_KEYPAD_SPECIALS = {
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


def _table(base, extra: dict[int, int]) -> tuple[int, ...]:
    codes = [0] * 256
    for i, value in enumerate(base):
        codes[i] = ord(value) if isinstance(value, str) else value
    for index, value in extra.items():
        codes[index] = value
    return tuple(codes)


_NORMALMAP = _table(
    "\0\x1b1234567890-=\b\tqwertyuiop[]\n\0asdfghjkl;'`\0\\zxcvbnm,./\0*\0 "
    + "\0" * 13
    + "789-456+1230.",
    {0x9C: ord("\n"), 0xB5: ord("/"), **_KEYPAD_SPECIALS},
)

_SHIFTMAP = _table(
    "\0\x1b!@#$%^&*()_+\b\tQWERTYUIOP{}\n\0ASDFGHJKL:\"~\0|ZXCVBNM<>?\0*\0 "
    + "\0" * 13
    + "789-456+1230.",
    {0x9C: ord("\n"), 0xB5: ord("/"), **_KEYPAD_SPECIALS},
)

_CTLMAP = _table(
    [0] * 16
    + [_ctl(c) for c in "QWERTYUIOP"]
    + [0, 0, ord("\r"), 0, _ctl("A"), _ctl("S")]
    + [_ctl(c) for c in "DFGHJKL"]
    + [0, 0, 0, 0, _ctl("\\")]
    + [_ctl(c) for c in "ZXCVBNM"]
    + [0, 0, _ctl("/"), 0, 0],
    {0x9C: ord("\r"), 0xB5: _ctl("/"), **_KEYPAD_SPECIALS},
)

_CHARCODE = (_NORMALMAP, _SHIFTMAP, _CTLMAP, _CTLMAP)


class Keyboard:
    """Decodes a stream of scan codes; ``shift`` holds the modifier state."""

    def __init__(self) -> None:
        self.shift = 0

    def feed(self, scancode: int) -> int:
        """Decode one scan code; returns the character code, or 0 for none."""
        data = scancode & 0xFF
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
            # Last code was an E0 escape.
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