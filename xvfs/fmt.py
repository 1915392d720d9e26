"""Minimal printf that understands %d, %x, %p, %s, %c and %%."""

from __future__ import annotations

UPPER_DIGITS = "0123456789ABCDEF"
LOWER_DIGITS = "0123456789abcdef"

_WORD = 1 << 32
_SIGN = 1 << 31


def format_int(value: int, base: int, signed: bool, digits: str = UPPER_DIGITS) -> str:
    """Render a 32-bit integer in the given base, signed or unsigned."""
    if not 2 <= base <= len(digits):
        raise ValueError(f"unsupported base {base}")
    word = (value + _SIGN) % _WORD - _SIGN
    negative = signed and word < 0
    x = (-word if negative else word) % _WORD
    out = []
    while True:
        out.append(digits[x % base])
        x //= base
        if not x:
            break
    if negative:
        out.append("-")
    return "".join(reversed(out))


def uprintf(fmt: str, *args) -> str:
    """Format like the user-level printf and return the resulting text."""
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
            out.append(format_int(next_arg(), 10, True))
        elif spec in ("x", "p"):
            out.append(format_int(next_arg(), 16, False))
        elif spec == "s":
            s = next_arg()
            if s is None:
                out.append("(null)")
            elif isinstance(s, (bytes, bytearray)):
                out.append(s.decode("latin-1"))
            else:
                out.append(str(s))
        elif spec == "c":
            ch = next_arg()
            out.append(ch[:1] if isinstance(ch, str) else chr(ch & 0xFF))
        elif spec == "%":
            out.append("%")
        else:
            out.append("%" + spec)
    return "".join(out)