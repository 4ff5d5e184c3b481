from __future__ import annotations

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def simple_hash(text: str) -> str:
    """Short deterministic fingerprint of `text`.

    Rolling `h = h * 31 + unit` over the UTF-16 code units of `text`, wrapped
    to a signed 32-bit integer after every step, emitted as the absolute value
    in base 36. Intended for change detection only; collisions are possible
    and it offers no integrity guarantees.
    """
    data = text.encode("utf-16-le", errors="surrogatepass")
    h = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = _to_int32(h * 31 + unit)
    return _base36(abs(h))
