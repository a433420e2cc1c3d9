"""Deterministic host-port derivation for skill environments.

The computed port is only an optimistic default for *new* environments.
Once an environment exists, the lifecycle manager always trusts the port
the runtime reports as bound, so hash collisions between skills are
tolerated rather than prevented.

The hash wraps to signed 32 bits after every step, including the final
addition. Clients that only wrap the shift-and-subtract part can land on
a different port for some names (``skill-creator``: 3560 here, 3736 there);
the read-back of the bound port makes both interoperate.
"""

from __future__ import annotations

PORT_BASE = 3000
PORT_SPAN = 1000

_INT32_MASK = 0xFFFFFFFF
_INT32_SIGN = 0x80000000


def _to_int32(value: int) -> int:
    value &= _INT32_MASK
    return value - (1 << 32) if value & _INT32_SIGN else value


def rolling_hash(text: str) -> int:
    """Signed 32-bit ``h = h*31 + code`` over UTF-16 code units."""
    encoded = text.encode("utf-16-le", errors="surrogatepass")
    h = 0
    for i in range(0, len(encoded), 2):
        code = encoded[i] | (encoded[i + 1] << 8)
        h = _to_int32(h * 31 + code)
    return h


def port_for(skill_name: str) -> int:
    """Return the port in ``[3000, 3999]`` a new environment for *skill_name* binds."""
    return PORT_BASE + abs(rolling_hash(skill_name)) % PORT_SPAN
