"""
casm_dbg/felt.py
════════════════

Field-element helpers for the Cairo VM value domain.

Every memory cell of a Cairo program holds an element of the prime field
``F_P`` with ``P = 2**251 + 17 * 2**192 + 1``.  Elements are represented as
plain Python ``int`` values in the canonical range ``[0, P)``.

Negative numbers appear in CASM source (``jmp rel -3``) and in human output;
they are the upper half of the field, so ``-1 ≡ P - 1``.
"""

from __future__ import annotations

from typing import Union

PRIME: int = 2**251 + 17 * 2**192 + 1

#: Width of a serialized field element, in bytes.
FELT_BYTES: int = 32

_HALF_PRIME: int = PRIME // 2


def to_felt(value: int) -> int:
    """Reduce an arbitrary integer into the canonical range ``[0, P)``."""
    return value % PRIME


def to_signed(value: int) -> int:
    """Map a canonical element onto ``(-P/2, P/2]`` for display."""
    return value - PRIME if value > _HALF_PRIME else value


def parse_felt(text: Union[str, int]) -> int:
    """
    Parse a decimal or ``0x``-prefixed hexadecimal literal.

    A leading ``-`` is accepted and interpreted modulo P.  Values outside the
    field are reduced.  Raises ``ValueError`` on anything else.
    """
    if isinstance(text, int):
        return to_felt(text)
    raw = text.strip().replace("_", "")
    negative = raw.startswith("-")
    digits = raw[1:] if negative else raw
    if not digits:
        raise ValueError(f"invalid field element literal: {text!r}")
    if digits.lower().startswith("0x"):
        magnitude = int(digits[2:], 16)
    elif digits.isdigit():
        magnitude = int(digits, 10)
    else:
        raise ValueError(f"invalid field element literal: {text!r}")
    return to_felt(-magnitude if negative else magnitude)


def felt_from_bytes(data: bytes) -> int:
    """
    Decode a 32-byte little-endian element.

    Raises ``ValueError`` if the encoded integer is not below P.
    """
    if len(data) != FELT_BYTES:
        raise ValueError(f"expected {FELT_BYTES} bytes, got {len(data)}")
    value = int.from_bytes(data, "little")
    if value >= PRIME:
        raise ValueError(f"value {value:#x} is not a canonical field element")
    return value


def felt_to_bytes(value: int) -> bytes:
    return to_felt(value).to_bytes(FELT_BYTES, "little")


def format_felt(value: int) -> str:
    """Signed decimal rendering, as CASM listings show immediates."""
    return str(to_signed(value))
