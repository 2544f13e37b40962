"""
casm_dbg/memory.py
══════════════════

Sparse, read-only view over a relocated Cairo VM memory snapshot, plus the
fixed-width address arithmetic used to resolve register-relative cells.

File format (cairo-vm ``--memory_file``)::

    ┌──────────────────────┬────────────────────────────────────┐
    │ address : u64 (LE)   │ value : 32-byte field element (LE) │   × N
    └──────────────────────┴────────────────────────────────────┘

Addresses absent from the file are *unset*; indexing them yields ``None``.
"""

from __future__ import annotations

import logging
import struct
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional, Tuple, Union

from .errors import ErrorCodes, MalformedInputError
from .felt import FELT_BYTES, felt_from_bytes, felt_to_bytes

logger = logging.getLogger(__name__)

ADDRESS_BITS: int = 64
ADDRESS_MASK: int = (1 << ADDRESS_BITS) - 1

_ADDRESS = struct.Struct("<Q")
RECORD_SIZE: int = _ADDRESS.size + FELT_BYTES


# ─────────────────────────────────────────────────────────────────────────
#  Address arithmetic
# ─────────────────────────────────────────────────────────────────────────

def wrapping_add(address: int, offset: int) -> int:
    """``address + offset`` modulo ``2**64`` (never raises)."""
    return (address + offset) & ADDRESS_MASK


def is_address(value: int) -> bool:
    return 0 <= value <= ADDRESS_MASK


# ─────────────────────────────────────────────────────────────────────────
#  Memory view
# ─────────────────────────────────────────────────────────────────────────

class Memory:
    """
    Sparse mapping ``address → Optional[field element]``.

    Construction is done via ``Memory.load(path)``, ``Memory.from_bytes``
    or ``Memory.from_cells``; the view is never mutated afterwards.
    """

    __slots__ = ("_cells",)

    def __init__(self, cells: Optional[Mapping[int, int]] = None) -> None:
        self._cells: Dict[int, int] = dict(cells or {})

    # ── Constructors ──────────────────────────────────────────────────

    @classmethod
    def from_cells(cls, cells: Mapping[int, int]) -> "Memory":
        return cls(cells)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Memory":
        """Decode the cairo-vm relocated memory binary format."""
        if len(data) % RECORD_SIZE:
            raise MalformedInputError(
                f"memory data length {len(data)} is not a multiple of {RECORD_SIZE}",
                code=ErrorCodes.MALFORMED_MEMORY,
            )

        cells: Dict[int, int] = {}
        for pos in range(0, len(data), RECORD_SIZE):
            (address,) = _ADDRESS.unpack_from(data, pos)
            raw = data[pos + _ADDRESS.size:pos + RECORD_SIZE]
            try:
                value = felt_from_bytes(raw)
            except ValueError as exc:
                raise MalformedInputError(
                    f"memory record at byte {pos}: {exc}",
                    code=ErrorCodes.MALFORMED_MEMORY,
                ) from exc
            previous = cells.get(address)
            if previous is not None and previous != value:
                raise MalformedInputError(
                    f"memory address {address} assigned twice "
                    f"({previous} and {value})",
                    code=ErrorCodes.MALFORMED_MEMORY,
                )
            cells[address] = value

        logger.debug("Decoded %d memory cells", len(cells))
        return cls(cells)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Memory":
        return cls.from_bytes(Path(path).read_bytes())

    def to_bytes(self) -> bytes:
        return b"".join(
            _ADDRESS.pack(address) + felt_to_bytes(value)
            for address, value in self.items()
        )

    def dump(self, path: Union[str, Path]) -> None:
        Path(path).write_bytes(self.to_bytes())

    # ── Lookup ────────────────────────────────────────────────────────

    def __getitem__(self, address: int) -> Optional[int]:
        return self._cells.get(address)

    def get(self, address: int, default: Optional[int] = None) -> Optional[int]:
        return self._cells.get(address, default)

    def __contains__(self, address: object) -> bool:
        return address in self._cells

    def __len__(self) -> int:
        return len(self._cells)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._cells))

    def items(self) -> Iterator[Tuple[int, int]]:
        """Populated ``(address, value)`` pairs in address order."""
        for address in sorted(self._cells):
            yield address, self._cells[address]

    @property
    def max_address(self) -> Optional[int]:
        return max(self._cells) if self._cells else None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Memory):
            return NotImplemented
        return self._cells == other._cells

    def __repr__(self) -> str:
        return f"Memory(cells={len(self._cells)}, max_address={self.max_address})"
