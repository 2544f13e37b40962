"""
casm_dbg/trace.py
═════════════════

Relocated execution trace: one register frame per executed step.

File format (cairo-vm ``--trace_file``)::

    ┌───────────┬───────────┬───────────┐
    │ ap : u64  │ fp : u64  │ pc : u64  │   × N   (little-endian)
    └───────────┴───────────┴───────────┘
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence, Tuple, Union, overload

from .errors import ErrorCodes, MalformedInputError

logger = logging.getLogger(__name__)

_ENTRY = struct.Struct("<QQQ")
ENTRY_SIZE: int = _ENTRY.size


@dataclass(frozen=True, slots=True)
class RegisterFrame:
    """
    Register values in effect while one step executed.

    Attributes
    ----------
    pc : int
        Address of the executed instruction.
    ap : int
        Allocation pointer.
    fp : int
        Frame pointer.
    """
    pc: int
    ap: int
    fp: int

    def __repr__(self) -> str:
        return f"RegisterFrame(pc={self.pc}, ap={self.ap}, fp={self.fp})"


class Trace(Sequence[RegisterFrame]):
    """Immutable, indexable sequence of ``RegisterFrame`` (index = StepId)."""

    __slots__ = ("_frames",)

    def __init__(self, frames: Iterable[RegisterFrame] = ()) -> None:
        self._frames: Tuple[RegisterFrame, ...] = tuple(frames)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Trace":
        if len(data) % ENTRY_SIZE:
            raise MalformedInputError(
                f"trace data length {len(data)} is not a multiple of {ENTRY_SIZE}",
                code=ErrorCodes.MALFORMED_TRACE,
            )
        frames: List[RegisterFrame] = [
            RegisterFrame(pc=pc, ap=ap, fp=fp)
            for ap, fp, pc in _ENTRY.iter_unpack(data)
        ]
        logger.debug("Decoded %d trace entries", len(frames))
        return cls(frames)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Trace":
        return cls.from_bytes(Path(path).read_bytes())

    def to_bytes(self) -> bytes:
        return b"".join(_ENTRY.pack(f.ap, f.fp, f.pc) for f in self._frames)

    def dump(self, path: Union[str, Path]) -> None:
        Path(path).write_bytes(self.to_bytes())

    @overload
    def __getitem__(self, index: int) -> RegisterFrame: ...
    @overload
    def __getitem__(self, index: slice) -> "Trace": ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return Trace(self._frames[index])
        return self._frames[index]

    def __len__(self) -> int:
        return len(self._frames)

    def __iter__(self) -> Iterator[RegisterFrame]:
        return iter(self._frames)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Trace):
            return NotImplemented
        return self._frames == other._frames

    def __repr__(self) -> str:
        return f"Trace(steps={len(self._frames)})"
