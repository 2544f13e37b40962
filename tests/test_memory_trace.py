# tests/test_memory_trace.py
"""Binary memory / trace loaders and 64-bit address arithmetic."""

import struct

import pytest

from casm_dbg.errors import ErrorCodes, MalformedInputError
from casm_dbg.felt import PRIME
from casm_dbg.memory import (
    ADDRESS_MASK,
    RECORD_SIZE,
    Memory,
    is_address,
    wrapping_add,
)
from casm_dbg.trace import ENTRY_SIZE, RegisterFrame, Trace


def _record(address: int, value: int) -> bytes:
    return struct.pack("<Q", address) + value.to_bytes(32, "little")


class TestAddressArithmetic:

    def test_plain_add(self):
        assert wrapping_add(10, -3) == 7

    def test_wraps_below_zero(self):
        assert wrapping_add(0, -1) == ADDRESS_MASK

    def test_wraps_above_max(self):
        assert wrapping_add(ADDRESS_MASK, 2) == 1

    def test_is_address(self):
        assert is_address(0)
        assert is_address(ADDRESS_MASK)
        assert not is_address(ADDRESS_MASK + 1)
        assert not is_address(PRIME - 1)


class TestMemory:

    def test_record_size(self):
        assert RECORD_SIZE == 40

    def test_decode(self):
        memory = Memory.from_bytes(_record(1, 5) + _record(7, PRIME - 1))
        assert len(memory) == 2
        assert memory[1] == 5
        assert memory[7] == PRIME - 1

    def test_unset_cells_are_none(self):
        memory = Memory.from_cells({3: 9})
        assert memory[4] is None
        assert 4 not in memory
        assert memory.get(4, 0) == 0

    def test_iteration_is_sorted(self):
        memory = Memory.from_cells({9: 1, 2: 2, 5: 3})
        assert list(memory) == [2, 5, 9]
        assert list(memory.items()) == [(2, 2), (5, 3), (9, 1)]
        assert memory.max_address == 9

    def test_repeated_identical_record_is_accepted(self):
        memory = Memory.from_bytes(_record(1, 5) + _record(1, 5))
        assert len(memory) == 1

    def test_conflicting_record_rejected(self):
        with pytest.raises(MalformedInputError) as excinfo:
            Memory.from_bytes(_record(1, 5) + _record(1, 6))
        assert excinfo.value.code == ErrorCodes.MALFORMED_MEMORY

    def test_truncated_rejected(self):
        with pytest.raises(MalformedInputError):
            Memory.from_bytes(_record(1, 5)[:-1])

    def test_non_canonical_value_rejected(self):
        with pytest.raises(MalformedInputError):
            Memory.from_bytes(_record(1, PRIME))

    def test_file_round_trip(self, tmp_path):
        memory = Memory.from_cells({0: 1, 10: 2**200})
        path = tmp_path / "memory.bin"
        memory.dump(path)
        assert path.stat().st_size == 2 * RECORD_SIZE
        assert Memory.load(path) == memory

    def test_empty(self):
        memory = Memory.from_bytes(b"")
        assert len(memory) == 0
        assert memory.max_address is None


class TestTrace:

    def test_entry_layout_is_ap_fp_pc(self):
        data = struct.pack("<QQQ", 100, 90, 5)
        trace = Trace.from_bytes(data)
        assert ENTRY_SIZE == 24
        assert trace[0] == RegisterFrame(pc=5, ap=100, fp=90)

    def test_frame_repr(self):
        assert repr(RegisterFrame(pc=1, ap=2, fp=3)) == "RegisterFrame(pc=1, ap=2, fp=3)"

    def test_sequence_protocol(self):
        frames = [RegisterFrame(pc=i, ap=10, fp=10) for i in range(4)]
        trace = Trace(frames)
        assert len(trace) == 4
        assert list(trace) == frames
        assert trace[-1].pc == 3
        assert isinstance(trace[1:3], Trace)
        assert len(trace[1:3]) == 2

    def test_truncated_rejected(self):
        with pytest.raises(MalformedInputError) as excinfo:
            Trace.from_bytes(b"\x00" * 25)
        assert excinfo.value.code == ErrorCodes.MALFORMED_TRACE

    def test_file_round_trip(self, tmp_path):
        trace = Trace([RegisterFrame(pc=1, ap=20, fp=20), RegisterFrame(pc=3, ap=21, fp=20)])
        path = tmp_path / "trace.bin"
        trace.dump(path)
        assert Trace.load(path) == trace
