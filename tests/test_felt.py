# tests/test_felt.py
"""Field-element parsing, reduction and byte encoding."""

import pytest

from casm_dbg.felt import (
    FELT_BYTES,
    PRIME,
    felt_from_bytes,
    felt_to_bytes,
    format_felt,
    parse_felt,
    to_felt,
    to_signed,
)


class TestPrime:

    def test_value(self):
        assert PRIME == 0x800000000000011000000000000000000000000000000000000000000000001

    def test_reduction(self):
        assert to_felt(PRIME) == 0
        assert to_felt(-1) == PRIME - 1
        assert to_felt(PRIME + 5) == 5


class TestParseFelt:

    @pytest.mark.parametrize("text, expected", [
        ("0", 0),
        ("1234", 1234),
        ("0x10", 16),
        ("0XfF", 255),
        ("  42 ", 42),
        ("1_000", 1000),
        ("-1", PRIME - 1),
        ("-0x2", PRIME - 2),
    ])
    def test_accepted(self, text, expected):
        assert parse_felt(text) == expected

    def test_reduces_out_of_range(self):
        assert parse_felt(str(PRIME + 3)) == 3

    def test_int_passthrough(self):
        assert parse_felt(-5) == PRIME - 5

    @pytest.mark.parametrize("text", ["", "-", "abc", "0x", "12a", "1.5", "0xzz"])
    def test_rejected(self, text):
        with pytest.raises(ValueError):
            parse_felt(text)


class TestSigned:

    def test_small_values_unchanged(self):
        assert to_signed(7) == 7
        assert format_felt(7) == "7"

    def test_upper_half_is_negative(self):
        assert to_signed(PRIME - 3) == -3
        assert format_felt(PRIME - 1) == "-1"


class TestBytes:

    def test_little_endian(self):
        data = felt_to_bytes(0x0102)
        assert len(data) == FELT_BYTES
        assert data[:2] == b"\x02\x01"
        assert felt_from_bytes(data) == 0x0102

    def test_non_canonical_rejected(self):
        with pytest.raises(ValueError):
            felt_from_bytes(PRIME.to_bytes(FELT_BYTES, "little"))

    def test_wrong_width_rejected(self):
        with pytest.raises(ValueError):
            felt_from_bytes(b"\x00" * 31)
