# tests/test_errors.py
"""Error codes, hints and step tagging on the casm-dbg exception tree."""

from casm_dbg.errors import (
    ErrorCategory,
    ErrorCodes,
    MalformedInputError,
    UnsupportedOperandError,
    ValueNotFoundError,
)


class TestHints:

    def test_unsupported_operand_default_hint(self):
        err = UnsupportedOperandError("call", "deref")
        assert err.hint.startswith("this operand shape is not tracked")
        assert str(err).startswith("CDBG-2001: unsupported operand for call: deref")

    def test_unsupported_operand_custom_hint(self):
        err = UnsupportedOperandError("call", "deref", hint="rewrite as call abs <imm>", step=4)
        assert err.hint == "rewrite as call abs <imm>"
        assert err.step == 4
        assert str(err).endswith("(at step 4)\n  hint: rewrite as call abs <imm>")

    def test_with_hint_returns_the_error(self):
        err = ValueNotFoundError(5, "source")
        assert err.with_hint("try --source-end latest") is err
        assert str(err) == (
            "CDBG-3001: Source value 5 not found within accessed memory.\n"
            "  hint: try --source-end latest"
        )

    def test_no_hint_line_by_default(self):
        assert "hint" not in str(ValueNotFoundError(5))


class TestCodes:

    def test_step_sticks_to_first(self):
        err = ValueNotFoundError(5).with_step(2).with_step(7)
        assert err.step == 2

    def test_explicit_code_overrides_default(self):
        err = MalformedInputError("bad", code=ErrorCodes.MALFORMED_TRACE)
        assert err.code == "CDBG-1002"
        assert err.category is ErrorCategory.INPUT
