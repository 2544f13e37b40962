# tests/test_assembler.py
"""
Tests for the CASM text assembler: grammar coverage, visitor output, error
positions, and program layout.
"""

import pytest

from casm_dbg.assembler import (
    CASM_GRAMMAR,
    assemble,
    assemble_one,
    load_program,
    program_listing,
)
from casm_dbg.decoder import decode_instruction
from casm_dbg.errors import AssemblyError, ErrorCodes
from casm_dbg.felt import PRIME
from casm_dbg.instructions import (
    AddAp,
    AssertEq,
    BinOp,
    Call,
    CellRef,
    Deref,
    DoubleDeref,
    Immediate,
    Instruction,
    Jnz,
    Jump,
    Operation,
    Register,
    Ret,
)
from casm_dbg.memory import Memory


class TestGrammar:

    def test_rules_present(self):
        for rule in ("program", "instruction", "body", "res_operand",
                     "cell_ref", "double_deref", "immediate", "comment"):
            assert rule in CASM_GRAMMAR, f"Rule {rule!r} missing"

    def test_empty_program(self):
        assert assemble("") == []
        assert assemble("  // only a comment\n") == []


class TestInstructions:

    def test_assert_eq_deref(self):
        assert assemble_one("[ap + 1] = [fp + -3]") == Instruction(
            AssertEq(CellRef(Register.AP, 1), Deref(CellRef(Register.FP, -3)))
        )

    def test_bare_register_and_minus_offset(self):
        instr = assemble_one("[ap] = [[fp - 3] + 2]")
        assert instr.body == AssertEq(
            CellRef(Register.AP, 0), DoubleDeref(CellRef(Register.FP, -3), 2)
        )

    def test_double_deref_without_offset(self):
        instr = assemble_one("[ap + 0] = [[ap + -1]]")
        assert instr.body.b == DoubleDeref(CellRef(Register.AP, -1), 0)

    def test_binop_immediate_with_ap_increment(self):
        instr = assemble_one("[ap] = [fp + -3] * 5, ap++")
        assert instr == Instruction(
            AssertEq(
                CellRef(Register.AP, 0),
                BinOp(Operation.MUL, CellRef(Register.FP, -3), Immediate(5)),
            ),
            inc_ap=True,
        )

    def test_negative_immediate_is_reduced(self):
        instr = assemble_one("[ap + 0] = -1")
        assert instr.body.b == Immediate(PRIME - 1)

    def test_hex_immediate(self):
        assert assemble_one("ap += 0x10").body == AddAp(Immediate(16))

    def test_call(self):
        assert assemble_one("call rel 7").body == Call(Immediate(7), relative=True)
        assert assemble_one("call abs [ap + 0]").body == Call(
            Deref(CellRef(Register.AP, 0)), relative=False
        )

    def test_jump(self):
        assert assemble_one("jmp abs [ap + 0]").body == Jump(
            Deref(CellRef(Register.AP, 0)), relative=False
        )

    def test_jnz(self):
        assert assemble_one("jmp rel -4 if [ap + -1] != 0").body == Jnz(
            Immediate(PRIME - 4), CellRef(Register.AP, -1)
        )

    def test_ret(self):
        assert assemble_one("ret").body == Ret()

    def test_program_with_comments(self):
        program = assemble("""
            [ap + 0] = 1234, ap++;           // store an immediate
            [ap + 0] = [ap + -1] * [fp + -3];
            jmp rel -2 if [ap + 0] != 0;
            ret;
        """)
        assert [i.opcode for i in program] == ["assert_eq", "assert_eq", "jnz", "ret"]

    @pytest.mark.parametrize("text", [
        "[ap + 1] = [fp + -3];",
        "[fp + 0] = [[ap + -2] + 4], ap++;",
        "[ap + 0] = [ap + -1] + [fp + 2];",
        "ap += 3;",
        "call abs 12;",
        "jmp rel -4 if [ap + -1] != 0;",
    ])
    def test_rendering_reparses(self, text):
        assert str(assemble_one(text)) == text


class TestErrors:

    def test_syntax_error_position(self):
        with pytest.raises(AssemblyError) as excinfo:
            assemble("ret;\n  jmp nowhere;\n")
        err = excinfo.value
        assert err.code == ErrorCodes.ASSEMBLY_SYNTAX
        assert err.line == 2

    def test_unknown_register(self):
        with pytest.raises(AssemblyError):
            assemble("[pc + 0] = 1;")

    def test_missing_semicolon(self):
        with pytest.raises(AssemblyError):
            assemble("ret")

    def test_offset_out_of_range(self):
        with pytest.raises(AssemblyError) as excinfo:
            assemble("[ap + 40000] = 1;")
        assert excinfo.value.code == ErrorCodes.ASSEMBLY_RANGE

    @pytest.mark.parametrize("text", ["ap += 1, ap++;", "call rel 3, ap++;", "ret, ap++;"])
    def test_ap_increment_not_allowed(self, text):
        with pytest.raises(AssemblyError, match="ap\\+\\+"):
            assemble(text)

    def test_assemble_one_rejects_many(self):
        with pytest.raises(AssemblyError):
            assemble_one("ret; ret;")


class TestLayout:

    def test_load_program_pcs(self):
        program = assemble("[ap + 0] = 5; [ap + 1] = [ap + 0]; ret;")
        cells = {}
        pcs = load_program(cells, 100, program)
        assert pcs == [100, 102, 103]
        assert cells[101] == 5
        memory = Memory.from_cells(cells)
        assert [decode_instruction(memory, pc) for pc in pcs] == program

    def test_listing(self):
        program = assemble("call rel 4; ret;")
        assert program_listing(program, 10) == {10: "call rel 4;", 12: "ret;"}
