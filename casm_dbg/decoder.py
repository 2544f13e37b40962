"""
casm_dbg/decoder.py
═══════════════════

Cairo instruction word decoding (memory word → ``Instruction``) and the
inverse encoding used to lay out programs.

Word layout (63 bits)::

    bit   0 ……… 15   16 ……… 31   32 ……… 47   48 ………………………… 62
          off_dst     off_op0     off_op1     flags (15 bits)

Offsets are stored biased by ``2**15``.  Flag bits, from bit 48 upwards:

    ┌─────┬───────────────────┬──────────────────────────────────────┐
    │ bit │ flag              │ meaning                              │
    ├─────┼───────────────────┼──────────────────────────────────────┤
    │  0  │ DST_REG           │ dst relative to fp (else ap)         │
    │  1  │ OP0_REG           │ op0 relative to fp (else ap)         │
    │ 2-4 │ OP1_IMM/FP/AP     │ op1 source (none set → [op0 + off])  │
    │ 5-6 │ RES_ADD/MUL       │ res = op0 (+|*) op1 (none → op1)     │
    │ 7-9 │ PC_ABS/REL/JNZ    │ pc update                            │
    │10-11│ AP_ADD/ADD1       │ ap update                            │
    │12-14│ CALL/RET/ASSERT   │ opcode (none → nop)                  │
    └─────┴───────────────────┴──────────────────────────────────────┘

An immediate operand lives in the word following the instruction and
requires ``off_op1 == 1``.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import InstructionDecodeError
from .felt import to_felt
from .instructions import (
    AddAp,
    AssertEq,
    BinOp,
    Call,
    CellRef,
    Deref,
    DerefOrImmediate,
    DoubleDeref,
    Immediate,
    Instruction,
    Jnz,
    Jump,
    Operation,
    Register,
    ResOperand,
    Ret,
)
from .memory import Memory

OFFSET_BIAS: int = 1 << 15
_OFFSET_MASK: int = (1 << 16) - 1
_FLAGS_SHIFT: int = 48
MAX_INSTRUCTION: int = 1 << 63

DST_REG = 1 << 0
OP0_REG = 1 << 1
OP1_IMM = 1 << 2
OP1_FP = 1 << 3
OP1_AP = 1 << 4
RES_ADD = 1 << 5
RES_MUL = 1 << 6
PC_JUMP_ABS = 1 << 7
PC_JUMP_REL = 1 << 8
PC_JNZ = 1 << 9
AP_ADD = 1 << 10
AP_ADD1 = 1 << 11
OPCODE_CALL = 1 << 12
OPCODE_RET = 1 << 13
OPCODE_ASSERT_EQ = 1 << 14


class Op1Source(Enum):
    OP0 = 0
    IMM = OP1_IMM
    FP = OP1_FP
    AP = OP1_AP


class ResLogic(Enum):
    OP1 = 0
    ADD = RES_ADD
    MUL = RES_MUL


class PcUpdate(Enum):
    REGULAR = 0
    JUMP_ABS = PC_JUMP_ABS
    JUMP_REL = PC_JUMP_REL
    JNZ = PC_JNZ


class ApUpdate(Enum):
    REGULAR = 0
    ADD = AP_ADD
    ADD1 = AP_ADD1


class Opcode(Enum):
    NOP = 0
    CALL = OPCODE_CALL
    RET = OPCODE_RET
    ASSERT_EQ = OPCODE_ASSERT_EQ


def _one_of(flags: int, enum_cls, mask: int, pc: int, group: str):
    bits = flags & mask
    try:
        return enum_cls(bits)
    except ValueError:
        raise InstructionDecodeError(pc, f"conflicting {group} flags {bits:#x}") from None


# ═══════════════════════════════════════════════════════════════════════════
#  DECODING
# ═══════════════════════════════════════════════════════════════════════════

def decode_instruction(memory: Memory, pc: int) -> Instruction:
    """
    Decode the instruction stored at *pc*.

    Raises
    ------
    InstructionDecodeError
        If the word is unset, out of range, uses an invalid flag combination,
        or needs an immediate that is not present.
    """
    word = memory[pc]
    if word is None:
        raise InstructionDecodeError(pc, "memory cell is unset")
    if word >= MAX_INSTRUCTION:
        raise InstructionDecodeError(pc, f"word {word:#x} exceeds 63 bits")

    off_dst = (word & _OFFSET_MASK) - OFFSET_BIAS
    off_op0 = ((word >> 16) & _OFFSET_MASK) - OFFSET_BIAS
    off_op1 = ((word >> 32) & _OFFSET_MASK) - OFFSET_BIAS
    flags = word >> _FLAGS_SHIFT

    dst = CellRef(Register.FP if flags & DST_REG else Register.AP, off_dst)
    op0 = CellRef(Register.FP if flags & OP0_REG else Register.AP, off_op0)
    op1_src = _one_of(flags, Op1Source, OP1_IMM | OP1_FP | OP1_AP, pc, "op1 source")
    res_logic = _one_of(flags, ResLogic, RES_ADD | RES_MUL, pc, "res logic")
    pc_update = _one_of(flags, PcUpdate, PC_JUMP_ABS | PC_JUMP_REL | PC_JNZ, pc, "pc update")
    ap_update = _one_of(flags, ApUpdate, AP_ADD | AP_ADD1, pc, "ap update")
    opcode = _one_of(flags, Opcode, OPCODE_CALL | OPCODE_RET | OPCODE_ASSERT_EQ, pc, "opcode")

    imm: Optional[int] = None
    if op1_src is Op1Source.IMM:
        if off_op1 != 1:
            raise InstructionDecodeError(pc, f"immediate operand with op1 offset {off_op1}")
        imm = memory[pc + 1]
        if imm is None:
            raise InstructionDecodeError(pc, "immediate value cell is unset")

    def deref_or_imm() -> DerefOrImmediate:
        if op1_src is Op1Source.IMM:
            return Immediate(imm)
        if op1_src is Op1Source.FP:
            return Deref(CellRef(Register.FP, off_op1))
        if op1_src is Op1Source.AP:
            return Deref(CellRef(Register.AP, off_op1))
        raise InstructionDecodeError(pc, "operand cannot be a double dereference")

    def res_operand() -> ResOperand:
        if res_logic is ResLogic.OP1:
            if op1_src is Op1Source.OP0:
                return DoubleDeref(op0, off_op1)
            return deref_or_imm()
        op = Operation.ADD if res_logic is ResLogic.ADD else Operation.MUL
        return BinOp(op, op0, deref_or_imm())

    inc_ap = ap_update is ApUpdate.ADD1

    if opcode is Opcode.ASSERT_EQ:
        if pc_update is not PcUpdate.REGULAR or ap_update is ApUpdate.ADD:
            raise InstructionDecodeError(pc, "assert_eq with non-sequential update")
        return Instruction(AssertEq(dst, res_operand()), inc_ap)

    if opcode is Opcode.CALL:
        if pc_update not in (PcUpdate.JUMP_ABS, PcUpdate.JUMP_REL):
            raise InstructionDecodeError(pc, "call without a jump pc update")
        if ap_update is not ApUpdate.REGULAR or res_logic is not ResLogic.OP1:
            raise InstructionDecodeError(pc, "call with unexpected res / ap update")
        return Instruction(Call(deref_or_imm(), pc_update is PcUpdate.JUMP_REL))

    if opcode is Opcode.RET:
        if pc_update is not PcUpdate.JUMP_ABS or ap_update is not ApUpdate.REGULAR:
            raise InstructionDecodeError(pc, "ret with unexpected pc / ap update")
        return Instruction(Ret())

    # nop opcode: the body is determined by the pc / ap updates
    if pc_update is PcUpdate.JNZ:
        if ap_update is ApUpdate.ADD or res_logic is not ResLogic.OP1:
            raise InstructionDecodeError(pc, "jnz with unexpected res / ap update")
        return Instruction(Jnz(deref_or_imm(), dst), inc_ap)
    if pc_update in (PcUpdate.JUMP_ABS, PcUpdate.JUMP_REL):
        if ap_update is ApUpdate.ADD or res_logic is not ResLogic.OP1:
            raise InstructionDecodeError(pc, "jump with unexpected res / ap update")
        return Instruction(Jump(deref_or_imm(), pc_update is PcUpdate.JUMP_REL), inc_ap)
    if ap_update is ApUpdate.ADD:
        return Instruction(AddAp(res_operand()))
    raise InstructionDecodeError(pc, "nop without jump or ap update has no CASM form")


# ═══════════════════════════════════════════════════════════════════════════
#  ENCODING
# ═══════════════════════════════════════════════════════════════════════════

# Placeholder cells for fields an instruction does not use; these match the
# values the Cairo assembler emits.
_UNUSED_FP = CellRef(Register.FP, -1)

_OP1_SOURCE_FLAG: Dict[Register, int] = {Register.FP: OP1_FP, Register.AP: OP1_AP}


def _encode_op1(operand: DerefOrImmediate) -> Tuple[int, int, Optional[int]]:
    """Return ``(op1_flags, off_op1, immediate)`` for a deref-or-immediate."""
    if isinstance(operand, Immediate):
        return OP1_IMM, 1, to_felt(operand.value)
    if isinstance(operand, Deref):
        return _OP1_SOURCE_FLAG[operand.cell.register], operand.cell.offset, None
    raise TypeError(f"expected Deref or Immediate, got {operand!r}")


def _encode_res(res: ResOperand) -> Tuple[CellRef, int, int, Optional[int]]:
    """Return ``(op0, flags, off_op1, immediate)`` for a res operand."""
    if isinstance(res, DoubleDeref):
        return res.cell, 0, res.offset, None
    if isinstance(res, BinOp):
        op1_flags, off_op1, imm = _encode_op1(res.b)
        logic = RES_ADD if res.op is Operation.ADD else RES_MUL
        return res.a, op1_flags | logic, off_op1, imm
    op1_flags, off_op1, imm = _encode_op1(res)
    return _UNUSED_FP, op1_flags, off_op1, imm


def _check_offset(offset: int) -> int:
    if not -OFFSET_BIAS <= offset < OFFSET_BIAS:
        raise ValueError(f"offset {offset} does not fit in 16 bits")
    return offset + OFFSET_BIAS


def encode_instruction(instruction: Instruction) -> List[int]:
    """Encode *instruction* into one word, or two when it has an immediate."""
    body = instruction.body
    dst = _UNUSED_FP
    op0 = _UNUSED_FP
    off_op1 = -1
    flags = 0
    imm: Optional[int] = None

    if isinstance(body, AssertEq):
        dst = body.a
        op0, flags, off_op1, imm = _encode_res(body.b)
        flags |= OPCODE_ASSERT_EQ
    elif isinstance(body, AddAp):
        op0, flags, off_op1, imm = _encode_res(body.operand)
        flags |= AP_ADD
    elif isinstance(body, Call):
        dst = CellRef(Register.AP, 0)
        op0 = CellRef(Register.AP, 1)
        flags, off_op1, imm = _encode_op1(body.target)
        flags |= OPCODE_CALL | (PC_JUMP_REL if body.relative else PC_JUMP_ABS)
    elif isinstance(body, Jnz):
        dst = body.condition
        flags, off_op1, imm = _encode_op1(body.jump_offset)
        flags |= PC_JNZ
    elif isinstance(body, Jump):
        flags, off_op1, imm = _encode_op1(body.target)
        flags |= PC_JUMP_REL if body.relative else PC_JUMP_ABS
    elif isinstance(body, Ret):
        dst = CellRef(Register.FP, -2)
        flags = OP1_FP | PC_JUMP_ABS | OPCODE_RET
    else:
        raise TypeError(f"not an instruction body: {body!r}")

    if instruction.inc_ap:
        flags |= AP_ADD1
    if dst.register is Register.FP:
        flags |= DST_REG
    if op0.register is Register.FP:
        flags |= OP0_REG

    word = (
        _check_offset(dst.offset)
        | _check_offset(op0.offset) << 16
        | _check_offset(off_op1) << 32
        | flags << _FLAGS_SHIFT
    )
    return [word] if imm is None else [word, imm]
