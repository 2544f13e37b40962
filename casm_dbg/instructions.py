"""
casm_dbg/instructions.py
════════════════════════

Decoded CASM instruction model.

    ┌─────────────────────────────────────────────────────────────────┐
    │  Operand shapes                                                 │
    │    CellRef      — [reg + off]         register-relative cell    │
    │    Deref        — [reg + off]         value of a cell           │
    │    DoubleDeref  — [[reg + off] + k]   cell addressed by a cell  │
    │    Immediate    — 42                  literal field element     │
    │    BinOp        — [reg + off] (+|*) (Deref | Immediate)         │
    │                                                                 │
    │  Instruction bodies                                             │
    │    AddAp    — ap += res                                         │
    │    AssertEq — [a] = res                                         │
    │    Call     — call rel|abs target                               │
    │    Jnz      — jmp rel offset if [cond] != 0                     │
    │    Jump     — jmp rel|abs target                                │
    │    Ret      — ret                                               │
    └─────────────────────────────────────────────────────────────────┘

``str(instruction)`` renders the same textual syntax that
``casm_dbg.assembler`` accepts.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union

from .felt import format_felt


class Register(Enum):
    AP = "ap"
    FP = "fp"

    def __str__(self) -> str:
        return self.value


class Operation(Enum):
    ADD = "+"
    MUL = "*"

    def __str__(self) -> str:
        return self.value


# ═══════════════════════════════════════════════════════════════════════════
#  OPERANDS
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class CellRef:
    """A memory cell named by a register plus a signed 16-bit offset."""
    register: Register
    offset: int = 0

    def __str__(self) -> str:
        return f"[{self.register} + {self.offset}]"


@dataclass(frozen=True, slots=True)
class Deref:
    cell: CellRef

    def __str__(self) -> str:
        return str(self.cell)


@dataclass(frozen=True, slots=True)
class DoubleDeref:
    """``[[cell] + offset]``: the stored value of *cell* is itself an address."""
    cell: CellRef
    offset: int = 0

    def __str__(self) -> str:
        return f"[{self.cell} + {self.offset}]"


@dataclass(frozen=True, slots=True)
class Immediate:
    value: int

    def __str__(self) -> str:
        return format_felt(self.value)


DerefOrImmediate = Union[Deref, Immediate]


@dataclass(frozen=True, slots=True)
class BinOp:
    op: Operation
    a: CellRef
    b: DerefOrImmediate

    def __str__(self) -> str:
        return f"{self.a} {self.op} {self.b}"


ResOperand = Union[Deref, DoubleDeref, Immediate, BinOp]


# ═══════════════════════════════════════════════════════════════════════════
#  INSTRUCTION BODIES
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class AddAp:
    operand: ResOperand
    opcode: ClassVar[str] = "add_ap"

    def __str__(self) -> str:
        return f"ap += {self.operand}"


@dataclass(frozen=True, slots=True)
class AssertEq:
    a: CellRef
    b: ResOperand
    opcode: ClassVar[str] = "assert_eq"

    def __str__(self) -> str:
        return f"{self.a} = {self.b}"


@dataclass(frozen=True, slots=True)
class Call:
    target: DerefOrImmediate
    relative: bool = True
    opcode: ClassVar[str] = "call"

    def __str__(self) -> str:
        return f"call {'rel' if self.relative else 'abs'} {self.target}"


@dataclass(frozen=True, slots=True)
class Jnz:
    jump_offset: DerefOrImmediate
    condition: CellRef
    opcode: ClassVar[str] = "jnz"

    def __str__(self) -> str:
        return f"jmp rel {self.jump_offset} if {self.condition} != 0"


@dataclass(frozen=True, slots=True)
class Jump:
    target: DerefOrImmediate
    relative: bool = True
    opcode: ClassVar[str] = "jump"

    def __str__(self) -> str:
        return f"jmp {'rel' if self.relative else 'abs'} {self.target}"


@dataclass(frozen=True, slots=True)
class Ret:
    opcode: ClassVar[str] = "ret"

    def __str__(self) -> str:
        return "ret"


InstructionBody = Union[AddAp, AssertEq, Call, Jnz, Jump, Ret]


def operand_shape(operand: Union[ResOperand, CellRef]) -> str:
    """Short name of an operand's shape, used in diagnostics."""
    if isinstance(operand, (CellRef, Deref)):
        return "deref"
    if isinstance(operand, DoubleDeref):
        return "double_deref"
    if isinstance(operand, Immediate):
        return "immediate"
    if isinstance(operand, BinOp):
        return "binop"
    raise TypeError(f"not an operand: {operand!r}")


def _uses_immediate(body: InstructionBody) -> bool:
    if isinstance(body, AddAp):
        operand = body.operand
    elif isinstance(body, AssertEq):
        operand = body.b
    elif isinstance(body, (Call, Jump)):
        operand = body.target
    elif isinstance(body, Jnz):
        operand = body.jump_offset
    else:
        return False
    if isinstance(operand, BinOp):
        operand = operand.b
    return isinstance(operand, Immediate)


@dataclass(frozen=True, slots=True)
class Instruction:
    """A decoded instruction: a body plus the optional ``ap++`` side effect."""
    body: InstructionBody
    inc_ap: bool = False

    @property
    def opcode(self) -> str:
        return self.body.opcode

    @property
    def size(self) -> int:
        """Number of memory words the encoded instruction occupies."""
        return 2 if _uses_immediate(self.body) else 1

    def __str__(self) -> str:
        suffix = ", ap++" if self.inc_ap else ""
        return f"{self.body}{suffix};"
