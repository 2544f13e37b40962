"""
assembler.py — textual CASM → ``Instruction`` objects
=====================================================

Parses the instruction syntax printed by ``str(Instruction)`` so programs and
test fixtures can be written legibly and laid out in memory::

    from casm_dbg.assembler import assemble, load_program

    program = assemble('''
        [ap + 0] = 1234, ap++;           // store an immediate
        [ap + 0] = [ap + -1] * [fp + -3];
        jmp rel -2 if [ap + 0] != 0;
        ret;
    ''')
    cells = {}
    pcs = load_program(cells, base=0, instructions=program)

Depends on:
    - parsimonious (PEG parser)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, MutableMapping, Sequence

from parsimonious.exceptions import ParseError, VisitationError
from parsimonious.grammar import Grammar
from parsimonious.nodes import Node, NodeVisitor

from .decoder import OFFSET_BIAS, encode_instruction
from .errors import AssemblyError, ErrorCodes
from .felt import to_felt
from .instructions import (
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

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  PART 1 — CASM GRAMMAR (Parsimonious PEG)
# ═══════════════════════════════════════════════════════════════════

CASM_GRAMMAR = Grammar(r'''
    program          = ws instruction_line*
    instruction_line = instruction ws

    instruction      = body ap_inc? ws ";"
    ap_inc           = ws "," ws "ap++"

    # jnz must be tried before jump: both start with "jmp"
    body             = assert_eq / call / jnz / jump / add_ap / ret

    assert_eq        = cell_ref ws "=" ws res_operand
    call             = "call" ws1 jump_mode ws1 deref_or_imm
    jnz              = "jmp" ws1 "rel" ws1 deref_or_imm ws1 "if" ws1 cell_ref ws "!=" ws "0"
    jump             = "jmp" ws1 jump_mode ws1 deref_or_imm
    add_ap           = "ap" ws "+=" ws res_operand
    ret              = "ret"
    jump_mode        = "rel" / "abs"

    res_operand      = bin_op / double_deref / cell_ref / immediate
    bin_op           = cell_ref ws bin_operator ws deref_or_imm
    bin_operator     = "+" / "*"
    double_deref     = "[" ws cell_ref ws offset? "]"
    deref_or_imm     = cell_ref / immediate

    cell_ref         = "[" ws register ws offset? "]"
    offset           = offset_sign ws integer ws
    offset_sign      = "+" / "-"
    register         = "ap" / "fp"

    # same token as integer; kept separate so the rule keeps its own name
    immediate        = ~r"-?(0x[0-9a-fA-F]+|[0-9]+)"
    integer          = ~r"-?(0x[0-9a-fA-F]+|[0-9]+)"

    ws               = (~r"\s+" / comment)*
    ws1              = ~r"\s+"
    comment          = ~r"//[^\n]*"
''')


# ═══════════════════════════════════════════════════════════════════
#  PART 2 — VISITOR (Parse Tree → Instruction)
# ═══════════════════════════════════════════════════════════════════

def _optional(value: Any, default: Any) -> Any:
    """Unwrap a ``rule?`` child: ``[result]`` when matched, a bare Node otherwise."""
    if isinstance(value, list) and value:
        return value[0]
    return default


def _parse_int(text: str) -> int:
    negative = text.startswith("-")
    digits = text.lstrip("-")
    value = int(digits, 16) if digits.startswith("0x") else int(digits, 10)
    return -value if negative else value


def _wrap(operand: Any) -> Any:
    return Deref(operand) if isinstance(operand, CellRef) else operand


class CasmBuilder(NodeVisitor):
    """Transforms a Parsimonious parse tree into ``Instruction`` objects."""

    unwrapped_exceptions = (AssemblyError,)

    def generic_visit(self, node, visited_children):
        return visited_children or node

    def visit_program(self, node, visited_children):
        _, lines = visited_children
        return lines if isinstance(lines, list) else []

    def visit_instruction_line(self, node, visited_children):
        return visited_children[0]

    def visit_instruction(self, node, visited_children):
        body = visited_children[0]
        inc_ap = bool(node.children[1].text)
        if inc_ap and isinstance(body, (AddAp, Call, Ret)):
            raise AssemblyError(
                f"'{body.opcode}' cannot be combined with ap++",
                *_position(node),
            )
        return Instruction(body, inc_ap)

    def visit_body(self, node, visited_children):
        return visited_children[0]

    def visit_assert_eq(self, node, visited_children):
        a, _, _, _, b = visited_children
        return AssertEq(a, b)

    def visit_call(self, node, visited_children):
        _, _, mode, _, target = visited_children
        return Call(target, relative=mode == "rel")

    def visit_jnz(self, node, visited_children):
        jump_offset = visited_children[4]
        condition = visited_children[8]
        return Jnz(jump_offset, condition)

    def visit_jump(self, node, visited_children):
        _, _, mode, _, target = visited_children
        return Jump(target, relative=mode == "rel")

    def visit_add_ap(self, node, visited_children):
        return AddAp(visited_children[4])

    def visit_ret(self, node, visited_children):
        return Ret()

    def visit_jump_mode(self, node, visited_children):
        return node.text

    def visit_res_operand(self, node, visited_children):
        return _wrap(visited_children[0])

    def visit_deref_or_imm(self, node, visited_children):
        return _wrap(visited_children[0])

    def visit_bin_op(self, node, visited_children):
        a, _, op, _, b = visited_children
        return BinOp(Operation(op), a, b)

    def visit_bin_operator(self, node, visited_children):
        return node.text

    def visit_double_deref(self, node, visited_children):
        cell = visited_children[2]
        offset = _optional(visited_children[4], 0)
        return DoubleDeref(cell, self._offset(offset, node))

    def visit_cell_ref(self, node, visited_children):
        register = visited_children[2]
        offset = _optional(visited_children[4], 0)
        return CellRef(register, self._offset(offset, node))

    def visit_offset(self, node, visited_children):
        sign, _, value, _ = visited_children
        return -value if sign == "-" else value

    def visit_offset_sign(self, node, visited_children):
        return node.text

    def visit_register(self, node, visited_children):
        return Register(node.text)

    def visit_immediate(self, node, visited_children):
        return Immediate(to_felt(_parse_int(node.text)))

    def visit_integer(self, node, visited_children):
        return _parse_int(node.text)

    @staticmethod
    def _offset(value: int, node: Node) -> int:
        if not -OFFSET_BIAS <= value < OFFSET_BIAS:
            raise AssemblyError(
                f"offset {value} does not fit in 16 bits",
                *_position(node),
                code=ErrorCodes.ASSEMBLY_RANGE,
            )
        return value


def _position(node: Node) -> tuple:
    """1-based (line, column) of *node* within its full source text."""
    before = node.full_text[:node.start]
    line = before.count("\n") + 1
    column = node.start - (before.rfind("\n") + 1) + 1
    return line, column


# ═══════════════════════════════════════════════════════════════════
#  PART 3 — PUBLIC API
# ═══════════════════════════════════════════════════════════════════

def assemble(source: str) -> List[Instruction]:
    """
    Parse CASM *source* into instructions.

    Raises
    ------
    AssemblyError
        On syntax errors (with line/column) and out-of-range offsets.
    """
    try:
        tree = CASM_GRAMMAR.parse(source)
    except ParseError as exc:
        raise AssemblyError(
            f"unexpected input {exc.text[exc.pos:exc.pos + 20]!r}",
            exc.line(),
            exc.column(),
        ) from exc

    try:
        instructions = CasmBuilder().visit(tree)
    except VisitationError as exc:
        raise AssemblyError(str(exc)) from exc

    logger.debug("Assembled %d instructions", len(instructions))
    return instructions


def assemble_one(source: str) -> Instruction:
    """Parse exactly one instruction; the trailing ``;`` is optional."""
    text = source.strip()
    if not text.endswith(";"):
        text += ";"
    instructions = assemble(text)
    if len(instructions) != 1:
        raise AssemblyError(f"expected one instruction, got {len(instructions)}")
    return instructions[0]


def load_program(
    cells: MutableMapping[int, int],
    base: int,
    instructions: Sequence[Instruction],
) -> List[int]:
    """
    Write encoded *instructions* into *cells* starting at address *base*.

    Returns the pc of every instruction, in order.
    """
    pcs: List[int] = []
    pc = base
    for instruction in instructions:
        pcs.append(pc)
        for word in encode_instruction(instruction):
            cells[pc] = word
            pc += 1
    return pcs


def program_listing(instructions: Sequence[Instruction], base: int = 0) -> Dict[int, str]:
    """Map each instruction's pc to its rendered text."""
    listing: Dict[int, str] = {}
    pc = base
    for instruction in instructions:
        listing[pc] = str(instruction)
        pc += instruction.size
    return listing
