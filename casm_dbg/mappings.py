"""
casm_dbg/mappings.py
════════════════════

Step ↔ memory-cell reference graph for a recorded Cairo execution.

Every executed step references a handful of memory cells: the cells its
operands name, the cell a double dereference lands on, the cell holding a
jump target.  ``GraphMappings`` indexes those references in both directions:

    step2value : StepId  → frozenset[ValueId]     (cells touched by a step)
    value2step : ValueId → frozenset[StepId]      (steps touching a cell)

Both maps come from the same edge set, so for every step ``s`` and cell ``v``

    v ∈ step2value[s]   ⇔   s ∈ value2step[v]

and neither is modified after ``GraphMappings.build`` returns.

Usage example::

    from casm_dbg.mappings import AddressEnd, GraphMappings

    mappings = GraphMappings.build(memory, trace)
    source = mappings.select_candidates(memory, 1234, AddressEnd.EARLIEST)
    for step in sorted(mappings.steps_of(source)):
        print(step, sorted(mappings.values_of(step)))
"""

from __future__ import annotations

import logging
from collections import defaultdict
from enum import Enum
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterator,
    List,
    Mapping,
    NewType,
    Set,
    Tuple,
)

from .decoder import decode_instruction
from .errors import (
    CasmDbgError,
    UnresolvedMemoryCellError,
    UnsupportedOperandError,
    ValueNotFoundError,
)
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
    Register,
    Ret,
    operand_shape,
)
from .memory import Memory, is_address, wrapping_add
from .trace import RegisterFrame, Trace

logger = logging.getLogger(__name__)

StepId = NewType("StepId", int)
ValueId = NewType("ValueId", int)

Decoder = Callable[[Memory, int], Instruction]


# ═══════════════════════════════════════════════════════════════════════════
#  PART 1 — ADDRESS RESOLUTION
# ═══════════════════════════════════════════════════════════════════════════

def resolve_cell_ref(cell: CellRef, frame: RegisterFrame) -> int:
    """Absolute address of *cell* under *frame*, wrapping modulo ``2**64``."""
    base = frame.ap if cell.register is Register.AP else frame.fp
    return wrapping_add(base, cell.offset)


# ═══════════════════════════════════════════════════════════════════════════
#  PART 2 — MEMORY REFERENCE EXTRACTION
# ═══════════════════════════════════════════════════════════════════════════

def iter_memory_references(
    memory: Memory,
    frame: RegisterFrame,
    instruction: Instruction,
    callback: Callable[[int], None],
) -> None:
    """
    Report every address *instruction* references while executing in *frame*.

    Addresses are passed to *callback* as they are discovered; the same
    address may be reported more than once.

    Raises
    ------
    UnsupportedOperandError
        For ``ap += <cell>``, ``call <cell>`` and ``jmp rel <cell> if …``.
    UnresolvedMemoryCellError
        When a double dereference reads an unset cell or a non-address value.
    """

    def process_cell_ref(cell: CellRef) -> int:
        address = resolve_cell_ref(cell, frame)
        callback(address)
        return address

    body = instruction.body

    if isinstance(body, AddAp):
        if not isinstance(body.operand, Immediate):
            raise UnsupportedOperandError(body.opcode, operand_shape(body.operand))

    elif isinstance(body, AssertEq):
        process_cell_ref(body.a)
        b = body.b
        if isinstance(b, Deref):
            process_cell_ref(b.cell)
        elif isinstance(b, DoubleDeref):
            pointer = process_cell_ref(b.cell)
            callback(_load_address(memory, pointer))
        elif isinstance(b, BinOp):
            process_cell_ref(b.a)
            if isinstance(b.b, Deref):
                process_cell_ref(b.b.cell)
        elif not isinstance(b, Immediate):
            raise TypeError(f"not a res operand: {b!r}")

    elif isinstance(body, Call):
        if isinstance(body.target, Deref):
            raise UnsupportedOperandError(body.opcode, operand_shape(body.target))

    elif isinstance(body, Jnz):
        process_cell_ref(body.condition)
        if isinstance(body.jump_offset, Deref):
            raise UnsupportedOperandError(body.opcode, operand_shape(body.jump_offset))

    elif isinstance(body, Jump):
        if isinstance(body.target, Deref):
            process_cell_ref(body.target.cell)

    elif not isinstance(body, Ret):
        raise TypeError(f"not an instruction body: {body!r}")


def _load_address(memory: Memory, pointer: int) -> int:
    # Only the pointer value itself is reported, not pointer + offset.
    value = memory[pointer]
    if value is None:
        raise UnresolvedMemoryCellError(pointer, "is unset")
    if not is_address(value):
        raise UnresolvedMemoryCellError(
            pointer, f"holds {value}, which is not a valid address"
        )
    return value


def memory_references(
    memory: Memory,
    frame: RegisterFrame,
    instruction: Instruction,
) -> List[int]:
    """Collect the output of ``iter_memory_references`` in discovery order."""
    found: List[int] = []
    iter_memory_references(memory, frame, instruction, found.append)
    return found


# ═══════════════════════════════════════════════════════════════════════════
#  PART 3 — GRAPH MAPPINGS
# ═══════════════════════════════════════════════════════════════════════════

class AddressEnd(Enum):
    """Which matching address ``select_candidates`` returns."""
    EARLIEST = "earliest"
    LATEST = "latest"


class GraphMappings:
    """
    Bidirectional step/value index over one (memory, trace) pair.

    Construction is done via ``GraphMappings.build(memory, trace)``.
    """

    __slots__ = ("_step2value", "_value2step", "_edge_count")

    def __init__(
        self,
        step2value: Mapping[int, FrozenSet[int]],
        value2step: Mapping[int, FrozenSet[int]],
    ) -> None:
        self._step2value: Mapping[StepId, FrozenSet[ValueId]] = MappingProxyType(dict(step2value))
        self._value2step: Mapping[ValueId, FrozenSet[StepId]] = MappingProxyType(dict(value2step))
        self._edge_count = sum(len(v) for v in self._step2value.values())

    # ── Construction ──────────────────────────────────────────────────

    @classmethod
    def build(
        cls,
        memory: Memory,
        trace: Trace,
        decoder: Decoder = decode_instruction,
    ) -> "GraphMappings":
        """
        Decode every step and index the cells it references.

        All-or-nothing: any decode or extraction failure propagates (tagged
        with the failing step) and no mappings object is produced.
        """
        step2value: Dict[int, Set[int]] = defaultdict(set)
        value2step: Dict[int, Set[int]] = defaultdict(set)

        for step, frame in enumerate(trace):
            def insert(value: int, step: int = step) -> None:
                step2value[step].add(value)
                value2step[value].add(step)

            try:
                instruction = decoder(memory, frame.pc)
                iter_memory_references(memory, frame, instruction, insert)
            except CasmDbgError as exc:
                logger.debug("Mapping failed at step %d (%r): %s", step, frame, exc.message)
                raise exc.with_step(step)

        mappings = cls(
            {s: frozenset(v) for s, v in step2value.items()},
            {v: frozenset(s) for v, s in value2step.items()},
        )
        logger.info(
            "Built mappings: %d steps, %d values, %d edges",
            mappings.step_count, mappings.value_count, mappings.edge_count,
        )
        return mappings

    # ── Properties ────────────────────────────────────────────────────

    @property
    def step2value(self) -> Mapping[StepId, FrozenSet[ValueId]]:
        return self._step2value

    @property
    def value2step(self) -> Mapping[ValueId, FrozenSet[StepId]]:
        return self._value2step

    @property
    def step_count(self) -> int:
        return len(self._step2value)

    @property
    def value_count(self) -> int:
        return len(self._value2step)

    @property
    def edge_count(self) -> int:
        return self._edge_count

    # ── Lookup ────────────────────────────────────────────────────────

    def values_of(self, step: int) -> FrozenSet[ValueId]:
        """Cells referenced by *step*; ``KeyError`` if it has none recorded."""
        try:
            return self._step2value[step]
        except KeyError:
            raise KeyError(f"step {step} has no recorded memory references") from None

    def steps_of(self, value: int) -> FrozenSet[StepId]:
        """Steps referencing cell *value*; ``KeyError`` if it was never touched."""
        try:
            return self._value2step[value]
        except KeyError:
            raise KeyError(f"memory cell {value} is not referenced by any step") from None

    def has_step(self, step: int) -> bool:
        return step in self._step2value

    def has_value(self, value: int) -> bool:
        return value in self._value2step

    def edges(self) -> Iterator[Tuple[StepId, ValueId]]:
        """All ``(step, value)`` edges, sorted."""
        for step in sorted(self._step2value):
            for value in sorted(self._step2value[step]):
                yield step, value

    # ── Candidate selection ───────────────────────────────────────────

    def select_candidates(
        self,
        memory: Memory,
        literal: int,
        end: AddressEnd = AddressEnd.EARLIEST,
        role: str = "value",
    ) -> ValueId:
        """
        Referenced address holding *literal*: the lowest for
        ``AddressEnd.EARLIEST``, the highest for ``AddressEnd.LATEST``.

        Raises ``ValueNotFoundError`` if no referenced cell holds it.
        """
        matches = [v for v in self._value2step if memory[v] == literal]
        if not matches:
            error = ValueNotFoundError(literal, role)
            untouched = next((a for a, v in memory.items() if v == literal), None)
            if untouched is not None:
                error.with_hint(f"cell {untouched} holds {literal} but no executed step touches it")
            raise error
        chosen = min(matches) if end is AddressEnd.EARLIEST else max(matches)
        logger.debug(
            "%d cells hold %d; picked %s address %d",
            len(matches), literal, end.value, chosen,
        )
        return chosen

    # ── Summary ───────────────────────────────────────────────────────

    def summary(self) -> Dict[str, Any]:
        """Return a dictionary summarising graph statistics."""
        busiest = max(self._value2step.items(), key=lambda kv: (len(kv[1]), -kv[0]), default=None)
        return {
            "steps": self.step_count,
            "values": self.value_count,
            "edges": self.edge_count,
            "busiest_value": busiest[0] if busiest else None,
            "busiest_value_steps": len(busiest[1]) if busiest else 0,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GraphMappings):
            return NotImplemented
        return dict(self._step2value) == dict(other._step2value)

    def __repr__(self) -> str:
        return (
            f"GraphMappings(steps={self.step_count}, "
            f"values={self.value_count}, edges={self.edge_count})"
        )


def build_mappings(
    memory: Memory,
    trace: Trace,
    decoder: Decoder = decode_instruction,
) -> GraphMappings:
    return GraphMappings.build(memory, trace, decoder)


def select_candidates(
    mappings: GraphMappings,
    memory: Memory,
    literal: int,
    end: AddressEnd = AddressEnd.EARLIEST,
    role: str = "value",
) -> ValueId:
    return mappings.select_candidates(memory, literal, end, role)
