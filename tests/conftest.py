# tests/conftest.py
"""
Shared helpers and fixtures for the casm-dbg test-suite.

Programs are written as CASM text, assembled into memory at address 0, and
"executed" by a hand-written list of register frames.  Nothing here runs a
real VM: each test states exactly which frames the trace contains.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pytest

from casm_dbg.assembler import assemble, load_program
from casm_dbg.mappings import GraphMappings
from casm_dbg.memory import Memory
from casm_dbg.trace import RegisterFrame, Trace


# ═══════════════════════════════════════════════════════════════════════════
#  BUILDERS
# ═══════════════════════════════════════════════════════════════════════════

def make_memory(
    program: str = "",
    data: Optional[Mapping[int, int]] = None,
    base: int = 0,
) -> Tuple[Memory, List[int]]:
    """Assemble *program* at *base*, add *data* cells, return (memory, pcs)."""
    cells: Dict[int, int] = {}
    pcs = load_program(cells, base, assemble(program)) if program else []
    cells.update(data or {})
    return Memory.from_cells(cells), pcs


def make_trace(pcs: Sequence[int], ap: int = 10, fp: int = 10) -> Trace:
    """One frame per pc, all sharing the same ap / fp."""
    return Trace(RegisterFrame(pc=pc, ap=ap, fp=fp) for pc in pcs)


def make_run(
    program: str,
    data: Optional[Mapping[int, int]] = None,
    ap: int = 10,
    fp: int = 10,
) -> Tuple[Memory, Trace]:
    """Memory plus a trace that executes every instruction once, in order."""
    memory, pcs = make_memory(program, data)
    return memory, make_trace(pcs, ap, fp)


def mappings_from_edges(edges: Iterable[Tuple[int, int]]) -> GraphMappings:
    """Build a ``GraphMappings`` directly from ``(step, value)`` pairs."""
    step2value: Dict[int, set] = {}
    value2step: Dict[int, set] = {}
    for step, value in edges:
        step2value.setdefault(step, set()).add(value)
        value2step.setdefault(value, set()).add(step)
    return GraphMappings(
        {s: frozenset(v) for s, v in step2value.items()},
        {v: frozenset(s) for v, s in value2step.items()},
    )


# ═══════════════════════════════════════════════════════════════════════════
#  FIXTURES
# ═══════════════════════════════════════════════════════════════════════════

SOURCE_VALUE = 100
TARGET_VALUE = 200

SCENARIO_PROGRAM = """
    [ap + 0] = 100;
    [ap + 1] = [ap + 0];
    [ap + 1] = 200;
"""


@pytest.fixture
def scenario() -> Tuple[Memory, Trace]:
    """
    Three steps with ap = fp = 10; cell 10 holds 100 and cell 11 holds 200.

        step 0 touches {10}, step 1 touches {10, 11}, step 2 touches {11}
    """
    return make_run(SCENARIO_PROGRAM, {10: SOURCE_VALUE, 11: TARGET_VALUE})


@pytest.fixture
def diamond() -> GraphMappings:
    """
    Two routes from cell 1 to cell 3::

        V1 ─ S1 ─ V3
        V1 ─ S0 ─ V2 ─ S2 ─ V3
    """
    return mappings_from_edges([(0, 1), (0, 2), (1, 1), (1, 3), (2, 2), (2, 3)])
