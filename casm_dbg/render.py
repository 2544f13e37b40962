"""
casm_dbg/render.py
══════════════════

Human-readable output for connecting paths.

Text form, one block per node::

    [ap + 1] = [ap + 0];                       ← Step: decoded instruction
        RegisterFrame(pc=2, ap=10, fp=10)      ←       its register frame
      [11] = 1234                              ← Value: address = contents
                                               ←        blank separator

DOT form mirrors the dependency-graph exporter: steps are boxes, values are
ellipses, and edges follow path order.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence, Set, TextIO, Tuple

from .decoder import decode_instruction
from .errors import CasmDbgError
from .instructions import Instruction
from .memory import Memory
from .search import NodeId, NodeKind, Path, path_steps
from .trace import Trace

Decoder = Callable[[Memory, int], Instruction]


def _describe_instruction(memory: Memory, pc: int, decoder: Decoder) -> str:
    try:
        return str(decoder(memory, pc))
    except CasmDbgError as exc:
        return f"<undecodable instruction at pc={pc}: {exc.message}>"


def _describe_value(memory: Memory, address: int) -> str:
    value = memory[address]
    return "<unset>" if value is None else str(value)


def format_node(
    node: NodeId,
    memory: Memory,
    trace: Trace,
    decoder: Decoder = decode_instruction,
) -> List[str]:
    """Text lines for one path node."""
    if node.kind is NodeKind.STEP:
        frame = trace[node.index]
        return [
            _describe_instruction(memory, frame.pc, decoder),
            f"    {frame!r}",
        ]
    return [f"  [{node.index}] = {_describe_value(memory, node.index)}", ""]


def format_path(
    path: Path,
    memory: Memory,
    trace: Trace,
    decoder: Decoder = decode_instruction,
) -> List[str]:
    lines: List[str] = []
    for node in path:
        lines.extend(format_node(node, memory, trace, decoder))
    return lines


def write_solution(
    stream: TextIO,
    path: Path,
    search_steps: int,
    memory: Memory,
    trace: Trace,
    decoder: Decoder = decode_instruction,
) -> None:
    """Write one found path the way the CLI reports it."""
    stream.write(f"Found solution at step {search_steps}.\n")
    stream.write(f"Connecting path (spans {path_steps(path)} steps):\n")
    for line in format_path(path, memory, trace, decoder):
        stream.write(line + "\n")
    stream.write("\n")


# ─────────────────────────────────────────────────────────────────────────
#  DOT export
# ─────────────────────────────────────────────────────────────────────────

def _dot_escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def path_to_dot(
    paths: Sequence[Path],
    memory: Memory,
    trace: Trace,
    title: str = "connecting paths",
    highlight: Optional[Set[NodeId]] = None,
    decoder: Decoder = decode_instruction,
) -> str:
    """
    Export *paths* in Graphviz DOT format.

    Parameters
    ----------
    paths : Sequence[Path]
        Paths to draw; shared nodes and edges are drawn once.
    highlight : Optional[Set[NodeId]]
        Nodes to fill yellow (the first and last node of each path by default).
    """
    if highlight is None:
        highlight = {p[0] for p in paths if p} | {p[-1] for p in paths if p}

    lines: List[str] = [
        f'digraph "{_dot_escape(title)}" {{',
        '  rankdir=TB;',
        '  node [fontname="Courier", fontsize=10];',
        '  edge [fontname="Courier", fontsize=8];',
    ]

    seen_nodes: Dict[NodeId, str] = {}
    seen_edges: Set[Tuple[str, str]] = set()

    for path in paths:
        for node in path:
            if node in seen_nodes:
                continue
            name = f"{node.kind.value[0]}{node.index}"
            seen_nodes[node] = name
            if node.kind is NodeKind.STEP:
                frame = trace[node.index]
                label = (
                    f"step {node.index}\\n"
                    f"{_dot_escape(_describe_instruction(memory, frame.pc, decoder))}\\n"
                    f"pc={frame.pc} ap={frame.ap} fp={frame.fp}"
                )
                shape = "box"
            else:
                label = f"[{node.index}] = {_describe_value(memory, node.index)}"
                shape = "ellipse"
            style = ', style="filled", fillcolor="yellow"' if node in highlight else ""
            lines.append(f'  {name} [label="{label}", shape="{shape}"{style}];')

        for src, dst in zip(path, path[1:]):
            edge = (seen_nodes[src], seen_nodes[dst])
            if edge in seen_edges:
                continue
            seen_edges.add(edge)
            lines.append(f"  {edge[0]} -> {edge[1]};")

    lines.append("}")
    return "\n".join(lines)
