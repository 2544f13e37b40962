"""
casm_dbg — data-flow path finder for recorded Cairo VM executions
=================================================================

Given the relocated memory and trace of a Cairo program run, ``casm_dbg``
indexes which memory cells every executed instruction touched and searches
that step/cell graph for chains connecting one value to another.

Core modules
------------
felt
    Field-element helpers (``P = 2**251 + 17 * 2**192 + 1``).
memory, trace
    Loaders for the cairo-vm binary memory and trace files.
instructions, decoder, assembler
    CASM instruction model, word decoding/encoding, and a text assembler.
mappings
    Memory reference extraction and the ``GraphMappings`` index.
search
    Resumable BFS / DFS path enumeration.
render, cli
    Text and DOT output, and the ``casm-dbg`` command.

Quick start
-----------
>>> from casm_dbg import AddressEnd, GraphMappings, Memory, PathSearch, Trace
>>> memory, trace = Memory.load("memory.bin"), Trace.load("trace.bin")
>>> mappings = GraphMappings.build(memory, trace)
>>> source = mappings.select_candidates(memory, 1234)
>>> target = mappings.select_candidates(memory, 5678, AddressEnd.LATEST)
>>> path = PathSearch(mappings, source, target).next_path()

Package layout
--------------
::

    casm_dbg/
    ├── __init__.py            ← this file
    ├── __main__.py
    ├── felt.py
    ├── errors.py
    ├── memory.py
    ├── trace.py
    ├── instructions.py
    ├── decoder.py
    ├── assembler.py
    ├── mappings.py
    ├── search.py
    ├── config.py
    ├── render.py
    └── cli.py
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__license__ = "MIT"
__all__: List[str] = []          # populated below

_log = logging.getLogger(__name__)
_log.addHandler(logging.NullHandler())

# ---------------------------------------------------------------------------
# Re-export registry: (module_name → names to bind at package level)
# ---------------------------------------------------------------------------

_EXPORTS = {
    "felt": [
        "PRIME",
        "parse_felt",
        "format_felt",
    ],
    "errors": [
        "CasmDbgError",
        "MalformedInputError",
        "InstructionDecodeError",
        "AssemblyError",
        "UnsupportedOperandError",
        "UnresolvedMemoryCellError",
        "ValueNotFoundError",
    ],
    "memory": [
        "Memory",
    ],
    "trace": [
        "RegisterFrame",
        "Trace",
    ],
    "instructions": [
        "Instruction",
    ],
    "decoder": [
        "decode_instruction",
        "encode_instruction",
    ],
    "assembler": [
        "assemble",
        "load_program",
    ],
    "mappings": [
        "AddressEnd",
        "GraphMappings",
        "build_mappings",
        "memory_references",
        "select_candidates",
    ],
    "search": [
        "NodeId",
        "PathSearch",
        "SearchStrategy",
        "VisitPolicy",
        "run_search",
    ],
    "config": [
        "AnalysisConfig",
    ],
}


def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace."""
    mod = importlib.import_module(f"{__name__}.{module_rel_name}")
    current_module = sys.modules[__name__]
    for name in names:
        if not hasattr(mod, name):
            raise AttributeError(f"casm_dbg.{module_rel_name} does not export '{name}'")
        setattr(current_module, name, getattr(mod, name))
        __all__.append(name)


for _module_name, _names in _EXPORTS.items():
    _import_names(_module_name, _names)

del _module_name, _names
