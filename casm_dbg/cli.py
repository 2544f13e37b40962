"""casm_dbg/cli.py — command-line driver for the trace path finder.

Usage examples
--------------
    # Find how the value 1234 flowed into the value 5678
    casm-dbg --memory-path memory.bin --trace-path trace.bin -s 1234 -t 5678

    # Shortest paths first, stop after three of them
    casm-dbg --memory-path memory.bin --trace-path trace.bin \\
        -s 0x10 -t 0x20 --strategy bfs --max-solutions 3

    # Also write the found paths as a Graphviz graph
    casm-dbg ... --dot paths.dot

Exit codes
----------
    0   Success (including "no path found").
    1   Analysis error: unsupported operand, unresolved memory cell, or a
        source / target value absent from the accessed memory.
    2   Input failure (missing or malformed memory / trace file, unwritable
        DOT file).
    130 Interrupted; paths found so far are still reported.

``python -m casm_dbg`` runs the same entry point via ``casm_dbg/__main__.py``.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from . import __version__
from .config import AnalysisConfig
from .errors import (
    CasmDbgError,
    ErrorCategory,
    ErrorCode,
    ErrorCodes,
    MalformedInputError,
)
from .felt import parse_felt
from .mappings import AddressEnd, GraphMappings
from .memory import Memory
from .render import path_to_dot, write_solution
from .search import Path as SearchPath
from .search import PathSearch, SearchStrategy, VisitPolicy
from .trace import Trace

_log = logging.getLogger("casm_dbg")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2
EXIT_INTERRUPTED: int = 130


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``casm_dbg`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("casm_dbg")
    for old in list(root.handlers):
        root.removeHandler(old)
    root.setLevel(level)
    root.addHandler(handler)


def _felt_arg(text: str) -> int:
    try:
        return parse_felt(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def _positive_int(text: str) -> int:
    try:
        value = int(text, 10)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}") from None
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value}")
    return value


def _read_input(path: Path, label: str, code: ErrorCode) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise MalformedInputError(
            f"cannot read {label} {path}: {exc.strerror}", code=code
        ) from exc


def _exit_code_for(exc: CasmDbgError) -> int:
    if exc.category in (ErrorCategory.INPUT, ErrorCategory.ASSEMBLY):
        return EXIT_INFRA
    return EXIT_ERROR


# ===========================================================================
# The analysis run
# ===========================================================================

def run_analysis(args: argparse.Namespace, out: TextIO) -> int:
    """Load inputs, build the mappings, and print every connecting path.

    Returns the exit code; library errors propagate to :func:`main`.
    """
    config = AnalysisConfig.from_namespace(args)
    problems = config.validate()
    if problems:
        for problem in problems:
            _log.error("Invalid configuration: %s", problem)
        return EXIT_INFRA

    out.write("Loading memory and trace.\n")
    memory = Memory.from_bytes(
        _read_input(Path(args.memory_path), "memory file", ErrorCodes.MALFORMED_MEMORY)
    )
    trace = Trace.from_bytes(
        _read_input(Path(args.trace_path), "trace file", ErrorCodes.MALFORMED_TRACE)
    )
    if not trace:
        raise MalformedInputError(
            f"trace file {args.trace_path} contains no steps",
            code=ErrorCodes.MALFORMED_TRACE,
        )
    _log.info("Loaded %d memory cells and %d trace steps", len(memory), len(trace))
    out.write(f"  {trace[0]!r}\n")
    out.write(f"  {trace[-1]!r}\n")

    out.write("Generating graph mappings.\n")
    mappings = GraphMappings.build(memory, trace)

    out.write("Finding initial and final values within the data.\n")
    source = mappings.select_candidates(memory, args.source_value, config.source_end, "source")
    target = mappings.select_candidates(memory, args.target_value, config.target_end, "target")
    out.write(f"  Source value found at {source}.\n")
    out.write(f"  Target value found at {target}.\n")
    out.write("\n")

    out.write("Starting search algorithm.\n")
    search = PathSearch(mappings, source, target, config.strategy, config.visit)
    out.write("\n\n")

    found: List[SearchPath] = []
    interrupted = False
    try:
        while not config.should_stop(search.solutions, search.search_steps):
            path = search.next_path(config.max_search_steps)
            if path is None:
                break
            found.append(path)
            write_solution(out, path, search.search_steps, memory, trace)
    except KeyboardInterrupt:
        interrupted = True
        _log.warning("Interrupted by user after %d search steps.", search.search_steps)

    if not search.exhausted and not interrupted:
        _log.warning(
            "Search stopped early after %d steps with %d paths queued; more solutions may exist",
            search.search_steps, search.frontier_size,
        )
    out.write(f"Done! Found {len(found)} solutions.\n")

    if args.dot:
        dot = path_to_dot(found, memory, trace, title=f"{source} -> {target}")
        try:
            Path(args.dot).write_text(dot + "\n", encoding="utf-8")
        except OSError as exc:
            raise MalformedInputError(
                f"cannot write DOT file {args.dot}: {exc.strerror}"
            ) from exc
        _log.info("Wrote %d paths to %s", len(found), args.dot)

    return EXIT_INTERRUPTED if interrupted else EXIT_OK


# ===========================================================================
# Argument parsing
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="casm-dbg",
        description=(
            "Find chains of executed CASM instructions that connect a source\n"
            "value to a target value in a recorded Cairo VM execution."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              casm-dbg --memory-path memory.bin --trace-path trace.bin -s 1 -t 0x2a
              casm-dbg --memory-path memory.bin --trace-path trace.bin -s 1 -t 2 --strategy bfs
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    inputs = parser.add_argument_group("inputs")
    inputs.add_argument(
        "--memory-path",
        required=True,
        metavar="FILE",
        help="Relocated memory file written by the Cairo VM.",
    )
    inputs.add_argument(
        "--trace-path",
        required=True,
        metavar="FILE",
        help="Relocated trace file written by the Cairo VM.",
    )
    inputs.add_argument(
        "-s", "--source-value",
        required=True,
        type=_felt_arg,
        metavar="FELT",
        help="Value the path starts from (decimal or 0x hex).",
    )
    inputs.add_argument(
        "-t", "--target-value",
        required=True,
        type=_felt_arg,
        metavar="FELT",
        help="Value the path ends at (decimal or 0x hex).",
    )

    search = parser.add_argument_group("search tuning")
    search.add_argument(
        "--strategy",
        choices=[s.value for s in SearchStrategy],
        default=SearchStrategy.DFS.value,
        help="Frontier order: bfs finds shortest paths first (default: %(default)s).",
    )
    search.add_argument(
        "--visit",
        choices=[v.value for v in VisitPolicy],
        default=VisitPolicy.PATH.value,
        help=(
            "Cycle control: 'path' enumerates every simple path, 'global' "
            "visits each node once (default: %(default)s)."
        ),
    )
    search.add_argument(
        "--source-end",
        choices=[e.value for e in AddressEnd],
        default=AddressEnd.EARLIEST.value,
        help="Which matching source address to start from (default: %(default)s).",
    )
    search.add_argument(
        "--target-end",
        choices=[e.value for e in AddressEnd],
        default=AddressEnd.LATEST.value,
        help="Which matching target address to aim for (default: %(default)s).",
    )
    search.add_argument(
        "--max-solutions",
        type=_positive_int,
        default=None,
        metavar="N",
        help="Stop after N connecting paths.",
    )
    search.add_argument(
        "--max-search-steps",
        type=_positive_int,
        default=None,
        metavar="N",
        help="Stop after popping N paths from the frontier.",
    )

    parser.add_argument(
        "--dot",
        metavar="FILE",
        default=None,
        help="Also write the found paths as a Graphviz DOT file.",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the casm-dbg CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    try:
        return run_analysis(args, sys.stdout)
    except CasmDbgError as exc:
        _log.error("%s", exc)
        return _exit_code_for(exc)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    raise SystemExit(main())
