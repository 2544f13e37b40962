# casm_dbg/errors.py
"""
Error types for the casm-dbg analysis pipeline.

Every failure in this package is fatal for the run that raised it: the tool
is a single-pass offline analysis, so errors carry enough structure for the
CLI to report them and pick an exit code, and nothing more.

Error Hierarchy:
────────────────
┌─────────────────────────────────────────────────────────────────────────┐
│  CasmDbgError (base)                                                    │
│  ├── MalformedInputError        - memory / trace decoding failures      │
│  │   └── InstructionDecodeError - invalid instruction word at a pc      │
│  ├── AssemblyError              - CASM text syntax errors               │
│  ├── UnsupportedOperandError    - operand shape not handled             │
│  ├── UnresolvedMemoryCellError  - double-deref pointer unusable         │
│  └── ValueNotFoundError         - literal absent from accessed memory   │
└─────────────────────────────────────────────────────────────────────────┘

Error Codes:
────────────
Codes follow the pattern CDBG-NNNN:
  - 1000-1499: Input decoding errors
  - 1500-1999: Assembly errors
  - 2000-2999: Reference extraction errors
  - 3000-3999: Value selection errors
"""

from __future__ import annotations

from enum import Enum, unique
from typing import Any, Optional


@unique
class ErrorCategory(Enum):
    """Coarse classification, used by the CLI to choose an exit code."""

    INPUT = "input"
    ASSEMBLY = "assembly"
    EXTRACTION = "extraction"
    SELECTION = "selection"


class ErrorCode:
    """A structured ``CDBG-NNNN`` error code."""

    __slots__ = ("prefix", "number", "category")

    def __init__(self, number: int, category: ErrorCategory, prefix: str = "CDBG") -> None:
        self.prefix = prefix
        self.number = number
        self.category = category

    @property
    def code(self) -> str:
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.category.name})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class ErrorCodes:
    """Predefined error codes."""

    MALFORMED_MEMORY = ErrorCode(1001, ErrorCategory.INPUT)
    MALFORMED_TRACE = ErrorCode(1002, ErrorCategory.INPUT)
    INVALID_INSTRUCTION = ErrorCode(1010, ErrorCategory.INPUT)

    ASSEMBLY_SYNTAX = ErrorCode(1501, ErrorCategory.ASSEMBLY)
    ASSEMBLY_RANGE = ErrorCode(1502, ErrorCategory.ASSEMBLY)

    UNSUPPORTED_OPERAND = ErrorCode(2001, ErrorCategory.EXTRACTION)
    UNRESOLVED_MEMORY_CELL = ErrorCode(2002, ErrorCategory.EXTRACTION)

    VALUE_NOT_FOUND = ErrorCode(3001, ErrorCategory.SELECTION)


# ═══════════════════════════════════════════════════════════════════════════
# EXCEPTION CLASSES
# ═══════════════════════════════════════════════════════════════════════════

class CasmDbgError(Exception):
    """
    Base exception for all casm-dbg errors.

    Attributes
    ----------
    code : ErrorCode
    hint : str
        Optional remediation text appended to the rendered message.
    step : Optional[int]
        Trace step being processed when the error was raised, if known.
    """

    default_code: ErrorCode = ErrorCodes.MALFORMED_MEMORY

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        hint: str = "",
        step: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.hint = hint
        self.step = step

    @property
    def category(self) -> ErrorCategory:
        return self.code.category

    def with_step(self, step: int) -> "CasmDbgError":
        """Record the failing trace step (only the first one sticks)."""
        if self.step is None:
            self.step = step
        return self

    def with_hint(self, hint: str) -> "CasmDbgError":
        self.hint = hint
        return self

    def __str__(self) -> str:
        where = f" (at step {self.step})" if self.step is not None else ""
        text = f"{self.code}: {self.message}{where}"
        if self.hint:
            text += f"\n  hint: {self.hint}"
        return text


# ───────────────────────────────────────────────────────────────────────────
# INPUT ERRORS
# ───────────────────────────────────────────────────────────────────────────

class MalformedInputError(CasmDbgError):
    """Memory or trace data could not be decoded."""

    default_code = ErrorCodes.MALFORMED_MEMORY


class InstructionDecodeError(MalformedInputError):
    """The word at *pc* is not a decodable CASM instruction."""

    default_code = ErrorCodes.INVALID_INSTRUCTION

    def __init__(self, pc: int, reason: str, **kwargs: Any) -> None:
        super().__init__(f"cannot decode instruction at pc={pc}: {reason}", **kwargs)
        self.pc = pc
        self.reason = reason


class AssemblyError(CasmDbgError):
    """CASM source text failed to parse."""

    default_code = ErrorCodes.ASSEMBLY_SYNTAX

    def __init__(
        self,
        message: str,
        line: int = 0,
        column: int = 0,
        **kwargs: Any,
    ) -> None:
        if line:
            message = f"line {line}, column {column}: {message}"
        super().__init__(message, **kwargs)
        self.line = line
        self.column = column


# ───────────────────────────────────────────────────────────────────────────
# ANALYSIS ERRORS
# ───────────────────────────────────────────────────────────────────────────

class UnsupportedOperandError(CasmDbgError):
    """An instruction uses an operand shape the extractor does not handle."""

    default_code = ErrorCodes.UNSUPPORTED_OPERAND

    def __init__(self, opcode: str, operand: str, **kwargs: Any) -> None:
        kwargs.setdefault("hint", "this operand shape is not tracked; the trace cannot be mapped")
        super().__init__(f"unsupported operand for {opcode}: {operand}", **kwargs)
        self.opcode = opcode
        self.operand = operand


class UnresolvedMemoryCellError(CasmDbgError):
    """A double-dereference pointer cell is unset or not an address."""

    default_code = ErrorCodes.UNRESOLVED_MEMORY_CELL

    def __init__(self, address: int, reason: str, **kwargs: Any) -> None:
        super().__init__(f"memory cell [{address}] {reason}", **kwargs)
        self.address = address
        self.reason = reason


class ValueNotFoundError(CasmDbgError):
    """No referenced memory cell holds the requested literal."""

    default_code = ErrorCodes.VALUE_NOT_FOUND

    def __init__(self, value: int, role: str = "value", **kwargs: Any) -> None:
        super().__init__(
            f"{role.capitalize()} value {value} not found within accessed memory.",
            **kwargs,
        )
        self.value = value
        self.role = role
