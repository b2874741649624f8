"""
GPMG Error Hierarchy
====================

This module defines the exception hierarchy for the whole generator.
All exceptions inherit from GpmgError, allowing callers to catch every
generator-related error with a single except clause if desired.

Exception Hierarchy
-------------------
GpmgError (base)
├── ConfigurationError - invalid processor configuration
├── ParseError (instruction text)
│   └── MalformedLineError - line lacks an opcode or mnemonic
├── CombineError (combining passes)
│   ├── InconsistentImmediatePlacementError - literal not at one bit slice
│   ├── InconsistentRegisterPlacementError - register selector collision
│   └── RegisterGroupTooSmallError - register group of one member
└── LayoutError (token layout)
    ├── OverlappingFieldsError - two fields share instruction bits
    ├── FieldWidthMismatchError - attach table width != slice width
    └── UnknownRegisterReferenceError - attach names an unknown register

Design Philosophy
-----------------
Parse errors capture the source location (filename, line) so they can be
reported the way a compiler reports them:

    opcodes.txt:15: error: missing mnemonic after opcode '0x1f'
        0x1f
    hint: each line needs an opcode followed by a mnemonic

Structural errors (combining and layout) carry the instruction index,
mnemonic and bit positions involved. They are never recovered from: a
partially generalized model would misrepresent the instruction set, so
they propagate to the top-level run as a single failure.
"""

from dataclasses import dataclass
from typing import Optional, Sequence


# =============================================================================
# Base Exception Class
# =============================================================================

class GpmgError(Exception):
    """
    Base exception for all generator errors.

        try:
            generator.run(lines)
        except GpmgError as e:
            print(f"Error: {e}")
    """
    pass


class ConfigurationError(GpmgError):
    """
    Invalid processor configuration.

    Raised when the endianness is not "big" or "little", or when the
    alignment or bitness is not a positive integer.
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    A line in the instruction-set description, for error reporting.

    Attributes:
        filename: Name of the source file (or "<input>" for in-memory text)
        line: Line number (1-indexed)
    """
    filename: str
    line: int

    def __str__(self) -> str:
        return f"{self.filename}:{self.line}"


# =============================================================================
# Parse Exceptions
# =============================================================================

class ParseError(GpmgError):
    """
    Base exception for instruction text errors.

    Attributes:
        message: The error description
        location: Where in the source the error occurred (optional)
        hint: A suggestion for fixing the error (optional)
        source_line: The offending source text (optional)
    """

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = []

        if self.location:
            parts.append(f"{self.location}: error: {self.message}")
        else:
            parts.append(f"error: {self.message}")

        if self.source_line is not None:
            parts.append(f"    {self.source_line}")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)


class MalformedLineError(ParseError):
    """
    A source line cannot be split into an opcode and a mnemonic.

    Also raised when the opcode column is not a binary or hex literal,
    or when its value does not fit the declared width.

    Examples:
        0x1f              ; no mnemonic
        zz NOP            ; opcode is not a number
        0x1ff/8 NOP       ; value needs 9 bits
    """
    pass


# =============================================================================
# Combining Exceptions
# =============================================================================

def _format_bits(bits: Sequence[int]) -> str:
    """Format bit positions MSB first, e.g. 'bits 7,4,0'."""
    if not bits:
        return "no bits"
    return "bits " + ",".join(str(b) for b in sorted(bits, reverse=True))


class CombineError(GpmgError):
    """
    Base exception for structural problems found while combining.

    Attributes:
        mnemonic: Mnemonic of the instruction group
        indices: Source indices of the group members
    """

    def __init__(self, message: str, mnemonic: str = "", indices: Sequence[int] = ()):
        self.mnemonic = mnemonic
        self.indices = tuple(indices)
        context = []
        if mnemonic:
            context.append(f"mnemonic '{mnemonic}'")
        if self.indices:
            context.append("instructions " + ", ".join(str(i) for i in self.indices))
        if context:
            message = f"{message} ({'; '.join(context)})"
        super().__init__(message)


class InconsistentImmediatePlacementError(CombineError):
    """
    An immediate literal does not sit at one bit slice across its group.

    Raised when no contiguous window covering the varying bits holds each
    member's literal value, e.g. "LDI #1" encoded in the low nibble and
    "LDI #2" encoded in the high nibble.
    """

    def __init__(
        self,
        mnemonic: str,
        indices: Sequence[int],
        varying_bits: Sequence[int],
        position: int,
    ):
        self.varying_bits = tuple(varying_bits)
        self.position = position
        super().__init__(
            f"immediate operand {position} is not encoded at a consistent bit "
            f"slice ({_format_bits(varying_bits)} vary)",
            mnemonic,
            indices,
        )


class InconsistentRegisterPlacementError(CombineError):
    """
    Registers in a group do not map one-to-one onto selector values.

    Raised when two different registers share one selector value, or when
    one register appears under two selector values.
    """

    def __init__(
        self,
        mnemonic: str,
        indices: Sequence[int],
        bit_slice: tuple[int, int],
        detail: str,
    ):
        self.bit_slice = bit_slice
        lo, hi = bit_slice
        super().__init__(
            f"register selector at bits [{lo}, {hi}) is ambiguous: {detail}",
            mnemonic,
            indices,
        )


class RegisterGroupTooSmallError(CombineError):
    """
    A register group with fewer than two members reached attach creation.

    The grouping step never offers such a group; this guards the invariant.
    """

    def __init__(self, mnemonic: str, indices: Sequence[int]):
        super().__init__("register group needs at least two members", mnemonic, indices)


# =============================================================================
# Layout Exceptions
# =============================================================================

class LayoutError(GpmgError):
    """
    Base exception for token layout failures.

    Attributes:
        index: Source index of the failing instruction
        mnemonic: Mnemonic of the failing instruction
    """

    def __init__(self, message: str, index: Optional[int] = None, mnemonic: str = ""):
        self.index = index
        self.mnemonic = mnemonic
        if index is not None:
            message = f"instruction {index} '{mnemonic}': {message}"
        super().__init__(message)


class OverlappingFieldsError(LayoutError):
    """Two operand fields of one instruction claim the same bits."""

    def __init__(
        self,
        index: int,
        mnemonic: str,
        first: tuple[int, int],
        second: tuple[int, int],
    ):
        self.first = first
        self.second = second
        super().__init__(
            f"fields [{first[0]}, {first[1]}) and [{second[0]}, {second[1]}) overlap",
            index,
            mnemonic,
        )


class FieldWidthMismatchError(LayoutError):
    """
    A register field's slice is narrower or wider than its attach table.

    Example: eight registers need a 3-bit selector, but the combined
    encodings only varied in 2 bits.
    """

    def __init__(
        self,
        index: int,
        mnemonic: str,
        bit_slice: tuple[int, int],
        required: int,
    ):
        self.bit_slice = bit_slice
        self.required = required
        lo, hi = bit_slice
        super().__init__(
            f"field at bits [{lo}, {hi}) is {hi - lo} bits wide but its register "
            f"table needs {required}",
            index,
            mnemonic,
        )


class UnknownRegisterReferenceError(LayoutError):
    """A register operand or attach table entry is missing from the register set."""

    def __init__(
        self,
        register: str,
        attach_name: Optional[str] = None,
        index: Optional[int] = None,
        mnemonic: str = "",
    ):
        self.register = register
        self.attach_name = attach_name
        where = f" in table '{attach_name}'" if attach_name else ""
        super().__init__(
            f"register '{register}'{where} is not a known register", index, mnemonic
        )


# =============================================================================
# Error Collection for Multiple Error Reporting
# =============================================================================

class ErrorCollector:
    """
    Collects malformed-line errors when the parser runs leniently, and
    warnings about lines that parse but look suspicious.

    Example:
        collector = ErrorCollector(max_errors=100)
        result = parse_lines(lines, registers, strict=False, collector=collector)

        if collector.has_errors():
            print(collector.report())
    """

    def __init__(self, max_errors: int = 100):
        """
        Initialize the error collector.

        Args:
            max_errors: Maximum errors to collect before raising TooManyErrors
        """
        self.errors: list[ParseError] = []
        self.warnings: list[str] = []
        self.max_errors = max_errors

    def add(self, error: ParseError) -> None:
        """
        Add an error to the collection.

        Raises:
            TooManyErrors: If max_errors has been reached
        """
        self.errors.append(error)
        if len(self.errors) >= self.max_errors:
            raise TooManyErrors(f"too many errors ({self.max_errors}), stopping")

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def error_count(self) -> int:
        return len(self.errors)

    def report(self) -> str:
        """Format all errors and warnings for display."""
        lines = []

        for error in self.errors:
            lines.append(str(error))
            lines.append("")

        if self.warnings:
            lines.append("Warnings:")
            for warning in self.warnings:
                lines.append(f"  {warning}")

        error_word = "error" if len(self.errors) == 1 else "errors"
        warning_word = "warning" if len(self.warnings) == 1 else "warnings"
        lines.append(
            f"\n{len(self.errors)} {error_word}, {len(self.warnings)} {warning_word}"
        )

        return "\n".join(lines)


class TooManyErrors(ParseError):
    """Raised when the collector reaches its error limit."""

    def __init__(self, message: str = "too many errors"):
        super().__init__(message)
