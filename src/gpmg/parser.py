"""
Instruction Text Parser
=======================

Converts the newline-delimited instruction-set description into concrete
Instruction records. The parser does not read files; it takes an ordered
sequence of lines from the caller.

Line Grammar
------------
Each line describes one instruction occurrence::

    <opcode> <mnemonic> [<operands>]   [; comment]

Examples::

    0x2101     MOV r1, #1
    00110      PUSH r2
    e8_0000/16 CALL 0x0000       ; explicit 16-bit width

Opcode Formats
--------------
| Format          | Example      | Bits per digit |
|-----------------|--------------|----------------|
| Binary (bare)   | 0010         | 1              |
| Binary (0b)     | 0b0010       | 1              |
| Hex (0x)        | 0x21         | 4              |
| Hex (bare)      | 4c8b         | 4              |

A bare token made only of 0 and 1 is binary. ``_`` separators are
ignored. The instruction width is ``max(bitness, digit width)`` unless a
``/N`` suffix sets it explicitly.

Operand Classification
----------------------
The operand text is split into pieces. A word that names a known register
(case insensitive) becomes a Register, a numeric literal becomes an
Immediate, and everything else (punctuation, size keywords, unknown names)
stays Fixed. A ``#`` before a literal is kept as its own Fixed piece.

Comments
--------
Blank lines and lines starting with ``#``, ``;`` or ``//`` are skipped.
Text after ``;`` on an instruction line is dropped.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional
import logging
import re

from gpmg.config import ProcessorConfig
from gpmg.errors import ErrorCollector, MalformedLineError, SourceLocation
from gpmg.model import Fixed, Immediate, Instruction, Operand, Register
from gpmg.registers import RegisterSet

logger = logging.getLogger(__name__)


# =============================================================================
# Patterns
# =============================================================================

OPCODE_PATTERN = re.compile(
    r"^(?:0[xX](?P<hex>[0-9A-Fa-f_]+)"
    r"|0[bB](?P<bin>[01_]+)"
    r"|(?P<bare>[0-9A-Fa-f_]+))"
    r"(?:/(?P<width>\d+))?$"
)

# Numbers must not run into identifier characters ("12ab" is not a number)
_NUMBER = (
    r"(?:0[xX][0-9A-Fa-f]+"
    r"|0[bB][01]+"
    r"|0[oO][0-7]+"
    r"|\$[0-9A-Fa-f]+"
    r"|[0-9][0-9A-Fa-f]*[hH]"
    r"|[0-9]+)"
    r"(?![\w.])"
)

PIECE_PATTERN = re.compile(
    rf"(?P<space>\s+)"
    rf"|(?P<number>{_NUMBER})"
    rf"|(?P<word>[\w.]+)"
    rf"|(?P<punct>\S)"
)

COMMENT_PREFIXES = ("#", ";", "//")

# A '-' directly before a number is a sign after these pieces (or at start)
_SIGN_CONTEXT = frozenset(",(#[{+")


# =============================================================================
# Literal Helpers
# =============================================================================

def parse_number(text: str) -> int:
    """
    Parse a numeric literal in any supported spelling.

    Args:
        text: Literal text, e.g. "12", "-4", "0x1F", "$1F", "1Fh", "0b101"

    Returns:
        The integer value

    Raises:
        ValueError: If the text is not a numeric literal
    """
    negative = text.startswith("-")
    body = text[1:] if negative else text
    lowered = body.lower()

    if lowered.endswith("h") and lowered[:1].isdigit():
        value = int(lowered[:-1], 16)
    elif lowered.startswith("0x"):
        value = int(lowered[2:], 16)
    elif lowered.startswith("0b"):
        value = int(lowered[2:], 2)
    elif lowered.startswith("0o"):
        value = int(lowered[2:], 8)
    elif lowered.startswith("$"):
        value = int(lowered[1:], 16)
    else:
        value = int(lowered, 10)

    return -value if negative else value


def parse_opcode(text: str, bitness: int) -> tuple[int, int]:
    """
    Parse the opcode column.

    Args:
        text: The opcode token, e.g. "0x2101", "0010", "e8_00/16"
        bitness: Configured base instruction width

    Returns:
        (value, width)

    Raises:
        ValueError: If the token is not a valid opcode or does not fit
    """
    match = OPCODE_PATTERN.match(text)
    if not match:
        raise ValueError(f"opcode '{text}' is not a binary or hex literal")

    if match.group("hex") is not None:
        digits, base = match.group("hex"), 16
    elif match.group("bin") is not None:
        digits, base = match.group("bin"), 2
    else:
        digits = match.group("bare")
        base = 2 if set(digits) <= set("01_") else 16

    digits = digits.replace("_", "")
    if not digits:
        raise ValueError(f"opcode '{text}' has no digits")

    value = int(digits, base)
    digit_width = len(digits) * (1 if base == 2 else 4)

    if match.group("width") is not None:
        width = int(match.group("width"))
        if width <= 0:
            raise ValueError(f"opcode '{text}' has a zero width")
    else:
        width = max(bitness, digit_width)

    if value >= (1 << width):
        raise ValueError(f"opcode '{text}' does not fit in {width} bits")

    return value, width


def is_comment(line: str) -> bool:
    """True for blank lines and whole-line comments."""
    stripped = line.strip()
    return not stripped or stripped.startswith(COMMENT_PREFIXES)


# =============================================================================
# Parse Result
# =============================================================================

@dataclass
class ParseResult:
    """
    Output of one parse.

    Attributes:
        instructions: Concrete instructions in source order
        skipped: Malformed lines skipped in lenient mode
    """
    instructions: list[Instruction] = field(default_factory=list)
    skipped: int = 0

    @property
    def count(self) -> int:
        """Number of instructions parsed."""
        return len(self.instructions)


# =============================================================================
# Parser
# =============================================================================

class InstructionParser:
    """
    Parses instruction-set lines against a register catalog.

    Usage:
        parser = InstructionParser(registers, config, filename="z80.txt")
        result = parser.parse(lines)

    Attributes:
        registers: Catalog used to classify register operands
        config: Processor configuration (bitness sets the default width)
        filename: Name used in error locations
        strict: Raise on the first malformed line (True) or collect and skip
        collector: Where skipped errors go when strict is False
    """

    def __init__(
        self,
        registers: RegisterSet,
        config: Optional[ProcessorConfig] = None,
        filename: str = "<input>",
        strict: bool = True,
        collector: Optional[ErrorCollector] = None,
    ):
        self.registers = registers
        self.config = config or ProcessorConfig()
        self.filename = filename
        self.strict = strict
        self.collector = collector if collector is not None else ErrorCollector()

    def parse(self, lines: Iterable[str]) -> ParseResult:
        """
        Parse all lines.

        Raises:
            MalformedLineError: On a malformed line when strict
        """
        result = ParseResult()

        for line_no, raw in enumerate(lines, start=1):
            line = raw.rstrip("\r\n")
            if is_comment(line):
                continue
            try:
                instruction = self.parse_line(line, line_no, index=len(result.instructions))
            except MalformedLineError as e:
                if self.strict:
                    raise
                logger.debug("Skipping line %d: %s", line_no, e.message)
                self.collector.add(e)
                result.skipped += 1
                continue
            result.instructions.append(instruction)

        logger.debug(
            "Parsed %d instructions from %s (%d skipped)",
            result.count, self.filename, result.skipped,
        )
        return result

    def parse_line(self, line: str, line_no: int = 1, index: int = 0) -> Instruction:
        """
        Parse one instruction line.

        Raises:
            MalformedLineError: If the line lacks an opcode and mnemonic
        """
        location = SourceLocation(self.filename, line_no)
        text = line.split(";", 1)[0].strip()
        parts = text.split(None, 2)

        if len(parts) < 2:
            raise MalformedLineError(
                "expected an opcode followed by a mnemonic",
                location=location,
                hint="each line needs an opcode followed by a mnemonic",
                source_line=line.strip(),
            )

        try:
            opcode, width = parse_opcode(parts[0], self.config.bitness)
        except ValueError as e:
            raise MalformedLineError(
                str(e),
                location=location,
                hint="use binary digits, 0b..., or 0x... hex",
                source_line=line.strip(),
            ) from e

        if width > self.config.bitness and "/" not in parts[0]:
            self.collector.add_warning(
                f"{location}: opcode '{parts[0]}' is {width} bits wide, more than "
                f"the configured bitness of {self.config.bitness}"
            )

        mnemonic = parts[1]
        operands = self.classify(parts[2]) if len(parts) > 2 else ()
        return Instruction.concrete(mnemonic, operands, opcode, width, index)

    def classify(self, text: str) -> tuple[Operand, ...]:
        """Split operand text into classified pieces."""
        pieces: list[Operand] = []
        sign_pending = False

        for match in PIECE_PATTERN.finditer(text):
            kind = match.lastgroup
            value = match.group()

            if kind == "space":
                continue

            if kind == "number":
                literal = f"-{value}" if sign_pending else value
                if sign_pending:
                    pieces.pop()
                pieces.append(Immediate(parse_number(literal), literal))
            elif kind == "word":
                name = self.registers.normalize(value)
                pieces.append(Register(name) if name else Fixed(value))
            else:
                pieces.append(Fixed(value))

            sign_pending = (
                kind == "punct" and value == "-" and self._sign_allowed(pieces[:-1])
            )

        return tuple(pieces)

    @staticmethod
    def _sign_allowed(previous: list[Operand]) -> bool:
        if not previous:
            return True
        last = previous[-1]
        return isinstance(last, Fixed) and last.text in _SIGN_CONTEXT


def parse_lines(
    lines: Iterable[str],
    registers: RegisterSet,
    config: Optional[ProcessorConfig] = None,
    filename: str = "<input>",
    strict: bool = True,
    collector: Optional[ErrorCollector] = None,
) -> ParseResult:
    """
    Convenience function to parse instruction-set lines.

    Args:
        lines: Source lines
        registers: Register catalog
        config: Processor configuration (defaults to ProcessorConfig())
        filename: Name used in error messages
        strict: Raise on malformed lines instead of skipping them
        collector: Receives skipped errors when not strict

    Returns:
        ParseResult with the concrete instructions
    """
    parser = InstructionParser(registers, config, filename, strict, collector)
    return parser.parse(lines)
