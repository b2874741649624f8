"""
Instruction Model
=================

The in-memory representation shared by every stage of the generator:
the parser creates it, the combining passes rewrite it, the attach and
token stages annotate it, and the emitter reads it.

Bit Numbering
-------------
Bit 0 is the least significant bit of the instruction word. Slices are
half-open ranges ``[lo, hi)``. Encodings are stored most-significant token
first, so the encoding of ``0x2101`` with an 8-bit immediate field in the
low byte reads::

    (BitPattern(value=0x21, width=8), OperandField(IMMEDIATE, lo=0, hi=8))

Operands
--------
An operand sequence is the tokenized operand text of one instruction.
Each piece is one of:

| Type          | Meaning                                   | Example     |
|---------------|-------------------------------------------|-------------|
| Fixed         | literal display text                      | ``,`` ``[`` |
| Register      | a register from the RegisterSet           | ``r1``      |
| Immediate     | a numeric literal                         | ``0x10``    |
| OperandField  | a generalized placeholder (after combine) | ``imm_0_8`` |

Invariants
----------
- ``sum(token widths) == width`` for every Instruction (checked on
  construction).
- Every OperandField in an encoding sits exactly at its declared slice.

Copyright (c) 2025 GPMG Contributors
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Iterator, Mapping, Optional, Union

from gpmg.config import ProcessorConfig
from gpmg.registers import RegisterSet


# =============================================================================
# Operands
# =============================================================================

@dataclass(frozen=True)
class Fixed:
    """Literal operand text (punctuation, keywords, unknown names)."""
    text: str

    @property
    def display(self) -> str:
        return self.text


@dataclass(frozen=True)
class Register:
    """A register operand, by normalized (lower case) name."""
    name: str

    @property
    def display(self) -> str:
        return self.name


@dataclass(frozen=True)
class Immediate:
    """
    A numeric literal operand.

    Equality compares the value only, so ``0x10`` and ``16`` are the same
    operand.

    Attributes:
        value: The literal value (may be negative)
        text: The literal as written in the source
    """
    value: int
    text: str = field(default="", compare=False)

    @property
    def display(self) -> str:
        return self.text or str(self.value)


class FieldKind(Enum):
    """What an OperandField selects."""
    IMMEDIATE = auto()        # raw value taken from the instruction bits
    REGISTER_ATTACH = auto()  # selector into an attach variable table


@dataclass(frozen=True)
class OperandField:
    """
    A parameterized operand introduced by combining.

    Attributes:
        kind: IMMEDIATE or REGISTER_ATTACH
        lo: Lowest bit of the slice
        hi: One past the highest bit of the slice
        attach_id: Attach variable id (REGISTER_ATTACH only)
        signed: True if any merged literal was negative (IMMEDIATE only)
    """
    kind: FieldKind
    lo: int
    hi: int
    attach_id: Optional[int] = None
    signed: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.lo < self.hi:
            raise ValueError(f"invalid bit slice [{self.lo}, {self.hi})")
        if (self.kind == FieldKind.REGISTER_ATTACH) != (self.attach_id is not None):
            raise ValueError("attach_id is required for, and only for, register fields")

    @property
    def width(self) -> int:
        return self.hi - self.lo

    @property
    def bit_slice(self) -> tuple[int, int]:
        return (self.lo, self.hi)

    @property
    def name(self) -> str:
        if self.kind == FieldKind.IMMEDIATE:
            prefix = "simm" if self.signed else "imm"
            return f"{prefix}_{self.lo}_{self.width}"
        return f"reg_{self.lo}_{self.width}_{self.attach_id}"

    @property
    def display(self) -> str:
        return self.name

    def extract(self, word: int) -> int:
        """Return this field's selector value from an instruction word."""
        return (word >> self.lo) & ((1 << self.width) - 1)


Operand = Union[Fixed, Register, Immediate, OperandField]


def is_word_piece(operand: Operand) -> bool:
    if isinstance(operand, Fixed):
        return operand.text[:1].isalnum() or operand.text[:1] in "_.$"
    return True


def render_operands(operands: tuple[Operand, ...]) -> str:
    """
    Render operand pieces back to text.

    Words are separated by a space, a comma is followed by a space, and
    other punctuation is attached to its neighbours:

        (Register("r1"), Fixed(","), Fixed("#"), Immediate(1, "1")) -> "r1, #1"
    """
    out = []
    previous: Optional[Operand] = None
    for operand in operands:
        if previous is not None:
            if isinstance(previous, Fixed) and previous.text == ",":
                out.append(" ")
            elif is_word_piece(previous) and is_word_piece(operand):
                out.append(" ")
        out.append(operand.display)
        previous = operand
    return "".join(out)


# =============================================================================
# Encoding Tokens
# =============================================================================

@dataclass(frozen=True)
class BitPattern:
    """A run of literal instruction bits."""
    value: int
    width: int

    def __post_init__(self) -> None:
        if self.width <= 0:
            raise ValueError(f"bit pattern width must be positive, got {self.width}")
        if not 0 <= self.value < (1 << self.width):
            raise ValueError(f"value {self.value:#x} does not fit in {self.width} bits")

    @property
    def text(self) -> str:
        return format(self.value, f"0{self.width}b")


EncodingToken = Union[BitPattern, OperandField]


@dataclass(frozen=True)
class Example:
    """
    A concrete source instruction folded into an Instruction.

    Attributes:
        opcode: The concrete instruction word
        width: Instruction width in bits
        text: Mnemonic and operands as parsed
    """
    opcode: int
    width: int
    text: str

    @property
    def opcode_text(self) -> str:
        digits = (self.width + 3) // 4
        return f"0x{self.opcode:0{digits}x}"

    def __str__(self) -> str:
        return f"{self.opcode_text} {self.text}"


# =============================================================================
# Instruction
# =============================================================================

@dataclass(frozen=True)
class Instruction:
    """
    One instruction pattern: concrete after parsing, generalized after
    combining.

    Attributes:
        mnemonic: Display mnemonic
        operands: Tokenized operands
        encoding: MSB-first encoding tokens
        width: Total encoding width in bits
        index: Source order key (smallest source index among merged members)
        examples: Concrete source instructions represented by this pattern
    """
    mnemonic: str
    operands: tuple[Operand, ...]
    encoding: tuple[EncodingToken, ...]
    width: int
    index: int = 0
    examples: tuple[Example, ...] = ()

    def __post_init__(self) -> None:
        total = sum(token.width for token in self.encoding)
        if total != self.width:
            raise ValueError(
                f"encoding of '{self.mnemonic}' covers {total} bits, expected {self.width}"
            )
        for token, lo, hi in self.slices():
            if isinstance(token, OperandField) and token.bit_slice != (lo, hi):
                raise ValueError(
                    f"field {token.name} of '{self.mnemonic}' sits at [{lo}, {hi})"
                )

    @classmethod
    def concrete(
        cls,
        mnemonic: str,
        operands: tuple[Operand, ...],
        opcode: int,
        width: int,
        index: int = 0,
    ) -> "Instruction":
        """Build an un-generalized instruction from a concrete opcode."""
        rendered = render_operands(operands)
        text = f"{mnemonic} {rendered}" if rendered else mnemonic
        example = Example(opcode, width, text)
        return cls(mnemonic, operands, (BitPattern(opcode, width),), width, index, (example,))

    # -------------------------------------------------------------------------
    # Encoding queries
    # -------------------------------------------------------------------------

    def slices(self) -> Iterator[tuple[EncodingToken, int, int]]:
        """Yield (token, lo, hi) for each encoding token, MSB first."""
        hi = self.width
        for token in self.encoding:
            lo = hi - token.width
            yield token, lo, hi
            hi = lo

    @property
    def fields(self) -> tuple[OperandField, ...]:
        """Operand fields in the encoding, MSB first."""
        return tuple(t for t in self.encoding if isinstance(t, OperandField))

    @property
    def is_generalized(self) -> bool:
        return bool(self.fields)

    @property
    def fixed_mask(self) -> int:
        """Mask of the literal (non-field) bits."""
        mask = 0
        for token, lo, hi in self.slices():
            if isinstance(token, BitPattern):
                mask |= ((1 << (hi - lo)) - 1) << lo
        return mask

    @property
    def fixed_value(self) -> int:
        """Literal bits in place; field bits are zero."""
        value = 0
        for token, lo, _ in self.slices():
            if isinstance(token, BitPattern):
                value |= token.value << lo
        return value

    @property
    def pattern_text(self) -> str:
        """
        Bit pattern, MSB first, with 'i' for immediate and 'r' for register
        field bits, e.g. '00100001iiii'.
        """
        out = []
        for token in self.encoding:
            if isinstance(token, BitPattern):
                out.append(token.text)
            elif token.kind == FieldKind.IMMEDIATE:
                out.append("i" * token.width)
            else:
                out.append("r" * token.width)
        return "".join(out)

    def matches(self, word: int) -> bool:
        """True if `word` is produced by some assignment of field values."""
        return 0 <= word < (1 << self.width) and (word & self.fixed_mask) == self.fixed_value

    def encode(self, values: Mapping[str, int]) -> int:
        """
        Build a concrete word by substituting field values.

        Args:
            values: Field name -> selector value (unsigned, within field width)

        Raises:
            KeyError: If a field has no value
            ValueError: If a value does not fit its field
        """
        word = self.fixed_value
        for operand_field in self.fields:
            value = values[operand_field.name]
            if not 0 <= value < (1 << operand_field.width):
                raise ValueError(
                    f"value {value} does not fit field {operand_field.name}"
                )
            word |= value << operand_field.lo
        return word

    def decode(self, word: int) -> dict[str, int]:
        """Return field name -> selector value for a matching word."""
        return {f.name: f.extract(word) for f in self.fields}

    def with_field(self, operand_field: OperandField) -> tuple[EncodingToken, ...]:
        """
        Return this encoding with literal bits [lo, hi) replaced by a field.

        Raises:
            ValueError: If the slice is not entirely literal bits
        """
        lo, hi = operand_field.bit_slice
        if hi > self.width:
            raise ValueError(f"slice [{lo}, {hi}) exceeds width {self.width}")
        slice_mask = ((1 << (hi - lo)) - 1) << lo
        if self.fixed_mask & slice_mask != slice_mask:
            raise ValueError(f"slice [{lo}, {hi}) overlaps an existing field")

        tokens: list[EncodingToken] = []
        for token, t_lo, t_hi in self.slices():
            if isinstance(token, OperandField) or t_hi <= lo or t_lo >= hi:
                tokens.append(token)
                continue
            # Literal run overlapping the slice: keep the bits above and below
            if t_hi > hi:
                tokens.append(BitPattern(token.value >> (hi - t_lo), t_hi - hi))
            if t_lo < hi <= t_hi:
                tokens.append(operand_field)
            if t_lo < lo:
                tokens.append(BitPattern(token.value & ((1 << (lo - t_lo)) - 1), lo - t_lo))
        return tuple(tokens)

    # -------------------------------------------------------------------------
    # Display
    # -------------------------------------------------------------------------

    @property
    def operand_text(self) -> str:
        return render_operands(self.operands)

    @property
    def text(self) -> str:
        operands = self.operand_text
        return f"{self.mnemonic} {operands}" if operands else self.mnemonic

    def __str__(self) -> str:
        return f"{self.pattern_text} {self.text}"


# =============================================================================
# Attach Variables
# =============================================================================

@dataclass(frozen=True)
class AttachVariable:
    """
    A register table selected by an instruction field.

    The table is indexed by selector value; None marks a selector value
    that no instruction used.

    Attributes:
        id: Table id referenced by OperandField.attach_id
        registers: Register name (or None) per selector value
        name: Display name, assigned by the attach synthesizer
    """
    id: int
    registers: tuple[Optional[str], ...]
    name: str = ""

    @property
    def width(self) -> int:
        """Selector bits: ceil(log2(len(registers))), minimum 1."""
        return max(1, (len(self.registers) - 1).bit_length())

    @property
    def members(self) -> tuple[str, ...]:
        """Registers actually present, in selector order."""
        return tuple(r for r in self.registers if r is not None)


class AttachTable:
    """
    Content-addressed table of attach variables.

    Two register lists that are equal map to the same AttachVariable, so
    the final register-class table never holds duplicates.
    """

    def __init__(self) -> None:
        self._by_registers: dict[tuple[Optional[str], ...], AttachVariable] = {}
        self._by_id: dict[int, AttachVariable] = {}

    def intern(self, registers: tuple[Optional[str], ...]) -> AttachVariable:
        """Return the existing variable for `registers`, or create one."""
        existing = self._by_registers.get(registers)
        if existing is not None:
            return existing
        variable = AttachVariable(len(self._by_id), registers)
        self._by_registers[registers] = variable
        self._by_id[variable.id] = variable
        return variable

    def add(self, variable: AttachVariable) -> None:
        """Insert a fully formed variable (used when finalizing)."""
        self._by_registers[variable.registers] = variable
        self._by_id[variable.id] = variable

    def get(self, attach_id: int) -> AttachVariable:
        return self._by_id[attach_id]

    def __contains__(self, attach_id: object) -> bool:
        return attach_id in self._by_id

    def __iter__(self) -> Iterator[AttachVariable]:
        return iter(sorted(self._by_id.values(), key=lambda v: v.id))

    def __len__(self) -> int:
        return len(self._by_id)


# =============================================================================
# Tokens and Layouts
# =============================================================================

class RegionKind(Enum):
    """What a token field holds."""
    OPCODE = auto()     # fixed bits, constrained to a value
    IMMEDIATE = auto()  # immediate operand field
    REGISTER = auto()   # register selector with an attach table


@dataclass(frozen=True)
class TokenField:
    """
    A named bit slice of a token.

    Attributes:
        name: Field name (unique across all tokens)
        lo: Lowest bit
        hi: One past the highest bit
        kind: OPCODE, IMMEDIATE or REGISTER
        attach_id: Attach table for REGISTER fields
        signed: Display as signed (IMMEDIATE fields)
    """
    name: str
    lo: int
    hi: int
    kind: RegionKind
    attach_id: Optional[int] = None
    signed: bool = False

    @property
    def width(self) -> int:
        return self.hi - self.lo


@dataclass
class Token:
    """
    The instruction word of one width, as the output describes it.

    Attributes:
        name: Token name, e.g. "instr32"
        width: Width in bits
        endian: Byte order the token is read in
        alignment: Instruction alignment in bytes
        byte_size: Bytes occupied by the token
        fields: Field name -> TokenField, in insertion order
    """
    name: str
    width: int
    endian: str
    alignment: int
    byte_size: int
    fields: dict[str, TokenField] = field(default_factory=dict)

    def add_field(self, token_field: TokenField) -> TokenField:
        """Add a field, reusing an existing one of the same name."""
        return self.fields.setdefault(token_field.name, token_field)


@dataclass(frozen=True)
class Region:
    """
    One region of an instruction's layout.

    Attributes:
        field: The token field covering the region
        value: Required value for OPCODE regions, None for operand fields
        operand: The OperandField behind an operand region
    """
    field: TokenField
    value: Optional[int] = None
    operand: Optional[OperandField] = None


@dataclass(frozen=True)
class InstructionLayout:
    """
    The token regions of one instruction, MSB first.

    The regions partition [0, width) exactly.
    """
    token: str
    regions: tuple[Region, ...]

    def field_for(self, operand_field: OperandField) -> TokenField:
        for region in self.regions:
            if region.operand == operand_field:
                return region.field
        raise KeyError(operand_field.name)

    @property
    def constraints(self) -> tuple[Region, ...]:
        return tuple(r for r in self.regions if r.value is not None)


# =============================================================================
# Parsed Data (aggregate root)
# =============================================================================

@dataclass
class ParsedData:
    """
    Everything one generator run knows.

    Created once, filled by the parser, rewritten by each combining pass,
    annotated by the attach and token stages, then handed to the emitter.

    Attributes:
        config: Processor configuration (read only)
        registers: The register catalog (read only)
        instructions: Instruction sequence in source order
        attach_table: Attach variables referenced by register fields
        tokens: Width -> Token
        layouts: One layout per instruction, parallel to `instructions`
    """
    config: ProcessorConfig
    registers: RegisterSet
    instructions: list[Instruction] = field(default_factory=list)
    attach_table: AttachTable = field(default_factory=AttachTable)
    tokens: dict[int, Token] = field(default_factory=dict)
    layouts: list[InstructionLayout] = field(default_factory=list)

    def registers_used(self) -> list[str]:
        """
        Registers referenced by the instruction set, in first-seen order.

        Includes registers behind attach tables as well as concrete
        register operands.
        """
        seen: dict[str, None] = {}
        for instruction in self.instructions:
            for operand in instruction.operands:
                if isinstance(operand, Register):
                    seen.setdefault(operand.name)
                elif isinstance(operand, OperandField) and operand.attach_id is not None:
                    if operand.attach_id in self.attach_table:
                        for name in self.attach_table.get(operand.attach_id).members:
                            seen.setdefault(name)
        return list(seen)

    def layout_of(self, position: int) -> InstructionLayout:
        return self.layouts[position]
