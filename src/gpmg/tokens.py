"""
Token Layout Synthesizer
========================

Partitions every finalized instruction into named token fields.

For each instruction the operand fields are checked (no overlaps, register
fields as wide as their attach table) and every remaining run of literal
bits becomes one opcode field constrained to its value. Contiguous literal
runs are merged, so an instruction with one operand field in the middle
has at most two opcode regions.

One Token is created per distinct instruction width, named ``instr<width>``.
It collects every field used by instructions of that width and carries the
byte context (endian, alignment, byte size) derived once from the
configuration.

Field Names
-----------
| Region                | Name                            |
|-----------------------|---------------------------------|
| literal bits          | ``op_<lo>_<width>``             |
| immediate             | ``imm_<lo>_<width>``            |
| signed immediate      | ``simm_<lo>_<width>``           |
| register selector     | ``reg_<lo>_<width>_<attach id>``|

When instructions of several widths exist, each name is prefixed with its
token name (``instr16_op_8_8``) so names stay unique across tokens.

Copyright (c) 2025 GPMG Contributors
"""

import logging

from gpmg.config import WordContext
from gpmg.errors import (
    FieldWidthMismatchError,
    LayoutError,
    OverlappingFieldsError,
    UnknownRegisterReferenceError,
)
from gpmg.model import (
    BitPattern,
    FieldKind,
    Instruction,
    InstructionLayout,
    OperandField,
    ParsedData,
    Region,
    RegionKind,
    Register,
    Token,
    TokenField,
)

logger = logging.getLogger(__name__)


def token_name(width: int) -> str:
    return f"instr{width}"


def _check_fields(instruction: Instruction) -> list[OperandField]:
    """
    Return the instruction's operand fields sorted by position.

    Raises:
        OverlappingFieldsError: If two fields share bits
        LayoutError: If an operand names a field missing from the encoding
    """
    encoded = set(instruction.fields)
    named = {op for op in instruction.operands if isinstance(op, OperandField)}
    fields = sorted(encoded | named, key=lambda f: (f.lo, f.hi))

    for lower, upper in zip(fields, fields[1:]):
        if upper.lo < lower.hi:
            raise OverlappingFieldsError(
                instruction.index, instruction.mnemonic, lower.bit_slice, upper.bit_slice
            )

    missing = sorted(f.name for f in named - encoded)
    if missing:
        raise LayoutError(
            f"operand {missing[0]} has no bits in the encoding",
            instruction.index,
            instruction.mnemonic,
        )
    return fields


def _check_registers(parsed: ParsedData) -> None:
    """Every register an instruction can name must be in the register set."""
    for variable in parsed.attach_table:
        for name in variable.members:
            if name not in parsed.registers:
                raise UnknownRegisterReferenceError(name, variable.name)

    for instruction in parsed.instructions:
        for operand in instruction.operands:
            if isinstance(operand, Register) and operand.name not in parsed.registers:
                raise UnknownRegisterReferenceError(
                    operand.name, index=instruction.index, mnemonic=instruction.mnemonic
                )


def _opcode_region(prefix: str, lo: int, value: int, width: int) -> Region:
    token_field = TokenField(f"{prefix}op_{lo}_{width}", lo, lo + width, RegionKind.OPCODE)
    return Region(token_field, value)


def _operand_region(
    instruction: Instruction,
    operand_field: OperandField,
    parsed: ParsedData,
    prefix: str,
) -> Region:
    if operand_field.kind == FieldKind.IMMEDIATE:
        token_field = TokenField(
            prefix + operand_field.name,
            operand_field.lo,
            operand_field.hi,
            RegionKind.IMMEDIATE,
            signed=operand_field.signed,
        )
        return Region(token_field, operand=operand_field)

    if operand_field.attach_id not in parsed.attach_table:
        raise LayoutError(
            f"field {operand_field.name} references missing attach table "
            f"{operand_field.attach_id}",
            instruction.index,
            instruction.mnemonic,
        )
    required = parsed.attach_table.get(operand_field.attach_id).width
    if required != operand_field.width:
        raise FieldWidthMismatchError(
            instruction.index, instruction.mnemonic, operand_field.bit_slice, required
        )
    token_field = TokenField(
        prefix + operand_field.name,
        operand_field.lo,
        operand_field.hi,
        RegionKind.REGISTER,
        attach_id=operand_field.attach_id,
    )
    return Region(token_field, operand=operand_field)


def layout_instruction(
    instruction: Instruction,
    parsed: ParsedData,
    prefix: str = "",
) -> InstructionLayout:
    """
    Partition one instruction's bits into regions, MSB first.

    Raises:
        OverlappingFieldsError: If two operand fields share bits
        FieldWidthMismatchError: If a register field and its table disagree
        LayoutError: If a field cannot be resolved
    """
    _check_fields(instruction)

    regions: list[Region] = []
    run_value = run_width = 0

    for token, lo, hi in instruction.slices():
        if isinstance(token, BitPattern):
            run_value = (run_value << token.width) | token.value
            run_width += token.width
            continue
        if run_width:
            regions.append(_opcode_region(prefix, hi, run_value, run_width))
            run_value = run_width = 0
        regions.append(_operand_region(instruction, token, parsed, prefix))

    if run_width:
        regions.append(_opcode_region(prefix, 0, run_value, run_width))

    return InstructionLayout(token_name(instruction.width), tuple(regions))


def compute_token_instructions(parsed: ParsedData) -> dict[int, Token]:
    """
    Lay out every instruction of `parsed` and build the token table.

    Fills `parsed.tokens` (width -> Token) and `parsed.layouts` (parallel to
    `parsed.instructions`).

    Returns:
        The token table

    Raises:
        LayoutError: Any layout failure; the run cannot continue
    """
    _check_registers(parsed)

    context: WordContext = parsed.config.word_context
    widths = sorted({i.width for i in parsed.instructions})
    multiple = len(widths) > 1

    tokens: dict[int, Token] = {}
    for width in widths:
        tokens[width] = Token(
            token_name(width),
            width,
            context.endian,
            context.alignment,
            context.byte_size(width),
        )

    layouts = []
    for instruction in parsed.instructions:
        token = tokens[instruction.width]
        prefix = f"{token.name}_" if multiple else ""
        layout = layout_instruction(instruction, parsed, prefix)
        for region in layout.regions:
            token.add_field(region.field)
        layouts.append(layout)

    parsed.tokens = tokens
    parsed.layouts = layouts

    logger.info(
        "Computed %d tokens with %d fields",
        len(tokens), sum(len(t.fields) for t in tokens.values()),
    )
    return tokens
