"""
Attach Variable Synthesizer
===========================

Finalizes the attach table built up while combining registers.

The working table can hold entries no instruction references any more
(and, when tables were added by hand, entries with equal register lists).
This stage produces the table the emitter prints:

- entries are numbered in order of first reference by the instruction list,
  so the output does not depend on the order groups were merged in
- entries with equal register lists collapse to one
- unreferenced entries are dropped
- each entry gets a name: its member registers joined with ``_`` when it
  has at most four members, otherwise ``attachN``

Register fields in the instructions are rewritten to the new ids.

Copyright (c) 2025 GPMG Contributors
"""

from dataclasses import replace
from typing import Optional
import logging

from gpmg.errors import LayoutError, RegisterGroupTooSmallError
from gpmg.model import (
    AttachTable,
    AttachVariable,
    FieldKind,
    Instruction,
    OperandField,
    ParsedData,
)

logger = logging.getLogger(__name__)

# Tables with more members than this get a positional name
MAX_JOINED_NAME_MEMBERS = 4


def attach_name(variable: AttachVariable, position: int) -> str:
    """Base display name for an attach table."""
    members = variable.members
    if len(members) <= MAX_JOINED_NAME_MEMBERS:
        return "_".join(members)
    return f"attach{position}"


def _rewrite_field(token, remap: dict[int, int]):
    if isinstance(token, OperandField) and token.kind == FieldKind.REGISTER_ATTACH:
        return replace(token, attach_id=remap.get(token.attach_id, token.attach_id))
    return token


def _rewrite(instruction: Instruction, remap: dict[int, int]) -> Instruction:
    return replace(
        instruction,
        operands=tuple(_rewrite_field(op, remap) for op in instruction.operands),
        encoding=tuple(_rewrite_field(t, remap) for t in instruction.encoding),
    )


def compute_attach_variables(parsed: ParsedData) -> AttachTable:
    """
    Deduplicate, renumber and name the attach table of `parsed` in place.

    Returns:
        The finalized AttachTable (also stored in `parsed.attach_table`)

    Raises:
        RegisterGroupTooSmallError: If a referenced table has fewer than two
            registers
        LayoutError: If a register field references a table that does not exist
    """
    working = parsed.attach_table
    final = AttachTable()
    remap: dict[int, int] = {}
    by_registers: dict[tuple[Optional[str], ...], int] = {}
    used_names: set[str] = set()

    for instruction in parsed.instructions:
        for operand_field in instruction.fields:
            old_id = operand_field.attach_id
            if old_id is None or old_id in remap:
                continue
            if old_id not in working:
                raise LayoutError(
                    f"field {operand_field.name} references missing attach table {old_id}",
                    instruction.index,
                    instruction.mnemonic,
                )

            variable = working.get(old_id)
            if len(variable.members) < 2:
                raise RegisterGroupTooSmallError(instruction.mnemonic, [instruction.index])

            new_id = by_registers.get(variable.registers)
            if new_id is None:
                new_id = len(final)
                name = base = attach_name(variable, new_id)
                suffix = 1
                while name in used_names:
                    name = f"{base}_{suffix}"
                    suffix += 1
                used_names.add(name)
                final.add(AttachVariable(new_id, variable.registers, name))
                by_registers[variable.registers] = new_id
            remap[old_id] = new_id

    parsed.instructions = [_rewrite(i, remap) for i in parsed.instructions]
    parsed.attach_table = final

    dropped = len(working) - len(final)
    logger.info("Computed %d attach variables", len(final))
    if dropped:
        logger.debug("Dropped %d unreferenced or duplicate attach tables", dropped)
    for variable in final:
        logger.debug("  %s (width %d): %s", variable.name, variable.width, variable.registers)
    return final
