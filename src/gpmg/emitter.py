"""
Processor Module Emitter
========================

Writes the finalized model out as a Ghidra processor module:

    <output_dir>/<name>/
        Module.manifest
        data/languages/<name>.slaspec
        data/languages/<name>.ldefs
        data/languages/<name>.pspec
        data/languages/<name>.cspec

The emitter only renders what earlier stages decided. Every token, field,
attach table and constructor constraint comes from ParsedData; nothing is
re-derived here.

SLEIGH Layout
-------------
The .slaspec file is written in this order:

1. endian and alignment definitions
2. RAM and register address spaces
3. register definitions (every register the instruction set names, plus
   ``pc`` and ``sp``)
4. one ``define token`` per instruction width, padded up to whole bytes
5. ``attach variables`` statements, one per attach table, padded with
   ``_`` to the full selector range
6. one constructor per instruction, preceded by optional opcode and
   example comments

Constructor display sections quote literal text. Punctuation that SLEIGH
accepts bare (``,`` ``[`` ``]`` and friends) is written unquoted, and
``^`` joins adjacent items that must print without a space between them.

Copyright (c) 2025 GPMG Contributors
"""

from pathlib import Path
from typing import Union
from xml.sax.saxutils import escape, quoteattr
import logging

from gpmg.model import (
    Fixed,
    Instruction,
    InstructionLayout,
    is_word_piece,
    OperandField,
    Operand,
    ParsedData,
    RegionKind,
    Token,
)

logger = logging.getLogger(__name__)


# Punctuation allowed unquoted in a display section
BARE_PUNCTUATION = frozenset(",[]()+-*#!:{}")

# Registers every module defines
PROGRAM_COUNTER = "pc"
STACK_POINTER = "sp"

# Example comments per constructor before the rest are summarized
MAX_EXAMPLES = 4


# =============================================================================
# Display and Pattern Sections
# =============================================================================

def _display_item(operand: Operand, layout: InstructionLayout) -> str:
    if isinstance(operand, OperandField):
        return layout.field_for(operand).name
    if isinstance(operand, Fixed) and operand.text in BARE_PUNCTUATION:
        return operand.text
    text = operand.display.replace('"', "'")
    return f'"{text}"'


def display_section(instruction: Instruction, layout: InstructionLayout) -> str:
    """
    Render the display part of a constructor, e.g. ``MOV reg_4_2_0, #imm_0_4``.

    Spacing follows the parsed operand text; items that would otherwise
    run together are joined with ``^``.
    """
    out = [instruction.mnemonic]
    previous = None
    for operand in instruction.operands:
        item = _display_item(operand, layout)
        if previous is None:
            out.append(" ")
        elif isinstance(previous, Fixed) and previous.text == ",":
            out.append(" ")
        elif is_word_piece(previous) and is_word_piece(operand):
            out.append(" ")
        elif out[-1] not in BARE_PUNCTUATION and item not in BARE_PUNCTUATION:
            out.append("^")
        out.append(item)
        previous = operand
    return "".join(out)


def pattern_section(layout: InstructionLayout) -> str:
    """Render the bit pattern part of a constructor: constraints, then operand fields."""
    parts = []
    for region in layout.regions:
        if region.value is not None:
            parts.append(f"{region.field.name}=0x{region.value:x}")
    for region in layout.regions:
        if region.operand is not None:
            parts.append(region.field.name)
    return " & ".join(parts)


# =============================================================================
# .slaspec
# =============================================================================

def defined_registers(parsed: ParsedData) -> list[str]:
    """Registers to define: those the instruction set uses, then pc and sp."""
    names = parsed.registers_used()
    for name in (PROGRAM_COUNTER, STACK_POINTER):
        if name not in names:
            names.append(name)
    return names


def _token_lines(token: Token) -> list[str]:
    bits = token.byte_size * 8
    lines = [f"define token {token.name} ({bits})"]
    fields = sorted(token.fields.values(), key=lambda f: (-f.hi, f.lo, f.name))
    for token_field in fields:
        attrs = ""
        if token_field.kind == RegionKind.IMMEDIATE:
            attrs = " signed" if token_field.signed else " hex"
        lines.append(f"  {token_field.name} = ({token_field.lo}, {token_field.hi - 1}){attrs}")
    lines.append(";")
    return lines


def _attach_lines(parsed: ParsedData) -> list[str]:
    fields_by_attach: dict[int, list[str]] = {}
    for token in parsed.tokens.values():
        for token_field in token.fields.values():
            if token_field.kind == RegionKind.REGISTER:
                fields_by_attach.setdefault(token_field.attach_id, []).append(token_field.name)

    lines = []
    for variable in parsed.attach_table:
        names = fields_by_attach.get(variable.id)
        if not names:
            continue
        padded = list(variable.registers) + [None] * ((1 << variable.width) - len(variable.registers))
        registers = " ".join(r if r is not None else "_" for r in padded)
        lines.append(f"# {variable.name}")
        lines.append(f"attach variables [ {' '.join(sorted(names))} ] [ {registers} ];")
    return lines


def _constructor_lines(
    instruction: Instruction,
    layout: InstructionLayout,
    parsed: ParsedData,
) -> list[str]:
    config = parsed.config
    lines = []
    if not config.omit_opcodes:
        lines.append(f"# opcode: {instruction.pattern_text}")
    if not config.omit_example_instructions:
        for example in instruction.examples[:MAX_EXAMPLES]:
            lines.append(f"# example: {example}")
        hidden = len(instruction.examples) - MAX_EXAMPLES
        if hidden > 0:
            lines.append(f"# ... {hidden} more")
    display = display_section(instruction, layout)
    lines.append(f":{display} is {pattern_section(layout)}")
    lines.append("{")
    lines.append("}")
    return lines


def render_slaspec(parsed: ParsedData) -> str:
    """Render the SLEIGH specification for the finalized model."""
    config = parsed.config
    lines = [
        f"# {config.name} ({config.family})",
        "# Generated by gpmg",
        "",
        f"define endian={config.endian};",
        f"define alignment={config.alignment};",
        "",
        f"define space ram type=ram_space size={config.address_size} default;",
        "define space register type=register_space size=4;",
        "",
        f"define register offset=0x0000 size={config.address_size} [",
        "  " + " ".join(defined_registers(parsed)),
        "];",
        "",
    ]

    for width in sorted(parsed.tokens):
        lines.extend(_token_lines(parsed.tokens[width]))
        lines.append("")

    attach = _attach_lines(parsed)
    if attach:
        lines.extend(attach)
        lines.append("")

    for instruction, layout in zip(parsed.instructions, parsed.layouts):
        lines.extend(_constructor_lines(instruction, layout, parsed))
        lines.append("")

    return "\n".join(lines)


# =============================================================================
# Language Definition Files
# =============================================================================

def language_id(parsed: ParsedData) -> str:
    config = parsed.config
    endian = "LE" if config.word_context.is_little_endian else "BE"
    return f"{config.name}:{endian}:{config.bitness}:default"


def render_ldefs(parsed: ParsedData) -> str:
    config = parsed.config
    name = config.name
    return "\n".join([
        '<?xml version="1.0" encoding="UTF-8"?>',
        "<language_definitions>",
        f"  <language processor={quoteattr(name)}",
        f"            endian={quoteattr(config.endian)}",
        f'            size="{config.bitness}"',
        '            variant="default"',
        '            version="1.0"',
        f"            slafile={quoteattr(name + '.sla')}",
        f"            processorspec={quoteattr(name + '.pspec')}",
        f"            id={quoteattr(language_id(parsed))}>",
        f"    <description>{escape(config.family)} {escape(name)}</description>",
        f"    <compiler name=\"default\" spec={quoteattr(name + '.cspec')} id=\"default\"/>",
        "  </language>",
        "</language_definitions>",
        "",
    ])


def render_pspec(parsed: ParsedData) -> str:
    return "\n".join([
        '<?xml version="1.0" encoding="UTF-8"?>',
        "<processor_spec>",
        f'  <programcounter register="{PROGRAM_COUNTER}"/>',
        "</processor_spec>",
        "",
    ])


def render_cspec(parsed: ParsedData) -> str:
    return "\n".join([
        '<?xml version="1.0" encoding="UTF-8"?>',
        "<compiler_spec>",
        "  <global>",
        '    <range space="ram"/>',
        "  </global>",
        f'  <stackpointer register="{STACK_POINTER}" space="ram"/>',
        "  <default_proto>",
        '    <prototype name="__stdcall" extrapop="unknown" stackshift="0">',
        "      <input/>",
        "      <output/>",
        "    </prototype>",
        "  </default_proto>",
        "</compiler_spec>",
        "",
    ])


# =============================================================================
# Module Directory
# =============================================================================

def create_processor_module(parsed: ParsedData, output_dir: Union[str, Path] = ".") -> Path:
    """
    Write the processor module for `parsed` under `output_dir`.

    Args:
        parsed: Finalized model (tokens and layouts computed)
        output_dir: Directory the module directory is created in

    Returns:
        Path of the module directory

    Raises:
        OSError: If the files cannot be written
    """
    name = parsed.config.name
    module_dir = Path(output_dir) / name
    languages = module_dir / "data" / "languages"
    languages.mkdir(parents=True, exist_ok=True)

    (module_dir / "Module.manifest").write_text("", encoding="utf-8")
    files = {
        f"{name}.slaspec": render_slaspec(parsed),
        f"{name}.ldefs": render_ldefs(parsed),
        f"{name}.pspec": render_pspec(parsed),
        f"{name}.cspec": render_cspec(parsed),
    }
    for filename, text in files.items():
        path = languages / filename
        path.write_text(text, encoding="utf-8")
        logger.debug("Wrote %s", path)

    logger.info("Created processor module %s", module_dir)
    return module_dir
