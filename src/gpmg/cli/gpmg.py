"""
gpmg - Ghidra Processor Module Generator Command-Line Interface
===============================================================

Reads a newline-delimited instruction list and writes a Ghidra processor
module directory.

Usage Examples
--------------
Generate a module with the defaults (MyProc, big endian, 32 bit):
    $ gpmg -i opcodes.txt

Name the processor and write under build/:
    $ gpmg -i z80.txt -n Z80 -f Zilog -e little -b 8 -o build

Check which registers the parser recognizes:
    $ gpmg -i z80.txt --print-registers-only

Teach the parser extra register names:
    $ gpmg -i toy.txt --additional-registers acc --additional-registers idx

Skip malformed lines and list them after the build:
    $ gpmg -i scraped.txt --lenient

Input Format
------------
One instruction per line, opcode first:

    0x2101  MOV r1, #1
    0x2102  MOV r1, #2
    00110   PUSH r1

Copyright (c) 2025 GPMG Contributors
"""

import logging
import sys
from pathlib import Path

import click

from gpmg import __version__
from gpmg.cli.errors import ExitCode, handle_cli_exception
from gpmg.config import VALID_ENDIANS, ProcessorConfig
from gpmg.errors import ErrorCollector
from gpmg.generator import ModuleGenerator
from gpmg.registers import default_register_set


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if verbose else "[*] %(message)s",
        force=True,
    )


def _split_registers(values: tuple[str, ...]) -> list[str]:
    """Accept repeated options as well as comma separated lists."""
    names = []
    for value in values:
        names.extend(name for name in value.replace(",", " ").split() if name)
    return names


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.option(
    "-i", "--input-file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Newline delimited text file with every opcode and instruction",
)
@click.option(
    "-n", "--processor-name",
    default="MyProc",
    show_default=True,
    help="Name of the target processor",
)
@click.option(
    "-f", "--processor-family",
    default="MyProcFamily",
    show_default=True,
    help="Name of the target processor's family",
)
@click.option(
    "-e", "--endian",
    type=click.Choice(VALID_ENDIANS),
    default="big",
    show_default=True,
    help="Endianness of the processor",
)
@click.option(
    "-a", "--alignment",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Instruction alignment of the processor",
)
@click.option(
    "-b", "--bitness",
    type=click.IntRange(min=1),
    default=32,
    show_default=True,
    help="Bitness of the processor",
)
@click.option(
    "--print-registers-only",
    is_flag=True,
    help="Only print the parsed registers",
)
@click.option(
    "--omit-opcodes",
    is_flag=True,
    help="Don't print opcodes in the .slaspec file",
)
@click.option(
    "--omit-example-instructions",
    is_flag=True,
    help="Don't print example combined instructions in the .slaspec file",
)
@click.option(
    "--skip-instruction-combining",
    is_flag=True,
    help="Don't combine instructions",
)
@click.option(
    "--lenient",
    is_flag=True,
    help="Skip malformed lines and report them instead of stopping",
)
@click.option(
    "--additional-registers",
    multiple=True,
    help="Additional register names (repeatable, or comma separated)",
)
@click.option(
    "-o", "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Directory the processor module is created in",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
@click.version_option(version=__version__, prog_name="gpmg")
def main(
    input_file: Path,
    processor_name: str,
    processor_family: str,
    endian: str,
    alignment: int,
    bitness: int,
    print_registers_only: bool,
    omit_opcodes: bool,
    omit_example_instructions: bool,
    skip_instruction_combining: bool,
    lenient: bool,
    additional_registers: tuple[str, ...],
    output_dir: Path,
    verbose: bool,
) -> None:
    """
    Generate a Ghidra processor module from an instruction list.

    Examples:

        # Little-endian 16-bit processor
        gpmg -i opcodes.txt -n Toy -e little -b 16

        # Only show the registers found in the input
        gpmg -i opcodes.txt --print-registers-only
    """
    setup_logging(verbose)
    click.echo("Ghidra Processor Module Generator (GPMG)")

    try:
        config = ProcessorConfig(
            name=processor_name,
            family=processor_family,
            endian=endian,
            alignment=alignment,
            bitness=bitness,
            omit_opcodes=omit_opcodes,
            omit_example_instructions=omit_example_instructions,
        )
        registers = default_register_set(_split_registers(additional_registers))
        collector = ErrorCollector()
        generator = ModuleGenerator(
            config,
            registers,
            skip_combining=skip_instruction_combining,
            strict=not lenient,
            collector=collector,
        )
        lines = input_file.read_text(encoding="utf-8").splitlines()

        if print_registers_only:
            found = generator.registers_only(lines, str(input_file))
            click.echo(f"Found registers: {' '.join(found)}")
            click.echo(
                "If any are missing, pass them with --additional-registers."
            )
            sys.exit(ExitCode.SUCCESS)

        parsed = generator.build(lines, str(input_file))
        module_dir = generator.write(parsed, output_dir)
    except Exception as e:
        handle_cli_exception(e, verbose)

    if collector.has_errors() or collector.warnings:
        click.echo(collector.report(), err=True)

    click.echo(f"Created processor module: {module_dir}")
    click.echo(
        f"{len(parsed.instructions)} constructors, "
        f"{len(parsed.attach_table)} attach variables, "
        f"{len(parsed.tokens)} tokens"
    )


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    main()
