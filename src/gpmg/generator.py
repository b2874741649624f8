"""
Module Generator Pipeline
=========================

Runs one generator pass from instruction text to processor module:

    parse -> combine (duplicates, immediates, registers)
          -> attach variables -> token layout -> emit

Every stage reads and rewrites the same ParsedData. A structural error in
any stage aborts the run; nothing is written unless every stage succeeds.

Usage
-----
>>> from gpmg import ModuleGenerator, ProcessorConfig
>>> generator = ModuleGenerator(ProcessorConfig(name="Toy", bitness=8))
>>> parsed = generator.build(Path("toy.txt").read_text().splitlines())
>>> generator.write(parsed, "out")
PosixPath('out/Toy')

Copyright (c) 2025 GPMG Contributors
"""

from pathlib import Path
from typing import Iterable, Optional, Union
import logging

from gpmg.attach import compute_attach_variables
from gpmg.combiner import CombineStats, TieBreak, combine_all
from gpmg.config import ProcessorConfig
from gpmg.emitter import create_processor_module
from gpmg.errors import ErrorCollector
from gpmg.model import ParsedData
from gpmg.parser import InstructionParser
from gpmg.registers import RegisterSet, default_register_set
from gpmg.tokens import compute_token_instructions

logger = logging.getLogger(__name__)


class ModuleGenerator:
    """
    Drives the generator stages in their fixed order.

    Attributes:
        config: Processor configuration
        registers: Register catalog used by the parser
        skip_combining: Leave every instruction concrete
        tie_break: Ranking key for overlapping candidate groups
        strict: Abort on the first malformed line
        collector: Receives malformed lines when not strict
        stats: Statistics of the last combine, one entry per pass
    """

    def __init__(
        self,
        config: Optional[ProcessorConfig] = None,
        registers: Optional[RegisterSet] = None,
        skip_combining: bool = False,
        tie_break: Optional[TieBreak] = None,
        strict: bool = True,
        collector: Optional[ErrorCollector] = None,
    ):
        self.config = config or ProcessorConfig()
        self.registers = registers or default_register_set()
        self.skip_combining = skip_combining
        self.tie_break = tie_break
        self.strict = strict
        self.collector = collector if collector is not None else ErrorCollector()
        self.stats: list[CombineStats] = []

    def parse(self, lines: Iterable[str], filename: str = "<input>") -> ParsedData:
        """Parse instruction text into a fresh ParsedData."""
        logger.info("Parsing instructions")
        parser = InstructionParser(
            self.registers, self.config, filename, self.strict, self.collector
        )
        result = parser.parse(lines)
        logger.info("Parsed %d instructions", result.count)
        return ParsedData(self.config, self.registers, result.instructions)

    def finalize(self, parsed: ParsedData) -> ParsedData:
        """Combine, then compute attach variables and token layouts."""
        if self.skip_combining:
            logger.info("Skipping instruction combining")
            self.stats = []
        else:
            self.stats = combine_all(parsed, self.tie_break)

        logger.info("Computing attach registers")
        compute_attach_variables(parsed)

        logger.info("Computing token instructions")
        compute_token_instructions(parsed)
        return parsed

    def build(self, lines: Iterable[str], filename: str = "<input>") -> ParsedData:
        """
        Run every stage except emission.

        Raises:
            GpmgError: Any parse, combine or layout failure
        """
        return self.finalize(self.parse(lines, filename))

    def write(self, parsed: ParsedData, output_dir: Union[str, Path] = ".") -> Path:
        """Emit the processor module for a finalized model."""
        logger.info("Generating Ghidra processor specification")
        return create_processor_module(parsed, output_dir)

    def run(
        self,
        lines: Iterable[str],
        output_dir: Union[str, Path] = ".",
        filename: str = "<input>",
    ) -> Path:
        """Parse, finalize and emit. Returns the module directory."""
        return self.write(self.build(lines, filename), output_dir)

    def registers_only(self, lines: Iterable[str], filename: str = "<input>") -> list[str]:
        """Parse and return the registers the instruction set references."""
        return self.parse(lines, filename).registers_used()
