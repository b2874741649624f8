"""
GPMG - Ghidra Processor Module Generator
========================================

Turns a plain-text list of instruction encodings into a Ghidra processor
module. The input names one concrete instruction per line; the generator
merges related lines into parameterized constructors, works out the
register tables and token fields they need, and writes the SLEIGH and
language definition files.

Main Components
---------------
- **parser**: instruction text to concrete Instruction records
- **combiner**: duplicate, immediate and register combining passes
- **attach**: register (attach variable) table finalization
- **tokens**: token and field layout
- **emitter**: processor module files
- **generator**: the pipeline that runs them in order

Quick Start
-----------
    >>> from gpmg import ModuleGenerator, ProcessorConfig
    >>> generator = ModuleGenerator(ProcessorConfig(name="Toy", bitness=8))
    >>> generator.run(["00010001 INC r1", "00010010 INC r2"], "out")
    PosixPath('out/Toy')

Or use the command-line tool:
    $ gpmg -i toy.txt -n Toy -b 8 -o out
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from gpmg.attach import compute_attach_variables
from gpmg.combiner import (
    CombineMode,
    CombineStats,
    combine_all,
    combine_duplicates,
    combine_immediates,
    combine_instructions,
    combine_registers,
    prefer_longest_prefix,
)
from gpmg.config import ProcessorConfig, WordContext
from gpmg.emitter import create_processor_module, render_slaspec
from gpmg.errors import (
    CombineError,
    ConfigurationError,
    ErrorCollector,
    FieldWidthMismatchError,
    GpmgError,
    InconsistentImmediatePlacementError,
    InconsistentRegisterPlacementError,
    LayoutError,
    MalformedLineError,
    OverlappingFieldsError,
    ParseError,
    RegisterGroupTooSmallError,
    SourceLocation,
    UnknownRegisterReferenceError,
)
from gpmg.generator import ModuleGenerator
from gpmg.model import (
    AttachTable,
    AttachVariable,
    BitPattern,
    FieldKind,
    Fixed,
    Immediate,
    Instruction,
    OperandField,
    ParsedData,
    Register,
    Token,
)
from gpmg.parser import InstructionParser, ParseResult, parse_lines
from gpmg.registers import RegisterSet, default_register_set
from gpmg.tokens import compute_token_instructions

__all__ = [
    "__version__",
    # Pipeline
    "ModuleGenerator",
    "ProcessorConfig",
    "WordContext",
    "RegisterSet",
    "default_register_set",
    # Stages
    "InstructionParser",
    "ParseResult",
    "parse_lines",
    "CombineMode",
    "CombineStats",
    "combine_all",
    "combine_duplicates",
    "combine_immediates",
    "combine_instructions",
    "combine_registers",
    "prefer_longest_prefix",
    "compute_attach_variables",
    "compute_token_instructions",
    "create_processor_module",
    "render_slaspec",
    # Model
    "AttachTable",
    "AttachVariable",
    "BitPattern",
    "FieldKind",
    "Fixed",
    "Immediate",
    "Instruction",
    "OperandField",
    "ParsedData",
    "Register",
    "Token",
    # Errors
    "GpmgError",
    "ConfigurationError",
    "ParseError",
    "MalformedLineError",
    "SourceLocation",
    "ErrorCollector",
    "CombineError",
    "InconsistentImmediatePlacementError",
    "InconsistentRegisterPlacementError",
    "RegisterGroupTooSmallError",
    "LayoutError",
    "OverlappingFieldsError",
    "FieldWidthMismatchError",
    "UnknownRegisterReferenceError",
]
