"""
Shared fixtures for the gpmg test suite.
"""

import pytest

from gpmg.config import ProcessorConfig
from gpmg.model import ParsedData
from gpmg.parser import parse_lines
from gpmg.registers import default_register_set


@pytest.fixture
def registers():
    """The default register catalog."""
    return default_register_set()


@pytest.fixture
def parse(registers):
    """
    Parse instruction lines into a ParsedData.

    Usage:
        parsed = parse(["0001 NOP"], bitness=8)
    """
    def _parse(lines, **config_args):
        config_args.setdefault("name", "Toy")
        config_args.setdefault("bitness", 8)
        config = ProcessorConfig(**config_args)
        result = parse_lines(lines, registers, config)
        return ParsedData(config, registers, result.instructions)

    return _parse
