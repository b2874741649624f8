"""
Unit Tests for ProcessorConfig
==============================
"""

import dataclasses

import pytest

from gpmg.config import ProcessorConfig, WordContext
from gpmg.errors import ConfigurationError


class TestProcessorConfig:
    """Defaults, validation and derived values."""

    def test_defaults(self):
        """Test defaults match the command-line defaults."""
        config = ProcessorConfig()
        assert config.name == "MyProc"
        assert config.family == "MyProcFamily"
        assert config.endian == "big"
        assert config.alignment == 1
        assert config.bitness == 32
        assert not config.omit_opcodes
        assert not config.omit_example_instructions

    @pytest.mark.parametrize("kwargs", [
        {"endian": "middle"},
        {"alignment": 0},
        {"bitness": -8},
        {"name": "  "},
    ])
    def test_invalid(self, kwargs):
        """Test invalid settings are rejected."""
        with pytest.raises(ConfigurationError):
            ProcessorConfig(**kwargs)

    def test_endian_message(self):
        """Test the endian error names both valid values."""
        with pytest.raises(ConfigurationError, match="big or little"):
            ProcessorConfig(endian="BIG")

    def test_frozen(self):
        """Test configuration cannot change during a run."""
        config = ProcessorConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.bitness = 16

    @pytest.mark.parametrize("bitness, size", [(8, 2), (16, 2), (24, 3), (32, 4), (64, 8)])
    def test_address_size(self, bitness, size):
        """Test RAM address size is whole bytes, at least two."""
        assert ProcessorConfig(bitness=bitness).address_size == size

    def test_word_context(self):
        """Test the byte context echoes the configuration."""
        context = ProcessorConfig(endian="little", alignment=2, bitness=16).word_context
        assert context == WordContext("little", 2, 16)
        assert context.is_little_endian


class TestWordContext:
    """Token byte sizes."""

    @pytest.mark.parametrize("width, size", [(1, 1), (5, 1), (8, 1), (9, 2), (16, 2), (17, 3)])
    def test_byte_size(self, width, size):
        """Test widths round up to whole bytes."""
        assert WordContext("big", 1, 8).byte_size(width) == size
