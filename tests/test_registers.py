"""
Unit Tests for the Register Catalog
===================================
"""

import pytest

from gpmg.errors import ConfigurationError
from gpmg.registers import DEFAULT_REGISTERS, RegisterSet, default_register_set


class TestDefaultTable:
    """The built-in register names."""

    @pytest.mark.parametrize("name", ["r0", "R31", "sp", "PC", "eax", "x5", "a0", "hl", "w3"])
    def test_known(self, name):
        """Test common register names are recognized in any case."""
        assert default_register_set().contains(name)

    @pytest.mark.parametrize("name", ["foo", "dword", "ptr", "r32"])
    def test_unknown(self, name):
        """Test keywords and unlisted names are not registers."""
        assert not default_register_set().contains(name)

    def test_no_duplicates(self):
        """Test the default table lists each name once."""
        assert len(DEFAULT_REGISTERS) == len(set(DEFAULT_REGISTERS))
        assert all(name == name.lower() for name in DEFAULT_REGISTERS)


class TestRegisterSet:
    """Lookup, normalization and extension."""

    def test_normalize(self):
        """Test names normalize to lower case, unknown names to None."""
        registers = RegisterSet(["EAX", "Acc"])
        assert registers.normalize("eax") == "eax"
        assert registers.normalize("ACC") == "acc"
        assert registers.normalize("ebx") is None

    def test_dedupes_in_order(self):
        """Test repeated names keep their first position."""
        registers = RegisterSet(["b", "A", "a", "c"])
        assert registers.all() == ("b", "a", "c")
        assert len(registers) == 3
        assert list(registers) == ["b", "a", "c"]

    def test_with_additional_is_new_set(self):
        """Test extending returns a new set and leaves the original alone."""
        base = RegisterSet(["r0"])
        extended = base.with_additional(["acc"])
        assert "acc" in extended
        assert "acc" not in base

    @pytest.mark.parametrize("name", ["a b", "1r", "r,1", ""])
    def test_invalid_names(self, name):
        """Test names that could not be one operand piece are rejected."""
        with pytest.raises(ConfigurationError):
            RegisterSet([name])

    def test_contains_operator(self):
        """Test `in` works for strings only."""
        registers = RegisterSet(["r1"])
        assert "R1" in registers
        assert 1 not in registers

    def test_default_with_additional(self):
        """Test additional names are added to the default table."""
        registers = default_register_set(["acc2", "IDX"])
        assert registers.contains("ACC2")
        assert registers.normalize("idx") == "idx"
        assert registers.contains("r0")
