"""
Unit Tests for the Attach Variable Synthesizer
==============================================

Copyright (c) 2025 GPMG Contributors
"""

import pytest

from gpmg.attach import attach_name, compute_attach_variables
from gpmg.combiner import combine_all
from gpmg.config import ProcessorConfig
from gpmg.errors import LayoutError, RegisterGroupTooSmallError
from gpmg.model import (
    AttachVariable,
    BitPattern,
    FieldKind,
    Instruction,
    OperandField,
    ParsedData,
)
from gpmg.registers import default_register_set


def register_instruction(mnemonic, attach_id, width=1, prefix=0, index=0):
    """A 4-bit instruction whose low bits select from an attach table."""
    field = OperandField(FieldKind.REGISTER_ATTACH, 0, width, attach_id=attach_id)
    return Instruction(mnemonic, (field,), (BitPattern(prefix, 4 - width), field), 4, index)


@pytest.fixture
def parsed():
    return ParsedData(ProcessorConfig(name="Toy", bitness=4), default_register_set())


class TestNaming:
    """Display names for attach tables."""

    def test_joined_members(self):
        """Test small tables are named after their registers."""
        assert attach_name(AttachVariable(0, ("r1", "r2")), 0) == "r1_r2"
        assert attach_name(AttachVariable(0, ("a", None, None, "b")), 0) == "a_b"

    def test_positional_for_large_tables(self):
        """Test tables of more than four registers get a positional name."""
        variable = AttachVariable(0, ("r0", "r1", "r2", "r3", "r4"))
        assert attach_name(variable, 3) == "attach3"


class TestComputeAttachVariables:
    """Finalizing the attach table."""

    def test_after_combining(self, parse):
        """Test a combined register group gets a named, one-bit table."""
        parsed = parse(["00110 PUSH r1", "00111 PUSH r2"], bitness=5)
        combine_all(parsed)
        table = compute_attach_variables(parsed)

        (variable,) = table
        assert variable.name == "r1_r2"
        assert variable.width == 1
        assert parsed.attach_table is table
        assert parsed.instructions[0].fields[0].attach_id == variable.id

    def test_duplicates_collapse_and_renumber(self, parsed):
        """Test equal tables merge and ids follow first reference."""
        parsed.attach_table.add(AttachVariable(0, ("r3", "r4")))
        parsed.attach_table.add(AttachVariable(1, ("r1", "r2")))
        parsed.attach_table.add(AttachVariable(2, ("r1", "r2")))
        parsed.instructions = [
            register_instruction("INC", 1, prefix=0b000, index=0),
            register_instruction("DEC", 2, prefix=0b001, index=1),
            register_instruction("NEG", 0, prefix=0b010, index=2),
        ]

        table = compute_attach_variables(parsed)

        assert [(v.id, v.registers, v.name) for v in table] == [
            (0, ("r1", "r2"), "r1_r2"),
            (1, ("r3", "r4"), "r3_r4"),
        ]
        assert [i.fields[0].attach_id for i in parsed.instructions] == [0, 0, 1]
        assert [i.operands[0].attach_id for i in parsed.instructions] == [0, 0, 1]

    def test_unreferenced_dropped(self, parsed):
        """Test tables no instruction uses are not kept."""
        parsed.attach_table.intern(("r5", "r6"))
        used = parsed.attach_table.intern(("r1", "r2"))
        parsed.instructions = [register_instruction("INC", used.id)]

        table = compute_attach_variables(parsed)

        assert len(table) == 1
        assert table.get(0).registers == ("r1", "r2")

    def test_large_table_name(self, parsed):
        """Test a five-register table is named attach0."""
        variable = parsed.attach_table.intern(("r0", "r1", "r2", "r3", "r4"))
        parsed.instructions = [register_instruction("LD", variable.id, width=3)]

        (final,) = compute_attach_variables(parsed)

        assert final.name == "attach0"
        assert final.width == 3

    def test_name_collision(self, parsed):
        """Test tables with the same members get distinct names."""
        first = parsed.attach_table.intern(("r1", "r2"))
        second = parsed.attach_table.intern(("r1", None, "r2"))
        parsed.instructions = [
            register_instruction("INC", first.id, index=0),
            register_instruction("DEC", second.id, width=2, prefix=0b01, index=1),
        ]

        table = compute_attach_variables(parsed)

        assert [v.name for v in table] == ["r1_r2", "r1_r2_1"]

    def test_single_member_table(self, parsed):
        """Test a referenced table with one register raises."""
        variable = parsed.attach_table.intern(("r1", None))
        parsed.instructions = [register_instruction("INC", variable.id)]
        with pytest.raises(RegisterGroupTooSmallError):
            compute_attach_variables(parsed)

    def test_missing_table(self, parsed):
        """Test a field naming a missing table raises LayoutError."""
        parsed.instructions = [register_instruction("INC", 7)]
        with pytest.raises(LayoutError, match="missing attach table 7"):
            compute_attach_variables(parsed)

    def test_no_register_fields(self, parse):
        """Test an instruction set without register fields has no tables."""
        parsed = parse(["0x00 NOP", "0x01 HALT"])
        assert len(compute_attach_variables(parsed)) == 0
