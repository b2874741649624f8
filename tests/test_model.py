"""
Unit Tests for the Instruction Model
====================================

Covers operands, bit patterns, field splitting, encode/decode and the
attach table.
"""

import pytest

from gpmg.config import ProcessorConfig
from gpmg.model import (
    AttachTable,
    AttachVariable,
    BitPattern,
    Example,
    FieldKind,
    Fixed,
    Immediate,
    Instruction,
    InstructionLayout,
    OperandField,
    ParsedData,
    Register,
    render_operands,
)
from gpmg.registers import default_register_set


def imm(lo, hi, signed=False):
    return OperandField(FieldKind.IMMEDIATE, lo, hi, signed=signed)


def reg(lo, hi, attach_id):
    return OperandField(FieldKind.REGISTER_ATTACH, lo, hi, attach_id=attach_id)


# =============================================================================
# Operands
# =============================================================================

class TestOperands:
    """Operand pieces and rendering."""

    def test_immediate_equality_ignores_spelling(self):
        """Test 0x10 and 16 are the same immediate."""
        assert Immediate(16, "0x10") == Immediate(16, "16")
        assert hash(Immediate(16, "0x10")) == hash(Immediate(16))
        assert Immediate(16, "0x10").display == "0x10"
        assert Immediate(16).display == "16"

    def test_render_comma_and_hash(self):
        """Test commas are followed by a space and '#' sticks to its value."""
        operands = (Register("r1"), Fixed(","), Fixed("#"), Immediate(1, "1"))
        assert render_operands(operands) == "r1, #1"

    def test_render_memory_operand(self):
        """Test brackets and '+' attach to their neighbours."""
        operands = (Fixed("["), Register("x"), Fixed("+"), Immediate(4, "4"), Fixed("]"))
        assert render_operands(operands) == "[x+4]"

    def test_render_words(self):
        """Test adjacent words are separated by a space."""
        assert render_operands((Fixed("byte"), Register("a"))) == "byte a"

    def test_render_field(self):
        """Test fields render by name."""
        assert render_operands((Fixed("#"), imm(0, 8))) == "#imm_0_8"


class TestOperandField:
    """Field validation and naming."""

    def test_names(self):
        """Test names encode kind, position, width and table."""
        assert imm(0, 8).name == "imm_0_8"
        assert imm(0, 8, signed=True).name == "simm_0_8"
        assert reg(4, 6, 3).name == "reg_4_2_3"

    @pytest.mark.parametrize("args", [
        (FieldKind.IMMEDIATE, 4, 4, None),
        (FieldKind.IMMEDIATE, -1, 2, None),
        (FieldKind.IMMEDIATE, 0, 2, 0),
        (FieldKind.REGISTER_ATTACH, 0, 2, None),
    ])
    def test_invalid(self, args):
        """Test empty slices and misplaced attach ids are rejected."""
        with pytest.raises(ValueError):
            OperandField(*args)

    def test_extract(self):
        """Test a field reads its slice of a word."""
        assert imm(4, 8).extract(0xAB) == 0xA
        assert imm(0, 4).extract(0xAB) == 0xB


# =============================================================================
# Encodings
# =============================================================================

class TestBitPattern:
    """Literal bit runs."""

    def test_text(self):
        """Test text is zero padded binary."""
        assert BitPattern(5, 4).text == "0101"

    @pytest.mark.parametrize("value, width", [(4, 2), (-1, 4), (0, 0)])
    def test_invalid(self, value, width):
        """Test values must fit a positive width."""
        with pytest.raises(ValueError):
            BitPattern(value, width)


class TestExample:
    """Example comments."""

    def test_str(self):
        """Test the opcode is shown as zero padded hex."""
        assert str(Example(0x21, 8, "MOV r1, #1")) == "0x21 MOV r1, #1"
        assert Example(6, 5, "PUSH r1").opcode_text == "0x06"
        assert Example(0x2101, 16, "X").opcode_text == "0x2101"


class TestInstruction:
    """Construction, splitting and the encode/decode round trip."""

    def setup_method(self):
        """Create a concrete 8-bit instruction 0b10110110."""
        self.concrete = Instruction.concrete(
            "MOV", (Register("r1"), Fixed(","), Fixed("#"), Immediate(5, "5")), 0b10110110, 8
        )

    def test_concrete(self):
        """Test a concrete instruction holds one pattern and one example."""
        assert self.concrete.encoding == (BitPattern(0b10110110, 8),)
        assert self.concrete.examples == (Example(0b10110110, 8, "MOV r1, #5"),)
        assert self.concrete.text == "MOV r1, #5"
        assert not self.concrete.is_generalized

    def test_width_invariant(self):
        """Test encodings must cover exactly the declared width."""
        with pytest.raises(ValueError):
            Instruction("X", (), (BitPattern(1, 4),), 8)

    def test_field_position_invariant(self):
        """Test a field must sit at its declared slice."""
        with pytest.raises(ValueError):
            Instruction("X", (), (imm(0, 4), BitPattern(1, 4)), 8)

    def test_with_field_middle(self):
        """Test splitting a literal run around a middle slice."""
        encoding = self.concrete.with_field(imm(2, 5))
        assert encoding == (BitPattern(0b101, 3), imm(2, 5), BitPattern(0b10, 2))

    def test_with_field_top(self):
        """Test a slice at the top leaves only the low bits."""
        encoding = self.concrete.with_field(imm(4, 8))
        assert encoding == (imm(4, 8), BitPattern(0b0110, 4))

    def test_with_field_whole_word(self):
        """Test a slice covering the word replaces every literal bit."""
        assert self.concrete.with_field(imm(0, 8)) == (imm(0, 8),)

    def test_with_field_rejects_overlap(self):
        """Test a slice over an existing field is rejected."""
        generalized = Instruction("MOV", (), self.concrete.with_field(imm(2, 5)), 8)
        with pytest.raises(ValueError):
            generalized.with_field(imm(0, 3))
        with pytest.raises(ValueError):
            generalized.with_field(imm(6, 9))

    def test_masks_and_pattern_text(self):
        """Test the literal mask, value and pattern text."""
        generalized = Instruction("MOV", (imm(2, 5),), self.concrete.with_field(imm(2, 5)), 8)
        assert generalized.fixed_mask == 0b11100011
        assert generalized.fixed_value == 0b10100010
        assert generalized.pattern_text == "101iii10"
        assert generalized.fields == (imm(2, 5),)

    def test_register_pattern_text(self):
        """Test register field bits show as 'r'."""
        generalized = Instruction("INC", (reg(0, 2, 0),), (BitPattern(3, 2), reg(0, 2, 0)), 4)
        assert generalized.pattern_text == "11rr"

    def test_encode_decode(self):
        """Test field values reproduce concrete words."""
        generalized = Instruction("MOV", (imm(2, 5),), self.concrete.with_field(imm(2, 5)), 8)
        assert generalized.matches(0b10111110)
        assert not generalized.matches(0b00111110)
        assert generalized.decode(0b10111110) == {"imm_2_3": 0b111}
        assert generalized.encode({"imm_2_3": 0b111}) == 0b10111110
        assert generalized.encode(generalized.decode(0b10110110)) == 0b10110110

    def test_encode_errors(self):
        """Test missing and oversized values are rejected."""
        generalized = Instruction("MOV", (imm(2, 5),), self.concrete.with_field(imm(2, 5)), 8)
        with pytest.raises(KeyError):
            generalized.encode({})
        with pytest.raises(ValueError):
            generalized.encode({"imm_2_3": 8})


# =============================================================================
# Attach Variables
# =============================================================================

class TestAttachVariable:
    """Selector width and members."""

    @pytest.mark.parametrize("count, width", [(2, 1), (3, 2), (4, 2), (5, 3), (8, 3), (9, 4)])
    def test_width(self, count, width):
        """Test width is ceil(log2(count)), at least one."""
        registers = tuple(f"r{n}" for n in range(count))
        assert AttachVariable(0, registers).width == width

    def test_members_skip_holes(self):
        """Test unused selector values are not members."""
        variable = AttachVariable(0, ("a", None, None, "b"))
        assert variable.members == ("a", "b")
        assert variable.width == 2


class TestAttachTable:
    """Content-addressed interning."""

    def test_intern_reuses_equal_lists(self):
        """Test equal register lists share one entry."""
        table = AttachTable()
        first = table.intern(("r1", "r2"))
        second = table.intern(("r1", "r2"))
        other = table.intern(("r2", "r1"))
        assert first is second
        assert other.id != first.id
        assert len(table) == 2

    def test_lookup_and_iteration(self):
        """Test lookup by id and iteration in id order."""
        table = AttachTable()
        table.add(AttachVariable(1, ("a", "b"), "a_b"))
        table.add(AttachVariable(0, ("c", "d"), "c_d"))
        assert 1 in table
        assert 2 not in table
        assert table.get(1).name == "a_b"
        assert [v.id for v in table] == [0, 1]


# =============================================================================
# Parsed Data
# =============================================================================

class TestParsedData:
    """Aggregate queries."""

    def test_registers_used(self):
        """Test concrete registers and attach members in first-seen order."""
        parsed = ParsedData(ProcessorConfig(bitness=4), default_register_set())
        variable = parsed.attach_table.intern(("r2", "r3"))
        field = reg(0, 1, variable.id)
        parsed.instructions = [
            Instruction.concrete("MOV", (Register("r1"), Fixed(","), Register("r2")), 1, 4),
            Instruction("INC", (field,), (BitPattern(0, 3), field), 4),
        ]
        assert parsed.registers_used() == ["r1", "r2", "r3"]

    def test_layout_field_lookup(self):
        """Test a layout without the field raises KeyError."""
        layout = InstructionLayout("instr8", ())
        with pytest.raises(KeyError):
            layout.field_for(imm(0, 8))
