"""
Instruction Combining Engine
============================

Rewrites a sequence of concrete instructions into a smaller sequence of
generalized instruction patterns. Three passes run in a fixed order:

1. **Duplicates**: identical entries (mnemonic, operands and encoding)
   collapse to the first occurrence.

2. **Immediates**: entries that differ only in one immediate literal at the
   same operand position merge into one pattern with an immediate field.

3. **Registers**: entries that differ only in one register at the same
   operand position merge into one pattern with a register field selecting
   from an attach table.

Each pass is a plain function from an instruction list to a new list, so it
can be run and tested on its own. ``combine_instructions`` applies one pass
to a ParsedData; ``combine_all`` applies the three in order.

Grouping
--------
For a pass and an operand position ``p``, two instructions belong to the
same candidate group when they have the same width, mnemonic, existing
operand fields, and the same operands everywhere except position ``p``,
where both hold a concrete operand of the pass's kind. Within a group only
the first member for each distinct value is kept; later repeats stay
standalone. Groups need at least two members.

When one instruction belongs to several candidate groups, the groups are
ranked by a tie-break key and accepted greedily. The default prefers the
longest shared operand prefix (largest ``p``), then the lowest source index.
Accepted groups collapse into their first member's slot, so source order is
preserved. A pass repeats until no group merges; instructions that vary in
two positions therefore generalize one position per round.

Losslessness
------------
Every concrete word a pass receives is still matched by exactly one
pattern afterwards. A merged pattern differs from each member only inside
the new field, and every member's field value reproduces its bits. A
pattern that would also match a word of an instruction outside the group
is never accepted: the immediate pass tries the next wider window, and
when none is free (or for a register group) the members stay standalone.

    00000000 NOP
    00000001 LD #1      LD #imm_0_2 would also match NOP and HALT,
    00000010 LD #2      so both LD lines are kept as they are
    00000011 HALT

Usage
-----
>>> from gpmg.combiner import combine_all
>>> stats = combine_all(parsed)
>>> [s.removed for s in stats]
[1, 2, 1]

Copyright (c) 2025 GPMG Contributors
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Iterable, Optional
import logging

from gpmg.errors import (
    InconsistentImmediatePlacementError,
    InconsistentRegisterPlacementError,
    RegisterGroupTooSmallError,
)
from gpmg.model import (
    AttachTable,
    FieldKind,
    Immediate,
    Instruction,
    OperandField,
    ParsedData,
    Register,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Pass Selection and Statistics
# =============================================================================

class CombineMode(Enum):
    """The three combining passes, in pipeline order."""
    DUPLICATES = auto()
    IMMEDIATES = auto()
    REGISTERS = auto()


PIPELINE_ORDER = (CombineMode.DUPLICATES, CombineMode.IMMEDIATES, CombineMode.REGISTERS)


@dataclass
class CombineStats:
    """
    What one pass did.

    Attributes:
        mode: The pass
        before: Instruction count on entry
        after: Instruction count on exit
        groups: Number of groups merged
        rounds: Rounds run until no group merged
    """
    mode: CombineMode
    before: int = 0
    after: int = 0
    groups: int = 0
    rounds: int = 0

    @property
    def removed(self) -> int:
        return self.before - self.after


# =============================================================================
# Candidate Groups
# =============================================================================

# Stands in for the varying operand in a grouping key
_WILDCARD = object()


@dataclass
class CandidateGroup:
    """
    Instructions that differ only at one operand position.

    Attributes:
        position: The varying operand position (also the shared prefix length)
        members: Positions of the members in the instruction list
        first_index: Source index of the first member
    """
    position: int
    members: list[int] = field(default_factory=list)
    first_index: int = 0


TieBreak = Callable[[CandidateGroup], tuple]


def prefer_longest_prefix(group: CandidateGroup) -> tuple:
    """Default ranking: longest shared operand prefix, then lowest source index."""
    return (-group.position, group.first_index)


def find_candidate_groups(
    instructions: list[Instruction],
    operand_type: type,
) -> list[CandidateGroup]:
    """
    Find every group of at least two instructions that differ only in one
    concrete operand of `operand_type`.

    Groups are returned in discovery order; members are in list order.
    """
    groups: dict[tuple, CandidateGroup] = {}
    values: dict[tuple, set] = {}

    for pos, instruction in enumerate(instructions):
        for p, operand in enumerate(instruction.operands):
            if not isinstance(operand, operand_type):
                continue
            shape = instruction.operands[:p] + (_WILDCARD,) + instruction.operands[p + 1:]
            key = (instruction.width, instruction.mnemonic, shape, p, instruction.fields)

            seen = values.setdefault(key, set())
            if operand in seen:
                continue
            seen.add(operand)

            group = groups.get(key)
            if group is None:
                group = groups[key] = CandidateGroup(p, first_index=instruction.index)
            group.members.append(pos)

    return [g for g in groups.values() if len(g.members) >= 2]


def foreign_opcodes(instructions: list[Instruction], members: list[int]) -> frozenset[int]:
    """
    Concrete words of the same width owned by instructions outside `members`.

    A merged pattern for the group must not match any of them.
    """
    inside = set(members)
    width = instructions[members[0]].width
    return frozenset(
        example.opcode
        for pos, instruction in enumerate(instructions)
        if pos not in inside and instruction.width == width
        for example in instruction.examples
    )


# =============================================================================
# Bit Helpers
# =============================================================================

def _varying_bits(members: list[Instruction]) -> int:
    """Mask of literal bits that differ between any member and the first."""
    base = members[0].fixed_value
    mask = 0
    for member in members[1:]:
        mask |= member.fixed_value ^ base
    return mask


def _bit_positions(mask: int) -> list[int]:
    return [bit for bit in range(mask.bit_length()) if mask >> bit & 1]


def _window(value: int, lo: int, hi: int) -> int:
    return (value >> lo) & ((1 << (hi - lo)) - 1)


def _literal_fits(literal: int, width: int) -> bool:
    if literal < 0:
        return literal >= -(1 << (width - 1))
    return literal < (1 << width)


def _claims(first: Instruction, window_mask: int, opcodes: Iterable[int]) -> bool:
    """True if `first` with `window_mask` opened up would match one of `opcodes`."""
    mask = first.fixed_mask & ~window_mask
    value = first.fixed_value & mask
    return any(opcode & mask == value for opcode in opcodes)


# =============================================================================
# Generalizing One Group
# =============================================================================

def _merge(
    members: list[Instruction],
    position: int,
    operand_field: OperandField,
) -> Instruction:
    """Collapse members into the first member with a field at `position`."""
    first = members[0]
    operands = first.operands[:position] + (operand_field,) + first.operands[position + 1:]
    examples = tuple(example for member in members for example in member.examples)
    return Instruction(
        first.mnemonic,
        operands,
        first.with_field(operand_field),
        first.width,
        first.index,
        examples,
    )


def generalize_immediate_group(
    members: list[Instruction],
    position: int,
    foreign: Iterable[int] = (),
) -> Optional[Instruction]:
    """
    Merge instructions that differ in one immediate literal.

    The field slice is the narrowest window of literal bits that contains
    every varying bit and holds each member's literal (two's complement
    within the window for negative literals). Narrower windows win, then
    lower bit positions. Windows whose pattern would match one of the
    `foreign` words are skipped.

    Returns:
        The merged instruction, or None if every window that holds the
        literals collides with a foreign word

    Raises:
        InconsistentImmediatePlacementError: If no window holds the literals
    """
    foreign = frozenset(foreign)
    first = members[0]
    literals = [member.operands[position].value for member in members]
    indices = [member.index for member in members]
    varying = _varying_bits(members)
    bits = _bit_positions(varying)

    def fail() -> InconsistentImmediatePlacementError:
        return InconsistentImmediatePlacementError(first.mnemonic, indices, bits, position)

    if not varying:
        raise fail()

    low, top = bits[0], bits[-1] + 1
    literal_mask = first.fixed_mask
    blocked = False

    for width in range(top - low, first.width + 1):
        for lo in range(max(0, top - width), min(low, first.width - width) + 1):
            hi = lo + width
            window_mask = ((1 << width) - 1) << lo
            if literal_mask & window_mask != window_mask:
                continue
            if not all(
                _literal_fits(literal, width)
                and _window(member.fixed_value, lo, hi) == literal & ((1 << width) - 1)
                for member, literal in zip(members, literals)
            ):
                continue
            if _claims(first, window_mask, foreign):
                blocked = True
                continue
            operand_field = OperandField(
                FieldKind.IMMEDIATE, lo, hi, signed=any(v < 0 for v in literals)
            )
            logger.debug(
                "Immediate field %s for '%s' (instructions %s)",
                operand_field.name, first.mnemonic, indices,
            )
            return _merge(members, position, operand_field)

    if blocked:
        logger.debug(
            "Immediate group '%s' (instructions %s) left uncombined: every window "
            "matches another instruction", first.mnemonic, indices,
        )
        return None
    raise fail()


def generalize_register_group(
    members: list[Instruction],
    position: int,
    attach_table: AttachTable,
    foreign: Iterable[int] = (),
) -> Optional[Instruction]:
    """
    Merge instructions that differ in one register operand.

    The field slice spans the varying bits; each member's selector is its
    value in that slice. The attach list is indexed by selector, with None
    for selector values no member used, and is interned in `attach_table`.

    Returns:
        The merged instruction, or None if its pattern would match one of
        the `foreign` words (an unused selector can cover another opcode)

    Raises:
        RegisterGroupTooSmallError: If fewer than two members are given
        InconsistentRegisterPlacementError: If selectors and registers do
            not map one-to-one, or the varying bits overlap a field
    """
    first = members[0]
    indices = [member.index for member in members]
    if len(members) < 2:
        raise RegisterGroupTooSmallError(first.mnemonic, indices)

    varying = _varying_bits(members)
    if not varying:
        raise InconsistentRegisterPlacementError(
            first.mnemonic, indices, (0, 0), "all members share one encoding"
        )

    bits = _bit_positions(varying)
    lo, hi = bits[0], bits[-1] + 1
    window_mask = ((1 << (hi - lo)) - 1) << lo
    if first.fixed_mask & window_mask != window_mask:
        raise InconsistentRegisterPlacementError(
            first.mnemonic, indices, (lo, hi), "varying bits overlap an operand field"
        )

    by_selector: dict[int, str] = {}
    by_register: dict[str, int] = {}
    for member in members:
        name = member.operands[position].name
        selector = _window(member.fixed_value, lo, hi)
        if by_selector.get(selector, name) != name:
            raise InconsistentRegisterPlacementError(
                first.mnemonic, indices, (lo, hi),
                f"'{by_selector[selector]}' and '{name}' share selector {selector}",
            )
        if by_register.get(name, selector) != selector:
            raise InconsistentRegisterPlacementError(
                first.mnemonic, indices, (lo, hi),
                f"'{name}' appears at selectors {by_register[name]} and {selector}",
            )
        by_selector[selector] = name
        by_register[name] = selector

    if _claims(first, window_mask, foreign):
        logger.debug(
            "Register group '%s' (instructions %s) left uncombined: bits [%d, %d) "
            "match another instruction", first.mnemonic, indices, lo, hi,
        )
        return None

    registers = tuple(by_selector.get(s) for s in range(max(by_selector) + 1))
    variable = attach_table.intern(registers)
    operand_field = OperandField(FieldKind.REGISTER_ATTACH, lo, hi, attach_id=variable.id)
    logger.debug(
        "Register field %s for '%s' selects %s",
        operand_field.name, first.mnemonic, variable.members,
    )
    return _merge(members, position, operand_field)


# =============================================================================
# Passes
# =============================================================================

def combine_duplicates(instructions: list[Instruction]) -> tuple[list[Instruction], CombineStats]:
    """
    Drop exact duplicates, keeping the first occurrence.

    Running this on its own output changes nothing.
    """
    stats = CombineStats(CombineMode.DUPLICATES, before=len(instructions), rounds=1)
    seen: set[tuple] = set()
    kept = []
    for instruction in instructions:
        key = (instruction.mnemonic, instruction.operands, instruction.encoding)
        if key in seen:
            continue
        seen.add(key)
        kept.append(instruction)
    stats.after = len(kept)
    stats.groups = stats.removed
    return kept, stats


Generalize = Callable[[list[Instruction], int, frozenset[int]], Optional[Instruction]]


def _combine_rounds(
    instructions: list[Instruction],
    stats: CombineStats,
    operand_type: type,
    generalize: Generalize,
    tie_break: Optional[TieBreak],
) -> list[Instruction]:
    """
    Rank candidate groups and merge them greedily, one group per
    instruction, until a round merges nothing.

    A group whose merged pattern is refused does not claim its members,
    so a lower-ranked group may still take them.
    """
    tie_break = tie_break or prefer_longest_prefix
    current = list(instructions)

    while True:
        stats.rounds += 1
        candidates = find_candidate_groups(current, operand_type)
        candidates.sort(key=tie_break)

        claimed: set[int] = set()
        replacement: dict[int, Instruction] = {}
        removed: set[int] = set()
        for group in candidates:
            members = [m for m in group.members if m not in claimed]
            if len(members) < 2:
                continue
            merged = generalize(
                [current[m] for m in members],
                group.position,
                foreign_opcodes(current, members),
            )
            if merged is None:
                continue
            claimed.update(members)
            replacement[members[0]] = merged
            removed.update(members[1:])

        if not replacement:
            break

        current = [
            replacement.get(pos, instruction)
            for pos, instruction in enumerate(current)
            if pos not in removed
        ]
        stats.groups += len(replacement)

    stats.after = len(current)
    return current


def combine_immediates(
    instructions: list[Instruction],
    tie_break: Optional[TieBreak] = None,
) -> tuple[list[Instruction], CombineStats]:
    """
    Merge groups differing in one immediate literal.

    Raises:
        InconsistentImmediatePlacementError: If a group's literal does not
            sit at one bit slice
    """
    stats = CombineStats(CombineMode.IMMEDIATES, before=len(instructions))
    result = _combine_rounds(
        instructions, stats, Immediate, generalize_immediate_group, tie_break
    )
    return result, stats


def combine_registers(
    instructions: list[Instruction],
    attach_table: AttachTable,
    tie_break: Optional[TieBreak] = None,
) -> tuple[list[Instruction], CombineStats]:
    """
    Merge groups differing in one register, interning attach tables.

    Raises:
        InconsistentRegisterPlacementError: If a group's registers do not
            map one-to-one onto selector values
    """
    stats = CombineStats(CombineMode.REGISTERS, before=len(instructions))

    def generalize(
        members: list[Instruction], position: int, foreign: frozenset[int]
    ) -> Optional[Instruction]:
        return generalize_register_group(members, position, attach_table, foreign)

    result = _combine_rounds(instructions, stats, Register, generalize, tie_break)
    return result, stats


# =============================================================================
# ParsedData Entry Points
# =============================================================================

def combine_instructions(
    parsed: ParsedData,
    mode: CombineMode,
    tie_break: Optional[TieBreak] = None,
) -> CombineStats:
    """
    Apply one combining pass to `parsed` in place.

    Args:
        parsed: The run's data; `instructions` and `attach_table` are updated
        mode: Which pass to run
        tie_break: Ranking key for overlapping candidate groups

    Returns:
        CombineStats for the pass
    """
    if mode == CombineMode.DUPLICATES:
        parsed.instructions, stats = combine_duplicates(parsed.instructions)
    elif mode == CombineMode.IMMEDIATES:
        parsed.instructions, stats = combine_immediates(parsed.instructions, tie_break)
    else:
        parsed.instructions, stats = combine_registers(
            parsed.instructions, parsed.attach_table, tie_break
        )

    logger.info(
        "Combined %s: %d groups merged, %d -> %d instructions",
        mode.name.lower(), stats.groups, stats.before, stats.after,
    )
    return stats


def combine_all(parsed: ParsedData, tie_break: Optional[TieBreak] = None) -> list[CombineStats]:
    """Run duplicates, immediates and registers, in that order."""
    return [combine_instructions(parsed, mode, tie_break) for mode in PIPELINE_ORDER]
