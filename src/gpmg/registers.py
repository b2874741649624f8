"""
Register Catalog
================

The set of names the parser recognizes as registers. An operand piece is
classified as a register only when its name is in this catalog (case
insensitive), so the catalog decides which operands can later be turned
into attach-variable fields.

The catalog starts from a built-in table of register names that are
common across architectures and can be extended with caller-supplied
names (``--additional-registers`` on the command line). Once built, a
RegisterSet never changes: extending it returns a new set.

Usage
-----
>>> from gpmg.registers import default_register_set
>>> registers = default_register_set(["acc", "psw"])
>>> registers.contains("R1")
True
>>> registers.normalize("ACC")
'acc'
"""

import re
from typing import Iterable, Iterator, Optional

from gpmg.errors import ConfigurationError


# =============================================================================
# Default Register Table
# =============================================================================
# Names are stored lower case. Order matters only for display; lookups are
# by normalized name.
# =============================================================================

# Generic numbered registers (RISC style)
_GENERIC = tuple(f"r{n}" for n in range(32)) + tuple(f"x{n}" for n in range(32))

# Common special-purpose names
_SPECIAL = (
    "sp", "pc", "lr", "fp", "ip", "sr", "ccr", "psw", "flags", "acc",
    "zero", "ra", "gp", "tp", "hi", "lo", "ix", "iy", "usp", "ssp",
)

# RISC-V / MIPS ABI names
_ABI = (
    tuple(f"a{n}" for n in range(8))
    + tuple(f"s{n}" for n in range(12))
    + tuple(f"t{n}" for n in range(10))
    + tuple(f"v{n}" for n in range(2))
    + tuple(f"k{n}" for n in range(2))
    + ("at",)
)

# x86 integer registers
_X86 = (
    "al", "ah", "ax", "eax", "rax",
    "bl", "bh", "bx", "ebx", "rbx",
    "cl", "ch", "cx", "ecx", "rcx",
    "dl", "dh", "dx", "edx", "rdx",
    "sil", "si", "esi", "rsi",
    "dil", "di", "edi", "rdi",
    "spl", "esp", "rsp",
    "bpl", "bp", "ebp", "rbp",
    "eip", "rip",
    "cs", "ds", "es", "fs", "gs", "ss",
) + tuple(
    f"r{n}{suffix}" for n in range(8, 16) for suffix in ("b", "w", "d")
)

# ARM / AArch64
_ARM = (
    tuple(f"w{n}" for n in range(31))
    + ("xzr", "wzr", "cpsr", "spsr", "apsr")
)

# 8-bit micros (Z80, 6502, 6800, 8051)
_MICRO = (
    "a", "b", "c", "d", "e", "f", "h", "l", "i", "r", "x", "y",
    "af", "bc", "de", "hl", "sph",
    "dptr", "p0", "p1", "p2", "p3",
)

DEFAULT_REGISTERS: tuple[str, ...] = tuple(
    dict.fromkeys(_GENERIC + _SPECIAL + _ABI + _X86 + _ARM + _MICRO)
)

# A register name is one piece of operand text: no whitespace or separators
REGISTER_NAME_PATTERN = re.compile(r"^[A-Za-z_.][A-Za-z0-9_.]*$")


# =============================================================================
# Register Set
# =============================================================================

class RegisterSet:
    """
    Immutable, ordered set of known register names.

    Lookups are case insensitive; names are normalized to lower case.

    Attributes:
        _names: Normalized names in insertion order (first occurrence wins)
    """

    def __init__(self, names: Iterable[str] = ()):
        normalized = []
        for name in names:
            name = name.strip()
            if not REGISTER_NAME_PATTERN.match(name):
                raise ConfigurationError(f"invalid register name '{name}'")
            normalized.append(name.lower())
        self._names: tuple[str, ...] = tuple(dict.fromkeys(normalized))
        self._lookup = frozenset(self._names)

    def contains(self, name: str) -> bool:
        """Return True if `name` is a known register (any case)."""
        return name.lower() in self._lookup

    def normalize(self, name: str) -> Optional[str]:
        """Return the canonical name for `name`, or None if unknown."""
        lowered = name.lower()
        return lowered if lowered in self._lookup else None

    def all(self) -> tuple[str, ...]:
        """All register names, in catalog order."""
        return self._names

    def with_additional(self, names: Iterable[str]) -> "RegisterSet":
        """Return a new set extended with `names`."""
        return RegisterSet(self._names + tuple(names))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.contains(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        return f"RegisterSet({len(self._names)} registers)"


def default_register_set(additional: Iterable[str] = ()) -> RegisterSet:
    """
    Build the catalog from the default table plus additional names.

    Args:
        additional: Extra register names supplied by the caller

    Returns:
        A new RegisterSet

    Raises:
        ConfigurationError: If an additional name is not a valid register name
    """
    return RegisterSet(DEFAULT_REGISTERS + tuple(additional))
