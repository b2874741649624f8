"""
Processor Configuration
=======================

Global, read-only configuration for one generator run. The values come
from the command line (or from the caller when the library is used
directly) and are echoed into the finalized model for the emitter.

Defaults match the command-line defaults:

| Setting                   | Default        |
|---------------------------|----------------|
| name                      | MyProc         |
| family                    | MyProcFamily   |
| endian                    | big            |
| alignment                 | 1              |
| bitness                   | 32             |
| omit_opcodes              | False          |
| omit_example_instructions | False          |
"""

from dataclasses import dataclass

from gpmg.errors import ConfigurationError


VALID_ENDIANS = ("big", "little")


@dataclass(frozen=True)
class WordContext:
    """
    Byte context shared by every token of a run.

    Derived once from the configuration and applied uniformly by the
    token layout stage; it is never re-derived per instruction.

    Attributes:
        endian: "big" or "little"
        alignment: Instruction alignment in bytes
        word_bits: Base instruction word width (the configured bitness)
    """
    endian: str
    alignment: int
    word_bits: int

    def byte_size(self, width: int) -> int:
        """Number of bytes a token of `width` bits occupies."""
        return (width + 7) // 8

    @property
    def is_little_endian(self) -> bool:
        return self.endian == "little"


@dataclass(frozen=True)
class ProcessorConfig:
    """
    Configuration of the target processor.

    Attributes:
        name: Processor name, used for the module directory and file names
        family: Processor family, written to the language definitions
        endian: Byte order, "big" or "little"
        alignment: Instruction alignment in bytes (positive)
        bitness: Base instruction word width in bits (positive)
        omit_opcodes: Don't print opcode comments in the .slaspec
        omit_example_instructions: Don't print example instruction comments
    """
    name: str = "MyProc"
    family: str = "MyProcFamily"
    endian: str = "big"
    alignment: int = 1
    bitness: int = 32
    omit_opcodes: bool = False
    omit_example_instructions: bool = False

    def __post_init__(self) -> None:
        if self.endian not in VALID_ENDIANS:
            raise ConfigurationError(
                f"processor endianness must be either big or little, got '{self.endian}'"
            )
        if self.alignment <= 0:
            raise ConfigurationError(f"alignment must be positive, got {self.alignment}")
        if self.bitness <= 0:
            raise ConfigurationError(f"bitness must be positive, got {self.bitness}")
        if not self.name.strip():
            raise ConfigurationError("processor name must not be empty")

    @property
    def word_context(self) -> WordContext:
        return WordContext(self.endian, self.alignment, self.bitness)

    @property
    def address_size(self) -> int:
        """Size in bytes of a RAM address (at least 2)."""
        return max(2, (self.bitness + 7) // 8)
