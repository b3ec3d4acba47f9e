"""Register file and program counter of the emulated RV32 machine."""

from __future__ import annotations

from dataclasses import dataclass, replace

MASK32 = 0xFFFF_FFFF
RISCV32_REGISTERS = 32
AUX_REGISTERS = 2
REGISTER_COUNT = RISCV32_REGISTERS + AUX_REGISTERS
AUX_REGISTER_1 = 32
AUX_REGISTER_2 = 33
REGISTER_STACK_POINTER = 2
REGISTER_ZERO = 0
REGISTER_A0 = 10
REGISTER_A7_ECALL_ARG = 17
REGISTERS_BASE_ADDRESS = 0xF000_0000
UNWRITTEN_STEP = 0xFFFF_FFFF


class Registers:
    """The 32 general registers plus two auxiliary ones, mapped to memory addresses."""

    def __init__(self, base_address: int = 0, sp_base_address: int = 0) -> None:
        self.base_address = base_address
        self.values = [0] * REGISTER_COUNT
        self.last_steps = [UNWRITTEN_STEP] * REGISTER_COUNT
        self.values[REGISTER_STACK_POINTER] = sp_base_address & MASK32

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Registers):
            return NotImplemented
        return (
            self.base_address == other.base_address
            and self.values == other.values
            and self.last_steps == other.last_steps
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Registers(base_address=0x{self.base_address:08x}, values={self.values!r})"

    @staticmethod
    def _check(idx: int) -> None:
        if not 0 <= idx < REGISTER_COUNT:
            raise IndexError(f"register index out of range: {idx}")

    def get(self, idx: int) -> int:
        """Value held in register ``idx``."""
        self._check(idx)
        return self.values[idx]

    def set(self, idx: int, value: int, step: int) -> None:
        """Write ``value`` to register ``idx`` and record the step of the write."""
        self._check(idx)
        if idx == REGISTER_ZERO:
            raise ValueError(f"Cannot set register zero. Value: {value} Step: {step}")
        self.values[idx] = value & MASK32
        self.last_steps[idx] = step

    def get_last_step(self, idx: int) -> int:
        """Step at which register ``idx`` was last written."""
        self._check(idx)
        return self.last_steps[idx]

    def register_address(self, idx: int) -> int:
        """Memory address that stands for register ``idx``."""
        return self.base_address + idx * 4

    def original_index(self, address: int) -> int:
        """Register index for a register address."""
        return (address - self.base_address) // 4

    def last_register_address(self) -> int:
        """Address just past the auxiliary registers."""
        return self.base_address + REGISTER_COUNT * 4


@dataclass
class ProgramCounter:
    """Instruction address plus the micro-step inside the instruction."""

    address: int = 0
    micro: int = 0

    def jump(self, address: int) -> None:
        self.address = address & MASK32

    def next_address(self) -> None:
        self.address = (self.address + 4) & MASK32
        self.micro = 0

    def next_micro(self) -> None:
        self.micro = (self.micro + 1) & 0xFF

    def copy(self) -> ProgramCounter:
        return replace(self)