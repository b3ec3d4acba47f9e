"""Deliberate corruption of memory reads, used to produce faulty traces on purpose."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from rvtrace.program import Program
from rvtrace.trace import TraceRead, TraceRWStep

_ARG_COUNT = 5


def _parse(text: str, bits: int, what: str) -> int:
    text = text.strip()
    if not text.isdecimal():
        raise ValueError(f"Invalid {what}: {text!r}")
    value = int(text)
    if value >= 1 << bits:
        raise ValueError(f"Invalid {what}: {text!r}")
    return value


@dataclass
class FailRead:
    """A read to corrupt: the value to plant and what the trace should claim was read."""

    address_original: int = 0
    value: int = 0
    modified_address: int = 0
    modified_last_step: int = 0
    step: int = 0
    # False for the default instance, so that it never fires at step 0.
    init: bool = False

    @classmethod
    def from_args(cls, args: Sequence[str]) -> FailRead:
        """Build from ``step address_original value modified_address modified_last_step``."""
        if len(args) != _ARG_COUNT:
            raise ValueError(f"expected {_ARG_COUNT} arguments, got {len(args)}")
        step = _parse(args[0], 64, "step")
        if step == 0:
            raise ValueError("Invalid step: must be at least 1")
        return cls(
            address_original=_parse(args[1], 32, "address_original value"),
            value=_parse(args[2], 32, "value"),
            modified_address=_parse(args[3], 32, "modified_address value"),
            modified_last_step=_parse(args[4], 64, "modified_last_step"),
            step=step - 1,
            init=True,
        )

    def patch_trace_read(self, trace: TraceRead) -> None:
        """Make the trace report the modified address and last step."""
        trace.address = self.modified_address
        trace.last_step = self.modified_last_step

    def is_register_address(self, program: Program) -> bool:
        """Whether the original address falls in the register range."""
        registers = program.registers
        return (
            registers.base_address
            <= self.address_original
            <= registers.last_register_address()
        )

    def patch_mem(self, program: Program) -> None:
        """Plant the value at the original address, in a register or in memory."""
        if self.is_register_address(program):
            idx = program.registers.original_index(self.address_original)
            program.registers.set(idx, self.value, program.step)
        if program.find_section(self.address_original) is not None:
            program.write_mem(self.address_original, self.value)


@dataclass
class FailReads:
    """Faults for the first and the second read of a step."""

    read_1: FailRead = field(default_factory=FailRead)
    read_2: FailRead = field(default_factory=FailRead)

    @classmethod
    def from_args(
        cls,
        fail_read_1: Sequence[str] | None = None,
        fail_read_2: Sequence[str] | None = None,
    ) -> FailReads:
        return cls(
            read_1=FailRead.from_args(fail_read_1) if fail_read_1 is not None else FailRead(),
            read_2=FailRead.from_args(fail_read_2) if fail_read_2 is not None else FailRead(),
        )

    def patch_mem(self, program: Program) -> tuple[bool, bool]:
        """Patch memory if a fault is due at the current step; report which fired."""
        patch_1 = self.read_1.init and self.read_1.step == program.step
        if patch_1:
            self.read_1.patch_mem(program)
        patch_2 = self.read_2.init and self.read_2.step == program.step
        if patch_2:
            self.read_2.patch_mem(program)
        return patch_1, patch_2

    def patch_trace_reads(self, trace: TraceRWStep, should_patch: tuple[bool, bool]) -> None:
        """Rewrite the reads of a trace for the faults that fired."""
        if self.read_1.init and should_patch[0]:
            self.read_1.patch_trace_read(trace.read_1)
        if self.read_2.init and should_patch[1]:
            self.read_2.patch_trace_read(trace.read_2)