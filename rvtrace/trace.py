"""Records of the reads and writes done by one execution step."""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field

from rvtrace.registers import ProgramCounter, Registers


@dataclass
class TraceRead:
    """A read of a register or memory word."""

    address: int = 0
    value: int = 0
    last_step: int = 0

    @classmethod
    def from_registers(cls, registers: Registers, idx: int) -> TraceRead:
        return cls(
            registers.register_address(idx),
            registers.get(idx),
            registers.get_last_step(idx),
        )


@dataclass
class TraceReadPC:
    """The program counter and opcode read at the start of a step."""

    pc: ProgramCounter = field(default_factory=ProgramCounter)
    opcode: int = 0


@dataclass
class TraceWrite:
    """A write to a register or memory word."""

    address: int = 0
    value: int = 0

    @classmethod
    def from_registers(cls, registers: Registers, idx: int) -> TraceWrite:
        return cls(registers.register_address(idx), registers.get(idx))


@dataclass
class TraceStep:
    """The write and the next program counter produced by a step."""

    write_1: TraceWrite = field(default_factory=TraceWrite)
    write_pc: ProgramCounter = field(default_factory=ProgramCounter)

    def to_hex_string(self) -> str:
        return (
            f"{self.write_1.address:08x}{self.write_1.value:08x}"
            f"{self.write_pc.address:08x}{self.write_pc.micro:02x}"
        )

    def to_bytes(self) -> bytes:
        return struct.pack(
            ">IIIB",
            self.write_1.address,
            self.write_1.value,
            self.write_pc.address,
            self.write_pc.micro,
        )


@dataclass
class TraceRWStep:
    """Everything one step read and wrote."""

    read_1: TraceRead = field(default_factory=TraceRead)
    read_2: TraceRead = field(default_factory=TraceRead)
    read_pc: TraceReadPC = field(default_factory=TraceReadPC)
    trace_step: TraceStep = field(default_factory=TraceStep)
    witness: int | None = None

    def to_write_trace(self) -> str:
        return self.trace_step.to_hex_string()

    def to_csv(self) -> str:
        fields = (
            self.read_1.address,
            self.read_1.value,
            self.read_1.last_step,
            self.read_2.address,
            self.read_2.value,
            self.read_2.last_step,
            self.read_pc.pc.address,
            self.read_pc.pc.micro,
            self.read_pc.opcode,
            self.trace_step.write_1.address,
            self.trace_step.write_1.value,
            self.trace_step.write_pc.address,
            self.trace_step.write_pc.micro,
        )
        return ";".join(str(value) for value in fields)


def compute_step_hash(previous_hash: bytes, write_trace: bytes) -> bytes:
    """SHA-256 of the previous hash followed by the step's write trace."""
    hasher = hashlib.sha256()
    hasher.update(bytes(previous_hash))
    hasher.update(bytes(write_trace))
    return hasher.digest()


def generate_initial_step_hash() -> bytes:
    """The hash that the chain of step hashes starts from."""
    return hashlib.sha256(bytes.fromhex("ff")).digest()