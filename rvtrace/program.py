"""Program image: memory sections, registers, checkpoints and ELF loading."""

from __future__ import annotations

import bisect
import json
import os
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, NamedTuple

from rvtrace.errors import EmulatorError
from rvtrace.registers import (
    AUX_REGISTER_1,
    AUX_REGISTER_2,
    MASK32,
    REGISTER_COUNT,
    REGISTERS_BASE_ADDRESS,
    UNWRITTEN_STEP,
    ProgramCounter,
    Registers,
)
from rvtrace.trace import generate_initial_step_hash

CHECKPOINT_SIZE = 50_000_000
LIMIT_STEP = 10_000_000_000
STACK_BASE_ADDRESS = 0xE000_0000
STACK_SIZE = 0x80_0000

SHF_ALLOC = 0x2
SHF_EXECINSTR = 0x4
SHT_PROGBITS = 1


def _swap32(value: int) -> int:
    return int.from_bytes((value & MASK32).to_bytes(4, "little"), "big")


@dataclass
class Section:
    """A memory range; ``data`` holds each word as the big-endian reading of its bytes."""

    name: str
    data: list[int]
    last_step: list[int]
    start: int
    size: int
    is_code: bool = False
    initialized: bool = True

    def _index(self, address: int) -> int:
        return (address - self.start) // 4


@dataclass
class Program:
    """Full machine state of a program under execution."""

    sections: list[Section] = field(default_factory=list)
    registers: Registers = field(default_factory=Registers)
    pc: ProgramCounter = field(default_factory=ProgramCounter)
    step: int = 0
    hash: bytes = bytes(32)
    halt: bool = False

    @classmethod
    def create(cls, entry_point: int, registers_base_address: int, sp_base_address: int) -> Program:
        return cls(
            registers=Registers(registers_base_address, sp_base_address),
            pc=ProgramCounter(entry_point, 0),
            hash=generate_initial_step_hash(),
        )

    def add_section(self, section: Section) -> None:
        """Insert a section, keeping sections ordered by start address."""
        pos = bisect.bisect_left(self.sections, section.start, key=lambda s: s.start)
        self.sections.insert(pos, section)

    def find_section(self, address: int) -> Section | None:
        """The section containing ``address``, if any."""
        pos = bisect.bisect_right(self.sections, address, key=lambda s: s.start) - 1
        if pos < 0:
            return None
        section = self.sections[pos]
        return section if address < section.start + section.size else None

    def find_section_by_name(self, name: str) -> Section | None:
        return next((s for s in self.sections if s.name == name), None)

    def _require_section(self, address: int) -> Section:
        section = self.find_section(address)
        if section is None:
            raise EmulatorError(f"Address 0x{address:08x} not found in any section")
        return section

    def read_mem(self, address: int) -> int:
        """The little-endian word stored at ``address``."""
        section = self._require_section(address)
        return _swap32(section.data[section._index(address)])

    def write_mem(self, address: int, value: int) -> None:
        section = self._require_section(address)
        idx = section._index(address)
        section.data[idx] = _swap32(value)
        section.last_step[idx] = self.step

    def get_last_step(self, address: int) -> int:
        section = self._require_section(address)
        return section.last_step[section._index(address)]

    def dump_memory(self) -> None:
        """Print registers and the non-zero words of every section."""
        print(
            f"\n------- Section: REGISTERS Start: 0x{REGISTERS_BASE_ADDRESS:08x} "
            f"Size: 0x{REGISTER_COUNT * 4:08x} -------\n"
        )
        for i, value in enumerate(self.registers.values):
            prefix = "AUX" if i in (AUX_REGISTER_1, AUX_REGISTER_2) else ""
            print(
                f"{prefix}Reg({i}): 0x{self.registers.register_address(i):08x} "
                f"Value: 0x{value:08x}"
            )
        for section in self.sections:
            if any(section.data):
                print(
                    f"\n------- Section: {section.name} Start: 0x{section.start:08x} "
                    f"Size: 0x{section.size:08x} -------\n"
                )
                for i, word in enumerate(section.data):
                    if word:
                        print(f"Address: 0x{section.start + i * 4:08x} Value: 0x{word:08x}")
            else:
                print(f"\n------- Skipping empty section: {section.name} -------")
        print("\n================================================\n")

    def to_dict(self) -> dict:
        """Plain data form of the program, as written to checkpoint files."""
        return {
            "sections": [
                {
                    "name": s.name,
                    "data": list(s.data),
                    "last_step": list(s.last_step),
                    "start": s.start,
                    "size": s.size,
                    "is_code": s.is_code,
                    "initialized": s.initialized,
                }
                for s in self.sections
            ],
            "registers": {
                "value": list(self.registers.values),
                "last_step": list(self.registers.last_steps),
                "base_address": self.registers.base_address,
            },
            "pc": {"address": self.pc.address, "micro": self.pc.micro},
            "step": self.step,
            "hash": list(self.hash),
            "halt": self.halt,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Program:
        regs_data = data["registers"]
        values = list(regs_data["value"])
        last_steps = list(regs_data["last_step"])
        if len(values) != REGISTER_COUNT or len(last_steps) != REGISTER_COUNT:
            raise ValueError(f"expected {REGISTER_COUNT} registers")
        registers = Registers(regs_data["base_address"])
        registers.values = values
        registers.last_steps = last_steps
        hash_bytes = bytes(data["hash"])
        if len(hash_bytes) != 32:
            raise ValueError("Invalid hash size")
        return cls(
            sections=[
                Section(
                    name=s["name"],
                    data=list(s["data"]),
                    last_step=list(s["last_step"]),
                    start=s["start"],
                    size=s["size"],
                    is_code=s["is_code"],
                    initialized=s["initialized"],
                )
                for s in data["sections"]
            ],
            registers=registers,
            pc=ProgramCounter(data["pc"]["address"], data["pc"]["micro"]),
            step=data["step"],
            hash=hash_bytes,
            halt=data["halt"],
        )


def save_checkpoint(program: Program, path: str | os.PathLike) -> None:
    Path(path).write_text(json.dumps(program.to_dict(), separators=(",", ":")), encoding="utf-8")


def load_checkpoint(path: str | os.PathLike) -> Program:
    return Program.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))


def bytes_to_words(data: bytes, little: bool) -> list[int]:
    """Split bytes into 32-bit words, padding the tail with zeros."""
    data = bytes(data)
    data += bytes(-len(data) % 4)
    fmt = "<I" if little else ">I"
    return [word for (word,) in struct.iter_unpack(fmt, data)]


class _ElfHeader(NamedTuple):
    entry: int
    shoff: int
    shentsize: int
    shnum: int
    shstrndx: int
    is64: bool


class _SectionHeader(NamedTuple):
    name: int
    type: int
    flags: int
    addr: int
    offset: int
    size: int


def _parse_header(image: bytes) -> _ElfHeader:
    if len(image) < 16 or image[:4] != b"\x7fELF":
        raise ValueError("not an ELF file")
    if image[5] != 1:
        raise ValueError("ELF file is not little-endian")
    if image[4] == 1:
        fmt, is64 = "<HHIIIIIHHHHHH", False
    elif image[4] == 2:
        fmt, is64 = "<HHIQQQIHHHHHH", True
    else:
        raise ValueError(f"unknown ELF class {image[4]}")
    try:
        fields = struct.unpack_from(fmt, image, 16)
    except struct.error as exc:
        raise ValueError("truncated ELF header") from exc
    entry, shoff = fields[3], fields[5]
    shentsize, shnum, shstrndx = fields[10], fields[11], fields[12]
    return _ElfHeader(entry, shoff, shentsize, shnum, shstrndx, is64)


def _section_headers(image: bytes, header: _ElfHeader) -> Iterator[_SectionHeader]:
    fmt = "<IIQQQQIIQQ" if header.is64 else "<10I"
    for i in range(header.shnum):
        try:
            fields = struct.unpack_from(fmt, image, header.shoff + i * header.shentsize)
        except struct.error as exc:
            raise ValueError("truncated section header table") from exc
        yield _SectionHeader(*fields[:6])


def _section_name(image: bytes, strtab: _SectionHeader, offset: int) -> str:
    table = image[strtab.offset : strtab.offset + strtab.size]
    if offset >= len(table):
        return ""
    end = table.find(b"\0", offset)
    return table[offset : end if end >= 0 else len(table)].decode("utf-8")


def load_elf(path: str | os.PathLike, show_sections: bool = False) -> Program:
    """Load the allocated sections of a little-endian ELF file into a new program."""
    image = Path(path).read_bytes()
    header = _parse_header(image)
    if header.entry > MASK32:
        raise ValueError(f"entry point 0x{header.entry:x} does not fit in 32 bits")
    headers = list(_section_headers(image, header))
    if not 0 <= header.shstrndx < len(headers):
        raise ValueError("ELF file has no section name table")
    strtab = headers[header.shstrndx]

    program = Program.create(header.entry, REGISTERS_BASE_ADDRESS, STACK_BASE_ADDRESS + STACK_SIZE)

    for sh in headers:
        if sh.flags & SHF_ALLOC != SHF_ALLOC:
            continue
        name = _section_name(image, strtab, sh.name)
        start, size = sh.addr, sh.size
        if start > MASK32 or size > MASK32:
            raise ValueError(f"section {name} does not fit in 32-bit address space")
        initialized = sh.type == SHT_PROGBITS
        if size == 0:
            if show_sections:
                print(
                    f"Empty section: {name} Start: 0x{start:08x} Size: 0x{size:08x} "
                    f"Initialized: {str(initialized).lower()}"
                )
            continue

        if initialized:
            if sh.offset + size > len(image):
                raise ValueError(f"section {name} extends past end of file")
            data = bytes_to_words(image[sh.offset : sh.offset + size], False)
        else:
            if size % 4 != 0:
                raise ValueError("Number of bytes must be a multiple of 4")
            data = [0] * (size // 4)

        if show_sections:
            print(
                f"Loading section: {name} Start: 0x{start:08x} Size: 0x{size:08x} "
                f"Initialized: {str(initialized).lower()} Flags: {sh.flags:b} Type: {sh.type:b} "
            )

        program.add_section(
            Section(
                name=name,
                data=data,
                last_step=[UNWRITTEN_STEP] * (size // 4),
                start=start,
                size=size,
                is_code=sh.flags & SHF_EXECINSTR == SHF_EXECINSTR,
                initialized=initialized,
            )
        )
    return program