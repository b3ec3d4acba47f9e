"""Decoding of 32-bit RV32IM instruction words."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from rvtrace.errors import EmulatorError
from rvtrace.registers import MASK32


class DecodeError(EmulatorError):
    """The word is not a supported 32-bit instruction."""

    def __init__(self, word: int) -> None:
        self.word = word
        super().__init__(f"Cannot decode instruction 0x{word & MASK32:08x}")


class Mnemonic(enum.Enum):
    """Instructions the decoder recognises."""

    LUI = "Lui"
    AUIPC = "Auipc"
    JAL = "Jal"
    JALR = "Jalr"
    BEQ = "Beq"
    BNE = "Bne"
    BLT = "Blt"
    BGE = "Bge"
    BLTU = "Bltu"
    BGEU = "Bgeu"
    LB = "Lb"
    LH = "Lh"
    LW = "Lw"
    LBU = "Lbu"
    LHU = "Lhu"
    SB = "Sb"
    SH = "Sh"
    SW = "Sw"
    ADDI = "Addi"
    SLTI = "Slti"
    SLTIU = "Sltiu"
    XORI = "Xori"
    ORI = "Ori"
    ANDI = "Andi"
    SLLI = "Slli"
    SRLI = "Srli"
    SRAI = "Srai"
    ADD = "Add"
    SUB = "Sub"
    SLL = "Sll"
    SLT = "Slt"
    SLTU = "Sltu"
    XOR = "Xor"
    SRL = "Srl"
    SRA = "Sra"
    OR = "Or"
    AND = "And"
    MUL = "Mul"
    MULH = "Mulh"
    MULHSU = "Mulhsu"
    MULHU = "Mulhu"
    DIV = "Div"
    DIVU = "Divu"
    REM = "Rem"
    REMU = "Remu"
    FENCE = "Fence"
    FENCE_I = "FenceI"
    ECALL = "Ecall"
    EBREAK = "Ebreak"
    URET = "Uret"
    SRET = "Sret"
    MRET = "Mret"
    WFI = "Wfi"
    CSRRW = "Csrrw"
    CSRRS = "Csrrs"
    CSRRC = "Csrrc"
    CSRRWI = "Csrrwi"
    CSRRSI = "Csrrsi"
    CSRRCI = "Csrrci"


def _rd(raw: int) -> int:
    return (raw >> 7) & 0x1F


def _rs1(raw: int) -> int:
    return (raw >> 15) & 0x1F


def _rs2(raw: int) -> int:
    return (raw >> 20) & 0x1F


@dataclass(frozen=True)
class _Format:
    raw: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "raw", self.raw & MASK32)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(0x{self.raw:08x})"


class RType(_Format):
    """Register-register operands."""

    def rd(self) -> int:
        return _rd(self.raw)

    def rs1(self) -> int:
        return _rs1(self.raw)

    def rs2(self) -> int:
        return _rs2(self.raw)


class IType(_Format):
    """Register-immediate operands; ``imm`` is the raw 12-bit field."""

    def rd(self) -> int:
        return _rd(self.raw)

    def rs1(self) -> int:
        return _rs1(self.raw)

    def imm(self) -> int:
        return self.raw >> 20


class ShiftType(_Format):
    """Shift-by-immediate operands."""

    def rd(self) -> int:
        return _rd(self.raw)

    def rs1(self) -> int:
        return _rs1(self.raw)

    def shamt(self) -> int:
        return (self.raw >> 20) & 0x1F


class SType(_Format):
    """Store operands; ``imm`` is the raw 12-bit offset."""

    def rs1(self) -> int:
        return _rs1(self.raw)

    def rs2(self) -> int:
        return _rs2(self.raw)

    def imm(self) -> int:
        return ((self.raw >> 20) & 0xFE0) | ((self.raw >> 7) & 0x1F)


class BType(_Format):
    """Branch operands; ``imm`` is the raw 13-bit offset."""

    def rs1(self) -> int:
        return _rs1(self.raw)

    def rs2(self) -> int:
        return _rs2(self.raw)

    def imm(self) -> int:
        raw = self.raw
        return (
            ((raw & 0x8000_0000) >> 19)
            | ((raw & 0x80) << 4)
            | ((raw >> 20) & 0x7E0)
            | ((raw >> 7) & 0x1E)
        )


class UType(_Format):
    """Upper-immediate operands; ``imm`` is already shifted into place."""

    def rd(self) -> int:
        return _rd(self.raw)

    def imm(self) -> int:
        return self.raw & 0xFFFF_F000


class JType(_Format):
    """Jump operands; ``imm`` is the raw 21-bit offset."""

    def rd(self) -> int:
        return _rd(self.raw)

    def imm(self) -> int:
        raw = self.raw
        return (
            ((raw & 0x8000_0000) >> 11)
            | (raw & 0xF_F000)
            | ((raw >> 9) & 0x800)
            | ((raw >> 20) & 0x7FE)
        )


@dataclass(frozen=True)
class Instruction:
    """A decoded instruction and its operand fields."""

    mnemonic: Mnemonic
    operands: _Format | None = None

    def __str__(self) -> str:
        if self.operands is None:
            return self.mnemonic.value
        return f"{self.mnemonic.value}({self.operands!r})"


M = Mnemonic

_BRANCH = {0: M.BEQ, 1: M.BNE, 4: M.BLT, 5: M.BGE, 6: M.BLTU, 7: M.BGEU}
_LOAD = {0: M.LB, 1: M.LH, 2: M.LW, 4: M.LBU, 5: M.LHU}
_STORE = {0: M.SB, 1: M.SH, 2: M.SW}
_OP_IMM = {0: M.ADDI, 2: M.SLTI, 3: M.SLTIU, 4: M.XORI, 6: M.ORI, 7: M.ANDI}
_SHIFT_IMM = {(1, 0x00): M.SLLI, (5, 0x00): M.SRLI, (5, 0x20): M.SRAI}
_OP = {
    (0, 0x00): M.ADD,
    (0, 0x20): M.SUB,
    (1, 0x00): M.SLL,
    (2, 0x00): M.SLT,
    (3, 0x00): M.SLTU,
    (4, 0x00): M.XOR,
    (5, 0x00): M.SRL,
    (5, 0x20): M.SRA,
    (6, 0x00): M.OR,
    (7, 0x00): M.AND,
    (0, 0x01): M.MUL,
    (1, 0x01): M.MULH,
    (2, 0x01): M.MULHSU,
    (3, 0x01): M.MULHU,
    (4, 0x01): M.DIV,
    (5, 0x01): M.DIVU,
    (6, 0x01): M.REM,
    (7, 0x01): M.REMU,
}
_MISC_MEM = {0: M.FENCE, 1: M.FENCE_I}
_SYSTEM = {
    0x0000_0073: M.ECALL,
    0x0010_0073: M.EBREAK,
    0x0020_0073: M.URET,
    0x1020_0073: M.SRET,
    0x3020_0073: M.MRET,
    0x1050_0073: M.WFI,
}
_CSR = {1: M.CSRRW, 2: M.CSRRS, 3: M.CSRRC, 5: M.CSRRWI, 6: M.CSRRSI, 7: M.CSRRCI}


def _lookup(table: dict, key: object, word: int) -> Mnemonic:
    try:
        return table[key]
    except KeyError:
        raise DecodeError(word) from None


def decode(word: int) -> Instruction:
    """Decode one 32-bit instruction word."""
    word &= MASK32
    if word & 0b11 != 0b11:
        raise DecodeError(word)
    opcode = word & 0x7F
    funct3 = (word >> 12) & 0x7
    funct7 = word >> 25

    if opcode == 0x37:
        return Instruction(M.LUI, UType(word))
    if opcode == 0x17:
        return Instruction(M.AUIPC, UType(word))
    if opcode == 0x6F:
        return Instruction(M.JAL, JType(word))
    if opcode == 0x67:
        if funct3 != 0:
            raise DecodeError(word)
        return Instruction(M.JALR, IType(word))
    if opcode == 0x63:
        return Instruction(_lookup(_BRANCH, funct3, word), BType(word))
    if opcode == 0x03:
        return Instruction(_lookup(_LOAD, funct3, word), IType(word))
    if opcode == 0x23:
        return Instruction(_lookup(_STORE, funct3, word), SType(word))
    if opcode == 0x13:
        if funct3 in (1, 5):
            return Instruction(_lookup(_SHIFT_IMM, (funct3, funct7), word), ShiftType(word))
        return Instruction(_lookup(_OP_IMM, funct3, word), IType(word))
    if opcode == 0x33:
        return Instruction(_lookup(_OP, (funct3, funct7), word), RType(word))
    if opcode == 0x0F:
        return Instruction(_lookup(_MISC_MEM, funct3, word), IType(word))
    if opcode == 0x73:
        if funct3 == 0:
            return Instruction(_lookup(_SYSTEM, word, word))
        return Instruction(_lookup(_CSR, funct3, word), IType(word))
    raise DecodeError(word)