"""Semantics of the individual RV32IM instructions, one micro-step at a time."""

from __future__ import annotations

from typing import NamedTuple

from rvtrace.alignment import (
    load_mask_round_1,
    load_mask_round_2,
    sign_extension,
    store_mask_round_1,
    store_mask_round_2,
)
from rvtrace.decoder import (
    BType,
    IType,
    Instruction,
    JType,
    Mnemonic,
    RType,
    ShiftType,
    SType,
    UType,
)
from rvtrace.errors import EmulatorError
from rvtrace.program import Program
from rvtrace.registers import (
    AUX_REGISTER_1,
    AUX_REGISTER_2,
    MASK32,
    REGISTER_A0,
    REGISTER_A7_ECALL_ARG,
    REGISTER_ZERO,
    Registers,
)
from rvtrace.trace import TraceRead, TraceWrite

M = Mnemonic

B_IMM_WIDTH = 13
I_IMM_WIDTH = 12
J_IMM_WIDTH = 21
S_IMM_WIDTH = 12

STDOUT_ADDRESS = 0xA000_1000
SYSCALL_WRITE_CHAR = 116
SYSCALL_EXIT = 93


class Access(NamedTuple):
    """Size of a memory access and how many memory words it touches."""

    word: bool
    half: bool
    byte: bool
    reads: int


class _Effects(NamedTuple):
    read_1: TraceRead
    read_2: TraceRead
    write_1: TraceWrite
    witness: int | None = None


def _no_effect() -> _Effects:
    return _Effects(TraceRead(), TraceRead(), TraceWrite())


def _signed(value: int) -> int:
    value &= MASK32
    return value - (1 << 32) if value & 0x8000_0000 else value


def _sign_extend(imm: int, width: int) -> int:
    imm &= (1 << width) - 1
    if imm >> (width - 1):
        imm -= 1 << width
    return imm


def wrapping_add(value: int, imm: int, width: int) -> int:
    """Add the ``width``-bit two's complement immediate ``imm`` to ``value``, modulo 2**32."""
    return (value + _sign_extend(imm, width)) & MASK32


def _operands(instruction: Instruction, kind: type):
    if not isinstance(instruction.operands, kind):
        raise ValueError(f"instruction {instruction} does not take {kind.__name__} operands")
    return instruction.operands


def _unexpected(instruction: Instruction) -> ValueError:
    return ValueError(f"unexpected instruction {instruction}")


def access_kind(instruction: Instruction, alignment: int) -> Access:
    """Classify a load or store by size and count the memory words it needs to read."""
    mnemonic = instruction.mnemonic
    if mnemonic in (M.LB, M.LBU, M.SB):
        return Access(False, False, True, 1)
    if mnemonic in (M.LH, M.LHU, M.SH):
        return Access(False, True, False, 2 if alignment == 3 else 1)
    if mnemonic is M.LW:
        return Access(True, False, False, 1 if alignment == 0 else 2)
    if mnemonic is M.SW:
        return Access(True, False, False, 0 if alignment == 0 else 2)
    raise _unexpected(instruction)


def op_ecall(program: Program, print_stdout: bool = False, debug: bool = False) -> _Effects:
    """Handle a system call selected by register a7."""
    registers = program.registers
    syscall = registers.get(REGISTER_A7_ECALL_ARG)
    value_2 = registers.get(REGISTER_A0)
    read_1 = TraceRead.from_registers(registers, REGISTER_A7_ECALL_ARG)
    read_2 = TraceRead.from_registers(registers, REGISTER_A0)

    if syscall == SYSCALL_WRITE_CHAR:
        if print_stdout:
            char = program.read_mem(STDOUT_ADDRESS) >> 24
            print(chr(char & 0xFF), end="")
        program.pc.next_address()
        return _Effects(read_1, read_2, TraceWrite())

    if syscall == SYSCALL_EXIT:
        if debug:
            print(f"Exit code: 0x{value_2:08x}")
            for i in range(32):
                print(f"Register {i}: 0x{registers.get(i):08x}")
            print(f"Total steps: {program.step} 0x{program.step:016x}")
        program.halt = True
        registers.set(REGISTER_A0, value_2, program.step)
        # The program counter stays on the exit call.
        return _Effects(read_1, read_2, TraceWrite.from_registers(registers, REGISTER_A0))

    print(f"Unimplemented syscall: {syscall}")
    program.pc.next_address()
    return _Effects(read_1, read_2, TraceWrite())


_CONDITIONS = {
    M.BEQ: lambda a, b: a == b,
    M.BNE: lambda a, b: a != b,
    M.BLT: lambda a, b: _signed(a) < _signed(b),
    M.BGE: lambda a, b: _signed(a) >= _signed(b),
    M.BLTU: lambda a, b: a < b,
    M.BGEU: lambda a, b: a >= b,
}


def op_conditional(instruction: Instruction, program: Program) -> _Effects:
    """Conditional branch."""
    x = _operands(instruction, BType)
    condition = _CONDITIONS.get(instruction.mnemonic)
    if condition is None:
        raise _unexpected(instruction)
    registers = program.registers
    value_1 = registers.get(x.rs1())
    value_2 = registers.get(x.rs2())
    read_1 = TraceRead.from_registers(registers, x.rs1())
    read_2 = TraceRead.from_registers(registers, x.rs2())

    if condition(value_1, value_2):
        program.pc.jump(wrapping_add(program.pc.address, x.imm(), B_IMM_WIDTH))
    else:
        program.pc.next_address()
    return _Effects(read_1, read_2, TraceWrite())


def _link(program: Program, dest_register: int, return_address: int) -> TraceWrite:
    if dest_register == REGISTER_ZERO:
        return TraceWrite()
    program.registers.set(dest_register, return_address, program.step)
    return TraceWrite.from_registers(program.registers, dest_register)


def op_jal(instruction: Instruction, program: Program) -> _Effects:
    """Jump and link."""
    x = _operands(instruction, JType)
    address = program.pc.address
    write_1 = _link(program, x.rd(), (address + 4) & MASK32)
    program.pc.jump(wrapping_add(address, x.imm(), J_IMM_WIDTH))
    return _Effects(TraceRead(), TraceRead(), write_1)


def op_jalr(instruction: Instruction, program: Program) -> _Effects:
    """Jump to a register plus offset and link."""
    x = _operands(instruction, IType)
    address = program.pc.address
    src_value = program.registers.get(x.rs1())
    read_1 = TraceRead.from_registers(program.registers, x.rs1())
    write_1 = _link(program, x.rd(), (address + 4) & MASK32)
    program.pc.jump(wrapping_add(src_value, x.imm(), I_IMM_WIDTH))
    return _Effects(read_1, TraceRead(), write_1)


def _quotient(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return -q if (a < 0) != (b < 0) else q


def _remainder(a: int, b: int) -> int:
    return a - b * _quotient(a, b)


def _witness(mnemonic: Mnemonic, v1: int, v2: int) -> int | None:
    match mnemonic:
        case M.REM:
            if v2 == 0:
                return MASK32
            if v2 == MASK32:
                return v1
            return _quotient(_signed(v1), _signed(v2)) & MASK32
        case M.DIV:
            if v2 == 0:
                return v1
            if v2 == MASK32:
                return 0
            return _remainder(_signed(v1), _signed(v2)) & MASK32
        case M.REMU:
            return MASK32 if v2 == 0 else v1 // v2
        case M.DIVU:
            return v1 if v2 == 0 else v1 % v2
    return None


def _arithmetic(instruction: Instruction, v1: int, v2: int) -> int:
    match instruction.mnemonic:
        case M.MUL:
            return (v1 * v2) & MASK32
        case M.MULH:
            return ((_signed(v1) * _signed(v2)) >> 32) & MASK32
        case M.MULHSU:
            return ((_signed(v1) * v2) >> 32) & MASK32
        case M.MULHU:
            return ((v1 * v2) >> 32) & MASK32
        case M.DIV:
            if v2 == 0:
                return MASK32
            if v2 == MASK32:
                return v1
            return _quotient(_signed(v1), _signed(v2)) & MASK32
        case M.DIVU:
            return MASK32 if v2 == 0 else v1 // v2
        case M.REM:
            if v2 == 0:
                return v1
            if v2 == MASK32:
                return 0
            return _remainder(_signed(v1), _signed(v2)) & MASK32
        case M.REMU:
            return v1 if v2 == 0 else v1 % v2
        case M.SUB:
            return (v1 - v2) & MASK32
        case M.XOR:
            return v1 ^ v2
        case M.AND:
            return v1 & v2
        case M.OR:
            return v1 | v2
        case M.ADD:
            return (v1 + v2) & MASK32
    raise _unexpected(instruction)


def op_arithmetic(instruction: Instruction, program: Program) -> _Effects:
    """Register-register arithmetic, logic, multiplication and division."""
    x = _operands(instruction, RType)
    if x.rd() == REGISTER_ZERO:
        program.pc.next_address()
        return _no_effect()

    registers = program.registers
    read_1 = TraceRead.from_registers(registers, x.rs1())
    read_2 = TraceRead.from_registers(registers, x.rs2())
    value_1 = registers.get(x.rs1())
    value_2 = registers.get(x.rs2())

    witness = _witness(instruction.mnemonic, value_1, value_2)
    result = _arithmetic(instruction, value_1, value_2)

    registers.set(x.rd(), result, program.step)
    program.pc.next_address()
    return _Effects(read_1, read_2, TraceWrite.from_registers(registers, x.rd()), witness)


def op_arithmetic_imm(instruction: Instruction, program: Program) -> _Effects:
    """ADDI, ANDI, ORI and XORI."""
    x = _operands(instruction, IType)
    rd = x.rd()
    if rd == REGISTER_ZERO:
        program.pc.next_address()
        return _no_effect()

    registers = program.registers
    read_1 = TraceRead.from_registers(registers, x.rs1())
    rs1 = registers.get(x.rs1())
    imm = _sign_extend(x.imm(), I_IMM_WIDTH) & MASK32

    match instruction.mnemonic:
        case M.ADDI:
            result = wrapping_add(rs1, x.imm(), I_IMM_WIDTH)
        case M.ANDI:
            result = imm & rs1
        case M.ORI:
            result = imm | rs1
        case M.XORI:
            result = imm ^ rs1
        case _:
            raise _unexpected(instruction)

    registers.set(rd, result, program.step)
    program.pc.next_address()
    return _Effects(read_1, TraceRead(), TraceWrite.from_registers(registers, rd))


def op_shift_reg(instruction: Instruction, program: Program) -> _Effects:
    """Shifts by a register amount and the set-less-than comparisons."""
    x = _operands(instruction, RType)
    registers = program.registers
    read_1 = TraceRead.from_registers(registers, x.rs1())
    read_2 = TraceRead.from_registers(registers, x.rs2())
    value_1 = registers.get(x.rs1())
    value_2 = registers.get(x.rs2())

    if x.rd() == REGISTER_ZERO:
        program.pc.next_address()
        return _no_effect()

    shamt = value_2 & 0x1F
    match instruction.mnemonic:
        case M.SLL:
            result = (value_1 << shamt) & MASK32
        case M.SRL:
            result = value_1 >> shamt
        case M.SRA:
            result = (_signed(value_1) >> shamt) & MASK32
        case M.SLT:
            result = int(_signed(value_1) < _signed(value_2))
        case M.SLTU:
            result = int(value_1 < value_2)
        case _:
            raise _unexpected(instruction)

    registers.set(x.rd(), result, program.step)
    program.pc.next_address()
    return _Effects(read_1, read_2, TraceWrite.from_registers(registers, x.rd()))


def op_shift_imm(instruction: Instruction, program: Program) -> _Effects:
    """SLLI, SRLI and SRAI."""
    x = _operands(instruction, ShiftType)
    if x.rd() == REGISTER_ZERO:
        program.pc.next_address()
        return _no_effect()

    registers = program.registers
    read_1 = TraceRead.from_registers(registers, x.rs1())
    value = registers.get(x.rs1())

    match instruction.mnemonic:
        case M.SLLI:
            result = (value << x.shamt()) & MASK32
        case M.SRLI:
            result = value >> x.shamt()
        case M.SRAI:
            result = (_signed(value) >> x.shamt()) & MASK32
        case _:
            raise _unexpected(instruction)

    registers.set(x.rd(), result, program.step)
    program.pc.next_address()
    return _Effects(read_1, TraceRead(), TraceWrite.from_registers(registers, x.rd()))


def op_sl_imm(instruction: Instruction, program: Program) -> _Effects:
    """SLTI and SLTIU."""
    x = _operands(instruction, IType)
    if x.rd() == REGISTER_ZERO:
        program.pc.next_address()
        return _no_effect()

    registers = program.registers
    read_1 = TraceRead.from_registers(registers, x.rs1())
    value = registers.get(x.rs1())
    imm = _sign_extend(x.imm(), I_IMM_WIDTH)

    match instruction.mnemonic:
        case M.SLTI:
            result = int(_signed(value) < imm)
        case M.SLTIU:
            result = int(value < (imm & MASK32))
        case _:
            raise _unexpected(instruction)

    registers.set(x.rd(), result, program.step)
    program.pc.next_address()
    return _Effects(read_1, TraceRead(), TraceWrite.from_registers(registers, x.rd()))


def _shift_bytes(value: int, shift: int) -> int:
    if shift < 0:
        return value >> (-shift * 8)
    return (value << (shift * 8)) & MASK32


def _aligned_address(registers: Registers, rs1: int, imm: int) -> tuple[TraceRead, int, int]:
    read_1 = TraceRead.from_registers(registers, rs1)
    address = wrapping_add(registers.get(rs1), imm, I_IMM_WIDTH)
    alignment = address % 4
    return read_1, address - alignment, alignment


def _or_aux(program: Program) -> _Effects:
    registers = program.registers
    value_1 = registers.get(AUX_REGISTER_1)
    value_2 = registers.get(AUX_REGISTER_2)
    read_1 = TraceRead.from_registers(registers, AUX_REGISTER_1)
    read_2 = TraceRead.from_registers(registers, AUX_REGISTER_2)
    registers.set(AUX_REGISTER_1, value_1 | value_2, program.step)
    program.pc.next_micro()
    return _Effects(read_1, read_2, TraceWrite.from_registers(registers, AUX_REGISTER_1))


def op_store(instruction: Instruction, program: Program) -> _Effects:
    """Store, split into micro-steps when the access is not a single aligned word."""
    x = _operands(instruction, SType)
    registers = program.registers
    micro = program.pc.micro

    if micro in (0, 4):
        # Read the destination word and keep the bytes that are not overwritten.
        read_1, dest_mem, alignment = _aligned_address(registers, x.rs1(), x.imm())
        access = access_kind(instruction, alignment)

        if micro == 0 and access.word and access.reads == 0:
            read_2 = TraceRead.from_registers(registers, x.rs2())
            value = registers.get(x.rs2())
            program.write_mem(dest_mem, value)
            program.pc.next_address()
            return _Effects(read_1, read_2, TraceWrite(dest_mem, value))

        masks = store_mask_round_1 if micro == 0 else store_mask_round_2
        mask_dst, _, _ = masks(instruction, alignment)
        if micro == 4:
            dest_mem = (dest_mem + 4) & MASK32
        value = program.read_mem(dest_mem)
        read_2 = TraceRead(dest_mem, value, program.get_last_step(dest_mem))
        registers.set(AUX_REGISTER_1, mask_dst & value, program.step)
        program.pc.next_micro()
        return _Effects(read_1, read_2, TraceWrite.from_registers(registers, AUX_REGISTER_1))

    if micro in (1, 5):
        # Move the bytes of the source register into place.
        read_1, _, alignment = _aligned_address(registers, x.rs1(), x.imm())
        masks = store_mask_round_1 if micro == 1 else store_mask_round_2
        _, mask_src, move = masks(instruction, alignment)
        read_2 = TraceRead.from_registers(registers, x.rs2())
        shifted = _shift_bytes(mask_src & registers.get(x.rs2()), move)
        registers.set(AUX_REGISTER_2, shifted, program.step)
        program.pc.next_micro()
        return _Effects(read_1, read_2, TraceWrite.from_registers(registers, AUX_REGISTER_2))

    if micro in (2, 6):
        return _or_aux(program)

    if micro in (3, 7):
        # Write the combined word back.
        read_1, dest_mem, alignment = _aligned_address(registers, x.rs1(), x.imm())
        access = access_kind(instruction, alignment)
        value = registers.get(AUX_REGISTER_1)
        read_2 = TraceRead.from_registers(registers, AUX_REGISTER_1)
        if micro == 7:
            dest_mem = (dest_mem + 4) & MASK32
        program.write_mem(dest_mem, value)
        if access.reads == 1 or micro == 7:
            program.pc.next_address()
        else:
            program.pc.next_micro()
        return _Effects(read_1, read_2, TraceWrite(dest_mem, value))

    raise EmulatorError(f"invalid micro-step {micro} for {instruction}")


def op_load(instruction: Instruction, program: Program) -> _Effects:
    """Load, split into micro-steps when the value spans two memory words."""
    x = _operands(instruction, IType)
    if x.rd() == REGISTER_ZERO:
        program.pc.next_address()
        return _no_effect()

    registers = program.registers
    micro = program.pc.micro
    read_1, src_mem, alignment = _aligned_address(registers, x.rs1(), x.imm())
    access = access_kind(instruction, alignment)

    if micro in (0, 1):
        if micro == 1:
            src_mem = (src_mem + 4) & MASK32
        value = program.read_mem(src_mem)
        read_2 = TraceRead(src_mem, value, program.get_last_step(src_mem))

        masks = load_mask_round_1 if micro == 0 else load_mask_round_2
        mask, shift = masks(instruction, alignment)
        shifted = sign_extension(instruction, _shift_bytes(mask & value, shift))

        if access.reads == 1:
            program.pc.next_address()
            dest = x.rd()
        else:
            program.pc.next_micro()
            dest = AUX_REGISTER_1 if micro == 0 else AUX_REGISTER_2
        registers.set(dest, shifted, program.step)
        return _Effects(read_1, read_2, TraceWrite.from_registers(registers, dest))

    if micro == 2:
        return _or_aux(program)

    if micro == 3:
        value = registers.get(AUX_REGISTER_1)
        read_1 = TraceRead.from_registers(registers, AUX_REGISTER_1)
        registers.set(x.rd(), value, program.step)
        program.pc.next_address()
        return _Effects(read_1, TraceRead(), TraceWrite.from_registers(registers, x.rd()))

    raise EmulatorError(f"invalid micro-step {micro} for {instruction}")


def op_upper(instruction: Instruction, program: Program) -> _Effects:
    """LUI and AUIPC."""
    x = _operands(instruction, UType)
    dest_register = x.rd()
    if dest_register == REGISTER_ZERO:
        program.pc.next_address()
        return _no_effect()

    match instruction.mnemonic:
        case M.AUIPC:
            value = (program.pc.address + x.imm()) & MASK32
        case M.LUI:
            value = x.imm()
        case _:
            raise _unexpected(instruction)

    program.registers.set(dest_register, value, program.step)
    program.pc.next_address()
    return _Effects(
        TraceRead(), TraceRead(), TraceWrite.from_registers(program.registers, dest_register)
    )