"""The fetch-execute loop that runs a program and produces its trace."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable
from pathlib import Path

from rvtrace import ops
from rvtrace.decoder import Instruction, Mnemonic, decode
from rvtrace.errors import (
    EmulatorError,
    ExecutionResult,
    InstructionNotImplementedError,
    Outcome,
    SectionNotFoundError,
)
from rvtrace.faults import FailReads
from rvtrace.program import CHECKPOINT_SIZE, Program, bytes_to_words, save_checkpoint
from rvtrace.registers import MASK32, REGISTER_A0
from rvtrace.trace import (
    TraceRead,
    TraceReadPC,
    TraceRWStep,
    TraceStep,
    TraceWrite,
    compute_step_hash,
)

M = Mnemonic


def _nop(instruction: Instruction, program: Program) -> tuple:
    program.pc.next_address()
    return TraceRead(), TraceRead(), TraceWrite(), None


_HANDLERS: dict[Mnemonic, Callable[[Instruction, Program], tuple]] = {
    M.EBREAK: _nop,
    M.FENCE: _nop,
    M.JAL: ops.op_jal,
    M.JALR: ops.op_jalr,
    **dict.fromkeys(
        (M.MUL, M.MULH, M.MULHSU, M.MULHU, M.DIV, M.DIVU, M.REM, M.REMU,
         M.SUB, M.XOR, M.AND, M.OR, M.ADD),
        ops.op_arithmetic,
    ),
    **dict.fromkeys((M.SLL, M.SRL, M.SRA, M.SLT, M.SLTU), ops.op_shift_reg),
    **dict.fromkeys((M.SLLI, M.SRLI, M.SRAI), ops.op_shift_imm),
    **dict.fromkeys((M.SLTI, M.SLTIU), ops.op_sl_imm),
    **dict.fromkeys((M.SB, M.SH, M.SW), ops.op_store),
    **dict.fromkeys((M.LBU, M.LB, M.LH, M.LHU, M.LW), ops.op_load),
    **dict.fromkeys((M.AUIPC, M.LUI), ops.op_upper),
    **dict.fromkeys((M.BEQ, M.BNE, M.BLT, M.BGE, M.BLTU, M.BGEU), ops.op_conditional),
    **dict.fromkeys((M.ADDI, M.ANDI, M.ORI, M.XORI), ops.op_arithmetic_imm),
}


def execute_step(program: Program, print_stdout: bool = False, debug: bool = False) -> TraceRWStep:
    """Execute one micro-step and return what it read and wrote."""
    pc = program.pc.copy()
    opcode = program.read_mem(pc.address)
    instruction = decode(opcode)

    if debug and program.step % 100_000_000 < 10_000:
        print(
            f"Step: {program.step} PC: 0x{pc.address:08x}:{pc.micro} "
            f"Opcode: 0x{opcode:08x} Instruction: {instruction} "
        )

    if instruction.mnemonic is M.ECALL:
        effects = ops.op_ecall(program, print_stdout, debug)
    else:
        handler = _HANDLERS.get(instruction.mnemonic)
        if handler is None:
            raise InstructionNotImplementedError(opcode, str(instruction))
        effects = handler(instruction, program)

    read_1, read_2, write_1, witness = effects
    trace = TraceRWStep(
        read_1=read_1,
        read_2=read_2,
        read_pc=TraceReadPC(pc, opcode),
        trace_step=TraceStep(write_1, program.pc.copy()),
        witness=witness,
    )
    program.step += 1
    return trace


def _checkpoint_path(directory: str | os.PathLike, step: int) -> Path:
    return Path(directory) / f"checkpoint.{step}.json"


def _swap32(value: int) -> int:
    return int.from_bytes((value & MASK32).to_bytes(4, "little"), "big")


def _load_input(program: Program, data: bytes, section_name: str, little_endian: bool) -> None:
    section = program.find_section_by_name(section_name)
    if section is None:
        raise SectionNotFoundError(section_name)
    words = bytes_to_words(data, little_endian)
    if len(words) > len(section.data):
        raise EmulatorError(f"input does not fit in section {section_name}")
    section.data[: len(words)] = words


def execute_program(
    program: Program,
    input_data: bytes = b"",
    input_section: str = ".input",
    little_endian: bool = False,
    save_checkpoints: bool = False,
    limit_step: int | None = None,
    print_trace: bool = False,
    print_stdout: bool = False,
    debug: bool = False,
    no_hash: bool = False,
    fail_hash: int | None = None,
    fail_execute: int | None = None,
    trace_list: Iterable[int] | None = None,
    mem_dump: int | None = None,
    fail_reads: FailReads | None = None,
    fail_pc: int | None = None,
    checkpoint_dir: str | os.PathLike = ".",
) -> ExecutionResult:
    """Run ``program`` until it halts, fails or reaches ``limit_step``.

    Errors met while executing a step are raised after checkpoints and
    debug output for that step have been written.
    """
    trace_set = set(trace_list) if trace_list is not None else None

    if input_data:
        _load_input(program, input_data, input_section, little_endian)

    if save_checkpoints:
        save_checkpoint(program, _checkpoint_path(checkpoint_dir, 0))

    error: EmulatorError | None = None
    result: ExecutionResult | None = None

    while True:
        should_patch = (False, False)
        if fail_reads is not None:
            should_patch = fail_reads.patch_mem(program)

        if fail_pc is not None and fail_pc == program.step:
            program.pc.next_address()

        trace: TraceRWStep | None
        try:
            trace = execute_step(program, print_stdout, debug)
        except EmulatorError as exc:
            error = exc
            trace = None
            if debug:
                print(f"Result: {exc}")
                print(f"Returned value from main(): 0x{program.registers.get(REGISTER_A0):08x}")
                if input_data:
                    section = program.find_section_by_name(input_section)
                    if section is None:
                        raise SectionNotFoundError(input_section) from exc
                    for idx, value in enumerate(section.data[:10]):
                        print(f"{idx * 4 + section.start:x}: {_swap32(value):08x} ")

        if trace is not None:
            if fail_reads is not None:
                fail_reads.patch_trace_reads(trace, should_patch)

            if fail_execute is not None and fail_execute == program.step:
                write = trace.trace_step.write_1
                write.value = (write.value + 1) & MASK32

            if not no_hash:
                trace_bytes = trace.trace_step.to_bytes()
                program.hash = compute_step_hash(program.hash, trace_bytes)
                if fail_hash is not None and fail_hash == program.step:
                    program.hash = compute_step_hash(program.hash, trace_bytes)

            if mem_dump is not None and program.step == mem_dump:
                print(f"\n========== Dumping memory at step: {mem_dump} ==========")
                program.dump_memory()

            if print_trace and (trace_set is None or program.step in trace_set):
                print(f"{trace.to_csv()};{trace.trace_step.to_hex_string()};{program.hash.hex()}")

        if save_checkpoints and (
            program.step % CHECKPOINT_SIZE == 0 or error is not None or program.halt
        ):
            save_checkpoint(program, _checkpoint_path(checkpoint_dir, program.step))

        if error is not None:
            break
        if program.halt:
            result = ExecutionResult(Outcome.HALT, program.registers.get(REGISTER_A0))
            break
        if limit_step is not None and limit_step == program.step:
            result = ExecutionResult(Outcome.LIMIT_STEP_REACHED)
            break

    if debug:
        print(f"Last hash: {program.hash.hex()}")

    if error is not None:
        raise error
    assert result is not None
    return result