"""Errors raised by the emulator and the outcomes of a finished run."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class EmulatorError(Exception):
    """Execution could not go on."""

    def __init__(self, message: str = "Error") -> None:
        super().__init__(message)


class SectionNotFoundError(EmulatorError):
    """A section named by the caller does not exist in the program."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Section: {name} not found")


class InstructionNotImplementedError(EmulatorError):
    """The decoded instruction has no implementation."""

    def __init__(self, opcode: int, instruction: str) -> None:
        self.opcode = opcode
        self.instruction = instruction
        super().__init__(f"Not implemented {opcode} {instruction}")


class SyscallNotImplementedError(EmulatorError):
    """The program asked for a system call that is not supported."""

    def __init__(self, syscall: int) -> None:
        self.syscall = syscall
        super().__init__(f"Syscall not implemented {syscall}")


class Outcome(enum.Enum):
    """How a run that did not fail came to an end."""

    OK = "Ok"
    HALT = "Program terminated successfully"
    LIMIT_STEP_REACHED = "Step limit reached"


@dataclass(frozen=True)
class ExecutionResult:
    """The outcome of a run; ``exit_code`` is set when the program halted."""

    outcome: Outcome
    exit_code: int | None = None

    def __str__(self) -> str:
        return self.outcome.value