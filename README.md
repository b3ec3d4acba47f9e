# rvtrace

This is an emulator for 32-bit RISC-V programs that use the RV32IM instruction set. It loads a little-endian ELF file and runs it one micro-step at a time. Unaligned loads and stores are split into several micro-steps.

For every step it records:

- the two reads,
- the program counter and opcode,
- the write,
- the next program counter.

It also keeps a chained SHA-256 hash over the written part of each step. On request it injects faults into the trace.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Command line

The package has one command, `execute`. This example runs an ELF file and prints the trace of every step:

```
rvtrace execute --elf program.elf --trace
```

Each trace line has three parts, separated by `;`:

1. The step in CSV form: read 1 address, value and last step; read 2 address, value and last step; the PC address, micro-step and opcode that were read; the write address and value; the new PC address and micro-step.
2. The write trace as hex.
3. The running hash as hex.

Options of `execute`:

- `-e/--elf FILE`: the ELF file to run.
- `-s/--step N`: resume from `checkpoint.N.json` instead of an ELF file. Give `--elf` or `--step`, not both.
- `--checkpoint-dir DIR`: the directory where checkpoints are written and read. The default is the current directory.
- `-c/--checkpoints`: save `checkpoint.<step>.json` at step 0, every 50,000,000 steps, on an error, and on halt.
- `-l/--limit N`: stop when step `N` is reached.
- `-i/--input HEX`: input bytes to copy into the section named by `--input-section`. The default section is `.input`. Add `--input-as-little` to store the bytes as little-endian words.
- `-t/--trace`: print the trace. Add `--list 1,5,9` to print only those steps.
- `-n/--no-hash`: do not compute the trace hash.
- `--stdout`: print the characters the program writes with system call 116.
- `-d/--debug`: print debugging output.
- `--sections`: print the sections as they are loaded.
- `--dump-mem N`: print the registers and the non-zero memory at step `N`.

Options that inject faults:

- `--fail-hash N`: hash step `N` twice.
- `--fail-execute N`: add 1 to the value written at step `N`.
- `--fail-pc N`: skip one instruction before step `N`.
- `--fail-read-1 STEP ADDR VALUE MOD_ADDR MOD_LAST_STEP` and `--fail-read-2 ...`: before the given step, plant `VALUE` at `ADDR`. The trace then reports `MOD_ADDR` and `MOD_LAST_STEP` for that read.

The command exits with status 1 in these cases:

- both `--elf` and `--step` are given, or neither is;
- an instruction cannot be decoded or is not implemented;
- memory is accessed outside any section;
- the named input section is missing.

## Library use

```python
from rvtrace.program import load_elf
from rvtrace.executor import execute_program

program = load_elf("program.elf", False)
result = execute_program(program, limit_step=1_000_000, print_trace=True)
print(result.outcome, result.exit_code)
```

`execute_program` returns an `ExecutionResult` from `rvtrace.errors`. Its outcome is `Outcome.HALT` together with the value of `a0`, or `Outcome.LIMIT_STEP_REACHED`. Failures are raised as `EmulatorError` or one of its subclasses.

These parts of the package can be used on their own:

- `rvtrace.executor.execute_step` runs a single step and returns a `TraceRWStep`.
- `rvtrace.decoder.decode` decodes an instruction word.
- `rvtrace.ops` holds the semantics of each instruction.
- `rvtrace.program` holds memory sections and checkpoints: `save_checkpoint` and `load_checkpoint`.
- `rvtrace.trace.compute_step_hash` chains the step hashes.

## What it does not do

The package does not:

- list a ROM commitment for an ELF file;
- build or check a verification mapping for instructions.

It supports these system calls only:

- 116 writes one character.
- 93 halts the program.

Other system calls are reported and then skipped. CSR instructions are decoded but not executed.