"""Command line entry point of the emulator."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path

from rvtrace.errors import EmulatorError
from rvtrace.executor import execute_program
from rvtrace.faults import FailReads
from rvtrace.program import load_checkpoint, load_elf

_FAIL_READ_FIELDS = ("step", "address_original", "value", "modified_address", "modified_last_step")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rvtrace", description="RISC-V trace emulator")
    commands = parser.add_subparsers(dest="command")

    run = commands.add_parser("execute", help="Execute ELF file")
    run.add_argument("-e", "--elf", metavar="FILE", help="ELF file to load")
    run.add_argument("-s", "--step", type=int, metavar="STEP",
                     help="Step number of the checkpoint to continue execution from")
    run.add_argument("-l", "--limit", type=int, metavar="LIMIT_STEP",
                     help="Maximum number of steps to execute")
    run.add_argument("-i", "--input", metavar="HEX", help="Input as hex")
    run.add_argument("--input-section", metavar="SECTION_NAME", default=".input",
                     help="Section name where the input will be loaded")
    run.add_argument("--input-as-little", action="store_true", help="Input as little endian")
    run.add_argument("-n", "--no-hash", action="store_true", help="Avoid hashing the trace")
    run.add_argument("-t", "--trace", action="store_true", help="Outputs the trace")
    run.add_argument("--stdout", action="store_true", help="Print program stdout")
    run.add_argument("-d", "--debug", action="store_true", help="Debug")
    run.add_argument("--sections", action="store_true", help="Show sections")
    run.add_argument("-c", "--checkpoints", action="store_true", help="Save checkpoints")
    run.add_argument("--checkpoint-dir", default=".", metavar="DIR",
                     help="Directory where checkpoints are written and read")
    run.add_argument("--fail-hash", type=int, help="Fail producing hash for a specific step")
    run.add_argument("--fail-execute", type=int,
                     help="Fail producing the write value for a specific step")
    run.add_argument("--list", metavar="TRACE_LIST",
                     help="Comma separated list of trace steps to print")
    run.add_argument("--fail-read-1", nargs=5, metavar=_FAIL_READ_FIELDS,
                     help="Fail reading read_1 at a given step")
    run.add_argument("--fail-read-2", nargs=5, metavar=_FAIL_READ_FIELDS,
                     help="Fail reading read_2 at a given step")
    run.add_argument("--dump-mem", type=int, metavar="STEP", help="Memory dump at given step")
    run.add_argument("--fail-pc", type=int,
                     help="Fail while reading the pc at the given step")
    return parser


def _parse_list(text: str) -> list[int]:
    return [int(part.strip()) for part in text.split(",")]


def _execute(args: argparse.Namespace) -> int:
    if args.elf is None and args.step is None:
        print("To execute an elf file or a checkpoint step is required")
        return 1
    if args.elf is not None and args.step is not None:
        print("To execute chose an elf file or a checkpoint not both")
        return 1

    if args.elf is not None:
        input_data = bytes.fromhex(args.input) if args.input is not None else b""
        program = load_elf(args.elf, args.sections)
        if args.debug:
            print(f"Execute program {args.elf} with input: {list(input_data)}")
        checkpoints = args.checkpoints
    else:
        path = Path(args.checkpoint_dir) / f"checkpoint.{args.step}.json"
        program = load_checkpoint(path)
        if args.debug:
            print(f"Execute from checkpoint: {args.step} up to: {args.limit}")
        input_data = b""
        checkpoints = False

    trace_list = _parse_list(args.list) if args.list is not None else None

    fail_reads = None
    if args.fail_read_1 is not None or args.fail_read_2 is not None:
        fail_reads = FailReads.from_args(args.fail_read_1, args.fail_read_2)

    result = execute_program(
        program,
        input_data=input_data,
        input_section=args.input_section,
        little_endian=args.input_as_little,
        save_checkpoints=checkpoints,
        limit_step=args.limit,
        print_trace=args.trace,
        print_stdout=args.stdout,
        debug=args.debug,
        no_hash=args.no_hash,
        fail_hash=args.fail_hash,
        fail_execute=args.fail_execute,
        trace_list=trace_list,
        mem_dump=args.dump_mem,
        fail_reads=fail_reads,
        fail_pc=args.fail_pc,
        checkpoint_dir=args.checkpoint_dir,
    )
    if args.debug:
        print(f"Result: {result} exit code: {result.exit_code}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line; returns the process exit status."""
    args = _build_parser().parse_args(argv)
    if args.command is None:
        print("No command specified")
        return 0
    try:
        return _execute(args)
    except (EmulatorError, ValueError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())