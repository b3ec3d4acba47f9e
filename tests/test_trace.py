from rvtrace.registers import ProgramCounter, Registers
from rvtrace.trace import (
    TraceRead,
    TraceReadPC,
    TraceRWStep,
    TraceStep,
    TraceWrite,
    compute_step_hash,
    generate_initial_step_hash,
)


def _step():
    return TraceStep(TraceWrite(0x1234_5678, 0x9ABC_DEF0), ProgramCounter(0x1000, 2))


def test_hex_string_layout():
    assert _step().to_hex_string() == "123456789abcdef00000100002"


def test_bytes_match_hex_string():
    step = _step()
    assert step.to_bytes() == bytes.fromhex(step.to_hex_string())


def test_default_step_is_all_zero():
    step = TraceStep()
    assert step.to_bytes() == bytes(len(step.to_bytes()))
    assert set(step.to_hex_string()) == {"0"}


def test_read_from_registers():
    regs = Registers(0xF000_0000, 0)
    regs.set(5, 42, 9)
    read = TraceRead.from_registers(regs, 5)
    assert read.address == regs.register_address(5)
    assert read.value == 42
    assert read.last_step == 9


def test_write_from_registers():
    regs = Registers(0xF000_0000, 0)
    regs.set(7, 99, 3)
    write = TraceWrite.from_registers(regs, 7)
    assert write == TraceWrite(regs.register_address(7), 99)


def test_csv_fields_in_order():
    trace = TraceRWStep(
        TraceRead(1, 2, 3),
        TraceRead(4, 5, 6),
        TraceReadPC(ProgramCounter(7, 1), 8),
        TraceStep(TraceWrite(9, 10), ProgramCounter(11, 2)),
        None,
    )
    assert trace.to_csv().split(";") == [
        "1", "2", "3", "4", "5", "6", "7", "1", "8", "9", "10", "11", "2",
    ]


def test_write_trace_is_step_hex():
    trace = TraceRWStep(trace_step=_step(), witness=5)
    assert trace.to_write_trace() == _step().to_hex_string()
    assert trace.witness == 5


def test_initial_hash():
    assert generate_initial_step_hash().hex() == (
        "a8100ae6aa1940d0b663bb31cd466142ebbdbd5187131b92d93818987832eb89"
    )


def test_step_hash_depends_only_on_concatenation():
    prev = generate_initial_step_hash()
    trace = _step().to_bytes()
    assert compute_step_hash(prev, trace) == compute_step_hash(prev + trace[:4], trace[4:])
    assert len(compute_step_hash(prev, trace)) == len(prev)


def test_step_hash_changes_with_trace():
    prev = generate_initial_step_hash()
    first = compute_step_hash(prev, _step().to_bytes())
    second = compute_step_hash(prev, TraceStep().to_bytes())
    assert first != second
    assert compute_step_hash(prev, _step().to_bytes()) == first