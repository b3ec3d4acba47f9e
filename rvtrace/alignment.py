"""Byte masks and shifts used to split unaligned loads and stores into word accesses."""

from __future__ import annotations

from rvtrace.decoder import Instruction, Mnemonic

M = Mnemonic

_STORE_ROUND_1 = {
    (M.SB, 0): (0xFFFF_FF00, 0x0000_00FF, 0),
    (M.SB, 1): (0xFFFF_00FF, 0x0000_00FF, 1),
    (M.SB, 2): (0xFF00_FFFF, 0x0000_00FF, 2),
    (M.SB, 3): (0x00FF_FFFF, 0x0000_00FF, 3),
    (M.SH, 0): (0xFFFF_0000, 0x0000_FFFF, 0),
    (M.SH, 1): (0xFF00_00FF, 0x0000_FFFF, 1),
    (M.SH, 2): (0x0000_FFFF, 0x0000_FFFF, 2),
    (M.SH, 3): (0x00FF_FFFF, 0x0000_00FF, 3),
    (M.SW, 3): (0x00FF_FFFF, 0x0000_00FF, 3),
    (M.SW, 2): (0x0000_FFFF, 0x0000_FFFF, 2),
    (M.SW, 1): (0x0000_00FF, 0x00FF_FFFF, 1),
}

_STORE_ROUND_2 = {
    (M.SH, 3): (0xFFFF_FF00, 0x0000_FF00, -1),
    (M.SW, 3): (0xFF00_0000, 0xFFFF_FF00, -1),
    (M.SW, 2): (0xFFFF_0000, 0xFFFF_0000, -2),
    (M.SW, 1): (0xFFFF_FF00, 0xFF00_0000, -3),
}

_LOAD_ROUND_1 = {
    **{
        (mn, a): v
        for mn in (M.LB, M.LBU)
        for a, v in {
            0: (0x0000_00FF, 0),
            1: (0x0000_FF00, -1),
            2: (0x00FF_0000, -2),
            3: (0xFF00_0000, -3),
        }.items()
    },
    **{
        (mn, a): v
        for mn in (M.LH, M.LHU)
        for a, v in {
            0: (0x0000_FFFF, 0),
            1: (0x00FF_FF00, -1),
            2: (0xFFFF_0000, -2),
            3: (0xFF00_0000, -3),
        }.items()
    },
    (M.LW, 3): (0xFF00_0000, -3),
    (M.LW, 2): (0xFFFF_0000, -2),
    (M.LW, 1): (0xFFFF_FF00, -1),
    (M.LW, 0): (0xFFFF_FFFF, 0),
}

_LOAD_ROUND_2 = {
    (M.LH, 3): (0x0000_00FF, 1),
    (M.LHU, 3): (0x0000_00FF, 1),
    (M.LW, 3): (0x00FF_FFFF, 1),
    (M.LW, 2): (0x0000_FFFF, 2),
    (M.LW, 1): (0x0000_00FF, 3),
}


def _mnemonic(instruction: Instruction | Mnemonic) -> Mnemonic:
    if isinstance(instruction, Instruction):
        return instruction.mnemonic
    return instruction


def _lookup(table: dict, instruction: Instruction | Mnemonic, alignment: int) -> tuple:
    mnemonic = _mnemonic(instruction)
    try:
        return table[(mnemonic, alignment)]
    except KeyError:
        raise ValueError(
            f"no mask for {mnemonic.value} with alignment {alignment}"
        ) from None


def store_mask_round_1(instruction: Instruction | Mnemonic, alignment: int) -> tuple[int, int, int]:
    """(destination mask, source mask, byte shift) for the first word of a store."""
    return _lookup(_STORE_ROUND_1, instruction, alignment)


def store_mask_round_2(instruction: Instruction | Mnemonic, alignment: int) -> tuple[int, int, int]:
    """(destination mask, source mask, byte shift) for the second word of a store."""
    return _lookup(_STORE_ROUND_2, instruction, alignment)


def sign_extension(instruction: Instruction | Mnemonic, value: int) -> int:
    """Sign-extend a loaded byte or half word; other loads are left unchanged."""
    mnemonic = _mnemonic(instruction)
    if mnemonic is M.LB and value & 0x0000_0080:
        return 0xFFFF_FF00 | value
    if mnemonic is M.LH and value & 0x0000_8000:
        return 0xFFFF_0000 | value
    return value


def load_mask_round_1(instruction: Instruction | Mnemonic, alignment: int) -> tuple[int, int]:
    """(mask, byte shift) for the first word of a load."""
    return _lookup(_LOAD_ROUND_1, instruction, alignment)


def load_mask_round_2(instruction: Instruction | Mnemonic, alignment: int) -> tuple[int, int]:
    """(mask, byte shift) for the second word of a load."""
    return _lookup(_LOAD_ROUND_2, instruction, alignment)