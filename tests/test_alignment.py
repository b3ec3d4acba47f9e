import pytest

from rvtrace.alignment import (
    load_mask_round_1,
    load_mask_round_2,
    sign_extension,
    store_mask_round_1,
    store_mask_round_2,
)
from rvtrace.decoder import Instruction, IType, Mnemonic, SType

M = Mnemonic


def _shift(value, shift):
    if shift < 0:
        return value >> (-shift * 8)
    return (value << (shift * 8)) & 0xFFFF_FFFF


def test_store_round_1_pinned_values():
    assert store_mask_round_1(M.SB, 0) == (0xFFFF_FF00, 0x0000_00FF, 0)
    assert store_mask_round_1(M.SW, 1) == (0x0000_00FF, 0x00FF_FFFF, 1)


def test_store_round_2_pinned_value():
    assert store_mask_round_2(M.SW, 2) == (0xFFFF_0000, 0xFFFF_0000, -2)


def test_accepts_instruction_objects():
    sh = Instruction(M.SH, SType(0))
    assert store_mask_round_1(sh, 3) == store_mask_round_1(M.SH, 3)
    lw = Instruction(M.LW, IType(0))
    assert load_mask_round_2(lw, 1) == load_mask_round_2(M.LW, 1)


@pytest.mark.parametrize(
    "mnemonic, alignment",
    [(M.SB, a) for a in range(4)]
    + [(M.SH, a) for a in range(4)]
    + [(M.SW, a) for a in (1, 2, 3)],
)
def test_store_round_1_masks_partition_word(mnemonic, alignment):
    dst, src, shift = store_mask_round_1(mnemonic, alignment)
    assert shift == alignment
    moved = _shift(src, shift)
    assert dst & moved == 0
    assert dst | moved == 0xFFFF_FFFF


@pytest.mark.parametrize("mnemonic, alignment", [(M.SH, 3), (M.SW, 1), (M.SW, 2), (M.SW, 3)])
def test_store_round_2_masks_partition_word(mnemonic, alignment):
    dst, src, shift = store_mask_round_2(mnemonic, alignment)
    assert shift < 0
    moved = _shift(src, shift)
    assert dst & moved == 0
    assert dst | moved == 0xFFFF_FFFF


@pytest.mark.parametrize("mnemonic, alignment", [(M.LW, 1), (M.LW, 2), (M.LW, 3)])
def test_unaligned_word_load_rounds_cover_word(mnemonic, alignment):
    mask_1, shift_1 = load_mask_round_1(mnemonic, alignment)
    mask_2, shift_2 = load_mask_round_2(mnemonic, alignment)
    low = _shift(mask_1, shift_1)
    high = _shift(mask_2, shift_2)
    assert low & high == 0
    assert low | high == 0xFFFF_FFFF


@pytest.mark.parametrize("mnemonic", [M.LH, M.LHU])
def test_half_load_across_words(mnemonic):
    mask_1, shift_1 = load_mask_round_1(mnemonic, 3)
    mask_2, shift_2 = load_mask_round_2(mnemonic, 3)
    assert _shift(mask_1, shift_1) | _shift(mask_2, shift_2) == 0x0000_FFFF
    assert _shift(mask_1, shift_1) & _shift(mask_2, shift_2) == 0


@pytest.mark.parametrize("mnemonic", [M.LB, M.LBU])
@pytest.mark.parametrize("alignment", range(4))
def test_byte_load_brings_byte_to_bottom(mnemonic, alignment):
    mask, shift = load_mask_round_1(mnemonic, alignment)
    assert shift == -alignment
    assert _shift(mask, shift) == 0x0000_00FF


@pytest.mark.parametrize("mnemonic", [M.LH, M.LHU])
@pytest.mark.parametrize("alignment", range(3))
def test_half_load_in_word(mnemonic, alignment):
    mask, shift = load_mask_round_1(mnemonic, alignment)
    assert _shift(mask, shift) == 0x0000_FFFF


def test_aligned_word_load_is_whole_word():
    assert load_mask_round_1(M.LW, 0) == (0xFFFF_FFFF, 0)


def test_sign_extension():
    assert sign_extension(M.LB, 0xFD) == 0xFFFF_FFFD
    assert sign_extension(M.LB, 0x7D) == 0x7D
    assert sign_extension(M.LH, 0xEEEE) == 0xFFFF_EEEE
    assert sign_extension(M.LH, 0x7D7D) == 0x7D7D
    assert sign_extension(M.LBU, 0xFD) == 0xFD
    assert sign_extension(M.LHU, 0xFDFD) == 0xFDFD
    assert sign_extension(M.LW, 0x8000_0000) == 0x8000_0000


@pytest.mark.parametrize(
    "func, mnemonic, alignment",
    [
        (store_mask_round_1, M.SW, 0),
        (store_mask_round_1, M.LW, 0),
        (store_mask_round_1, M.SB, 4),
        (store_mask_round_2, M.SB, 3),
        (store_mask_round_2, M.SH, 2),
        (load_mask_round_1, M.SW, 0),
        (load_mask_round_2, M.LB, 3),
        (load_mask_round_2, M.LW, 0),
    ],
)
def test_unsupported_combinations_raise(func, mnemonic, alignment):
    with pytest.raises(ValueError):
        func(mnemonic, alignment)