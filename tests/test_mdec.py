import struct

import pytest

from re1unpack.mdec import (
    CMD_COSTAB,
    CMD_DECODE,
    CMD_IQTAB,
    RL_NOP,
    STATUS_BUSY,
    Mdec,
    build_iqtab,
    idct,
)


def _macroblock(dc_values, q_scale=0):
    """Six blocks, each a DC word followed by an end-of-block marker."""
    words = []
    for dc in dc_values:
        words.append((q_scale << 10) | (dc & 0x3FF))
        words.append(RL_NOP)
    return struct.pack(f"<{len(words)}H", *words)


def _decoder(ctrl, iq=1):
    mdec = Mdec()
    mdec.write_long(0, CMD_IQTAB)
    mdec.start_in_dma(bytes([iq]) * 128)
    mdec.write_long(0, ctrl)
    return mdec


# ---- idct -----------------------------------------------------------------


def test_idct_dc_only_fills_block():
    block = [37] + [0] * 63
    assert idct(block, -1) == [37] * 64


def test_idct_dc_without_mask_is_uniform():
    block = [-12] + [0] * 63
    assert idct(block, 0) == [-12] * 64


def test_idct_zero_block_stays_zero():
    assert idct([0] * 64, 0xFF) == [0] * 64


def test_idct_does_not_modify_input():
    block = [5, 3, 0, 0, 0, 0, 0, 0] + [1] * 56
    original = list(block)
    result = idct(block, 0xFF)
    assert block == original
    assert len(result) == 64


def test_idct_rejects_wrong_size():
    with pytest.raises(ValueError):
        idct([0] * 10, 0)


# ---- build_iqtab ----------------------------------------------------------


def test_build_iqtab_zero_table():
    assert build_iqtab(bytes(64)) == [0] * 64


def test_build_iqtab_dc_entry():
    table = bytes([1]) + bytes(63)
    result = build_iqtab(table)
    assert result[0] == 1048576 >> 4
    assert result[1:] == [0] * 63


def test_build_iqtab_scales_linearly():
    ones = build_iqtab(bytes([1]) * 64)
    threes = build_iqtab(bytes([3]) * 64)
    assert threes == [3 * v for v in ones]


def test_build_iqtab_rejects_short_table():
    with pytest.raises(ValueError):
        build_iqtab(bytes(10))


# ---- registers ------------------------------------------------------------


def test_registers_read_back():
    mdec = Mdec()
    mdec.write_long(0, CMD_COSTAB)
    assert mdec.read_long(0) == CMD_COSTAB
    assert mdec.read_long(4) == 0
    assert mdec.read_long(1) == 0


def test_reset_clears_pending_data():
    mdec = Mdec()
    mdec.write_long(0, CMD_DECODE)
    mdec.start_in_dma(_macroblock([0] * 6))
    assert mdec.read_long(4) & STATUS_BUSY
    mdec.write_long(4, 0x80000000)
    assert mdec.read_long(4) == 0
    assert mdec.start_out_dma(128) == b""


def test_decode_command_clears_queue():
    mdec = Mdec()
    mdec.write_long(0, CMD_DECODE)
    mdec.start_in_dma(_macroblock([0] * 6))
    mdec.write_long(0, CMD_DECODE)
    assert mdec.start_out_dma(128) == b""


# ---- input DMA ------------------------------------------------------------


def test_costab_uniform_values():
    mdec = Mdec()
    mdec.write_long(0, CMD_COSTAB)
    mdec.start_in_dma(struct.pack("<64h", *([23170] * 64)))
    assert mdec.costab == [4096] * 64


def test_costab_transposed():
    mdec = Mdec()
    mdec.write_long(0, CMD_COSTAB)
    mdec.start_in_dma(struct.pack("<64h", *range(1, 65)))
    assert mdec.costab[5] == 6 * 4096
    for x in range(8):
        for y in range(8):
            assert mdec.icostab[x * 8 + y] == mdec.costab[y * 8 + x]


def test_costab_zero_first_entry_rejected():
    mdec = Mdec()
    mdec.write_long(0, CMD_COSTAB)
    with pytest.raises(ValueError):
        mdec.start_in_dma(bytes(128))


def test_iq_tables_loaded():
    mdec = Mdec()
    mdec.write_long(0, CMD_IQTAB)
    data = bytes(range(64)) + bytes(range(64, 128))
    mdec.start_in_dma(data)
    assert mdec.iq_y == build_iqtab(data[:64])
    assert mdec.iq_uv == build_iqtab(data[64:])


def test_unsupported_command_rejected():
    mdec = Mdec()
    mdec.write_long(0, 0x10000000)
    with pytest.raises(ValueError):
        mdec.start_in_dma(bytes(4))


def test_odd_run_length_data_rejected():
    mdec = Mdec()
    mdec.write_long(0, CMD_DECODE)
    with pytest.raises(ValueError):
        mdec.start_in_dma(bytes(3))


# ---- output DMA -----------------------------------------------------------


def test_empty_buffer_returns_nothing():
    mdec = Mdec()
    mdec.write_long(0, CMD_DECODE)
    assert mdec.start_out_dma(128) == b""


def test_rgb15_flat_macroblock():
    mdec = _decoder(0x38000000)
    mdec.start_in_dma(_macroblock([0] * 6))
    out = mdec.start_out_dma(128)
    assert len(out) == 512
    pixels = struct.unpack("<256H", out)
    assert set(pixels) == {0x4210}
    assert not mdec.read_long(4) & STATUS_BUSY


def test_rgb15_semi_transparency_bit():
    mdec = _decoder(0x3A000000)
    mdec.start_in_dma(_macroblock([0] * 6))
    out = mdec.start_out_dma(128)
    assert len(out) == 512
    pixels = struct.unpack("<256H", out)
    assert set(pixels) == {0x4210 | 0x8000}


def test_rgb24_flat_macroblock():
    mdec = _decoder(CMD_DECODE)
    mdec.start_in_dma(_macroblock([0] * 6))
    out = mdec.start_out_dma(192)
    assert len(out) == 768
    assert set(out) == {128}


def test_rgb24_bright_luma_is_brighter_and_uniform():
    mdec = _decoder(CMD_DECODE)
    mdec.start_in_dma(_macroblock([0, 0, 10, 10, 10, 10]))
    out = mdec.start_out_dma(192)
    assert len(set(out)) == 1
    assert out[0] > 128


def test_rgb24_one_bright_quadrant():
    mdec = _decoder(CMD_DECODE)
    mdec.start_in_dma(_macroblock([0, 0, 10, 0, 0, 0]))
    out = mdec.start_out_dma(192)
    top_left = out[0]
    bottom_right = out[(15 * 16 + 15) * 3]
    assert top_left > bottom_right


def test_underrun_still_produces_full_output():
    mdec = _decoder(0x38000000)
    mdec.start_in_dma(_macroblock([0] * 6))
    out = mdec.start_out_dma(256)
    assert len(out) == 1024


def test_trailing_nops_are_skipped():
    mdec = _decoder(0x38000000)
    mdec.start_in_dma(_macroblock([0] * 6) + struct.pack("<2H", RL_NOP, RL_NOP))
    mdec.start_out_dma(128)
    assert not mdec.read_long(4) & STATUS_BUSY
    assert mdec.start_out_dma(128) == b""


def test_pending_data_keeps_busy_status():
    mdec = _decoder(0x38000000)
    mdec.start_in_dma(_macroblock([0] * 6) + _macroblock([0] * 6))
    first = mdec.start_out_dma(128)
    assert mdec.read_long(4) & STATUS_BUSY
    second = mdec.start_out_dma(128)
    assert first == second
    assert not mdec.read_long(4) & STATUS_BUSY