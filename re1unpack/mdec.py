"""Decoding of PlayStation MDEC run-length macroblocks into RGB pixels."""

from __future__ import annotations

import logging
import struct
from collections import deque

_log = logging.getLogger(__name__)

DSIZE = 8
DSIZE2 = DSIZE * DSIZE

RL_NOP = 0xFE00

CMD_COSTAB = 0x60000000
CMD_IQTAB = 0x40000001
CMD_DECODE = 0x30000000
CMD_DECODE_MASK = 0xF5FF0000
CMD_RESET = 0x80000000

CTRL_RGB15 = 0x08000000
CTRL_STP = 0x02000000
STATUS_BUSY = 0x20000000

_RGB15_WORDS = 16 * 16 // 2
_RGB24_WORDS = 24 * 16 // 2

_AAN_CONST_BITS = 12
_AAN_PRESCALE_BITS = 16
_AAN_CONST_SIZE = 24
_AAN_CONST_SCALE = _AAN_CONST_SIZE - _AAN_CONST_BITS
_AAN_PRESCALE_SIZE = 20
_AAN_PRESCALE_SCALE = _AAN_PRESCALE_SIZE - _AAN_PRESCALE_BITS
_AAN_EXTRA = 12


def _scaler(x: int, n: int) -> int:
    """Shift right by ``n`` bits, rounding to nearest."""
    return (x + ((1 << n) >> 1)) >> n


_FIX_1_082392200 = _scaler(18159528, _AAN_CONST_SCALE)
_FIX_1_414213562 = _scaler(23726566, _AAN_CONST_SCALE)
_FIX_1_847759065 = _scaler(31000253, _AAN_CONST_SCALE)
_FIX_2_613125930 = _scaler(43840978, _AAN_CONST_SCALE)

_AANSCALES = (
    1048576, 1454417, 1370031, 1232995, 1048576, 823861, 567485, 289301,
    1454417, 2017334, 1900287, 1710213, 1454417, 1142728, 787125, 401273,
    1370031, 1900287, 1790031, 1610986, 1370031, 1076426, 741455, 377991,
    1232995, 1710213, 1610986, 1449849, 1232995, 968758, 667292, 340183,
    1048576, 1454417, 1370031, 1232995, 1048576, 823861, 567485, 289301,
    823861, 1142728, 1076426, 968758, 823861, 647303, 445870, 227303,
    567485, 787125, 741455, 667292, 567485, 445870, 307121, 156569,
    289301, 401273, 377991, 340183, 289301, 227303, 156569, 79818,
)

_ZSCAN = (
    0, 1, 8, 16, 9, 2, 3, 10,
    17, 24, 32, 25, 18, 11, 4, 5,
    12, 19, 26, 33, 40, 48, 41, 34,
    27, 20, 13, 6, 7, 14, 21, 28,
    35, 42, 49, 56, 57, 50, 43, 36,
    29, 22, 15, 23, 30, 37, 44, 51,
    58, 59, 52, 45, 38, 31, 39, 46,
    53, 60, 61, 54, 47, 55, 62, 63,
)


def _rle_val(rl: int) -> int:
    """Sign-extend the low 10 bits of a run-length word."""
    value = rl & 0x3FF
    return value - 0x400 if value & 0x200 else value


def _muls(value: int, const: int) -> int:
    return (value * const) >> _AAN_CONST_BITS


def _butterfly(v) -> list[int]:
    """One 8-point pass of the AAN inverse DCT."""
    z10 = v[0] + v[4]
    z11 = v[0] - v[4]
    z13 = v[2] + v[6]
    z12 = _muls(v[2] - v[6], _FIX_1_414213562) - z13

    tmp0 = z10 + z13
    tmp3 = z10 - z13
    tmp1 = z11 + z12
    tmp2 = z11 - z12

    z13 = v[3] + v[5]
    z10 = v[3] - v[5]
    z11 = v[1] + v[7]
    z12 = v[1] - v[7]

    tmp7 = z11 + z13
    z5 = (z12 - z10) * _FIX_1_847759065
    tmp6 = ((z10 * _FIX_2_613125930 + z5) >> _AAN_CONST_BITS) - tmp7
    tmp5 = _muls(z11 - z13, _FIX_1_414213562) - tmp6
    tmp4 = ((z12 * _FIX_1_082392200 - z5) >> _AAN_CONST_BITS) + tmp5

    return [
        tmp0 + tmp7,
        tmp1 + tmp6,
        tmp2 + tmp5,
        tmp3 - tmp4,
        tmp3 + tmp4,
        tmp2 - tmp5,
        tmp1 - tmp6,
        tmp0 - tmp7,
    ]


def idct(block, used_col):
    """Inverse DCT of an 8x8 block; returns a new list of 64 values.

    ``used_col`` is -1 for a block with only a DC coefficient, otherwise a
    bit mask of columns holding non-zero coefficients in rows 1-7.
    """
    if len(block) != DSIZE2:
        raise ValueError("an IDCT block holds 64 coefficients")
    if used_col == -1:
        return [block[0]] * DSIZE2

    b = list(block)
    for i in range(DSIZE):
        if not used_col & (1 << i):
            if b[i]:
                b[i::DSIZE] = [b[i]] * DSIZE
                used_col |= 1 << i
            continue
        b[i::DSIZE] = _butterfly(b[i::DSIZE])

    for row in range(0, DSIZE2, DSIZE):
        if used_col == 1:
            b[row:row + DSIZE] = [b[row]] * DSIZE
        else:
            b[row:row + DSIZE] = _butterfly(b[row:row + DSIZE])
    return b


def build_iqtab(table):
    """Build a scaled quantisation table from 64 quantiser bytes."""
    if len(table) < DSIZE2:
        raise ValueError("a quantisation table holds 64 entries")
    return [
        table[i] * _scaler(_AANSCALES[_ZSCAN[i]], _AAN_PRESCALE_SCALE)
        for i in range(DSIZE2)
    ]


def _to_float32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


def _clamp5(c: int) -> int:
    c = _scaler(c, 23)
    if c < -16:
        return 0
    if c > 31 - 16:
        return 31
    return c + 16


def _clamp8(c: int) -> int:
    c = _scaler(c, 20)
    if c < -128:
        return 0
    if c > 255 - 128:
        return 255
    return c + 128


def _macroblock_rgb(blk):
    """Yield raw (R, G, B) sums for the 16x16 pixels of a macroblock."""
    for py in range(16):
        for px in range(16):
            c = (py >> 1) * DSIZE + (px >> 1)
            which = (py >> 3) * 2 + (px >> 3)
            yi = 2 * DSIZE2 + which * DSIZE2 + (py & 7) * DSIZE + (px & 7)
            y = blk[yi] << 10
            cr = blk[c]
            cb = blk[DSIZE2 + c]
            yield y + 1434 * cr, y - 351 * cb - 728 * cr, y + 1807 * cb


class Mdec:
    """Motion decoder: takes run-length words in and hands RGB pixels out."""

    def __init__(self):
        self.ctrl = 0
        self.status = 0
        self.iq_y = [0] * DSIZE2
        self.iq_uv = [0] * DSIZE2
        self.costab = [0] * DSIZE2
        self.icostab = [0] * DSIZE2
        self._rl: deque[int] = deque()
        self._warned = False

    def read_long(self, addr):
        """Read the command (offset 0) or status (offset 4) register."""
        reg = addr & 7
        if reg == 0:
            return self.ctrl
        if reg == 4:
            return self.status
        return 0

    def write_long(self, addr, value):
        """Write the command (offset 0) or control (offset 4) register."""
        reg = addr & 7
        if reg == 0:
            self.ctrl = value
            if value & 0xF0000000 == CMD_DECODE:
                self._rl.clear()
                self.status = 0
        elif reg == 4 and value & CMD_RESET:
            self._rl.clear()
            self.status = 0

    def start_in_dma(self, data):
        """Feed data to the decoder according to the current command."""
        data = bytes(data)
        if self.ctrl == CMD_COSTAB:
            self._init_costab(data)
        elif self.ctrl == CMD_IQTAB:
            if len(data) < 2 * DSIZE2:
                raise ValueError("quantisation tables need 128 bytes")
            self.iq_y = build_iqtab(data[:DSIZE2])
            self.iq_uv = build_iqtab(data[DSIZE2:2 * DSIZE2])
        elif self.ctrl & CMD_DECODE_MASK == CMD_DECODE:
            if len(data) % 2:
                raise ValueError("run-length data must be whole 16-bit words")
            self.status |= STATUS_BUSY
            self._rl.extend(struct.unpack(f"<{len(data) // 2}H", data))
        else:
            raise ValueError(f"unsupported MDEC command {self.ctrl:#010x}")

    def start_out_dma(self, size):
        """Decode macroblocks worth ``size`` 32-bit words and return the pixels."""
        if not self._rl:
            _log.warning("run-length buffer empty")
            return b""

        rgb15 = bool(self.ctrl & CTRL_RGB15)
        words = _RGB15_WORDS if rgb15 else _RGB24_WORDS
        out = bytearray()
        remaining = size
        while remaining > 0:
            blk = self._decode_rl()
            out += self._to_rgb15(blk) if rgb15 else self._to_rgb24(blk)
            remaining -= words

        self._skip_nops()
        if not self._rl:
            self.status &= ~STATUS_BUSY
        return bytes(out)

    def _init_costab(self, data: bytes) -> None:
        if len(data) < 2 * DSIZE2:
            raise ValueError("the cosine table needs 64 16-bit entries")
        raw = struct.unpack_from(f"<{DSIZE2}h", data)
        ct0 = raw[0]
        if ct0 == 0:
            raise ValueError("the cosine table starts with zero")
        self.costab = [int(_to_float32(v / ct0) * 4096.0) for v in raw]
        self.icostab = [
            self.costab[y * DSIZE + x] for x in range(DSIZE) for y in range(DSIZE)
        ]

    def _next_word(self) -> int:
        if self._rl:
            self._warned = False
            return self._rl.popleft()
        if not self._warned:
            _log.warning("run-length buffer underrun")
            self._warned = True
        return 0

    def _skip_nops(self) -> None:
        while self._rl and self._rl[0] == RL_NOP:
            self._rl.popleft()

    def _decode_rl(self) -> list[int]:
        """Decode the six blocks (Cr, Cb, Y1-Y4) of one macroblock."""
        blk: list[int] = []
        iqtab = self.iq_uv
        for i in range(6):
            if i == 2:
                iqtab = self.iq_y
            block = [0] * DSIZE2
            rl = self._next_word()
            q_scale = rl >> 10
            block[0] = _scaler(iqtab[0] * _rle_val(rl), _AAN_EXTRA - 3)
            k = 0
            used_col = 0
            while True:
                rl = self._next_word()
                if rl == RL_NOP:
                    break
                k += (rl >> 10) + 1
                if k > 63:
                    break
                z = _ZSCAN[k]
                block[z] = _scaler(_rle_val(rl) * iqtab[k] * q_scale, _AAN_EXTRA)
                if z > 7:
                    used_col |= 1 << (z & 7)
            if k == 0:
                used_col = -1
            blk.extend(idct(block, used_col))
        return blk

    def _to_rgb15(self, blk) -> bytes:
        stp = 0x8000 if self.ctrl & CTRL_STP else 0
        values = [
            _clamp5(r) | (_clamp5(g) << 5) | (_clamp5(b) << 10) | stp
            for r, g, b in _macroblock_rgb(blk)
        ]
        return struct.pack(f"<{len(values)}H", *values)

    @staticmethod
    def _to_rgb24(blk) -> bytes:
        out = bytearray()
        for r, g, b in _macroblock_rgb(blk):
            out += bytes((_clamp8(r), _clamp8(g), _clamp8(b)))
        return bytes(out)