"""Decompression of LZW-packed PAK files."""

from __future__ import annotations

DECODE_SIZE = 35024

_END = 0x100
_WIDEN = 0x101
_RESET = 0x102
_FIRST_FREE = 0x103
_START_WIDTH = 9


class PakError(ValueError):
    """Raised when a PAK stream is truncated or corrupt."""


class _BitReader:
    """Reads codes most significant bit first."""

    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0
        self._byte = 0
        self._mask = 0x80

    def read(self, width: int) -> int:
        value = 0
        for _ in range(width):
            if self._mask == 0x80:
                if self._pos >= len(self._data):
                    raise PakError("compressed stream ends before its end code")
                self._byte = self._data[self._pos]
                self._pos += 1
            value = (value << 1) | (1 if self._byte & self._mask else 0)
            self._mask >>= 1
            if self._mask == 0:
                self._mask = 0x80
        return value


def _expand(code: int, index: list[int], value: list[int]) -> list[int]:
    """Return the string of ``code`` with its last byte first."""
    out = []
    while code > 255:
        if code >= DECODE_SIZE or len(out) >= DECODE_SIZE:
            raise PakError(f"invalid code {code:#x}")
        out.append(value[code])
        code = index[code]
    out.append(code)
    return out


def pak_depack(data):
    """Decompress a PAK stream and return the unpacked bytes."""
    reader = _BitReader(bytes(data))
    index = [0] * DECODE_SIZE
    value = [0] * DECODE_SIZE
    out = bytearray()

    while True:
        next_code = _FIRST_FREE
        width = _START_WIDTH
        old = reader.read(width)
        if old == _END:
            break
        c = old & 0xFF
        out.append(c)

        while True:
            new = reader.read(width)
            if new == _END:
                return bytes(out)
            if new == _RESET:
                break
            if new == _WIDEN:
                width += 1
                continue

            if new >= next_code:
                seq = [c] + _expand(old, index, value)
            else:
                seq = _expand(new, index, value)
            c = seq[-1]
            out.extend(reversed(seq))

            if next_code >= DECODE_SIZE:
                raise PakError("dictionary overflow")
            index[next_code] = old
            value[next_code] = c
            next_code += 1
            old = new

    return bytes(out)