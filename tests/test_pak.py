import random

import pytest

from re1unpack.pak import PakError, pak_depack

END, WIDEN, RESET, FIRST = 0x100, 0x101, 0x102, 0x103


def pack_codes(codes):
    bits = "".join(format(code, f"0{width}b") for code, width in codes)
    bits += "0" * (-len(bits) % 8)
    return bytes(int(bits[i:i + 8], 2) for i in range(0, len(bits), 8))


def codes9(*codes):
    return pack_codes([(c, 9) for c in codes])


def literal_stream(data, block=200):
    codes = []
    for start in range(0, len(data), block):
        if codes:
            codes.append(RESET)
        codes.extend(data[start:start + block])
    codes.append(END)
    return codes9(*codes)


def test_end_code_only():
    assert pak_depack(codes9(END)) == b""


def test_literals():
    assert pak_depack(codes9(*b"hello", END)) == b"hello"


def test_dictionary_reference():
    assert pak_depack(codes9(ord("a"), ord("b"), FIRST, END)) == b"abab"


def test_code_not_yet_defined():
    assert pak_depack(codes9(ord("a"), FIRST, END)) == b"aaa"


def test_width_increase():
    stream = pack_codes([(ord("x"), 9), (WIDEN, 9), (ord("y"), 10), (END, 10)])
    assert pak_depack(stream) == b"xy"


def test_reset_restarts_dictionary():
    stream = codes9(ord("a"), ord("b"), RESET, ord("c"), ord("d"), FIRST, END)
    assert pak_depack(stream) == b"abcdcd"


def test_truncated_stream_raises():
    with pytest.raises(PakError):
        pak_depack(codes9(ord("a")))


def test_empty_input_raises_value_error():
    with pytest.raises(ValueError):
        pak_depack(b"")


def test_literal_round_trip():
    rng = random.Random(1234)
    data = bytes(rng.randrange(256) for _ in range(1500))
    assert pak_depack(literal_stream(data)) == data


@pytest.mark.parametrize("wrap", [bytes, bytearray, memoryview])
def test_accepts_bytes_like(wrap):
    assert pak_depack(wrap(codes9(*b"ok", END))) == b"ok"