import pytest

from re1unpack.text import decode_string, decode_string_ds, decode_string_eu


def test_plain_letters_and_newline():
    assert decode_string(bytes([0x1D, 0x1E, 0x02, 0x01, 0x00])) == "AB\\n"


def test_timed_end():
    assert decode_string(bytes([0x0C, 0x01, 0x05])) == "0{timed 5}"


def test_short_end_of_string():
    assert decode_string(bytes([0x00, 0x07, 0x1D])) == " "


def test_tagged_controls():
    data = bytes([0x05, 3, 0x03, 9, 0x04, 1, 0x06, 2, 0x0A, 4, 0x07])
    assert decode_string(data) == "{color 3}{clear 9}{scroll 1}{string 2}{0a 4}"


def test_branch():
    assert decode_string(bytes([0x08, 1, 2, 3, 0x07])) == "{branch 1 2 3}"


def test_unknown_character_is_escaped():
    assert decode_string(bytes([0x5A, 0x07])) == "{0x5A}"


def test_upper_range():
    assert decode_string(bytes([0xF8, 0x12, 0x07])) == "&"


def test_upper_range_outside_table():
    with pytest.raises(ValueError):
        decode_string(bytes([0xF8, 0xFF, 0x07]))


def test_full_width_characters():
    assert decode_string(bytes([0x74, 0x75, 0x76, 0x77, 0x07])) == "\uff33\uff34\uff21\uff32"


def test_offset_matches_slice():
    data = bytes([0x1F, 0x07, 0x1D, 0x1E, 0x07])
    assert decode_string(data, 2) == decode_string(data[2:])


def test_unterminated_raises():
    with pytest.raises(ValueError):
        decode_string(bytes([0x1D, 0x1E]))


def test_single_characters_decode_to_one_symbol_or_escape():
    for c in range(0x0B, 0xF8):
        text = decode_string(bytes([c, 0x07]))
        assert len(text) == 1 or text == f"{{0x{c:02X}}}"


def test_eu_letters():
    assert decode_string_eu(bytes([0x1D, 0x57, 0xF7])) == "A\u00c4"


def test_eu_clear_and_timed_scale_to_sixty_hertz():
    assert decode_string_eu(bytes([0xFD, 50, 0xFE, 50])) == "{clear 60}{timed 60}"


def test_eu_timed_zero_ends_silently():
    assert decode_string_eu(bytes([0x1D, 0xFE, 0])) == "A"


def test_eu_controls():
    data = bytes([0xF9, 2, 0xF8, 7, 0xFA, 3, 0xFB, 1, 0xFC, 0xEF, 0xF6, 0xFF, 0xF7])
    assert decode_string_eu(data) == "{color 2}{string 7}{scroll 3}{branch 1}\\n{p}"


def test_eu_character_outside_table():
    with pytest.raises(ValueError):
        decode_string_eu(bytes([0xC0, 0xF7]))


def test_eu_offset_matches_slice():
    data = bytes([0x1D, 0xF7, 0x57, 0xF7])
    assert decode_string_eu(data, 2) == decode_string_eu(data[2:])


def test_ds_ascii_and_newline():
    assert decode_string_ds(b"Hi\x01there\x00") == "Hi\\nthere"


def test_ds_latin_and_ellipsis():
    assert decode_string_ds(bytes([0xE9, 0x85, 0x00])) == "\u00e9..."


def test_ds_high_bytes_map_to_latin1():
    for ch in range(0x80, 0x100):
        if ch == 0x85:
            continue
        assert decode_string_ds(bytes([ch, 0])) == chr(ch)


def test_ds_long_characters():
    data = bytes([0x11, 0x01, 0x11, 0x81, 0x11, 0x83, 0x11, 0x86, 0x12, 0x36, 0])
    assert decode_string_ds(data) == "\uff33\uff34\uff21\uff32'"


def test_ds_unknown_long_character_is_skipped():
    assert decode_string_ds(bytes([0x11, 0x55, ord("a"), 0])) == "a"


def test_ds_clear_and_timed():
    assert decode_string_ds(bytes([6, 4, 2, ord("x"), 6, 3, 0])) == "{clear 4}x{timed 3}"


def test_ds_tags_and_branch():
    data = bytes([3, 1, 4, 2, 5, 3, 7, 1, 0, 1, 0])
    assert decode_string_ds(data) == "{scroll 1}{color 2}{string 3}{branch 1 0 1}"


def test_ds_unterminated_raises():
    with pytest.raises(ValueError):
        decode_string_ds(b"abc")