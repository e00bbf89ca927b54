"""Decoding of in-game message strings into readable markup."""

from __future__ import annotations

import logging

_log = logging.getLogger(__name__)

# Character table of the Japanese/US message format, 18 entries per row.
_JP_TABLE = (
    " .@@@()@@\u00ab\u00bb@012345"  # 00
    '6789:@,"!?@ABCDEFG'  # 12
    "HIJKLMNOPQRSTUVWXY"  # 24
    "Z[/]'-\u00b7abcdefghijk"  # 36
    "lmnopqrstuvwxyz@@@"  # 48
    "@@@@@@@@@@@@@@@@@@"  # 5A
    "@@@@@@@@\uff33\uff34\uff21\uff32\u201c.@@@@"  # 6C
    "@@@@@@@@@@@@@@@@@@"  # 7E
    "@@@@@@@@@@@@@@@@@@"  # 90
    "@@@@@@@@@@@@@@@@@@"  # A2
    "@@@@@@@@@@@@@@@@@@"  # B4
    "@@@@@@@@@@@@@@@@@@"  # C6
    "@@@@@@@@@@@@@@@@@@"  # D8
    "@@@@@@@@@@@@@@@@@@"  # EA
    "&@@@"  # FC
    "\0"
)

# Character table of the European message format.
_EU_TABLE = (
    "  @@@@@@@@@@012345"  # 00
    '6789:;,"!?@ABCDEFG'  # 12
    "HIJKLMNOPQRSTUVWXY"  # 24
    "Z(/)'-\u00b7abcdefghijk"  # 36
    "lmnopqrstuvwxyz\u00c4\u00e4\u00d6"  # 48
    "\u00f6\u00dc\u00fc\u00df\u00c0\u00e0\u00c2\u00e2\u00c8\u00e8"
    "\u00c9\u00e9\u00ca\u00ea\u00cf\u00ef\u00ce\u00ee"  # 5A
    "\u00d4\u00f4\u00d9\u00f9\u00db\u00fb\u00c7\u00e7"
    "\uff33\uff34\uff21\uff32\u201c.\u2026\u2012\u2013+"  # 6C
    "=&@@@@\u00d1\u00f1\u00cb\u00eb\u00b0\u00aa\u00c1\u00e1\u00cd\u00ed\u00d3\u00f3"  # 7E
    "\u00da\u00fa\u00bf\u00a1\u00cc\u00ec\u00d2\u00f2$*\u201e\u201f`\u00e6@@@@"  # 90
    "\0"
)

_JP_TAGGED = {0x03: "clear", 0x04: "scroll", 0x05: "color", 0x06: "string", 0x0A: "0a"}
_DS_TAGGED = {3: "scroll", 4: "color", 5: "string"}
_DS_LONG = {0x01: "\uff33", 0x81: "\uff34", 0x83: "\uff21", 0x86: "\uff32"}


class _Reader:
    """Sequential byte reader that refuses to run past the data."""

    def __init__(self, data, offset: int):
        self._data = data
        self.pos = offset

    def peek(self, ahead: int = 0) -> int:
        index = self.pos + ahead
        if not 0 <= index < len(self._data):
            raise ValueError("string runs past the end of the data")
        return self._data[index]

    def byte(self) -> int:
        value = self.peek()
        self.pos += 1
        return value


def _upper_range(index: int) -> str:
    position = index + 0xEA
    if position >= len(_JP_TABLE):
        raise ValueError(f"upper range character {index:#x} outside the table")
    return chr(ord(_JP_TABLE[position]) & 0xFF)


def decode_string(data, offset=0):
    """Decode a Japanese/US message starting at ``offset``."""
    reader = _Reader(data, offset)
    out: list[str] = []
    while True:
        c = reader.byte()
        if c == 0x01:
            arg = reader.peek()
            if arg:
                out.append(f"{{timed {arg}}}")
            return "".join(out)
        if c == 0x02:
            out.append("\\n")
        elif c in _JP_TAGGED:
            out.append(f"{{{_JP_TAGGED[c]} {reader.byte()}}}")
        elif c == 0x07:
            return "".join(out)
        elif c == 0x08:
            a, b, d = reader.byte(), reader.byte(), reader.byte()
            out.append(f"{{branch {a} {b} {d}}}")
        elif c in (0xF8, 0xF9, 0xFA):
            out.append(_upper_range(reader.byte()))
        else:
            ch = _JP_TABLE[c]
            out.append(f"{{0x{c:02X}}}" if ch == "@" else ch)


def decode_string_eu(data, offset=0):
    """Decode a European message starting at ``offset``."""
    reader = _Reader(data, offset)
    out: list[str] = []
    while True:
        c = reader.byte()
        if c == 0xEE:
            out.append(_upper_range(reader.byte()))
        elif 0xEF <= c <= 0xF5:
            out.append("{p}")
        elif c in (0xF6, 0xFF):
            continue
        elif c == 0xF7:
            return "".join(out)
        elif c == 0xF8:
            out.append(f"{{string {reader.byte()}}}")
        elif c == 0xF9:
            out.append("{color " + chr((reader.byte() + ord("0")) & 0xFF) + "}")
        elif c == 0xFA:
            out.append(f"{{scroll {reader.byte()}}}")
        elif c == 0xFB:
            out.append(f"{{branch {reader.byte()}}}")
        elif c == 0xFC:
            out.append("\\n")
        elif c == 0xFD:
            out.append(f"{{clear {reader.byte() * 60 // 50}}}")
        elif c == 0xFE:
            arg = reader.peek()
            if arg:
                out.append(f"{{timed {arg * 60 // 50}}}")
            return "".join(out)
        else:
            if c >= len(_EU_TABLE):
                raise ValueError(f"character {c:#x} outside the European table")
            ch = _EU_TABLE[c]
            if ch != "\0":
                out.append(ch)


def decode_string_ds(data, offset=0):
    """Decode a message of the handheld release starting at ``offset``."""
    reader = _Reader(data, offset)
    out: list[str] = []
    while True:
        ch = reader.byte()
        if ch == 0:
            return "".join(out)
        if ch == 1:
            out.append("\\n")
        elif ch in _DS_TAGGED:
            out.append(f"{{{_DS_TAGGED[ch]} {reader.byte()}}}")
        elif ch == 6:
            if reader.peek(1) == 2:
                out.append(f"{{clear {reader.byte()}}}")
                reader.byte()
            elif reader.peek() != 0:
                out.append(f"{{timed {reader.byte()}}}")
        elif ch == 7:
            a, b, d = reader.byte(), reader.byte(), reader.byte()
            out.append(f"{{branch {a} {b} {d}}}")
        elif ch == 0x11:
            code = reader.byte()
            if code in _DS_LONG:
                out.append(_DS_LONG[code])
            else:
                _log.warning("unknown long character %X", code)
        elif ch == 0x12:
            code = reader.byte()
            if code == 0x36:
                out.append("'")
            else:
                _log.warning("unknown extended character %X", code)
        elif ch == 0x85:
            out.append("...")
        else:
            out.append(chr(ch))