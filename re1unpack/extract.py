"""Batch extraction of backgrounds, pictures, masks, icons and messages."""

from __future__ import annotations

import argparse
import fnmatch
import struct
from pathlib import Path

from .bitmap import Bitmap, ColorMode, Tim, convert_clut
from .pak import pak_depack
from .room import Room
from .tables import EXE_BASE_J, ITEM_TABLE, strings_to_xml
from .text import decode_string, decode_string_ds

BG_MIN_SIZE = 153600
BG_WIDTH = 316
BG_HEIGHT = 236

PIX_PALETTE_BYTES = 64
PIX_SHEET_WIDTH = 512
PIX_SHEET_HEIGHT = 192
PIX_SLICE_WIDTH = 256

ICON_WIDTH = 40
ICON_HEIGHT = 30
ICON_SIZE = ICON_WIDTH * ICON_HEIGHT
ICON_COLUMNS = 6
ICONS_PER_SHEET = 6 * 8
ICON_SHEETS = 2
ICON_CLUT_ROW = 2

MESSAGE_POINTER = 0x74
DS_FIRST_BANK = 231
DS_LAST_BANK_SIZE = 246
DS_BANK_NAMES = ("system", "item_desc", "item_simple", "misc", "files")

_U32 = struct.Struct("<I")

# Message bank of every room, indexed [player][stage][room].
_DS_ROOMS = (
    0, 0, 0, 0, 2, 4, 6, 8, 9, 0xB, 0, 0xD, 0xE, 0x10, 0x12, 0x14, 0, 0x16, 0x17, 0x19, 0x1A, 0x1B, 0x1D, 0x1E, 0x20, 0, 0x21, 0x22, 0x24, 0, 0, 0, 0x26, 0x27, 0, 0x28, 0, 0x2A, 0x2C, 0x2E, 0, 0, 0x30, 0x32, 0, 0x33, 0x35, 0x37, 0x39, 0x3A, 0x3B, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0,
    0x3D, 0x3F, 0x41, 0x42, 0x43, 0x45, 0x47, 0x49, 0x4B, 0x4D, 0x4F, 0x51, 0, 0x52, 0x53, 0x54, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0x56, 0x57, 0x59, 0x5A, 0x5B, 0x5C, 0x5E, 0x60, 0x61, 0x63, 0x65, 0x67, 0x69, 0x6B, 0x6D, 0x6F, 0x71, 0x72, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0,
    0x74, 0x76, 0x78, 0x7A, 0x7C, 0x7E, 0x80, 0x81, 0x83, 0x85, 0x86, 0x88, 0x8A, 0, 0x8C, 0x8D, 0x8F, 0x90, 0x92, 0x94, 0x96, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0x98, 0x9A, 0, 0, 0x9B, 0x9D, 0x9F, 0xA1, 0xA3, 0xA5, 0xA7, 0xA8, 0xAA, 0xAC, 0xAE, 0xB0, 0xB2, 0xB4, 0xB5, 0xB6, 0xB7, 0xB8, 0xBA, 0xBB, 0x20, 0xBE, 0xC0, 0xC2, 0x24, 0, 0, 0,
    0, 0xC6, 0, 0xC8, 0, 0xCA, 0xCC, 0xCE, 0, 0, 0xD0, 0xD2, 0xD3, 0, 0, 0xD5, 0xD7, 0xD8, 0, 0, 0xD9, 0xDB, 0xDD, 0xDF, 0xE1, 0xE2, 0xE4, 0, 0xE5, 0, 0, 0, 1, 0, 0, 0, 3, 5, 7, 8, 0xA, 0xC, 0, 0xD, 0xF, 0x11, 0x13, 0x15, 0, 0x16, 0x18, 0x19, 0x1A, 0x1C, 0x1D, 0x1F, 0x20, 0, 0x21, 0x23, 0x24, 0, 0, 0,
    0x26, 0x27, 0, 0x29, 0, 0x2B, 0x2D, 0x2F, 0, 0, 0x31, 0x32, 0, 0x34, 0x36, 0x38, 0x39, 0x3A, 0x3C, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0x3E, 0x40, 0x41, 0x42, 0x44, 0x46, 0x48, 0x4A, 0x4C, 0x4E, 0x50, 0x51, 0, 0x52, 0x53, 0x55, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0,
    0x56, 0x58, 0x59, 0x5A, 0x5B, 0x5D, 0x5F, 0x60, 0x62, 0x64, 0x66, 0x68, 0x6A, 0x6C, 0x6E, 0x70, 0x71, 0x73, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0x75, 0x77, 0x79, 0x7B, 0x7D, 0x7F, 0x80, 0x82, 0x84, 0x85, 0x87, 0x89, 0x8B, 0, 0x8C, 0x8E, 0x8F, 0x91, 0x93, 0x95, 0x97, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0,
    0x99, 0x9A, 0, 0, 0x9C, 0x9E, 0xA0, 0xA2, 0xA4, 0xA6, 0xA7, 0xA9, 0xAB, 0xAD, 0xAF, 0xB1, 0xB3, 0xB4, 0xB5, 0xB6, 0xB7, 0xB9, 0xBA, 0xBC, 0x20, 0xBF, 0xC1, 0xC3, 0x24, 0, 0, 0, 0, 0xC7, 0, 0xC9, 0, 0xCB, 0xCD, 0xCF, 0, 0, 0xD1, 0xD2, 0xD4, 0, 0, 0xD6, 0xD7, 0xD8, 0, 0, 0xDA, 0xDC, 0xDE, 0xE0, 0xE1, 0xE3, 0xE4, 0, 0xE6, 0, 0, 0,
)
_DS_STAGES = 7
_DS_ROOMS_PER_STAGE = 32


def _u32(data, pos: int) -> int:
    if pos < 0 or pos + 4 > len(data):
        raise ValueError(f"offset {pos:#x} is outside the data")
    return _U32.unpack_from(data, pos)[0]


def list_files(folder, pattern):
    """Return the sorted names of files in ``folder`` matching ``pattern``.

    Matching ignores case; directories are left out.
    """
    folder = Path(folder)
    if not folder.is_dir():
        return []
    pat = pattern.lower()
    return sorted(
        entry.name
        for entry in folder.iterdir()
        if entry.is_file() and fnmatch.fnmatchcase(entry.name.lower(), pat)
    )


def extract_pak(path, out_path, check_bg=False, mode=None):
    """Unpack a PAK holding a TIM and save it as a PNG.

    With ``check_bg`` a background whose pixel chunk is too small for a full
    screen is treated as a 316x236 image.
    """
    dst = bytearray(pak_depack(Path(path).read_bytes()))
    if check_bg:
        if len(dst) < 0x14:
            raise ValueError(f"{path}: unpacked background is too short")
        if _u32(dst, 8) < BG_MIN_SIZE:
            struct.pack_into("<HH", dst, 0x10, BG_WIDTH, BG_HEIGHT)
    bmp, _ = Bitmap.from_tim_bytes(dst, 0, 0, mode)
    out_path = Path(out_path)
    bmp.save_png(out_path)
    return out_path


def extract_bgs(root, out_dir, mode=None):
    """Convert every room background and object mask found under ``root``."""
    root = Path(root)
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for stage in range(5):
        for room in range(49):
            for cut in range(8):
                jobs = (
                    (
                        root / f"STAGE{stage + 1:X}" / f"RC{stage + 1:X}{room:02X}{cut:X}.pak",
                        out_dir / f"ROOM_{stage + 1:X}{room:02X}_{cut:02d}.png",
                        True,
                    ),
                    (
                        root / "objspr" / f"OSP0{stage}{room:02d}{cut}.pak",
                        out_dir / f"ROOM_{stage + 1:X}{room:02X}_{cut:02d}_mask.png",
                        False,
                    ),
                )
                for src, dst, check_bg in jobs:
                    if src.is_file():
                        written.append(extract_pak(src, dst, check_bg, mode))
    return written


def convert_file(in_path, out_prefix, mode=None):
    """Convert a 4-bit picture sheet into two 256x192 PNG halves.

    The halves are written as ``<out_prefix>0.png`` and ``<out_prefix>1.png``.
    """
    data = Path(in_path).read_bytes()
    pixel_bytes = PIX_SHEET_WIDTH * PIX_SHEET_HEIGHT // 2
    end = PIX_PALETTE_BYTES + pixel_bytes
    if len(data) < end:
        raise ValueError(f"{in_path}: picture data is truncated")
    palette = convert_clut(struct.unpack_from("<16H", data, 0), mode)

    sheet = Bitmap(PIX_SHEET_WIDTH, PIX_SHEET_HEIGHT)
    sheet.pixels = [
        palette[nibble]
        for byte in data[PIX_PALETTE_BYTES:end]
        for nibble in (byte & 0xF, byte >> 4)
    ]

    part = Bitmap(PIX_SLICE_WIDTH, PIX_SHEET_HEIGHT)
    written = []
    for i in range(PIX_SHEET_WIDTH // PIX_SLICE_WIDTH):
        part.blit(sheet, i * PIX_SLICE_WIDTH, 0, 0, 0, PIX_SLICE_WIDTH, PIX_SHEET_HEIGHT)
        out = Path(f"{out_prefix}{i}.png")
        part.save_png(out)
        written.append(out)
    return written


def extract_files(folder_in, folder_out, mode=None):
    """Convert every ``FILEM_*.PIX`` sheet in ``folder_in``."""
    folder_in = Path(folder_in)
    folder_out = Path(folder_out)
    folder_out.mkdir(parents=True, exist_ok=True)
    written = []
    for name in list_files(folder_in, "FILEM_*.PIX"):
        prefix = folder_out / name.replace(".PIX", "")
        written.extend(convert_file(folder_in / name, prefix, mode))
    return written


def extract_rdt(in_path, out_prefix, mode=None):
    """Save the camera mask textures of a room file."""
    return Room.open(in_path).dump_mask_bitmaps(out_prefix, mode)


def extract_text(rdt_path, xml_path):
    """Write the messages of a room file; returns how many there are."""
    data = Path(rdt_path).read_bytes()
    if len(data) == 4:
        return 0
    base = _u32(data, MESSAGE_POINTER)
    if base == 0:
        return 0
    if base + 2 > len(data):
        raise ValueError(f"{rdt_path}: message table is outside the file")
    count = struct.unpack_from("<H", data, base)[0] // 2
    if base + count * 2 > len(data):
        raise ValueError(f"{rdt_path}: message table is truncated")
    offsets = struct.unpack_from(f"<{count}H", data, base)
    strings = [decode_string(data, base + off) for off in offsets]
    strings_to_xml(strings, xml_path)
    return count


def extract_messages(in_folder, out_folder, log_path="room.log"):
    """Write the messages of every room; logs the rooms that have any."""
    in_folder = Path(in_folder)
    out_folder = Path(out_folder)
    out_folder.mkdir(parents=True, exist_ok=True)
    found = []
    with open(log_path, "w", encoding="utf-8") as log:
        for stage in range(1, 8):
            for room in range(49):
                for variant in range(2):
                    path = in_folder / f"STAGE{stage}" / f"ROOM{stage:x}{room:02x}{variant}.RDT"
                    if not path.is_file():
                        continue
                    xml = out_folder / f"ROOM_{stage:x}{room:02x}.xml"
                    if extract_text(path, xml):
                        k = len(found)
                        log.write(f"{{{stage}, 0x{room:02X}}}, ")
                        if k > 0 and k % 8 == 7:
                            log.write("\n")
                        found.append((stage, room))
    return found


def extract_icons(folder, out_name, exe, mode=None):
    """Build the two inventory icon sheets as ``<out_name>_N.png``."""
    folder = Path(folder)
    tim = Tim.parse((folder / "STATUS.TIM").read_bytes())
    icons = (folder / "ITEM_ALL.PIX").read_bytes()
    start = 256 * ICON_CLUT_ROW
    if tim.clut is None or len(tim.clut) < start + 256:
        raise ValueError("status image lacks the icon palette")
    rgb = convert_clut(tim.clut[start:start + 256], mode)

    table = ITEM_TABLE - EXE_BASE_J
    written = []
    icon = 0
    for sheet_index in range(ICON_SHEETS):
        bmp = Bitmap(256, 256)
        for j in range(ICONS_PER_SHEET):
            pos = table + icon * 4 + 1
            if pos >= len(exe):
                raise ValueError("item table is outside the executable")
            number = exe[pos]
            if number == 0:
                raise ValueError(f"item {icon} has no icon")
            base = (number - 1) * ICON_SIZE
            if base + ICON_SIZE > len(icons):
                raise ValueError(f"icon {number} is outside the icon file")
            left = (j % ICON_COLUMNS) * ICON_WIDTH
            top = (j // ICON_COLUMNS) * ICON_HEIGHT
            for k, index in enumerate(icons[base:base + ICON_SIZE]):
                bmp.set_pixel(left + k % ICON_WIDTH, top + k // ICON_WIDTH, rgb[index])
            icon += 1
        out = Path(f"{out_name}_{sheet_index}.png")
        bmp.save_png(out)
        written.append(out)
    return written


def dump_ds_messages(path, out_folder):
    """Write the room messages and text banks of a handheld message file."""
    data = Path(path).read_bytes()
    out = Path(out_folder)
    out.mkdir(parents=True, exist_ok=True)

    count = _u32(data, 0) // 4
    table = [_u32(data, i * 4) for i in range(count)]

    def span(index: int) -> int:
        if index + 1 >= count:
            raise ValueError(f"message bank {index} has no end")
        return (table[index + 1] - table[index]) // 4

    def bank(index: int, size: int) -> list[str]:
        start = table[index]
        return [decode_string_ds(data, _u32(data, start + 4 * j)) for j in range(size)]

    written = []
    for stage in range(_DS_STAGES):
        for room in range(_DS_ROOMS_PER_STAGE):
            i = stage * _DS_ROOMS_PER_STAGE + room
            for player in range(2):
                ident = _DS_ROOMS[player * _DS_STAGES * _DS_ROOMS_PER_STAGE + i]
                if ident == 0 and i > 0:
                    continue
                if ident >= count:
                    raise ValueError(f"message bank {ident} does not exist")
                target = out / f"Room_{stage + 1}{room:02X}_{player}.xml"
                if strings_to_xml(bank(ident, span(ident)), target):
                    written.append(target)

    for index in range(DS_FIRST_BANK, count):
        if index - DS_FIRST_BANK >= len(DS_BANK_NAMES):
            raise ValueError(f"unexpected message bank {index}")
        size = DS_LAST_BANK_SIZE if index == count - 1 else span(index)
        target = out / f"{DS_BANK_NAMES[index - DS_FIRST_BANK]}.xml"
        if strings_to_xml(bank(index, size), target):
            written.append(target)
    return written


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="re1unpack", description="Extract images and text from game data."
    )
    parser.add_argument(
        "--color-mode",
        type=int,
        choices=[int(m) for m in ColorMode],
        default=int(ColorMode.FULL),
        help="how 15-bit colours are expanded",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("pak", help="unpack a PAK image to PNG")
    p.add_argument("input")
    p.add_argument("output")
    p.add_argument("--bg", action="store_true", help="apply the background size check")

    p = sub.add_parser("bgs", help="convert all room backgrounds and masks")
    p.add_argument("root")
    p.add_argument("output")

    p = sub.add_parser("files", help="convert FILEM_*.PIX picture sheets")
    p.add_argument("input")
    p.add_argument("output")

    p = sub.add_parser("rdt", help="save the mask textures of a room file")
    p.add_argument("input")
    p.add_argument("prefix")

    p = sub.add_parser("text", help="write the messages of a room file")
    p.add_argument("input")
    p.add_argument("output")

    p = sub.add_parser("messages", help="write the messages of every room")
    p.add_argument("input")
    p.add_argument("output")
    p.add_argument("--log", default="room.log")

    p = sub.add_parser("icons", help="build the inventory icon sheets")
    p.add_argument("folder")
    p.add_argument("output")
    p.add_argument("exe")

    p = sub.add_parser("ds", help="dump a handheld message file")
    p.add_argument("input")
    p.add_argument("output")
    return parser


def main(argv=None):
    args = _build_parser().parse_args(argv)
    mode = ColorMode(args.color_mode)

    if args.command == "pak":
        written = [extract_pak(args.input, args.output, args.bg, mode)]
    elif args.command == "bgs":
        written = extract_bgs(args.input if hasattr(args, "input") else args.root, args.output, mode)
    elif args.command == "files":
        written = extract_files(args.input, args.output, mode)
    elif args.command == "rdt":
        written = extract_rdt(args.input, args.prefix, mode)
    elif args.command == "text":
        count = extract_text(args.input, args.output)
        print(f"{count} messages")
        return 0
    elif args.command == "messages":
        found = extract_messages(args.input, args.output, args.log)
        print(f"{len(found)} rooms with messages")
        return 0
    elif args.command == "icons":
        exe = Path(args.exe).read_bytes()
        written = extract_icons(args.folder, args.output, exe, mode)
    else:
        written = dump_ds_messages(args.input, args.output)

    for path in written:
        print(path)
    return 0