"""Item, damage, ESP and sound tables read from the game executable."""

from __future__ import annotations

import struct
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path

from .text import decode_string

EXE_BASE = 0x401000
EXE_BASE_J = 0x402600

ITEM_TABLE = 0x4CCCBC
MIX_TABLE = 0x4CCC08
MIX_TABLE_COUNT = 35
ESP_TABLE = 0x4C7CD0
SOUND_TABLE = 0xC1D28
PLAYER_TABLE = 0xC2650
CORE_TABLE = 0xC23D8
DOOR_TABLE = 0xC2490
BGM_TABLE = 0xC2A00
BGM_LOOP_TABLE = 0xC2BC8
BGM_ROOM_TABLE = 0xC2E78

ITEM_COUNT = 77 + 1
FILE_START = 94 + 1
FILE_END = 110 + 1
ALT_START = 112 + 1

_U32 = struct.Struct("<I")
_ITEM = struct.Struct("<4B")
_MIX = struct.Struct("<4B")
_WEAPON = struct.Struct("<3hH3Bx")
_WEAPONS_PER_ENEMY = 10
_ENEMIES = 20

ITEM_NAMES = (
    "-Nothing-", "Combat Knife", "Beretta", "Shotgun",
    "Colt Python", "Colt Python", "Flamethrower", "Grenade Gun",
    "Grenade Gun", "Grenade Gun", "Rocket Launcher", "Hand Gun Bullets",
    "Shotgun Shells", "DumDum Bullets", "Magnum Bullets", "Fuel",
    "Grenade Rounds", "Acid Rounds", "Flame Rounds", "Empty Bottle",
    "Water", "UMB No.2", "UMB No.4", "UMB No.7",
    "UMB No.13", "Yellow-6", "NP-003", "V-Jolt",
    "Broken Shotgun", "Square Crank", "Hexagonal Crank", "Emblem",
    "Gold Emblem", "Blue Jewel", "Red Jewel", "Music Score",
    "Wolf Medal", "Eagle Medal", "Herbicide", "Battery",
    "MO-Disk", "Wind Crest", "Flare", "Slides",
    "Moon Crest", "Star Crest", "Sun Crest", "Ink Ribbon",
    "Lighter", "Lockpick", "", "Sword Key",
    "Armor Key", "Shield Key", "Helmet Key", "Master Key",
    "Closet Key", "Key for Room 002", "Key for Room 003", "Control Room Key",
    "Power Room Key", "Desk Key", "Blank Book", "Doom Book 2",
    "Doom Book 1", "First Aid Spray", "Serum", "Red Herb",
    "Green Herb", "Blue Herb", "Mixed Herbs", "Mixed Herbs",
    "Mixed Herbs", "Mixed Herbs", "Mixed Herbs", "Mixed Herbs",
    "", "Comm. Radio", "", "",
    "", "", "", "", "", "", "", "",
    "", "", "", "", "", "", "",
    "Researcher's Will", "Researcher's Will", "Keeper's Diary", "Orders",
    "Pass Number", "Plant-42 Report", "Fax", "Scrapbook",
    "Security System", "Researcher's Letter", "V-Jolt Report", "Barry's Picture",
    "Pass Code 01", "Pass Code 02", "Pass Code 03", "Botany Book",
    "Ingram", "Minimi", "Crank", "Crank",
    "Chemical", "Mansion Key", "Mansion Key", "Mansion Key",
    "Mansion Key", "Laboratory Key", "Special Key", "Guardhouse Key",
    "Guardhouse Key", "Laboratory Key", "Small Key", "Red Book",
    "Doom Book 2", "Doom Book 1",
)

MIX_TYPE_NAMES = (
    "IM_COMMON",
    "IM_RELOAD_0",
    "IM_RELOAD_1",
    "IM_AMMO",
    "IM_VJOLT_0",
    "IM_VJOLT_1",
    "IM_GRENADE_0",
    "IM_GRENADE_1",
)

WEAPON_NAMES = (
    "Knife", "Handgun", "Shotgun", "Dumdum",
    "Magnum", "Fuel", "Explosive", "Acid",
    "Flame", "Rocket",
)

ENEMY_NAMES = (
    "Zombie", "Desnudo", "Cerberus", "Spinner",
    "Tiger", "Crow", "Hunter", "Bee",
    "Plant42", "Chimera", "Snake", "Neptune",
    "Tyrant", "Yawn 1", "Root", "Tentacle",
    "S-Tyrant", "Zombie", "Yawn 2", "Web",
)


class MixType(IntEnum):
    """How two items combine."""

    COMMON = 0
    RELOAD0 = 1
    RELOAD1 = 2
    AMMO = 3
    VJOLT0 = 4
    VJOLT1 = 5
    GRENADE0 = 6
    GRENADE1 = 7


@dataclass
class ItemData:
    """Per-item inventory data; values with bit 7 set mean "none"."""

    max: int
    icon: int
    mix_num: int
    alt_name: int

    @property
    def has_mix(self) -> bool:
        return not self.mix_num & 0x80

    @property
    def has_alt_name(self) -> bool:
        return not self.alt_name & 0x80


@dataclass
class MixEntry:
    """One combination: with ``with_item`` gives ``result``, leaving ``remain``."""

    with_item: int
    result: int
    remain: int
    type: int


def _unpack(fmt: struct.Struct, exe, pos: int) -> tuple:
    if pos < 0 or pos + fmt.size > len(exe):
        raise ValueError(f"offset {pos:#x} is outside the executable")
    return fmt.unpack_from(exe, pos)


def _u32(exe, pos: int) -> int:
    return _unpack(_U32, exe, pos)[0]


def _offset(address: int, base: int) -> int:
    pos = address - base
    if pos < 0:
        raise ValueError(f"address {address:#x} lies below the image base")
    return pos


def _cstring(exe, pos: int) -> str:
    if not 0 <= pos < len(exe):
        raise ValueError(f"string offset {pos:#x} is outside the executable")
    end = bytes(exe).find(b"\0", pos)
    if end < 0:
        raise ValueError(f"unterminated string at {pos:#x}")
    return bytes(exe[pos:end]).decode("latin-1")


def _save(root: ET.Element, path) -> None:
    ET.indent(root, space="    ")
    text = ET.tostring(root, encoding="unicode") + "\n"
    Path(path).write_text(text, encoding="utf-8-sig")


def name_to_id(name):
    """Turn an item name into an identifier such as ``ID_SHOTGUN``."""
    if not name:
        return "NOTHING"
    out = ["ID_"]
    for c in name:
        if c == " ":
            out.append("_")
        elif c in ".-":
            continue
        elif c == "&":
            out.append("*")
        else:
            out.append(c.upper())
    return "".join(out)


def fix_duplicates(names):
    """Return ``names`` with repeated entries made unique by numeric suffixes."""
    out = list(names)
    for i, s in enumerate(out):
        dup = 1
        for j in range(i + 1, len(out)):
            if out[j] == s:
                out[j] += "_" + chr((ord("0") + dup) & 0xFF)
                dup += 1
        if dup != 1:
            out[i] = s + "_0"
    return out


def strings_to_xml(strings, path):
    """Write strings as ``<Text>`` elements; nothing is written for none."""
    strings = list(strings)
    if not strings:
        return False
    root = ET.Element("Strings")
    for s in strings:
        ET.SubElement(root, "Text").text = s
    _save(root, path)
    return True


def extract_strings(exe, ptr_pos, count, path):
    """Decode ``count`` messages through a pointer table and save them."""
    table = _offset(ptr_pos, EXE_BASE)
    strings = [
        decode_string(exe, _offset(_u32(exe, table + i * 4), EXE_BASE))
        for i in range(count)
    ]
    strings_to_xml(strings, path)
    return strings


def _read_item(exe, index: int) -> ItemData:
    pos = _offset(ITEM_TABLE, EXE_BASE_J) + index * _ITEM.size
    return ItemData(*_unpack(_ITEM, exe, pos))


def _read_mix(exe, mix_num: int) -> list[MixEntry]:
    if mix_num >= MIX_TABLE_COUNT:
        raise ValueError(f"mix table {mix_num} does not exist")
    pointer = _u32(exe, _offset(MIX_TABLE, EXE_BASE_J) + mix_num * 4)
    pos = _offset(pointer, EXE_BASE_J)
    if pos >= len(exe):
        raise ValueError(f"mix table {mix_num} is outside the executable")
    count = exe[pos]
    return [
        MixEntry(*_unpack(_MIX, exe, pos + 1 + k * _MIX.size)) for k in range(count)
    ]


def _pick(seq, index: int, what: str):
    if not 0 <= index < len(seq):
        raise ValueError(f"{what} {index} is out of range")
    return seq[index]


def extract_items(exe, path):
    """Write the item list with inventory data, mixes and alternate names."""
    ids = fix_duplicates([name_to_id(n) for n in ITEM_NAMES])
    root = ET.Element("Items")
    for i, name in enumerate(ITEM_NAMES):
        el = ET.SubElement(root, "Item", name=name)
        if i < ITEM_COUNT:
            item = _read_item(exe, i)
            el.set("id", ids[i])
            sub = ET.Element("Data", {"max": str(item.max), "icon": str(item.icon)})
            if item.has_alt_name and i != 0:
                el.set("alt_name", _pick(ids, item.alt_name + ALT_START, "item"))
            if item.has_mix and i != 0:
                for mix in _read_mix(exe, item.mix_num):
                    ET.SubElement(sub, "Mix", {
                        "with": _pick(ids, mix.with_item, "item"),
                        "result": _pick(ids, mix.result, "item"),
                        "reminder": _pick(ids, mix.remain, "item"),
                        "type": _pick(MIX_TYPE_NAMES, mix.type, "mix type"),
                    })
            el.append(sub)
        elif FILE_START <= i < FILE_END:
            continue
        elif i >= ALT_START:
            el.set("id", ids[i])
    _save(root, path)


def extract_weapon_table(exe, ptr, path):
    """Write the per-enemy weapon damage table stored at file offset ``ptr``."""
    second = _ENEMIES * _WEAPONS_PER_ENEMY * _WEAPON.size
    root = ET.Element("Damage")
    for i, enemy in enumerate(ENEMY_NAMES):
        em = ET.Element("Enemy")
        for j, weapon in enumerate(WEAPON_NAMES):
            pos = ptr + (i * _WEAPONS_PER_ENEMY + j) * _WEAPON.size
            r, h, _, dmg0, t0, t1, t2a = _unpack(_WEAPON, exe, pos)
            *_, dmg1, _, _, t2b = _unpack(_WEAPON, exe, pos + second)
            em.append(ET.Comment(weapon))
            ET.SubElement(em, "Weapon", {
                "r": str(r),
                "h": str(h),
                "dmg_0": str(dmg0),
                "dmg_1": str(dmg1),
                "timer_0": str(t0),
                "timer_1": str(t1),
                "timer_2a": str(t2a),
                "timer_2b": str(t2b),
            })
        root.append(ET.Comment(enemy))
        root.append(em)
    _save(root, path)


def extract_esp_table(exe, path):
    """Write the per-room effect sprite table."""
    base = _offset(ESP_TABLE, EXE_BASE_J)
    root = ET.Element("Esp")
    for stage in range(7):
        st = ET.SubElement(root, "Stage")
        for room in range(32):
            pos = base + (stage * 32 + room) * 4
            values = _unpack(_ITEM, exe, pos)
            st.append(ET.Comment(f"{stage + 1:X}{room:02X}"))
            rm = ET.SubElement(st, "Room")
            for k, v in enumerate(values):
                if v != 0xFF:
                    rm.set(str(k), str(v))
    _save(root, path)


def _sound_root(exe, table_pos: int, entries: int, comments=None, loops_pos=None):
    names = _offset(_u32(exe, table_pos), EXE_BASE_J)
    loops = None
    if loops_pos is not None:
        loops = _offset(_u32(exe, loops_pos), EXE_BASE_J)
    root = ET.Element("Sound")
    for k in range(entries):
        pointer = _u32(exe, names + k * 4)
        if comments and k in comments:
            root.append(ET.Comment(comments[k]))
        entry = ET.SubElement(root, "Entry")
        entry.text = _cstring(exe, _offset(pointer, EXE_BASE_J)) if pointer else ""
        if loops is not None:
            if loops + k >= len(exe):
                raise ValueError("loop table is outside the executable")
            entry.set("loop", str(exe[loops + k]))
    return root


def _dump_series(exe, folder, table, count, entries, name_format):
    folder = Path(folder)
    folder.mkdir(parents=True, exist_ok=True)
    written = []
    for i in range(count):
        path = folder / name_format.format(i)
        _save(_sound_root(exe, table + i * 4, entries), path)
        written.append(path)
    return written


def dump_sound_tables(exe, folder):
    """Write the 48-entry sound table of every room."""
    folder = Path(folder)
    folder.mkdir(parents=True, exist_ok=True)
    comments = {0: " enemy ", 16: " block 1 ", 32: " block 2 "}
    written = []
    table = SOUND_TABLE
    for stage in range(7):
        for room in range(29):
            path = folder / f"room_{stage + 1:X}{room:02X}.xml"
            _save(_sound_root(exe, table, 48, comments), path)
            written.append(path)
            table += 4
    return written


def dump_player_tables(exe, folder):
    """Write the sound tables of the player characters."""
    return _dump_series(exe, folder, PLAYER_TABLE, 8, 16, "player_{:02d}.xml")


def dump_core_tables(exe, folder):
    """Write the core (weapon) sound tables."""
    return _dump_series(exe, folder, CORE_TABLE, 16, 16, "core_{:02d}.xml")


def dump_door_tables(exe, folder):
    """Write the door sound tables."""
    return _dump_series(exe, folder, DOOR_TABLE, 15, 2, "door_{:02d}.xml")


def dump_bgm_tables(exe, folder):
    """Write the music tables with loop flags and the per-room music list."""
    folder = Path(folder)
    folder.mkdir(parents=True, exist_ok=True)
    written = []
    for i in range(57):
        path = folder / f"bgm_{i:02d}.xml"
        root = _sound_root(exe, BGM_TABLE + i * 4, 4, loops_pos=BGM_LOOP_TABLE + i * 4)
        _save(root, path)
        written.append(path)

    root = ET.Element("Bgm")
    pos = BGM_ROOM_TABLE
    for stage in range(1, 8):
        for room in range(32):
            values = _unpack(_ITEM, exe, pos)
            root.append(ET.Comment(f"{stage:X}{room:02X}"))
            r = ET.SubElement(root, "Room")
            for k, v in enumerate(values):
                if v != 0xFF:
                    r.set(f"bgm_{k}", str(v))
            pos += 4
    path = folder / "bgm_tbl.xml"
    _save(root, path)
    written.append(path)
    return written