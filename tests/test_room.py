import struct

import pytest
from PIL import Image

from re1unpack.bitmap import ColorMode
from re1unpack.room import (
    Camera,
    CameraCut,
    Collision,
    Floor,
    RdtHeader,
    Room,
    scan_scd,
)


def _tim16(width, height, color):
    count = width * height
    chunk = struct.pack("<IHHHH", 12 + count * 2, 0, 0, width, height)
    return struct.pack("<II", 0x10, 2) + chunk + struct.pack(f"<{count}H", *([color] * count))


def _mask_block():
    head = struct.pack("<HH", 1, 2)
    group = struct.pack("<HHhh", 2, 0, -5, 7)
    packed = struct.pack("<4BHH", 1, 2, 3, 4, 9, (2 << 12) | 0x123)
    var = struct.pack("<4B4H", 5, 6, 7, 8, 10, 0x045, 24, 40)
    return head + group + packed + var


def _build_rdt(with_tim=True):
    body = bytearray()
    base = 0x94 + 44

    def place(blob):
        off = base + len(body)
        body.extend(blob)
        return off

    vcut = place(
        struct.pack("<10H", 0, 0, *range(1, 9))
        + struct.pack("<10H", 1, 5, *([0] * 8))
        + struct.pack("<10H", 0xFFFF, 0xFFFF, *([0] * 8))
    )
    sca = place(
        struct.pack("<2H5I", 10, 20, 1, 2, 0, 0, 0)
        + struct.pack("<6H", 1, 2, 3, 4, 5, 6)
        + struct.pack("<6H", 7, 8, 9, 10, 11, 12)
        + struct.pack("<6H", 13, 14, 15, 16, 17, 18)
    )
    flr = place(struct.pack("<H", 1) + struct.pack("<5H", 100, 200, 300, 400, 3))
    psp = place(_mask_block())
    tim = place(_tim16(2, 1, 0x7FFF)) if with_tim else 0

    header = struct.pack("<5Bb3H", 0, 1, 0, 0, 0, 0, 11, 22, 33)
    lights = struct.pack("<3i4B2H", -1, 2, 3, 4, 5, 6, 0, 7, 8)
    lights += 2 * struct.pack("<3i4B2H", *([0] * 9))
    ptrs = [0] * 19
    ptrs[0], ptrs[1], ptrs[5], ptrs[11] = vcut, sca, flr, 0x1234
    cut = struct.pack("<2I3i3i2II", psp, tim, 1, 2, 3, 4, 5, 6, 0, 0, 512)
    return header + lights + struct.pack("<19I", *ptrs) + cut + bytes(body)


def test_header_fields():
    header = RdtHeader.parse(_build_rdt())
    assert header.n_cut == 1
    assert header.ambient == (11, 22, 33)
    assert header.p_message == 0x1234
    assert header.lights[0].x == -1
    assert header.lights[0].color == (4, 5, 6)
    assert header.cuts[0].view_p == (1, 2, 3)
    assert header.cuts[0].projection == 512


def test_camera_switches_skip_unknown_cameras():
    room = Room.parse(_build_rdt())
    assert len(room.cameras) == 1
    switches = room.cameras[0].switches
    assert len(switches) == 1
    assert switches[0].points == ((1, 2), (3, 4), (5, 6), (7, 8))


def test_walkmesh_and_floor():
    room = Room.parse(_build_rdt())
    assert (room.cx, room.cz) == (10, 20)
    assert [len(m) for m in room.walkmesh] == [1, 2, 0, 0]
    assert room.walkmesh[0][0] == Collision(1, 2, 3, 4, 5, 6)
    assert room.walkmesh[1][1] == Collision(13, 14, 15, 16, 17, 18)
    assert room.floors == [Floor(100, 200, 300, 400, 3)]


def test_masks():
    camera = Room.parse(_build_rdt()).cameras[0]
    assert camera.mask_count() == 2
    mask = camera.masks[0]
    assert (mask.x, mask.y) == (-5, 7)
    packed, var = mask.sprites
    assert (packed.w, packed.h, packed.tpage) == (16, 16, 0x123)
    assert (var.u, var.otz, var.tpage, var.w, var.h) == (5, 10, 0x045, 24, 40)


def test_mask_texture_is_loaded():
    camera = Room.parse(_build_rdt()).cameras[0]
    assert camera.has_mask
    assert camera.pic.bpp == 16
    assert (camera.pic.pix_w, camera.pic.pix_h) == (2, 1)


def test_empty_mask_marker():
    camera = Camera(CameraCut(0, 0, (0, 0, 0), (0, 0, 0), 0))
    camera.open_mask(b"\xff" * 4, 0)
    camera.open_mask(b"\x00" * 4, 0)
    assert camera.masks == []
    assert camera.mask_count() == 0


def test_dump_mask_bitmaps(tmp_path):
    room = Room.parse(_build_rdt())
    written = room.dump_mask_bitmaps(str(tmp_path / "room"), ColorMode.FULL)
    assert written == [str(tmp_path / "room_00_mask.png")]
    with Image.open(written[0]) as img:
        assert img.size == (2, 1)
        assert img.convert("RGBA").getpixel((0, 0)) == (255, 255, 255, 255)


def test_dump_without_texture(tmp_path):
    room = Room.parse(_build_rdt(with_tim=False))
    assert not room.cameras[0].has_mask
    assert room.dump_mask_bitmaps(str(tmp_path / "room")) == []


def test_open_matches_parse(tmp_path):
    data = _build_rdt()
    path = tmp_path / "ROOM1000.RDT"
    path.write_bytes(data)
    assert Room.open(path) == Room.parse(data)


def test_open_rejects_tiny_file(tmp_path):
    path = tmp_path / "empty.rdt"
    path.write_bytes(b"\0\0\0\0")
    with pytest.raises(ValueError):
        Room.open(path)


def test_truncated_header():
    with pytest.raises(ValueError):
        Room.parse(b"\0" * 10)


_DOOR = struct.pack(
    "<BB4H5sBHhHHBB", 0x0C, 3, 10, 20, 30, 40, b"\1\2\3\4\5", (2 << 5) | 17,
    1000, -200, 3000, 1024, 7, 1,
)
_OBA = struct.pack("<4BHhHh5H3H", 0x1F, 0x80 | 5, 9, 1, 100, -50, 300, 12, 1, 2, 3, 4, 5, 60, 70, 80)


def test_scan_finds_doors_and_objects():
    blob = _DOOR + _OBA + b"\0\0"
    doors, obas = scan_scd(blob, 0, len(blob))
    assert len(doors) == 1
    door = doors[0]
    assert (door.next_room, door.next_stage) == (17, 2)
    assert (door.next_x, door.next_y, door.key) == (1000, -200, 7)
    assert door.unk == b"\1\2\3\4\5"
    assert list(obas) == [5]
    oba = obas[5]
    assert (oba.ex, oba.id_unk, oba.y) == (1, 0, -50)
    assert (oba.h, oba.w, oba.d) == (60, 70, 80)


def test_scan_with_offset_matches_plain_scan():
    blob = _DOOR + _OBA
    assert scan_scd(b"\xff\xff" + blob, 2, len(blob)) == scan_scd(blob, 0, len(blob))


def test_scan_opcode_28_skips_its_operands():
    blob = bytes([0x28, 0, 0, 9, 9, 9]) + _DOOR
    doors, _ = scan_scd(blob, 0, len(blob))
    assert [d.id for d in doors] == [3]


def test_scan_unknown_opcode():
    with pytest.raises(ValueError):
        scan_scd(bytes([0x60, 0]), 0, 2)


def test_scan_zero_length_opcode():
    with pytest.raises(ValueError):
        scan_scd(bytes([0x2E, 0, 0, 0]), 0, 4)