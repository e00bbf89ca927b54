"""Room (RDT) files: cameras, masks, collisions, floors and script scanning."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from pathlib import Path

from .bitmap import TIM_MAGIC, Bitmap, Tim

HEADER_SIZE = 0x94
CAMERA_END = 0xFFFF

_U32 = struct.Struct("<I")
_HEAD = struct.Struct("<5Bb3H")
_LIGHT = struct.Struct("<3i4B2H")
_PTRS = struct.Struct("<19I")
_CUT = struct.Struct("<2I3i3i2II")
_VCUT = struct.Struct("<10H")
_SCA_HEAD = struct.Struct("<2H5I")
_SCA = struct.Struct("<6H")
_FLOOR = struct.Struct("<5H")
_PSP_HEAD = struct.Struct("<2H")
_PSP_GROUP = struct.Struct("<2H2h")
_PSP_SPRT = struct.Struct("<4B2H")
_PSP_VAR = struct.Struct("<4B4H")
_DOOR = struct.Struct("<BB4H5sBHhHHBB")
_OBA = struct.Struct("<4BHhHh5H3H")

_LIGHTS_POS = _HEAD.size
_PTRS_POS = 0x48


def _unpack(fmt: struct.Struct, data, pos: int) -> tuple:
    if pos < 0 or pos + fmt.size > len(data):
        raise ValueError(f"truncated room data at offset {pos:#x}")
    return fmt.unpack_from(data, pos)


@dataclass
class LightData:
    x: int
    y: int
    z: int
    color: tuple[int, int, int]
    mode: int
    luminosity: int

    @classmethod
    def _read(cls, data, pos):
        x, y, z, r, g, b, _, mode, lum = _unpack(_LIGHT, data, pos)
        return cls(x, y, z, (r, g, b), mode, lum)


@dataclass
class CameraCut:
    p_sp: int
    p_tim: int
    view_p: tuple[int, int, int]
    view_r: tuple[int, int, int]
    projection: int

    @classmethod
    def _read(cls, data, pos):
        v = _unpack(_CUT, data, pos)
        return cls(v[0], v[1], tuple(v[2:5]), tuple(v[5:8]), v[10])


@dataclass
class CameraSwitch:
    """A zone that switches from camera ``from_cut`` to ``to_cut``."""

    to_cut: int
    from_cut: int
    points: tuple[tuple[int, int], ...]

    @classmethod
    def _read(cls, data, pos):
        v = _unpack(_VCUT, data, pos)
        points = tuple((v[i], v[i + 1]) for i in range(2, 10, 2))
        return cls(v[0], v[1], points)


@dataclass
class Collision:
    x0: int
    z0: int
    x1: int
    z1: int
    id: int
    type: int


@dataclass
class Floor:
    x0: int
    z0: int
    x1: int
    z1: int
    id: int


@dataclass
class SpriteVar:
    u: int
    v: int
    x: int
    y: int
    otz: int
    tpage: int
    w: int
    h: int


@dataclass
class Mask:
    count: int
    clut: int
    x: int
    y: int
    sprites: list[SpriteVar] = field(default_factory=list)


@dataclass
class ScdDoor:
    opcode: int
    id: int
    x0: int
    z0: int
    x1: int
    z1: int
    unk: bytes
    next_room: int
    next_stage: int
    next_x: int
    next_y: int
    next_z: int
    next_dir: int
    key: int
    type: int

    @classmethod
    def _read(cls, data, pos):
        v = _unpack(_DOOR, data, pos)
        room_stage = v[7]
        return cls(
            v[0], v[1], v[2], v[3], v[4], v[5], v[6],
            room_stage & 0x1F, room_stage >> 5,
            v[8], v[9], v[10], v[11], v[12], v[13],
        )


@dataclass
class ScdOba:
    opcode: int
    id: int
    id_unk: int
    ex: int
    be_flg: int
    flag: int
    x: int
    y: int
    z: int
    cdir_y: int
    unk: tuple[int, ...]
    h: int
    w: int
    d: int

    @classmethod
    def _read(cls, data, pos):
        v = _unpack(_OBA, data, pos)
        bits = v[1]
        return cls(
            v[0], bits & 0x3F, (bits >> 6) & 1, bits >> 7,
            v[2], v[3], v[4], v[5], v[6], v[7],
            tuple(v[8:13]), v[13], v[14], v[15],
        )


@dataclass
class RdtHeader:
    n_sprite: int
    n_cut: int
    n_item: int
    n_omodel: int
    n_door: int
    n_room_at: int
    ambient: tuple[int, int, int]
    lights: list[LightData]
    p_vcut: int
    p_sca: int
    p_obj: tuple[int, int]
    p_blk: int
    p_flr: int
    p_scrl: int
    p_scdx: int
    p_scd: int
    p_emr: int
    p_edd: int
    p_message: int
    p_raw: int
    p_esp: int
    p_eff: int
    p_tim: int
    p_edt: int
    p_vh: int
    p_vb: int
    cuts: list[CameraCut]

    @classmethod
    def parse(cls, data):
        """Read the fixed header and its camera table."""
        head = _unpack(_HEAD, data, 0)
        lights = [LightData._read(data, _LIGHTS_POS + i * _LIGHT.size) for i in range(3)]
        p = _unpack(_PTRS, data, _PTRS_POS)
        cuts = [CameraCut._read(data, HEADER_SIZE + i * _CUT.size) for i in range(head[1])]
        return cls(
            *head[:6], tuple(head[6:9]), lights,
            p[0], p[1], (p[2], p[3]), *p[4:], cuts,
        )


@dataclass
class Camera:
    cut: CameraCut
    pic: Tim | None = None
    masks: list[Mask] = field(default_factory=list)
    switches: list[CameraSwitch] = field(default_factory=list)
    has_mask: bool = False

    def open_mask(self, data, offset=0):
        """Read the mask sprite groups stored at ``offset``."""
        marker = _unpack(_U32, data, offset)[0]
        if marker in (0, 0xFFFFFFFF):
            return
        group_cnt, _ = _unpack(_PSP_HEAD, data, offset)
        group_pos = offset + _PSP_HEAD.size
        pos = group_pos + group_cnt * _PSP_GROUP.size
        for g in range(group_cnt):
            count, clut, x, y = _unpack(_PSP_GROUP, data, group_pos + g * _PSP_GROUP.size)
            mask = Mask(count, clut, x, y)
            for _ in range(count):
                u, v, sx, sy, otz, packed = _unpack(_PSP_SPRT, data, pos)
                size = packed >> 12
                if size == 0:
                    mask.sprites.append(SpriteVar(*_unpack(_PSP_VAR, data, pos)))
                    pos += _PSP_VAR.size
                else:
                    side = size * 8
                    mask.sprites.append(SpriteVar(u, v, sx, sy, otz, packed & 0xFFF, side, side))
                    pos += _PSP_SPRT.size
            self.masks.append(mask)

    def mask_count(self):
        """Total number of mask sprites over all groups."""
        return sum(len(m.sprites) for m in self.masks)


_SCD_SIZES = (
    2, 2, 2, 2, 4, 4, 4, 6, 4, 2, 2, 4, 0x1A, 0x12, 2, 8,
    2, 2, 0xA, 4, 4, 2, 2, 0xA, 0x1A, 4, 2, 0x16, 6, 2, 4, 0x1C,
    0xE, 0xE, 4, 2, 4, 4, 2, 2, 0, 2, 0xC, 4, 2, 4, 0, 4,
    0xC, 4, 4, 4, 8, 4, 4, 4, 4, 2, 4, 6, 6, 0xC, 2, 6,
    0x10, 4, 4, 4, 2, 2, 2 + 12 * 3 + 2 * 3, 0xE, 2, 2, 2, 2, 4, 2, 4, 2,
    2,
)
_CODE28_LEN = (6, 8, 6, 6, 0, 6, 4, 0, 6, 6)
_OP_DOOR = 0x0C
_OP_OBA = 0x1F
_OP_28 = 0x28


def scan_scd(data, offset=0, size=0):
    """Scan an initialisation script for doors and objects.

    Returns the doors in order and the objects keyed by their id; a later
    object with the same id replaces an earlier one.
    """
    doors: list[ScdDoor] = []
    obas: dict[int, ScdOba] = {}
    end = offset + size
    pos = offset
    while True:
        if pos >= len(data):
            raise ValueError("script runs past the end of the data")
        op = data[pos]
        if op >= len(_SCD_SIZES):
            raise ValueError(f"unknown script opcode {op:#x} at {pos:#x}")
        step = _SCD_SIZES[op]
        if op == _OP_DOOR:
            doors.append(ScdDoor._read(data, pos))
        elif op == _OP_OBA:
            oba = ScdOba._read(data, pos)
            obas[oba.id] = oba
        elif op == _OP_28:
            if pos + 2 >= len(data) or data[pos + 2] >= len(_CODE28_LEN):
                raise ValueError(f"bad operand for opcode 0x28 at {pos:#x}")
            step += _CODE28_LEN[data[pos + 2]]
        if step == 0:
            raise ValueError(f"opcode {op:#x} at {pos:#x} has no length")
        pos += step
        if pos >= end:
            return doors, obas


@dataclass
class Room:
    ambient: tuple[int, int, int] = (0, 0, 0)
    lights: list[LightData] = field(default_factory=list)
    cameras: list[Camera] = field(default_factory=list)
    cx: int = 0
    cz: int = 0
    walkmesh: list[list[Collision]] = field(default_factory=lambda: [[], [], [], []])
    floors: list[Floor] = field(default_factory=list)
    doors: list[ScdDoor] = field(default_factory=list)
    scd_oba: dict[int, ScdOba] = field(default_factory=dict)

    @classmethod
    def parse(cls, data):
        """Read cameras, masks, camera switches, collisions and floors."""
        header = RdtHeader.parse(data)
        room = cls(ambient=header.ambient, lights=header.lights)

        for cut in header.cuts:
            camera = Camera(cut)
            if cut.p_sp:
                camera.open_mask(data, cut.p_sp)
            if cut.p_tim:
                camera.has_mask = True
                if _unpack(_U32, data, cut.p_tim)[0] == TIM_MAGIC:
                    camera.pic = Tim.parse(data, cut.p_tim)
            room.cameras.append(camera)

        pos = header.p_vcut
        while True:
            switch = CameraSwitch._read(data, pos)
            pos += _VCUT.size
            if switch.from_cut == CAMERA_END and switch.to_cut == CAMERA_END:
                break
            if switch.from_cut < len(room.cameras):
                room.cameras[switch.from_cut].switches.append(switch)

        head = _unpack(_SCA_HEAD, data, header.p_sca)
        room.cx, room.cz = head[0], head[1]
        pos = header.p_sca + _SCA_HEAD.size
        for mesh, count in zip(room.walkmesh, head[2:6]):
            for _ in range(count):
                mesh.append(Collision(*_unpack(_SCA, data, pos)))
                pos += _SCA.size

        count = _unpack(struct.Struct("<H"), data, header.p_flr)[0]
        pos = header.p_flr + 2
        for _ in range(count):
            room.floors.append(Floor(*_unpack(_FLOOR, data, pos)))
            pos += _FLOOR.size
        return room

    @classmethod
    def open(cls, path):
        """Read a room file from disk."""
        data = Path(path).read_bytes()
        if len(data) <= 4:
            raise ValueError(f"{path}: room file is empty")
        return cls.parse(data)

    def dump_mask_bitmaps(self, prefix, mode=None):
        """Save each camera's mask texture as ``<prefix>_NN_mask.png``."""
        written = []
        for i, camera in enumerate(self.cameras):
            if not camera.has_mask or camera.pic is None:
                continue
            path = f"{prefix}_{i:02d}_mask.png"
            Bitmap.from_tim(camera.pic, 0, mode).save_png(path)
            written.append(path)
        return written