"""PlayStation TIM images, background pages and 32-bit ARGB bitmaps."""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from enum import IntEnum

from PIL import Image

TIM_MAGIC = 0x10
OUT_OF_BOUNDS = 0xFF000000
CANVAS_SIZE = 256

_PNG_MAGIC = b"\x89PNG"
_CHUNK = struct.Struct("<IHHHH")
_BPP_BY_MODE = (4, 8, 16, 24)
_KIND_BY_BPP = {4: 0, 8: 1, 15: 2, 16: 2, 24: 3}


class ColorMode(IntEnum):
    """How 15-bit PlayStation colours are expanded to 8 bits per channel."""

    PSX = 0
    FULL = 1
    DDRAW = 2
    FULL2 = 3


def _pack(r: int, g: int, b: int, color: int) -> int:
    alpha = 0 if color == 0 else 0xFF
    return ((r << 16) | (g << 8) | b | (alpha << 24)) & 0xFFFFFFFF


def _channels(color: int) -> tuple[int, int, int]:
    return color & 0x1F, (color >> 5) & 0x1F, (color >> 10) & 0x1F


def _to_psx(color: int) -> int:
    if color == 0x8000:
        return _pack(1, 0, 0, color)
    r, g, b = _channels(color)
    return _pack(r << 3, g << 3, b << 3, color)


def _to_full(color: int) -> int:
    if color == 0x8000:
        return _pack(1, 0, 0, color)
    r, g, b = (c << 3 | c >> 2 for c in _channels(color))
    return _pack(r, g, b, color)


def _to_full2(color: int) -> int:
    r, g, b = ((c << 8) * 255 // 248 for c in _channels(color))
    return _pack(r, g, b, color)


def _to_ddraw(color: int) -> int:
    if color == 0x8000:
        return _pack(7, 0, 0, color)
    r, g, b = (c * 8 + 7 if c > 0 else 0 for c in _channels(color))
    return _pack(r, g, b, color)


_CONVERTERS = {
    ColorMode.PSX: _to_psx,
    ColorMode.FULL: _to_full,
    ColorMode.DDRAW: _to_ddraw,
    ColorMode.FULL2: _to_full2,
}

_default_mode = ColorMode.FULL


def set_color_mode(mode):
    """Set the colour mode used when no mode is given explicitly."""
    global _default_mode
    _default_mode = ColorMode(mode)


def _converter(mode):
    return _CONVERTERS[_default_mode if mode is None else ColorMode(mode)]


def convert_color(color, mode=None):
    """Convert one 15-bit colour to a 32-bit ARGB value."""
    return _converter(mode)(color & 0xFFFF)


def convert_clut(clut, mode=None):
    """Convert a sequence of 15-bit colours to a list of ARGB values."""
    convert = _converter(mode)
    return [convert(c & 0xFFFF) for c in clut]


@dataclass
class _Layout:
    attr: int
    pal_w: int
    pal_h: int
    clut_pos: int
    pix_w: int
    pix_h: int
    data_pos: int

    @property
    def has_clut(self) -> bool:
        return bool(self.attr & 8)


def _read_chunk(data, pos: int) -> tuple[int, int]:
    if pos + _CHUNK.size > len(data):
        raise ValueError("truncated TIM chunk header")
    _, _, _, w, h = _CHUNK.unpack_from(data, pos)
    return w, h


def _read_u16s(data, pos: int, count: int) -> list[int]:
    if pos + count * 2 > len(data):
        raise ValueError("truncated TIM data")
    return list(struct.unpack_from(f"<{count}H", data, pos))


def _layout(data, offset: int) -> _Layout:
    if offset + 8 > len(data):
        raise ValueError("truncated TIM header")
    attr = data[offset + 4]
    pal_w = pal_h = 0
    clut_pos = 0
    pix_pos = offset + 8
    if attr & 8:
        pal_w, pal_h = _read_chunk(data, offset + 8)
        clut_pos = offset + 8 + _CHUNK.size
        pix_pos = clut_pos + pal_w * pal_h * 2
    pix_w, pix_h = _read_chunk(data, pix_pos)
    return _Layout(attr, pal_w, pal_h, clut_pos, pix_w, pix_h, pix_pos + _CHUNK.size)


def _decode(kind, raw, pix_w, pix_h, colors, transparent_black, convert):
    """Decode raw TIM pixel data; returns (width, height, pixels, bytes used)."""
    if kind in (0, 1) and colors is None:
        raise ValueError("palettized TIM has no CLUT")
    if kind == 0:
        width = pix_w * 4
        used = width * pix_h // 2
    elif kind == 1:
        width = pix_w * 2
        used = width * pix_h
    elif kind == 2:
        width = pix_w
        used = width * pix_h * 2
    elif kind == 3:
        width = pix_w * 2 // 3
        used = width * pix_h * 3
    else:
        raise ValueError(f"unsupported TIM pixel mode {kind}")
    if used > len(raw):
        raise ValueError("truncated TIM pixel data")
    raw = bytes(raw[:used])

    try:
        if kind == 0:
            pixels = []
            for byte in raw:
                pixels.append(colors[byte & 0xF])
                pixels.append(colors[byte >> 4])
        elif kind == 1:
            pixels = [colors[byte] for byte in raw]
        elif kind == 2:
            values = struct.unpack(f"<{width * pix_h}H", raw)
            pixels = [
                convert(0 if transparent_black and v == 0x8000 else v) for v in values
            ]
        else:
            pixels = [
                raw[i + 2] | (raw[i + 1] << 8) | (raw[i] << 16) | 0xFF000000
                for i in range(0, used, 3)
            ]
    except IndexError as exc:
        raise ValueError("pixel index outside of the CLUT") from exc
    return width, pix_h, pixels, used


@dataclass
class Tim:
    """A TIM image held as raw pixel data plus an optional CLUT."""

    bpp: int
    pix_w: int
    pix_h: int
    pixel: bytearray
    clut: list[int] | None = None
    pal_w: int = 0
    pal_h: int = 0
    size: int = 0

    @classmethod
    def parse(cls, data, offset=0):
        """Read a TIM at ``offset``; ``size`` holds the bytes it occupies."""
        if offset + 8 > len(data) or struct.unpack_from("<I", data, offset)[0] != TIM_MAGIC:
            raise ValueError("not a TIM image")
        lay = _layout(data, offset)
        mode = lay.attr & 7
        if mode >= len(_BPP_BY_MODE):
            raise ValueError(f"unsupported TIM pixel mode {mode}")
        clut = None
        if lay.has_clut:
            clut = _read_u16s(data, lay.clut_pos, lay.pal_w * lay.pal_h)
        end = lay.data_pos + lay.pix_w * lay.pix_h * 2
        if end > len(data):
            raise ValueError("truncated TIM pixel data")
        return cls(
            bpp=_BPP_BY_MODE[mode],
            pix_w=lay.pix_w,
            pix_h=lay.pix_h,
            pixel=bytearray(data[lay.data_pos:end]),
            clut=clut,
            pal_w=lay.pal_w if clut is not None else 0,
            pal_h=lay.pal_h if clut is not None else 0,
            size=end - offset,
        )

    @classmethod
    def create(cls, width, height, bpp, palettes=1):
        """Create an empty TIM of ``width`` x ``height`` pixels."""
        if bpp == 4:
            pal_w, pix_w = 16, width // 4
        elif bpp == 8:
            pal_w, pix_w = 256, width // 2
        elif bpp == 15:
            pal_w, pix_w = 0, width
        elif bpp == 24:
            pal_w, pix_w = 0, width * 3 // 2
        else:
            raise ValueError(f"unsupported bit depth {bpp}")
        pal_h = palettes if pal_w else 0
        return cls(
            bpp=bpp,
            pix_w=pix_w,
            pix_h=height,
            pixel=bytearray(pix_w * height * 2),
            clut=[0] * (pal_w * pal_h) if pal_w else None,
            pal_w=pal_w,
            pal_h=pal_h,
        )


class Bitmap:
    """A 32-bit ARGB raster stored row by row."""

    def __init__(self, width=0, height=0):
        self.width = width
        self.height = height
        self.pixels = [0] * (width * height)

    def __repr__(self) -> str:
        return f"Bitmap({self.width}x{self.height})"

    def _in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get_pixel(self, x, y):
        """Return the pixel at (x, y), or opaque black outside the bitmap."""
        if not self._in_bounds(x, y):
            return OUT_OF_BOUNDS
        return self.pixels[self.width * y + x]

    def set_pixel(self, x, y, pixel):
        """Set the pixel at (x, y); writes outside the bitmap are ignored."""
        if self._in_bounds(x, y):
            self.pixels[self.width * y + x] = pixel

    @classmethod
    def _from_pixels(cls, width, height, pixels):
        bmp = cls()
        bmp.width, bmp.height, bmp.pixels = width, height, pixels
        return bmp

    @classmethod
    def from_tim_bytes(cls, data, offset=0, palette=0, mode=None):
        """Decode a TIM at ``offset`` using CLUT row ``palette``.

        Returns the bitmap and the number of bytes the TIM occupies.
        """
        lay = _layout(data, offset)
        convert = _converter(mode)
        colors = None
        if lay.has_clut:
            start = lay.clut_pos + lay.pal_w * palette * 2
            count = min(256, max(0, (len(data) - start) // 2))
            colors = [convert(c) for c in _read_u16s(data, start, count)]
        raw = memoryview(bytes(data))[lay.data_pos:]
        width, height, pixels, used = _decode(
            lay.attr & 7, raw, lay.pix_w, lay.pix_h, colors, palette != 0, convert
        )
        return cls._from_pixels(width, height, pixels), lay.data_pos + used - offset

    @classmethod
    def from_tim(cls, tim, palette=0, mode=None):
        """Decode a parsed TIM; its CLUT is always read from the first row."""
        kind = _KIND_BY_BPP.get(tim.bpp)
        if kind is None:
            raise ValueError(f"unsupported bit depth {tim.bpp}")
        convert = _converter(mode)
        colors = None if tim.clut is None else [convert(c) for c in tim.clut]
        width, height, pixels, _ = _decode(
            kind, tim.pixel, tim.pix_w, tim.pix_h, colors, palette != 0, convert
        )
        return cls._from_pixels(width, height, pixels)

    @classmethod
    def from_bg(cls, data, mode=None):
        """Build a 320x240 background from a 256x256 and a 128x128 page."""
        convert = _converter(mode)
        values = _read_u16s(data, 0, 256 * 256 + 128 * 128)
        bmp = cls(320, 240)
        for y in range(bmp.height):
            row = values[y * 256:(y + 1) * 256]
            bmp.pixels[y * 320:y * 320 + 256] = [convert(v | 0x8000) for v in row]
        second = values[256 * 256:]
        for y in range(128):
            for x in range(128):
                p = convert(second[y * 128 + x] | 0x8000)
                if x < 64:
                    bmp.set_pixel(x + 256, y, p)
                else:
                    bmp.set_pixel(x + 256 - 64, y + 128, p)
        return bmp

    @classmethod
    def from_rgba(cls, data, width, height):
        """Build a bitmap from RGBA bytes; pure black is nudged to 0x000001."""
        count = width * height
        if len(data) < count * 4:
            raise ValueError("not enough RGBA data")
        pixels = []
        for i in range(0, count * 4, 4):
            r, g, b, a = data[i:i + 4]
            p = (r << 16) | (g << 8) | b | (a << 24)
            if p & 0xFFFFFF == 0:
                p |= 1
            pixels.append(p)
        return cls._from_pixels(width, height, pixels)

    def blit(self, src, src_x, src_y, dst_x, dst_y, width, height):
        """Copy a ``width`` x ``height`` block from ``src`` into this bitmap."""
        for y in range(height):
            for x in range(width):
                self.set_pixel(dst_x + x, dst_y + y, src.get_pixel(src_x + x, src_y + y))

    def to_rgba_bytes(self):
        """Return the pixels as RGBA bytes."""
        swapped = [
            ((p & 0xFF) << 16) | ((p >> 16) & 0xFF) | (p & 0xFF00FF00) for p in self.pixels
        ]
        return struct.pack(f"<{len(swapped)}I", *swapped)

    def save_png(self, path):
        """Write the bitmap as an RGBA PNG file."""
        if self.width == 0 or self.height == 0:
            raise ValueError("cannot save an empty bitmap")
        image = Image.frombytes("RGBA", (self.width, self.height), self.to_rgba_bytes())
        image.save(path, format="PNG")


def _decode_png(data) -> Bitmap:
    with Image.open(io.BytesIO(bytes(data))) as img:
        rgba = img.convert("RGBA")
        return Bitmap.from_rgba(rgba.tobytes(), rgba.width, rgba.height)


class BitmapVault:
    """An ordered collection of bitmaps handed out one at a time."""

    def __init__(self):
        self.bitmaps: list[Bitmap] = []
        self.current = 0

    def __len__(self) -> int:
        return len(self.bitmaps)

    @property
    def count(self) -> int:
        return len(self.bitmaps)

    def from_buffer(self, data, release=True):
        """Load consecutive TIMs; anything else is read as a final background."""
        if release:
            self.release()
        view = memoryview(bytes(data))
        pos = 0
        size = len(view)
        while pos < size:
            if pos + 4 <= size and struct.unpack_from("<I", view, pos)[0] == TIM_MAGIC:
                bmp, used = Bitmap.from_tim_bytes(view, pos)
                pos += used
            else:
                bmp = Bitmap.from_bg(view[pos:])
                pos = size
            self.bitmaps.append(bmp)

    def from_png_pack(self, data, release=True):
        """Load a single PNG or a pack of PNGs indexed by (offset, size) pairs."""
        if release:
            self.release()
        data = bytes(data)
        if data[:4] == _PNG_MAGIC:
            self.bitmaps.append(_decode_png(data))
            return
        if len(data) < 4:
            raise ValueError("PNG pack is too short")
        entries = struct.unpack_from("<I", data, 0)[0] // 8
        for offset, size in struct.iter_unpack("<II", data[:entries * 8]):
            self.bitmaps.append(_decode_png(data[offset:offset + size]))

    def pull(self):
        """Return the next bitmap, or None when all have been handed out."""
        if self.current >= len(self.bitmaps):
            return None
        bmp = self.bitmaps[self.current]
        self.current += 1
        return bmp

    def release(self):
        self.bitmaps.clear()
        self.current = 0


class EmBitmap:
    """Enemy textures cut into 256x256 pages."""

    def __init__(self):
        self.enemy_id = 0
        self.bitmaps: list[Bitmap] = []

    def __len__(self) -> int:
        return len(self.bitmaps)

    def open_tim(self, enemy_id, data):
        """Split a multi-CLUT TIM into 256x256 pages of 128-pixel slices."""
        self.enemy_id = enemy_id
        if len(data) > 4 and data[4] & 8:
            _, count = _read_chunk(data, 8)
        else:
            count = 1
        dump = [Bitmap.from_tim_bytes(data, 0, i)[0] for i in range(count)]

        if enemy_id == 0x36:
            if len(dump) < 3:
                raise ValueError("this enemy texture needs three palettes")
            canvas = Bitmap(CANVAS_SIZE, CANVAS_SIZE)
            canvas.blit(dump[0], 0, 0, 0, 0, 256, 256)
            self.bitmaps.append(canvas)
            canvas = Bitmap(CANVAS_SIZE, CANVAS_SIZE)
            canvas.blit(dump[1], 256, 0, 0, 0, 128, 256)
            canvas.blit(dump[2], 256 + 128, 0, 128, 0, 128, 256)
            self.bitmaps.append(canvas)
            return

        canvas = None
        for i, page in enumerate(dump):
            if canvas is None:
                canvas = Bitmap(CANVAS_SIZE, CANVAS_SIZE)
            x = i * 128
            canvas.blit(page, x, 0, x % 256, 0, 128, 256)
            if i % 2 == 1:
                self.bitmaps.append(canvas)
                canvas = None
        if canvas is not None:
            self.bitmaps.append(canvas)

    def open_png(self, png):
        """Cut a wide bitmap into 256x256 pages."""
        count = -(-png.width // 256)
        for i in range(count):
            canvas = Bitmap(CANVAS_SIZE, CANVAS_SIZE)
            canvas.blit(png, i * 256, 0, 0, 0, 256, 256)
            self.bitmaps.append(canvas)

    def release(self):
        self.bitmaps.clear()