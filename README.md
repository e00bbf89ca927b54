# re1unpack

Tools for pulling assets out of the data files of a classic survival-horror
game: TIM textures, LZW-packed `.pak` backgrounds, room (`.RDT`) data, game
text in its own encodings, and lookup tables read from the executable.
Images are written as PNG, text and tables as XML.

## Installation

```
pip install .
```

For development, install the test extra and run the tests:

```
pip install ".[test]"
pytest
```

## Command line

Installing the package adds the `re1unpack` command:

```
re1unpack --help
```

It takes one subcommand:

| Command | Arguments | What it does |
| --- | --- | --- |
| `pak` | `input output [--bg]` | Unpacks a `.pak` holding a TIM and saves it as PNG. `--bg` treats a TIM whose pixel chunk is smaller than a full screen as 316x236. |
| `bgs` | `root output` | Converts every `STAGEn/RC*.pak` background and `objspr/OSP*.pak` mask found under `root`. |
| `files` | `input output` | Converts every `FILEM_*.PIX` sheet in a folder into two 256x192 PNG halves. |
| `rdt` | `input prefix` | Saves the camera mask textures of a room file as `<prefix>_NN_mask.png`. |
| `text` | `input output` | Writes the messages of a room file to XML and prints how many there were. |
| `messages` | `input output [--log FILE]` | Writes the messages of every room under `input/STAGEn/`; the rooms that have messages are listed in the log file (`room.log` by default). |
| `icons` | `folder output exe` | Builds the two inventory icon sheets from `STATUS.TIM`, `ITEM_ALL.PIX` and the item table in the executable. |
| `ds` | `input output` | Writes the room messages and text banks of a handheld-release message file. |

`--color-mode N` (before the subcommand) picks how 15-bit colours are widened
to 8 bits per channel: `0` PSX, `1` FULL (the default), `2` DDRAW, `3` FULL2.

## Library use

```python
from re1unpack.bitmap import Bitmap, ColorMode
from re1unpack.pak import pak_depack
from re1unpack.text import decode_string
from re1unpack.room import Room

# Unpack an LZW-compressed background and save it as PNG.
with open("RC1000.pak", "rb") as fh:
    tim_bytes = pak_depack(fh.read())
bitmap, used = Bitmap.from_tim_bytes(tim_bytes, 0, 0, ColorMode.FULL)
bitmap.save_png("room.png")

# Read a room and dump its camera masks.
room = Room.open("ROOM1000.RDT")
room.dump_mask_bitmaps("ROOM_100", ColorMode.FULL)

# Decode a message from raw game text.
print(decode_string(b"\x24\x25\x07", 0))  # HI
```

### Modules

- `re1unpack.bitmap` – colour conversion (`ColorMode`, `set_color_mode`,
  `convert_color`, `convert_clut`), TIM parsing (`Tim.parse`, `Tim.create`),
  ARGB bitmaps (`Bitmap`, with `from_tim_bytes`, `from_tim`, `from_bg`,
  `from_rgba`, `blit`, `to_rgba_bytes`, `save_png`), bitmap collections
  (`BitmapVault`) and enemy texture pages (`EmBitmap`).
- `re1unpack.pak` – `pak_depack`, the LZW decompressor for `.pak` files;
  corrupt or truncated streams raise `PakError`.
- `re1unpack.text` – `decode_string`, `decode_string_eu` and
  `decode_string_ds` for the Japanese/US, European and handheld text
  encodings. Control codes come out as markup such as `{color 1}`,
  `{timed 30}` or `\n`.
- `re1unpack.room` – room file structures (`Room`, `RdtHeader`, `Camera`,
  `Mask`, `CameraSwitch`, `Collision`, `Floor` and others) and `scan_scd`,
  which collects door and object entries from an initialisation script.
- `re1unpack.mdec` – a software motion decoder: `Mdec` takes cosine and
  quantisation tables and run-length words and returns 15- or 24-bit RGB
  pixels; `idct` and `build_iqtab` are its building blocks.
- `re1unpack.tables` – item, weapon damage, ESP, sound and music tables read
  from the executable and written as XML (`extract_items`,
  `extract_weapon_table`, `extract_esp_table`, `dump_sound_tables`,
  `dump_player_tables`, `dump_core_tables`, `dump_door_tables`,
  `dump_bgm_tables`, `extract_strings`), plus `strings_to_xml`,
  `name_to_id` and `fix_duplicates`.
- `re1unpack.extract` – the file-level jobs behind the command line
  (`extract_pak`, `extract_bgs`, `convert_file`, `extract_files`,
  `extract_rdt`, `extract_text`, `extract_messages`, `extract_icons`,
  `dump_ds_messages`, `list_files`) and `main`.

The table dumps in `re1unpack.tables` are available from Python only; they
have no subcommand.

## What it does not do

- It does not convert sound banks to WAV files.
- It does not export item or enemy 3D models.
- It does not read movie files: `Mdec` decodes run-length data handed to it,
  but nothing in the package finds frames in a file and saves them as
  pictures.