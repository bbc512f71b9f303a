"""Palette and transparency table helpers."""
from __future__ import annotations

import operator
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, MutableSequence, Sequence, Tuple


ColorTuple = Tuple[int, int, int]

MAX_PALETTE_SIZE = 256
OPAQUE = 255
TRANSPARENT = 0
DEFAULT_COLOR: ColorTuple = (0, 0, 0)


class PaletteError(RuntimeError):
    """Raised when palette interchange data is malformed."""


def is_channel(value: object) -> bool:
    """True for integer-like values (numpy scalars included) in 0..255."""

    try:
        value = operator.index(value)
    except TypeError:
        return False
    return 0 <= value <= 255


def is_color(color: object) -> bool:
    try:
        return len(color) == 3 and all(is_channel(c) for c in color)
    except TypeError:
        return False


def colors_from_flat(flat: Sequence[int]) -> List[ColorTuple]:
    """Group a flat ``r, g, b, r, g, b...`` sequence into color tuples."""

    colors: List[ColorTuple] = []
    for i in range(0, len(flat) - len(flat) % 3, 3):
        colors.append((flat[i], flat[i + 1], flat[i + 2]))
    return colors


def flatten_colors(colors: Iterable[ColorTuple]) -> bytes:
    flat = bytearray()
    for color in colors:
        flat.extend(color)
    return bytes(flat)


def canonicalize_transparency(table: MutableSequence[int]) -> None:
    """Drop trailing fully opaque entries from ``table`` in place.

    Opaque entries followed by a non-opaque one are kept; only the suffix
    goes, since missing entries already read as opaque.
    """

    while table and table[-1] == OPAQUE:
        table.pop()


def hex_to_rgb(value: str) -> ColorTuple:
    """Parse ``#rrggbb`` (leading ``#`` optional) into a color tuple."""

    digits = value.strip().removeprefix("#")
    if len(digits) != 6:
        raise ValueError(f"Expected hex RGB in the form RRGGBB, got {value!r}")
    r, g, b = bytes.fromhex(digits)
    return (r, g, b)


def rgb_to_hex(color: ColorTuple) -> str:
    return "#{:02x}{:02x}{:02x}".format(*color)


@dataclass(slots=True)
class PaletteInfo:
    """Colors and optional transparent slot of an interchange palette."""

    colors: List[ColorTuple]
    transparent_index: int | None = None

    @property
    def size(self) -> int:
        return len(self.colors)


_ACT_TABLE_BYTES = MAX_PALETTE_SIZE * 3
# color count and transparent index, 0xFFFF when there is none
_ACT_TRAILER = struct.Struct(">HH")
_ACT_NO_TRANSPARENCY = 0xFFFF


def read_act_palette(path: Path) -> PaletteInfo:
    """Load an Adobe ACT palette file (<=256 colors).

    Files with the 4-byte trailer only yield the declared number of colors.
    Bare color tables yield every complete entry.
    """

    data = path.read_bytes()
    if len(data) == _ACT_TABLE_BYTES + _ACT_TRAILER.size:
        count, transparent = _ACT_TRAILER.unpack(data[_ACT_TABLE_BYTES:])
        if not 1 <= count <= MAX_PALETTE_SIZE:
            raise PaletteError(f"ACT palette declares {count} colors")
        colors = colors_from_flat(data[: count * 3])
        if transparent >= count:
            transparent = None
        return PaletteInfo(colors=colors, transparent_index=transparent)
    if len(data) % 3 != 0:
        raise PaletteError("ACT palette length must be divisible by 3")
    return PaletteInfo(colors=colors_from_flat(data[:_ACT_TABLE_BYTES]))


def write_act(path: Path, palette: PaletteInfo) -> None:
    """Write a 772-byte ACT file: padded color table plus count trailer."""

    colors = list(palette.colors[:MAX_PALETTE_SIZE])
    if not colors:
        raise PaletteError("Cannot write an empty ACT palette")
    padded = colors + [DEFAULT_COLOR] * (MAX_PALETTE_SIZE - len(colors))
    transparent = palette.transparent_index
    if transparent is None or not 0 <= transparent < len(colors):
        transparent = _ACT_NO_TRANSPARENCY
    with path.open("wb") as fh:
        fh.write(flatten_colors(padded))
        fh.write(_ACT_TRAILER.pack(len(colors), transparent))
