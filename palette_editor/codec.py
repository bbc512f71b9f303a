"""Indexed PNG reading and writing."""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, List, Sequence

import png
from PIL import Image

from .bitdepth import unpack
from .image_model import ContractViolation, IndexedImage
from .palette_ops import DEFAULT_COLOR, ColorTuple, colors_from_flat


logger = logging.getLogger(__name__)

# Pillow raw modes of indexed PNG scanlines and their sample depth.
_RAW_DEPTHS = {"P;1": 1, "P;2": 2, "P;4": 4, "P": 8}


class DecodeError(RuntimeError):
    """Raised when an image file cannot be read or decoded."""


class UnsupportedEncodingError(DecodeError):
    """Raised for images outside the indexed 1/2/4/8-bit range."""


class EncodeError(RuntimeError):
    """Raised when an image cannot be serialized or written."""


@dataclass(slots=True)
class DecodedImage:
    """Raw parts of an indexed PNG.

    ``pixels`` holds byte-aligned packed scanlines when ``bit_depth`` is
    below 8, one byte per pixel otherwise.
    """

    width: int
    height: int
    bit_depth: int
    pixels: bytes
    palette: List[ColorTuple]
    transparency: List[int]

    def unpacked_pixels(self) -> bytes:
        if self.bit_depth == 8:
            return self.pixels
        return unpack(self.pixels, self.bit_depth, self.width)


def _describe(source: str | Path | BinaryIO) -> str:
    if isinstance(source, (str, Path)):
        return str(source)
    return getattr(source, "name", "<stream>")


def _raw_mode(image: Image.Image) -> str | None:
    if not image.tile:
        return None
    args = image.tile[0][3]
    if isinstance(args, tuple):
        args = args[0] if args else None
    return args if isinstance(args, str) else None


def _transparency_table(value: object, palette_size: int) -> List[int]:
    if value is None:
        return []
    if isinstance(value, int):
        # Pillow reports a lone fully transparent entry as its index
        table = [255] * value + [0]
    elif isinstance(value, (bytes, bytearray)):
        table = list(value)
    else:
        raise UnsupportedEncodingError(f"Unexpected transparency data {type(value).__name__}")
    if len(table) > palette_size:
        logger.warning(
            "Transparency table longer than palette (%s > %s); truncating",
            len(table),
            palette_size,
        )
        table = table[:palette_size]
    return table


def _decode_opened(image: Image.Image) -> DecodedImage:
    if image.format != "PNG":
        raise UnsupportedEncodingError(f"Expected a PNG file, got {image.format}")
    if image.mode != "P":
        raise UnsupportedEncodingError(
            f"Image must be palette-based (mode 'P'), got mode {image.mode!r}"
        )
    raw_mode = _raw_mode(image)
    bit_depth = _RAW_DEPTHS.get(raw_mode or "")
    if bit_depth is None:
        raise UnsupportedEncodingError(f"Unsupported indexed sample layout {raw_mode!r}")

    image.load()
    flat = image.getpalette()
    palette = colors_from_flat(flat) if flat else [DEFAULT_COLOR, DEFAULT_COLOR]
    transparency = _transparency_table(image.info.get("transparency"), len(palette))
    pixels = image.tobytes("raw", raw_mode) if bit_depth < 8 else image.tobytes()
    width, height = image.size
    logger.debug(
        "Decoded PNG %sx%s depth=%s colors=%s trns=%s",
        width,
        height,
        bit_depth,
        len(palette),
        len(transparency),
    )
    return DecodedImage(
        width=width,
        height=height,
        bit_depth=bit_depth,
        pixels=pixels,
        palette=palette,
        transparency=transparency,
    )


def decode_png(source: str | Path | BinaryIO) -> DecodedImage:
    """Read an indexed PNG from a path or binary stream.

    Images whose header exceeds Pillow's decompression bomb limit are
    rejected as undecodable.
    """

    try:
        with Image.open(source) as image:
            return _decode_opened(image)
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"Failed to decode {_describe(source)}: {exc}") from exc


def load_image(source: str | Path | BinaryIO) -> IndexedImage:
    decoded = decode_png(source)
    try:
        return IndexedImage.from_buffers(
            decoded.width,
            decoded.height,
            decoded.unpacked_pixels(),
            decoded.palette,
            decoded.transparency,
        )
    except ContractViolation as exc:
        raise DecodeError(f"Inconsistent indexed data in {_describe(source)}: {exc}") from exc


def _png_palette(colors: Sequence[ColorTuple], transparency: Sequence[int]) -> list:
    entries = []
    for index, (r, g, b) in enumerate(colors):
        if index < len(transparency):
            entries.append((r, g, b, transparency[index]))
        else:
            entries.append((r, g, b))
    return entries


def encode_png(image: IndexedImage, stream: BinaryIO) -> None:
    """Write ``image`` as an 8-bit indexed PNG.

    Rows are stored without filtering (RFC 2083, section 9.6) and at full
    8-bit depth regardless of the palette size. PLTE and tRNS carry the
    palette and transparency table verbatim.
    """

    writer = png.Writer(
        width=image.width,
        height=image.height,
        palette=_png_palette(image.palette, image.transparency),
        bitdepth=8,
    )
    writer.write(stream, (bytes(row) for row in image.pixels))


def png_bytes(image: IndexedImage) -> bytes:
    buffer = io.BytesIO()
    encode_png(image, buffer)
    return buffer.getvalue()


def save_image(image: IndexedImage, path: Path) -> None:
    """Encode ``image`` in memory, then write it to ``path``.

    Nothing is written when encoding fails.
    """

    try:
        data = png_bytes(image)
    except (png.Error, ValueError) as exc:
        raise EncodeError(f"Failed to encode {path}: {exc}") from exc
    try:
        Path(path).write_bytes(data)
    except OSError as exc:
        raise EncodeError(f"Failed to write {path}: {exc}") from exc
    logger.info("Saved %s (%s bytes)", path, len(data))
