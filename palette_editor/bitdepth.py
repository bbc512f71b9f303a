"""Sub-byte sample packing for indexed scanlines.

Indexed PNGs may store 1, 2 or 4 bits per palette index. Each scanline
starts on a byte boundary, so when a row's width is not a multiple of the
samples per byte the last byte of the row carries padding bits
(RFC 2083, section 2.3).
"""
from __future__ import annotations

import logging
from typing import Sequence

import numpy as np


logger = logging.getLogger(__name__)

PACKED_DEPTHS = (1, 2, 4)
SUPPORTED_DEPTHS = PACKED_DEPTHS + (8,)


class UnsupportedBitDepthError(ValueError):
    """Raised for sample depths without an indexed byte representation."""


def _check_depth(bit_depth: int) -> None:
    if bit_depth not in SUPPORTED_DEPTHS:
        raise UnsupportedBitDepthError(f"cannot unpack {bit_depth}-bit samples")


def row_bytes(bit_depth: int, line_width: int) -> int:
    """Number of packed bytes holding one scanline of ``line_width`` samples."""

    _check_depth(bit_depth)
    return (line_width * bit_depth + 7) // 8


def _shifts(bit_depth: int) -> np.ndarray:
    # leftmost pixel sits in the highest-order bits, last offset is 0
    return np.arange(8 - bit_depth, -1, -bit_depth).astype(np.uint8)


def unpack(packed: bytes, bit_depth: int, line_width: int) -> bytes:
    """Expand ``packed`` scanlines to one byte per sample.

    Padding bits at the end of every row are dropped. A trailing partial row
    contributes only the samples its bytes actually hold.
    """

    _check_depth(bit_depth)
    if line_width < 1:
        raise ValueError("line_width must be positive")
    if bit_depth == 8:
        logger.debug("unpacking from 8 bits to 8 bits (plain copy of %s bytes)", len(packed))
        return bytes(packed)

    data = np.frombuffer(bytes(packed), dtype=np.uint8)
    per_row = row_bytes(bit_depth, line_width)
    px_per_byte = 8 // bit_depth
    rows, tail = divmod(len(data), per_row)
    if tail:
        data = np.concatenate([data, np.zeros(per_row - tail, dtype=np.uint8)])

    mask = np.uint8((1 << bit_depth) - 1)
    samples = (data[:, None] >> _shifts(bit_depth)) & mask
    samples = samples.reshape(-1, per_row * px_per_byte)[:, :line_width]

    count = rows * line_width
    if tail:
        count += min(line_width, tail * px_per_byte)
    return samples.reshape(-1)[:count].tobytes()


def pack(samples: Sequence[int] | bytes, bit_depth: int, line_width: int) -> bytes:
    """Pack one-byte samples into byte-aligned ``bit_depth`` scanlines.

    Row padding bits are written as zero.
    """

    _check_depth(bit_depth)
    if line_width < 1:
        raise ValueError("line_width must be positive")
    values = np.frombuffer(bytes(bytearray(samples)), dtype=np.uint8)
    if values.size % line_width:
        raise ValueError(
            f"{values.size} samples do not fill whole rows of width {line_width}"
        )
    if bit_depth == 8:
        return values.tobytes()
    if values.size and int(values.max()) >= (1 << bit_depth):
        raise ValueError(f"sample {int(values.max())} does not fit in {bit_depth} bits")

    px_per_byte = 8 // bit_depth
    per_row = row_bytes(bit_depth, line_width)
    grid = values.reshape(-1, line_width)
    padded = np.zeros((grid.shape[0], per_row * px_per_byte), dtype=np.uint8)
    padded[:, :line_width] = grid
    groups = padded.reshape(grid.shape[0], per_row, px_per_byte)
    packed = np.bitwise_or.reduce(groups << _shifts(bit_depth), axis=2)
    return packed.astype(np.uint8).tobytes()
