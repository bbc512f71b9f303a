"""In-memory indexed image: pixel grid, palette and transparency table."""
from __future__ import annotations

import logging
import operator
from typing import BinaryIO, List, Sequence, Tuple

import numpy as np

from .palette_ops import (
    DEFAULT_COLOR,
    MAX_PALETTE_SIZE,
    OPAQUE,
    TRANSPARENT,
    ColorTuple,
    PaletteInfo,
    canonicalize_transparency,
    is_channel,
    is_color,
)


logger = logging.getLogger(__name__)

DEFAULT_SIZE = 16


class ContractViolation(AssertionError):
    """Raised when a caller breaks an indexed image invariant.

    These are programming errors in the caller (usually the UI offering an
    invalid selection), not conditions to recover from.
    """


class PaletteOverflowError(ContractViolation):
    """Raised when a palette would exceed 256 entries."""


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ContractViolation(message)


def _as_int(value: object, what: str) -> int:
    try:
        return operator.index(value)
    except TypeError:
        raise ContractViolation(f"{what} must be an integer, got {value!r}") from None


def _check_size(width: object, height: object) -> Tuple[int, int]:
    width, height = _as_int(width, "width"), _as_int(height, "height")
    _require(width >= 1 and height >= 1, f"invalid image size {width}x{height}")
    return width, height


def _as_color(color: Sequence[int]) -> ColorTuple:
    _require(is_color(color), f"invalid color {color!r}")
    r, g, b = (operator.index(c) for c in color)
    return (r, g, b)


class IndexedImage:
    """Palette-indexed raster with a memoized RGBA rendering.

    The pixel grid is a ``(height, width)`` ``uint8`` array of palette
    indices. The transparency table may be shorter than the palette; missing
    entries are fully opaque.
    """

    def __init__(
        self,
        pixels: np.ndarray,
        palette: List[ColorTuple],
        transparency: List[int],
    ) -> None:
        self._pixels = pixels
        self._palette = palette
        self._transparency = transparency
        self._rendered: bytes | None = None

    # -- construction -----------------------------------------------------

    @classmethod
    def new(cls, width: int = DEFAULT_SIZE, height: int = DEFAULT_SIZE) -> "IndexedImage":
        """Blank canvas: all index 0, two black entries, index 0 transparent."""

        width, height = _check_size(width, height)
        pixels = np.zeros((height, width), dtype=np.uint8)
        return cls(pixels, [DEFAULT_COLOR, DEFAULT_COLOR], [TRANSPARENT])

    @classmethod
    def from_buffers(
        cls,
        width: int,
        height: int,
        pixels: bytes | Sequence[int],
        palette: Sequence[ColorTuple],
        transparency: Sequence[int] = (),
    ) -> "IndexedImage":
        """Build an image from one-byte-per-sample indices.

        The transparency table is kept as given, trailing opaque entries
        included.
        """

        width, height = _check_size(width, height)
        _require(
            1 <= len(palette) <= MAX_PALETTE_SIZE,
            f"palette must hold 1..{MAX_PALETTE_SIZE} colors, got {len(palette)}",
        )
        _require(
            len(transparency) <= len(palette),
            f"transparency table ({len(transparency)}) longer than palette ({len(palette)})",
        )
        colors = [_as_color(color) for color in palette]
        _require(all(is_channel(a) for a in transparency), "alpha values must be 0..255 integers")
        alphas = [operator.index(a) for a in transparency]

        buffer = bytes(bytearray(pixels))
        _require(
            len(buffer) == width * height,
            f"pixel buffer holds {len(buffer)} samples, expected {width * height}",
        )
        grid = np.frombuffer(buffer, dtype=np.uint8).reshape(height, width).copy()
        if grid.size:
            highest = int(grid.max())
            _require(
                highest < len(colors),
                f"pixel index {highest} outside palette of {len(colors)} colors",
            )
        return cls(grid, colors, alphas)

    # -- read-only views --------------------------------------------------

    @property
    def width(self) -> int:
        return int(self._pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self._pixels.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def palette(self) -> Tuple[ColorTuple, ...]:
        return tuple(self._palette)

    @property
    def transparency(self) -> Tuple[int, ...]:
        return tuple(self._transparency)

    @property
    def pixels(self) -> np.ndarray:
        view = self._pixels.view()
        view.flags.writeable = False
        return view

    def get_pixel(self, x: int, y: int) -> int:
        x, y = self._check_position(x, y)
        return int(self._pixels[y, x])

    def alpha(self, index: int) -> int:
        index = self._check_index(index)
        if index < len(self._transparency):
            return self._transparency[index]
        return OPAQUE

    def count_usage(self) -> List[int]:
        counts = np.bincount(self._pixels.reshape(-1), minlength=len(self._palette))
        return [int(c) for c in counts[: len(self._palette)]]

    # -- mutation ---------------------------------------------------------

    def set_pixel(self, x: int, y: int, index: int) -> None:
        x, y = self._check_position(x, y)
        self._pixels[y, x] = self._check_index(index)
        self._invalidate()

    def set_color(self, index: int, color: ColorTuple) -> None:
        self._palette[self._check_index(index)] = _as_color(color)
        # pixels using this index look different now
        self._invalidate()

    def push_color(self, color: ColorTuple) -> int:
        """Append ``color`` to the palette and return its index."""

        color = _as_color(color)
        if len(self._palette) >= MAX_PALETTE_SIZE:
            raise PaletteOverflowError(
                f"palette already holds {MAX_PALETTE_SIZE} colors"
            )
        self._palette.append(color)
        self._invalidate()
        return len(self._palette) - 1

    def set_transparency(self, index: int, alpha: int) -> None:
        index = self._check_index(index)
        _require(is_channel(alpha), f"invalid alpha {alpha!r}")
        alpha = operator.index(alpha)
        table = self._transparency
        if index >= len(table):
            table.extend([OPAQUE] * (index + 1 - len(table)))
        table[index] = alpha
        self.canonicalize_transparency()
        self._invalidate()

    def canonicalize_transparency(self) -> None:
        canonicalize_transparency(self._transparency)

    def palette_info(self) -> PaletteInfo:
        """Palette snapshot with the first fully transparent slot, if any."""

        transparent = next(
            (i for i, alpha in enumerate(self._transparency) if alpha == TRANSPARENT),
            None,
        )
        return PaletteInfo(colors=list(self._palette), transparent_index=transparent)

    def apply_palette(self, palette: PaletteInfo) -> None:
        """Recolor slots from ``palette``, appending colors past the current end.

        The palette never shrinks. A transparent slot in ``palette`` becomes
        fully transparent here too.
        """

        _require(palette.size <= MAX_PALETTE_SIZE, f"palette of {palette.size} colors is too large")
        colors = [_as_color(color) for color in palette.colors]
        for index, color in enumerate(colors):
            if index < len(self._palette):
                self._palette[index] = color
            else:
                self._palette.append(color)
        self._invalidate()
        if palette.transparent_index is not None:
            self.set_transparency(palette.transparent_index, TRANSPARENT)

    def swap_indices(self, first: int, second: int) -> None:
        """Exchange two palette slots without changing how the image looks.

        Colors and alphas trade places and every pixel referring to one
        index is rewritten to the other.
        """

        first = self._check_index(first)
        second = self._check_index(second)
        if first == second:
            return
        palette = self._palette
        palette[first], palette[second] = palette[second], palette[first]

        alpha_first, alpha_second = self.alpha(first), self.alpha(second)
        table = self._transparency
        needed = max(first, second) + 1
        if len(table) < needed:
            table.extend([OPAQUE] * (needed - len(table)))
        table[first], table[second] = alpha_second, alpha_first
        self.canonicalize_transparency()

        lut = np.arange(256, dtype=np.uint8)
        lut[first], lut[second] = second, first
        self._pixels = lut[self._pixels]
        logger.debug("Swapped palette indices %s <-> %s", first, second)
        self._invalidate()

    # -- rendering / serialization ----------------------------------------

    def render(self) -> bytes:
        """Row-major RGBA bytes, 4 per pixel."""

        if self._rendered is None:
            self._rendered = self._render()
        return self._rendered

    def _render(self) -> bytes:
        lut = np.zeros((MAX_PALETTE_SIZE, 4), dtype=np.uint8)
        lut[:, 3] = OPAQUE
        if self._palette:
            lut[: len(self._palette), :3] = np.array(self._palette, dtype=np.uint8)
        if self._transparency:
            lut[: len(self._transparency), 3] = np.array(self._transparency, dtype=np.uint8)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Rendering %sx%s palette=%s trns=%s",
                self.width,
                self.height,
                len(self._palette),
                len(self._transparency),
            )
        return lut[self._pixels].tobytes()

    def encode(self, stream: BinaryIO) -> None:
        """Write this image to ``stream`` as an 8-bit unfiltered indexed PNG."""

        from .codec import encode_png

        encode_png(self, stream)

    def to_png_bytes(self) -> bytes:
        from .codec import png_bytes

        return png_bytes(self)

    # -- internals --------------------------------------------------------

    def _invalidate(self) -> None:
        self._rendered = None

    def _check_index(self, index: int) -> int:
        index = _as_int(index, "palette index")
        _require(
            0 <= index < len(self._palette),
            f"palette index {index} outside palette of {len(self._palette)} colors",
        )
        return index

    def _check_position(self, x: int, y: int) -> Tuple[int, int]:
        x, y = _as_int(x, "x"), _as_int(y, "y")
        _require(
            0 <= x < self.width and 0 <= y < self.height,
            f"pixel ({x}, {y}) outside {self.width}x{self.height} image",
        )
        return x, y

    def __repr__(self) -> str:
        return (
            f"IndexedImage({self.width}x{self.height}, colors={len(self._palette)}, "
            f"trns={len(self._transparency)})"
        )
