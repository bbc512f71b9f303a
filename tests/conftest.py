import io

import png
import pytest
from PIL import Image


def write_indexed_png(path, rows, palette, bitdepth=8, trns=None):
    """Write ``rows`` of palette indices with pypng at ``bitdepth``."""
    entries = []
    for index, color in enumerate(palette):
        if trns is not None and index < len(trns):
            entries.append(tuple(color) + (trns[index],))
        else:
            entries.append(tuple(color))
    writer = png.Writer(
        width=len(rows[0]), height=len(rows), palette=entries, bitdepth=bitdepth
    )
    with open(path, "wb") as fh:
        writer.write(fh, rows)
    return path


@pytest.fixture
def indexed_png(tmp_path):
    def _make(rows, palette, bitdepth=8, trns=None, name="sprite.png"):
        return write_indexed_png(tmp_path / name, rows, palette, bitdepth, trns)

    return _make


@pytest.fixture
def rgb_png(tmp_path):
    path = tmp_path / "rgb.png"
    Image.new("RGB", (4, 4), (255, 0, 0)).save(path)
    return path


@pytest.fixture
def png_stream():
    def _make(image):
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        buffer.seek(0)
        return buffer

    return _make
