"""
Unit tests for the command-line entry point.
"""
import logging
import struct
import zlib

import pytest

from palette_editor import cli


@pytest.fixture
def launched(monkeypatch):
    calls = []

    def _fake_launch(image, path):
        calls.append((image, path))
        return 0

    monkeypatch.setattr(cli, "_launch_editor", _fake_launch)
    monkeypatch.delenv("PALETTE_EDITOR_DEBUG", raising=False)
    return calls


@pytest.mark.parametrize("argv", [[], ["a.png", "b.png"]])
def test_wrong_argument_count_prints_usage(argv, launched, capsys):
    assert cli.main(argv) == 0
    out = capsys.readouterr().out
    assert out.startswith("usage: palette-editor")
    assert launched == []


def test_opens_editor(indexed_png, launched):
    path = indexed_png([[0, 1], [1, 0]], [(0, 0, 0), (9, 9, 9)])
    assert cli.main([str(path)]) == 0
    assert len(launched) == 1
    image, opened = launched[0]
    assert opened == path
    assert image.size == (2, 2)


def test_argument_starting_with_dash_is_a_path(launched, capsys):
    assert cli.main(["--help"]) == 1
    assert "--help" in capsys.readouterr().err


def test_unreadable_file_is_reported(tmp_path, launched, capsys):
    assert cli.main([str(tmp_path / "missing.png")]) == 1
    assert "missing.png" in capsys.readouterr().err
    assert launched == []


def test_non_indexed_file_is_reported(rgb_png, launched, capsys):
    assert cli.main([str(rgb_png)]) == 1
    assert "palette-based" in capsys.readouterr().err


def test_debug_logging_writes_file(tmp_path, monkeypatch, indexed_png, launched):
    package_logger = logging.getLogger("palette_editor")
    monkeypatch.setattr(package_logger, "handlers", list(package_logger.handlers))
    monkeypatch.setattr(package_logger, "level", package_logger.level)
    log_path = tmp_path / "debug.log"
    monkeypatch.setenv("PALETTE_EDITOR_DEBUG", "1")
    monkeypatch.setenv("PALETTE_EDITOR_DEBUG_LOG", str(log_path))
    path = indexed_png([[0]], [(1, 2, 3)])
    assert cli.main([str(path)]) == 0
    text = log_path.read_text(encoding="utf-8")
    assert f"Debug logging enabled at {log_path}" in text
    assert "Loaded" in text


def test_debug_logging_off_by_default(monkeypatch):
    package_logger = logging.getLogger("palette_editor")
    monkeypatch.setattr(package_logger, "handlers", list(package_logger.handlers))
    monkeypatch.delenv("PALETTE_EDITOR_DEBUG", raising=False)
    assert cli.setup_debug_logging() is None
    assert not any(isinstance(h, logging.FileHandler) for h in package_logger.handlers)


def test_oversized_image_is_reported(tmp_path, launched, capsys):
    def chunk(kind, payload):
        body = kind + payload
        return struct.pack(">I", len(payload)) + body + struct.pack(">I", zlib.crc32(body))

    path = tmp_path / "huge.png"
    path.write_bytes(
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", struct.pack(">IIBBBBB", 20000, 20000, 1, 3, 0, 0, 0))
        + chunk(b"PLTE", bytes(6))
        + chunk(b"IDAT", zlib.compress(b""))
        + chunk(b"IEND", b"")
    )
    assert cli.main([str(path)]) == 1
    assert "huge.png" in capsys.readouterr().err
    assert launched == []
