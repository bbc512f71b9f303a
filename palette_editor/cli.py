"""Command-line entry point: open one indexed PNG in the editor."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List

from .codec import DecodeError, load_image
from .image_model import IndexedImage


logger = logging.getLogger(__name__)


def setup_debug_logging() -> Path | None:
    """Log to a file when ``PALETTE_EDITOR_DEBUG`` is set; return its path."""

    package_logger = logging.getLogger("palette_editor")
    if not os.environ.get("PALETTE_EDITOR_DEBUG"):
        if not package_logger.handlers:
            package_logger.addHandler(logging.NullHandler())
        return None
    log_path = Path(os.environ.get("PALETTE_EDITOR_DEBUG_LOG", "palette_editor_debug.log"))
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    package_logger.setLevel(logging.DEBUG)
    # remove existing file handlers to avoid duplicates
    package_logger.handlers = [h for h in package_logger.handlers if not isinstance(h, logging.FileHandler)]
    package_logger.addHandler(handler)
    return log_path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="palette-editor",
        description="Edit the palette, transparency and pixels of an indexed PNG",
    )
    parser.add_argument("path", type=Path, help="Indexed PNG to open")
    return parser


def _launch_editor(image: IndexedImage, path: Path) -> int:
    from .ui.main import run

    return run(image, path)


def main(argv: List[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else list(argv)
    parser = build_parser()
    if len(argv) != 1:
        parser.print_usage(sys.stdout)
        return 0
    # no flags: the single argument is always the path
    args = parser.parse_args(["--", *argv])

    log_path = setup_debug_logging()
    if log_path is not None:
        logger.info("Debug logging enabled at %s", log_path)
    try:
        image = load_image(args.path)
    except DecodeError as exc:
        logger.error("Could not open %s: %s", args.path, exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    logger.info("Loaded %s as %r", args.path, image)
    return _launch_editor(image, args.path)


if __name__ == "__main__":
    raise SystemExit(main())
