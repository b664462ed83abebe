#!/usr/bin/env python3
"""
Palette Export
==============

Classify every pixel of every extracted frame as black, gray or white
and write the grids to a JSON file.

Usage:
    python scripts/export_palette.py --frames ./files/frames --out ./files/palette.json
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from tilestream.frames import FrameStore
from tilestream.tiles.palette import export_palette


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run(frames_dir: Path, out_path: Path) -> int:
    store = FrameStore()
    await store.load(frames_dir)
    return export_palette(store.frames, out_path)


def main():
    parser = argparse.ArgumentParser(description="Export per-pixel luminance palette")
    parser.add_argument(
        "--frames",
        type=Path,
        default=Path(os.environ.get("TILESTREAM_FRAMES_DIR", "./files/frames")),
        help="Directory holding frame-NNN.png files",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=Path("./files/palette.json"),
        help="Output JSON path",
    )

    args = parser.parse_args()

    count = asyncio.run(run(args.frames, args.out))
    sys.exit(0 if count > 0 else 1)


if __name__ == "__main__":
    main()
