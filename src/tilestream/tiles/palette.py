"""
Luminance Palette
=================

Classify every pixel of a frame into a three-level palette.

Viewers that draw each pixel with a pre-made asset (black, gray or white
swatch) use this export instead of requesting encoded tiles.

Luminance uses the Rec. 709 weights:
    L = 0.2126 R + 0.7152 G + 0.0722 B

    L < 85          -> "black"
    85 <= L < 170   -> "gray"
    L >= 170        -> "white"
"""

import json
import logging
from pathlib import Path
from typing import List, Sequence

import numpy as np

from tilestream.frames.frame import Frame


logger = logging.getLogger(__name__)

PALETTE = np.array(["black", "gray", "white"])
THRESHOLDS = (85.0, 170.0)


def luminance(pixels: np.ndarray) -> np.ndarray:
    """Per-pixel luminance of a BGR image as float (H, W)."""
    bgr = pixels.astype(np.float64)
    return 0.0722 * bgr[..., 0] + 0.7152 * bgr[..., 1] + 0.2126 * bgr[..., 2]


def classify(pixels: np.ndarray) -> np.ndarray:
    """
    Map a BGR image to palette indices.

    Returns:
        np.ndarray (H, W) of uint8 in {0, 1, 2}
    """
    return np.digitize(luminance(pixels), THRESHOLDS).astype(np.uint8)


def classify_frame(frame: Frame) -> List[List[str]]:
    """Palette names for every pixel, row by row."""
    return PALETTE[classify(frame.pixels)].tolist()


def export_palette(frames: Sequence[Frame], out_path: Path) -> int:
    """
    Write the palette grid of every frame as JSON.

    The file holds a list (one per frame) of rows of palette names.

    Returns:
        Number of frames exported
    """
    out_path = Path(out_path)
    grids = []
    for count, frame in enumerate(frames, start=1):
        logger.info(f"Processing frame {frame.index} ({count / len(frames) * 100:.2f}%)")
        grids.append(classify_frame(frame))

    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w") as f:
        json.dump(grids, f)

    logger.info(f"Exported palette for {len(grids)} frames to {out_path}")
    return len(grids)
