"""
Frame Data Model
=================

Decoded frame representation held by the FrameStore.

Design Rules:
    - Frames are created once during load and never mutated
    - Pixel data is a read-only BGR uint8 array (H, W, 3)
    - Index is 1-based, in display order
"""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, slots=True)
class Frame:
    """
    One decoded still image from the source video.

    Attributes:
        index: 1-based position in display order
        pixels: BGR image as np.ndarray (H, W, 3), dtype=uint8, read-only
    """

    index: int
    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 3:
            raise ValueError(f"Invalid pixel shape for frame {self.index}: {self.pixels.shape}")
        if self.pixels.flags.writeable:
            self.pixels.setflags(write=False)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixels."""
        return f"Frame(index={self.index}, size={self.width}x{self.height})"
