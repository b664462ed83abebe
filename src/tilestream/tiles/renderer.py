"""
Tile Renderer
=============

Cuts fixed-size segments out of decoded frames and encodes them.

Segment addressing:
    Offsets are 1-based. Offset (x, y) covers the pixel rectangle
        [(x-1)*segment_width, x*segment_width) × [(y-1)*segment_height, y*segment_height)

    A non-positive offset on either axis requests the whole frame.

Encoding:
    One image format per deployment ("png" lossless or "jpeg" lossy),
    emitted as a data URL so it can travel inside JSON.
"""

import base64
import logging
from typing import List, Sequence

import cv2
import numpy as np

from tilestream.errors import OutOfBound
from tilestream.frames.frame import Frame


logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("png", "jpeg")


class TileEncodeError(Exception):
    """Raised when a pixel buffer cannot be encoded."""
    pass


def is_whole_frame(offset_x: int, offset_y: int) -> bool:
    """Whether the offsets carry the whole-frame sentinel."""
    return offset_x <= 0 or offset_y <= 0


def render(
    frame: Frame,
    segment_width: int,
    segment_height: int,
    offset_x: int,
    offset_y: int,
) -> np.ndarray:
    """
    Render one segment of a frame.

    Args:
        frame: Source frame
        segment_width: Segment width in pixels
        segment_height: Segment height in pixels
        offset_x: 1-based horizontal segment offset (<= 0 = whole frame)
        offset_y: 1-based vertical segment offset (<= 0 = whole frame)

    Returns:
        Pixel buffer (H, W, 3). A view into the frame; read-only.

    Raises:
        OutOfBound: If the segment extends past the frame edge
    """
    if frame.width < segment_width * offset_x or frame.height < segment_height * offset_y:
        raise OutOfBound(
            f"Segment ({offset_x}, {offset_y}) outside frame {frame.index} "
            f"({frame.width}x{frame.height})",
            context={"frame": frame.index, "offsetX": offset_x, "offsetY": offset_y},
        )

    if is_whole_frame(offset_x, offset_y):
        return frame.pixels

    left = (offset_x - 1) * segment_width
    top = (offset_y - 1) * segment_height
    return frame.pixels[top:top + segment_height, left:left + segment_width]


def render_batch(
    frames: Sequence[Frame],
    segment_width: int,
    segment_height: int,
    offset_x: int,
    offset_y: int,
) -> List[np.ndarray]:
    """
    Render the same segment from every frame, in index order.

    Raises:
        OutOfBound: If the segment is outside any frame
    """
    return [
        render(frame, segment_width, segment_height, offset_x, offset_y)
        for frame in frames
    ]


class TileEncoder:
    """
    Encode pixel buffers into image data URLs.

    Example:
        encoder = TileEncoder("png")
        url = encoder.encode(tile)  # "data:image/png;base64,iVBOR..."
    """

    def __init__(self, format: str = "png", jpeg_quality: int = 90) -> None:
        """
        Initialize encoder.

        Args:
            format: "png" or "jpeg"
            jpeg_quality: Quality 1-100, used for jpeg only
        """
        format = format.lower()
        if format not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported tile format: {format}")

        self.format = format
        self.jpeg_quality = jpeg_quality

        if format == "jpeg":
            self._extension = ".jpg"
            self._params = [int(cv2.IMWRITE_JPEG_QUALITY), jpeg_quality]
        else:
            self._extension = ".png"
            self._params = []

    @property
    def mime_type(self) -> str:
        return f"image/{self.format}"

    def encode_bytes(self, pixels: np.ndarray) -> bytes:
        """Encode a pixel buffer to raw image bytes."""
        ok, buffer = cv2.imencode(self._extension, np.ascontiguousarray(pixels), self._params)
        if not ok:
            raise TileEncodeError(f"cv2.imencode failed for shape {pixels.shape}")
        return buffer.tobytes()

    def encode(self, pixels: np.ndarray) -> str:
        """Encode a pixel buffer to a data URL."""
        payload = base64.b64encode(self.encode_bytes(pixels)).decode("ascii")
        return f"data:{self.mime_type};base64,{payload}"


def decode_data_url(url: str) -> np.ndarray:
    """
    Decode a data URL produced by TileEncoder back into pixels.

    Raises:
        TileEncodeError: If the URL is not a decodable image
    """
    try:
        _, payload = url.split(",", 1)
        raw = np.frombuffer(base64.b64decode(payload), np.uint8)
    except ValueError as e:
        raise TileEncodeError(f"Invalid data URL: {e}")

    pixels = cv2.imdecode(raw, cv2.IMREAD_COLOR)
    if pixels is None:
        raise TileEncodeError("cv2.imdecode returned None")
    return pixels
