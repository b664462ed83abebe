"""
Video Decoder
=============

Extracts rescaled still frames from the source video.

This is the only place that touches the video file. It writes
frame-NNN.png files that the FrameStore loads afterwards.

Design Rules:
    - Blocking; callers run it with asyncio.to_thread
    - Resamples to the target fps by presentation time
    - Fails fast when the source is missing or unreadable
"""

import logging
from pathlib import Path

import cv2

from tilestream.errors import SourceMissing
from tilestream.frames.store import list_frame_files


logger = logging.getLogger(__name__)


class VideoDecodeError(Exception):
    """Raised when the source video cannot be opened or read."""
    pass


def check_segment_alignment(
    width: int,
    height: int,
    segment_width: int,
    segment_height: int,
) -> bool:
    """
    Warn when the rescaled size does not divide into whole segments.

    Returns:
        True if both dimensions are multiples of the segment size
    """
    aligned = True
    if width % segment_width != 0:
        logger.warning(f"Rescale width {width} cannot be divided by {segment_width}")
        aligned = False
    if height % segment_height != 0:
        logger.warning(f"Rescale height {height} cannot be divided by {segment_height}")
        aligned = False
    return aligned


def extract_frames(
    source: Path,
    out_dir: Path,
    width: int,
    height: int,
    fps: float,
) -> int:
    """
    Decode a video into frame-NNN.png files.

    Args:
        source: Path to the source video
        out_dir: Directory to write frames into (created if missing)
        width: Output frame width
        height: Output frame height
        fps: Output frame rate

    Returns:
        Number of frames written

    Raises:
        SourceMissing: If the source file does not exist
        VideoDecodeError: If the video cannot be opened or a frame not written
    """
    source = Path(source)
    out_dir = Path(out_dir)

    if not source.is_file():
        raise SourceMissing(
            f"Missing original video file on the specified path: {source}",
            context={"path": str(source)},
        )

    capture = cv2.VideoCapture(str(source))
    if not capture.isOpened():
        raise VideoDecodeError(f"Failed to open video: {source}")

    out_dir.mkdir(parents=True, exist_ok=True)
    stale = list_frame_files(out_dir)
    for path in stale:
        path.unlink()
    if stale:
        logger.info(f"Removed {len(stale)} previously extracted frames")

    source_fps = capture.get(cv2.CAP_PROP_FPS) or fps
    step = 1.0 / fps
    next_time = 0.0
    source_index = 0
    written = 0

    logger.info(
        f"Extracting frames from {source} "
        f"({source_fps:.2f} fps -> {fps} fps, {width}x{height})"
    )

    try:
        while True:
            ok, image = capture.read()
            if not ok:
                break

            timestamp = source_index / source_fps
            source_index += 1

            # Small epsilon so exact multiples are not skipped by float error
            if timestamp + 1e-9 < next_time:
                continue
            next_time += step

            if image.shape[1] != width or image.shape[0] != height:
                image = cv2.resize(image, (width, height), interpolation=cv2.INTER_AREA)

            written += 1
            target = out_dir / f"frame-{written:03d}.png"
            if not cv2.imwrite(str(target), image):
                raise VideoDecodeError(f"Failed to write frame {written}: {target}")
    finally:
        capture.release()

    logger.info(f"Finished exporting {written} frames to {out_dir}")
    return written
