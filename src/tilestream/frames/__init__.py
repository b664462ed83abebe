"""
Frames Module
=============

Frame extraction and in-memory frame storage.

This module provides the ingestion layer for tilestream:
    - Frame: Immutable decoded image with a 1-based index
    - FrameStore: Read-only frame collection with a readiness signal
    - extract_frames: Video → frame-NNN.png decoder (OpenCV)

Example:
    from tilestream.frames import FrameStore, extract_frames

    await asyncio.to_thread(extract_frames, video, frames_dir, 320, 192, 20)

    store = FrameStore()
    await store.load(frames_dir)
"""

from tilestream.frames.frame import Frame
from tilestream.frames.store import FrameDecodeError, FrameStore
from tilestream.frames.decoder import VideoDecodeError, check_segment_alignment, extract_frames


__all__ = [
    "Frame",
    "FrameStore",
    "FrameDecodeError",
    "VideoDecodeError",
    "check_segment_alignment",
    "extract_frames",
]
