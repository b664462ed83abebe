"""
Data Models
===========

Models shared by the tiling engine, the playback coordinator and the
transport layer.

Models:
    Segment:
        - SegmentKey: Composite (frame, offset_x, offset_y) cache key
        - CacheEntry: Memoized render result with expiry
        - TileResponse: Tile payload sent to viewers

    Playback:
        - PlaybackStatus: idle / started
        - PlaybackState: Process-wide playback state
"""

from tilestream.models.segment import ALL_FRAMES, CacheEntry, SegmentKey, TileResponse
from tilestream.models.playback import PlaybackState, PlaybackStatus

__all__ = [
    # Segment
    "ALL_FRAMES",
    "SegmentKey",
    "CacheEntry",
    "TileResponse",
    # Playback
    "PlaybackStatus",
    "PlaybackState",
]
