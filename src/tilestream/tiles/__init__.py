"""
Tiles Module
============

On-demand tiling engine.

Components:
    - render / render_batch: Cut segments out of frames
    - TileEncoder: Encode pixel buffers as png/jpeg data URLs
    - SegmentCache: Time-bounded tile memo with snapshot persistence
    - TileService: Request lookup protocol (parse, wait, hit or render)
"""

from tilestream.tiles.renderer import (
    TileEncodeError,
    TileEncoder,
    decode_data_url,
    render,
    render_batch,
)
from tilestream.tiles.cache import SegmentCache
from tilestream.tiles.service import TileService, parse_key


__all__ = [
    "render",
    "render_batch",
    "TileEncoder",
    "TileEncodeError",
    "decode_data_url",
    "SegmentCache",
    "TileService",
    "parse_key",
]
