"""
Tile Service
============

Lookup protocol for tile requests coming from any transport.

Steps:
    1. Parse raw inputs (strings from a query string, JSON values from a
       WebSocket) into a SegmentKey; reject garbage as Malformed and
       non-positive frames as OutOfBound
    2. Wait for the FrameStore readiness signal
    3. Reject frames past the end as OutOfBound
    4. Return the cached entry verbatim on a hit
    5. On a miss render and encode in a worker thread, then cache the
       result with the configured TTL and return it
"""

import asyncio
import logging
import re
from typing import Any, Optional, Tuple

from tilestream.errors import FramesNotReady, Malformed, OutOfBound
from tilestream.frames.store import FrameStore
from tilestream.models.segment import (
    ALL_FRAMES,
    CacheEntry,
    FrameSelector,
    SegmentKey,
    TileData,
    TileResponse,
)
from tilestream.tiles.cache import SegmentCache
from tilestream.tiles.renderer import TileEncoder, is_whole_frame, render, render_batch


logger = logging.getLogger(__name__)

# ASCII digits only: no "+", "_" separators or other scripts' digits
INTEGER_PATTERN = re.compile(r"-?[0-9]+")


def parse_int(raw: Any, name: str) -> int:
    if isinstance(raw, bool):
        raise Malformed(f"{name} must be an integer", context={name: raw})
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and INTEGER_PATTERN.fullmatch(raw.strip()):
        return int(raw.strip())
    raise Malformed(f"{name} must be an integer, got {raw!r}", context={name: raw})


def parse_frame(raw: Any) -> FrameSelector:
    """
    Parse a frame selector.

    Returns:
        Positive frame index or "all"

    Raises:
        Malformed: If the selector is neither an integer nor "all"
        OutOfBound: If the index is not positive
    """
    if isinstance(raw, str) and raw.strip().lower() == ALL_FRAMES:
        return ALL_FRAMES
    if raw is None:
        raise Malformed("frame is required", context={"frame": raw})

    index = parse_int(raw, "frame")
    if index < 1:
        raise OutOfBound(f"Frame {index} is not positive", context={"frame": index})
    return index


def parse_offset(raw: Any, name: str) -> int:
    """Parse a segment offset. Missing offsets mean whole frame (0)."""
    if raw is None or raw == "":
        return 0
    return parse_int(raw, name)


def parse_key(frame: Any, offset_x: Any, offset_y: Any) -> SegmentKey:
    """Build a SegmentKey from untyped transport inputs."""
    return SegmentKey(
        frame=parse_frame(frame),
        offset_x=parse_offset(offset_x, "offsetX"),
        offset_y=parse_offset(offset_y, "offsetY"),
    )


class TileService:
    """
    Serve tiles from the cache, rendering on a miss.

    Attributes:
        renders: Number of render calls made (cache misses that rendered)

    Example:
        service = TileService(store, cache, TileEncoder("png"), 16, 16)
        tile = await service.get_tile("2", "1", "1")
    """

    def __init__(
        self,
        store: FrameStore,
        cache: Optional[SegmentCache],
        encoder: TileEncoder,
        segment_width: int,
        segment_height: int,
        ready_timeout: Optional[float] = None,
    ) -> None:
        """
        Initialize tile service.

        Args:
            store: Frame source
            cache: Segment cache, or None to render every request
            encoder: Tile encoder (fixes the output format)
            segment_width: Segment width in pixels
            segment_height: Segment height in pixels
            ready_timeout: Max seconds to wait for frames (None = forever)
        """
        self.store = store
        self.cache = cache
        self.encoder = encoder
        self.segment_width = segment_width
        self.segment_height = segment_height
        self.ready_timeout = ready_timeout
        self.renders: int = 0

    @property
    def format(self) -> str:
        return self.encoder.format

    async def get_tile(self, frame: Any, offset_x: Any = None, offset_y: Any = None) -> TileResponse:
        """
        Resolve a tile request.

        Raises:
            Malformed: Unparseable input
            OutOfBound: Frame or segment outside the valid range
            NotFound: Frame index without data
            FramesNotReady: Frames did not load within ready_timeout
        """
        key = parse_key(frame, offset_x, offset_y)

        if not await self.store.wait_ready(self.ready_timeout):
            raise FramesNotReady("Frames are still loading", context={"frame": key.frame})

        if not key.is_batch and key.frame > self.store.count:
            raise OutOfBound(
                f"Frame {key.frame} past last frame {self.store.count}",
                context={"frame": key.frame},
            )

        entry = self.cache.get(key) if self.cache is not None else None
        if entry is None:
            entry = await self._render(key)

        return TileResponse.from_entry(key, entry)

    async def _render(self, key: SegmentKey) -> CacheEntry:
        """Render in a worker thread, then cache on the event loop."""
        self.renders += 1
        width, height, data = await asyncio.to_thread(self._render_payload, key)

        if self.cache is None:
            return CacheEntry(
                width=width,
                height=height,
                data=data,
                format=self.format,
                expires_at=0.0,
            )

        return self.cache.store(key, width=width, height=height, data=data, format=self.format)

    def _render_payload(self, key: SegmentKey) -> Tuple[int, int, TileData]:
        """Slice and encode (blocking)."""
        sw, sh = self.segment_width, self.segment_height

        if key.is_batch:
            tiles = render_batch(self.store.frames, sw, sh, key.offset_x, key.offset_y)
            data = [self.encoder.encode(tile) for tile in tiles]
            if tiles:
                height, width = tiles[0].shape[:2]
            elif is_whole_frame(key.offset_x, key.offset_y):
                width, height = 0, 0
            else:
                width, height = sw, sh
        else:
            tile = render(self.store.get(key.frame), sw, sh, key.offset_x, key.offset_y)
            data = self.encoder.encode(tile)
            height, width = tile.shape[:2]

        return width, height, data
