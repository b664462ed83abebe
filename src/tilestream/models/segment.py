"""
Segment Models
==============

Cache keys, cache entries and the tile response contract.

SegmentKey:
    Structured composite key (frame, offset_x, offset_y). It is hashed as
    a tuple, so distinct keys can never collide the way concatenated
    strings do ("1" + "2" + "" == "12" + "" + "").

Tile response contract (HTTP and WebSocket):
    {
        "frame": 2 | "all",
        "offsetX": 1,
        "offsetY": 1,
        "width": 16,
        "height": 16,
        "data": "data:image/png;base64,..." | ["data:image/png;base64,...", ...],
        "format": "png"
    }
"""

from dataclasses import dataclass
from typing import List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


ALL_FRAMES = "all"

FrameSelector = Union[int, Literal["all"]]
TileData = Union[str, List[str]]


@dataclass(frozen=True, slots=True)
class SegmentKey:
    """
    Composite cache key for one tile request.

    Attributes:
        frame: 1-based frame index, or "all" for the per-frame batch
        offset_x: Horizontal segment offset (non-positive = whole frame)
        offset_y: Vertical segment offset (non-positive = whole frame)
    """

    frame: FrameSelector
    offset_x: int
    offset_y: int

    @property
    def is_batch(self) -> bool:
        return self.frame == ALL_FRAMES

    def to_list(self) -> list:
        return [self.frame, self.offset_x, self.offset_y]

    @classmethod
    def from_list(cls, raw: list) -> "SegmentKey":
        frame, offset_x, offset_y = raw
        if frame != ALL_FRAMES:
            frame = int(frame)
        return cls(frame=frame, offset_x=int(offset_x), offset_y=int(offset_y))


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """
    One memoized render result.

    Replaced wholesale on overwrite, never mutated.

    Attributes:
        width: Width of each encoded image in pixels
        height: Height of each encoded image in pixels
        data: Encoded payload, or ordered payloads for a batch key
        format: Image format of the payload(s)
        expires_at: UNIX timestamp (seconds) after which the entry is stale
    """

    width: int
    height: int
    data: TileData
    format: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now

    def to_dict(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "data": self.data,
            "format": self.format,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "CacheEntry":
        data = raw["data"]
        if not isinstance(data, (str, list)):
            raise ValueError(f"Invalid cache entry data type: {type(data).__name__}")
        return cls(
            width=int(raw["width"]),
            height=int(raw["height"]),
            data=data,
            format=str(raw["format"]),
            expires_at=float(raw["expires_at"]),
        )

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the payload."""
        count = len(self.data) if isinstance(self.data, list) else 1
        return (
            f"CacheEntry({self.width}x{self.height}, {self.format}, "
            f"payloads={count}, expires_at={self.expires_at:.3f})"
        )


class TileResponse(BaseModel):
    """
    Tile payload returned to viewers.

    Field aliases match the wire names used by the viewer client.
    """

    model_config = ConfigDict(populate_by_name=True)

    frame: FrameSelector = Field(..., description="Requested frame selector")
    offset_x: int = Field(..., alias="offsetX", description="Horizontal offset")
    offset_y: int = Field(..., alias="offsetY", description="Vertical offset")
    width: int = Field(..., ge=0, description="Tile width in pixels")
    height: int = Field(..., ge=0, description="Tile height in pixels")
    data: TileData = Field(..., description="Encoded image data URL(s)")
    format: str = Field(..., description="Image format")

    @classmethod
    def from_entry(cls, key: SegmentKey, entry: CacheEntry) -> "TileResponse":
        return cls(
            frame=key.frame,
            offset_x=key.offset_x,
            offset_y=key.offset_y,
            width=entry.width,
            height=entry.height,
            data=entry.data,
            format=entry.format,
        )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)
