"""
tilestream
==========

On-demand video frame tiling server with a shared playback clock.

The server decodes a video into frames, cuts each frame into fixed-size
segments on request, memoizes the encoded segments in a time-bounded
cache, and keeps connected viewers in step through push events.

Components:
    - frames: Video decoding and the in-memory FrameStore
    - tiles: Renderer, encoder, SegmentCache and the TileService lookup
    - playback: ViewerHub and the PlaybackCoordinator state machine
    - console: Operator commands
    - main: FastAPI application (HTTP + WebSocket)

Example:
    uvicorn tilestream.main:app --port 8080
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
