"""
Error Taxonomy
==============

Exceptions raised by the tiling engine and the playback coordinator.

Every error carries a machine-readable ``code`` that the transport
boundary sends back to clients verbatim. None of these errors are fatal:
request and command handlers catch ``TileStreamError`` and turn it into
a structured response or a log line.
"""

from typing import Any, Optional


class TileStreamError(Exception):
    """Base class for all tilestream errors."""

    code: str = "error"
    status_code: int = 400

    def __init__(self, message: str = "", context: Optional[Any] = None) -> None:
        super().__init__(message or self.code)
        self.context = context

    def to_dict(self) -> dict:
        """Payload for HTTP error responses."""
        return {"message": self.code}


class OutOfBound(TileStreamError):
    """Frame index or segment offset outside the valid range."""

    code = "outOfBound"


class NotFound(TileStreamError):
    """Frame index has no backing image."""

    code = "invalid frame"


class Malformed(TileStreamError):
    """Input that cannot be parsed (non-numeric offset, bad argument)."""

    code = "malformed"


class Conflict(TileStreamError):
    """Playback command issued in a state that disallows it."""

    code = "conflict"
    status_code = 409


class SourceMissing(TileStreamError):
    """Decode-stage prerequisite (source video) is absent."""

    code = "sourceMissing"
    status_code = 500


class FramesNotReady(TileStreamError):
    """Frames did not become ready within the configured wait."""

    code = "framesNotReady"
    status_code = 503
