"""
Playback State Models
=====================

Process-wide playback state shared by all connected viewers.

States:
    IDLE → STARTED   on the operator "start" command
    STARTED → IDLE   on "stop"/"abort", or when a viewer reports the last frame

Invariants:
    - current_frame stays within [0, frame_count]
    - started_viewers <= connected_viewers
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PlaybackStatus(str, Enum):
    """
    Discrete playback states.

    Attributes:
        IDLE: No run in progress, viewers are waiting
        STARTED: Viewers are advancing frames on the shared interval
    """

    IDLE = "idle"
    STARTED = "started"


class PlaybackState(BaseModel):
    """
    Mutable playback state owned by the PlaybackCoordinator.

    Assignments are validated so a counter can never drop below zero.

    Attributes:
        status: Current playback status
        current_frame: Last frame index reported by a viewer (0 = not started)
        interval_ms: Frame interval dispatched with the next start
        connected_viewers: Number of open viewer connections
        started_viewers: Viewers that acknowledged the current start
    """

    model_config = ConfigDict(validate_assignment=True)

    status: PlaybackStatus = Field(
        default=PlaybackStatus.IDLE,
        description="Current playback status",
    )

    current_frame: int = Field(
        default=0,
        ge=0,
        description="Last frame index reported by a viewer",
    )

    interval_ms: int = Field(
        default=1000,
        gt=0,
        description="Frame interval in milliseconds",
    )

    connected_viewers: int = Field(
        default=0,
        ge=0,
        description="Number of connected viewers",
    )

    started_viewers: int = Field(
        default=0,
        ge=0,
        description="Number of viewers that acknowledged start",
    )
