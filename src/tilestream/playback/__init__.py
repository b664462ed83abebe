"""
Playback Module
===============

Shared playback clock for connected viewers.

Components:
    - ViewerHub: Connected viewers and the push channel
    - PlaybackCoordinator: idle/started state machine and progress tracking
"""

from tilestream.playback.hub import Viewer, ViewerHub, ViewerSession
from tilestream.playback.coordinator import PlaybackCoordinator

__all__ = [
    "Viewer",
    "ViewerHub",
    "ViewerSession",
    "PlaybackCoordinator",
]
