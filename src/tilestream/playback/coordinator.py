"""
Playback Coordinator
====================

State machine keeping every viewer on the same playback clock.

Transitions:
    start           IDLE → STARTED    broadcast start {interval}
    stop / abort    STARTED → IDLE    current_frame = 0, broadcast stop
    progress(n)     n == frame_count  current_frame = 0, IDLE, broadcast stop

Broadcast-only commands:
    reload [delay]  any state
    sync            IDLE only

Commands issued in a state that disallows them raise Conflict. Callers at
the console or HTTP boundary log it; the state is left unchanged.
"""

import logging
from typing import Callable, Optional

from tilestream.errors import Conflict, Malformed, OutOfBound
from tilestream.models.playback import PlaybackState, PlaybackStatus
from tilestream.playback.hub import Viewer, ViewerHub


logger = logging.getLogger(__name__)


class PlaybackCoordinator:
    """
    Owns the PlaybackState and the ViewerHub.

    Attributes:
        state: The single playback state instance
        hub: Connected viewers

    Example:
        coordinator = PlaybackCoordinator(frame_count=lambda: store.count)
        await coordinator.start()
    """

    def __init__(
        self,
        frame_count: Callable[[], int],
        interval_ms: int = 1000,
        min_interval_warn_ms: int = 500,
        hub: Optional[ViewerHub] = None,
    ) -> None:
        """
        Initialize coordinator.

        Args:
            frame_count: Returns the number of available frames
            interval_ms: Initial frame interval
            min_interval_warn_ms: Intervals below this log an overload warning
            hub: Viewer registry (a new one if omitted)
        """
        self._frame_count = frame_count
        self.min_interval_warn_ms = min_interval_warn_ms
        self.hub = hub or ViewerHub()
        self.state = PlaybackState(interval_ms=interval_ms)

    @property
    def status(self) -> PlaybackStatus:
        return self.state.status

    @property
    def is_started(self) -> bool:
        return self.state.status == PlaybackStatus.STARTED

    def _sync_counts(self) -> None:
        self.state.connected_viewers = self.hub.connected
        self.state.started_viewers = self.hub.started

    async def _broadcast(self, event: str, data=None) -> int:
        delivered = await self.hub.broadcast(event, data)
        self._sync_counts()
        return delivered

    # -------------------------------------------------------------------------
    # Operator commands
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start playback on every viewer."""
        if self.is_started:
            raise Conflict("Playback already started")

        self.state.status = PlaybackStatus.STARTED
        logger.info(f"Playback started (interval={self.state.interval_ms}ms)")
        await self._broadcast("start", {"interval": self.state.interval_ms})

    async def stop(self) -> None:
        """Abort the current run and rewind to frame 0."""
        if not self.is_started:
            raise Conflict("Playback is not started")

        await self._finish()
        logger.info("Playback stopped")

    async def _finish(self) -> None:
        self.state.status = PlaybackStatus.IDLE
        self.state.current_frame = 0
        await self._broadcast("stop")

    def set_interval(self, interval_ms: int) -> None:
        """
        Change the frame interval used by the next start.

        Raises:
            Malformed: If interval_ms is not a positive integer
        """
        if isinstance(interval_ms, bool) or not isinstance(interval_ms, int) or interval_ms <= 0:
            raise Malformed(f"Interval must be a positive integer, got {interval_ms!r}")

        if interval_ms < self.min_interval_warn_ms:
            logger.warning(
                f"Delay interval is less than {self.min_interval_warn_ms}ms! "
                f"This could lead to system overloading."
            )
        if self.is_started:
            logger.warning(
                "Playback in progress: viewers keep their current interval "
                "until the next start"
            )

        self.state.interval_ms = interval_ms
        logger.info(f"Interval set to {interval_ms}ms")

    async def reload(self, delay_ms: Optional[int] = None) -> int:
        """Ask every viewer to reload, optionally after delay_ms."""
        if delay_ms is not None and delay_ms < 0:
            raise Malformed(f"Reload delay must not be negative, got {delay_ms}")
        return await self._broadcast("reload", {"delay": delay_ms})

    async def sync(self) -> int:
        """Ask every viewer to resynchronize. Rejected while started."""
        if self.is_started:
            raise Conflict("Cannot sync while playback is started")
        return await self._broadcast("sync")

    # -------------------------------------------------------------------------
    # Viewer reports
    # -------------------------------------------------------------------------

    async def progress(self, frame_index: int) -> None:
        """
        Record the frame a viewer reached.

        Reaching the last frame ends the run for everyone.

        Raises:
            OutOfBound: If frame_index is outside [0, frame_count]
        """
        frame_count = self._frame_count()
        if frame_index < 0 or frame_index > frame_count:
            raise OutOfBound(
                f"Progress {frame_index} outside [0, {frame_count}]",
                context={"frame": frame_index},
            )

        if frame_count > 0 and frame_index == frame_count:
            logger.info(f"Last frame {frame_count} reached, playback finished")
            await self._finish()
            return

        self.state.current_frame = frame_index

    def viewer_connected(self, viewer: Viewer) -> str:
        viewer_id = self.hub.add(viewer)
        self._sync_counts()
        logger.info(f"Viewer {viewer_id} connected ({self.hub.connected} connected)")
        return viewer_id

    def viewer_disconnected(self, viewer_id: str) -> None:
        if self.hub.remove(viewer_id) is not None:
            logger.info(f"Viewer {viewer_id} disconnected ({self.hub.connected} connected)")
        self._sync_counts()

    def viewer_started(self, viewer_id: str) -> None:
        if self.hub.set_started(viewer_id, True):
            self._sync_counts()
            logger.debug(f"{self.state.started_viewers} of {self.state.connected_viewers} viewers started")

    def viewer_stopped(self, viewer_id: str) -> None:
        if self.hub.set_started(viewer_id, False):
            self._sync_counts()
            logger.debug(f"{self.state.started_viewers} of {self.state.connected_viewers} viewers started")
