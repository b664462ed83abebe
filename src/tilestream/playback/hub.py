"""
Viewer Hub
==========

Registry of connected viewers and the push channel to reach them.

Wire format of every pushed message:
    {"event": "<name>", "data": <payload or null>}

A viewer whose send fails is dropped from the registry.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol


logger = logging.getLogger(__name__)


class Viewer(Protocol):
    """Anything that can receive JSON messages (e.g. a FastAPI WebSocket)."""

    async def send_json(self, data: Any) -> None:
        ...


@dataclass
class ViewerSession:
    """One connected viewer and whether it acknowledged start."""

    viewer_id: str
    viewer: Viewer
    started: bool = False


def make_message(event: str, data: Any = None) -> dict:
    return {"event": event, "data": data}


class ViewerHub:
    """
    Tracks connected viewers and broadcasts events to them.

    Example:
        hub = ViewerHub()
        viewer_id = hub.add(websocket)

        await hub.broadcast("start", {"interval": 1000})
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, ViewerSession] = {}

    @property
    def connected(self) -> int:
        return len(self._sessions)

    @property
    def started(self) -> int:
        return sum(1 for session in self._sessions.values() if session.started)

    def add(self, viewer: Viewer) -> str:
        viewer_id = uuid.uuid4().hex
        self._sessions[viewer_id] = ViewerSession(viewer_id=viewer_id, viewer=viewer)
        return viewer_id

    def remove(self, viewer_id: str) -> Optional[ViewerSession]:
        return self._sessions.pop(viewer_id, None)

    def set_started(self, viewer_id: str, started: bool) -> bool:
        """
        Update a viewer's started flag.

        Returns:
            True if the flag changed. Unknown viewers are ignored.
        """
        session = self._sessions.get(viewer_id)
        if session is None or session.started == started:
            return False
        session.started = started
        return True

    async def send(self, viewer_id: str, event: str, data: Any = None) -> bool:
        """Send one event to one viewer, dropping it if the send fails."""
        session = self._sessions.get(viewer_id)
        if session is None:
            return False
        try:
            await session.viewer.send_json(make_message(event, data))
        except Exception as e:
            logger.warning(f"Dropping viewer {viewer_id}: {e}")
            self._sessions.pop(viewer_id, None)
            return False
        return True

    async def broadcast(self, event: str, data: Any = None) -> int:
        """
        Send an event to every connected viewer.

        Returns:
            Number of viewers that received it
        """
        delivered = 0
        for viewer_id in list(self._sessions):
            if await self.send(viewer_id, event, data):
                delivered += 1

        logger.info(f"Broadcast '{event}' to {delivered} viewer(s)")
        return delivered
