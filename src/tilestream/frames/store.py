"""
Frame Store
===========

In-memory, 1-indexed sequence of decoded frames with a readiness signal.

Design Rules:
    - Populated exactly once by load()
    - Readiness is a one-shot asyncio.Event: every waiter wakes when it fires
    - Image decoding runs in worker threads so request handling never stalls
    - An empty frames directory still fires readiness (lookups -> NotFound)
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import List, Optional, Tuple

import cv2

from tilestream.errors import NotFound
from tilestream.frames.frame import Frame


logger = logging.getLogger(__name__)

FRAME_FILE_PATTERN = re.compile(r"^frame-(\d+)\.png$")


class FrameDecodeError(Exception):
    """Raised when a frame file cannot be decoded."""
    pass


def list_frame_files(directory: Path) -> List[Path]:
    """
    List frame-NNN.png files in display order.

    Args:
        directory: Directory holding extracted frames

    Returns:
        Paths sorted by their numeric index. Empty if the directory is missing.
    """
    if not directory.is_dir():
        return []

    indexed = []
    for path in directory.iterdir():
        match = FRAME_FILE_PATTERN.match(path.name)
        if match:
            indexed.append((int(match.group(1)), path))

    return [path for _, path in sorted(indexed)]


def read_frame(path: Path, index: int) -> Frame:
    """Decode one frame file (blocking)."""
    pixels = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if pixels is None:
        raise FrameDecodeError(f"Failed to decode frame {index}: {path}")
    return Frame(index=index, pixels=pixels)


class FrameStore:
    """
    Read-only, 1-indexed collection of decoded frames.

    Example:
        store = FrameStore()
        asyncio.create_task(store.load(Path("./files/frames")))

        await store.wait_ready()
        frame = store.get(1)
    """

    def __init__(self) -> None:
        self._frames: Tuple[Frame, ...] = ()
        self._ready = asyncio.Event()
        self._loading = False

    @property
    def ready(self) -> bool:
        """Whether loading finished."""
        return self._ready.is_set()

    @property
    def count(self) -> int:
        """Number of loaded frames (0 until ready)."""
        return len(self._frames)

    @property
    def frames(self) -> Tuple[Frame, ...]:
        """All frames in display order."""
        return self._frames

    async def load(self, directory: Path) -> int:
        """
        Load every frame file from a directory, then fire readiness.

        Args:
            directory: Directory holding frame-NNN.png files

        Returns:
            Number of frames loaded

        Raises:
            RuntimeError: If load() was already called
            FrameDecodeError: If a file cannot be decoded (readiness stays unset)
        """
        if self._loading or self.ready:
            raise RuntimeError("FrameStore is populated only once")
        self._loading = True

        paths = list_frame_files(Path(directory))
        if not paths:
            logger.warning(f"No frame files found in {directory}")

        frames = []
        for index, path in enumerate(paths, start=1):
            frames.append(await asyncio.to_thread(read_frame, path, index))

        self.populate(frames)
        logger.info(f"Frames loaded: {len(frames)}")
        return len(frames)

    def populate(self, frames: List[Frame]) -> None:
        """Install frames directly and fire readiness."""
        if self.ready:
            raise RuntimeError("FrameStore is populated only once")
        self._frames = tuple(frames)
        self._ready.set()

    async def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """
        Suspend until frames are ready.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            True once ready, False if the timeout elapsed first.
        """
        if self.ready:
            return True
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def get(self, index: int) -> Frame:
        """
        Look up a frame by its 1-based index.

        Raises:
            NotFound: If no frame has that index
        """
        if index < 1 or index > len(self._frames):
            raise NotFound(f"No frame with index {index}", context={"frame": index})
        return self._frames[index - 1]
