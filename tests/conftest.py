"""
Test Configuration
==================

Pytest fixtures and test configuration for tilestream.

Frames are synthetic: every pixel encodes its own coordinates and the
frame index, so any misplaced crop shows up as a pixel mismatch.
"""

from pathlib import Path

import cv2
import numpy as np
import pytest

from tilestream.config import Settings
from tilestream.frames import Frame, FrameStore


FRAME_WIDTH = 320
FRAME_HEIGHT = 192
SEGMENT = 16


def make_pixels(index: int, width: int = FRAME_WIDTH, height: int = FRAME_HEIGHT) -> np.ndarray:
    ys, xs = np.indices((height, width))
    pixels = np.zeros((height, width, 3), dtype=np.uint8)
    pixels[..., 0] = xs % 256
    pixels[..., 1] = ys % 256
    pixels[..., 2] = (index * 50) % 256
    return pixels


def make_frame(index: int, width: int = FRAME_WIDTH, height: int = FRAME_HEIGHT) -> Frame:
    return Frame(index=index, pixels=make_pixels(index, width, height))


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingViewer:
    """Viewer stand-in that records pushed messages."""

    def __init__(self, fail: bool = False) -> None:
        self.messages = []
        self.fail = fail

    async def send_json(self, data) -> None:
        if self.fail:
            raise ConnectionError("viewer gone")
        self.messages.append(data)

    @property
    def events(self) -> list:
        return [message["event"] for message in self.messages]


@pytest.fixture
def frames():
    """Three 320x192 frames (20x12 segments of 16x16)."""
    return [make_frame(i) for i in range(1, 4)]


@pytest.fixture
def ready_store(frames):
    """FrameStore already populated with three frames."""
    store = FrameStore()
    store.populate(frames)
    return store


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def frames_dir(tmp_path) -> Path:
    """Directory with frame-001.png .. frame-003.png."""
    directory = tmp_path / "frames"
    directory.mkdir()
    for i in range(1, 4):
        cv2.imwrite(str(directory / f"frame-{i:03d}.png"), make_pixels(i))
    return directory


@pytest.fixture
def app_settings(tmp_path, frames_dir) -> Settings:
    """Settings for an app that loads pre-extracted frames, no console."""
    return Settings.model_validate({
        "video": {
            "frames_dir": str(frames_dir),
            "skip_processing": True,
        },
        "segment": {"width": SEGMENT, "height": SEGMENT},
        "cache": {
            "lifetime_seconds": 600,
            "snapshot_path": str(tmp_path / "cache.json"),
        },
        "console": {"enabled": False},
    })
