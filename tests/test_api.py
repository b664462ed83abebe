"""
HTTP and WebSocket Transport Tests
==================================

Runs the full application (lifespan included) against pre-extracted
frames with fastapi's TestClient.
"""

import json
import time

import numpy as np
import pytest
from fastapi.testclient import TestClient

from tilestream.main import create_app
from tilestream.tiles import decode_data_url

from conftest import make_pixels


@pytest.fixture
def client(app_settings):
    with TestClient(create_app(app_settings)) as client:
        yield client


class TestHttp:
    """Tests for the request/response endpoints."""

    def test_tile(self, client):
        response = client.get("/frames", params={"frame": 2, "offsetX": 1, "offsetY": 1})

        assert response.status_code == 200
        body = response.json()
        assert body["frame"] == 2
        assert (body["width"], body["height"]) == (16, 16)
        assert body["format"] == "png"
        np.testing.assert_array_equal(decode_data_url(body["data"]), make_pixels(2)[:16, :16])

    def test_repeat_request_is_cached(self, client):
        params = {"frame": 3, "offsetX": 4, "offsetY": 2}
        first = client.get("/frames", params=params).json()
        second = client.get("/frames", params=params).json()

        assert first == second
        metrics = client.get("/metrics").json()
        assert metrics["renders"] == 1
        assert metrics["cache"]["hits"] == 1

    def test_all_frames(self, client):
        body = client.get("/frames", params={"frame": "all", "offsetX": 1, "offsetY": 1}).json()

        assert body["frame"] == "all"
        assert len(body["data"]) == 3

    def test_whole_frame(self, client):
        body = client.get("/frames", params={"frame": 1}).json()
        assert (body["width"], body["height"]) == (320, 192)

    @pytest.mark.parametrize("params", [
        {"frame": 0, "offsetX": 1, "offsetY": 1},
        {"frame": 4, "offsetX": 1, "offsetY": 1},
        {"frame": 1, "offsetX": 21, "offsetY": 1},
    ])
    def test_out_of_bound(self, client, params):
        response = client.get("/frames", params=params)

        assert response.status_code == 400
        assert response.json() == {"message": "outOfBound"}

    def test_malformed(self, client):
        response = client.get("/frames", params={"frame": "x", "offsetX": 1, "offsetY": 1})

        assert response.status_code == 400
        assert response.json() == {"message": "malformed"}

    def test_meta(self, client):
        client.get("/frames", params={"frame": 1, "offsetX": 1, "offsetY": 1})

        assert client.get("/meta").json() == {
            "status": "idle",
            "framesReady": True,
            "frameAt": 0,
            "framesCount": 3,
            "intervalMs": 1000,
            "format": "png",
        }

    def test_control(self, client):
        assert client.post("/control", json={"command": "setInterval 800"}).json()["ok"]
        assert client.post("/control", json={"command": "start"}).json()["ok"]

        conflict = client.post("/control", json={"command": "start"}).json()
        assert not conflict["ok"]

        meta = client.get("/meta").json()
        assert meta["status"] == "started"
        assert meta["intervalMs"] == 800

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"


class TestWebSocket:
    """Tests for the viewer push channel."""

    def test_start_broadcast_and_progress(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text(json.dumps({"event": "started"}))
            ws.send_text(json.dumps({"event": "frame", "data": {"frame": 1, "offsetX": 2, "offsetY": 2}}))

            tile = ws.receive_json()
            assert tile["event"] == "frame"
            assert tile["data"]["offsetX"] == 2

            metrics = client.get("/metrics").json()
            assert metrics["connected_viewers"] == 1
            assert metrics["started_viewers"] == 1

            client.post("/control", json={"command": "start"})
            assert ws.receive_json() == {"event": "start", "data": {"interval": 1000}}

            ws.send_text(json.dumps({"event": "frameUpdate", "data": 3}))
            assert ws.receive_json() == {"event": "stop", "data": None}

            meta = client.get("/meta").json()
            assert meta["status"] == "idle"
            assert meta["frameAt"] == 0

    def test_errors_are_events(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text(json.dumps({"event": "frame", "data": {"frame": 9, "offsetX": 1, "offsetY": 1}}))
            error = ws.receive_json()
            assert error["event"] == "error"
            assert error["data"]["kind"] == "outOfBound"

            ws.send_text("not json")
            assert ws.receive_json()["data"]["kind"] == "malformed"

            ws.send_text(json.dumps({"event": "teleport"}))
            assert ws.receive_json()["data"]["kind"] == "unknownEvent"


class TestPersistence:
    """Cache snapshot across application restarts."""

    def test_snapshot_warm_start(self, app_settings):
        app_settings.cache.persist = True
        params = {"frame": 2, "offsetX": 3, "offsetY": 3}

        with TestClient(create_app(app_settings)) as client:
            first = client.get("/frames", params=params).json()

        with TestClient(create_app(app_settings)) as client:
            second = client.get("/frames", params=params).json()
            metrics = client.get("/metrics").json()

        assert first == second
        assert metrics["renders"] == 0
        assert metrics["cache"]["size"] == 1


def wait_for_frame_preparation(client, timeout=5.0):
    task = next(t for t in client.app.state.runtime.tasks if t.get_name() == "prepare_frames")
    deadline = time.monotonic() + timeout
    while not task.done():
        assert time.monotonic() < deadline, "frame preparation did not finish"
        time.sleep(0.01)


@pytest.fixture
def missing_video_settings(app_settings, tmp_path):
    """Settings that try to decode a video that does not exist."""
    app_settings.video.skip_processing = False
    app_settings.video.filename = str(tmp_path / "missing.mp4")
    app_settings.playback.ready_timeout_seconds = 0.05
    return app_settings


class TestFramePreparation:
    """Startup failures leave the server running."""

    def test_missing_video_without_frames(self, missing_video_settings, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        missing_video_settings.video.frames_dir = str(empty)

        with TestClient(create_app(missing_video_settings)) as client:
            wait_for_frame_preparation(client)

            assert client.get("/meta").json()["framesReady"] is False
            assert client.get("/health").json()["status"] == "healthy"

            response = client.get("/frames", params={"frame": 1, "offsetX": 1, "offsetY": 1})
            assert response.status_code == 503
            assert response.json() == {"message": "framesNotReady"}

    def test_missing_video_serves_earlier_frames(self, missing_video_settings):
        with TestClient(create_app(missing_video_settings)) as client:
            wait_for_frame_preparation(client)

            meta = client.get("/meta").json()
            assert meta["framesReady"] is True
            assert meta["framesCount"] == 3

            response = client.get("/frames", params={"frame": 3, "offsetX": 1, "offsetY": 1})
            assert response.status_code == 200

    def test_undecodable_frame(self, app_settings, frames_dir, caplog):
        (frames_dir / "frame-002.png").write_bytes(b"not a png")
        app_settings.playback.ready_timeout_seconds = 0.05

        with TestClient(create_app(app_settings)) as client:
            wait_for_frame_preparation(client)

            assert client.get("/meta").json()["framesReady"] is False
            assert client.get("/health").json()["status"] == "healthy"
            response = client.get("/frames", params={"frame": 1, "offsetX": 1, "offsetY": 1})
            assert response.status_code == 503

        assert any("Frame preparation failed" in r.getMessage() for r in caplog.records)
