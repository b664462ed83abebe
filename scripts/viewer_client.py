#!/usr/bin/env python3
"""
Headless Viewer Client
======================

Standalone viewer for exercising the playback push channel.

This script:
    1. Connects to a running tilestream server's /ws channel
    2. Acknowledges "start", then advances one frame per interval,
       requesting one tile per frame and reporting progress
    3. Acknowledges "stop" and waits for the next start
    4. Reports a final summary after the configured duration

Prerequisites:
    - tilestream must be running at the configured URL
    - Start playback from the operator console ("start")

Usage:
    python scripts/viewer_client.py --duration 60
    python scripts/viewer_client.py --url ws://localhost:8080/ws --offset 3 2
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import time
from typing import Optional

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import websockets
from websockets.exceptions import ConnectionClosed

from tilestream.playback.hub import make_message


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


class ViewerStats:
    """Counters reported in the final summary."""

    def __init__(self) -> None:
        self.starts = 0
        self.stops = 0
        self.tiles_received = 0
        self.errors = 0
        self.last_frame = 0


async def play(ws, interval_ms: int, offset_x: int, offset_y: int, stats: ViewerStats) -> None:
    """Advance frames on the dispatched interval until cancelled."""
    frame = 0
    while True:
        await asyncio.sleep(interval_ms / 1000.0)
        frame += 1
        await ws.send(json.dumps(make_message(
            "frame",
            {"frame": frame, "offsetX": offset_x, "offsetY": offset_y},
        )))
        await ws.send(json.dumps(make_message("frameUpdate", frame)))
        stats.last_frame = frame


async def run_viewer(url: str, duration: int, offset_x: int, offset_y: int) -> ViewerStats:
    """
    Run the viewer until duration elapses.

    Args:
        url: WebSocket URL of the tilestream /ws channel
        duration: Run time in seconds
        offset_x: Segment column to request each frame
        offset_y: Segment row to request each frame

    Returns:
        Collected stats
    """
    logger.info("=" * 60)
    logger.info("Headless Viewer")
    logger.info("=" * 60)
    logger.info(f"Server URL: {url}")
    logger.info(f"Duration: {duration} seconds")
    logger.info(f"Segment: ({offset_x}, {offset_y})")
    logger.info("=" * 60)

    stats = ViewerStats()
    player: Optional[asyncio.Task] = None

    async def stop_player() -> None:
        nonlocal player
        if player is not None:
            player.cancel()
            try:
                await player
            except asyncio.CancelledError:
                pass
            player = None

    async with websockets.connect(url) as ws:
        deadline = time.time() + duration
        try:
            while time.time() < deadline:
                try:
                    raw = await asyncio.wait_for(ws.recv(), timeout=max(deadline - time.time(), 0.1))
                except asyncio.TimeoutError:
                    break

                message = json.loads(raw)
                event, data = message.get("event"), message.get("data")

                if event == "start":
                    stats.starts += 1
                    interval = (data or {}).get("interval", 1000)
                    logger.info(f"Start received (interval={interval}ms)")
                    await stop_player()
                    await ws.send(json.dumps(make_message("started")))
                    player = asyncio.create_task(play(ws, interval, offset_x, offset_y, stats))
                elif event == "stop":
                    stats.stops += 1
                    logger.info(f"Stop received at frame {stats.last_frame}")
                    await stop_player()
                    await ws.send(json.dumps(make_message("stopped")))
                elif event == "frame":
                    stats.tiles_received += 1
                elif event == "error":
                    stats.errors += 1
                    logger.warning(f"Server error: {data}")
                else:
                    logger.info(f"Event '{event}': {data}")
        except ConnectionClosed as e:
            logger.warning(f"Connection closed: {e}")
        finally:
            await stop_player()

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Starts: {stats.starts}")
    logger.info(f"Stops: {stats.stops}")
    logger.info(f"Tiles received: {stats.tiles_received}")
    logger.info(f"Errors: {stats.errors}")
    logger.info(f"Last frame: {stats.last_frame}")
    logger.info("=" * 60)

    return stats


def main():
    parser = argparse.ArgumentParser(description="Headless tilestream viewer")
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("TILESTREAM_WS_URL", "ws://localhost:80/ws"),
        help="WebSocket URL of the tilestream server",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=120,
        help="Run time in seconds (default: 120)",
    )
    parser.add_argument(
        "--offset",
        type=int,
        nargs=2,
        default=(1, 1),
        metavar=("X", "Y"),
        help="Segment offset to request each frame (default: 1 1)",
    )

    args = parser.parse_args()

    stats = asyncio.run(run_viewer(
        url=args.url,
        duration=args.duration,
        offset_x=args.offset[0],
        offset_y=args.offset[1],
    ))

    sys.exit(0 if stats.errors == 0 else 1)


if __name__ == "__main__":
    main()
