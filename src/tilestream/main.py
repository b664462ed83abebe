"""
tilestream Main Application
===========================

FastAPI entry point for the frame tiling server.

Startup:
    1. Restore the segment cache snapshot (when persistence is enabled)
    2. Decode the source video into frames (unless skip_processing)
    3. Load frames into the FrameStore and fire readiness
    4. Run the cache sweeper and the operator console in the background

Shutdown:
    Background tasks are cancelled, then the cache snapshot is written.

Endpoints:
    GET  /         - Service information
    GET  /health   - Liveness probe
    GET  /meta     - Playback and frame metadata
    GET  /metrics  - Cache and viewer counters
    GET  /frames   - Tile request (frame, offsetX, offsetY)
    POST /control  - Run an operator console command
    WS   /ws       - Viewer push channel
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, List, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from tilestream import __version__
from tilestream.config import Settings, settings as default_settings
from tilestream.console import OperatorConsole
from tilestream.errors import SourceMissing, TileStreamError
from tilestream.frames import FrameStore, check_segment_alignment, extract_frames
from tilestream.frames.store import list_frame_files
from tilestream.playback import PlaybackCoordinator
from tilestream.tiles import SegmentCache, TileEncoder, TileService
from tilestream.tiles.service import parse_int


logger = logging.getLogger(__name__)


# =============================================================================
# Runtime
# =============================================================================

@dataclass
class Runtime:
    """Components owned by one running application."""

    settings: Settings
    store: FrameStore
    cache: Optional[SegmentCache]
    tiles: TileService
    coordinator: PlaybackCoordinator
    console: OperatorConsole
    startup_time: float = field(default_factory=time.time)
    tasks: List[asyncio.Task] = field(default_factory=list)


def build_runtime(settings: Settings) -> Runtime:
    """Create all components from settings."""
    store = FrameStore()

    cache = None
    if settings.cache.enabled:
        cache = SegmentCache(ttl=settings.cache.lifetime_seconds)
    else:
        logger.info("Segment cache disabled, every request renders")

    tiles = TileService(
        store=store,
        cache=cache,
        encoder=TileEncoder(settings.encoding.format, settings.encoding.jpeg_quality),
        segment_width=settings.segment.width,
        segment_height=settings.segment.height,
        ready_timeout=settings.playback.ready_timeout_seconds or None,
    )

    coordinator = PlaybackCoordinator(
        frame_count=lambda: store.count,
        interval_ms=settings.playback.interval_ms,
        min_interval_warn_ms=settings.playback.min_interval_warn_ms,
    )

    return Runtime(
        settings=settings,
        store=store,
        cache=cache,
        tiles=tiles,
        coordinator=coordinator,
        console=OperatorConsole(coordinator),
    )


async def prepare_frames(store: FrameStore, settings: Settings) -> None:
    """
    Decode the video (unless skipped) and load frames.

    Failures are logged and leave the store not ready. A missing source
    video still serves frames extracted by an earlier run, if any.
    """
    video = settings.video
    frames_dir = Path(video.frames_dir)

    check_segment_alignment(
        video.width, video.height,
        settings.segment.width, settings.segment.height,
    )

    try:
        if video.skip_processing:
            logger.info("Skipped video processing")
        else:
            try:
                await asyncio.to_thread(
                    extract_frames,
                    Path(video.filename),
                    frames_dir,
                    video.width,
                    video.height,
                    video.fps,
                )
            except SourceMissing as e:
                logger.error(str(e))
                if not list_frame_files(frames_dir):
                    logger.error("No previously extracted frames, frames will not be ready")
                    return
                logger.warning(f"Serving previously extracted frames from {frames_dir}")

        await store.load(frames_dir)

    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"Frame preparation failed: {e}")


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    settings: Settings = app.state.settings
    runtime = build_runtime(settings)
    app.state.runtime = runtime

    logger.info(f"Starting tilestream {__version__}")

    if runtime.cache is not None and settings.cache.persist:
        runtime.cache.restore_snapshot(Path(settings.cache.snapshot_path))

    runtime.tasks.append(asyncio.create_task(
        prepare_frames(runtime.store, settings),
        name="prepare_frames",
    ))

    if runtime.cache is not None:
        runtime.tasks.append(asyncio.create_task(
            runtime.cache.run_sweeper(settings.cache.sweep_interval_seconds),
            name="cache_sweeper",
        ))

    if settings.console.enabled:
        runtime.tasks.append(asyncio.create_task(
            runtime.console.run(),
            name="operator_console",
        ))

    yield

    # Shutdown
    logger.info("Shutting down gracefully...")

    for task in runtime.tasks:
        task.cancel()
    for task in runtime.tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Background task {task.get_name()} failed: {e}")

    if runtime.cache is not None and settings.cache.persist:
        try:
            runtime.cache.save_snapshot(Path(settings.cache.snapshot_path))
        except OSError as e:
            logger.error(f"Failed to save cache snapshot: {e}")

    logger.info("Shutdown complete")


# =============================================================================
# Request Models
# =============================================================================

class ControlRequest(BaseModel):
    """Operator command sent over HTTP."""

    command: str = Field(..., min_length=1, description="Console command line")


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Configuration; the global settings if omitted
    """
    app = FastAPI(
        title="tilestream",
        description="On-demand video frame tiling server",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings or default_settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"{request.method} {request.url.path} {response.status_code} - {elapsed_ms:.1f} ms"
        )
        return response

    @app.exception_handler(TileStreamError)
    async def tilestream_error(request: Request, exc: TileStreamError) -> JSONResponse:
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    # -------------------------------------------------------------------------
    # HTTP Endpoints
    # -------------------------------------------------------------------------

    @app.get("/")
    async def root() -> JSONResponse:
        """Service information endpoint."""
        return JSONResponse({
            "service": "tilestream",
            "version": __version__,
            "status": "running",
        })

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        """Liveness probe - always 200 while the process runs."""
        runtime = get_runtime(request)
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": round(time.time() - runtime.startup_time, 1),
        })

    @app.get("/meta")
    async def meta(request: Request) -> JSONResponse:
        """Playback and frame metadata polled by viewers."""
        runtime = get_runtime(request)
        state = runtime.coordinator.state
        return JSONResponse({
            "status": state.status.value,
            "framesReady": runtime.store.ready,
            "frameAt": state.current_frame,
            "framesCount": runtime.store.count,
            "intervalMs": state.interval_ms,
            "format": runtime.tiles.format,
        })

    @app.get("/metrics")
    async def metrics(request: Request) -> JSONResponse:
        """Detailed metrics for observability."""
        runtime = get_runtime(request)
        state = runtime.coordinator.state
        cache_metrics = runtime.cache.metrics() if runtime.cache is not None else {}
        return JSONResponse({
            "uptime_seconds": round(time.time() - runtime.startup_time, 1),
            "renders": runtime.tiles.renders,
            "cache": cache_metrics,
            "connected_viewers": state.connected_viewers,
            "started_viewers": state.started_viewers,
        })

    @app.get("/frames")
    async def frames(
        request: Request,
        frame: Optional[str] = None,
        offsetX: Optional[str] = None,
        offsetY: Optional[str] = None,
    ) -> JSONResponse:
        """Serve one tile, or one tile per frame for frame=all."""
        runtime = get_runtime(request)
        tile = await runtime.tiles.get_tile(frame, offsetX, offsetY)
        return JSONResponse(tile.to_wire())

    @app.post("/control")
    async def control(request: Request, body: ControlRequest) -> JSONResponse:
        """Run an operator console command."""
        runtime = get_runtime(request)
        result = await runtime.console.execute(body.command)
        return JSONResponse({"ok": result.ok, "message": result.message})

    # -------------------------------------------------------------------------
    # WebSocket Endpoints
    # -------------------------------------------------------------------------

    @app.websocket("/ws")
    async def viewer_channel(websocket: WebSocket) -> None:
        """Push channel for playback events and tile requests."""
        runtime: Runtime = websocket.app.state.runtime
        coordinator = runtime.coordinator

        await websocket.accept()
        viewer_id = coordinator.viewer_connected(websocket)

        try:
            while True:
                raw = await websocket.receive_text()
                await handle_viewer_message(runtime, viewer_id, raw)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.warning(f"WebSocket error: {e}")
        finally:
            coordinator.viewer_disconnected(viewer_id)

    return app


async def handle_viewer_message(runtime: Runtime, viewer_id: str, raw: str) -> None:
    """
    Handle one client→server event.

    Events:
        started              viewer acknowledged start
        stopped              viewer acknowledged stop
        frameUpdate <int>    viewer reached a frame
        frame {frame, offsetX, offsetY}
                             tile request, answered with a "frame" event

    Failures are answered with an "error" event {kind, context}.
    """
    coordinator = runtime.coordinator
    hub = coordinator.hub

    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        await hub.send(viewer_id, "error", {"kind": "malformed", "context": raw[:200]})
        return

    if not isinstance(message, dict):
        await hub.send(viewer_id, "error", {"kind": "malformed", "context": message})
        return

    event = message.get("event")
    data: Any = message.get("data")

    try:
        if event == "started":
            coordinator.viewer_started(viewer_id)
        elif event == "stopped":
            coordinator.viewer_stopped(viewer_id)
        elif event == "frameUpdate":
            await coordinator.progress(parse_int(data, "frameUpdate"))
        elif event == "frame":
            request = data if isinstance(data, dict) else {}
            tile = await runtime.tiles.get_tile(
                request.get("frame"),
                request.get("offsetX"),
                request.get("offsetY"),
            )
            await hub.send(viewer_id, "frame", tile.to_wire())
        else:
            await hub.send(viewer_id, "error", {"kind": "unknownEvent", "context": event})
    except TileStreamError as e:
        await hub.send(viewer_id, "error", {"kind": e.code, "context": data})


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

def main() -> None:
    import uvicorn

    uvicorn.run(
        "tilestream.main:app",
        host=default_settings.server.host,
        port=default_settings.server.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
