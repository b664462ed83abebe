"""
tilestream Configuration
========================

This module handles configuration loading for the tile server.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    TILESTREAM_VIDEO            -> video.filename
    TILESTREAM_FRAMES_DIR       -> video.frames_dir
    TILESTREAM_SKIP_PROCESSING  -> video.skip_processing
    TILESTREAM_CACHE_ENABLED    -> cache.enabled
    TILESTREAM_CACHE_LIFETIME   -> cache.lifetime_seconds
    TILESTREAM_CACHE_PERSIST    -> cache.persist
    TILESTREAM_FORMAT           -> encoding.format
    TILESTREAM_LOG_LEVEL        -> logging.level
    PORT                        -> server.port

Example:
    from tilestream.config import settings

    print(settings.segment.width)
    print(settings.cache.lifetime_seconds)
"""

import os
import logging
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class VideoConfig(BaseModel):
    """Source video and frame extraction configuration."""

    filename: str = Field(
        default="./files/video.mp4",
        description="Path to the source video",
    )
    frames_dir: str = Field(
        default="./files/frames",
        description="Directory holding the extracted frame-NNN.png files",
    )
    skip_processing: bool = Field(
        default=False,
        description="Skip decoding and load already extracted frames",
    )
    width: int = Field(default=320, gt=0, description="Rescaled frame width")
    height: int = Field(default=192, gt=0, description="Rescaled frame height")
    fps: float = Field(default=20, gt=0, description="Extraction frame rate")


class SegmentConfig(BaseModel):
    """Tile size in pixels."""

    width: int = Field(default=16, gt=0, description="Segment width")
    height: int = Field(default=16, gt=0, description="Segment height")


class CacheConfig(BaseModel):
    """Segment cache configuration."""

    enabled: bool = Field(default=True, description="Memoize rendered tiles")
    lifetime_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Time-to-live of a cached tile",
    )
    sweep_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Period of the expired-entry sweep",
    )
    persist: bool = Field(
        default=False,
        description="Restore the cache at startup and save it at shutdown",
    )
    snapshot_path: str = Field(
        default="./files/cache.json",
        description="Location of the cache snapshot",
    )


class EncodingConfig(BaseModel):
    """Tile payload encoding."""

    format: Literal["png", "jpeg"] = Field(
        default="png",
        description="Image format for every tile: 'png' or 'jpeg'",
    )
    jpeg_quality: int = Field(default=90, ge=1, le=100, description="JPEG quality")


class PlaybackConfig(BaseModel):
    """Playback coordinator configuration."""

    interval_ms: int = Field(default=1000, gt=0, description="Initial frame interval")
    min_interval_warn_ms: int = Field(
        default=500,
        ge=0,
        description="Intervals below this value log an overload warning",
    )
    ready_timeout_seconds: float = Field(
        default=0.0,
        ge=0,
        description="Max wait for frames to load per request (0 = unlimited)",
    )


class ConsoleConfig(BaseModel):
    """Operator console configuration."""

    enabled: bool = Field(default=True, description="Read operator commands from stdin")


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=80, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")
    directory: Optional[str] = Field(
        default=None,
        description="Also write rotating log files into this directory",
    )


class Settings(BaseModel):
    """
    Main settings class for tilestream.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    video: VideoConfig = Field(default_factory=VideoConfig)
    segment: SegmentConfig = Field(default_factory=SegmentConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    encoding: EncodingConfig = Field(default_factory=EncodingConfig)
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)
    console: ConsoleConfig = Field(default_factory=ConsoleConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Video settings
    if env_video := os.environ.get("TILESTREAM_VIDEO"):
        config_data.setdefault("video", {})["filename"] = env_video
    if env_frames := os.environ.get("TILESTREAM_FRAMES_DIR"):
        config_data.setdefault("video", {})["frames_dir"] = env_frames
    if env_skip := os.environ.get("TILESTREAM_SKIP_PROCESSING"):
        config_data.setdefault("video", {})["skip_processing"] = _env_flag(env_skip)

    # Cache settings
    if env_cache := os.environ.get("TILESTREAM_CACHE_ENABLED"):
        config_data.setdefault("cache", {})["enabled"] = _env_flag(env_cache)
    if env_ttl := os.environ.get("TILESTREAM_CACHE_LIFETIME"):
        config_data.setdefault("cache", {})["lifetime_seconds"] = float(env_ttl)
    if env_persist := os.environ.get("TILESTREAM_CACHE_PERSIST"):
        config_data.setdefault("cache", {})["persist"] = _env_flag(env_persist)

    # Encoding
    if env_format := os.environ.get("TILESTREAM_FORMAT"):
        config_data.setdefault("encoding", {})["format"] = env_format.lower()

    # Server settings
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("TILESTREAM_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.logging.directory:
        log_dir = Path(settings.logging.directory)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_dir / f"{int(time.time() * 1000)}.log",
                maxBytes=5 * 1024 * 1024,
                backupCount=3,
            )
        )

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=handlers,
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
