"""
Configuration management for the video server.

Centralizes all configuration loading from environment variables
and provides type-safe access to configuration values.
"""

import os
from typing import Optional
from dataclasses import dataclass


CLIENT_KEY_MODES = ("address", "header")


@dataclass
class ServerConfig:
    """Configuration for the video server"""

    # Storage settings
    VIDEO_DIR: str = "./videos"
    TRANSCODED_DIR: Optional[str] = None  # defaults to <VIDEO_DIR>/transcoded
    STATIC_DIR: str = "./public"

    # HTTP server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    SHUTDOWN_GRACE_SEC: int = 10

    # Streaming
    STREAM_CHUNK_SIZE: int = 64 * 1024

    # Transcoding
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    MAX_CONCURRENT_TRANSCODES: int = 2
    TRANSCODE_TIMEOUT_SEC: int = 3600
    MAX_RETAINED_JOBS: int = 256
    TRANSCODE_WAIT: bool = False

    # Playback
    CLIENT_KEY_MODE: str = "address"  # address, header

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "./data/logs"

    def __post_init__(self):
        if not self.TRANSCODED_DIR:
            self.TRANSCODED_DIR = os.path.join(self.VIDEO_DIR, "transcoded")

    @classmethod
    def from_env(cls) -> 'ServerConfig':
        """Load configuration from environment variables"""
        video_dir = os.getenv("VIDEO_DIR", "./videos")

        return cls(
            VIDEO_DIR=video_dir,
            TRANSCODED_DIR=os.getenv("TRANSCODED_DIR") or os.path.join(video_dir, "transcoded"),
            STATIC_DIR=os.getenv("STATIC_DIR", "./public"),
            HOST=os.getenv("HOST", "0.0.0.0"),
            PORT=int(os.getenv("PORT", "3000")),
            SHUTDOWN_GRACE_SEC=int(os.getenv("SHUTDOWN_GRACE_SEC", "10")),
            STREAM_CHUNK_SIZE=int(os.getenv("STREAM_CHUNK_SIZE", str(64 * 1024))),
            FFMPEG_PATH=os.getenv("FFMPEG_PATH", "ffmpeg"),
            FFPROBE_PATH=os.getenv("FFPROBE_PATH", "ffprobe"),
            MAX_CONCURRENT_TRANSCODES=int(os.getenv("MAX_CONCURRENT_TRANSCODES", "2")),
            TRANSCODE_TIMEOUT_SEC=int(os.getenv("TRANSCODE_TIMEOUT_SEC", "3600")),
            MAX_RETAINED_JOBS=int(os.getenv("MAX_RETAINED_JOBS", "256")),
            TRANSCODE_WAIT=os.getenv("TRANSCODE_WAIT", "false").lower() == "true",
            CLIENT_KEY_MODE=os.getenv("CLIENT_KEY_MODE", "address").lower(),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
            LOG_DIR=os.getenv("LOG_DIR", "./data/logs"),
        )

    def validate(self) -> None:
        """Validate configuration and raise errors for invalid values"""
        problems = []

        if not os.path.isdir(self.VIDEO_DIR):
            problems.append(f"VIDEO_DIR does not exist: {self.VIDEO_DIR}")

        if self.STREAM_CHUNK_SIZE <= 0:
            problems.append("STREAM_CHUNK_SIZE must be positive")

        if self.MAX_CONCURRENT_TRANSCODES < 1:
            problems.append("MAX_CONCURRENT_TRANSCODES must be at least 1")

        if self.TRANSCODE_TIMEOUT_SEC <= 0:
            problems.append("TRANSCODE_TIMEOUT_SEC must be positive")

        if self.MAX_RETAINED_JOBS < 1:
            problems.append("MAX_RETAINED_JOBS must be at least 1")

        if self.CLIENT_KEY_MODE not in CLIENT_KEY_MODES:
            problems.append(f"CLIENT_KEY_MODE must be one of {', '.join(CLIENT_KEY_MODES)}")

        if problems:
            raise ValueError(f"Invalid configuration: {'; '.join(problems)}")
