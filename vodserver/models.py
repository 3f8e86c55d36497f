"""
Domain models for the video server.

Defines the core data structures used throughout the system,
providing type safety and clear interfaces between components.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Tuple, Union

from pydantic import BaseModel, StrictFloat, StrictInt


class TranscodeStatus(str, Enum):
    """Transcode state of a catalog asset"""
    NONE = "none"
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class JobState(str, Enum):
    """State of a transcode job"""
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED)


@dataclass(frozen=True)
class TranscodeProfile:
    """Fixed encoder parameters, passed verbatim to the encoder"""
    name: str = "web-mp4"
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    container: str = "mp4"
    video_bitrate: str = "1000k"
    audio_bitrate: str = "128k"
    # Streaming-friendly flags: baseline H.264 and moov atom at the front
    extra_args: Tuple[Tuple[str, str], ...] = (
        ("profile:v", "baseline"),
        ("level", "3.0"),
        ("pix_fmt", "yuv420p"),
        ("movflags", "+faststart"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "video_codec": self.video_codec,
            "audio_codec": self.audio_codec,
            "container": self.container,
            "video_bitrate": self.video_bitrate,
            "audio_bitrate": self.audio_bitrate,
        }


DEFAULT_PROFILE = TranscodeProfile()


@dataclass
class VideoAsset:
    """Represents a video file surfaced by the catalog"""
    id: str
    path: str
    size_bytes: int
    mime_type: str
    transcode_status: TranscodeStatus = TranscodeStatus.NONE
    transcoded_path: Optional[str] = None

    @property
    def is_transcoded(self) -> bool:
        return self.transcode_status is TranscodeStatus.READY


@dataclass
class TranscodeJob:
    """Represents one encode of a source asset with a profile"""
    id: str
    source_asset_id: str
    profile: TranscodeProfile
    output_path: str
    partial_path: str
    state: JobState = JobState.QUEUED
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    # Runtime handles, owned by the orchestrator
    process: Optional[asyncio.subprocess.Process] = field(default=None, repr=False, compare=False)
    task: Optional[asyncio.Task] = field(default=None, repr=False, compare=False)
    finished: asyncio.Event = field(default_factory=asyncio.Event, repr=False, compare=False)
    cancel_reason: Optional[str] = field(default=None, repr=False, compare=False)

    @property
    def key(self) -> Tuple[str, TranscodeProfile]:
        return (self.source_asset_id, self.profile)

    def mark_running(self):
        self.state = JobState.RUNNING
        self.started_at = datetime.now()

    def mark_succeeded(self):
        self.state = JobState.SUCCEEDED
        self.finished_at = datetime.now()

    def mark_failed(self, error: str):
        self.state = JobState.FAILED
        self.error = error
        self.finished_at = datetime.now()

    def get_elapsed_time(self) -> float:
        if self.started_at is None:
            return 0.0
        end_time = self.finished_at or datetime.now()
        return (end_time - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot for API responses"""
        result = {
            "id": self.id,
            "sourceAssetId": self.source_asset_id,
            "profile": self.profile.to_dict(),
            "state": self.state.value,
            "outputPath": self.output_path,
            "createdAt": self.created_at.isoformat(),
        }
        if self.started_at:
            result["startedAt"] = self.started_at.isoformat()
        if self.finished_at:
            result["finishedAt"] = self.finished_at.isoformat()
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class PlaybackRecord:
    """Resume position of one client for one video"""
    client_key: str
    video_id: str
    position_seconds: float
    updated_at: datetime = field(default_factory=datetime.now)


class PlaybackUpdate(BaseModel):
    """Body of POST /save-playback"""
    video: Optional[str] = None
    # JSON booleans and numeric strings are rejected
    position: Optional[Union[StrictFloat, StrictInt]] = None
