import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    return uuid.uuid4().hex


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    RESTARTED = "restarted"  # superseded by a newer job for the same video

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR, JobStatus.RESTARTED)


class MediaStatus(str, Enum):
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class VideoInfo(BaseModel):
    """Snapshot of the source video, captured once per job."""

    model_config = ConfigDict(frozen=True)

    duration: Optional[float] = None
    bitrate: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    video_codec: Optional[str] = None
    audio_codec: Optional[str] = None

    @property
    def has_dimensions(self) -> bool:
        return bool(self.width) and bool(self.height)


class QualityTier(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    video_bitrate: str
    audio_bitrate: str
    suffix: Optional[str] = None

    @field_validator("video_bitrate", "audio_bitrate")
    @classmethod
    def validate_bitrate(cls, v: str) -> str:
        text = v.strip().lower()
        if not text.endswith("k") or not text[:-1].isdigit() or int(text[:-1]) <= 0:
            raise ValueError(f"Invalid bitrate '{v}'. Use '<kbps>k', e.g. '800k'.")
        return text

    @property
    def bitrate_kbps(self) -> int:
        return int(self.video_bitrate[:-1])

    @property
    def file_suffix(self) -> str:
        return self.suffix if self.suffix is not None else f"_{self.name}"


class PlannedRendition(BaseModel):
    tier: QualityTier
    width: int
    height: int

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


class Variant(BaseModel):
    quality: str
    resolution: str
    bitrate: str
    mp4_url: str
    hls_url: str
    size: int


class TranscodingJob(BaseModel):
    id: str = Field(default_factory=new_job_id)
    video_id: str
    title: Optional[str] = None
    source_path: Optional[str] = None
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    video_info: Optional[VideoInfo] = None
    variants: List[Variant] = Field(default_factory=list)
    master_playlist_url: Optional[str] = None
    error: Optional[str] = None
    restarted_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def to_status(self) -> Dict[str, Any]:
        """Public status document exposed to pollers."""
        return {
            "jobId": self.id,
            "videoId": self.video_id,
            "status": self.status.value,
            "progress": self.progress,
            "variants": [v.model_dump() for v in self.variants],
            "master_playlist_url": self.master_playlist_url,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class JobHandle(BaseModel):
    job_id: str
    video_id: str
    status: JobStatus


class MediaItem(BaseModel):
    """Upload record owned by the upload subsystem; only transcoding fields are written here."""

    id: str
    title: Optional[str] = None
    file_type: str = "video"
    file_url: str = ""
    status: MediaStatus = MediaStatus.READY
    transcoding_completed: bool = False
    processing_job_id: Optional[str] = None
    transcoding_job_id: Optional[str] = None
    master_playlist_url: Optional[str] = None
    variants: List[Variant] = Field(default_factory=list)
    processing_error: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def file_name(self) -> str:
        return self.file_url.rstrip("/").split("/")[-1]
