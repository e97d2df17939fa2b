from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from vtp.domain.models import QualityTier

PLAYLIST_TYPES = ("vod", "event")


def default_tiers() -> List[QualityTier]:
    return [
        QualityTier(name="low", width=640, height=360, video_bitrate="800k", audio_bitrate="96k"),
        QualityTier(name="medium", width=1280, height=720, video_bitrate="2500k", audio_bitrate="128k"),
        QualityTier(name="high", width=1920, height=1080, video_bitrate="5000k", audio_bitrate="192k"),
    ]


class GeneralConfig(BaseModel):
    output_root: Path = Path("uploads/transcoded")
    uploads_dir: Path = Path("uploads")
    base_url: str = "http://localhost:3000"
    public_path: str = "uploads/transcoded"  # URL path under base_url that maps to output_root
    store_path: Path = Path("data/store")
    log_path: Optional[str] = None
    debug: bool = False

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("public_path")
    @classmethod
    def strip_slashes(cls, v: str) -> str:
        return v.strip("/")


class ToolsConfig(BaseModel):
    """Executables for the encoder and the inspector; resolved on PATH unless absolute."""
    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"


class EncodingConfig(BaseModel):
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    segment_duration: int = Field(default=10, gt=0)
    playlist_type: str = "vod"

    @field_validator("playlist_type")
    @classmethod
    def validate_playlist_type(cls, v: str) -> str:
        if v not in PLAYLIST_TYPES:
            raise ValueError(f"Unsupported playlist_type: {v}. Use one of {list(PLAYLIST_TYPES)}")
        return v


class ConcurrencyConfig(BaseModel):
    max_concurrent_jobs: int = Field(default=2, gt=0)


class RecoveryConfig(BaseModel):
    max_stuck_hours: float = Field(default=24.0, gt=0)


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    encoding: EncodingConfig = Field(default_factory=EncodingConfig)
    tiers: List[QualityTier] = Field(default_factory=default_tiers)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    recovery: RecoveryConfig = Field(default_factory=RecoveryConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @field_validator("tiers")
    @classmethod
    def validate_tiers(cls, v: List[QualityTier]) -> List[QualityTier]:
        if not v:
            raise ValueError("At least one quality tier is required")
        names = [tier.name for tier in v]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate tier names: {', '.join(duplicates)}")
        return v
