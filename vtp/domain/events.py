"""Domain events for the transcoding pipeline.

Events flow through the EventBus so the job manager stays unaware of who is
watching (CLI progress output, logging, tests).

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from typing import Optional
from pydantic import BaseModel

from .models import JobStatus, Variant, VideoInfo


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class JobEvent(Event):
    """Base class for events related to a single transcoding job."""

    job_id: str
    video_id: str


class JobCreated(JobEvent):
    """Emitted once the job record is persisted at ``queued``."""

    source_path: str


class JobStarted(JobEvent):
    """Emitted on the queued -> processing transition."""

    video_info: VideoInfo
    planned_tiers: int = 0


class JobProgressUpdated(JobEvent):
    progress: int


class TierCompleted(JobEvent):
    variant: Variant


class TierFailed(JobEvent):
    """Emitted when a tier is skipped after an encoder failure."""

    tier: str
    error_message: str


class JobCompleted(JobEvent):
    master_playlist_url: str
    variant_count: int


class JobFailed(JobEvent):
    error_message: str


class JobRestarted(JobEvent):
    new_job_id: Optional[str] = None
    previous_status: JobStatus
