"""Failure taxonomy for the transcoding pipeline.

TierFailure is absorbed by the rendition encoder (the tier is skipped).
Everything else reaching a job's worker becomes a persisted ``error`` state.
MissingSourceFile only ever skips a single scan/sweep candidate.
"""

from pathlib import Path
from typing import List, Optional


class TranscodingError(Exception):
    """Base class for all pipeline errors."""


class ProcessFailure(TranscodingError):
    """External tool exited non-zero or could not be spawned."""

    def __init__(self, command: str, returncode: Optional[int], stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        if returncode is None:
            message = f"Failed to start {command} process: {stderr}"
        else:
            message = f"{command} process exited with code {returncode}: {stderr.strip()}"
        super().__init__(message)


class InspectionFailure(TranscodingError):
    """Source metadata could not be obtained or has no video stream."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Unable to inspect {path}: {reason}")


class TierFailure(TranscodingError):
    """One quality tier failed in either the MP4 or the HLS step."""

    def __init__(self, tier: str, step: str, cause: Exception):
        self.tier = tier
        self.step = step
        self.cause = cause
        super().__init__(f"Tier {tier} failed during {step}: {cause}")


class JobFailure(TranscodingError):
    """Unrecoverable failure of a whole job."""


class PlanningError(JobFailure):
    pass


class NoRenditionsProduced(JobFailure):
    def __init__(self, failed_tiers: List[str]):
        self.failed_tiers = failed_tiers
        detail = ", ".join(failed_tiers) if failed_tiers else "none planned"
        super().__init__(f"no renditions were produced (failed tiers: {detail})")


class MissingSourceFile(TranscodingError):
    """Source media item or file is gone at scan/restart time. ``path`` is None when the media item itself is missing."""

    def __init__(self, video_id: str, path: Optional[Path]):
        self.video_id = video_id
        self.path = path
        if path is None:
            super().__init__(f"Media item {video_id} not found")
        else:
            super().__init__(f"Source file {path} for video {video_id} not found")


class InvalidTransition(TranscodingError):
    def __init__(self, job_id: str, current: str, target: str):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Job {job_id} cannot move from {current} to {target}")


class JobNotFound(TranscodingError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class VideoBusy(TranscodingError):
    """A job for this video is still running in this process."""

    def __init__(self, video_id: str, job_id: str):
        self.video_id = video_id
        self.job_id = job_id
        super().__init__(f"Video {video_id} is already being transcoded by job {job_id}")
