import pytest
from pydantic import ValidationError

from vtp.domain.errors import MissingSourceFile, NoRenditionsProduced, ProcessFailure, TierFailure
from vtp.domain.models import JobStatus, MediaItem, PlannedRendition, QualityTier, TranscodingJob, VideoInfo


def test_job_defaults():
    job = TranscodingJob(video_id="v1")

    assert job.status == JobStatus.QUEUED
    assert job.progress == 0
    assert job.variants == []
    assert len(job.id) == 32
    assert job.id != TranscodingJob(video_id="v1").id


def test_job_progress_bounds():
    with pytest.raises(ValidationError):
        TranscodingJob(video_id="v1", progress=101)


def test_to_status_shape():
    status = TranscodingJob(id="j1", video_id="v1").to_status()

    assert set(status) == {
        "jobId", "videoId", "status", "progress", "variants", "master_playlist_url",
        "error", "created_at", "updated_at", "completed_at",
    }
    assert status["jobId"] == "j1"
    assert status["status"] == "queued"
    assert status["completed_at"] is None


def test_terminal_statuses():
    assert JobStatus.COMPLETED.is_terminal
    assert JobStatus.ERROR.is_terminal
    assert JobStatus.RESTARTED.is_terminal
    assert not JobStatus.PROCESSING.is_terminal


def test_video_info_dimensions():
    assert VideoInfo(width=1920, height=1080).has_dimensions
    assert not VideoInfo(width=1920).has_dimensions


def test_planned_rendition_resolution():
    tier = QualityTier(name="low", width=640, height=360, video_bitrate="800k", audio_bitrate="96k")
    assert PlannedRendition(tier=tier, width=640, height=270).resolution == "640x270"


def test_media_item_file_name():
    assert MediaItem(id="m", file_url="/uploads/2024/intro.mp4").file_name == "intro.mp4"


def test_error_messages():
    assert "exited with code 1" in str(ProcessFailure("ffmpeg", 1, "bad input\n"))
    assert "Failed to start" in str(ProcessFailure("ffmpeg", None, "not found"))
    failure = TierFailure("medium", "hls", ProcessFailure("ffmpeg", 1, "x"))
    assert "medium" in str(failure) and "hls" in str(failure)
    assert "low, high" in str(NoRenditionsProduced(["low", "high"]))
    assert str(MissingSourceFile("v1", None)) == "Media item v1 not found"
