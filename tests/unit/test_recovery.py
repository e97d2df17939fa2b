import pytest
from datetime import timedelta

from vtp.domain.models import JobStatus, TranscodingJob, utcnow
from vtp.pipeline.recovery import is_recoverable


def _add_job(service, job_id, video_id, status, age_hours=0.0, created_offset=0):
    now = utcnow()
    job = TranscodingJob(
        id=job_id,
        video_id=video_id,
        status=status,
        created_at=now - timedelta(hours=age_hours, minutes=created_offset),
        updated_at=now - timedelta(hours=age_hours),
    )
    service.job_repo.add(job)
    return job


def test_is_recoverable():
    cutoff = utcnow() - timedelta(hours=24)
    stale = TranscodingJob(video_id="v", status=JobStatus.PROCESSING, updated_at=cutoff - timedelta(hours=1))
    fresh = TranscodingJob(video_id="v", status=JobStatus.PROCESSING)

    assert is_recoverable(stale, cutoff)
    assert not is_recoverable(fresh, cutoff)
    assert is_recoverable(TranscodingJob(video_id="v", status=JobStatus.ERROR), cutoff)
    assert not is_recoverable(TranscodingJob(video_id="v", status=JobStatus.COMPLETED), cutoff)
    assert not is_recoverable(TranscodingJob(video_id="v", status=JobStatus.RESTARTED), cutoff)


def test_stuck_processing_job_is_restarted(service, add_upload):
    add_upload("v1")
    _add_job(service, "stuck", "v1", JobStatus.PROCESSING, age_hours=30)

    restarted = service.sweeper.sweep(max_stuck_hours=24)
    service.manager.wait(timeout=10)

    assert restarted == 1
    old = service.manager.get_job("stuck")
    assert old.status == JobStatus.RESTARTED
    new = service.manager.get_job(old.restarted_by)
    assert new.video_id == "v1"
    assert new.status == JobStatus.COMPLETED


def test_recent_processing_job_is_left_alone(service, add_upload):
    add_upload("v1")
    _add_job(service, "busy", "v1", JobStatus.PROCESSING, age_hours=1)

    assert service.sweeper.sweep() == 0
    assert service.manager.get_job("busy").status == JobStatus.PROCESSING


def test_threshold_override(service, add_upload):
    add_upload("v1")
    _add_job(service, "busy", "v1", JobStatus.PROCESSING, age_hours=1)

    assert service.sweeper.sweep(max_stuck_hours=0.5) == 1
    service.manager.wait(timeout=10)


def test_error_jobs_are_restarted(service, add_upload):
    add_upload("v1")
    add_upload("v2")
    _add_job(service, "e1", "v1", JobStatus.ERROR)
    _add_job(service, "e2", "v2", JobStatus.ERROR)
    _add_job(service, "ok", "v2", JobStatus.COMPLETED)

    assert service.sweeper.sweep() == 2
    service.manager.wait(timeout=10)
    assert service.manager.get_job("ok").status == JobStatus.COMPLETED


def test_missing_media_item_is_skipped(service, add_upload):
    add_upload("v1")
    _add_job(service, "orphan", "deleted-video", JobStatus.ERROR)
    _add_job(service, "e1", "v1", JobStatus.ERROR)

    assert service.sweeper.sweep() == 1
    service.manager.wait(timeout=10)
    assert service.manager.get_job("orphan").status == JobStatus.ERROR


def test_missing_source_file_is_skipped(service, add_upload):
    add_upload("v1", create_file=False)
    _add_job(service, "e1", "v1", JobStatus.ERROR)

    assert service.sweeper.sweep() == 0
    assert service.manager.get_job("e1").status == JobStatus.ERROR


def test_multiple_failures_of_one_video_restart_once(service, add_upload):
    add_upload("v1")
    _add_job(service, "older", "v1", JobStatus.ERROR, created_offset=30)
    _add_job(service, "newer", "v1", JobStatus.ERROR, created_offset=5)

    assert service.sweeper.sweep() == 1
    service.manager.wait(timeout=10)

    newer = service.manager.get_job("newer")
    older = service.manager.get_job("older")
    assert newer.status == JobStatus.RESTARTED
    assert older.status == JobStatus.RESTARTED
    assert older.restarted_by == newer.restarted_by
    assert len(service.manager.list_jobs(video_id="v1")) == 3


def test_superseded_candidate_does_not_abort_sweep(service, add_upload, monkeypatch):
    add_upload("v1")
    add_upload("v2")
    _add_job(service, "newer", "v1", JobStatus.ERROR, created_offset=5)
    _add_job(service, "older", "v1", JobStatus.ERROR, created_offset=30)
    _add_job(service, "v2job", "v2", JobStatus.ERROR, created_offset=60)

    snapshot = service.sweeper.candidates()
    # Superseded elsewhere after the candidate list was taken
    service.manager.mark_restarted("older")
    monkeypatch.setattr(service.sweeper, "candidates", lambda *args, **kwargs: snapshot)

    assert service.sweeper.sweep() == 2
    service.manager.wait(timeout=10)

    assert service.manager.get_job("v2job").status == JobStatus.RESTARTED
    assert service.manager.get_job("older").restarted_by is None
