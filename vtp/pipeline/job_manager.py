"""Transcoding job lifecycle management.

Owns every write to job records and the transcoding fields of media items:
queued -> processing -> completed | error, plus ``restarted`` for a job that
was superseded by a fresh attempt.

Key responsibilities:
- Persist a ``queued`` job and hand back a JobHandle without waiting for ffmpeg
- Run the pipeline (inspect -> plan -> encode tiers -> write playlists) on a
  bounded worker pool, one task per job, tiers strictly sequential
- Persist progress and the growing variant list after every tier attempt
- Convert any pipeline exception into a persisted ``error`` state on both the
  job and the media item
- Refuse to start a second pipeline for a video that already has one running
  in this process
"""

import concurrent.futures
import logging
import math
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from vtp.config.models import AppConfig
from vtp.domain.errors import (
    InvalidTransition,
    JobNotFound,
    MissingSourceFile,
    NoRenditionsProduced,
    TierFailure,
    VideoBusy,
)
from vtp.domain.events import (
    JobCompleted,
    JobCreated,
    JobFailed,
    JobProgressUpdated,
    JobRestarted,
    JobStarted,
    TierCompleted,
    TierFailed,
)
from vtp.domain.models import (
    JobHandle,
    JobStatus,
    MediaItem,
    MediaStatus,
    TranscodingJob,
    Variant,
    utcnow,
)
from vtp.infrastructure.event_bus import EventBus
from vtp.infrastructure.ffprobe import FFprobeAdapter
from vtp.infrastructure.repository import MediaItemRepository, TranscodingJobRepository
from vtp.pipeline.encoder import RenditionEncoder
from vtp.pipeline.planner import plan

RESTARTABLE = (JobStatus.QUEUED, JobStatus.PROCESSING, JobStatus.ERROR)


def progress_for(attempted: int, planned: int) -> int:
    if planned <= 0:
        return 100
    return int(math.floor(attempted * 100 / planned + 0.5))


class JobManager:
    """Creates transcoding jobs and drives them to a terminal state.

    Args:
        config: AppConfig (tiers, output locations, base URL, pool size).
        job_repo: Repository for ``transcoding_jobs``.
        media_repo: Repository for ``media_items``.
        ffprobe_adapter: Source inspector.
        encoder: RenditionEncoder producing MP4/HLS renditions.
        event_bus: EventBus for lifecycle events.
    """

    def __init__(
        self,
        config: AppConfig,
        job_repo: TranscodingJobRepository,
        media_repo: MediaItemRepository,
        ffprobe_adapter: FFprobeAdapter,
        encoder: RenditionEncoder,
        event_bus: EventBus,
    ):
        self.config = config
        self.job_repo = job_repo
        self.media_repo = media_repo
        self.ffprobe = ffprobe_adapter
        self.encoder = encoder
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)

        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=config.concurrency.max_concurrent_jobs,
            thread_name_prefix="vtp-job",
        )
        self._lock = threading.Lock()
        self._active_videos: Dict[str, str] = {}  # video_id -> job_id
        self._futures: Dict[str, concurrent.futures.Future] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_job(
        self,
        video_path: Union[str, Path],
        video_id: str,
        title: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> JobHandle:
        """Persists a queued job and starts processing it in the background.

        Returns immediately. If the video already has a job running in this
        process, that job's handle is returned and nothing new is started.
        """
        with self._lock:
            existing_id = self._active_videos.get(video_id)
            if existing_id is None:
                job = TranscodingJob(video_id=video_id, title=title, source_path=str(video_path))
                self._active_videos[video_id] = job.id

        if existing_id is not None:
            existing = self.job_repo.get(existing_id)
            status = existing.status if existing else JobStatus.QUEUED
            self.logger.warning(f"JOB_DUPLICATE: video={video_id} already running as job {existing_id}")
            return JobHandle(job_id=existing_id, video_id=video_id, status=status)

        try:
            self.job_repo.add(job)
            self._update_media(
                video_id,
                status=MediaStatus.PROCESSING,
                processing_job_id=job.id,
            )
            future = self._executor.submit(
                self._process_job, job, Path(video_path), base_url or self.config.general.base_url
            )
        except Exception:
            self._release(video_id, job.id)
            raise

        with self._lock:
            self._futures[job.id] = future

        self.logger.info(f"JOB_CREATED: job={job.id} video={video_id} source={video_path}")
        self.event_bus.publish(JobCreated(job_id=job.id, video_id=video_id, source_path=str(video_path)))
        return JobHandle(job_id=job.id, video_id=video_id, status=JobStatus.QUEUED)

    def get_job(self, job_id: str) -> TranscodingJob:
        job = self.job_repo.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def get_job_status(self, job_id: str) -> Dict[str, Any]:
        return self.get_job(job_id).to_status()

    def list_jobs(
        self,
        video_id: Optional[str] = None,
        status: Optional[Union[str, JobStatus]] = None,
        limit: Optional[int] = 20,
    ) -> List[Dict[str, Any]]:
        """Job summaries, newest first."""
        status_filter = JobStatus(status) if status else None
        jobs = self.job_repo.list(video_id=video_id, status=status_filter, limit=limit)
        return [job.to_status() for job in jobs]

    def is_video_active(self, video_id: str) -> bool:
        with self._lock:
            return video_id in self._active_videos

    def source_path_for(self, item: MediaItem) -> Path:
        return Path(self.config.general.uploads_dir) / item.file_name

    def mark_restarted(self, job_id: str, new_job_id: Optional[str] = None) -> TranscodingJob:
        job = self.get_job(job_id)
        if job.status not in RESTARTABLE:
            raise InvalidTransition(job_id, job.status.value, JobStatus.RESTARTED.value)
        previous = job.status
        job.status = JobStatus.RESTARTED
        job.restarted_by = new_job_id
        job.error = None  # only error jobs carry a message
        job.updated_at = utcnow()
        self.job_repo.update(job, "status", "restarted_by", "error", "updated_at")
        self.logger.info(f"JOB_RESTARTED: job={job_id} previous={previous.value}")
        self.event_bus.publish(
            JobRestarted(job_id=job.id, video_id=job.video_id, new_job_id=new_job_id, previous_status=previous)
        )
        return job

    def restart_job(self, job_id: str, base_url: Optional[str] = None) -> JobHandle:
        """Supersedes a failed or stuck job with a fresh attempt for the same video."""
        job = self.get_job(job_id)
        if job.status not in RESTARTABLE:
            raise InvalidTransition(job_id, job.status.value, JobStatus.RESTARTED.value)
        with self._lock:
            running_id = self._active_videos.get(job.video_id)
        if running_id is not None:
            raise VideoBusy(job.video_id, running_id)

        item = self.media_repo.get(job.video_id)
        if item is None:
            raise MissingSourceFile(job.video_id, None)
        source_path = self.source_path_for(item)
        if not source_path.exists():
            raise MissingSourceFile(job.video_id, source_path)

        old = self.mark_restarted(job_id)
        handle = self.create_job(source_path, item.id, item.title, base_url)
        old.restarted_by = handle.job_id
        self.job_repo.update(old, "restarted_by")
        return handle

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Blocks until every submitted job has finished. Returns False on timeout."""
        with self._lock:
            pending = [f for f in self._futures.values() if not f.done()]
        if not pending:
            return True
        _, not_done = concurrent.futures.wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _process_job(self, job: TranscodingJob, source_path: Path, base_url: str):
        try:
            self._run_pipeline(job, source_path, base_url)
        except Exception as exc:
            self._fail_job(job, exc)
        finally:
            self._release(job.video_id, job.id)

    def _run_pipeline(self, job: TranscodingJob, source_path: Path, base_url: str):
        video_info = self.ffprobe.inspect(source_path)

        job.status = JobStatus.PROCESSING
        job.video_info = video_info
        job.updated_at = utcnow()
        self.job_repo.update(job, "status", "video_info", "updated_at")

        renditions = plan(video_info, self.config.tiers)
        self.logger.info(
            f"JOB_STARTED: job={job.id} video={job.video_id} "
            f"source={video_info.width}x{video_info.height} "
            f"tiers={','.join(r.tier.name for r in renditions)}"
        )
        self.event_bus.publish(
            JobStarted(job_id=job.id, video_id=job.video_id, video_info=video_info, planned_tiers=len(renditions))
        )

        def on_tier_done(attempted: int, planned: int, variant: Optional[Variant], failure: Optional[TierFailure]):
            if variant is not None:
                job.variants.append(variant)
                self.event_bus.publish(TierCompleted(job_id=job.id, video_id=job.video_id, variant=variant))
            elif failure is not None:
                self.event_bus.publish(
                    TierFailed(job_id=job.id, video_id=job.video_id, tier=failure.tier, error_message=str(failure))
                )
            job.progress = max(job.progress, progress_for(attempted, planned))
            job.updated_at = utcnow()
            self.job_repo.update(job, "progress", "variants", "updated_at")
            self.event_bus.publish(JobProgressUpdated(job_id=job.id, video_id=job.video_id, progress=job.progress))

        result = self.encoder.encode(source_path, job.video_id, renditions, base_url, on_tier_done)
        if not result.variants:
            raise NoRenditionsProduced([failure.tier for failure in result.failures])

        master_url = self.encoder.write_outputs(job.video_id, job.title, video_info, base_url, result)

        now = utcnow()
        job.status = JobStatus.COMPLETED
        job.progress = 100
        job.variants = list(result.variants)
        job.master_playlist_url = master_url
        job.completed_at = now
        job.updated_at = now
        self.job_repo.update(
            job, "status", "progress", "variants", "master_playlist_url", "completed_at", "updated_at"
        )
        # The job is terminal from here on; a failed mirror must not reopen it
        try:
            self._update_media(
                job.video_id,
                status=MediaStatus.READY,
                transcoding_completed=True,
                transcoding_job_id=job.id,
                master_playlist_url=master_url,
                variants=list(result.variants),
                processing_error=None,
            )
        except Exception:
            self.logger.exception(f"MEDIA_SYNC_FAILED: job={job.id} video={job.video_id} completed but media item not updated")

        self.logger.info(
            f"JOB_COMPLETED: job={job.id} video={job.video_id} variants={len(job.variants)} "
            f"skipped={len(result.failures)}"
        )
        self.event_bus.publish(
            JobCompleted(
                job_id=job.id,
                video_id=job.video_id,
                master_playlist_url=master_url,
                variant_count=len(job.variants),
            )
        )

    def _fail_job(self, job: TranscodingJob, exc: Exception):
        message = str(exc) or type(exc).__name__
        self.logger.error(f"JOB_FAILED: job={job.id} video={job.video_id}: {message}", exc_info=exc)

        job.status = JobStatus.ERROR
        job.error = message
        job.updated_at = utcnow()
        try:
            self.job_repo.update(job, "status", "error", "updated_at")
        except Exception:
            self.logger.exception(f"Could not persist error state for job {job.id}")
        try:
            self._update_media(job.video_id, status=MediaStatus.ERROR, processing_error=message)
        except Exception:
            self.logger.exception(f"Could not persist error state for media {job.video_id}")

        self.event_bus.publish(JobFailed(job_id=job.id, video_id=job.video_id, error_message=message))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _release(self, video_id: str, job_id: str):
        with self._lock:
            if self._active_videos.get(video_id) == job_id:
                del self._active_videos[video_id]

    def _update_media(self, video_id: str, **fields):
        item = self.media_repo.get(video_id)
        if item is None:
            self.logger.debug(f"No media item {video_id}; skipping media update")
            return
        for name, value in fields.items():
            setattr(item, name, value)
        item.updated_at = utcnow()
        self.media_repo.update(item, *fields.keys(), "updated_at")
