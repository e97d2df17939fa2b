"""Restart of failed and stuck transcoding jobs.

There is no heartbeat: a job counts as stuck once it has sat in
``processing`` without an update for longer than the threshold.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from vtp.config.models import RecoveryConfig
from vtp.domain.errors import MissingSourceFile, TranscodingError
from vtp.domain.models import JobStatus, TranscodingJob, utcnow
from vtp.infrastructure.repository import TranscodingJobRepository
from vtp.pipeline.job_manager import JobManager


def is_recoverable(job: TranscodingJob, stuck_before: datetime) -> bool:
    if job.status == JobStatus.ERROR:
        return True
    return job.status == JobStatus.PROCESSING and job.updated_at < stuck_before


class RecoverySweeper:
    def __init__(self, manager: JobManager, job_repo: TranscodingJobRepository, config: RecoveryConfig):
        self.manager = manager
        self.job_repo = job_repo
        self.config = config
        self.logger = logging.getLogger(__name__)

    def candidates(self, max_stuck_hours: Optional[float] = None, now: Optional[datetime] = None) -> List[TranscodingJob]:
        hours = max_stuck_hours if max_stuck_hours is not None else self.config.max_stuck_hours
        stuck_before = (now or utcnow()) - timedelta(hours=hours)
        return self.job_repo.find(lambda job: is_recoverable(job, stuck_before))

    def sweep(self, max_stuck_hours: Optional[float] = None, base_url: Optional[str] = None) -> int:
        """Marks failed/stuck jobs ``restarted`` and starts a new job for each. Returns the restart count."""
        jobs = self.candidates(max_stuck_hours)
        self.logger.info(f"RECOVERY_SWEEP: {len(jobs)} failed or stuck jobs")

        restarted = 0
        replacements = {}  # video_id -> new job id
        for job in jobs:
            try:
                if job.video_id in replacements:
                    # Older failure of a video already restarted in this sweep
                    self.manager.mark_restarted(job.id, replacements[job.video_id])
                    continue
                if self.manager.is_video_active(job.video_id):
                    self.logger.info(f"RECOVERY_SKIP: job={job.id} video={job.video_id} still running")
                    continue
                handle = self.manager.restart_job(job.id, base_url)
            except MissingSourceFile as exc:
                self.logger.warning(f"RECOVERY_SKIP: job={job.id}: {exc}")
                continue
            except TranscodingError as exc:
                self.logger.error(f"RECOVERY_ERROR: job={job.id}: {exc}")
                continue
            replacements[job.video_id] = handle.job_id
            restarted += 1
            self.logger.info(f"RECOVERY_RESTART: job={job.id} -> job={handle.job_id}")

        self.logger.info(f"RECOVERY_SWEEP: restarted {restarted} jobs")
        return restarted
