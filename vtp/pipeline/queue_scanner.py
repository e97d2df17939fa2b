import logging
from typing import List, Optional

from vtp.domain.errors import MissingSourceFile, TranscodingError
from vtp.domain.models import MediaItem, MediaStatus
from vtp.infrastructure.repository import MediaItemRepository
from vtp.pipeline.job_manager import JobManager


def is_pending(item: MediaItem) -> bool:
    """Uploaded video that was never transcoded and has no job attached."""
    return (
        item.file_type == "video"
        and item.status == MediaStatus.READY
        and not item.transcoding_completed
        and not item.processing_job_id
    )


class QueueScanner:
    """Starts a job for every uploaded video still waiting for transcoding."""

    def __init__(self, manager: JobManager, media_repo: MediaItemRepository):
        self.manager = manager
        self.media_repo = media_repo
        self.logger = logging.getLogger(__name__)

    def pending_items(self) -> List[MediaItem]:
        return self.media_repo.find(is_pending)

    def scan_and_start(self, base_url: Optional[str] = None) -> int:
        pending = self.pending_items()
        self.logger.info(f"QUEUE_SCAN: {len(pending)} videos waiting for transcoding")

        started = 0
        for item in pending:
            try:
                source_path = self.manager.source_path_for(item)
                if not source_path.exists():
                    raise MissingSourceFile(item.id, source_path)
                if self.manager.is_video_active(item.id):
                    self.logger.info(f"QUEUE_SKIP: video={item.id} already has a running job")
                    continue
                self.manager.create_job(source_path, item.id, item.title, base_url)
                started += 1
            except MissingSourceFile as exc:
                self.logger.warning(f"QUEUE_SKIP: {exc}")
            except (TranscodingError, OSError) as exc:
                self.logger.error(f"QUEUE_ERROR: video={item.id}: {exc}")

        self.logger.info(f"QUEUE_SCAN: started {started} jobs")
        return started
