from typing import Callable, List, Optional

from vtp.domain.models import JobStatus, MediaItem, TranscodingJob
from vtp.infrastructure.store import InMemoryDocumentStore

JOBS_COLLECTION = "transcoding_jobs"
MEDIA_COLLECTION = "media_items"


class TranscodingJobRepository:
    """Maps TranscodingJob models onto the ``transcoding_jobs`` collection."""

    def __init__(self, store: InMemoryDocumentStore):
        self.store = store

    def add(self, job: TranscodingJob) -> TranscodingJob:
        self.store.insert(JOBS_COLLECTION, job.model_dump(mode="json"))
        return job

    def update(self, job: TranscodingJob, *fields: str) -> None:
        """Persists only the named fields of ``job``."""
        self.store.update(JOBS_COLLECTION, job.id, job.model_dump(mode="json", include=set(fields)))

    def get(self, job_id: str) -> Optional[TranscodingJob]:
        doc = self.store.get(JOBS_COLLECTION, job_id)
        return TranscodingJob.model_validate(doc) if doc else None

    def find(self, where: Optional[Callable[[TranscodingJob], bool]] = None) -> List[TranscodingJob]:
        jobs = [TranscodingJob.model_validate(d) for d in self.store.find(JOBS_COLLECTION)]
        if where is not None:
            jobs = [job for job in jobs if where(job)]
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)

    def list(
        self,
        video_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
        limit: Optional[int] = 20,
    ) -> List[TranscodingJob]:
        if limit is not None and limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        jobs = self.find(
            lambda job: (video_id is None or job.video_id == video_id)
            and (status is None or job.status == status)
        )
        return jobs[:limit] if limit is not None else jobs


class MediaItemRepository:
    def __init__(self, store: InMemoryDocumentStore):
        self.store = store

    def add(self, item: MediaItem) -> MediaItem:
        self.store.insert(MEDIA_COLLECTION, item.model_dump(mode="json"))
        return item

    def update(self, item: MediaItem, *fields: str) -> None:
        self.store.update(MEDIA_COLLECTION, item.id, item.model_dump(mode="json", include=set(fields)))

    def get(self, item_id: str) -> Optional[MediaItem]:
        doc = self.store.get(MEDIA_COLLECTION, item_id)
        return MediaItem.model_validate(doc) if doc else None

    def find(self, where: Optional[Callable[[MediaItem], bool]] = None) -> List[MediaItem]:
        items = [MediaItem.model_validate(d) for d in self.store.find(MEDIA_COLLECTION)]
        return [item for item in items if where is None or where(item)]
