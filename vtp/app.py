from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from vtp.config.models import AppConfig
from vtp.infrastructure.event_bus import EventBus
from vtp.infrastructure.ffmpeg import FFmpegAdapter
from vtp.infrastructure.ffprobe import FFprobeAdapter
from vtp.infrastructure.repository import MediaItemRepository, TranscodingJobRepository
from vtp.infrastructure.store import InMemoryDocumentStore, JsonDocumentStore
from vtp.infrastructure.web_server import ApiContext
from vtp.pipeline.encoder import RenditionEncoder
from vtp.pipeline.job_manager import JobManager
from vtp.pipeline.queue_scanner import QueueScanner
from vtp.pipeline.recovery import RecoverySweeper


@dataclass
class TranscodingApp:
    config: AppConfig
    event_bus: EventBus
    store: InMemoryDocumentStore
    job_repo: TranscodingJobRepository
    media_repo: MediaItemRepository
    manager: JobManager
    scanner: QueueScanner
    sweeper: RecoverySweeper

    def api_context(self) -> ApiContext:
        return ApiContext(
            config=self.config,
            manager=self.manager,
            scanner=self.scanner,
            sweeper=self.sweeper,
            media_repo=self.media_repo,
        )


def build_app(
    config: AppConfig,
    store: Optional[InMemoryDocumentStore] = None,
    event_bus: Optional[EventBus] = None,
    ffprobe_adapter: Optional[FFprobeAdapter] = None,
    ffmpeg_adapter: Optional[FFmpegAdapter] = None,
) -> TranscodingApp:
    """Wires adapters, repositories and pipeline services from one config."""
    store = store if store is not None else JsonDocumentStore(Path(config.general.store_path))
    event_bus = event_bus or EventBus()
    ffprobe_adapter = ffprobe_adapter or FFprobeAdapter(config.tools.ffprobe)
    ffmpeg_adapter = ffmpeg_adapter or FFmpegAdapter(
        config.encoding, ffmpeg_bin=config.tools.ffmpeg, debug=config.general.debug
    )

    job_repo = TranscodingJobRepository(store)
    media_repo = MediaItemRepository(store)
    encoder = RenditionEncoder(ffmpeg_adapter, config.general)
    manager = JobManager(config, job_repo, media_repo, ffprobe_adapter, encoder, event_bus)

    return TranscodingApp(
        config=config,
        event_bus=event_bus,
        store=store,
        job_repo=job_repo,
        media_repo=media_repo,
        manager=manager,
        scanner=QueueScanner(manager, media_repo),
        sweeper=RecoverySweeper(manager, job_repo, config.recovery),
    )
