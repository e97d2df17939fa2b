"""Sequential per-tier rendition encoding.

Each planned tier is encoded to MP4 and then segmented into an HLS rendition.
A failing tier is logged and skipped; the remaining tiers still run.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from vtp.config.models import GeneralConfig
from vtp.domain.errors import ProcessFailure, TierFailure
from vtp.domain.models import PlannedRendition, Variant, VideoInfo
from vtp.infrastructure.ffmpeg import FFmpegAdapter
from vtp.pipeline.manifest import MasterPlaylist, build_manifest, write_manifest

MASTER_PLAYLIST_NAME = "master.m3u8"
MANIFEST_NAME = "manifest.json"

# (attempted, planned, variant or None, failure or None)
TierCallback = Callable[[int, int, Optional[Variant], Optional[TierFailure]], None]


@dataclass
class EncodeResult:
    planned: int
    variants: List[Variant] = field(default_factory=list)
    failures: List[TierFailure] = field(default_factory=list)
    master_playlist: MasterPlaylist = field(default_factory=MasterPlaylist)


class RenditionEncoder:
    def __init__(self, ffmpeg_adapter: FFmpegAdapter, general: GeneralConfig):
        self.ffmpeg = ffmpeg_adapter
        self.general = general
        self.logger = logging.getLogger(__name__)

    def output_dir(self, video_id: str) -> Path:
        return Path(self.general.output_root) / video_id

    def public_url(self, base_url: str, video_id: str, file_name: str) -> str:
        return f"{base_url.rstrip('/')}/{self.general.public_path}/{video_id}/{file_name}"

    def encode(
        self,
        source_path: Path,
        video_id: str,
        renditions: List[PlannedRendition],
        base_url: str,
        on_tier_done: Optional[TierCallback] = None,
    ) -> EncodeResult:
        video_dir = self.output_dir(video_id)
        video_dir.mkdir(parents=True, exist_ok=True)
        result = EncodeResult(planned=len(renditions))

        for attempted, rendition in enumerate(renditions, start=1):
            variant: Optional[Variant] = None
            failure: Optional[TierFailure] = None
            try:
                variant = self._encode_tier(source_path, video_id, video_dir, rendition, base_url)
            except TierFailure as exc:
                failure = exc
                result.failures.append(exc)
                self.logger.error(f"TIER_FAILED: video={video_id} {exc}")
            else:
                result.variants.append(variant)
                result.master_playlist.add(
                    f"{rendition.tier.name}.m3u8",
                    rendition.tier.bitrate_kbps,
                    rendition.width,
                    rendition.height,
                )
                self.logger.info(f"TIER_DONE: video={video_id} tier={variant.quality} resolution={variant.resolution}")

            if on_tier_done:
                on_tier_done(attempted, result.planned, variant, failure)

        return result

    def _encode_tier(
        self,
        source_path: Path,
        video_id: str,
        video_dir: Path,
        rendition: PlannedRendition,
        base_url: str,
    ) -> Variant:
        tier = rendition.tier
        mp4_name = f"{source_path.stem}{tier.file_suffix}.mp4"
        playlist_name = f"{tier.name}.m3u8"
        output_mp4 = video_dir / mp4_name

        try:
            self.ffmpeg.encode_mp4(source_path, rendition, output_mp4)
        except ProcessFailure as exc:
            raise TierFailure(tier.name, "mp4", exc) from exc

        try:
            self.ffmpeg.segment_hls(output_mp4, video_dir / playlist_name, video_dir / f"{tier.name}_%03d.ts")
        except ProcessFailure as exc:
            raise TierFailure(tier.name, "hls", exc) from exc

        try:
            size = output_mp4.stat().st_size
        except OSError as exc:
            raise TierFailure(tier.name, "stat", exc) from exc

        return Variant(
            quality=tier.name,
            resolution=rendition.resolution,
            bitrate=tier.video_bitrate,
            mp4_url=self.public_url(base_url, video_id, mp4_name),
            hls_url=self.public_url(base_url, video_id, playlist_name),
            size=size,
        )

    def write_outputs(
        self,
        video_id: str,
        title: Optional[str],
        video_info: VideoInfo,
        base_url: str,
        result: EncodeResult,
    ) -> str:
        """Flushes the master playlist and manifest; returns the master playlist URL.

        Filesystem errors propagate to the job.
        """
        video_dir = self.output_dir(video_id)
        result.master_playlist.write(video_dir / MASTER_PLAYLIST_NAME)
        master_url = self.public_url(base_url, video_id, MASTER_PLAYLIST_NAME)
        manifest = build_manifest(video_id, title, video_info, master_url, result.variants)
        write_manifest(video_dir / MANIFEST_NAME, manifest)
        return master_url
