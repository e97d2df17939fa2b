import logging
import time
from pathlib import Path
from typing import List

from vtp.config.models import EncodingConfig
from vtp.domain.models import PlannedRendition
from vtp.infrastructure.process_runner import run_process


class FFmpegAdapter:
    """Wrapper around ffmpeg for rendition encoding and HLS segmentation."""

    def __init__(self, encoding: EncodingConfig, ffmpeg_bin: str = "ffmpeg", debug: bool = False):
        self.encoding = encoding
        self.ffmpeg_bin = ffmpeg_bin
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    def build_mp4_args(self, source: Path, rendition: PlannedRendition, output_mp4: Path) -> List[str]:
        """Constructs the ffmpeg arguments for one MP4 rendition."""
        tier = rendition.tier
        return [
            "-i", str(source),
            "-vf", f"scale={rendition.width}:{rendition.height}",
            "-c:v", self.encoding.video_codec,
            "-b:v", tier.video_bitrate,
            "-c:a", self.encoding.audio_codec,
            "-b:a", tier.audio_bitrate,
            "-movflags", "+faststart",  # moov atom first for progressive playback
            "-y",
            str(output_mp4),
        ]

    def build_hls_args(self, input_mp4: Path, playlist: Path, segment_pattern: Path) -> List[str]:
        """Constructs the ffmpeg arguments that segment an MP4 into an HLS rendition."""
        return [
            "-i", str(input_mp4),
            "-c:v", "copy",
            "-c:a", "copy",
            "-hls_time", str(self.encoding.segment_duration),
            "-hls_playlist_type", self.encoding.playlist_type,
            "-hls_segment_filename", str(segment_pattern),
            "-y",
            str(playlist),
        ]

    def encode_mp4(self, source: Path, rendition: PlannedRendition, output_mp4: Path) -> None:
        self._run(f"MP4 {rendition.tier.name}", self.build_mp4_args(source, rendition, output_mp4))

    def segment_hls(self, input_mp4: Path, playlist: Path, segment_pattern: Path) -> None:
        self._run(f"HLS {playlist.stem}", self.build_hls_args(input_mp4, playlist, segment_pattern))

    def _run(self, label: str, args: List[str]) -> None:
        start_time = time.monotonic()
        if self.debug:
            self.logger.debug(f"FFMPEG_CMD: {self.ffmpeg_bin} {' '.join(args)}")
        run_process(self.ffmpeg_bin, args)
        elapsed = time.monotonic() - start_time
        self.logger.info(f"FFMPEG_END: {label} elapsed={elapsed:.2f}s")
