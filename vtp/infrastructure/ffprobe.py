import json
from pathlib import Path
from typing import Any, Dict, Optional

from vtp.domain.errors import InspectionFailure, ProcessFailure
from vtp.domain.models import VideoInfo
from vtp.infrastructure.process_runner import run_process


class FFprobeAdapter:
    """Wrapper around ffprobe to extract source video metadata."""

    def __init__(self, ffprobe_bin: str = "ffprobe"):
        self.ffprobe_bin = ffprobe_bin

    @staticmethod
    def _int_or_none(value: Any) -> Optional[int]:
        if value in (None, "", "N/A"):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _seconds(value: Any) -> float:
        """Seconds from a plain number or a ``[HH:]MM:SS.fff`` tag; 0.0 when unreadable."""
        if value is None:
            return 0.0
        fields = str(value).strip().split(":")
        if not fields[0] or len(fields) > 3:
            return 0.0
        total = 0.0
        for field in fields:
            try:
                total = total * 60 + float(field)
            except ValueError:
                return 0.0
        return total

    def _duration(self, fmt: Dict[str, Any], video_stream: Dict[str, Any]) -> float:
        # format first, then the stream; each numeric field before its tags
        for section in (fmt, video_stream):
            tags = section.get("tags") or {}
            for candidate in (section.get("duration"), tags.get("DURATION"), tags.get("duration")):
                seconds = self._seconds(candidate)
                if seconds > 0:
                    return seconds
        return 0.0


    def build_command(self, file_path: Path) -> list:
        return [
            "-v", "error",
            "-show_entries", "format=duration,bit_rate:stream=width,height,codec_name,codec_type",
            "-of", "json",
            str(file_path),
        ]

    def inspect(self, file_path: Path) -> VideoInfo:
        """Runs ffprobe on the file and parses duration, bitrate and stream details.

        Every call re-probes the file.
        """
        try:
            result = run_process(self.ffprobe_bin, self.build_command(file_path))
        except ProcessFailure as exc:
            raise InspectionFailure(file_path, str(exc)) from exc

        try:
            data: Dict[str, Any] = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise InspectionFailure(file_path, f"unparsable ffprobe output ({exc})") from exc

        streams = data.get("streams") or []
        video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
        if not video_stream:
            raise InspectionFailure(file_path, "no video stream found")
        audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None)

        fmt = data.get("format") or {}
        duration = self._duration(fmt, video_stream)

        return VideoInfo(
            duration=duration if duration > 0 else None,
            bitrate=self._int_or_none(fmt.get("bit_rate")),
            width=self._int_or_none(video_stream.get("width")),
            height=self._int_or_none(video_stream.get("height")),
            video_codec=video_stream.get("codec_name"),
            audio_codec=audio_stream.get("codec_name") if audio_stream else None,
        )
