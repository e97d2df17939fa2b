import json
from pathlib import Path
from typing import List, Optional

from vtp.domain.models import Variant, VideoInfo, utcnow


class MasterPlaylist:
    """Accumulates the HLS master playlist for one job; flushed once at the end."""

    def __init__(self):
        self._lines: List[str] = ["#EXTM3U"]
        self.entries = 0

    def add(self, playlist_name: str, bitrate_kbps: int, width: int, height: int) -> None:
        self._lines.append(f"#EXT-X-STREAM-INF:BANDWIDTH={bitrate_kbps * 1000},RESOLUTION={width}x{height}")
        self._lines.append(playlist_name)
        self.entries += 1

    def render(self) -> str:
        return "\n".join(self._lines) + "\n"

    def write(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(), encoding="utf-8")
        return path


def build_manifest(
    video_id: str,
    title: Optional[str],
    video_info: VideoInfo,
    master_url: str,
    variants: List[Variant],
) -> dict:
    return {
        "id": video_id,
        "title": title,
        "original_info": video_info.model_dump(),
        "master_playlist_url": master_url,
        "variants": [v.model_dump() for v in variants],
        "created_at": utcnow().isoformat(),
    }


def write_manifest(path: Path, manifest: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2)
    return path
