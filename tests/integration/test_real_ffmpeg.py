import json
import shutil
import subprocess
from pathlib import Path

import pytest

from vtp.app import build_app
from vtp.config.models import AppConfig
from vtp.domain.models import MediaItem
from vtp.infrastructure.ffprobe import FFprobeAdapter
from vtp.infrastructure.store import InMemoryDocumentStore

pytestmark = [pytest.mark.integration, pytest.mark.slow]


def _has_libx264() -> bool:
    if not shutil.which("ffmpeg") or not shutil.which("ffprobe"):
        return False
    result = subprocess.run(["ffmpeg", "-hide_banner", "-encoders"], capture_output=True, text=True)
    return "libx264" in result.stdout


requires_ffmpeg = pytest.mark.skipif(not _has_libx264(), reason="ffmpeg with libx264 not available")


@pytest.fixture
def test_clip(tmp_path):
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    clip = uploads / "clip.mp4"
    subprocess.run(
        [
            "ffmpeg", "-hide_banner", "-loglevel", "error",
            "-f", "lavfi", "-i", "testsrc=size=1280x720:rate=25",
            "-f", "lavfi", "-i", "sine=frequency=440:sample_rate=44100",
            "-t", "2", "-c:v", "libx264", "-pix_fmt", "yuv420p", "-c:a", "aac",
            "-shortest", "-y", str(clip),
        ],
        check=True,
    )
    return clip


@requires_ffmpeg
def test_ffprobe_reads_generated_clip(test_clip):
    info = FFprobeAdapter().inspect(test_clip)

    assert (info.width, info.height) == (1280, 720)
    assert info.video_codec == "h264"
    assert info.audio_codec == "aac"
    assert info.duration == pytest.approx(2.0, abs=0.2)


@requires_ffmpeg
def test_full_pipeline_with_real_ffmpeg(tmp_path, test_clip):
    config = AppConfig(
        general={
            "output_root": str(tmp_path / "uploads" / "transcoded"),
            "uploads_dir": str(tmp_path / "uploads"),
            "base_url": "http://media.test",
            "store_path": str(tmp_path / "store"),
        },
        encoding={"segment_duration": 1},
    )
    service = build_app(config, store=InMemoryDocumentStore())
    service.media_repo.add(MediaItem(id="clip", title="Test pattern", file_url="/uploads/clip.mp4"))

    try:
        assert service.scanner.scan_and_start() == 1
        assert service.manager.wait(timeout=120)
    finally:
        service.manager.shutdown()

    job = service.manager.list_jobs(video_id="clip")[0]
    assert job["status"] == "completed", job["error"]
    # 1280x720 source: high would upscale
    assert [v["quality"] for v in job["variants"]] == ["low", "medium"]

    out = tmp_path / "uploads" / "transcoded" / "clip"
    master = (out / "master.m3u8").read_text()
    assert "RESOLUTION=640x360" in master
    assert "RESOLUTION=1280x720" in master
    assert (out / "clip_low.mp4").stat().st_size > 0
    assert (out / "low_000.ts").exists()
    assert "#EXT-X-ENDLIST" in (out / "medium.m3u8").read_text()

    manifest = json.loads((out / "manifest.json").read_text())
    assert manifest["original_info"]["width"] == 1280

    rendition = FFprobeAdapter().inspect(out / "clip_low.mp4")
    assert (rendition.width, rendition.height) == (640, 360)

    media = service.media_repo.get("clip")
    assert media.transcoding_completed
    assert media.master_playlist_url == "http://media.test/uploads/transcoded/clip/master.m3u8"
