import threading
import pytest
import yaml
from pathlib import Path
from typing import List, Optional, Set, Tuple

from vtp.app import build_app
from vtp.config.models import AppConfig
from vtp.domain.errors import ProcessFailure
from vtp.domain.models import MediaItem, PlannedRendition, VideoInfo
from vtp.infrastructure.event_bus import EventBus
from vtp.infrastructure.store import InMemoryDocumentStore

# ============================================================================
# Fake adapters
# ============================================================================

class FakeProbe:
    """Stands in for FFprobeAdapter; returns a fixed VideoInfo or raises."""

    def __init__(self, info: Optional[VideoInfo] = None, error: Optional[Exception] = None):
        self.info = info or VideoInfo(
            duration=12.0, bitrate=8_000_000, width=3840, height=2160,
            video_codec="h264", audio_codec="aac",
        )
        self.error = error
        self.calls: List[Path] = []
        self.gate: Optional[threading.Event] = None

    def inspect(self, path: Path) -> VideoInfo:
        self.calls.append(Path(path))
        if self.gate is not None:
            self.gate.wait(timeout=10)
        if self.error is not None:
            raise self.error
        return self.info


class FakeFFmpeg:
    """Stands in for FFmpegAdapter; writes small placeholder outputs.

    ``fail`` holds (tier, step) pairs to fail, step being "mp4" or "hls".
    """

    def __init__(self, fail: Optional[Set[Tuple[str, str]]] = None):
        self.fail = fail or set()
        self.calls: List[Tuple[str, str]] = []

    def encode_mp4(self, source: Path, rendition: PlannedRendition, output_mp4: Path) -> None:
        tier = rendition.tier.name
        self.calls.append(("mp4", tier))
        if (tier, "mp4") in self.fail:
            raise ProcessFailure("ffmpeg", 1, f"cannot encode {tier}")
        output_mp4.write_bytes(b"\x00" * (rendition.width // 10))

    def segment_hls(self, input_mp4: Path, playlist: Path, segment_pattern: Path) -> None:
        tier = playlist.stem
        self.calls.append(("hls", tier))
        if (tier, "hls") in self.fail:
            raise ProcessFailure("ffmpeg", 1, f"cannot segment {tier}")
        playlist.write_text("#EXTM3U\n#EXT-X-PLAYLIST-TYPE:VOD\n#EXT-X-ENDLIST\n")
        (playlist.parent / f"{tier}_000.ts").write_bytes(b"ts")


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config(tmp_path):
    """Returns an AppConfig rooted in a temporary directory."""
    return AppConfig(
        general={
            "output_root": str(tmp_path / "uploads" / "transcoded"),
            "uploads_dir": str(tmp_path / "uploads"),
            "base_url": "http://media.test",
            "store_path": str(tmp_path / "store"),
            "debug": False,
        },
        concurrency={"max_concurrent_jobs": 2},
        recovery={"max_stuck_hours": 24},
    )


@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "vtp.yaml"

    content = {
        "general": {
            "output_root": str(tmp_path / "out"),
            "uploads_dir": str(tmp_path / "uploads"),
            "base_url": "http://cdn.test/",
            "store_path": str(tmp_path / "store"),
        },
        "tools": {"ffmpeg": "/opt/ffmpeg/bin/ffmpeg", "ffprobe": "ffprobe"},
        "encoding": {"segment_duration": 6},
        "tiers": {
            "sd": {"width": 854, "height": 480, "video_bitrate": "1200k", "audio_bitrate": "96k"},
            "hd": {"width": 1280, "height": 720, "video_bitrate": "2500k", "audio_bitrate": "128k"},
        },
        "recovery": {"max_stuck_hours": 6},
    }

    with open(conf_file, "w") as f:
        yaml.dump(content, f, sort_keys=False)

    return conf_file

# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def fake_probe():
    return FakeProbe()


@pytest.fixture
def fake_ffmpeg():
    return FakeFFmpeg()


@pytest.fixture
def service(sample_config, store, event_bus, fake_probe, fake_ffmpeg):
    """Fully wired pipeline with fake ffprobe/ffmpeg adapters."""
    app = build_app(
        sample_config,
        store=store,
        event_bus=event_bus,
        ffprobe_adapter=fake_probe,
        ffmpeg_adapter=fake_ffmpeg,
    )
    yield app
    if fake_probe.gate is not None:
        fake_probe.gate.set()
    app.manager.shutdown(wait=True)


@pytest.fixture
def recorded_events(event_bus):
    """Collects every event published on the bus."""
    from vtp.domain.events import Event

    events: list = []
    event_bus.subscribe(Event, events.append)
    return events

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def add_upload(sample_config, service):
    """Factory: creates an uploaded source file plus its media item."""

    def _add(video_id: str, file_name: Optional[str] = None, create_file: bool = True, **fields) -> MediaItem:
        file_name = file_name or f"{video_id}.mp4"
        uploads = Path(sample_config.general.uploads_dir)
        uploads.mkdir(parents=True, exist_ok=True)
        if create_file:
            (uploads / file_name).write_bytes(b"dummy video content " * 100)
        item = MediaItem(
            id=video_id,
            title=f"Lesson {video_id}",
            file_type=fields.pop("file_type", "video"),
            file_url=f"/uploads/{file_name}",
            **fields,
        )
        service.media_repo.add(item)
        return item

    return _add

# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (integration tests with real ffmpeg)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
