import json
import time
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from vtp.app import TranscodingApp, build_app
from vtp.config.loader import load_config
from vtp.config.models import AppConfig
from vtp.domain.errors import TranscodingError
from vtp.domain.events import JobCompleted, JobFailed, JobProgressUpdated, JobStarted, TierFailed
from vtp.domain.models import JobStatus
from vtp.infrastructure.logging import setup_logging
from vtp.infrastructure.web_server import TranscodingWebServer

DEFAULT_CONFIG = Path("conf/vtp.yaml")

app = typer.Typer(help="VTP (Video Transcoding Pipeline) - adaptive bitrate renditions and HLS")
console = Console()


def _fail(message: str, code: int = 1):
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


def _load(config_path: Optional[Path], debug: bool) -> AppConfig:
    try:
        if config_path is None:
            config = load_config(DEFAULT_CONFIG if DEFAULT_CONFIG.exists() else None)
        else:
            config = load_config(config_path)
    except FileNotFoundError as exc:
        _fail(str(exc))
    except ValidationError as exc:
        _fail(f"Invalid config: {exc}")
    if debug:
        config.general.debug = True
    return config


def _bootstrap(ctx: typer.Context) -> TranscodingApp:
    config: AppConfig = ctx.obj["config"]
    log_path = Path(config.general.log_path) if config.general.log_path else None
    setup_logging(Path(config.general.store_path), debug=config.general.debug, log_path=log_path)
    return build_app(config)


def _attach_progress(service: TranscodingApp):
    bus = service.event_bus

    @bus.subscribe(JobStarted)
    def on_started(event: JobStarted):
        info = event.video_info
        console.print(
            f"[cyan]{event.job_id}[/] started: {info.width}x{info.height} "
            f"{info.video_codec or '?'}, {event.planned_tiers} tiers"
        )

    @bus.subscribe(JobProgressUpdated)
    def on_progress(event: JobProgressUpdated):
        console.print(f"[cyan]{event.job_id}[/] progress {event.progress}%")

    @bus.subscribe(TierFailed)
    def on_tier_failed(event: TierFailed):
        console.print(f"[yellow]{event.job_id}[/] tier {event.tier} skipped: {event.error_message}")

    @bus.subscribe(JobCompleted)
    def on_completed(event: JobCompleted):
        console.print(
            f"[green]{event.job_id}[/] completed: {event.variant_count} variants, {event.master_playlist_url}"
        )

    @bus.subscribe(JobFailed)
    def on_failed(event: JobFailed):
        console.print(f"[red]{event.job_id}[/] failed: {event.error_message}")


def _jobs_table(jobs: list) -> Table:
    table = Table(title="Transcoding jobs")
    table.add_column("Job")
    table.add_column("Video")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Variants", justify="right")
    table.add_column("Created")
    table.add_column("Error", overflow="fold")
    colors = {"completed": "green", "error": "red", "processing": "cyan", "restarted": "dim"}
    for job in jobs:
        status = job["status"]
        table.add_row(
            job["jobId"],
            job["videoId"],
            f"[{colors.get(status, 'white')}]{status}[/]",
            f"{job['progress']}%",
            str(len(job["variants"])),
            job["created_at"][:19].replace("T", " "),
            job["error"] or "",
        )
    return table


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config (default conf/vtp.yaml if present)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Server-side transcoding of uploaded videos into MP4 + HLS renditions."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = _load(config_path, debug)


@app.command()
def transcode(
    ctx: typer.Context,
    video_path: Path = typer.Argument(..., help="Source video file"),
    video_id: Optional[str] = typer.Option(None, "--video-id", help="Media identifier (defaults to the file stem)"),
    title: Optional[str] = typer.Option(None, "--title", help="Title written into the manifest"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Base URL for rendition links"),
):
    """Create a transcoding job for one video file."""
    if not video_path.is_file():
        _fail(f"Video file {video_path} does not exist")
    service = _bootstrap(ctx)
    _attach_progress(service)
    try:
        handle = service.manager.create_job(video_path, video_id or video_path.stem, title or video_path.stem, base_url)
        console.print(f"Job [cyan]{handle.job_id}[/] queued for video {handle.video_id}")
        service.manager.wait()
        final = service.manager.get_job_status(handle.job_id)
    except TranscodingError as exc:
        _fail(str(exc))
    finally:
        service.manager.shutdown()
    if final["status"] != JobStatus.COMPLETED.value:
        raise typer.Exit(code=1)


@app.command()
def status(ctx: typer.Context, job_id: str = typer.Argument(..., help="Job identifier")):
    """Print the status document of one job as JSON."""
    service = _bootstrap(ctx)
    try:
        typer.echo(json.dumps(service.manager.get_job_status(job_id), indent=2))
    except TranscodingError as exc:
        _fail(str(exc))
    finally:
        service.manager.shutdown()


@app.command()
def jobs(
    ctx: typer.Context,
    video_id: Optional[str] = typer.Option(None, "--video-id", help="Filter by video"),
    status_filter: Optional[JobStatus] = typer.Option(None, "--status", help="Filter by status"),
    limit: int = typer.Option(20, "--limit", min=1, help="Maximum number of jobs"),
):
    """List jobs, newest first."""
    service = _bootstrap(ctx)
    try:
        listed = service.manager.list_jobs(video_id=video_id, status=status_filter, limit=limit)
    finally:
        service.manager.shutdown()
    if not listed:
        console.print("No transcoding jobs found.")
        return
    console.print(_jobs_table(listed))


@app.command()
def scan(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Base URL for rendition links"),
):
    """Start jobs for uploaded videos that were never transcoded."""
    service = _bootstrap(ctx)
    _attach_progress(service)
    try:
        started = service.scanner.scan_and_start(base_url)
        console.print(f"Started {started} transcoding jobs from the queue")
        service.manager.wait()
    finally:
        service.manager.shutdown()


@app.command()
def sweep(
    ctx: typer.Context,
    max_hours: Optional[float] = typer.Option(None, "--max-hours", help="Age after which a processing job counts as stuck"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Base URL for rendition links"),
):
    """Restart failed jobs and jobs stuck in processing."""
    service = _bootstrap(ctx)
    _attach_progress(service)
    try:
        restarted = service.sweeper.sweep(max_hours, base_url)
        console.print(f"Restarted {restarted} failed transcoding jobs")
        service.manager.wait()
    finally:
        service.manager.shutdown()


@app.command()
def restart(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Job to supersede"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Base URL for rendition links"),
):
    """Mark a job restarted and start a fresh attempt for its video."""
    service = _bootstrap(ctx)
    _attach_progress(service)
    try:
        handle = service.manager.restart_job(job_id, base_url)
        console.print(f"Job {job_id} restarted as [cyan]{handle.job_id}[/]")
        service.manager.wait()
    except TranscodingError as exc:
        _fail(str(exc))
    finally:
        service.manager.shutdown()


@app.command()
def serve(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
):
    """Serve the HTTP API and the rendition files."""
    service = _bootstrap(ctx)
    server_config = service.config.server
    server = TranscodingWebServer(
        service.api_context(),
        port=port or server_config.port,
        host=host or server_config.host,
    )
    try:
        server.start()
    except OSError as exc:
        service.manager.shutdown(wait=False)
        _fail(f"Could not bind to {server.host}:{server.port}: {exc}")
    console.print(f"[green]Serving[/] on http://{server.host}:{server.server_port} (Ctrl+C to stop)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping...")
    finally:
        server.stop()
        service.manager.shutdown(wait=True)


if __name__ == "__main__":
    app()
