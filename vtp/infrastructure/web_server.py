"""JSON HTTP API for the transcoding pipeline, plus static rendition files.

Routes:
    GET  /api/media/transcoding/<job_id>          job status
    GET  /api/media/transcoding?videoId&status&limit  job list, newest first
    POST /api/media/transcoding/<video_id>/start  start a job for a media item
    POST /api/media/transcoding/process-queue     run the queue scanner
    POST /api/media/transcoding/restart-failed    run the recovery sweeper
    GET  /<public_path>/<video_id>/<file>         MP4 / HLS / manifest files

Served by the stdlib http.server on a background thread.
"""
from __future__ import annotations

import json
import logging
import shutil
import socketserver
import threading
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlsplit

from vtp.domain.errors import JobNotFound, TranscodingError, VideoBusy
from vtp.domain.models import JobStatus

if TYPE_CHECKING:
    from vtp.config.models import AppConfig
    from vtp.infrastructure.repository import MediaItemRepository
    from vtp.pipeline.job_manager import JobManager
    from vtp.pipeline.queue_scanner import QueueScanner
    from vtp.pipeline.recovery import RecoverySweeper

logger = logging.getLogger(__name__)

API_PREFIX = "/api/media/transcoding"

_CONTENT_TYPES = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/mp2t",
    ".mp4": "video/mp4",
    ".json": "application/json",
}


class ApiError(Exception):
    def __init__(self, status: int, message: str):
        self.status = status
        super().__init__(message)


@dataclass
class ApiContext:
    config: "AppConfig"
    manager: "JobManager"
    scanner: "QueueScanner"
    sweeper: "RecoverySweeper"
    media_repo: "MediaItemRepository"


class TranscodingRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler; ``context`` is bound per server by TranscodingWebServer."""

    context: ApiContext

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        logger.debug("HTTP %s - %s", self.address_string(), format % args)

    # -- responses ---------------------------------------------------------

    def _send_json(self, payload: Any, status: int = 200) -> None:
        encoded = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        self.end_headers()
        self.wfile.write(encoded)

    def _send_error_json(self, status: int, message: str) -> None:
        self._send_json({"error": message}, status=status)

    def _send_file(self, rel_path: str) -> None:
        root = Path(self.context.config.general.output_root).resolve()
        filepath = (root / rel_path).resolve()
        # Must stay under output_root
        if not filepath.is_relative_to(root):
            raise ApiError(403, "Forbidden")
        if not filepath.is_file():
            raise ApiError(404, "File not found")
        content_type = _CONTENT_TYPES.get(filepath.suffix.lower(), "application/octet-stream")
        self.send_response(200)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(filepath.stat().st_size))
        self.end_headers()
        with open(filepath, "rb") as f:
            shutil.copyfileobj(f, self.wfile)

    # -- request helpers ---------------------------------------------------

    def _split(self) -> Tuple[str, Dict[str, str]]:
        parts = urlsplit(self.path)
        query = {k: v[-1] for k, v in parse_qs(parts.query).items()}
        return unquote(parts.path).rstrip("/") or "/", query

    def _request_base_url(self) -> str:
        host = self.headers.get("Host")
        if not host:
            return self.context.config.general.base_url
        return f"http://{host}"

    def _read_json_body(self) -> Dict[str, Any]:
        length = int(self.headers.get("Content-Length") or 0)
        if length <= 0:
            return {}
        raw = self.rfile.read(length)
        try:
            body = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise ApiError(400, "Invalid JSON body")
        if not isinstance(body, dict):
            raise ApiError(400, "JSON body must be an object")
        return body

    def _dispatch(self, handler) -> None:
        path, _ = self._split()
        try:
            handler()
        except ApiError as exc:
            self._send_error_json(exc.status, str(exc))
        except JobNotFound as exc:
            self._send_error_json(404, str(exc))
        except VideoBusy as exc:
            self._send_error_json(409, str(exc))
        except TranscodingError as exc:
            self._send_error_json(500, str(exc))
        except Exception as exc:
            logger.exception(f"Request failed: {self.command} {path}")
            self._send_error_json(500, str(exc))

    # -- routes ------------------------------------------------------------

    def do_GET(self) -> None:
        self._dispatch(self._handle_get)

    def do_POST(self) -> None:
        self._dispatch(self._handle_post)

    def _handle_get(self) -> None:
        path, query = self._split()
        public_prefix = f"/{self.context.config.general.public_path}/"

        if path == API_PREFIX:
            self._list_jobs(query)
        elif path.startswith(API_PREFIX + "/"):
            job_id = path[len(API_PREFIX) + 1:]
            if "/" in job_id:
                raise ApiError(404, "Not found")
            self._send_json(self.context.manager.get_job_status(job_id))
        elif path.startswith(public_prefix):
            self._send_file(path[len(public_prefix):])
        else:
            raise ApiError(404, "Not found")

    def _handle_post(self) -> None:
        path, _ = self._split()
        if path == f"{API_PREFIX}/process-queue":
            started = self.context.scanner.scan_and_start(self._request_base_url())
            self._send_json({
                "message": f"Started {started} transcoding jobs from the queue",
                "started_jobs": started,
            })
        elif path == f"{API_PREFIX}/restart-failed":
            body = self._read_json_body()
            max_hours = body.get("maxHours")
            try:
                max_hours = float(max_hours) if max_hours is not None else None
            except (TypeError, ValueError):
                raise ApiError(400, "maxHours must be a number")
            restarted = self.context.sweeper.sweep(max_hours, self._request_base_url())
            self._send_json({
                "message": f"Restarted {restarted} failed transcoding jobs",
                "restarted_jobs": restarted,
            })
        elif path.startswith(API_PREFIX + "/") and path.endswith("/start"):
            video_id = path[len(API_PREFIX) + 1:-len("/start")]
            if not video_id or "/" in video_id:
                raise ApiError(404, "Not found")
            self._start_video(video_id)
        else:
            raise ApiError(404, "Not found")

    def _list_jobs(self, query: Dict[str, str]) -> None:
        status = query.get("status")
        if status and status not in {s.value for s in JobStatus}:
            raise ApiError(400, f"Unknown status: {status}")
        try:
            limit = int(query["limit"]) if "limit" in query else 20
        except ValueError:
            raise ApiError(400, "limit must be an integer")
        if limit < 1:
            raise ApiError(400, "limit must be at least 1")
        jobs = self.context.manager.list_jobs(video_id=query.get("videoId"), status=status, limit=limit)
        self._send_json({"jobs": jobs})

    def _start_video(self, video_id: str) -> None:
        item = self.context.media_repo.get(video_id)
        if item is None:
            raise ApiError(404, "Video not found")
        if item.file_type != "video":
            raise ApiError(400, "File is not a video")
        source_path = self.context.manager.source_path_for(item)
        if not source_path.exists():
            raise ApiError(404, "Video file not found on disk")
        handle = self.context.manager.create_job(source_path, item.id, item.title, self._request_base_url())
        self._send_json(
            {"message": "Transcoding started", "job": handle.model_dump(mode="json")},
            status=202,
        )


class _ThreadingHTTPServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    """One thread per request; request threads never block interpreter exit."""

    allow_reuse_address = True
    daemon_threads = True


class TranscodingWebServer:
    """HTTP API server for transcoding jobs.

    Usage::

        server = TranscodingWebServer(context, port=3000)
        server.start()   # non-blocking
        ...
        server.stop()
    """

    def __init__(self, context: ApiContext, port: int = 3000, host: str = "0.0.0.0") -> None:
        self.context = context
        self.port = port
        self.host = host
        self._server: Optional[_ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def server_port(self) -> Optional[int]:
        return self._server.server_address[1] if self._server else None

    def start(self) -> None:
        """Start the server in a daemon background thread. Raises OSError if the port is taken."""
        handler = type("BoundTranscodingRequestHandler", (TranscodingRequestHandler,), {"context": self.context})
        self._server = _ThreadingHTTPServer((self.host, self.port), handler)
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="vtp-http",
            daemon=True,
        )
        self._thread.start()
        display_host = "localhost" if self.host in ("0.0.0.0", "::") else self.host
        logger.info("HTTP API: http://%s:%d%s", display_host, self.server_port, API_PREFIX)

    def stop(self) -> None:
        """Stops serving and closes the listening socket."""
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=2.0)
            self._thread = None
