"""Metrics and run-health endpoint for the watch loop.

/metrics serves the Prometheus registry. /health reports the outcome of the
most recent monitor run, so a supervisor can tell a watch loop whose runs
keep failing (or have stopped happening) from a healthy one.
"""

import json
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from wsgiref.simple_server import WSGIRequestHandler, make_server

import structlog
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from sentinel_monitor.metrics.sentinel import LAST_RUN_TIMESTAMP

log = structlog.get_logger()

HEALTHY_STATUSES = ("ok", "alerted")


@dataclass
class RunHealth:
    """Outcome of the last monitor run, shared with the health endpoint."""

    status: str | None = None
    finished_at: datetime | None = None
    error: str | None = None
    runs: int = 0
    max_age: timedelta | None = None  # Runs older than this count as stalled

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def record(self, status: str, finished_at: datetime, error: str | None = None) -> None:
        with self._lock:
            self.status = status
            self.finished_at = finished_at
            self.error = error
            self.runs += 1
        LAST_RUN_TIMESTAMP.set(finished_at.timestamp())

    def reset(self) -> None:
        with self._lock:
            self.status = None
            self.finished_at = None
            self.error = None
            self.runs = 0
            self.max_age = None

    def report(self, now: datetime | None = None) -> tuple[bool, dict[str, Any]]:
        """Return (healthy, body) for the health endpoint."""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            body: dict[str, Any] = {
                "last_run_status": self.status,
                "last_run_at": self.finished_at.isoformat() if self.finished_at else None,
                "runs": self.runs,
            }
            if self.status is None:
                body["status"] = "starting"
                return True, body
            if self.error:
                body["error"] = self.error
            if self.max_age is not None and now - self.finished_at > self.max_age:
                body["status"] = "stalled"
                return False, body
            healthy = self.status in HEALTHY_STATUSES
            body["status"] = "ok" if healthy else "degraded"
            return healthy, body


RUN_HEALTH = RunHealth()


def record_run(status: str, finished_at: datetime, error: str | None = None) -> None:
    """Record the outcome of a monitor run for /health and the last-run gauge."""
    RUN_HEALTH.record(status, finished_at, error)


class _QuietHandler(WSGIRequestHandler):
    """WSGI handler that doesn't log every request."""

    def log_message(self, format: str, *args: object) -> None:
        pass


StartResponse = Callable[[str, list[tuple[str, str]]], Any]


def metrics_app(environ: dict[str, Any], start_response: StartResponse) -> list[bytes]:
    """WSGI app serving /metrics and the run-health report on /health."""
    path = environ.get("PATH_INFO", "/")

    if path == "/metrics":
        output = generate_latest(REGISTRY)
        status = "200 OK"
        headers = [("Content-Type", CONTENT_TYPE_LATEST)]
    elif path == "/health":
        healthy, body = RUN_HEALTH.report()
        output = json.dumps(body).encode()
        status = "200 OK" if healthy else "503 Service Unavailable"
        headers = [("Content-Type", "application/json")]
    else:
        output = b"Not Found"
        status = "404 Not Found"
        headers = [("Content-Type", "text/plain")]

    start_response(status, headers)
    return [output]


_server_lock = threading.Lock()
_server_thread: threading.Thread | None = None


def start_metrics_server(
    port: int = 9108, host: str = "0.0.0.0", max_run_age: timedelta | None = None
) -> threading.Thread:
    """Start a daemon thread serving metrics and run health.

    Args:
        port: Port to listen on
        host: Host to bind to
        max_run_age: Report "stalled" when the last run finished longer ago

    Returns:
        The serving thread; the running one if already started
    """
    global _server_thread
    RUN_HEALTH.max_age = max_run_age
    with _server_lock:
        if _server_thread is not None and _server_thread.is_alive():
            return _server_thread

        server = make_server(host, port, metrics_app, handler_class=_QuietHandler)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        log.info("Metrics server listening", host=host, port=port)
        _server_thread = thread
        return thread
