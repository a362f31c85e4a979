"""Log file discovery and file-level recency filtering."""

import os
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

import structlog

from sentinel_monitor.errors import SearchFailure

from .timestamps import extract_timestamp, is_within_age_limit

log = structlog.get_logger()

LOG_FILE_MARKER = "sentinel"


def discover_log_files(log_dir: str | Path, marker: str = LOG_FILE_MARKER) -> list[str]:
    """List log files in log_dir whose name contains marker.

    Matching is case-sensitive. Subdirectories are neither returned nor
    descended into. Names are sorted rather than kept in raw listing order,
    which the OS doesn't guarantee, so repeated runs see the same order.
    """
    log_dir = str(log_dir)
    paths = []
    for name in sorted(os.listdir(log_dir)):
        if marker not in name:
            continue
        path = os.path.join(log_dir, name)
        if os.path.isfile(path):
            paths.append(path)
    log.debug("Discovered log files", log_dir=log_dir, count=len(paths))
    return paths


def read_lines(path: str | Path) -> list[str]:
    """Read a log file as a list of lines, replacing undecodable bytes.

    Lines are split on "\n" only, the way grep splits them; a carriage
    return inside a line stays part of that line.
    """
    with open(path, encoding="utf-8", errors="replace", newline="") as f:
        return f.read().split("\n")


def last_timestamp(lines: Sequence[str]) -> datetime | None:
    """Timestamp of the last timestamped line, scanning from the end."""
    for line in reversed(lines):
        timestamp = extract_timestamp(line)
        if timestamp is not None:
            return timestamp
    return None


def is_recent(lines: Sequence[str], age_limit_minutes: float, now: datetime) -> bool:
    """Whether a file's content was written to within the age limit.

    A file without any timestamped line is never recent.
    """
    return is_within_age_limit(last_timestamp(lines), age_limit_minutes, now)


def filter_recent_files(
    paths: Sequence[str], age_limit_minutes: float, now: datetime
) -> list[str]:
    """Keep the files whose last timestamped line is inside the age limit."""
    recent = []
    for path in paths:
        try:
            lines = read_lines(path)
        except OSError as e:
            raise SearchFailure(f"Couldn't read log file {path}: {e}", path=path) from e
        if is_recent(lines, age_limit_minutes, now):
            recent.append(path)
    return recent
