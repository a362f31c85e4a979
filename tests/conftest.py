"""Shared fixtures for sentinel-monitor tests."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def format_stamp(moment: datetime) -> str:
    """Format a datetime the way sentinel log lines are prefixed."""
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


class RecordingNotifier:
    """Notifier that remembers every call instead of sending mail."""

    def __init__(self, succeed: bool = True):
        self.calls: list[dict] = []
        self.succeed = succeed

    def send(self, sender_email, sender_password, recipients, instance_name, messages, dryrun=False):
        self.calls.append(
            {
                "sender_email": sender_email,
                "sender_password": sender_password,
                "recipients": list(recipients),
                "instance_name": instance_name,
                "messages": list(messages),
                "dryrun": dryrun,
            }
        )
        return self.succeed


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def stamp():
    return format_stamp


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "logs"
    directory.mkdir()
    return directory


@pytest.fixture
def write_log(log_dir: Path):
    """Write lines to a file in log_dir and return its path as a string."""

    def _write(name: str, lines: list[str]) -> str:
        path = log_dir / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def raw_config(log_dir: Path) -> dict:
    return {
        "instanceName": "test-instance",
        "logDir": str(log_dir),
        "errors": [
            {
                "name": "crash",
                "string": "FATAL",
                "maxNumOccurrences": 0,
                "ageLimitMinutes": 60,
            }
        ],
        "sender": {"email": "sentinel@example.com", "password": "secret"},
        "recipients": ["ops@example.com", "dev@example.com"],
        "dryrun": True,
    }
