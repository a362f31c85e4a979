"""Leading-timestamp extraction and windowed occurrence counting."""

import re
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

# E.g. 2015-10-17T15:14:32.176Z
TIMESTAMP_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", re.ASCII)
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def extract_timestamp(line: str) -> datetime | None:
    """Parse the ISO-8601 UTC timestamp a log line starts with.

    Returns:
        Timezone-aware UTC datetime, or None if the line doesn't start
        with a well-formed timestamp
    """
    match = TIMESTAMP_PATTERN.match(line)
    if match is None:
        return None
    try:
        parsed = datetime.strptime(match.group(0), _TIMESTAMP_FORMAT)
    except ValueError:
        # Shape matched but the date is impossible (e.g. month 13)
        return None
    return parsed.replace(tzinfo=timezone.utc)


def window_start(now: datetime, age_limit_minutes: float) -> datetime:
    """Oldest instant still inside an age-limit window ending at now (exclusive)."""
    return now - timedelta(minutes=age_limit_minutes)


def is_within_age_limit(
    timestamp: datetime | None, age_limit_minutes: float, now: datetime
) -> bool:
    """True if timestamp is strictly newer than now minus the age limit."""
    if timestamp is None:
        return False
    return timestamp > window_start(now, age_limit_minutes)


def count_in_window(lines: Iterable[str], age_limit_minutes: float, now: datetime) -> int:
    """Count lines whose own timestamp falls within the age-limit window.

    Lines without a leading timestamp are never counted.
    """
    return sum(
        1
        for line in lines
        if is_within_age_limit(extract_timestamp(line), age_limit_minutes, now)
    )
