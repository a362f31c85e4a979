"""Prometheus metrics for sentinel-monitor.

Usage:
    from sentinel_monitor.metrics import start_metrics_server, RUNS

    start_metrics_server(port=9108)
    RUNS.labels(status="ok").inc()
"""

from sentinel_monitor.metrics.sentinel import (
    ALERTS,
    NOTIFICATIONS,
    LAST_RUN_TIMESTAMP,
    RULE_OCCURRENCES,
    RUN_DURATION,
    RUNS,
)
from sentinel_monitor.metrics.server import RUN_HEALTH, RunHealth, record_run, start_metrics_server

__all__ = [
    "start_metrics_server",
    "record_run",
    "RunHealth",
    "RUN_HEALTH",
    "LAST_RUN_TIMESTAMP",
    "RUNS",
    "RUN_DURATION",
    "RULE_OCCURRENCES",
    "ALERTS",
    "NOTIFICATIONS",
]
