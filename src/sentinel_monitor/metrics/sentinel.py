"""Prometheus metrics for sentinel-monitor runs.

All metrics use the 'sentinel_' prefix for consistency.
"""

from prometheus_client import Counter, Gauge, Histogram

RUNS = Counter(
    "sentinel_runs_total",
    "Total monitor runs",
    ["status"],  # status: ok, alerted, config_error, search_failed, notify_failed, failed
)

RUN_DURATION = Histogram(
    "sentinel_run_duration_seconds",
    "Time spent on one monitor run",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

RULE_OCCURRENCES = Gauge(
    "sentinel_rule_occurrences",
    "Occurrences of an error rule inside its window at the last run",
    ["rule"],
)

ALERTS = Counter(
    "sentinel_alerts_total",
    "Total rule threshold violations",
    ["rule"],
)

NOTIFICATIONS = Counter(
    "sentinel_notifications_total",
    "Total alert notifications",
    ["status"],  # status: sent, dryrun, failed
)

LAST_RUN_TIMESTAMP = Gauge(
    "sentinel_last_run_timestamp_seconds",
    "Unix time at which the last monitor run finished",
)
