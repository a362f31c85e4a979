"""Log error detection for sentinel-monitor.

Provides file discovery, recency filtering, signature search, windowed
counting, rule evaluation and the run orchestrator.
"""

from .files import discover_log_files, filter_recent_files, is_recent, last_timestamp
from .mailer import EmailNotifier, build_alert_email
from .rules import RuleEvaluator, RuleResult, format_alert_message
from .runner import MonitorRun, RunContext, RunResult, run_monitor
from .search import (
    ErrorSearcher,
    GrepSearchProvider,
    SearchProvider,
    SubstringSearchProvider,
    make_search_provider,
)
from .timestamps import count_in_window, extract_timestamp

__all__ = [
    # Runner
    "MonitorRun",
    "RunContext",
    "RunResult",
    "run_monitor",
    # Rules
    "RuleEvaluator",
    "RuleResult",
    "format_alert_message",
    # Files
    "discover_log_files",
    "filter_recent_files",
    "is_recent",
    "last_timestamp",
    # Search
    "ErrorSearcher",
    "SearchProvider",
    "SubstringSearchProvider",
    "GrepSearchProvider",
    "make_search_provider",
    # Timestamps
    "extract_timestamp",
    "count_in_window",
    # Notification
    "EmailNotifier",
    "build_alert_email",
]
