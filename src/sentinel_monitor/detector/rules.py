"""Evaluation of a single error rule against the discovered log files."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from sentinel_monitor.config import ErrorRule
from sentinel_monitor.metrics import ALERTS, RULE_OCCURRENCES

from .files import filter_recent_files
from .search import ErrorSearcher
from .timestamps import count_in_window

log = structlog.get_logger()


def format_alert_message(rule: ErrorRule, count: int) -> str:
    """Human-readable description of a rule's occurrence count."""
    return (
        f"{count} {rule.name} within the last {rule.age_limit_minutes:g} minutes. "
        f"Limit is {rule.max_num_occurrences}."
    )


@dataclass
class RuleResult:
    """Outcome of evaluating one rule."""

    rule: ErrorRule
    recent_files: list[str] = field(default_factory=list)
    matches: list[str] = field(default_factory=list)
    count: int = 0
    message: str | None = None  # Set only when the threshold was exceeded

    @property
    def violated(self) -> bool:
        return self.message is not None


class RuleEvaluator:
    """Runs one error rule: recency filter, search, windowed count, threshold."""

    def __init__(self, searcher: ErrorSearcher | None = None):
        self.searcher = searcher or ErrorSearcher()

    def evaluate(self, rule: ErrorRule, log_files: Sequence[str], now: datetime) -> RuleResult:
        """Evaluate rule against log_files as of now.

        Raises:
            SearchFailure: if a log file can't be read or searched
        """
        log.info("Checking error rule", rule=rule.name)

        recent_files = filter_recent_files(log_files, rule.age_limit_minutes, now)
        log.info("Recent files", rule=rule.name, files=recent_files)

        matches = self.searcher.search(recent_files, rule.string)
        # Matches are re-checked against the window on their own timestamps,
        # so a recent file can still contribute nothing.
        count = count_in_window(matches, rule.age_limit_minutes, now)
        RULE_OCCURRENCES.labels(rule=rule.name).set(count)

        text = format_alert_message(rule, count)
        result = RuleResult(rule=rule, recent_files=recent_files, matches=matches, count=count)

        if count > rule.max_num_occurrences:
            log.warning("Error rule limit exceeded", rule=rule.name, summary=text)
            ALERTS.labels(rule=rule.name).inc()
            result.message = text
        else:
            log.info("Error rule within limit", rule=rule.name, summary=text)

        return result
