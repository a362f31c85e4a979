"""One monitor run: every rule in order, then a single notification."""

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import structlog

from sentinel_monitor.config import MonitorConfig
from sentinel_monitor.errors import ConfigurationError, NotificationFailure, SearchFailure
from sentinel_monitor.metrics import RUN_DURATION, RUNS, record_run

from .files import discover_log_files
from .mailer import EmailNotifier
from .rules import RuleEvaluator, RuleResult
from .search import ErrorSearcher, make_search_provider

log = structlog.get_logger()


class Notifier(Protocol):
    """Mail transport called with the alert messages of a run."""

    def send(
        self,
        sender_email: str,
        sender_password: str,
        recipients: Sequence[str],
        instance_name: str,
        messages: Sequence[str],
        dryrun: bool = False,
    ) -> bool: ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunContext:
    """State owned by a single run."""

    now: datetime
    log_files: list[str]
    messages: list[str] = field(default_factory=list)


@dataclass
class RunResult:
    """Outcome of a run, as reported at the run boundary."""

    now: datetime
    messages: list[str] = field(default_factory=list)
    rule_results: list[RuleResult] = field(default_factory=list)
    notified: bool = False
    status: str = "ok"  # ok, alerted, config_error, search_failed, notify_failed, failed
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status in ("ok", "alerted")


class MonitorRun:
    """Evaluates every configured rule and hands violations to the notifier."""

    def __init__(
        self,
        config: MonitorConfig,
        evaluator: RuleEvaluator | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        if evaluator is None:
            provider = make_search_provider(config.searcher, config.search_timeout_seconds)
            evaluator = RuleEvaluator(ErrorSearcher(provider, max_workers=config.max_workers))
        self.evaluator = evaluator
        self.notifier = notifier or EmailNotifier(config.smtp)
        self.clock = clock

    def execute(self, now: datetime | None = None, result: RunResult | None = None) -> RunResult:
        """Run all rules one after another and notify if any was violated.

        Rule N+1 only starts once rule N, including its verdict, is done.

        Raises:
            SearchFailure: a log file couldn't be searched; remaining rules are skipped
            NotificationFailure: the alert email couldn't be sent
        """
        now = now or self.clock()
        result = result or RunResult(now=now)
        context = RunContext(now=now, log_files=discover_log_files(self.config.log_dir))
        log.info("Log files", files=context.log_files)

        for rule in self.config.errors:
            rule_result = self.evaluator.evaluate(rule, context.log_files, context.now)
            result.rule_results.append(rule_result)
            if rule_result.message is not None:
                context.messages.append(rule_result.message)

        result.messages = list(context.messages)
        if not context.messages:
            log.info("No problems!")
            return result

        log.warning("Found problems, sending email", problems=len(context.messages))
        result.status = "alerted"
        result.notified = self.notifier.send(
            self.config.sender.email,
            self.config.sender.password,
            self.config.recipients,
            self.config.instance_name,
            context.messages,
            self.config.dryrun,
        )
        if not result.notified:
            result.status = "notify_failed"
            result.error = "Notifier reported the alert as not sent"
            log.error("Alert notification was not sent", problems=len(context.messages))
        return result


def run_monitor(
    config: MonitorConfig | None = None,
    config_path: Path | None = None,
    dryrun: bool | None = None,
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> RunResult:
    """Perform one complete monitor run and never raise.

    Either config or config_path must be given. Every failure is logged and
    reflected in the returned status so the caller (a scheduler or the CLI)
    keeps running.

    Args:
        config: Already loaded configuration
        config_path: Config file to load when config is not given
        dryrun: Overrides the configured dryrun flag when not None
        now: Reference time for all windows (default: current UTC time)
        notifier: Mail transport (default: EmailNotifier from config)
    """
    started = time.monotonic()
    now = now or utc_now()
    result = RunResult(now=now)
    log.info("Starting monitor run", now=now.isoformat())

    try:
        if config is None:
            if config_path is None:
                raise ConfigurationError("No configuration given")
            config = MonitorConfig.from_file(config_path)
        if dryrun is not None:
            config = replace(config, dryrun=dryrun)
        log.info("Config", config=config.redacted())

        MonitorRun(config, notifier=notifier).execute(now=now, result=result)
    except ConfigurationError as e:
        result.status = "config_error"
        result.error = str(e)
        for diagnostic in e.diagnostics:
            log.error("Configuration problem", problem=diagnostic)
        log.error("Invalid configuration, aborting", error=str(e))
    except SearchFailure as e:
        result.status = "search_failed"
        result.error = str(e)
        log.error("Search failed, aborting run", path=e.path, error=str(e))
    except NotificationFailure as e:
        result.status = "notify_failed"
        result.error = str(e)
        log.error("Couldn't send notification", error=str(e))
    except Exception as e:
        result.status = "failed"
        result.error = str(e)
        log.exception("Something went wrong")
    finally:
        RUNS.labels(status=result.status).inc()
        RUN_DURATION.observe(time.monotonic() - started)
        record_run(result.status, utc_now(), result.error)
        log.info("End of run", status=result.status, alerts=len(result.messages))

    return result
