"""Tests for monitor runs and alert notification."""

import json
import smtplib
from datetime import datetime, timedelta, timezone

import pytest

from sentinel_monitor.config import MonitorConfig
from sentinel_monitor.detector import (
    EmailNotifier,
    MonitorRun,
    RuleEvaluator,
    build_alert_email,
    run_monitor,
)
from sentinel_monitor.detector import mailer
from sentinel_monitor.errors import NotificationFailure, SearchFailure


def _rule(name, string, max_num, age=60):
    return {"name": name, "string": string, "maxNumOccurrences": max_num, "ageLimitMinutes": age}


class TestMonitorRun:
    """Tests for sequencing rules within one run."""

    def test_no_problems_no_notification(self, raw_config, notifier, write_log, now, stamp):
        write_log("sentinel.log", [f"{stamp(now - timedelta(minutes=1))} INFO all good"])
        config = MonitorConfig.from_dict(raw_config)

        result = MonitorRun(config, notifier=notifier).execute(now=now)

        assert result.messages == []
        assert result.status == "ok"
        assert notifier.calls == []

    def test_messages_in_rule_order(self, raw_config, notifier, write_log, now, stamp):
        write_log(
            "sentinel.log",
            [
                f"{stamp(now - timedelta(minutes=3))} FATAL crash",
                f"{stamp(now - timedelta(minutes=2))} Starting services",
                f"{stamp(now - timedelta(minutes=1))} Starting services",
            ],
        )
        raw_config["errors"] = [
            _rule("restarts", "Starting services", 1),
            _rule("ok-rule", "never logged", 0),
            _rule("crash", "FATAL", 0),
        ]
        config = MonitorConfig.from_dict(raw_config)

        result = MonitorRun(config, notifier=notifier).execute(now=now)

        assert result.messages == [
            "2 restarts within the last 60 minutes. Limit is 1.",
            "1 crash within the last 60 minutes. Limit is 0.",
        ]
        assert [r.rule.name for r in result.rule_results] == ["restarts", "ok-rule", "crash"]
        assert result.status == "alerted"
        assert len(notifier.calls) == 1
        call = notifier.calls[0]
        assert call["messages"] == result.messages
        assert call["recipients"] == ["ops@example.com", "dev@example.com"]
        assert call["instance_name"] == "test-instance"
        assert call["sender_email"] == "sentinel@example.com"
        assert call["sender_password"] == "secret"
        assert call["dryrun"] is True

    def test_rules_evaluated_sequentially(self, raw_config, notifier, write_log, now, stamp):
        """Each rule finishes before the next one starts."""
        write_log("sentinel.log", [f"{stamp(now)} FATAL"])
        raw_config["errors"] = [_rule("one", "FATAL", 0), _rule("two", "FATAL", 0)]
        config = MonitorConfig.from_dict(raw_config)
        events = []

        class TracingEvaluator(RuleEvaluator):
            def evaluate(self, rule, log_files, now):
                events.append(("start", rule.name))
                result = super().evaluate(rule, log_files, now)
                events.append(("end", rule.name))
                return result

        MonitorRun(config, evaluator=TracingEvaluator(), notifier=notifier).execute(now=now)

        assert events == [("start", "one"), ("end", "one"), ("start", "two"), ("end", "two")]

    def test_idempotent(self, raw_config, notifier, write_log, now, stamp):
        write_log("sentinel.log", [f"{stamp(now - timedelta(minutes=i))} FATAL" for i in range(3)])
        config = MonitorConfig.from_dict(raw_config)
        run = MonitorRun(config, notifier=notifier)

        first = run.execute(now=now)
        second = run.execute(now=now)

        assert first.messages == second.messages
        assert first.messages == ["3 crash within the last 60 minutes. Limit is 0."]

    def test_search_failure_aborts_remaining_rules(self, raw_config, notifier, write_log, now, stamp):
        write_log("sentinel.log", [f"{stamp(now)} FATAL"])
        raw_config["errors"] = [_rule("first", "FATAL", 0), _rule("second", "FATAL", 0)]
        config = MonitorConfig.from_dict(raw_config)
        evaluated = []

        class FailingEvaluator(RuleEvaluator):
            def evaluate(self, rule, log_files, now):
                evaluated.append(rule.name)
                raise SearchFailure("permission denied", path=log_files[0])

        with pytest.raises(SearchFailure):
            MonitorRun(config, evaluator=FailingEvaluator(), notifier=notifier).execute(now=now)

        assert evaluated == ["first"]
        assert notifier.calls == []

    def test_clock_used_when_now_not_given(self, raw_config, notifier, now):
        config = MonitorConfig.from_dict(raw_config)
        result = MonitorRun(config, notifier=notifier, clock=lambda: now).execute()
        assert result.now == now


class TestRunMonitor:
    """Tests for the top-level run boundary."""

    def test_end_to_end_dryrun(self, raw_config, write_log, stamp, tmp_path, monkeypatch):
        """Two recent FATAL lines produce one dry-run alert and no SMTP traffic."""
        current = datetime.now(timezone.utc)
        write_log(
            "sentinel.log",
            [
                f"{stamp(current - timedelta(minutes=20))} FATAL out of memory",
                f"{stamp(current - timedelta(minutes=10))} INFO restarting",
                f"{stamp(current - timedelta(minutes=5))} FATAL out of memory",
            ],
        )
        path = tmp_path / "sentinel_monitor_config.json"
        path.write_text(json.dumps(raw_config))

        def no_smtp(*args, **kwargs):
            raise AssertionError("SMTP must not be used in dry run")

        monkeypatch.setattr(mailer.smtplib, "SMTP_SSL", no_smtp)
        calls = []

        class SpyNotifier(EmailNotifier):
            def send(self, *args, **kwargs):
                sent = super().send(*args, **kwargs)
                calls.append((args, sent))
                return sent

        result = run_monitor(config_path=path, notifier=SpyNotifier())

        assert result.status == "alerted"
        assert result.messages == ["2 crash within the last 60 minutes. Limit is 0."]
        assert result.notified is True
        assert len(calls) == 1
        args, sent = calls[0]
        assert args[4] == result.messages
        assert args[5] is True
        assert sent is True

    def test_config_error_before_any_rule(self, raw_config, notifier, tmp_path):
        del raw_config["recipients"]
        path = tmp_path / "config.json"
        path.write_text(json.dumps(raw_config))

        result = run_monitor(config_path=path, notifier=notifier)

        assert result.status == "config_error"
        assert "recipients" in result.error
        assert result.rule_results == []
        assert notifier.calls == []

    def test_missing_config_file(self, tmp_path, notifier):
        result = run_monitor(config_path=tmp_path / "missing.json", notifier=notifier)
        assert result.status == "config_error"

    def test_no_config_given(self):
        assert run_monitor().status == "config_error"

    def test_search_failure_reported(self, raw_config, notifier, now, monkeypatch):
        def fail(self, pattern, path):
            raise SearchFailure("boom", path=path)

        monkeypatch.setattr("sentinel_monitor.detector.search.SubstringSearchProvider.search", fail)
        config = MonitorConfig.from_dict(raw_config)
        monkeypatch.setattr(
            "sentinel_monitor.detector.rules.filter_recent_files",
            lambda paths, age, now: ["sentinel.log"],
        )

        result = run_monitor(config=config, now=now, notifier=notifier)

        assert result.status == "search_failed"
        assert result.succeeded is False
        assert notifier.calls == []

    def test_missing_log_dir_reported(self, raw_config, notifier, now, tmp_path):
        raw_config["logDir"] = str(tmp_path / "does-not-exist")
        config = MonitorConfig.from_dict(raw_config)

        result = run_monitor(config=config, now=now, notifier=notifier)

        assert result.status == "failed"
        assert result.error

    def test_notification_failure_reported(self, raw_config, write_log, now, stamp):
        write_log("sentinel.log", [f"{stamp(now)} FATAL"])
        config = MonitorConfig.from_dict(raw_config)

        class BrokenNotifier:
            def send(self, *args, **kwargs):
                raise NotificationFailure("smtp down")

        result = run_monitor(config=config, now=now, notifier=BrokenNotifier())

        assert result.status == "notify_failed"
        assert result.messages == ["1 crash within the last 60 minutes. Limit is 0."]

    def test_unsent_notification_fails_run(self, raw_config, notifier, write_log, now, stamp):
        """A notifier that reports the alert as not sent fails the run."""
        write_log("sentinel.log", [f"{stamp(now)} FATAL"])
        notifier.succeed = False

        result = run_monitor(config=MonitorConfig.from_dict(raw_config), now=now, notifier=notifier)

        assert len(notifier.calls) == 1
        assert result.notified is False
        assert result.status == "notify_failed"
        assert not result.succeeded

    def test_non_numeric_limit_is_config_error(self, raw_config, notifier, now, tmp_path):
        raw_config["errors"][0]["maxNumOccurrences"] = "lots"
        path = tmp_path / "config.json"
        path.write_text(json.dumps(raw_config))

        result = run_monitor(config_path=path, now=now, notifier=notifier)

        assert result.status == "config_error"
        assert "maxNumOccurrences in errors[0] must be a number" in result.error
        assert notifier.calls == []

    def test_dryrun_override(self, raw_config, notifier, write_log, now, stamp):
        write_log("sentinel.log", [f"{stamp(now)} FATAL"])
        raw_config["dryrun"] = False
        config = MonitorConfig.from_dict(raw_config)

        run_monitor(config=config, dryrun=True, now=now, notifier=notifier)

        assert notifier.calls[0]["dryrun"] is True
        assert config.dryrun is False


class TestEmailNotifier:
    """Tests for alert email construction and delivery."""

    def test_build_alert_email(self):
        msg = build_alert_email(
            "sentinel@example.com",
            ["ops@example.com", "dev@example.com"],
            "prod",
            ["3 crash within the last 60 minutes. Limit is 0.", "a <b> & c"],
        )

        assert msg["Subject"] == "Sentinel alert for prod!"
        assert msg["To"] == "ops@example.com, dev@example.com"
        assert "Sentinel Monitor" in msg["From"]
        assert "sentinel@example.com" in msg["From"]

        text = msg.get_body(preferencelist=("plain",)).get_content()
        html = msg.get_body(preferencelist=("html",)).get_content()
        assert " - 3 crash within the last 60 minutes. Limit is 0." in text
        assert "prod" in text
        assert "<p> - a &lt;b&gt; &amp; c</p>" in html

    def test_dryrun_does_not_connect(self, monkeypatch):
        def no_smtp(*args, **kwargs):
            raise AssertionError("SMTP must not be used in dry run")

        monkeypatch.setattr(mailer.smtplib, "SMTP_SSL", no_smtp)

        sent = EmailNotifier().send(
            "sentinel@example.com", "secret", ["ops@example.com"], "prod", ["msg"], dryrun=True
        )

        assert sent is True

    def test_sends_over_smtp(self, monkeypatch):
        sessions = []

        class FakeSMTP:
            def __init__(self, host, port, timeout=None, context=None):
                self.host = host
                self.port = port
                self.logins = []
                self.sent = []
                sessions.append(self)

            def __enter__(self):
                return self

            def __exit__(self, *exc):
                return False

            def login(self, user, password):
                self.logins.append((user, password))

            def send_message(self, msg):
                self.sent.append(msg)
                return {}

        monkeypatch.setattr(mailer.smtplib, "SMTP_SSL", FakeSMTP)

        sent = EmailNotifier().send(
            "sentinel@example.com", "secret", ["ops@example.com"], "prod", ["msg"]
        )

        assert sent is True
        assert sessions[0].host == "smtp.gmail.com"
        assert sessions[0].port == 465
        assert sessions[0].logins == [("sentinel@example.com", "secret")]
        assert sessions[0].sent[0]["Subject"] == "Sentinel alert for prod!"

    def test_smtp_error_raises_notification_failure(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise smtplib.SMTPConnectError(421, b"try later")

        monkeypatch.setattr(mailer.smtplib, "SMTP_SSL", refuse)

        with pytest.raises(NotificationFailure):
            EmailNotifier().send(
                "sentinel@example.com", "secret", ["ops@example.com"], "prod", ["msg"]
            )
