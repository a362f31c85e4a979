"""CLI for sentinel-monitor.

Usage:
    sentinel-monitor run --dry-run
    sentinel-monitor watch --interval-minutes 5 --metrics-port 9108
    sentinel-monitor check-config
    sentinel-monitor test-email
"""

import time
from datetime import timedelta
from pathlib import Path

import click
import schedule

from sentinel_monitor.config import (
    MonitorConfig,
    default_config_path,
    load_raw_config,
    validate_config,
)
from sentinel_monitor.detector import EmailNotifier, run_monitor
from sentinel_monitor.errors import ConfigurationError, NotificationFailure
from sentinel_monitor.logging import configure_logging, get_logger
from sentinel_monitor.metrics import start_metrics_server

log = get_logger(__name__)


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=default_config_path,
    help="Config file path (JSON or YAML)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also append log entries to this file",
)
@click.pass_context
def main(ctx: click.Context, config_path: Path, verbose: bool, log_file: Path | None) -> None:
    """Watch sentinel log files and email when errors pile up."""
    configure_logging("sentinel-monitor", "DEBUG" if verbose else "INFO", log_file=log_file)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command("run")
@click.option("--dry-run", is_flag=True, help="Don't send email, even if the config allows it")
@click.pass_context
def run_command(ctx: click.Context, dry_run: bool) -> None:
    """Run every error rule once and notify if any limit is exceeded."""
    result = run_monitor(config_path=ctx.obj["config_path"], dryrun=True if dry_run else None)

    for message in result.messages:
        click.echo(f" - {message}")
    if not result.succeeded:
        click.echo(f"Run failed ({result.status}): {result.error}", err=True)
        raise SystemExit(1)
    if not result.messages:
        click.echo("No problems!")


@main.command("watch")
@click.option("--interval-minutes", default=5, type=int, help="Minutes between runs")
@click.option("--metrics-port", type=int, default=None, help="Serve Prometheus metrics on this port")
@click.option("--dry-run", is_flag=True, help="Don't send email, even if the config allows it")
@click.pass_context
def watch_command(
    ctx: click.Context, interval_minutes: int, metrics_port: int | None, dry_run: bool
) -> None:
    """Run the monitor now and then every N minutes.

    Runs never overlap. A failed run is logged and the next one still happens.
    """
    config_path = ctx.obj["config_path"]

    if metrics_port is not None:
        # Three missed intervals in a row mark the loop as stalled
        start_metrics_server(port=metrics_port, max_run_age=timedelta(minutes=3 * interval_minutes))

    def job() -> None:
        run_monitor(config_path=config_path, dryrun=True if dry_run else None)

    log.info("Starting watch loop", interval_minutes=interval_minutes, config=str(config_path))
    job()
    schedule.every(interval_minutes).minutes.do(job)

    try:
        while True:
            schedule.run_pending()
            time.sleep(1)
    except KeyboardInterrupt:
        log.info("Received shutdown signal")
    finally:
        schedule.clear()


@main.command("check-config")
@click.pass_context
def check_config(ctx: click.Context) -> None:
    """Check that the config file has every required field."""
    config_path = ctx.obj["config_path"]
    try:
        raw = load_raw_config(config_path)
    except ConfigurationError as e:
        click.echo(str(e))
        raise SystemExit(1)

    ok, diagnostics = validate_config(raw)
    if not ok:
        click.echo(f"{config_path} is invalid:")
        for diagnostic in diagnostics:
            click.echo(f"  - {diagnostic}")
        raise SystemExit(1)

    try:
        config = MonitorConfig.from_dict(raw)
    except ConfigurationError as e:
        click.echo(f"{config_path} is invalid:")
        for diagnostic in e.diagnostics or [str(e)]:
            click.echo(f"  - {diagnostic}")
        raise SystemExit(1)
    click.echo(f"{config_path} is valid.")
    click.echo(f"  Instance: {config.instance_name}")
    click.echo(f"  Log dir: {config.log_dir}")
    click.echo(f"  Rules: {', '.join(rule.name for rule in config.errors)}")
    click.echo(f"  Recipients: {', '.join(config.recipients)}")
    click.echo(f"  Dry run: {config.dryrun}")


@main.command("test-email")
@click.option("--dry-run", is_flag=True, help="Don't send email, even if the config allows it")
@click.pass_context
def test_email(ctx: click.Context, dry_run: bool) -> None:
    """Send a test alert to verify mail settings."""
    try:
        config = MonitorConfig.from_file(ctx.obj["config_path"])
    except ConfigurationError as e:
        click.echo(str(e))
        raise SystemExit(1)

    notifier = EmailNotifier(config.smtp)
    try:
        notifier.send(
            config.sender.email,
            config.sender.password,
            config.recipients,
            config.instance_name,
            ["Test alert. Sentinel monitor is configured correctly."],
            dry_run or config.dryrun,
        )
    except NotificationFailure as e:
        click.echo(f"Failed to send test email: {e}")
        raise SystemExit(1)
    click.echo("Test email sent successfully!")


if __name__ == "__main__":
    main()
