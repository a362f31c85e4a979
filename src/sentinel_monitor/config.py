"""Configuration loading for sentinel-monitor."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from sentinel_monitor.errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path("sentinel_monitor_config.json")

REQUIRED_FIELDS = ["instanceName", "logDir", "errors", "sender", "recipients"]
RULE_FIELDS = ["name", "string", "maxNumOccurrences", "ageLimitMinutes"]

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _number(data: dict[str, Any], key: str, convert: Any, where: str) -> Any:
    try:
        return convert(data[key])
    except (TypeError, ValueError):
        diagnostic = f"{key} in {where} must be a number, got {data[key]!r}"
        raise ConfigurationError(f"Invalid configuration: {diagnostic}", [diagnostic]) from None


def validate_config(raw: Any) -> tuple[bool, list[str]]:
    """Check that a parsed config document has every required field.

    Only presence is checked; value types and formats are taken as given.

    Args:
        raw: The parsed configuration document

    Returns:
        (ok, diagnostics) where diagnostics names each missing or empty field
    """
    if not isinstance(raw, dict):
        return False, ["Config must be a mapping of fields"]

    diagnostics = []
    for name in REQUIRED_FIELDS:
        if name not in raw:
            diagnostics.append(f"No {name} in config")
        elif _is_empty(raw[name]):
            diagnostics.append(f"{name} is empty")

    sender = raw.get("sender")
    if isinstance(sender, dict):
        for name in ("email", "password"):
            if not sender.get(name):
                diagnostics.append(f"No sender.{name} in config")
    elif sender is not None and not _is_empty(sender):
        diagnostics.append("sender must be a mapping with email and password")

    errors = raw.get("errors")
    if isinstance(errors, list):
        for index, rule in enumerate(errors):
            if not isinstance(rule, dict):
                diagnostics.append(f"errors[{index}] must be a mapping")
                continue
            for name in RULE_FIELDS:
                if rule.get(name) is None:
                    diagnostics.append(f"No {name} in errors[{index}]")
    elif errors is not None and not _is_empty(errors):
        diagnostics.append("errors must be a list of error rules")

    recipients = raw.get("recipients")
    if recipients is not None and not _is_empty(recipients) and not isinstance(recipients, list):
        diagnostics.append("recipients must be a list of email addresses")

    return not diagnostics, diagnostics


@dataclass(frozen=True)
class ErrorRule:
    """One monitored error signature with its threshold and time window."""

    name: str
    string: str
    max_num_occurrences: int
    age_limit_minutes: float

    @classmethod
    def from_dict(cls, data: dict[str, Any], index: int = 0) -> "ErrorRule":
        """Build a rule from its config entry.

        Raises:
            ConfigurationError: if a limit is not a number
        """
        return cls(
            name=str(data["name"]),
            string=str(data["string"]),
            max_num_occurrences=_number(data, "maxNumOccurrences", int, f"errors[{index}]"),
            age_limit_minutes=_number(data, "ageLimitMinutes", float, f"errors[{index}]"),
        )


@dataclass
class SenderConfig:
    """Mailbox that alerts are sent from."""

    email: str
    password: str


@dataclass
class SmtpConfig:
    """SMTP server used for alert delivery."""

    host: str = "smtp.gmail.com"
    port: int = 465
    timeout: float = 30.0


@dataclass
class MonitorConfig:
    """Application configuration."""

    instance_name: str
    log_dir: Path
    errors: list[ErrorRule]
    sender: SenderConfig
    recipients: list[str]
    dryrun: bool = False
    smtp: SmtpConfig = field(default_factory=SmtpConfig)
    searcher: str = "substring"
    max_workers: int = 4
    search_timeout_seconds: float | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> "MonitorConfig":
        """Build configuration from a parsed document.

        Raises:
            ConfigurationError: if any required field is missing or empty, or a
                numeric field is not a number
        """
        ok, diagnostics = validate_config(raw)
        if not ok:
            raise ConfigurationError(
                "Invalid configuration: " + "; ".join(diagnostics), diagnostics
            )

        smtp_data = raw.get("smtp") or {}
        smtp = SmtpConfig(
            host=smtp_data.get("host", SmtpConfig.host),
            port=_number({"port": SmtpConfig.port, **smtp_data}, "port", int, "smtp"),
            timeout=_number({"timeout": SmtpConfig.timeout, **smtp_data}, "timeout", float, "smtp"),
        )
        timeout = raw.get("searchTimeoutSeconds")

        return cls(
            instance_name=str(raw["instanceName"]),
            log_dir=Path(raw["logDir"]),
            errors=[ErrorRule.from_dict(rule, index) for index, rule in enumerate(raw["errors"])],
            sender=SenderConfig(
                email=raw["sender"]["email"], password=raw["sender"]["password"]
            ),
            recipients=list(raw["recipients"]),
            dryrun=bool(raw.get("dryrun", False)),
            smtp=smtp,
            searcher=raw.get("searcher", "substring"),
            max_workers=_number({"maxWorkers": 4, **raw}, "maxWorkers", int, "config"),
            search_timeout_seconds=(
                _number(raw, "searchTimeoutSeconds", float, "config") if timeout is not None else None
            ),
        )

    @classmethod
    def from_file(cls, path: Path) -> "MonitorConfig":
        """Load configuration from a JSON or YAML file, with env var overrides."""
        return cls.from_dict(load_raw_config(path))

    def redacted(self) -> dict[str, Any]:
        """Return a loggable view of the config with the password masked."""
        return {
            "instance_name": self.instance_name,
            "log_dir": str(self.log_dir),
            "errors": [
                {
                    "name": rule.name,
                    "string": rule.string,
                    "max_num_occurrences": rule.max_num_occurrences,
                    "age_limit_minutes": rule.age_limit_minutes,
                }
                for rule in self.errors
            ],
            "sender": {"email": self.sender.email, "password": "***"},
            "recipients": self.recipients,
            "dryrun": self.dryrun,
            "searcher": self.searcher,
        }


def apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay SENTINEL_* environment variables onto a parsed config document."""
    data = dict(data)

    password = os.environ.get("SENTINEL_SENDER_PASSWORD")
    if password:
        sender = data.get("sender")
        sender = dict(sender) if isinstance(sender, dict) else {}
        sender["password"] = password
        data["sender"] = sender

    smtp = dict(data.get("smtp") or {})
    if os.environ.get("SENTINEL_SMTP_HOST"):
        smtp["host"] = os.environ["SENTINEL_SMTP_HOST"]
    if os.environ.get("SENTINEL_SMTP_PORT"):
        smtp["port"] = int(os.environ["SENTINEL_SMTP_PORT"])
    if smtp:
        data["smtp"] = smtp

    dryrun = os.environ.get("SENTINEL_DRYRUN")
    if dryrun:
        data["dryrun"] = dryrun.strip().lower() in _TRUE_VALUES

    return data


def default_config_path() -> Path:
    """Config path from SENTINEL_CONFIG, else sentinel_monitor_config.json."""
    return Path(os.environ.get("SENTINEL_CONFIG", str(DEFAULT_CONFIG_PATH)))


def load_raw_config(path: Path) -> Any:
    """Parse a JSON or YAML config file and apply env var overrides.

    Raises:
        ConfigurationError: if the file can't be read or parsed
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Couldn't open config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Couldn't parse config file {path}: {e}") from e

    if isinstance(data, dict):
        data = apply_env_overrides(data)
    return data
