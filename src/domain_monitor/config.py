"""
Configuration dataclasses and loading for the domain monitor.

The configuration is read from a YAML file (or JSON, selected by the
``.json`` suffix) on every poll cycle, so edits take effect on the next
tick without a restart.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from .exceptions import ConfigLoadFailure

# Poll interval floor in minutes; smaller values are raised to it
MIN_INTERVAL_MINUTES = 5

DEFAULT_CONFIG_PATH = Path("config.yaml")

LOG_FORMATS = ("json", "text", "both")
LOG_LEVELS = ("debug", "info", "warn", "error")


def clamp_interval(minutes: int) -> int:
    """Raise an interval below the floor to the floor; never an error."""
    return max(int(minutes), MIN_INTERVAL_MINUTES)


@dataclass(frozen=True)
class WebhookSink:
    """A notification destination.

    ``url`` is where the payload is POSTed. ``routing_key`` carries the
    PagerDuty integration credential; older configurations put that key in
    ``url`` instead, which the PagerDuty channel still understands.
    """

    kind: str
    url: str = ""
    routing_key: Optional[str] = None
    headers: tuple[tuple[str, str], ...] = ()


@dataclass
class DomainConfig:
    """A monitored domain with its own sinks."""

    name: str
    webhooks: list[WebhookSink] = field(default_factory=list)


@dataclass
class TimeoutConfig:
    """Per-request timeouts in seconds for every outbound call."""

    whois_seconds: float = 20.0
    dns_seconds: float = 10.0
    webhook_seconds: float = 15.0


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class MonitorConfig:
    """Main configuration combining all sub-configurations."""

    interval: int = MIN_INTERVAL_MINUTES
    domains: list[DomainConfig] = field(default_factory=list)
    webhooks: list[WebhookSink] = field(default_factory=list)
    max_workers: int = 8
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    dry_run: bool = False

    @property
    def effective_interval(self) -> int:
        """Interval in minutes after applying the floor."""
        return clamp_interval(self.interval)

    @property
    def domain_names(self) -> list[str]:
        return [domain.name for domain in self.domains]

    def sinks_for_domain(self, name: str) -> list[WebhookSink]:
        """Return the domain's own sinks, or an empty list if it is not configured."""
        for domain in self.domains:
            if domain.name == name:
                return list(domain.webhooks)
        return []


def _fail(message: str, path: Path, **details: Any) -> ConfigLoadFailure:
    return ConfigLoadFailure(
        code="invalid_config",
        message=message,
        details={"file_path": str(path), **details},
    )


def _parse_sink(data: Any, path: Path, where: str) -> WebhookSink:
    if not isinstance(data, dict):
        raise _fail(f"Webhook entry in {where} must be a mapping", path)

    kind = data.get("type", data.get("kind"))
    if not kind or not isinstance(kind, str):
        raise _fail(f"Webhook entry in {where} is missing its type", path)

    headers = data.get("headers") or {}
    if not isinstance(headers, dict):
        raise _fail(f"Webhook headers in {where} must be a mapping", path)

    return WebhookSink(
        kind=kind.strip().lower(),
        url=str(data.get("url") or ""),
        routing_key=data.get("routing_key"),
        headers=tuple(sorted((str(k), str(v)) for k, v in headers.items())),
    )


def _parse_sinks(data: Any, path: Path, where: str) -> list[WebhookSink]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise _fail(f"Webhooks in {where} must be a list", path)
    return [_parse_sink(item, path, where) for item in data]


def config_from_dict(data: Any, path: Path = DEFAULT_CONFIG_PATH) -> MonitorConfig:
    """
    Build a MonitorConfig from decoded YAML/JSON data.

    Args:
        data: Decoded document (must be a mapping, or None for an empty file)
        path: Source path, used in error details only

    Returns:
        MonitorConfig with the interval left as configured

    Raises:
        ConfigLoadFailure: If the document is structurally invalid
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise _fail("Configuration root must be a mapping", path)

    try:
        interval = int(data.get("interval", MIN_INTERVAL_MINUTES))
        max_workers = int(data.get("max_workers", 8))
    except (TypeError, ValueError) as e:
        raise _fail(f"Invalid numeric setting: {e}", path) from e
    if max_workers < 1:
        raise _fail("max_workers must be at least 1", path, max_workers=max_workers)

    domains = []
    raw_domains = data.get("domains") or []
    if not isinstance(raw_domains, list):
        raise _fail("domains must be a list", path)
    for index, entry in enumerate(raw_domains):
        if isinstance(entry, str):
            entry = {"name": entry}
        if not isinstance(entry, dict):
            raise _fail(f"Domain entry #{index} must be a name or a mapping", path)
        name = str(entry.get("name") or "").strip()
        if not name:
            raise _fail(f"Domain entry #{index} has no name", path)
        domains.append(
            DomainConfig(
                name=name,
                webhooks=_parse_sinks(entry.get("webhooks"), path, f"domain '{name}'"),
            )
        )

    timeouts_data = data.get("timeouts") or {}
    logging_data = data.get("logging") or {}
    if not isinstance(timeouts_data, dict):
        raise _fail("timeouts must be a mapping", path)
    if not isinstance(logging_data, dict):
        raise _fail("logging must be a mapping", path)
    try:
        timeouts = TimeoutConfig(
            whois_seconds=float(timeouts_data.get("whois_seconds", 20.0)),
            dns_seconds=float(timeouts_data.get("dns_seconds", 10.0)),
            webhook_seconds=float(timeouts_data.get("webhook_seconds", 15.0)),
        )
    except (TypeError, ValueError) as e:
        raise _fail(f"Invalid timeouts section: {e}", path) from e

    logging_config = LoggingConfig(
        level=str(logging_data.get("level", "info")).lower(),
        output_format=str(logging_data.get("output_format", "text")).lower(),
    )
    if logging_config.level not in LOG_LEVELS:
        raise _fail(f"Unknown log level: {logging_config.level}", path)
    if logging_config.output_format not in LOG_FORMATS:
        raise _fail(f"Unknown log format: {logging_config.output_format}", path)

    return MonitorConfig(
        interval=interval,
        domains=domains,
        webhooks=_parse_sinks(data.get("webhooks"), path, "global section"),
        max_workers=max_workers,
        timeouts=timeouts,
        logging=logging_config,
        dry_run=bool(data.get("dry_run", False)),
    )


def load_config(config_path: Path) -> MonitorConfig:
    """
    Load configuration from a YAML or JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Parsed MonitorConfig

    Raises:
        ConfigLoadFailure: If the file is missing, undecodable or invalid
    """
    config_path = Path(config_path)
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            if config_path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigLoadFailure(
            code="not_found",
            message=f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)},
        ) from e
    except OSError as e:
        raise ConfigLoadFailure(
            code="io_error",
            message=f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path)},
        ) from e
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigLoadFailure(
            code="parse_error",
            message=f"Failed to parse configuration file: {e}",
            details={"file_path": str(config_path)},
        ) from e

    return config_from_dict(data, config_path)


def _sink_to_dict(sink: WebhookSink) -> dict:
    data: dict[str, Any] = {"type": sink.kind}
    if sink.url:
        data["url"] = sink.url
    if sink.routing_key:
        data["routing_key"] = sink.routing_key
    if sink.headers:
        data["headers"] = dict(sink.headers)
    return data


def config_to_dict(config: MonitorConfig) -> dict:
    """Serialize a MonitorConfig into the file layout read by load_config."""
    return {
        "interval": config.interval,
        "max_workers": config.max_workers,
        "dry_run": config.dry_run,
        "timeouts": {
            "whois_seconds": config.timeouts.whois_seconds,
            "dns_seconds": config.timeouts.dns_seconds,
            "webhook_seconds": config.timeouts.webhook_seconds,
        },
        "logging": {
            "level": config.logging.level,
            "output_format": config.logging.output_format,
        },
        "webhooks": [_sink_to_dict(sink) for sink in config.webhooks],
        "domains": [
            {
                "name": domain.name,
                "webhooks": [_sink_to_dict(sink) for sink in domain.webhooks],
            }
            for domain in config.domains
        ],
    }


def save_config(config: MonitorConfig, config_path: Path) -> None:
    """
    Write configuration to disk as YAML (or JSON for a ``.json`` path).

    Raises:
        OSError: If the file cannot be written
    """
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    data = config_to_dict(config)
    with open(config_path, "w", encoding="utf-8") as f:
        if config_path.suffix.lower() == ".json":
            json.dump(data, f, indent=2, ensure_ascii=False)
        else:
            yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)


def create_default_config() -> MonitorConfig:
    """Return a starter configuration with one domain and one global sink."""
    return MonitorConfig(
        interval=10,
        domains=[DomainConfig(name="example.com")],
        webhooks=[
            WebhookSink(
                kind="discord",
                url="https://discord.com/api/webhooks/000000/change-me",
            )
        ],
    )
