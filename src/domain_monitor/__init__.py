"""
Domain Monitor - WHOIS and DNS change alerting for a set of domains.

This package periodically observes the registration and resolution state of
configured domains, fingerprints it, and notifies PagerDuty, Teams, Discord
or generic webhooks when a domain's state first appears, changes, or leaves
the configuration.
"""

__version__ = "0.1.0"
__author__ = "Domain Monitor Team"

from domain_monitor.exceptions import (
    DomainMonitorError,
    FetchFailure,
    ParseFailure,
    UnsupportedSinkKind,
    DeliveryFailure,
    ConfigLoadFailure,
)
from domain_monitor.enums import (
    LogLevel,
    TransitionKind,
    SinkKind,
    FetchErrorCode,
    DeliveryErrorCode,
)
from domain_monitor.config import (
    MIN_INTERVAL_MINUTES,
    WebhookSink,
    DomainConfig,
    TimeoutConfig,
    LoggingConfig,
    MonitorConfig,
    clamp_interval,
    config_from_dict,
    load_config,
    save_config,
)
from domain_monitor.models import (
    DomainObservation,
    CanonicalObservation,
    TransitionEvent,
    DeliveryOutcome,
    SkippedDomain,
    CycleReport,
    StateMap,
)
from domain_monitor.fingerprint import (
    UNKNOWN,
    DATE_FORMATS,
    parse_timestamp,
    normalize,
    fingerprint,
    fingerprint_observation,
)
from domain_monitor.detector import (
    TransitionDetector,
    DetectionResult,
)
from domain_monitor.notifications import (
    NotificationChannel,
    PagerDutyChannel,
    TextChannel,
    DiscordChannel,
    NotificationDispatcher,
    build_summary,
    sinks_for,
)
from domain_monitor.collector import (
    WhoisRecord,
    WhoisClient,
    DNSResolver,
    ObservationCollector,
)
from domain_monitor.audit_logger import (
    AuditLogger,
    LogEntry,
)
from domain_monitor.orchestrator import (
    CycleOrchestrator,
)
from domain_monitor.scheduler import (
    PollScheduler,
)
from domain_monitor.cli import (
    main as cli_main,
    create_parser,
)

__all__ = [
    # Exceptions
    "DomainMonitorError",
    "FetchFailure",
    "ParseFailure",
    "UnsupportedSinkKind",
    "DeliveryFailure",
    "ConfigLoadFailure",
    # Enums
    "LogLevel",
    "TransitionKind",
    "SinkKind",
    "FetchErrorCode",
    "DeliveryErrorCode",
    # Configuration
    "MIN_INTERVAL_MINUTES",
    "WebhookSink",
    "DomainConfig",
    "TimeoutConfig",
    "LoggingConfig",
    "MonitorConfig",
    "clamp_interval",
    "config_from_dict",
    "load_config",
    "save_config",
    # Models
    "DomainObservation",
    "CanonicalObservation",
    "TransitionEvent",
    "DeliveryOutcome",
    "SkippedDomain",
    "CycleReport",
    "StateMap",
    # Fingerprint
    "UNKNOWN",
    "DATE_FORMATS",
    "parse_timestamp",
    "normalize",
    "fingerprint",
    "fingerprint_observation",
    # Detector
    "TransitionDetector",
    "DetectionResult",
    # Notifications
    "NotificationChannel",
    "PagerDutyChannel",
    "TextChannel",
    "DiscordChannel",
    "NotificationDispatcher",
    "build_summary",
    "sinks_for",
    # Collector
    "WhoisRecord",
    "WhoisClient",
    "DNSResolver",
    "ObservationCollector",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # Orchestrator
    "CycleOrchestrator",
    # Scheduler
    "PollScheduler",
    # CLI
    "cli_main",
    "create_parser",
]
