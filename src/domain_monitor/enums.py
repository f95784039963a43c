"""
Enumeration types for the domain monitor.
"""

from enum import Enum


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def rank(self) -> int:
        """Numeric severity used for level filtering."""
        return _LEVEL_RANKS[self]


_LEVEL_RANKS = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}


class TransitionKind(Enum):
    """Classification of a domain's state between two cycles."""

    ENABLED = "enabled"
    CHANGED = "changed"
    REMOVED = "removed"


class SinkKind(Enum):
    """Webhook sink kinds with a payload renderer."""

    PAGERDUTY = "pagerduty"
    TEAMS = "teams"
    DISCORD = "discord"
    GENERIC = "generic"


class FetchErrorCode(Enum):
    """Error codes for observation collection."""

    WHOIS_ERROR = "whois_error"
    WHOIS_TIMEOUT = "whois_timeout"
    WHOIS_PARSE_ERROR = "whois_parse_error"
    DNS_ERROR = "dns_error"
    DNS_TIMEOUT = "dns_timeout"
    DNS_NO_RECORDS = "dns_no_records"
    UNEXPECTED_ERROR = "unexpected_error"


class DeliveryErrorCode(Enum):
    """Error codes for webhook delivery."""

    HTTP_STATUS = "http_status"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    UNSUPPORTED_SINK_KIND = "unsupported_sink_kind"
    UNEXPECTED_ERROR = "unexpected_error"
