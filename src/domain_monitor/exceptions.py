"""
Exception classes for the domain monitor.

All exceptions inherit from DomainMonitorError and carry a stable error
code, a human-readable message and optional structured details. Every
error kind except a first-load ConfigLoadFailure is recovered locally:
the affected domain or sink is skipped and the cycle carries on.
"""

from typing import Optional

from .enums import DeliveryErrorCode


class DomainMonitorError(Exception):
    """Base exception for all domain monitor errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class FetchFailure(DomainMonitorError):
    """Raised when the WHOIS lookup or DNS resolution of a domain fails."""

    pass


class ParseFailure(DomainMonitorError):
    """Raised when a WHOIS response cannot be turned into registration fields."""

    pass


class UnsupportedSinkKind(DomainMonitorError):
    """Raised when a webhook sink names a kind no channel can render."""

    def __init__(self, kind: str) -> None:
        super().__init__(
            code=DeliveryErrorCode.UNSUPPORTED_SINK_KIND.value,
            message=f"Unsupported webhook type: {kind}",
            details={"kind": kind},
        )
        self.kind = kind


class DeliveryFailure(DomainMonitorError):
    """Raised when a webhook POST fails or answers with a non-2xx status."""

    pass


class ConfigLoadFailure(DomainMonitorError):
    """Raised when the configuration file cannot be read or is invalid."""

    pass
