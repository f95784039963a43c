"""
Data models for the domain monitor.

Observations are produced fresh every cycle and live only until they have
been fingerprinted and, if a transition occurred, rendered into
notifications. Only fingerprints are carried from one cycle to the next.
"""

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional, Union

from .config import WebhookSink
from .enums import TransitionKind

# Raw WHOIS date values arrive either as text or as already-parsed datetimes
RawTimestamp = Union[str, datetime, None]

# Domain name -> fingerprint, as of the last completed cycle
StateMap = Mapping[str, str]

EMPTY_STATE: StateMap = MappingProxyType({})


@dataclass(frozen=True)
class DomainObservation:
    """Registration and resolution state of one domain at one poll."""

    domain: str
    registrar: str = ""
    name_servers: tuple[str, ...] = ()
    created: RawTimestamp = None
    expires: RawTimestamp = None
    updated: RawTimestamp = None
    address: Optional[str] = None


@dataclass(frozen=True)
class CanonicalObservation:
    """Normalized observation; equal values always fingerprint identically."""

    domain: str
    registrar: str
    name_servers: tuple[str, ...]
    created: str
    expires: str
    updated: str
    address: str

    def as_dict(self) -> dict:
        return {
            "domain": self.domain,
            "registrar": self.registrar,
            "name_servers": list(self.name_servers),
            "created": self.created,
            "expires": self.expires,
            "updated": self.updated,
            "address": self.address,
        }


@dataclass(frozen=True)
class TransitionEvent:
    """A domain that appeared, changed or disappeared between two cycles."""

    kind: TransitionKind
    domain: str
    observation: Optional[DomainObservation] = None

    @classmethod
    def enabled(cls, observation: DomainObservation) -> "TransitionEvent":
        return cls(TransitionKind.ENABLED, observation.domain, observation)

    @classmethod
    def changed(cls, observation: DomainObservation) -> "TransitionEvent":
        return cls(TransitionKind.CHANGED, observation.domain, observation)

    @classmethod
    def removed(cls, domain: str) -> "TransitionEvent":
        return cls(TransitionKind.REMOVED, domain, None)


@dataclass
class DeliveryOutcome:
    """Result of delivering one event to one sink."""

    sink: WebhookSink
    domain: str
    event_kind: TransitionKind
    success: bool
    status_code: Optional[int] = None
    error_code: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SkippedDomain:
    """A domain left out of a cycle because its observation failed."""

    domain: str
    error_code: str
    error: str


@dataclass
class CycleReport:
    """Everything one poll cycle produced."""

    cycle: int
    started_at: str
    finished_at: str
    events: list[TransitionEvent] = field(default_factory=list)
    outcomes: list[DeliveryOutcome] = field(default_factory=list)
    skipped: list[SkippedDomain] = field(default_factory=list)
    next_state: StateMap = field(default_factory=lambda: EMPTY_STATE)

    @property
    def failed_deliveries(self) -> list[DeliveryOutcome]:
        """Return outcomes of sinks that did not accept their payload."""
        return [o for o in self.outcomes if not o.success]
