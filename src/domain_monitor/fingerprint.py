"""
Fingerprint model for domain observations.

An observation is first normalized into a canonical form that ignores
name-server ordering, timestamp formatting and the difference between an
absent and an empty optional field. The canonical form is then serialized
deterministically and hashed with SHA-256. Two observations with the same
meaning therefore always produce the same fingerprint, which is what keeps
formatting drift in WHOIS output from raising false change alerts.

Timestamps that match none of the accepted formats collapse into a single
"unknown" sentinel. That is lossy: an edit from one unparseable date string
to another is not detected.
"""

import hashlib
import json
import re
from datetime import datetime, timezone
from typing import Optional

from .models import CanonicalObservation, DomainObservation, RawTimestamp

UNKNOWN = "unknown"

# Tried in order; the first format that parses wins
DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%dT%H:%M:%S%z",  # 2006-01-02T15:04:05+07:00, 2006-01-02T15:04:05Z
    "%Y-%m-%dT%H:%M:%S.%f%z",  # 2006-01-02T15:04:05.123Z
    "%Y-%m-%dT%H:%M:%S",  # 2006-01-02T15:04:05
    "%Y-%m-%dT%H:%M:%S.%f",  # 2006-01-02T15:04:05.123
    "%Y-%m-%d %H:%M:%S%z",  # 2006-01-02 15:04:05+00:00
    "%Y-%m-%d %H:%M:%S",  # 2006-01-02 15:04:05
    "%Y-%m-%d",  # 2006-01-02
    "%d-%b-%Y",  # 02-Jan-2006
    "%d-%b-%Y %H:%M:%S %Z",  # 02-Jan-2006 15:04:05 UTC
    "%d-%b-%Y %H:%M:%S",  # 02-Jan-2006 15:04:05
)

# Trailing zone abbreviation strptime cannot resolve, e.g. "EST" or "CEST"
_ZONE_ABBREVIATION = re.compile(r"^(?P<stamp>.*\d)\s+(?P<zone>[A-Za-z]{2,5})$")


def _as_utc(value: datetime) -> datetime:
    # Naive values are taken to be UTC, which is what registries report
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: RawTimestamp) -> Optional[datetime]:
    """
    Resolve a raw WHOIS date into a UTC instant.

    Args:
        value: Text in one of DATE_FORMATS, a datetime, or None

    Returns:
        Timezone-aware UTC datetime, or None if the value is absent or
        matches no accepted format
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _as_utc(value)

    text = str(value).strip()
    if not text:
        return None

    parsed = _parse_formats(text)
    if parsed is None:
        # Unknown abbreviations are read at zero offset
        match = _ZONE_ABBREVIATION.match(text)
        if match:
            parsed = _parse_formats(match.group("stamp"))
    return parsed


def _parse_formats(text: str) -> Optional[datetime]:
    for fmt in DATE_FORMATS:
        try:
            return _as_utc(datetime.strptime(text, fmt))
        except ValueError:
            continue
    return None


def _normalize_timestamp(value: RawTimestamp) -> str:
    parsed = parse_timestamp(value)
    return parsed.isoformat() if parsed is not None else UNKNOWN


def _normalize_text(value: Optional[str]) -> str:
    text = (value or "").strip()
    return text or UNKNOWN


def _normalize_name_servers(name_servers) -> tuple[str, ...]:
    cleaned = set()
    for server in name_servers or ():
        host = str(server).strip().lower().rstrip(".")
        if host:
            cleaned.add(host)
    return tuple(sorted(cleaned))


def normalize(observation: DomainObservation) -> CanonicalObservation:
    """Reduce an observation to its canonical, order-independent form."""
    return CanonicalObservation(
        domain=observation.domain,
        registrar=_normalize_text(observation.registrar),
        name_servers=_normalize_name_servers(observation.name_servers),
        created=_normalize_timestamp(observation.created),
        expires=_normalize_timestamp(observation.expires),
        updated=_normalize_timestamp(observation.updated),
        address=_normalize_text(observation.address),
    )


def canonical_bytes(canonical: CanonicalObservation) -> bytes:
    """Serialize a canonical observation deterministically."""
    serialized = json.dumps(
        canonical.as_dict(),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return serialized.encode("utf-8")


def fingerprint(canonical: CanonicalObservation) -> str:
    """Return the hex SHA-256 digest of a canonical observation."""
    return hashlib.sha256(canonical_bytes(canonical)).hexdigest()


def fingerprint_observation(observation: DomainObservation) -> str:
    """Normalize and fingerprint an observation in one step."""
    return fingerprint(normalize(observation))
