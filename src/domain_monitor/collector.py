"""
Observation collection for the domain monitor.

Wraps the two external collaborators a poll needs, a WHOIS lookup (via
python-whois) and a DNS resolution (via the event loop's resolver), and
combines them into a DomainObservation. Both blocking and non-blocking calls
are bounded by a timeout. Any failure is raised as FetchFailure or
ParseFailure so the caller can skip the domain for this cycle.
"""

import asyncio
import socket
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol

import whois

from .config import TimeoutConfig
from .enums import FetchErrorCode
from .exceptions import FetchFailure, ParseFailure
from .models import DomainObservation, RawTimestamp


@dataclass
class WhoisRecord:
    """Registration fields extracted from a WHOIS response."""

    registrar: str = ""
    name_servers: tuple[str, ...] = ()
    created: RawTimestamp = None
    expires: RawTimestamp = None
    updated: RawTimestamp = None


class WhoisSource(Protocol):
    """Anything that can look up the registration record of a domain."""

    async def lookup(self, domain: str) -> WhoisRecord:
        ...


class AddressResolver(Protocol):
    """Anything that can resolve a domain to its first address."""

    async def resolve(self, domain: str) -> str:
        ...


def _first(value: Any) -> Any:
    # python-whois returns a list when the response repeats a field
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _as_raw_timestamp(value: Any) -> RawTimestamp:
    value = _first(value)
    if value is None or isinstance(value, datetime):
        return value
    return str(value)


class WhoisClient:
    """
    WHOIS collaborator backed by python-whois.

    ``fetch`` performs the network lookup; ``parse`` turns the library's
    entry into a WhoisRecord. The lookup is blocking, so it runs in the
    default executor under ``asyncio.wait_for``.
    """

    def __init__(self, timeout: float = 20.0) -> None:
        self._timeout = timeout

    async def lookup(self, domain: str) -> WhoisRecord:
        """Fetch and parse the WHOIS record of a domain."""
        entry = await self.fetch(domain)
        return self.parse(domain, entry)

    async def fetch(self, domain: str) -> Any:
        """
        Query WHOIS for a domain.

        Raises:
            FetchFailure: On timeout or any lookup error
        """
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, whois.whois, domain),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise FetchFailure(
                code=FetchErrorCode.WHOIS_TIMEOUT.value,
                message=f"WHOIS query timed out after {self._timeout}s",
                details={"domain": domain},
            ) from e
        except Exception as e:
            raise FetchFailure(
                code=FetchErrorCode.WHOIS_ERROR.value,
                message=f"Error fetching WHOIS information: {e}",
                details={"domain": domain},
            ) from e

    def parse(self, domain: str, entry: Any) -> WhoisRecord:
        """
        Extract registration fields from a python-whois entry.

        Missing fields are left empty; only a response with no recognizable
        registration data at all is a parse failure.

        Raises:
            ParseFailure: If the entry carries no registration data
        """
        if not entry or not (_first(entry.get("domain_name")) or entry.get("registrar")):
            raise ParseFailure(
                code=FetchErrorCode.WHOIS_PARSE_ERROR.value,
                message="WHOIS response contains no registration data",
                details={"domain": domain},
            )

        name_servers = entry.get("name_servers") or ()
        if isinstance(name_servers, str):
            name_servers = (name_servers,)

        return WhoisRecord(
            registrar=str(_first(entry.get("registrar")) or ""),
            name_servers=tuple(str(ns) for ns in name_servers if ns),
            created=_as_raw_timestamp(entry.get("creation_date")),
            expires=_as_raw_timestamp(entry.get("expiration_date")),
            updated=_as_raw_timestamp(entry.get("updated_date")),
        )


class DNSResolver:
    """Resolves a domain's apex to the first address the system resolver returns."""

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout

    async def resolve(self, domain: str) -> str:
        """
        Resolve a domain to its first address.

        Raises:
            FetchFailure: On timeout, resolver error or an empty answer
        """
        try:
            addresses = await asyncio.wait_for(self._lookup(domain), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise FetchFailure(
                code=FetchErrorCode.DNS_TIMEOUT.value,
                message=f"DNS resolution timed out after {self._timeout}s",
                details={"domain": domain},
            ) from e
        except OSError as e:
            raise FetchFailure(
                code=FetchErrorCode.DNS_ERROR.value,
                message=f"Error resolving IP address: {e}",
                details={"domain": domain},
            ) from e

        if not addresses:
            raise FetchFailure(
                code=FetchErrorCode.DNS_NO_RECORDS.value,
                message=f"No IP addresses found for domain {domain}",
                details={"domain": domain},
            )
        return addresses[0]

    async def _lookup(self, domain: str) -> list[str]:
        """Return the resolver's addresses for a domain, in answer order."""
        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(domain, None, type=socket.SOCK_STREAM)
        return [info[4][0] for info in infos]


class ObservationCollector:
    """Builds a DomainObservation from one WHOIS lookup and one DNS resolution."""

    def __init__(
        self,
        whois_source: Optional[WhoisSource] = None,
        resolver: Optional[AddressResolver] = None,
        timeouts: Optional[TimeoutConfig] = None,
    ) -> None:
        timeouts = timeouts or TimeoutConfig()
        self._whois = whois_source or WhoisClient(timeout=timeouts.whois_seconds)
        self._resolver = resolver or DNSResolver(timeout=timeouts.dns_seconds)

    async def collect(self, domain: str) -> DomainObservation:
        """
        Observe a domain.

        Raises:
            FetchFailure: If the WHOIS lookup or DNS resolution fails
            ParseFailure: If the WHOIS response has no registration data
        """
        record = await self._whois.lookup(domain)
        address = await self._resolver.resolve(domain)

        return DomainObservation(
            domain=domain,
            registrar=record.registrar,
            name_servers=tuple(record.name_servers),
            created=record.created,
            expires=record.expires,
            updated=record.updated,
            address=address,
        )
