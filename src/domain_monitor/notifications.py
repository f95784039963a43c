"""
Notification dispatcher for the domain monitor.

Renders a transition event into the payload each webhook platform expects
(PagerDuty Events API v2, Microsoft Teams, Discord, or a generic text hook)
and POSTs it. Every sink is delivered independently: an unknown sink kind, a
transport error, a timeout or a non-2xx answer becomes a failed
DeliveryOutcome for that sink alone. Nothing is retried and nothing raises,
so one broken webhook never suppresses the others.
"""

import asyncio
from abc import abstractmethod
from typing import Optional, Protocol, Sequence, runtime_checkable

import httpx

from .config import MonitorConfig, WebhookSink
from .enums import DeliveryErrorCode, LogLevel, SinkKind, TransitionKind
from .exceptions import DeliveryFailure, UnsupportedSinkKind
from .fingerprint import UNKNOWN, parse_timestamp
from .models import DeliveryOutcome, DomainObservation, RawTimestamp, TransitionEvent

PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"
EVENT_SOURCE = "domain-monitor"
DISCORD_EMBED_COLOR = 3447003  # blue

SUMMARY_TEMPLATES = {
    TransitionKind.ENABLED: "Monitoring enabled for domain: {domain}",
    TransitionKind.CHANGED: "Domain information changed for: {domain}",
    TransitionKind.REMOVED: "Monitoring finished for domain: {domain}",
}


def build_summary(event: TransitionEvent) -> str:
    """Return the one-line human-readable summary of an event."""
    return SUMMARY_TEMPLATES[event.kind].format(domain=event.domain)


def _format_timestamp(value: RawTimestamp) -> str:
    parsed = parse_timestamp(value)
    if parsed is not None:
        return parsed.isoformat()
    if isinstance(value, str) and value.strip():
        return value.strip()
    return UNKNOWN


def format_details(observation: DomainObservation) -> str:
    """Render every observed field as a multi-line block."""
    name_servers = ", ".join(observation.name_servers) or UNKNOWN
    return (
        "Details: \n"
        f"- Domain: {observation.domain}\n"
        f"- Registrar: {observation.registrar or UNKNOWN}\n"
        f"- Name Servers: {name_servers}\n"
        f"- Creation Date: {_format_timestamp(observation.created)}\n"
        f"- Expiry Date: {_format_timestamp(observation.expires)}\n"
        f"- Updated Date: {_format_timestamp(observation.updated)}\n"
        f"- IP Address: {observation.address or UNKNOWN}"
    )


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol defining the interface for webhook payload renderers."""

    @abstractmethod
    def render(self, event: TransitionEvent, summary: str, sink: WebhookSink) -> dict:
        """
        Build the JSON body for one event.

        Args:
            event: The transition being reported
            summary: Pre-built summary line
            sink: The sink the body is meant for

        Returns:
            JSON-serializable payload
        """
        ...

    @abstractmethod
    def target_url(self, sink: WebhookSink) -> str:
        """Return the URL the payload is POSTed to."""
        ...

    @abstractmethod
    def get_name(self) -> str:
        """Return the sink kind this channel serves."""
        ...


class PagerDutyChannel:
    """PagerDuty Events API v2 trigger with informational severity."""

    def render(self, event: TransitionEvent, summary: str, sink: WebhookSink) -> dict:
        return {
            "routing_key": self.routing_key(sink),
            "event_action": "trigger",
            "payload": {
                "summary": summary,
                "severity": "info",
                "source": EVENT_SOURCE,
            },
        }

    def routing_key(self, sink: WebhookSink) -> str:
        # Older configurations store the integration key in the url field
        return sink.routing_key or sink.url

    def target_url(self, sink: WebhookSink) -> str:
        if sink.routing_key and sink.url:
            return sink.url
        return PAGERDUTY_EVENTS_URL

    def get_name(self) -> str:
        return SinkKind.PAGERDUTY.value


class TextChannel:
    """Plain ``{"text": ...}`` payload, as accepted by Teams incoming webhooks."""

    def __init__(self, name: str = SinkKind.TEAMS.value) -> None:
        self._name = name

    def render(self, event: TransitionEvent, summary: str, sink: WebhookSink) -> dict:
        return {"text": summary}

    def target_url(self, sink: WebhookSink) -> str:
        return sink.url

    def get_name(self) -> str:
        return self._name


class DiscordChannel:
    """Discord webhook with one embed describing the observation."""

    def render(self, event: TransitionEvent, summary: str, sink: WebhookSink) -> dict:
        if event.observation is not None:
            description = format_details(event.observation)
        else:
            description = summary

        embed = {
            "title": summary,
            "description": description,
            "color": DISCORD_EMBED_COLOR,
        }
        return {"embeds": [embed]}

    def target_url(self, sink: WebhookSink) -> str:
        return sink.url

    def get_name(self) -> str:
        return SinkKind.DISCORD.value


DEFAULT_CHANNELS: dict[str, NotificationChannel] = {
    SinkKind.PAGERDUTY.value: PagerDutyChannel(),
    SinkKind.TEAMS.value: TextChannel(SinkKind.TEAMS.value),
    SinkKind.GENERIC.value: TextChannel(SinkKind.GENERIC.value),
    SinkKind.DISCORD.value: DiscordChannel(),
}


def sinks_for(
    event: TransitionEvent,
    config: MonitorConfig,
    previous_config: Optional[MonitorConfig] = None,
) -> list[WebhookSink]:
    """
    Return every sink an event goes to: the domain's own, then the global ones.

    A domain dropped from the configuration keeps the sinks it had in the
    previous cycle's configuration, so its REMOVED notice reaches the same
    people its earlier notices did. A sink listed in both places is
    notified twice.
    """
    domain_sinks = config.sinks_for_domain(event.domain)
    if (
        not domain_sinks
        and previous_config is not None
        and event.domain not in config.domain_names
    ):
        domain_sinks = previous_config.sinks_for_domain(event.domain)
    return domain_sinks + list(config.webhooks)


class NotificationDispatcher:
    """
    Delivers transition events to webhook sinks with per-sink isolation.

    Use as an async context manager to share one HTTP connection pool across
    a cycle; outside a context a short-lived client is opened per dispatch.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        logger: Optional["AuditLogger"] = None,
        dry_run: bool = False,
        channels: Optional[dict[str, NotificationChannel]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            timeout: Per-request timeout in seconds
            logger: Optional audit logger for delivery results
            dry_run: If True, payloads are rendered but never sent
            channels: Renderers keyed by sink kind (defaults to DEFAULT_CHANNELS)
            transport: Optional httpx transport, e.g. httpx.MockTransport
        """
        self._timeout = timeout
        self._logger = logger
        self._dry_run = dry_run
        self._channels = dict(channels if channels is not None else DEFAULT_CHANNELS)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "NotificationDispatcher":
        self._client = self._create_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _create_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
        )

    def get_channel(self, kind: str) -> NotificationChannel:
        """
        Look up the renderer for a sink kind.

        Raises:
            UnsupportedSinkKind: If no channel serves this kind
        """
        channel = self._channels.get(kind)
        if channel is None:
            raise UnsupportedSinkKind(kind)
        return channel

    async def dispatch(
        self,
        event: TransitionEvent,
        sinks: Sequence[WebhookSink],
    ) -> list[DeliveryOutcome]:
        """
        Deliver one event to every sink concurrently.

        Args:
            event: The transition to report
            sinks: Target sinks, duplicates included

        Returns:
            One DeliveryOutcome per sink, in sink order
        """
        if not sinks:
            return []

        if self._client is None and not self._dry_run:
            async with self._create_client() as client:
                return await self._dispatch_with(client, event, sinks)
        return await self._dispatch_with(self._client, event, sinks)

    async def _dispatch_with(
        self,
        client: Optional[httpx.AsyncClient],
        event: TransitionEvent,
        sinks: Sequence[WebhookSink],
    ) -> list[DeliveryOutcome]:
        summary = build_summary(event)
        return list(
            await asyncio.gather(
                *(self._deliver(client, event, summary, sink) for sink in sinks)
            )
        )

    async def _deliver(
        self,
        client: Optional[httpx.AsyncClient],
        event: TransitionEvent,
        summary: str,
        sink: WebhookSink,
    ) -> DeliveryOutcome:
        try:
            channel = self.get_channel(sink.kind)
            payload = channel.render(event, summary, sink)
            url = channel.target_url(sink)

            if self._dry_run:
                self._log(
                    LogLevel.INFO,
                    f"Dry run: would notify {sink.kind} sink",
                    {"domain": event.domain, "sink": sink.kind, "payload": payload},
                )
                return DeliveryOutcome(
                    sink=sink,
                    domain=event.domain,
                    event_kind=event.kind,
                    success=True,
                )

            status_code = await self._post(client, url, payload, dict(sink.headers))
        except (UnsupportedSinkKind, DeliveryFailure) as e:
            return self._failed(event, sink, e, e.code, e.message, e.details)
        except Exception as e:
            # Bad header values and renderer bugs must not abort sibling sinks
            return self._failed(
                event, sink, e, DeliveryErrorCode.UNEXPECTED_ERROR.value, str(e), {}
            )

        self._log(
            LogLevel.DEBUG,
            f"Delivered {event.kind.value} event to {sink.kind} sink",
            {"domain": event.domain, "sink": sink.kind, "status_code": status_code},
        )
        return DeliveryOutcome(
            sink=sink,
            domain=event.domain,
            event_kind=event.kind,
            success=True,
            status_code=status_code,
        )

    def _failed(
        self,
        event: TransitionEvent,
        sink: WebhookSink,
        error: Exception,
        code: str,
        message: str,
        details: dict,
    ) -> DeliveryOutcome:
        if self._logger:
            self._logger.log_error(
                "NotificationDispatcher",
                f"Delivery to {sink.kind} sink failed for {event.domain}",
                error=error,
                additional_data={
                    "domain": event.domain,
                    "event": event.kind.value,
                    "sink": sink.kind,
                    "error_code": code,
                    **details,
                },
                level=LogLevel.WARN,
            )
        return DeliveryOutcome(
            sink=sink,
            domain=event.domain,
            event_kind=event.kind,
            success=False,
            status_code=details.get("status_code"),
            error_code=code,
            error=message,
        )

    async def _post(
        self,
        client: httpx.AsyncClient,
        url: str,
        payload: dict,
        headers: dict[str, str],
    ) -> int:
        """
        POST a JSON payload once.

        Returns:
            The 2xx status code

        Raises:
            DeliveryFailure: On timeout, transport error or non-2xx status
        """
        request_headers = {"Content-Type": "application/json"}
        request_headers.update(headers)

        try:
            response = await client.post(url, json=payload, headers=request_headers)
        except httpx.TimeoutException as e:
            raise DeliveryFailure(
                code=DeliveryErrorCode.TIMEOUT.value,
                message=f"Webhook request timed out after {self._timeout}s",
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise DeliveryFailure(
                code=DeliveryErrorCode.NETWORK_ERROR.value,
                message=f"Webhook request failed: {e}",
            ) from e

        if not 200 <= response.status_code < 300:
            raise DeliveryFailure(
                code=DeliveryErrorCode.HTTP_STATUS.value,
                message=f"Received non-2xx response status: {response.status_code}",
                details={"status_code": response.status_code},
            )
        return response.status_code

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "NotificationDispatcher", message, data)


# Type hint for circular import avoidance
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .audit_logger import AuditLogger
