"""
Property-based tests for the poll scheduler and cycle orchestrator.

Runs complete cycles against a fake collector and an httpx.MockTransport
webhook endpoint to verify transitions across cycles, error isolation,
bounded concurrency and configuration reload behavior.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_monitor.audit_logger import AuditLogger
from domain_monitor.config import DomainConfig, MonitorConfig, WebhookSink
from domain_monitor.detector import TransitionDetector
from domain_monitor.enums import FetchErrorCode, LogLevel, TransitionKind
from domain_monitor.exceptions import ConfigLoadFailure, FetchFailure
from domain_monitor.models import DomainObservation
from domain_monitor.notifications import NotificationDispatcher
from domain_monitor.orchestrator import CycleOrchestrator
from domain_monitor.scheduler import PollScheduler


# Test doubles


class FakeCollector:
    """Collector that serves observations from a mutable table."""

    def __init__(self, registrars: Optional[dict[str, str]] = None, delay: float = 0.0) -> None:
        self.registrars = dict(registrars or {})
        self.failing: set[str] = set()
        self.calls: list[str] = []
        self.in_flight = 0
        self.peak = 0
        self._delay = delay

    async def collect(self, domain: str) -> DomainObservation:
        self.calls.append(domain)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            if self._delay:
                await asyncio.sleep(self._delay)
            if domain in self.failing:
                raise FetchFailure(
                    code=FetchErrorCode.WHOIS_TIMEOUT.value,
                    message="WHOIS query timed out",
                    details={"domain": domain},
                )
            return DomainObservation(
                domain=domain,
                registrar=self.registrars.get(domain, "Registrar A"),
                name_servers=("ns1.example.net",),
                created="2001-01-01",
                address="192.0.2.1",
            )
        finally:
            self.in_flight -= 1


class WebhookEndpoint:
    """MockTransport handler recording (url, body) pairs."""

    def __init__(self, failing_urls: tuple[str, ...] = ()) -> None:
        self.failing_urls = set(failing_urls)
        self.received: list[tuple[str, dict]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.received.append((url, json.loads(request.content)))
        return httpx.Response(500 if url in self.failing_urls else 204)

    def urls(self) -> list[str]:
        return [url for url, _ in self.received]

    def clear(self) -> None:
        self.received.clear()


class ConfigSequence:
    """Config loader returning one entry per call; exceptions are raised."""

    def __init__(self, *entries) -> None:
        self._entries = list(entries)
        self.calls = 0

    def __call__(self, path: Path) -> MonitorConfig:
        entry = self._entries[min(self.calls, len(self._entries) - 1)]
        self.calls += 1
        if isinstance(entry, Exception):
            raise entry
        return entry


class FlakyDetector(TransitionDetector):
    """Detector whose first call fails unexpectedly."""

    def __init__(self) -> None:
        self.calls = 0

    def detect(self, current, previous):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("detector crashed")
        return super().detect(current, previous)


def run_async(coro):
    """Helper to run async code in tests."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


S1 = WebhookSink(kind="teams", url="https://hooks.example/s1")
S2 = WebhookSink(kind="generic", url="https://hooks.example/s2")
S3 = WebhookSink(kind="discord", url="https://hooks.example/s3")


def build_scheduler(
    collector: FakeCollector,
    endpoint: WebhookEndpoint,
    loader: Optional[ConfigSequence] = None,
    logger: Optional[AuditLogger] = None,
) -> PollScheduler:
    orchestrator = CycleOrchestrator(
        collector=collector,
        dispatcher=NotificationDispatcher(
            timeout=1.0, logger=logger, transport=httpx.MockTransport(endpoint)
        ),
        logger=logger,
    )
    return PollScheduler(
        config_path=Path("config.yaml"),
        orchestrator=orchestrator,
        logger=logger,
        config_loader=loader or ConfigSequence(MonitorConfig()),
        seconds_per_minute=0,
    )


class TestCycleTransitions:
    """End-to-end transitions across consecutive cycles."""

    def test_first_cycle_enables_every_domain_on_every_sink(self) -> None:
        collector = FakeCollector()
        endpoint = WebhookEndpoint()
        scheduler = build_scheduler(collector, endpoint)
        config = MonitorConfig(
            domains=[DomainConfig(name="a.com", webhooks=[S1])],
            webhooks=[S2],
        )

        report = run_async(scheduler.run_once(config))

        assert [(e.kind, e.domain) for e in report.events] == [(TransitionKind.ENABLED, "a.com")]
        assert sorted(endpoint.urls()) == [S1.url, S2.url]
        assert all(o.success for o in report.outcomes)
        assert set(scheduler.state) == {"a.com"}

    def test_unchanged_second_cycle_is_silent(self) -> None:
        collector = FakeCollector()
        endpoint = WebhookEndpoint()
        scheduler = build_scheduler(collector, endpoint)
        config = MonitorConfig(domains=[DomainConfig(name="a.com")], webhooks=[S2])

        run_async(scheduler.run_once(config))
        endpoint.clear()
        report = run_async(scheduler.run_once(config))

        assert report.events == []
        assert endpoint.received == []

    def test_registrar_change_is_reported(self) -> None:
        collector = FakeCollector({"a.com": "Registrar A"})
        endpoint = WebhookEndpoint()
        scheduler = build_scheduler(collector, endpoint)
        config = MonitorConfig(domains=[DomainConfig(name="a.com")], webhooks=[S2])

        run_async(scheduler.run_once(config))
        endpoint.clear()
        collector.registrars["a.com"] = "Registrar B"
        report = run_async(scheduler.run_once(config))

        assert [(e.kind, e.domain) for e in report.events] == [(TransitionKind.CHANGED, "a.com")]
        assert endpoint.received == [
            (S2.url, {"text": "Domain information changed for: a.com"})
        ]

    def test_removed_domain_notifies_its_previous_sinks(self) -> None:
        collector = FakeCollector()
        endpoint = WebhookEndpoint()
        scheduler = build_scheduler(collector, endpoint)
        before = MonitorConfig(
            domains=[DomainConfig(name="a.com", webhooks=[S3]), DomainConfig(name="b.com")],
            webhooks=[S2],
        )
        after = MonitorConfig(domains=[DomainConfig(name="b.com")], webhooks=[S2])

        run_async(scheduler.run_once(before))
        endpoint.clear()
        report = run_async(scheduler.run_once(after))

        assert [(e.kind, e.domain) for e in report.events] == [(TransitionKind.REMOVED, "a.com")]
        assert sorted(endpoint.urls()) == sorted([S3.url, S2.url])
        bodies = dict(endpoint.received)
        assert bodies[S3.url]["embeds"][0]["description"] == (
            "Monitoring finished for domain: a.com"
        )
        assert set(scheduler.state) == {"b.com"}

    def test_fetch_failure_skips_only_that_domain(self) -> None:
        collector = FakeCollector()
        collector.failing.add("b.com")
        endpoint = WebhookEndpoint()
        logger = AuditLogger(output_format="json", output_stream=_NullStream())
        scheduler = build_scheduler(collector, endpoint, logger=logger)
        config = MonitorConfig(
            domains=[DomainConfig(name="a.com"), DomainConfig(name="b.com")],
            webhooks=[S2],
        )

        report = run_async(scheduler.run_once(config))

        assert [e.domain for e in report.events] == ["a.com"]
        assert [(s.domain, s.error_code) for s in report.skipped] == [
            ("b.com", FetchErrorCode.WHOIS_TIMEOUT.value)
        ]
        assert set(scheduler.state) == {"a.com"}
        warnings = [e for e in logger.entries if e.level == LogLevel.WARN]
        assert warnings and warnings[0].data["domain"] == "b.com"

    def test_failing_sink_never_blocks_the_others(self) -> None:
        collector = FakeCollector({"a.com": "Registrar A"})
        endpoint = WebhookEndpoint(failing_urls=(S1.url,))
        scheduler = build_scheduler(collector, endpoint)
        config = MonitorConfig(domains=[DomainConfig(name="a.com")], webhooks=[S1, S2, S3])

        first = run_async(scheduler.run_once(config))
        collector.registrars["a.com"] = "Registrar B"
        second = run_async(scheduler.run_once(config))

        for report in (first, second):
            assert [o.sink for o in report.failed_deliveries] == [S1]
            assert sorted(o.sink.url for o in report.outcomes if o.success) == [S2.url, S3.url]
        assert endpoint.urls().count(S3.url) == 2


class TestStateReplacementProperty:
    """
    Property-based tests for state handling across cycles.

    **Property 8: The state is replaced as a whole after each cycle**
    """

    @given(
        first=st.sets(st.sampled_from(["a.com", "b.com", "c.com", "d.com"])),
        second=st.sets(st.sampled_from(["a.com", "b.com", "c.com", "d.com"])),
    )
    @settings(max_examples=30, deadline=None)
    def test_state_tracks_last_cycle_only(self, first: set[str], second: set[str]) -> None:
        """
        *For any* two consecutive domain sets, the state after the second
        cycle SHALL hold exactly the second set, and the state object of the
        first cycle SHALL be left unchanged.
        """
        scheduler = build_scheduler(FakeCollector(), WebhookEndpoint())

        run_async(scheduler.run_once(
            MonitorConfig(domains=[DomainConfig(name=n) for n in sorted(first)])
        ))
        after_first = scheduler.state
        snapshot = dict(after_first)
        report = run_async(scheduler.run_once(
            MonitorConfig(domains=[DomainConfig(name=n) for n in sorted(second)])
        ))

        assert set(scheduler.state) == second
        assert dict(after_first) == snapshot
        assert scheduler.state is report.next_state
        assert {e.domain for e in report.events if e.kind == TransitionKind.REMOVED} == (
            first - second
        )
        assert {e.domain for e in report.events if e.kind == TransitionKind.ENABLED} == (
            second - first
        )

    @given(workers=st.integers(min_value=1, max_value=4), count=st.integers(min_value=1, max_value=10))
    @settings(max_examples=20, deadline=None)
    def test_concurrency_is_bounded(self, workers: int, count: int) -> None:
        """*For any* pool size, at most that many lookups SHALL run at once."""
        collector = FakeCollector(delay=0.001)
        scheduler = build_scheduler(collector, WebhookEndpoint())
        config = MonitorConfig(
            domains=[DomainConfig(name=f"d{i}.com") for i in range(count)],
            max_workers=workers,
        )

        run_async(scheduler.run_once(config))

        assert collector.peak <= workers
        assert sorted(collector.calls) == sorted(config.domain_names)


class TestSchedulerLoop:
    """Tests for the interval loop and configuration reloads."""

    def test_first_load_failure_is_fatal(self) -> None:
        loader = ConfigSequence(ConfigLoadFailure(code="not_found", message="missing"))
        scheduler = build_scheduler(FakeCollector(), WebhookEndpoint(), loader)

        with pytest.raises(ConfigLoadFailure):
            run_async(scheduler.run(max_cycles=1))

        assert not scheduler.is_running()

    def test_reload_failure_skips_the_cycle_and_keeps_state(self) -> None:
        config = MonitorConfig(domains=[DomainConfig(name="a.com")], webhooks=[S2])
        loader = ConfigSequence(
            config,
            ConfigLoadFailure(code="parse_error", message="bad yaml"),
            config,
        )
        collector = FakeCollector()
        endpoint = WebhookEndpoint()
        scheduler = build_scheduler(collector, endpoint, loader)

        run_async(scheduler.run(max_cycles=3))

        assert loader.calls == 3
        assert collector.calls == ["a.com", "a.com"]
        # ENABLED once, then silence: the skipped tick did not reset the state
        assert endpoint.urls() == [S2.url]
        assert set(scheduler.state) == {"a.com"}

    def test_configuration_edits_apply_on_next_tick(self) -> None:
        one = MonitorConfig(domains=[DomainConfig(name="a.com")], webhooks=[S2])
        two = MonitorConfig(
            domains=[DomainConfig(name="a.com"), DomainConfig(name="b.com")],
            webhooks=[S2],
        )
        loader = ConfigSequence(one, two)
        endpoint = WebhookEndpoint()
        scheduler = build_scheduler(FakeCollector(), endpoint, loader)

        run_async(scheduler.run(max_cycles=2))

        texts = [body["text"] for _, body in endpoint.received]
        assert texts == [
            "Monitoring enabled for domain: a.com",
            "Monitoring enabled for domain: b.com",
        ]

    def test_stop_event_ends_the_loop(self) -> None:
        config = MonitorConfig(domains=[DomainConfig(name="a.com")], interval=5)
        collector = FakeCollector()
        scheduler = PollScheduler(
            config_path=Path("config.yaml"),
            orchestrator=CycleOrchestrator(
                collector=collector,
                dispatcher=NotificationDispatcher(dry_run=True),
            ),
            config_loader=ConfigSequence(config),
            seconds_per_minute=60.0,
        )

        async def scenario():
            stop_event = asyncio.Event()
            task = asyncio.ensure_future(scheduler.run(stop_event=stop_event))
            while not collector.calls:
                await asyncio.sleep(0)
            stop_event.set()
            await asyncio.wait_for(task, timeout=5)

        run_async(scenario())

        assert collector.calls == ["a.com"]
        assert not scheduler.is_running()

    def test_malformed_reload_skips_the_cycle(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("interval: 5\ndomains: [a.com]\n", encoding="utf-8")
        logger = AuditLogger(output_stream=_NullStream())
        scheduler = PollScheduler(
            config_path=path,
            orchestrator=CycleOrchestrator(
                collector=FakeCollector(),
                dispatcher=NotificationDispatcher(dry_run=True),
            ),
            logger=logger,
        )

        assert scheduler.load_initial_config().domain_names == ["a.com"]
        path.write_text("interval: 5\nlogging: [oops]\n", encoding="utf-8")

        assert scheduler.reload_config() is None
        warnings = [e for e in logger.entries if e.level == LogLevel.WARN]
        assert warnings and warnings[-1].data["error_code"] == "invalid_config"

    def test_failed_cycle_is_skipped_and_the_loop_continues(self) -> None:
        config = MonitorConfig(domains=[DomainConfig(name="a.com")], webhooks=[S2])
        logger = AuditLogger(output_stream=_NullStream())
        endpoint = WebhookEndpoint()
        detector = FlakyDetector()
        scheduler = PollScheduler(
            config_path=Path("config.yaml"),
            orchestrator=CycleOrchestrator(
                collector=FakeCollector(),
                dispatcher=NotificationDispatcher(
                    timeout=1.0, transport=httpx.MockTransport(endpoint)
                ),
                detector=detector,
            ),
            logger=logger,
            config_loader=ConfigSequence(config),
            seconds_per_minute=0,
        )

        run_async(scheduler.run(max_cycles=2))

        assert detector.calls == 2
        assert [body["text"] for _, body in endpoint.received] == [
            "Monitoring enabled for domain: a.com"
        ]
        assert set(scheduler.state) == {"a.com"}
        errors = [e for e in logger.entries if e.level == LogLevel.ERROR]
        assert [e.message for e in errors] == ["Cycle failed; skipping this tick"]
        assert errors[0].data["error_type"] == "RuntimeError"
        assert not scheduler.is_running()


class _NullStream:
    """Write-only sink for logger output."""

    def write(self, text: str) -> int:
        return len(text)

    def flush(self) -> None:
        pass
