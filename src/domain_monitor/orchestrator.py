"""
Cycle orchestrator for the domain monitor.

Runs one complete poll cycle:

1. observe every configured domain through a bounded worker pool, skipping
   domains whose WHOIS lookup, parsing or DNS resolution fails
2. fingerprint each observation
3. classify transitions against the previous cycle's state
4. dispatch every event to the domain's sinks and the global sinks

All observations are gathered before detection starts, and every delivery
has finished before the report (and the next state) is returned.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

from .audit_logger import AuditLogger
from .collector import ObservationCollector
from .config import MonitorConfig
from .detector import TransitionDetector
from .enums import FetchErrorCode, LogLevel
from .exceptions import FetchFailure, ParseFailure
from .fingerprint import fingerprint_observation
from .models import (
    CycleReport,
    DeliveryOutcome,
    DomainObservation,
    SkippedDomain,
    StateMap,
    TransitionEvent,
)
from .notifications import NotificationDispatcher, sinks_for


class CycleOrchestrator:
    """
    Coordinates collector, fingerprinting, detector and dispatcher for one cycle.

    The orchestrator holds no state between cycles; the caller passes in the
    previous state and receives the next one in the CycleReport.
    """

    def __init__(
        self,
        collector: Optional[ObservationCollector] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        detector: Optional[TransitionDetector] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the cycle orchestrator.

        Args:
            collector: Observation collector (defaults to WHOIS + DNS)
            dispatcher: Notification dispatcher (defaults to a live dispatcher)
            detector: Transition detector
            logger: Optional audit logger
        """
        self._collector = collector or ObservationCollector()
        self._dispatcher = dispatcher or NotificationDispatcher(logger=logger)
        self._detector = detector or TransitionDetector()
        self._logger = logger
        self._cycle = 0

    @classmethod
    def from_config(
        cls,
        config: MonitorConfig,
        logger: Optional[AuditLogger] = None,
        dry_run: bool = False,
    ) -> "CycleOrchestrator":
        """Build an orchestrator with live collaborators using the configured timeouts."""
        return cls(
            collector=ObservationCollector(timeouts=config.timeouts),
            dispatcher=NotificationDispatcher(
                timeout=config.timeouts.webhook_seconds,
                logger=logger,
                dry_run=dry_run or config.dry_run,
            ),
            logger=logger,
        )

    async def run_cycle(
        self,
        config: MonitorConfig,
        previous: StateMap,
        previous_config: Optional[MonitorConfig] = None,
    ) -> CycleReport:
        """
        Run one full poll cycle.

        Args:
            config: Configuration loaded for this cycle
            previous: State from the last completed cycle (not modified)
            previous_config: Configuration of the last completed cycle, used
                to route REMOVED events of domains dropped from the file

        Returns:
            CycleReport with events, delivery outcomes, skipped domains and
            the state to carry into the next cycle
        """
        self._cycle += 1
        started_at = datetime.now(timezone.utc).isoformat()
        self._log(
            LogLevel.INFO,
            f"Starting cycle {self._cycle}",
            {"cycle": self._cycle, "domains": len(config.domains)},
        )

        observations, skipped = await self.collect_all(config)

        current = [(obs, fingerprint_observation(obs)) for obs in observations]
        detection = self._detector.detect(current, previous)

        outcomes: list[DeliveryOutcome] = []
        if detection.events:
            async with self._dispatcher:
                results = await asyncio.gather(
                    *(
                        self._notify(event, config, previous_config)
                        for event in detection.events
                    )
                )
            for result in results:
                outcomes.extend(result)

        report = CycleReport(
            cycle=self._cycle,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc).isoformat(),
            events=detection.events,
            outcomes=outcomes,
            skipped=skipped,
            next_state=detection.next_state,
        )

        self._log(
            LogLevel.INFO,
            f"Cycle {self._cycle} completed",
            {
                "cycle": self._cycle,
                "observed": len(observations),
                "skipped": len(skipped),
                "events": [f"{e.kind.value}:{e.domain}" for e in detection.events],
                "failed_deliveries": len(report.failed_deliveries),
            },
        )
        return report

    async def collect_all(
        self, config: MonitorConfig
    ) -> tuple[list[DomainObservation], list[SkippedDomain]]:
        """
        Observe every configured domain, at most ``config.max_workers`` at once.

        Returns:
            Successful observations and skipped domains, both in configuration order
        """
        semaphore = asyncio.Semaphore(config.max_workers)

        async def observe(name: str):
            async with semaphore:
                try:
                    return await self._collector.collect(name)
                except (FetchFailure, ParseFailure) as e:
                    return self._skip(name, e.code, e.message, e)
                except Exception as e:
                    return self._skip(name, FetchErrorCode.UNEXPECTED_ERROR.value, str(e), e)

        results = await asyncio.gather(*(observe(name) for name in config.domain_names))

        observations = [r for r in results if isinstance(r, DomainObservation)]
        skipped = [r for r in results if isinstance(r, SkippedDomain)]
        return observations, skipped

    def _skip(self, domain: str, code: str, message: str, error: Exception) -> SkippedDomain:
        if self._logger:
            self._logger.log_error(
                "CycleOrchestrator",
                f"Skipping {domain} this cycle",
                error=error,
                additional_data={"domain": domain},
                level=LogLevel.WARN,
            )
        return SkippedDomain(domain=domain, error_code=code, error=message)

    async def _notify(
        self,
        event: TransitionEvent,
        config: MonitorConfig,
        previous_config: Optional[MonitorConfig],
    ) -> list[DeliveryOutcome]:
        self._log(
            LogLevel.INFO,
            f"Domain {event.domain} {event.kind.value}",
            {"domain": event.domain, "event": event.kind.value},
        )
        sinks = sinks_for(event, config, previous_config)
        return await self._dispatcher.dispatch(event, sinks)

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "CycleOrchestrator", message, data)
