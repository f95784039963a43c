"""
Poll scheduler for the domain monitor.

Owns the only long-lived state of the process, the fingerprint map of the
last completed cycle, and drives one cycle per interval tick:

    load configuration -> run cycle -> replace state -> sleep

The state map is swapped as a whole once a cycle has finished, so a cycle
always compares against one complete previous cycle. Cycles never overlap;
a slow cycle only delays the next tick.

A configuration that cannot be loaded at startup is fatal. Once running, a
failed reload skips that cycle and the file is tried again on the next tick.
A cycle that fails unexpectedly is logged and skipped the same way.
"""

import asyncio
from pathlib import Path
from typing import Callable, Optional

from .audit_logger import AuditLogger
from .config import MonitorConfig, clamp_interval, load_config, MIN_INTERVAL_MINUTES
from .enums import LogLevel
from .exceptions import ConfigLoadFailure
from .models import EMPTY_STATE, CycleReport, StateMap
from .orchestrator import CycleOrchestrator


class PollScheduler:
    """
    Interval-driven monitoring loop.

    The interval is read from the configuration on every cycle and clamped
    to MIN_INTERVAL_MINUTES.
    """

    def __init__(
        self,
        config_path: Path,
        orchestrator: Optional[CycleOrchestrator] = None,
        logger: Optional[AuditLogger] = None,
        dry_run: bool = False,
        config_loader: Callable[[Path], MonitorConfig] = load_config,
        seconds_per_minute: float = 60.0,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            config_path: Configuration file re-read at every tick
            orchestrator: Cycle orchestrator (built from the first
                configuration if omitted)
            logger: Optional audit logger
            dry_run: Render notifications without sending them
            config_loader: Function that loads the configuration file
            seconds_per_minute: Length of one interval minute in seconds
        """
        self._config_path = Path(config_path)
        self._orchestrator = orchestrator
        self._logger = logger
        self._dry_run = dry_run
        self._config_loader = config_loader
        self._seconds_per_minute = seconds_per_minute

        self._state: StateMap = EMPTY_STATE
        self._config: Optional[MonitorConfig] = None
        self._running = False

    @property
    def state(self) -> StateMap:
        """Fingerprints as of the last completed cycle."""
        return self._state

    @property
    def config(self) -> Optional[MonitorConfig]:
        """Configuration used by the last completed cycle."""
        return self._config

    def is_running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Signal the loop to stop after the current cycle."""
        self._running = False

    def load_initial_config(self) -> MonitorConfig:
        """
        Load the configuration at startup.

        Raises:
            ConfigLoadFailure: If the file cannot be loaded
        """
        config = self._config_loader(self._config_path)
        if config.interval < MIN_INTERVAL_MINUTES:
            self._log(
                LogLevel.INFO,
                "Interval raised to the minimum",
                {"configured": config.interval, "effective": config.effective_interval},
            )
        if self._orchestrator is None:
            self._orchestrator = CycleOrchestrator.from_config(
                config, logger=self._logger, dry_run=self._dry_run
            )
        return config

    def reload_config(self) -> Optional[MonitorConfig]:
        """Reload the configuration; return None and log if it fails."""
        try:
            return self._config_loader(self._config_path)
        except ConfigLoadFailure as e:
            if self._logger:
                self._logger.log_error(
                    "PollScheduler",
                    "Configuration reload failed; skipping this cycle",
                    error=e,
                    additional_data=e.details,
                    level=LogLevel.WARN,
                )
            return None

    async def run_once(self, config: MonitorConfig) -> CycleReport:
        """
        Run one cycle and carry its state forward.

        Args:
            config: Configuration for this cycle

        Returns:
            The cycle's report
        """
        if self._orchestrator is None:
            self._orchestrator = CycleOrchestrator.from_config(
                config, logger=self._logger, dry_run=self._dry_run
            )

        report = await self._orchestrator.run_cycle(config, self._state, self._config)

        # Replaced only after every delivery of the cycle has completed
        self._state = report.next_state
        self._config = config
        return report

    async def run(
        self,
        stop_event: Optional[asyncio.Event] = None,
        max_cycles: Optional[int] = None,
    ) -> None:
        """
        Run the monitoring loop.

        Runs until ``stop()`` is called, ``stop_event`` is set or
        ``max_cycles`` ticks have elapsed (skipped ticks count).

        Args:
            stop_event: Optional event to end the loop between cycles
            max_cycles: Optional number of ticks to run

        Raises:
            ConfigLoadFailure: If the configuration cannot be loaded at startup
        """
        config: Optional[MonitorConfig] = self.load_initial_config()
        interval = config.effective_interval
        ticks = 0
        self._running = True

        try:
            while self._running:
                if config is not None:
                    interval = clamp_interval(config.interval)
                    try:
                        await self.run_once(config)
                    except Exception as e:
                        # The state of the last completed cycle is kept
                        if self._logger:
                            self._logger.log_error(
                                "PollScheduler",
                                "Cycle failed; skipping this tick",
                                error=e,
                            )

                ticks += 1
                if max_cycles is not None and ticks >= max_cycles:
                    break

                self._log(
                    LogLevel.DEBUG,
                    f"Sleeping {interval} minute(s)",
                    {"interval_minutes": interval},
                )
                if await self._sleep(interval, stop_event):
                    break

                config = self.reload_config()
        finally:
            self._running = False

    async def _sleep(self, minutes: int, stop_event: Optional[asyncio.Event]) -> bool:
        """Sleep for the interval; return True if asked to stop meanwhile."""
        seconds = minutes * self._seconds_per_minute
        if stop_event is None:
            await asyncio.sleep(seconds)
            return not self._running

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return not self._running
        return True

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "PollScheduler", message, data)
