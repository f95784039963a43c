"""
Transition detector for the domain monitor.

Compares one complete cycle of fingerprints against the previous complete
cycle and classifies every domain:

- observed now, unknown before      -> ENABLED
- observed now, fingerprint differs -> CHANGED
- observed now, fingerprint equal   -> silent
- known before, not observed now    -> REMOVED

A domain whose lookup failed this cycle counts as not observed. It drops out
of the next state and will be reported REMOVED now and ENABLED again once it
can be observed, rather than pinning a stale fingerprint indefinitely.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable

from .models import EMPTY_STATE, DomainObservation, StateMap, TransitionEvent


@dataclass
class DetectionResult:
    """Events for one cycle and the state to carry into the next."""

    events: list[TransitionEvent] = field(default_factory=list)
    next_state: StateMap = field(default_factory=lambda: EMPTY_STATE)


class TransitionDetector:
    """
    Stateless classifier of per-domain transitions.

    Events for observed domains come first, in the order they were observed
    (configuration order), followed by REMOVED events in the order of the
    previous state. The previous state is never modified; a fresh read-only
    mapping is returned for the next cycle.
    """

    def detect(
        self,
        current: Iterable[tuple[DomainObservation, str]],
        previous: StateMap,
    ) -> DetectionResult:
        """
        Classify this cycle's observations against the previous state.

        Args:
            current: (observation, fingerprint) pairs for every domain
                observed this cycle, in configuration order
            previous: Fingerprints from the last completed cycle

        Returns:
            DetectionResult with ordered events and the next state
        """
        events: list[TransitionEvent] = []
        next_state: dict[str, str] = {}

        for observation, digest in current:
            domain = observation.domain
            if domain in next_state:
                # Listed twice in the configuration; the first entry counts
                continue
            next_state[domain] = digest

            previous_digest = previous.get(domain)
            if previous_digest is None:
                events.append(TransitionEvent.enabled(observation))
            elif previous_digest != digest:
                events.append(TransitionEvent.changed(observation))

        for domain in previous:
            if domain not in next_state:
                events.append(TransitionEvent.removed(domain))

        return DetectionResult(
            events=events,
            next_state=MappingProxyType(next_state),
        )
