"""
Surface-state lifecycle.

Each Snapshot is projected to a set of observed surface states. A state must
be observed continuously for its debounce interval before it becomes active
(``enter``), re-announces itself every persist interval while active
(``persist``), reports a severity increase immediately (``escalate``) and is
only dropped after it has been absent for its clear-stable interval
(``clear``). A cleared state then sits out a cooldown unless it comes back
at a higher severity than it cleared at.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import Stability
from .scoring import Snapshot


class Severity(str, Enum):
    GREEN = "green"
    AMBER = "amber"
    RED = "red"


class SurfaceState(str, Enum):
    STRUCTURAL_BREAK = "structural_break"
    ALIGNMENT_DEGRADING = "alignment_degrading"
    STABILITY_WARNING = "stability_warning"
    CAPACITY_UNDER_LOAD = "capacity_under_load"
    INFORMATIONAL = "informational"


class EventType(str, Enum):
    ENTER = "enter"
    ESCALATE = "escalate"
    PERSIST = "persist"
    CLEAR = "clear"


SEVERITY_RANK = {Severity.GREEN: 0, Severity.AMBER: 1, Severity.RED: 2}

CAPACITY_AMBER_BELOW = 52.0
CAPACITY_RED_BELOW = 45.0
ALIGNMENT_AMBER_BELOW = 52.0


@dataclass(frozen=True)
class TimingRule:
    debounce: timedelta
    cooldown: timedelta
    clear_stable: timedelta
    persist_every: timedelta
    priority: int


def _ms(value: int) -> timedelta:
    return timedelta(milliseconds=value)


TIMING: Dict[SurfaceState, TimingRule] = {
    SurfaceState.STRUCTURAL_BREAK: TimingRule(_ms(0), _ms(0), _ms(0), _ms(10_000), 0),
    SurfaceState.ALIGNMENT_DEGRADING: TimingRule(_ms(5_000), _ms(10_000), _ms(5_000), _ms(20_000), 1),
    SurfaceState.STABILITY_WARNING: TimingRule(_ms(3_000), _ms(15_000), _ms(5_000), _ms(15_000), 2),
    SurfaceState.CAPACITY_UNDER_LOAD: TimingRule(_ms(8_000), _ms(20_000), _ms(10_000), _ms(25_000), 3),
    SurfaceState.INFORMATIONAL: TimingRule(_ms(5_000), _ms(5_000), _ms(3_000), _ms(30_000), 4),
}


@dataclass(frozen=True)
class ObservedState:
    state: SurfaceState
    severity: Severity
    reason_codes: Tuple[str, ...]
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "severity": self.severity.value,
            "reason_codes": list(self.reason_codes),
            "text": self.text,
        }


@dataclass(frozen=True)
class SurfaceEvent:
    event_type: EventType
    state: SurfaceState
    severity: Severity
    at: datetime
    reason_codes: Tuple[str, ...]
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "state": self.state.value,
            "severity": self.severity.value,
            "at": self.at.isoformat(),
            "reason_codes": list(self.reason_codes),
            "text": self.text,
        }


@dataclass
class _Track:
    active: bool = False
    candidate_since: Optional[datetime] = None
    clear_candidate_since: Optional[datetime] = None
    last_persist: Optional[datetime] = None
    cooldown_until: Optional[datetime] = None
    cooldown_severity: Severity = Severity.GREEN
    severity: Severity = Severity.GREEN
    observed: Optional[ObservedState] = None


def _event(event_type: EventType, observed: ObservedState, at: datetime) -> SurfaceEvent:
    return SurfaceEvent(event_type, observed.state, observed.severity, at, observed.reason_codes, observed.text)


def observe_snapshot(snapshot: Snapshot) -> List[ObservedState]:
    """Project a Snapshot onto the surface states it currently exhibits."""
    observed: List[ObservedState] = []

    if snapshot.stability == Stability.CRITICAL:
        observed.append(ObservedState(
            SurfaceState.STRUCTURAL_BREAK, Severity.RED, ("stability_critical",),
            "Stability index is critical.",
        ))
    elif snapshot.stability == Stability.STRAINED:
        observed.append(ObservedState(
            SurfaceState.STABILITY_WARNING, Severity.AMBER, ("stability_strained",),
            "Stability index is strained.",
        ))

    if snapshot.capacity_score < CAPACITY_RED_BELOW:
        observed.append(ObservedState(
            SurfaceState.CAPACITY_UNDER_LOAD, Severity.RED, ("capacity_low",),
            "Capacity is heavily loaded.",
        ))
    elif snapshot.capacity_score < CAPACITY_AMBER_BELOW:
        observed.append(ObservedState(
            SurfaceState.CAPACITY_UNDER_LOAD, Severity.AMBER, ("capacity_reduced",),
            "Capacity is under load.",
        ))

    if snapshot.uncertainty_score < ALIGNMENT_AMBER_BELOW:
        observed.append(ObservedState(
            SurfaceState.ALIGNMENT_DEGRADING, Severity.AMBER, ("uncertainty_high",),
            "Alignment is degrading; signal uncertainty is high.",
        ))

    if snapshot.planner_health in ("degraded", "unavailable"):
        observed.append(ObservedState(
            SurfaceState.INFORMATIONAL, Severity.GREEN, (f"planner_{snapshot.planner_health}",),
            f"Planner signal {snapshot.planner_health}.",
        ))

    return observed


class SurfaceLifecycle:
    """Per-contract lifecycle runtime. Not thread-safe; the owner serialises calls."""

    def __init__(self):
        self._tracks: Dict[SurfaceState, _Track] = {state: _Track() for state in SurfaceState}
        self.active_states: List[ObservedState] = []
        self.updated_at: Optional[datetime] = None

    @property
    def dominant_state(self) -> Optional[ObservedState]:
        return self.active_states[0] if self.active_states else None

    def advance(self, observed_states: Sequence[ObservedState], now: datetime) -> List[SurfaceEvent]:
        """Fold one round of observations and return the events it produced."""
        selected: Dict[SurfaceState, ObservedState] = {}
        for observed in observed_states:
            current = selected.get(observed.state)
            if current is None or SEVERITY_RANK[observed.severity] > SEVERITY_RANK[current.severity]:
                selected[observed.state] = observed

        events: List[SurfaceEvent] = []
        for state in SurfaceState:
            observed = selected.get(state)
            if observed is not None:
                self._observe(state, observed, now, events)
            else:
                self._absent(state, now, events)

        active = [t.observed for t in self._tracks.values() if t.active and t.observed is not None]
        active.sort(key=lambda o: (TIMING[o.state].priority, -SEVERITY_RANK[o.severity]))
        self.active_states = active
        self.updated_at = now
        return events

    def _observe(self, state: SurfaceState, observed: ObservedState, now: datetime, events: List[SurfaceEvent]) -> None:
        rule = TIMING[state]
        track = self._tracks[state]
        track.observed = observed
        track.clear_candidate_since = None

        if not track.active:
            in_cooldown = track.cooldown_until is not None and now < track.cooldown_until
            escalated = SEVERITY_RANK[observed.severity] > SEVERITY_RANK[track.cooldown_severity]
            if in_cooldown and not escalated:
                track.candidate_since = None
                return
            if track.candidate_since is None:
                track.candidate_since = now
            if now - track.candidate_since >= rule.debounce:
                track.active = True
                track.last_persist = now
                track.severity = observed.severity
                track.candidate_since = None
                events.append(_event(EventType.ENTER, observed, now))
            return

        if SEVERITY_RANK[observed.severity] > SEVERITY_RANK[track.severity]:
            events.append(_event(EventType.ESCALATE, observed, now))
        track.severity = observed.severity

        if track.last_persist is None or now - track.last_persist >= rule.persist_every:
            track.last_persist = now
            events.append(_event(EventType.PERSIST, observed, now))

    def _absent(self, state: SurfaceState, now: datetime, events: List[SurfaceEvent]) -> None:
        rule = TIMING[state]
        track = self._tracks[state]
        track.candidate_since = None
        if not track.active:
            track.clear_candidate_since = None
            return

        if track.clear_candidate_since is None:
            track.clear_candidate_since = now
        if now - track.clear_candidate_since < rule.clear_stable:
            return

        last = track.observed or ObservedState(state, track.severity, (), "State cleared.")
        events.append(_event(EventType.CLEAR, last, now))
        self._tracks[state] = _Track(
            cooldown_until=now + rule.cooldown,
            cooldown_severity=track.severity,
        )

    def to_dict(self) -> Dict[str, Any]:
        dominant = self.dominant_state
        return {
            "active_states": [o.to_dict() for o in self.active_states],
            "dominant_state": dominant.to_dict() if dominant else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
