"""
Stability scoring engine.

Converts a contract's configuration plus its live signals into three
sub-scores (boundary, capacity, uncertainty) and an aggregate index.

Every sub-score starts at 78 and receives ordered, additive adjustments,
clamped to [5, 95] after each step:

1. Shared steps, applied to all three sub-scores: regime, structural mode,
   coupling count, geospatial, weather, evidence coverage.
2. Evidence coverage again at half weight on uncertainty and boundary.
3. Missing boundary-relevant evidence on boundary (up to -10).
4. Planner load on capacity, scaled by the planner signal weight.
5. Hard-regime time pressure on boundary.

The function is pure: identical inputs and ``now`` give identical Snapshots.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from src.signals.decay import PlannerReading, PlannerStatus

from .evidence import DocumentReadiness, boundary_evidence_gap
from .models import (
    CouplingState,
    GeoStatus,
    Intervention,
    Regime,
    Stability,
    StructuralMode,
    WeatherRisk,
    WeatherStatus,
)

BASELINE = 78.0
SCORE_MIN = 5.0
SCORE_MAX = 95.0

BOUNDARY = "boundary"
CAPACITY = "capacity"
UNCERTAINTY = "uncertainty"
SUB_SCORES = (BOUNDARY, CAPACITY, UNCERTAINTY)

REGIME_ADJUSTMENT = {
    Regime.HARD: -13.0,
    Regime.RESOURCE: -10.0,
    Regime.SOFT: -7.0,
}
MANUAL_MODE_ADJUSTMENT = -7.0
NO_COUPLING_ADJUSTMENT = -11.0
PER_COUPLING_ADJUSTMENT = 2.5

GEO_ADJUSTMENT = {
    GeoStatus.LOCKED_MOVING: 4.0,
    GeoStatus.LOCKED_STATIONARY: 1.0,
    GeoStatus.PENDING: -2.0,
    GeoStatus.DENIED: -10.0,
    GeoStatus.ERROR: -10.0,
    GeoStatus.UNSUPPORTED: -10.0,
}
WEATHER_RISK_ADJUSTMENT = {
    WeatherRisk.HIGH: -10.0,
    WeatherRisk.MODERATE: -5.0,
    WeatherRisk.LOW: -1.0,
}
WEATHER_LOADING_ADJUSTMENT = -2.0
WEATHER_ERROR_ADJUSTMENT = -5.0

# (coverage below, adjustment); coverage at or above the last bound earns the bonus
EVIDENCE_BANDS = ((0.34, -12.0), (0.67, -6.0))
EVIDENCE_BONUS = 2.0
EVIDENCE_FOCUS_WEIGHT = 0.5
BOUNDARY_EVIDENCE_MAX_PENALTY = 10.0

OVERDUE_PER_TASK = 3.0
OVERDUE_CAP = 18.0
DUE_SOON_PER_TASK = 1.6
DUE_SOON_CAP = 12.0
COMPLETION_MAX_BONUS = 8.0
PLANNER_NO_DATA_ADJUSTMENT = -6.0

# (minutes to boundary at most, adjustment), checked in order
TIME_PRESSURE_BANDS = ((240, -34.0), (720, -20.0), (1440, -9.0))

STABLE_THRESHOLD = 70.0
STRAINED_THRESHOLD = 45.0
CONTINUE_THRESHOLD = 70.0
DEVIATE_THRESHOLD = 52.0


@dataclass(frozen=True)
class Adjustment:
    factor: str
    target: str  # "all" or a sub-score name
    delta: float


@dataclass(frozen=True)
class ScoringInput:
    regime: Regime
    mode: StructuralMode
    boundary: Optional[datetime]
    couplings: CouplingState
    readiness: DocumentReadiness
    planner: Optional[PlannerReading] = None


@dataclass(frozen=True)
class Snapshot:
    boundary_score: float
    capacity_score: float
    uncertainty_score: float
    overall_index: float
    stability: Stability
    intervention: Intervention
    remaining_margin: str
    minutes_to_boundary: Optional[float]
    active_couplings: int
    coupling_statuses: Tuple[Tuple[str, str], ...]
    planner_weight: Optional[float]
    planner_health: Optional[str]
    evidence_coverage: float
    evidence_label: str
    adjustments: Tuple[Adjustment, ...]
    evaluated_at: datetime

    @property
    def sub_scores(self) -> Dict[str, float]:
        return {
            BOUNDARY: self.boundary_score,
            CAPACITY: self.capacity_score,
            UNCERTAINTY: self.uncertainty_score,
        }

    def coupling_status(self, kind: str) -> Optional[str]:
        return dict(self.coupling_statuses).get(kind)


class _SubScoreLedger:
    """Running sub-scores plus the ordered record of what moved them."""

    def __init__(self):
        self.values: Dict[str, float] = {name: BASELINE for name in SUB_SCORES}
        self.adjustments: List[Adjustment] = []

    def apply(self, factor: str, delta: float, targets: Sequence[str] = SUB_SCORES) -> None:
        if delta == 0:
            return
        for name in targets:
            self.values[name] = clamp(self.values[name] + delta)
        target = "all" if tuple(targets) == SUB_SCORES else ",".join(targets)
        self.adjustments.append(Adjustment(factor, target, delta))


def clamp(value: float, low: float = SCORE_MIN, high: float = SCORE_MAX) -> float:
    return min(high, max(low, value))


def evidence_adjustment(coverage: float) -> float:
    for upper, delta in EVIDENCE_BANDS:
        if coverage < upper:
            return delta
    return EVIDENCE_BONUS


def time_pressure_adjustment(minutes_to_boundary: float) -> float:
    for limit, delta in TIME_PRESSURE_BANDS:
        if minutes_to_boundary <= limit:
            return delta
    return 0.0


def classify_stability(index: float) -> Stability:
    if index >= STABLE_THRESHOLD:
        return Stability.STABLE
    if index >= STRAINED_THRESHOLD:
        return Stability.STRAINED
    return Stability.CRITICAL


def map_intervention(index: float, regime: Regime) -> Intervention:
    """Hard contracts fall back to a contingency path; the others to a recovery pause."""
    if index >= CONTINUE_THRESHOLD:
        return Intervention.CONTINUE
    if index >= DEVIATE_THRESHOLD:
        return Intervention.DEVIATE
    return Intervention.PLAN_B if regime == Regime.HARD else Intervention.PAUSE


def format_remaining(minutes: Optional[float]) -> str:
    if minutes is None:
        return "no boundary"
    safe_minutes = max(0, math.floor(minutes))
    return f"{safe_minutes // 60}h {safe_minutes % 60}m"


def _weather_adjustment(couplings: CouplingState) -> float:
    status = couplings.weather_status
    if status == WeatherStatus.READY:
        return WEATHER_RISK_ADJUSTMENT.get(couplings.weather_risk, 0.0)
    if status == WeatherStatus.LOADING:
        return WEATHER_LOADING_ADJUSTMENT
    if status == WeatherStatus.ERROR:
        return WEATHER_ERROR_ADJUSTMENT
    return 0.0


def _apply_planner(ledger: _SubScoreLedger, reading: PlannerReading) -> None:
    if not reading.has_live_data:
        if reading.status == PlannerStatus.ERROR:
            ledger.apply("planner_unavailable", PLANNER_NO_DATA_ADJUSTMENT, (CAPACITY,))
        return

    signal = reading.signal
    weight = reading.weight
    overdue = min(OVERDUE_CAP, OVERDUE_PER_TASK * signal.overdue_tasks)
    due_soon = min(DUE_SOON_CAP, DUE_SOON_PER_TASK * signal.due_next_24h)
    ledger.apply("planner_overdue", -overdue * weight, (CAPACITY,))
    ledger.apply("planner_due_24h", -due_soon * weight, (CAPACITY,))
    if signal.total_tasks > 0:
        completion = COMPLETION_MAX_BONUS * signal.completed_tasks / signal.total_tasks
        ledger.apply("planner_completion", completion * weight, (CAPACITY,))


def _coupling_statuses(inputs: ScoringInput) -> Tuple[Tuple[str, str], ...]:
    couplings = inputs.couplings
    planner_status = PlannerStatus.INACTIVE.value
    if couplings.planner_enabled:
        planner_status = inputs.planner.status.value if inputs.planner else PlannerStatus.LOADING.value
    return (
        ("geospatial", couplings.geospatial_status.value if couplings.geospatial_enabled else GeoStatus.INACTIVE.value),
        ("weather", couplings.weather_status.value if couplings.weather_enabled else WeatherStatus.INACTIVE.value),
        ("planner", planner_status),
    )


def score(inputs: ScoringInput, now: datetime) -> Snapshot:
    """
    Compute a Snapshot for one point in time.

    Args:
        inputs: Regime, mode, boundary, couplings, readiness and planner reading
        now: Evaluation time (timezone-aware when a boundary is set)

    Returns:
        Immutable Snapshot
    """
    ledger = _SubScoreLedger()
    couplings = inputs.couplings

    ledger.apply("regime", REGIME_ADJUSTMENT[inputs.regime])
    if inputs.mode == StructuralMode.MANUAL:
        ledger.apply("manual_mode", MANUAL_MODE_ADJUSTMENT)

    active = couplings.active_count
    if active == 0:
        ledger.apply("no_couplings", NO_COUPLING_ADJUSTMENT)
    else:
        ledger.apply("couplings", PER_COUPLING_ADJUSTMENT * active)

    if couplings.geospatial_enabled:
        ledger.apply("geospatial", GEO_ADJUSTMENT.get(couplings.geospatial_status, 0.0))
    if couplings.weather_enabled:
        ledger.apply("weather", _weather_adjustment(couplings))

    coverage = inputs.readiness.coverage
    evidence_delta = evidence_adjustment(coverage)
    ledger.apply("evidence", evidence_delta)
    ledger.apply("evidence_focus", evidence_delta * EVIDENCE_FOCUS_WEIGHT, (UNCERTAINTY, BOUNDARY))

    missing, required = boundary_evidence_gap(inputs.readiness)
    if required:
        ledger.apply("boundary_evidence", -BOUNDARY_EVIDENCE_MAX_PENALTY * missing / required, (BOUNDARY,))

    if couplings.planner_enabled and inputs.planner is not None:
        _apply_planner(ledger, inputs.planner)

    minutes_to_boundary = None
    if inputs.boundary is not None:
        minutes_to_boundary = (inputs.boundary - now).total_seconds() / 60.0
        if inputs.regime == Regime.HARD:
            ledger.apply("time_pressure", time_pressure_adjustment(minutes_to_boundary), (BOUNDARY,))

    values = ledger.values
    overall = clamp(sum(values[name] for name in SUB_SCORES) / len(SUB_SCORES))
    planner = inputs.planner if couplings.planner_enabled else None

    return Snapshot(
        boundary_score=values[BOUNDARY],
        capacity_score=values[CAPACITY],
        uncertainty_score=values[UNCERTAINTY],
        overall_index=overall,
        stability=classify_stability(overall),
        intervention=map_intervention(overall, inputs.regime),
        remaining_margin=format_remaining(minutes_to_boundary),
        minutes_to_boundary=minutes_to_boundary,
        active_couplings=active,
        coupling_statuses=_coupling_statuses(inputs),
        planner_weight=planner.weight if planner else None,
        planner_health=planner.health if planner else None,
        evidence_coverage=coverage,
        evidence_label=inputs.readiness.label,
        adjustments=tuple(ledger.adjustments),
        evaluated_at=now,
    )


def snapshot_to_dict(snapshot: Snapshot) -> Dict[str, Any]:
    """Serialize Snapshot to a JSON-safe dict; scores rounded for display only."""
    return {
        "boundary_score": round(snapshot.boundary_score, 2),
        "capacity_score": round(snapshot.capacity_score, 2),
        "uncertainty_score": round(snapshot.uncertainty_score, 2),
        "overall_index": round(snapshot.overall_index, 2),
        "stability": snapshot.stability.value,
        "intervention": snapshot.intervention.value,
        "remaining_margin": snapshot.remaining_margin,
        "minutes_to_boundary": (
            round(snapshot.minutes_to_boundary, 1) if snapshot.minutes_to_boundary is not None else None
        ),
        "active_couplings": snapshot.active_couplings,
        "coupling_statuses": dict(snapshot.coupling_statuses),
        "planner_weight": round(snapshot.planner_weight, 4) if snapshot.planner_weight is not None else None,
        "planner_health": snapshot.planner_health,
        "evidence_coverage": round(snapshot.evidence_coverage, 4),
        "evidence_label": snapshot.evidence_label,
        "adjustments": [
            {"factor": a.factor, "target": a.target, "delta": round(a.delta, 3)}
            for a in snapshot.adjustments
        ],
        "evaluated_at": snapshot.evaluated_at.isoformat(),
    }
