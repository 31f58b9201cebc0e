"""Planner reading state with last-good carry-forward and weight decay."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .base_adapter import PlannerSignal

WEIGHT_FULL = 1.0
WEIGHT_DECAY = 0.8
WEIGHT_FLOOR = 0.2


class PlannerStatus(str, Enum):
    INACTIVE = "inactive"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class FetchOutcome:
    """Result of one adapter fetch: exactly one of signal / error is set."""
    at: datetime
    signal: Optional[PlannerSignal] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.signal is not None


@dataclass(frozen=True)
class PlannerReading:
    status: PlannerStatus
    signal: PlannerSignal
    weight: float
    has_live_data: bool
    consecutive_failures: int
    last_error: Optional[str]
    fetched_at: Optional[datetime]
    last_good_at: Optional[datetime]

    @property
    def health(self) -> str:
        """One of ok, degraded (carried forward at reduced weight) or unavailable."""
        if not self.has_live_data:
            return "unavailable"
        if self.weight < WEIGHT_FULL:
            return "degraded"
        return "ok"


def loading_reading(at: datetime) -> PlannerReading:
    """Reading for a coupling whose first fetch has not completed yet."""
    return PlannerReading(
        status=PlannerStatus.LOADING,
        signal=PlannerSignal.empty(at),
        weight=WEIGHT_FLOOR,
        has_live_data=False,
        consecutive_failures=0,
        last_error=None,
        fetched_at=None,
        last_good_at=None,
    )


def decayed_weight(weight: float) -> float:
    return max(WEIGHT_FLOOR, weight * WEIGHT_DECAY)


def apply_fetch_outcome(prev: Optional[PlannerReading], outcome: FetchOutcome) -> PlannerReading:
    """
    Fold one fetch outcome into the reading.

    Success replaces the signal and resets weight to 1.0. Failure keeps the
    last good signal and multiplies its weight by 0.8 (floor 0.2); with no
    previous live data the reading is an all-zero signal at weight 0.2.

    Args:
        prev: Reading before this outcome (None or a loading reading on first fetch)
        outcome: The fetch result

    Returns:
        New PlannerReading; prev is never modified
    """
    if outcome.ok:
        return PlannerReading(
            status=PlannerStatus.READY,
            signal=outcome.signal,
            weight=WEIGHT_FULL,
            has_live_data=True,
            consecutive_failures=0,
            last_error=None,
            fetched_at=outcome.at,
            last_good_at=outcome.at,
        )

    if prev is None or not prev.has_live_data:
        # Never succeeded: contribute at minimum weight rather than vanish
        return PlannerReading(
            status=PlannerStatus.ERROR,
            signal=PlannerSignal.empty(outcome.at),
            weight=WEIGHT_FLOOR,
            has_live_data=False,
            consecutive_failures=(prev.consecutive_failures if prev else 0) + 1,
            last_error=outcome.error,
            fetched_at=outcome.at,
            last_good_at=None,
        )

    return PlannerReading(
        status=PlannerStatus.ERROR,
        signal=prev.signal,
        weight=decayed_weight(prev.weight),
        has_live_data=True,
        consecutive_failures=prev.consecutive_failures + 1,
        last_error=outcome.error,
        fetched_at=outcome.at,
        last_good_at=prev.last_good_at,
    )


def reading_to_dict(reading: PlannerReading) -> Dict[str, Any]:
    """Serialize PlannerReading to JSON-safe dict."""
    return {
        "status": reading.status.value,
        "health": reading.health,
        "signal": reading.signal.to_dict(),
        "weight": round(reading.weight, 4),
        "has_live_data": reading.has_live_data,
        "consecutive_failures": reading.consecutive_failures,
        "last_error": reading.last_error,
        "fetched_at": reading.fetched_at.isoformat() if reading.fetched_at else None,
        "last_good_at": reading.last_good_at.isoformat() if reading.last_good_at else None,
    }
