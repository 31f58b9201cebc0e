"""Tests for planner reading decay and last-good carry-forward."""

from datetime import datetime, timedelta, timezone

import pytest

from src.signals.base_adapter import PlannerSignal
from src.signals.decay import (
    WEIGHT_FLOOR,
    FetchOutcome,
    PlannerStatus,
    apply_fetch_outcome,
    decayed_weight,
    loading_reading,
    reading_to_dict,
)

T0 = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def good_signal(at: datetime = T0) -> PlannerSignal:
    return PlannerSignal(total_tasks=6, completed_tasks=2, overdue_tasks=1, due_next_24h=2, last_updated_at=at)


def fail(minutes: int) -> FetchOutcome:
    return FetchOutcome(at=T0 + timedelta(minutes=minutes), error="ics_feed: feed request failed")


class TestDecay:
    def test_success_resets_to_full_weight(self):
        reading = apply_fetch_outcome(loading_reading(T0), FetchOutcome(at=T0, signal=good_signal()))
        assert reading.status == PlannerStatus.READY
        assert reading.weight == 1.0
        assert reading.has_live_data
        assert reading.health == "ok"

    def test_three_failures_after_success(self):
        reading = apply_fetch_outcome(None, FetchOutcome(at=T0, signal=good_signal()))
        for minute in (5, 10, 15):
            reading = apply_fetch_outcome(reading, fail(minute))
        assert reading.weight == pytest.approx(0.512)
        assert reading.consecutive_failures == 3
        assert reading.signal == good_signal()
        assert reading.last_good_at == T0
        assert reading.status == PlannerStatus.ERROR
        assert reading.health == "degraded"

    def test_weight_floors_at_minimum(self):
        reading = apply_fetch_outcome(None, FetchOutcome(at=T0, signal=good_signal()))
        for minute in range(1, 20):
            reading = apply_fetch_outcome(reading, fail(minute))
        assert reading.weight == pytest.approx(WEIGHT_FLOOR)
        assert reading.signal == good_signal()

    def test_failure_without_prior_data_is_synthetic_zero(self):
        reading = apply_fetch_outcome(loading_reading(T0), fail(1))
        assert reading.weight == WEIGHT_FLOOR
        assert reading.has_live_data is False
        assert reading.signal.total_tasks == 0
        assert reading.health == "unavailable"
        assert reading.last_error == "ics_feed: feed request failed"

    def test_recovery_after_failures(self):
        reading = apply_fetch_outcome(None, FetchOutcome(at=T0, signal=good_signal()))
        reading = apply_fetch_outcome(reading, fail(5))
        later = T0 + timedelta(minutes=10)
        reading = apply_fetch_outcome(reading, FetchOutcome(at=later, signal=good_signal(later)))
        assert reading.weight == 1.0
        assert reading.consecutive_failures == 0
        assert reading.last_good_at == later

    def test_previous_reading_is_not_mutated(self):
        first = apply_fetch_outcome(None, FetchOutcome(at=T0, signal=good_signal()))
        apply_fetch_outcome(first, fail(5))
        assert first.weight == 1.0

    def test_decayed_weight(self):
        assert decayed_weight(1.0) == pytest.approx(0.8)
        assert decayed_weight(0.21) == WEIGHT_FLOOR

    def test_loading_reading(self):
        reading = loading_reading(T0)
        assert reading.status == PlannerStatus.LOADING
        assert reading.weight == WEIGHT_FLOOR

    def test_reading_to_dict(self):
        reading = apply_fetch_outcome(None, FetchOutcome(at=T0, signal=good_signal()))
        d = reading_to_dict(reading)
        assert d["status"] == "ready"
        assert d["health"] == "ok"
        assert d["signal"]["total_tasks"] == 6
        assert d["last_good_at"] == T0.isoformat()
