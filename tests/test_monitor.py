"""Tests for the per-contract evaluation loop."""

import time
from datetime import datetime, timedelta, timezone

import pytest

from src.signals.base_adapter import AdapterError, BaseAdapter, PlannerSignal
from src.signals.decay import FetchOutcome, PlannerStatus
from src.signals.ics_feed import IcsFeedAdapter
from src.signals.poller import ReadingCell, SignalPoller
from src.stability.contract import Contract, contract_from_dict
from src.stability.models import CouplingState, GeoStatus, Intervention, Regime
from src.stability.monitor import ContractMonitor, contract_window
from src.stability.surface import EventType, SurfaceState

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def planner_contract(**overrides) -> Contract:
    data = {
        "contract_id": "essay",
        "name": "Essay",
        "regime": "soft",
        "couplings": {
            "planner": {"enabled": True, "provider": {"provider": "ics_feed", "url": "https://x.test/a.ics"}},
        },
    }
    data.update(overrides)
    return contract_from_dict(data)


def signal(at: datetime) -> PlannerSignal:
    return PlannerSignal(total_tasks=4, completed_tasks=2, overdue_tasks=1, due_next_24h=1, last_updated_at=at)


class StubAdapter(BaseAdapter):
    def __init__(self, fail: bool = False, delay: float = 0.0):
        super().__init__({"provider": "ics_feed", "retry": {"max_retries": 1}})
        self.fail = fail
        self.delay = delay
        self.windows = []

    def _fetch_impl(self, window_start, window_end, now):
        self.windows.append((window_start, window_end))
        time.sleep(self.delay)
        if self.fail:
            raise AdapterError(self.provider, "feed down", retryable=False)
        return signal(now)


class TestPlannerDraining:
    def test_starts_loading(self):
        monitor = ContractMonitor(planner_contract(), now=NOW)
        result = monitor.check(now=NOW)
        assert result.planner.status == PlannerStatus.LOADING
        assert result.snapshot.coupling_status("planner") == "loading"

    def test_empty_cell_is_kept(self):
        cell = ReadingCell()
        monitor = ContractMonitor(planner_contract(), planner_cell=cell, now=NOW)
        assert monitor.planner_cell is cell
        cell.append(FetchOutcome(at=NOW, signal=signal(NOW)))
        assert monitor.check(now=NOW).planner.status == PlannerStatus.READY

    def test_failures_between_checks_each_decay(self):
        cell = ReadingCell()
        monitor = ContractMonitor(planner_contract(), planner_cell=cell, now=NOW)
        cell.append(FetchOutcome(at=NOW, signal=signal(NOW)))
        for i in range(3):
            cell.append(FetchOutcome(at=NOW + timedelta(minutes=i + 1), error="timeout"))

        result = monitor.check(now=NOW + timedelta(minutes=5))
        assert result.planner.weight == pytest.approx(0.512)
        assert result.planner.consecutive_failures == 3
        assert result.planner.signal == signal(NOW)
        assert result.snapshot.planner_health == "degraded"

    def test_outcomes_folded_once(self):
        cell = ReadingCell()
        monitor = ContractMonitor(planner_contract(), planner_cell=cell, now=NOW)
        cell.append(FetchOutcome(at=NOW, signal=signal(NOW)))
        cell.append(FetchOutcome(at=NOW, error="timeout"))
        monitor.check(now=NOW)
        second = monitor.check(now=NOW + timedelta(minutes=5))
        assert second.planner.weight == pytest.approx(0.8)

    def test_success_restores_full_weight(self):
        cell = ReadingCell()
        monitor = ContractMonitor(planner_contract(), planner_cell=cell, now=NOW)
        cell.append(FetchOutcome(at=NOW, error="timeout"))
        assert monitor.check(now=NOW).planner.weight == pytest.approx(0.2)
        cell.append(FetchOutcome(at=NOW, signal=signal(NOW)))
        assert monitor.check(now=NOW).planner.weight == 1.0

    def test_planner_disabled_ignores_cell(self):
        cell = ReadingCell()
        contract = contract_from_dict({"contract_id": "c", "name": "C", "regime": "soft"})
        monitor = ContractMonitor(contract, planner_cell=cell, now=NOW)
        cell.append(FetchOutcome(at=NOW, signal=signal(NOW)))
        result = monitor.check(now=NOW)
        assert result.planner is None
        assert monitor.planner_reading is None


class TestGatingThroughMonitor:
    @pytest.fixture
    def monitor(self):
        contract = contract_from_dict({
            "contract_id": "deadline",
            "name": "Deadline",
            "regime": "hard",
            "boundary": (NOW + timedelta(hours=2)).isoformat(),
        })
        return ContractMonitor(contract, now=NOW)

    def test_escalates_on_second_check(self, monitor):
        first = monitor.check(now=NOW)
        second = monitor.check(now=NOW + timedelta(minutes=5))
        assert first.snapshot.intervention == Intervention.PLAN_B
        assert first.escalation is None
        assert second.escalation is not None
        assert second.escalation.selected_remedy is not None
        assert monitor.track.escalated
        assert monitor.last_result is second

    def test_structural_break_surfaces_immediately(self, monitor):
        result = monitor.check(now=NOW)
        assert (EventType.ENTER, SurfaceState.STRUCTURAL_BREAK) in [
            (e.event_type, e.state) for e in result.surface_events
        ]
        assert result.active_surface_states[0].state == SurfaceState.STRUCTURAL_BREAK

    def test_acknowledge(self, monitor):
        monitor.check(now=NOW)
        monitor.check(now=NOW)
        track = monitor.acknowledge()
        assert track.violation_streak == 0
        assert not monitor.track.escalated

    def test_coupling_override_keeps_contract_planner_flag(self):
        monitor = ContractMonitor(planner_contract(), now=NOW)
        override = CouplingState(geospatial_enabled=True, geospatial_status=GeoStatus.LOCKED_MOVING)
        result = monitor.check(now=NOW, couplings=override)
        assert result.snapshot.active_couplings == 2
        assert result.snapshot.coupling_status("geospatial") == "locked_moving"


class TestRefreshPlanner:
    def test_success_lands_on_next_check(self):
        monitor = ContractMonitor(planner_contract(), now=NOW)
        outcome = monitor.refresh_planner(StubAdapter(), now=NOW)
        assert outcome.ok
        assert monitor.planner_reading.status == PlannerStatus.LOADING
        assert monitor.check(now=NOW).planner.status == PlannerStatus.READY

    def test_failure_becomes_outcome(self):
        monitor = ContractMonitor(planner_contract(), now=NOW)
        outcome = monitor.refresh_planner(StubAdapter(fail=True), now=NOW)
        assert not outcome.ok
        assert "feed down" in outcome.error
        assert monitor.check(now=NOW).planner.status == PlannerStatus.ERROR

    def test_slow_fetch_times_out_as_failure(self):
        monitor = ContractMonitor(planner_contract(), now=NOW)
        started = time.monotonic()
        outcome = monitor.refresh_planner(StubAdapter(delay=1.0), now=NOW, timeout_seconds=0.05)
        assert time.monotonic() - started < 0.9
        assert not outcome.ok
        assert outcome.error == "ics_feed: fetch timed out after 0.05s"
        result = monitor.check(now=NOW)
        assert result.planner.status == PlannerStatus.ERROR
        assert result.planner.consecutive_failures == 1

    def test_timeout_defaults_to_adapter_setting(self):
        settings = {"adapters": {"timeout_seconds": 0.05}}
        monitor = ContractMonitor(planner_contract(), now=NOW, settings=settings)
        outcome = monitor.refresh_planner(StubAdapter(delay=1.0), now=NOW)
        assert "timed out after 0.05s" in outcome.error

    def test_settings_reach_the_planner_adapter(self):
        settings = {"adapters": {"retry": {"max_retries": 5}, "request_timeout": 3}}
        monitor = ContractMonitor(planner_contract(), now=NOW, settings=settings)
        adapter = monitor.build_planner_adapter()
        assert adapter.max_retries == 5
        assert adapter.request_timeout == (3.0, 3.0)

    def test_window_ends_at_boundary(self):
        boundary = NOW + timedelta(days=2)
        monitor = ContractMonitor(planner_contract(boundary=boundary.isoformat()), now=NOW)
        adapter = StubAdapter()
        monitor.refresh_planner(adapter, now=NOW)
        assert adapter.windows == [(NOW - timedelta(days=7), boundary)]

    def test_missing_provider(self):
        contract = Contract(contract_id="c", regime=Regime.SOFT, couplings=CouplingState(planner_enabled=True))
        with pytest.raises(ValueError, match="no planner provider"):
            ContractMonitor(contract, now=NOW).build_planner_adapter()

    def test_planner_poller(self):
        monitor = ContractMonitor(planner_contract(), now=NOW)
        poller = monitor.planner_poller(interval_seconds=60, timeout_seconds=5)
        assert isinstance(poller, SignalPoller)
        assert isinstance(poller.adapter, IcsFeedAdapter)
        assert poller.cell is monitor.planner_cell
        assert poller.name == "essay:planner"


class TestContractWindow:
    def test_future_boundary(self):
        boundary = NOW + timedelta(hours=5)
        assert contract_window(boundary)(NOW) == (NOW - timedelta(days=7), boundary)

    def test_passed_boundary_ends_now(self):
        assert contract_window(NOW - timedelta(hours=1))(NOW)[1] == NOW

    def test_no_boundary_looks_a_week_ahead(self):
        assert contract_window(None)(NOW)[1] == NOW + timedelta(days=7)
