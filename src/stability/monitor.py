"""
Evaluation loop for one active contract.

The monitor is the single writer of a contract's mutable state: the planner
reading (and so its decay), the intervention track and the surface
lifecycle. Pollers only append to the planner ReadingCell; every check
drains the outcomes it has not seen, folds them in order, then scores.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from src.config.settings import get_adapter_settings
from src.signals.base_adapter import AdapterError, BaseAdapter
from src.signals.decay import (
    FetchOutcome,
    PlannerReading,
    apply_fetch_outcome,
    loading_reading,
    reading_to_dict,
)
from src.signals.poller import ReadingCell, SignalPoller, WindowFn
from src.signals.registry import build_adapter

from .contract import Contract
from .evidence import DocumentReadiness, DocumentSuggestion, derive_readiness, suggest_documents
from .intervention import Escalation, InterventionTrack, acknowledge, record_check
from .models import CouplingState
from .scoring import ScoringInput, Snapshot, score, snapshot_to_dict
from .surface import ObservedState, SurfaceEvent, SurfaceLifecycle, observe_snapshot

logger = logging.getLogger(__name__)

PLANNER_LOOKBACK = timedelta(days=7)
PLANNER_LOOKAHEAD = timedelta(days=7)


def contract_window(boundary: Optional[datetime]) -> WindowFn:
    """Planner window: a week back (for overdue work) up to the boundary.

    Without a boundary, or once it has passed, the window ends a week ahead
    or at ``now`` respectively.
    """
    def window(now: datetime) -> Tuple[datetime, datetime]:
        if boundary is None:
            end = now + PLANNER_LOOKAHEAD
        else:
            end = max(boundary, now)
        return now - PLANNER_LOOKBACK, end
    return window


@dataclass(frozen=True)
class CheckResult:
    snapshot: Snapshot
    track: InterventionTrack
    escalation: Optional[Escalation]
    surface_events: Tuple[SurfaceEvent, ...]
    active_surface_states: Tuple[ObservedState, ...]
    planner: Optional[PlannerReading]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "snapshot": snapshot_to_dict(self.snapshot),
            "track": self.track.to_dict(),
            "escalation": self.escalation.to_dict() if self.escalation else None,
            "surface_events": [e.to_dict() for e in self.surface_events],
            "active_surface_states": [s.to_dict() for s in self.active_surface_states],
            "planner": reading_to_dict(self.planner) if self.planner else None,
        }


class ContractMonitor:
    """Owns and serialises all state changes for one contract."""

    def __init__(
        self,
        contract: Contract,
        planner_cell: Optional[ReadingCell] = None,
        flight_context_detected: bool = False,
        now: Optional[datetime] = None,
        settings: Optional[Dict[str, Any]] = None,
    ):
        now = now or datetime.now(timezone.utc)
        self.contract = contract
        self.settings = settings
        self.planner_cell = planner_cell if planner_cell is not None else ReadingCell()
        self.suggestions: List[DocumentSuggestion] = suggest_documents(
            contract.regime, contract.context_blob(), flight_context_detected,
        )
        self.readiness: DocumentReadiness = derive_readiness(contract.documents, self.suggestions)

        self._lock = threading.Lock()
        self._cursor = 0
        self._track = InterventionTrack()
        self._planner: Optional[PlannerReading] = (
            loading_reading(now) if contract.couplings.planner_enabled else None
        )
        self._surface = SurfaceLifecycle()
        self._last_result: Optional[CheckResult] = None

    @property
    def track(self) -> InterventionTrack:
        return self._track

    @property
    def planner_reading(self) -> Optional[PlannerReading]:
        return self._planner

    @property
    def last_result(self) -> Optional[CheckResult]:
        return self._last_result

    @property
    def window(self) -> WindowFn:
        return contract_window(self.contract.boundary)

    def _drain_planner(self) -> None:
        outcomes, self._cursor = self.planner_cell.since(self._cursor)
        if self._planner is None:
            return
        for outcome in outcomes:
            self._planner = apply_fetch_outcome(self._planner, outcome)

    def check(self, now: Optional[datetime] = None, couplings: Optional[CouplingState] = None) -> CheckResult:
        """
        Run one explicit check: fold pending planner outcomes, score, gate
        and advance the surface lifecycle.

        Args:
            now: Check time (defaults to current UTC time)
            couplings: Current geospatial/weather statuses; defaults to the
                contract's configured state. The planner enable flag is
                always taken from the contract.

        Returns:
            CheckResult for this check
        """
        now = now or datetime.now(timezone.utc)
        couplings = couplings or self.contract.couplings
        if couplings.planner_enabled != self.contract.couplings.planner_enabled:
            couplings = replace(couplings, planner_enabled=self.contract.couplings.planner_enabled)

        with self._lock:
            self._drain_planner()
            snapshot = score(
                ScoringInput(
                    regime=self.contract.regime,
                    mode=self.contract.mode,
                    boundary=self.contract.boundary,
                    couplings=couplings,
                    readiness=self.readiness,
                    planner=self._planner,
                ),
                now,
            )
            gate = record_check(self._track, snapshot, self.contract.mode, self.contract.regime, now)
            self._track = gate.track
            events = self._surface.advance(observe_snapshot(snapshot), now)

            result = CheckResult(
                snapshot=snapshot,
                track=gate.track,
                escalation=gate.escalation,
                surface_events=tuple(events),
                active_surface_states=tuple(self._surface.active_states),
                planner=self._planner,
            )
            self._last_result = result

        logger.debug(
            f"{self.contract.contract_id}: index={snapshot.overall_index:.1f} "
            f"{snapshot.intervention.value} streak={gate.track.violation_streak}"
        )
        return result

    def acknowledge(self) -> InterventionTrack:
        with self._lock:
            self._track = acknowledge(self._track)
            return self._track

    def refresh_planner(
        self,
        adapter: Optional[BaseAdapter] = None,
        now: Optional[datetime] = None,
        timeout_seconds: Optional[float] = None,
    ) -> FetchOutcome:
        """Fetch the planner once into the cell, bounded by the adapter timeout.

        A fetch still running at the deadline is abandoned and recorded as a
        failure. The outcome is folded on the next check, like a poller's
        would be.
        """
        now = now or datetime.now(timezone.utc)
        adapter = adapter or self.build_planner_adapter()
        if timeout_seconds is None:
            timeout_seconds = get_adapter_settings(self.settings)["timeout_seconds"]
        window_start, window_end = self.window(now)

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{self.contract.contract_id}-refresh")
        future = executor.submit(adapter.fetch_signal, window_start, window_end, now)
        try:
            outcome = FetchOutcome(at=now, signal=future.result(timeout=timeout_seconds))
        except FutureTimeout:
            future.cancel()
            logger.warning(f"{self.contract.contract_id}: planner fetch timed out after {timeout_seconds}s")
            outcome = FetchOutcome(at=now, error=f"{adapter.provider}: fetch timed out after {timeout_seconds}s")
        except AdapterError as e:
            logger.warning(f"{self.contract.contract_id}: planner fetch failed: {e}")
            outcome = FetchOutcome(at=now, error=str(e))
        finally:
            executor.shutdown(wait=False)
        self.planner_cell.append(outcome)
        return outcome

    def build_planner_adapter(self) -> BaseAdapter:
        """
        Raises:
            ValueError: If the contract has no planner provider or names an unknown one
        """
        if not self.contract.planner_provider:
            raise ValueError(f"{self.contract.contract_id}: no planner provider configured")
        return build_adapter(self.contract.planner_provider, self.settings)

    def planner_poller(self, interval_seconds: float, timeout_seconds: float) -> SignalPoller:
        return SignalPoller(
            name=f"{self.contract.contract_id}:planner",
            adapter=self.build_planner_adapter(),
            cell=self.planner_cell,
            interval_seconds=interval_seconds,
            timeout_seconds=timeout_seconds,
            window=self.window,
        )
