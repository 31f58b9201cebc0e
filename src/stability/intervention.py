"""
Persistence gate between scoring and the user.

A single noisy reading can push the index across a threshold, so an
escalation is raised only after ESCALATION_STREAK consecutive checks whose
intervention is not CONTINUE. Once raised it is not raised again until a
CONTINUE ends the run or the user acknowledges it. The gate never alters a
Snapshot.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .models import Intervention, Regime, StructuralMode
from .scoring import Snapshot

logger = logging.getLogger(__name__)

ESCALATION_STREAK = 2

REGIME_REMEDIES: Dict[Regime, Tuple[str, ...]] = {
    Regime.HARD: (
        "Switch to the contingency route",
        "Move the boundary-critical step forward",
        "Drop non-essential steps before the boundary",
    ),
    Regime.SOFT: (
        "Narrow the objective to its core deliverable",
        "Pause and restore capacity",
        "Renegotiate the quality bar",
    ),
    Regime.RESOURCE: (
        "Freeze discretionary spend",
        "Pause and rebuild the resource baseline",
        "Reallocate from lower-priority steps",
    ),
}


@dataclass(frozen=True)
class InterventionTrack:
    violation_streak: int = 0
    escalated: bool = False
    last_escalated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "violation_streak": self.violation_streak,
            "escalated": self.escalated,
            "last_escalated_at": self.last_escalated_at.isoformat() if self.last_escalated_at else None,
        }


@dataclass(frozen=True)
class Escalation:
    intervention: Intervention
    regime: Regime
    mode: StructuralMode
    requires_confirmation: bool
    remedies: Tuple[str, ...]
    selected_remedy: Optional[str]
    message: str
    raised_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intervention": self.intervention.value,
            "regime": self.regime.value,
            "mode": self.mode.value,
            "requires_confirmation": self.requires_confirmation,
            "remedies": list(self.remedies),
            "selected_remedy": self.selected_remedy,
            "message": self.message,
            "raised_at": self.raised_at.isoformat(),
        }


@dataclass(frozen=True)
class GateResult:
    track: InterventionTrack
    escalation: Optional[Escalation] = None


def build_escalation(
    intervention: Intervention,
    regime: Regime,
    mode: StructuralMode,
    now: datetime,
) -> Escalation:
    """Manual contracts must pick a remedy; automatic ones get the first pre-selected."""
    remedies = REGIME_REMEDIES[regime]
    manual = mode == StructuralMode.MANUAL
    message = f"{intervention.value} sustained for {ESCALATION_STREAK} consecutive checks."
    if manual:
        message += " Choose a remedy to proceed."
    return Escalation(
        intervention=intervention,
        regime=regime,
        mode=mode,
        requires_confirmation=manual,
        remedies=remedies,
        selected_remedy=None if manual else remedies[0],
        message=message,
        raised_at=now,
    )


def record_check(
    track: InterventionTrack,
    snapshot: Snapshot,
    mode: StructuralMode,
    regime: Regime,
    now: datetime,
) -> GateResult:
    """Fold one check into the track.

    A CONTINUE snapshot ends the violation run: streak and escalated flag are
    cleared. Any other state extends the run by one; the escalation fires on
    the check that reaches the threshold and not again within the same run.

    Args:
        track: Track before this check
        snapshot: Snapshot produced by this check
        mode: Contract structural mode (affects the escalation affordance only)
        regime: Contract regime
        now: Check time

    Returns:
        GateResult with the new track and the escalation, if one fired
    """
    if snapshot.intervention == Intervention.CONTINUE:
        return GateResult(replace(track, violation_streak=0, escalated=False))

    streak = track.violation_streak + 1
    if streak >= ESCALATION_STREAK and not track.escalated:
        escalation = build_escalation(snapshot.intervention, regime, mode, now)
        logger.info(f"Escalation raised: {snapshot.intervention.value} after {streak} checks")
        new_track = InterventionTrack(violation_streak=streak, escalated=True, last_escalated_at=now)
        return GateResult(new_track, escalation)

    return GateResult(replace(track, violation_streak=streak))


def acknowledge(track: InterventionTrack) -> InterventionTrack:
    """Clear the streak and the escalated flag; the last escalation time is kept."""
    return InterventionTrack(violation_streak=0, escalated=False, last_escalated_at=track.last_escalated_at)
