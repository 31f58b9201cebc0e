"""Build the actors/resources/actions plan consumed by an external plan validator."""

import math
from typing import Any, Dict, List, Optional, Sequence

from src.signals.base_adapter import PlannerSignal

from .models import DocumentEvidence, DocumentType, Regime

DEFAULT_HORIZON_MINUTES = 24 * 60
MIN_DEADLINE_MINUTES = 90
MAX_DOCUMENT_ACTIONS = 10
PRIMARY_BUDGET_HEADROOM = 30
SUPPORT_BUDGET_HEADROOM = 20

PRIMARY = "actor_primary"
SUPPORT = "actor_support"
FOCUS_PRIMARY = "resource_focus_primary"
FOCUS_SUPPORT = "resource_focus_support"
SHARED_CHANNEL = "resource_shared_channel"

BOUNDARY_LOCK_TYPES = frozenset({DocumentType.BOARDING_PASS, DocumentType.FLIGHT_ITINERARY})

REGIME_FINAL_ACTION = {
    Regime.HARD: "action_hard_boundary",
    Regime.RESOURCE: "action_resource_margin",
    Regime.SOFT: "action_soft_objective",
}


def _positive_int(value: Optional[float], fallback: int) -> int:
    if value is None or not math.isfinite(value) or value <= 0:
        return fallback
    return max(1, math.floor(value))


def _next_time(cursor: int, duration: int) -> int:
    return cursor + _positive_int(duration, 10)


def _action(
    action_id: str,
    owner: str,
    cost: int,
    duration: int,
    start_time: int,
    dependencies: List[str],
    resource: str,
) -> Dict[str, Any]:
    return {
        "id": action_id,
        "owner_actor_id": owner,
        "cost": cost,
        "duration": duration,
        "start_time": start_time,
        "dependencies": dependencies,
        "required_resources": {resource: 1},
    }


def build_validate_plan_payload(
    regime: Regime,
    hard_boundary_minutes: Optional[float],
    planner_signal: Optional[PlannerSignal],
    documents: Sequence[DocumentEvidence],
) -> Dict[str, Any]:
    """
    Lay out a contract as a dependency chain of timed actions.

    The chain opens the contract, adds one action per linked document (first
    ten), a boundary lock after each flight document, the boundary commit, a
    load stabilisation step when the planner reports tasks and a final
    regime-specific action. Each actor's budget is its planned spend plus a
    fixed headroom; the deadline is the horizon, never below 90 minutes.

    Returns:
        {"plan": {"actors": ..., "resources": ..., "actions": ...}}
    """
    linked = [doc for doc in documents if doc.is_linked]
    horizon = _positive_int(hard_boundary_minutes, DEFAULT_HORIZON_MINUTES)
    deadline = max(MIN_DEADLINE_MINUTES, horizon)

    actions: Dict[str, Dict[str, Any]] = {}
    cursor = 0

    actions["action_contract_open"] = _action("action_contract_open", PRIMARY, 6, 15, cursor, [], FOCUS_PRIMARY)
    cursor = _next_time(cursor + 5, 15)
    actions["action_support_sync"] = _action("action_support_sync", SUPPORT, 4, 12, 5, [], FOCUS_SUPPORT)

    previous = "action_contract_open"
    for index, doc in enumerate(linked[:MAX_DOCUMENT_ACTIONS], start=1):
        action_id = f"action_doc_{index}"
        actions[action_id] = _action(
            action_id, PRIMARY, 5, 10, cursor, [previous, "action_support_sync"], SHARED_CHANNEL,
        )
        previous = action_id
        cursor = _next_time(cursor + 4, 10)

        if doc.document_type in BOUNDARY_LOCK_TYPES:
            # Later flight documents overwrite the single lock action
            actions["action_boundary_lock"] = _action(
                "action_boundary_lock", SUPPORT, 4, 8, cursor, [previous], SHARED_CHANNEL,
            )
            previous = "action_boundary_lock"
            cursor = _next_time(cursor + 3, 8)

    actions["action_boundary_commit"] = _action(
        "action_boundary_commit", PRIMARY, 6, 14, cursor, [previous, "action_support_sync"], SHARED_CHANNEL,
    )
    previous = "action_boundary_commit"
    cursor = _next_time(cursor + 6, 14)

    if planner_signal is not None and planner_signal.total_tasks > 0:
        actions["action_load_stabilization"] = _action(
            "action_load_stabilization", SUPPORT, 6, 12, cursor, [previous], FOCUS_SUPPORT,
        )
        previous = "action_load_stabilization"
        cursor = _next_time(cursor + 2, 12)

    final_id = REGIME_FINAL_ACTION[regime]
    actions[final_id] = _action(final_id, PRIMARY, 8, 16, cursor, [previous], FOCUS_PRIMARY)

    spend = {PRIMARY: 0, SUPPORT: 0}
    for action in actions.values():
        spend[action["owner_actor_id"]] += action["cost"]

    actors = {
        PRIMARY: {
            "id": PRIMARY,
            "budget_total": spend[PRIMARY] + PRIMARY_BUDGET_HEADROOM,
            "budget_remaining": PRIMARY_BUDGET_HEADROOM,
            "deadline": deadline,
        },
        SUPPORT: {
            "id": SUPPORT,
            "budget_total": spend[SUPPORT] + SUPPORT_BUDGET_HEADROOM,
            "budget_remaining": SUPPORT_BUDGET_HEADROOM,
            "deadline": deadline,
        },
    }
    resources = {
        resource_id: {"id": resource_id, "quantity_total": 1, "quantity_allocated": 0}
        for resource_id in (FOCUS_PRIMARY, FOCUS_SUPPORT, SHARED_CHANNEL)
    }

    return {"plan": {"actors": actors, "resources": resources, "actions": actions}}
