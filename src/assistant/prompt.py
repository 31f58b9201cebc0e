"""Compose the free-text prompt sent to the assistant collaborator."""

from typing import List, Optional

from src.stability.contract import Contract
from src.stability.scoring import Snapshot

MAX_PROMPT_STEPS = 10

NEUTRALITY_INSTRUCTIONS = (
    "Respond with one neutral clarification question or one optional non-directive suggestion.",
    "Do not use urgency language and do not issue commands.",
)


def _format_steps(contract: Contract) -> str:
    steps = [f"{i}:{title}" for i, title in enumerate(contract.step_titles[:MAX_PROMPT_STEPS], start=1)]
    return "; ".join(steps) or "none"


def _format_snapshot(snapshot: Optional[Snapshot]) -> str:
    if snapshot is None:
        return "snapshot=n/a"
    return (
        f"overall_index={snapshot.overall_index:.1f}, stability={snapshot.stability.value}, "
        f"intervention={snapshot.intervention.value}, boundary_score={snapshot.boundary_score:.1f}, "
        f"capacity_score={snapshot.capacity_score:.1f}, uncertainty_score={snapshot.uncertainty_score:.1f}, "
        f"remaining_margin={snapshot.remaining_margin}, "
        f"evidence={snapshot.evidence_label} ({snapshot.evidence_coverage:.2f})"
    )


def _format_couplings(snapshot: Optional[Snapshot]) -> str:
    if snapshot is None:
        return "couplings=n/a"
    statuses = ", ".join(f"{kind}={status}" for kind, status in snapshot.coupling_statuses)
    if snapshot.planner_weight is not None:
        statuses += f", planner_weight={snapshot.planner_weight:.2f} ({snapshot.planner_health})"
    return f"couplings: {statuses}"


def build_assistant_prompt(user_prompt: str, contract: Contract, snapshot: Optional[Snapshot]) -> str:
    """
    Build the single prompt string for the collaborator.

    Lines, in order: the user's request, plan identifiers, snapshot fields,
    coupling statuses and the neutrality instructions.
    """
    boundary = contract.boundary.isoformat() if contract.boundary else "(none)"
    lines: List[str] = [
        f"User request: {user_prompt.strip()}",
        "Plan context:",
        f"contract_id={contract.contract_id}",
        f"goal_name={contract.name or '(unset)'}",
        f"regime={contract.regime.value}, mode={contract.mode.value}",
        f"boundary={boundary}",
        f"steps={_format_steps(contract)}",
        _format_snapshot(snapshot),
        _format_couplings(snapshot),
    ]
    lines.extend(NEUTRALITY_INSTRUCTIONS)
    return "\n".join(lines)
