"""
Command-line interface for Holdfast.

Provides subcommands for decoding boarding passes, suggesting evidence,
scoring contracts, running gated checks, building assistant prompts and
checking token configuration.
"""

import argparse
import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from src.assistant.client import AssistantClient, AssistantError
from src.assistant.prompt import build_assistant_prompt
from src.boarding.extractor import parse_boarding_pass
from src.config import secrets
from src.config.settings import get_logging_level, load_settings
from src.logging_config import configure_logging
from src.stability.contract import (
    Contract,
    ContractFormatError,
    ValidationError,
    load_contract,
    validate_for_activation,
)
from src.stability.evidence import derive_readiness, suggest_documents
from src.stability.models import Regime
from src.stability.monitor import ContractMonitor
from src.stability.plan_payload import build_validate_plan_payload
from src.stability.scoring import ScoringInput, score, snapshot_to_dict


def _parse_now(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _load(path: str) -> Optional[Contract]:
    try:
        return load_contract(Path(path))
    except (FileNotFoundError, ContractFormatError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return None


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


def cmd_parse_pass(args: argparse.Namespace) -> int:
    """Decode a boarding-pass payload."""
    now = _parse_now(args.now) if args.now else None
    result = parse_boarding_pass(args.payload, args.fallback or "", now=now)
    _print_json(result.to_dict())
    return 0


def cmd_suggest_docs(args: argparse.Namespace) -> int:
    """Suggest supporting documents for a regime and context."""
    suggestions = suggest_documents(Regime(args.regime), args.context, args.flight)
    if not suggestions:
        print("No documents suggested.")
        return 0
    for s in suggestions:
        marker = "required" if s.required else "optional"
        print(f"  {s.label} [{marker}] - {s.reason}")
    return 0


def cmd_score(args: argparse.Namespace) -> int:
    """Score a contract file once."""
    contract = _load(args.contract)
    if contract is None:
        return 1

    now = _parse_now(args.now)
    readiness = derive_readiness(
        contract.documents,
        suggest_documents(contract.regime, contract.context_blob(), args.flight),
    )
    snapshot = score(
        ScoringInput(
            regime=contract.regime,
            mode=contract.mode,
            boundary=contract.boundary,
            couplings=contract.couplings,
            readiness=readiness,
        ),
        now,
    )
    _print_json({"snapshot": snapshot_to_dict(snapshot), "readiness": readiness.to_dict()})
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Run repeated gated checks against an activated contract."""
    contract = _load(args.contract)
    if contract is None:
        return 1

    now = _parse_now(args.now)
    try:
        validate_for_activation(contract, now)
    except ValidationError as e:
        print("Contract cannot be activated:", file=sys.stderr)
        for message in e.messages:
            print(f"  - {message}", file=sys.stderr)
        return 1

    monitor = ContractMonitor(contract, now=now, settings=args.settings)
    step = timedelta(minutes=args.interval_minutes)

    for i in range(args.count):
        if args.live and contract.couplings.planner_enabled:
            try:
                monitor.refresh_planner(now=now)
            except ValueError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1

        result = monitor.check(now=now)
        snap = result.snapshot
        line = (
            f"[{i + 1}] {now.isoformat()} index={snap.overall_index:.1f} "
            f"{snap.stability.value} {snap.intervention.value} "
            f"streak={result.track.violation_streak} margin={snap.remaining_margin}"
        )
        print(line)
        if args.verbose:
            for event in result.surface_events:
                print(f"    {event.event_type.value}: {event.state.value} ({event.severity.value})")
        if result.escalation:
            print(f"    ESCALATION: {result.escalation.message}")
            for remedy in result.escalation.remedies:
                print(f"      - {remedy}")
            if args.auto_ack:
                monitor.acknowledge()
        now = now + step

    return 0


def cmd_prompt(args: argparse.Namespace) -> int:
    """Build (and optionally send) the assistant prompt for a contract."""
    contract = _load(args.contract)
    if contract is None:
        return 1

    monitor = ContractMonitor(contract, settings=args.settings)
    result = monitor.check(now=_parse_now(args.now))
    prompt = build_assistant_prompt(args.message, contract, result.snapshot)

    if not args.send:
        print(prompt)
        return 0

    try:
        client = AssistantClient(base_url=args.base_url, settings=args.settings)
        reply = client.ask(prompt, mission_id=args.mission_id)
    except AssistantError as e:
        print(f"Assistant unavailable: {e}", file=sys.stderr)
        return 1

    print(reply.reply)
    print(f"({reply.meta})")
    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    """Emit the plan-validation payload for a contract."""
    contract = _load(args.contract)
    if contract is None:
        return 1

    now = _parse_now(args.now)
    minutes = None
    if contract.boundary is not None:
        minutes = (contract.boundary - now).total_seconds() / 60.0
    _print_json(build_validate_plan_payload(contract.regime, minutes, None, contract.documents))
    return 0


def cmd_keys(args: argparse.Namespace) -> int:
    """Check planner token configuration."""
    return secrets._cli_check()


def main(argv: Optional[list] = None) -> int:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="holdfast",
        description="Holdfast - contract stability scoring and intervention gating"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to holdfast.yaml (default: config/holdfast.yaml)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    pass_parser = subparsers.add_parser("parse-pass", help="Decode a boarding-pass payload")
    pass_parser.add_argument("payload", help="Scanned barcode text or pasted pass text")
    pass_parser.add_argument("--fallback", help="Fallback boundary YYYY-MM-DDTHH:MM")
    pass_parser.add_argument("--now", help="Reference time (ISO 8601)")
    pass_parser.set_defaults(func=cmd_parse_pass)

    suggest_parser = subparsers.add_parser("suggest-docs", help="Suggest supporting documents")
    suggest_parser.add_argument("--regime", choices=[r.value for r in Regime], required=True)
    suggest_parser.add_argument("--context", default="", help="Free-text contract description")
    suggest_parser.add_argument("--flight", action="store_true", help="A boarding pass was decoded")
    suggest_parser.set_defaults(func=cmd_suggest_docs)

    score_parser = subparsers.add_parser("score", help="Score a contract file once")
    score_parser.add_argument("contract", help="Contract YAML/JSON file")
    score_parser.add_argument("--now", help="Evaluation time (ISO 8601)")
    score_parser.add_argument("--flight", action="store_true", help="A boarding pass was decoded")
    score_parser.set_defaults(func=cmd_score)

    check_parser = subparsers.add_parser("check", help="Run gated checks against a contract")
    check_parser.add_argument("contract", help="Contract YAML/JSON file")
    check_parser.add_argument("--count", type=int, default=1, help="Number of checks")
    check_parser.add_argument("--interval-minutes", type=float, default=5.0, help="Time between checks")
    check_parser.add_argument("--now", help="Time of the first check (ISO 8601)")
    check_parser.add_argument("--live", action="store_true", help="Fetch the planner before each check")
    check_parser.add_argument("--auto-ack", action="store_true", help="Acknowledge escalations immediately")
    check_parser.set_defaults(func=cmd_check)

    prompt_parser = subparsers.add_parser("prompt", help="Build or send the assistant prompt")
    prompt_parser.add_argument("contract", help="Contract YAML/JSON file")
    prompt_parser.add_argument("message", help="User request")
    prompt_parser.add_argument("--now", help="Evaluation time (ISO 8601)")
    prompt_parser.add_argument("--send", action="store_true", help="Send to the assistant")
    prompt_parser.add_argument("--base-url", help="Assistant base URL (overrides config)")
    prompt_parser.add_argument("--mission-id", help="Mission identifier known to the assistant")
    prompt_parser.set_defaults(func=cmd_prompt)

    plan_parser = subparsers.add_parser("plan", help="Emit the plan-validation payload")
    plan_parser.add_argument("contract", help="Contract YAML/JSON file")
    plan_parser.add_argument("--now", help="Reference time (ISO 8601)")
    plan_parser.set_defaults(func=cmd_plan)

    keys_parser = subparsers.add_parser("keys", help="Check token configuration")
    keys_parser.set_defaults(func=cmd_keys)

    args = parser.parse_args(argv)

    args.settings = load_settings(args.config)
    configure_logging("DEBUG" if args.verbose else get_logging_level(args.settings))

    if not args.command:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
