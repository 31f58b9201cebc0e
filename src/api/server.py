"""
FastAPI server for contract stability checks.

Endpoints:
- Boarding-pass decoding and document suggestions
- Stateless scoring of a contract document
- Activating contracts and running checks / acknowledgements against them

Monitors live in process memory only; restarting the server drops them.

Usage:
    uvicorn src.api.server:app --reload --port 8000
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from src.boarding.extractor import parse_boarding_pass
from src.config.settings import get_adapter_settings, get_logging_level, get_polling_intervals
from src.logging_config import configure_logging
from src.signals.base_adapter import PlannerSignal
from src.signals.decay import FetchOutcome, apply_fetch_outcome
from src.signals.poller import PollerGroup
from src.stability.contract import (
    ContractFormatError,
    ValidationError,
    contract_from_dict,
    validate_for_activation,
)
from src.stability.evidence import derive_readiness, suggest_documents
from src.stability.models import (
    CouplingState,
    DocumentEvidence,
    DocumentType,
    GeoStatus,
    Regime,
    WeatherRisk,
    WeatherStatus,
)
from src.stability.monitor import ContractMonitor
from src.stability.scoring import ScoringInput, score, snapshot_to_dict

logger = logging.getLogger(__name__)

# Active contracts and their planner pollers, keyed by contract_id
monitors: Dict[str, ContractMonitor] = {}
pollers: Dict[str, PollerGroup] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    for group in pollers.values():
        await group.stop()
    pollers.clear()


app = FastAPI(
    title="Holdfast API",
    description="Contract stability scoring and intervention gating",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Pydantic models
class BoardingPassRequest(BaseModel):
    payload: str = Field(description="Scanned barcode text or pasted boarding-pass text")
    fallback_boundary: str = Field(default="", description="YYYY-MM-DDTHH:MM used for missing date/time")


class DocumentModel(BaseModel):
    document_type: DocumentType
    title: str = ""
    source_link: str = ""
    reference_code: str = ""
    notes: str = ""


class SuggestRequest(BaseModel):
    regime: Regime
    context: str = ""
    flight_context_detected: bool = False
    documents: List[DocumentModel] = Field(default_factory=list)


class PlannerSignalModel(BaseModel):
    total_tasks: int = Field(default=0, ge=0)
    completed_tasks: int = Field(default=0, ge=0)
    overdue_tasks: int = Field(default=0, ge=0)
    due_next_24h: int = Field(default=0, ge=0)


class CouplingOverride(BaseModel):
    geospatial_status: Optional[GeoStatus] = None
    weather_status: Optional[WeatherStatus] = None
    weather_risk: Optional[WeatherRisk] = None


class EvaluateRequest(BaseModel):
    contract: Dict[str, Any]
    now: Optional[datetime] = None
    flight_context_detected: bool = False
    planner_signal: Optional[PlannerSignalModel] = None


class ActivateRequest(BaseModel):
    contract: Dict[str, Any]
    flight_context_detected: bool = False
    poll_planner: bool = Field(default=False, description="Start a background planner poller")


class CheckRequest(BaseModel):
    now: Optional[datetime] = None
    refresh_planner: bool = Field(default=False, description="Fetch the planner once before scoring")
    couplings: Optional[CouplingOverride] = None


def _aware(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return now if now.tzinfo else now.replace(tzinfo=timezone.utc)


def _parse_contract(data: Dict[str, Any]):
    try:
        return contract_from_dict(data)
    except ContractFormatError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _get_monitor(contract_id: str) -> ContractMonitor:
    monitor = monitors.get(contract_id)
    if monitor is None:
        raise HTTPException(status_code=404, detail=f"Unknown contract: {contract_id}")
    return monitor


def _apply_override(base: CouplingState, override: Optional[CouplingOverride]) -> CouplingState:
    if override is None:
        return base
    return CouplingState(
        geospatial_enabled=base.geospatial_enabled,
        geospatial_status=override.geospatial_status or base.geospatial_status,
        weather_enabled=base.weather_enabled,
        weather_status=override.weather_status or base.weather_status,
        weather_risk=override.weather_risk or base.weather_risk,
        planner_enabled=base.planner_enabled,
    )


@app.get("/health")
async def health_check():
    """Simple health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "active_contracts": len(monitors),
    }


@app.post("/boarding_pass/parse")
async def parse_pass(request: BoardingPassRequest):
    """Decode a boarding-pass payload; ambiguity comes back as notes, never an error."""
    return parse_boarding_pass(request.payload, request.fallback_boundary).to_dict()


@app.post("/documents/suggest")
async def suggest(request: SuggestRequest):
    suggestions = suggest_documents(request.regime, request.context, request.flight_context_detected)
    documents = [DocumentEvidence(**doc.model_dump()) for doc in request.documents]
    return {
        "suggestions": [s.to_dict() for s in suggestions],
        "readiness": derive_readiness(documents, suggestions).to_dict(),
    }


@app.post("/evaluate")
async def evaluate(request: EvaluateRequest):
    """Score a contract once without registering it."""
    contract = _parse_contract(request.contract)
    now = _aware(request.now)
    suggestions = suggest_documents(contract.regime, contract.context_blob(), request.flight_context_detected)
    readiness = derive_readiness(contract.documents, suggestions)

    planner = None
    if contract.couplings.planner_enabled and request.planner_signal is not None:
        signal = PlannerSignal(last_updated_at=now, **request.planner_signal.model_dump())
        planner = apply_fetch_outcome(None, FetchOutcome(at=now, signal=signal))

    snapshot = score(
        ScoringInput(
            regime=contract.regime,
            mode=contract.mode,
            boundary=contract.boundary,
            couplings=contract.couplings,
            readiness=readiness,
            planner=planner,
        ),
        now,
    )
    return {"snapshot": snapshot_to_dict(snapshot), "readiness": readiness.to_dict()}


@app.post("/contracts", status_code=201)
async def activate_contract(request: ActivateRequest):
    """Validate and register a contract so it can be checked repeatedly."""
    contract = _parse_contract(request.contract)
    if contract.contract_id in monitors:
        raise HTTPException(status_code=409, detail=f"Contract already active: {contract.contract_id}")

    try:
        validate_for_activation(contract)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail={"missing_fields": e.missing_fields, "messages": e.messages},
        )

    monitor = ContractMonitor(contract, flight_context_detected=request.flight_context_detected)
    monitors[contract.contract_id] = monitor

    if request.poll_planner and contract.couplings.planner_enabled:
        try:
            poller = monitor.planner_poller(
                interval_seconds=get_polling_intervals()["planner"],
                timeout_seconds=get_adapter_settings()["timeout_seconds"],
            )
        except ValueError as e:
            del monitors[contract.contract_id]
            raise HTTPException(status_code=422, detail=str(e))
        group = PollerGroup([poller])
        group.start()
        pollers[contract.contract_id] = group

    logger.info(f"Activated contract {contract.contract_id} ({contract.regime.value})")
    return {
        "contract": contract.to_dict(),
        "suggestions": [s.to_dict() for s in monitor.suggestions],
        "readiness": monitor.readiness.to_dict(),
        "polling": contract.contract_id in pollers,
    }


@app.post("/contracts/{contract_id}/check")
async def check_contract(contract_id: str, request: Optional[CheckRequest] = None):
    """Run one check: score, persistence gate and surface lifecycle."""
    monitor = _get_monitor(contract_id)
    request = request or CheckRequest()
    now = _aware(request.now)

    if request.refresh_planner and monitor.contract.couplings.planner_enabled:
        try:
            await asyncio.to_thread(monitor.refresh_planner, None, now)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))

    couplings = _apply_override(monitor.contract.couplings, request.couplings)
    return monitor.check(now=now, couplings=couplings).to_dict()


@app.post("/contracts/{contract_id}/acknowledge")
async def acknowledge_contract(contract_id: str):
    """Acknowledge the current escalation; the last Snapshot is unchanged."""
    monitor = _get_monitor(contract_id)
    return {"track": monitor.acknowledge().to_dict()}


@app.get("/contracts/{contract_id}")
async def get_contract(contract_id: str):
    monitor = _get_monitor(contract_id)
    last = monitor.last_result
    return {
        "contract": monitor.contract.to_dict(),
        "readiness": monitor.readiness.to_dict(),
        "track": monitor.track.to_dict(),
        "last_check": last.to_dict() if last else None,
    }


if __name__ == "__main__":
    import uvicorn

    configure_logging(get_logging_level())
    uvicorn.run(app, host="0.0.0.0", port=8000)
