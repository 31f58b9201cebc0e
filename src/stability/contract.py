"""
Contract configuration: model, document loading and activation checks.

A contract document (YAML or JSON) looks like:

    contract_id: trip-042
    name: Lisbon offsite
    regime: hard
    mode: automatic
    boundary: "2026-03-10T14:30"
    timezone: Europe/Lisbon
    context: Flight to Lisbon for the partner summit
    steps: [Pack, Check in online]
    documents:
      - {document_type: boarding_pass, reference_code: XYZ1234}
    couplings:
      geospatial: {enabled: true, status: locked_moving}
      weather: {enabled: true, status: ready, risk: low}
      planner:
        enabled: true
        provider: {provider: ics_feed, url: "https://example.com/cal.ics"}

The regime is fixed for the life of a contract; picking another regime means
creating a new contract.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import jsonschema
import yaml

from .models import (
    CouplingState,
    DocumentEvidence,
    DocumentType,
    GeoStatus,
    Regime,
    StructuralMode,
    WeatherRisk,
    WeatherStatus,
)


class ValidationError(Exception):
    """Raised when a contract cannot be activated because fields are missing or invalid."""
    def __init__(self, missing_fields: List[str], messages: List[str]):
        self.missing_fields = missing_fields
        self.messages = messages
        super().__init__("; ".join(messages))


class ContractFormatError(Exception):
    """Raised when a contract document does not match the contract schema."""
    pass


def _enum_values(enum_cls) -> List[str]:
    return [member.value for member in enum_cls]


CONTRACT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["contract_id", "regime"],
    "properties": {
        "contract_id": {"type": "string", "minLength": 1},
        "name": {"type": "string"},
        "domain": {"type": "string"},
        "regime": {"enum": _enum_values(Regime)},
        "mode": {"enum": _enum_values(StructuralMode)},
        "boundary": {"type": ["string", "null"]},
        "timezone": {"type": "string"},
        "context": {"type": "string"},
        "steps": {"type": "array", "items": {"type": "string"}},
        "notes": {"type": "string"},
        "documents": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["document_type"],
                "properties": {
                    "document_type": {"enum": _enum_values(DocumentType)},
                    "title": {"type": "string"},
                    "source_link": {"type": "string"},
                    "reference_code": {"type": "string"},
                    "notes": {"type": "string"},
                },
            },
        },
        "couplings": {
            "type": "object",
            "properties": {
                "geospatial": {
                    "type": "object",
                    "properties": {
                        "enabled": {"type": "boolean"},
                        "status": {"enum": _enum_values(GeoStatus)},
                    },
                },
                "weather": {
                    "type": "object",
                    "properties": {
                        "enabled": {"type": "boolean"},
                        "status": {"enum": _enum_values(WeatherStatus)},
                        "risk": {"enum": _enum_values(WeatherRisk) + [None]},
                    },
                },
                "planner": {
                    "type": "object",
                    "properties": {
                        "enabled": {"type": "boolean"},
                        "provider": {
                            "type": ["object", "null"],
                            "required": ["provider"],
                            "properties": {"provider": {"type": "string"}},
                        },
                    },
                },
            },
        },
    },
}


@dataclass(frozen=True)
class Contract:
    contract_id: str
    regime: Regime
    name: str = ""
    domain: str = ""
    mode: StructuralMode = StructuralMode.AUTOMATIC
    boundary: Optional[datetime] = None  # timezone-aware
    context_text: str = ""
    step_titles: Tuple[str, ...] = ()
    notes: str = ""
    documents: Tuple[DocumentEvidence, ...] = ()
    couplings: CouplingState = field(default_factory=CouplingState)
    planner_provider: Optional[Dict[str, Any]] = None

    def context_blob(self) -> str:
        """All free text the evidence rules read, joined into one string."""
        parts = [self.domain, self.name, self.context_text, *self.step_titles, self.notes]
        parts.extend(doc.title for doc in self.documents)
        return " ".join(part for part in parts if part)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contract_id": self.contract_id,
            "name": self.name,
            "domain": self.domain,
            "regime": self.regime.value,
            "mode": self.mode.value,
            "boundary": self.boundary.isoformat() if self.boundary else None,
            "context": self.context_text,
            "steps": list(self.step_titles),
            "notes": self.notes,
            "documents": [doc.to_dict() for doc in self.documents],
            "couplings": self.couplings.to_dict(),
            "planner_provider": self.planner_provider,
        }


def validate_for_activation(contract: Contract, now: Optional[datetime] = None) -> None:
    """
    Check a contract is complete enough to activate.

    Only activation is blocked; scoring an incomplete contract is allowed.

    Raises:
        ValidationError: listing every failing field with a message
    """
    now = now or datetime.now(timezone.utc)
    missing: List[str] = []
    messages: List[str] = []

    if not contract.name.strip():
        missing.append("name")
        messages.append("Contract name is required.")

    if contract.regime == Regime.HARD:
        if contract.boundary is None:
            missing.append("boundary")
            messages.append("A hard contract needs a boundary timestamp.")
        elif contract.boundary <= now:
            missing.append("boundary")
            messages.append("Boundary must be in the future.")

    if contract.couplings.planner_enabled and not contract.planner_provider:
        missing.append("planner_provider")
        messages.append("Planner coupling is enabled but no provider is configured.")

    if missing:
        raise ValidationError(missing, messages)


def parse_boundary(value: Optional[str], tz_name: Optional[str] = None) -> Optional[datetime]:
    """
    Parse an ISO boundary; naive values are read in ``tz_name`` (default UTC).

    Raises:
        ContractFormatError: If the value is not ISO 8601 or the zone is unknown
    """
    if value is None or not str(value).strip():
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise ContractFormatError(f"boundary '{value}' is not an ISO 8601 timestamp") from e

    if parsed.tzinfo is not None:
        return parsed
    try:
        zone = ZoneInfo(tz_name) if tz_name else timezone.utc
    except ZoneInfoNotFoundError as e:
        raise ContractFormatError(f"unknown timezone '{tz_name}'") from e
    return parsed.replace(tzinfo=zone)


def contract_from_dict(data: Dict[str, Any]) -> Contract:
    """
    Build a Contract from a parsed document.

    Raises:
        ContractFormatError: If the document fails schema validation
    """
    try:
        jsonschema.validate(data, CONTRACT_SCHEMA)
    except jsonschema.ValidationError as e:
        path = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ContractFormatError(f"Schema validation failed at {path}: {e.message}") from e

    couplings = data.get("couplings") or {}
    geo = couplings.get("geospatial") or {}
    weather = couplings.get("weather") or {}
    planner = couplings.get("planner") or {}

    coupling_state = CouplingState(
        geospatial_enabled=bool(geo.get("enabled", False)),
        geospatial_status=GeoStatus(geo.get("status", GeoStatus.INACTIVE.value)),
        weather_enabled=bool(weather.get("enabled", False)),
        weather_status=WeatherStatus(weather.get("status", WeatherStatus.INACTIVE.value)),
        weather_risk=WeatherRisk(weather["risk"]) if weather.get("risk") else None,
        planner_enabled=bool(planner.get("enabled", False)),
    )

    documents = tuple(
        DocumentEvidence(
            document_type=DocumentType(doc["document_type"]),
            title=doc.get("title", ""),
            source_link=doc.get("source_link", ""),
            reference_code=doc.get("reference_code", ""),
            notes=doc.get("notes", ""),
        )
        for doc in data.get("documents", [])
    )

    return Contract(
        contract_id=data["contract_id"],
        regime=Regime(data["regime"]),
        name=data.get("name", ""),
        domain=data.get("domain", ""),
        mode=StructuralMode(data.get("mode", StructuralMode.AUTOMATIC.value)),
        boundary=parse_boundary(data.get("boundary"), data.get("timezone")),
        context_text=data.get("context", ""),
        step_titles=tuple(data.get("steps", [])),
        notes=data.get("notes", ""),
        documents=documents,
        couplings=coupling_state,
        planner_provider=planner.get("provider"),
    )


def load_contract(path: Path) -> Contract:
    """
    Load a contract from a YAML or JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ContractFormatError: If the document is not a mapping or fails validation
    """
    if not path.exists():
        raise FileNotFoundError(f"Contract file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ContractFormatError(f"Could not parse {path}: {e}") from e

    if not isinstance(data, dict):
        raise ContractFormatError(f"{path} does not contain a contract mapping")

    return contract_from_dict(data)
