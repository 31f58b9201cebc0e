"""Shared enumerations and value records for contracts and scoring."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Regime(str, Enum):
    HARD = "hard"          # fixed deadline
    SOFT = "soft"          # quality / objective bound
    RESOURCE = "resource"  # budget / supply bound


class StructuralMode(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class GeoStatus(str, Enum):
    INACTIVE = "inactive"
    PENDING = "pending"  # permission prompt outstanding
    LOCKED_MOVING = "locked_moving"
    LOCKED_STATIONARY = "locked_stationary"
    DENIED = "denied"
    ERROR = "error"
    UNSUPPORTED = "unsupported"


class WeatherStatus(str, Enum):
    INACTIVE = "inactive"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class WeatherRisk(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class Stability(str, Enum):
    STABLE = "stable"
    STRAINED = "strained"
    CRITICAL = "critical"


class Intervention(str, Enum):
    CONTINUE = "CONTINUE"
    DEVIATE = "DEVIATE"
    PLAN_B = "PLAN B"
    PAUSE = "PAUSE"


class DocumentType(str, Enum):
    FLIGHT_ITINERARY = "flight_itinerary"
    BOARDING_PASS = "boarding_pass"
    TRANSPORT_BOOKING = "transport_booking"
    EVENT_TICKET = "event_ticket"
    HOTEL_BOOKING = "hotel_booking"
    CALENDAR_INVITE = "calendar_invite"
    MEETING_CONFIRMATION = "meeting_confirmation"
    VISA_OR_ID = "visa_or_id"
    RESOURCE_BASELINE = "resource_baseline"
    BOUNDARY_COMMITMENT = "boundary_commitment"
    OTHER = "other"


@dataclass(frozen=True)
class DocumentEvidence:
    document_type: DocumentType
    title: str = ""
    source_link: str = ""
    reference_code: str = ""
    notes: str = ""

    @property
    def is_linked(self) -> bool:
        return any(value.strip() for value in (self.title, self.source_link, self.reference_code, self.notes))

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["document_type"] = self.document_type.value
        return d


@dataclass(frozen=True)
class CouplingState:
    """Enable flags and adapter statuses for the optional external signals.

    Planner status is not held here; it comes from the planner reading.
    """
    geospatial_enabled: bool = False
    geospatial_status: GeoStatus = GeoStatus.INACTIVE
    weather_enabled: bool = False
    weather_status: WeatherStatus = WeatherStatus.INACTIVE
    weather_risk: Optional[WeatherRisk] = None
    planner_enabled: bool = False

    @property
    def active_count(self) -> int:
        return sum((self.geospatial_enabled, self.weather_enabled, self.planner_enabled))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "geospatial": {"enabled": self.geospatial_enabled, "status": self.geospatial_status.value},
            "weather": {
                "enabled": self.weather_enabled,
                "status": self.weather_status.value,
                "risk": self.weather_risk.value if self.weather_risk else None,
            },
            "planner": {"enabled": self.planner_enabled},
        }
