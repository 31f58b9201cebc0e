"""Boarding-pass payload extraction.

Decodes one scanned or pasted payload into the calendar facts a contract
boundary needs. Extraction never raises for malformed input: fields that
cannot be recovered are None and the reason is recorded in ``notes``.

Structured payloads follow the fixed-width layout printed on boarding-pass
barcodes (offsets below). The layout is best effort: anything it rejects goes
through the generic scanner instead.
"""

import calendar
import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

MIN_STRUCTURED_LENGTH = 60
ARRIVE_BY_LEAD_MINUTES = 120
NEAREST_YEAR_WINDOW_DAYS = 183

# (start, end) offsets into the normalised payload
LEG_COUNT_SLICE = (1, 2)
BOOKING_REFERENCE_SLICE = (23, 30)
ORIGIN_SLICE = (30, 33)
DESTINATION_SLICE = (33, 36)
CARRIER_SLICE = (36, 39)
FLIGHT_DIGITS_SLICE = (39, 44)
DAY_OF_YEAR_SLICE = (44, 47)

AIRPORT_CODE = re.compile(r"^[A-Z]{3}$")
CARRIER_CODE = re.compile(r"^(?=[A-Z0-9]*[A-Z])[A-Z0-9]{2,3}$")
FLIGHT_DIGITS = re.compile(r"^(\d{1,4})([A-Z]?)$")

TIME_LABEL_PATTERN = re.compile(
    r"(?<![A-Z])(?:BOARDING|BOARD|BRD|BT|DEP)\s*[:=\-]?\s*([01]\d|2[0-3]):?([0-5]\d)(?!\d)"
)
BARE_TIME_PATTERN = re.compile(r"(?<![\d:])([01]?\d|2[0-3]):([0-5]\d)(?![\d:])")
ISO_DATE_PATTERN = re.compile(r"(?<!\d)(\d{4})[-/](\d{1,2})[-/](\d{1,2})(?!\d)")
SLASH_DATE_PATTERN = re.compile(r"(?<!\d)(\d{1,2})/(\d{1,2})/(\d{4})(?!\d)")
FLIGHT_PATTERN = re.compile(r"(?<![A-Z0-9])([A-Z]{2,3}|[A-Z]\d|\d[A-Z])\s?(\d{1,4})(?!\d)")
BOOKING_PATTERN = re.compile(
    r"(?<![A-Z])(?:BOOKING\s+REF(?:ERENCE)?|RECORD\s+LOCATOR|CONFIRMATION|BOOKING|LOCATOR|CONF|PNR|REF)"
    r"\s*[:#\-]?\s*([A-Z0-9]{5,8})(?![A-Z0-9])"
)
AIRPORT_PATTERN = re.compile(r"(?<![A-Z0-9])([A-Z]{3})(?![A-Z0-9])")
FALLBACK_PATTERN = re.compile(r"^\s*(\d{4}-\d{2}-\d{2})(?:[T ](\d{2}:\d{2})(?::\d{2})?)?\s*$")

# Three-letter words that show up next to airport codes but are not airports
AIRPORT_STOPWORDS = {
    "REF", "PNR", "DEP", "BRD", "ARR", "SEQ", "THE", "AND", "FOR", "SEAT",
    "GATE", "ETA", "ETD", "UTC", "GMT", "FLT", "ZONE", "TKT", "NUM", "DOC",
}
FLIGHT_LABEL_BLOCKLIST = ("GATE", "SEAT", "ZONE", "ROW")


@dataclass
class BoundaryExtraction:
    """Calendar facts recovered from one boarding-pass payload."""
    source_format: str  # "structured" or "generic"
    flight_number: Optional[str] = None
    departure_airport: Optional[str] = None
    arrival_airport: Optional[str] = None
    booking_reference: Optional[str] = None
    leg_count: Optional[int] = None
    day_of_year: Optional[int] = None
    boundary_date: Optional[str] = None  # YYYY-MM-DD as found in the payload
    boundary_time: Optional[str] = None  # HH:MM as found in the payload
    boundary_local: Optional[str] = None  # YYYY-MM-DDTHH:MM after fallback fill
    arrive_by_local: Optional[str] = None
    notes: List[str] = field(default_factory=list)

    @property
    def flight_context_detected(self) -> bool:
        return bool(self.flight_number or self.departure_airport or self.arrival_airport)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_boarding_pass(
    raw_payload: str,
    fallback_boundary: str,
    now: Optional[datetime] = None,
) -> BoundaryExtraction:
    """
    Decode a boarding-pass payload into boundary facts.

    Args:
        raw_payload: Scanned barcode text or pasted itinerary text
        fallback_boundary: Current contract boundary ("YYYY-MM-DDTHH:MM"),
            used to fill whichever half of the boundary the payload lacks
        now: Reference time for day-of-year resolution (default: local now)

    Returns:
        BoundaryExtraction; never raises for malformed payloads
    """
    now = now or datetime.now()
    payload = (raw_payload or "").strip().upper()

    result, rejection = _decode_structured(payload, now.date())
    if result is None:
        result = _decode_generic(payload)
        if rejection:
            result.notes.insert(0, f"Structured layout not used: {rejection}; generic scan applied.")

    label_time = _find_labelled_time(payload)
    if label_time is not None:
        result.boundary_time = label_time
    elif result.boundary_time is None:
        result.notes.append("Boarding/departure time not found in payload.")

    if result.boundary_date is None and not any("date" in n.lower() for n in result.notes):
        result.notes.append("Travel date not found in payload.")

    boundary = _combine_boundary(result, fallback_boundary, now)
    if boundary is not None:
        result.boundary_local = boundary.strftime("%Y-%m-%dT%H:%M")
        arrive_by = boundary - timedelta(minutes=ARRIVE_BY_LEAD_MINUTES)
        result.arrive_by_local = arrive_by.strftime("%Y-%m-%dT%H:%M")

    logger.debug(
        f"Boarding pass decoded as {result.source_format}: flight={result.flight_number} "
        f"boundary={result.boundary_local} notes={len(result.notes)}"
    )
    return result


def resolve_day_of_year(day_of_year: int, today: date) -> Tuple[Optional[date], List[str]]:
    """
    Map a day-of-year to the calendar date nearest ``today``.

    Candidates are this year, next year and previous year, in that order; the
    first within 183 days of today wins. Day 366 only exists in leap years.

    Returns:
        (date or None, notes)
    """
    if day_of_year < 1 or day_of_year > 366:
        return None, [f"Day-of-year {day_of_year} is outside 1-366; date not derived."]

    candidates = []
    for year in (today.year, today.year + 1, today.year - 1):
        if day_of_year == 366 and not calendar.isleap(year):
            continue
        candidates.append(date(year, 1, 1) + timedelta(days=day_of_year - 1))

    if not candidates:
        return None, [f"Day-of-year {day_of_year} does not exist in nearby years; date not derived."]

    for candidate in candidates:
        if abs((candidate - today).days) <= NEAREST_YEAR_WINDOW_DAYS:
            return candidate, []

    closest = min(candidates, key=lambda d: abs((d - today).days))
    return closest, [f"Day-of-year {day_of_year} is not within {NEAREST_YEAR_WINDOW_DAYS} days of today; nearest year assumed."]


def _slice(payload: str, bounds: Tuple[int, int]) -> str:
    start, end = bounds
    return payload[start:end].strip()


def _decode_structured(payload: str, today: date) -> Tuple[Optional[BoundaryExtraction], Optional[str]]:
    """Returns (extraction, None) on success or (None, rejection reason)."""
    if len(payload) < MIN_STRUCTURED_LENGTH:
        return None, f"payload shorter than {MIN_STRUCTURED_LENGTH} characters"

    leg_field = _slice(payload, LEG_COUNT_SLICE)
    if not leg_field.isdigit() or int(leg_field) < 1:
        return None, f"leg count '{leg_field}' is not a positive integer"

    origin = _slice(payload, ORIGIN_SLICE)
    destination = _slice(payload, DESTINATION_SLICE)
    if not AIRPORT_CODE.match(origin) or not AIRPORT_CODE.match(destination):
        return None, "origin/destination codes not extractable"

    carrier = _slice(payload, CARRIER_SLICE)
    digits_match = FLIGHT_DIGITS.match(_slice(payload, FLIGHT_DIGITS_SLICE))
    if not CARRIER_CODE.match(carrier) or digits_match is None:
        return None, "carrier/flight number not extractable"

    digits, suffix = digits_match.groups()
    result = BoundaryExtraction(
        source_format="structured",
        flight_number=f"{carrier}{digits.lstrip('0') or '0'}{suffix}",
        departure_airport=origin,
        arrival_airport=destination,
        leg_count=int(leg_field),
    )

    if result.leg_count > 1:
        result.notes.append(f"Payload encodes {result.leg_count} legs; only the first leg was read.")

    reference = _slice(payload, BOOKING_REFERENCE_SLICE)
    if re.match(r"^[A-Z0-9]{5,7}$", reference):
        result.booking_reference = reference
    else:
        result.notes.append("Booking reference not found at its structured position.")

    doy_field = _slice(payload, DAY_OF_YEAR_SLICE)
    if doy_field.isdigit():
        result.day_of_year = int(doy_field)
        resolved, doy_notes = resolve_day_of_year(result.day_of_year, today)
        result.notes.extend(doy_notes)
        if resolved is not None:
            result.boundary_date = resolved.isoformat()
    else:
        result.notes.append(f"Day-of-year field '{doy_field}' is not numeric; date not derived.")

    return result, None


def _blank(text: str, start: int, end: int) -> str:
    return text[:start] + " " * (end - start) + text[end:]


def _without_dates_and_times(text: str) -> str:
    for pattern in (ISO_DATE_PATTERN, SLASH_DATE_PATTERN, TIME_LABEL_PATTERN, BARE_TIME_PATTERN):
        for match in pattern.finditer(text):
            text = _blank(text, match.start(), match.end())
    return text


def _decode_generic(payload: str) -> BoundaryExtraction:
    result = BoundaryExtraction(source_format="generic")
    remaining = payload

    booking = BOOKING_PATTERN.search(remaining)
    if booking:
        result.booking_reference = booking.group(1)
        # Blank the span so the reference is not re-read as a flight or airport
        remaining = _blank(remaining, booking.start(), booking.end())
    else:
        result.notes.append("Booking reference not found.")

    found_date = _find_date(remaining)
    if found_date is not None:
        result.boundary_date = found_date.isoformat()

    bare_time = BARE_TIME_PATTERN.search(remaining)
    if bare_time:
        result.boundary_time = f"{int(bare_time.group(1)):02d}:{bare_time.group(2)}"

    # An airport code next to a date ("LAX 2025") also fits the flight shape
    flight_text = _without_dates_and_times(remaining)
    for match in FLIGHT_PATTERN.finditer(flight_text):
        preceding = flight_text[max(0, match.start() - 6):match.start()].strip()
        if preceding.endswith(FLIGHT_LABEL_BLOCKLIST):
            continue
        digits = match.group(2).lstrip("0") or "0"
        result.flight_number = f"{match.group(1)}{digits}"
        break
    else:
        result.notes.append("Flight number not found.")

    airports = [
        token for token in AIRPORT_PATTERN.findall(remaining)
        if token not in AIRPORT_STOPWORDS
    ]
    if len(airports) >= 1:
        result.departure_airport = airports[0]
    if len(airports) >= 2:
        result.arrival_airport = airports[1]
    if len(airports) < 2:
        result.notes.append("Origin/destination airport codes not both found.")

    return result


def _find_date(text: str) -> Optional[date]:
    for match in ISO_DATE_PATTERN.finditer(text):
        year, month, day = (int(g) for g in match.groups())
        parsed = _safe_date(year, month, day)
        if parsed is not None:
            return parsed

    for match in SLASH_DATE_PATTERN.finditer(text):
        first, second, year = (int(g) for g in match.groups())
        # Month-first unless the first number cannot be a month
        month, day = (second, first) if first > 12 else (first, second)
        parsed = _safe_date(year, month, day)
        if parsed is not None:
            return parsed

    return None


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _find_labelled_time(payload: str) -> Optional[str]:
    match = TIME_LABEL_PATTERN.search(payload)
    if match is None:
        return None
    return f"{match.group(1)}:{match.group(2)}"


def _parse_fallback(fallback_boundary: str) -> Optional[datetime]:
    match = FALLBACK_PATTERN.match(fallback_boundary or "")
    if match is None:
        return None
    date_part, time_part = match.groups()
    try:
        return datetime.strptime(f"{date_part} {time_part or '00:00'}", "%Y-%m-%d %H:%M")
    except ValueError:
        return None


def _combine_boundary(
    result: BoundaryExtraction,
    fallback_boundary: str,
    now: datetime,
) -> Optional[datetime]:
    """Join the found date and time, filling a missing half from the fallback."""
    if result.boundary_date is None and result.boundary_time is None:
        result.notes.append("Neither date nor time found; boundary left unchanged.")
        return None

    fallback = _parse_fallback(fallback_boundary)
    if fallback is None and (result.boundary_date is None or result.boundary_time is None):
        result.notes.append(f"Fallback boundary '{fallback_boundary}' is not usable; defaults applied.")

    if result.boundary_date is not None:
        boundary_day = date.fromisoformat(result.boundary_date)
    elif fallback is not None:
        boundary_day = fallback.date()
        result.notes.append("Date taken from the existing boundary.")
    else:
        boundary_day = now.date()
        result.notes.append("Date defaulted to today.")

    if result.boundary_time is not None:
        hours, minutes = (int(part) for part in result.boundary_time.split(":"))
        boundary_clock = time(hours, minutes)
    elif fallback is not None:
        boundary_clock = fallback.time()
        result.notes.append("Time taken from the existing boundary.")
    else:
        boundary_clock = time(0, 0)
        result.notes.append("Time defaulted to 00:00.")

    return datetime.combine(boundary_day, boundary_clock)
