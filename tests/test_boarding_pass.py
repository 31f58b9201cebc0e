"""Tests for boarding-pass extraction."""

from datetime import date, datetime

import pytest

from src.boarding.extractor import parse_boarding_pass, resolve_day_of_year


def structured_payload(day_of_year: str = "045", tail: str = "Y012A0001 100 BRD0730") -> str:
    return (
        "M1"
        + "DOE/JANE".ljust(20)
        + "E"
        + "ABC123 "
        + "JFK"
        + "LAX"
        + "AB "
        + "0123 "
        + day_of_year
        + tail
    )


NOW = datetime(2026, 2, 1, 9, 0)


class TestStructuredDecode:
    """Fixed-width barcode layout."""

    def test_decodes_flight_airports_and_boundary(self):
        result = parse_boarding_pass(structured_payload(), "", now=NOW)
        assert result.source_format == "structured"
        assert result.flight_number == "AB123"
        assert result.departure_airport == "JFK"
        assert result.arrival_airport == "LAX"
        assert result.booking_reference == "ABC123"
        assert result.day_of_year == 45
        assert result.boundary_date == "2026-02-14"
        assert result.boundary_time == "07:30"
        assert result.boundary_local == "2026-02-14T07:30"

    def test_arrive_by_is_two_hours_before_boundary(self):
        result = parse_boarding_pass(structured_payload(), "", now=NOW)
        assert result.arrive_by_local == "2026-02-14T05:30"

    def test_lowercase_payload_is_normalised(self):
        result = parse_boarding_pass(structured_payload().lower(), "", now=NOW)
        assert result.source_format == "structured"
        assert result.flight_number == "AB123"

    def test_missing_time_uses_fallback_time(self):
        payload = structured_payload(tail="Y012A0001 100 SEQ0042")
        result = parse_boarding_pass(payload, "2026-02-10T18:45", now=NOW)
        assert result.boundary_time is None
        assert result.boundary_local == "2026-02-14T18:45"
        assert "Time taken from the existing boundary." in result.notes

    def test_out_of_range_day_of_year_leaves_date_empty(self):
        result = parse_boarding_pass(structured_payload(day_of_year="400"), "", now=NOW)
        assert result.source_format == "structured"
        assert result.boundary_date is None
        assert any("outside 1-366" in n for n in result.notes)

    def test_multi_leg_payload_noted(self):
        payload = "M2" + structured_payload()[2:]
        result = parse_boarding_pass(payload, "", now=NOW)
        assert result.leg_count == 2
        assert any("2 legs" in n for n in result.notes)

    def test_bad_airport_codes_fall_back_to_generic(self):
        payload = structured_payload().replace("JFKLAX", "J1KLAX")
        result = parse_boarding_pass(payload, "", now=NOW)
        assert result.source_format == "generic"
        assert "origin/destination codes not extractable" in result.notes[0]


class TestGenericDecode:
    """Free-text fallback scanner."""

    def test_reference_example(self):
        result = parse_boarding_pass(
            "Flight AB123 JFK-LAX 2025-03-10 14:30 REF: XYZ1234", "", now=NOW,
        )
        assert result.source_format == "generic"
        assert result.flight_number == "AB123"
        assert result.departure_airport == "JFK"
        assert result.arrival_airport == "LAX"
        assert result.boundary_date == "2025-03-10"
        assert result.boundary_time == "14:30"
        assert result.booking_reference == "XYZ1234"
        assert result.boundary_local == "2025-03-10T14:30"

    def test_short_payload_rejection_is_noted(self):
        result = parse_boarding_pass("Flight AB123 JFK-LAX 2025-03-10 14:30", "", now=NOW)
        assert result.notes[0].startswith("Structured layout not used: payload shorter than 60")

    def test_labelled_time_and_fallback_date(self):
        result = parse_boarding_pass("FLIGHT AB123 JFK LAX BRD 0815", "2026-03-01T10:00", now=NOW)
        assert result.boundary_time == "08:15"
        assert result.boundary_local == "2026-03-01T08:15"
        assert "Date taken from the existing boundary." in result.notes

    def test_labelled_time_wins_over_bare_time(self):
        result = parse_boarding_pass("AB123 JFK LAX 2026-03-01 11:00 BOARDING 10:25", "", now=NOW)
        assert result.boundary_time == "10:25"

    def test_slash_date_month_first(self):
        result = parse_boarding_pass("AB123 JFK LAX 03/04/2026 DEP 0900", "", now=NOW)
        assert result.boundary_date == "2026-03-04"

    def test_slash_date_day_first_when_unambiguous(self):
        result = parse_boarding_pass("AB123 JFK LAX 25/04/2026 DEP 0900", "", now=NOW)
        assert result.boundary_date == "2026-04-25"

    def test_invalid_calendar_date_ignored(self):
        result = parse_boarding_pass("AB123 JFK LAX 2026-02-30 DEP 0900", "2026-05-05T00:00", now=NOW)
        assert result.boundary_date is None
        assert result.boundary_local == "2026-05-05T09:00"

    def test_gate_number_not_taken_as_flight(self):
        result = parse_boarding_pass("GATE B12 FLIGHT LH 456 FRA JFK", "", now=NOW)
        assert result.flight_number == "LH456"

    def test_airport_before_date_not_taken_as_flight(self):
        result = parse_boarding_pass("JFK-LAX 2025-03-10 14:30 Flight AB123 REF: XYZ1234", "", now=NOW)
        assert result.flight_number == "AB123"
        assert result.departure_airport == "JFK"
        assert result.arrival_airport == "LAX"
        assert result.boundary_local == "2025-03-10T14:30"

    def test_airport_before_slash_date_not_taken_as_flight(self):
        result = parse_boarding_pass("JFK LAX 3/04/2026 AB 77", "", now=NOW)
        assert result.flight_number == "AB77"
        assert result.boundary_date == "2026-03-04"

    def test_labelled_time_not_taken_as_flight(self):
        result = parse_boarding_pass("DEP 0645", "2026-03-01T10:00", now=NOW)
        assert result.flight_number is None
        assert "Flight number not found." in result.notes

    def test_unusable_fallback_defaults_to_today(self):
        result = parse_boarding_pass("DEP 0645", "not-a-date", now=NOW)
        assert result.boundary_local == "2026-02-01T06:45"
        assert "Date defaulted to today." in result.notes
        assert any("not usable" in n for n in result.notes)

    def test_empty_payload_never_raises(self):
        result = parse_boarding_pass("", "", now=NOW)
        assert result.flight_number is None
        assert result.boundary_local is None
        assert result.flight_context_detected is False
        assert "Boarding/departure time not found in payload." in result.notes
        assert "Travel date not found in payload." in result.notes


class TestResolveDayOfYear:
    """Nearest-year resolution of the barcode Julian date."""

    def test_same_year(self):
        resolved, notes = resolve_day_of_year(45, date(2026, 2, 1))
        assert resolved == date(2026, 2, 14)
        assert notes == []

    def test_rolls_into_next_year_near_year_end(self):
        resolved, _ = resolve_day_of_year(5, date(2026, 12, 20))
        assert resolved == date(2027, 1, 5)

    def test_rolls_back_into_previous_year_early_in_year(self):
        resolved, _ = resolve_day_of_year(360, date(2026, 1, 3))
        assert resolved == date(2025, 12, 26)

    def test_day_366_only_in_leap_year(self):
        resolved, _ = resolve_day_of_year(366, date(2028, 12, 1))
        assert resolved == date(2028, 12, 31)

    def test_day_366_without_nearby_leap_year(self):
        resolved, notes = resolve_day_of_year(366, date(2026, 6, 1))
        assert resolved is None
        assert notes

    @pytest.mark.parametrize("day", [0, 367])
    def test_out_of_range(self, day):
        resolved, notes = resolve_day_of_year(day, date(2026, 6, 1))
        assert resolved is None
        assert "outside 1-366" in notes[0]
