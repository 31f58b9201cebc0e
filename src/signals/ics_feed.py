"""Calendar-feed (iCalendar export) reader for planner load.

Fetches a plain-text calendar export and counts the events and to-dos whose
start falls inside the contract window. Only ``DTSTART`` and ``STATUS`` lines
are consulted; records with an unreadable start are skipped, not fatal.
"""

import logging
import re
from datetime import datetime, timezone, tzinfo
from typing import Iterator, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base_adapter import AdapterError, BaseAdapter, PlannerSignal, TaskTally

logger = logging.getLogger(__name__)

# Session-level retry for network transients
_retry = Retry(total=1, allowed_methods=["GET"], backoff_factor=1, status_forcelist=[502, 503, 504])
_session = requests.Session()
_session.mount("https://", HTTPAdapter(max_retries=_retry))
_session.mount("http://", HTTPAdapter(max_retries=_retry))

RECORD_START = re.compile(r"^BEGIN:(VEVENT|VTODO)$")
RECORD_END = re.compile(r"^END:(VEVENT|VTODO)$")

COMPLETED_STATUSES = {"COMPLETED"}


class IcsFeedAdapter(BaseAdapter):
    """Count calendar records in the window from an iCalendar feed URL."""

    def _fetch_impl(self, window_start: datetime, window_end: datetime, now: datetime) -> PlannerSignal:
        if not self.url:
            raise AdapterError(self.provider, "no feed URL configured", retryable=False)

        try:
            response = _session.get(self.url, timeout=self.request_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise AdapterError(self.provider, f"feed request failed: {e}", e) from e

        return summarize_feed(response.text, window_start, window_end, now, self.tz)


def summarize_feed(
    text: str,
    window_start: datetime,
    window_end: datetime,
    now: datetime,
    local_tz: tzinfo = timezone.utc,
) -> PlannerSignal:
    """
    Aggregate an iCalendar document into planner counts.

    Args:
        text: Raw calendar export
        window_start: Earliest start to count (inclusive)
        window_end: Latest start to count (inclusive)
        now: Reference time for overdue / due-soon classification
        local_tz: Zone for floating and date-only timestamps

    Returns:
        PlannerSignal for records starting in the window
    """
    tally = TaskTally(now)
    skipped = 0

    for dtstart, status in iter_records(text):
        start = parse_ics_timestamp(dtstart, local_tz) if dtstart else None
        if start is None:
            skipped += 1
            continue
        if start < window_start or start > window_end:
            continue
        tally.add(start, status in COMPLETED_STATUSES)

    if skipped:
        logger.debug(f"Skipped {skipped} calendar record(s) with unreadable DTSTART")

    return tally.to_signal()


def iter_records(text: str) -> Iterator[Tuple[Optional[str], Optional[str]]]:
    """Yield (DTSTART value, STATUS value) per VEVENT/VTODO record."""
    in_record = False
    dtstart: Optional[str] = None
    status: Optional[str] = None

    for line in _unfold(text):
        if RECORD_START.match(line):
            in_record = True
            dtstart = None
            status = None
        elif RECORD_END.match(line):
            if in_record:
                yield dtstart, status
            in_record = False
        elif in_record:
            name, _, value = line.partition(":")
            prop = name.split(";", 1)[0].upper()
            if prop == "DTSTART":
                # Parameters (TZID, VALUE=DATE) precede the last colon
                dtstart = line.rsplit(":", 1)[-1].strip()
            elif prop == "STATUS":
                status = value.strip().upper()


def parse_ics_timestamp(token: str, local_tz: tzinfo = timezone.utc) -> Optional[datetime]:
    """
    Parse one of the three accepted date tokens.

    ``YYYYMMDDThhmmssZ`` is UTC, ``YYYYMMDDThhmmss`` is local, ``YYYYMMDD`` is
    local midnight. Anything else returns None.
    """
    token = token.strip()
    try:
        if token.endswith("Z") and len(token) == 16:
            return datetime.strptime(token, "%Y%m%dT%H%M%SZ").replace(tzinfo=timezone.utc)
        if len(token) == 15 and "T" in token:
            return datetime.strptime(token, "%Y%m%dT%H%M%S").replace(tzinfo=local_tz)
        if len(token) == 8 and token.isdigit():
            return datetime.strptime(token, "%Y%m%d").replace(tzinfo=local_tz)
    except ValueError:
        return None
    return None


def _unfold(text: str) -> List[str]:
    """Join RFC 5545 continuation lines (leading space or tab)."""
    lines: List[str] = []
    for raw in text.splitlines():
        if raw[:1] in (" ", "\t") and lines:
            lines[-1] += raw[1:]
        else:
            lines.append(raw.strip())
    return lines
