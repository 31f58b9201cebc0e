"""
Evidence inference: which supporting documents a contract should carry, and
how many of them are linked.

Suggestions come from keyword rules over the contract's free text plus its
regime. Readiness is recomputed from documents and suggestions whenever
either changes; it is never stored on its own.
"""

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Sequence, Tuple

from .models import DocumentEvidence, DocumentType, Regime

FLIGHT_KEYWORDS = frozenset({
    "flight", "flights", "fly", "flying", "airport", "airline", "boarding",
    "gate", "terminal", "layover", "departure",
})
EVENT_KEYWORDS = frozenset({
    "event", "concert", "festival", "conference", "summit", "show", "match",
    "game", "ticket", "tickets", "theatre", "theater",
})
MEETING_KEYWORDS = frozenset({
    "meeting", "interview", "appointment", "call", "presentation", "review",
    "standup",
})

# Types whose absence weakens the boundary itself, not just confidence
BOUNDARY_DOCUMENT_TYPES = frozenset({
    DocumentType.FLIGHT_ITINERARY,
    DocumentType.BOARDING_PASS,
    DocumentType.EVENT_TICKET,
    DocumentType.CALENDAR_INVITE,
    DocumentType.MEETING_CONFIRMATION,
    DocumentType.BOUNDARY_COMMITMENT,
})

DOCUMENT_LABELS: Dict[DocumentType, str] = {
    DocumentType.FLIGHT_ITINERARY: "Flight itinerary",
    DocumentType.BOARDING_PASS: "Boarding pass",
    DocumentType.TRANSPORT_BOOKING: "Ground transport booking",
    DocumentType.EVENT_TICKET: "Event ticket",
    DocumentType.HOTEL_BOOKING: "Hotel booking",
    DocumentType.CALENDAR_INVITE: "Calendar hold",
    DocumentType.MEETING_CONFIRMATION: "Meeting confirmation",
    DocumentType.VISA_OR_ID: "Visa or ID",
    DocumentType.RESOURCE_BASELINE: "Resource baseline",
    DocumentType.BOUNDARY_COMMITMENT: "Boundary commitment",
    DocumentType.OTHER: "Other document",
}

LINKED_THRESHOLD = 0.99
PARTIAL_THRESHOLD = 0.5
NO_REQUIREMENT_BASELINE = 0.75

WORD_PATTERN = re.compile(r"[a-z]+")


@dataclass(frozen=True)
class DocumentSuggestion:
    document_type: DocumentType
    label: str
    required: bool
    reason: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "document_type": self.document_type.value,
            "label": self.label,
            "required": self.required,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class DocumentReadiness:
    expected_types: Tuple[DocumentType, ...]
    required_types: Tuple[DocumentType, ...]
    missing_types: Tuple[DocumentType, ...]
    coverage: float
    label: str
    linked_count: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "expected_types": [t.value for t in self.expected_types],
            "required_types": [t.value for t in self.required_types],
            "missing_types": [t.value for t in self.missing_types],
            "coverage": round(self.coverage, 4),
            "label": self.label,
            "linked_count": self.linked_count,
        }


def _suggest(document_type: DocumentType, required: bool, reason: str) -> DocumentSuggestion:
    return DocumentSuggestion(document_type, DOCUMENT_LABELS[document_type], required, reason)


def _mentions(words: FrozenSet[str], keywords: FrozenSet[str]) -> bool:
    return not words.isdisjoint(keywords)


def suggest_documents(
    regime: Regime,
    context_text: str,
    flight_context_detected: bool = False,
) -> List[DocumentSuggestion]:
    """
    Suggest supporting documents for a contract.

    Args:
        regime: Contract regime
        context_text: Domain, name, context, step titles and notes joined
        flight_context_detected: True when a boarding pass was decoded for
            this contract, even if the text never mentions a flight

    Returns:
        Deduplicated suggestions, first-seen order, required wins on conflict
    """
    words = frozenset(WORD_PATTERN.findall((context_text or "").lower()))
    suggestions: List[DocumentSuggestion] = []

    if flight_context_detected or _mentions(words, FLIGHT_KEYWORDS):
        reason = "Flight context detected."
        suggestions.append(_suggest(DocumentType.FLIGHT_ITINERARY, True, reason))
        suggestions.append(_suggest(DocumentType.BOARDING_PASS, True, reason))
        suggestions.append(_suggest(DocumentType.TRANSPORT_BOOKING, False, reason))

    if _mentions(words, EVENT_KEYWORDS):
        reason = "Event context detected."
        suggestions.append(_suggest(DocumentType.EVENT_TICKET, True, reason))
        suggestions.append(_suggest(DocumentType.HOTEL_BOOKING, False, reason))
        suggestions.append(_suggest(DocumentType.CALENDAR_INVITE, False, reason))

    if _mentions(words, MEETING_KEYWORDS):
        suggestions.append(_suggest(
            DocumentType.MEETING_CONFIRMATION,
            regime == Regime.HARD,
            "Meeting context detected.",
        ))

    if regime == Regime.RESOURCE:
        suggestions.append(_suggest(DocumentType.RESOURCE_BASELINE, True, "Resource regime needs a baseline."))

    if regime == Regime.HARD and not any(s.required for s in suggestions):
        suggestions.append(_suggest(
            DocumentType.BOUNDARY_COMMITMENT,
            True,
            "Hard regime needs at least one boundary document.",
        ))

    return deduplicate_suggestions(suggestions)


def deduplicate_suggestions(suggestions: Iterable[DocumentSuggestion]) -> List[DocumentSuggestion]:
    merged: Dict[DocumentType, DocumentSuggestion] = {}
    for suggestion in suggestions:
        existing = merged.get(suggestion.document_type)
        if existing is None or (suggestion.required and not existing.required):
            merged[suggestion.document_type] = suggestion
    return list(merged.values())


def derive_readiness(
    documents: Sequence[DocumentEvidence],
    suggestions: Sequence[DocumentSuggestion],
) -> DocumentReadiness:
    """
    Score how much of the required evidence is linked.

    Coverage is linked-required / required. With nothing required it is a
    0.75 baseline when any document is linked, else 0.
    """
    linked_types = {doc.document_type for doc in documents if doc.is_linked}
    linked_count = sum(1 for doc in documents if doc.is_linked)

    expected = tuple(s.document_type for s in suggestions)
    required = tuple(s.document_type for s in suggestions if s.required)
    missing = tuple(t for t in required if t not in linked_types)

    if required:
        coverage = (len(required) - len(missing)) / len(required)
        if coverage >= LINKED_THRESHOLD:
            label = "linked"
        elif coverage >= PARTIAL_THRESHOLD:
            label = "partial"
        else:
            label = "thin"
    else:
        coverage = NO_REQUIREMENT_BASELINE if linked_count else 0.0
        label = "baseline" if linked_count else "none detected"

    return DocumentReadiness(
        expected_types=expected,
        required_types=required,
        missing_types=missing,
        coverage=min(1.0, max(0.0, coverage)),
        label=label,
        linked_count=linked_count,
    )


def boundary_evidence_gap(readiness: DocumentReadiness) -> Tuple[int, int]:
    """(missing, required) counts restricted to boundary-relevant document types."""
    required = [t for t in readiness.required_types if t in BOUNDARY_DOCUMENT_TYPES]
    missing = [t for t in readiness.missing_types if t in BOUNDARY_DOCUMENT_TYPES]
    return len(missing), len(required)
