"""Shared data structures used across extraction, processing and reporting."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
import math
from typing import Any, Dict, List, Mapping, Optional, Tuple

SINGLE_QUERY_TAG = "single"


@dataclass(frozen=True)
class RawOffer:
    """A flight offer exactly as the extractor read it off the page."""

    airline: str
    price: str
    total_duration: str
    stops: int
    layovers: Optional[Tuple[str, ...]] = None
    departure_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "airline": self.airline,
            "price": self.price,
            "totalDuration": self.total_duration,
            "stops": self.stops,
            "layovers": list(self.layovers) if self.layovers is not None else None,
            "departureDate": self.departure_date,
        }


def raw_offer_from_record(record: Mapping[str, Any]) -> RawOffer:
    """Build a :class:`RawOffer` from a loosely keyed extractor record."""

    airline = record.get("airline") or record.get("airlines") or ""
    total_duration = record.get("totalDuration") or record.get("total_duration") or ""
    layovers = record.get("layovers")
    if isinstance(layovers, str):
        layovers = [layovers]
    departure_date = record.get("departureDate") or record.get("departure_date")
    return RawOffer(
        airline=str(airline),
        price=str(record.get("price") or ""),
        total_duration=str(total_duration),
        stops=int(record.get("stops") or 0),
        layovers=tuple(str(item) for item in layovers) if layovers is not None else None,
        departure_date=str(departure_date) if departure_date else None,
    )


# Field contract handed to the extractor alongside its instruction.
RAW_OFFER_SHAPE: Dict[str, str] = {
    "airlines": "string",
    "price": "string",
    "totalDuration": "string",
    "stops": "integer",
    "layovers": "optional list of string",
    "departureDate": "optional string",
}


@dataclass(frozen=True)
class CanonicalOffer:
    """Numerically normalised flight offer, tagged with its query unit."""

    airline: str
    price: float
    total_minutes: int
    stops: int
    layover_minutes: Tuple[int, ...]
    source_tag: str
    price_text: str = ""
    departure_date: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return not math.isnan(self.price)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "airline": self.airline,
            "price": self.price_text,
            "numericPrice": self.price if self.is_valid else None,
            "totalMinutes": self.total_minutes,
            "stops": self.stops,
            "layoverMinutes": list(self.layover_minutes),
            "departureDate": self.departure_date,
            "sourceTag": self.source_tag,
        }


@dataclass(frozen=True)
class FilterConstraints:
    """Inclusive admission bounds applied to every canonical offer."""

    max_stops: int = 2
    max_total_minutes: int = 30 * 60
    max_layover_minutes: int = 5 * 60

    def to_dict(self) -> Dict[str, int]:
        return {
            "max_stops": self.max_stops,
            "max_total_minutes": self.max_total_minutes,
            "max_layover_minutes": self.max_layover_minutes,
        }


@dataclass(frozen=True)
class QueryUnit:
    """One discrete positioning and extraction cycle."""

    tag: str
    departure_date: Optional[date] = None
    url: Optional[str] = None
    instructions: Tuple[str, ...] = ()
    goal: Optional[str] = None


@dataclass
class UnitOutcome:
    """What happened while processing a single :class:`QueryUnit`."""

    tag: str
    status: str
    extracted: int = 0
    admitted: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tag": self.tag,
            "status": self.status,
            "extracted": self.extracted,
            "admitted": self.admitted,
            "error": self.error,
        }


@dataclass
class AggregationResult:
    """Accumulated offers in arrival order plus one outcome per unit."""

    offers: List[CanonicalOffer] = field(default_factory=list)
    outcomes: List[UnitOutcome] = field(default_factory=list)

    @property
    def cancelled(self) -> bool:
        return any(outcome.status == "cancelled" for outcome in self.outcomes)

    @property
    def failed_units(self) -> List[UnitOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status == "failed"]
