"""Normalisation, admission and ranking of extracted flight offers."""
from __future__ import annotations

import math
import re
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from .models import CanonicalOffer, FilterConstraints, RawOffer

HOURS_PATTERN = re.compile(r"(\d+)\s*h", re.IGNORECASE)
MINUTES_PATTERN = re.compile(r"(\d+)\s*m", re.IGNORECASE)
_PRICE_STRIP_PATTERN = re.compile(r"[^0-9.]")
_LEADING_NUMBER_PATTERN = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def parse_duration(text: Optional[str]) -> int:
    """Return the number of minutes in a duration such as ``"7h 45m"``.

    Hour and minute components are independent and optional; whatever is
    missing contributes zero, so unparseable text yields ``0``.
    """

    if not text:
        return 0
    hours_match = HOURS_PATTERN.search(text)
    minutes_match = MINUTES_PATTERN.search(text)
    hours = int(hours_match.group(1)) if hours_match else 0
    minutes = int(minutes_match.group(1)) if minutes_match else 0
    return hours * 60 + minutes


def parse_price(text: Optional[str]) -> float:
    """Parse a currency string, returning ``nan`` when it holds no number."""

    cleaned = _PRICE_STRIP_PATTERN.sub("", text or "")
    match = _LEADING_NUMBER_PATTERN.match(cleaned)
    if not match:
        return math.nan
    return float(match.group())


def normalize(raw: RawOffer, source_tag: str) -> CanonicalOffer:
    """Turn a textual offer into its canonical numeric form."""

    layovers = raw.layovers or ()
    return CanonicalOffer(
        airline=raw.airline,
        price=parse_price(raw.price),
        total_minutes=parse_duration(raw.total_duration),
        stops=raw.stops,
        layover_minutes=tuple(parse_duration(layover) for layover in layovers),
        source_tag=source_tag,
        price_text=raw.price,
        departure_date=raw.departure_date,
    )


def admit(offer: CanonicalOffer, constraints: FilterConstraints) -> bool:
    """Return ``True`` when the offer satisfies every constraint.

    Only layover durations that were actually extracted are checked; an
    offer with stops but no layover texts passes the layover bound.
    """

    if not offer.is_valid:
        return False
    if offer.stops > constraints.max_stops:
        return False
    if offer.total_minutes > constraints.max_total_minutes:
        return False
    return all(minutes <= constraints.max_layover_minutes for minutes in offer.layover_minutes)


def offers_to_dataframe(offers: Iterable[CanonicalOffer]) -> pd.DataFrame:
    """Convert canonical offers into a :class:`~pandas.DataFrame`, one row each."""

    records: List[Dict[str, object]] = []
    for offer in offers:
        records.append(
            {
                "airline": offer.airline,
                "price": offer.price,
                "total_minutes": offer.total_minutes,
                "stops": offer.stops,
                "source_tag": offer.source_tag,
            }
        )
    return pd.DataFrame.from_records(
        records, columns=["airline", "price", "total_minutes", "stops", "source_tag"]
    )


def rank(offers: Sequence[CanonicalOffer]) -> List[CanonicalOffer]:
    """Sort offers by ascending price, keeping arrival order among equal prices."""

    offer_list = list(offers)
    if not offer_list:
        return []
    df = offers_to_dataframe(offer_list)
    # mergesort is the only stable kind pandas offers
    ordered = df.sort_values("price", kind="mergesort", na_position="last")
    return [offer_list[position] for position in ordered.index]


def summarise_offers(offers: Sequence[CanonicalOffer]) -> Dict[str, float]:
    """Return simple statistics across all ranked offers."""

    df = offers_to_dataframe(offers)
    prices = df["price"].dropna()
    if prices.empty:
        return {"count": 0, "average_price": 0.0, "min_price": 0.0, "average_minutes": 0.0}

    return {
        "count": int(prices.count()),
        "average_price": float(prices.mean()),
        "min_price": float(prices.min()),
        "average_minutes": float(df.loc[prices.index, "total_minutes"].mean()),
    }


def summarise_by_tag(offers: Sequence[CanonicalOffer]) -> List[Dict[str, object]]:
    """Per query unit: number of offers and cheapest price, in first-seen order."""

    df = offers_to_dataframe(offers)
    if df.empty:
        return []
    grouped = df.groupby("source_tag", sort=False)["price"].agg(["count", "min"])
    return [
        {"tag": str(tag), "count": int(row["count"]), "min_price": float(row["min"])}
        for tag, row in grouped.iterrows()
    ]
