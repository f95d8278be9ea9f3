"""Reporting helpers for the flight sweep."""
from __future__ import annotations

from datetime import date
import json
import math
from typing import Iterable, List, Sequence

from .config import SearchConfig
from .models import CanonicalOffer, UnitOutcome
from .processor import summarise_by_tag, summarise_offers

REPORT_TITLE = "Flights"


def _format_date(value: date | None) -> str:
    if value is None:
        return "flexible"
    return value.strftime("%b %d, %Y")


def format_minutes(minutes: int) -> str:
    hours, rest = divmod(minutes, 60)
    if not hours:
        return f"{rest}m"
    return f"{hours}h {rest}m" if rest else f"{hours}h"


def _format_price(offer: CanonicalOffer) -> str:
    if math.isnan(offer.price):
        return "–"
    return offer.price_text or f"{offer.price:.2f}"


def generate_offer_table(offers: Iterable[CanonicalOffer]) -> str:
    """Return a markdown-style table with the best offers."""

    offer_list = list(offers)
    headers = ["Airline", "Price", "Duration", "Stops", "Layovers", "Date"]
    header_row = "| " + " | ".join(headers) + " |"
    separator_row = "| " + " | ".join(["---"] * len(headers)) + " |"

    rows: List[str] = [header_row, separator_row]

    if not offer_list:
        rows.append("| No flights |" + " |" * (len(headers) - 1))
        return "\n".join(rows)

    for offer in offer_list:
        layovers = ", ".join(format_minutes(minutes) for minutes in offer.layover_minutes) or "-"
        columns = [
            offer.airline or "-",
            _format_price(offer),
            format_minutes(offer.total_minutes),
            str(offer.stops),
            layovers,
            offer.source_tag,
        ]
        rows.append("| " + " | ".join(columns) + " |")
    return "\n".join(rows)


def generate_outcome_lines(outcomes: Sequence[UnitOutcome], offers: Sequence[CanonicalOffer]) -> List[str]:
    """One line per query unit with its admitted count and cheapest price."""

    cheapest = {entry["tag"]: entry["min_price"] for entry in summarise_by_tag(offers)}
    lines: List[str] = []
    for outcome in outcomes:
        if outcome.status == "ok":
            line = f"- {outcome.tag}: {outcome.admitted} of {outcome.extracted} flights kept"
            if outcome.tag in cheapest:
                line += f", from {cheapest[outcome.tag]:.2f}"
        elif outcome.status == "empty":
            line = f"- {outcome.tag}: no flights found"
        elif outcome.status == "cancelled":
            line = f"- {outcome.tag}: not searched (cancelled)"
        else:
            line = f"- {outcome.tag}: failed ({outcome.error})"
        lines.append(line)
    return lines


def render_offers_json(offers: Sequence[CanonicalOffer]) -> str:
    return json.dumps([offer.to_dict() for offer in offers], indent=2)


def build_report(
    config: SearchConfig,
    offers: Sequence[CanonicalOffer],
    outcomes: Sequence[UnitOutcome] = (),
    warnings: Sequence[str] | None = None,
) -> str:
    """Create a text report summarising the ranked flights."""

    summary = summarise_offers(offers)
    constraints = config.constraints
    warning_messages = [message.strip() for message in (warnings or []) if message]
    lines: List[str] = [
        REPORT_TITLE,
        "=" * len(REPORT_TITLE),
    ]
    if warning_messages:
        lines.append("")
        lines.extend(f"WARNING: {message}" for message in warning_messages)

    lines.extend(
        [
            "",
            f"Route: {config.origin or '?'} → {config.destination or '?'}",
            f"Departure: {_format_date(config.start_date)} – {_format_date(config.end_date)}",
            f"Max stops: {constraints.max_stops}",
            f"Max total duration: {format_minutes(constraints.max_total_minutes)}",
            f"Max layover: {format_minutes(constraints.max_layover_minutes)}",
        ]
    )

    lines.append("")
    lines.append("Summary:")
    if summary["count"] == 0:
        lines.append("- No flights found")
    else:
        lines.append(f"- {summary['count']} flights found")
        lines.append(f"- Average price: {summary['average_price']:.2f}")
        lines.append(f"- Cheapest flight: {summary['min_price']:.2f}")
        lines.append(f"- Average duration: {format_minutes(int(round(summary['average_minutes'])))}")

    if outcomes:
        lines.append("")
        lines.append("Searches:")
        lines.extend(generate_outcome_lines(outcomes, offers))

    lines.append("")
    lines.append("Top flights:")
    lines.append(generate_offer_table(offers[:5]))

    lines.append("")
    lines.append("All flights:")
    lines.append(render_offers_json(offers))

    return "\n".join(lines)
