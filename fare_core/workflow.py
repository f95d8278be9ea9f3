"""High level orchestration for running a flight search."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from functools import partial
import logging
import threading
from typing import Dict, List, Optional

from .aggregator import aggregate
from .config import SearchConfig
from .events import EventSink, LoggingEventSink, emit_run_event
from .models import AggregationResult, CanonicalOffer, UnitOutcome
from .positioning import Extractor, InteractionAgent, build_query_units, strategy_for
from .processor import rank, summarise_offers
from .reporter import build_report
from .sources import PlaywrightFlightExtractor, PlaywrightInteractionAgent, build_search_url, open_session

LOGGER = logging.getLogger(__name__)


@dataclass
class SearchResult:
    """Result returned by :func:`run_flight_search`."""

    config: SearchConfig
    offers: List[CanonicalOffer]
    outcomes: List[UnitOutcome]
    report: str
    summary: Dict[str, float]
    warnings: List[str]

    @property
    def cancelled(self) -> bool:
        return any(outcome.status == "cancelled" for outcome in self.outcomes)

    def to_dict(self) -> Dict[str, object]:
        return {
            "config": self.config.to_dict(),
            "summary": self.summary,
            "offers": [offer.to_dict() for offer in self.offers],
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "report": self.report,
            "warnings": list(self.warnings),
            "cancelled": self.cancelled,
        }


def validate_config(config: SearchConfig) -> None:
    """Raise ``ValueError`` when the search cannot produce any query unit."""

    if config.mode == "range":
        if not (config.origin and config.destination):
            raise ValueError("A date-range search needs an origin and a destination")
        if config.start_date is None:
            raise ValueError("A date-range search needs a start date")
    if config.mode == "single" and not config.instructions and not (config.origin and config.destination):
        raise ValueError("A single search needs instructions or an origin and a destination")


def _collect_warnings(aggregated: AggregationResult) -> List[str]:
    """Derive user-facing warnings from unit outcomes."""

    warnings: List[str] = []
    failed = [outcome.tag for outcome in aggregated.failed_units]
    if failed:
        warnings.append(f"{len(failed)} of {len(aggregated.outcomes)} searches failed: {', '.join(failed)}.")
    if aggregated.cancelled:
        cancelled = [outcome.tag for outcome in aggregated.outcomes if outcome.status == "cancelled"]
        warnings.append(f"Search cancelled before {', '.join(cancelled)}.")
    return warnings


async def run_search(
    config: SearchConfig,
    agent: InteractionAgent,
    extractor: Extractor,
    cancel_event: Optional[threading.Event] = None,
    sink: Optional[EventSink] = None,
) -> SearchResult:
    """Aggregate, rank and report using already positioned collaborators."""

    validate_config(config)

    units = build_query_units(config)
    strategy = strategy_for(config, partial(build_search_url, config.origin, config.destination))
    LOGGER.info("Running %d %s search unit(s)", len(units), config.mode)

    aggregated = await aggregate(
        units,
        agent,
        extractor,
        config.constraints,
        strategy,
        policy=config.effective_failure_policy,
        unit_timeout=config.unit_timeout,
        cancel_event=cancel_event,
        max_records=config.max_records_per_unit,
        instruction=config.extract_instruction,
    )

    offers = rank(aggregated.offers)
    warnings = _collect_warnings(aggregated)
    emit_run_event(sink or LoggingEventSink(), offers)
    return SearchResult(
        config=config,
        offers=offers,
        outcomes=aggregated.outcomes,
        summary=summarise_offers(offers),
        report=build_report(config, offers, aggregated.outcomes, warnings=warnings),
        warnings=warnings,
    )


async def run_flight_search_async(
    config: SearchConfig,
    cancel_event: Optional[threading.Event] = None,
    sink: Optional[EventSink] = None,
) -> SearchResult:
    """Open the browsing session, run the search and release the session."""

    validate_config(config)
    async with open_session(config.session) as session:
        agent = PlaywrightInteractionAgent(session.page)
        extractor = PlaywrightFlightExtractor(session.page)
        return await run_search(config, agent, extractor, cancel_event=cancel_event, sink=sink)


def run_flight_search(
    config: SearchConfig,
    cancel_event: Optional[threading.Event] = None,
    sink: Optional[EventSink] = None,
) -> SearchResult:
    """Run the async search from synchronous code.

    Coroutines that already run inside an event loop await
    :func:`run_flight_search_async` instead.
    """

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(run_flight_search_async(config, cancel_event=cancel_event, sink=sink))
    raise RuntimeError("run_flight_search() cannot be used inside a running event loop; await run_flight_search_async()")
