"""Sequential collection of admitted offers across query units."""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, List, Mapping, Optional, Sequence

from .config import DEFAULT_EXTRACT_INSTRUCTION
from .models import (
    RAW_OFFER_SHAPE,
    AggregationResult,
    CanonicalOffer,
    FilterConstraints,
    QueryUnit,
    RawOffer,
    UnitOutcome,
    raw_offer_from_record,
)
from .positioning import Extractor, InteractionAgent, PositioningStrategy, UnitError
from .processor import admit, normalize

LOGGER = logging.getLogger(__name__)


class SweepAborted(RuntimeError):
    """Raised under the ``abort`` policy; ``result`` holds what was collected."""

    def __init__(self, message: str, result: AggregationResult) -> None:
        super().__init__(message)
        self.result = result


def admit_records(
    records: Sequence[Mapping[str, Any] | RawOffer], tag: str, constraints: FilterConstraints
) -> List[CanonicalOffer]:
    """Normalise and filter one unit's records, keeping arrival order."""

    admitted: List[CanonicalOffer] = []
    for record in records:
        if not isinstance(record, (RawOffer, Mapping)):
            LOGGER.debug("Dropping non-mapping record for %s: %r", tag, record)
            continue
        try:
            raw = record if isinstance(record, RawOffer) else raw_offer_from_record(record)
        except (TypeError, ValueError) as exc:
            LOGGER.debug("Dropping unreadable record for %s: %s", tag, exc)
            continue
        offer = normalize(raw, tag)
        if admit(offer, constraints):
            admitted.append(offer)
        else:
            LOGGER.debug("Rejected offer for %s: %s at %r", tag, offer.airline, offer.price_text)
    return admitted


def _failure_reason(exc: Exception, unit_timeout: Optional[float]) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return str(exc) or f"timed out after {unit_timeout}s"
    if isinstance(exc, UnitError):
        return str(exc) or type(exc).__name__
    return f"{type(exc).__name__}: {exc}"


async def _collect_unit(
    unit: QueryUnit,
    agent: InteractionAgent,
    extractor: Extractor,
    strategy: PositioningStrategy,
    instruction: str,
    max_records: Optional[int],
) -> Sequence[Mapping[str, Any] | RawOffer]:
    await strategy.position(agent, unit)
    records = await extractor.extract(instruction, RAW_OFFER_SHAPE, max_records)
    return list(records or [])


async def aggregate(
    units: Sequence[QueryUnit],
    agent: InteractionAgent,
    extractor: Extractor,
    constraints: FilterConstraints,
    strategy: PositioningStrategy,
    *,
    policy: str = "skip",
    unit_timeout: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
    max_records: Optional[int] = 10,
    instruction: str = DEFAULT_EXTRACT_INSTRUCTION,
) -> AggregationResult:
    """Run every query unit in order and accumulate the admitted offers.

    Units share one session and are therefore never run concurrently. A
    failing unit is recorded and skipped, or aborts the sweep with
    :class:`SweepAborted` when ``policy`` is ``"abort"``. Setting
    ``cancel_event`` stops the sweep before the next unit starts.
    """

    unit_list = list(units)
    result = AggregationResult()

    for index, unit in enumerate(unit_list):
        if cancel_event is not None and cancel_event.is_set():
            LOGGER.info("Sweep cancelled, %d unit(s) not processed", len(unit_list) - index)
            result.outcomes.extend(UnitOutcome(tag=pending.tag, status="cancelled") for pending in unit_list[index:])
            break

        try:
            records = await asyncio.wait_for(
                _collect_unit(unit, agent, extractor, strategy, instruction, max_records),
                timeout=unit_timeout or None,
            )
        except Exception as exc:
            reason = _failure_reason(exc, unit_timeout)
            result.outcomes.append(UnitOutcome(tag=unit.tag, status="failed", error=reason))
            if policy == "abort":
                raise SweepAborted(f"Query unit {unit.tag} failed: {reason}", result) from exc
            LOGGER.warning("Skipping query unit %s: %s", unit.tag, reason)
            continue

        if not records:
            LOGGER.info("No offers extracted for %s", unit.tag)
            result.outcomes.append(UnitOutcome(tag=unit.tag, status="empty"))
            continue

        if max_records is not None and len(records) > max_records:
            LOGGER.debug("Extractor returned %d records for %s (asked for %d)", len(records), unit.tag, max_records)

        admitted = admit_records(records, unit.tag, constraints)
        result.offers.extend(admitted)
        result.outcomes.append(
            UnitOutcome(tag=unit.tag, status="ok", extracted=len(records), admitted=len(admitted))
        )
        LOGGER.info("%s: %d of %d offers admitted", unit.tag, len(admitted), len(records))

    return result
