"""Positioning strategies that ready the shared session before each extraction."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
from typing import Any, Callable, List, Mapping, Optional, Protocol, Sequence

from .config import SearchConfig
from .models import SINGLE_QUERY_TAG, QueryUnit

LOGGER = logging.getLogger(__name__)

AUTONOMOUS_TAG = "autonomous"


class UnitError(RuntimeError):
    """A query unit could not be completed."""


class PositioningError(UnitError):
    """The interaction agent could not reach or ready the target view."""


class ExtractionError(UnitError):
    """The extractor could not read the positioned view."""


class InteractionAgent(Protocol):
    async def navigate(self, url: str) -> None:
        ...

    async def perform_instruction(self, instruction: str) -> None:
        ...

    async def run_autonomous_task(self, goal: str) -> None:
        ...


class Extractor(Protocol):
    async def extract(
        self, instruction: str, shape: Mapping[str, str], limit: Optional[int] = None
    ) -> Sequence[Mapping[str, Any]]:
        ...


class PositioningStrategy(Protocol):
    async def position(self, agent: InteractionAgent, unit: QueryUnit) -> None:
        ...


@dataclass(frozen=True)
class FixedInstructionStrategy:
    """Open the start page and replay the unit's instructions in order."""

    start_url: str

    async def position(self, agent: InteractionAgent, unit: QueryUnit) -> None:
        await agent.navigate(unit.url or self.start_url)
        for instruction in unit.instructions:
            LOGGER.debug("Performing instruction for %s: %s", unit.tag, instruction)
            await agent.perform_instruction(instruction)


@dataclass(frozen=True)
class PerDateUrlStrategy:
    """Navigate straight to a search URL built for the unit's departure date."""

    url_for_date: Callable[[date], str]

    async def position(self, agent: InteractionAgent, unit: QueryUnit) -> None:
        if unit.departure_date is None:
            raise PositioningError(f"Query unit {unit.tag} has no departure date")
        await agent.navigate(self.url_for_date(unit.departure_date))
        for instruction in unit.instructions:
            await agent.perform_instruction(instruction)


@dataclass(frozen=True)
class AutonomousGoalStrategy:
    """Hand the whole search over to the agent as a single goal."""

    start_url: str

    async def position(self, agent: InteractionAgent, unit: QueryUnit) -> None:
        if not unit.goal:
            raise PositioningError(f"Query unit {unit.tag} has no goal")
        await agent.navigate(unit.url or self.start_url)
        await agent.run_autonomous_task(unit.goal)


def default_goal(config: SearchConfig) -> str:
    """Goal text used when an autonomous search was requested without one."""

    constraints = config.constraints
    window = ""
    if config.start_date:
        end = config.end_date or config.start_date
        window = f" departing between {config.start_date:%B %d} and {end:%B %d}"
    return (
        f"Search for flights from {config.origin} to {config.destination}{window} "
        f"with no more than {constraints.max_stops} layovers, "
        f"then sort results by price"
    )


def build_query_units(config: SearchConfig) -> List[QueryUnit]:
    """Split a search into the units the aggregator processes one by one."""

    instructions = tuple(config.instructions)
    if config.mode == "range":
        return [
            QueryUnit(tag=day.isoformat(), departure_date=day, instructions=instructions)
            for day in config.departure_dates()
        ]
    if config.mode == "autonomous":
        return [
            QueryUnit(
                tag=AUTONOMOUS_TAG,
                departure_date=config.start_date,
                url=config.start_url,
                goal=config.goal or default_goal(config),
            )
        ]
    if not instructions:
        instructions = (f"Search for flights from {config.origin} to {config.destination}",)
    return [
        QueryUnit(
            tag=SINGLE_QUERY_TAG,
            departure_date=config.start_date,
            url=config.start_url,
            instructions=instructions,
        )
    ]


def strategy_for(config: SearchConfig, url_for_date: Callable[[date], str]) -> PositioningStrategy:
    """Pick the positioning strategy matching the configured search mode."""

    if config.mode == "range":
        return PerDateUrlStrategy(url_for_date)
    if config.mode == "autonomous":
        return AutonomousGoalStrategy(config.start_url)
    return FixedInstructionStrategy(config.start_url)
