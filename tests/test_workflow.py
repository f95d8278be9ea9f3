"""Tests for the end-to-end search workflow with stubbed browser collaborators."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
import threading
from typing import Any, Dict, List, Mapping, Optional

import pytest

import fare_core.__main__ as cli
import fare_core.workflow as workflow_module
from fare_core.aggregator import SweepAborted
from fare_core.config import SearchConfig, create_config_from_text
from fare_core.models import FilterConstraints
from fare_core.sources import build_search_url
from fare_core.workflow import run_flight_search, run_search, validate_config


def _record(price: str, airline: str = "Air Canada", layovers: Optional[List[str]] = None) -> Dict[str, Any]:
    return {
        "airlines": airline,
        "price": price,
        "totalDuration": "16 hr 5 min",
        "stops": 1,
        "layovers": layovers or ["2 hr 30 min"],
    }


class _StubAgent:
    def __init__(self) -> None:
        self.current_url: Optional[str] = None
        self.instructions: List[str] = []

    async def navigate(self, url: str) -> None:
        self.current_url = url

    async def perform_instruction(self, instruction: str) -> None:
        self.instructions.append(instruction)

    async def run_autonomous_task(self, goal: str) -> None:
        self.instructions.append(goal)


class _StubExtractor:
    def __init__(self, agent: _StubAgent, records_by_url: Mapping[str, List[Dict[str, Any]]]) -> None:
        self.agent = agent
        self.records_by_url = records_by_url

    async def extract(self, instruction: str, shape: Mapping[str, str], limit: Optional[int] = None):
        return list(self.records_by_url.get(self.agent.current_url or "", []))


class _CapturingSink:
    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []

    def emit(self, event: Dict[str, Any]) -> None:
        self.events.append(event)


def _range_config(**overrides: Any) -> SearchConfig:
    fields: Dict[str, Any] = dict(
        origin="Toronto",
        destination="Bangalore",
        start_date=date(2025, 9, 27),
        end_date=date(2025, 9, 29),
        constraints=FilterConstraints(max_stops=2, max_total_minutes=1800, max_layover_minutes=300),
    )
    fields.update(overrides)
    return SearchConfig(**fields)


def _url(day: int) -> str:
    return build_search_url("Toronto", "Bangalore", date(2025, 9, day))


@pytest.fixture
def anyio_backend() -> str:
    """Restrict anyio tests to the asyncio backend for deterministic behaviour."""

    return "asyncio"


@pytest.mark.anyio
async def test_range_search_ranks_offers_across_dates() -> None:
    agent = _StubAgent()
    extractor = _StubExtractor(
        agent,
        {
            _url(27): [_record("$500"), _record("$900", layovers=["6 hr"])],
            _url(28): [],
            _url(29): [_record("$300", airline="Emirates")],
        },
    )
    sink = _CapturingSink()

    result = await run_search(_range_config(), agent, extractor, sink=sink)

    assert [(offer.price, offer.source_tag) for offer in result.offers] == [
        (300.0, "2025-09-29"),
        (500.0, "2025-09-27"),
    ]
    assert [outcome.status for outcome in result.outcomes] == ["ok", "empty", "ok"]
    assert result.summary["count"] == 2
    assert result.warnings == []
    assert "Emirates" in result.report
    assert sink.events[0]["message"] == "Retrieved 2 flights"
    assert not result.cancelled


@pytest.mark.anyio
async def test_failed_units_become_warnings() -> None:
    class _FlakyAgent(_StubAgent):
        async def navigate(self, url: str) -> None:
            if url == _url(28):
                from fare_core.positioning import PositioningError

                raise PositioningError("Flight listing never appeared on the page")
            await super().navigate(url)

    agent = _FlakyAgent()
    extractor = _StubExtractor(agent, {_url(27): [_record("$500")]})

    result = await run_search(_range_config(), agent, extractor, sink=_CapturingSink())

    assert result.warnings == ["1 of 3 searches failed: 2025-09-28."]
    assert "WARNING: 1 of 3 searches failed" in result.report


@pytest.mark.anyio
async def test_abort_policy_propagates() -> None:
    class _FailingExtractor(_StubExtractor):
        async def extract(self, instruction, shape, limit=None):  # type: ignore[override]
            from fare_core.positioning import ExtractionError

            raise ExtractionError("Could not read result cards")

    agent = _StubAgent()
    with pytest.raises(SweepAborted):
        await run_search(
            _range_config(failure_policy="abort"), agent, _FailingExtractor(agent, {}), sink=_CapturingSink()
        )


@pytest.mark.anyio
async def test_single_search_replays_the_request() -> None:
    config = create_config_from_text("nonstop flights from Paris to Rome")
    agent = _StubAgent()
    extractor = _StubExtractor(
        agent, {config.start_url: [{"airlines": "ITA", "price": "€89", "totalDuration": "2h 5m", "stops": 0}]}
    )

    result = await run_search(config, agent, extractor, sink=_CapturingSink())

    assert agent.instructions == ["nonstop flights from Paris to Rome"]
    assert [offer.source_tag for offer in result.offers] == ["single"]


@pytest.mark.anyio
async def test_cancelled_search_is_flagged() -> None:
    cancel_event = threading.Event()
    cancel_event.set()
    agent = _StubAgent()

    result = await run_search(
        _range_config(), agent, _StubExtractor(agent, {}), cancel_event=cancel_event, sink=_CapturingSink()
    )

    assert result.cancelled
    assert result.offers == []
    assert result.to_dict()["cancelled"] is True
    assert result.warnings == ["Search cancelled before 2025-09-27, 2025-09-28, 2025-09-29."]


@pytest.mark.anyio
async def test_sync_entry_point_refuses_a_running_loop(monkeypatch) -> None:
    opened: List[bool] = []

    @asynccontextmanager
    async def fake_open_session(session_config):
        opened.append(True)
        yield None

    monkeypatch.setattr(workflow_module, "open_session", fake_open_session)

    with pytest.raises(RuntimeError, match="run_flight_search_async"):
        run_flight_search(_range_config(), sink=_CapturingSink())
    assert opened == []


def test_validate_config_rejects_incomplete_searches() -> None:
    with pytest.raises(ValueError):
        validate_config(SearchConfig(origin="", destination="Rome", start_date=date(2025, 9, 27)))
    with pytest.raises(ValueError):
        validate_config(SearchConfig(origin="Paris", destination="Rome"))
    with pytest.raises(ValueError):
        validate_config(SearchConfig(origin="", destination="", mode="single"))


def test_run_flight_search_opens_and_releases_the_session(monkeypatch) -> None:
    released: List[bool] = []
    agents: List[_StubAgent] = []

    class _Session:
        page = object()

    @asynccontextmanager
    async def fake_open_session(session_config):
        try:
            yield _Session()
        finally:
            released.append(True)

    def fake_agent(page):
        agent = _StubAgent()
        agents.append(agent)
        return agent

    def fake_extractor(page):
        return _StubExtractor(agents[-1], {_url(27): [_record("$410")]})

    monkeypatch.setattr(workflow_module, "open_session", fake_open_session)
    monkeypatch.setattr(workflow_module, "PlaywrightInteractionAgent", fake_agent)
    monkeypatch.setattr(workflow_module, "PlaywrightFlightExtractor", fake_extractor)

    result = run_flight_search(_range_config(), sink=_CapturingSink())

    assert [offer.price for offer in result.offers] == [410.0]
    assert released == [True]


def test_cli_prints_report(monkeypatch, capsys) -> None:
    captured: List[SearchConfig] = []

    class _Result:
        report = "Flights\n======="

    def fake_run(config):
        captured.append(config)
        return _Result()

    monkeypatch.setattr(cli, "run_flight_search", fake_run)

    exit_code = cli.main(["flights", "from", "Oslo", "to", "Lima", "on", "2025-11-04"])

    assert exit_code == 0
    assert captured[0].origin == "Oslo"
    assert "Flights" in capsys.readouterr().out


def test_cli_without_arguments_prints_usage(capsys) -> None:
    assert cli.main([]) == 2
    assert "usage" in capsys.readouterr().out
