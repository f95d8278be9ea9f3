"""Google Flights interaction and extraction on top of Playwright."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote_plus

from fare_core.positioning import ExtractionError, PositioningError
from .playwright_common import (
    click_first,
    collect_cards,
    dismiss_common_banners,
    extract_attribute,
    extract_text,
)

try:  # pragma: no cover - optional dependency during development
    from playwright.async_api import Page
except Exception:  # pragma: no cover
    Page = Any  # type: ignore

LOGGER = logging.getLogger(__name__)

GOOGLE_FLIGHTS_URL = "https://www.google.com/travel/flights"

PRICE_PATTERN = re.compile(r"(?:[A-Z]{2}\$|[$€£₹¥])\s?\d[\d,]*(?:\.\d+)?")
PRICE_WORDS_PATTERN = re.compile(
    r"\bFrom\s+(\d[\d,]*(?:\.\d+)?\s+[A-Za-z ]*?(?:dollars|euros|pounds|rupees|yen))\b", re.IGNORECASE
)
TOTAL_DURATION_PATTERN = re.compile(r"Total duration\s+([^.]+)\.", re.IGNORECASE)
DURATION_PATTERN = re.compile(r"\b(\d+\s*hr?s?(?:\s*\d+\s*min)?|\d+\s*min)\b")
STOPS_PATTERN = re.compile(r"(\d+)\s+stops?\b", re.IGNORECASE)
NONSTOP_PATTERN = re.compile(r"\bnon-?stop\b", re.IGNORECASE)
LAYOVER_PATTERN = re.compile(
    r"is an?\s+(\d+\s*(?:hr|min)[^.]*?)\s+(?:overnight\s+)?layover", re.IGNORECASE
)
AIRLINE_PATTERN = re.compile(r"flights? with\s+([^.]+?)\.", re.IGNORECASE)
DEPARTURE_PATTERN = re.compile(r"\bon\s+((?:[A-Z][a-z]+day,\s+)?[A-Z][a-z]+\s+\d{1,2})\b")


@dataclass(frozen=True)
class ResultSelectors:
    """Selectors describing how to read flight result cards."""

    cards: Sequence[str]
    airline: Sequence[str]
    price: Sequence[str]
    duration: Sequence[str]
    stops: Sequence[str]
    summary: Sequence[str] = ("[aria-label]",)
    sort_button: Sequence[str] = ()
    sort_by_price: Sequence[str] = ()


GOOGLE_FLIGHTS_RESULTS = ResultSelectors(
    cards=("li.pIav2d", "ul.Rk10dc > li", "[role='main'] li[role='listitem']"),
    airline=(".sSHqwe.tPgKwe.ogfYpf span", ".Ir0Voe .sSHqwe", "[data-testid='airline']"),
    price=(".YMlIz.FpEdX span", ".FpEdX span", "[data-testid='price']"),
    duration=(".gvkrdb", ".Ak5kof > div", "[data-testid='duration']"),
    stops=(".EfT7Ae .ogfYpf", ".BbR8Ec .ogfYpf", "[data-testid='stops']"),
    summary=(".JMc5Xc", "[aria-label]"),
    sort_button=(
        "button[aria-label*='Sort by']",
        "button:has-text('Sort by')",
    ),
    sort_by_price=(
        "li[role='menuitemradio']:has-text('Price')",
        "[role='menuitemradio']:has-text('Price')",
    ),
)


def build_query_url(query: str, base_url: str = GOOGLE_FLIGHTS_URL) -> str:
    """Turn a natural-language flight query into a Google Flights URL."""

    return f"{base_url}?q={quote_plus(query.strip())}&hl=en"


def build_search_url(origin: str, destination: str, departure: date) -> str:
    """Search URL for one-way flights on a single departure date."""

    return build_query_url(f"flights from {origin} to {destination} on {departure.isoformat()} one way")


def parse_stops(text: Optional[str]) -> Optional[int]:
    if not text:
        return None
    if NONSTOP_PATTERN.search(text):
        return 0
    match = STOPS_PATTERN.search(text)
    return int(match.group(1)) if match else None


def parse_card_text(text: str) -> Dict[str, Any]:
    """Read a flight record out of a result card's accessible description.

    Google Flights describes every result in one sentence-based label
    ("From 1234 Canadian dollars. 1 stop flight with Air Canada. ...
    Total duration 16 hr 5 min. Layover (1 of 1) is a 2 hr 30 min layover
    at ..."). Fields that cannot be found are left out.
    """

    record: Dict[str, Any] = {}

    airline_match = AIRLINE_PATTERN.search(text)
    if airline_match:
        record["airlines"] = airline_match.group(1).strip()

    price_match = PRICE_PATTERN.search(text)
    if price_match:
        record["price"] = price_match.group().strip()
    else:
        words_match = PRICE_WORDS_PATTERN.search(text)
        if words_match:
            record["price"] = words_match.group(1).strip()

    total_match = TOTAL_DURATION_PATTERN.search(text)
    if total_match:
        record["totalDuration"] = total_match.group(1).strip()
    else:
        duration_match = DURATION_PATTERN.search(text)
        if duration_match:
            record["totalDuration"] = duration_match.group(1).strip()

    stops = parse_stops(text)
    if stops is not None:
        record["stops"] = stops

    layovers = [match.strip() for match in LAYOVER_PATTERN.findall(text)]
    if layovers:
        record["layovers"] = layovers

    departure_match = DEPARTURE_PATTERN.search(text)
    if departure_match:
        record["departureDate"] = departure_match.group(1)

    return record


class UngroundedInstruction(PositioningError):
    """No browser action is known for a natural-language instruction."""


class PlaywrightInteractionAgent:
    """Positions a Playwright page on Google Flights.

    Instructions are matched against a small table of known intents:
    searches become ``?q=`` URLs and "sort by price" clicks the sort menu.
    """

    _SEARCH_PATTERN = re.compile(r"^\s*(?:please\s+)?search\b|\bflights?\s+from\b", re.IGNORECASE)
    _SEARCH_PREFIX_PATTERN = re.compile(r"^\s*(?:please\s+)?search\s+(?:for\s+)?", re.IGNORECASE)
    _SORT_PATTERN = re.compile(r"\bsort\b.*\bprice\b", re.IGNORECASE)
    _DISMISS_PATTERN = re.compile(r"\b(?:dismiss|close|accept)\b.*\b(?:cookie|banner|dialog|consent)", re.IGNORECASE)
    _STEP_SPLIT_PATTERN = re.compile(r"[.;]\s+|,?\s*\bthen\b\s*", re.IGNORECASE)

    def __init__(
        self,
        page: Page,
        selectors: ResultSelectors = GOOGLE_FLIGHTS_RESULTS,
        listing_timeout_ms: int = 20_000,
    ) -> None:
        self.page = page
        self.selectors = selectors
        self.listing_timeout_ms = listing_timeout_ms

    async def navigate(self, url: str) -> None:
        try:
            await self.page.goto(url, wait_until="domcontentloaded")
        except Exception as exc:
            raise PositioningError(f"Could not open {url}: {exc}") from exc
        await dismiss_common_banners(self.page)
        if "q=" in url:
            await self._await_listing()

    async def _await_listing(self) -> None:
        try:
            await self.page.wait_for_selector(", ".join(self.selectors.cards), timeout=self.listing_timeout_ms)
        except Exception as exc:
            raise PositioningError("Flight listing never appeared on the page") from exc

    async def perform_instruction(self, instruction: str) -> None:
        grounded = False
        if self._SEARCH_PATTERN.search(instruction):
            query = self._SEARCH_PREFIX_PATTERN.sub("", instruction, count=1)
            await self.navigate(build_query_url(query))
            grounded = True
        if self._DISMISS_PATTERN.search(instruction):
            await dismiss_common_banners(self.page)
            grounded = True
        if self._SORT_PATTERN.search(instruction):
            await self._sort_by_price()
            grounded = True
        if not grounded:
            raise UngroundedInstruction(f"No browser action matches instruction: {instruction!r}")

    async def _sort_by_price(self) -> None:
        if not await click_first(self.page, self.selectors.sort_button):
            raise PositioningError("Could not open the sort menu")
        if not await click_first(self.page, self.selectors.sort_by_price):
            raise PositioningError("Could not select sorting by price")
        try:
            await self.page.wait_for_load_state("networkidle")
        except Exception:
            LOGGER.debug("Page did not settle after sorting by price")

    async def run_autonomous_task(self, goal: str) -> None:
        """Split a goal into steps and perform each step that can be grounded."""

        grounded = 0
        for step in self._STEP_SPLIT_PATTERN.split(goal):
            if not step.strip():
                continue
            try:
                await self.perform_instruction(step)
            except UngroundedInstruction as exc:
                LOGGER.info("Skipping step without a known action: %s", exc)
                continue
            grounded += 1
        if not grounded:
            raise PositioningError(f"None of the steps in the goal could be performed: {goal!r}")


class PlaywrightFlightExtractor:
    """Reads flight result cards from the positioned page.

    The field contract is fixed to the flight shape; ``instruction`` and
    ``shape`` are accepted for interface compatibility and logged only.
    """

    def __init__(self, page: Page, selectors: ResultSelectors = GOOGLE_FLIGHTS_RESULTS) -> None:
        self.page = page
        self.selectors = selectors

    async def extract(
        self, instruction: str, shape: Mapping[str, str], limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        LOGGER.debug("Extracting %s with fields %s", instruction, ", ".join(shape))
        try:
            cards = await collect_cards(self.page, self.selectors.cards)
        except Exception as exc:
            raise ExtractionError(f"Could not read result cards: {exc}") from exc

        records: List[Dict[str, Any]] = []
        for card in cards:
            if limit is not None and len(records) >= limit:
                break
            record = await self._read_card(card)
            if record is not None:
                records.append(record)
        return records

    async def _read_card(self, card: Any) -> Optional[Dict[str, Any]]:
        summary = await extract_attribute(card, self.selectors.summary, "aria-label")
        if not summary:
            try:
                summary = await card.inner_text()
            except Exception:
                summary = ""
        parsed = parse_card_text(summary or "")

        airline = await extract_text(card, self.selectors.airline) or parsed.get("airlines")
        price = await extract_text(card, self.selectors.price) or parsed.get("price")
        duration = await extract_text(card, self.selectors.duration) or parsed.get("totalDuration")
        stops = parse_stops(await extract_text(card, self.selectors.stops))
        if stops is None:
            stops = parsed.get("stops", 0)

        if not airline and not price:
            return None

        record: Dict[str, Any] = {
            "airlines": airline or "",
            "price": price or "",
            "totalDuration": duration or "",
            "stops": stops,
        }
        if "layovers" in parsed:
            record["layovers"] = parsed["layovers"]
        if "departureDate" in parsed:
            record["departureDate"] = parsed["departureDate"]
        return record
