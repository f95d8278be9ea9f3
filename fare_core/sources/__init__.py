"""Playwright-backed collaborators for the aggregation engine."""
from .google_flights import (
    GOOGLE_FLIGHTS_RESULTS,
    PlaywrightFlightExtractor,
    PlaywrightInteractionAgent,
    ResultSelectors,
    build_query_url,
    build_search_url,
)
from .playwright_common import BrowserSession, open_session

__all__ = [
    "BrowserSession",
    "GOOGLE_FLIGHTS_RESULTS",
    "PlaywrightFlightExtractor",
    "PlaywrightInteractionAgent",
    "ResultSelectors",
    "build_query_url",
    "build_search_url",
    "open_session",
]
