"""Reusable Playwright helpers and the scoped browsing session."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
import logging
from typing import Any, AsyncIterator, List, Optional, Sequence, Tuple

import requests

from fare_core.config import SessionConfig

try:  # pragma: no cover - optional dependency during development
    from playwright.async_api import BrowserContext, Page, async_playwright
except Exception:  # pragma: no cover
    BrowserContext = Page = Any  # type: ignore
    async_playwright = None  # type: ignore

LOGGER = logging.getLogger(__name__)

BROWSERBASE_API_URL = "https://api.browserbase.com/v1/sessions"
BROWSERBASE_LIVE_URL = "https://browserbase.com/sessions/{session_id}"


@dataclass
class BrowserSession:
    """The single stateful browsing context shared by every query unit."""

    page: Page
    context: BrowserContext
    session_id: Optional[str] = None


def create_browserbase_session(config: SessionConfig) -> Tuple[str, str]:
    """Provision a remote browser and return its id and CDP connect URL."""

    if not config.browserbase_api_key or not config.browserbase_project_id:
        raise RuntimeError("BROWSERBASE_API_KEY and BROWSERBASE_PROJECT_ID are required for env=BROWSERBASE")
    response = requests.post(
        BROWSERBASE_API_URL,
        headers={"X-BB-API-Key": config.browserbase_api_key},
        json={"projectId": config.browserbase_project_id},
        timeout=30,
    )
    response.raise_for_status()
    payload = response.json()
    return payload["id"], payload["connectUrl"]


@asynccontextmanager
async def open_session(config: SessionConfig) -> AsyncIterator[BrowserSession]:
    """Acquire the browsing session for one run and always release it."""

    if async_playwright is None:
        raise RuntimeError(
            "Playwright is not installed. Install playwright and run 'playwright install' to enable searching."
        )

    async with async_playwright() as p:  # pragma: no cover - network heavy
        session_id: Optional[str] = None
        if config.env == "BROWSERBASE":
            session_id, connect_url = await asyncio.to_thread(create_browserbase_session, config)
            browser = await p.chromium.connect_over_cdp(connect_url)
            LOGGER.info(
                "View this session live in your browser: %s",
                BROWSERBASE_LIVE_URL.format(session_id=session_id),
            )
            context = browser.contexts[0] if browser.contexts else await browser.new_context(locale=config.locale)
        else:
            browser = await p.chromium.launch(headless=config.headless)
            context = await browser.new_context(locale=config.locale)
        context.set_default_timeout(config.navigation_timeout_ms)
        page = context.pages[0] if context.pages else await context.new_page()
        try:
            yield BrowserSession(page=page, context=context, session_id=session_id)
        finally:
            await browser.close()


async def dismiss_common_banners(page: Page) -> None:
    """Attempt to dismiss cookie/consent banners that block results."""

    selectors = [
        "button:has-text('Accept all')",
        "button:has-text('I agree')",
        "button:has-text('Reject all')",
        "button:has-text('Accept')",
    ]
    for selector in selectors:
        try:
            await page.locator(selector).first.click(timeout=1500)
            break
        except Exception:
            continue


async def click_first(page: Page, selectors: Sequence[str], timeout: int = 3000) -> bool:
    """Click the first selector that resolves; ``False`` when none did."""

    for selector in selectors:
        try:
            await page.locator(selector).first.click(timeout=timeout)
            return True
        except Exception:
            continue
    return False


async def extract_text(handle: Any, selectors: Sequence[str]) -> Optional[str]:
    """Return the first non-empty text found using the provided selectors."""

    for selector in selectors:
        try:
            element = await handle.query_selector(selector)
        except Exception:
            continue
        if element is None:
            continue
        try:
            text = await element.inner_text()
        except Exception:
            try:
                text = await element.text_content()
            except Exception:
                text = None
        if text:
            stripped = text.strip()
            if stripped:
                return stripped
    return None


async def extract_attribute(
    handle: Any, selectors: Sequence[str], attribute: str
) -> Optional[str]:
    """Return the first non-empty attribute value for the selectors provided."""

    for selector in selectors:
        try:
            element = await handle.query_selector(selector)
        except Exception:
            continue
        if element is None:
            continue
        try:
            value = await element.get_attribute(attribute)
        except Exception:
            value = None
        if value:
            return value
    return None


async def collect_cards(page: Page, selectors: Sequence[str]) -> List[Any]:
    """Return result cards by iterating through fallback selectors."""

    for selector in selectors:
        try:
            cards = await page.query_selector_all(selector)
        except Exception:
            continue
        if cards:
            return cards
    return []
