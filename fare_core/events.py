"""Run summary events and the sinks that receive them."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Protocol, Sequence

import requests

from .models import CanonicalOffer

LOGGER = logging.getLogger(__name__)

EVENT_CATEGORY = "flight-search"


class EventSink(Protocol):
    def emit(self, event: Dict[str, Any]) -> None:
        ...


class LoggingEventSink:
    """Writes events to a logger, payload attached as ``extra``."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger("fare_core.events.run")

    def emit(self, event: Dict[str, Any]) -> None:
        self.logger.info(
            "[%s] %s",
            event["category"],
            event["message"],
            extra={"category": event["category"], "auxiliary": event.get("auxiliary", {})},
        )


class WebhookEventSink:
    """POSTs events as JSON; delivery failures are logged, never raised."""

    def __init__(self, url: Optional[str], timeout: float = 10) -> None:
        self.url = url
        self.timeout = timeout

    def emit(self, event: Dict[str, Any]) -> None:
        if not self.url:
            LOGGER.info("Skipping event delivery (webhook URL missing).")
            return
        try:
            response = requests.post(self.url, json=event, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:  # pragma: no cover - network safeguard
            LOGGER.error("Failed to deliver run event: %s", exc)


def build_run_event(offers: Sequence[CanonicalOffer]) -> Dict[str, Any]:
    """One event per run: count in the message, ranked offers attached."""

    payload = [offer.to_dict() for offer in offers]
    return {
        "category": EVENT_CATEGORY,
        "message": f"Retrieved {len(payload)} flights",
        "auxiliary": {
            "flights": {
                "value": json.dumps(payload),
                "type": "object",
            },
        },
    }


def emit_run_event(sink: EventSink, offers: Sequence[CanonicalOffer]) -> Dict[str, Any]:
    event = build_run_event(offers)
    sink.emit(event)
    return event
