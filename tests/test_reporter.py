import json
import logging
import unittest
from datetime import date
from unittest import mock

from fare_core.config import SearchConfig
from fare_core.events import (
    EVENT_CATEGORY,
    LoggingEventSink,
    WebhookEventSink,
    build_run_event,
    emit_run_event,
)
from fare_core.models import CanonicalOffer, FilterConstraints, UnitOutcome
from fare_core.reporter import build_report, format_minutes, generate_offer_table


def _offer(price: float, tag: str, airline: str = "Air Canada") -> CanonicalOffer:
    return CanonicalOffer(
        airline=airline,
        price=price,
        total_minutes=965,
        stops=1,
        layover_minutes=(150,),
        source_tag=tag,
        price_text=f"${price:.0f}",
    )


CONFIG = SearchConfig(
    origin="Toronto",
    destination="Bangalore",
    start_date=date(2025, 9, 27),
    end_date=date(2025, 10, 2),
    constraints=FilterConstraints(max_stops=2, max_total_minutes=1800, max_layover_minutes=300),
)


class _CapturingSink:
    def __init__(self) -> None:
        self.events = []

    def emit(self, event) -> None:
        self.events.append(event)


class FormatTests(unittest.TestCase):
    def test_format_minutes(self) -> None:
        self.assertEqual(format_minutes(45), "45m")
        self.assertEqual(format_minutes(300), "5h")
        self.assertEqual(format_minutes(465), "7h 45m")

    def test_empty_table(self) -> None:
        table = generate_offer_table([])
        self.assertIn("| No flights |", table)


class ReportTests(unittest.TestCase):
    def test_report_lists_ranked_offers_and_unit_outcomes(self) -> None:
        offers = [_offer(300.0, "2025-09-28", "Emirates"), _offer(500.0, "2025-09-27")]
        outcomes = [
            UnitOutcome(tag="2025-09-27", status="ok", extracted=3, admitted=1),
            UnitOutcome(tag="2025-09-28", status="ok", extracted=2, admitted=1),
            UnitOutcome(tag="2025-09-29", status="failed", error="Flight listing never appeared"),
            UnitOutcome(tag="2025-09-30", status="empty"),
        ]

        report = build_report(CONFIG, offers, outcomes, warnings=["1 of 4 searches failed: 2025-09-29."])

        self.assertTrue(report.startswith("Flights\n======="))
        self.assertIn("WARNING: 1 of 4 searches failed", report)
        self.assertIn("Route: Toronto → Bangalore", report)
        self.assertIn("Departure: Sep 27, 2025 – Oct 02, 2025", report)
        self.assertIn("Max layover: 5h", report)
        self.assertIn("- 2 flights found", report)
        self.assertIn("- Cheapest flight: 300.00", report)
        self.assertIn("- 2025-09-27: 1 of 3 flights kept, from 500.00", report)
        self.assertIn("- 2025-09-29: failed (Flight listing never appeared)", report)
        self.assertIn("- 2025-09-30: no flights found", report)
        self.assertIn("| Emirates | $300 | 16h 5m | 1 | 2h 30m | 2025-09-28 |", report)

        listing = json.loads(report.split("All flights:\n", 1)[1])
        self.assertEqual([entry["numericPrice"] for entry in listing], [300.0, 500.0])

    def test_report_without_offers(self) -> None:
        report = build_report(CONFIG, [])
        self.assertIn("- No flights found", report)
        self.assertNotIn("Searches:", report)


class RunEventTests(unittest.TestCase):
    def test_event_carries_count_and_serialised_offers(self) -> None:
        offers = [_offer(300.0, "2025-09-28"), _offer(500.0, "2025-09-27")]
        sink = _CapturingSink()

        event = emit_run_event(sink, offers)

        self.assertEqual(sink.events, [event])
        self.assertEqual(event["category"], EVENT_CATEGORY)
        self.assertEqual(event["message"], "Retrieved 2 flights")
        flights = event["auxiliary"]["flights"]
        self.assertEqual(flights["type"], "object")
        self.assertEqual([entry["sourceTag"] for entry in json.loads(flights["value"])], ["2025-09-28", "2025-09-27"])

    def test_empty_run_still_produces_an_event(self) -> None:
        event = build_run_event([])
        self.assertEqual(event["message"], "Retrieved 0 flights")
        self.assertEqual(json.loads(event["auxiliary"]["flights"]["value"]), [])

    def test_logging_sink_attaches_payload(self) -> None:
        logger = logging.getLogger("tests.run_events")
        with self.assertLogs(logger, level="INFO") as captured:
            LoggingEventSink(logger).emit(build_run_event([_offer(300.0, "single")]))

        self.assertIn("[flight-search] Retrieved 1 flights", captured.output[0])
        self.assertIn("flights", captured.records[0].auxiliary)

    def test_webhook_sink_posts_event(self) -> None:
        event = build_run_event([])
        with mock.patch("fare_core.events.requests.post") as post:
            WebhookEventSink("https://hooks.test/run").emit(event)
        post.assert_called_once_with("https://hooks.test/run", json=event, timeout=10)

    def test_webhook_sink_without_url_skips_delivery(self) -> None:
        with mock.patch("fare_core.events.requests.post") as post:
            WebhookEventSink(None).emit(build_run_event([]))
        post.assert_not_called()


if __name__ == "__main__":
    unittest.main()
