"""Command line entry point: ``python -m fare_core "flights from ... to ..."``."""
from __future__ import annotations

import logging
import sys

from .aggregator import SweepAborted
from .config import create_config_from_text
from .workflow import run_flight_search

LOGGER = logging.getLogger("fare_core")


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print('usage: python -m fare_core "flights from Toronto to Bangalore between Sep 27 and Oct 2"')
        return 2
    logging.basicConfig(level=logging.INFO)

    config = create_config_from_text(" ".join(args))
    try:
        result = run_flight_search(config)
    except SweepAborted as exc:
        LOGGER.error("Search aborted: %s", exc)
        return 1
    except ValueError as exc:
        LOGGER.error("Invalid search: %s", exc)
        return 2
    print(result.report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
