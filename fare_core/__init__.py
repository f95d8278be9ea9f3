"""Flight offer normalisation, aggregation and ranking."""
from .aggregator import SweepAborted, aggregate
from .config import SearchConfig, SessionConfig, create_config, create_config_from_form, create_config_from_text
from .models import CanonicalOffer, FilterConstraints, QueryUnit, RawOffer
from .processor import admit, normalize, parse_duration, rank
from .workflow import SearchResult, run_flight_search, run_flight_search_async, run_search, validate_config

__all__ = [
    "CanonicalOffer",
    "FilterConstraints",
    "QueryUnit",
    "RawOffer",
    "SearchConfig",
    "SearchResult",
    "SessionConfig",
    "SweepAborted",
    "admit",
    "aggregate",
    "create_config",
    "create_config_from_form",
    "create_config_from_text",
    "normalize",
    "parse_duration",
    "rank",
    "run_flight_search",
    "run_flight_search_async",
    "run_search",
    "validate_config",
]
