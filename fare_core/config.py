"""Configuration helpers for the flight sweep."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
import os
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .models import FilterConstraints
from .processor import parse_duration

_DATE_FORMATS = ["%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y", "%d.%m.%y", "%b %d %Y"]
_YEARLESS_FORMATS = ["%b %d"]

MODES = ("single", "range", "autonomous")
FAILURE_POLICIES = ("skip", "abort")
ENVIRONMENTS = ("LOCAL", "BROWSERBASE")

DEFAULT_START_URL = "https://www.google.com/travel/flights?hl=en"
DEFAULT_EXTRACT_INSTRUCTION = (
    "Extract each flight option shown including airline names, price, total travel time, "
    "number of layovers, layover durations, and departure date"
)


@dataclass
class SessionConfig:
    """Everything needed to open the browsing session for one run."""

    env: str = "LOCAL"
    headless: bool = True
    locale: str = "en-US"
    navigation_timeout_ms: int = 30_000
    browserbase_api_key: Optional[str] = None
    browserbase_project_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.env = self.env.upper()
        if self.env not in ENVIRONMENTS:
            raise ValueError(f"Unknown session environment: {self.env}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SessionConfig":
        """Read the session settings from ``FARE_*`` environment variables."""

        environ = os.environ if environ is None else environ
        return cls(
            env=environ.get("FARE_ENV", "LOCAL"),
            headless=_parse_bool(environ.get("FARE_HEADLESS"), default=True),
            locale=environ.get("FARE_LOCALE", "en-US"),
            navigation_timeout_ms=int(environ.get("FARE_NAVIGATION_TIMEOUT_MS") or 30_000),
            browserbase_api_key=environ.get("BROWSERBASE_API_KEY") or None,
            browserbase_project_id=environ.get("BROWSERBASE_PROJECT_ID") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serialisable version without the secrets."""

        return {
            "env": self.env,
            "headless": self.headless,
            "locale": self.locale,
            "navigation_timeout_ms": self.navigation_timeout_ms,
        }


@dataclass
class SearchConfig:
    """Canonical configuration used by the search workflow."""

    origin: str
    destination: str
    mode: str = "range"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    constraints: FilterConstraints = field(default_factory=FilterConstraints)
    instructions: List[str] = field(default_factory=list)
    goal: Optional[str] = None
    start_url: str = DEFAULT_START_URL
    extract_instruction: str = DEFAULT_EXTRACT_INSTRUCTION
    max_records_per_unit: int = 10
    unit_timeout: float = 180.0
    failure_policy: Optional[str] = None
    session: SessionConfig = field(default_factory=SessionConfig)
    notes: str = ""
    raw_request: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.mode not in MODES:
            raise ValueError(f"Unknown search mode: {self.mode}")
        if self.failure_policy is not None and self.failure_policy not in FAILURE_POLICIES:
            raise ValueError(f"Unknown failure policy: {self.failure_policy}")

    @property
    def effective_failure_policy(self) -> str:
        """Range sweeps skip failed dates; the other modes have nothing left to do."""

        if self.failure_policy:
            return self.failure_policy
        return "skip" if self.mode == "range" else "abort"

    def departure_dates(self) -> List[date]:
        """Every date of the departure window, both ends included."""

        if self.start_date is None:
            return []
        end = self.end_date or self.start_date
        if end < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return [self.start_date + timedelta(days=offset) for offset in range((end - self.start_date).days + 1)]

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serialisable version of the configuration."""

        return {
            "origin": self.origin,
            "destination": self.destination,
            "mode": self.mode,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "constraints": self.constraints.to_dict(),
            "instructions": list(self.instructions),
            "goal": self.goal,
            "max_records_per_unit": self.max_records_per_unit,
            "unit_timeout": self.unit_timeout,
            "failure_policy": self.effective_failure_policy,
            "session": self.session.to_dict(),
            "notes": self.notes,
        }


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_date(value: str | None, reference: Optional[date] = None) -> Optional[date]:
    if not value:
        return None
    cleaned = re.sub(r"(?<=\d)(?:st|nd|rd|th)\b", "", value.strip()).replace(",", "")
    cleaned = re.sub(r"\s+", " ", cleaned)
    # month names are matched on their first three letters ("Sept." -> "Sep")
    cleaned = re.sub(r"^([A-Za-z]{3})[A-Za-z]*\.?(?= )", r"\1", cleaned)
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    reference = reference or date.today()
    for fmt in _YEARLESS_FORMATS:
        try:
            parsed = datetime.strptime(f"{cleaned} {reference.year}", f"{fmt} %Y").date()
        except ValueError:
            continue
        # "September 27" typed in November means next year
        if parsed < reference:
            parsed = parsed.replace(year=reference.year + 1)
        return parsed
    return None


def _parse_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    match = re.search(r"\d+", str(value))
    return int(match.group()) if match else default


def _parse_hours(value: Any) -> Optional[int]:
    """Interpret ``"30"``, ``"30h"`` or ``"4h 30m"`` as a number of minutes."""

    if value is None or value == "":
        return None
    text = str(value).strip()
    if re.fullmatch(r"\d+(?:[.,]\d+)?", text):
        return int(round(float(text.replace(",", ".")) * 60))
    if not re.search(r"\d\s*[hm]", text, re.IGNORECASE):
        return None
    return parse_duration(text)


def _ensure_list(value: str | Iterable[str] | None) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        if not value:
            return []
        return [item.strip() for item in value.split(";") if item.strip()]
    return [item for item in value if item]


def _constraints_from_values(
    max_stops: Any = None, max_total: Any = None, max_layover: Any = None
) -> FilterConstraints:
    defaults = FilterConstraints()
    total_minutes = _parse_hours(max_total)
    layover_minutes = _parse_hours(max_layover)
    return FilterConstraints(
        max_stops=_parse_int(max_stops, defaults.max_stops),
        max_total_minutes=total_minutes if total_minutes is not None else defaults.max_total_minutes,
        max_layover_minutes=layover_minutes if layover_minutes is not None else defaults.max_layover_minutes,
    )


def create_config_from_form(
    form_data: Mapping[str, Any], session: Optional[SessionConfig] = None
) -> SearchConfig:
    """Create a configuration object from a form or JSON payload."""

    start_date = _parse_date(form_data.get("start_date") or form_data.get("departure_date"))
    end_date = _parse_date(form_data.get("end_date")) or start_date
    mode = str(form_data.get("mode") or ("range" if start_date else "single")).lower()

    config = SearchConfig(
        origin=str(form_data.get("origin") or "").strip(),
        destination=str(form_data.get("destination") or "").strip(),
        mode=mode,
        start_date=start_date,
        end_date=end_date,
        constraints=_constraints_from_values(
            form_data.get("max_stops"),
            form_data.get("max_total_hours"),
            form_data.get("max_layover_hours"),
        ),
        instructions=_ensure_list(form_data.get("instructions")),
        goal=(form_data.get("goal") or None),
        max_records_per_unit=_parse_int(form_data.get("max_records"), 10),
        unit_timeout=float(form_data.get("unit_timeout") or 180.0),
        failure_policy=(form_data.get("failure_policy") or None),
        session=session or SessionConfig.from_env(),
        notes=str(form_data.get("notes") or ""),
        raw_request=dict(form_data),
    )
    return config


_ROUTE_PATTERN = re.compile(
    r"from\s+(?P<origin>[a-z][a-z .\-]*?)\s+to\s+(?P<destination>[a-z][a-z .\-]*?)"
    r"(?=\s+(?:departing|leaving|on|between|from|with|in)\b|[,.]|$)",
    re.IGNORECASE,
)
_MONTH_NAMES = r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
_DATE_TOKEN = (
    r"(?:\d{4}-\d{2}-\d{2}|\d{1,2}[./]\d{1,2}[./]\d{2,4}|"
    + _MONTH_NAMES
    + r"\.?\s+\d{1,2}(?:st|nd|rd|th)?(?:,?\s+\d{4})?)"
)
_DATE_RANGE_PATTERN = re.compile(
    rf"(?:between\s+)?(?P<start>{_DATE_TOKEN})\s*(?:and|to|until|-|–|—)\s*(?P<end>{_DATE_TOKEN})",
    re.IGNORECASE,
)
_SINGLE_DATE_PATTERN = re.compile(rf"(?:on|departing)\s+(?P<date>{_DATE_TOKEN})", re.IGNORECASE)
_STOPS_PATTERN = re.compile(
    r"(?:no more than|at most|max(?:imum)?|up to)\s+(?P<count>\d+)\s+(?:layovers?|stops?)", re.IGNORECASE
)
_NONSTOP_PATTERN = re.compile(r"\b(?:non-?stop|direct)\b", re.IGNORECASE)
_LAYOVER_PATTERN = re.compile(
    r"layovers?\s+(?:is\s+)?(?:under|below|less than|at most)\s+(?P<hours>\d+(?:\.\d+)?)\s*(?:hours?|h)",
    re.IGNORECASE,
)
_TOTAL_PATTERN = re.compile(
    r"(?:total(?: travel)? time|total duration|travel time)\s+(?:is\s+)?(?:under|below|less than|at most)\s+"
    r"(?P<hours>\d+(?:\.\d+)?)\s*(?:hours?|h)",
    re.IGNORECASE,
)


def create_config_from_text(
    message: str, session: Optional[SessionConfig] = None, reference: Optional[date] = None
) -> SearchConfig:
    """Create a configuration from a free-form text query.

    This parser is intentionally simple but captures the phrasing of
    typical requests such as "flights from Toronto to Bangalore departing
    between September 27 and October 2 with no more than 2 layovers".
    """

    origin = ""
    destination = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    route_match = _ROUTE_PATTERN.search(message)
    if route_match:
        origin = route_match.group("origin").strip().title()
        destination = route_match.group("destination").strip().title()

    range_match = _DATE_RANGE_PATTERN.search(message)
    if range_match:
        start_date = _parse_date(range_match.group("start"), reference)
        end_date = _parse_date(range_match.group("end"), reference)
    if not start_date:
        single_match = _SINGLE_DATE_PATTERN.search(message)
        if single_match:
            start_date = _parse_date(single_match.group("date"), reference)
            end_date = start_date
    if start_date and end_date and end_date < start_date:
        # window wraps past new year
        end_date = end_date.replace(year=end_date.year + 1)

    max_stops: Optional[int] = None
    stops_match = _STOPS_PATTERN.search(message)
    if stops_match:
        max_stops = int(stops_match.group("count"))
    elif _NONSTOP_PATTERN.search(message):
        max_stops = 0

    layover_match = _LAYOVER_PATTERN.search(message)
    total_match = _TOTAL_PATTERN.search(message)

    config = SearchConfig(
        origin=origin,
        destination=destination,
        mode="range" if start_date else "single",
        start_date=start_date,
        end_date=end_date,
        constraints=_constraints_from_values(
            max_stops,
            total_match.group("hours") if total_match else None,
            layover_match.group("hours") if layover_match else None,
        ),
        session=session or SessionConfig.from_env(),
        notes=message,
        raw_request={"message": message},
    )
    if config.mode == "single":
        config.instructions = [message]
    return config


def create_config(data: Mapping[str, Any] | str, session: Optional[SessionConfig] = None) -> SearchConfig:
    """Unified helper that accepts either dict-like data or raw text."""

    if isinstance(data, Mapping):
        return create_config_from_form(data, session=session)
    if isinstance(data, str):
        return create_config_from_text(data, session=session)
    raise TypeError("Unsupported configuration payload type")
