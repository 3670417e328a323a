"""
Ranked fallback extraction strategies for MakeMyTrip listing cards.

Each field has one ordered list of strategies, most specific first. The
first strategy whose element exists and whose parser yields a value wins,
and its name is recorded on the record so layout drift shows up in the
output instead of silently degrading it.

Principles:
1. Try site-specific selectors first (fastest, most precise)
2. Fall back to class-substring and ARIA patterns
3. Fall back to text patterns over the whole card
4. Validate parsed values, never fail the card over one field
"""

import re
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from playwright.async_api import ElementHandle

from flight_extractor.scrapers.records import FareOption

logger = logging.getLogger(__name__)


# =============================================================================
# Text patterns
# =============================================================================

TIME_TOKEN = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")
CURRENCY_TOKEN = re.compile(r"₹|\bRs\.?(?=\s*\d)|\bINR\b")
PRICE_PATTERN = re.compile(r"(?:₹|Rs\.?|INR)\s*([\d,]+)")
BARE_AMOUNT_PATTERN = re.compile(r"^\s*([\d,]{3,})\s*$")
DURATION_PATTERN = re.compile(
    r"(\d{1,2})\s*(?:h|hr|hrs|hours?)(?![a-z])\s*(?:(\d{1,2})\s*(?:m|min|mins|minutes?)(?![a-z]))?",
    re.IGNORECASE,
)
MINUTES_ONLY_PATTERN = re.compile(r"\b(\d{1,3})\s*(?:m|min|mins|minutes?)(?![a-z])", re.IGNORECASE)
STOPS_PATTERN = re.compile(r"\b(\d)\s*stops?\b", re.IGNORECASE)
NON_STOP_PATTERN = re.compile(r"\bnon[\s-]?stop\b|\bdirect\b", re.IGNORECASE)
WORD_STOPS = {"one": 1, "two": 2, "three": 3}
WORD_STOPS_PATTERN = re.compile(r"\b(one|two|three)\s+stops?\b", re.IGNORECASE)
FLIGHT_CODE_PATTERN = re.compile(r"\b([A-Z0-9]{2})\s*-?\s*(\d{2,4})\b")
LOGO_CARRIER_PATTERN = re.compile(r"(?:^|[/_-])([A-Z0-9]{2})\.(?:png|svg|webp|jpe?g)(?:$|\?)", re.IGNORECASE)
LAYOVER_PATTERN = re.compile(
    r"(\d{1,2}\s*h(?:rs?)?\s*(?:\d{1,2}\s*m(?:ins?)?)?)\s*(?:layover|stopover)"
    r"|(?:layover|stopover)[^\n]*?(\d{1,2}\s*h(?:rs?)?\s*(?:\d{1,2}\s*m(?:ins?)?)?)",
    re.IGNORECASE,
)

MIN_PRICE = 100
MAX_PRICE = 1_000_000


# =============================================================================
# Parsers (pure)
# =============================================================================

def clean_text(text: Optional[str]) -> Optional[str]:
    """Collapse whitespace; empty text becomes None."""
    if not text:
        return None
    cleaned = re.sub(r"\s+", " ", text).strip()
    return cleaned or None


def parse_price(text: Optional[str]) -> Optional[int]:
    """
    Parse a rupee amount such as ``"₹ 12,689"`` or ``"Rs. 4,500 /adult"``.

    A bare number is only accepted when it is the whole text, so flight
    numbers and dates inside longer strings are never mistaken for prices.
    """
    if not text:
        return None

    match = PRICE_PATTERN.search(text)
    if not match:
        match = BARE_AMOUNT_PATTERN.match(text)
    if not match:
        return None

    try:
        price = int(match.group(1).replace(",", ""))
    except ValueError:
        return None

    if price < MIN_PRICE or price > MAX_PRICE:
        logger.debug(f"Rejected price {price} outside {MIN_PRICE}-{MAX_PRICE}")
        return None
    return price


def parse_duration(text: Optional[str]) -> Optional[int]:
    """Parse ``"02 h 55 m"`` / ``"2h 5m"`` / ``"45 m"`` into minutes."""
    if not text:
        return None

    match = DURATION_PATTERN.search(text)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2) or 0)
        if minutes < 60:
            return hours * 60 + minutes
        return None

    match = MINUTES_ONLY_PATTERN.search(text)
    if match:
        return int(match.group(1))

    return None


def parse_duration_text(text: Optional[str]) -> Optional[str]:
    """The duration as displayed, normalised to ``"2h 55m"``."""
    minutes = parse_duration(text)
    if minutes is None:
        return None
    return f"{minutes // 60}h {minutes % 60:02d}m"


def parse_stops(text: Optional[str]) -> Optional[int]:
    """``"Non stop"`` -> 0, ``"1 stop via BOM"`` -> 1, ``"two stops"`` -> 2."""
    if not text:
        return None
    if NON_STOP_PATTERN.search(text):
        return 0
    match = STOPS_PATTERN.search(text)
    if match:
        return int(match.group(1))
    match = WORD_STOPS_PATTERN.search(text)
    if match:
        return WORD_STOPS[match.group(1).lower()]
    return None


def find_stops_text(text: Optional[str]) -> Optional[str]:
    """The stops phrase inside a longer text, e.g. ``"1 stop"``."""
    if not text:
        return None
    for pattern in (NON_STOP_PATTERN, STOPS_PATTERN, WORD_STOPS_PATTERN):
        match = pattern.search(text)
        if match:
            return clean_text(match.group(0))
    return None


def parse_time(text: Optional[str], index: int = 0) -> Optional[str]:
    """The ``index``-th clock time in the text as ``HH:MM``."""
    if not text:
        return None
    matches = TIME_TOKEN.findall(text)
    if len(matches) <= index:
        return None
    hours, minutes = matches[index]
    return f"{int(hours):02d}:{minutes}"


def nth_time(index: int) -> Callable[[str], Optional[str]]:
    return lambda text: parse_time(text, index)


def parse_flight_code(text: Optional[str]) -> Optional[str]:
    """Normalise ``"6E-201, 6E 345"`` to ``"6E 201, 6E 345"``."""
    if not text:
        return None
    codes = [f"{carrier} {number}" for carrier, number in FLIGHT_CODE_PATTERN.findall(text.upper())]
    return ", ".join(codes) if codes else None


def carrier_code_from(flight_code: Optional[str]) -> Optional[str]:
    if not flight_code:
        return None
    return flight_code.split(" ", 1)[0]


def parse_carrier_code(text: Optional[str]) -> Optional[str]:
    """A standalone two-character designator such as ``"6E"``."""
    cleaned = (clean_text(text) or "").upper()
    if re.fullmatch(r"[A-Z0-9]{2}", cleaned) and not cleaned.isdigit():
        return cleaned
    return None


def parse_logo_carrier(src: Optional[str]) -> Optional[str]:
    """Carrier logos are served as ``.../icons/6E.png``."""
    if not src:
        return None
    match = LOGO_CARRIER_PATTERN.search(src.strip())
    return match.group(1).upper() if match else None


def parse_city(text: Optional[str]) -> Optional[str]:
    """City labels sometimes carry the terminal on a second line."""
    cleaned = clean_text((text or "").split("\n")[0])
    if cleaned and not TIME_TOKEN.fullmatch(cleaned):
        return cleaned
    return None


def parse_layover(text: Optional[str]) -> Optional[str]:
    """Layover duration exactly as the details panel displays it."""
    if not text:
        return None
    match = LAYOVER_PATTERN.search(text)
    if not match:
        return None
    return clean_text(match.group(1) or match.group(2))


def has_content_signal(text: Optional[str]) -> bool:
    """A card must carry a clock time or a currency token."""
    if not text:
        return False
    return bool(TIME_TOKEN.search(text) or CURRENCY_TOKEN.search(text))


# =============================================================================
# Strategy model
# =============================================================================

@dataclass
class FieldStrategy:
    """One way of reading a field. ``selector=None`` reads the whole root's text."""
    name: str
    selector: Optional[str]
    parser: Callable[[str], Any] = clean_text
    attribute: Optional[str] = None


@dataclass
class ExtractionResult:
    """Result of a successful extraction attempt."""
    value: Any
    strategy_name: str
    fallback_level: int
    raw_text: str = ""


class FieldExtractor:
    """Runs a ranked strategy list against a root element; first success wins."""

    @classmethod
    async def extract(
        cls,
        root: ElementHandle,
        strategies: List[FieldStrategy],
        root_text: Optional[str] = None,
    ) -> Optional[ExtractionResult]:
        for level, strategy in enumerate(strategies):
            try:
                if strategy.selector is None:
                    raw = root_text if root_text is not None else await root.inner_text()
                else:
                    element = await root.query_selector(strategy.selector)
                    if not element:
                        continue
                    if strategy.attribute:
                        raw = await element.get_attribute(strategy.attribute)
                    else:
                        raw = await element.inner_text()

                value = strategy.parser(raw or "")
                if value is None or value == "":
                    continue

                return ExtractionResult(
                    value=value,
                    strategy_name=strategy.name,
                    fallback_level=level,
                    raw_text=(raw or "")[:200],
                )
            except Exception as e:
                logger.debug(f"Strategy {strategy.name} failed: {e}")
                continue

        return None


# =============================================================================
# Card summary strategies
# =============================================================================

AIRLINE_STRATEGIES = [
    FieldStrategy("airlineName", "p.airlineName"),
    FieldStrategy("airline-class", "[class*='airlineName']"),
    FieldStrategy("airline-info", "[class*='airlineInfo'] p"),
    FieldStrategy("logo-alt", "img[alt]", attribute="alt"),
]

FLIGHT_CODE_STRATEGIES = [
    FieldStrategy("fliCode", "p.fliCode", parse_flight_code),
    FieldStrategy("code-class", "[class*='fliCode']", parse_flight_code),
    FieldStrategy("flight-code-class", "[class*='flightCode']", parse_flight_code),
]

# Read independently of the flight code, for cards that hide the number
CARRIER_CODE_STRATEGIES = [
    FieldStrategy("airlineCode", "[class*='airlineCode']", parse_carrier_code),
    FieldStrategy("logo-src", "[class*='arln-logo'] img", parse_logo_carrier, attribute="src"),
    FieldStrategy("img-src", "img[src]", parse_logo_carrier, attribute="src"),
]

DEPARTURE_TIME_STRATEGIES = [
    FieldStrategy("timeInfoLeft", "div.timeInfoLeft p.flightTimeInfo span", nth_time(0)),
    FieldStrategy("timeInfoLeft-any", "[class*='timeInfoLeft']", nth_time(0)),
    FieldStrategy("dept-time-class", "[class*='deptTime']", nth_time(0)),
    FieldStrategy("card-text-first-time", None, nth_time(0)),
]

ARRIVAL_TIME_STRATEGIES = [
    FieldStrategy("timeInfoRight", "div.timeInfoRight p.flightTimeInfo span", nth_time(0)),
    FieldStrategy("timeInfoRight-any", "[class*='timeInfoRight']", nth_time(0)),
    FieldStrategy("arr-time-class", "[class*='arrivalTime']", nth_time(0)),
    FieldStrategy("card-text-second-time", None, nth_time(1)),
]

DEPARTURE_CITY_STRATEGIES = [
    FieldStrategy("timeInfoLeft-city", "div.timeInfoLeft p.blackText", parse_city),
    FieldStrategy("timeInfoLeft-city-any", "[class*='timeInfoLeft'] [class*='city']", parse_city),
]

ARRIVAL_CITY_STRATEGIES = [
    FieldStrategy("timeInfoRight-city", "div.timeInfoRight p.blackText", parse_city),
    FieldStrategy("timeInfoRight-city-any", "[class*='timeInfoRight'] [class*='city']", parse_city),
]

DURATION_STRATEGIES = [
    FieldStrategy("stop-info", "div.stop-info p", parse_duration_text),
    FieldStrategy("stop-info-any", "[class*='stop-info']", parse_duration_text),
    FieldStrategy("duration-class", "[class*='duration']", parse_duration_text),
    FieldStrategy("card-text-duration", None, parse_duration_text),
]

STOPS_STRATEGIES = [
    FieldStrategy("flightsLayoverInfo", "p.flightsLayoverInfo", clean_text),
    FieldStrategy("layover-class", "[class*='LayoverInfo']", clean_text),
    FieldStrategy("stops-class", "[class*='stops']", clean_text),
    FieldStrategy("card-text-stops", None, find_stops_text),
]

PRICE_STRATEGIES = [
    FieldStrategy("clusterViewPrice", "div.clusterViewPrice", parse_price),
    FieldStrategy("priceSection", "[class*='priceSection'] [class*='fontSize18']", parse_price),
    FieldStrategy("price-class", "[class*='price']", parse_price),
    FieldStrategy("aria-price", "[aria-label*='price']", parse_price, attribute="aria-label"),
    FieldStrategy("card-text-currency", None, parse_price),
]

SUMMARY_FIELDS: Dict[str, List[FieldStrategy]] = {
    "airline": AIRLINE_STRATEGIES,
    "flight_code": FLIGHT_CODE_STRATEGIES,
    "carrier_code": CARRIER_CODE_STRATEGIES,
    "departure_time": DEPARTURE_TIME_STRATEGIES,
    "arrival_time": ARRIVAL_TIME_STRATEGIES,
    "departure_city": DEPARTURE_CITY_STRATEGIES,
    "arrival_city": ARRIVAL_CITY_STRATEGIES,
    "duration": DURATION_STRATEGIES,
    "stops_text": STOPS_STRATEGIES,
    "price": PRICE_STRATEGIES,
}


async def extract_summary(card: ElementHandle) -> Dict[str, Any]:
    """
    Extract the summary fields visible on a card without opening anything.

    Returns a dict of field values plus a ``strategies`` map naming the
    strategy that produced each one.
    """
    card_text = await card.inner_text()
    fields: Dict[str, Any] = {}
    strategies: Dict[str, str] = {}

    for field_name, field_strategies in SUMMARY_FIELDS.items():
        result = await FieldExtractor.extract(card, field_strategies, root_text=card_text)
        if result is None:
            continue
        fields[field_name] = result.value
        strategies[field_name] = result.strategy_name
        if field_name == "price":
            price_line = next((line for line in result.raw_text.split("\n") if parse_price(line)), "")
            fields["price_text"] = clean_text(price_line)

    if "duration" in fields:
        fields["duration_minutes"] = parse_duration(fields["duration"])
    if "stops_text" in fields:
        fields["stops"] = parse_stops(fields["stops_text"])
    # The flight number's prefix outranks a logo or badge
    if "flight_code" in fields:
        fields["carrier_code"] = carrier_code_from(fields["flight_code"])
        strategies["carrier_code"] = "flight-code-prefix"

    fields["strategies"] = strategies
    return fields


# =============================================================================
# Fare popup
# =============================================================================

FARE_ITEM_SELECTORS = [
    ".fareFamilyCardWrapper",
    "[class*='fareFamilyCard']",
    "[class*='viewFaresCard']",
    "[data-test*='fare']",
]

FARE_NAME_STRATEGIES = [
    FieldStrategy("fareName", "[class*='fareName']"),
    FieldStrategy("fare-header", "[class*='fareHeader'] p"),
    FieldStrategy("first-line", None, lambda t: clean_text(t.split("\n")[0])),
]


async def extract_fares(popup: ElementHandle) -> List[FareOption]:
    """Every fare tier in an open fare popup, in display order."""
    for selector in FARE_ITEM_SELECTORS:
        try:
            items = await popup.query_selector_all(selector)
        except Exception as e:
            logger.debug(f"Fare item selector {selector} failed: {e}")
            continue
        if not items:
            continue

        fares = []
        for item in items:
            text = await item.inner_text()
            name_result = await FieldExtractor.extract(item, FARE_NAME_STRATEGIES, root_text=text)
            if name_result is None:
                continue
            name = name_result.value
            price = parse_price(text)
            price_line = next((line for line in text.split("\n") if parse_price(line)), "")
            benefits = [
                cleaned for cleaned in (clean_text(line) for line in text.split("\n"))
                if cleaned and cleaned != name and cleaned != clean_text(price_line)
            ]
            fares.append(FareOption(
                name=name,
                price=price,
                price_text=clean_text(price_line) or "",
                benefits=benefits,
            ))
        if fares:
            return fares

    return []


# =============================================================================
# Details panel
# =============================================================================

DETAIL_TAB_FIELDS = [
    ("baggage", "baggage"),
    ("cancel", "cancellation_policy"),
    ("date change", "date_change_policy"),
    ("reschedul", "date_change_policy"),
]


def classify_details(details: Dict[str, str]) -> Dict[str, Any]:
    """
    Map raw tab texts onto record fields.

    Layover time is only reported when the panel displays it; it is never
    derived from the total duration.
    """
    fields: Dict[str, Any] = {"details": dict(details)}
    for tab_name, text in details.items():
        lowered = tab_name.lower()
        for marker, field_name in DETAIL_TAB_FIELDS:
            if marker in lowered and field_name not in fields:
                fields[field_name] = text
                break
        if "layover" not in fields:
            layover = parse_layover(text)
            if layover:
                fields["layover"] = layover
    return fields
