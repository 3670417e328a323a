"""Search URL construction for the MakeMyTrip flight listing."""

from datetime import date, timedelta
from typing import Optional, Tuple

from flight_extractor.config import get_settings

ONE_WAY = "one_way"
ROUND_TRIP = "round_trip"

TRIP_TYPE_CODES = {
    ONE_WAY: "O",
    ROUND_TRIP: "R",
}

DEFAULT_SEARCH_BASE = "https://www.makemytrip.com/flight/search"


def _itinerary_leg(origin: str, destination: str, travel_date: date) -> str:
    return f"{origin.upper()}-{destination.upper()}-{travel_date.strftime('%d/%m/%Y')}"


def build_search_url(
    origin: str,
    destination: str,
    departure_date: date,
    trip_kind: str = ONE_WAY,
    return_date: Optional[date] = None,
    international: bool = False,
    adults: int = 1,
    children: int = 0,
    infants: int = 0,
    cabin_class: str = "E",
    base_url: str = DEFAULT_SEARCH_BASE,
) -> str:
    """
    Build a MakeMyTrip listing URL for one search.

    This is the single place where search URLs are built. Pure string
    construction: the same arguments always give the same URL.

    Round trips need a return date; the return leg is appended to the
    itinerary with an underscore, e.g. ``BLR-PAT-01/06/2026_PAT-BLR-08/06/2026``.
    """
    if trip_kind not in TRIP_TYPE_CODES:
        raise ValueError(f"Unknown trip kind: {trip_kind}")

    itinerary = _itinerary_leg(origin, destination, departure_date)

    if trip_kind == ROUND_TRIP:
        if return_date is None:
            raise ValueError("Round trip search needs a return date")
        if return_date < departure_date:
            raise ValueError("Return date is before departure date")
        itinerary += "_" + _itinerary_leg(destination, origin, return_date)

    query_parts = [
        f"itinerary={itinerary}",
        f"tripType={TRIP_TYPE_CODES[trip_kind]}",
        f"paxType=A-{adults}_C-{children}_I-{infants}",
        f"intl={'true' if international else 'false'}",
        f"cabinClass={cabin_class}",
    ]

    return f"{base_url}?{'&'.join(query_parts)}"


def resolve_dates(
    date_offset_days: int,
    trip_kind: str,
    today: Optional[date] = None,
    return_trip_days: Optional[int] = None,
) -> Tuple[date, Optional[date]]:
    """Turn a day offset into concrete (departure, return) dates."""
    today = today or date.today()
    if return_trip_days is None:
        return_trip_days = get_settings().return_trip_days

    departure = today + timedelta(days=date_offset_days)
    if trip_kind == ROUND_TRIP:
        return departure, departure + timedelta(days=return_trip_days)
    return departure, None
