"""
Record identity and duplicate suppression.

Cards repeat when the listing re-renders or expands ("show more flights"),
so every record gets a stable identity key built from the most specific
identifier available: flight code, then carrier code, then carrier name.
First-seen wins; later duplicates are dropped, never merged.
"""

import re
from typing import TYPE_CHECKING, Optional, Set

if TYPE_CHECKING:
    from flight_extractor.scrapers.records import FlightRecord


def _norm(value: Optional[str]) -> str:
    if not value:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip().lower()


def identity_key(record: "FlightRecord") -> str:
    """
    Stable identity for a flight record.

    The identifier (flight code > carrier code > airline name) is always
    combined with times, cities and date, so two distinct departures of the
    same carrier never collide while exact repeats always do.
    """
    if record.flight_code:
        identifier = f"code:{_norm(record.flight_code).replace(' ', '')}"
    elif record.carrier_code:
        identifier = f"carrier:{_norm(record.carrier_code)}"
    else:
        identifier = f"name:{_norm(record.airline)}"

    parts = [
        identifier,
        _norm(record.departure_time),
        _norm(record.arrival_time),
        _norm(record.departure_city or record.origin),
        _norm(record.arrival_city or record.destination),
        _norm(record.travel_date),
        _norm(record.leg),
    ]
    return "|".join(parts)


def is_duplicate(record: "FlightRecord", seen: Set[str]) -> bool:
    """Return True if the record was already seen; otherwise remember it."""
    key = identity_key(record)
    if key in seen:
        return True
    seen.add(key)
    return False
