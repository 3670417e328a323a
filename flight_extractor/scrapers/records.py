from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from flight_extractor.utils.url_builder import ONE_WAY, ROUND_TRIP


# Job-level outcome classification
RunStatus = Literal[
    "success",
    "no_results",
    "structure_not_found",
    "timeout",
    "unknown",
]


@dataclass(frozen=True)
class ExtractionJob:
    """One (route, date) search. Immutable once issued."""
    origin: str
    destination: str
    date_offset_days: int
    trip_kind: str = ONE_WAY
    international: bool = False

    def __post_init__(self):
        if self.trip_kind not in (ONE_WAY, ROUND_TRIP):
            raise ValueError(f"Unknown trip kind: {self.trip_kind}")

    @property
    def route(self) -> Tuple[str, str]:
        return (self.origin, self.destination)

    @property
    def label(self) -> str:
        return f"{self.origin}-{self.destination} +{self.date_offset_days}d"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractionJob":
        return cls(
            origin=data["origin"],
            destination=data["destination"],
            date_offset_days=int(data["date_offset_days"]),
            trip_kind=data.get("trip_kind", ONE_WAY),
            international=bool(data.get("international", False)),
        )


@dataclass
class FareOption:
    """One purchasable fare tier from a card's fare popup."""
    name: str
    price: Optional[int] = None
    price_text: str = ""
    benefits: List[str] = field(default_factory=list)


@dataclass
class FlightRecord:
    """A single flight card, summary fields first, detail-panel fields merged in later."""
    airline: Optional[str] = None
    carrier_code: Optional[str] = None
    flight_code: Optional[str] = None
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    departure_city: Optional[str] = None
    arrival_city: Optional[str] = None
    travel_date: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    duration: Optional[str] = None
    duration_minutes: Optional[int] = None
    stops: Optional[int] = None
    stops_text: Optional[str] = None
    price: Optional[int] = None
    price_text: Optional[str] = None
    leg: Optional[str] = None

    # Fare popup
    fare_options: List[FareOption] = field(default_factory=list)

    # Details panel
    baggage: Optional[str] = None
    cancellation_policy: Optional[str] = None
    date_change_policy: Optional[str] = None
    layover: Optional[str] = None
    details: Dict[str, str] = field(default_factory=dict)

    # Which strategy produced each summary field
    strategies: Dict[str, str] = field(default_factory=dict)

    @property
    def identity_key(self) -> str:
        from flight_extractor.scrapers.dedup import identity_key
        return identity_key(self)

    @property
    def has_details(self) -> bool:
        return bool(self.details or self.baggage or self.cancellation_policy or self.date_change_policy)

    def merge_details(self, details: Dict[str, Any]) -> None:
        """Merge detail-panel fields without overwriting summary values."""
        for key, value in details.items():
            if value in (None, "", [], {}):
                continue
            if key == "details":
                self.details.update(value)
            elif getattr(self, key, None) in (None, "", [], {}):
                setattr(self, key, value)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict; absent fields are left out rather than nulled."""
        data = asdict(self)
        data["identity_key"] = self.identity_key
        return {k: v for k, v in data.items() if v not in (None, "", [], {})}


def format_elapsed(elapsed_ms: int) -> str:
    """Human readable run time, e.g. ``2m 05s`` or ``12.4s``."""
    seconds = elapsed_ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs:02d}s"


@dataclass
class RunResult:
    """
    Outcome of one extraction job.

    Failures never raise past the job boundary; they are reported through
    ``status`` and ``error_message`` so a batch can carry on.
    """
    status: RunStatus
    records: List[FlightRecord] = field(default_factory=list)
    job: Optional[ExtractionJob] = None
    source_url: str = ""
    trip_kind: str = ONE_WAY
    started_at: datetime = field(default_factory=datetime.utcnow)
    elapsed_ms: int = 0
    job_count: int = 1
    cards_seen: int = 0
    duplicates_dropped: int = 0
    error_message: Optional[str] = None
    screenshot_path: Optional[str] = None
    html_snapshot_path: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status == "success"

    @property
    def record_count(self) -> int:
        return len(self.records)

    def to_payload(self) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "started_at": self.started_at.isoformat(),
            "source_url": self.source_url,
            "elapsed_ms": self.elapsed_ms,
            "execution_time_formatted": format_elapsed(self.elapsed_ms),
            "record_count": self.record_count,
            "job_count": self.job_count,
            "trip_kind": self.trip_kind,
            "status": self.status,
            "cards_seen": self.cards_seen,
            "duplicates_dropped": self.duplicates_dropped,
        }
        if self.job is not None:
            metadata["route"] = f"{self.job.origin}-{self.job.destination}"
            metadata["date_offset_days"] = self.job.date_offset_days
        if self.error_message:
            metadata["error"] = self.error_message

        return {
            "metadata": metadata,
            "records": [record.to_dict() for record in self.records],
        }
