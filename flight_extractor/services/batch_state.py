import json
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from flight_extractor.database import SessionLocal
from flight_extractor.models import PersistedState
from flight_extractor.scrapers.records import ExtractionJob

logger = logging.getLogger(__name__)

BATCH_STATE_KEY = "batch_state"


@dataclass(frozen=True)
class BatchState:
    """Ordered job list plus the cursor of the next job to run."""
    jobs: List[ExtractionJob]
    current_index: int = 0
    batch_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    @property
    def total(self) -> int:
        return len(self.jobs)

    @property
    def is_exhausted(self) -> bool:
        return self.current_index >= len(self.jobs)

    @property
    def current_job(self) -> Optional[ExtractionJob]:
        if self.is_exhausted:
            return None
        return self.jobs[self.current_index]

    def advance(self) -> "BatchState":
        return replace(self, current_index=self.current_index + 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "created_at": self.created_at,
            "current_index": self.current_index,
            "jobs": [job.to_dict() for job in self.jobs],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BatchState":
        return cls(
            jobs=[ExtractionJob.from_dict(job) for job in data["jobs"]],
            current_index=int(data.get("current_index", 0)),
            batch_id=data.get("batch_id") or uuid.uuid4().hex[:12],
            created_at=data.get("created_at") or datetime.utcnow().isoformat(),
        )


class BatchStateStore:
    """
    Durable home of the batch cursor.

    Written before every navigation and read once after, by a single
    writer, so plain overwrite semantics are enough.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, key: str = BATCH_STATE_KEY):
        self.session_factory = session_factory
        self.key = key

    def save(self, state: BatchState) -> None:
        db = self.session_factory()
        try:
            row = db.get(PersistedState, self.key)
            value = json.dumps(state.to_dict())
            if row is None:
                db.add(PersistedState(key=self.key, value=value))
            else:
                row.value = value
            db.commit()
        finally:
            db.close()

    def load(self) -> Optional[BatchState]:
        db = self.session_factory()
        try:
            row = db.get(PersistedState, self.key)
            if row is None:
                return None
            try:
                return BatchState.from_dict(json.loads(row.value))
            except (ValueError, KeyError, TypeError) as e:
                logger.error(f"Discarding unreadable batch state: {e}")
                db.delete(row)
                db.commit()
                return None
        finally:
            db.close()

    def clear(self) -> bool:
        db = self.session_factory()
        try:
            row = db.get(PersistedState, self.key)
            if row is None:
                return False
            db.delete(row)
            db.commit()
            return True
        finally:
            db.close()
