# SQLAlchemy models
from flight_extractor.models.persisted_state import PersistedState

__all__ = [
    "PersistedState",
]
