from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.sql import func
from flight_extractor.database import Base


class PersistedState(Base):
    """
    Key-value record that survives page navigations and process restarts.

    The batch orchestrator stores its cursor here before every navigation
    and deletes the row once the job list is exhausted.
    """
    __tablename__ = "persisted_state"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)  # JSON document

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<PersistedState {self.key}: {len(self.value or '')} bytes>"
