from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from flight_extractor.config import get_settings
import logging

logger = logging.getLogger(__name__)
settings = get_settings()

db_url = settings.database_url

# SQLite will not create the parent directory for a file database
if db_url.startswith("sqlite:///") and ":memory:" not in db_url:
    Path(db_url.replace("sqlite:///", "", 1)).parent.mkdir(parents=True, exist_ok=True)

engine = create_engine(
    db_url,
    connect_args={"check_same_thread": False} if db_url.startswith("sqlite") else {}
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create tables for all registered models."""
    # Import models so they register on Base.metadata
    from flight_extractor import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")
