from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from flight_extractor.api import extract, health
from flight_extractor.scheduler import start_scheduler, stop_scheduler
from flight_extractor.services.extraction_service import get_extraction_service, shutdown_service
from flight_extractor.config import get_settings
from flight_extractor.database import init_db

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Flight Extractor")

    init_db()

    try:
        if settings.scheduler_enabled:
            start_scheduler()
            logger.info("APScheduler started")

            # A batch cut short by a crash or restart picks up where it stopped
            if settings.resume_on_startup and get_extraction_service().resume_pending():
                logger.info("Unfinished batch queued for resume")
    except Exception as e:
        logger.error(f"Startup failed: {e}")

    yield

    logger.info("Shutting down Flight Extractor")

    try:
        stop_scheduler()
        await shutdown_service()
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


app = FastAPI(
    title="Flight Extractor",
    description="Headless MakeMyTrip flight listing extraction",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(extract.router, prefix="/api", tags=["extract"])


@app.get("/ping")
async def ping():
    """Simple ping endpoint for health checks."""
    return {"status": "ok"}
