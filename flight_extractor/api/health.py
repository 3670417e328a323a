from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from flight_extractor.database import get_db
from flight_extractor.services.extraction_service import ExtractionService, get_extraction_service

router = APIRouter()


@router.get("/health")
async def health_check(
    db: Session = Depends(get_db),
    service: ExtractionService = Depends(get_extraction_service),
):
    try:
        db.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"

    return {
        "status": "ok" if db_status == "healthy" else "degraded",
        "database": db_status,
        "extraction_running": service.busy,
    }
