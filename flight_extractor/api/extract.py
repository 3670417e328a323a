from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse
from typing import Any, Dict, List

from flight_extractor.schemas import TriggerRequest, TriggerResponse, ProgressResponse, BatchStateResponse
from flight_extractor.services.extraction_service import ExtractionService, get_extraction_service

router = APIRouter()


@router.post("/extract", response_model=TriggerResponse, response_model_exclude_none=True)
async def trigger_extraction(
    request: TriggerRequest,
    service: ExtractionService = Depends(get_extraction_service),
):
    """Run one listing inline, or queue a route x date batch."""
    return await service.handle_trigger(request)


@router.get("/progress", response_model=ProgressResponse)
async def get_progress(service: ExtractionService = Depends(get_extraction_service)):
    return service.progress()


@router.get("/batch", response_model=BatchStateResponse)
async def get_batch(service: ExtractionService = Depends(get_extraction_service)):
    state = service.batch_state()
    if state is None:
        raise HTTPException(status_code=404, detail="No batch in progress")
    return {**state.to_dict(), "total": state.total}


@router.delete("/batch")
async def cancel_batch(service: ExtractionService = Depends(get_extraction_service)):
    """Drop the persisted cursor; a running batch stops after its current job."""
    if not service.cancel_batch():
        raise HTTPException(status_code=404, detail="No batch in progress")
    return {"status": "cleared"}


@router.get("/results")
async def get_results(service: ExtractionService = Depends(get_extraction_service)) -> List[Dict[str, Any]]:
    """Payloads of the current (or last) run."""
    return service.results()


@router.get("/logs", response_class=PlainTextResponse)
async def get_logs(service: ExtractionService = Depends(get_extraction_service)):
    return service.logs()
